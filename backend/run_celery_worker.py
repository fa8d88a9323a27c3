#!/usr/bin/env python3
# backend/run_celery_worker.py
"""
Development Celery runner.

``python run_celery_worker.py`` starts a worker on the email and maintenance
queues; ``python run_celery_worker.py beat`` starts the scheduler that purges
the webhook ledger.
"""
import os
from pathlib import Path
import subprocess
import sys

backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "beat":
        cmd = [sys.executable, "-m", "celery", "-A", "therapport.tasks.celery_app", "beat", "--loglevel=info"]
    else:
        queues = os.getenv("CELERY_QUEUES") or "email,maintenance"
        print(f"Consuming queues: {queues}")
        cmd = [
            sys.executable,
            "-m",
            "celery",
            "-A",
            "therapport.tasks.celery_app",
            "worker",
            "--loglevel=info",
            "--concurrency=2",
            "--max-tasks-per-child=100",
            "-Q",
            queues,
        ]

    subprocess.run(cmd)
