#!/usr/bin/env python3
# backend/run.py
"""
Development server runner.

Defaults to console email delivery so local bookings never reach a real inbox.
"""
import os
from pathlib import Path
import sys

backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("EMAIL_PROVIDER", "console")

import uvicorn

if __name__ == "__main__":
    print("Starting Therapport API at http://localhost:8000 (docs at /docs)")
    uvicorn.run("therapport.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
