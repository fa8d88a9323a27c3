# backend/therapport/tasks/celery_app.py
"""
Celery application configuration for Therapport.

Redis is the broker; results are not stored. Email tasks run on their own
queue so a slow provider never delays webhook ledger maintenance.
"""

import logging
from typing import Any, Dict, Type, cast

from celery import Celery, Task
from celery.schedules import crontab
from celery.signals import setup_logging

from ..core.config import settings

TASK_MODULES = (
    "therapport.tasks.email",
    "therapport.tasks.maintenance",
)


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    return {
        "purge-webhook-events": {
            "task": "therapport.tasks.maintenance.purge_webhook_events",
            "schedule": crontab(minute=15),
            "options": {"queue": "maintenance"},
        },
    }


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    celery_app = Celery("therapport", broker=settings.broker_url)

    celery_app.conf.update(
        {
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "task_ignore_result": True,
            "timezone": settings.business_timezone,
            "enable_utc": True,
            "worker_prefetch_multiplier": 4,
            "worker_max_tasks_per_child": 1000,
            "task_soft_time_limit": 120,
            "task_time_limit": 300,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "task_default_retry_delay": 60,
            "task_max_retries": 3,
            "worker_hijack_root_logger": False,
            "broker_transport_options": {"visibility_timeout": 3600},
        }
    )
    celery_app.conf.imports = TASK_MODULES
    celery_app.conf.task_routes = {
        "therapport.tasks.email.*": {"queue": "email"},
        "therapport.tasks.maintenance.*": {"queue": "maintenance"},
    }
    celery_app.conf.beat_schedule = get_beat_schedule()
    return celery_app


@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Keep worker log format in line with the API process."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


celery_app = create_celery_app()


class BaseTask(Task):  # type: ignore[misc]
    """Base task with failure and retry logging."""

    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logging.getLogger(__name__).error(
            f"Task {self.name}[{task_id}] failed with exception: {exc}",
            exc_info=True,
            extra={"task_id": task_id, "task_name": self.name, "task_args": str(args)},
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logging.getLogger(__name__).warning(
            f"Task {self.name}[{task_id}] retry {self.request.retries} due to: {exc}",
            extra={"task_id": task_id, "task_name": self.name, "retry_count": self.request.retries},
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)


celery_app.Task = cast(Type[Task], BaseTask)
