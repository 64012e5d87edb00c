# Import celery app first
from convoflow.infra.celery_app import celery_app

# Initialize logging configuration for Celery workers
from convoflow.infra.logging_config import LoggingConfig
from convoflow.tasks.pipeline_task import advance_conversation_task

LoggingConfig()  # Initialize logging

__all__ = [
    "celery_app",
    "advance_conversation_task",
]
