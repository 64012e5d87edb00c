from celery import Celery

from convoflow.config import get_settings

settings = get_settings()

celery_app = Celery(
    "convoflow",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["convoflow.tasks.pipeline_task"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_always_eager=settings.is_test,
)
