# chatlearn/celery_app.py

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun

from .config import settings
from .logging_config import get_logger

logger = get_logger(__name__)

celery_app = Celery(
    "chatlearn",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "chatlearn.jobs.tasks",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # At-least-once delivery: ack only after the task body finishes and
    # requeue when the worker dies mid-task
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,
    task_soft_time_limit=290,

    broker_connection_retry_on_startup=True,

    result_expires=3600,
    result_extended=True,

    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=200,

    # Tests run tasks inline
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_store_eager_result=False,
)


@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None, **extra):
    logger.info(f"Task started: {task.name} [ID: {task_id}]")


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, args=None, kwargs=None, retval=None, state=None, **extra):
    logger.info(f"Task completed: {task.name} [ID: {task_id}] State: {state}")


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, args=None, kwargs=None, traceback=None, **extra):
    logger.error(f"Task failed: {sender.name} [ID: {task_id}] Error: {exception}")
