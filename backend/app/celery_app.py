from __future__ import annotations

import logging

from celery import Celery

from app.core.config import settings


logger = logging.getLogger(__name__)

BROKER_CONFIGURED = bool(settings.MAIL_SQS_QUEUE_URL)

if BROKER_CONFIGURED and not settings.AWS_REGION:
    logger.warning("Mail queue configured but AWS_REGION missing; defaulting to us-east-1")

celery_app = Celery("hirehub-mail", include=["app.tasks.mail"])

if BROKER_CONFIGURED:
    broker_url = "sqs://"
    broker_options = {
        "region": settings.AWS_REGION or "us-east-1",
        # Longer than the worst-case retry window of a single delivery.
        "visibility_timeout": 60 * 5,
        "queue_name_prefix": "",
        "predefined_queues": {
            "mail-tasks": {
                "url": settings.MAIL_SQS_QUEUE_URL,
            }
        },
    }
else:
    broker_url = "memory://"
    broker_options = {}
    logger.warning("MAIL_SQS_QUEUE_URL is not configured; background mail will run inline.")

celery_app.conf.update(
    broker_url=broker_url,
    result_backend=None,
    task_default_queue="mail-tasks",
    task_serializer="json",
    accept_content=["json"],
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    broker_connection_retry_on_startup=True,
    timezone="UTC",
    enable_utc=True,
)

if broker_options:
    celery_app.conf.broker_transport_options = broker_options


def enqueue(task, *args, **kwargs):
    """
    Send ``task`` to the broker, or run it inline when no broker is configured
    (tests and local dev). Inline runs return an EagerResult holding the value.
    """
    if BROKER_CONFIGURED:
        return task.delay(*args, **kwargs)
    logger.info("Celery broker not configured; running %s synchronously", task.name)
    return task.apply(args=args, kwargs=kwargs)
