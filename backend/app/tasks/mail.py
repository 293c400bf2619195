from __future__ import annotations

import logging
import time
from dataclasses import asdict

from app.celery_app import celery_app
from app.core.config import settings
from app.services import mail_delivery
from app.services.email import build_mail_sender


logger = logging.getLogger(__name__)


@celery_app.task(name="mail.deliver_email")
def deliver_email(message: dict, policy: dict) -> dict:
    """Worker side of background delivery. Arguments and result are plain dicts (json serializer)."""
    outbound = mail_delivery.OutboundEmail(**message)
    sender = build_mail_sender(settings)
    outcome = mail_delivery.deliver_with_retry(
        sender,
        outbound,
        mail_delivery.RetryPolicy(**policy),
        sleep=time.sleep,
    )
    logger.info(
        "Background %s delivery finished: sent=%s attempts=%s",
        outbound.kind,
        outcome.sent,
        outcome.attempts,
    )
    return asdict(outcome)
