from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable, Iterator

from celery.result import AsyncResult, EagerResult

from app.celery_app import enqueue
from app.core.config import Settings
from app.services.email import MailResult, MailSender
from app.tasks import mail as mail_tasks

logger = logging.getLogger(__name__)

DELIVERY_SENT = "sent"
DELIVERY_FAILED = "failed"
DELIVERY_QUEUED = "queued"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff for outbound mail.

    With the defaults: up to 3 attempts, waiting 1s then 2s between them, and
    never starting a wait that would end past ``deadline_seconds``.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    backoff_factor: float = 2.0
    deadline_seconds: float | None = 10.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.MAIL_MAX_ATTEMPTS,
            base_delay_seconds=settings.MAIL_BACKOFF_BASE_SECONDS,
            backoff_factor=settings.MAIL_BACKOFF_FACTOR,
            deadline_seconds=settings.MAIL_DELIVERY_DEADLINE_SECONDS,
        )

    @classmethod
    def for_password_reset(cls, settings: Settings) -> RetryPolicy:
        # Reset mail is best-effort; the user can simply ask again.
        return cls(
            max_attempts=settings.RESET_MAIL_MAX_ATTEMPTS,
            base_delay_seconds=settings.MAIL_BACKOFF_BASE_SECONDS,
            backoff_factor=settings.MAIL_BACKOFF_FACTOR,
            deadline_seconds=settings.MAIL_DELIVERY_DEADLINE_SECONDS,
        )

    def delays(self) -> Iterator[float]:
        """Waits between consecutive attempts (one fewer than max_attempts)."""
        for n in range(self.max_attempts - 1):
            yield self.base_delay_seconds * (self.backoff_factor ** n)


@dataclass(frozen=True)
class OutboundEmail:
    to: str
    subject: str
    html_body: str
    # Short label for logs ("otp", "password_reset"); the body is never logged.
    kind: str = "email"


@dataclass(frozen=True)
class DeliveryOutcome:
    sent: bool
    attempts: int
    reason: str | None = None
    message_id: str | None = None


@dataclass(frozen=True)
class DispatchResult:
    status: str  # sent | failed | queued
    outcome: DeliveryOutcome | None = None
    future: AsyncResult | None = None

    @property
    def email_sent(self) -> bool | None:
        """True/False once delivery finished; None while queued."""
        if self.status == DELIVERY_QUEUED:
            return None
        return self.status == DELIVERY_SENT


def deliver_with_retry(
    sender: MailSender,
    message: OutboundEmail,
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> DeliveryOutcome:
    """
    Try ``sender`` until it succeeds, the attempt budget is spent, the deadline
    would be crossed, or the failure is not retryable. Never raises for
    transport failures; the outcome carries ``sent=False`` instead.
    """
    started = clock()
    delays = policy.delays()
    last: MailResult | None = None
    attempt = 0

    while attempt < policy.max_attempts:
        attempt += 1
        try:
            last = sender.send(message.to, message.subject, message.html_body)
        except Exception as exc:  # noqa: BLE001 - a misbehaving sender counts as a failed attempt
            logger.exception("Mail sender raised on %s attempt %s", message.kind, attempt)
            last = MailResult.failure(f"sender error: {exc.__class__.__name__}")

        if last.ok:
            if attempt > 1:
                logger.info("Delivered %s email after %s attempts", message.kind, attempt)
            return DeliveryOutcome(sent=True, attempts=attempt, message_id=last.message_id)

        logger.warning(
            "Failed to send %s email (attempt %s/%s): %s",
            message.kind,
            attempt,
            policy.max_attempts,
            last.reason,
        )
        if not last.retryable or attempt >= policy.max_attempts:
            break

        delay = next(delays)
        if policy.deadline_seconds is not None and (clock() - started) + delay > policy.deadline_seconds:
            logger.warning("Giving up on %s email: next retry would pass the delivery deadline", message.kind)
            break
        sleep(delay)

    logger.error("All %s email attempts failed after %s tries: %s", message.kind, attempt, last.reason if last else None)
    return DeliveryOutcome(sent=False, attempts=attempt, reason=last.reason if last else None)


class MailDispatcher:
    """
    Runs the bounded delivery task either inline (``mode="sync"``: the request
    waits for at most the retry window) or as a Celery task
    (``mode="background"``: the caller gets the task result handle).

    Background tasks build their own sender from settings on the worker, so
    ``sender`` only applies to sync delivery. Without a broker the task runs
    inline and ``on_done`` fires with the outcome; with one, the worker logs it.
    """

    def __init__(
        self,
        sender: MailSender,
        *,
        mode: str = "sync",
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if mode not in {"sync", "background"}:
            raise ValueError(f"Unsupported delivery mode {mode!r}")
        self.sender = sender
        self.mode = mode
        self._sleep = sleep

    def deliver(self, message: OutboundEmail, policy: RetryPolicy) -> DeliveryOutcome:
        return deliver_with_retry(self.sender, message, policy, sleep=self._sleep)

    def submit(self, message: OutboundEmail, policy: RetryPolicy) -> AsyncResult:
        return enqueue(mail_tasks.deliver_email, asdict(message), asdict(policy))

    def dispatch(
        self,
        message: OutboundEmail,
        policy: RetryPolicy,
        on_done: Callable[[DeliveryOutcome], None] | None = None,
    ) -> DispatchResult:
        if self.mode == "background":
            result = self.submit(message, policy)
            if not isinstance(result, EagerResult):
                return DispatchResult(status=DELIVERY_QUEUED, future=result)
            if result.successful():
                outcome = DeliveryOutcome(**result.result)
            else:
                logger.error("Inline %s delivery task crashed: %s", message.kind, result.result)
                outcome = DeliveryOutcome(sent=False, attempts=0, reason="delivery task crashed")
        else:
            result = None
            outcome = self.deliver(message, policy)

        if on_done is not None:
            on_done(outcome)
        return DispatchResult(
            status=DELIVERY_SENT if outcome.sent else DELIVERY_FAILED,
            outcome=outcome,
            future=result,
        )
