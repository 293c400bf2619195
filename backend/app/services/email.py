from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate
from typing import Protocol

import boto3
import resend
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError, NoCredentialsError

from app.core.config import Settings

logger = logging.getLogger(__name__)


class EmailNotConfiguredError(RuntimeError):
    pass


class EmailDeliveryError(RuntimeError):
    """
    Raised when a provider is configured but delivery fails.
    Message should be safe to log; it never contains the email body.
    """


@dataclass(frozen=True)
class MailResult:
    ok: bool
    reason: str | None = None
    message_id: str | None = None
    # False when retrying cannot help (e.g. provider not configured).
    retryable: bool = True

    @classmethod
    def success(cls, message_id: str | None = None) -> MailResult:
        return cls(ok=True, message_id=message_id)

    @classmethod
    def failure(cls, reason: str, *, retryable: bool = True) -> MailResult:
        return cls(ok=False, reason=reason, retryable=retryable)


class MailSender(Protocol):
    def send(self, to_email: str, subject: str, html_body: str) -> MailResult: ...


def _normalize_provider(raw: str | None) -> str:
    """
    Supported providers:
    - resend (default when unset)
    - ses
    - smtp
    Legacy alias:
    - gmail -> smtp
    """
    provider = (raw or "").strip().lower()
    if not provider:
        return "resend"
    if provider == "gmail":
        return "smtp"
    if provider in {"resend", "ses", "smtp"}:
        return provider
    raise EmailNotConfiguredError(
        f"Unsupported EMAIL_PROVIDER={provider!r}. Supported: resend (default), ses, smtp. Legacy alias: gmail -> smtp."
    )


class ProviderMailSender:
    """
    Sends HTML email through the configured provider.
    - EMAIL_PROVIDER=resend (default): Resend API
    - EMAIL_PROVIDER=ses: AWS SES via boto3
    - EMAIL_PROVIDER=smtp: SMTP via stdlib (gmail is a legacy alias)
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.provider = _normalize_provider(settings.EMAIL_PROVIDER)

    def send(self, to_email: str, subject: str, html_body: str) -> MailResult:
        try:
            if self.provider == "smtp":
                self._send_smtp(to_email, subject, html_body)
                return MailResult.success()
            if self.provider == "ses":
                return MailResult.success(self._send_ses(to_email, subject, html_body))
            return MailResult.success(self._send_resend(to_email, subject, html_body))
        except EmailNotConfiguredError as e:
            logger.error("Email delivery not configured: %s", e)
            return MailResult.failure(f"not configured: {e}", retryable=False)
        except EmailDeliveryError as e:
            return MailResult.failure(str(e))

    # ----------------------------
    # Providers
    # ----------------------------
    def _require_from_email(self) -> str:
        if not self.settings.FROM_EMAIL:
            raise EmailNotConfiguredError("FROM_EMAIL is not set")
        return self.settings.FROM_EMAIL

    def _send_resend(self, to_email: str, subject: str, html_body: str) -> str | None:
        api_key = (self.settings.RESEND_API_KEY or "").strip()
        if not api_key:
            raise EmailNotConfiguredError("RESEND_API_KEY is not set")
        from_email = self._require_from_email()

        payload = {
            "from": from_email,
            "to": [to_email],
            "subject": subject,
            "html": html_body,
        }
        try:
            resend.api_key = api_key
            res = resend.Emails.send(payload)  # type: ignore[attr-defined]
        except Exception as e:  # noqa: BLE001 - the SDK raises several runtime-specific errors
            raise EmailDeliveryError(f"Resend send failed: {e}") from e

        msg_id: str | None = None
        if isinstance(res, dict):
            if res.get("error"):
                raise EmailDeliveryError(f"Resend API error: {res.get('error')}")
            v = res.get("id")
            if isinstance(v, str) and v.strip():
                msg_id = v.strip()

        logger.info("Resend email sent: msg_id=%s", msg_id)
        return msg_id

    def _send_ses(self, to_email: str, subject: str, html_body: str) -> str | None:
        region = (self.settings.AWS_REGION or "").strip()
        if not region:
            raise EmailNotConfiguredError("AWS_REGION is not set (required for SES)")
        from_email = self._require_from_email()
        client = boto3.client("ses", region_name=region)

        try:
            res = client.send_email(
                Source=from_email,
                Destination={"ToAddresses": [to_email]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {"Html": {"Data": html_body, "Charset": "UTF-8"}},
                },
            )
        except NoCredentialsError as e:
            raise EmailDeliveryError("SES email failed: AWS credentials not available") from e
        except EndpointConnectionError as e:
            raise EmailDeliveryError("SES email failed: could not connect to SES endpoint") from e
        except ClientError as e:
            code = (e.response or {}).get("Error", {}).get("Code", "ClientError")
            raise EmailDeliveryError(f"SES email failed: {code}") from e
        except BotoCoreError as e:
            raise EmailDeliveryError("SES email failed") from e

        msg_id = res.get("MessageId")
        logger.info("SES email sent: msg_id=%s", msg_id)
        return msg_id

    def _send_smtp(self, to_email: str, subject: str, html_body: str) -> None:
        s = self.settings
        if not s.SMTP_HOST:
            raise EmailNotConfiguredError("SMTP_HOST is not set")
        from_email = s.SMTP_FROM_EMAIL or s.FROM_EMAIL
        if not from_email:
            raise EmailNotConfiguredError("SMTP_FROM_EMAIL is not set")

        msg = MIMEMultipart("alternative")
        msg["From"] = from_email
        msg["To"] = to_email
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            if s.SMTP_USE_SSL:
                server: smtplib.SMTP = smtplib.SMTP_SSL(s.SMTP_HOST, s.SMTP_PORT, timeout=s.SMTP_TIMEOUT_SECONDS)
            else:
                server = smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=s.SMTP_TIMEOUT_SECONDS)
        except (OSError, smtplib.SMTPException) as e:
            raise EmailDeliveryError(f"SMTP connect failed: {e.__class__.__name__}") from e

        try:
            server.ehlo()
            if s.SMTP_USE_TLS and not s.SMTP_USE_SSL:
                server.starttls()
                server.ehlo()
            if s.SMTP_USERNAME:
                server.login(s.SMTP_USERNAME, s.SMTP_PASSWORD)
            server.sendmail(from_email, [to_email], msg.as_string())
        except (OSError, smtplib.SMTPException) as e:
            raise EmailDeliveryError(f"SMTP send failed: {e.__class__.__name__}") from e
        finally:
            try:
                server.quit()
            except (OSError, smtplib.SMTPException):
                pass

        logger.info("SMTP email sent via %s", s.SMTP_HOST)


class LoggingMailSender:
    """
    Used when EMAIL_ENABLED is false (local dev). Nothing leaves the process.
    The body (which carries codes/links) is only logged outside prod, at DEBUG.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def send(self, to_email: str, subject: str, html_body: str) -> MailResult:
        logger.info("Email disabled; not sending subject=%r", subject)
        if not self.settings.is_prod:
            logger.debug("Email body for %s:\n%s", to_email, html_body)
        return MailResult.success()


def build_mail_sender(settings: Settings) -> MailSender:
    if not settings.EMAIL_ENABLED:
        return LoggingMailSender(settings)
    return ProviderMailSender(settings)
