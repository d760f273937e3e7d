"""Email notifications for backup runs.

Every run that attempted a tier update produces one email:

- success: the archive passphrase and the store's upload metadata
- failure: the stringified error

The email is the only durable record of the passphrase, so a failed success
notification is logged at CRITICAL. Delivery never affects the run result:
mails are sent from a background ``asyncio`` task whose completion is logged.
"""

from __future__ import annotations

import asyncio
import json
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Set

from backup_agent.automation.errors import MailError
from backup_agent.automation.outcome import STATUS_SKIPPED, RunOutcome
from backup_agent.settings import Settings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmtpConfig:
    """SMTP transport configuration."""

    host: str
    port: int
    user: str
    password: str
    from_addr: str
    to_addr: str
    use_ssl: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpConfig":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            from_addr=settings.sender,
            to_addr=settings.mail_to,
            use_ssl=settings.smtp_use_ssl,
        )


def build_message(outcome: RunOutcome) -> tuple[str, str]:
    """Build the subject and plain-text body for an outcome.

    Args:
        outcome: Run outcome (success or failure).

    Returns:
        tuple[str, str]: (subject, body).
    """

    status = "success" if outcome.succeeded else "failed"
    subject = f"Backup status: {status}"

    if outcome.succeeded:
        payload = outcome.upload_result.to_payload() if outcome.upload_result else {}
        body = f"Passphrase: {outcome.passphrase}\n\n{json.dumps(payload, indent=4)}"
    else:
        body = outcome.error_detail or "Unknown error"

    return subject, body


class NotificationService:
    """Send run outcomes to the operator by email."""

    def __init__(self, config: SmtpConfig):
        """Initialize the notification service.

        Args:
            config: SMTP configuration.
        """

        self.config = config
        self._pending: Set[asyncio.Task] = set()

    def notify(self, outcome: RunOutcome) -> Optional[asyncio.Task]:
        """Schedule delivery of the outcome email.

        Must be called from a running event loop. Never raises.

        Args:
            outcome: Run outcome.

        Returns:
            Optional[asyncio.Task]: Delivery task, or None when nothing is sent.
        """

        if outcome.status == STATUS_SKIPPED:
            logger.debug("Nothing to notify: no tier was due")
            return None

        try:
            subject, body = build_message(outcome)
            task = asyncio.get_running_loop().create_task(self._deliver(outcome, subject, body))
        except Exception:
            logger.exception("Failed to schedule notification status=%s", outcome.status)
            return None

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every pending delivery to finish."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, outcome: RunOutcome, subject: str, body: str) -> bool:
        try:
            await asyncio.to_thread(self.send_email, subject, body)
        except Exception as exc:
            # Traceback only for errors other than MailError.
            unexpected = not isinstance(exc, MailError)
            if outcome.succeeded:
                logger.critical(
                    "Success email was not delivered; the archive passphrase is lost tier=%s error=%s",
                    outcome.tier.label if outcome.tier else None,
                    exc,
                    exc_info=unexpected,
                )
            else:
                logger.error("Failure email was not delivered error=%s", exc, exc_info=unexpected)
            return False

        logger.info("Email sent to=%s subject=%s", self.config.to_addr, subject)
        return True

    def send_email(self, subject: str, body: str) -> None:
        """Send an email synchronously.

        Args:
            subject: Email subject.
            body: Email body text.

        Raises:
            MailError: When the SMTP exchange fails.
        """

        if not self.config.to_addr:
            raise MailError("Recipient email not provided")

        msg = MIMEMultipart()
        msg["From"] = self.config.from_addr or self.config.user
        msg["To"] = self.config.to_addr
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        server = None
        try:
            context = ssl.create_default_context()
            if self.config.use_ssl:
                server = smtplib.SMTP_SSL(self.config.host, self.config.port, context=context)
            else:
                server = smtplib.SMTP(self.config.host, self.config.port)
                server.starttls(context=context)

            if self.config.user and self.config.password:
                server.login(self.config.user, self.config.password)

            server.sendmail(msg["From"], self.config.to_addr, msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise MailError(
                f"SMTP send failed host={self.config.host} port={self.config.port}: {exc}"
            ) from exc
        finally:
            if server is not None:
                try:
                    server.quit()
                except (smtplib.SMTPException, OSError):
                    pass
