"""Email delivery and rate-limited notification fan-out."""

import asyncio
import logging
from email.mime.text import MIMEText
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import aiosmtplib
from pydantic import BaseModel

from compliance_jobs.core.config import EmailSettings, settings
from compliance_jobs.core.exceptions import EmailDeliveryError
from compliance_jobs.services.batching import chunked
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)


class EmailMessage(BaseModel):
    to: str
    subject: str
    body: str


class ReviewRecipient(BaseModel):
    """One (user, record) pair to notify about a review."""

    user_id: str
    email: str
    name: str = ""
    record_type: str  # policy | task
    record_id: str
    record_name: str
    organization_id: str
    organization_name: str = ""


def build_review_recipients(records: Iterable[Mapping[str, Any]], record_type: str) -> List[ReviewRecipient]:
    """Collect deduplicated recipients for updated records.

    Each record carries ``id``, ``name``, ``organization_id``,
    ``organization_name``, an ``owners`` list and an optional ``assignee``;
    people are dicts with ``user_id``, ``email`` and ``name``. A user who is
    both owner and assignee of the same record is notified once. People
    without an email or user id are skipped.
    """
    recipients: Dict[tuple, ReviewRecipient] = {}

    for record in records:
        people = list(record.get("owners") or [])
        if record.get("assignee"):
            people.append(record["assignee"])

        for person in people:
            user_id = person.get("user_id")
            email = person.get("email")
            if not user_id or not email:
                continue
            key = (user_id, record["id"])
            if key in recipients:
                continue
            recipients[key] = ReviewRecipient(
                user_id=user_id,
                email=email,
                name=person.get("name") or "",
                record_type=record_type,
                record_id=record["id"],
                record_name=record.get("name") or "",
                organization_id=record["organization_id"],
                organization_name=record.get("organization_name") or "",
            )

    return list(recipients.values())


def render_review_email(recipient: ReviewRecipient, app_url: Optional[str] = None) -> EmailMessage:
    base_url = (app_url or settings.email.app_url).rstrip("/")
    section = "policies" if recipient.record_type == "policy" else "tasks"
    link = f"{base_url}/{recipient.organization_id}/{section}/{recipient.record_id}"
    greeting = f"Hi {recipient.name}," if recipient.name else "Hi,"
    body = (
        f"{greeting}\n\n"
        f'The {recipient.record_type} "{recipient.record_name}" in {recipient.organization_name} '
        f"is due for review.\n\n"
        f"Review it here: {link}\n"
    )
    return EmailMessage(
        to=recipient.email,
        subject=f"{recipient.record_type.capitalize()} review required: {recipient.record_name}",
        body=body,
    )


class EmailService:
    """SMTP sender for plain-text notification emails."""

    def __init__(self, config: Optional[EmailSettings] = None):
        self.config = config or settings.email

    def _build_mime(self, message: EmailMessage) -> MIMEText:
        mime = MIMEText(message.body, "plain", "utf-8")
        mime["From"] = self.config.sender
        mime["To"] = message.to
        mime["Subject"] = message.subject
        return mime

    async def send(self, message: EmailMessage) -> None:
        """Send one email. Raises EmailDeliveryError on any SMTP failure."""
        try:
            await aiosmtplib.send(
                self._build_mime(message),
                hostname=self.config.smtp_host,
                port=self.config.smtp_port,
                username=self.config.smtp_username or None,
                password=self.config.smtp_password or None,
                use_tls=self.config.use_tls,
                start_tls=self.config.start_tls if not self.config.use_tls else False,
                recipients=[message.to],
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"Failed to send email to {message.to}: {e}", original_error=e) from e

    async def send_many(self, messages: Sequence[EmailMessage]) -> Dict[str, Any]:
        """Send each message independently; one bad address does not stop the rest."""
        sent = 0
        errors: List[Dict[str, str]] = []
        for message in messages:
            try:
                await self.send(message)
                sent += 1
            except EmailDeliveryError as e:
                LOGGER.warning("Email delivery failed", extra={"to": message.to, "error": e.message})
                errors.append({"to": message.to, "error": e.message})
        return {"sent": sent, "failed": len(errors), "errors": errors}


async def send_in_rate_limited_batches(
    items: Sequence[Any],
    batch_size: int,
    delay_seconds: float,
    send_batch: Callable[[List[Any]], Awaitable[Mapping[str, Any]]],
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
) -> Dict[str, int]:
    """Send ``items`` in fixed-size batches with a fixed pause between batches.

    At most ``batch_size`` items are handed to ``send_batch`` per interval and
    there is no pause after the last batch. ``send_batch`` returns a mapping
    with ``sent`` and ``failed`` counts; a batch that raises counts all of its
    items as failed. Inside a workflow ``asyncio.sleep`` is a durable timer
    and ``logger`` should be ``workflow.logger`` so replays stay quiet.
    """
    logger = logger or LOGGER
    batches = chunked(items, batch_size)
    sent = 0
    failed = 0

    for index, batch in enumerate(batches):
        try:
            outcome = await send_batch(batch)
            sent += int(outcome.get("sent", 0))
            failed += int(outcome.get("failed", 0))
        except Exception as e:
            logger.error(f"Notification batch {index + 1}/{len(batches)} failed: {e}")
            failed += len(batch)

        if index < len(batches) - 1 and delay_seconds > 0:
            await sleep(delay_seconds)

    return {"sent": sent, "failed": failed, "batches": len(batches)}
