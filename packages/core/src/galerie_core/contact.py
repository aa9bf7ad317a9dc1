"""Public contact form: record the message, then try to notify the site owner."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from galerie_core.errors import GalerieError
from galerie_core.mailer import ContactNotification, Mailer
from galerie_core.models import ContactMessage
from galerie_core.repository import ContentRepository

logger = logging.getLogger("galerie_core.contact")

OUTCOME_SENT = "sent"
OUTCOME_STORED = "stored"
OUTCOME_FAILED = "failed"

CONFIRMATIONS = {
    OUTCOME_SENT: "Merci ! Votre message a bien été envoyé. Je vous réponds rapidement.",
    OUTCOME_STORED: "Merci ! Votre message a bien été enregistré. Je vous réponds rapidement.",
    OUTCOME_FAILED: (
        "Merci ! Votre message a bien été enregistré, mais l'envoi de l'email a rencontré "
        "un problème. Je vous répondrai dès que possible."
    ),
}


@dataclass
class ContactResult:
    message: ContactMessage
    outcome: str

    @property
    def confirmation(self) -> str:
        return CONFIRMATIONS[self.outcome]


async def submit_contact_message(
    repository: ContentRepository,
    mailer: Mailer,
    name,
    email,
    message,
    subject=None,
) -> ContactResult:
    """Store a contact message and notify the contact address.

    Validation errors propagate. A failed notification never undoes the
    stored message; it only changes the outcome to ``failed``.
    """
    record = repository.record_message(name=name, email=email, message=message, subject=subject)
    contact_email = repository.get_settings()["contact_email"]
    if not mailer.is_configured():
        logger.warning("contact.notify skipped reason=mail_not_configured message_id=%s", record.id)
        return ContactResult(record, OUTCOME_STORED)
    try:
        await mailer.send_notification(ContactNotification(
            to=contact_email,
            name=record.name,
            email=record.email,
            subject=record.subject,
            message=record.message,
        ))
    except (GalerieError, OSError):
        logger.error("contact.notify failed message_id=%s", record.id, exc_info=True)
        return ContactResult(record, OUTCOME_FAILED)
    logger.info("contact.notify ok message_id=%s", record.id)
    return ContactResult(record, OUTCOME_SENT)


__all__ = ["ContactResult", "submit_contact_message", "OUTCOME_SENT", "OUTCOME_STORED", "OUTCOME_FAILED"]
