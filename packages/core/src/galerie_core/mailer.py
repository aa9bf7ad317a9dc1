"""Contact-form notification emails.

Two providers: plain SMTP (``smtplib``) and the Resend HTTP API. Sending is
blocking, so :meth:`Mailer.send_notification` runs it in the default
executor.
"""
from __future__ import annotations

import asyncio
import html
import logging
import re
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional

import requests

from galerie_core.config import Settings
from galerie_core.errors import MailDeliveryError

logger = logging.getLogger("galerie_core.mailer")

PROVIDERS = ("smtp", "resend")
RESEND_ENDPOINT = "https://api.resend.com/emails"
_line_breaks_re = re.compile(r"[\r\n]+")


@dataclass
class ContactNotification:
    to: str
    name: str
    email: str
    subject: str
    message: str


@dataclass
class ContactEmail:
    to: str
    subject: str
    text: str
    html: str
    reply_to: Optional[str] = None


def build_contact_email(
    payload: ContactNotification,
    brand_name: str = "Cécil'Artiste",
    brand_url: Optional[str] = "https://cecilartiste.com",
    brand_color: str = "#d16ba5",
) -> ContactEmail:
    """Render the notification for a contact message.

    Header values are stripped of line breaks; every user-supplied value is
    HTML-escaped in the HTML body.
    """
    reply_to = _line_breaks_re.sub("", payload.email or "").strip()
    raw_subject = _line_breaks_re.sub(" ", payload.subject or "").strip()

    safe_name = html.escape(payload.name or "Inconnu")
    safe_email = html.escape(payload.email or "Non renseigné")
    safe_subject = html.escape(raw_subject or "Demande de contact")
    lines = [line.strip() for line in (payload.message or "").splitlines() if line.strip()]
    paragraphs = "".join(
        f'<p style="margin:0 0 12px;line-height:1.6;">{html.escape(line)}</p>' for line in lines
    ) or '<p style="margin:0 0 12px;line-height:1.6;">(Message vide)</p>'
    site_link = ""
    if brand_url:
        site_link = (
            f' <a href="{html.escape(brand_url)}" style="color:{brand_color};'
            f'text-decoration:none;">Visiter le site</a>'
        )

    html_body = f"""<!DOCTYPE html>
<html lang="fr">
  <head><meta charset="UTF-8" /><title>{html.escape(brand_name)} · Nouveau message</title></head>
  <body style="margin:0;padding:24px;background-color:#f5f6fb;font-family:'Helvetica Neue',Helvetica,Arial,sans-serif;">
    <div style="max-width:600px;margin:0 auto;background:#ffffff;border-radius:16px;padding:32px;">
      <h1 style="margin:0;font-size:24px;color:{brand_color};">{html.escape(brand_name)}</h1>
      <p style="margin:6px 0 24px;font-size:14px;color:#6b7280;">Nouveau message de votre site</p>
      <table role="presentation" style="width:100%;font-size:14px;color:#111827;">
        <tr><td style="padding:8px 0;color:#6b7280;width:130px;">Nom</td><td style="font-weight:600;">{safe_name}</td></tr>
        <tr><td style="padding:8px 0;color:#6b7280;">Email</td><td style="font-weight:600;"><a href="mailto:{safe_email}" style="color:{brand_color};">{safe_email}</a></td></tr>
        <tr><td style="padding:8px 0;color:#6b7280;">Objet</td><td style="font-weight:600;">{safe_subject}</td></tr>
      </table>
      <h2 style="margin:24px 0 12px;font-size:18px;color:#111827;">Message</h2>
      {paragraphs}
      <p style="margin:24px 0 0;font-size:12px;color:#9ca3af;">Ce message vous a été envoyé automatiquement depuis votre site {html.escape(brand_name)}.{site_link}</p>
    </div>
  </body>
</html>"""

    text_body = "\n".join([
        f"{brand_name} – Nouveau message de contact",
        "",
        f"Nom : {payload.name or 'Inconnu'}",
        f"Email : {payload.email or 'Non renseigné'}",
        f"Objet : {raw_subject or 'Demande de contact'}",
        "",
        payload.message or "(Message vide)",
        "",
        f"Message reçu depuis {brand_url or 'votre site.'}",
    ])

    return ContactEmail(
        to=payload.to,
        subject=f"[Contact] {raw_subject}" if raw_subject else "Demande de contact",
        text=text_body,
        html=html_body,
        reply_to=reply_to or None,
    )


class Mailer:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.provider = self._resolve_provider()

    def _resolve_provider(self) -> str:
        explicit = (self.settings.mail_provider or "").strip().lower()
        if explicit in PROVIDERS:
            return explicit
        if explicit:
            logger.warning("mail.provider unknown=%s fallback=smtp", explicit)
            return "smtp"
        if self.settings.resend_api_key:
            return "resend"
        return "smtp"

    def is_configured(self) -> bool:
        if self.provider == "resend":
            return bool(self.settings.resend_api_key)
        return bool(self.settings.smtp_host)

    def sender(self) -> Optional[str]:
        """``From`` header: ``MAIL_FROM`` as given, or wrapped with the brand name."""
        address = (self.settings.mail_from or "").strip()
        if "@" not in address:
            return None
        if "<" in address and ">" in address:
            return address
        return formataddr((self.settings.mail_brand_name, address))

    def build(self, payload: ContactNotification) -> ContactEmail:
        return build_contact_email(
            payload,
            brand_name=self.settings.mail_brand_name,
            brand_url=self.settings.mail_brand_url,
            brand_color=self.settings.mail_brand_color,
        )

    async def send_notification(self, payload: ContactNotification) -> None:
        email = self.build(payload)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.send_sync, email)

    def send_sync(self, email: ContactEmail) -> None:
        if self.provider == "resend":
            self._send_resend(email)
        else:
            self._send_smtp(email)
        logger.info("mail.sent provider=%s to=%s", self.provider, email.to)

    def _send_smtp(self, email: ContactEmail) -> None:
        s = self.settings
        if not s.smtp_host:
            raise MailDeliveryError("Aucun transport d'email n'est configuré")
        sender = self.sender() or formataddr((s.mail_brand_name, s.smtp_user or ""))

        msg = MIMEMultipart("alternative")
        msg["Subject"] = email.subject
        msg["From"] = sender
        msg["To"] = email.to
        if email.reply_to:
            msg["Reply-To"] = email.reply_to
        msg.attach(MIMEText(email.text, "plain", "utf-8"))
        msg.attach(MIMEText(email.html, "html", "utf-8"))

        secure = s.smtp_secure if s.smtp_secure is not None else s.smtp_port == 465
        context = ssl.create_default_context()
        try:
            if secure:
                with smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, context=context, timeout=30) as server:
                    if s.smtp_user and s.smtp_pass:
                        server.login(s.smtp_user, s.smtp_pass)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=30) as server:
                    if s.smtp_starttls:
                        server.starttls(context=context)
                    if s.smtp_user and s.smtp_pass:
                        server.login(s.smtp_user, s.smtp_pass)
                    server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(f"Échec de l'envoi SMTP: {exc}") from exc

    def _send_resend(self, email: ContactEmail) -> None:
        api_key = self.settings.resend_api_key
        if not api_key:
            raise MailDeliveryError("RESEND_API_KEY est requis pour utiliser le fournisseur Resend")
        sender = self.sender()
        if not sender:
            raise MailDeliveryError("Aucune adresse d'expéditeur n'a été définie pour Resend")
        body = {
            "from": sender,
            "to": [email.to],
            "subject": email.subject,
            "html": email.html,
            "text": email.text,
        }
        if email.reply_to:
            body["reply_to"] = email.reply_to
        try:
            response = requests.post(
                RESEND_ENDPOINT,
                json=body,
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=30,
            )
        except requests.RequestException as exc:
            raise MailDeliveryError(f"Échec de l'envoi via Resend: {exc}") from exc
        if not response.ok:
            raise MailDeliveryError(f"Échec de l'envoi via Resend: {response.status_code} {response.text}")


__all__ = [
    "ContactNotification",
    "ContactEmail",
    "Mailer",
    "build_contact_email",
]
