import asyncio

import pytest
import requests

from galerie_core.config import Settings
from galerie_core.contact import OUTCOME_FAILED, OUTCOME_SENT, OUTCOME_STORED, submit_contact_message
from galerie_core.errors import MailDeliveryError, ValidationError
from galerie_core.mailer import ContactNotification, Mailer, build_contact_email


def _notification(**overrides):
    values = dict(
        to="studio@example.com",
        name="<b>Alice</b>",
        email="alice@example.com",
        subject="Mariage",
        message="Bonjour\n<script>alert(1)</script>",
    )
    values.update(overrides)
    return ContactNotification(**values)


def test_user_values_are_escaped_in_html():
    email = build_contact_email(_notification())
    assert "<script>" not in email.html
    assert "&lt;script&gt;" in email.html
    assert "&lt;b&gt;Alice&lt;/b&gt;" in email.html
    assert "<script>alert(1)</script>" in email.text


def test_header_values_lose_line_breaks():
    email = build_contact_email(_notification(subject="Hello\r\nBcc: x@evil.test", email="a@b.fr\nBcc: x@evil.test"))
    assert "\n" not in email.subject and "\r" not in email.subject
    assert email.subject.startswith("[Contact] Hello")
    assert "\n" not in email.reply_to


def test_blank_subject_uses_generic_title():
    email = build_contact_email(_notification(subject="  "))
    assert email.subject == "Demande de contact"


@pytest.mark.parametrize("kwargs,expected", [
    ({}, "smtp"),
    ({"resend_api_key": "re_123"}, "resend"),
    ({"mail_provider": "SMTP", "resend_api_key": "re_123"}, "smtp"),
    ({"mail_provider": "sendmail"}, "smtp"),
])
def test_provider_resolution(kwargs, expected):
    settings = Settings(**{"mail_provider": None, "resend_api_key": None, **kwargs})
    assert Mailer(settings).provider == expected


def test_is_configured():
    assert not Mailer(Settings(mail_provider=None, smtp_host=None, resend_api_key=None)).is_configured()
    assert Mailer(Settings(mail_provider="smtp", smtp_host="mail.example.com")).is_configured()
    assert Mailer(Settings(mail_provider="resend", resend_api_key="re_1")).is_configured()


def test_sender_wraps_bare_address():
    mailer = Mailer(Settings(mail_from="hello@studio.fr", mail_brand_name="Studio"))
    assert mailer.sender() == "Studio <hello@studio.fr>"
    assert Mailer(Settings(mail_from="Moi <moi@studio.fr>")).sender() == "Moi <moi@studio.fr>"
    assert Mailer(Settings(mail_from="nobody")).sender() is None


def test_resend_failure_raises(monkeypatch):
    def fake_post(*args, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(requests, "post", fake_post)
    mailer = Mailer(Settings(mail_provider="resend", resend_api_key="re_1", mail_from="hello@studio.fr"))
    with pytest.raises(MailDeliveryError):
        mailer.send_sync(mailer.build(_notification()))


def test_resend_posts_json(monkeypatch):
    calls = []

    class _Response:
        ok = True
        status_code = 200
        text = "{}"

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append((url, json, headers))
        return _Response()

    monkeypatch.setattr(requests, "post", fake_post)
    mailer = Mailer(Settings(mail_provider="resend", resend_api_key="re_1", mail_from="hello@studio.fr"))
    mailer.send_sync(mailer.build(_notification()))
    url, body, headers = calls[0]
    assert url == "https://api.resend.com/emails"
    assert body["to"] == ["studio@example.com"]
    assert body["reply_to"] == "alice@example.com"
    assert headers["Authorization"] == "Bearer re_1"


class _FakeMailer:
    def __init__(self, configured=True, error=None):
        self.configured = configured
        self.error = error
        self.sent = []

    def is_configured(self):
        return self.configured

    async def send_notification(self, payload):
        if self.error:
            raise self.error
        self.sent.append(payload)


def _submit(repo, mailer, **kwargs):
    values = dict(name="Alice", email="alice@example.com", message="Bonjour", subject="Mariage")
    values.update(kwargs)
    return asyncio.run(submit_contact_message(repo, mailer, **values))


def test_contact_without_mail_transport_is_stored(repo):
    result = _submit(repo, _FakeMailer(configured=False))
    assert result.outcome == OUTCOME_STORED
    assert repo.list_messages()[0].id == result.message.id


def test_contact_sent_to_configured_address(repo):
    repo.update_contact_email("studio@example.com")
    mailer = _FakeMailer()
    result = _submit(repo, mailer)
    assert result.outcome == OUTCOME_SENT
    assert mailer.sent[0].to == "studio@example.com"
    assert "envoyé" in result.confirmation


def test_contact_mail_failure_keeps_message(repo):
    result = _submit(repo, _FakeMailer(error=MailDeliveryError("smtp down")))
    assert result.outcome == OUTCOME_FAILED
    assert [m.id for m in repo.list_messages()] == [result.message.id]


def test_invalid_contact_is_not_stored_or_sent(repo):
    mailer = _FakeMailer()
    with pytest.raises(ValidationError):
        _submit(repo, mailer, email="pas-un-email")
    assert mailer.sent == []
    assert repo.list_messages() == []
