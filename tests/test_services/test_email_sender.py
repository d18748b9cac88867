"""
Tests for email_sender — SMTP session handling.

``smtplib.SMTP`` is replaced with a recording fake, so no network is used.
"""

import smtplib

import pytest

from app.services import email_sender
from app.services.email_sender import EmailDeliveryError


class FakeSmtp:
    """Stands in for ``smtplib.SMTP`` and remembers what happened."""

    instances = []
    fail_starttls = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.calls = []
        self.closed = False
        FakeSmtp.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True

    def starttls(self, context=None):
        self.calls.append("starttls")
        if FakeSmtp.fail_starttls:
            raise smtplib.SMTPNotSupportedError("STARTTLS extension not supported")

    def login(self, username, password):
        self.calls.append("login")

    def sendmail(self, from_addr, to_addrs, message):
        self.calls.append("sendmail")


class TestSendEmail:
    """Delivery over a plain SMTP connection upgraded with STARTTLS."""

    @pytest.fixture(autouse=True)
    def _setup(self, app, monkeypatch):
        FakeSmtp.instances = []
        FakeSmtp.fail_starttls = False
        monkeypatch.setattr(email_sender.smtplib, "SMTP", FakeSmtp)
        monkeypatch.setitem(app.config, "SMTP_HOST", "smtp.example.com")
        monkeypatch.setitem(app.config, "SMTP_USE_SSL", False)
        monkeypatch.setitem(app.config, "SMTP_USERNAME", "mailer")
        with app.app_context():
            yield

    def test_sends_and_closes(self):
        email_sender.send_email("maria@example.com", "Booking received", "Maria", "Hi")

        server = FakeSmtp.instances[0]
        assert server.calls == ["starttls", "login", "sendmail"]
        assert server.closed

    def test_connection_closed_when_starttls_fails(self):
        FakeSmtp.fail_starttls = True

        with pytest.raises(EmailDeliveryError, match="SMTP delivery to maria@example.com"):
            email_sender.send_email("maria@example.com", "Booking received", "Maria", "Hi")

        server = FakeSmtp.instances[0]
        assert server.calls == ["starttls"]
        assert server.closed

    def test_unconfigured_host(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "SMTP_HOST", "")
        with pytest.raises(EmailDeliveryError, match="SMTP_HOST is not configured"):
            email_sender.send_email("maria@example.com", "Subject", "Maria", "Hi")
