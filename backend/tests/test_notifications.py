from datetime import datetime
from types import SimpleNamespace

import smtplib

import submission_service
import survey_repository
from config import Settings
from notifications import (
    NotificationService,
    SmtpMailer,
    call_to_action,
    render_admin_email,
    render_test_email,
    render_user_email,
)


def _survey(**button):
    return SimpleNamespace(title="Team <Pulse>", button_config=button)


def _submission(score=85.0):
    return SimpleNamespace(
        user_name="Ana", user_email="ana@example.com", total_score=score,
        submitted_at=datetime(2026, 5, 1, 9, 30),
    )


def test_admin_email_lists_responses_and_escapes():
    responses = [SimpleNamespace(question_text="Q1", response_value="<b>8</b>", score_value=8.0)]
    out = render_admin_email(_survey(), _submission(), responses, "Test Site", "http://testserver")
    assert out.startswith("<!DOCTYPE html>")
    assert "Team &lt;Pulse&gt;" in out
    assert "&lt;b&gt;8&lt;/b&gt;" in out
    assert "2026-05-01 09:30" in out
    assert "Excellent! You scored in the top range." in out
    assert 'href="http://testserver"' in out


def test_user_email_includes_cta_only_when_complete():
    with_cta = render_user_email(
        _survey(enabled=True, text="Book a call", url="https://example.com/book", description="<p>Talk to us</p>"),
        _submission(45), "Test Site", "http://testserver",
    )
    assert "Book a call" in with_cta and "https://example.com/book" in with_cta
    assert "<p>Talk to us</p>" in with_cta
    assert "Average score. There's room for improvement." in with_cta

    without = render_user_email(_survey(enabled=True, text="Book a call", url=""), _submission(), "S", "http://s")
    assert 'class="cta-button"' not in without


def test_call_to_action():
    assert call_to_action(None) is None
    assert call_to_action({"enabled": False, "text": "x", "url": "/y"}) is None
    assert call_to_action({"enabled": True, "text": "x", "url": "/y"}) == {"text": "x", "url": "/y", "description": ""}


def test_test_email():
    out = render_test_email("Test Site", "http://testserver", datetime(2026, 1, 2, 3, 4))
    assert "your email configuration is working correctly" in out
    assert "2026-01-02 03:04" in out


def test_service_sends_admin_and_user_mail(db, make_survey, mailer, settings):
    sid = make_survey()
    q1, q2 = survey_repository.get_survey_questions(db, sid)
    new_id = submission_service.create_submission(db, sid, "Ana", "ana@example.com", {q1.id: "8", q2.id: "yes"})
    service = NotificationService(settings, mailer)

    assert service.send_admin_notification(db, new_id) is True
    assert service.send_user_confirmation(db, new_id) is True
    admin, user = mailer.sent
    assert admin["to"] == "owner@example.com"
    assert admin["subject"] == "New Survey Submission: Customer Check"
    assert "How likely are you to recommend us?" in admin["html"]
    assert user["to"] == "ana@example.com"
    assert user["subject"] == "Thank you for your survey response"

    assert service.send_admin_notification(db, 9999) is False


class FlakyMailer:
    """Raises on the first send, records the rest."""

    def __init__(self):
        self.sent = []
        self.failed = False

    def send(self, to_email, subject, html_body, text=""):
        if not self.failed:
            self.failed = True
            raise RuntimeError("connection reset")
        self.sent.append(to_email)
        return True


def test_notify_submission_sends_user_mail_after_admin_failure(ctx, db, make_survey, settings):
    sid = make_survey()
    q1, q2 = survey_repository.get_survey_questions(db, sid)
    new_id = submission_service.create_submission(db, sid, "Ana", "ana@example.com", {q1.id: "8", q2.id: "yes"})
    mailer = FlakyMailer()

    NotificationService(settings, mailer).notify_submission(ctx.session_factory, new_id)
    assert mailer.failed is True
    assert mailer.sent == ["ana@example.com"]


def test_admin_recipient_falls_back_to_sender():
    assert Settings(admin_email="", email_from_email="noreply@example.com").admin_recipient == "noreply@example.com"


def test_smtp_mailer_without_host_does_not_send(monkeypatch):
    def explode(*args, **kwargs):
        raise AssertionError("SMTP should not be contacted")

    monkeypatch.setattr(smtplib, "SMTP", explode)
    assert SmtpMailer(Settings(smtp_host="")).send("a@example.com", "Hi", "<p>hi</p>") is False


def test_smtp_mailer_reports_failure(monkeypatch):
    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("no server")

    monkeypatch.setattr(smtplib, "SMTP", refuse)
    assert SmtpMailer(Settings(smtp_host="mail.example.com")).send("a@example.com", "Hi", "<p>hi</p>") is False


def test_smtp_mailer_sends(monkeypatch):
    sent = []

    class FakeSMTP:
        def __init__(self, host, port, timeout=None):
            self.host = host

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            pass

        def login(self, user, password):
            sent.append(("login", user))

        def send_message(self, msg):
            sent.append(("send", msg["To"], msg["Subject"]))

    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    mailer = SmtpMailer(Settings(smtp_host="mail.example.com", smtp_user="bot"))
    assert mailer.send("a@example.com", "Hello", "<p>hi</p>") is True
    assert sent == [("login", "bot"), ("send", "a@example.com", "Hello")]
