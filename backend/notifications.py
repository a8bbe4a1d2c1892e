"""Submission emails: pure HTML renderers plus an SMTP transport."""
from __future__ import annotations

import html
import logging
import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Iterable, Optional

from sqlalchemy.orm import Session

import submission_service
import survey_repository
from config import Settings
from scoring import format_score, interpret_score

logger = logging.getLogger(__name__)

_STYLE = """
body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; margin: 0; padding: 20px; background-color: #f4f4f4; }
.container { max-width: 600px; margin: 0 auto; background: white; padding: 20px; border-radius: 5px; }
.header { background: #0073aa; color: white; padding: 20px; text-align: center; border-radius: 5px 5px 0 0; margin: -20px -20px 20px -20px; }
.section { margin: 20px 0; padding: 15px; background: #f9f9f9; border-radius: 5px; }
.section h3 { margin-top: 0; color: #0073aa; }
.score-display { font-size: 28px; font-weight: bold; color: #0073aa; text-align: center; margin: 10px 0; }
.score-meaning { font-size: 18px; text-align: center; margin: 20px 0; }
.response-item { margin: 10px 0; padding: 10px; background: white; border-left: 4px solid #0073aa; }
.response-question { font-weight: bold; margin-bottom: 5px; }
.response-answer { color: #666; }
.cta-section { text-align: center; margin: 30px 0; }
.cta-button { display: inline-block; padding: 15px 30px; background: #0073aa; color: white; text-decoration: none; border-radius: 5px; font-weight: bold; }
.footer { margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd; font-size: 12px; color: #666; text-align: center; }
"""


def _e(value) -> str:
    return html.escape("" if value is None else str(value))


def _document(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"UTF-8\">\n"
        "<meta name=\"viewport\" content=\"width=device-width, initial-scale=1.0\">\n"
        f"<title>{_e(title)}</title>\n<style>{_STYLE}</style>\n</head>\n"
        f"<body>\n<div class=\"container\">\n{body}\n</div>\n</body>\n</html>\n"
    )


def _footer(lead: str, site_name: str, site_url: str, extra: str = "") -> str:
    link = f'<a href="{_e(site_url)}">{_e(site_name)}</a>'
    return f'<div class="footer"><p>{_e(lead)} {link}</p>{extra}</div>'


def _format_when(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""


def call_to_action(button_config: dict | None) -> Optional[dict]:
    """The survey's CTA button if it is enabled and complete, else None."""
    cfg = button_config or {}
    if cfg.get("enabled") and cfg.get("text") and cfg.get("url"):
        return {"text": cfg["text"], "url": cfg["url"], "description": cfg.get("description") or ""}
    return None


def render_admin_email(survey, submission, responses: Iterable, site_name: str, site_url: str) -> str:
    items = "".join(
        '<div class="response-item">'
        f'<div class="response-question">{_e(r.question_text)}</div>'
        f'<div class="response-answer">Answer: <strong>{_e(r.response_value)}</strong> '
        f'(Score: {_e(format_score(r.score_value))})</div>'
        "</div>"
        for r in responses
    )
    body = (
        f'<div class="header"><h1>New Survey Submission</h1><p>{_e(survey.title)}</p></div>'
        '<div class="section"><h3>Contact Information</h3>'
        f"<p><strong>Name:</strong> {_e(submission.user_name)}</p>"
        f"<p><strong>Email:</strong> {_e(submission.user_email)}</p>"
        f"<p><strong>Submitted:</strong> {_e(_format_when(submission.submitted_at))}</p></div>"
        '<div class="section"><h3>Score Summary</h3>'
        f'<div class="score-display">{_e(format_score(submission.total_score))}</div>'
        f"<p>{_e(interpret_score(submission.total_score))}</p></div>"
        f'<div class="section"><h3>Individual Responses</h3>{items}</div>'
        + _footer("This notification was sent from", site_name, site_url,
                  "<p>You are receiving this because you are the site administrator.</p>")
    )
    return _document(f"{survey.title} - New Submission", body)


def render_user_email(survey, submission, site_name: str, site_url: str) -> str:
    cta = call_to_action(survey.button_config)
    cta_html = ""
    if cta:
        # description is stored as allowlisted HTML
        cta_html = (
            f'<div class="cta-section"><p>{cta["description"]}</p>'
            f'<a href="{_e(cta["url"])}" class="cta-button">{_e(cta["text"])}</a></div>'
        )
    body = (
        f'<div class="header"><h1>Thank you for completing our survey!</h1><p>{_e(survey.title)}</p></div>'
        '<div class="section"><h3>Your Results</h3>'
        f'<div class="score-display">{_e(format_score(submission.total_score))}</div>'
        f'<div class="score-meaning">{_e(interpret_score(submission.total_score))}</div></div>'
        f"{cta_html}"
        "<div class=\"section\"><h3>What's Next?</h3>"
        "<p>Thank you for taking the time to complete our survey. Your feedback is valuable to us "
        "and helps us improve our services.</p>"
        "<p>If you have any questions or would like to discuss your results, please don't hesitate "
        "to contact us.</p></div>"
        + _footer("This email was sent from", site_name, site_url,
                  f"<p>Hello {_e(submission.user_name)}, this is your personal survey result.</p>")
    )
    return _document("Thank you for your survey response", body)


def render_test_email(site_name: str, site_url: str, sent_at: datetime) -> str:
    body = (
        '<div class="header"><h1>Test Email</h1><p>Survey Builder</p></div>'
        '<div class="section"><h3>Email Configuration Test</h3>'
        "<p>If you're seeing this email, your email configuration is working correctly!</p></div>"
        + _footer("This test email was sent from", site_name, site_url,
                  f"<p>Sent at {_e(_format_when(sent_at))}</p>")
    )
    return _document("Test Email", body)


class SmtpMailer:
    """Delivers HTML mail over SMTP; returns False instead of raising."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, to_email: str, subject: str, html_body: str, text: str = "") -> bool:
        s = self.settings
        if not s.smtp_host:
            logger.warning("SMTP_HOST not configured; not sending %r to %s", subject, to_email)
            return False
        msg = EmailMessage()
        msg["From"] = f"{s.email_from_name} <{s.email_from_email}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(text or subject)
        msg.add_alternative(html_body, subtype="html")
        try:
            with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=15) as server:
                if s.smtp_tls:
                    server.starttls()
                if s.smtp_user:
                    server.login(s.smtp_user, s.smtp_pass)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send %r to %s", subject, to_email)
            return False
        return True


class NotificationService:
    def __init__(self, settings: Settings, mailer):
        self.settings = settings
        self.mailer = mailer

    def _load(self, db: Session, submission_id: int):
        submission = submission_service.get_submission(db, submission_id)
        if not submission:
            return None, None
        return submission, survey_repository.get_survey(db, submission.survey_id)

    def send_admin_notification(self, db: Session, submission_id: int) -> bool:
        submission, survey = self._load(db, submission_id)
        if not survey:
            return False
        responses = submission_service.get_submission_responses(db, submission_id)
        s = self.settings
        body = render_admin_email(survey, submission, responses, s.site_name, s.site_url)
        subject = f"{s.admin_email_subject}: {survey.title}"
        text = f"{submission.user_name} <{submission.user_email}> scored {format_score(submission.total_score)}."
        return self.mailer.send(s.admin_recipient, subject, body, text)

    def send_user_confirmation(self, db: Session, submission_id: int) -> bool:
        submission, survey = self._load(db, submission_id)
        if not survey:
            return False
        s = self.settings
        body = render_user_email(survey, submission, s.site_name, s.site_url)
        text = f"Your score: {format_score(submission.total_score)}. {interpret_score(submission.total_score)}"
        return self.mailer.send(submission.user_email, s.user_email_subject, body, text)

    def send_test_email(self, to_email: str) -> bool:
        s = self.settings
        body = render_test_email(s.site_name, s.site_url, datetime.now())
        return self.mailer.send(to_email, "Survey Builder - Test Email", body, "Test email.")

    def notify_submission(self, session_factory, submission_id: int) -> None:
        """Send both submission emails on a fresh session; failures are logged only."""
        db = session_factory()
        try:
            for send in (self.send_admin_notification, self.send_user_confirmation):
                try:
                    send(db, submission_id)
                except Exception:
                    logger.exception("%s failed for submission %s", send.__name__, submission_id)
        finally:
            db.close()
