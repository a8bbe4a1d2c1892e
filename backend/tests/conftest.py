import pytest
from fastapi.testclient import TestClient

from config import Settings
from context import build_context
from main import create_app
from security import verify_admin
import survey_repository


class RecordingMailer:
    """Captures outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.sent = []
        self.ok = True

    def send(self, to_email, subject, html_body, text=""):
        self.sent.append({"to": to_email, "subject": subject, "html": html_body, "text": text})
        return self.ok


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        admin_api_key="test-key",
        action_secret="test-secret",
        site_name="Test Site",
        site_url="http://testserver",
        admin_email="owner@example.com",
        email_from_email="noreply@example.com",
    )


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def ctx(settings, mailer):
    ctx = build_context(settings, mailer=mailer)
    yield ctx
    ctx.engine.dispose()


@pytest.fixture
def app(ctx):
    app = create_app(ctx)
    app.dependency_overrides[verify_admin] = lambda: None
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def db(app, ctx):
    # app fixture creates the tables
    session = ctx.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_survey(db):
    """Create a survey with a rating (0-10) and a yes/no (0-1) question."""
    def _make(status="published", **overrides):
        data = {"title": "Customer Check", "status": status, **overrides}
        sid = survey_repository.create_survey(db, data)
        survey_repository.add_question(db, sid, {
            "question_text": "How likely are you to recommend us?",
            "question_type": "rating", "sort_order": 0, "min_score": 0, "max_score": 10,
        })
        survey_repository.add_question(db, sid, {
            "question_text": "Would you buy again?",
            "question_type": "yes_no", "sort_order": 1, "min_score": 0, "max_score": 1,
        })
        return sid
    return _make
