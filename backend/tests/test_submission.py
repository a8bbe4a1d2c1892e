from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

import submission_service
import survey_repository
from models import Response, Submission
from submission_service import (
    SubmissionPersistenceError,
    SubmissionValidationError,
    SurveyUnavailableError,
)


def _answers(db, sid, rating="8", yes_no="yes"):
    q1, q2 = survey_repository.get_survey_questions(db, sid)
    return {q1.id: rating, q2.id: yes_no}


def _payload(db, sid, **overrides):
    data = {
        "survey_id": sid,
        "user_name": "Ana",
        "user_email": "ana@example.com",
        "responses": _answers(db, sid),
    }
    data.update(overrides)
    return data


def test_validation_reports_each_field(db):
    with pytest.raises(SubmissionValidationError) as exc:
        submission_service.validate_submission({"survey_id": 1, "user_name": " ", "user_email": ""})
    assert exc.value.status_code == 400
    assert exc.value.errors == {"user_name": "Name is required", "user_email": "Email address is required"}

    with pytest.raises(SubmissionValidationError) as exc:
        submission_service.validate_submission({"survey_id": 1, "user_name": "Ana", "user_email": "not-an-email"})
    assert set(exc.value.errors) == {"user_email"}
    assert exc.value.errors["user_email"] != "Email address is required"


def test_submit_scores_and_records(db, make_survey):
    sid = make_survey()
    notified = []
    result = submission_service.submit(
        db, _payload(db, sid), ip_address="203.0.113.5", site_url="http://testserver/", notify=notified.append
    )
    assert result.total_score == 9.0
    assert result.redirect_url == (
        f"http://testserver/results?survey_results=1&submission_id={result.submission_id}"
    )
    assert notified == [result.submission_id]

    sub = submission_service.get_submission(db, result.submission_id)
    assert sub.user_name == "Ana"
    assert sub.ip_address == "203.0.113.5"
    assert set(sub.submission_data.values()) == {"8", "yes"}

    responses = submission_service.get_submission_responses(db, result.submission_id)
    assert [(r.response_value, r.score_value) for r in responses] == [("8", 8.0), ("yes", 1.0)]
    assert responses[0].question_text == "How likely are you to recommend us?"


def test_notification_failure_does_not_fail_submit(db, make_survey):
    sid = make_survey()

    def notify(submission_id):
        raise RuntimeError("mail queue down")

    result = submission_service.submit(
        db, _payload(db, sid), ip_address=None, site_url="http://testserver", notify=notify
    )
    assert result.total_score == 9.0
    assert submission_service.count_submissions(db, sid) == 1


def test_submit_rejects_unpublished_or_missing_survey(db, make_survey):
    draft = make_survey(status="draft")
    with pytest.raises(SurveyUnavailableError) as exc:
        submission_service.submit(db, _payload(db, draft), ip_address=None, site_url="http://x")
    assert exc.value.status_code == 404

    with pytest.raises(SurveyUnavailableError):
        submission_service.submit(db, _payload(db, draft, survey_id=9999), ip_address=None, site_url="http://x")
    assert submission_service.count_submissions(db, draft) == 0


def test_answers_to_foreign_questions_are_ignored(db, make_survey):
    sid = make_survey()
    other = make_survey()
    foreign = survey_repository.get_survey_questions(db, other)[0].id
    answers = {**_answers(db, sid, rating="2", yes_no="no"), foreign: "10"}
    new_id = submission_service.create_submission(db, sid, "Ana", "ana@example.com", answers)
    sub = submission_service.get_submission(db, new_id)
    assert sub.total_score == 2.0
    assert len(submission_service.get_submission_responses(db, new_id)) == 2


def test_submission_write_is_atomic(db, make_survey, monkeypatch):
    sid = make_survey()
    original_add = db.add

    def failing_add(obj):
        if isinstance(obj, Response):
            raise OperationalError("INSERT INTO responses", {}, Exception("disk full"))
        return original_add(obj)

    monkeypatch.setattr(db, "add", failing_add)
    with pytest.raises(SubmissionPersistenceError) as exc:
        submission_service.submit(db, _payload(db, sid), ip_address=None, site_url="http://x")
    assert exc.value.status_code == 500
    monkeypatch.undo()

    assert db.query(Submission).count() == 0
    assert db.query(Response).count() == 0


def test_submission_without_questions_is_not_recorded(db):
    sid = survey_repository.create_survey(db, {"title": "Empty", "status": "published"})
    assert submission_service.create_submission(db, sid, "Ana", "ana@example.com", {}) is None


def test_list_filter_and_delete_submissions(db, make_survey):
    sid = make_survey()
    first = submission_service.create_submission(db, sid, "Ana", "ana@example.com", _answers(db, sid, "3"))
    second = submission_service.create_submission(db, sid, "Ben", "ben@example.com", _answers(db, sid, "9"))

    by_score = submission_service.list_submissions(db, survey_id=sid, orderby="total_score", order="ASC")
    assert [s.id for s in by_score] == [first, second]
    assert len(submission_service.list_submissions(db, survey_id=sid, limit=1)) == 1
    future = datetime.now(timezone.utc) + timedelta(days=1)
    assert submission_service.list_submissions(db, survey_id=sid, date_from=future) == []

    assert submission_service.delete_submission(db, first) is True
    assert submission_service.get_submission(db, first) is None
    assert db.query(Response).filter(Response.submission_id == first).count() == 0
    assert submission_service.count_submissions(db, sid) == 1
    assert submission_service.delete_submission(db, first) is False


def test_statistics(db, make_survey):
    sid = make_survey()
    empty = submission_service.survey_statistics(db, sid)
    assert empty.total_submissions == 0 and empty.average_score is None

    for rating in ("3", "4", "9"):
        submission_service.create_submission(db, sid, "Ana", "ana@example.com", _answers(db, sid, rating))
    stats = submission_service.survey_statistics(db, sid)
    # totals are 4, 5 and 10
    assert stats.total_submissions == 3
    assert stats.average_score == pytest.approx(6.33)
    assert stats.score_distribution == [{"score_range": 0.0, "count": 2.0}, {"score_range": 10.0, "count": 1.0}]
    assert stats.recent_submissions == 3


@pytest.mark.parametrize("headers,peer,expected", [
    ({"x-forwarded-for": "10.0.0.1, 93.184.216.34"}, "127.0.0.1", "93.184.216.34"),
    ({"x-client-ip": "8.8.8.8", "x-forwarded-for": "1.1.1.1"}, None, "8.8.8.8"),
    ({"x-forwarded-for": "garbage"}, "127.0.0.1", "127.0.0.1"),
    ({}, None, "0.0.0.0"),
])
def test_client_ip(headers, peer, expected):
    assert submission_service.client_ip(headers, peer) == expected
