"""Recording, scoring and reading back survey submissions."""
from __future__ import annotations

import ipaddress
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping, Optional
from urllib.parse import urlencode

import pandas as pd
from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import scoring
from models import Question, Response, Submission, Survey
from sanitize import sanitize_text
from schemas import ResponseOut, SubmissionIn, SubmissionOut, SubmitResult, SurveyStatistics

logger = logging.getLogger(__name__)

RESULTS_FLAG = "survey_results"
SUBMISSION_ORDER_FIELDS = {"id", "submitted_at", "total_score", "user_name", "user_email"}
RECENT_DAYS = 30


class SubmissionError(Exception):
    """Base for failures reported back to the submitting browser."""
    status_code = 400

    def __init__(self, message: str, errors: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}


class SubmissionValidationError(SubmissionError):
    status_code = 400


class SurveyUnavailableError(SubmissionError):
    status_code = 404


class SubmissionPersistenceError(SubmissionError):
    status_code = 500


def _now_utc() -> datetime:
    """Return the current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def validate_submission(payload: Mapping) -> SubmissionIn:
    """Validate name/email/answers; one error for the whole request.

    Raises:
        SubmissionValidationError: with a per-field ``errors`` map.
    """
    try:
        return SubmissionIn.model_validate(dict(payload))
    except ValidationError as exc:
        errors = {}
        for err in exc.errors():
            field = str(err["loc"][0]) if err.get("loc") else "__all__"
            msg = err.get("msg", "Invalid value")
            if msg.startswith("Value error, "):
                msg = msg[len("Value error, "):]
            errors.setdefault(field, msg)
        raise SubmissionValidationError("Please provide valid name and email address.", errors)


def results_url(site_url: str, submission_id: int) -> str:
    query = urlencode({RESULTS_FLAG: 1, "submission_id": submission_id})
    return f"{site_url.rstrip('/')}/results?{query}"


def client_ip(headers: Mapping[str, str], peer: Optional[str]) -> str:
    """First public address from proxy headers, else the socket peer."""
    for key in ("x-client-ip", "x-forwarded-for"):
        raw = headers.get(key)
        if not raw:
            continue
        for part in raw.split(","):
            try:
                addr = ipaddress.ip_address(part.strip())
            except ValueError:
                continue
            if addr.is_global:
                return str(addr)
    return peer or "0.0.0.0"


def _survey_questions(db: Session, survey_id: int) -> list[Question]:
    return db.execute(
        select(Question).where(Question.survey_id == survey_id).order_by(Question.sort_order, Question.id)
    ).scalars().all()


def create_submission(db: Session, survey_id: int, user_name: str, user_email: str,
                      responses: Mapping[int, str], ip_address: Optional[str] = None) -> Optional[int]:
    """Score and persist one submission with its responses.

    The submission row and every response row are written in a single
    transaction. Answers to questions outside the survey are ignored.

    Returns:
        int | None: new submission id, or None if the survey has no questions
        or the write failed.
    """
    questions = _survey_questions(db, survey_id)
    if not questions:
        return None
    by_id = {q.id: q for q in questions}
    answers = {int(qid): value for qid, value in responses.items() if int(qid) in by_id}

    row = Submission(
        survey_id=survey_id,
        user_name=sanitize_text(user_name),
        user_email=(user_email or "").strip(),
        total_score=scoring.total_score(questions, answers),
        submission_data=json.dumps({str(k): v for k, v in answers.items()}),
        ip_address=ip_address,
    )
    try:
        db.add(row)
        db.flush()
        for q in questions:
            if q.id not in answers:
                continue
            db.add(Response(
                submission_id=row.id,
                question_id=q.id,
                response_value=sanitize_text(answers[q.id]),
                score_value=scoring.score_for(q, answers[q.id]),
            ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to record submission for survey %s", survey_id)
        return None
    logger.info("Recorded submission %s for survey %s (score %s)", row.id, survey_id, row.total_score)
    return row.id


def submit(db: Session, payload: Mapping, *, ip_address: Optional[str], site_url: str,
           notify: Optional[Callable[[int], None]] = None) -> SubmitResult:
    """Validate, record and announce a completed survey attempt.

    Notification failures are logged and never fail the submission.
    """
    data = validate_submission(payload)
    survey = db.get(Survey, data.survey_id)
    if not survey or survey.status != "published":
        raise SurveyUnavailableError("This survey is not currently available.")

    submission_id = create_submission(
        db, data.survey_id, data.user_name, str(data.user_email), data.responses, ip_address
    )
    if not submission_id:
        raise SubmissionPersistenceError("Failed to submit survey. Please try again.")

    if notify is not None:
        try:
            notify(submission_id)
        except Exception:
            logger.exception("Could not schedule notifications for submission %s", submission_id)

    submission = db.get(Submission, submission_id)
    return SubmitResult(
        submission_id=submission_id,
        total_score=submission.total_score,
        redirect_url=results_url(site_url, submission_id),
    )


def get_submission(db: Session, submission_id: int) -> Optional[SubmissionOut]:
    row = db.get(Submission, submission_id)
    return SubmissionOut.model_validate(row) if row else None


def list_submissions(db: Session, survey_id: int = 0, date_from: Optional[datetime] = None,
                     date_to: Optional[datetime] = None, orderby: str = "submitted_at",
                     order: str = "DESC", limit: int = -1, offset: int = 0) -> list[SubmissionOut]:
    stmt = select(Submission)
    if survey_id:
        stmt = stmt.where(Submission.survey_id == survey_id)
    if date_from:
        stmt = stmt.where(Submission.submitted_at >= date_from)
    if date_to:
        stmt = stmt.where(Submission.submitted_at <= date_to)
    column = getattr(Submission, orderby if orderby in SUBMISSION_ORDER_FIELDS else "submitted_at")
    if str(order).upper() == "ASC":
        stmt = stmt.order_by(column.asc(), Submission.id.asc())
    else:
        stmt = stmt.order_by(column.desc(), Submission.id.desc())
    if limit > 0:
        stmt = stmt.limit(limit).offset(max(offset, 0))
    return [SubmissionOut.model_validate(s) for s in db.execute(stmt).scalars().all()]


def count_submissions(db: Session, survey_id: int) -> int:
    return db.execute(
        select(func.count()).select_from(Submission).where(Submission.survey_id == survey_id)
    ).scalar_one()


def get_submission_responses(db: Session, submission_id: int) -> list[ResponseOut]:
    rows = db.execute(
        select(Response, Question.question_text, Question.question_type)
        .join(Question, Response.question_id == Question.id)
        .where(Response.submission_id == submission_id)
        .order_by(Question.sort_order, Question.id)
    ).all()
    return [
        ResponseOut(
            id=r.id,
            submission_id=r.submission_id,
            question_id=r.question_id,
            response_value=r.response_value,
            score_value=r.score_value,
            question_text=text,
            question_type=qtype,
        )
        for r, text, qtype in rows
    ]


def delete_submission(db: Session, submission_id: int) -> bool:
    """Delete a submission and its responses in one transaction."""
    if not db.get(Submission, submission_id):
        return False
    try:
        db.execute(delete(Response).where(Response.submission_id == submission_id),
                   execution_options={"synchronize_session": False})
        db.execute(delete(Submission).where(Submission.id == submission_id),
                   execution_options={"synchronize_session": False})
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to delete submission %s", submission_id)
        return False
    db.expire_all()
    logger.info("Deleted submission %s", submission_id)
    return True


def survey_statistics(db: Session, survey_id: int) -> SurveyStatistics:
    """Count, average, 10-point score buckets and last-30-day volume."""
    q = select(Submission.total_score, Submission.submitted_at).where(Submission.survey_id == survey_id)
    df = pd.read_sql(q, db.connection())
    if df.empty:
        return SurveyStatistics(total_submissions=0)

    buckets = (df["total_score"] // 10 * 10).value_counts().sort_index()
    submitted = pd.to_datetime(df["submitted_at"], utc=True)
    cutoff = pd.Timestamp(_now_utc() - timedelta(days=RECENT_DAYS))
    return SurveyStatistics(
        total_submissions=len(df),
        average_score=round(float(df["total_score"].mean()), 2),
        score_distribution=[{"score_range": float(k), "count": float(v)} for k, v in buckets.items()],
        recent_submissions=int((submitted >= cutoff).sum()),
    )


def export_submissions_csv(db: Session, survey_id: int) -> bytes:
    """One CSV row per response, ordered by submission then question order."""
    q = (
        select(
            Submission.id.label("submission_id"),
            Submission.user_name,
            Submission.user_email,
            Submission.submitted_at,
            Submission.total_score,
            Question.sort_order,
            Question.question_text.label("question"),
            Response.response_value,
            Response.score_value,
        )
        .join(Response, Response.submission_id == Submission.id, isouter=True)
        .join(Question, Question.id == Response.question_id, isouter=True)
        .where(Submission.survey_id == survey_id)
        .order_by(Submission.id, Question.sort_order)
    )
    df = pd.read_sql(q, db.connection())
    return df.to_csv(index=False).encode("utf-8")
