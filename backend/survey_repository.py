"""Survey and question persistence.

Write operations sanitize their input, validate invariants (raising
``ValueError`` before anything is persisted) and convert database failures
into ``None``/``False`` after rolling the session back.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Mapping, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import Question, Response, Submission, Survey
from sanitize import (
    sanitize_color,
    sanitize_key,
    sanitize_rich_html,
    sanitize_text,
    sanitize_textarea,
    sanitize_url,
)
from schemas import (
    QUESTION_TYPES,
    SCORING_METHODS,
    SURVEY_STATUSES,
    QuestionOut,
    SurveyFilter,
    SurveyOut,
)

logger = logging.getLogger(__name__)

ORDERABLE_FIELDS = {"id", "title", "status", "created_at", "updated_at"}
MAX_ID = 2**63 - 1


def as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def as_int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def _bounded(number: int) -> int:
    return max(-MAX_ID, min(MAX_ID, number))


def as_id(value) -> int:
    """Positive row id that fits a 64-bit column, else 0."""
    number = as_int(value, 0)
    return number if 0 < number <= MAX_ID else 0


def _as_dict(data) -> dict:
    if data is None:
        return {}
    if hasattr(data, "model_dump"):
        return data.model_dump(exclude_unset=True)
    return dict(data)


def _clean_colors(colors: Mapping[str, Any] | None) -> dict:
    out = {}
    for key, value in (colors or {}).items():
        color = sanitize_color(value)
        if color:
            out[sanitize_key(key)] = color
    return out


def _clean_button(button: Mapping[str, Any] | None) -> dict:
    button = _as_dict(button)
    return {
        "enabled": as_bool(button.get("enabled", False)),
        "text": sanitize_text(button.get("text")),
        "url": sanitize_url(button.get("url")),
        "description": sanitize_rich_html(button.get("description")),
    }


def _clean_options(options: Iterable | None) -> list[dict]:
    out = []
    for opt in options or []:
        opt = _as_dict(opt)
        label = sanitize_text(opt.get("label"))
        value = sanitize_text(opt.get("value"))
        if label or value:
            out.append({"label": label or value, "value": value})
    return out


def _survey_values(data: Mapping[str, Any], partial: bool) -> dict:
    values: dict[str, Any] = {}
    if "title" in data or not partial:
        values["title"] = sanitize_text(data.get("title"))
        if not values["title"]:
            raise ValueError("Survey title is required")
    if "description" in data or not partial:
        values["description"] = sanitize_textarea(data.get("description"))
    if "intro_enabled" in data or not partial:
        values["intro_enabled"] = as_bool(data.get("intro_enabled", False))
    if "intro_content" in data or not partial:
        values["intro_content"] = sanitize_rich_html(data.get("intro_content"))
    if "scoring_method" in data or not partial:
        values["scoring_method"] = sanitize_key(data.get("scoring_method"), "sum")
        if values["scoring_method"] not in SCORING_METHODS:
            raise ValueError(f"Unknown scoring method: {values['scoring_method']}")
    if "status" in data or not partial:
        values["status"] = sanitize_key(data.get("status"), "draft")
        if values["status"] not in SURVEY_STATUSES:
            raise ValueError(f"Unknown status: {values['status']}")
    if "colors_config" in data or not partial:
        values["colors_config"] = json.dumps(_clean_colors(data.get("colors_config")))
    if "button_config" in data or not partial:
        values["button_config"] = json.dumps(_clean_button(data.get("button_config")))
    return values


def _question_values(data: Mapping[str, Any], partial: bool) -> dict:
    values: dict[str, Any] = {}
    if "question_text" in data or not partial:
        values["question_text"] = sanitize_textarea(data.get("question_text"))
        if not values["question_text"]:
            raise ValueError("Question text is required")
    if "question_type" in data or not partial:
        values["question_type"] = sanitize_key(data.get("question_type"), "rating")
        if values["question_type"] not in QUESTION_TYPES:
            raise ValueError(f"Unknown question type: {values['question_type']}")
    if "sort_order" in data or not partial:
        values["sort_order"] = _bounded(as_int(data.get("sort_order"), 0))
    if "min_score" in data or not partial:
        values["min_score"] = _bounded(as_int(data.get("min_score"), 0))
    if "max_score" in data or not partial:
        values["max_score"] = _bounded(as_int(data.get("max_score"), 10))
    if "required" in data or not partial:
        values["required"] = as_bool(data.get("required", True))
    if "options" in data or not partial:
        values["options_config"] = json.dumps(_clean_options(data.get("options")))
    return values


def _check_range(min_score: int, max_score: int) -> None:
    if min_score > max_score:
        raise ValueError("Minimum score cannot exceed maximum score")


# ------------------------
# Surveys
# ------------------------
def create_survey(db: Session, data) -> Optional[int]:
    """Insert a survey and return its id (None if the insert fails)."""
    values = _survey_values(_as_dict(data), partial=False)
    row = Survey(**values)
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to create survey %r", values.get("title"))
        return None
    logger.info("Created survey %s (%s)", row.id, row.title)
    return row.id


def update_survey(db: Session, survey_id: int, data) -> bool:
    values = _survey_values(_as_dict(data), partial=True)
    row = db.get(Survey, survey_id)
    if not row:
        return False
    for key, value in values.items():
        setattr(row, key, value)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to update survey %s", survey_id)
        return False
    return True


def _delete_responses(db: Session, survey_id: int) -> None:
    submission_ids = select(Submission.id).where(Submission.survey_id == survey_id)
    db.execute(
        delete(Response).where(Response.submission_id.in_(submission_ids)),
        execution_options={"synchronize_session": False},
    )


def _delete_submissions(db: Session, survey_id: int) -> None:
    db.execute(
        delete(Submission).where(Submission.survey_id == survey_id),
        execution_options={"synchronize_session": False},
    )


def _delete_questions(db: Session, survey_id: int) -> None:
    db.execute(
        delete(Question).where(Question.survey_id == survey_id),
        execution_options={"synchronize_session": False},
    )


def _delete_survey_row(db: Session, survey_id: int) -> None:
    result = db.execute(
        delete(Survey).where(Survey.id == survey_id),
        execution_options={"synchronize_session": False},
    )
    if result.rowcount != 1:
        raise LookupError(f"Survey {survey_id} vanished during delete")


def delete_survey(db: Session, survey_id: int) -> bool:
    """Delete a survey with its responses, submissions and questions.

    All four deletes run in one transaction; any failure rolls the whole
    thing back and leaves every row in place.
    """
    if not db.get(Survey, survey_id):
        return False
    try:
        _delete_responses(db, survey_id)
        _delete_submissions(db, survey_id)
        _delete_questions(db, survey_id)
        _delete_survey_row(db, survey_id)
        db.commit()
    except (SQLAlchemyError, LookupError):
        db.rollback()
        logger.exception("Failed to delete survey %s; rolled back", survey_id)
        return False
    db.expire_all()
    logger.info("Deleted survey %s", survey_id)
    return True


def get_survey(db: Session, survey_id: int) -> Optional[SurveyOut]:
    row = db.get(Survey, survey_id)
    return SurveyOut.model_validate(row) if row else None


def list_surveys(db: Session, filters: SurveyFilter | None = None, **kwargs) -> list[SurveyOut]:
    """List surveys filtered by status with whitelisted ordering and paging."""
    filters = filters or SurveyFilter(**kwargs)
    stmt = select(Survey)
    if filters.status != "all":
        stmt = stmt.where(Survey.status == filters.status)
    field = filters.orderby if filters.orderby in ORDERABLE_FIELDS else "updated_at"
    column = getattr(Survey, field)
    direction = column.asc() if filters.order.upper() == "ASC" else column.desc()
    stmt = stmt.order_by(direction, Survey.id.desc() if filters.order.upper() != "ASC" else Survey.id.asc())
    if filters.limit > 0:
        stmt = stmt.limit(filters.limit).offset(max(filters.offset, 0))
    return [SurveyOut.model_validate(s) for s in db.execute(stmt).scalars().all()]


def count_questions(db: Session, survey_id: int) -> int:
    return db.execute(
        select(func.count()).select_from(Question).where(Question.survey_id == survey_id)
    ).scalar_one()


# ------------------------
# Questions
# ------------------------
def get_survey_questions(db: Session, survey_id: int) -> list[QuestionOut]:
    qs = db.execute(
        select(Question).where(Question.survey_id == survey_id).order_by(Question.sort_order, Question.id)
    ).scalars().all()
    return [QuestionOut.model_validate(q) for q in qs]


def _new_question(survey_id: int, data) -> Question:
    values = _question_values(_as_dict(data), partial=False)
    _check_range(values["min_score"], values["max_score"])
    return Question(survey_id=survey_id, **values)


def add_question(db: Session, survey_id: int, data) -> Optional[int]:
    row = _new_question(survey_id, data)
    if not db.get(Survey, survey_id):
        return None
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to add question to survey %s", survey_id)
        return None
    return row.id


def _apply_question_update(row: Question, data) -> None:
    values = _question_values(_as_dict(data), partial=True)
    _check_range(values.get("min_score", row.min_score), values.get("max_score", row.max_score))
    for key, value in values.items():
        setattr(row, key, value)


def update_question(db: Session, question_id: int, data) -> bool:
    row = db.get(Question, question_id)
    if not row:
        return False
    _apply_question_update(row, data)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to update question %s", question_id)
        return False
    return True


def delete_question(db: Session, question_id: int) -> bool:
    """Delete a question together with the responses that answered it."""
    if not db.get(Question, question_id):
        return False
    try:
        db.execute(delete(Response).where(Response.question_id == question_id),
                   execution_options={"synchronize_session": False})
        db.execute(delete(Question).where(Question.id == question_id),
                   execution_options={"synchronize_session": False})
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to delete question %s", question_id)
        return False
    db.expire_all()
    return True


def save_survey_with_questions(db: Session, survey_id: Optional[int], survey_data, questions: list) -> Optional[int]:
    """Batch save from the admin edit form.

    Creates or updates the survey, upserts every posted question (rows with
    an ``id`` update that question, rows without one are added) and deletes
    the survey's questions that were not posted. One transaction.
    """
    if survey_id:
        survey = db.get(Survey, survey_id)
        if not survey:
            return None
        for key, value in _survey_values(_as_dict(survey_data), partial=False).items():
            setattr(survey, key, value)
    else:
        survey = Survey(**_survey_values(_as_dict(survey_data), partial=False))
        db.add(survey)

    try:
        db.flush()
        existing = {q.id: q for q in db.execute(
            select(Question).where(Question.survey_id == survey.id)
        ).scalars().all()}
        kept: set[int] = set()
        for data in questions:
            data = _as_dict(data)
            qid = as_int(data.get("id"), 0)
            if qid in existing:
                _apply_question_update(existing[qid], {k: v for k, v in data.items() if k != "id"})
                kept.add(qid)
            else:
                db.add(_new_question(survey.id, {k: v for k, v in data.items() if k != "id"}))
        for qid in set(existing) - kept:
            db.execute(delete(Response).where(Response.question_id == qid),
                       execution_options={"synchronize_session": False})
            db.delete(existing[qid])
        db.commit()
    except ValueError:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to save survey %s", survey_id)
        return None
    logger.info("Saved survey %s with %d question(s)", survey.id, len(questions))
    return survey.id


def duplicate_survey(db: Session, survey_id: int) -> Optional[int]:
    """Deep-copy a survey and its questions; the copy starts as a draft."""
    original = db.get(Survey, survey_id)
    if not original:
        return None
    copy = Survey(
        title=f"{original.title} (Copy)",
        description=original.description,
        intro_enabled=original.intro_enabled,
        intro_content=original.intro_content,
        scoring_method=original.scoring_method,
        status="draft",
        colors_config=original.colors_config,
        button_config=original.button_config,
    )
    questions = db.execute(
        select(Question).where(Question.survey_id == survey_id).order_by(Question.sort_order, Question.id)
    ).scalars().all()
    try:
        db.add(copy)
        db.flush()
        for q in questions:
            db.add(Question(
                survey_id=copy.id,
                question_text=q.question_text,
                question_type=q.question_type,
                sort_order=q.sort_order,
                min_score=q.min_score,
                max_score=q.max_score,
                required=q.required,
                options_config=q.options_config,
            ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to duplicate survey %s", survey_id)
        return None
    logger.info("Duplicated survey %s as %s", survey_id, copy.id)
    return copy.id
