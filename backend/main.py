import logging
import re
from pathlib import Path
from typing import Annotated, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi import Path as PathParam
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session

import admin_pages
import public_display
import submission_service
import survey_repository
from config import configure_logging
from context import AppContext, build_context, get_ctx
from db import Base, get_db
from question_builder import QuestionBuilder
from schemas import SurveyDetail
from security import verify_admin
from survey_repository import MAX_ID, as_id, as_int

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"
RESPONSE_KEY_RE = re.compile(r"^responses\[(\d+)\]$")
COLOR_KEY_RE = re.compile(r"^colors\[(\w+)\]$")

public = APIRouter(tags=["public"])
admin = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(verify_admin)])

SurveyId = Annotated[int, PathParam(gt=0, le=MAX_ID)]
SubmissionId = Annotated[int, PathParam(gt=0, le=MAX_ID)]


def create_app(ctx: Optional[AppContext] = None) -> FastAPI:
    """Build the application around a single context (run with `uvicorn --factory main:create_app`)."""
    ctx = ctx or build_context()
    configure_logging(ctx.settings.log_level)
    Base.metadata.create_all(bind=ctx.engine)

    app = FastAPI(title="Survey Builder")
    app.state.ctx = ctx
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(ctx.settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.mount("/static", StaticFiles(directory=STATIC_DIR, check_dir=False), name="static")
    app.include_router(public)
    app.include_router(admin)
    return app


def _envelope(success: bool, status_code: int = 200, **data) -> JSONResponse:
    return JSONResponse({"success": success, "data": data}, status_code=status_code)


def _redirect(path: str, message: str, kind: str = "success") -> RedirectResponse:
    return RedirectResponse(f"{path}?{urlencode({'message': message, 'type': kind})}", status_code=303)


def _require_token(ctx: AppContext, token: Optional[str], action: str, target_id: int) -> None:
    if not ctx.tokens.check(token, action, target_id):
        raise HTTPException(status_code=403, detail="Security check failed")


async def posted_form(request: Request):
    """Parsed form body, so the handlers that use it can run in the threadpool."""
    return await request.form()


@public.get("/health")
def health():
    """Basic readiness check.

    Returns:
        dict: {"ok": True}
    """
    return {"ok": True}


# ------------------------
# Public: survey display
# ------------------------
def _render_embed(db: Session, ctx: AppContext, raw_id: str) -> tuple[int, str, str]:
    """Resolve an embed directive to (status, html fragment, page title)."""
    survey_id = as_id(raw_id)
    if not survey_id:
        return 400, public_display.error_block("Invalid survey ID."), "Survey"
    survey = survey_repository.get_survey(db, survey_id)
    if not survey:
        return 404, public_display.error_block("Survey not found."), "Survey"
    if survey.status != "published":
        return 404, public_display.error_block("This survey is not currently available."), survey.title
    questions = survey_repository.get_survey_questions(db, survey_id)
    if not questions:
        return 404, public_display.error_block("This survey has no questions."), survey.title
    token = ctx.tokens.make("submit_survey", survey_id)
    fragment = public_display.render_survey(
        survey, questions, token, "/survey/submit", ctx.settings.default_colors
    )
    return 200, fragment, survey.title


@public.get("/embed", response_class=HTMLResponse)
def embed_survey(id: str = "", db: Session = Depends(get_db), ctx: AppContext = Depends(get_ctx)):
    """Survey form (or inline error) as an HTML fragment for embedding."""
    status, fragment, _ = _render_embed(db, ctx, id)
    return HTMLResponse(fragment, status_code=status)


@public.get("/survey", response_class=HTMLResponse)
def show_survey(id: str = "", db: Session = Depends(get_db), ctx: AppContext = Depends(get_ctx)):
    """Standalone page wrapping the embedded survey."""
    status, fragment, title = _render_embed(db, ctx, id)
    html = public_display.page(title, fragment, scripts=["/static/survey-form.js"])
    return HTMLResponse(html, status_code=status)


@public.post("/survey/submit")
def submit_survey(request: Request, background_tasks: BackgroundTasks, form=Depends(posted_form),
                  db: Session = Depends(get_db), ctx: AppContext = Depends(get_ctx)):
    """Record a completed survey posted by the browser form.

    Emails go out after the response has been sent.

    Returns:
        JSONResponse: {"success": bool, "data": {"message", "submission_id"?, "total_score"?, "redirect_url"?}}
    """
    survey_id = as_id(form.get("survey_id"))
    if not survey_id:
        return _envelope(False, 400, message="Invalid survey ID.")
    if not ctx.tokens.check(form.get("nonce"), "submit_survey", survey_id):
        return _envelope(False, 403, message="Security check failed.")

    responses = {}
    for key in form.keys():
        m = RESPONSE_KEY_RE.match(key)
        if m:
            responses[int(m.group(1))] = form.get(key)
    payload = {
        "survey_id": survey_id,
        "user_name": form.get("user_name", ""),
        "user_email": form.get("user_email", ""),
        "responses": responses,
    }
    peer = request.client.host if request.client else None
    try:
        result = submission_service.submit(
            db,
            payload,
            ip_address=submission_service.client_ip(request.headers, peer),
            site_url=ctx.settings.site_url,
            notify=lambda sid: background_tasks.add_task(
                ctx.notifier.notify_submission, ctx.session_factory, sid
            ),
        )
    except submission_service.SubmissionError as exc:
        return _envelope(False, exc.status_code, message=exc.message, errors=exc.errors)
    return _envelope(
        True,
        message="Survey submitted successfully!",
        submission_id=result.submission_id,
        total_score=result.total_score,
        redirect_url=result.redirect_url,
    )


@public.get("/results", response_class=HTMLResponse)
def show_results(survey_results: str = "", submission_id: str = "",
                 db: Session = Depends(get_db), ctx: AppContext = Depends(get_ctx)):
    sub_id = as_id(submission_id)
    submission = submission_service.get_submission(db, sub_id) if as_int(survey_results, 0) and sub_id else None
    if not submission:
        return HTMLResponse(public_display.page("Results", public_display.error_block("Submission not found.")), 404)
    survey = survey_repository.get_survey(db, submission.survey_id)
    if not survey:
        return HTMLResponse(public_display.page("Results", public_display.error_block("Survey not found.")), 404)
    body = public_display.render_results(survey, submission, ctx.settings.default_colors)
    return HTMLResponse(public_display.page(f"{survey.title} - Results", body))


# ------------------------
# Admin: survey list and actions
# ------------------------
@admin.get("/surveys", response_class=HTMLResponse)
def list_surveys_page(message: Optional[str] = None, type: Optional[str] = None,
                      db: Session = Depends(get_db), ctx: AppContext = Depends(get_ctx)):
    surveys = survey_repository.list_surveys(db)
    counts = {s.id: submission_service.count_submissions(db, s.id) for s in surveys}
    return admin_pages.render_survey_list(surveys, counts, ctx.tokens.make, message, type)


@admin.get("/surveys/new", response_class=HTMLResponse)
def new_survey_page(ctx: AppContext = Depends(get_ctx)):
    return admin_pages.render_survey_edit(
        None, QuestionBuilder(), ctx.tokens.make("save_survey", 0), ctx.settings.default_colors
    )


@admin.get("/surveys/{survey_id}/edit", response_class=HTMLResponse)
def edit_survey_page(survey_id: SurveyId, message: Optional[str] = None, type: Optional[str] = None,
                     db: Session = Depends(get_db), ctx: AppContext = Depends(get_ctx)):
    survey = survey_repository.get_survey(db, survey_id)
    if not survey:
        raise HTTPException(404, "Survey not found")
    builder = QuestionBuilder.from_questions(survey_repository.get_survey_questions(db, survey_id))
    return admin_pages.render_survey_edit(
        survey, builder, ctx.tokens.make("save_survey", survey_id), ctx.settings.default_colors, message, type
    )


def _survey_form_data(form) -> dict:
    colors = {}
    for key in form.keys():
        m = COLOR_KEY_RE.match(key)
        if m:
            colors[m.group(1)] = form.get(key)
    return {
        "title": form.get("survey_title", ""),
        "description": form.get("survey_description", ""),
        "status": form.get("survey_status", "draft"),
        "intro_enabled": form.get("intro_enabled", ""),
        "intro_content": form.get("intro_content", ""),
        "scoring_method": form.get("scoring_method", "sum"),
        "colors_config": colors,
        "button_config": {
            "enabled": form.get("button_enabled", ""),
            "text": form.get("button_text", ""),
            "url": form.get("button_url", ""),
            "description": form.get("button_description", ""),
        },
    }


@admin.post("/surveys/save")
def save_survey(form=Depends(posted_form), db: Session = Depends(get_db), ctx: AppContext = Depends(get_ctx)):
    """Save the edit form: survey fields plus the whole question list at once."""
    survey_id = as_id(form.get("survey_id"))
    _require_token(ctx, form.get("_token"), "save_survey", survey_id)

    builder = QuestionBuilder.from_form(form)
    try:
        saved_id = survey_repository.save_survey_with_questions(
            db, survey_id or None, _survey_form_data(form), builder.to_save()
        )
    except ValueError as exc:
        survey = survey_repository.get_survey(db, survey_id) if survey_id else None
        html = admin_pages.render_survey_edit(
            survey, builder, ctx.tokens.make("save_survey", survey_id), ctx.settings.default_colors,
            str(exc), "error",
        )
        return HTMLResponse(html, status_code=400)
    if not saved_id:
        if survey_id and not survey_repository.get_survey(db, survey_id):
            raise HTTPException(404, "Survey not found")
        return _redirect("/admin/surveys", "Error saving survey.", "error")
    return _redirect(f"/admin/surveys/{saved_id}/edit", "Survey saved successfully.")


@admin.get("/surveys/{survey_id}/duplicate")
def duplicate_survey(survey_id: SurveyId, _token: str = "", db: Session = Depends(get_db),
                     ctx: AppContext = Depends(get_ctx)):
    _require_token(ctx, _token, "duplicate_survey", survey_id)
    new_id = survey_repository.duplicate_survey(db, survey_id)
    if not new_id:
        return _redirect("/admin/surveys", "Error duplicating survey.", "error")
    return _redirect(f"/admin/surveys/{new_id}/edit", "Survey duplicated successfully.")


@admin.get("/surveys/{survey_id}/delete")
def delete_survey(survey_id: SurveyId, _token: str = "", db: Session = Depends(get_db),
                  ctx: AppContext = Depends(get_ctx)):
    _require_token(ctx, _token, "delete_survey", survey_id)
    if survey_repository.delete_survey(db, survey_id):
        return _redirect("/admin/surveys", "Survey deleted successfully.")
    return _redirect("/admin/surveys", "Error deleting survey.", "error")


@admin.get("/surveys/{survey_id}/toggle-status")
def toggle_status(survey_id: SurveyId, _token: str = "", db: Session = Depends(get_db),
                  ctx: AppContext = Depends(get_ctx)):
    _require_token(ctx, _token, "toggle_status", survey_id)
    survey = survey_repository.get_survey(db, survey_id)
    if not survey:
        return _redirect("/admin/surveys", "Survey not found.", "error")
    new_status = "draft" if survey.status == "published" else "published"
    if not survey_repository.update_survey(db, survey_id, {"status": new_status}):
        return _redirect("/admin/surveys", "Error updating survey status.", "error")
    message = "Survey published successfully." if new_status == "published" else "Survey unpublished successfully."
    return _redirect("/admin/surveys", message)


@admin.get("/surveys/{survey_id}/detail", response_model=SurveyDetail)
def survey_detail(survey_id: SurveyId, db: Session = Depends(get_db)):
    """Survey with its ordered questions, config maps decoded."""
    survey = survey_repository.get_survey(db, survey_id)
    if not survey:
        raise HTTPException(404, "Survey not found")
    return {"survey": survey, "questions": survey_repository.get_survey_questions(db, survey_id)}


# ------------------------
# Admin: submissions
# ------------------------
@admin.get("/surveys/{survey_id}/submissions", response_class=HTMLResponse)
def submissions_page(survey_id: SurveyId, limit: int = 100, offset: int = 0,
                     db: Session = Depends(get_db), ctx: AppContext = Depends(get_ctx)):
    survey = survey_repository.get_survey(db, survey_id)
    if not survey:
        raise HTTPException(404, "Survey not found")
    stats = submission_service.survey_statistics(db, survey_id)
    rows = submission_service.list_submissions(db, survey_id=survey_id, limit=limit, offset=offset)
    return admin_pages.render_submissions(survey, stats, rows, ctx.tokens.make)


@admin.get("/surveys/{survey_id}/statistics")
def survey_statistics(survey_id: SurveyId, db: Session = Depends(get_db)):
    if not survey_repository.get_survey(db, survey_id):
        raise HTTPException(404, "Survey not found")
    return submission_service.survey_statistics(db, survey_id)


@admin.get("/surveys/{survey_id}/submissions.csv")
def export_csv(survey_id: SurveyId, db: Session = Depends(get_db)):
    """Export submissions as CSV (one row per response).

    Returns:
        Response: text/csv attachment `survey_<id>_submissions.csv`.
    """
    if not survey_repository.get_survey(db, survey_id):
        raise HTTPException(404, "Survey not found")
    csv_bytes = submission_service.export_submissions_csv(db, survey_id)
    return Response(content=csv_bytes, media_type="text/csv",
                    headers={"Content-Disposition": f"attachment; filename=survey_{survey_id}_submissions.csv"})


@admin.get("/submissions/{submission_id}", response_class=HTMLResponse)
def submission_detail(submission_id: SubmissionId, db: Session = Depends(get_db)):
    submission = submission_service.get_submission(db, submission_id)
    if not submission:
        raise HTTPException(404, "Submission not found")
    survey = survey_repository.get_survey(db, submission.survey_id)
    responses = submission_service.get_submission_responses(db, submission_id)
    return admin_pages.render_submission_detail(survey, submission, responses)


@admin.get("/submissions/{submission_id}/delete")
def delete_submission(submission_id: SubmissionId, _token: str = "", db: Session = Depends(get_db),
                      ctx: AppContext = Depends(get_ctx)):
    _require_token(ctx, _token, "delete_submission", submission_id)
    submission = submission_service.get_submission(db, submission_id)
    if not submission:
        raise HTTPException(404, "Submission not found")
    if not submission_service.delete_submission(db, submission_id):
        return _redirect("/admin/surveys", "Error deleting submission.", "error")
    return RedirectResponse(f"/admin/surveys/{submission.survey_id}/submissions", status_code=303)


@admin.post("/test-email")
def send_test_email(form=Depends(posted_form), ctx: AppContext = Depends(get_ctx)):
    _require_token(ctx, form.get("_token"), "test_email", 0)
    email = (form.get("email") or "").strip()
    if not email:
        return _redirect("/admin/surveys", "Please enter an email address.", "error")
    if ctx.notifier.send_test_email(email):
        return _redirect("/admin/surveys", f"Test email sent to {email}.")
    return _redirect("/admin/surveys", "Test email could not be sent.", "error")
