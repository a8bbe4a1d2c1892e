"""Server-rendered admin console pages."""
from __future__ import annotations

import html
from typing import Callable, List, Optional
from urllib.parse import urlencode

from public_display import page
from question_builder import QuestionBuilder
from schemas import ResponseOut, SubmissionOut, SurveyOut, SurveyStatistics
from scoring import format_score

TokenFor = Callable[[str, int], str]

ADMIN_CSS = """
<style>
.wrap { font-family: Arial, sans-serif; max-width: 1100px; margin: 0 auto; }
table.widefat { width: 100%; border-collapse: collapse; }
table.widefat td, table.widefat th { border-bottom: 1px solid #ddd; padding: 8px; text-align: left; }
.notice { padding: 8px 12px; margin: 12px 0; border-left: 4px solid; }
.notice-success { border-color: #46b450; } .notice-error { border-color: #dc3232; }
.question-row { border: 1px solid #ddd; padding: 10px; margin: 8px 0; background: #fff; }
.row-actions a { margin-right: 6px; }
</style>
"""


def _e(value) -> str:
    return html.escape("" if value is None else str(value))


def action_url(path: str, token: str, **params) -> str:
    return f"{path}?{urlencode({**params, '_token': token})}"


def notice(message: Optional[str], kind: Optional[str]) -> str:
    if not message:
        return ""
    kind = "error" if kind == "error" else "success"
    return f'<div class="notice notice-{kind}"><p>{_e(message)}</p></div>'


def _date(value) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def render_survey_list(surveys: List[SurveyOut], counts: dict, token_for: TokenFor,
                       message: Optional[str] = None, kind: Optional[str] = None) -> str:
    rows = []
    for s in surveys:
        base = f"/admin/surveys/{s.id}"
        toggle_label = "Unpublish" if s.status == "published" else "Publish"
        rows.append(
            "<tr>"
            f'<td class="column-title"><strong><a href="{base}/edit">{_e(s.title)}</a></strong>'
            '<div class="row-actions">'
            f'<a href="{base}/edit">Edit</a>'
            f'<a href="{_e(action_url(base + "/duplicate", token_for("duplicate_survey", s.id)))}">Duplicate</a>'
            f'<a href="{_e(action_url(base + "/delete", token_for("delete_survey", s.id)))}" '
            "onclick=\"return confirm('Are you sure you want to delete this survey?')\">Delete</a>"
            "</div></td>"
            f'<td class="column-status"><span class="status-{_e(s.status)}">{_e(s.status.capitalize())}</span> '
            f'<a class="button button-small" href="{_e(action_url(base + "/toggle-status", token_for("toggle_status", s.id)))}">'
            f"{toggle_label}</a></td>"
            f'<td class="column-submissions">{counts.get(s.id, 0)} '
            f'<a class="button button-small" href="{base}/submissions">View</a></td>'
            f'<td class="column-date">{_date(s.updated_at)}</td>'
            "</tr>"
        )
    if not rows:
        rows.append('<tr class="no-items"><td colspan="4">No surveys found. '
                    '<a href="/admin/surveys/new">Create your first survey!</a></td></tr>')
    test_form = (
        '<form method="post" action="/admin/test-email" class="test-email">'
        f'<input type="hidden" name="_token" value="{_e(token_for("test_email", 0))}">'
        '<input type="email" name="email" placeholder="you@example.com" required> '
        '<button type="submit" class="button">Send test email</button></form>'
    )
    body = (
        f'{ADMIN_CSS}<div class="wrap"><h1>Surveys</h1>'
        '<a href="/admin/surveys/new" class="page-title-action">Add New</a>'
        f"{notice(message, kind)}"
        '<table class="widefat surveys"><thead><tr><th>Title</th><th>Status</th>'
        "<th>Submissions</th><th>Date</th></tr></thead>"
        f'<tbody>{"".join(rows)}</tbody></table>{test_form}</div>'
    )
    return page("Surveys", body)


def _selected(current, value) -> str:
    return " selected" if current == value else ""


def render_survey_edit(survey: Optional[SurveyOut], builder: QuestionBuilder, token: str,
                       default_colors: dict, message: Optional[str] = None, kind: Optional[str] = None) -> str:
    s = survey
    colors = {**default_colors, **((s.colors_config if s else {}) or {})}
    button = (s.button_config if s else {}) or {}
    status = s.status if s else "draft"
    scoring_method = s.scoring_method if s else "sum"
    intro_checked = " checked" if s and s.intro_enabled else ""
    btn_checked = " checked" if button.get("enabled") else ""
    color_inputs = "".join(
        f'<label>{_e(name.capitalize())}: <input type="color" name="colors[{_e(name)}]" value="{_e(value)}"></label> '
        for name, value in sorted(colors.items())
    )
    body = (
        f'{ADMIN_CSS}<div class="wrap"><h1>{"Edit Survey" if s else "Add New Survey"}</h1>'
        f"{notice(message, kind)}"
        '<form method="post" action="/admin/surveys/save" id="survey-edit-form">'
        f'<input type="hidden" name="_token" value="{_e(token)}">'
        f'<input type="hidden" name="survey_id" value="{s.id if s else 0}">'
        f'<p><input type="text" name="survey_title" id="survey-title" value="{_e(s.title if s else "")}" '
        'placeholder="Enter survey title" required></p>'
        f'<p><label>Description:<br><textarea name="survey_description" rows="4">{_e(s.description if s else "")}</textarea></label></p>'
        '<p><label for="survey_status">Status:</label> <select name="survey_status" id="survey_status">'
        f'<option value="draft"{_selected(status, "draft")}>Draft</option>'
        f'<option value="published"{_selected(status, "published")}>Published</option></select></p>'
        f'<p><label><input type="checkbox" name="intro_enabled" value="1"{intro_checked}> Enable intro page</label></p>'
        f'<p id="intro-content"{"" if intro_checked else " hidden"}><label>Intro Content:<br>'
        f'<textarea name="intro_content" rows="4">{_e(s.intro_content if s else "")}</textarea></label></p>'
        '<p><label for="scoring_method">Scoring Method:</label> <select name="scoring_method" id="scoring_method">'
        f'<option value="sum"{_selected(scoring_method, "sum")}>Sum</option>'
        f'<option value="average"{_selected(scoring_method, "average")}>Average</option></select></p>'
        f"<fieldset><legend>Colours</legend>{color_inputs}</fieldset>"
        "<fieldset><legend>Results button</legend>"
        f'<label><input type="checkbox" name="button_enabled" value="1"{btn_checked}> Show button</label> '
        f'<label>Text: <input type="text" name="button_text" value="{_e(button.get("text", ""))}"></label> '
        f'<label>URL: <input type="url" name="button_url" value="{_e(button.get("url", ""))}"></label><br>'
        f'<label>Description:<br><textarea name="button_description" rows="2">{_e(button.get("description", ""))}</textarea></label>'
        "</fieldset>"
        "<h2>Questions</h2>"
        f'<div id="questions-container" data-next-index="{builder.next_index}">{builder.render_rows()}</div>'
        f'<template id="question-template">{builder.template()}</template>'
        '<p><button type="button" class="button" id="add-question">Add Question</button></p>'
        '<p><input type="submit" name="save_survey" id="save-survey" class="button button-primary" value="Save Survey"></p>'
        "</form></div>"
    )
    return page("Edit Survey" if s else "Add New Survey", body, scripts=["/static/question-builder.js"])


def render_submissions(survey: SurveyOut, stats: SurveyStatistics, submissions: List[SubmissionOut],
                       token_for: TokenFor) -> str:
    rows = "".join(
        "<tr>"
        f'<td><a href="/admin/submissions/{sub.id}">{sub.id}</a></td>'
        f"<td>{_e(sub.user_name)}</td><td>{_e(sub.user_email)}</td>"
        f"<td>{_e(format_score(sub.total_score))}</td><td>{_e(sub.submitted_at or '')}</td>"
        f'<td><a href="{_e(action_url(f"/admin/submissions/{sub.id}/delete", token_for("delete_submission", sub.id)))}" '
        "onclick=\"return confirm('Delete this submission?')\">Delete</a></td>"
        "</tr>"
        for sub in submissions
    ) or '<tr class="no-items"><td colspan="6">No submissions yet.</td></tr>'
    average = format_score(stats.average_score) if stats.average_score is not None else "-"
    distribution = ", ".join(
        f"{int(b['score_range'])}+: {int(b['count'])}" for b in stats.score_distribution
    ) or "-"
    body = (
        f'{ADMIN_CSS}<div class="wrap"><h1>Submissions: {_e(survey.title)}</h1>'
        '<ul class="survey-stats">'
        f"<li>Total submissions: {stats.total_submissions}</li>"
        f"<li>Average score: {average}</li>"
        f"<li>Last 30 days: {stats.recent_submissions}</li>"
        f"<li>Distribution: {_e(distribution)}</li></ul>"
        f'<p><a class="button" href="/admin/surveys/{survey.id}/submissions.csv">Download CSV</a> '
        '<a href="/admin/surveys">Back to surveys</a></p>'
        '<table class="widefat"><thead><tr><th>ID</th><th>Name</th><th>Email</th><th>Score</th>'
        f"<th>Submitted</th><th></th></tr></thead><tbody>{rows}</tbody></table></div>"
    )
    return page(f"Submissions: {survey.title}", body)


def render_submission_detail(survey: SurveyOut, submission: SubmissionOut, responses: List[ResponseOut]) -> str:
    items = "".join(
        f"<tr><td>{_e(r.question_text)}</td><td>{_e(r.response_value)}</td>"
        f"<td>{_e(format_score(r.score_value))}</td></tr>"
        for r in responses
    )
    body = (
        f'{ADMIN_CSS}<div class="wrap"><h1>Submission #{submission.id}</h1>'
        f"<p><strong>Survey:</strong> {_e(survey.title)}</p>"
        f"<p><strong>Name:</strong> {_e(submission.user_name)} &lt;{_e(submission.user_email)}&gt;</p>"
        f"<p><strong>Score:</strong> {_e(format_score(submission.total_score))}</p>"
        f"<p><strong>IP:</strong> {_e(submission.ip_address)}</p>"
        '<table class="widefat"><thead><tr><th>Question</th><th>Answer</th><th>Score</th></tr></thead>'
        f"<tbody>{items}</tbody></table>"
        f'<p><a href="/admin/surveys/{survey.id}/submissions">Back to submissions</a></p></div>'
    )
    return page(f"Submission #{submission.id}", body)
