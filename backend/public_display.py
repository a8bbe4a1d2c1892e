"""Server-rendered public survey pages.

Everything here consumes plain data (``SurveyOut``, ``QuestionOut``,
``SubmissionOut``) and returns HTML strings.
"""
from __future__ import annotations

import html
import json
from typing import List, Optional

from form_flow import FormFlow, progress_percent
from notifications import call_to_action
from scoring import format_score, interpret_score
from schemas import QuestionOut, SubmissionOut, SurveyOut

PLACEHOLDER_OPTIONS = [
    {"label": "Option 1", "value": "1"},
    {"label": "Option 2", "value": "2"},
    {"label": "Option 3", "value": "3"},
]

PAGE_CSS = """
.survey-container { max-width: 720px; margin: 0 auto; font-family: Arial, sans-serif;
  color: var(--survey-text); background: var(--survey-background); padding: 24px; border-radius: 8px; }
.survey-btn { padding: 10px 20px; border: 0; border-radius: 4px; cursor: pointer; }
.survey-btn-primary { background: var(--survey-primary); color: var(--survey-secondary); }
.survey-btn-secondary { background: #ddd; color: #333; }
.survey-btn[disabled] { opacity: .6; cursor: wait; }
.survey-progress-bar { height: 8px; background: #e5e5e5; border-radius: 4px; overflow: hidden; }
.survey-progress-fill { height: 100%; background: var(--survey-primary); transition: width .3s; }
.survey-error, .error-message { color: #b32d2e; }
.rating-buttons, .yes-no-options, .multiple-choice-options { display: flex; flex-wrap: wrap; gap: 8px; }
.required { color: #b32d2e; }
.results-score .score-number { font-size: 48px; font-weight: bold; color: var(--survey-primary); }
"""


def _e(value) -> str:
    return html.escape("" if value is None else str(value))


def page(title: str, body: str, scripts: Optional[List[str]] = None) -> str:
    tags = "".join(f'<script src="{_e(src)}" defer></script>' for src in scripts or [])
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"UTF-8\">\n"
        "<meta name=\"viewport\" content=\"width=device-width, initial-scale=1.0\">\n"
        f"<title>{_e(title)}</title>\n<style>{PAGE_CSS}</style>\n{tags}\n</head>\n"
        f"<body>\n{body}\n</body>\n</html>\n"
    )


def error_block(message: str) -> str:
    return f'<div class="survey-error">{_e(message)}</div>'


def color_style(colors: dict, defaults: dict) -> str:
    merged = {**defaults, **{k: v for k, v in (colors or {}).items() if v}}
    return "; ".join(f"--survey-{_e(k)}: {_e(v)}" for k, v in sorted(merged.items()))


def render_question_input(question: QuestionOut) -> str:
    name = _e(f"responses[{question.id}]")
    required = " required" if question.required else ""
    if question.question_type == "rating":
        buttons = "".join(
            f'<label class="rating-option"><input type="radio" name="{name}" value="{i}"{required}>'
            f'<span class="rating-button">{i}</span></label>'
            for i in range(question.min_score, question.max_score + 1)
        )
        return (
            '<div class="rating-scale"><div class="rating-labels">'
            f'<span class="rating-label-min">{question.min_score}</span>'
            f'<span class="rating-label-max">{question.max_score}</span></div>'
            f'<div class="rating-buttons">{buttons}</div></div>'
        )
    if question.question_type == "yes_no":
        return (
            '<div class="yes-no-options">'
            f'<label class="yes-no-option"><input type="radio" name="{name}" value="yes"{required}>'
            '<span class="option-button yes-button">Yes</span></label>'
            f'<label class="yes-no-option"><input type="radio" name="{name}" value="no"{required}>'
            '<span class="option-button no-button">No</span></label></div>'
        )
    if question.question_type == "multiple_choice":
        options = [o.model_dump() for o in question.options] or PLACEHOLDER_OPTIONS
        choices = "".join(
            f'<label class="multiple-choice-option"><input type="radio" name="{name}" '
            f'value="{_e(o["value"])}"{required}><span class="option-text">{_e(o["label"])}</span></label>'
            for o in options
        )
        return f'<div class="multiple-choice-options">{choices}</div>'
    return f'<input type="text" name="{name}"{required}>'


def _step_actions(index: int, last: bool) -> str:
    prev = '<button type="button" class="survey-btn survey-btn-secondary prev-step">Previous</button>' if index > 0 else ""
    label = "Continue to Contact Info" if last else "Next"
    return (
        f'<div class="survey-step-actions">{prev}'
        f'<button type="button" class="survey-btn survey-btn-primary next-step">{label}</button></div>'
    )


def render_survey_form(survey: SurveyOut, questions: List[QuestionOut], token: str, submit_url: str,
                       intro_enabled: bool = False) -> str:
    flow = FormFlow.for_questions(questions, intro_enabled)
    total = flow.total_steps
    steps = []
    for index, q in enumerate(questions):
        hidden = "" if index == 0 else " hidden"
        marker = ' <span class="required">*</span>' if q.required else ""
        steps.append(
            f'<div class="survey-step" data-step="{index + 1}"{hidden}>'
            f'<h3 class="question-title">{_e(q.question_text)}{marker}</h3>'
            f'<div class="question-input">{render_question_input(q)}</div>'
            f"{_step_actions(index, index == len(questions) - 1)}</div>"
        )
    steps.append(
        f'<div class="survey-step survey-lead-capture" data-step="{total}" hidden>'
        '<h3 class="question-title">Almost Done! Please provide your contact information to see your results.</h3>'
        '<div class="form-field"><label for="user_name">Name <span class="required">*</span></label>'
        '<input type="text" name="user_name" id="user_name" required></div>'
        '<div class="form-field"><label for="user_email">Email Address <span class="required">*</span></label>'
        '<input type="email" name="user_email" id="user_email" required></div>'
        '<div class="survey-step-actions">'
        '<button type="button" class="survey-btn survey-btn-secondary prev-step">Previous</button>'
        '<button type="submit" class="survey-btn survey-btn-primary submit-survey">Submit &amp; See Results</button>'
        "</div></div>"
    )
    return (
        f'<form class="survey-form" id="survey-form-{survey.id}" method="post" action="{_e(submit_url)}" '
        f'data-flow="{_e(json.dumps(flow.client_config()))}">'
        f'<input type="hidden" name="nonce" value="{_e(token)}">'
        f'<input type="hidden" name="survey_id" value="{survey.id}">'
        '<div class="survey-progress" role="progressbar">'
        '<div class="survey-progress-bar">'
        f'<div class="survey-progress-fill" style="width: {progress_percent(1, total)}%;"></div></div>'
        f'<span class="survey-progress-text"><span class="current-step">1</span> / '
        f'<span class="total-steps">{total}</span></span></div>'
        f'<div class="survey-steps">{"".join(steps)}</div>'
        '<div class="survey-loading" hidden><p>Processing your responses...</p></div>'
        '<div class="survey-messages" role="alert"></div>'
        "</form>"
    )


def render_survey(survey: SurveyOut, questions: List[QuestionOut], token: str, submit_url: str,
                  default_colors: dict) -> str:
    """Survey container: header, optional intro, and the step form."""
    description = f'<p class="survey-description">{_e(survey.description)}</p>' if survey.description else ""
    header = f'<div class="survey-header"><h2 class="survey-title">{_e(survey.title)}</h2>{description}</div>'
    has_intro = survey.intro_enabled and bool(survey.intro_content)
    form = render_survey_form(survey, questions, token, submit_url, has_intro)
    if has_intro:
        # intro_content is stored as allowlisted HTML
        body = (
            f'<div class="survey-intro">{header}<div class="survey-intro-content">{survey.intro_content}</div>'
            '<div class="survey-actions"><button type="button" class="survey-btn survey-btn-primary" '
            'id="start-survey">Start Survey</button></div></div>'
            f'<div class="survey-form-container" hidden>{form}</div>'
        )
    else:
        body = f"{header}{form}"
    return (
        f'<div class="survey-container" data-survey-id="{survey.id}" '
        f'data-intro="{1 if has_intro else 0}" style="{color_style(survey.colors_config, default_colors)}">'
        f"{body}</div>"
    )


def render_results(survey: SurveyOut, submission: SubmissionOut, default_colors: dict) -> str:
    cta = call_to_action(survey.button_config)
    cta_html = ""
    if cta:
        description = f"<p>{cta['description']}</p>" if cta["description"] else ""
        cta_html = (
            f'<div class="results-cta">{description}'
            f'<a href="{_e(cta["url"])}" class="survey-btn survey-btn-primary survey-btn-large">{_e(cta["text"])}</a></div>'
        )
    return (
        f'<div class="survey-container survey-results" style="{color_style(survey.colors_config, default_colors)}">'
        '<div class="results-header"><h1>Thank You!</h1><p>Your survey has been submitted successfully.</p></div>'
        '<div class="results-score"><h2>Your Score</h2>'
        f'<div class="score-display"><span class="score-number">{_e(format_score(submission.total_score))}</span></div>'
        f'<div class="score-interpretation">{_e(interpret_score(submission.total_score))}</div></div>'
        f"{cta_html}"
        '<div class="results-footer"><p>You should receive an email confirmation shortly with your complete results.</p></div>'
        "</div>"
    )
