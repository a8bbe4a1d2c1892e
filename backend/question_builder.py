"""Admin question list editor.

Renders the question rows of the edit form and parses them back. The
browser adds rows from a template with an ``{{INDEX}}`` placeholder and
reorders them by drag; whatever order is posted, each saved row gets a
``sort_order`` equal to its position. Nothing is persisted until the
surrounding form is saved as a whole.
"""
from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from schemas import QUESTION_TYPES
from survey_repository import as_int

INDEX_PLACEHOLDER = "{{INDEX}}"
_FIELD_RE = re.compile(r"^questions\[(\d+|\{\{INDEX\}\})\]\[(\w+)\](\[\])?$")
TYPE_LABELS = {"rating": "Rating Scale", "yes_no": "Yes/No", "multiple_choice": "Multiple Choice"}
RANGE_TYPES = {"rating"}


@dataclass
class QuestionRow:
    id: str = ""
    question_text: str = ""
    question_type: str = "rating"
    sort_order: int = 0
    min_score: int = 0
    max_score: int = 10
    required: bool = True
    options: List[Dict[str, str]] = field(default_factory=list)

    @property
    def score_range_enabled(self) -> bool:
        return self.question_type in RANGE_TYPES

    @property
    def options_enabled(self) -> bool:
        return self.question_type == "multiple_choice"

    def to_data(self) -> dict:
        return {
            "id": self.id,
            "question_text": self.question_text,
            "question_type": self.question_type,
            "sort_order": self.sort_order,
            "min_score": self.min_score,
            "max_score": self.max_score,
            "required": self.required,
            "options": list(self.options),
        }


def _options_to_text(options) -> str:
    return "\n".join(f"{o['label']}|{o['value']}" for o in options)


def parse_options(text: str) -> List[Dict[str, str]]:
    """``label|value`` per line; a bare line uses its position as value."""
    out = []
    for n, line in enumerate((text or "").splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        label, sep, value = line.partition("|")
        out.append({"label": label.strip(), "value": value.strip() if sep else str(n)})
    return out


class QuestionBuilder:
    def __init__(self, rows: Optional[List[QuestionRow]] = None):
        self.rows: List[QuestionRow] = list(rows or [])
        self.next_index = len(self.rows)

    @classmethod
    def from_questions(cls, questions) -> "QuestionBuilder":
        rows = [
            QuestionRow(
                id=str(q.id),
                question_text=q.question_text,
                question_type=q.question_type,
                sort_order=q.sort_order,
                min_score=q.min_score,
                max_score=q.max_score,
                required=q.required,
                options=[o.model_dump() if hasattr(o, "model_dump") else dict(o) for o in q.options],
            )
            for q in questions
        ]
        return cls(rows)

    @classmethod
    def from_form(cls, form: Mapping) -> "QuestionBuilder":
        """Parse ``questions[i][field]`` keys posted by the edit form.

        Rows come back ordered by their posted ``sort_order`` (ties keep the
        posted index order) and are then renumbered.
        """
        indexed: Dict[int, Dict[str, str]] = {}
        for key in form.keys():
            m = _FIELD_RE.match(key)
            if not m or m.group(1) == INDEX_PLACEHOLDER:
                continue
            indexed.setdefault(int(m.group(1)), {})[m.group(2)] = form.get(key)
        rows = []
        for index in sorted(indexed):
            data = indexed[index]
            rows.append((
                as_int(data.get("sort_order"), index),
                index,
                QuestionRow(
                    id=(data.get("id") or "").strip(),
                    question_text=(data.get("question_text") or "").strip(),
                    question_type=(data.get("question_type") or "rating").strip(),
                    min_score=as_int(data.get("min_score"), 0),
                    max_score=as_int(data.get("max_score"), 10),
                    required=str(data.get("required", "")).lower() in ("1", "on", "true", "yes"),
                    options=parse_options(data.get("options", "")),
                ),
            ))
        builder = cls([row for _, _, row in sorted(rows, key=lambda t: (t[0], t[1]))])
        builder.renumber()
        return builder

    def renumber(self) -> None:
        for position, row in enumerate(self.rows):
            row.sort_order = position

    def to_save(self) -> List[dict]:
        return [row.to_data() for row in self.rows]

    # ------------------------
    # HTML
    # ------------------------
    def render_rows(self) -> str:
        return "".join(render_row(row, str(i)) for i, row in enumerate(self.rows))

    @staticmethod
    def template() -> str:
        return render_row(QuestionRow(), INDEX_PLACEHOLDER)


def render_row(row: QuestionRow, index: str) -> str:
    e = html.escape
    name = f"questions[{index}]"
    label = f"Question {int(index) + 1}" if index.isdigit() else "New Question"
    type_options = "".join(
        f'<option value="{t}"{" selected" if row.question_type == t else ""}>{TYPE_LABELS[t]}</option>'
        for t in QUESTION_TYPES
    )
    range_hidden = "" if row.score_range_enabled else " hidden"
    options_hidden = "" if row.options_enabled else " hidden"
    checked = " checked" if row.required else ""
    return (
        '<div class="question-row" draggable="true">'
        f'<input type="hidden" name="{name}[id]" value="{e(row.id)}">'
        f'<input type="hidden" name="{name}[sort_order]" class="sort-order" value="{row.sort_order}">'
        f'<div class="question-header"><span class="question-title">{label}</span>'
        '<button type="button" class="button button-small remove-question">Remove</button></div>'
        '<div class="question-fields">'
        f'<label>Question Text: <textarea name="{name}[question_text]" class="question-text" rows="2" required>'
        f"{e(row.question_text)}</textarea></label>"
        f'<label>Type: <select name="{name}[question_type]" class="question-type">{type_options}</select></label>'
        f'<div class="score-range"{range_hidden}>'
        f'<label>Min Score: <input type="number" name="{name}[min_score]" value="{row.min_score}"></label>'
        f'<label>Max Score: <input type="number" name="{name}[max_score]" value="{row.max_score}"></label></div>'
        f'<div class="choice-options"{options_hidden}>'
        f'<label>Options (label|score per line): <textarea name="{name}[options]" rows="3">'
        f"{e(_options_to_text(row.options))}</textarea></label></div>"
        "</div>"
        f'<p><label><input type="checkbox" name="{name}[required]" value="1"{checked}> Required question</label></p>'
        "</div>"
    )
