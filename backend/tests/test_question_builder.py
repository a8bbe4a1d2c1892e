import survey_repository
from question_builder import INDEX_PLACEHOLDER, QuestionBuilder, QuestionRow, parse_options


def _form(**rows):
    """Flatten {"0": {...}} into questions[0][field] keys."""
    out = {}
    for index, fields in rows.items():
        for name, value in fields.items():
            out[f"questions[{index}][{name}]"] = value
    return out


def test_type_controls_score_range_and_options():
    row = QuestionRow()
    assert row.score_range_enabled and not row.options_enabled
    row.question_type = "multiple_choice"
    assert not row.score_range_enabled and row.options_enabled


def test_from_questions_keeps_stored_order(db, make_survey):
    sid = make_survey()
    builder = QuestionBuilder.from_questions(survey_repository.get_survey_questions(db, sid))
    assert [(r.question_type, r.sort_order) for r in builder.rows] == [("rating", 0), ("yes_no", 1)]
    html = builder.render_rows()
    assert html.index("Question 1") < html.index("Question 2")
    assert html.index("How likely") < html.index("Would you buy again?")


def test_from_form_orders_by_posted_sort_order_and_skips_template():
    form = _form(**{
        "0": {"id": "5", "question_text": "second", "question_type": "yes_no", "sort_order": "1"},
        "3": {"question_text": "first", "question_type": "rating", "sort_order": "0",
              "min_score": "1", "max_score": "5", "required": "1"},
        INDEX_PLACEHOLDER: {"question_text": "template"},
    })
    builder = QuestionBuilder.from_form(form)
    saved = builder.to_save()
    assert [q["question_text"] for q in saved] == ["first", "second"]
    assert [q["sort_order"] for q in saved] == [0, 1]
    assert saved[0]["max_score"] == 5 and saved[0]["required"] is True
    assert saved[1]["id"] == "5" and saved[1]["required"] is False


def test_from_form_renumbers_gaps_after_removed_rows():
    form = _form(**{
        "0": {"question_text": "a", "sort_order": "0"},
        "4": {"question_text": "b", "sort_order": "9"},
        "7": {"question_text": "c", "sort_order": "3"},
    })
    saved = QuestionBuilder.from_form(form).to_save()
    assert [(q["question_text"], q["sort_order"]) for q in saved] == [("a", 0), ("c", 1), ("b", 2)]


def test_from_form_tolerates_unparseable_numbers():
    form = _form(**{
        "0": {"question_text": "a", "sort_order": "1e400", "min_score": "x", "max_score": "1e400"},
        "1": {"question_text": "b", "sort_order": "0"},
    })
    saved = QuestionBuilder.from_form(form).to_save()
    # an unusable sort_order falls back to the row's posted index
    assert [q["question_text"] for q in saved] == ["a", "b"]
    assert (saved[0]["min_score"], saved[0]["max_score"]) == (0, 10)


def test_parse_options():
    assert parse_options("Low|1\nHigh | 5\n\nMaybe") == [
        {"label": "Low", "value": "1"},
        {"label": "High", "value": "5"},
        {"label": "Maybe", "value": "4"},
    ]


def test_render_rows_and_template():
    builder = QuestionBuilder([QuestionRow(question_text="<b>Rate</b>")])
    html = builder.render_rows()
    assert 'name="questions[0][question_text]"' in html
    assert "&lt;b&gt;Rate&lt;/b&gt;" in html
    assert 'class="sort-order" value="0"' in html
    assert '<div class="choice-options" hidden>' in html

    template = QuestionBuilder.template()
    assert "questions[{{INDEX}}][question_type]" in template
    assert "New Question" in template


def test_next_index_follows_rendered_rows():
    assert QuestionBuilder().next_index == 0
    assert QuestionBuilder([QuestionRow(), QuestionRow()]).next_index == 2
