from fastapi.testclient import TestClient

import submission_service
import survey_repository
from security import verify_admin


def _answer(db, sid):
    q1, q2 = survey_repository.get_survey_questions(db, sid)
    return submission_service.create_submission(db, sid, "Ana", "ana@example.com", {q1.id: "8", q2.id: "no"})


def test_admin_requires_api_key(app):
    app.dependency_overrides.pop(verify_admin, None)
    client = TestClient(app)
    assert client.get("/admin/surveys").status_code == 401
    assert client.get("/admin/surveys", headers={"X-API-Key": "wrong"}).status_code == 401
    assert client.get("/admin/surveys", headers={"X-API-Key": "test-key"}).status_code == 200
    client.cookies.set("admin_api_key", "test-key")
    assert client.get("/admin/surveys").status_code == 200


def test_survey_list_shows_counts_and_actions(client, db, make_survey):
    sid = make_survey()
    _answer(db, sid)
    html = client.get("/admin/surveys?message=Saved&type=success").text
    assert "Customer Check" in html
    assert f"/admin/surveys/{sid}/duplicate?_token=" in html
    assert 'class="column-submissions">1 ' in html
    assert "notice-success" in html


def test_create_survey_through_edit_form(client, ctx, db):
    assert 'id="question-template"' in client.get("/admin/surveys/new").text
    form = {
        "_token": ctx.tokens.make("save_survey", 0),
        "survey_id": "0",
        "survey_title": "Onboarding",
        "survey_status": "published",
        "scoring_method": "sum",
        "colors[primary]": "#123456",
        "button_enabled": "1",
        "button_text": "Next steps",
        "button_url": "https://example.com/next",
        "questions[0][question_text]": "How clear was setup?",
        "questions[0][question_type]": "rating",
        "questions[0][sort_order]": "0",
        "questions[0][min_score]": "1",
        "questions[0][max_score]": "5",
        "questions[0][required]": "1",
        "questions[2][question_text]": "Pick a plan",
        "questions[2][question_type]": "multiple_choice",
        "questions[2][sort_order]": "1",
        "questions[2][options]": "Basic|1\nPro|3",
    }
    r = client.post("/admin/surveys/save", data=form, follow_redirects=False)
    assert r.status_code == 303
    assert "/edit?message=Survey+saved+successfully." in r.headers["location"]

    detail = client.get(r.headers["location"].split("?")[0].replace("/edit", "/detail")).json()
    assert detail["survey"]["title"] == "Onboarding"
    assert detail["survey"]["colors_config"] == {"primary": "#123456"}
    assert detail["survey"]["button_config"]["url"] == "https://example.com/next"
    assert [q["question_text"] for q in detail["questions"]] == ["How clear was setup?", "Pick a plan"]
    assert detail["questions"][1]["options"] == [{"label": "Basic", "value": "1"}, {"label": "Pro", "value": "3"}]


def test_save_with_bad_question_rerenders_form(client, ctx, make_survey):
    sid = make_survey()
    form = {
        "_token": ctx.tokens.make("save_survey", sid),
        "survey_id": str(sid),
        "survey_title": "Customer Check",
        "questions[0][question_text]": "Backwards",
        "questions[0][question_type]": "rating",
        "questions[0][min_score]": "9",
        "questions[0][max_score]": "1",
    }
    r = client.post("/admin/surveys/save", data=form)
    assert r.status_code == 400
    assert "Minimum score cannot exceed maximum score" in r.text


def test_save_rejects_token_for_other_survey(client, ctx, make_survey):
    sid = make_survey()
    form = {"_token": ctx.tokens.make("save_survey", 0), "survey_id": str(sid), "survey_title": "Hijack"}
    assert client.post("/admin/surveys/save", data=form).status_code == 403


def test_duplicate_toggle_and_delete(client, ctx, db, make_survey):
    sid = make_survey()
    _answer(db, sid)

    r = client.get(f"/admin/surveys/{sid}/duplicate?_token={ctx.tokens.make('duplicate_survey', sid)}",
                   follow_redirects=False)
    assert r.status_code == 303
    copy_id = int(r.headers["location"].split("/")[3])
    assert survey_repository.get_survey(db, copy_id).title == "Customer Check (Copy)"

    r = client.get(f"/admin/surveys/{copy_id}/toggle-status?_token={ctx.tokens.make('toggle_status', copy_id)}",
                   follow_redirects=False)
    assert "Survey+published+successfully." in r.headers["location"]
    db.expire_all()
    assert survey_repository.get_survey(db, copy_id).status == "published"

    # a token for one action does not authorize another
    bad = client.get(f"/admin/surveys/{sid}/delete?_token={ctx.tokens.make('duplicate_survey', sid)}")
    assert bad.status_code == 403

    r = client.get(f"/admin/surveys/{sid}/delete?_token={ctx.tokens.make('delete_survey', sid)}",
                   follow_redirects=False)
    assert r.status_code == 303
    assert "Survey+deleted+successfully." in r.headers["location"]
    db.expire_all()
    assert survey_repository.get_survey(db, sid) is None
    assert submission_service.count_submissions(db, sid) == 0


def test_submissions_pages(client, ctx, db, make_survey):
    sid = make_survey()
    sub_id = _answer(db, sid)

    html = client.get(f"/admin/surveys/{sid}/submissions").text
    assert "Total submissions: 1" in html
    assert "ana@example.com" in html

    stats = client.get(f"/admin/surveys/{sid}/statistics").json()
    assert stats["total_submissions"] == 1 and stats["average_score"] == 8.0

    detail = client.get(f"/admin/submissions/{sub_id}").text
    assert "How likely are you to recommend us?" in detail

    r = client.get(f"/admin/submissions/{sub_id}/delete?_token={ctx.tokens.make('delete_submission', sub_id)}",
                   follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == f"/admin/surveys/{sid}/submissions"
    assert submission_service.get_submission(db, sub_id) is None
    assert client.get(f"/admin/submissions/{sub_id}").status_code == 404


def test_unknown_survey_is_404(client):
    assert client.get("/admin/surveys/9999/edit").status_code == 404
    assert client.get("/admin/surveys/9999/detail").status_code == 404
    assert client.get("/admin/surveys/9999/statistics").status_code == 404


def test_send_test_email(client, ctx, mailer):
    r = client.post("/admin/test-email", data={"_token": ctx.tokens.make("test_email", 0),
                                                "email": "me@example.com"}, follow_redirects=False)
    assert r.status_code == 303
    assert "Test+email+sent" in r.headers["location"]
    assert mailer.sent[-1]["to"] == "me@example.com"

    mailer.ok = False
    r = client.post("/admin/test-email", data={"_token": ctx.tokens.make("test_email", 0),
                                                "email": "me@example.com"}, follow_redirects=False)
    assert "type=error" in r.headers["location"]
