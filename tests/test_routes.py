import io
import json

import pytest

from resume_evaluator.auth import issue_token, verify_token
from resume_evaluator.extensions import db
from resume_evaluator.schemas import StatusEvent

from .conftest import JOB_DESCRIPTION, JOB_TITLE, SAMPLE_RESUME, build_app


@pytest.fixture
def app(tmp_path):
    # no app context stays pushed, so every request gets its own ``g`` and logged-in user
    app = build_app(tmp_path)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
    app.extensions["resume_evaluator"].shutdown()


@pytest.fixture
def auth(app):
    def headers(user_id="user-1"):
        with app.app_context():
            return {"Authorization": f"Bearer {issue_token(user_id)}"}
    return headers


def _form(content=SAMPLE_RESUME.encode(), filename="resume.txt", content_type="text/plain", **fields):
    data = {"file": (io.BytesIO(content), filename, content_type),
            "jobDescription": JOB_DESCRIPTION, "jobName": JOB_TITLE}
    data.update(fields)
    return data


def _sse_events(body):
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


def test_token_round_trip(app):
    with app.app_context():
        assert verify_token(issue_token(42)) == "42"
        assert verify_token("garbage") is None


def test_requires_token(client):
    resp = client.post("/api/resumes/evaluate", data=_form(), content_type="multipart/form-data")
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Authentication required"


def test_rejects_forged_token(client):
    resp = client.get("/api/resumes/evaluations/x", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


def test_evaluate_and_fetch_result(client, auth):
    resp = client.post("/api/resumes/evaluate", data=_form(), headers=auth(),
                       content_type="multipart/form-data")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert 0 <= body["scores"]["overall"] <= 100
    assert body["suggestions"][0]["id"] == "s_001"
    assert body["resumeData"]["personalInfo"]["name"] == "Jane Doe"
    assert body["persisted"] is True

    fetched = client.get(f"/api/resumes/evaluations/{body['evaluationId']}", headers=auth())
    assert fetched.status_code == 200
    assert fetched.get_json()["gradingId"] == body["gradingId"]

    other = client.get(f"/api/resumes/evaluations/{body['evaluationId']}", headers=auth("user-2"))
    assert other.status_code == 404


def test_job_title_alias_and_mime_fallback(client, auth):
    data = _form(filename="resume", jobName="", jobTitle=JOB_TITLE)
    resp = client.post("/api/resumes/evaluate", data=data, headers=auth(), content_type="multipart/form-data")
    assert resp.status_code == 200


@pytest.mark.parametrize("overrides,status,message", [
    ({"jobDescription": ""}, 422, "Job description is required"),
    ({"jobName": ""}, 422, "Job title is required"),
    ({"filename": "virus.exe", "content_type": "application/octet-stream"}, 422, "Invalid file type"),
    ({"content": b""}, 422, "empty or invalid"),
])
def test_input_errors_are_422(client, auth, overrides, status, message):
    file_kw = {k: overrides.pop(k) for k in ("filename", "content_type", "content") if k in overrides}
    resp = client.post("/api/resumes/evaluate", data=_form(**file_kw, **overrides), headers=auth(),
                       content_type="multipart/form-data")
    assert resp.status_code == status
    assert message in resp.get_json()["error"]


def test_async_evaluation_runs_inline_without_redis(client, auth):
    resp = client.post("/api/resumes/evaluate?async=1", data=_form(), headers=auth(),
                       content_type="multipart/form-data")
    assert resp.status_code == 202
    evaluation_id = resp.get_json()["evaluationId"]

    fetched = client.get(f"/api/resumes/evaluations/{evaluation_id}", headers=auth())
    assert fetched.status_code == 200
    assert fetched.get_json()["evaluationId"] == evaluation_id


def test_async_evaluation_validates_before_enqueue(client, auth):
    resp = client.post("/api/resumes/evaluate?async=1", data=_form(jobDescription=" "), headers=auth(),
                       content_type="multipart/form-data")
    assert resp.status_code == 422
    assert resp.get_json()["errorKind"] == "MissingJobDescription"


def test_cancel_unknown_evaluation(client, auth):
    resp = client.delete("/api/resumes/evaluations/nope", headers=auth())
    assert resp.status_code == 404


def test_sse_stream_delivers_until_terminal_event(app, client, services):
    with app.app_context():
        token = issue_token("user-1")
    resp = client.get(f"/api/resumes/status/stream?evaluationId=ev-9&token={token}", buffered=False)
    assert resp.status_code == 200
    assert resp.mimetype == "text/event-stream"

    b = services.broadcaster
    b.emit("user-1", "ev-9", StatusEvent(evaluation_id="ev-9", step="upload", status="in_progress", progress=0))
    b.emit("user-2", "ev-9", StatusEvent(evaluation_id="ev-9", step="upload", status="failed"))
    b.emit("user-1", "ev-9", StatusEvent(evaluation_id="ev-9", step="completed", status="completed", progress=100))

    body = resp.get_data(as_text=True)
    resp.close()
    assert "event: resume:status" in body
    events = _sse_events(body)
    assert [(e["step"], e["status"]) for e in events] == [("upload", "in_progress"), ("completed", "completed")]
    assert b.subscriber_count("user-1") == 0


def test_long_poll_subscription_lifecycle(client, auth, services):
    created = client.post("/api/resumes/status/subscriptions", json={"evaluationId": "ev-5"}, headers=auth())
    assert created.status_code == 201
    sub_id = created.get_json()["subscriptionId"]

    services.broadcaster.emit("user-1", "ev-5",
                              StatusEvent(evaluation_id="ev-5", step="parsing", status="in_progress", progress=40))

    polled = client.get(f"/api/resumes/status/subscriptions/{sub_id}?wait=1", headers=auth())
    assert polled.status_code == 200
    assert [e["step"] for e in polled.get_json()["events"]] == ["parsing"]

    empty = client.get(f"/api/resumes/status/subscriptions/{sub_id}", headers=auth())
    assert empty.get_json()["events"] == []

    assert client.get(f"/api/resumes/status/subscriptions/{sub_id}", headers=auth("user-2")).status_code == 404
    assert client.delete(f"/api/resumes/status/subscriptions/{sub_id}", headers=auth()).status_code == 204
    assert client.get(f"/api/resumes/status/subscriptions/{sub_id}", headers=auth()).status_code == 404


def test_healthz(client):
    assert client.get("/healthz").get_json() == {"ok": True, "inFlight": 0}
