import os

import pytest
from sqlalchemy.exc import OperationalError

from resume_evaluator.errors import StorageUnavailable
from resume_evaluator.extensions import db
from resume_evaluator.models import ResumeFile, ResumeGrading
from resume_evaluator.pipeline import Evaluation
from resume_evaluator.services.grader import Grader
from resume_evaluator.services.parser import parse

from .conftest import JOB_DESCRIPTION, JOB_TITLE, SAMPLE_RESUME


@pytest.fixture
def evaluation():
    ev = Evaluation(evaluation_id="ev-1", user_id="user-1", job_title=JOB_TITLE,
                    job_description=JOB_DESCRIPTION, file_extension=".txt", original_filename="cv.txt")
    ev.resume_data = parse(SAMPLE_RESUME)
    result = Grader().grade(ev.resume_data, SAMPLE_RESUME, JOB_DESCRIPTION, JOB_TITLE)
    ev.scores, ev.suggestions, ev.review = result.scores, result.suggestions, result.review
    return ev


def _path(url):
    assert url.startswith("file://")
    return url[len("file://"):]


def test_store_file_writes_object_and_row(app, services, evaluation):
    file_id, url = services.gateway.store_file(evaluation, b"resume text", ".txt")

    assert os.path.exists(_path(url))
    assert f"resumes/user-1/{file_id}.txt" in url
    row = db.session.get(ResumeFile, file_id)
    assert row.user_id == "user-1"
    assert row.original_filename == "cv.txt"
    assert row.content_type == "text/plain"
    assert row.size == len(b"resume text")


def test_store_composite_writes_file_then_grading(app, services, evaluation):
    out = services.gateway.store(evaluation, b"resume text", ".txt")

    assert out["fileId"] == evaluation.file_id
    row = db.session.get(ResumeGrading, out["gradingId"])
    assert row.evaluation_id == "ev-1"
    assert row.file_id == evaluation.file_id
    assert row.overall_score == evaluation.scores.overall
    assert row.resume_json["personalInfo"]["email"] == "jane.doe@example.com"
    assert row.suggestions[0]["id"] == "s_001"


def test_store_skips_file_already_uploaded(app, services, evaluation):
    evaluation.file_id, evaluation.file_url = services.gateway.store_file(evaluation, b"resume text", ".txt")
    services.gateway.store(evaluation)
    assert ResumeFile.query.count() == 1


def test_lookup_checks_owner(app, services, evaluation):
    services.gateway.store(evaluation, b"resume text", ".txt")

    found = services.gateway.lookup_for_user("user-1", "ev-1")
    assert found["scores"] == evaluation.scores.to_dict()
    assert found["fileUrl"] == evaluation.file_url
    assert found["jobTitle"] == JOB_TITLE
    assert services.gateway.lookup_for_user("user-2", "ev-1") is None
    assert services.gateway.lookup("missing") is None


def test_second_grading_for_same_evaluation_is_rejected(app, services, evaluation):
    services.gateway.store(evaluation, b"resume text", ".txt")
    with pytest.raises(StorageUnavailable, match="Failed to save grading results"):
        services.gateway.store_grading(evaluation)


def test_discard_file_removes_object_and_row(app, services, evaluation):
    file_id, url = services.gateway.store_file(evaluation, b"resume text", ".txt")
    services.gateway.discard_file(file_id)

    assert not os.path.exists(_path(url))
    assert db.session.get(ResumeFile, file_id) is None
    # unknown ids are ignored
    services.gateway.discard_file("does-not-exist")


def test_unreachable_database_raises_storage_unavailable(app, services, evaluation, monkeypatch, caplog):
    def broken(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr("resume_evaluator.services.gateway.Session.add", broken)
    with pytest.raises(StorageUnavailable):
        services.gateway.store_file(evaluation, b"resume text", ".txt")
    # the object written before the failed insert is cleaned up
    root = app.config["LOCAL_STORAGE_DIR"]
    assert [f for _, _, files in os.walk(root) for f in files] == []
    assert any(r.name == app.logger.name and "resume_files insert failed" in r.getMessage()
               for r in caplog.records)
