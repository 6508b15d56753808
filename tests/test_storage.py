import os

import pytest
from botocore.exceptions import EndpointConnectionError

from resume_evaluator.services import storage


class FakeS3:
    def __init__(self, fail=False):
        self.fail = fail
        self.objects = {}

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        if self.fail:
            raise EndpointConnectionError(endpoint_url="https://s3.invalid")
        self.objects[(bucket, key)] = (fileobj.read(), ExtraArgs)

    def delete_object(self, Bucket, Key):
        self.objects.pop((Bucket, Key), None)


@pytest.fixture
def s3(app, monkeypatch):
    app.config.update(STORAGE_BACKEND="s3", S3_BUCKET="resumes-bucket")
    fake = FakeS3()
    monkeypatch.setattr(storage, "_s3_client", lambda: fake)
    return fake


def test_local_save_and_delete(app):
    url = storage.save_bytes(b"hello", "cv.txt", prefix="resumes/u1")
    path = url[len("file://"):]
    with open(path, "rb") as f:
        assert f.read() == b"hello"

    storage.delete_url(url)
    assert not os.path.exists(path)


def test_filenames_are_sanitized(app):
    url = storage.save_bytes(b"x", "../../etc/passwd", prefix="resumes/u1")
    assert url.startswith("file://" + os.path.abspath(app.config["LOCAL_STORAGE_DIR"]))


def test_s3_upload_and_delete(s3):
    url = storage.save_bytes(b"%PDF-1.4", "cv.pdf", prefix="resumes/u1", content_type="application/pdf")

    assert url == "s3://resumes-bucket/resumes/u1/cv.pdf"
    body, extra = s3.objects[("resumes-bucket", "resumes/u1/cv.pdf")]
    assert body == b"%PDF-1.4"
    assert extra == {"ContentType": "application/pdf"}

    storage.delete_url(url)
    assert s3.objects == {}


def test_s3_failure_falls_back_to_local(s3):
    s3.fail = True
    url = storage.save_bytes(b"data", "cv.txt", prefix="resumes/u1")
    assert url.startswith("file://")
    assert os.path.exists(url[len("file://"):])


def test_unknown_scheme(app):
    with pytest.raises(ValueError):
        storage.delete_url("ftp://host/file")
