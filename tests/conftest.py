import pytest

from config import Config
from resume_evaluator import create_app
from resume_evaluator.extensions import db


SAMPLE_RESUME = """Jane Doe
jane.doe@example.com
(555) 123-4567
linkedin.com/in/janedoe
github.com/janedoe

Summary
Backend engineer with 6 years of experience building Python services and data APIs.

Experience
Senior Software Engineer at Acme Corp  Jan 2020 - Present
- Built REST API services in Python and Flask serving 2 million users
- Reduced response latency by 35% by adding Redis caching
- Led a team of 4 engineers migrating 12 services to Docker and Kubernetes on AWS

Software Engineer at Beta LLC  Jun 2016 - Dec 2019
- Designed PostgreSQL schemas for the billing platform
- Automated deployments with CI/CD pipelines, cutting release time by 50%

Education
University of Somewhere
Bachelor of Science in Computer Science, 2012 - 2016, GPA 3.8

Skills
Python, Flask, PostgreSQL, Docker, AWS, Redis, Kubernetes, Git

Projects
Resume Parser - Tool that extracts structured data from resumes using Python and NLP
Job Board - Flask application with PostgreSQL full text search

Certifications
AWS Certified Developer 2021
"""

JOB_DESCRIPTION = (
    "We are hiring a Backend Engineer to build Python services. You will design REST API endpoints "
    "with Flask, model data in PostgreSQL, and deploy with Docker and Kubernetes on AWS. "
    "3+ years of Python experience required. Redis and CI/CD experience is a plus."
)
JOB_TITLE = "Backend Engineer"


def build_app(tmp_path):
    class TestConfig(Config):
        TESTING = True
        SECRET_KEY = "test-secret"
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'test.db'}"
        STORAGE_BACKEND = "local"
        LOCAL_STORAGE_DIR = str(tmp_path / "storage")
        REDIS_URL = None
        STATUS_RELAY = "local"
        GRADER_BACKEND = "heuristic"
        OPENAI_API_KEY = None
        OCR_ENABLED = True
        STATUS_HEARTBEAT_SECONDS = 0.05
        STAGE_TIMEOUT_SECONDS = 10
        EXTRACTION_TIMEOUT_SECONDS = 10
        GRADING_TIMEOUT_SECONDS = 10

    return create_app(TestConfig)


@pytest.fixture
def app(tmp_path):
    app = build_app(tmp_path)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
    app.extensions["resume_evaluator"].shutdown()


@pytest.fixture
def services(app):
    return app.extensions["resume_evaluator"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def resume_bytes():
    return SAMPLE_RESUME.encode("utf-8")


@pytest.fixture
def fake_pdf(monkeypatch):
    """Stub pdfplumber/pytesseract so PDF handling runs without Tesseract.

    Returns a dict; set ``text_layer`` (per page) and ``ocr_text`` before use.
    """
    from types import SimpleNamespace
    from resume_evaluator.services import extractor as extractor_mod

    state = {"text_layer": [""], "ocr_text": "", "ocr_calls": 0}

    class FakePage:
        def __init__(self, text):
            self._text = text

        def extract_text(self):
            return self._text

        def to_image(self, resolution=None):
            return SimpleNamespace(original=object())

    class FakePdf:
        def __init__(self, pages):
            self.pages = pages

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

    def fake_open(fp):
        return FakePdf([FakePage(t) for t in state["text_layer"]])

    def fake_ocr(img, lang=None):
        state["ocr_calls"] += 1
        return state["ocr_text"]

    monkeypatch.setattr(extractor_mod.pdfplumber, "open", fake_open)
    monkeypatch.setattr(extractor_mod.pytesseract, "image_to_string", fake_ocr)
    return state
