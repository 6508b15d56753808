import pytest

from resume_evaluator.errors import (
    EmptyFile, FileTooLarge, InvalidFileType, MissingJobDescription, MissingJobTitle,
)
from resume_evaluator.services.validator import Validator, normalize_extension


@pytest.fixture
def validator():
    return Validator(max_file_size_mb=10)


def test_accepts_valid_inputs(validator):
    assert validator.validate(b"hello resume", ".txt", "Build APIs", "Engineer") is None


@pytest.mark.parametrize("file_type,expected", [
    (".PDF", ".pdf"),
    ("docx", ".docx"),
    ("application/pdf", ".pdf"),
    ("text/plain", ".txt"),
    ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", ".docx"),
])
def test_normalize_extension(file_type, expected):
    assert normalize_extension(file_type) == expected


def test_empty_buffer(validator):
    with pytest.raises(EmptyFile, match="empty or invalid"):
        validator.validate(b"", ".txt", "jd", "title")


def test_rejects_executable_extension(validator):
    with pytest.raises(InvalidFileType, match="Invalid file type. Allowed types: .pdf, .doc, .docx, .txt"):
        validator.validate(b"MZ\x90\x00", ".exe", "jd", "title")


def test_rejects_oversized_file(validator):
    data = b"a" * (10 * 1024 * 1024 + 1)
    with pytest.raises(FileTooLarge, match="File size exceeds maximum allowed size of 10MB"):
        validator.validate(data, ".txt", "jd", "title")


def test_exact_limit_is_allowed(validator):
    data = b"a" * (10 * 1024 * 1024)
    validator.validate(data, ".txt", "jd", "title")


def test_rejects_disguised_executable(validator):
    with pytest.raises(InvalidFileType, match="does not match"):
        validator.validate(b"MZ\x90\x00rest", ".txt", "jd", "title")


def test_rejects_pdf_without_header(validator):
    with pytest.raises(InvalidFileType, match="does not match"):
        validator.validate(b"not a pdf", ".pdf", "jd", "title")


def test_blank_job_description(validator):
    with pytest.raises(MissingJobDescription, match="Job description is required"):
        validator.validate(b"text", ".txt", "   ", "title")


def test_blank_job_title(validator):
    with pytest.raises(MissingJobTitle, match="Job title is required"):
        validator.validate(b"text", ".txt", "jd", "")


def test_file_checks_run_before_field_checks(validator):
    # an empty file is reported even when the job fields are blank too
    with pytest.raises(EmptyFile):
        validator.validate(b"", ".txt", "", "")
