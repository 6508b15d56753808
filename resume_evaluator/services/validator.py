from ..errors import (
    EmptyFile, FileTooLarge, InvalidFileType, MissingJobDescription, MissingJobTitle,
)

ALLOWED_EXTENSIONS = (".pdf", ".doc", ".docx", ".txt")

MIME_TO_EXTENSION = {
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/plain": ".txt",
}

EXECUTABLE_SIGNATURES = (b"MZ", b"\x7fELF")


def normalize_extension(file_type) -> str:
    """Map '.PDF', 'pdf' or 'application/pdf' to '.pdf'. Unknown input is returned dotted/lowercased."""
    if not file_type or not isinstance(file_type, str):
        return ""
    s = file_type.strip().lower()
    if s in MIME_TO_EXTENSION:
        return MIME_TO_EXTENSION[s]
    if "/" in s:
        return s
    return s if s.startswith(".") else f".{s}"


class Validator:
    def __init__(self, max_file_size_mb: int = 10):
        self.max_file_size_mb = max_file_size_mb

    @property
    def max_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    def validate(self, file_bytes: bytes, file_type: str, job_description: str, job_title: str):
        """Raise the first ValidationError that applies; return None when inputs are acceptable."""
        if not file_bytes:
            raise EmptyFile("File buffer is empty or invalid")

        ext = normalize_extension(file_type)
        if ext not in ALLOWED_EXTENSIONS:
            raise InvalidFileType(f"Invalid file type. Allowed types: {', '.join(ALLOWED_EXTENSIONS)}")

        if len(file_bytes) > self.max_bytes:
            raise FileTooLarge(f"File size exceeds maximum allowed size of {self.max_file_size_mb}MB")

        head = bytes(file_bytes[:8])
        if head.startswith(EXECUTABLE_SIGNATURES) or (ext == ".pdf" and not head.startswith(b"%PDF")):
            raise InvalidFileType("File content does not match declared file type")

        if not job_description or not job_description.strip():
            raise MissingJobDescription("Job description is required")

        if not job_title or not job_title.strip():
            raise MissingJobTitle("Job title is required")
