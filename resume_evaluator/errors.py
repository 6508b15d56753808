"""Error taxonomy for the evaluation pipeline.

Every error carries a stable ``kind`` (reported to clients as ``errorKind``)
and, once the orchestrator has caught it, the ``stage`` it failed in.
"""


class EvaluationError(Exception):
    kind = "EvaluationError"

    def __init__(self, message, stage=None):
        super().__init__(message)
        self.message = message
        self.stage = stage


# input errors: raised before any stage runs, never retried

class ValidationError(EvaluationError):
    kind = "ValidationError"


class EmptyFile(ValidationError):
    kind = "EmptyFile"


class FileTooLarge(ValidationError):
    kind = "FileTooLarge"


class InvalidFileType(ValidationError):
    kind = "InvalidFileType"


class MissingJobDescription(ValidationError):
    kind = "MissingJobDescription"


class MissingJobTitle(ValidationError):
    kind = "MissingJobTitle"


# extraction errors

class ExtractionError(EvaluationError):
    kind = "ExtractionError"


class UnsupportedFormat(ExtractionError):
    kind = "UnsupportedFormat"


class ExtractionEmpty(ExtractionError):
    kind = "ExtractionEmpty"


class StorageUnavailable(EvaluationError):
    kind = "StorageUnavailable"


class StageTimeout(EvaluationError):
    kind = "Timeout"


class EvaluationCancelled(EvaluationError):
    kind = "Cancelled"


class DuplicateEvaluation(EvaluationError):
    kind = "DuplicateEvaluation"


class InternalError(EvaluationError):
    """Unexpected failure; the message is already sanitized for clients."""
    kind = "InternalError"
