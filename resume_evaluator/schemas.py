"""Value types shared by the pipeline stages and the status channel.

Serialized forms use camelCase keys, matching what UI clients already read,
and omit fields that are None.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


STEP_UPLOAD = "upload"
STEP_PARSABILITY = "parsability_check"
STEP_OCR = "ocr"
STEP_PARSING = "parsing"
STEP_GRADING = "grading"
STEP_COMPLETED = "completed"
STEP_FAILED = "failed"
STEP_CANCELLED = "cancelled"

# ocr is nested inside parsability_check, so it shares its rank
STEP_ORDER = {
    STEP_UPLOAD: 0,
    STEP_PARSABILITY: 1,
    STEP_OCR: 1,
    STEP_PARSING: 2,
    STEP_GRADING: 3,
    STEP_COMPLETED: 4,
    STEP_FAILED: 4,
    STEP_CANCELLED: 4,
}

IN_PROGRESS = "in_progress"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

SUGGESTION_CATEGORIES = (
    "achievements", "keywords", "formatting", "experience", "education", "skills", "general",
)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


def _compact(d):
    """Drop None values recursively and camelCase the keys."""
    if isinstance(d, dict):
        return {_camel(k): _compact(v) for k, v in d.items() if v is not None}
    if isinstance(d, list):
        return [_compact(v) for v in d]
    return d


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Scores:
    overall: int
    ats: int
    keyword: int
    format: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class Suggestion:
    id: str
    title: str
    description: str
    category: str
    priority: int
    example: Optional[str] = None
    status: str = "pending"

    def to_dict(self) -> Dict[str, Any]:
        return _compact(asdict(self))


@dataclass
class PersonalInfo:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None
    website: Optional[str] = None

    def is_empty(self) -> bool:
        return all(v is None for v in asdict(self).values())


@dataclass
class ResumeData:
    """Structured parse output.

    Parsing is best-effort: a section whose heading was never found stays
    None, a section that was found but yielded no entries is an empty list.
    """
    personal_info: PersonalInfo = field(default_factory=PersonalInfo)
    experience: Optional[List[Dict[str, Any]]] = None
    education: Optional[List[Dict[str, Any]]] = None
    skills: Optional[List[str]] = None
    projects: Optional[List[Dict[str, Any]]] = None
    certifications: Optional[List[Dict[str, Any]]] = None
    awards: Optional[List[Dict[str, Any]]] = None
    raw_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return _compact(asdict(self))


@dataclass(frozen=True)
class GradingResult:
    scores: Scores
    suggestions: List[Suggestion]
    review: str
    source: str = "heuristic"


@dataclass(frozen=True)
class StatusEvent:
    evaluation_id: str
    step: str
    status: str
    details: Optional[str] = None
    progress: Optional[int] = None
    scores: Optional[Dict[str, int]] = None
    suggestions: Optional[List[Dict[str, Any]]] = None
    review: Optional[str] = None
    error: Optional[str] = None
    job_name: Optional[str] = None
    file_id: Optional[str] = None
    file_url: Optional[str] = None
    timestamp: str = field(default_factory=utcnow_iso)

    def __post_init__(self):
        if self.progress is not None:
            object.__setattr__(self, "progress", max(0, min(100, int(self.progress))))

    @property
    def terminal(self) -> bool:
        """True for the last event of a run (ocr:failed is always followed by parsability_check:failed)."""
        if self.step in (STEP_COMPLETED, STEP_CANCELLED, STEP_FAILED):
            return self.status != IN_PROGRESS
        return self.status == FAILED and self.step != STEP_OCR

    def to_dict(self) -> Dict[str, Any]:
        return _compact(asdict(self))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusEvent":
        return cls(
            evaluation_id=data["evaluationId"],
            step=data["step"],
            status=data["status"],
            details=data.get("details"),
            progress=data.get("progress"),
            scores=data.get("scores"),
            suggestions=data.get("suggestions"),
            review=data.get("review"),
            error=data.get("error"),
            job_name=data.get("jobName"),
            file_id=data.get("fileId"),
            file_url=data.get("fileUrl"),
            timestamp=data.get("timestamp") or utcnow_iso(),
        )


@dataclass
class EvaluationOutcome:
    success: bool
    evaluation_id: Optional[str] = None
    file_id: Optional[str] = None
    file_url: Optional[str] = None
    resume_data: Optional[ResumeData] = None
    scores: Optional[Scores] = None
    suggestions: Optional[List[Suggestion]] = None
    review: Optional[str] = None
    grading_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    failed_step: Optional[str] = None
    persisted: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "success": self.success,
            "evaluationId": self.evaluation_id,
            "fileId": self.file_id,
            "fileUrl": self.file_url,
            "resumeData": self.resume_data.to_dict() if self.resume_data else None,
            "scores": self.scores.to_dict() if self.scores else None,
            "suggestions": [s.to_dict() for s in self.suggestions] if self.suggestions is not None else None,
            "review": self.review,
            "gradingId": self.grading_id,
            "error": self.error,
            "errorKind": self.error_kind,
            "failedStep": self.failed_step,
            "persisted": self.persisted,
        }
        return {k: v for k, v in out.items() if v is not None}
