"""Resume evaluation pipeline.

One run walks ``upload -> parsability_check (-> ocr) -> parsing -> grading ->
completed``, broadcasting a status event before and after every stage. CPU
bound stages run on a bounded thread pool; storage writes run through
``asyncio.to_thread`` so the Flask app context follows them.
"""
import asyncio
import functools
import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional

from flask import current_app

from .errors import (
    DuplicateEvaluation, EvaluationCancelled, EvaluationError,
    InternalError, StageTimeout, StorageUnavailable, ValidationError,
)
from .schemas import (
    CANCELLED, COMPLETED, FAILED, IN_PROGRESS,
    STEP_CANCELLED, STEP_COMPLETED, STEP_GRADING, STEP_OCR, STEP_PARSABILITY, STEP_PARSING, STEP_UPLOAD,
    EvaluationOutcome, ResumeData, Scores, StatusEvent, Suggestion,
)
from .services.extractor import EMPTY_MESSAGE
from .services.parser import parse
from .services.validator import normalize_extension

logger = logging.getLogger(__name__)

# how often a waiting stage looks at its cancellation token
CANCEL_POLL_SECONDS = 0.05


@dataclass
class Evaluation:
    evaluation_id: str
    user_id: str
    job_title: str
    job_description: str
    file_extension: str
    original_filename: Optional[str] = None
    file_id: Optional[str] = None
    file_url: Optional[str] = None
    status: str = IN_PROGRESS
    current_step: str = STEP_UPLOAD
    resume_data: Optional[ResumeData] = None
    plain_text: Optional[str] = None
    extraction_method: str = "native"
    scores: Optional[Scores] = None
    suggestions: Optional[List[Suggestion]] = None
    review: Optional[str] = None


class CancellationToken:
    """Set from any thread; checked by the run at each suspension point."""

    def __init__(self, owner: str = None):
        self.owner = owner
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str):
        if self.cancelled:
            raise EvaluationCancelled("Resume evaluation cancelled", stage=stage)


class PipelineOrchestrator:
    def __init__(self, validator, extractor, grader, gateway, broadcaster, parser=parse,
                 workers: int = 4, stage_timeout: float = 60,
                 extraction_timeout: float = None, grading_timeout: float = None):
        self.validator = validator
        self.extractor = extractor
        self.grader = grader
        self.gateway = gateway
        self.broadcaster = broadcaster
        self.parse = parser
        self.stage_timeout = stage_timeout
        self.extraction_timeout = extraction_timeout or stage_timeout
        self.grading_timeout = grading_timeout or stage_timeout
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="resume-pipeline")
        self._lock = threading.Lock()
        self._inflight: Dict[str, CancellationToken] = {}

    def shutdown(self):
        self._executor.shutdown(wait=False)

    def in_flight(self) -> List[str]:
        with self._lock:
            return list(self._inflight)

    def cancel(self, evaluation_id: str, user_id=None) -> bool:
        """Request cancellation of a running evaluation.

        Returns False if it is not running or, when ``user_id`` is given, not owned by that user.
        """
        with self._lock:
            token = self._inflight.get(evaluation_id)
        if token is None or (user_id is not None and token.owner != str(user_id)):
            return False
        token.cancel()
        return True

    async def evaluate_resume(self, file_bytes: bytes, file_extension: str, user_id, job_description: str,
                              job_title: str, evaluation_id: str = None,
                              original_filename: str = None) -> EvaluationOutcome:
        evaluation_id = evaluation_id or str(uuid.uuid4())
        token = CancellationToken(owner=str(user_id))
        with self._lock:
            if evaluation_id in self._inflight:
                err = DuplicateEvaluation(f"Evaluation {evaluation_id} is already in progress")
                return EvaluationOutcome(success=False, evaluation_id=evaluation_id,
                                         error=err.message, error_kind=err.kind)
            self._inflight[evaluation_id] = token

        evaluation = Evaluation(
            evaluation_id=evaluation_id,
            user_id=str(user_id),
            job_title=(job_title or "").strip(),
            job_description=job_description or "",
            file_extension=file_extension,
            original_filename=original_filename,
        )
        try:
            return await self._run(evaluation, file_bytes or b"", token)
        finally:
            with self._lock:
                self._inflight.pop(evaluation_id, None)

    async def _run(self, ev: Evaluation, file_bytes: bytes, token: CancellationToken) -> EvaluationOutcome:
        try:
            try:
                self.validator.validate(file_bytes, ev.file_extension, ev.job_description, ev.job_title)
            except ValidationError as e:
                e.stage = STEP_UPLOAD
                raise
            ext = normalize_extension(ev.file_extension)

            await self._upload(ev, file_bytes, ext, token)
            await self._check_parsability(ev, file_bytes, ext, token)
            await self._parse(ev, token)
            await self._grade(ev, token)
            return await self._complete(ev, token)
        except EvaluationCancelled as e:
            return await self._cancelled(ev, e)
        except asyncio.CancelledError:
            # the surrounding task was cancelled; report it, then let it unwind
            self._emit(ev, STEP_CANCELLED, CANCELLED, details="Resume evaluation cancelled")
            if ev.file_id:
                self.gateway.discard_file(ev.file_id)
            raise
        except EvaluationError as e:
            return await self._failed(ev, e)
        except Exception:
            logger.exception("resume evaluation %s failed unexpectedly during %s", ev.evaluation_id, ev.current_step)
            err = InternalError(f"Resume evaluation failed during {ev.current_step}", stage=ev.current_step)
            return await self._failed(ev, err)

    # stages

    async def _upload(self, ev, file_bytes, ext, token):
        token.raise_if_cancelled(STEP_UPLOAD)
        self._emit(ev, STEP_UPLOAD, IN_PROGRESS, details="Uploading resume file", progress=0)
        # storage writes are not interruptible; cancellation is honoured once they return
        ev.file_id, ev.file_url = await asyncio.to_thread(self.gateway.store_file, ev, file_bytes, ext)
        token.raise_if_cancelled(STEP_UPLOAD)
        self._emit(ev, STEP_UPLOAD, COMPLETED, details="Resume uploaded successfully", progress=10,
                   file_id=ev.file_id, file_url=ev.file_url)

    async def _check_parsability(self, ev, file_bytes, ext, token):
        ev.current_step = STEP_PARSABILITY
        token.raise_if_cancelled(STEP_PARSABILITY)
        self._emit(ev, STEP_PARSABILITY, IN_PROGRESS, details="Checking parsability", progress=10)
        direct = await self._bounded(self._cpu(self.extractor.extract_direct, file_bytes, ext),
                                     STEP_PARSABILITY, self.extraction_timeout, token)
        ocr_result = None
        if direct.needs_ocr:
            ocr_result = await self._ocr(ev, file_bytes, token)
        result = self.extractor.finalize(direct, ocr_result)
        ev.plain_text = result.text
        ev.extraction_method = result.method
        details = "Text extracted with OCR" if result.method == "ocr" else "Document is parsable"
        self._emit(ev, STEP_PARSABILITY, COMPLETED, details=details, progress=35)

    async def _ocr(self, ev, file_bytes, token):
        self._emit(ev, STEP_OCR, IN_PROGRESS,
                   details="Running OCR because file is not directly parsable", progress=15)
        try:
            result = await self._bounded(self._cpu(self.extractor.ocr, file_bytes),
                                         STEP_OCR, self.extraction_timeout, token)
        except EvaluationCancelled:
            raise
        except EvaluationError as e:
            self._emit(ev, STEP_OCR, FAILED, details=e.message, error=e.message)
            e.stage = STEP_PARSABILITY
            raise
        if not result.text.strip():
            # finalize() falls back to the text layer and fails only if that is empty too
            self._emit(ev, STEP_OCR, FAILED, details=EMPTY_MESSAGE, error=EMPTY_MESSAGE)
            return result
        self._emit(ev, STEP_OCR, COMPLETED, details="OCR extraction completed", progress=30)
        return result

    async def _parse(self, ev, token):
        ev.current_step = STEP_PARSING
        token.raise_if_cancelled(STEP_PARSING)
        self._emit(ev, STEP_PARSING, IN_PROGRESS, details="Parsing resume content", progress=40)
        ev.resume_data = await self._bounded(self._cpu(self.parse, ev.plain_text),
                                             STEP_PARSING, self.stage_timeout, token)
        self._emit(ev, STEP_PARSING, COMPLETED, details="Resume parsed successfully", progress=60)

    async def _grade(self, ev, token):
        ev.current_step = STEP_GRADING
        token.raise_if_cancelled(STEP_GRADING)
        self._emit(ev, STEP_GRADING, IN_PROGRESS, details="Grading resume against job description", progress=60)
        result = await self._bounded(
            self._cpu(self.grader.grade, ev.resume_data, ev.plain_text, ev.job_description, ev.job_title,
                      ev.extraction_method),
            STEP_GRADING, self.grading_timeout, token)
        ev.scores = result.scores
        ev.suggestions = result.suggestions
        ev.review = result.review
        self._emit(ev, STEP_GRADING, COMPLETED, details="Resume graded successfully", progress=90,
                   scores=ev.scores.to_dict())

    async def _complete(self, ev, token):
        token.raise_if_cancelled(STEP_GRADING)
        grading_id = None
        storage_error = None
        try:
            grading_id = await asyncio.to_thread(self.gateway.store_grading, ev)
        except StorageUnavailable as e:
            # results are still returned; only the durable record is missing
            logger.warning("evaluation %s completed without a stored grading row: %s", ev.evaluation_id, e)
            storage_error = e.message

        ev.current_step = STEP_COMPLETED
        ev.status = COMPLETED
        suggestions = [s.to_dict() for s in ev.suggestions]
        self._emit(ev, STEP_COMPLETED, COMPLETED,
                   details="Resume evaluation completed" if grading_id else
                   "Resume evaluation completed, but results could not be saved",
                   progress=100, scores=ev.scores.to_dict(), suggestions=suggestions, review=ev.review,
                   file_id=ev.file_id, file_url=ev.file_url)
        return EvaluationOutcome(
            success=True,
            evaluation_id=ev.evaluation_id,
            file_id=ev.file_id,
            file_url=ev.file_url,
            resume_data=ev.resume_data,
            scores=ev.scores,
            suggestions=ev.suggestions,
            review=ev.review,
            grading_id=grading_id,
            error=storage_error,
            persisted=grading_id is not None,
        )

    # terminal states

    async def _failed(self, ev, err: EvaluationError) -> EvaluationOutcome:
        stage = err.stage or ev.current_step
        ev.status = FAILED
        self._emit(ev, stage, FAILED, details=err.message, error=err.message)
        await self._discard(ev)
        return EvaluationOutcome(success=False, evaluation_id=ev.evaluation_id, error=err.message,
                                 error_kind=err.kind, failed_step=stage)

    async def _cancelled(self, ev, err: EvaluationCancelled) -> EvaluationOutcome:
        stage = err.stage or ev.current_step
        ev.status = CANCELLED
        ev.current_step = STEP_CANCELLED
        self._emit(ev, STEP_CANCELLED, CANCELLED, details=err.message)
        await self._discard(ev)
        return EvaluationOutcome(success=False, evaluation_id=ev.evaluation_id, error=err.message,
                                 error_kind=err.kind, failed_step=stage)

    async def _discard(self, ev):
        if ev.file_id:
            await asyncio.to_thread(self.gateway.discard_file, ev.file_id)
            ev.file_id = ev.file_url = None

    # helpers

    def _cpu(self, fn, *args):
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._executor, functools.partial(fn, *args))

    async def _bounded(self, future, stage: str, timeout: float, token: CancellationToken):
        """Await ``future`` while watching the stage deadline and the cancellation token.

        On timeout or cancel the run moves on, but a stage function that has
        already started keeps its executor thread until it returns. Stage
        functions must therefore finish in bounded time on any input, and
        ``PIPELINE_WORKERS`` should leave headroom for a few such stragglers.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = max(0.0, deadline - loop.time())
            done, _ = await asyncio.wait({future}, timeout=min(CANCEL_POLL_SECONDS, remaining))
            if done:
                return future.result()
            if token.cancelled:
                future.cancel()
                raise EvaluationCancelled("Resume evaluation cancelled", stage=stage)
            if loop.time() >= deadline:
                future.cancel()
                raise StageTimeout(f"{stage} timed out after {timeout:g} seconds", stage=stage)

    def _emit(self, ev, step, status, **fields):
        event = StatusEvent(evaluation_id=ev.evaluation_id, step=step, status=status,
                            job_name=ev.job_title or None, **fields)
        self.broadcaster.emit(ev.user_id, ev.evaluation_id, event)


async def evaluate_resume(file_bytes: bytes, file_extension: str, user_id, job_description: str,
                          job_title: str, **kwargs) -> EvaluationOutcome:
    """Run an evaluation with the current app's orchestrator."""
    orchestrator = current_app.extensions["resume_evaluator"].orchestrator
    return await orchestrator.evaluate_resume(file_bytes, file_extension, user_id, job_description,
                                              job_title, **kwargs)
