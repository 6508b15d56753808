"""Durable storage for evaluation artefacts.

Two independent writes: the uploaded object (plus its ``resume_files`` row)
and the ``resume_grading`` row. Each write opens its own session so that
concurrent evaluations never share one.
"""
import uuid

from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import StorageUnavailable
from ..extensions import db
from ..models import ResumeFile, ResumeGrading
from . import storage


CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".txt": "text/plain",
}


class PersistenceGateway:

    def store_file(self, evaluation, file_bytes: bytes, extension: str):
        """Upload the file and record it. Returns ``(file_id, file_url)``."""
        file_id = str(uuid.uuid4())
        try:
            url = storage.save_bytes(
                file_bytes,
                f"{file_id}{extension}",
                prefix=f"resumes/{evaluation.user_id}",
                content_type=CONTENT_TYPES.get(extension),
            )
        except OSError as e:
            current_app.logger.exception("file upload failed for evaluation %s", evaluation.evaluation_id)
            raise StorageUnavailable(f"Failed to store uploaded file: {e}") from e

        try:
            with Session(db.engine) as session, session.begin():
                session.add(ResumeFile(
                    id=file_id,
                    user_id=evaluation.user_id,
                    storage_url=url,
                    original_filename=evaluation.original_filename or f"resume{extension}",
                    content_type=CONTENT_TYPES.get(extension),
                    size=len(file_bytes),
                ))
        except SQLAlchemyError as e:
            current_app.logger.exception("resume_files insert failed for evaluation %s", evaluation.evaluation_id)
            self._remove_object(url)
            raise StorageUnavailable("Failed to record uploaded file") from e
        return file_id, url

    def store_grading(self, evaluation) -> str:
        grading_id = str(uuid.uuid4())
        scores = evaluation.scores
        row = ResumeGrading(
            id=grading_id,
            evaluation_id=evaluation.evaluation_id,
            user_id=evaluation.user_id,
            file_id=evaluation.file_id,
            job_title=evaluation.job_title,
            job_description=evaluation.job_description,
            resume_json=evaluation.resume_data.to_dict() if evaluation.resume_data else {},
            ats_score=scores.ats,
            keyword_score=scores.keyword,
            format_score=scores.format,
            overall_score=scores.overall,
            suggestions=[s.to_dict() for s in evaluation.suggestions or []],
            review=evaluation.review,
        )
        try:
            with Session(db.engine) as session, session.begin():
                session.add(row)
        except SQLAlchemyError as e:
            current_app.logger.exception("resume_grading insert failed for evaluation %s", evaluation.evaluation_id)
            raise StorageUnavailable("Failed to save grading results") from e
        return grading_id

    def store(self, evaluation, file_bytes: bytes = None, extension: str = None):
        if evaluation.file_id is None:
            evaluation.file_id, evaluation.file_url = self.store_file(evaluation, file_bytes, extension)
        grading_id = self.store_grading(evaluation)
        return {"fileId": evaluation.file_id, "gradingId": grading_id}

    def discard_file(self, file_id: str):
        """Remove an uploaded object and its row. Failures are logged only."""
        try:
            with Session(db.engine) as session, session.begin():
                row = session.get(ResumeFile, file_id)
                if row is None:
                    return
                url = row.storage_url
                session.delete(row)
        except SQLAlchemyError:
            current_app.logger.exception("could not discard resume_files row %s", file_id)
            return
        self._remove_object(url)

    def _remove_object(self, url):
        try:
            storage.delete_url(url)
        except (OSError, ValueError, BotoCoreError, ClientError) as e:
            current_app.logger.warning("could not delete stored object %s: %s", url, e)

    def lookup(self, evaluation_id: str):
        with Session(db.engine) as session:
            row = session.scalars(
                select(ResumeGrading).where(ResumeGrading.evaluation_id == evaluation_id)
            ).first()
            return row.to_dict() if row else None

    def lookup_for_user(self, user_id: str, evaluation_id: str):
        found = self.lookup(evaluation_id)
        if found is None or found["userId"] != str(user_id):
            return None
        return found
