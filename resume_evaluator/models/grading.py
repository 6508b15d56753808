from ..extensions import db
from .base import UserScopedMixin, TimestampMixin, new_id


def _score_check(col):
    return db.CheckConstraint(f"{col} >= 0 AND {col} <= 100", name=f"ck_resume_grading_{col}")


class ResumeGrading(db.Model, UserScopedMixin, TimestampMixin):
    __tablename__ = "resume_grading"
    __table_args__ = (
        _score_check("ats_score"),
        _score_check("keyword_score"),
        _score_check("format_score"),
        _score_check("overall_score"),
        db.Index("idx_resume_grading_user_score", "user_id", "overall_score"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    evaluation_id = db.Column(db.String(36), unique=True, nullable=False, index=True)
    file_id = db.Column(db.String(36), db.ForeignKey("resume_files.id", ondelete="SET NULL"), nullable=True)
    job_title = db.Column(db.String(255), nullable=False, index=True)
    job_description = db.Column(db.Text, nullable=False)
    resume_json = db.Column(db.JSON, nullable=False)
    ats_score = db.Column(db.Integer, nullable=False)
    keyword_score = db.Column(db.Integer, nullable=False)
    format_score = db.Column(db.Integer, nullable=False)
    overall_score = db.Column(db.Integer, nullable=False, index=True)
    suggestions = db.Column(db.JSON, default=list)
    review = db.Column(db.Text)

    file = db.relationship("ResumeFile", lazy="joined")

    def to_dict(self):
        return {
            "gradingId": self.id,
            "evaluationId": self.evaluation_id,
            "userId": self.user_id,
            "fileId": self.file_id,
            "fileUrl": self.file.storage_url if self.file else None,
            "jobTitle": self.job_title,
            "jobDescription": self.job_description,
            "resumeData": self.resume_json,
            "scores": {
                "overall": self.overall_score,
                "ats": self.ats_score,
                "keyword": self.keyword_score,
                "format": self.format_score,
            },
            "suggestions": self.suggestions or [],
            "review": self.review,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
