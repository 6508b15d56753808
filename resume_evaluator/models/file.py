from ..extensions import db
from .base import UserScopedMixin, new_id

class ResumeFile(db.Model, UserScopedMixin):
    __tablename__ = "resume_files"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    # UserScopedMixin: user_id
    storage_url = db.Column(db.String(512), nullable=False)  # s3://bucket/key or file:///abs/path
    original_filename = db.Column(db.String(255))
    content_type = db.Column(db.String(128))
    size = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)
