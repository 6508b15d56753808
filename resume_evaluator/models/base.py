import uuid
from ..extensions import db


def new_id():
    return str(uuid.uuid4())


class UserScopedMixin:
    user_id = db.Column(db.String(36), nullable=False, index=True)

class TimestampMixin:
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())
