"""Bearer-token identity for the API.

Tokens are ``{"userId": ...}`` signed with ``SECRET_KEY``. EventSource clients
cannot set headers, so ``?token=`` is accepted as well.
"""
from flask import current_app
from flask_login import UserMixin
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .extensions import login_manager

TOKEN_SALT = "resume-evaluator-api"


class ApiUser(UserMixin):
    def __init__(self, user_id):
        self.id = str(user_id)


def _serializer():
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_token(user_id) -> str:
    return _serializer().dumps({"userId": str(user_id)})


def verify_token(token: str):
    """Return the user id carried by ``token``, or None if it is invalid or expired."""
    max_age = current_app.config.get("API_TOKEN_MAX_AGE", 86400)
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("rejected expired api token")
        return None
    except BadSignature:
        return None
    user_id = data.get("userId") if isinstance(data, dict) else None
    return str(user_id) if user_id else None


@login_manager.request_loader
def load_user_from_request(request):
    token = None
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
    if not token:
        token = request.args.get("token")
    if not token:
        return None
    user_id = verify_token(token)
    return ApiUser(user_id) if user_id else None
