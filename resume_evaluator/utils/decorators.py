from functools import wraps
from flask import jsonify
from flask_login import current_user


def token_required(view):
    """Like ``login_required`` but answers API clients with a JSON 401."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({"success": False, "error": "Authentication required"}), 401
        return view(*args, **kwargs)
    return wrapped
