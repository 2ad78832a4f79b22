from functools import wraps
from flask import abort, current_app, jsonify, request
from flask_login import current_user


def _login_disabled() -> bool:
    return bool(current_app.config.get("LOGIN_DISABLED"))


def require_login():
    """Blueprint before_request hook: the document API is staff-only."""
    if _login_disabled() or current_user.is_authenticated:
        return None
    return _abort_smart(401)


def role_required(*roles):
    def deco(fn):
        @wraps(fn)
        def _wrap(*args, **kwargs):
            if _login_disabled():
                return fn(*args, **kwargs)
            if not current_user.is_authenticated:
                return _abort_smart(401)
            if getattr(current_user, "role", None) not in roles:
                return _abort_smart(403)
            return fn(*args, **kwargs)
        return _wrap
    return deco


def _abort_smart(code: int):
    # If the client asked for JSON, return a JSON-shaped error
    accept = (request.headers.get("Accept") or "").lower()
    if "application/json" in accept or request.is_json or request.path.endswith(".json"):
        return jsonify({"error": {401: "unauthorized", 403: "forbidden", 404: "not_found"}[code], "code": code}), code
    abort(code)
