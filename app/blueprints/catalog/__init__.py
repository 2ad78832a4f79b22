from flask import Blueprint

from app.services.policy import require_login

bp = Blueprint("catalog", __name__)
bp.before_request(require_login)

from . import routes  # noqa: E402,F401
