from flask import Blueprint

from app.services.policy import require_login

bp = Blueprint("invoices", __name__)
bp.before_request(require_login)

# Import submodules so their @bp.route decorators register
from . import routes  # noqa: E402,F401
