from flask import Blueprint

# No login gate: Stripe authenticates by signature
bp = Blueprint("webhooks", __name__)

from . import routes  # noqa: E402,F401
