import os
from flask import Flask, jsonify, request

# Load .env only for local/dev. In prod, env vars come from the platform.
if os.getenv("APP_ENV", "development") != "production":
    from dotenv import load_dotenv
    load_dotenv(".env", override=False)


from .config import get_config
from .extensions import db, migrate, csrf, login_manager, limiter, mail
from .security import init_security
from .observability import init_logging, init_sentry


def create_app(config_overrides=None):
    app = Flask(__name__, template_folder="templates")

    # ---- Rate limiting storage ----
    app_env = (os.getenv("APP_ENV", "development") or "development").lower()
    use_redis = app_env in ("staging", "production")
    storage_uri = os.environ.get("REDIS_URL") if use_redis else "memory://"
    if use_redis and not storage_uri:
        # Hard fail in stage/prod so we never silently run without RL storage
        raise RuntimeError("REDIS_URL is required in staging/production for rate limiting")
    app.config["RATELIMIT_STORAGE_URI"] = storage_uri
    app.config.setdefault("RATELIMIT_DEFAULTS", ["1000 per hour"])
    app.config.setdefault("RATELIMIT_HEADERS_ENABLED", True)

    # Config: clean, explicit, class-based
    app.config.from_object(get_config())
    if config_overrides:
        app.config.update(config_overrides)

    # --- Required env validation for prod-like envs (staging/production) ---
    def _require(name: str):
        val = os.getenv(name) or app.config.get(name)
        if not val:
            raise RuntimeError(f"Missing required environment variable: {name}")
        return val

    if app_env in ("staging", "production"):
        _require("SECRET_KEY")
        _require("DATABASE_URL")
        _require("STRIPE_SECRET_KEY")
        _require("STRIPE_WEBHOOK_SECRET")

    # --- Observability & Security ---
    init_logging(app)
    init_sentry(app)
    if app_env in ("staging", "production"):
        init_security(app)

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db, directory="migrations")
    csrf.init_app(app)
    login_manager.init_app(app)
    limiter.init_app(app)
    mail.init_app(app)

    from . import models  # noqa: F401  (registers tables and the user loader)

    # Blueprints (explicit, consistent prefixes)
    from .blueprints.estimates import bp as estimates_bp
    from .blueprints.change_orders import bp as change_orders_bp
    from .blueprints.invoices import bp as invoices_bp
    from .blueprints.service_calls import bp as service_calls_bp
    from .blueprints.catalog import bp as catalog_bp
    from .blueprints.webhooks import bp as webhooks_bp

    app.register_blueprint(estimates_bp, url_prefix="/estimates")
    app.register_blueprint(change_orders_bp, url_prefix="/change-orders")
    app.register_blueprint(invoices_bp, url_prefix="/invoices")
    app.register_blueprint(service_calls_bp, url_prefix="/service-calls")
    app.register_blueprint(catalog_bp, url_prefix="/catalog")
    app.register_blueprint(webhooks_bp, url_prefix="/webhooks")

    # JSON API: bodies are authenticated by session cookie + SameSite, not form tokens
    for bp in (estimates_bp, change_orders_bp, invoices_bp, service_calls_bp):
        csrf.exempt(bp)

    # Health
    @app.get("/healthz")
    @limiter.exempt
    def healthz():
        return {"status": "ok"}, 200

    _register_error_handlers(app)

    # CLI commands (ops-grade utilities)
    from .cli import register_cli
    register_cli(app)

    if not app.config.get("STRIPE_SECRET_KEY"):
        app.logger.warning("Stripe secret key missing; online invoice payment will not work")

    return app


def _register_error_handlers(app):
    from flask_wtf.csrf import CSRFError
    from sqlalchemy.orm.exc import StaleDataError
    from app.services.errors import ServiceError

    @app.errorhandler(ServiceError)
    def handle_service_error(e):
        db.session.rollback()
        app.logger.info("%s %s -> %s: %s", request.method, request.path, e.code, e)
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(StaleDataError)
    def handle_stale(e):
        # version_id_col mismatch: someone else saved this document first
        db.session.rollback()
        app.logger.warning("%s %s -> conflict: %s", request.method, request.path, e)
        return jsonify({"error": "conflict", "message": "document was changed by another request; reload and retry"}), 409

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "not_found", "message": "resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "method_not_allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "server_error", "message": "internal server error"}), 500

    # CSRF error handler (clean 400 instead of generic 500)
    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        return jsonify({"error": "csrf_failed", "message": e.description}), 400

    # 429 Too Many Requests with Retry-After
    @app.errorhandler(429)
    def too_many_requests(e):
        retry_after = getattr(e, "retry_after", None)
        headers = {}
        payload = {"error": "rate_limited", "code": 429}
        if retry_after is not None:
            headers["Retry-After"] = str(int(retry_after))
            payload["retry_after"] = int(retry_after)
        return (payload, 429, headers)
