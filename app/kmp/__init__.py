import logging
import os
from datetime import timedelta
from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv
from flask import Flask, flash, g, jsonify, redirect, render_template, request, session, url_for

from app.kmp.admin import bp as admin_bp
from app.kmp.auth import bp as auth_bp, load_current_user
from app.kmp.config import load_config
from app.kmp.constants import ROLE_LABELS
from app.kmp.db import init_db, teardown_db_session
from app.kmp.modules.card_requests.admin import bp as card_requests_admin_bp
from app.kmp.modules.card_requests.routes import bp as card_requests_bp
from app.kmp.modules.dashboard.routes import bp as dashboard_bp
from app.kmp.modules.healthcare.routes import bp as healthcare_bp
from app.kmp.modules.nhs_verify.routes import bp as nhs_verify_bp, needs_nhs_verification
from app.kmp.modules.onboarding.routes import bp as onboarding_bp
from app.kmp.modules.password_reset.routes import bp as password_reset_bp
from app.kmp.modules.patients.routes import bp as patients_bp
from app.kmp.modules.support.routes import bp as support_bp
from app.kmp.routes import bp as routes_bp, cookie_consent_state

LOGGER_NAME = "know-my-patient"

_UNGUARDED_PREFIXES = ("/static/", "/health", "/healthz")


def _configure_logging(app: Flask) -> None:
    env = (app.config.get("ENV") or "").strip().lower()
    level = logging.WARNING if env in ("prod", "production") else logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    app.logger.name = LOGGER_NAME
    app.logger.setLevel(level)

    log_dir = app.config.get("LOG_DIR")
    if env in ("prod", "production") and log_dir:
        try:
            os.makedirs(log_dir, exist_ok=True)
            handler = RotatingFileHandler(os.path.join(log_dir, "app.log"), maxBytes=5 * 1024 * 1024, backupCount=5)
        except OSError as e:
            app.logger.error("Cannot open log file in %s: %s", log_dir, e)
        else:
            handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
            app.logger.addHandler(handler)


def _wants_json() -> bool:
    if request.path.startswith(("/api/", "/patient/profile/")) or request.is_json:
        return True
    best = request.accept_mimetypes.best_match(["application/json", "text/html"])
    return best == "application/json" and request.accept_mimetypes[best] > request.accept_mimetypes["text/html"]


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    _configure_logging(app)

    from app.kmp.security import (
        apply_clinical_headers,
        apply_security_headers,
        ensure_csrf_token,
        https_redirect,
        is_clinical_path,
        patient_uid_from_path,
        validate_csrf,
    )

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_user() -> dict:
        user = getattr(g, "current_user", None)
        return {
            "current_user": user,
            "current_role": user.role if user else None,
            "role_labels": ROLE_LABELS,
            "needs_nhs_verification": needs_nhs_verification(user),
            "app_version": app.config.get("APP_VERSION"),
        }

    @app.context_processor
    def _inject_cookie_consent() -> dict:
        return {"cookie_consent": cookie_consent_state(request)}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%d/%m/%Y") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.before_request
    def _force_https():
        if not app.config.get("FORCE_HTTPS") or request.path.startswith(_UNGUARDED_PREFIXES):
            return None
        return https_redirect(request)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_UNGUARDED_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if not validate_csrf(request):
                app.logger.warning("CSRF token missing or invalid path=%s", request.path)
                if _wants_json():
                    return jsonify({"success": False, "message": "CSRF token missing or invalid."}), 400
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key for key in ("S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(password_reset_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(patients_bp)
    app.register_blueprint(healthcare_bp)
    app.register_blueprint(card_requests_bp)
    app.register_blueprint(onboarding_bp)
    app.register_blueprint(support_bp)
    app.register_blueprint(nhs_verify_bp)
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(card_requests_admin_bp, url_prefix="/admin")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.after_request
    def _headers(resp):
        apply_security_headers(resp, request)
        if is_clinical_path(request.path):
            apply_clinical_headers(resp)
            user = getattr(g, "current_user", None)
            app.logger.info(
                "Clinical access path=%s patient_uid=%s user_id=%s status=%s request_id=%s",
                request.path,
                patient_uid_from_path(request.path),
                user.id if user else None,
                resp.status_code,
                getattr(g, "request_id", None),
            )
        return resp

    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"success": False, "message": "Bad request."}), 400
        return render_template("errors/400.html", message=None), 400

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_role", None)
        if missing:
            app.logger.warning("Forbidden: missing_role=%s request_id=%s", missing, getattr(g, "request_id", None))
        if _wants_json():
            return jsonify({"error": "Forbidden"}), 403
        return render_template("errors/403.html", missing_role=missing), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"error": "Not found"}), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"success": False, "message": "File too large."}), 413
        flash("File too large. Each document may be at most 5MB.", "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer), 302
        return render_template("errors/413.html"), 413

    @app.errorhandler(429)
    def _err_429(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"error": "Too many attempts. Please try again later."}), 429
        return render_template("errors/429.html"), 429

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        if _wants_json():
            from app.kmp.errors import error_messages_from_config

            original = getattr(e, "original_exception", None) or e
            return jsonify(error_messages_from_config(app.config).json_error(original, "server_error")), 500
        return render_template("errors/500.html"), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
