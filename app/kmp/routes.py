from __future__ import annotations

import os
import shutil
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, render_template, request
from sqlalchemy import text

from app.kmp.cache import cache_from_config
from app.kmp.db import db_session
from app.kmp.models import Testimonial

bp = Blueprint("routes", __name__)

TESTIMONIALS_CACHE_KEY = "testimonials"
TESTIMONIALS_LIMIT = 6

COOKIE_CONSENT_NAME = "cookie_consent_status"
COOKIE_CONSENT_DAYS = 365
CONSENT_ALL = "all"
CONSENT_ESSENTIAL = "essential"
CONSENT_DECLINED = "declined"
CONSENT_TYPES = (CONSENT_ALL, CONSENT_ESSENTIAL, CONSENT_DECLINED)


def cookie_consent_state(req) -> dict:
    """What templates need to decide whether to show the banner / load analytics."""
    status = req.cookies.get(COOKIE_CONSENT_NAME)
    if status not in CONSENT_TYPES:
        status = None
    return {
        "has_consent": status is not None,
        "status": status,
        "can_use_analytics": status == CONSENT_ALL,
    }


def _load_testimonials() -> list[dict]:
    s = db_session()
    rows = s.query(Testimonial).order_by(Testimonial.created_at.desc(), Testimonial.id.desc()).limit(TESTIMONIALS_LIMIT).all()
    return [t.to_dict() for t in rows]


@bp.get("/")
@bp.get("/home")
def index():
    try:
        testimonials = cache_from_config(current_app.config).remember(TESTIMONIALS_CACHE_KEY, _load_testimonials, ttl=3600)
    except Exception as e:
        # Home page still renders if the DB is down.
        current_app.logger.error("Could not load testimonials: %s", e)
        testimonials = []
    return render_template("public/home.html", testimonials=testimonials or [])


@bp.get("/privacy-policy")
def privacy_policy():
    return render_template("public/privacy.html")


# ---------- Health ----------

def _dir_writable(path: str) -> bool:
    try:
        os.makedirs(path, exist_ok=True)
    except OSError:
        return False
    return os.access(path, os.W_OK)


@bp.get("/health")
def health():
    """
    Detailed health check for monitoring. Returns JSON.

    status is "unhealthy" (HTTP 503) when the DB is unreachable or the disk is nearly full;
    "degraded" for warnings (low disk, unwritable logs/cache, slow response).
    """
    started = time.perf_counter()
    payload: dict = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": current_app.config.get("APP_VERSION") or "1.0.0",
        "checks": {},
    }
    checks = payload["checks"]

    def degrade() -> None:
        if payload["status"] == "healthy":
            payload["status"] = "degraded"

    try:
        db_session().execute(text("SELECT 1"))
        checks["database"] = {"status": "ok", "message": "Database connection successful"}
    except Exception as e:
        current_app.logger.error("Health check: database connection failed: %s", e)
        checks["database"] = {"status": "error", "message": "Database connection failed"}
        payload["status"] = "unhealthy"

    try:
        usage = shutil.disk_usage(os.getcwd())
        percent_free = usage.free / usage.total * 100 if usage.total else 0.0
        disk_status = "ok"
        if percent_free < 5:
            disk_status = "critical"
            payload["status"] = "unhealthy"
        elif percent_free < 10:
            disk_status = "warning"
            degrade()
        checks["disk_space"] = {
            "status": disk_status,
            "free_gb": round(usage.free / 1024**3, 2),
            "total_gb": round(usage.total / 1024**3, 2),
            "percent_free": round(percent_free, 2),
        }
    except OSError:
        checks["disk_space"] = {"status": "error", "message": "Disk space check failed"}

    for name, key in (("logs", "LOG_DIR"), ("cache", "CACHE_DIR")):
        writable = _dir_writable(current_app.config.get(key) or "")
        checks[name] = {"status": "ok" if writable else "error", "writable": writable}
        if not writable:
            current_app.logger.warning("Health check: %s directory not writable", name)
            degrade()

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    payload["response_time_ms"] = elapsed_ms
    if elapsed_ms > 1000:
        checks["performance"] = {"status": "warning", "message": "Slow response time"}
        degrade()

    resp = jsonify(payload)
    resp.status_code = 503 if payload["status"] == "unhealthy" else 200
    resp.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    return resp


@bp.get("/healthz")
def healthz():
    """Fast liveness probe. No DB access."""
    return "ok", 200


# ---------- Cookie consent ----------

@bp.post("/api/cookie-consent")
def cookie_consent():
    data = request.get_json(silent=True) if request.is_json else None
    consent_type = ((data or {}).get("consent_type") if isinstance(data, dict) else None) or request.form.get("consent_type")
    consent_type = (consent_type or "").strip()

    if not consent_type:
        return jsonify({"success": False, "message": "Consent type is required"}), 400
    if consent_type not in CONSENT_TYPES:
        return jsonify({"success": False, "message": "Invalid consent type"}), 400

    resp = jsonify(
        {
            "success": True,
            "message": "Cookie consent recorded successfully",
            "consent_type": consent_type,
        }
    )
    resp.set_cookie(
        COOKIE_CONSENT_NAME,
        consent_type,
        max_age=COOKIE_CONSENT_DAYS * 24 * 60 * 60,
        path="/",
        samesite="Strict",
        secure=bool(current_app.config.get("SESSION_COOKIE_SECURE")),
        httponly=False,  # banner script reads it
    )
    return resp
