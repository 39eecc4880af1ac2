from __future__ import annotations

import hashlib
import secrets
import uuid
from datetime import datetime, timedelta

from flask import (
    Blueprint,
    current_app,
    flash,
    g,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from werkzeug.security import check_password_hash, generate_password_hash

from app.kmp.audit import record_event
from app.kmp.constants import REGISTER_TYPE_ROLES, REMEMBER_COOKIE_DAYS, REMEMBER_COOKIE_NAME
from app.kmp.db import db_session
from app.kmp.ip import client_ip
from app.kmp.mailer import mailer_from_config
from app.kmp.models import User
from app.kmp.ratelimit import RateLimiter, limiter_for, rate_limit
from app.kmp.rbac import guest_only
from app.kmp.validators import MIN_PASSWORD_LENGTH, is_alpha_name, is_valid_email, password_problems

bp = Blueprint("auth", __name__)

_SESSION_USER_KEYS = ("user_id", "user_email", "user_name", "user_role", "_last_activity")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def start_user_session(user: User) -> None:
    """Fresh session for `user` (drops any pre-login state to avoid fixation)."""
    session.clear()
    session.permanent = True
    session["user_id"] = user.id
    session["user_email"] = user.email
    session["user_name"] = user.first_name
    session["user_role"] = user.role
    session["_last_activity"] = datetime.utcnow().isoformat()


def end_user_session() -> None:
    for key in _SESSION_USER_KEYS:
        session.pop(key, None)


def _remember_cookie_value() -> tuple[int, str] | None:
    raw = request.cookies.get(REMEMBER_COOKIE_NAME) or ""
    user_id, sep, token = raw.partition(":")
    if not sep or not user_id.isdigit() or not token:
        return None
    return int(user_id), token


def _login_from_remember_cookie() -> User | None:
    parsed = _remember_cookie_value()
    if not parsed:
        return None
    user_id, token = parsed
    s = db_session()
    user = s.get(User, user_id)
    if not user or not user.is_active or not user.remember_token:
        return None
    if not secrets.compare_digest(user.remember_token, hash_token(token)):
        return None
    start_user_session(user)
    user.last_login = datetime.utcnow()
    record_event(s, actor=user, action="USER_LOGIN", entity_type="User", entity_id=str(user.id), metadata={"via": "remember_me"})
    s.commit()
    return user


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie (or the remember-me cookie).
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    try:
        if not user_id:
            g.current_user = _login_from_remember_cookie()
            return

        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            end_user_session()
            g.current_user = None
            return
        session["_last_activity"] = datetime.utcnow().isoformat()
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        end_user_session()
        g.current_user = None


def _set_remember_cookie(resp, user: User, token: str) -> None:
    resp.set_cookie(
        REMEMBER_COOKIE_NAME,
        f"{user.id}:{token}",
        max_age=int(timedelta(days=REMEMBER_COOKIE_DAYS).total_seconds()),
        httponly=True,
        samesite="Lax",
        secure=bool(current_app.config.get("SESSION_COOKIE_SECURE")),
    )


# ---------- Register ----------

def validate_registration_payload(payload: dict) -> list[str]:
    """Validate registration form. Returns list of errors."""
    errors = []
    if (payload.get("register_type") or "").strip() not in REGISTER_TYPE_ROLES:
        errors.append("Please choose an account type.")
    first_name = (payload.get("first_name") or "").strip()
    last_name = (payload.get("last_name") or "").strip()
    if not first_name or not last_name:
        errors.append("First name and last name are required.")
    elif not is_alpha_name(first_name) or not is_alpha_name(last_name):
        errors.append("Names may only contain letters, spaces, hyphens and apostrophes.")
    if not is_valid_email(payload.get("email")):
        errors.append("Please enter a valid email address.")
    errors.extend(password_problems(payload.get("password"), payload.get("confirm_password") or ""))
    return errors


@bp.route("/register", methods=["GET", "POST"])
@guest_only
@rate_limit("register")
def register():
    if request.method == "GET":
        return render_template("auth/register.html", form={})

    payload = {
        "register_type": request.form.get("register_type"),
        "first_name": request.form.get("first_name"),
        "last_name": request.form.get("last_name"),
        "email": (request.form.get("email") or "").strip().lower(),
        "password": request.form.get("password"),
        "confirm_password": request.form.get("confirm_password"),
    }
    form = {k: v for k, v in payload.items() if k not in ("password", "confirm_password")}

    errors = validate_registration_payload(payload)
    s = db_session()
    if not errors and s.query(User).filter(User.email == payload["email"]).one_or_none():
        errors.append("An account with that email already exists.")
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("auth/register.html", form=form), 400

    user = User(
        uid=secrets.token_hex(16),
        first_name=payload["first_name"].strip(),
        last_name=payload["last_name"].strip(),
        email=payload["email"],
        password_hash=generate_password_hash(payload["password"]),
        role=REGISTER_TYPE_ROLES[payload["register_type"].strip()],
        is_active=True,
    )
    s.add(user)
    s.flush()
    record_event(
        s,
        actor=user,
        action="USER_REGISTERED",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"role": user.role},
    )
    s.commit()

    ok, err = mailer_from_config(current_app.config).send_welcome(user.email, user.first_name)
    if not ok:
        current_app.logger.warning("Welcome email not sent to user_id=%s: %s", user.id, err)

    return redirect(url_for("auth.login", registered=1))


# ---------- Login ----------

@bp.route("/login", methods=["GET", "POST"])
@guest_only
@rate_limit("login")
def login():
    if request.method == "GET":
        return render_template(
            "auth/login.html",
            next=(request.args.get("next") or "").strip(),
            registered=request.args.get("registered") == "1",
            deleted=request.args.get("deleted") == "1",
        )

    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    remember = bool(request.form.get("remember"))
    nxt = (request.form.get("next") or "").strip()

    if not is_valid_email(email) or len(password) < MIN_PASSWORD_LENGTH:
        flash("Please enter a valid email address and password.", "danger")
        return render_template("auth/login.html", next=nxt, email=email), 400

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                actor_email=email,
                action="USER_LOGIN_FAILED",
                entity_type="User",
                entity_id=str(user.id) if user else None,
                description="Invalid credentials",
            )
            s.commit()
            flash("Invalid email or password.", "danger")
            return render_template("auth/login.html", next=nxt, email=email), 401

        if not user.is_active:
            record_event(
                s,
                actor=None,
                actor_email=email,
                action="USER_LOGIN_FAILED",
                entity_type="User",
                entity_id=str(user.id),
                description="Account suspended",
            )
            s.commit()
            flash("Your account has been suspended. Please contact support.", "danger")
            return render_template("auth/login.html", next=nxt, email=email), 403

        start_user_session(user)
        user.last_login = datetime.utcnow()
        remember_token = None
        if remember:
            remember_token = secrets.token_hex(32)
            user.remember_token = hash_token(remember_token)
        else:
            user.remember_token = None
        record_event(s, actor=user, action="USER_LOGIN", entity_type="User", entity_id=str(user.id))
        s.commit()
        limiter_for("login").clear(RateLimiter.key_for(client_ip(request), request.path))

        # Optional "next" redirect (only allow local paths to avoid open redirects).
        if nxt.startswith("/") and not nxt.startswith("//"):
            resp = redirect(nxt)
        else:
            resp = redirect(url_for("dashboard.dashboard"))
        if remember_token:
            _set_remember_cookie(resp, user, remember_token)
        else:
            resp.delete_cookie(REMEMBER_COOKIE_NAME)
        return resp
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.get("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        user.remember_token = None
        record_event(s, actor=user, action="USER_LOGOUT", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    resp = redirect(url_for("auth.login"))
    resp.delete_cookie(REMEMBER_COOKIE_NAME)
    return resp
