import re
import secrets

from flask import Request, Response, redirect, session


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from form, header, or JSON body."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")

    # API-style requests may send it in the JSON body
    if not token and req.is_json:
        json_data = req.get_json(silent=True)
        if isinstance(json_data, dict):
            token = json_data.get("csrf_token")

    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(str(token).encode(), str(expected).encode()))


# ---------- Security headers ----------

CSP_DIRECTIVES = (
    "default-src 'self'",
    "script-src 'self' 'unsafe-inline' 'unsafe-eval' https://cdn.jsdelivr.net https://*.cloudflare.com",
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net https://fonts.googleapis.com",
    "font-src 'self' https://fonts.gstatic.com https://cdn.jsdelivr.net data:",
    "img-src 'self' data: https:",
    "connect-src 'self'",
    "object-src 'none'",
    "media-src 'self'",
    "worker-src 'self'",
    "form-action 'self'",
    "frame-ancestors 'none'",
    "base-uri 'self'",
    "upgrade-insecure-requests",
)

PERMISSIONS_POLICY = (
    "geolocation=()",
    "microphone=()",
    "camera=(self)",  # QR scanning
    "payment=()",
    "usb=()",
    "magnetometer=()",
    "accelerometer=()",
    "gyroscope=()",
    "picture-in-picture=()",
)

HSTS_VALUE = "max-age=31536000; includeSubDomains; preload"


def is_secure_request(req: Request) -> bool:
    if req.scheme == "https" or req.is_secure:
        return True
    return (req.headers.get("X-Forwarded-Proto") or "").split(",")[0].strip().lower() == "https"


def apply_security_headers(resp: Response, req: Request) -> Response:
    resp.headers["Content-Security-Policy"] = "; ".join(CSP_DIRECTIVES)
    resp.headers["X-Content-Type-Options"] = "nosniff"
    resp.headers["X-Frame-Options"] = "DENY"
    resp.headers["X-XSS-Protection"] = "1; mode=block"
    resp.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    resp.headers["Permissions-Policy"] = ", ".join(PERMISSIONS_POLICY)
    if is_secure_request(req):
        resp.headers["Strict-Transport-Security"] = HSTS_VALUE
    resp.headers.pop("Server", None)
    resp.headers.pop("X-Powered-By", None)
    return resp


def https_redirect(req: Request) -> Response | None:
    """301 to the https URL when the request arrived over plain http."""
    if is_secure_request(req):
        return None
    url = req.url.replace("http://", "https://", 1)
    return redirect(url, code=301)


# ---------- Clinical safety (DCB0129) ----------

CLINICAL_PATH_MARKERS = ("/patient/", "/healthcare/patient/", "/dashboard/patient/", "/api/patient/")
_PATIENT_UID_RE = re.compile(r"patient/(?:profile/)?([A-Z0-9-]+)", re.IGNORECASE)


def is_clinical_path(path: str) -> bool:
    return any(marker in path for marker in CLINICAL_PATH_MARKERS)


def patient_uid_from_path(path: str) -> str | None:
    m = _PATIENT_UID_RE.search(path)
    return m.group(1) if m else None


def apply_clinical_headers(resp: Response) -> Response:
    """Patient data must never sit in a browser or proxy cache."""
    resp.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
    resp.headers["Pragma"] = "no-cache"
    resp.headers["Expires"] = "0"
    resp.headers["X-Clinical-Safety"] = "DCB0129-Compliant"
    return resp
