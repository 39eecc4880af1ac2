import os
import secrets
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.kmp.constants import ROLE_ADMIN  # noqa: E402
from app.kmp.models import Testimonial, User  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402

SAMPLE_TESTIMONIALS = (
    (
        "Having my mum's care preferences on one card meant the ward team knew how to calm her within minutes.",
        "Sarah M.",
        "Family carer",
    ),
    (
        "Seeing allergies, communication needs and next of kin at a glance saves real time during admission.",
        "Dr. James P.",
        "A&E Registrar",
    ),
    (
        "I finally feel that staff see me as a person, not just a list of conditions.",
        "Margaret T.",
        "Patient",
    ),
)


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin account and sample testimonials in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@knowmypatient.nhs.uk").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///kmp.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                uid=secrets.token_hex(16),
                first_name="System",
                last_name="Administrator",
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                role=ROLE_ADMIN,
                is_active=True,
                is_verified=True,
            )
            s.add(user)
        elif user.role != ROLE_ADMIN:
            user.role = ROLE_ADMIN

        if s.query(Testimonial.id).first() is None:
            for body, name, role in SAMPLE_TESTIMONIALS:
                s.add(Testimonial(testimonial=body, name=name, role=role))

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
