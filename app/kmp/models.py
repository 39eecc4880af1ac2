from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    uid: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # public card code
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="patient")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    nhs_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    nhs_verification_token: Mapped[str | None] = mapped_column(String(64), nullable=True)

    remember_token: Mapped[str | None] = mapped_column(String(64), nullable=True)  # sha256 hex
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class AuditLog(Base):
    """
    Append-only audit trail row.
    Generic on purpose: entity_type/entity_id point at whatever was touched (patient uid, card request id...).
    """

    __tablename__ = "audit_log"
    __table_args__ = (
        Index("idx_audit_log_activity", "activity_type"),
        Index("idx_audit_log_entity", "entity_type", "entity_id"),
        Index("idx_audit_log_timestamp", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    target_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)  # no FK: survives account deletion

    activity_type: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "USER_LOGIN"
    entity_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)


class Testimonial(Base):
    __tablename__ = "testimonials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    testimonial: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {"id": self.id, "testimonial": self.testimonial, "name": self.name, "role": self.role}


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.kmp.modules.patients.models import PatientProfile  # noqa: E402,F401
from app.kmp.modules.card_requests.models import CardRequest  # noqa: E402,F401
from app.kmp.modules.onboarding.models import OnboardingEnquiry  # noqa: E402,F401
from app.kmp.modules.support.models import SupportMessage  # noqa: E402,F401
from app.kmp.modules.password_reset.models import PasswordReset  # noqa: E402,F401
