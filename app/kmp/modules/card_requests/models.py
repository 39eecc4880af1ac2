from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.kmp.models import Base


class CardRequest(Base):
    __tablename__ = "card_requests"
    __table_args__ = (
        Index("idx_card_requests_user", "user_id"),
        Index("idx_card_requests_status", "status"),
        Index("idx_card_requests_request_date", "request_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    patient_uid: Mapped[str | None] = mapped_column(String(64), nullable=True)

    card_type: Mapped[str] = mapped_column(String(32), nullable=False, default="standard")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")  # pending, printing, posted, delivered, cancelled

    delivery_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivery_postcode: Mapped[str | None] = mapped_column(String(16), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    request_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
