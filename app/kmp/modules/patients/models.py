from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.kmp.models import Base


class PatientProfile(Base):
    __tablename__ = "patient_profiles"
    __table_args__ = (
        Index("idx_patient_profiles_created_by", "created_by"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    patient_uid: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # == users.uid of the owner
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True, unique=True
    )  # one profile per user
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Basic information
    patient_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(String(32), nullable=True)
    blood_type: Mapped[str | None] = mapped_column(String(8), nullable=True)
    nhs_number: Mapped[str | None] = mapped_column(String(16), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    postcode: Mapped[str | None] = mapped_column(String(16), nullable=True)
    occupation: Mapped[str | None] = mapped_column(String(255), nullable=True)
    workplace: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Medical
    allergies: Mapped[str | None] = mapped_column(Text, nullable=True)
    medical_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)
    medications: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Cognitive & neurological (form values: "yes" / "no" / "unsure")
    has_dementia: Mapped[str | None] = mapped_column(String(16), nullable=True)
    has_learning_disability: Mapped[str | None] = mapped_column(String(16), nullable=True)
    previous_stroke: Mapped[str | None] = mapped_column(String(16), nullable=True)
    other_cognitive_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)
    stroke_effects: Mapped[str | None] = mapped_column(Text, nullable=True)
    communication_needs: Mapped[str | None] = mapped_column(Text, nullable=True)

    # GP
    gp_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gp_practice: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gp_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Emergency contact
    emergency_contact_1_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    emergency_contact_1_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    emergency_contact_1_relationship: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Lasting power of attorney
    lpa_health_attorney_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lpa_health_attorney_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    lpa_health_document_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lpa_health_document_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    lpa_finance_attorney_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lpa_finance_attorney_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    lpa_finance_document_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lpa_finance_document_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    lpa_additional_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Advance care planning
    has_respect_form: Mapped[str | None] = mapped_column(String(16), nullable=True)
    resuscitation_status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    advance_directives: Mapped[str | None] = mapped_column(Text, nullable=True)
    respect_document_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    respect_document_path: Mapped[str | None] = mapped_column(String(512), nullable=True)

    # Diet
    diet_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    fluid_consistency: Mapped[str | None] = mapped_column(String(64), nullable=True)
    special_diet_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    food_preferences: Mapped[str | None] = mapped_column(Text, nullable=True)
    food_dislikes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Personal
    personal_likes: Mapped[str | None] = mapped_column(Text, nullable=True)
    personal_dislikes: Mapped[str | None] = mapped_column(Text, nullable=True)
    important_memories: Mapped[str | None] = mapped_column(Text, nullable=True)
    religion: Mapped[str | None] = mapped_column(String(128), nullable=True)
    cultural_needs: Mapped[str | None] = mapped_column(Text, nullable=True)

    # End of life
    funeral_arrangements: Mapped[str | None] = mapped_column(Text, nullable=True)
    organ_donation: Mapped[str | None] = mapped_column(String(32), nullable=True)
    funeral_details_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    additional_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
