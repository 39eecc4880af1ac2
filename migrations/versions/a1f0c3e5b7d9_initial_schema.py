"""initial schema: users, patient profiles, card requests, enquiries, support, resets, audit, testimonials

Revision ID: a1f0c3e5b7d9
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "a1f0c3e5b7d9"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _str(n: int):
    return lambda: sa.String(n)


# (column, type factory) for the free-text patient profile fields
_PATIENT_COLUMNS = [
    ("patient_name", _str(255)),
    ("date_of_birth", sa.Date),
    ("gender", _str(32)),
    ("blood_type", _str(8)),
    ("nhs_number", _str(16)),
    ("phone_number", _str(32)),
    ("address", sa.Text),
    ("postcode", _str(16)),
    ("occupation", _str(255)),
    ("workplace", _str(255)),
    ("allergies", sa.Text),
    ("medical_conditions", sa.Text),
    ("medications", sa.Text),
    ("has_dementia", _str(16)),
    ("has_learning_disability", _str(16)),
    ("previous_stroke", _str(16)),
    ("other_cognitive_conditions", sa.Text),
    ("stroke_effects", sa.Text),
    ("communication_needs", sa.Text),
    ("gp_name", _str(255)),
    ("gp_practice", _str(255)),
    ("gp_phone", _str(32)),
    ("emergency_contact_1_name", _str(255)),
    ("emergency_contact_1_phone", _str(32)),
    ("emergency_contact_1_relationship", _str(64)),
    ("lpa_health_attorney_name", _str(255)),
    ("lpa_health_attorney_phone", _str(32)),
    ("lpa_health_document_name", _str(255)),
    ("lpa_health_document_path", _str(512)),
    ("lpa_finance_attorney_name", _str(255)),
    ("lpa_finance_attorney_phone", _str(32)),
    ("lpa_finance_document_name", _str(255)),
    ("lpa_finance_document_path", _str(512)),
    ("lpa_additional_notes", sa.Text),
    ("has_respect_form", _str(16)),
    ("resuscitation_status", _str(64)),
    ("advance_directives", sa.Text),
    ("respect_document_name", _str(255)),
    ("respect_document_path", _str(512)),
    ("diet_type", _str(64)),
    ("fluid_consistency", _str(64)),
    ("special_diet_notes", sa.Text),
    ("food_preferences", sa.Text),
    ("food_dislikes", sa.Text),
    ("personal_likes", sa.Text),
    ("personal_dislikes", sa.Text),
    ("important_memories", sa.Text),
    ("religion", _str(128)),
    ("cultural_needs", sa.Text),
    ("funeral_arrangements", sa.Text),
    ("organ_donation", _str(32)),
    ("funeral_details_notes", sa.Text),
    ("additional_notes", sa.Text),
]


def upgrade() -> None:
    bind = op.get_bind()
    existing_tables = set(inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("uid", sa.String(64), nullable=False),
            sa.Column("first_name", sa.String(100), nullable=False),
            sa.Column("last_name", sa.String(100), nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("role", sa.String(32), nullable=False, server_default="patient"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
            sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("nhs_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("nhs_verification_token", sa.String(64), nullable=True),
            sa.Column("remember_token", sa.String(64), nullable=True),
            sa.Column("last_login", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.UniqueConstraint("uid"),
            sa.UniqueConstraint("email"),
        )

    if "patient_profiles" not in existing_tables:
        op.create_table(
            "patient_profiles",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("patient_uid", sa.String(64), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("updated_by", sa.Integer(), nullable=True),
            *[sa.Column(name, factory(), nullable=True) for name, factory in _PATIENT_COLUMNS],
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["updated_by"], ["users.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("patient_uid"),
            sa.UniqueConstraint("user_id"),
        )
        op.create_index("idx_patient_profiles_created_by", "patient_profiles", ["created_by"])

    if "card_requests" not in existing_tables:
        op.create_table(
            "card_requests",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("patient_uid", sa.String(64), nullable=True),
            sa.Column("card_type", sa.String(32), nullable=False, server_default="standard"),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("delivery_address", sa.Text(), nullable=True),
            sa.Column("delivery_postcode", sa.String(16), nullable=True),
            sa.Column("contact_phone", sa.String(32), nullable=True),
            sa.Column("contact_email", sa.String(320), nullable=True),
            sa.Column("tracking_number", sa.String(128), nullable=True),
            sa.Column("admin_notes", sa.Text(), nullable=True),
            sa.Column("request_date", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        )
        op.create_index("idx_card_requests_user", "card_requests", ["user_id"])
        op.create_index("idx_card_requests_status", "card_requests", ["status"])
        op.create_index("idx_card_requests_request_date", "card_requests", ["request_date"])

    if "onboarding_enquiries" not in existing_tables:
        op.create_table(
            "onboarding_enquiries",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("company_name", sa.String(255), nullable=False),
            sa.Column("company_website", sa.String(512), nullable=True),
            sa.Column("organization_type", sa.String(64), nullable=False),
            sa.Column("organization_size", sa.String(64), nullable=True),
            sa.Column("contact_person", sa.String(255), nullable=False),
            sa.Column("job_title", sa.String(255), nullable=True),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("phone", sa.String(32), nullable=True),
            sa.Column("current_systems", sa.Text(), nullable=True),
            sa.Column("integration_timeline", sa.String(64), nullable=True),
            sa.Column("specific_requirements", sa.Text(), nullable=True),
            sa.Column("additional_info", sa.Text(), nullable=True),
            sa.Column("gdpr_consent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("marketing_consent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("status", sa.String(32), nullable=False, server_default="new"),
            sa.Column("priority", sa.String(16), nullable=False, server_default="medium"),
            sa.Column("lead_source", sa.String(64), nullable=False, server_default="website"),
            sa.Column("utm_source", sa.String(128), nullable=True),
            sa.Column("utm_medium", sa.String(128), nullable=True),
            sa.Column("utm_campaign", sa.String(128), nullable=True),
            sa.Column("created_by", sa.String(64), nullable=False, server_default="system"),
            sa.Column("ip_address", sa.String(64), nullable=True),
            sa.Column("user_agent", sa.String(512), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
        )
        op.create_index("idx_onboarding_status", "onboarding_enquiries", ["status"])
        op.create_index("idx_onboarding_email", "onboarding_enquiries", ["email"])

    if "support_messages" not in existing_tables:
        op.create_table(
            "support_messages",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(100), nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("subject", sa.String(150), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("ip_address", sa.String(64), nullable=True),
            sa.Column("user_agent", sa.String(512), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        )

    if "password_resets" not in existing_tables:
        op.create_table(
            "password_resets",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("token", sa.String(64), nullable=False),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("used_at", sa.DateTime(), nullable=True),
            sa.Column("ip_address", sa.String(64), nullable=True),
            sa.Column("user_agent", sa.String(512), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("token"),
        )
        op.create_index("idx_password_resets_email_created", "password_resets", ["email", "created_at"])

    if "audit_log" not in existing_tables:
        op.create_table(
            "audit_log",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("timestamp", sa.DateTime(), nullable=False),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("user_email", sa.String(320), nullable=True),
            sa.Column("target_user_id", sa.Integer(), nullable=True),
            sa.Column("activity_type", sa.String(64), nullable=False),
            sa.Column("entity_type", sa.String(64), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("description", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("ip_address", sa.String(64), nullable=True),
            sa.Column("user_agent", sa.String(512), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        )
        op.create_index("idx_audit_log_activity", "audit_log", ["activity_type"])
        op.create_index("idx_audit_log_entity", "audit_log", ["entity_type", "entity_id"])
        op.create_index("idx_audit_log_timestamp", "audit_log", ["timestamp"])

    if "testimonials" not in existing_tables:
        op.create_table(
            "testimonials",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("testimonial", sa.Text(), nullable=False),
            sa.Column("name", sa.String(128), nullable=False),
            sa.Column("role", sa.String(128), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )


def downgrade() -> None:
    for table in (
        "testimonials",
        "audit_log",
        "password_resets",
        "support_messages",
        "onboarding_enquiries",
        "card_requests",
        "patient_profiles",
        "users",
    ):
        op.drop_table(table)
