"""Create medication, template, dose event and day status tables."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

MEAL_TIMING = sa.Enum("BEFORE", "WITH", "AFTER", "ANYTIME", name="mealtiming")
DOSE_EVENT_STATUS = sa.Enum("PLANNED", "DONE", name="doseeventstatus")
DAY_STATUS_TYPE = sa.Enum(
    "NONE", "SCHEDULED", "PARTIAL", "ALL_TAKEN", "MISSED", name="daystatustype"
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "medications",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("owner_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("dose", sa.Numeric(10, 3), nullable=True),
        sa.Column("form", sa.String(length=64), nullable=True),
        sa.Column(
            "previous_medication_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("medications.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_medications_owner_id", "medications", ["owner_id"])
    op.create_index(
        "ix_medications_previous_medication_id", "medications", ["previous_medication_id"]
    )
    op.create_index(
        "ix_medications_owner_deleted", "medications", ["owner_id", "deleted_at"]
    )

    op.create_table(
        "dosing_templates",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("owner_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "medication_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("medications.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Numeric(10, 3), nullable=False),
        sa.Column("units", sa.String(length=50), nullable=False),
        sa.Column("frequency_days", sa.JSON(), nullable=False),
        sa.Column("time_of_day", sa.JSON(), nullable=False),
        sa.Column("duration_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("date_start", sa.Date(), nullable=False),
        sa.Column("date_end", sa.Date(), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="UTC"),
        sa.Column("meal_timing", MEAL_TIMING, nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_dosing_templates_owner_id", "dosing_templates", ["owner_id"])
    op.create_index(
        "ix_dosing_templates_medication_id", "dosing_templates", ["medication_id"]
    )

    op.create_table(
        "dose_events",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "template_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("dosing_templates.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "medication_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("medications.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("owner_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("date_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", DOSE_EVENT_STATUS, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "template_id", "date_time", name="uq_dose_event_template_instant"
        ),
    )
    op.create_index(
        "ix_dose_events_owner_date_time", "dose_events", ["owner_id", "date_time"]
    )
    op.create_index(
        "ix_dose_events_medication_status", "dose_events", ["medication_id", "status"]
    )

    op.create_table(
        "day_statuses",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("owner_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("status", DAY_STATUS_TYPE, nullable=False),
        sa.Column("total_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("planned_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("taken_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="UTC"),
        sa.Column("is_past_date", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("owner_id", "day", name="uq_day_status_owner_day"),
    )


def downgrade() -> None:
    op.drop_table("day_statuses")
    op.drop_index("ix_dose_events_medication_status", table_name="dose_events")
    op.drop_index("ix_dose_events_owner_date_time", table_name="dose_events")
    op.drop_table("dose_events")
    op.drop_index("ix_dosing_templates_medication_id", table_name="dosing_templates")
    op.drop_index("ix_dosing_templates_owner_id", table_name="dosing_templates")
    op.drop_table("dosing_templates")
    op.drop_index("ix_medications_owner_deleted", table_name="medications")
    op.drop_index("ix_medications_previous_medication_id", table_name="medications")
    op.drop_index("ix_medications_owner_id", table_name="medications")
    op.drop_table("medications")
    bind = op.get_bind()
    for enum_type in (DAY_STATUS_TYPE, DOSE_EVENT_STATUS, MEAL_TIMING):
        enum_type.drop(bind, checkfirst=True)
