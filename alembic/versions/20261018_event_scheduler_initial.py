"""event scheduler initial schema

Revision ID: 20261018_event_scheduler_initial
Revises:
Create Date: 2026-10-18 09:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_event_scheduler_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="user"),
        sa.Column("department", sa.String(length=120), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_department", "users", ["department"], unique=False)

    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("is_visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_departments_name", "departments", ["name"], unique=True)

    op.create_table(
        "department_requirements",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=False),
        sa.Column("text", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False, server_default="physical"),
        sa.Column("total_quantity", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("responsible_person", sa.String(length=120), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_department_requirements_department_text",
        "department_requirements",
        ["department_id", "text"],
        unique=False,
    )

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("event_title", sa.String(length=255), nullable=False),
        sa.Column("requestor", sa.String(length=120), nullable=False),
        sa.Column("requestor_department", sa.String(length=120), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=False),
        sa.Column("locations", sa.JSON(), nullable=False),
        sa.Column("multiple_locations", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("participants", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("vip", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("vvip", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("without_gov", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("event_type", sa.String(length=20), nullable=False, server_default="simple"),
        sa.Column("contact_number", sa.String(length=20), nullable=False),
        sa.Column("contact_email", sa.String(length=255), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("date_time_slots", sa.JSON(), nullable=False),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("no_attachments", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("gov_files", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="submitted"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("department_requirements", sa.JSON(), nullable=False),
        sa.Column("tagged_departments", sa.JSON(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("event_reports", sa.JSON(), nullable=False),
        sa.Column("reports_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_events_start_date", "events", ["start_date"], unique=False)
    op.create_index("ix_events_status", "events", ["status"], unique=False)
    op.create_index("ix_events_created_by", "events", ["created_by"], unique=False)
    op.create_index("ix_events_status_start_date", "events", ["status", "start_date"], unique=False)

    op.create_table(
        "resource_availabilities",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=False),
        sa.Column("department_name", sa.String(length=120), nullable=False),
        sa.Column("requirement_id", sa.Integer(), nullable=False),
        sa.Column("requirement_text", sa.String(length=255), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_capacity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("set_by", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["requirement_id"], ["department_requirements.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["set_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("department_id", "requirement_id", "date", name="uq_resource_availability_day"),
    )
    op.create_index("ix_resource_availabilities_date", "resource_availabilities", ["date"], unique=False)

    op.create_table(
        "location_availabilities",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("location_name", sa.String(length=255), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="available"),
        sa.Column("set_by", sa.Integer(), nullable=True),
        sa.Column("department_name", sa.String(length=120), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["set_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("date", "location_name", name="uq_location_availability_day"),
    )
    op.create_index("ix_location_availabilities_date", "location_availabilities", ["date"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=160), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=40), nullable=False, server_default="status"),
        sa.Column("category", sa.String(length=40), nullable=False, server_default="status"),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("requirement_id", sa.String(length=64), nullable=True),
        sa.Column("department_name", sa.String(length=120), nullable=True),
        sa.Column("old_status", sa.String(length=40), nullable=True),
        sa.Column("new_status", sa.String(length=40), nullable=True),
        sa.Column("department_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_created_at", "notifications", ["user_id", "created_at"], unique=False)

    op.create_table(
        "notification_reads",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("notification_id", sa.String(length=160), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("notification_type", sa.String(length=40), nullable=True),
        sa.Column("category", sa.String(length=40), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "notification_id", name="uq_notification_read_user"),
    )
    op.create_index("ix_notification_reads_user_id", "notification_reads", ["user_id"], unique=False)

    op.create_table(
        "user_activity_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_username", sa.String(length=50), nullable=True),
        sa.Column("actor_department", sa.String(length=120), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("entity_type", sa.String(length=40), nullable=True),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_activity_logs_action", "user_activity_logs", ["action"], unique=False)
    op.create_index("ix_user_activity_logs_actor_username", "user_activity_logs", ["actor_username"], unique=False)
    op.create_index("ix_user_activity_logs_created_at", "user_activity_logs", ["created_at"], unique=False)
    op.create_index("ix_user_activity_entity", "user_activity_logs", ["entity_type", "entity_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_user_activity_entity", table_name="user_activity_logs")
    op.drop_index("ix_user_activity_logs_created_at", table_name="user_activity_logs")
    op.drop_index("ix_user_activity_logs_actor_username", table_name="user_activity_logs")
    op.drop_index("ix_user_activity_logs_action", table_name="user_activity_logs")
    op.drop_table("user_activity_logs")
    op.drop_index("ix_notification_reads_user_id", table_name="notification_reads")
    op.drop_table("notification_reads")
    op.drop_index("ix_notifications_user_created_at", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_location_availabilities_date", table_name="location_availabilities")
    op.drop_table("location_availabilities")
    op.drop_index("ix_resource_availabilities_date", table_name="resource_availabilities")
    op.drop_table("resource_availabilities")
    op.drop_index("ix_events_status_start_date", table_name="events")
    op.drop_index("ix_events_created_by", table_name="events")
    op.drop_index("ix_events_status", table_name="events")
    op.drop_index("ix_events_start_date", table_name="events")
    op.drop_table("events")
    op.drop_index("ix_department_requirements_department_text", table_name="department_requirements")
    op.drop_table("department_requirements")
    op.drop_index("ix_departments_name", table_name="departments")
    op.drop_table("departments")
    op.drop_index("ix_users_department", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
