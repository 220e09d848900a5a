"""add event chat messages

Revision ID: 20261018_add_messages
Revises: 20261018_event_scheduler_initial
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261018_add_messages"
down_revision = "20261018_event_scheduler_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("receiver_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("message_type", sa.String(length=20), nullable=False, server_default="text"),
        sa.Column("attachments", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index("ix_messages_event_participants", "messages", ["event_id", "sender_id", "receiver_id"])
    op.create_index("ix_messages_created_at", "messages", ["created_at"])


def downgrade():
    op.drop_index("ix_messages_created_at", table_name="messages")
    op.drop_index("ix_messages_event_participants", table_name="messages")
    op.drop_table("messages")
