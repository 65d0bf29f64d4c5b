"""Email blacklist for signup and login.

Revision ID: 8b2e4d61c9a5
Revises: 3f1c9a2b7d40
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "8b2e4d61c9a5"
down_revision = "3f1c9a2b7d40"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "email_blacklist",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_email_blacklist_email", "email_blacklist", ["email"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_email_blacklist_email", table_name="email_blacklist")
    op.drop_table("email_blacklist")
