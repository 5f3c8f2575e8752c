"""Initial schema - role, assignment, audit_event.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "role",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("parent_id", sa.String(100), sa.ForeignKey("role.id"), nullable=True),
        sa.Column("permissions", JSONB(), nullable=False, server_default="[]"),
        sa.Column("contextual_rules", JSONB(), nullable=False, server_default="[]"),
        sa.Column("is_system_role", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("max_assignments", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('draft', 'published', 'archived')", name="ck_role_status"),
        sa.CheckConstraint("parent_id IS NULL OR parent_id <> id", name="ck_role_not_own_parent"),
    )
    op.create_index("ix_role_parent_id", "role", ["parent_id"])

    # role_id has no foreign key: draft roles whose assignments are all
    # revoked or expired may be deleted while the history is kept.
    op.create_table(
        "assignment",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("role_id", sa.String(100), nullable=False),
        sa.Column("scope_type", sa.String(20), nullable=False),
        sa.Column("scope_values", JSONB(), nullable=False, server_default="[]"),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by", sa.String(255), nullable=True),
        sa.CheckConstraint(
            "valid_until IS NULL OR valid_until >= valid_from", name="ck_assignment_window"
        ),
    )
    op.create_index("ix_assignment_user_id", "assignment", ["user_id"])
    op.create_index("ix_assignment_role_id", "assignment", ["role_id"])

    op.create_table(
        "audit_event",
        sa.Column("sequence", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("id", sa.UUID(), nullable=False, unique=True),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("outcome", sa.String(10), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("body", JSONB(), nullable=False),
        sa.Column("previous_hash", sa.String(64), nullable=False),
        sa.Column("hash", sa.String(64), nullable=False),
    )
    op.create_index("ix_audit_event_user_decided", "audit_event", ["user_id", "decided_at"])
    op.create_index("ix_audit_event_decided_at", "audit_event", ["decided_at"])


def downgrade() -> None:
    op.drop_table("audit_event")
    op.drop_table("assignment")
    op.drop_table("role")
