"""Create hierarchy_audit_log

Revision ID: 3c1f0a9b7d42
Revises:
Create Date: 2026-10-17 09:12:40.118204

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3c1f0a9b7d42"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "hierarchy_audit_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("action_type", sa.String(length=50), nullable=False),
        sa.Column("department_id", sa.String(length=64), nullable=True),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("previous_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("warnings", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "action_type IN ('REPARENT', 'PROMOTE_TARGET', 'PROMOTE_SOURCE', "
            "'DETACH', 'DETACH_HEAD', 'FAILED')",
            name="CK_hierarchy_audit_log_action_type",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_hierarchy_audit_log_action_type", "hierarchy_audit_log", ["action_type"]
    )
    op.create_index(
        "ix_hierarchy_audit_log_department_id", "hierarchy_audit_log", ["department_id"]
    )


def downgrade():
    op.drop_index("ix_hierarchy_audit_log_department_id", table_name="hierarchy_audit_log")
    op.drop_index("ix_hierarchy_audit_log_action_type", table_name="hierarchy_audit_log")
    op.drop_table("hierarchy_audit_log")
