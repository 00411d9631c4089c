"""Add population_run table for tracking update and rollback runs.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "population_run",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("mode", sa.String(), nullable=False, comment="update or rollback"),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("pattern", sa.String(), nullable=False, comment="sis_user_id pattern in effect"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("created_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("linked_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
    )
    # Query pattern: "when did this job last run?"
    op.create_index(
        "ix_population_run_started_at",
        "population_run",
        ["started_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_population_run_started_at", table_name="population_run")
    op.drop_table("population_run")
