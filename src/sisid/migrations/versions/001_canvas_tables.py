"""Canvas tables: account, course, user, pseudonym, enrollment.

Revision ID: 001
Revises:
Create Date: 2026-10-18

Pseudonym.sis_user_id is unique per account. NULLs are not compared by
the unique constraint, so any number of pseudonyms without a sis_user_id
can share an account.
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("root_account_id", sa.Integer(), nullable=True),
        sa.Column("workflow_state", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["root_account_id"], ["account.id"]),
    )
    op.create_index(
        op.f("ix_account_root_account_id"), "account", ["root_account_id"], unique=False
    )

    op.create_table(
        "course",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("root_account_id", sa.Integer(), nullable=True),
        sa.Column("workflow_state", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["account_id"], ["account.id"]),
        sa.ForeignKeyConstraint(["root_account_id"], ["account.id"]),
    )
    op.create_index(op.f("ix_course_account_id"), "course", ["account_id"], unique=False)
    op.create_index(
        op.f("ix_course_root_account_id"), "course", ["root_account_id"], unique=False
    )

    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("workflow_state", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "pseudonym",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("unique_id", sa.String(), nullable=False),
        sa.Column("sis_user_id", sa.String(), nullable=True),
        sa.Column("workflow_state", sa.String(), nullable=False),
        sa.Column("crypted_password", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["account_id"], ["account.id"]),
        sa.UniqueConstraint(
            "account_id", "sis_user_id", name="uq_pseudonym_account_sis_user_id"
        ),
    )
    op.create_index(op.f("ix_pseudonym_user_id"), "pseudonym", ["user_id"], unique=False)
    op.create_index(op.f("ix_pseudonym_account_id"), "pseudonym", ["account_id"], unique=False)
    op.create_index(op.f("ix_pseudonym_unique_id"), "pseudonym", ["unique_id"], unique=False)
    op.create_index(
        op.f("ix_pseudonym_sis_user_id"), "pseudonym", ["sis_user_id"], unique=False
    )

    op.create_table(
        "enrollment",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("workflow_state", sa.String(), nullable=False),
        sa.Column("sis_pseudonym_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["course_id"], ["course.id"]),
        sa.ForeignKeyConstraint(["sis_pseudonym_id"], ["pseudonym.id"]),
    )
    op.create_index(op.f("ix_enrollment_user_id"), "enrollment", ["user_id"], unique=False)
    op.create_index(op.f("ix_enrollment_course_id"), "enrollment", ["course_id"], unique=False)
    op.create_index(op.f("ix_enrollment_type"), "enrollment", ["type"], unique=False)
    op.create_index(
        op.f("ix_enrollment_workflow_state"), "enrollment", ["workflow_state"], unique=False
    )
    op.create_index(
        op.f("ix_enrollment_sis_pseudonym_id"), "enrollment", ["sis_pseudonym_id"], unique=False
    )


def downgrade() -> None:
    op.drop_table("enrollment")
    op.drop_table("pseudonym")
    op.drop_table("user")
    op.drop_table("course")
    op.drop_table("account")
