"""Initial migration: cohort directory tables, coach_assignment, audit_log

Revision ID: 001_coach_assignment
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""

import sqlalchemy as sa
from sqlalchemy import inspect

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_coach_assignment"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    tables = inspect(bind).get_table_names()

    if "cohort" not in tables:
        op.create_table(
            "cohort",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("code", sa.String(), nullable=False),
            sa.Column("description", sa.String(), nullable=True),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code", name="uq_cohort_code"),
        )

    if "orgunit" not in tables:
        op.create_table(
            "orgunit",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("orgunit_type", sa.String(), nullable=False),
            sa.Column("parent_orgunit_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["parent_orgunit_id"], ["orgunit.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code", name="uq_orgunit_code"),
        )
        op.create_index(op.f("ix_orgunit_parent_orgunit_id"), "orgunit", ["parent_orgunit_id"], unique=False)

    if "cohort_orgunit" not in tables:
        op.create_table(
            "cohort_orgunit",
            sa.Column("cohort_id", sa.Integer(), nullable=False),
            sa.Column("orgunit_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["cohort_id"], ["cohort.id"]),
            sa.ForeignKeyConstraint(["orgunit_id"], ["orgunit.id"]),
            sa.PrimaryKeyConstraint("cohort_id", "orgunit_id"),
        )

    if "enrollment" not in tables:
        op.create_table(
            "enrollment",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("cohort_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("display_name", sa.String(), nullable=True),
            sa.Column("center_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("enrolled_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["cohort_id"], ["cohort.id"]),
            sa.ForeignKeyConstraint(["center_id"], ["orgunit.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("cohort_id", "user_id", name="uq_cohort_user"),
        )
        op.create_index(op.f("ix_enrollment_cohort_id"), "enrollment", ["cohort_id"], unique=False)
        op.create_index(op.f("ix_enrollment_user_id"), "enrollment", ["user_id"], unique=False)
        op.create_index(op.f("ix_enrollment_center_id"), "enrollment", ["center_id"], unique=False)

    if "team" not in tables:
        op.create_table(
            "team",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("cohort_id", sa.Integer(), nullable=False),
            sa.Column("center_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("status", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["cohort_id"], ["cohort.id"]),
            sa.ForeignKeyConstraint(["center_id"], ["orgunit.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("cohort_id", "name", name="uq_cohort_team_name"),
        )
        op.create_index(op.f("ix_team_cohort_id"), "team", ["cohort_id"], unique=False)
        op.create_index(op.f("ix_team_center_id"), "team", ["center_id"], unique=False)

    if "team_membership" not in tables:
        op.create_table(
            "team_membership",
            sa.Column("team_id", sa.Integer(), nullable=False),
            sa.Column("enrollment_id", sa.Integer(), nullable=False),
            sa.Column("membership_type", sa.String(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["team_id"], ["team.id"]),
            sa.ForeignKeyConstraint(["enrollment_id"], ["enrollment.id"]),
            sa.PrimaryKeyConstraint("team_id", "enrollment_id"),
        )

    if "coach_assignment" not in tables:
        op.create_table(
            "coach_assignment",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("cohort_id", sa.Integer(), nullable=False),
            sa.Column("coach_user_id", sa.Integer(), nullable=False),
            sa.Column("scope_kind", sa.String(), nullable=False),
            sa.Column("scope_id", sa.Integer(), nullable=False),
            sa.Column("effective_from", sa.Date(), nullable=False),
            sa.Column("effective_to", sa.Date(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["cohort_id"], ["cohort.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "effective_to IS NULL OR effective_to >= effective_from", name="ck_coach_assignment_range"
            ),
        )
        op.create_index(op.f("ix_coach_assignment_cohort_id"), "coach_assignment", ["cohort_id"], unique=False)
        op.create_index(
            op.f("ix_coach_assignment_coach_user_id"), "coach_assignment", ["coach_user_id"], unique=False
        )
        op.create_index(
            "ix_coach_assignment_scope", "coach_assignment", ["cohort_id", "scope_kind", "scope_id"], unique=False
        )

    if "audit_log" not in tables:
        op.create_table(
            "audit_log",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("action_type", sa.String(), nullable=False),
            sa.Column("entity_type", sa.String(), nullable=False),
            sa.Column("entity_id", sa.Integer(), nullable=False),
            sa.Column("cohort_id", sa.Integer(), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("summary", sa.String(), nullable=False),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(op.f("ix_audit_log_action_type"), "audit_log", ["action_type"], unique=False)
        op.create_index(op.f("ix_audit_log_cohort_id"), "audit_log", ["cohort_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_audit_log_cohort_id"), table_name="audit_log")
    op.drop_index(op.f("ix_audit_log_action_type"), table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_index("ix_coach_assignment_scope", table_name="coach_assignment")
    op.drop_index(op.f("ix_coach_assignment_coach_user_id"), table_name="coach_assignment")
    op.drop_index(op.f("ix_coach_assignment_cohort_id"), table_name="coach_assignment")
    op.drop_table("coach_assignment")
    op.drop_table("team_membership")
    op.drop_index(op.f("ix_team_center_id"), table_name="team")
    op.drop_index(op.f("ix_team_cohort_id"), table_name="team")
    op.drop_table("team")
    op.drop_index(op.f("ix_enrollment_center_id"), table_name="enrollment")
    op.drop_index(op.f("ix_enrollment_user_id"), table_name="enrollment")
    op.drop_index(op.f("ix_enrollment_cohort_id"), table_name="enrollment")
    op.drop_table("enrollment")
    op.drop_table("cohort_orgunit")
    op.drop_index(op.f("ix_orgunit_parent_orgunit_id"), table_name="orgunit")
    op.drop_table("orgunit")
    op.drop_table("cohort")
