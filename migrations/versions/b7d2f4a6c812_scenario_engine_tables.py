"""scenario_engine_tables

Creates the scenario engine's own tables:
  - scenario_plans / scenario_actions / scenario_results  — what-if plans
  - schedule_baselines / baseline_tasks                   — frozen schedules
  - earned_value_snapshots                                — stored EVM history

schedule_baselines carries a partial unique index so at most one baseline
per project can be active.

Revision ID: b7d2f4a6c812
Revises: a1c3e5f7b901
Create Date: 2026-03-02 10:41:07.552903
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'b7d2f4a6c812'
down_revision = 'a1c3e5f7b901'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── ScenarioPlan ──────────────────────────────────────────────────────
    if "scenario_plans" not in existing:
        op.create_table(
            "scenario_plans",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("scope_type", sa.String(length=20), nullable=False, comment="project | portfolio"),
            sa.Column("scope_id", sa.Integer(), nullable=False),
            sa.Column(
                "status", sa.String(length=20), nullable=False,
                server_default="draft", comment="draft | active",
            ),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            sa.Column(
                "actions_version", sa.Integer(), nullable=False, server_default="0",
                comment="Bumped on every action add/remove; results record the version they saw",
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_scenario_plans_scope_id", "scenario_plans", ["scope_id"])

    if "scenario_actions" not in existing:
        op.create_table(
            "scenario_actions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("scenario_id", sa.Integer(), nullable=False),
            sa.Column(
                "action_type", sa.String(length=30), nullable=False,
                comment="shift_project | shift_task | change_capacity | change_budget",
            ),
            sa.Column("payload", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["scenario_id"], ["scenario_plans.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_scenario_actions_scenario_id", "scenario_actions", ["scenario_id"])

    if "scenario_results" not in existing:
        op.create_table(
            "scenario_results",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("scenario_id", sa.Integer(), nullable=False),
            sa.Column("computed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("summary", sa.JSON(), nullable=False),
            sa.Column("warnings", sa.JSON(), nullable=False),
            sa.Column("actions_version", sa.Integer(), nullable=False, server_default="0"),
            sa.ForeignKeyConstraint(["scenario_id"], ["scenario_plans.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("scenario_id"),
        )

    # ── ScheduleBaseline ──────────────────────────────────────────────────
    if "schedule_baselines" not in existing:
        op.create_table(
            "schedule_baselines",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_schedule_baselines_project_id", "schedule_baselines", ["project_id"])
        op.create_index(
            "uq_schedule_baselines_project_active",
            "schedule_baselines",
            ["project_id"],
            unique=True,
            postgresql_where=sa.text("is_active IS TRUE"),
            sqlite_where=sa.text("is_active = 1"),
        )

    if "baseline_tasks" not in existing:
        op.create_table(
            "baseline_tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("baseline_id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False, server_default=""),
            sa.Column("planned_start", sa.DateTime(), nullable=True),
            sa.Column("planned_end", sa.DateTime(), nullable=True),
            sa.Column("is_critical", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.ForeignKeyConstraint(["baseline_id"], ["schedule_baselines.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_baseline_tasks_baseline_id", "baseline_tasks", ["baseline_id"])

    # ── EarnedValueSnapshot ───────────────────────────────────────────────
    if "earned_value_snapshots" not in existing:
        op.create_table(
            "earned_value_snapshots",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("as_of_date", sa.Date(), nullable=False),
            sa.Column("bac", sa.Float(), nullable=False, server_default="0"),
            sa.Column("pv", sa.Float(), nullable=False, server_default="0"),
            sa.Column("ev", sa.Float(), nullable=False, server_default="0"),
            sa.Column("ac", sa.Float(), nullable=False, server_default="0"),
            sa.Column("cpi", sa.Float(), nullable=True),
            sa.Column("spi", sa.Float(), nullable=True),
            sa.Column("eac", sa.Float(), nullable=False, server_default="0"),
            sa.Column("etc", sa.Float(), nullable=False, server_default="0"),
            sa.Column("vac", sa.Float(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_earned_value_snapshots_project_id", "earned_value_snapshots", ["project_id"])


def downgrade():
    op.drop_table("earned_value_snapshots")
    op.drop_table("baseline_tasks")
    op.drop_index("uq_schedule_baselines_project_active", table_name="schedule_baselines")
    op.drop_table("schedule_baselines")
    op.drop_table("scenario_results")
    op.drop_table("scenario_actions")
    op.drop_table("scenario_plans")
