"""project_and_resource_store

Creates the project and resource store tables read by the scenario engine:
  - portfolios, projects, work_tasks, work_task_dependencies, cost_entries
  - resource_allocations, user_capacities, capacity_exceptions, team_members

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: a1c3e5f7b901
Revises:
Create Date: 2026-03-02 09:14:22.418311
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1c3e5f7b901'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Portfolio / Project ───────────────────────────────────────────────
    if "portfolios" not in existing:
        op.create_table(
            "portfolios",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "projects" not in existing:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("portfolio_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="active"),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column(
                "budget", sa.Float(), nullable=True,
                comment="Budget at completion (BAC) in project currency",
            ),
            sa.Column(
                "percent_complete", sa.Float(), nullable=True,
                comment="Aggregate % complete, used when the project has no tasks",
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["portfolio_id"], ["portfolios.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_portfolio_id", "projects", ["portfolio_id"])

    # ── WorkTask / dependencies ───────────────────────────────────────────
    if "work_tasks" not in existing:
        op.create_table(
            "work_tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column(
                "status", sa.String(length=30), nullable=True,
                comment="not_started | in_progress | blocked | done | cancelled",
            ),
            sa.Column("planned_start", sa.DateTime(), nullable=True),
            sa.Column("planned_end", sa.DateTime(), nullable=True),
            sa.Column("duration_minutes", sa.Integer(), nullable=True),
            sa.Column("percent_complete", sa.Float(), nullable=True),
            sa.Column("budgeted_cost", sa.Float(), nullable=True),
            sa.Column("assignee_user_id", sa.Integer(), nullable=True),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_work_tasks_project_id", "work_tasks", ["project_id"])
        op.create_index("ix_work_tasks_assignee_user_id", "work_tasks", ["assignee_user_id"])

    if "work_task_dependencies" not in existing:
        op.create_table(
            "work_task_dependencies",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("predecessor_id", sa.Integer(), nullable=False),
            sa.Column("successor_id", sa.Integer(), nullable=False),
            sa.Column(
                "dependency_type", sa.String(length=30), nullable=True,
                comment="finish_to_start | start_to_start | finish_to_finish | start_to_finish",
            ),
            sa.Column("lag_minutes", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["predecessor_id"], ["work_tasks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["successor_id"], ["work_tasks.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("predecessor_id", "successor_id", name="uq_work_task_dep"),
            sa.CheckConstraint("predecessor_id != successor_id", name="ck_work_task_dep_no_self_loop"),
        )
        op.create_index("ix_work_task_dependencies_predecessor_id", "work_task_dependencies", ["predecessor_id"])
        op.create_index("ix_work_task_dependencies_successor_id", "work_task_dependencies", ["successor_id"])

    if "cost_entries" not in existing:
        op.create_table(
            "cost_entries",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("incurred_on", sa.Date(), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("description", sa.String(length=300), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_cost_entries_project_id", "cost_entries", ["project_id"])

    # ── Resource store ────────────────────────────────────────────────────
    if "resource_allocations" not in existing:
        op.create_table(
            "resource_allocations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("allocation_percent", sa.Float(), nullable=False, server_default="100"),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "allocation_percent >= 0 AND allocation_percent <= 100",
                name="ck_allocation_percent_range",
            ),
        )
        op.create_index("ix_resource_allocations_user_id", "resource_allocations", ["user_id"])
        op.create_index("ix_resource_allocations_project_id", "resource_allocations", ["project_id"])

    if "user_capacities" not in existing:
        op.create_table(
            "user_capacities",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column(
                "hours_per_day", sa.Float(), nullable=True,
                comment="NULL falls back to DEFAULT_CAPACITY_HOURS",
            ),
            sa.Column("works_weekends", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id"),
        )

    if "capacity_exceptions" not in existing:
        op.create_table(
            "capacity_exceptions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("day", sa.Date(), nullable=False),
            sa.Column("hours", sa.Float(), nullable=False, server_default="0"),
            sa.Column("reason", sa.String(length=200), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "day", name="uq_capacity_exception_user_day"),
        )
        op.create_index("ix_capacity_exceptions_user_id", "capacity_exceptions", ["user_id"])

    if "team_members" not in existing:
        op.create_table(
            "team_members",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("team_id", "user_id", name="uq_team_member"),
        )
        op.create_index("ix_team_members_team_id", "team_members", ["team_id"])


def downgrade():
    for table in (
        "team_members",
        "capacity_exceptions",
        "user_capacities",
        "resource_allocations",
        "cost_entries",
        "work_task_dependencies",
        "work_tasks",
        "projects",
        "portfolios",
    ):
        op.drop_table(table)
