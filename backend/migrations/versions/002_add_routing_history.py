"""Add routing_runs and routing_events tables.

At most one running run per company is enforced by a partial unique index.

Revision ID: 002
Revises: 001
Create Date: 2026-10-12
"""

from alembic import op
import sqlalchemy as sa

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "routing_runs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(32), server_default="running", nullable=False),
        sa.Column("total", sa.Integer(), server_default="0", nullable=False),
        sa.Column("routed", sa.Integer(), server_default="0", nullable=False),
        sa.Column("suggested", sa.Integer(), server_default="0", nullable=False),
        sa.Column("unresolved", sa.Integer(), server_default="0", nullable=False),
        sa.Column("no_match", sa.Integer(), server_default="0", nullable=False),
        sa.Column("conflicts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("errors", sa.Integer(), server_default="0", nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_routing_runs_company_id", "routing_runs", ["company_id"])
    op.create_index(
        "uq_routing_runs_company_running",
        "routing_runs",
        ["company_id"],
        unique=True,
        postgresql_where=sa.text("status = 'running'"),
    )

    op.create_table(
        "routing_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("transactions.id"), nullable=False),
        sa.Column("run_id", sa.Integer(), sa.ForeignKey("routing_runs.id"), nullable=True),
        sa.Column("outcome", sa.String(32), nullable=False),
        sa.Column("rule_id", sa.Integer(), nullable=True),
        sa.Column("project_id", sa.Integer(), nullable=True),
        sa.Column("confidence", sa.Integer(), nullable=True),
        sa.Column("detail", sa.String(500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_routing_events_transaction", "routing_events", ["transaction_id"])


def downgrade() -> None:
    op.drop_index("idx_routing_events_transaction")
    op.drop_table("routing_events")
    op.drop_index("uq_routing_runs_company_running")
    op.drop_index("ix_routing_runs_company_id")
    op.drop_table("routing_runs")
