"""Create projects, routing_rules and transactions tables.

Revision ID: 001
Revises:
Create Date: 2026-10-12
"""

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── Projects (read-only for the routing engine) ───
    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_projects_company_id", "projects", ["company_id"])
    op.create_index("idx_projects_company_code", "projects", ["company_id", "code"])

    # ── Routing rules ─────────────────────────────────
    op.create_table(
        "routing_rules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("field_type", sa.String(32), nullable=False),
        sa.Column("field_name", sa.String(100), nullable=True),
        sa.Column("match_type", sa.String(32), nullable=False),
        sa.Column("match_value", sa.String(500), nullable=False),
        sa.Column("target_project_id", sa.Integer(), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column("priority", sa.Integer(), server_default="0", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("case_sensitive", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("exclude_patterns", sa.JSON(), nullable=True),
        sa.Column("matches_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_matched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revision", sa.Integer(), server_default="1", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_routing_rules_company_id", "routing_rules", ["company_id"])
    op.create_index("idx_routing_rules_company_active", "routing_rules", ["company_id", "is_active"])

    # ── Transactions ──────────────────────────────────
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("external_id", sa.String(100), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("counterparty_name", sa.String(255), nullable=True),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("reference_number", sa.String(100), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("line_items", sa.JSON(), nullable=True),
        sa.Column("custom_fields", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(32), server_default="unrouted", nullable=False),
        sa.Column("assigned_project_id", sa.Integer(), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column("suggested_project_id", sa.Integer(), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column("confidence_score", sa.Integer(), nullable=True),
        sa.Column("matched_rule_id", sa.Integer(), sa.ForeignKey("routing_rules.id"), nullable=True),
        sa.Column("needs_review", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("routing_note", sa.String(500), nullable=True),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("company_id", "external_id", name="uq_transactions_company_external"),
        sa.CheckConstraint("confidence_score BETWEEN 0 AND 100", name="ck_transactions_confidence_range"),
    )
    op.create_index("idx_transactions_company_status", "transactions", ["company_id", "status"])


def downgrade() -> None:
    op.drop_index("idx_transactions_company_status")
    op.drop_table("transactions")
    op.drop_index("idx_routing_rules_company_active")
    op.drop_index("ix_routing_rules_company_id")
    op.drop_table("routing_rules")
    op.drop_index("idx_projects_company_code")
    op.drop_index("ix_projects_company_id")
    op.drop_table("projects")
