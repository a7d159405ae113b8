"""create order pipeline tables

Revision ID: 202610190002
Revises: 202610190001
Create Date: 2026-10-19 00:02:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190002"
down_revision: str | None = "202610190001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "orders_pipeline",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.String(length=128), nullable=False),
        sa.Column("deal_id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("current_stage", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="Active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["deal_id"], ["crm_deal.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["account_id"], ["crm_account.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("deal_id", name="uq_orders_pipeline_deal"),
    )
    op.create_index(
        "ix_orders_pipeline_organization",
        "orders_pipeline",
        ["organization_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "orders_pipeline_step",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("pipeline_id", sa.Uuid(), nullable=False),
        sa.Column("step_name", sa.String(length=64), nullable=False),
        sa.Column("assigned_role", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="PENDING"),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_by", sa.String(length=128), nullable=True),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["pipeline_id"], ["orders_pipeline.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pipeline_id", "step_name", name="uq_orders_pipeline_step_name"),
    )
    op.create_index("ix_orders_pipeline_step_pipeline", "orders_pipeline_step", ["pipeline_id"], unique=False)

    op.create_table(
        "orders_pipeline_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("pipeline_id", sa.Uuid(), nullable=False),
        sa.Column("step_name", sa.String(length=64), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("performed_by", sa.String(length=128), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["pipeline_id"], ["orders_pipeline.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_orders_pipeline_log_pipeline",
        "orders_pipeline_log",
        ["pipeline_id", "timestamp"],
        unique=False,
    )

    op.create_table(
        "orders_customer_po",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_id", sa.String(length=128), nullable=False),
        sa.Column("deal_id", sa.Uuid(), nullable=False),
        sa.Column("po_number", sa.String(length=128), nullable=False),
        sa.Column("po_date", sa.Date(), nullable=True),
        sa.Column("document_url", sa.Text(), nullable=True),
        sa.Column("value", sa.Numeric(18, 2), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="Received"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["deal_id"], ["crm_deal.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("deal_id", "po_number", name="uq_orders_customer_po_deal_number"),
    )
    op.create_index(
        "ix_orders_customer_po_organization",
        "orders_customer_po",
        ["organization_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_orders_customer_po_organization", table_name="orders_customer_po")
    op.drop_table("orders_customer_po")

    op.drop_index("ix_orders_pipeline_log_pipeline", table_name="orders_pipeline_log")
    op.drop_table("orders_pipeline_log")

    op.drop_index("ix_orders_pipeline_step_pipeline", table_name="orders_pipeline_step")
    op.drop_table("orders_pipeline_step")

    op.drop_index("ix_orders_pipeline_organization", table_name="orders_pipeline")
    op.drop_table("orders_pipeline")
