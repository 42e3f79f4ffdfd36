"""Dues ledger baseline: members, billing settings, charges, payments, closures.

Revision ID: 0001_ledger_baseline
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op


def _get_inspector():
    bind = op.get_bind()
    return sa.inspect(bind)


revision = "0001_ledger_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    tables = set(_get_inspector().get_table_names())

    if "members" not in tables:
        op.create_table(
            "members",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("display_name", sa.String(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )

    if "billing_settings" not in tables:
        op.create_table(
            "billing_settings",
            sa.Column("key", sa.String(), primary_key=True),
            sa.Column("value", sa.JSON(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )

    if "ledger_charges" not in tables:
        op.create_table(
            "ledger_charges",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("member_id", sa.String(), nullable=False),
            sa.Column("period", sa.String(7), nullable=False),
            sa.Column("base_amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("discounts", sa.JSON(), nullable=False),
            sa.Column("surcharges", sa.JSON(), nullable=False),
            sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
            sa.Column("amount_paid", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("remaining_balance", sa.Numeric(10, 2), nullable=False),
            sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("period", "member_id", name="uq_ledger_charges_period_member"),
        )
        op.create_index(op.f("ix_ledger_charges_member_id"), "ledger_charges", ["member_id"], unique=False)
        op.create_index(op.f("ix_ledger_charges_period"), "ledger_charges", ["period"], unique=False)

    if "ledger_payments" not in tables:
        op.create_table(
            "ledger_payments",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("charge_id", sa.String(), sa.ForeignKey("ledger_charges.id"), nullable=False),
            sa.Column("member_id", sa.String(), nullable=False),
            sa.Column("period", sa.String(7), nullable=False),
            sa.Column("amount_tendered", sa.Numeric(10, 2), nullable=False),
            sa.Column("amount_applied", sa.Numeric(10, 2), nullable=False),
            sa.Column("discount_applied", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("method", sa.String(), nullable=True),
            sa.Column("reference", sa.String(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("recorded_by", sa.String(), nullable=True),
            sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index(op.f("ix_ledger_payments_charge_id"), "ledger_payments", ["charge_id"], unique=False)

    if "period_closures" not in tables:
        op.create_table(
            "period_closures",
            sa.Column("period", sa.String(7), primary_key=True),
            sa.Column("closed_by", sa.String(), nullable=False),
            sa.Column("closed_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("charges_surcharged", sa.Integer(), nullable=False, server_default="0"),
        )

    if "period_generations" not in tables:
        op.create_table(
            "period_generations",
            sa.Column("period", sa.String(7), primary_key=True),
            sa.Column("generated_by", sa.String(), nullable=False),
            sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("charges_created", sa.Integer(), nullable=False, server_default="0"),
        )

    if "audit_logs" not in tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("actor", sa.String(), nullable=False),
            sa.Column("action", sa.String(), nullable=False),
            sa.Column("target_entity_type", sa.String(), nullable=True),
            sa.Column("target_entity_id", sa.String(), nullable=True),
            sa.Column("after", sa.Text(), nullable=True),
        )
        op.create_index(op.f("ix_audit_logs_id"), "audit_logs", ["id"], unique=False)
        op.create_index(op.f("ix_audit_logs_timestamp"), "audit_logs", ["timestamp"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_audit_logs_timestamp"), table_name="audit_logs")
    op.drop_index(op.f("ix_audit_logs_id"), table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("period_generations")
    op.drop_table("period_closures")
    op.drop_index(op.f("ix_ledger_payments_charge_id"), table_name="ledger_payments")
    op.drop_table("ledger_payments")
    op.drop_index(op.f("ix_ledger_charges_period"), table_name="ledger_charges")
    op.drop_index(op.f("ix_ledger_charges_member_id"), table_name="ledger_charges")
    op.drop_table("ledger_charges")
    op.drop_table("billing_settings")
    op.drop_table("members")
