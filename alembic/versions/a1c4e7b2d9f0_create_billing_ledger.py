"""Create customers, bills, payments and billing audit entries.

Revision ID: a1c4e7b2d9f0
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "a1c4e7b2d9f0"
down_revision = None
branch_labels = None
depends_on = None

customer_status = sa.Enum("active", "suspended", "terminated", name="customer_status")
bill_status = sa.Enum("unpaid", "partial", "paid", name="bill_status")
payment_method = sa.Enum("cash", "transfer", "card", "ewallet", name="payment_method")
billing_audit_action = sa.Enum(
    "generation",
    "payment",
    "compensation_edit",
    "debt_adjustment",
    "reconciliation",
    "reset",
    name="billing_audit_action",
)


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(160), nullable=False),
        sa.Column("phone", sa.String(40)),
        sa.Column("address", sa.Text()),
        sa.Column("monthly_fee", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("carried_debt", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("status", customer_status, nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("monthly_fee >= 0", name="ck_customers_monthly_fee_non_negative"),
        sa.CheckConstraint("carried_debt >= 0", name="ck_customers_carried_debt_non_negative"),
    )

    op.create_table(
        "bills",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("bill_number", sa.String(80), nullable=False),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("billing_month", sa.Integer(), nullable=False),
        sa.Column("billing_year", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("previous_debt", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("compensation", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.BigInteger(), nullable=False),
        sa.Column("paid_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("remaining_amount", sa.BigInteger(), nullable=False),
        sa.Column("status", bill_status, nullable=False, server_default="unpaid"),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("on_hold", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hold_reason", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("bill_number", name="uq_bills_bill_number"),
        sa.UniqueConstraint(
            "customer_id", "billing_month", "billing_year", name="uq_bills_customer_period"
        ),
        sa.CheckConstraint("billing_month BETWEEN 1 AND 12", name="ck_bills_billing_month"),
        sa.CheckConstraint("amount >= 0", name="ck_bills_amount_non_negative"),
        sa.CheckConstraint("previous_debt >= 0", name="ck_bills_previous_debt_non_negative"),
        sa.CheckConstraint("compensation >= 0", name="ck_bills_compensation_non_negative"),
        sa.CheckConstraint("total_amount >= 0", name="ck_bills_total_non_negative"),
        sa.CheckConstraint("paid_amount >= 0", name="ck_bills_paid_non_negative"),
        sa.CheckConstraint("remaining_amount >= 0", name="ck_bills_remaining_non_negative"),
    )
    op.create_index("ix_bills_period", "bills", ["billing_year", "billing_month"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("payment_number", sa.String(80), nullable=False),
        sa.Column("bill_id", sa.Uuid(), sa.ForeignKey("bills.id"), nullable=False),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("method", payment_method, nullable=False, server_default="cash"),
        sa.Column("payment_date", sa.DateTime(timezone=True)),
        sa.Column("reference_number", sa.String(100)),
        sa.Column("notes", sa.Text()),
        sa.Column("recorded_by", sa.String(100)),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("payment_number", name="uq_payments_payment_number"),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
    )
    op.create_index("ix_payments_bill_id", "payments", ["bill_id"])
    op.create_index("ix_payments_customer_id", "payments", ["customer_id"])

    op.create_table(
        "billing_audit_entries",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("action", billing_audit_action, nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("bill_id", sa.Uuid(), sa.ForeignKey("bills.id")),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )
    op.create_index(
        "ix_billing_audit_entries_bill_id", "billing_audit_entries", ["bill_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_billing_audit_entries_bill_id", table_name="billing_audit_entries")
    op.drop_table("billing_audit_entries")
    op.drop_index("ix_payments_customer_id", table_name="payments")
    op.drop_index("ix_payments_bill_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_bills_period", table_name="bills")
    op.drop_table("bills")
    op.drop_table("customers")
    for enum_type in (billing_audit_action, payment_method, bill_status, customer_status):
        enum_type.drop(op.get_bind(), checkfirst=True)
