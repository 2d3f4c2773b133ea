"""initial ledger schema

Revision ID: 0001_initial_ledger
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_ledger"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MONEY = sa.Numeric(18, 4)
TXN_TYPE = ("INCOME", "EXPENSE", "TRANSFER")
TRANSFER_RULE = (
    "(type = 'TRANSFER' AND to_account_id IS NOT NULL AND to_account_id != account_id AND category_id IS NULL)"
    " OR (type != 'TRANSFER' AND to_account_id IS NULL)"
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "account",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column(
            "type",
            sa.Enum("BANK", "CREDIT_CARD", "WALLET", "CASH", "OTHER", name="account_type"),
            nullable=False,
        ),
        sa.Column("opening_balance", MONEY, nullable=False),
        sa.Column("balance", MONEY, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_account_name"),
    )

    op.create_table(
        "category",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=30), nullable=False),
        sa.Column("type", sa.Enum("EXPENSE", "INCOME", name="category_type"), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        sa.Column("color_code", sa.String(length=7), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("type", "name", name="uq_category_type_name"),
    )

    op.create_table(
        "recurringrule",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=False),
        sa.Column("to_account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("category.id"), nullable=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("type", sa.Enum(*TXN_TYPE, name="txn_type"), nullable=False),
        sa.Column(
            "frequency",
            sa.Enum("DAILY", "WEEKLY", "BIWEEKLY", "MONTHLY", "QUARTERLY", "YEARLY", name="recurring_frequency"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("next_occurrence", sa.Date(), nullable=False),
        sa.Column("last_executed", sa.Date(), nullable=True),
        sa.Column("note", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_recurring_amount_positive"),
        sa.CheckConstraint(TRANSFER_RULE, name="ck_recurring_type_rules"),
    )
    op.create_index("ix_recurring_due", "recurringrule", ["is_active", "next_occurrence"], unique=False)

    op.create_table(
        "transaction",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=False),
        sa.Column("to_account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("category.id"), nullable=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("type", sa.Enum(*TXN_TYPE, name="txn_type"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("note", sa.Text(), nullable=False),
        sa.Column(
            "recurring_rule_id",
            sa.Integer(),
            sa.ForeignKey("recurringrule.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("external_id", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("external_id", name="uq_txn_external_id"),
        sa.CheckConstraint("amount > 0", name="ck_txn_amount_positive"),
        sa.CheckConstraint(TRANSFER_RULE, name="ck_txn_transfer_target"),
    )
    op.create_index("ix_txn_account_date", "transaction", ["account_id", "date"], unique=False)
    op.create_index("ix_txn_to_account_date", "transaction", ["to_account_id", "date"], unique=False)
    op.create_index("ix_txn_type_date", "transaction", ["type", "date"], unique=False)

    op.create_table(
        "budget",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("category.id"), nullable=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("period", sa.Enum("MONTHLY", "YEARLY", name="budget_period"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("alert_percentage", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("end_date >= start_date", name="ck_budget_window"),
        sa.CheckConstraint("alert_percentage BETWEEN 1 AND 100", name="ck_budget_alert_pct"),
    )

    op.create_table(
        "appsettings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("currency_symbol", sa.String(length=8), nullable=False),
        sa.Column(
            "number_format",
            sa.Enum("INDIAN", "INTERNATIONAL", "EUROPEAN", name="number_format"),
            nullable=False,
        ),
        sa.Column("default_transaction_type", sa.Enum(*TXN_TYPE, name="txn_type"), nullable=False),
        sa.Column("is_dark_theme", sa.Boolean(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("id = 1", name="ck_settings_singleton"),
    )


def downgrade() -> None:
    op.drop_table("appsettings")
    op.drop_table("budget")
    op.drop_index("ix_txn_type_date", table_name="transaction")
    op.drop_index("ix_txn_to_account_date", table_name="transaction")
    op.drop_index("ix_txn_account_date", table_name="transaction")
    op.drop_table("transaction")
    op.drop_index("ix_recurring_due", table_name="recurringrule")
    op.drop_table("recurringrule")
    op.drop_table("category")
    op.drop_table("account")
