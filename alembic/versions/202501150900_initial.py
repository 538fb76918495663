"""accounts, balance history, transactions and settings

Revision ID: 202501150900
Revises:
Create Date: 2025-01-15 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202501150900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type", sa.Enum("cash", "investment", name="accounttype"), nullable=False
        ),
        sa.Column(
            "category",
            sa.Enum("core", "satellite", name="accountcategory"),
            nullable=False,
        ),
        sa.Column("balance", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "balance_mode",
            sa.Enum("manual", "auto", name="balancemode"),
            nullable=False,
            server_default="manual",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_accounts_user_name", "accounts", ["user_id", "name"])

    op.create_table(
        "balance_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("balance_at_time", sa.BigInteger(), nullable=False),
        sa.Column("previous_balance", sa.BigInteger(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_balance_history_account_recorded",
        "balance_history",
        ["account_id", "recorded_at"],
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="SET NULL"),
        ),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("category", sa.String(length=100)),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "type", sa.Enum("spending", "income", name="transactiontype"), nullable=False
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_account_date", "transactions", ["account_id", "date"]
    )

    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("monthly_income", sa.BigInteger(), nullable=False),
        sa.Column("goal_target", sa.BigInteger(), nullable=False),
        sa.Column("goal_target_date", sa.Date(), nullable=False),
        sa.Column("telegram_username", sa.String(length=64)),
        sa.Column(
            "telegram_default_account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id", ondelete="SET NULL"),
        ),
        sa.Column("whatsapp_phone", sa.String(length=32)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", name="uq_settings_user"),
    )
    op.create_index(
        "ix_settings_telegram_username", "settings", ["telegram_username"]
    )
    op.create_index("ix_settings_whatsapp_phone", "settings", ["whatsapp_phone"])


def downgrade():
    op.drop_index("ix_settings_whatsapp_phone", table_name="settings")
    op.drop_index("ix_settings_telegram_username", table_name="settings")
    op.drop_table("settings")
    op.drop_index("ix_transactions_account_date", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_balance_history_account_recorded", table_name="balance_history")
    op.drop_table("balance_history")
    op.drop_index("ix_accounts_user_name", table_name="accounts")
    op.drop_table("accounts")
    sa.Enum(name="transactiontype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="balancemode").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="accountcategory").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="accounttype").drop(op.get_bind(), checkfirst=True)
