from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class AccountType(str, Enum):
    cash = "cash"
    investment = "investment"


class AccountCategory(str, Enum):
    core = "core"
    satellite = "satellite"


class BalanceMode(str, Enum):
    manual = "manual"
    auto = "auto"


class TransactionType(str, Enum):
    spending = "spending"
    income = "income"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[AccountType] = mapped_column(SAEnum(AccountType), nullable=False)
    category: Mapped[AccountCategory] = mapped_column(
        SAEnum(AccountCategory), nullable=False
    )
    # Smallest currency unit; IDR balances overflow 32 bits quickly.
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    balance_mode: Mapped[BalanceMode] = mapped_column(
        SAEnum(BalanceMode), nullable=False, default=BalanceMode.manual
    )

    snapshots: Mapped[list["BalanceSnapshot"]] = relationship(
        "BalanceSnapshot",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account", passive_deletes=True
    )

    __table_args__ = (Index("ix_accounts_user_name", "user_id", "name"),)


class BalanceSnapshot(Base):
    __tablename__ = "balance_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    balance_at_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    previous_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    account: Mapped["Account"] = relationship("Account", back_populates="snapshots")

    __table_args__ = (
        Index("ix_balance_history_account_recorded", "account_id", "recorded_at"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL")
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    date: Mapped[date] = mapped_column(Date, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )

    account: Mapped[Optional["Account"]] = relationship(
        "Account", back_populates="transactions"
    )

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_account_date", "account_id", "date"),
        CheckConstraint("amount >= 0", name="ck_transactions_amount_positive"),
    )


class UserSettings(Base, TimestampMixin):
    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    monthly_income: Mapped[int] = mapped_column(BigInteger, nullable=False)
    goal_target: Mapped[int] = mapped_column(BigInteger, nullable=False)
    goal_target_date: Mapped[date] = mapped_column(Date, nullable=False)
    telegram_username: Mapped[Optional[str]] = mapped_column(String(64))
    telegram_default_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL")
    )
    whatsapp_phone: Mapped[Optional[str]] = mapped_column(String(32))

    default_account: Mapped[Optional["Account"]] = relationship("Account")

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_settings_user"),
        Index("ix_settings_telegram_username", "telegram_username"),
        Index("ix_settings_whatsapp_phone", "whatsapp_phone"),
    )
