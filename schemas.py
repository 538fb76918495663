from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import AccountCategory, AccountType, BalanceMode, TransactionType


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    category: AccountCategory
    balance_mode: BalanceMode = BalanceMode.manual

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Account name is required")
        return value


class BalanceUpdateIn(BaseModel):
    balance: int


class SnapshotEditIn(BaseModel):
    balance_at_time: int
    previous_balance: int


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: str = Field(..., min_length=1, max_length=200)
    amount: int = Field(..., ge=0)
    type: TransactionType
    category: Optional[str] = Field(default=None, max_length=100)
    date: date
    account_id: Optional[int] = None

    @field_validator("category")
    @classmethod
    def _blank_category_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class SettingsIn(BaseModel):
    monthly_income: int = Field(..., ge=0)
    goal_target: int = Field(..., ge=0)
    goal_target_date: date
    telegram_username: Optional[str] = Field(default=None, max_length=64)
    whatsapp_phone: Optional[str] = Field(default=None, max_length=32)

    @field_validator("telegram_username")
    @classmethod
    def _normalize_username(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().lstrip("@")
        return value or None

    @field_validator("whatsapp_phone")
    @classmethod
    def _normalize_phone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        digits = "".join(ch for ch in value if ch.isdigit())
        return f"+{digits}" if digits else None
