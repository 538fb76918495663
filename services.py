from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from csv_utils import export_summary
from models import (
    Account,
    BalanceMode,
    BalanceSnapshot,
    Transaction,
    TransactionType,
    UserSettings,
)
from networth import (
    DEFAULT_SERIES_MONTHS,
    GoalProgress,
    NetWorthPoint,
    RebalancingSuggestion,
    build_net_worth_series,
    calc_net_worth,
    goal_progress,
    rebalancing_suggestion,
)
from periods import Period, local_now, local_today, month_period
from reconciliation import (
    AccountDelta,
    GlobalReconciliation,
    SnapshotPair,
    find_chain_breaks,
    needing_explanation,
    pair_latest_snapshots,
    previous_total,
    reconcile_accounts,
    reconcile_global,
)
from schemas import AccountIn, SettingsIn, SnapshotEditIn, TransactionIn

logger = logging.getLogger(__name__)

DEFAULT_MONTHLY_INCOME = 20_000_000
DEFAULT_GOAL_TARGET = 100_000_000
DEFAULT_GOAL_TARGET_DATE = date(2027, 11, 1)


class RecordNotFound(ValueError):
    pass


class AccessDenied(ValueError):
    pass


class StoreError(RuntimeError):
    pass


class BalanceMutationError(StoreError):
    """A balance change could not be stored together with its snapshot."""


def get_current_user_id() -> int:
    return get_settings().user_id


def signed_amount(txn_type: TransactionType, amount: int) -> int:
    return int(amount) if txn_type == TransactionType.income else -int(amount)


def _owned_account(session: Session, user_id: int, account_id: int) -> Account:
    account = session.get(Account, account_id)
    if account is None:
        raise RecordNotFound("Account not found")
    if account.user_id != user_id:
        raise AccessDenied("Invalid account or unauthorized")
    return account


def _commit(
    session: Session, action: str, error: type[StoreError] = StoreError
) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(f"commit_failed: action={action}")
        raise error(f"Could not save {action}") from exc


class AccountService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.created_at, Account.id)
        )
        return self.session.scalars(stmt).all()

    def list_by_name(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(func.lower(Account.name), Account.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        return _owned_account(self.session, self.user_id, account_id)

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.user_id,
            name=data.name,
            type=data.type,
            category=data.category,
            balance=0,
            balance_mode=data.balance_mode,
        )
        self.session.add(account)
        _commit(self.session, "account")
        self.session.refresh(account)
        logger.info(f"account_created: user_id={self.user_id} account_id={account.id}")
        return account

    def set_balance_mode(self, account_id: int, mode: BalanceMode) -> Account:
        account = self.get(account_id)
        account.balance_mode = mode
        _commit(self.session, "account")
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        self.session.execute(
            delete(BalanceSnapshot).where(BalanceSnapshot.account_id == account.id)
        )
        self.session.execute(
            update(Transaction)
            .where(Transaction.account_id == account.id)
            .values(account_id=None)
        )
        self.session.execute(
            update(UserSettings)
            .where(UserSettings.telegram_default_account_id == account.id)
            .values(telegram_default_account_id=None)
        )
        self.session.delete(account)
        _commit(self.session, "account")
        logger.info(f"account_deleted: user_id={self.user_id} account_id={account_id}")


class SnapshotService:
    """Read access to the balance history of the current user's accounts."""

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self, account_id: Optional[int] = None) -> list[BalanceSnapshot]:
        stmt = (
            select(BalanceSnapshot)
            .join(Account, BalanceSnapshot.account_id == Account.id)
            .options(joinedload(BalanceSnapshot.account))
            .where(Account.user_id == self.user_id)
            .order_by(BalanceSnapshot.recorded_at.desc(), BalanceSnapshot.id.desc())
        )
        if account_id is not None:
            stmt = stmt.where(BalanceSnapshot.account_id == account_id)
        return self.session.scalars(stmt).all()

    def get(self, snapshot_id: int) -> BalanceSnapshot:
        snapshot = self.session.get(BalanceSnapshot, snapshot_id)
        if snapshot is None:
            raise RecordNotFound("Balance snapshot not found")
        if snapshot.account.user_id != self.user_id:
            raise AccessDenied("Balance snapshot not found or unauthorized")
        return snapshot

    def latest_pairs(self) -> dict[int, SnapshotPair]:
        return pair_latest_snapshots(self.list_all())

    def latest_pair(self, account_id: int) -> Optional[SnapshotPair]:
        _owned_account(self.session, self.user_id, account_id)
        stmt = (
            select(BalanceSnapshot)
            .where(BalanceSnapshot.account_id == account_id)
            .order_by(BalanceSnapshot.recorded_at.desc(), BalanceSnapshot.id.desc())
            .limit(2)
        )
        rows = self.session.scalars(stmt).all()
        if not rows:
            return None
        return SnapshotPair(latest=rows[0], preceding=rows[1] if len(rows) > 1 else None)

    def chain_breaks(self) -> set[int]:
        return find_chain_breaks(self.list_all())

    def update(self, snapshot_id: int, data: SnapshotEditIn) -> BalanceSnapshot:
        snapshot = self.get(snapshot_id)
        snapshot.balance_at_time = data.balance_at_time
        snapshot.previous_balance = data.previous_balance
        _commit(self.session, "snapshot")
        self.session.refresh(snapshot)
        logger.info(
            f"snapshot_edited: account_id={snapshot.account_id} snapshot_id={snapshot.id}"
        )
        return snapshot

    def delete(self, snapshot_id: int) -> None:
        snapshot = self.get(snapshot_id)
        self.session.delete(snapshot)
        _commit(self.session, "snapshot")
        logger.info(f"snapshot_deleted: snapshot_id={snapshot_id}")


class BalanceService:
    """Every balance change goes through here so the snapshot log stays in step."""

    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.clock = clock or local_now

    def record(self, account: Account, new_balance: int) -> BalanceSnapshot:
        """Write the new balance and its snapshot in the open unit of work.

        Nothing is committed; on a failed flush the session is rolled back so
        neither the balance nor the snapshot survives.
        """
        previous_balance = int(account.balance)
        account.balance = int(new_balance)
        snapshot = BalanceSnapshot(
            account_id=account.id,
            balance_at_time=int(new_balance),
            previous_balance=previous_balance,
            recorded_at=self.clock(),
        )
        self.session.add(snapshot)
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception(f"balance_record_failed: account_id={account.id}")
            raise BalanceMutationError(
                f"Balance change for account {account.id} was not recorded"
            ) from exc
        logger.info(
            f"balance_recorded: account_id={account.id} previous={previous_balance} "
            f"new={new_balance} snapshot_id={snapshot.id}"
        )
        return snapshot

    def set_balance(self, account_id: int, new_balance: int) -> BalanceSnapshot:
        account = _owned_account(self.session, self.user_id, account_id)
        snapshot = self.record(account, new_balance)
        _commit(self.session, "balance update", BalanceMutationError)
        return snapshot

    def apply_transaction_delta(
        self, account_id: int, amount: int, *, commit: bool = True
    ) -> BalanceSnapshot:
        account = _owned_account(self.session, self.user_id, account_id)
        if account.balance_mode != BalanceMode.auto:
            raise ValueError("Account balance is managed manually")
        snapshot = self.record(account, int(account.balance) + int(amount))
        if commit:
            _commit(self.session, "balance update", BalanceMutationError)
        return snapshot


@dataclass
class TransactionFilters:
    account_id: Optional[int] = None
    type: Optional[TransactionType] = None


class TransactionService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.balances = BalanceService(session, self.user_id, clock=clock)

    def create(self, data: TransactionIn) -> Transaction:
        account: Optional[Account] = None
        if data.account_id is not None:
            account = _owned_account(self.session, self.user_id, data.account_id)

        txn = Transaction(
            user_id=self.user_id,
            account_id=account.id if account else None,
            description=data.description.strip(),
            amount=data.amount,
            category=data.category,
            date=data.date,
            type=data.type,
        )
        self.session.add(txn)
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception(f"flush_failed: action=transaction user_id={self.user_id}")
            raise StoreError("Could not save transaction") from exc
        if account is not None and account.balance_mode == BalanceMode.auto:
            self.balances.apply_transaction_delta(
                account.id, signed_amount(txn.type, txn.amount), commit=False
            )
        _commit(self.session, "transaction")
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: user_id={self.user_id} transaction_id={txn.id} "
            f"account_id={txn.account_id} type={txn.type.value} amount={txn.amount}"
        )
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if txn is None:
            raise RecordNotFound("Transaction not found")
        if txn.user_id != self.user_id:
            raise AccessDenied("Transaction not found or unauthorized")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        account = self.session.get(Account, txn.account_id) if txn.account_id else None
        if account is not None and account.balance_mode == BalanceMode.auto:
            # Reversal is appended as its own snapshot; history is not rewritten.
            self.balances.apply_transaction_delta(
                account.id, -signed_amount(txn.type, txn.amount), commit=False
            )
        self.session.delete(txn)
        _commit(self.session, "transaction deletion")
        logger.info(
            f"transaction_deleted: user_id={self.user_id} transaction_id={transaction_id}"
        )

    def list(
        self,
        period: Optional[Period] = None,
        filters: Optional[TransactionFilters] = None,
        *,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.account))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if period is not None:
            stmt = stmt.where(Transaction.date.between(period.start, period.end))
        if filters is not None:
            if filters.account_id is not None:
                stmt = stmt.where(Transaction.account_id == filters.account_id)
            if filters.type is not None:
                stmt = stmt.where(Transaction.type == filters.type)
        if limit is not None:
            stmt = stmt.limit(limit)
        return self.session.scalars(stmt).all()

    def recent(self, limit: int = 10, period: Optional[Period] = None) -> list[Transaction]:
        return self.list(period, limit=limit)

    def totals(self, period: Period) -> tuple[int, int]:
        """(spending, income) dated within ``period``."""
        stmt = select(
            func.coalesce(
                func.sum(
                    case(
                        (Transaction.type == TransactionType.spending, Transaction.amount),
                        else_=0,
                    )
                ),
                0,
            ).label("spending"),
            func.coalesce(
                func.sum(
                    case(
                        (Transaction.type == TransactionType.income, Transaction.amount),
                        else_=0,
                    )
                ),
                0,
            ).label("income"),
        ).where(
            Transaction.user_id == self.user_id,
            Transaction.date.between(period.start, period.end),
        )
        row = self.session.execute(stmt).one()
        return int(row.spending), int(row.income)


class SettingsService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get_or_create(self) -> UserSettings:
        row = self.session.scalar(
            select(UserSettings).where(UserSettings.user_id == self.user_id)
        )
        if row:
            return row
        row = UserSettings(
            user_id=self.user_id,
            monthly_income=DEFAULT_MONTHLY_INCOME,
            goal_target=DEFAULT_GOAL_TARGET,
            goal_target_date=DEFAULT_GOAL_TARGET_DATE,
        )
        self.session.add(row)
        _commit(self.session, "settings")
        self.session.refresh(row)
        return row

    def upsert(self, data: SettingsIn) -> UserSettings:
        if data.telegram_username:
            self._ensure_unclaimed(
                func.lower(UserSettings.telegram_username)
                == data.telegram_username.lower(),
                "Telegram username is already linked to another user",
            )
        if data.whatsapp_phone:
            self._ensure_unclaimed(
                UserSettings.whatsapp_phone == data.whatsapp_phone,
                "WhatsApp number is already linked to another user",
            )
        row = self.get_or_create()
        row.monthly_income = data.monthly_income
        row.goal_target = data.goal_target
        row.goal_target_date = data.goal_target_date
        row.telegram_username = data.telegram_username
        row.whatsapp_phone = data.whatsapp_phone
        _commit(self.session, "settings")
        self.session.refresh(row)
        return row

    def _ensure_unclaimed(self, condition, message: str) -> None:
        owner = self.session.scalar(
            select(UserSettings.user_id).where(
                condition, UserSettings.user_id != self.user_id
            )
        )
        if owner is not None:
            raise ValueError(message)

    def default_account(self) -> Optional[Account]:
        row = self.get_or_create()
        if row.telegram_default_account_id is None:
            return None
        account = self.session.get(Account, row.telegram_default_account_id)
        if account is None or account.user_id != self.user_id:
            return None
        return account

    def set_default_account(self, account_id: Optional[int]) -> UserSettings:
        row = self.get_or_create()
        if account_id is not None:
            _owned_account(self.session, self.user_id, account_id)
        row.telegram_default_account_id = account_id
        _commit(self.session, "settings")
        self.session.refresh(row)
        return row

    @staticmethod
    def user_for_telegram(session: Session, username: str) -> Optional[int]:
        clean = username.strip().lstrip("@").lower()
        if not clean:
            return None
        return session.scalar(
            select(UserSettings.user_id).where(
                func.lower(UserSettings.telegram_username) == clean
            )
        )

    @staticmethod
    def user_for_whatsapp(session: Session, phone: str) -> Optional[int]:
        return session.scalar(
            select(UserSettings.user_id).where(UserSettings.whatsapp_phone == phone)
        )


@dataclass
class DashboardSummary:
    net_worth: int
    monthly_income: int
    spending_total: int
    income_total: int
    reconciliation: GlobalReconciliation
    account_deltas: list[AccountDelta]
    needs_explanation: list[AccountDelta]
    net_worth_series: list[NetWorthPoint]
    rebalancing: RebalancingSuggestion
    goal: GoalProgress
    goal_target: int
    goal_target_date: date


class ReconciliationService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.today = today or local_today()
        self.accounts = AccountService(session, self.user_id)
        self.snapshots = SnapshotService(session, self.user_id)
        self.transactions = TransactionService(session, self.user_id)
        self.settings = SettingsService(session, self.user_id)

    def global_reconciliation(self) -> GlobalReconciliation:
        accounts = self.accounts.list_all()
        pairs = self.snapshots.latest_pairs()
        spending, income = self.transactions.totals(month_period(self.today))
        return reconcile_global(
            current_total=calc_net_worth(accounts),
            prev_total=previous_total(pairs),
            monthly_income=int(self.settings.get_or_create().monthly_income),
            net_transaction_spending=spending - income,
        )

    def account_deltas(self) -> list[AccountDelta]:
        return reconcile_accounts(
            self.accounts.list_all(),
            self.snapshots.latest_pairs(),
            self.transactions.list(),
        )

    def net_worth_series(self, months: int = DEFAULT_SERIES_MONTHS) -> list[NetWorthPoint]:
        return build_net_worth_series(self.snapshots.list_all(), months)

    def dashboard(self) -> DashboardSummary:
        settings = self.settings.get_or_create()
        accounts = self.accounts.list_all()
        snapshots = self.snapshots.list_all()
        pairs = pair_latest_snapshots(snapshots)
        spending, income = self.transactions.totals(month_period(self.today))
        net_worth = calc_net_worth(accounts)
        deltas = reconcile_accounts(accounts, pairs, self.transactions.list())
        return DashboardSummary(
            net_worth=net_worth,
            monthly_income=int(settings.monthly_income),
            spending_total=spending,
            income_total=income,
            reconciliation=reconcile_global(
                current_total=net_worth,
                prev_total=previous_total(pairs),
                monthly_income=int(settings.monthly_income),
                net_transaction_spending=spending - income,
            ),
            account_deltas=deltas,
            needs_explanation=needing_explanation(deltas),
            net_worth_series=build_net_worth_series(snapshots),
            rebalancing=rebalancing_suggestion(accounts),
            goal=goal_progress(
                net_worth,
                int(settings.goal_target),
                settings.goal_target_date,
                today=self.today,
            ),
            goal_target=int(settings.goal_target),
            goal_target_date=settings.goal_target_date,
        )


class CSVService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def export(self, today: Optional[date] = None) -> str:
        period = month_period(today)
        accounts = AccountService(self.session, self.user_id).list_all()
        transactions = TransactionService(self.session, self.user_id).list(period)
        return export_summary(accounts, transactions, period.start)
