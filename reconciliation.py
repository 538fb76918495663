"""Expected vs. observed balance changes.

Two granularities are computed here:

* global: the month-to-date picture across every account, where the expected
  total is last snapshot's totals plus the configured monthly income;
* per account: the change recorded by an account's latest snapshot compared
  with the transactions logged against that account since the snapshot
  before it.

Everything in this module is pure; the services layer does the fetching.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Sequence

from models import Account, BalanceSnapshot, Transaction, TransactionType
from periods import EPOCH, Period


@dataclass(frozen=True)
class SnapshotPair:
    latest: BalanceSnapshot
    preceding: Optional[BalanceSnapshot]

    @property
    def window_start(self) -> date:
        if self.preceding is None:
            return EPOCH
        return self.preceding.recorded_at.date()

    @property
    def window_end(self) -> date:
        return self.latest.recorded_at.date()


def snapshot_sort_key(snapshot: BalanceSnapshot) -> tuple:
    # Timestamps collide at second granularity; the row id keeps arrival order.
    return (snapshot.recorded_at, snapshot.id or 0)


def pair_latest_snapshots(
    snapshots: Iterable[BalanceSnapshot],
) -> dict[int, SnapshotPair]:
    """Latest snapshot and the one right before it, keyed by account id."""
    newest_first = sorted(snapshots, key=snapshot_sort_key, reverse=True)
    seen: dict[int, list[BalanceSnapshot]] = defaultdict(list)
    for snapshot in newest_first:
        bucket = seen[snapshot.account_id]
        if len(bucket) < 2:
            bucket.append(snapshot)
    return {
        account_id: SnapshotPair(
            latest=bucket[0], preceding=bucket[1] if len(bucket) > 1 else None
        )
        for account_id, bucket in seen.items()
    }


@dataclass(frozen=True)
class GlobalReconciliation:
    current_total: int
    prev_total: int
    monthly_income: int
    net_transaction_spending: int

    @property
    def expected_total(self) -> int:
        return self.prev_total + self.monthly_income

    @property
    def raw_gap(self) -> int:
        return self.expected_total - self.current_total

    @property
    def unaccounted_spending(self) -> int:
        # Logged transactions overshooting the gap never become a credit.
        return max(0, self.raw_gap - self.net_transaction_spending)

    @property
    def total_delta(self) -> int:
        return max(0, self.raw_gap)

    @property
    def is_healthy(self) -> bool:
        return self.unaccounted_spending <= 0

    def as_dict(self) -> dict[str, object]:
        return {
            "current_total": self.current_total,
            "prev_total": self.prev_total,
            "monthly_income": self.monthly_income,
            "net_transaction_spending": self.net_transaction_spending,
            "expected_total": self.expected_total,
            "raw_gap": self.raw_gap,
            "unaccounted_spending": self.unaccounted_spending,
            "total_delta": self.total_delta,
        }


def reconcile_global(
    current_total: int,
    prev_total: int,
    monthly_income: int,
    net_transaction_spending: int,
) -> GlobalReconciliation:
    return GlobalReconciliation(
        current_total=current_total,
        prev_total=prev_total,
        monthly_income=monthly_income,
        net_transaction_spending=net_transaction_spending,
    )


def previous_total(pairs: dict[int, SnapshotPair]) -> int:
    return sum(int(pair.latest.previous_balance) for pair in pairs.values())


def transaction_totals(
    transactions: Iterable[Transaction], period: Optional[Period] = None
) -> tuple[int, int]:
    """(spending, income) over ``transactions``, optionally limited to a period."""
    spending = 0
    income = 0
    for txn in transactions:
        if period is not None and not period.contains(txn.date):
            continue
        if txn.type == TransactionType.spending:
            spending += int(txn.amount)
        else:
            income += int(txn.amount)
    return spending, income


@dataclass(frozen=True)
class AccountDelta:
    account_id: int
    account_name: str
    snapshot_id: int
    window_start: date
    window_end: date
    raw_delta: int
    linked_net: int
    linked_transaction_ids: tuple[int, ...]

    @property
    def unaccounted(self) -> int:
        return self.raw_delta - self.linked_net

    @property
    def needs_explanation(self) -> bool:
        return abs(self.unaccounted) > 0

    def as_dict(self) -> dict[str, object]:
        return {
            "account_id": self.account_id,
            "account_name": self.account_name,
            "snapshot_id": self.snapshot_id,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "raw_delta": self.raw_delta,
            "linked_net": self.linked_net,
            "unaccounted": self.unaccounted,
            "linked_transaction_ids": list(self.linked_transaction_ids),
        }


def account_delta(
    account: Account, pair: SnapshotPair, transactions: Iterable[Transaction]
) -> AccountDelta:
    start = pair.window_start
    end = pair.window_end
    linked = [
        txn
        for txn in transactions
        if txn.account_id == account.id and start <= txn.date <= end
    ]
    spending, income = transaction_totals(linked)
    latest = pair.latest
    return AccountDelta(
        account_id=account.id,
        account_name=account.name,
        snapshot_id=latest.id,
        window_start=start,
        window_end=end,
        raw_delta=int(latest.balance_at_time) - int(latest.previous_balance),
        linked_net=income - spending,
        linked_transaction_ids=tuple(txn.id for txn in linked),
    )


def reconcile_accounts(
    accounts: Sequence[Account],
    pairs: dict[int, SnapshotPair],
    transactions: Sequence[Transaction],
) -> list[AccountDelta]:
    """Per-account deltas; accounts that were never snapshotted are left out."""
    deltas: list[AccountDelta] = []
    for account in accounts:
        pair = pairs.get(account.id)
        if pair is None:
            continue
        deltas.append(account_delta(account, pair, transactions))
    return deltas


def needing_explanation(deltas: Iterable[AccountDelta]) -> list[AccountDelta]:
    return [delta for delta in deltas if delta.needs_explanation]


def find_chain_breaks(snapshots: Iterable[BalanceSnapshot]) -> set[int]:
    """Ids of snapshots whose previous_balance skips the prior entry.

    Manual edits are allowed to break the chain; this is only reported.
    """
    by_account: dict[int, list[BalanceSnapshot]] = defaultdict(list)
    for snapshot in snapshots:
        by_account[snapshot.account_id].append(snapshot)

    breaks: set[int] = set()
    for chain in by_account.values():
        chain.sort(key=snapshot_sort_key)
        for prior, current in zip(chain, chain[1:]):
            if int(current.previous_balance) != int(prior.balance_at_time):
                breaks.add(current.id)
    return breaks
