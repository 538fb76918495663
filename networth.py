from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from models import Account, AccountCategory, AccountType, BalanceSnapshot
from periods import local_today, month_key
from reconciliation import snapshot_sort_key

DEFAULT_SERIES_MONTHS = 6
SATELLITE_TARGET = 0.2


@dataclass(frozen=True)
class NetWorthPoint:
    month: str  # YYYY-MM
    net_worth: int

    @property
    def label(self) -> str:
        return date.fromisoformat(f"{self.month}-01").strftime("%b %y")

    def as_dict(self) -> dict[str, object]:
        return {"month": self.month, "label": self.label, "net_worth": self.net_worth}


def calc_net_worth(accounts: Iterable[Account]) -> int:
    return sum(int(account.balance) for account in accounts)


def build_net_worth_series(
    snapshots: Iterable[BalanceSnapshot], months: int = DEFAULT_SERIES_MONTHS
) -> list[NetWorthPoint]:
    """One point per calendar month, summing each account's last balance in it.

    An account without a snapshot in a month adds nothing to that month; its
    last known balance is not carried forward.
    """
    latest: dict[str, dict[int, int]] = {}
    for snapshot in sorted(snapshots, key=snapshot_sort_key):
        key = month_key(snapshot.recorded_at.date())
        latest.setdefault(key, {})[snapshot.account_id] = int(
            snapshot.balance_at_time
        )

    points = [
        NetWorthPoint(month=key, net_worth=sum(balances.values()))
        for key, balances in sorted(latest.items())
    ]
    if months <= 0:
        return []
    return points[-months:]


@dataclass(frozen=True)
class RebalancingSuggestion:
    satellite_pct: float
    core_pct: float
    suggestion: str  # buy_core | accumulate_satellite | balanced
    message: str


def rebalancing_suggestion(accounts: Iterable[Account]) -> RebalancingSuggestion:
    investments = [a for a in accounts if a.type == AccountType.investment]
    total = sum(int(a.balance) for a in investments)
    if total == 0:
        return RebalancingSuggestion(0.0, 0.0, "balanced", "No investment accounts yet.")

    satellite = sum(
        int(a.balance) for a in investments if a.category == AccountCategory.satellite
    )
    satellite_pct = satellite / total
    core_pct = (total - satellite) / total

    if satellite_pct > SATELLITE_TARGET:
        return RebalancingSuggestion(
            satellite_pct,
            core_pct,
            "buy_core",
            f"Satellite is {satellite_pct * 100:.1f}% of portfolio. "
            "Consider buying more Core to rebalance toward 80/20.",
        )
    if satellite_pct < SATELLITE_TARGET:
        return RebalancingSuggestion(
            satellite_pct,
            core_pct,
            "accumulate_satellite",
            f"Satellite is {satellite_pct * 100:.1f}% of portfolio. "
            "Consider accumulating more Satellite to reach 20%.",
        )
    return RebalancingSuggestion(
        satellite_pct,
        core_pct,
        "balanced",
        "Portfolio is balanced at 80% Core / 20% Satellite.",
    )


@dataclass(frozen=True)
class GoalProgress:
    progress_pct: float
    months_remaining: int
    monthly_needed: int


def goal_progress(
    net_worth: int, target: int, target_date: date, today: Optional[date] = None
) -> GoalProgress:
    today = today or local_today()
    if target <= 0:
        progress_pct = 100.0
    else:
        progress_pct = min(100.0, net_worth / target * 100)

    months = (target_date.year - today.year) * 12 + (target_date.month - today.month)
    months_remaining = max(0, months)
    remaining = max(0, target - net_worth)
    if months_remaining > 0:
        monthly_needed = -(-remaining // months_remaining)
    else:
        monthly_needed = remaining
    return GoalProgress(progress_pct, months_remaining, monthly_needed)
