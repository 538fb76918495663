from datetime import date, datetime

from models import (
    Account,
    AccountCategory,
    AccountType,
    BalanceSnapshot,
    Transaction,
    TransactionType,
)
from periods import EPOCH, Period
from reconciliation import (
    find_chain_breaks,
    needing_explanation,
    pair_latest_snapshots,
    previous_total,
    reconcile_accounts,
    reconcile_global,
    transaction_totals,
)


def account(account_id: int, name: str = "BCA") -> Account:
    return Account(
        id=account_id,
        user_id=1,
        name=name,
        type=AccountType.cash,
        category=AccountCategory.core,
        balance=0,
    )


def snap(snap_id: int, account_id: int, previous: int, new: int, at: datetime) -> BalanceSnapshot:
    return BalanceSnapshot(
        id=snap_id,
        account_id=account_id,
        previous_balance=previous,
        balance_at_time=new,
        recorded_at=at,
    )


def txn(txn_id: int, account_id, amount: int, day: date, kind=TransactionType.spending) -> Transaction:
    return Transaction(
        id=txn_id,
        user_id=1,
        account_id=account_id,
        description=f"txn {txn_id}",
        amount=amount,
        date=day,
        type=kind,
    )


def test_global_reconciliation_example() -> None:
    result = reconcile_global(
        current_total=12_000_000,
        prev_total=10_000_000,
        monthly_income=5_000_000,
        net_transaction_spending=2_000_000,
    )
    assert result.expected_total == 15_000_000
    assert result.raw_gap == 3_000_000
    assert result.unaccounted_spending == 1_000_000
    assert result.total_delta == 3_000_000
    assert not result.is_healthy


def test_unaccounted_spending_never_negative() -> None:
    for spending in (3_000_000, 3_000_001, 10_000_000):
        result = reconcile_global(12_000_000, 10_000_000, 5_000_000, spending)
        assert result.unaccounted_spending == 0
        assert result.is_healthy


def test_total_delta_floors_at_zero_when_balances_grew() -> None:
    result = reconcile_global(20_000_000, 10_000_000, 5_000_000, 0)
    assert result.raw_gap == -5_000_000
    assert result.total_delta == 0
    assert result.unaccounted_spending == 0


def test_pairs_pick_latest_two_per_account() -> None:
    snapshots = [
        snap(1, 1, 0, 100, datetime(2025, 1, 1, 9)),
        snap(2, 1, 100, 200, datetime(2025, 2, 1, 9)),
        snap(3, 1, 200, 300, datetime(2025, 3, 1, 9)),
        snap(4, 2, 0, 50, datetime(2025, 2, 10, 9)),
    ]
    pairs = pair_latest_snapshots(snapshots)
    assert pairs[1].latest.id == 3
    assert pairs[1].preceding.id == 2
    assert pairs[2].latest.id == 4
    assert pairs[2].preceding is None
    assert previous_total(pairs) == 200


def test_same_timestamp_ties_broken_by_id() -> None:
    at = datetime(2025, 3, 1, 12, 0, 0)
    pairs = pair_latest_snapshots([snap(8, 1, 100, 150, at), snap(7, 1, 0, 100, at)])
    assert pairs[1].latest.id == 8
    assert pairs[1].preceding.id == 7


def test_single_snapshot_window_starts_at_epoch() -> None:
    acc = account(1)
    pairs = pair_latest_snapshots([snap(1, 1, 1_000_000, 1_200_000, datetime(2025, 3, 10, 8))])
    transactions = [
        txn(1, 1, 300_000, date(1999, 5, 1), TransactionType.income),
        txn(2, 1, 100_000, date(2025, 3, 10)),
        txn(3, 2, 999, date(2025, 3, 1)),
        txn(4, 1, 5_000, date(2025, 3, 11)),
    ]
    (delta,) = reconcile_accounts([acc], pairs, transactions)
    assert delta.window_start == EPOCH
    assert delta.window_end == date(2025, 3, 10)
    assert delta.raw_delta == 200_000
    assert delta.linked_transaction_ids == (1, 2)
    assert delta.linked_net == 200_000
    assert delta.unaccounted == 0
    assert needing_explanation([delta]) == []


def test_unexplained_change_is_signed() -> None:
    acc = account(1)
    pairs = pair_latest_snapshots(
        [
            snap(1, 1, 0, 1_000_000, datetime(2025, 3, 1, 8)),
            snap(2, 1, 1_000_000, 1_500_000, datetime(2025, 3, 9, 8)),
        ]
    )
    transactions = [txn(1, 1, 100_000, date(2025, 3, 5))]
    (delta,) = reconcile_accounts([acc], pairs, transactions)
    assert delta.window_start == date(2025, 3, 1)
    assert delta.raw_delta == 500_000
    assert delta.linked_net == -100_000
    assert delta.unaccounted == 600_000
    assert needing_explanation([delta]) == [delta]


def test_accounts_without_snapshots_are_skipped() -> None:
    assert reconcile_accounts([account(1), account(2, "BRI")], {}, []) == []


def test_transaction_totals_respect_period() -> None:
    transactions = [
        txn(1, None, 10_000, date(2025, 3, 2)),
        txn(2, None, 40_000, date(2025, 3, 3), TransactionType.income),
        txn(3, None, 7_000, date(2025, 2, 28)),
    ]
    march = Period("this_month", date(2025, 3, 1), date(2025, 3, 31))
    assert transaction_totals(transactions, march) == (10_000, 40_000)
    assert transaction_totals(transactions) == (17_000, 40_000)


def test_chain_breaks_flag_edited_links() -> None:
    snapshots = [
        snap(1, 1, 0, 100, datetime(2025, 1, 1)),
        snap(2, 1, 100, 200, datetime(2025, 1, 2)),
        snap(3, 1, 250, 300, datetime(2025, 1, 3)),
        snap(4, 2, 0, 10, datetime(2025, 1, 1)),
    ]
    assert find_chain_breaks(snapshots) == {3}
