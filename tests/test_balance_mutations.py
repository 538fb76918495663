from datetime import datetime

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Account, AccountCategory, AccountType, BalanceMode, BalanceSnapshot
from schemas import AccountIn, SnapshotEditIn
from services import (
    AccessDenied,
    AccountService,
    BalanceMutationError,
    BalanceService,
    RecordNotFound,
    SnapshotService,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def fixed_clock(at: datetime):
    return lambda: at


def new_account(session, name="BCA", mode=BalanceMode.manual, user_id=1) -> Account:
    return AccountService(session, user_id).create(
        AccountIn(
            name=name,
            type=AccountType.cash,
            category=AccountCategory.core,
            balance_mode=mode,
        )
    )


def test_new_account_starts_at_zero_without_history() -> None:
    session = make_session()
    account = new_account(session)
    assert account.balance == 0
    assert SnapshotService(session, 1).list_all() == []


def test_set_balance_records_one_snapshot() -> None:
    session = make_session()
    account = new_account(session)
    balances = BalanceService(session, 1, clock=fixed_clock(datetime(2025, 3, 1, 9, 0)))
    balances.set_balance(account.id, 1_000)

    snapshot = balances.set_balance(account.id, 500)

    assert session.get(Account, account.id).balance == 500
    history = SnapshotService(session, 1).list_all(account.id)
    assert len(history) == 2
    assert history[0].id == snapshot.id
    assert (snapshot.previous_balance, snapshot.balance_at_time) == (1_000, 500)
    assert snapshot.recorded_at == datetime(2025, 3, 1, 9, 0)


def test_toggling_mode_does_not_snapshot() -> None:
    session = make_session()
    account = new_account(session)
    BalanceService(session, 1).set_balance(account.id, 2_000)

    updated = AccountService(session, 1).set_balance_mode(account.id, BalanceMode.auto)

    assert updated.balance_mode == BalanceMode.auto
    assert updated.balance == 2_000
    assert len(SnapshotService(session, 1).list_all()) == 1


def test_failed_flush_leaves_balance_and_history_untouched(monkeypatch) -> None:
    session = make_session()
    account = new_account(session)
    BalanceService(session, 1).set_balance(account.id, 1_000)

    def broken_flush(*args, **kwargs):
        raise OperationalError("INSERT INTO balance_history", {}, Exception("disk I/O error"))

    monkeypatch.setattr(session, "flush", broken_flush)
    with pytest.raises(BalanceMutationError):
        BalanceService(session, 1).set_balance(account.id, 500)
    monkeypatch.undo()

    assert session.get(Account, account.id).balance == 1_000
    rows = session.scalars(select(BalanceSnapshot)).all()
    assert [(r.previous_balance, r.balance_at_time) for r in rows] == [(0, 1_000)]


def test_foreign_account_is_rejected_before_any_write() -> None:
    session = make_session()
    theirs = new_account(session, name="Theirs", user_id=2)

    with pytest.raises(AccessDenied):
        BalanceService(session, 1).set_balance(theirs.id, 500)
    with pytest.raises(RecordNotFound):
        BalanceService(session, 1).set_balance(9_999, 500)

    assert session.get(Account, theirs.id).balance == 0
    assert session.scalars(select(BalanceSnapshot)).all() == []


def test_manual_account_refuses_transaction_delta() -> None:
    session = make_session()
    account = new_account(session)
    with pytest.raises(ValueError):
        BalanceService(session, 1).apply_transaction_delta(account.id, -100)


def test_snapshot_edit_and_delete_leave_balance_alone() -> None:
    session = make_session()
    account = new_account(session)
    clock_times = iter([datetime(2025, 1, 1, 8), datetime(2025, 1, 2, 8)])
    balances = BalanceService(session, 1, clock=lambda: next(clock_times))
    first = balances.set_balance(account.id, 1_000)
    second = balances.set_balance(account.id, 1_500)

    snapshots = SnapshotService(session, 1)
    snapshots.update(second.id, SnapshotEditIn(balance_at_time=1_500, previous_balance=900))
    assert snapshots.chain_breaks() == {second.id}

    snapshots.delete(first.id)
    assert session.get(Account, account.id).balance == 1_500
    assert [s.id for s in snapshots.list_all()] == [second.id]
    assert snapshots.chain_breaks() == set()


def test_latest_pair_for_account() -> None:
    session = make_session()
    account = new_account(session)
    snapshots = SnapshotService(session, 1)
    assert snapshots.latest_pair(account.id) is None

    times = iter([datetime(2025, 1, 1, 8), datetime(2025, 1, 5, 8), datetime(2025, 1, 9, 8)])
    balances = BalanceService(session, 1, clock=lambda: next(times))
    balances.set_balance(account.id, 100)
    middle = balances.set_balance(account.id, 200)
    last = balances.set_balance(account.id, 300)

    pair = snapshots.latest_pair(account.id)
    assert pair.latest.id == last.id
    assert pair.preceding.id == middle.id


def test_snapshot_of_another_user_is_hidden() -> None:
    session = make_session()
    theirs = new_account(session, name="Theirs", user_id=2)
    snapshot = BalanceService(session, 2).set_balance(theirs.id, 10)

    with pytest.raises(AccessDenied):
        SnapshotService(session, 1).get(snapshot.id)
    assert SnapshotService(session, 1).list_all() == []
