from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from csv_utils import export_filename, export_summary
from database import Base
from models import Account, AccountCategory, AccountType, Transaction, TransactionType
from schemas import AccountIn, TransactionIn
from services import AccountService, BalanceService, CSVService, TransactionService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_summary_layout() -> None:
    accounts = [
        Account(
            name="BCA",
            type=AccountType.cash,
            category=AccountCategory.core,
            balance=1_500_000,
        )
    ]
    transactions = [
        Transaction(
            description="Beli kopi",
            amount=25_000,
            category=None,
            date=date(2025, 3, 2),
            type=TransactionType.spending,
        )
    ]
    text = export_summary(accounts, transactions, date(2025, 3, 1))
    assert text.split("\n") == [
        "Celengan Financial Summary - March 2025",
        "",
        "ACCOUNTS",
        "Name,Type,Category,Balance",
        "BCA,cash,core,1500000",
        "",
        "TRANSACTIONS",
        "Date,Description,Category,Amount",
        "2025-03-02,Beli kopi,,25000",
    ]
    assert export_filename(date(2025, 3, 14)) == "celengan-2025-03.csv"


def test_export_limits_transactions_to_current_month() -> None:
    session = make_session()
    account = AccountService(session, 1).create(
        AccountIn(name="BRI", type=AccountType.cash, category=AccountCategory.core)
    )
    BalanceService(session, 1).set_balance(account.id, 700_000)
    txns = TransactionService(session, 1)
    for day, description in ((date(2025, 3, 3), "Pulsa"), (date(2025, 2, 3), "Old")):
        txns.create(
            TransactionIn(
                description=description,
                amount=50_000,
                type=TransactionType.spending,
                category="bills",
                date=day,
                account_id=account.id,
            )
        )

    lines = CSVService(session, 1).export(today=date(2025, 3, 20)).split("\n")

    assert "BRI,cash,core,700000" in lines
    assert "2025-03-03,Pulsa,bills,50000" in lines
    assert not any("Old" in line for line in lines)
