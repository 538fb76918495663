from datetime import date
from typing import Sequence

from models import Account, Transaction


def _row(values: Sequence[object]) -> str:
    # Plain comma join: names containing commas spill into extra columns.
    return ",".join("" if value is None else str(value) for value in values)


def export_summary(
    accounts: Sequence[Account],
    transactions: Sequence[Transaction],
    month: date,
) -> str:
    lines: list[str] = [
        f"Celengan Financial Summary - {month.strftime('%B %Y')}",
        "",
        "ACCOUNTS",
        "Name,Type,Category,Balance",
    ]
    for account in accounts:
        lines.append(
            _row([account.name, account.type.value, account.category.value, account.balance])
        )
    lines.extend(["", "TRANSACTIONS", "Date,Description,Category,Amount"])
    for txn in transactions:
        lines.append(_row([txn.date.isoformat(), txn.description, txn.category, txn.amount]))
    return "\n".join(lines)


def export_filename(month: date) -> str:
    return f"celengan-{month.year:04d}-{month.month:02d}.csv"
