from datetime import date

import pytest

from csrf import generate_csrf_token, validate_csrf_token
from periods import EPOCH, month_end, month_key, resolve_period


def test_resolve_period_slugs() -> None:
    today = date(2025, 3, 14)
    assert resolve_period(None, today=today) == resolve_period("this_month", today=today)
    this_month = resolve_period(None, today=today)
    assert (this_month.start, this_month.end) == (date(2025, 3, 1), date(2025, 3, 31))

    last = resolve_period("last_month", today=date(2025, 1, 10))
    assert (last.start, last.end) == (date(2024, 12, 1), date(2024, 12, 31))

    everything = resolve_period("all", today=today)
    assert (everything.start, everything.end) == (EPOCH, today)

    custom = resolve_period("custom", "2025-02-01", "2025-02-10", today=today)
    assert custom.contains(date(2025, 2, 10))
    assert not custom.contains(date(2025, 2, 11))


def test_custom_period_validation() -> None:
    with pytest.raises(ValueError):
        resolve_period("custom", "2025-02-10", None, today=date(2025, 3, 1))
    with pytest.raises(ValueError):
        resolve_period("custom", "2025-02-10", "2025-02-01", today=date(2025, 3, 1))


def test_month_helpers() -> None:
    assert month_key(date(2025, 3, 14)) == "2025-03"
    assert month_end(date(2024, 2, 3)) == date(2024, 2, 29)
    assert month_end(date(2025, 12, 31)) == date(2025, 12, 31)


def test_csrf_token_is_bound_to_user() -> None:
    token = generate_csrf_token(1)
    assert validate_csrf_token(token, 1)
    assert not validate_csrf_token(token, 2)
    assert not validate_csrf_token(token + "x", 1)
