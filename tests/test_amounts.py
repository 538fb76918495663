import pytest

from amounts import (
    format_amount,
    format_currency,
    format_currency_compact,
    parse_amount,
    parse_signed_amount,
)


@pytest.mark.parametrize("value", [0, 1000, 25000, 500000, 1500000])
def test_grouped_amount_parses_back(value: int) -> None:
    assert parse_amount(format_amount(value)) == value


@pytest.mark.parametrize(
    "text,expected",
    [
        ("1.5jt", 1_500_000),
        ("1,5jt", 1_500_000),
        ("2 juta", 2_000_000),
        ("500rb", 500_000),
        ("500 ribu", 500_000),
        ("5k", 5_000),
        ("5K", 5_000),
        ("25.000", 25_000),
        ("25000", 25_000),
        ("12,6", 13),
    ],
)
def test_shorthand_and_grouping(text: str, expected: int) -> None:
    assert parse_amount(text) == expected


@pytest.mark.parametrize("text", ["", "   ", "abc", "jt", "1.5x", "rp", None])
def test_unparseable_input_is_none(text) -> None:
    assert parse_amount(text) is None


def test_currency_formatting() -> None:
    assert format_currency(1_500_000) == "Rp 1.500.000"
    assert format_currency(-25_000) == "-Rp 25.000"
    assert format_currency_compact(1_500_000) == "Rp 1.5M"
    assert format_currency_compact(2_300_000_000) == "Rp 2.3B"
    assert format_currency_compact(750) == "Rp 750"


@pytest.mark.parametrize(
    "text,expected",
    [
        ("-50000", -50_000),
        ("-1.250.000", -1_250_000),
        (" -1,5jt ", -1_500_000),
        ("- 500rb", -500_000),
        ("750rb", 750_000),
        ("--5", None),
        ("-", None),
        (None, None),
    ],
)
def test_signed_amounts_for_balances(text, expected) -> None:
    assert parse_signed_amount(text) == expected


def test_plain_parser_stays_unsigned() -> None:
    assert parse_amount("-50000") is None
