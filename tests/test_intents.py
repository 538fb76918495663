import http.client
import io
import json
from urllib.error import URLError

import pytest

import intents
from intents import (
    KeywordIntentParser,
    QueryIntent,
    RemoteIntentParser,
    TransactionIntent,
    UnclearIntent,
    guess_language,
    parse_intent_payload,
    resolve_account,
)
from models import Account, AccountCategory, AccountType


def account(account_id: int, name: str) -> Account:
    return Account(
        id=account_id,
        name=name,
        type=AccountType.cash,
        category=AccountCategory.core,
        balance=0,
    )


def test_payload_with_code_fence_is_accepted() -> None:
    raw = '```json\n{"type": "spending", "amount": 25000, "description": "Beli kopi", "category": "food", "account_name": null, "language": "id"}\n```'
    intent = parse_intent_payload(raw)
    assert isinstance(intent, TransactionIntent)
    assert intent.amount == 25_000
    assert intent.language == "id"


def test_query_payload() -> None:
    intent = parse_intent_payload('{"type": "query", "query_type": "balance", "language": "en"}')
    assert isinstance(intent, QueryIntent)
    assert intent.query_type == "balance"


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "",
        '{"type": "spending", "amount": -5, "description": "x"}',
        '{"type": "transfer", "amount": 5}',
    ],
)
def test_bad_payload_is_unclear(raw: str) -> None:
    assert isinstance(parse_intent_payload(raw), UnclearIntent)


@pytest.mark.parametrize(
    "message,kind,amount,description,category,account_name,language",
    [
        ("Beli kopi 25rb", "spending", 25_000, "Beli kopi", "food", None, "id"),
        ("Gajian 5jt", "income", 5_000_000, "Gajian", None, None, "id"),
        ("Bayar listrik 150rb dari BRI", "spending", 150_000, "Bayar listrik", "bills", "BRI", "id"),
        ("Lunch 35000", "spending", 35_000, "Lunch", "food", None, "en"),
        ("salary 6000000 from BCA", "income", 6_000_000, "Salary", None, "BCA", "en"),
    ],
)
def test_keyword_parser_transactions(
    message, kind, amount, description, category, account_name, language
) -> None:
    intent = KeywordIntentParser().parse(message, [])
    assert isinstance(intent, TransactionIntent)
    assert intent.type == kind
    assert intent.amount == amount
    assert intent.description == description
    assert intent.category == category
    assert intent.account_name == account_name
    assert intent.language == language


def test_keyword_parser_queries_and_unclear() -> None:
    parser = KeywordIntentParser()
    saldo = parser.parse("saldo", [])
    assert isinstance(saldo, QueryIntent)
    assert (saldo.query_type, saldo.language) == ("balance", "id")
    assert parser.parse("help", []).query_type == "help"
    assert isinstance(parser.parse("halo apa kabar", []), UnclearIntent)
    assert isinstance(parser.parse("", []), UnclearIntent)


def test_resolve_account_matching() -> None:
    accounts = [account(1, "BCA Tahapan"), account(2, "BRI"), account(3, "Jago")]
    default = accounts[2]
    assert resolve_account("bca", accounts).id == 1
    assert resolve_account("rekening BRI", accounts).id == 2
    assert resolve_account("Mandiri", accounts, default).id == 3
    assert resolve_account(None, accounts, default).id == 3
    assert resolve_account("Mandiri", accounts) is None


def test_guess_language() -> None:
    assert guess_language("hello") == "en"
    assert guess_language("💸 123") == "id"


class FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_remote_parser_posts_message(monkeypatch) -> None:
    seen = {}

    def fake_urlopen(req, timeout):
        seen["body"] = json.loads(req.data.decode("utf-8"))
        seen["timeout"] = timeout
        return FakeResponse(b'{"type": "income", "amount": 100, "description": "Bonus", "language": "en"}')

    monkeypatch.setattr(intents, "urlopen", fake_urlopen)
    parser = RemoteIntentParser("http://intents.local/parse", timeout=2.5)
    intent = parser.parse("bonus 100", [account(1, "BCA")])

    assert isinstance(intent, TransactionIntent)
    assert intent.type == "income"
    assert seen["body"] == {
        "message": "bonus 100",
        "accounts": [{"name": "BCA", "balance": 0}],
    }
    assert seen["timeout"] == 2.5


def test_remote_parser_failure_is_unclear(monkeypatch) -> None:
    def failing_urlopen(req, timeout):
        raise URLError("connection refused")

    monkeypatch.setattr(intents, "urlopen", failing_urlopen)
    intent = RemoteIntentParser("http://intents.local/parse").parse("beli kopi", [])
    assert isinstance(intent, UnclearIntent)
    assert intent.language == "en"


@pytest.mark.parametrize(
    "error",
    [
        ConnectionResetError("connection reset by peer"),
        http.client.RemoteDisconnected("remote end closed connection"),
        http.client.IncompleteRead(b"{\"type\""),
    ],
)
def test_remote_parser_connection_errors_are_unclear(monkeypatch, error) -> None:
    def failing_urlopen(req, timeout):
        raise error

    monkeypatch.setattr(intents, "urlopen", failing_urlopen)
    intent = RemoteIntentParser("http://intents.local/parse").parse("beli kopi", [])
    assert isinstance(intent, UnclearIntent)


def test_remote_parser_undecodable_body_is_unclear(monkeypatch) -> None:
    monkeypatch.setattr(
        intents, "urlopen", lambda req, timeout: FakeResponse(b"\xff\xfe\xfa")
    )
    intent = RemoteIntentParser("http://intents.local/parse").parse("kopi 5rb", [])
    assert isinstance(intent, UnclearIntent)
