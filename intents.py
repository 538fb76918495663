"""Structured intents extracted from chat messages.

The parser itself is a collaborator: anything that turns a message into one of
the intent shapes below will do. Two are provided, a keyword parser that needs
no external service and a client for an HTTP endpoint that answers with the
intent as JSON.
"""

from __future__ import annotations

import http.client
import json
import logging
import re
from typing import Annotated, Literal, Optional, Protocol, Sequence, Union
from urllib.error import URLError
from urllib.request import Request, urlopen

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from amounts import parse_amount
from config import Settings
from models import Account

logger = logging.getLogger(__name__)


class TransactionIntent(BaseModel):
    type: Literal["spending", "income"]
    amount: int = Field(..., ge=0)
    description: str
    category: Optional[str] = None
    account_name: Optional[str] = None
    language: Literal["id", "en"] = "en"


class QueryIntent(BaseModel):
    type: Literal["query"]
    query_type: Literal["balance", "transactions", "help"]
    language: Literal["id", "en"] = "en"


class UnclearIntent(BaseModel):
    type: Literal["unclear"] = "unclear"
    language: Literal["id", "en"] = "en"


Intent = Annotated[
    Union[TransactionIntent, QueryIntent, UnclearIntent], Field(discriminator="type")
]
_intent_adapter = TypeAdapter(Intent)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_intent_payload(raw: str) -> Intent:
    """Validate a JSON intent; anything malformed becomes ``unclear``."""
    cleaned = _FENCE_RE.sub("", (raw or "").strip())
    try:
        return _intent_adapter.validate_json(cleaned)
    except ValidationError:
        logger.warning(f"intent_payload_rejected: raw={cleaned[:200]!r}")
        return UnclearIntent(language="en")


def guess_language(text: str) -> str:
    return "en" if re.search(r"[a-zA-Z]", text) else "id"


def resolve_account(
    name: Optional[str],
    accounts: Sequence[Account],
    default: Optional[Account] = None,
) -> Optional[Account]:
    """First account whose name contains ``name`` or is contained in it."""
    needle = (name or "").strip().lower()
    if needle:
        for account in accounts:
            candidate = account.name.lower()
            if needle in candidate or candidate in needle:
                return account
    return default


class IntentParser(Protocol):
    def parse(self, message: str, accounts: Sequence[Account]) -> Intent: ...


_QUERY_WORDS = {
    "saldo": ("balance", "id"),
    "balance": ("balance", "en"),
    "transaksi": ("transactions", "id"),
    "transactions": ("transactions", "en"),
    "bantuan": ("help", "id"),
    "help": ("help", "en"),
}
_INDONESIAN_WORDS = {
    "beli", "bayar", "gaji", "gajian", "dapat", "terima", "dari", "ke", "pakai",
    "makan", "kopi", "listrik", "bensin", "belanja", "untuk", "uang", "siang",
    "malam", "pagi", "pemasukan", "pengeluaran", "bonus",
}
_INCOME_WORDS = {
    "gaji", "gajian", "salary", "bonus", "dapat", "terima", "received", "income",
    "pemasukan", "refund", "dividen", "dividend", "paid",
}
_ACCOUNT_MARKERS = {"dari", "pakai", "via", "from", "using"}
_CATEGORY_WORDS = {
    "kopi": "food", "coffee": "food", "makan": "food", "lunch": "food",
    "dinner": "food", "breakfast": "food", "sarapan": "food",
    "grab": "transport", "gojek": "transport", "bensin": "transport",
    "transport": "transport", "taxi": "transport", "parkir": "transport",
    "listrik": "bills", "electric": "bills", "internet": "bills", "pulsa": "bills",
    "nonton": "entertainment", "movie": "entertainment",
    "obat": "health", "dokter": "health", "doctor": "health",
    "belanja": "shopping", "shopping": "shopping",
}


class KeywordIntentParser:
    """Reads messages like "Bayar listrik 150rb dari BRI" without a model."""

    def parse(self, message: str, accounts: Sequence[Account]) -> Intent:
        words = message.split()
        lowered = [w.lower().strip("!?,;:") for w in words]
        if not lowered:
            return UnclearIntent(language="id")

        if len(lowered) == 1 and lowered[0].lstrip("/") in _QUERY_WORDS:
            query_type, language = _QUERY_WORDS[lowered[0].lstrip("/")]
            return QueryIntent(type="query", query_type=query_type, language=language)

        language = "en"
        if any(w in _INDONESIAN_WORDS for w in lowered) or any(
            re.search(r"\d(jt|juta|rb|ribu)$", w) for w in lowered
        ):
            language = "id"

        amount_index: Optional[int] = None
        amount: Optional[int] = None
        for index in range(len(lowered) - 1, -1, -1):
            parsed = parse_amount(lowered[index].rstrip("."))
            if parsed is not None:
                amount_index, amount = index, parsed
                break
        if amount is None:
            return UnclearIntent(language=language)

        account_name: Optional[str] = None
        account_words: set[int] = set()
        for index, word in enumerate(lowered):
            if word in _ACCOUNT_MARKERS:
                trailing = [
                    i for i in range(index + 1, len(words)) if i != amount_index
                ]
                if trailing:
                    account_name = " ".join(words[i] for i in trailing)
                    account_words = {index, *trailing}
                break

        description_words = [
            words[i]
            for i in range(len(words))
            if i != amount_index and i not in account_words
        ]
        txn_type = (
            "income" if any(w in _INCOME_WORDS for w in lowered) else "spending"
        )
        category = next(
            (_CATEGORY_WORDS[w] for w in lowered if w in _CATEGORY_WORDS), None
        )
        description = " ".join(description_words).strip()
        if not description:
            description = txn_type.capitalize()
        return TransactionIntent(
            type=txn_type,
            amount=amount,
            description=description[:1].upper() + description[1:],
            category=category,
            account_name=account_name,
            language=language,
        )


class RemoteIntentParser:
    def __init__(self, endpoint: str, *, timeout: float = 5.0) -> None:
        self.endpoint = endpoint
        self.timeout = timeout

    def parse(self, message: str, accounts: Sequence[Account]) -> Intent:
        body = json.dumps(
            {
                "message": message,
                "accounts": [{"name": a.name, "balance": a.balance} for a in accounts],
            }
        ).encode("utf-8")
        req = Request(
            self.endpoint,
            data=body,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            method="POST",
        )
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read().decode("utf-8")
        except (URLError, OSError, http.client.HTTPException, UnicodeDecodeError) as exc:
            logger.warning(f"intent_endpoint_failed: endpoint={self.endpoint} error={exc}")
            return UnclearIntent(language=guess_language(message))
        return parse_intent_payload(raw)


def build_intent_parser(settings: Settings) -> IntentParser:
    if settings.intent_endpoint:
        return RemoteIntentParser(
            settings.intent_endpoint, timeout=settings.http_timeout_secs
        )
    return KeywordIntentParser()
