from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Sequence

from pydantic import ValidationError
from rapidfuzz.distance import Levenshtein
from sqlalchemy.orm import Session

from amounts import format_currency, parse_signed_amount
from i18n import translate
from intents import (
    IntentParser,
    QueryIntent,
    TransactionIntent,
    UnclearIntent,
    guess_language,
    resolve_account,
)
from models import Account, TransactionType
from networth import calc_net_worth
from periods import local_now, month_period
from schemas import TransactionIn
from services import (
    AccountService,
    BalanceService,
    SettingsService,
    StoreError,
    TransactionService,
)

logger = logging.getLogger(__name__)

RECENT_LIMIT = 10

_COMMANDS = {
    "saldo": ("balance", "id"),
    "balance": ("balance", "en"),
    "atur": ("set", "id"),
    "set": ("set", "en"),
    "transaksi": ("transactions", "id"),
    "transactions": ("transactions", "en"),
    "akun": ("accounts", "id"),
    "accounts": ("accounts", "en"),
    "bantuan": ("help", "id"),
    "help": ("help", "en"),
    "start": ("help", "id"),
}
_HELP_COMMAND = {"id": "/bantuan", "en": "/help"}


def setup_reply(channel: str, text: str) -> str:
    """Instructions for a sender that is not linked to any user yet."""
    lang = guess_language(text)
    identity = translate(lang, f"identity_{channel.lower()}")
    return translate(lang, "setup", identity=identity)


class ChatService:
    """Answers one chat message on behalf of a known user."""

    def __init__(
        self,
        session: Session,
        user_id: int,
        parser: IntentParser,
        *,
        channel: str = "Telegram",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.parser = parser
        self.channel = channel
        self.clock = clock or local_now
        self.accounts = AccountService(session, user_id)
        self.settings = SettingsService(session, user_id)
        self.balances = BalanceService(session, user_id, clock=self.clock)
        self.transactions = TransactionService(session, user_id, clock=self.clock)

    def handle(self, text: str) -> str:
        text = (text or "").strip()
        if text.startswith("/"):
            head, *args = text.split()
            command = head[1:].split("@", 1)[0].lower()
            if command in _COMMANDS:
                action, lang = _COMMANDS[command]
                return self._run(action, lang, args)
        return self._handle_intent(text)

    def _run(self, action: str, lang: str, args: Sequence[str]) -> str:
        if action == "balance":
            return self._balances(lang)
        if action == "transactions":
            return self._recent_transactions(lang)
        if action == "accounts":
            return self._accounts(lang, args)
        if action == "set":
            return self._set_balance(lang, args)
        return self._help(lang)

    def _handle_intent(self, text: str) -> str:
        accounts = self.accounts.list_by_name()
        intent = self.parser.parse(text, accounts)
        if isinstance(intent, QueryIntent):
            return self._run(intent.query_type, intent.language, [])
        if isinstance(intent, TransactionIntent):
            return self._record(intent, accounts)
        lang = intent.language if isinstance(intent, UnclearIntent) else "id"
        return translate(lang, "clarify", help_command=_HELP_COMMAND[lang])

    def _help(self, lang: str) -> str:
        accounts = self.accounts.list_by_name()
        lines = "\n".join(f"• {a.name}" for a in accounts) or translate(lang, "no_accounts")
        return translate(lang, "help", channel=self.channel, accounts=lines)

    def _balances(self, lang: str) -> str:
        accounts = self.accounts.list_by_name()
        lines = "\n".join(
            f"• {a.name}: {format_currency(a.balance)}" for a in accounts
        ) or translate(lang, "no_accounts")
        return translate(
            lang, "balances", lines=lines, total=format_currency(calc_net_worth(accounts))
        )

    def _recent_transactions(self, lang: str) -> str:
        period = month_period(self.clock().date())
        txns = self.transactions.recent(RECENT_LIMIT, period)
        if not txns:
            return translate(lang, "no_transactions")
        lines = []
        for txn in txns:
            sign = "-" if txn.type == TransactionType.spending else "+"
            lines.append(
                f"• {txn.date.strftime('%d/%m')} {txn.description}: "
                f"{sign}{format_currency(txn.amount)}"
            )
        return translate(lang, "transactions", lines="\n".join(lines))

    def _numbered(self, lang: str, accounts: Sequence[Account]) -> str:
        default = self.settings.default_account()
        lines = []
        for index, account in enumerate(accounts, start=1):
            marker = ""
            if default is not None and account.id == default.id:
                marker = " " + translate(lang, "default_marker")
            lines.append(f"{index}. {account.name}{marker}")
        return "\n".join(lines) or translate(lang, "no_accounts")

    def _accounts(self, lang: str, args: Sequence[str]) -> str:
        accounts = self.accounts.list_by_name()
        if not args:
            return translate(lang, "accounts", lines=self._numbered(lang, accounts))
        try:
            index = int(args[0])
        except ValueError:
            index = 0
        if not 1 <= index <= len(accounts):
            return translate(lang, "invalid_index", lines=self._numbered(lang, accounts))
        chosen = accounts[index - 1]
        self.settings.set_default_account(chosen.id)
        logger.info(f"chat_default_account_set: user_id={self.user_id} account_id={chosen.id}")
        return translate(lang, "default_set", name=chosen.name)

    def _set_balance(self, lang: str, args: Sequence[str]) -> str:
        if len(args) < 2:
            return translate(lang, "set_usage")
        name = " ".join(args[:-1])
        amount = parse_signed_amount(args[-1])
        if amount is None:
            return translate(lang, "invalid_amount", text=args[-1])

        accounts = self.accounts.list_by_name()
        account = next((a for a in accounts if a.name.lower() == name.lower()), None)
        if account is None:
            account = resolve_account(name, accounts)
        if account is None:
            suggestions = sorted(
                accounts,
                key=lambda a: Levenshtein.distance(name.lower(), a.name.lower()),
            )
            lines = "\n".join(f"• {a.name}" for a in suggestions) or translate(
                lang, "no_accounts"
            )
            return translate(lang, "unknown_account", name=name, lines=lines)

        try:
            snapshot = self.balances.set_balance(account.id, amount)
        except StoreError:
            return translate(lang, "save_failed")
        return translate(
            lang,
            "balance_set",
            name=account.name,
            previous=format_currency(snapshot.previous_balance),
            new=format_currency(snapshot.balance_at_time),
        )

    def _record(self, intent: TransactionIntent, accounts: Sequence[Account]) -> str:
        lang = intent.language
        account = resolve_account(
            intent.account_name, accounts, self.settings.default_account()
        )
        kind = translate(lang, f"kind_{intent.type}")
        try:
            data = TransactionIn(
                description=intent.description.strip()[:200] or kind,
                amount=intent.amount,
                type=TransactionType(intent.type),
                category=intent.category,
                date=self.clock().date(),
                account_id=account.id if account else None,
            )
        except ValidationError:
            logger.warning(f"chat_intent_invalid: user_id={self.user_id}")
            return translate(lang, "clarify", help_command=_HELP_COMMAND[lang])
        try:
            txn = self.transactions.create(data)
        except StoreError:
            return translate(lang, "save_failed")

        details = ""
        if account is not None:
            details += f"\n{translate(lang, 'account_label')}: {account.name}"
        if txn.category:
            details += f"\n{translate(lang, 'category_label')}: {txn.category}"
        details += "\n\n" + translate(lang, "recorded_footer")
        return translate(
            lang,
            "recorded",
            emoji="💸" if txn.type == TransactionType.spending else "💰",
            kind=kind,
            description=txn.description,
            amount=format_currency(txn.amount),
            details=details,
        )
