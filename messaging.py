"""Outbound replies and inbound payload extraction for the chat platforms."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Protocol
from urllib.error import URLError
from urllib.request import Request, urlopen

from config import Settings

WHATSAPP_API_VERSION = "v19.0"


class MessageSender(Protocol):
    def send(self, recipient: str, text: str) -> None: ...


def _post_json(url: str, payload: dict[str, Any], *, headers: dict[str, str], timeout: float) -> Any:
    req = Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    try:
        with urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode("utf-8") or "{}")
    except (URLError, TimeoutError, json.JSONDecodeError) as exc:
        raise RuntimeError(f"Failed to deliver message via {url.split('/')[2]}") from exc


class TelegramSender:
    def __init__(self, token: str, *, timeout: float = 5.0) -> None:
        self.token = token
        self.timeout = timeout

    def send(self, recipient: str, text: str) -> None:
        if not self.token:
            raise RuntimeError("Telegram bot token is not configured")
        _post_json(
            f"https://api.telegram.org/bot{self.token}/sendMessage",
            {"chat_id": recipient, "text": text, "parse_mode": "Markdown"},
            headers={},
            timeout=self.timeout,
        )


class WhatsAppSender:
    def __init__(self, token: str, phone_number_id: str, *, timeout: float = 5.0) -> None:
        self.token = token
        self.phone_number_id = phone_number_id
        self.timeout = timeout

    def send(self, recipient: str, text: str) -> None:
        if not self.token or not self.phone_number_id:
            raise RuntimeError("WhatsApp credentials are not configured")
        _post_json(
            f"https://graph.facebook.com/{WHATSAPP_API_VERSION}/"
            f"{self.phone_number_id}/messages",
            {
                "messaging_product": "whatsapp",
                "to": recipient,
                "type": "text",
                "text": {"body": text},
            },
            headers={"Authorization": f"Bearer {self.token}"},
            timeout=self.timeout,
        )


def telegram_sender(settings: Settings) -> MessageSender:
    return TelegramSender(settings.telegram_bot_token, timeout=settings.http_timeout_secs)


def whatsapp_sender(settings: Settings) -> MessageSender:
    return WhatsAppSender(
        settings.whatsapp_token,
        settings.whatsapp_phone_number_id,
        timeout=settings.http_timeout_secs,
    )


@dataclass(frozen=True)
class InboundMessage:
    recipient: str
    identity: str
    text: str


def telegram_message(body: dict[str, Any]) -> Optional[InboundMessage]:
    """Chat id, username and text of a Telegram update, if it carries text."""
    message = body.get("message") or {}
    text = message.get("text")
    chat_id = (message.get("chat") or {}).get("id")
    if not text or chat_id is None:
        return None
    username = (message.get("from") or {}).get("username") or ""
    return InboundMessage(recipient=str(chat_id), identity=username, text=text)


def whatsapp_message(body: dict[str, Any]) -> Optional[InboundMessage]:
    """First text message in a Cloud API webhook; identity is the ``+`` phone."""
    for entry in body.get("entry") or []:
        for change in entry.get("changes") or []:
            for message in (change.get("value") or {}).get("messages") or []:
                if message.get("type") != "text":
                    continue
                sender = message.get("from")
                text = (message.get("text") or {}).get("body")
                if sender and text:
                    return InboundMessage(
                        recipient=sender, identity=f"+{sender}", text=text
                    )
    return None
