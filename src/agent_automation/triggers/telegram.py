"""Minimal Telegram Bot API client for replies and webhook registration."""

from __future__ import annotations

import logging
from typing import Any

import requests

from agent_automation.errors import AgentAutomationError

logger = logging.getLogger(__name__)


class TelegramError(AgentAutomationError):
    """Raised when the Bot API answers with ``ok: false``."""


class TelegramClient:
    def __init__(
        self,
        *,
        token: str,
        base_url: str = "https://api.telegram.org",
        session: requests.Session | None = None,
    ) -> None:
        if not token:
            raise ValueError("TELEGRAM_BOT_TOKEN is required")
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()

    def close(self) -> None:
        self._session.close()

    def _call(self, method: str, payload: dict[str, Any]) -> Any:
        url = f"{self._base_url}/bot{self._token}/{method}"
        resp = self._session.post(url, json=payload, timeout=30)
        try:
            data: dict[str, Any] = resp.json()
        except ValueError:
            resp.raise_for_status()
            raise TelegramError(f"Telegram {method} returned a non-JSON response") from None
        if not data.get("ok"):
            raise TelegramError(
                f"Telegram {method} failed: {data.get('description', resp.status_code)}"
            )
        return data.get("result")

    def send_message(
        self, chat_id: int | str, text: str, reply_to_message_id: int | None = None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_to_message_id is not None:
            payload["reply_parameters"] = {"message_id": reply_to_message_id}
        result = self._call("sendMessage", payload)
        logger.info("Telegram message sent", extra={"chat_id": chat_id})
        return result if isinstance(result, dict) else {}

    def set_webhook(self, url: str, secret_token: str | None = None) -> bool:
        payload: dict[str, Any] = {"url": url}
        if secret_token:
            payload["secret_token"] = secret_token
        result = self._call("setWebhook", payload)
        logger.info("Telegram webhook registered", extra={"url": url})
        return bool(result)
