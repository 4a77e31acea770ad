"""Webhook provider adapters.

Each adapter verifies that a request came from its provider and maps the
provider payload to workflow input. Returning `workflow_input=None` means the
event is acknowledged but ignored.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from agent_automation.config import AppSettings
from agent_automation.errors import WebhookUnauthorized

logger = logging.getLogger(__name__)

SLACK_MAX_CLOCK_SKEW_SECONDS = 60 * 5


@dataclass(frozen=True, slots=True)
class ParsedWebhook:
    workflow_input: dict[str, Any] | None
    response: dict[str, Any] | None = None


class WebhookProvider(ABC):
    name: str = "generic"

    def verify(self, headers: Mapping[str, str], body: bytes) -> None:
        """Raise :class:`WebhookUnauthorized` when the request is not authentic."""

    @abstractmethod
    def parse(self, action: str, payload: dict[str, Any]) -> ParsedWebhook: ...


def _secret_matches(expected: str, provided: str | None) -> bool:
    return provided is not None and hmac.compare_digest(expected.encode(), provided.encode())


class GenericProvider(WebhookProvider):
    """Pass the JSON body through unchanged, optionally guarded by `X-Webhook-Secret`."""

    def __init__(self, name: str = "generic", secret: str = "") -> None:
        self.name = name
        self.secret = secret

    def verify(self, headers: Mapping[str, str], body: bytes) -> None:
        if self.secret and not _secret_matches(self.secret, headers.get("x-webhook-secret")):
            raise WebhookUnauthorized("Invalid webhook secret")

    def parse(self, action: str, payload: dict[str, Any]) -> ParsedWebhook:
        return ParsedWebhook(workflow_input=payload)


class TelegramProvider(WebhookProvider):
    name = "telegram"

    def __init__(self, secret_token: str = "") -> None:
        self.secret_token = secret_token

    def verify(self, headers: Mapping[str, str], body: bytes) -> None:
        if self.secret_token and not _secret_matches(
            self.secret_token, headers.get("x-telegram-bot-api-secret-token")
        ):
            raise WebhookUnauthorized("Invalid Telegram secret token")

    def parse(self, action: str, payload: dict[str, Any]) -> ParsedWebhook:
        message = (
            payload.get("message")
            or payload.get("edited_message")
            or payload.get("channel_post")
        )
        if not isinstance(message, dict) or not isinstance(message.get("text"), str):
            logger.debug("Ignoring Telegram update without text", extra={"action": action})
            return ParsedWebhook(workflow_input=None)

        chat = message.get("chat") or {}
        sender = message.get("from") or {}
        return ParsedWebhook(
            workflow_input={
                "update_id": payload.get("update_id"),
                "chat_id": chat.get("id"),
                "message_id": message.get("message_id"),
                "user_id": sender.get("id"),
                "username": sender.get("username"),
                "text": message["text"],
            }
        )


class SlackProvider(WebhookProvider):
    name = "slack"

    def __init__(self, signing_secret: str = "", clock: Callable[[], float] = time.time) -> None:
        self.signing_secret = signing_secret
        self._clock = clock

    def verify(self, headers: Mapping[str, str], body: bytes) -> None:
        if not self.signing_secret:
            return
        timestamp = headers.get("x-slack-request-timestamp", "")
        signature = headers.get("x-slack-signature", "")
        try:
            sent_at = int(timestamp)
        except ValueError:
            raise WebhookUnauthorized("Missing or invalid Slack timestamp") from None
        if abs(self._clock() - sent_at) > SLACK_MAX_CLOCK_SKEW_SECONDS:
            raise WebhookUnauthorized("Stale Slack request")

        expected = slack_signature(self.signing_secret, timestamp, body)
        if not _secret_matches(expected, signature):
            raise WebhookUnauthorized("Invalid Slack signature")

    def parse(self, action: str, payload: dict[str, Any]) -> ParsedWebhook:
        kind = payload.get("type")
        if kind == "url_verification":
            return ParsedWebhook(
                workflow_input=None, response={"challenge": payload.get("challenge", "")}
            )
        if kind != "event_callback":
            return ParsedWebhook(workflow_input=None)

        event = payload.get("event") or {}
        if event.get("bot_id") or event.get("subtype") == "bot_message":
            return ParsedWebhook(workflow_input=None)

        return ParsedWebhook(
            workflow_input={
                "team_id": payload.get("team_id"),
                "event_type": event.get("type"),
                "channel": event.get("channel"),
                "user": event.get("user"),
                "text": event.get("text", ""),
                "ts": event.get("ts"),
            }
        )


def slack_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    base = b"v0:" + timestamp.encode() + b":" + body
    digest = hmac.new(signing_secret.encode(), base, hashlib.sha256).hexdigest()
    return f"v0={digest}"


def build_providers(settings: AppSettings) -> dict[str, WebhookProvider]:
    return {
        "telegram": TelegramProvider(secret_token=settings.telegram_webhook_secret),
        "slack": SlackProvider(signing_secret=settings.slack_signing_secret),
    }
