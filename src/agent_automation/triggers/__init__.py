"""Cron and webhook triggers that start workflow runs."""

from agent_automation.triggers.dispatcher import WebhookDispatcher, WebhookResult
from agent_automation.triggers.models import CronTrigger, RunSubmitter, Trigger, WebhookTrigger
from agent_automation.triggers.providers import (
    GenericProvider,
    ParsedWebhook,
    SlackProvider,
    TelegramProvider,
    WebhookProvider,
    build_providers,
)
from agent_automation.triggers.scheduler import CronScheduler
from agent_automation.triggers.telegram import TelegramClient, TelegramError

__all__ = [
    "CronScheduler",
    "CronTrigger",
    "GenericProvider",
    "ParsedWebhook",
    "RunSubmitter",
    "SlackProvider",
    "TelegramClient",
    "TelegramError",
    "TelegramProvider",
    "Trigger",
    "WebhookDispatcher",
    "WebhookProvider",
    "WebhookResult",
    "WebhookTrigger",
    "build_providers",
]
