#!/usr/bin/env python3
"""Telegram assistant example.

Declares:

* a `clock` tool and an `assistant` agent that remembers each chat
* a `telegram-reply` workflow that answers incoming Telegram messages
* a `daily-digest` workflow, started every weekday morning by a cron trigger,
  that sends a note to the chat named by ``DIGEST_CHAT_ID``

Serve it with::

    AGENT_APP=examples.telegram_assistant:application agent-automation dev

and point the bot at it with ``agent-automation set-telegram-webhook --base-url ...``.
"""

from __future__ import annotations

import os
from datetime import datetime
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from agent_automation import (
    AgentConfig,
    Application,
    CronTrigger,
    MemoryConfig,
    StepContext,
    WebhookTrigger,
    Workflow,
    step,
)
from agent_automation.triggers.telegram import TelegramClient

application = Application("telegram-assistant")


class ClockInput(BaseModel):
    timezone: str = "UTC"


class TelegramMessage(BaseModel):
    chat_id: int
    message_id: int | None = None
    text: str


class Reply(BaseModel):
    chat_id: int
    message_id: int | None = None
    text: str


class DigestRequest(BaseModel):
    chat_id: int
    prompt: str


class Delivery(BaseModel):
    chat_id: int
    sent: bool


@application.tool(description="Current time in ISO 8601 for an IANA timezone such as Europe/Paris")
def clock(args: ClockInput) -> dict[str, str]:
    return {"timezone": args.timezone, "now": datetime.now(tz=ZoneInfo(args.timezone)).isoformat()}


application.register_agent(
    AgentConfig(
        name="assistant",
        instructions="You are a concise assistant chatting over Telegram.",
        tools=("clock",),
        memory=MemoryConfig(last_messages=20),
    )
)


@step(input_schema=TelegramMessage, output_schema=Reply, id="answer")
def answer(ctx: StepContext) -> Reply:
    """Ask the assistant, keeping one memory thread per chat."""
    response = ctx.get_agent("assistant").generate(
        ctx.input.text,
        thread_id=f"telegram:{ctx.input.chat_id}",
        resource_id=str(ctx.input.chat_id),
    )
    return Reply(chat_id=ctx.input.chat_id, message_id=ctx.input.message_id, text=response.text)


@step(input_schema=Reply, output_schema=Delivery, id="send")
def send(ctx: StepContext) -> Delivery:
    client = TelegramClient(token=application.settings.telegram_bot_token)
    try:
        client.send_message(
            ctx.input.chat_id, ctx.input.text, reply_to_message_id=ctx.input.message_id
        )
    finally:
        client.close()
    return Delivery(chat_id=ctx.input.chat_id, sent=True)


@step(input_schema=DigestRequest, output_schema=Reply, id="draft-digest")
def draft_digest(ctx: StepContext) -> Reply:
    response = ctx.get_agent("assistant").generate(ctx.input.prompt)
    return Reply(chat_id=ctx.input.chat_id, text=response.text)


application.register_workflow(
    Workflow("telegram-reply", input_schema=TelegramMessage, output_schema=Delivery)
    .then(answer)
    .then(send)
    .commit()
)
application.register_workflow(
    Workflow("daily-digest", input_schema=DigestRequest, output_schema=Delivery)
    .then(draft_digest)
    .then(send)
    .commit()
)

application.register_trigger(
    WebhookTrigger(provider="telegram", action="message", workflow="telegram-reply")
)
application.register_trigger(
    CronTrigger(
        name="morning-digest",
        cron="0 8 * * 1-5",
        workflow="daily-digest",
        input={
            "chat_id": int(os.environ.get("DIGEST_CHAT_ID", "0")),
            "prompt": "Write a one-line motivational note for the day.",
        },
        timezone="Europe/Paris",
    )
)
