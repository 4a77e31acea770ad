"""Test configuration and fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from agent_automation.application import Application
from agent_automation.config import AppSettings
from agent_automation.llm.provider import Completion, LLMProvider
from agent_automation.storage.memory import InMemoryStorage

_ENV_VARS = (
    "AGENT_APP",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "DEFAULT_MODEL",
    "DATABASE_URL",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_WEBHOOK_SECRET",
    "SLACK_SIGNING_SECRET",
    "WEBHOOK_SECRET",
    "LOG_LEVEL",
    "HOST",
    "PORT",
    "CORS_ORIGINS",
    "SCHEDULER_ENABLED",
    "SCHEDULER_TIMEZONE",
    "BUILD_DIR",
)


class ScriptedLLM(LLMProvider):
    """Returns queued completions in order and records every request."""

    def __init__(self, model: str = "fake") -> None:
        self.model = model
        self._queue: list[Completion] = []
        self.requests: list[dict[str, Any]] = []

    def script(self, *completions: Completion | str) -> ScriptedLLM:
        for c in completions:
            self._queue.append(Completion(content=c) if isinstance(c, str) else c)
        return self

    def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> Completion:
        self.requests.append({"messages": [dict(m) for m in messages], "tools": tools})
        if not self._queue:
            return Completion(content="(no more scripted answers)")
        return self._queue.pop(0)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's shell or .env from leaking into settings."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings() -> AppSettings:
    """Provide in-memory settings with a dummy OpenAI key."""
    return AppSettings(
        _env_file=None,
        OPENAI_API_KEY="test-key",
        DATABASE_URL="memory://",
        SCHEDULER_ENABLED=False,
    )


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def application(
    settings: AppSettings, storage: InMemoryStorage, scripted_llm: ScriptedLLM
) -> Application:
    """Provide an empty application whose agents all talk to `scripted_llm`."""
    return Application(
        "test-app",
        settings=settings,
        storage=storage,
        llm_builder=lambda _selector, _settings: scripted_llm,
    )
