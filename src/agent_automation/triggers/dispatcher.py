"""Route webhook requests to the workflows their triggers name."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from agent_automation.errors import WebhookBadRequest, WebhookNotFound
from agent_automation.triggers.models import RunSubmitter, WebhookTrigger
from agent_automation.triggers.providers import GenericProvider, WebhookProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WebhookResult:
    accepted: bool
    trigger: str
    run_id: str | None = None
    response: dict[str, Any] | None = None


class WebhookDispatcher:
    def __init__(
        self,
        triggers: Iterable[WebhookTrigger],
        providers: Mapping[str, WebhookProvider],
        submit: RunSubmitter,
        *,
        generic_secret: str = "",
    ) -> None:
        self._triggers = {(t.provider, t.action): t for t in triggers}
        self._providers = dict(providers)
        self._submit = submit
        self._generic_secret = generic_secret

    def provider_for(self, name: str) -> WebhookProvider:
        provider = self._providers.get(name)
        if provider is None:
            provider = GenericProvider(name=name, secret=self._generic_secret)
        return provider

    def handle(
        self, provider: str, action: str, headers: Mapping[str, str], body: bytes
    ) -> WebhookResult:
        """Verify, parse, and dispatch one webhook delivery.

        Raises:
            WebhookNotFound: No trigger is registered for the route.
            WebhookUnauthorized: The provider rejected the request.
            WebhookBadRequest: The body is not a JSON object.
        """
        key = (provider.lower(), action.lower())
        trigger = self._triggers.get(key)
        if trigger is None:
            raise WebhookNotFound(f"No webhook trigger for /webhooks/{provider}/{action}")

        adapter = self.provider_for(trigger.provider)
        normalized = {k.lower(): v for k, v in headers.items()}
        adapter.verify(normalized, body)

        try:
            payload = json.loads(body or b"{}")
        except json.JSONDecodeError as e:
            raise WebhookBadRequest(f"Invalid JSON body: {e}") from e
        if not isinstance(payload, dict):
            raise WebhookBadRequest("Webhook body must be a JSON object")

        parsed = adapter.parse(trigger.action, payload)
        if parsed.workflow_input is None:
            logger.info("Webhook acknowledged without run", extra={"trigger": trigger.name})
            return WebhookResult(accepted=False, trigger=trigger.name, response=parsed.response)

        run_id = self._submit(trigger.workflow, parsed.workflow_input, trigger=trigger.name)
        logger.info(
            "Webhook dispatched",
            extra={"trigger": trigger.name, "workflow_id": trigger.workflow, "run_id": run_id},
        )
        return WebhookResult(
            accepted=True, trigger=trigger.name, run_id=run_id, response=parsed.response
        )
