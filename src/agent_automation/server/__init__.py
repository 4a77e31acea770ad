"""FastAPI server adapter for agent-automation.

Design intent:
- Keep registration and execution logic in the application, runner, and triggers
- Keep server-specific concerns (routing, CORS, background dispatch) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from agent_automation.server.app import create_app
