"""Command line entrypoint.

Exit codes:
    0  success
    1  unexpected error
    2  configuration or registration problem
    4  workflow run failed or was canceled
    5  workflow run suspended, waiting for resume data
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from agent_automation import __version__
from agent_automation.application import Application
from agent_automation.config import AppSettings
from agent_automation.errors import ConfigurationError, RegistrationError
from agent_automation.loader import load_application
from agent_automation.logging import configure_logging
from agent_automation.workflows.state import RunStatus

logger = logging.getLogger(__name__)


def _parse_input(value: str | None) -> dict[str, Any]:
    if not value:
        return {}
    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"--input is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError("--input must be a JSON object")
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-automation",
        description="Serve, build, and run agent-automation applications",
    )
    parser.add_argument("--version", action="version", version=f"agent-automation {__version__}")
    parser.add_argument(
        "--app",
        default=None,
        help="Application import path 'package.module:attribute' (overrides AGENT_APP)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    dev = subparsers.add_parser("dev", help="Validate the application and serve it over HTTP")
    dev.add_argument("--host", default=None, help="Bind address (defaults to HOST)")
    dev.add_argument("--port", type=int, default=None, help="Bind port (defaults to PORT)")
    dev.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Do not start cron triggers in this process",
    )

    build = subparsers.add_parser("build", help="Validate the application and write manifest.json")
    build.add_argument(
        "--out-dir",
        type=Path,
        default=None,
        help="Output directory (defaults to BUILD_DIR)",
    )

    subparsers.add_parser("list", help="Print registered agents, workflows, and triggers")

    run_workflow = subparsers.add_parser("run-workflow", help="Run a workflow inline")
    run_workflow.add_argument("workflow", help="Workflow id")
    run_workflow.add_argument("--input", default=None, help="Workflow input as a JSON object")

    telegram = subparsers.add_parser(
        "set-telegram-webhook",
        help="Point the Telegram bot at this deployment's telegram webhook route",
    )
    telegram.add_argument(
        "--base-url",
        required=True,
        help="Public base URL of the server, e.g. 'https://bot.example.com'",
    )

    return parser


def _print_listing(application: Application) -> None:
    print(f"Application: {application.name}")
    print("Agents:")
    for config in application.agents.values():
        model = config.model or application.settings.default_model
        tools = ", ".join(config.tools) or "-"
        print(f"  {config.name}  model={model}  tools={tools}")
    print("Workflows:")
    for workflow in application.workflows.values():
        print(f"  {workflow.id}  steps={', '.join(workflow.steps)}")
    print("Triggers:")
    for trigger in application.triggers.values():
        if trigger.kind == "cron":
            where = f"cron '{trigger.cron}'"
        else:
            where = f"POST {trigger.route}"
        print(f"  {trigger.name}  {where} -> {trigger.workflow}")


def _write_manifest(application: Application, out_dir: Path) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / "manifest.json"
    path.write_text(
        json.dumps(application.manifest(), indent=2, sort_keys=True) + "\n", encoding="utf-8"
    )
    return path


def _set_telegram_webhook(application: Application, settings: AppSettings, base_url: str) -> str:
    from agent_automation.triggers.telegram import TelegramClient

    routes = [t.route for t in application.webhook_triggers if t.provider == "telegram"]
    if not routes:
        raise ConfigurationError("No telegram webhook trigger is registered")
    if len(routes) > 1:
        raise ConfigurationError(f"Multiple telegram webhook triggers registered: {routes}")
    if not settings.telegram_bot_token:
        raise ConfigurationError("TELEGRAM_BOT_TOKEN is required to register the webhook")

    url = base_url.rstrip("/") + routes[0]
    client = TelegramClient(token=settings.telegram_bot_token)
    try:
        client.set_webhook(url, secret_token=settings.telegram_webhook_secret or None)
    finally:
        client.close()
    return url


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = AppSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level, static_fields={"service": parser.prog})

    spec = args.app or settings.app
    try:
        if not spec.strip():
            raise ConfigurationError("No application given; pass --app or set AGENT_APP")
        application = load_application(spec)

        if args.command == "dev":
            import uvicorn

            from agent_automation.server.app import create_app

            application.validate()
            if args.no_scheduler:
                settings = settings.model_copy(update={"scheduler_enabled": False})
            app = create_app(application, settings)
            uvicorn.run(
                app,
                host=args.host or settings.host,
                port=args.port or settings.port,
                log_level=settings.log_level.lower(),
                log_config=None,
            )
            return 0

        if args.command == "build":
            application.validate()
            path = _write_manifest(application, args.out_dir or settings.build_dir)
            logger.info("Build manifest written", extra={"path": str(path)})
            print(f"Wrote {path}")
            return 0

        if args.command == "list":
            _print_listing(application)
            return 0

        if args.command == "run-workflow":
            application.validate()
            run = application.runner.start(
                args.workflow, _parse_input(args.input), trigger="cli"
            )
            print(json.dumps(run.model_dump(mode="json"), indent=2))
            if run.status is RunStatus.SUCCESS:
                return 0
            if run.status is RunStatus.SUSPENDED:
                return 5
            return 4

        if args.command == "set-telegram-webhook":
            url = _set_telegram_webhook(application, settings, args.base_url)
            print(f"Telegram webhook set to {url}")
            return 0

        parser.error(f"Unknown command: {args.command}")
        return 2

    except (ConfigurationError, RegistrationError) as e:
        print(str(e), file=sys.stderr)
        return 2

    except ValidationError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
