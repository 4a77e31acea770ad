"""Load an :class:`Application` from an import path like ``myapp.main:app``."""

from __future__ import annotations

import importlib
import logging
import sys
from pathlib import Path

from agent_automation.application import Application
from agent_automation.errors import ConfigurationError

logger = logging.getLogger(__name__)


def load_application(spec: str) -> Application:
    """Import `module:attribute` and return the Application it names.

    The attribute may be an Application or a zero-argument factory returning
    one. The current working directory is importable, matching how ``dev``
    and ``build`` are run from a project root.

    Raises:
        ConfigurationError: If the spec is malformed or does not resolve to an Application.
    """
    module_name, sep, attr = spec.strip().partition(":")
    if not module_name or not sep or not attr:
        raise ConfigurationError(
            f"Application spec {spec!r} must look like 'package.module:attribute' "
            "(set AGENT_APP or pass --app)"
        )

    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import {module_name!r}: {e}") from e

    target = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise ConfigurationError(f"{module_name!r} has no attribute {attr!r}") from None

    if not isinstance(target, Application) and callable(target):
        target = target()
    if not isinstance(target, Application):
        raise ConfigurationError(f"{spec!r} is {type(target).__name__}, not an Application")

    logger.info("Application loaded", extra={"spec": spec, "application": target.name})
    return target
