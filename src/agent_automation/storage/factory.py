"""Select a storage backend from a `DATABASE_URL`."""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urlparse

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from agent_automation.errors import ConfigurationError
from agent_automation.storage.base import Storage
from agent_automation.storage.json_file import JsonFileStorage
from agent_automation.storage.memory import InMemoryStorage
from agent_automation.storage.sql import SqlStorage

logger = logging.getLogger(__name__)

SQL_SCHEMES = ("sqlite", "postgresql", "postgres", "mysql", "mariadb")


def create_storage(url: str) -> Storage:
    """Create (and initialize) the storage backend named by `url`.

    Supported forms:
    - ``memory://``
    - ``file://relative/dir`` or ``file:///absolute/dir``
    - any SQLAlchemy URL for sqlite / postgresql / mysql

    Raises:
        ConfigurationError: If the URL is empty or uses an unknown scheme.
    """
    value = url.strip()
    if not value:
        raise ConfigurationError("DATABASE_URL must not be empty")

    scheme = urlparse(value).scheme.lower()
    base_scheme = scheme.split("+", 1)[0]

    storage: Storage
    if scheme == "memory":
        storage = InMemoryStorage()
    elif scheme == "file":
        path = value[len("file://") :]
        if not path:
            raise ConfigurationError("file:// storage URL must include a directory")
        storage = JsonFileStorage(Path(path))
    elif base_scheme in SQL_SCHEMES:
        if base_scheme == "postgres":
            # Heroku-style URLs; SQLAlchemy only accepts "postgresql".
            value = "postgresql" + value[len("postgres") :]
        try:
            make_url(value)
        except ArgumentError as e:
            raise ConfigurationError(f"Invalid DATABASE_URL: {e}") from e
        storage = SqlStorage(value)
    else:
        raise ConfigurationError(f"Unsupported DATABASE_URL scheme: {scheme or '<none>'!r}")

    storage.init()
    logger.info("Storage selected", extra={"backend": storage.kind})
    return storage
