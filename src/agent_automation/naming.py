"""Validation for registry names used in routes and storage keys."""

from __future__ import annotations

import re

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def validate_name(value: str, kind: str) -> str:
    value = value.strip()
    if not _NAME_RE.match(value):
        raise ValueError(
            f"{kind} name {value!r} must start with a letter or digit and contain only "
            "letters, digits, '.', '_' or '-'"
        )
    return value
