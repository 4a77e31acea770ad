"""Interchangeable persistence backends for threads, messages, and runs."""

from agent_automation.storage.base import Storage
from agent_automation.storage.factory import create_storage
from agent_automation.storage.json_file import JsonFileStorage
from agent_automation.storage.memory import InMemoryStorage
from agent_automation.storage.models import StoredMessage, Thread
from agent_automation.storage.sql import SqlStorage

__all__ = [
    "InMemoryStorage",
    "JsonFileStorage",
    "SqlStorage",
    "Storage",
    "StoredMessage",
    "Thread",
    "create_storage",
]
