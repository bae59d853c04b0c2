"""Per-day local cache of food records backed by a key-value store."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Protocol

from pydantic import TypeAdapter, ValidationError

from nutrisnap.domain.dates import day_key, parse_day_key
from nutrisnap.domain.macros import MacroGoals
from nutrisnap.domain.records import NutritionRecord

logger = logging.getLogger(__name__)

BUCKET_PREFIX = "foodLog-"
GOALS_KEY = "macroGoals"
PENDING_ANON_UID_MARKER = "pendingAnonUid"

_RECORDS_ADAPTER = TypeAdapter(list[NutritionRecord])


class StorageError(RuntimeError):
    """Raised when the device storage cannot be read or written."""


class StorageWriteError(StorageError):
    """Raised when the device storage rejects a write."""


class MalformedBucketError(ValueError):
    """Raised when a persisted day bucket cannot be parsed."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Malformed local bucket {key}: {reason}")
        self.key = key


class KeyValueStorage(Protocol):
    """String key-value persistence on the device.

    Read failures raise StorageError, write failures StorageWriteError.
    """

    def get_item(self, key: str) -> str | None:
        """Return the raw value stored under key."""

    def set_item(self, key: str, value: str) -> None:
        """Store a raw value."""

    def remove_item(self, key: str) -> None:
        """Delete a key; no-op if absent."""

    def keys(self) -> list[str]:
        """Return every stored key."""


def bucket_key(day: date) -> str:
    """Return the storage key of the day bucket for ``day``."""
    return f"{BUCKET_PREFIX}{day_key(day)}"


def day_from_bucket_key(key: str) -> date | None:
    """Return the day encoded in a bucket key, if it is one."""
    if not key.startswith(BUCKET_PREFIX):
        return None
    try:
        return parse_day_key(key.removeprefix(BUCKET_PREFIX))
    except ValueError:
        return None


@dataclass
class LocalCacheStore:
    """Offline mirror of the food log, one bucket per calendar day.

    Storage failures never escape: reads degrade to empty results and
    writes are logged and reported as False.
    """

    storage: KeyValueStorage

    def load(self, key: str) -> list[NutritionRecord]:
        """Return a bucket's records, or an empty list if absent or malformed."""
        try:
            return self.load_strict(key)
        except MalformedBucketError:
            logger.warning("Ignoring malformed local bucket %s", key, exc_info=True)
            return []
        except StorageError:
            logger.exception("Failed to read local bucket %s", key)
            return []

    def load_strict(self, key: str) -> list[NutritionRecord]:
        """Return a bucket's records.

        Raises MalformedBucketError if unparseable and StorageError if the
        storage cannot be read.
        """
        raw = self.storage.get_item(key)
        if raw is None:
            return []
        try:
            return _RECORDS_ADAPTER.validate_json(raw)
        except ValidationError as exc:
            raise MalformedBucketError(key, str(exc)) from exc

    def save(self, key: str, records: list[NutritionRecord]) -> bool:
        """Persist a bucket; failures are logged and reported as False."""
        try:
            payload = _RECORDS_ADAPTER.dump_json(records).decode("utf-8")
            self.storage.set_item(key, payload)
        except (StorageError, ValueError, TypeError):
            logger.exception("Failed to save local bucket %s", key)
            return False
        return True

    def list_day_keys(self) -> list[str]:
        """Return every persisted bucket key, or [] if storage is unreadable."""
        try:
            keys = self.storage.keys()
        except StorageError:
            logger.exception("Failed to list local buckets")
            return []
        return sorted(key for key in keys if key.startswith(BUCKET_PREFIX))

    def remove_day_key(self, key: str) -> None:
        """Delete a bucket; raises StorageWriteError on failure."""
        self.storage.remove_item(key)

    def get_marker(self, name: str) -> str | None:
        """Return a marker value, if set and readable."""
        try:
            return self.storage.get_item(name)
        except StorageError:
            logger.exception("Failed to read marker %s", name)
            return None

    def set_marker(self, name: str, value: str) -> None:
        """Store a marker value; failures are logged."""
        try:
            self.storage.set_item(name, value)
        except StorageError:
            logger.exception("Failed to store marker %s", name)

    def remove_marker(self, name: str) -> None:
        """Delete a marker; failures are logged."""
        try:
            self.storage.remove_item(name)
        except StorageError:
            logger.exception("Failed to remove marker %s", name)

    def load_goals(self) -> MacroGoals:
        """Return the stored macro goals, or defaults."""
        try:
            raw = self.storage.get_item(GOALS_KEY)
        except StorageError:
            logger.exception("Failed to read macro goals")
            return MacroGoals()
        if raw is None:
            return MacroGoals()
        try:
            return MacroGoals.model_validate_json(raw)
        except ValidationError:
            logger.warning("Ignoring malformed macro goals", exc_info=True)
            return MacroGoals()

    def save_goals(self, goals: MacroGoals) -> bool:
        """Persist macro goals; failures are logged and reported as False."""
        try:
            self.storage.set_item(GOALS_KEY, goals.model_dump_json())
        except StorageError:
            logger.exception("Failed to save macro goals")
            return False
        return True
