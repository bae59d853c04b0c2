"""Port for the per-user remote food log."""

from collections.abc import Callable
from typing import Protocol

from nutrisnap.domain.records import NutritionRecord

Unsubscribe = Callable[[], None]
RecordsListener = Callable[[list[NutritionRecord]], None]


class RemoteStoreError(RuntimeError):
    """Raised when a remote write fails."""


class RemoteLogStore(Protocol):
    """Persistence interface for a user's remote food log.

    Reads degrade to empty results instead of raising; writes raise
    RemoteStoreError and leave retry policy to the caller.
    """

    async def list_all(self, uid: str) -> list[NutritionRecord]:
        """Return every record for uid, newest first."""

    async def append(self, uid: str, record: NutritionRecord) -> NutritionRecord:
        """Create a record and return it with its remote id."""

    async def remove(self, uid: str, record_id: str) -> None:
        """Delete a record; no-op if already absent."""

    def subscribe(self, uid: str, on_change: RecordsListener) -> Unsubscribe:
        """Push the full record set, newest first, on every remote change."""

    async def ensure_owner_record_exists(
        self, uid: str, profile_patch: dict[str, object]
    ) -> None:
        """Upsert the owner profile so per-record writes are accepted."""
