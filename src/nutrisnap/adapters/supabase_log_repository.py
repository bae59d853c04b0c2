"""Supabase repository for the per-user remote food log."""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

import httpx
from postgrest.exceptions import APIError
from pydantic import ValidationError
from supabase import Client

from nutrisnap.domain.dates import now_ms
from nutrisnap.domain.records import NutritionRecord
from nutrisnap.services.remote_log import (
    RecordsListener,
    RemoteLogStore,
    RemoteStoreError,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

LOGS_TABLE = "food_logs"
PROFILES_TABLE = "profiles"
_COLUMNS = "id, name, calories, protein, carbs, fat, portion, timestamp"
_TRANSPORT_ERRORS = (APIError, httpx.HTTPError)


@dataclass
class SupabaseLogRepository(RemoteLogStore):
    """Supabase implementation of the remote food log.

    The live feed polls the user's rows and pushes full snapshots when they
    change. Writes made through this repository wake the feed immediately.
    """

    client: Client
    poll_interval_seconds: float = 5.0
    clock: Callable[[], int] = now_ms
    _wakeups: dict[str, set[asyncio.Event]] = field(default_factory=dict, init=False)

    async def list_all(self, uid: str) -> list[NutritionRecord]:
        """Return every record for uid, newest first; failures yield []."""
        try:
            return await asyncio.to_thread(self._select_all, uid)
        except _TRANSPORT_ERRORS:
            logger.warning("Failed to list remote records for %s", uid, exc_info=True)
            return []

    async def append(self, uid: str, record: NutritionRecord) -> NutritionRecord:
        """Insert a record row and return it with its remote id."""
        timestamp = record.timestamp if record.timestamp is not None else self.clock()
        payload = {"user_id": uid, **record.with_timestamp(timestamp).without_id()}
        query = self.client.table(LOGS_TABLE).insert(payload)
        response = await self._execute(query, f"append record for {uid}")
        if not response.data:
            raise RemoteStoreError(f"Failed to append record for {uid}")
        self._wake(uid)
        return _parse_record(response.data[0])

    async def remove(self, uid: str, record_id: str) -> None:
        """Delete a record row; deleting a missing row is a no-op."""
        query = (
            self.client.table(LOGS_TABLE)
            .delete()
            .eq("id", record_id)
            .eq("user_id", uid)
        )
        await self._execute(query, f"remove record {record_id} for {uid}")
        self._wake(uid)

    def subscribe(self, uid: str, on_change: RecordsListener) -> Unsubscribe:
        """Start a polling feed for uid and return its cancellation handle."""
        wakeup = asyncio.Event()
        self._wakeups.setdefault(uid, set()).add(wakeup)
        task = asyncio.get_running_loop().create_task(
            self._poll(uid, on_change, wakeup)
        )
        task.add_done_callback(_feed_stopped(uid, on_change))

        def unsubscribe() -> None:
            task.cancel()
            wakeups = self._wakeups.get(uid)
            if wakeups is None:
                return
            wakeups.discard(wakeup)
            if not wakeups:
                del self._wakeups[uid]

        return unsubscribe

    async def ensure_owner_record_exists(
        self, uid: str, profile_patch: dict[str, object]
    ) -> None:
        """Upsert the user's profile row."""
        payload = {"id": uid, **profile_patch}
        query = self.client.table(PROFILES_TABLE).upsert(payload)
        await self._execute(query, f"upsert profile for {uid}")

    async def _poll(
        self, uid: str, on_change: RecordsListener, wakeup: asyncio.Event
    ) -> None:
        last: list[NutritionRecord] | None = None
        while True:
            try:
                records = await asyncio.to_thread(self._select_all, uid)
            except _TRANSPORT_ERRORS:
                logger.warning("Live feed for %s failed", uid, exc_info=True)
                last = None
                on_change([])
            else:
                if records != last:
                    last = records
                    on_change(list(records))
            wakeup.clear()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    wakeup.wait(), timeout=self.poll_interval_seconds
                )

    def _select_all(self, uid: str) -> list[NutritionRecord]:
        response = (
            self.client.table(LOGS_TABLE)
            .select(_COLUMNS)
            .eq("user_id", uid)
            .order("timestamp", desc=True)
            .execute()
        )
        records = []
        for row in response.data or []:
            try:
                records.append(_parse_record(row))
            except (KeyError, ValidationError):
                logger.warning("Skipping invalid remote row %s", row.get("id"))
        return records

    async def _execute(self, query, action: str):  # type: ignore[no-untyped-def]
        try:
            return await asyncio.to_thread(query.execute)
        except _TRANSPORT_ERRORS as exc:
            raise RemoteStoreError(f"Failed to {action}") from exc

    def _wake(self, uid: str) -> None:
        for wakeup in self._wakeups.get(uid, set()):
            wakeup.set()


def _parse_record(row: dict[str, object]) -> NutritionRecord:
    return NutritionRecord.model_validate(
        {
            **row,
            "id": str(row["id"]),
            "timestamp": normalize_timestamp(row.get("timestamp")),
        }
    )


def normalize_timestamp(value: object) -> int | None:
    """Normalize a stored timestamp to epoch milliseconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return int(text)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return int(parsed.timestamp() * 1000)
    return None


def _feed_stopped(
    uid: str, on_change: RecordsListener
) -> Callable[[asyncio.Task[None]], None]:
    def callback(task: asyncio.Task[None]) -> None:
        if task.cancelled() or task.exception() is None:
            return
        logger.error(
            "Live feed for %s stopped unexpectedly", uid, exc_info=task.exception()
        )
        on_change([])

    return callback
