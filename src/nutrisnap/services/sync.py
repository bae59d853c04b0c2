"""Synchronization between the local day cache and the remote food log."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, tzinfo
from enum import Enum

from nutrisnap.domain.dates import is_same_day, now_ms, timestamp_for_day, today
from nutrisnap.domain.identity import Identity
from nutrisnap.domain.records import NutritionRecord, dedup_key, dedup_keys
from nutrisnap.services.identity import IdentityTracker
from nutrisnap.services.local_cache import (
    PENDING_ANON_UID_MARKER,
    LocalCacheStore,
    MalformedBucketError,
    StorageError,
    bucket_key,
)
from nutrisnap.services.remote_log import (
    RecordsListener,
    RemoteLogStore,
    RemoteStoreError,
    Unsubscribe,
)

logger = logging.getLogger(__name__)


class SyncState(Enum):
    """Lifecycle of the engine relative to the active identity."""

    UNINITIALIZED = "uninitialized"
    LOCAL_ONLY = "local_only"
    SYNCING = "syncing"
    LIVE = "live"


@dataclass
class MigrationReport:
    """Outcome of one migration pass."""

    appended: int = 0
    skipped: int = 0
    failed: int = 0
    removed_keys: list[str] = field(default_factory=list)
    retained_keys: list[str] = field(default_factory=list)
    malformed_keys: list[str] = field(default_factory=list)
    ran: bool = True


@dataclass
class SyncEngine:
    """Owns the working food log and keeps it consistent with durable stores.

    With no identity the working list is the active day's local bucket and
    every change is mirrored to the local cache. With an identity the
    working list is the full remote log, replaced wholesale on every
    subscription push.
    """

    local_cache: LocalCacheStore
    remote_store: RemoteLogStore
    identity_tracker: IdentityTracker
    timezone: tzinfo
    clock: Callable[[], int] = now_ms
    active_day: date | None = None
    identity: Identity = field(default_factory=Identity.signed_out, init=False)
    state: SyncState = field(default=SyncState.UNINITIALIZED, init=False)
    migration_watermark: str | None = field(default=None, init=False)
    _working_records: list[NutritionRecord] = field(default_factory=list, init=False)
    _unsubscribe_remote: Unsubscribe | None = field(default=None, init=False)
    _stop_tracking: Unsubscribe | None = field(default=None, init=False)
    _generation: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        if self.active_day is None:
            self.active_day = today(self.timezone)

    @property
    def working_records(self) -> list[NutritionRecord]:
        """Return a copy of the in-memory working list."""
        return list(self._working_records)

    async def start(self) -> None:
        """Subscribe to identity transitions; safe to call more than once."""
        if self._stop_tracking is not None:
            return
        self._stop_tracking = await self.identity_tracker.on_change(
            self.handle_identity
        )

    def stop(self) -> None:
        """Stop tracking identity and tear down the remote subscription."""
        if self._stop_tracking is not None:
            self._stop_tracking()
            self._stop_tracking = None
        self._generation += 1
        self._teardown_subscription()

    async def handle_identity(self, identity: Identity) -> None:
        """React to an identity transition."""
        self._generation += 1
        generation = self._generation
        previous_state = self.state
        previous_uid = self.identity.uid
        self.identity = identity

        uid = identity.uid
        if uid is None:
            self._teardown_subscription()
            if previous_state is SyncState.LOCAL_ONLY:
                return
            self.state = SyncState.LOCAL_ONLY
            # Remote records are dropped; the offline view is the day bucket.
            self._replace_working(self._load_active_bucket(), persist=False)
            return

        self.state = SyncState.SYNCING
        self._teardown_subscription()
        if previous_uid is not None and previous_uid != uid:
            # Another account's records must not be visible while syncing.
            self._working_records = []
        if identity.is_anonymous:
            self.local_cache.set_marker(PENDING_ANON_UID_MARKER, uid)

        if self.migration_watermark != uid:
            await self.migrate_local_to_remote(uid)

        pending_anon_uid = self.local_cache.get_marker(PENDING_ANON_UID_MARKER)
        if pending_anon_uid and pending_anon_uid != uid:
            await self.migrate_anonymous_to_permanent(pending_anon_uid, uid)

        try:
            await self.remote_store.ensure_owner_record_exists(
                uid, {"email": identity.email}
            )
        except RemoteStoreError:
            logger.warning("Failed to ensure profile for %s", uid, exc_info=True)

        if generation != self._generation:
            logger.info("Identity moved on while syncing %s; not subscribing", uid)
            return
        self._unsubscribe_remote = self.remote_store.subscribe(
            uid, self._listener_for(generation)
        )
        self.state = SyncState.LIVE

    async def migrate_local_to_remote(self, uid: str) -> MigrationReport:
        """Copy every local day bucket into uid's remote log, once per session."""
        if self.migration_watermark == uid:
            return MigrationReport(ran=False)

        report = MigrationReport()
        remote_keys = dedup_keys(await self.remote_store.list_all(uid))
        retained: dict[str, list[NutritionRecord]] = {}
        for key in self.local_cache.list_day_keys():
            try:
                records = self.local_cache.load_strict(key)
            except MalformedBucketError:
                logger.warning(
                    "Skipping malformed local bucket %s during migration",
                    key,
                    exc_info=True,
                )
                report.malformed_keys.append(key)
                continue
            except StorageError:
                logger.exception("Failed to read local bucket %s; keeping it", key)
                continue

            failed: list[NutritionRecord] = []
            for record in records:
                timestamp = (
                    record.timestamp if record.timestamp is not None else self.clock()
                )
                stamped = record.with_timestamp(timestamp)
                if dedup_key(stamped) in remote_keys:
                    report.skipped += 1
                    continue
                try:
                    await self.remote_store.append(uid, stamped)
                except RemoteStoreError:
                    logger.warning(
                        "Failed to migrate %r from %s", stamped.name, key, exc_info=True
                    )
                    failed.append(stamped)
                    continue
                report.appended += 1

            if failed:
                retained[key] = failed
                report.failed += len(failed)
            else:
                report.removed_keys.append(key)

        for key in report.removed_keys:
            self._remove_bucket(key)
        for key, records in retained.items():
            self.local_cache.save(key, records)
            report.retained_keys.append(key)

        self.migration_watermark = uid
        logger.info(
            "Local migration for %s: appended=%d skipped=%d removed=%d",
            uid,
            report.appended,
            report.skipped,
            len(report.removed_keys),
        )
        if report.failed:
            logger.error(
                "Local migration for %s left %d records in %d buckets for retry",
                uid,
                report.failed,
                len(report.retained_keys),
            )
        return report

    async def migrate_anonymous_to_permanent(
        self, anon_uid: str, uid: str
    ) -> MigrationReport:
        """Merge an anonymous account's remote log into uid's log."""
        if anon_uid == uid:
            return MigrationReport(ran=False)

        report = MigrationReport()
        anon_records = await self.remote_store.list_all(anon_uid)
        if not anon_records:
            self.local_cache.remove_marker(PENDING_ANON_UID_MARKER)
            return report

        existing_keys = dedup_keys(await self.remote_store.list_all(uid))
        for record in anon_records:
            if dedup_key(record) in existing_keys:
                report.skipped += 1
                continue
            try:
                await self.remote_store.append(uid, record)
            except RemoteStoreError:
                logger.warning(
                    "Failed to merge %r from %s into %s",
                    record.name,
                    anon_uid,
                    uid,
                    exc_info=True,
                )
                report.failed += 1
                continue
            report.appended += 1

        self.local_cache.remove_marker(PENDING_ANON_UID_MARKER)
        logger.info(
            "Anonymous merge %s -> %s: appended=%d skipped=%d failed=%d",
            anon_uid,
            uid,
            report.appended,
            report.skipped,
            report.failed,
        )
        return report

    async def add_records(
        self, records: list[NutritionRecord]
    ) -> list[NutritionRecord]:
        """Add records optimistically, then persist them to the active store."""
        stamped = [self._stamp(record) for record in records]
        self._replace_working([*self._working_records, *stamped])

        uid = self.identity.uid
        if uid is None:
            return stamped
        for record in stamped:
            try:
                await self.remote_store.append(uid, record)
            except RemoteStoreError:
                logger.exception("Failed to persist %r for %s", record.name, uid)
        return stamped

    async def remove_record(self, record_id: str) -> None:
        """Remove a record optimistically, then from the active store."""
        self._replace_working(
            [record for record in self._working_records if record.id != record_id]
        )
        uid = self.identity.uid
        if uid is None:
            return
        try:
            await self.remote_store.remove(uid, record_id)
        except RemoteStoreError:
            logger.exception("Failed to delete remote record %s for %s", record_id, uid)

    def select_day(self, day: date) -> None:
        """Change the active day, reloading its bucket when offline."""
        self.active_day = day
        if self.identity.uid is None:
            self._replace_working(self._load_active_bucket(), persist=False)

    def records_for_day(self, day: date | None = None) -> list[NutritionRecord]:
        """Return the records shown for a calendar day."""
        target = day or self.active_day
        if self.identity.uid is None:
            if target == self.active_day:
                return self.working_records
            return self.local_cache.load(bucket_key(target))
        return filter_records_for_day(self._working_records, target, self.timezone)

    def _stamp(self, record: NutritionRecord) -> NutritionRecord:
        if record.timestamp is not None:
            return record
        return record.with_timestamp(
            timestamp_for_day(self.active_day, self.timezone, self.clock())
        )

    def _replace_working(
        self, records: list[NutritionRecord], persist: bool = True
    ) -> None:
        self._working_records = list(records)
        if persist and self.identity.uid is None:
            self.local_cache.save(bucket_key(self.active_day), self._working_records)

    def _load_active_bucket(self) -> list[NutritionRecord]:
        return self.local_cache.load(bucket_key(self.active_day))

    def _remove_bucket(self, key: str) -> None:
        try:
            self.local_cache.remove_day_key(key)
        except StorageError:
            logger.warning("Failed to remove migrated bucket %s", key, exc_info=True)

    def _listener_for(self, generation: int) -> RecordsListener:
        def on_change(records: list[NutritionRecord]) -> None:
            if generation != self._generation:
                return
            self._working_records = list(records)

        return on_change

    def _teardown_subscription(self) -> None:
        if self._unsubscribe_remote is None:
            return
        unsubscribe = self._unsubscribe_remote
        self._unsubscribe_remote = None
        unsubscribe()


def filter_records_for_day(
    records: list[NutritionRecord], day: date, tz: tzinfo
) -> list[NutritionRecord]:
    """Return records on ``day``; records without a timestamp always pass."""
    return [
        record
        for record in records
        if record.timestamp is None or is_same_day(record.timestamp, day, tz)
    ]
