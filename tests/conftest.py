"""Shared test fixtures."""

import asyncio
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date
from zoneinfo import ZoneInfo

import pytest

from nutrisnap.config import Settings
from nutrisnap.containers import AppContainer
from nutrisnap.domain.identity import Identity
from nutrisnap.domain.records import NutritionRecord, new_record_id
from nutrisnap.services.auth import AuthError, AuthProvider, AuthService
from nutrisnap.services.estimation import (
    EstimationService,
    NutritionAIClient,
)
from nutrisnap.services.identity import IdentityTracker
from nutrisnap.services.insights import InsightsService
from nutrisnap.services.local_cache import (
    KeyValueStorage,
    LocalCacheStore,
    StorageError,
    StorageWriteError,
)
from nutrisnap.services.macros import MacroService
from nutrisnap.services.remote_log import (
    RecordsListener,
    RemoteLogStore,
    RemoteStoreError,
    Unsubscribe,
)
from nutrisnap.services.sync import SyncEngine

UTC_ZONE = ZoneInfo("UTC")
# 2024-01-01T12:00:00Z
FIXED_NOW_MS = 1_704_110_400_000
FIXED_DAY = date(2024, 1, 1)


def make_record(
    name: str, timestamp: int | None = None, **macros: float
) -> NutritionRecord:
    return NutritionRecord(
        name=name,
        calories=macros.get("calories", 100.0),
        protein=macros.get("protein", 5.0),
        carbs=macros.get("carbs", 10.0),
        fat=macros.get("fat", 2.0),
        portion="1 serving",
        timestamp=timestamp,
    )


@dataclass
class InMemoryKeyValueStorage(KeyValueStorage):
    """In-memory localStorage stand-in for tests."""

    items: dict[str, str] = field(default_factory=dict)
    fail_writes: bool = False
    fail_reads: bool = False

    def get_item(self, key: str) -> str | None:
        if self.fail_reads:
            raise StorageError("storage unavailable")
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageWriteError("quota exceeded")
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)

    def keys(self) -> list[str]:
        if self.fail_reads:
            raise StorageError("storage unavailable")
        return list(self.items)


@dataclass
class InMemoryRemoteLogStore(RemoteLogStore):
    """In-memory remote log that pushes snapshots to subscribers on writes."""

    logs: dict[str, dict[str, NutritionRecord]] = field(default_factory=dict)
    profiles: dict[str, dict[str, object]] = field(default_factory=dict)
    appended: list[tuple[str, NutritionRecord]] = field(default_factory=list)
    removed: list[tuple[str, str]] = field(default_factory=list)
    failing_names: set[str] = field(default_factory=set)
    fail_writes: bool = False
    fail_reads: bool = False
    append_gate: asyncio.Event | None = None
    subscriptions: dict[int, tuple[str, RecordsListener]] = field(default_factory=dict)
    unsubscribe_calls: int = 0
    _next_subscription: int = 0

    def seed(self, uid: str, records: list[NutritionRecord]) -> None:
        bucket = self.logs.setdefault(uid, {})
        for record in records:
            bucket[record.id] = record

    def records(self, uid: str) -> list[NutritionRecord]:
        return sorted(
            self.logs.get(uid, {}).values(),
            key=lambda record: record.timestamp or 0,
            reverse=True,
        )

    def push(self, uid: str) -> None:
        for subscribed_uid, listener in list(self.subscriptions.values()):
            if subscribed_uid == uid:
                listener(self.records(uid))

    def active_subscriptions(self) -> list[str]:
        return [uid for uid, _listener in self.subscriptions.values()]

    async def list_all(self, uid: str) -> list[NutritionRecord]:
        if self.fail_reads:
            return []
        return self.records(uid)

    async def append(self, uid: str, record: NutritionRecord) -> NutritionRecord:
        if self.append_gate is not None:
            await self.append_gate.wait()
        if self.fail_writes or record.name in self.failing_names:
            raise RemoteStoreError(f"append failed for {record.name}")
        stored = record.with_id(new_record_id())
        if stored.timestamp is None:
            stored = stored.with_timestamp(FIXED_NOW_MS)
        self.logs.setdefault(uid, {})[stored.id] = stored
        self.appended.append((uid, stored))
        self.push(uid)
        return stored

    async def remove(self, uid: str, record_id: str) -> None:
        if self.fail_writes:
            raise RemoteStoreError("remove failed")
        self.removed.append((uid, record_id))
        self.logs.get(uid, {}).pop(record_id, None)
        self.push(uid)

    def subscribe(self, uid: str, on_change: RecordsListener) -> Unsubscribe:
        self._next_subscription += 1
        handle = self._next_subscription
        self.subscriptions[handle] = (uid, on_change)
        on_change(self.records(uid))

        def unsubscribe() -> None:
            self.unsubscribe_calls += 1
            self.subscriptions.pop(handle, None)

        return unsubscribe

    async def ensure_owner_record_exists(
        self, uid: str, profile_patch: dict[str, object]
    ) -> None:
        if self.fail_writes:
            raise RemoteStoreError("profile upsert failed")
        self.profiles.setdefault(uid, {}).update(profile_patch)


@dataclass
class FakeAuthProvider(AuthProvider):
    """Fake auth provider with scripted accounts."""

    accounts: dict[str, tuple[str, str]] = field(default_factory=dict)
    session: Identity = field(default_factory=Identity.signed_out)
    anonymous_count: int = 0

    async def sign_in_anonymously(self) -> Identity:
        self.anonymous_count += 1
        self.session = Identity(uid=f"anon-{self.anonymous_count}", is_anonymous=True)
        return self.session

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        account = self.accounts.get(email)
        if account is None or account[1] != password:
            raise AuthError("Invalid login credentials")
        self.session = Identity(uid=account[0], is_anonymous=False, email=email)
        return self.session

    async def sign_up(self, email: str, password: str) -> Identity:
        if email in self.accounts:
            raise AuthError("User already registered")
        uid = f"user-{len(self.accounts) + 1}"
        self.accounts[email] = (uid, password)
        self.session = Identity(uid=uid, is_anonymous=False, email=email)
        return self.session

    async def sign_out(self) -> None:
        self.session = Identity.signed_out()

    async def current(self) -> Identity:
        return self.session


@dataclass
class FakeNutritionAIClient(NutritionAIClient):
    """Fake AI client returning fixed payloads."""

    payload: dict[str, object] = field(
        default_factory=lambda: {
            "items": [
                {
                    "name": "Grilled chicken",
                    "calories": 220,
                    "protein": 40,
                    "carbs": 0,
                    "fat": 5,
                    "portion": "150g",
                },
                {
                    "name": "Rice",
                    "calories": 200,
                    "protein": 4,
                    "carbs": 44,
                    "fat": 0.5,
                    "portion": "1 cup",
                },
            ]
        }
    )
    text: str = "## Great day\nKeep it up."
    prompts: list[str] = field(default_factory=list)
    image_urls: list[str | None] = field(default_factory=list)

    async def generate_structured(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        prompt: str,
        schema: dict[str, object],
        image_data_url: str | None = None,
    ) -> dict[str, object]:
        self.prompts.append(prompt)
        self.image_urls.append(image_data_url)
        return self.payload

    async def generate_text(self, *, model: str, store: bool, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.text


@pytest.fixture(autouse=True)
def propagate_app_logs() -> Iterator[None]:
    logger = logging.getLogger("nutrisnap")
    previous = logger.propagate
    logger.propagate = True
    yield
    logger.propagate = previous


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_key="anon-key",
        openai_api_key="openai-key",
    )


@pytest.fixture
def storage() -> InMemoryKeyValueStorage:
    return InMemoryKeyValueStorage()


@pytest.fixture
def local_cache(storage: InMemoryKeyValueStorage) -> LocalCacheStore:
    return LocalCacheStore(storage)


@pytest.fixture
def remote_store() -> InMemoryRemoteLogStore:
    return InMemoryRemoteLogStore()


@pytest.fixture
def identity_tracker() -> IdentityTracker:
    return IdentityTracker()


@pytest.fixture
def engine(
    local_cache: LocalCacheStore,
    remote_store: InMemoryRemoteLogStore,
    identity_tracker: IdentityTracker,
) -> SyncEngine:
    return SyncEngine(
        local_cache=local_cache,
        remote_store=remote_store,
        identity_tracker=identity_tracker,
        timezone=UTC_ZONE,
        clock=lambda: FIXED_NOW_MS,
        active_day=FIXED_DAY,
    )


@pytest.fixture
def auth_provider() -> FakeAuthProvider:
    return FakeAuthProvider()


@pytest.fixture
def ai_client() -> FakeNutritionAIClient:
    return FakeNutritionAIClient()


@pytest.fixture
def container(
    settings: Settings,
    local_cache: LocalCacheStore,
    remote_store: InMemoryRemoteLogStore,
    identity_tracker: IdentityTracker,
    auth_provider: FakeAuthProvider,
    ai_client: FakeNutritionAIClient,
) -> AppContainer:
    sync_engine = SyncEngine(
        local_cache=local_cache,
        remote_store=remote_store,
        identity_tracker=identity_tracker,
        timezone=UTC_ZONE,
    )

    async def close_resources() -> None:
        sync_engine.stop()

    return AppContainer(
        settings=settings,
        local_cache=local_cache,
        identity_tracker=identity_tracker,
        sync_engine=sync_engine,
        auth_service=AuthService(auth_provider, identity_tracker),
        macro_service=MacroService(local_cache),
        estimation_service=EstimationService(
            client=ai_client,
            model=settings.openai_model,
            reasoning_effort=settings.openai_reasoning_effort,
            store=settings.openai_store,
        ),
        insights_service=InsightsService(
            client=ai_client,
            model=settings.openai_model,
            store=settings.openai_store,
        ),
        close_resources=close_resources,
    )
