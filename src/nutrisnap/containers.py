"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from nutrisnap.adapters.openai_nutrition_client import OpenAINutritionClient
from nutrisnap.adapters.sqlite_key_value_storage import SqliteKeyValueStorage
from nutrisnap.adapters.supabase_auth_provider import SupabaseAuthProvider
from nutrisnap.adapters.supabase_log_repository import SupabaseLogRepository
from nutrisnap.config import Settings, parse_timezone
from nutrisnap.services.auth import AuthService
from nutrisnap.services.estimation import EstimationService
from nutrisnap.services.identity import IdentityTracker
from nutrisnap.services.insights import InsightsService
from nutrisnap.services.local_cache import LocalCacheStore
from nutrisnap.services.macros import MacroService
from nutrisnap.services.sync import SyncEngine


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    local_cache: LocalCacheStore
    identity_tracker: IdentityTracker
    sync_engine: SyncEngine
    auth_service: AuthService
    macro_service: MacroService
    estimation_service: EstimationService
    insights_service: InsightsService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_key
    )
    storage = SqliteKeyValueStorage(resolved_settings.local_cache_path)
    local_cache = LocalCacheStore(storage)
    remote_store = SupabaseLogRepository(
        supabase_client,
        poll_interval_seconds=resolved_settings.remote_poll_interval_seconds,
    )
    identity_tracker = IdentityTracker()
    sync_engine = SyncEngine(
        local_cache=local_cache,
        remote_store=remote_store,
        identity_tracker=identity_tracker,
        timezone=parse_timezone(resolved_settings.timezone),
    )
    auth_service = AuthService(
        provider=SupabaseAuthProvider(supabase_client),
        identity_tracker=identity_tracker,
    )
    ai_client = OpenAINutritionClient.create(resolved_settings.openai_api_key)
    estimation_service = EstimationService(
        client=ai_client,
        model=resolved_settings.openai_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
    )
    insights_service = InsightsService(
        client=ai_client,
        model=resolved_settings.openai_model,
        store=resolved_settings.openai_store,
    )

    async def close_resources() -> None:
        sync_engine.stop()
        storage.close()
        await ai_client.close()

    return AppContainer(
        settings=resolved_settings,
        local_cache=local_cache,
        identity_tracker=identity_tracker,
        sync_engine=sync_engine,
        auth_service=auth_service,
        macro_service=MacroService(local_cache),
        estimation_service=estimation_service,
        insights_service=insights_service,
        close_resources=close_resources,
    )
