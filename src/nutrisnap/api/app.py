"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date

from fastapi import FastAPI, HTTPException, Request, status

from nutrisnap.api.models import (
    AddRecordsRequest,
    CredentialsRequest,
    IdentityResponse,
    MacroProgressResponse,
    TextEstimateRequest,
)
from nutrisnap.app_logging import configure_logging
from nutrisnap.containers import AppContainer
from nutrisnap.domain.dates import today
from nutrisnap.domain.macros import MacroGoals
from nutrisnap.domain.records import NutritionRecord
from nutrisnap.services.auth import AuthError
from nutrisnap.services.estimation import EstimationError
from nutrisnap.services.macros import compute_totals
from nutrisnap.services.sync import SyncEngine


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        await state_container.sync_engine.start()
        try:
            await state_container.auth_service.restore()
        except AuthError:
            logger.exception("Failed to restore auth session")
        yield
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    def _container(request: Request) -> AppContainer:
        return request.app.state.container

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/identity")
    async def identity(request: Request) -> IdentityResponse:
        """Return the active identity and sync state."""
        engine = _container(request).sync_engine
        return IdentityResponse(
            uid=engine.identity.uid,
            is_anonymous=engine.identity.is_anonymous,
            state=engine.state.value,
            can_browse_calendar=engine.identity.can_browse_calendar,
        )

    @app.post("/auth/anonymous")
    async def sign_in_anonymously(request: Request) -> IdentityResponse:
        """Start a guest session."""
        await _run_auth(_container(request).auth_service.sign_in_anonymously())
        return await identity(request)

    @app.post("/auth/sign-in")
    async def sign_in(
        payload: CredentialsRequest, request: Request
    ) -> IdentityResponse:
        """Sign in with email and password."""
        auth_service = _container(request).auth_service
        await _run_auth(auth_service.sign_in(payload.email, payload.password))
        return await identity(request)

    @app.post("/auth/sign-up")
    async def sign_up(
        payload: CredentialsRequest, request: Request
    ) -> IdentityResponse:
        """Register a permanent account."""
        auth_service = _container(request).auth_service
        await _run_auth(auth_service.sign_up(payload.email, payload.password))
        return await identity(request)

    @app.post("/auth/sign-out")
    async def sign_out(request: Request) -> IdentityResponse:
        """Sign out and fall back to local-only logging."""
        await _run_auth(_container(request).auth_service.sign_out())
        return await identity(request)

    @app.get("/log")
    async def get_log(
        request: Request, day: date | None = None
    ) -> dict[str, object]:
        """Return the records logged on a day."""
        engine = _container(request).sync_engine
        target = _browsable_day(engine, day)
        if target != engine.active_day:
            engine.select_day(target)
        return {
            "day": target.isoformat(),
            "records": _dump(engine.records_for_day(target)),
        }

    @app.post("/log")
    async def add_log_records(
        payload: AddRecordsRequest, request: Request
    ) -> dict[str, object]:
        """Log new records for the active day."""
        engine = _container(request).sync_engine
        added = await engine.add_records([item.to_record() for item in payload.records])
        return {"records": _dump(added)}

    @app.delete("/log/{record_id}")
    async def remove_log_record(record_id: str, request: Request) -> dict[str, str]:
        """Remove a logged record."""
        await _container(request).sync_engine.remove_record(record_id)
        return {"status": "ok"}

    @app.get("/macros")
    async def macros(request: Request, day: date | None = None) -> dict[str, object]:
        """Return macro totals and goal progress for a day."""
        state_container = _container(request)
        engine = state_container.sync_engine
        records = engine.records_for_day(_browsable_day(engine, day))
        progress = state_container.macro_service.progress(records)
        return {
            "totals": asdict(compute_totals(records)),
            "progress": [
                MacroProgressResponse(**asdict(entry)).model_dump()
                for entry in progress
            ],
        }

    @app.get("/goals")
    async def get_goals(request: Request) -> MacroGoals:
        """Return the stored macro goals."""
        return _container(request).macro_service.get_goals()

    @app.put("/goals")
    async def put_goals(goals: MacroGoals, request: Request) -> MacroGoals:
        """Replace the stored macro goals."""
        return _container(request).macro_service.set_goals(goals)

    @app.post("/estimate/text")
    async def estimate_text(
        payload: TextEstimateRequest, request: Request
    ) -> dict[str, object]:
        """Estimate nutrition for a typed food description."""
        service = _container(request).estimation_service
        records = await _run_estimate(service.estimate_text(payload.query))
        return {"records": _dump(records)}

    @app.post("/estimate/image")
    async def estimate_image(request: Request) -> dict[str, object]:
        """Estimate nutrition for a meal photo sent as the raw body."""
        image_bytes = await request.body()
        service = _container(request).estimation_service
        records = await _run_estimate(service.estimate_image(image_bytes))
        return {"records": _dump(records)}

    @app.post("/insights")
    async def insights(request: Request, day: date | None = None) -> dict[str, str]:
        """Return personalized insights for a day's log."""
        state_container = _container(request)
        engine = state_container.sync_engine
        records = engine.records_for_day(_browsable_day(engine, day))
        goals = state_container.macro_service.get_goals()
        markdown = await _run_estimate(
            state_container.insights_service.generate(records, goals)
        )
        return {"markdown": markdown}

    async def _run_auth(operation):  # type: ignore[no-untyped-def]
        try:
            return await operation
        except AuthError as exc:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)
            ) from exc

    async def _run_estimate(operation):  # type: ignore[no-untyped-def]
        try:
            return await operation
        except EstimationError as exc:
            logger.warning("Estimation failed: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)
            ) from exc

    return app


def _dump(records: list[NutritionRecord]) -> list[dict[str, object]]:
    return [record.model_dump() for record in records]


def _browsable_day(engine: SyncEngine, day: date | None) -> date:
    """Resolve the requested day, enforcing the calendar gate."""
    current = today(engine.timezone)
    target = day or current
    if target != current and not engine.identity.can_browse_calendar:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Calendar browsing requires a registered account.",
        )
    return target
