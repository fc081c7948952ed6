"""FastAPI application — entry point for the event scheduler service.

Run with ``uvicorn scheduler.main:create_app --factory``.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from scheduler.config import Settings
from scheduler.domain.errors import ErrorKind, ServiceError, StoreUnavailableError
from scheduler.domain.models import (
    CreateEventRequest,
    EventPage,
    ListEventsRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenClaims,
    UpdateEventRequest,
    UpdateRecurringEventRequest,
)
from scheduler.domain.results import Result
from scheduler.repos.memory import Database
from scheduler.repos.tokens import RedisTokenStore, TokenStore
from scheduler.services.auth import CredentialManager
from scheduler.services.events import EventService

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.CONFLICT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_TOKEN: 401,
    ErrorKind.INVALID_CREDENTIALS: 400,
    ErrorKind.ALREADY_EXISTS: 400,
    ErrorKind.UNAVAILABLE: 503,
    ErrorKind.INTERNAL: 500,
}


def _error_detail(error: ServiceError) -> dict:
    detail: dict = {"code": error.kind.value, "message": error.message}
    if error.reason is not None:
        detail["reason"] = error.reason.value
    if error.dates:
        detail["dates"] = [d.isoformat() for d in error.dates]
    return detail


def unwrap(result: Result):
    """Return the result value or raise the matching HTTPException."""
    if result.error is not None:
        raise HTTPException(
            status_code=STATUS_BY_KIND[result.error.kind],
            detail=_error_detail(result.error),
        )
    return result.value


# ── Dependencies ──────────────────────────────────────────────────────


def get_credentials(request: Request) -> CredentialManager:
    return request.app.state.credentials


def get_events(request: Request) -> EventService:
    return request.app.state.events


def current_user(
    authorization: str | None = Header(default=None),
    credentials: CredentialManager = Depends(get_credentials),
) -> TokenClaims:
    return unwrap(credentials.authorize(authorization))


# ── Auth routes ───────────────────────────────────────────────────────

auth_router = APIRouter(prefix="/auth", tags=["auth"])


@auth_router.post("/register", status_code=201)
def register(
    payload: RegisterRequest,
    credentials: CredentialManager = Depends(get_credentials),
) -> dict:
    user = unwrap(credentials.register(payload))
    return {
        "success": True,
        "message": "User registered successfully",
        "user": user.model_dump(),
    }


@auth_router.post("/login")
def login(
    payload: LoginRequest,
    credentials: CredentialManager = Depends(get_credentials),
) -> dict:
    pair = unwrap(credentials.login(payload))
    return {"success": True, "message": "User logged in successfully", **pair.model_dump()}


@auth_router.post("/refresh")
def refresh(
    payload: RefreshRequest,
    credentials: CredentialManager = Depends(get_credentials),
) -> dict:
    pair = unwrap(credentials.refresh(payload.refresh_token))
    return {"success": True, "message": "Token refreshed successfully", **pair.model_dump()}


@auth_router.post("/logout")
def logout(
    authorization: str | None = Header(default=None),
    credentials: CredentialManager = Depends(get_credentials),
) -> dict:
    unwrap(credentials.logout(authorization))
    return {"success": True, "message": "Logged out successfully"}


# ── Event routes ──────────────────────────────────────────────────────

events_router = APIRouter(prefix="/events", tags=["events"])


@events_router.get("/list", response_model=EventPage)
def list_events(
    query: Annotated[ListEventsRequest, Query()],
    user: TokenClaims = Depends(current_user),
    events: EventService = Depends(get_events),
) -> EventPage:
    """Return the caller's events between two dates, one page at a time."""
    return unwrap(events.list_events(user.id, query))


@events_router.post("/create", status_code=201)
def create_event(
    payload: CreateEventRequest,
    user: TokenClaims = Depends(current_user),
    events: EventService = Depends(get_events),
) -> dict:
    created = unwrap(events.create_event(user.id, payload))
    return {
        "success": True,
        "message": "Event created successfully",
        "event": created.model_dump(mode="json"),
    }


@events_router.patch("/update")
def update_event(
    payload: UpdateEventRequest,
    user: TokenClaims = Depends(current_user),
    events: EventService = Depends(get_events),
) -> dict:
    updated = unwrap(events.update_event(user.id, payload))
    return {
        "success": True,
        "message": "Event updated successfully",
        "event": updated.model_dump(mode="json"),
    }


@events_router.patch("/update-recurring")
def update_recurring_event(
    payload: UpdateRecurringEventRequest,
    user: TokenClaims = Depends(current_user),
    events: EventService = Depends(get_events),
) -> dict:
    series = unwrap(events.update_recurring_event(user.id, payload))
    return {
        "success": True,
        "message": "Recurring event updated successfully",
        "event": series.model_dump(mode="json"),
    }


@events_router.delete("/delete/{event_id}")
def delete_event(
    event_id: str,
    user: TokenClaims = Depends(current_user),
    events: EventService = Depends(get_events),
) -> dict:
    unwrap(events.delete_event(user.id, event_id))
    return {"success": True, "message": "Event deleted successfully"}


@events_router.delete("/delete-recurring/{recurring_event_id}")
def delete_recurring_event(
    recurring_event_id: str,
    user: TokenClaims = Depends(current_user),
    events: EventService = Depends(get_events),
) -> dict:
    removed = unwrap(events.delete_recurring_event(user.id, recurring_event_id))
    return {
        "success": True,
        "message": "Recurring event deleted successfully",
        "deleted_instances": removed,
    }


# ── Health ────────────────────────────────────────────────────────────

health_router = APIRouter()


@health_router.get("/healthcheck")
def healthcheck(request: Request) -> JSONResponse:
    store: TokenStore = request.app.state.token_store
    token_store: dict = {"status": "up"}
    try:
        started = time.perf_counter()
        store.ping()
        token_store["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    except StoreUnavailableError as exc:
        logger.warning("Health check: token store down: %s", exc)
        token_store = {"status": "down", "error": str(exc)}

    healthy = token_store["status"] == "up"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "success": healthy,
            "api": {"status": "up"},
            "token_store": token_store,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# ── Factory ───────────────────────────────────────────────────────────


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    token_store: TokenStore | None = None,
) -> FastAPI:
    """Build the application with explicitly constructed collaborators."""
    settings = settings or Settings()
    logging.basicConfig(level=settings.LOG_LEVEL)

    database = database or Database(lock_timeout=settings.DATABASE_LOCK_TIMEOUT_SECONDS)
    token_store = token_store or RedisTokenStore.from_url(
        settings.REDIS_URL,
        password=settings.REDIS_PASSWORD,
        timeout=settings.REDIS_TIMEOUT_SECONDS,
    )

    app = FastAPI(title="Event Scheduler API")
    app.state.settings = settings
    app.state.token_store = token_store
    app.state.credentials = CredentialManager(settings, database, token_store)
    app.state.events = EventService(
        database, horizon_years=settings.RECURRENCE_HORIZON_YEARS
    )

    app.include_router(auth_router)
    app.include_router(events_router)
    app.include_router(health_router)
    return app
