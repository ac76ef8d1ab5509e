"""HTTP routes for the conquest API."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from conquest.api.runtime import ApiState
from conquest.domain import models as dm
from conquest.domain.enums import ActivityType
from conquest.domain.errors import (
    ConflictError,
    PathValidationError,
    PersistenceError,
    RateLimitError,
    TerritoryNotFoundError,
    ValidationError,
)
from conquest.services.event_mode_service import DEFAULT_EVENT_DURATION_MINUTES, EventInfo

router = APIRouter()


def get_state(request: Request) -> ApiState:
    state = getattr(request.app.state, "api_state", None)
    if state is None:  # pragma: no cover - FastAPI should always initialise state
        raise RuntimeError("API state not initialised")
    return state


ApiStateDep = Annotated[ApiState, Depends(get_state)]


class PointPayload(BaseModel):
    lat: float
    lng: float
    timestamp: float = Field(description="Epoch milliseconds")
    speed: float | None = None
    accuracy: float | None = None
    altitude: float | None = None


class ConquestRequest(BaseModel):
    owner_id: str = Field(min_length=1)
    activity_id: str = Field(min_length=1)
    owner_username: str | None = None
    activity_type: ActivityType | None = None
    name: str = ""
    path: list[PointPayload]


class LatLngResponse(BaseModel):
    lat: float
    lng: float


class ClaimEventResponse(BaseModel):
    claimed_by: str
    claimed_at: datetime
    activity_id: str
    previous_owner_id: str | None


class TerritoryResponse(BaseModel):
    id: str
    owner_id: str
    activity_id: str
    name: str
    claimed_at: datetime
    area: float
    perimeter: float
    center: LatLngResponse
    polygon: list[list[float]]
    holes: list[list[list[float]]]
    history: list[ClaimEventResponse]
    version: int


class InvasionResponse(BaseModel):
    id: str
    invaded_user_id: str
    invader_user_id: str
    invader_username: str | None
    invaded_territory_id: str
    new_territory_id: str
    resulting_territory_id: str | None
    overlap_area: float
    territory_was_destroyed: bool
    created_at: datetime
    seen: bool


class ConquestResponse(BaseModel):
    new_territory: TerritoryResponse
    modified_territories: list[TerritoryResponse]
    deleted_territory_ids: list[str]
    invasions: list[InvasionResponse]
    total_conquered_area: float


class LeaderboardEntryResponse(BaseModel):
    rank: int
    owner_id: str
    total_area: float
    territory_count: int


class MarkSeenRequest(BaseModel):
    invasion_ids: list[str] | None = None


class MarkSeenResponse(BaseModel):
    marked: int


class EventModeRequest(BaseModel):
    enabled: bool
    duration_minutes: int | None = Field(default=None, gt=0)


class EventModeResponse(BaseModel):
    enabled: bool
    active: bool
    started_at: datetime | None
    duration_minutes: int | None
    seconds_remaining: float | None


class EventRequest(BaseModel):
    name: str = Field(min_length=1)
    duration_minutes: int | None = Field(default=DEFAULT_EVENT_DURATION_MINUTES, gt=0)


class EventResponse(BaseModel):
    id: str
    name: str
    started_at: datetime
    duration_minutes: int | None
    ended_at: datetime | None


def _territory_response(territory: dm.Territory) -> TerritoryResponse:
    return TerritoryResponse(
        id=territory.id,
        owner_id=territory.owner_id,
        activity_id=territory.activity_id,
        name=territory.name,
        claimed_at=territory.claimed_at,
        area=territory.area,
        perimeter=territory.perimeter,
        center=LatLngResponse(lat=territory.center.lat, lng=territory.center.lng),
        polygon=[[lng, lat] for lng, lat in territory.ring],
        holes=[[[lng, lat] for lng, lat in hole] for hole in territory.holes],
        history=[
            ClaimEventResponse(
                claimed_by=event.claimed_by,
                claimed_at=event.claimed_at,
                activity_id=event.activity_id,
                previous_owner_id=event.previous_owner_id,
            )
            for event in territory.history
        ],
        version=territory.version,
    )


def _invasion_response(invasion: dm.TerritoryInvasion) -> InvasionResponse:
    return InvasionResponse(
        id=invasion.id,
        invaded_user_id=invasion.invaded_user_id,
        invader_user_id=invasion.invader_user_id,
        invader_username=invasion.invader_username,
        invaded_territory_id=invasion.invaded_territory_id,
        new_territory_id=invasion.new_territory_id,
        resulting_territory_id=invasion.resulting_territory_id,
        overlap_area=invasion.overlap_area,
        territory_was_destroyed=invasion.territory_was_destroyed,
        created_at=invasion.created_at,
        seen=invasion.seen,
    )


def _event_mode_response(state: ApiState) -> EventModeResponse:
    setting = state.event_mode.current_setting()
    remaining = state.event_mode.time_remaining()
    return EventModeResponse(
        enabled=setting.enabled,
        active=state.event_mode.is_event_mode(),
        started_at=setting.started_at,
        duration_minutes=setting.duration_minutes,
        seconds_remaining=remaining.total_seconds() if remaining is not None else None,
    )


def _event_response(event: EventInfo) -> EventResponse:
    return EventResponse(
        id=event.id,
        name=event.name,
        started_at=event.started_at,
        duration_minutes=event.duration_minutes,
        ended_at=event.ended_at,
    )


def _unavailable(exc: PersistenceError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get("/health")
async def health(state: ApiStateDep) -> dict[str, object]:
    database_ok = state.database_healthy()
    return {
        "status": "ok" if database_ok else "degraded",
        "database": database_ok,
        "event_mode": state.event_mode.is_event_mode(),
    }


@router.post(
    "/conquests",
    response_model=ConquestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_conquest(request: ConquestRequest, state: ApiStateDep) -> ConquestResponse:
    path = [
        dm.GeodeticPoint(
            lat=point.lat,
            lng=point.lng,
            timestamp=point.timestamp,
            speed=point.speed,
            accuracy=point.accuracy,
            altitude=point.altitude,
        )
        for point in request.path
    ]
    try:
        result = await state.conquer(
            path,
            dm.UserID(request.owner_id),
            dm.ActivityID(request.activity_id),
            owner_username=request.owner_username,
            activity_type=request.activity_type,
            name=request.name,
        )
    except PathValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"reason": exc.reason.value, "detail": exc.detail},
        ) from exc
    except RateLimitError as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(exc),
            headers={"Retry-After": str(max(1, round(exc.retry_after_s)))},
        ) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _unavailable(exc) from exc

    return ConquestResponse(
        new_territory=_territory_response(result.new_territory),
        modified_territories=[_territory_response(t) for t in result.modified_territories],
        deleted_territory_ids=list(result.deleted_territory_ids),
        invasions=[_invasion_response(i) for i in result.invasions],
        total_conquered_area=result.total_conquered_area,
    )


@router.get("/territories", response_model=list[TerritoryResponse])
async def list_territories(
    state: ApiStateDep, owner_id: Annotated[str | None, Query()] = None
) -> list[TerritoryResponse]:
    try:
        territories = state.territories.list_territories(
            dm.UserID(owner_id) if owner_id is not None else None
        )
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return [_territory_response(t) for t in territories]


@router.get("/territories/{territory_id}", response_model=TerritoryResponse)
async def get_territory(territory_id: str, state: ApiStateDep) -> TerritoryResponse:
    try:
        territory = state.territories.get_territory(dm.TerritoryID(territory_id))
    except TerritoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="territory not found") from exc
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return _territory_response(territory)


@router.get("/leaderboard", response_model=list[LeaderboardEntryResponse])
async def leaderboard(
    state: ApiStateDep,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    since: Annotated[datetime | None, Query()] = None,
) -> list[LeaderboardEntryResponse]:
    try:
        entries = state.territories.leaderboard(limit=limit, since=since)
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return [
        LeaderboardEntryResponse(
            rank=entry.rank,
            owner_id=entry.owner_id,
            total_area=entry.total_area,
            territory_count=entry.territory_count,
        )
        for entry in entries
    ]


@router.get("/users/{user_id}/invasions/unseen", response_model=list[InvasionResponse])
async def unseen_invasions(user_id: str, state: ApiStateDep) -> list[InvasionResponse]:
    try:
        invasions = state.territories.unseen_invasions(dm.UserID(user_id))
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return [_invasion_response(i) for i in invasions]


@router.post("/users/{user_id}/invasions/seen", response_model=MarkSeenResponse)
async def mark_invasions_seen(
    user_id: str, request: MarkSeenRequest, state: ApiStateDep
) -> MarkSeenResponse:
    ids = [dm.InvasionID(i) for i in request.invasion_ids] if request.invasion_ids is not None else None
    try:
        marked = state.territories.mark_invasions_seen(dm.UserID(user_id), ids)
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return MarkSeenResponse(marked=marked)


@router.get("/event-mode", response_model=EventModeResponse)
async def get_event_mode(state: ApiStateDep) -> EventModeResponse:
    return _event_mode_response(state)


@router.put("/event-mode", response_model=EventModeResponse)
async def set_event_mode(request: EventModeRequest, state: ApiStateDep) -> EventModeResponse:
    try:
        state.event_mode.set_event_mode(request.enabled, request.duration_minutes)
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return _event_mode_response(state)


@router.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def start_event(request: EventRequest, state: ApiStateDep) -> EventResponse:
    try:
        event = state.event_mode.start_event(request.name, request.duration_minutes)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return _event_response(event)


@router.get("/events/current", response_model=EventResponse)
async def current_event(state: ApiStateDep) -> EventResponse:
    try:
        event = state.event_mode.current_event()
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no current event")
    return _event_response(event)


@router.post("/events/current/end", response_model=EventResponse)
async def end_event(state: ApiStateDep) -> EventResponse:
    try:
        event = state.event_mode.end_event()
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no current event")
    return _event_response(event)


@router.get("/events/past", response_model=list[EventResponse])
async def past_events(state: ApiStateDep) -> list[EventResponse]:
    try:
        events = state.event_mode.past_events()
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return [_event_response(e) for e in events]
