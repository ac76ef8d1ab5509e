"""Event Mode Service.

Reads the ``event_mode`` application setting and answers whether conquests
should resolve conflicts. While an event runs, territories may overlap.

Lookups go through an explicit :class:`~conquest.utils.cache.TTLCache`; when
the settings store cannot be read, the last known value is used, or "no
event" if nothing was ever read.

Named events live beside the flag: ``current_event`` holds the running one and
``past_events`` the most recent archived ones.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from conquest.domain.errors import PersistenceError, ValidationError
from conquest.domain.models import new_identifier, utc_now
from conquest.interfaces.settings import ISettingsStore
from conquest.utils.cache import TTLCache

logger = logging.getLogger(__name__)

EVENT_MODE_KEY = "event_mode"
CURRENT_EVENT_KEY = "current_event"
PAST_EVENTS_KEY = "past_events"
MAX_PAST_EVENTS = 20
DEFAULT_EVENT_DURATION_MINUTES = 120
DEFAULT_CACHE_TTL_SECONDS = 30.0


class EventModeSetting(BaseModel):
    """Stored shape of the ``event_mode`` setting."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    started_at: datetime | None = None
    duration_minutes: int | None = Field(default=None, gt=0)

    @field_validator("started_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def ends_at(self) -> datetime | None:
        if self.started_at is None or self.duration_minutes is None:
            return None
        return self.started_at + timedelta(minutes=self.duration_minutes)

    def is_running(self, now: datetime) -> bool:
        """Enabled and, when it has a duration, not yet over."""

        if not self.enabled:
            return False
        ends_at = self.ends_at
        return ends_at is None or now < ends_at


class EventInfo(BaseModel):
    """A named event, current or archived."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = Field(min_length=1)
    started_at: datetime
    duration_minutes: int | None = Field(default=None, gt=0)
    ended_at: datetime | None = None

    @field_validator("started_at", "ended_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class _CurrentEvent(BaseModel):
    event: EventInfo | None = None


class _PastEvents(BaseModel):
    events: list[EventInfo] = Field(default_factory=list)


_NO_EVENT = EventModeSetting()


class EventModeService:
    """Database-backed policy provider for conflict resolution."""

    def __init__(
        self,
        settings_store: ISettingsStore,
        *,
        cache: TTLCache[EventModeSetting] | None = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_identifier,
    ) -> None:
        self.settings_store = settings_store
        self.cache = cache if cache is not None else TTLCache(DEFAULT_CACHE_TTL_SECONDS)
        self._clock = clock
        self._id_factory = id_factory

    def current_setting(self) -> EventModeSetting:
        """The event mode setting, from cache when fresh."""

        cached = self.cache.get()
        if cached is not None:
            return cached

        try:
            raw = self.settings_store.get_setting(EVENT_MODE_KEY)
        except PersistenceError as exc:
            fallback = self.cache.last_value or _NO_EVENT
            logger.warning("Could not read event mode, using enabled=%s: %s", fallback.enabled, exc)
            return fallback

        setting = self._parse(raw)
        self.cache.set(setting)
        return setting

    @staticmethod
    def _parse(raw: dict | None) -> EventModeSetting:
        if raw is None:
            return _NO_EVENT
        try:
            return EventModeSetting.model_validate(raw)
        except pydantic.ValidationError as exc:
            logger.warning("Ignoring malformed event mode setting %r: %s", raw, exc)
            return _NO_EVENT

    def is_event_mode(self) -> bool:
        return self.current_setting().is_running(self._clock())

    def is_conflict_resolution_active(self) -> bool:
        return not self.is_event_mode()

    def time_remaining(self) -> timedelta | None:
        """Time until the running event ends.

        Returns:
            None when no event is running or the event has no end
        """
        setting = self.current_setting()
        now = self._clock()
        if not setting.is_running(now) or setting.ends_at is None:
            return None
        return setting.ends_at - now

    def set_event_mode(self, enabled: bool, duration_minutes: int | None = None) -> EventModeSetting:
        """Start or stop an event.

        Args:
            enabled: Whether territories may overlap
            duration_minutes: Length of the event; None runs until disabled

        Returns:
            The stored setting
        """
        setting = EventModeSetting(
            enabled=enabled,
            started_at=self._clock() if enabled else None,
            duration_minutes=duration_minutes if enabled else None,
        )
        self.settings_store.put_setting(EVENT_MODE_KEY, setting.model_dump(mode="json"))
        self.cache.set(setting)
        logger.info("Event mode %s (duration %s min)", "enabled" if enabled else "disabled", duration_minutes)
        return setting

    # --- Named events ------------------------------------------------------------

    def current_event(self) -> EventInfo | None:
        """The event started with :meth:`start_event` and not yet ended."""

        raw = self.settings_store.get_setting(CURRENT_EVENT_KEY)
        if raw is None:
            return None
        try:
            return _CurrentEvent.model_validate(raw).event
        except pydantic.ValidationError as exc:
            logger.warning("Ignoring malformed current event %r: %s", raw, exc)
            return None

    def past_events(self) -> list[EventInfo]:
        """Archived events, most recently ended first."""

        raw = self.settings_store.get_setting(PAST_EVENTS_KEY)
        if raw is None:
            return []
        try:
            return _PastEvents.model_validate(raw).events[:MAX_PAST_EVENTS]
        except pydantic.ValidationError as exc:
            logger.warning("Ignoring malformed past events %r: %s", raw, exc)
            return []

    def start_event(
        self, name: str, duration_minutes: int | None = DEFAULT_EVENT_DURATION_MINUTES
    ) -> EventInfo:
        """Enable event mode under a name.

        An event that is still current is ended and archived first.

        Args:
            name: Display name; surrounding whitespace is dropped
            duration_minutes: Length of the event; None runs until ended

        Raises:
            ValidationError: The name is blank or the duration is not positive
            PersistenceError: The settings store failed
        """
        try:
            event = EventInfo(
                id=f"evt_{self._id_factory()}",
                name=name.strip(),
                started_at=self._clock(),
                duration_minutes=duration_minutes,
            )
        except pydantic.ValidationError as exc:
            raise ValidationError(f"invalid event: {exc}") from exc

        if self.current_event() is not None:
            self.end_event()

        self.set_event_mode(True, duration_minutes)
        self.settings_store.put_setting(
            CURRENT_EVENT_KEY, _CurrentEvent(event=event).model_dump(mode="json")
        )
        logger.info("Started event %s (%r)", event.id, event.name)
        return event

    def end_event(self) -> EventInfo | None:
        """Disable event mode and archive the current event.

        Returns:
            The archived event, or None when no named event was current
        """
        current = self.current_event()
        self.set_event_mode(False)
        if current is None:
            return None

        archived = current.model_copy(update={"ended_at": self._clock()})
        events = [archived, *self.past_events()][:MAX_PAST_EVENTS]
        self.settings_store.put_setting(
            PAST_EVENTS_KEY, _PastEvents(events=events).model_dump(mode="json")
        )
        self.settings_store.put_setting(CURRENT_EVENT_KEY, _CurrentEvent().model_dump(mode="json"))
        logger.info("Ended event %s (%r), %d archived", archived.id, archived.name, len(events))
        return archived
