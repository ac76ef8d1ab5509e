"""Unit tests for event mode: the gate and the settings-backed service."""

from __future__ import annotations

from datetime import timedelta

import pytest

from builders import EPOCH, FakeClock, SequentialIds
from conquest.domain.errors import PersistenceError, ValidationError
from conquest.domain.event_mode import EventModeGate, StaticPolicy
from conquest.services.event_mode_service import (
    CURRENT_EVENT_KEY,
    EVENT_MODE_KEY,
    MAX_PAST_EVENTS,
    PAST_EVENTS_KEY,
    EventInfo,
    EventModeService,
    EventModeSetting,
)
from conquest.utils.cache import TTLCache


class FakeSettingsStore:
    """In-memory settings store that can be told to fail."""

    def __init__(self, values=None):
        self.values = dict(values or {})
        self.reads = 0
        self.failing = False

    def get_setting(self, key):
        self.reads += 1
        if self.failing:
            raise PersistenceError("settings table unavailable")
        return self.values.get(key)

    def put_setting(self, key, value):
        if self.failing:
            raise PersistenceError("settings table unavailable")
        self.values[key] = value


class TestEventModeGate:
    def test_follows_policy(self):
        assert EventModeGate(StaticPolicy(active=True)).is_conflict_resolution_active()
        assert not EventModeGate(StaticPolicy(active=False)).is_conflict_resolution_active()

    def test_inactive_is_logged(self, caplog):
        with caplog.at_level("DEBUG", logger="conquest.domain.event_mode"):
            EventModeGate(StaticPolicy(active=False)).is_conflict_resolution_active()
        assert "Event mode active" in caplog.text


class TestEventModeSetting:
    def test_naive_start_is_treated_as_utc(self):
        setting = EventModeSetting.model_validate(
            {"enabled": True, "started_at": "2026-05-01T08:00:00", "duration_minutes": 60}
        )
        assert setting.started_at == EPOCH
        assert setting.ends_at == EPOCH + timedelta(hours=1)

    def test_open_ended_event(self):
        setting = EventModeSetting(enabled=True, started_at=EPOCH)
        assert setting.ends_at is None
        assert setting.is_running(EPOCH + timedelta(days=30))

    def test_expired_event_is_not_running(self):
        setting = EventModeSetting(enabled=True, started_at=EPOCH, duration_minutes=10)
        assert setting.is_running(EPOCH + timedelta(minutes=9))
        assert not setting.is_running(EPOCH + timedelta(minutes=10))

    def test_disabled_never_runs(self):
        assert not EventModeSetting(enabled=False).is_running(EPOCH)


class TestEventModeService:
    """Reading, caching and writing the event mode setting."""

    def setup_method(self):
        self.monotonic = 0.0
        self.clock = FakeClock()
        self.store = FakeSettingsStore()
        self.service = EventModeService(
            self.store,
            cache=TTLCache(30.0, clock=lambda: self.monotonic),
            clock=self.clock,
        )

    def test_missing_setting_means_no_event(self):
        assert not self.service.is_event_mode()
        assert self.service.is_conflict_resolution_active()

    def test_enabled_setting_disables_resolution(self):
        self.store.values[EVENT_MODE_KEY] = {"enabled": True}
        assert self.service.is_event_mode()
        assert not self.service.is_conflict_resolution_active()

    def test_reads_are_cached_for_the_ttl(self):
        self.service.is_event_mode()
        self.service.is_event_mode()
        assert self.store.reads == 1

        self.store.values[EVENT_MODE_KEY] = {"enabled": True}
        self.monotonic = 29.0
        assert not self.service.is_event_mode()

        self.monotonic = 30.0
        assert self.service.is_event_mode()
        assert self.store.reads == 2

    def test_store_failure_falls_back_to_last_value(self, caplog):
        self.store.values[EVENT_MODE_KEY] = {"enabled": True}
        assert self.service.is_event_mode()

        self.store.failing = True
        self.monotonic = 60.0
        with caplog.at_level("WARNING"):
            assert self.service.is_event_mode()
        assert "Could not read event mode" in caplog.text

    def test_store_failure_without_history_means_no_event(self):
        self.store.failing = True
        assert not self.service.is_event_mode()

    def test_malformed_setting_means_no_event(self, caplog):
        self.store.values[EVENT_MODE_KEY] = {"enabled": True, "duration_minutes": -5}
        with caplog.at_level("WARNING"):
            assert not self.service.is_event_mode()
        assert "malformed" in caplog.text

    def test_timed_event_expires(self):
        self.service.set_event_mode(True, duration_minutes=15)
        assert self.service.is_event_mode()
        assert self.service.time_remaining() == timedelta(minutes=15)

        self.clock.advance(10 * 60)
        assert self.service.time_remaining() == timedelta(minutes=5)

        self.clock.advance(5 * 60)
        assert not self.service.is_event_mode()
        assert self.service.time_remaining() is None

    def test_set_event_mode_persists_json(self):
        stored = self.service.set_event_mode(True, duration_minutes=45)

        raw = self.store.values[EVENT_MODE_KEY]
        assert raw["enabled"] is True
        assert raw["duration_minutes"] == 45
        assert isinstance(raw["started_at"], str)
        assert EventModeSetting.model_validate(raw) == stored

    def test_disabling_clears_start_and_duration(self):
        self.service.set_event_mode(True, duration_minutes=45)
        stored = self.service.set_event_mode(False, duration_minutes=45)
        assert stored == EventModeSetting(enabled=False)
        assert not self.service.is_event_mode()

    def test_open_ended_event_has_no_remaining_time(self):
        self.service.set_event_mode(True)
        assert self.service.is_event_mode()
        assert self.service.time_remaining() is None

    def test_write_failure_propagates(self):
        self.store.failing = True
        with pytest.raises(PersistenceError):
            self.service.set_event_mode(True)


class TestNamedEvents:
    """Starting, ending and archiving named events."""

    def setup_method(self):
        self.clock = FakeClock()
        self.store = FakeSettingsStore()
        self.service = EventModeService(self.store, clock=self.clock, id_factory=SequentialIds("e"))

    def test_no_event_by_default(self):
        assert self.service.current_event() is None
        assert self.service.past_events() == []

    def test_start_event_enables_event_mode(self):
        event = self.service.start_event("  City Sprint ", duration_minutes=90)

        assert event == EventInfo(id="evt_e-1", name="City Sprint", started_at=EPOCH, duration_minutes=90)
        assert self.service.current_event() == event
        assert self.service.is_event_mode()
        assert self.service.time_remaining() == timedelta(minutes=90)
        assert self.store.values[CURRENT_EVENT_KEY]["event"]["name"] == "City Sprint"

    def test_default_duration_is_two_hours(self):
        event = self.service.start_event("Weekend")
        assert event.duration_minutes == 120

    def test_blank_name_is_rejected(self):
        with pytest.raises(ValidationError):
            self.service.start_event("   ")
        assert not self.service.is_event_mode()
        assert self.service.current_event() is None

    def test_end_event_archives_it(self):
        started = self.service.start_event("City Sprint", duration_minutes=90)
        self.clock.advance(45 * 60)

        archived = self.service.end_event()

        assert archived == started.model_copy(update={"ended_at": EPOCH + timedelta(minutes=45)})
        assert self.service.current_event() is None
        assert self.service.past_events() == [archived]
        assert not self.service.is_event_mode()

    def test_end_without_named_event_only_disables(self):
        self.service.set_event_mode(True)
        assert self.service.end_event() is None
        assert not self.service.is_event_mode()
        assert PAST_EVENTS_KEY not in self.store.values

    def test_starting_again_archives_the_running_event(self):
        first = self.service.start_event("Morning")
        self.clock.advance(60)
        second = self.service.start_event("Evening")

        assert self.service.current_event() == second
        assert [e.id for e in self.service.past_events()] == [first.id]
        assert self.service.is_event_mode()

    def test_past_events_newest_first_and_capped(self):
        for index in range(MAX_PAST_EVENTS + 3):
            self.service.start_event(f"Event {index}")
            self.clock.advance(60)
            self.service.end_event()

        past = self.service.past_events()
        assert len(past) == MAX_PAST_EVENTS
        assert past[0].name == f"Event {MAX_PAST_EVENTS + 2}"
        assert past[-1].name == "Event 3"

    def test_malformed_stored_events_are_ignored(self, caplog):
        self.store.values[CURRENT_EVENT_KEY] = {"event": {"name": ""}}
        self.store.values[PAST_EVENTS_KEY] = {"events": "nope"}
        with caplog.at_level("WARNING"):
            assert self.service.current_event() is None
            assert self.service.past_events() == []
        assert "malformed" in caplog.text

    def test_store_failure_propagates(self):
        self.store.failing = True
        with pytest.raises(PersistenceError):
            self.service.start_event("Outage")
