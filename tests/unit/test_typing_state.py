from __future__ import annotations

from eventro_chat.infrastructure.ws.typing_state import TypingTracker
from tests.conftest import FakeClock


def test_start_reports_change_only_once():
    tracker = TypingTracker(3.0, FakeClock())

    assert tracker.start(10, 1) is True
    assert tracker.start(10, 1) is False
    assert tracker.is_typing(10, 1) is True


def test_stop_reports_change_only_when_typing():
    tracker = TypingTracker(3.0, FakeClock())

    assert tracker.stop(10, 1) is False
    tracker.start(10, 1)
    assert tracker.stop(10, 1) is True
    assert tracker.stop(10, 1) is False


def test_flag_expires_after_ttl():
    clock = FakeClock()
    tracker = TypingTracker(3.0, clock)
    tracker.start(10, 1)

    clock.advance(2.9)
    assert tracker.is_typing(10, 1) is True
    clock.advance(0.2)
    assert tracker.is_typing(10, 1) is False


def test_restart_extends_ttl():
    clock = FakeClock()
    tracker = TypingTracker(3.0, clock)
    tracker.start(10, 1)
    clock.advance(2.0)
    tracker.start(10, 1)
    clock.advance(2.0)

    assert tracker.is_typing(10, 1) is True
    assert tracker.sweep() == []


def test_start_after_expiry_is_a_change():
    clock = FakeClock()
    tracker = TypingTracker(3.0, clock)
    tracker.start(10, 1)
    clock.advance(5.0)

    assert tracker.start(10, 1) is True


def test_sweep_returns_expired_entries_once():
    clock = FakeClock()
    tracker = TypingTracker(3.0, clock)
    tracker.start(10, 1)
    tracker.start(10, 2)
    clock.advance(1.0)
    tracker.start(20, 1)
    clock.advance(2.5)

    assert sorted(tracker.sweep()) == [(10, 1), (10, 2)]
    assert tracker.sweep() == []
    assert tracker.typing_users(20) == [1]


def test_clear_user():
    tracker = TypingTracker(3.0, FakeClock())
    tracker.start(10, 1)
    tracker.start(20, 1)
    tracker.start(20, 2)

    assert tracker.clear_user(1) == [10, 20]
    assert tracker.typing_users(20) == [2]
