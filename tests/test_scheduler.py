import pytest

from delivery_tracking.scheduler import Sequencer, Timers


def test_timeout_fires_once(timers, clock):
    fired = []
    timers.set_timeout("t", 10, lambda: fired.append(clock.now))

    clock.advance(9)
    assert timers.run_due() == []
    clock.advance(1)
    assert timers.run_due() == ["t"]
    clock.advance(100)
    assert timers.run_due() == []
    assert fired == [10]
    assert not timers.is_active("t")


def test_interval_reschedules_from_run_time(timers, clock):
    timers.set_interval("poll", 60, lambda: None)

    clock.advance(200)
    assert timers.run_due() == ["poll"]
    assert timers.due_in("poll") == 60
    clock.advance(60)
    assert timers.run_due() == ["poll"]


def test_interval_must_be_positive(timers):
    with pytest.raises(ValueError):
        timers.set_interval("bad", 0, lambda: None)


def test_clear(timers, clock):
    timers.set_timeout("t", 5, lambda: None)
    assert timers.clear("t")
    assert not timers.clear("t")
    clock.advance(10)
    assert timers.run_due() == []
    assert len(timers) == 0


def test_clear_all(timers, clock):
    timers.set_timeout("t", 5, lambda: None)
    timers.set_interval("poll", 60, lambda: None)

    timers.clear_all()

    clock.advance(100)
    assert timers.run_due() == []
    assert len(timers) == 0


def test_same_name_replaces_timer(timers, clock):
    calls = []
    timers.set_timeout("t", 5, lambda: calls.append("first"))
    timers.set_timeout("t", 5, lambda: calls.append("second"))
    clock.advance(5)
    timers.run_due()
    assert calls == ["second"]


def test_due_timers_run_in_deadline_order(timers, clock):
    order = []
    timers.set_timeout("late", 3, lambda: order.append("late"))
    timers.set_timeout("early", 1, lambda: order.append("early"))
    clock.advance(5)
    assert timers.run_due() == ["early", "late"]
    assert order == ["early", "late"]


def test_callback_can_clear_another_due_timer(timers, clock):
    timers.set_timeout("first", 1, lambda: timers.clear("second"))
    timers.set_timeout("second", 2, lambda: pytest.fail("cleared timer ran"))
    clock.advance(5)
    assert timers.run_due() == ["first"]


def test_interval_can_clear_itself(timers, clock):
    timers.set_interval("poll", 1, lambda: timers.clear("poll"))
    clock.advance(1)
    assert timers.run_due() == ["poll"]
    assert not timers.is_active("poll")


def test_explicit_now_overrides_clock():
    timers = Timers(clock=lambda: 0.0)
    timers.set_timeout("t", 10, lambda: None)
    assert timers.run_due(now=10) == ["t"]


def test_sequencer_rejects_older_tickets():
    seq = Sequencer()
    first, second = seq.issue(), seq.issue()

    assert seq.accept("order", second)
    assert not seq.accept("order", first)
    assert seq.last_applied("order") == second


def test_sequencer_tracks_resources_independently():
    seq = Sequencer()
    first, second = seq.issue(), seq.issue()

    assert seq.accept("order", second)
    assert seq.accept("restaurant", first)
    assert not seq.accept("order", second)
