import pytest

from delivery_tracking.models import OrderStatus
from delivery_tracking.status import (
    progress_indicator,
    progress_step,
    should_poll,
    status_badge,
    status_color,
    status_description,
)


@pytest.mark.parametrize(
    "status, step",
    [
        ("pending", 0),
        ("accepted", 0),
        ("rejected", 0),
        ("paid", 1),
        ("preparing", 1),
        ("ready", 1),
        ("assigned", 2),
        ("pickup", 2),
        ("picked_up", 2),
        ("delivered", 3),
        ("lost-in-space", 0),
        (None, 0),
        (OrderStatus.DELIVERED, 3),
    ],
)
def test_progress_step(status, step):
    assert progress_step(status) == step


def test_rejected_bar_is_fixed_at_quarter_width():
    progress = progress_indicator("rejected")
    assert progress.step == 0
    assert progress.bar_width == 25.0
    assert progress.rejected
    assert [s.disabled for s in progress.steps] == [False, True, True, True]


def test_bar_width_follows_step():
    assert progress_indicator("pending").bar_width == 0
    assert progress_indicator("ready").bar_width == pytest.approx(100 / 3)
    assert progress_indicator("picked_up").bar_width == pytest.approx(200 / 3)
    assert progress_indicator("delivered").bar_width == 100


def test_steps_are_done_up_to_current():
    progress = progress_indicator("assigned")
    assert [s.done for s in progress.steps] == [True, True, True, False]
    assert [s.active for s in progress.steps] == [False, False, True, False]
    assert not any(s.disabled for s in progress.steps)


def test_eta_only_shown_on_the_way():
    assert progress_indicator("assigned").show_eta
    assert not progress_indicator("preparing").show_eta
    assert not progress_indicator("delivered").show_eta


def test_badges():
    assert status_badge("pending") == ("Pending", "warning")
    assert status_badge("picked_up") == ("Pickup", "secondary")
    assert status_badge("assigned") == ("Assigned", "accent")
    assert status_badge("on_hold") == ("on_hold", "ghost")


def test_colors_and_descriptions():
    assert status_color("pickup") == "#9b59b6"
    assert status_color("whatever") == "#6c757d"
    assert status_description("ready") == "Your order is ready for pickup"
    assert status_description(None) == "Tracking your order"


def test_polling_statuses():
    assert should_poll("assigned")
    assert should_poll("picked_up")
    assert not should_poll("delivered")
    assert not should_poll("preparing")
