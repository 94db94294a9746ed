# delivery-tracking/delivery_tracking/status.py
"""
Order status presentation.

Derives the four-step progress indicator shown on a tracking view, plus the
badge, color and customer-facing sentence for each status. Pure functions of
the status string; nothing here talks to a service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from . import config
from .models import OrderStatus

StatusLike = Union[OrderStatus, str, None]

# =============================================================================
# PROGRESS STEPS
# =============================================================================

STEP_LABELS: Tuple[str, ...] = ("Order Placed", "Preparing", "On the Way", "Delivered")
LAST_STEP = len(STEP_LABELS) - 1

REJECTED_BAR_WIDTH = 25.0

_STEP_BY_STATUS: Dict[OrderStatus, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.ACCEPTED: 0,
    OrderStatus.REJECTED: 0,
    OrderStatus.PAID: 1,
    OrderStatus.PREPARING: 1,
    OrderStatus.READY: 1,
    OrderStatus.ASSIGNED: 2,
    OrderStatus.PICKUP: 2,
    OrderStatus.PICKED_UP: 2,
    OrderStatus.DELIVERED: 3,
}


def _parse(status: StatusLike) -> OrderStatus:
    return OrderStatus.parse(status) if status is not None else OrderStatus.UNKNOWN


def progress_step(status: StatusLike) -> int:
    """
    Map a status to its progress step (0-3).

    Example:
        >>> progress_step("picked_up")
        2
        >>> progress_step("something-new")
        0
    """
    return _STEP_BY_STATUS.get(_parse(status), 0)


@dataclass
class ProgressStep:
    label: str
    done: bool
    active: bool
    disabled: bool


@dataclass
class ProgressIndicator:
    """
    Everything a view needs to draw the progress bar.

    Attributes:
        step: Current step index (0-3)
        bar_width: Filled width in percent. Fixed at 25 for rejected orders.
        rejected: True when the order failed at the restaurant
        steps: Per-step rendering flags
        show_eta: ETA is only meaningful while the order is on the way
    """
    step: int
    bar_width: float
    rejected: bool = False
    show_eta: bool = False
    steps: List[ProgressStep] = field(default_factory=list)


def progress_indicator(status: StatusLike) -> ProgressIndicator:
    parsed = _parse(status)
    step = progress_step(parsed)
    rejected = parsed is OrderStatus.REJECTED
    bar_width = REJECTED_BAR_WIDTH if rejected else step / LAST_STEP * 100

    steps = [
        ProgressStep(
            label=label,
            done=index <= step,
            active=index == step,
            disabled=rejected and index > step,
        )
        for index, label in enumerate(STEP_LABELS)
    ]
    return ProgressIndicator(
        step=step,
        bar_width=bar_width,
        rejected=rejected,
        show_eta=step == 2,
        steps=steps,
    )


# =============================================================================
# BADGES, COLORS, DESCRIPTIONS
# =============================================================================

_BADGES: Dict[OrderStatus, Tuple[str, str]] = {
    OrderStatus.PENDING: ("Pending", "warning"),
    OrderStatus.ACCEPTED: ("Accepted", "success"),
    OrderStatus.REJECTED: ("Rejected", "error"),
    OrderStatus.PAID: ("Paid", "neutral"),
    OrderStatus.PREPARING: ("Preparing", "info"),
    OrderStatus.READY: ("Ready", "info"),
    OrderStatus.ASSIGNED: ("Assigned", "accent"),
    OrderStatus.PICKUP: ("Pickup", "secondary"),
    OrderStatus.PICKED_UP: ("Pickup", "secondary"),
    OrderStatus.DELIVERED: ("Delivered", "success"),
}

_COLORS: Dict[OrderStatus, str] = {
    OrderStatus.PENDING: "#f39c12",
    OrderStatus.ACCEPTED: "#3498db",
    OrderStatus.REJECTED: "#e74c3c",
    OrderStatus.PAID: "#2ecc71",
    OrderStatus.PREPARING: "#f1c40f",
    OrderStatus.READY: "#27ae60",
    OrderStatus.ASSIGNED: "#3498db",
    OrderStatus.PICKUP: "#9b59b6",
    OrderStatus.PICKED_UP: "#9b59b6",
    OrderStatus.DELIVERED: "#2ecc71",
}
DEFAULT_COLOR = "#6c757d"

_DESCRIPTIONS: Dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Your order has been placed and is pending acceptance",
    OrderStatus.ACCEPTED: "Your order has been accepted by the restaurant",
    OrderStatus.REJECTED: "Your order has been rejected by the restaurant",
    OrderStatus.PAID: "Your payment has been received",
    OrderStatus.PREPARING: "The restaurant is preparing your order",
    OrderStatus.READY: "Your order is ready for pickup",
    OrderStatus.ASSIGNED: "A delivery person has been assigned to your order",
    OrderStatus.PICKUP: "Your order has been picked up and is on the way",
    OrderStatus.PICKED_UP: "Your order has been picked up and is on the way",
    OrderStatus.DELIVERED: "Your order has been delivered",
}
DEFAULT_DESCRIPTION = "Tracking your order"


def status_badge(status: StatusLike) -> Tuple[str, str]:
    """(text, css class) for a status badge. Unknown statuses show the raw text."""
    badge = _BADGES.get(_parse(status))
    if badge is not None:
        return badge
    return (str(status or ""), "ghost")


def status_color(status: StatusLike) -> str:
    return _COLORS.get(_parse(status), DEFAULT_COLOR)


def status_description(status: StatusLike) -> str:
    return _DESCRIPTIONS.get(_parse(status), DEFAULT_DESCRIPTION)


def should_poll(status: Optional[StatusLike]) -> bool:
    """True while the order is on the way and worth refreshing periodically."""
    parsed = _parse(status)
    return parsed.value in config.POLLING_STATUSES
