#!/usr/bin/env python3
# delivery-tracking/main.py
"""
Command-Line Interface for the delivery tracking client.

Runs the tracking and nearby-order flows without the dashboard, e.g. from a
terminal or a cron job. Maps can be written to standalone HTML files.

Usage:
    python main.py track ORDER_ID                  # Status, progress, ETA
    python main.py track ORDER_ID --watch          # Keep polling while on the way
    python main.py track ORDER_ID --html map.html  # Also write the map
    python main.py nearby DP_ID --lat 6.91 --lng 79.97
    python main.py assign DP_ID ORDER_ID
    python main.py status DP_ID ORDER_ID picked_up
    python main.py route 79.8612,6.9271 79.88,6.9

Exit Codes:
    0: Success
    1: Invalid input or configuration
    2: Service error
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import List, Optional

from delivery_tracking import config
from delivery_tracking.api import ServiceClient
from delivery_tracking.coordinates import require_coordinates
from delivery_tracking.errors import (
    ApiError,
    AssignmentConflict,
    ConfigurationError,
    InvalidLocationData,
    InvalidWaypoints,
    NoRouteFound,
    UnknownOrder,
)
from delivery_tracking.geolocation import FixedPosition, IpGeolocation
from delivery_tracking.nearby import NearbyOrdersFlow, filter_orders
from delivery_tracking.rendering import MapContext
from delivery_tracking.routing import RouteResolver
from delivery_tracking.status import status_badge
from delivery_tracking.tracking import TrackingOrchestrator
from delivery_tracking.utils import format_time_duration

EXIT_OK = 0
EXIT_INPUT = 1
EXIT_SERVICE = 2

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def print_header(title: str) -> None:
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60 + "\n")


def print_progress(orchestrator: TrackingOrchestrator) -> None:
    """Print the progress bar and steps for a tracked order."""
    progress = orchestrator.progress
    filled = int(round(progress.bar_width / 100 * 30))
    print(f"  [{'#' * filled}{'.' * (30 - filled)}] {progress.bar_width:.0f}%")
    for step in progress.steps:
        if step.disabled:
            mark = "x"
        elif step.done:
            mark = "*"
        else:
            mark = " "
        print(f"   ({mark}) {step.label}")


def print_tracking(orchestrator: TrackingOrchestrator) -> None:
    summary = orchestrator.fallback_summary()
    text, _ = status_badge(summary.status)
    print(f"Order:           {summary.order_id}")
    print(f"Status:          {text} - {summary.description}")
    print(f"Restaurant:      {summary.restaurant_name}")
    print(f"Customer:        {summary.customer_name}")
    dp = summary.delivery_person_name
    if summary.approximate_position:
        dp += " (approximate position)"
    print(f"Delivery person: {dp}")
    if orchestrator.progress.show_eta:
        eta = format_time_duration(summary.eta_minutes) if summary.eta_minutes is not None else "unavailable"
        print(f"ETA:             {eta}")
    print()
    print_progress(orchestrator)

    if orchestrator.error_banner:
        print(f"\nWARN: {orchestrator.error_banner}")
    if orchestrator.route_error:
        print(f"WARN: Route unavailable: {orchestrator.route_error}")
    if orchestrator.show_fallback:
        print(f"WARN: {orchestrator.context.lifecycle.error}")


def print_candidates(flow: NearbyOrdersFlow, candidates) -> None:
    if not candidates:
        print("No orders found nearby")
        return
    print(f"| {'Order':<12} | {'Restaurant':<20} | {'Customer':<15} | {'Status':<10} | {'Km':>5} |")
    print("|" + "-" * 14 + "|" + "-" * 22 + "|" + "-" * 17 + "|" + "-" * 12 + "|" + "-" * 7 + "|")
    for c in candidates:
        text, _ = status_badge(c.status.value)
        print(
            f"| {c.ref_no[:12]:<12} | {c.restaurant_name[:20]:<20} | {c.customer_name[:15]:<15} "
            f"| {text:<10} | {c.distance_km:>5.1f} |"
        )


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_track(args: argparse.Namespace) -> int:
    context = MapContext()
    orchestrator = TrackingOrchestrator(
        args.order_id,
        client=ServiceClient(),
        resolver=RouteResolver(),
        context=context,
        delivery_person_id=args.delivery_person,
    )
    orchestrator.mount()
    if orchestrator.order is None:
        print(f"ERROR: {orchestrator.error_banner or 'Order could not be loaded'}")
        orchestrator.unmount()
        return EXIT_SERVICE

    # No browser here: the map counts as loaded once the deck can be built
    if not orchestrator.show_fallback:
        orchestrator.mark_map_loaded()

    print_header(f"Tracking order {args.order_id}")
    print_tracking(orchestrator)

    if args.html and not orchestrator.show_fallback:
        if context.to_html(args.html):
            print(f"\nMap written to {args.html}")

    try:
        while args.watch and orchestrator.is_polling:
            time.sleep(config.TICK_SECONDS)
            if orchestrator.tick():
                print("\n" + "-" * 40)
                print_tracking(orchestrator)
    except KeyboardInterrupt:
        print("\nStopped.")
    finally:
        orchestrator.unmount()
    return EXIT_OK


def _position_provider(args: argparse.Namespace):
    if args.lat is not None and args.lng is not None:
        return FixedPosition(args.lat, args.lng)
    if args.ip_geolocation:
        return IpGeolocation()
    return None


def cmd_nearby(args: argparse.Namespace) -> int:
    flow = NearbyOrdersFlow(args.delivery_person_id, provider=_position_provider(args))
    candidates = flow.fetch_nearby()
    if flow.error_banner:
        print(f"ERROR: {flow.error_banner}")
        return EXIT_SERVICE

    lat, lng = flow.position
    source = "default location" if flow.position_is_fallback else "current location"
    print_header(f"Nearby orders around ({lat:.5f}, {lng:.5f}) [{source}]")
    print_candidates(flow, filter_orders(candidates, args.status, args.search))

    if args.html:
        flow.context.fit_to_points()
        if flow.context.to_html(args.html):
            print(f"\nMap written to {args.html}")
    return EXIT_OK


def cmd_assign(args: argparse.Namespace) -> int:
    flow = NearbyOrdersFlow(args.delivery_person_id, provider=_position_provider(args))
    flow.fetch_nearby()
    try:
        order = flow.assign(args.order_id)
    except (AssignmentConflict, UnknownOrder, ConfigurationError) as e:
        print(f"ERROR: {e}")
        return EXIT_INPUT
    except ApiError as e:
        print(f"ERROR: {e.message}")
        return EXIT_SERVICE
    print(f"Order {order.ref_no or order.order_id} assigned successfully!")
    return EXIT_OK


def cmd_status(args: argparse.Namespace) -> int:
    flow = NearbyOrdersFlow(args.delivery_person_id)
    flow.fetch_my_orders()
    try:
        order = flow.update_status(args.order_id, args.new_status)
    except UnknownOrder as e:
        print(f"ERROR: {e}")
        return EXIT_INPUT
    except ApiError as e:
        print(f"ERROR: {e.message}")
        return EXIT_SERVICE
    text, _ = status_badge(order.raw_status)
    print(f"Order {order.ref_no or order.order_id} is now {text}")
    return EXIT_OK


def cmd_route(args: argparse.Namespace) -> int:
    try:
        waypoints = [require_coordinates(_parse_pair(w), f"waypoint {w}") for w in args.waypoints]
        route = RouteResolver().compute_route(waypoints, args.profile)
    except (InvalidLocationData, InvalidWaypoints, ConfigurationError) as e:
        print(f"ERROR: {e}")
        return EXIT_INPUT
    except NoRouteFound as e:
        print(f"ERROR: {e}")
        return EXIT_SERVICE
    print(f"Distance: {route.distance_km} km")
    print(f"ETA:      {format_time_duration(route.duration_minutes)}")
    print(f"Points:   {len(route.geometry)}")
    return EXIT_OK


def _parse_pair(text: str) -> Optional[List[str]]:
    parts = text.split(",")
    return parts if len(parts) == 2 else None


# =============================================================================
# ENTRY POINT
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Delivery tracking client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py track 661f0c2e --watch            # Follow an order until it arrives
  python main.py nearby dp-42 --ip-geolocation     # Orders around my IP location
  python main.py route 79.8612,6.9271 79.88,6.9    # lng,lat waypoints
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    track = sub.add_parser("track", help="Track one order")
    track.add_argument("order_id")
    track.add_argument("--delivery-person", help="Delivery person id if the order has none yet")
    track.add_argument("--watch", action="store_true", help="Keep refreshing while the order is on the way")
    track.add_argument("--html", help="Write the map to this HTML file")
    track.set_defaults(func=cmd_track)

    def add_position(p: argparse.ArgumentParser) -> None:
        p.add_argument("--lat", type=float, help="Current latitude")
        p.add_argument("--lng", type=float, help="Current longitude")
        p.add_argument("--ip-geolocation", action="store_true", help="Locate by IP address")

    nearby = sub.add_parser("nearby", help="List orders near a delivery person")
    nearby.add_argument("delivery_person_id")
    add_position(nearby)
    nearby.add_argument("--status", default="all", help="Filter by status")
    nearby.add_argument("--search", default="", help="Search ref no, restaurant, customer or address")
    nearby.add_argument("--html", help="Write the map to this HTML file")
    nearby.set_defaults(func=cmd_nearby)

    assign = sub.add_parser("assign", help="Claim a nearby order")
    assign.add_argument("delivery_person_id")
    assign.add_argument("order_id")
    add_position(assign)
    assign.set_defaults(func=cmd_assign)

    status = sub.add_parser("status", help="Update the status of one of my orders")
    status.add_argument("delivery_person_id")
    status.add_argument("order_id")
    status.add_argument("new_status", choices=["assigned", "picked_up", "delivered"])
    status.set_defaults(func=cmd_status)

    route = sub.add_parser("route", help="Compute a route through lng,lat waypoints")
    route.add_argument("waypoints", nargs="+")
    route.add_argument("--profile", default=config.DIRECTIONS_PROFILE, help="Routing profile")
    route.set_defaults(func=cmd_route)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
