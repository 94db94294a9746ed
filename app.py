"""
Delivery Tracking - Live Dashboard
==================================

Streamlit dashboard for following food deliveries on a map.

Features:
- Customer view: order status, 4-step progress, live ETA and route
- Delivery person view: nearby orders ranked by distance, claiming orders,
  advancing my orders through pickup and delivery
- Fallback summary when the map cannot be shown
- Polling every minute while an order is on the way
"""

import streamlit as st
import pandas as pd
from typing import List, Optional

from delivery_tracking import config
from delivery_tracking.errors import ApiError, AssignmentConflict, UnknownOrder
from delivery_tracking.geolocation import FixedPosition, IpGeolocation
from delivery_tracking.nearby import NearbyOrdersFlow, filter_orders
from delivery_tracking.rendering import MapContext, MapState
from delivery_tracking.status import ProgressIndicator, status_badge, status_color
from delivery_tracking.tracking import TrackingOrchestrator
from delivery_tracking.utils import format_time_duration

# =============================================================================
# PAGE CONFIG
# =============================================================================

st.set_page_config(
    page_title="Delivery Tracking",
    page_icon="🛵",
    layout="wide",
    initial_sidebar_state="expanded"
)

# =============================================================================
# CUSTOM STYLING
# =============================================================================

st.markdown("""
<style>
    .main .block-container {
        padding-top: 2rem;
        padding-bottom: 2rem;
    }

    /* Status badges */
    .badge {
        display: inline-block;
        padding: 0.2rem 0.75rem;
        border-radius: 999px;
        font-size: 0.85rem;
        font-weight: 700;
        color: white;
    }
    .badge.ghost {
        background: transparent !important;
        color: #6c757d;
        border: 1px solid #6c757d;
    }

    /* Progress bar */
    .progress-track {
        background: #e9ecef;
        border-radius: 999px;
        height: 10px;
        margin: 1rem 0 0.5rem 0;
        overflow: hidden;
    }
    .progress-fill {
        height: 100%;
        border-radius: 999px;
        background: linear-gradient(135deg, #11998e 0%, #38ef7d 100%);
    }
    .progress-fill.rejected {
        background: #e74c3c;
    }
    .steps {
        display: flex;
        justify-content: space-between;
        font-size: 0.85rem;
    }
    .step.done { color: #11998e; font-weight: 700; }
    .step.disabled { color: #ced4da; text-decoration: line-through; }

    /* Summary card shown instead of the map */
    .summary-card {
        background: linear-gradient(135deg, #f5f7fa 0%, #c3cfe2 100%);
        border-radius: 16px;
        padding: 1.5rem;
        color: #1a1a2e;
    }

    .section-header {
        font-size: 1.5rem;
        font-weight: 700;
        color: #1a1a2e;
        margin: 1.5rem 0 1rem 0;
        padding-bottom: 0.5rem;
        border-bottom: 3px solid #3887be;
    }

    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}
</style>
""", unsafe_allow_html=True)

TRACKING_KEY = "tracking_view"
NEARBY_KEY = "nearby_view"

# =============================================================================
# HTML FRAGMENTS
# =============================================================================

def badge_html(status: str) -> str:
    text, css_class = status_badge(status)
    return f'<span class="badge {css_class}" style="background:{status_color(status)};">{text}</span>'


def progress_html(progress: ProgressIndicator) -> str:
    fill_class = "progress-fill rejected" if progress.rejected else "progress-fill"
    steps = []
    for step in progress.steps:
        css = "step"
        if step.disabled:
            css += " disabled"
        elif step.done:
            css += " done"
        steps.append(f'<span class="{css}">{step.label}</span>')
    return (
        f'<div class="progress-track"><div class="{fill_class}" style="width:{progress.bar_width:.0f}%;"></div></div>'
        f'<div class="steps">{"".join(steps)}</div>'
    )


def show_map(context: MapContext, on_loaded=None, on_error=None) -> bool:
    """
    Draw a context's map. Reports the outcome through the callbacks.

    Returns:
        True if a map was displayed
    """
    if context.lifecycle.is_failed:
        return False
    deck = context.render()
    if deck is None:
        if on_error:
            on_error(context.lifecycle.error or "Map rendering failed")
        return False
    if context.lifecycle.state is MapState.INITIALIZING and on_loaded:
        on_loaded()
        # Markers and route are placed on load; build again to include them
        deck = context.render()
        if deck is None:
            return False
    try:
        st.pydeck_chart(deck, use_container_width=True)
    except Exception as e:
        if on_error:
            on_error(str(e))
        return False
    return True


# =============================================================================
# SIDEBAR
# =============================================================================

def render_sidebar() -> str:
    """Render the sidebar and return the selected view."""
    st.sidebar.markdown("## 🎛️ Configuration")
    st.sidebar.markdown("---")

    view = st.sidebar.radio("View", ["Track an order", "Nearby orders"], index=0)

    st.sidebar.markdown("### 🗺️ Map")
    token = st.sidebar.text_input(
        "Map access token",
        value=config.MAPBOX_TOKEN,
        type="password",
        help="Needed for the map and for routing. Without it views show a summary instead.",
    )
    config.MAPBOX_TOKEN = token.strip()

    st.sidebar.markdown("### ⏱️ Refresh")
    poll = st.sidebar.slider(
        "Poll interval (seconds)",
        min_value=15,
        max_value=300,
        value=int(config.POLL_INTERVAL_SECONDS),
        step=15,
        help="How often an order on the way is refreshed",
    )
    config.POLL_INTERVAL_SECONDS = float(poll)

    st.sidebar.markdown("---")
    st.sidebar.markdown("### 📖 About")
    st.sidebar.info("""
    **Track an order**: live status, ETA and route
    for one order.

    **Nearby orders**: orders around a delivery
    person, nearest first. Claim and deliver them.
    """)
    return view


# =============================================================================
# CUSTOMER TRACKING VIEW
# =============================================================================

def get_tracking(order_id: str) -> TrackingOrchestrator:
    """One orchestrator per tracked order, kept across reruns."""
    current: Optional[TrackingOrchestrator] = st.session_state.get(TRACKING_KEY)
    if current is not None and current.order_id == order_id and current.context.token == config.MAPBOX_TOKEN:
        return current
    if current is not None:
        current.unmount()
    orchestrator = TrackingOrchestrator(order_id, context=MapContext(token=config.MAPBOX_TOKEN))
    orchestrator.mount()
    st.session_state[TRACKING_KEY] = orchestrator
    return orchestrator


def render_fallback_summary(orchestrator: TrackingOrchestrator) -> None:
    summary = orchestrator.fallback_summary()
    eta = format_time_duration(summary.eta_minutes) if summary.eta_minutes is not None else "—"
    dp = summary.delivery_person_name + (" (approximate)" if summary.approximate_position else "")
    st.markdown(f"""
    <div class="summary-card">
        <p><strong>🍽️ Restaurant:</strong> {summary.restaurant_name}</p>
        <p><strong>🏠 Customer:</strong> {summary.customer_name}</p>
        <p><strong>🛵 Delivery person:</strong> {dp}</p>
        <p><strong>⏱️ ETA:</strong> {eta}</p>
    </div>
    """, unsafe_allow_html=True)


@st.fragment(run_every=config.TICK_SECONDS)
def render_tracking_view(order_id: str) -> None:
    orchestrator = get_tracking(order_id)
    orchestrator.tick()

    if orchestrator.error_banner:
        st.error(orchestrator.error_banner)
    if orchestrator.order is None:
        if orchestrator.loading:
            st.info("Loading order...")
        elif st.button("🔄 Retry", key="retry-order"):
            orchestrator.refresh()
            st.rerun()
        return

    order = orchestrator.order
    progress = orchestrator.progress
    col1, col2 = st.columns([2, 1])
    with col1:
        st.markdown(
            f"### Order {order.ref_no or order.order_id} &nbsp; {badge_html(order.raw_status)}",
            unsafe_allow_html=True,
        )
        st.markdown(progress_html(progress), unsafe_allow_html=True)
    with col2:
        if progress.show_eta:
            eta = orchestrator.eta_minutes
            st.metric("ETA", format_time_duration(eta) if eta is not None else "—")
        if orchestrator.is_polling:
            st.caption(f"Refreshing every {config.POLL_INTERVAL_SECONDS:.0f}s")

    st.markdown('<div class="section-header">🗺️ Live Map</div>', unsafe_allow_html=True)
    lifecycle = orchestrator.context.lifecycle
    if orchestrator.show_fallback:
        st.warning(lifecycle.error)
        render_fallback_summary(orchestrator)
        if lifecycle.state is MapState.TIMED_OUT or config.MAPBOX_TOKEN:
            if st.button("🔁 Retry map", key="retry-map"):
                orchestrator.retry_map()
                st.rerun()
    else:
        show_map(orchestrator.context, on_loaded=orchestrator.mark_map_loaded, on_error=orchestrator.mark_map_error)

    if orchestrator.route_error:
        st.warning(f"Route unavailable: {orchestrator.route_error}")

    c1, c2 = st.columns(2)
    with c1:
        if st.button("🔄 Refresh", key="refresh-order"):
            orchestrator.refresh()
            st.rerun()
    with c2:
        if st.button("🧭 Navigation", key="navigate"):
            orchestrator.navigate()
            st.rerun()

    if order.items:
        st.markdown('<div class="section-header">🧾 Items</div>', unsafe_allow_html=True)
        items = pd.DataFrame(
            [{"Item": i.name, "Qty": i.quantity, "Price": i.price} for i in order.items]
        )
        st.dataframe(items, use_container_width=True, hide_index=True)
        st.markdown(f"**Total:** {order.total_amount:.2f}")


# =============================================================================
# DELIVERY PERSON VIEW
# =============================================================================

def get_nearby(delivery_person_id: str) -> NearbyOrdersFlow:
    current: Optional[NearbyOrdersFlow] = st.session_state.get(NEARBY_KEY)
    if current is not None and current.delivery_person_id == delivery_person_id:
        return current
    if current is not None:
        current.stop()
    flow = NearbyOrdersFlow(delivery_person_id, context=MapContext(token=config.MAPBOX_TOKEN))
    st.session_state[NEARBY_KEY] = flow
    return flow


def candidates_frame(candidates) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "Order": c.ref_no,
            "Restaurant": c.restaurant_name,
            "Customer": c.customer_name,
            "Address": c.delivery_address,
            "Status": status_badge(c.status.value)[0],
            "Distance (km)": c.distance_km,
            "Total": round(c.total_amount, 2),
        }
        for c in candidates
    ])


def orders_frame(orders) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "Order": o.ref_no or o.order_id,
            "Restaurant": o.restaurant_name,
            "Customer": o.customer_name,
            "Address": o.delivery_address,
            "Status": status_badge(o.raw_status)[0],
        }
        for o in orders
    ])


def render_nearby_view(delivery_person_id: str) -> None:
    flow = get_nearby(delivery_person_id)

    col1, col2, col3 = st.columns([1, 1, 1])
    with col1:
        locate = st.selectbox("Position", ["Default location", "IP geolocation", "Manual"], index=0)
    lat = lng = None
    if locate == "Manual":
        with col2:
            lat = st.number_input("Latitude", value=config.DEFAULT_POSITION[0], format="%.6f")
        with col3:
            lng = st.number_input("Longitude", value=config.DEFAULT_POSITION[1], format="%.6f")
        flow.provider = FixedPosition(lat, lng)
    elif locate == "IP geolocation":
        flow.provider = IpGeolocation()
    else:
        flow.provider = None

    if st.button("📍 Find nearby orders", key="fetch-nearby"):
        with st.spinner("Searching nearby orders..."):
            flow.refresh()
        flow.start_polling()

    flow.timers.run_due()
    if flow.error_banner:
        st.error(flow.error_banner)
    if flow.position_is_fallback and flow.nearby:
        st.info("Couldn't get your location, showing orders around the default location.")

    st.markdown('<div class="section-header">🗺️ Nearby Orders</div>', unsafe_allow_html=True)
    if flow.context.token:
        flow.context.fit_to_points()
        if flow.context.lifecycle.state is MapState.UNINITIALIZED:
            flow.context.lifecycle.begin(flow.timers.clock())
        show_map(flow.context, on_loaded=flow.context.lifecycle.mark_loaded, on_error=flow.context.lifecycle.mark_error)
    else:
        st.warning("Map access token is missing. Showing the list only.")

    f1, f2 = st.columns([1, 2])
    with f1:
        status = st.selectbox("Status", ["all", "pending", "accepted", "paid", "preparing", "ready", "assigned", "picked_up"])
    with f2:
        search = st.text_input("Search", placeholder="Ref no, restaurant, customer or address")

    visible = filter_orders(flow.nearby, status, search)
    if not visible:
        st.caption("No orders found nearby")
    else:
        st.dataframe(candidates_frame(visible), use_container_width=True, hide_index=True)
        claimable = [c for c in visible if not c.is_claimed]
        if claimable:
            labels = {f"{c.ref_no} · {c.restaurant_name} · {c.distance_km} km": c.order_id for c in claimable}
            choice = st.selectbox("Order to claim", list(labels.keys()))
            if st.button("✅ Assign to me", key="assign"):
                try:
                    flow.assign(labels[choice])
                    st.success("Order assigned successfully!")
                except (AssignmentConflict, UnknownOrder) as e:
                    st.error(str(e))
                except ApiError as e:
                    st.error(e.message)

    st.markdown('<div class="section-header">📦 My Orders</div>', unsafe_allow_html=True)
    if st.button("🔄 Refresh my orders", key="fetch-mine"):
        flow.fetch_my_orders()
    mine = filter_orders(flow.my_orders, status, search)
    if not mine:
        st.caption("No active orders")
        return
    st.dataframe(orders_frame(mine), use_container_width=True, hide_index=True)

    labels = {f"{o.ref_no or o.order_id} · {status_badge(o.raw_status)[0]}": o.order_id for o in mine}
    u1, u2, u3 = st.columns([2, 1, 1])
    with u1:
        choice = st.selectbox("Order", list(labels.keys()), key="my-order")
    with u2:
        if st.button("📦 Picked up", key="picked-up"):
            _update_status(flow, labels[choice], "picked_up")
    with u3:
        if st.button("🏁 Delivered", key="delivered"):
            _update_status(flow, labels[choice], "delivered")


def _update_status(flow: NearbyOrdersFlow, order_id: str, status: str) -> None:
    try:
        flow.update_status(order_id, status)
        st.rerun()
    except UnknownOrder as e:
        st.error(str(e))
    except ApiError as e:
        st.error(f"Status update failed: {e.message}")


# =============================================================================
# MAIN APPLICATION
# =============================================================================

def reset_views(keys: List[str]) -> None:
    for key in keys:
        view = st.session_state.pop(key, None)
        if isinstance(view, TrackingOrchestrator):
            view.unmount()
        elif isinstance(view, NearbyOrdersFlow):
            view.stop()
        if view is not None:
            view.timers.clear_all()


def main():
    """Main application entry point."""

    st.markdown("""
    <div style="text-align: center; padding: 1rem 0 1.5rem 0;">
        <h1 style="font-size: 2.6rem; font-weight: 800; color: #1a1a2e; margin-bottom: 0.5rem;">
            🛵 Delivery Tracking
        </h1>
        <p style="font-size: 1.1rem; color: #666;">Follow orders from the kitchen to the door</p>
    </div>
    """, unsafe_allow_html=True)

    view = render_sidebar()

    # Page-level boundary: a failing view never takes the page down
    try:
        if view == "Track an order":
            order_id = st.text_input("Order ID", value=st.session_state.get("order_id", ""))
            if not order_id:
                st.info("Enter an order ID to start tracking.")
                return
            st.session_state["order_id"] = order_id
            render_tracking_view(order_id.strip())
        else:
            dp_id = st.text_input("Delivery person ID", value=st.session_state.get("dp_id", ""))
            if not dp_id:
                st.info("Enter your delivery person ID to see nearby orders.")
                return
            st.session_state["dp_id"] = dp_id
            render_nearby_view(dp_id.strip())
    except Exception as e:
        st.error("Something went wrong while showing this view.")
        st.exception(e)
        if st.button("Reset view", key="reset-view"):
            reset_views([TRACKING_KEY, NEARBY_KEY])
            st.rerun()

    st.markdown("---")
    st.markdown("""
    <div style="text-align: center; color: #888; padding: 1rem;">
        Delivery Tracking | Live order map
    </div>
    """, unsafe_allow_html=True)


if __name__ == "__main__":
    main()
