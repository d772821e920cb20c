import sys
from datetime import date, time as day_time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pandas as pd
import plotly.graph_objects as go
import streamlit as st
from streamlit_autorefresh import st_autorefresh

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from api_client import ApiClientError, VehicleHealthClient, readings_frame, with_vehicle_models  # noqa: E402

STATUS_COLORS = {
    "Excellent": "#00cc66",
    "Good": "#66cc00",
    "Fair": "#ffaa00",
    "Poor": "#ff3333",
}
ALERT_ICONS = {"critical": "🔴", "warning": "🟠", "info": "🔵"}
WINDOW_OPTIONS = {"Last 6 hours": 6, "Last 24 hours": 24, "Last 48 hours": 48}
FUEL_TYPES = ["Petrol", "Diesel", "Hybrid", "Electric"]

SERVICE_TYPES = [
    "Regular Maintenance",
    "Oil Change",
    "Brake Service",
    "Battery Replacement",
    "Tire Rotation",
    "Engine Diagnostic",
    "AC Service",
]
SERVICE_CENTERS = [
    "AutoCare Plus",
    "Quick Service Hub",
    "Premium Motors",
    "City Auto Service",
    "Express Care",
]
# status -> (button label, new status)
APPOINTMENT_ACTIONS = {
    "Scheduled": [("Confirm", "Confirmed"), ("Cancel", "Cancelled")],
    "Confirmed": [("Mark complete", "Completed"), ("Cancel", "Cancelled")],
}


st.set_page_config(layout="wide", page_title="Vehicle Health Dashboard")

if "refresh_ttl" not in st.session_state:
    st.session_state.refresh_ttl = 10

REFRESH_TTL = max(2, int(st.session_state.refresh_ttl))


def client_for(base_url: str, api_key: str) -> VehicleHealthClient:
    return VehicleHealthClient(base_url, api_key=api_key or None)


@st.cache_data(ttl=REFRESH_TTL, show_spinner=False)
def load_fleet(base_url: str, api_key: str) -> Dict[str, Any]:
    client = client_for(base_url, api_key)
    return {
        "vehicles": client.list_vehicles(),
        "summary": client.vehicle_summary(),
        "alert_counts": client.alert_counts(),
    }


@st.cache_data(ttl=REFRESH_TTL, show_spinner=False)
def load_vehicle(base_url: str, api_key: str, vehicle_id: int, hours: int) -> Dict[str, Any]:
    client = client_for(base_url, api_key)
    return {
        "health": client.vehicle_health(vehicle_id, hours=hours),
        "readings": client.get_readings(vehicle_id, hours=hours),
        "stats": client.sensor_stats(vehicle_id),
    }


@st.cache_data(ttl=REFRESH_TTL, show_spinner=False)
def load_alerts(base_url: str, api_key: str, unread_only: bool) -> List[Dict[str, Any]]:
    return client_for(base_url, api_key).list_alerts(unread_only=unread_only)


@st.cache_data(ttl=60, show_spinner=False)
def load_appointments(base_url: str, api_key: str) -> List[Dict[str, Any]]:
    return client_for(base_url, api_key).list_appointments()


def run_action(action: Callable[[], Any], success: str) -> None:
    """Call the API, then drop cached data and redraw; errors stay on screen."""

    try:
        action()
    except ApiClientError as error:
        st.error(str(error))
        return
    for loader in (load_fleet, load_vehicle, load_alerts, load_appointments):
        loader.clear()
    st.toast(success)
    st.rerun()


def health_gauge(score: float, status: str, title: str) -> go.Figure:
    fig = go.Figure(
        go.Indicator(
            mode="gauge+number",
            value=score,
            title={"text": f"{title}<br><span style='font-size:14px'>{status}</span>", "font": {"size": 18}},
            number={"font": {"size": 32}},
            gauge={
                "axis": {"range": [0, 100], "tickwidth": 2},
                "bar": {"color": STATUS_COLORS.get(status, "#888888"), "thickness": 0.8},
                "borderwidth": 2,
                "steps": [
                    {"range": [0, 50], "color": "rgba(255, 0, 0, 0.2)"},
                    {"range": [50, 70], "color": "rgba(255, 165, 0, 0.2)"},
                    {"range": [70, 90], "color": "rgba(255, 255, 0, 0.2)"},
                    {"range": [90, 100], "color": "rgba(0, 255, 0, 0.2)"},
                ],
            },
        )
    )
    fig.update_layout(height=250, margin=dict(l=20, r=20, t=60, b=10), paper_bgcolor="rgba(0,0,0,0)")
    return fig


def sensor_chart(frame: pd.DataFrame, column: str, title: str, color: str, threshold: Optional[float] = None) -> go.Figure:
    fig = go.Figure()
    fig.add_trace(
        go.Scatter(x=frame.index, y=frame[column], mode="lines", name=title, line=dict(color=color, width=2))
    )
    if threshold is not None:
        fig.add_hline(y=threshold, line=dict(color="red", dash="dash", width=1))
    fig.update_layout(
        title=title,
        height=220,
        showlegend=False,
        paper_bgcolor="rgba(0,0,0,0)",
        plot_bgcolor="rgba(0,0,0,0.05)",
        margin=dict(l=40, r=20, t=40, b=30),
    )
    return fig


def vehicle_form(client: VehicleHealthClient) -> None:
    with st.expander("➕ Register a vehicle"):
        with st.form("register_vehicle", clear_on_submit=True):
            model = st.text_input("Model", placeholder="Honda Civic")
            engine_cc = st.number_input("Engine (cc)", min_value=50, value=1500, step=100)
            fuel_type = st.selectbox("Fuel type", FUEL_TYPES)
            odometer = st.number_input("Odometer (km)", min_value=0, value=0, step=1000)
            last_service = st.date_input("Last service", value=date.today())
            submitted = st.form_submit_button("Register")

        if submitted:
            if not model.strip():
                st.warning("Model is required.")
            else:
                run_action(
                    lambda: client.create_vehicle(
                        model=model.strip(),
                        engine_cc=int(engine_cc),
                        fuel_type=fuel_type,
                        odometer=float(odometer),
                        last_service=last_service.isoformat(),
                    ),
                    f"{model.strip()} registered.",
                )


def booking_form(client: VehicleHealthClient, vehicles: List[Dict[str, Any]]) -> None:
    with st.expander("📅 Book a service"):
        with st.form("book_appointment", clear_on_submit=True):
            labels = {f"{v['model']} (#{v['id']})": v for v in vehicles}
            vehicle_label = st.selectbox("Vehicle", list(labels))
            service = st.selectbox("Service type", SERVICE_TYPES)
            when = st.date_input("Date", value=date.today())
            at = st.time_input("Time", value=day_time(10, 0))
            center = st.selectbox("Service center", SERVICE_CENTERS)
            submitted = st.form_submit_button("Book")

        if submitted:
            vehicle = labels[vehicle_label]
            run_action(
                lambda: client.book_appointment(
                    vehicle_id=vehicle["id"],
                    vehicle=vehicle["model"],
                    service=service,
                    date=when.isoformat(),
                    time=at.strftime("%H:%M"),
                    center=center,
                ),
                f"{service} booked for {vehicle['model']}.",
            )


st.sidebar.header("Connection Settings")
base_url = st.sidebar.text_input("Base API URL", "http://127.0.0.1:8000")
api_key = st.sidebar.text_input("API key", type="password", help="Printed by `python main.py --seed`.")
refresh_rate = st.sidebar.number_input("Refresh Rate (seconds)", min_value=2, value=10, step=1)
st.session_state.refresh_ttl = max(2, int(refresh_rate))

if st.sidebar.button("Check /health"):
    try:
        info = client_for(base_url, api_key).health()
        st.sidebar.success(f"API is reachable ({info.get('status', 'ok')}).")
    except ApiClientError as error:
        st.sidebar.error(f"Connection failed: {error}")

st_autorefresh(interval=max(int(refresh_rate * 1000), 2000), key="refresh")

st.title("🚗 Vehicle Health Dashboard")

if not api_key:
    st.info("Enter an API key in the sidebar to load your vehicles.")
    st.stop()

client = client_for(base_url, api_key)

try:
    fleet = load_fleet(base_url, api_key)
except ApiClientError as error:
    st.error(str(error))
    st.stop()

summary = fleet["summary"]
counts = fleet["alert_counts"]

col_total, col_avg, col_unread, col_critical = st.columns(4)
col_total.metric("Vehicles", summary["total_vehicles"])
col_avg.metric("Average health", summary["avg_health_score"])
col_unread.metric("Unread alerts", counts["unread"])
col_critical.metric("Critical alerts", counts["critical"])

distribution = summary["health_distribution"]
st.bar_chart(pd.Series(distribution, name="vehicles"), height=180)

vehicle_form(client)

vehicles = fleet["vehicles"]
if not vehicles:
    st.warning("No vehicles yet. Register one above or run `python main.py --seed`.")
    st.stop()

labels = {f"{v['model']} (#{v['id']})": v for v in vehicles}
selected = labels[st.selectbox("Vehicle", list(labels))]
window_label = st.selectbox("Time range", list(WINDOW_OPTIONS), index=1)
hours = WINDOW_OPTIONS[window_label]

try:
    detail = load_vehicle(base_url, api_key, selected["id"], hours)
except ApiClientError as error:
    st.error(str(error))
    st.stop()

health = detail["health"]
gauge_current, gauge_window, facts = st.columns(3)
with gauge_current:
    st.plotly_chart(
        health_gauge(health["current_score"], health["current_status"], "Current health"),
        use_container_width=True,
    )
with gauge_window:
    st.plotly_chart(
        health_gauge(health["window_score"], health["window_status"], f"{window_label} average"),
        use_container_width=True,
    )
with facts:
    stats = detail["stats"]
    st.markdown(f"**Fuel type:** {selected['fuel_type']}  \n**Engine:** {selected['engine_cc']} cc")
    st.markdown(f"**Odometer:** {selected['odometer']:,} km  \n**Last service:** {selected['last_service']}")
    st.caption(f"{stats['readings_analyzed']} readings in the last 24h")
    st.metric("Avg battery (V)", stats["avg_battery"])
    st.metric("Avg efficiency (km/l)", stats["avg_fuel_efficiency"])

    confirm_delete = st.checkbox("Confirm removal", key=f"confirm-delete-{selected['id']}")
    if st.button("🗑️ Remove vehicle", disabled=not confirm_delete):
        run_action(lambda: client.delete_vehicle(selected["id"]), f"{selected['model']} removed.")

frame = readings_frame(detail["readings"])
st.markdown("### Sensor history")
if frame.empty:
    st.caption("No readings in this time range.")
else:
    chart_left, chart_right = st.columns(2)
    with chart_left:
        st.plotly_chart(sensor_chart(frame, "temperature", "Temperature (°C)", "#ff6600", 100), use_container_width=True)
        st.plotly_chart(sensor_chart(frame, "rpm", "RPM", "#00aaff"), use_container_width=True)
    with chart_right:
        st.plotly_chart(sensor_chart(frame, "battery", "Battery (V)", "#33cc33", 12), use_container_width=True)
        st.plotly_chart(sensor_chart(frame, "fuel", "Fuel (%)", "#cc33cc", 10), use_container_width=True)

st.markdown("### Alerts")
unread_only = st.checkbox("Unread only", value=True)
try:
    alerts = with_vehicle_models(load_alerts(base_url, api_key, unread_only), vehicles)
except ApiClientError as error:
    st.error(str(error))
    alerts = []

if alerts and st.button("Mark all as read"):
    run_action(client.mark_all_alerts_read, "All alerts marked as read.")

for alert in alerts:
    icon = ALERT_ICONS.get(alert["type"], "⚪")
    text_col, read_col, delete_col = st.columns([6, 1, 1])
    text_col.markdown(
        f"{icon} **{alert['vehicle_model']}**: {alert['message']}  \n<small>{alert['timestamp']}</small>",
        unsafe_allow_html=True,
    )
    if not alert["is_read"] and read_col.button("Read", key=f"read-{alert['id']}"):
        run_action(lambda alert_id=alert["id"]: client.mark_alert_read(alert_id), "Alert marked as read.")
    if delete_col.button("Delete", key=f"delete-alert-{alert['id']}"):
        run_action(lambda alert_id=alert["id"]: client.delete_alert(alert_id), "Alert deleted.")

if not alerts:
    st.caption("No alerts.")

st.markdown("### Appointments")
booking_form(client, vehicles)

try:
    appointments = load_appointments(base_url, api_key)
except ApiClientError as error:
    st.error(str(error))
    appointments = []

if not appointments:
    st.caption("No appointments booked.")

for appointment in appointments:
    info_col, actions_col = st.columns([3, 2])
    info_col.markdown(
        f"**{appointment['vehicle']}**: {appointment['service']} at {appointment['center']}  \n"
        f"{appointment['date']} {appointment['time']} · **{appointment['status']}** · "
        f"est. ₹{appointment['cost']:,}"
    )
    buttons = APPOINTMENT_ACTIONS.get(appointment["status"], [])
    button_cols = actions_col.columns(len(buttons) + 1)
    for column, (label, new_status) in zip(button_cols, buttons):
        if column.button(label, key=f"{new_status}-{appointment['id']}"):
            run_action(
                lambda appointment_id=appointment["id"], status=new_status: client.set_appointment_status(
                    appointment_id, status
                ),
                f"Appointment {new_status.lower()}.",
            )
    if button_cols[-1].button("Delete", key=f"delete-appointment-{appointment['id']}"):
        run_action(
            lambda appointment_id=appointment["id"]: client.delete_appointment(appointment_id),
            "Appointment deleted.",
        )
