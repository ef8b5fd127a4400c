"""
Administrative dashboard: user statistics, system health and support tickets.

Run with: streamlit run dashboard.py
"""

import html
import logging
import os
import re
from typing import List, Optional, Union

import altair as alt
import pandas as pd
import streamlit as st
import streamlit_shadcn_ui as ui

from admin_records import InvalidTransitionError, RecentRegistration, TicketRow, TicketStatus
from api_client import ApiConfigError, get_admin_name, get_client, get_tickets_url
from dashboard_data import DASHBOARD_TICKET_LIMIT, DashboardData, load_dashboard_data
from system_metrics import MockMetricsSource
from ticket_workflow import RESPONSE_KEY, TICKETS_KEY, TicketWorkflow, action_buttons


logger = logging.getLogger(__name__)

DATA_STATE_KEY = "dashboard_data"
NOTICE_STATE_KEY = "ticket_notice"
DIALOG_ERROR_KEY = "ticket_dialog_error"

CHART_SERIES_COLORS = ["#bba0ff", "#7df1ff", "#ffc658"]
CHART_AXIS_LABEL_COLOR = "rgba(226, 220, 255, 0.78)"
CHART_AXIS_TITLE_COLOR = "rgba(201, 189, 255, 0.82)"
CHART_GRID_COLOR = "rgba(132, 110, 238, 0.22)"
CHART_DOMAIN_COLOR = "rgba(164, 142, 255, 0.45)"
CHART_VIEW_FILL = "rgba(18, 12, 42, 0.78)"

STATUS_BADGE_VARIANTS = {
    "new": "destructive",
    "open": "destructive",
    "in-progress": "default",
    "resolved": "secondary",
    "closed": "outline",
}
CATEGORY_BADGE_VARIANTS = {
    "workout": "destructive",
    "diet": "default",
    "account": "secondary",
    "billing": "destructive",
    "general": "outline",
}


def _configure_logging() -> None:
    level = os.getenv("ADMIN_CONSOLE_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _apply_chart_theme(
    chart: Union[alt.Chart, alt.LayerChart], *, title: str, height: int = 320
) -> Union[alt.Chart, alt.LayerChart]:
    configured = (
        chart.properties(title=title, height=height, background="transparent")
        .configure_view(fill=CHART_VIEW_FILL, stroke=None)
        .configure_axis(
            labelColor=CHART_AXIS_LABEL_COLOR,
            titleColor=CHART_AXIS_TITLE_COLOR,
            gridColor=CHART_GRID_COLOR,
            gridDash=[3, 3],
            tickColor=CHART_DOMAIN_COLOR,
            domainColor=CHART_DOMAIN_COLOR,
        )
        .configure_title(
            color="#f2eeff",
            font="Inter",
            fontSize=16,
            anchor="start",
            fontWeight=600,
        )
        .configure_legend(
            labelColor=CHART_AXIS_LABEL_COLOR,
            titleColor=CHART_AXIS_TITLE_COLOR,
            orient="top",
            direction="horizontal",
        )
    )
    return configured


def _metric_icon_svg(icon_key: str) -> str:
    icons = {
        "users": """
<svg viewBox="0 0 24 24" xmlns="http://www.w3.org/2000/svg">
  <circle cx="9" cy="8" r="3.5" fill="#bba0ff"/>
  <circle cx="17" cy="9" r="2.5" fill="#7b57ff"/>
  <path d="M2.5 19c0-3.3 2.9-5.5 6.5-5.5s6.5 2.2 6.5 5.5z" fill="#bba0ff"/>
  <path d="M15 19c0-2-.7-3.6-1.9-4.7 3.6-.6 7.4 1 7.4 4.7z" fill="#7b57ff"/>
</svg>
""",
        "active": """
<svg viewBox="0 0 24 24" xmlns="http://www.w3.org/2000/svg">
  <path d="M12 2 9 11h4l-1 9 7-12h-4l3-6z" fill="#7df1ff" />
</svg>
""",
        "uptime": """
<svg viewBox="0 0 24 24" xmlns="http://www.w3.org/2000/svg">
  <path d="M3 13h4l2-5 4 10 2-5h6" stroke="#ffd8a0" stroke-width="2" fill="none" stroke-linecap="round" stroke-linejoin="round"/>
</svg>
""",
        "response": """
<svg viewBox="0 0 24 24" xmlns="http://www.w3.org/2000/svg">
  <circle cx="12" cy="12" r="9" stroke="#ff77b9" stroke-width="2" fill="none"/>
  <path d="M12 7v5l3 2" stroke="#ff77b9" stroke-width="2" stroke-linecap="round" stroke-linejoin="round"/>
</svg>
""",
    }
    return icons.get(icon_key, icons["active"])


def _inject_theme() -> None:
    st.markdown(
        """
        <style>
            .stApp {
                background: radial-gradient(120% 120% at 0% 0%, rgba(149, 110, 255, 0.16), transparent 45%),
                            linear-gradient(180deg, #060313 0%, #0d0720 55%, #120b2b 100%);
                color: #f4f1ff;
                font-family: 'Inter', sans-serif;
            }

            .stApp [data-testid="stToolbar"] {
                display: none;
            }

            .section-title {
                font-size: 1.35rem;
                letter-spacing: 0.01em;
                margin: 2.2rem 0 0.3rem;
                color: #f1edff;
            }

            .section-caption {
                font-size: 0.9rem;
                color: rgba(222, 217, 255, 0.6);
                margin-bottom: 1rem;
            }

            .hero-copy h1 {
                font-size: 2.2rem;
                margin-bottom: 0.2rem;
                color: #f9f8ff;
            }

            .hero-copy p {
                color: rgba(232, 225, 255, 0.7);
            }

            .metric-grid {
                display: grid;
                grid-template-columns: repeat(auto-fit, minmax(220px, 1fr));
                gap: 1.2rem;
            }

            .metric-card {
                position: relative;
                border-radius: 22px;
                padding: 1.4rem 1.6rem;
                background: rgba(19, 14, 44, 0.9);
                border: 1px solid rgba(116, 96, 226, 0.4);
                overflow: hidden;
                box-shadow: 0 14px 36px rgba(6, 3, 23, 0.45);
            }

            .metric-icon {
                width: 44px;
                height: 44px;
                border-radius: 14px;
                display: grid;
                place-items: center;
                background: rgba(116, 88, 249, 0.15);
                margin-bottom: 0.8rem;
            }

            .metric-icon svg {
                width: 24px;
                height: 24px;
            }

            .metric-value {
                font-size: 1.8rem;
                font-weight: 700;
                color: #f9f8ff;
            }

            .metric-label {
                font-size: 0.85rem;
                letter-spacing: 0.08em;
                text-transform: uppercase;
                color: rgba(215, 205, 255, 0.75);
            }

            .metric-caption {
                margin-top: 0.35rem;
                font-size: 0.85rem;
                color: rgba(222, 217, 255, 0.6);
            }

            .table-header {
                font-size: 0.78rem;
                letter-spacing: 0.12em;
                text-transform: uppercase;
                color: rgba(204, 195, 255, 0.8);
            }

            .ticket-badge {
                display: inline-block;
                padding: 0.15rem 0.6rem;
                border-radius: 999px;
                font-size: 0.78rem;
                font-weight: 600;
            }

            .ticket-badge--default {
                background: rgba(123, 87, 255, 0.9);
                color: #f9f8ff;
            }

            .ticket-badge--destructive {
                background: rgba(239, 68, 68, 0.85);
                color: #fff5f5;
            }

            .ticket-badge--secondary {
                background: rgba(164, 142, 255, 0.25);
                color: #ede6ff;
            }

            .ticket-badge--outline {
                border: 1px solid rgba(164, 142, 255, 0.55);
                color: #ede6ff;
            }

            .ticket-message {
                padding: 0.8rem 1rem;
                border-radius: 12px;
                background: rgba(63, 43, 132, 0.35);
                white-space: pre-wrap;
            }
        </style>
        """,
        unsafe_allow_html=True,
    )


def _sanitize_key(*parts: str) -> str:
    safe_parts = []
    for part in parts:
        safe = re.sub(r"[^0-9A-Za-z]+", "_", str(part))
        safe_parts.append(safe.strip("_"))
    return "_".join(safe_parts)


def _trigger_rerun() -> None:
    if hasattr(st, "rerun"):
        st.rerun()
    else:
        st.experimental_rerun()


def _dialog_decorator():
    if hasattr(st, "dialog"):
        return st.dialog
    return st.experimental_dialog


def _badge(label: str, variants: dict) -> str:
    variant = variants.get(label, "outline")
    return f"<span class='ticket-badge ticket-badge--{variant}'>{html.escape(label or 'unknown')}</span>"


def _workflow() -> TicketWorkflow:
    return TicketWorkflow(get_client(), st.session_state)


def _get_dashboard_data() -> DashboardData:
    data = st.session_state.get(DATA_STATE_KEY)
    if data is None:
        try:
            client = get_client()
        except ApiConfigError as exc:
            logger.error("Error loading dashboard data: %s", exc)
            _render_error(str(exc))
            st.stop()
        with st.spinner("Loading dashboard data..."):
            data = load_dashboard_data(client, MockMetricsSource())
        st.session_state[DATA_STATE_KEY] = data
        st.session_state[TICKETS_KEY] = list(data.tickets)
    return data


def _reset_dashboard() -> None:
    for key in (DATA_STATE_KEY, TICKETS_KEY, NOTICE_STATE_KEY):
        st.session_state.pop(key, None)
    get_client.cache_clear()
    _trigger_rerun()


def _render_error(message: str) -> None:
    st.markdown(
        "<div class='section-title'>Error loading dashboard</div>",
        unsafe_allow_html=True,
    )
    ui.alert(
        title="Error loading dashboard",
        description=message,
        key="load-error-alert",
    )
    if ui.button("Retry", key="load-retry"):
        _reset_dashboard()


def _render_header(admin_name: str) -> None:
    hero_html = f"""
    <div class="hero-copy">
        <h1>Welcome, {html.escape(admin_name)}!</h1>
        <p>Here's what's happening in your system today.</p>
    </div>
    """
    st.markdown(hero_html, unsafe_allow_html=True)


def kpi_section(data: DashboardData):
    stats = data.user_stats
    summary = data.system_summary

    metric_data = [
        {
            "title": "Total Users",
            "value": f"{stats.total_users:,}",
            "description": f"+{stats.new_users_this_month} from this month",
            "icon_svg": _metric_icon_svg("users"),
        },
        {
            "title": "Active Users",
            "value": f"{stats.active_users:,}",
            "description": "Currently online",
            "icon_svg": _metric_icon_svg("active"),
        },
        {
            "title": "System Uptime",
            "value": summary.uptime,
            "description": summary.uptime_window,
            "icon_svg": _metric_icon_svg("uptime"),
        },
        {
            "title": "Response Time",
            "value": summary.response_time,
            "description": summary.response_time_label,
            "icon_svg": _metric_icon_svg("response"),
        },
    ]

    cards_html = "".join(
        (
            "<div class=\"metric-card\">"
            f"<div class=\"metric-icon\">{spec['icon_svg']}</div>"
            f"<div class=\"metric-label\">{spec['title']}</div>"
            f"<div class=\"metric-value\">{spec['value']}</div>"
            f"<div class=\"metric-caption\">{spec['description']}</div>"
            "</div>"
        )
        for spec in metric_data
    )

    st.markdown(f"<div class='metric-grid'>{cards_html}</div>", unsafe_allow_html=True)


def _system_chart(data: pd.DataFrame):
    usage = data.melt(
        id_vars=["Timestamp", "Time"],
        value_vars=["CPU Usage", "Memory Usage"],
        var_name="Metric",
        value_name="Percent",
    )
    x_axis = alt.X("Timestamp:T", title=None, axis=alt.Axis(format="%H:%M"))

    usage_lines = (
        alt.Chart(usage)
        .mark_line(interpolate="monotone", size=2.5)
        .encode(
            x=x_axis,
            y=alt.Y("Percent:Q", title="Usage (%)"),
            color=alt.Color(
                "Metric:N",
                scale=alt.Scale(range=CHART_SERIES_COLORS[:2]),
                legend=alt.Legend(title=None),
            ),
            tooltip=[
                alt.Tooltip("Time:N", title="Time"),
                alt.Tooltip("Metric:N"),
                alt.Tooltip("Percent:Q", format=".1f"),
            ],
        )
    )
    request_line = (
        alt.Chart(data)
        .mark_line(interpolate="monotone", size=2, strokeDash=[6, 4], color=CHART_SERIES_COLORS[2])
        .encode(
            x=x_axis,
            y=alt.Y("Requests:Q", title="Requests/hour", axis=alt.Axis(orient="right")),
            tooltip=[alt.Tooltip("Time:N", title="Time"), alt.Tooltip("Requests:Q")],
        )
    )
    chart = alt.layer(usage_lines, request_line).resolve_scale(y="independent")
    return _apply_chart_theme(chart, title="Server metrics over the last 24 hours")


def _activity_chart(data: pd.DataFrame):
    chart = (
        alt.Chart(data)
        .mark_line(
            interpolate="monotone",
            color="#dccfff",
            size=2.5,
            point=alt.OverlayMarkDef(
                size=55,
                fill="#f8f5ff",
                stroke="#7a56ff",
                strokeWidth=1.4,
            ),
        )
        .encode(
            x=alt.X("Timestamp:T", title=None, axis=alt.Axis(format="%H:%M")),
            y=alt.Y("Active Users:Q", title="Active users"),
            tooltip=[alt.Tooltip("Time:N", title="Time"), alt.Tooltip("Active Users:Q")],
        )
    )
    return _apply_chart_theme(chart, title="User activity over the last 24 hours")


def build_charts(data: DashboardData):
    col1, col2 = st.columns([4, 3], gap="large")
    with col1:
        st.altair_chart(_system_chart(data.system_metrics), use_container_width=True)
    with col2:
        st.altair_chart(_activity_chart(data.user_activity), use_container_width=True)


def recent_registrations_table(rows: List[RecentRegistration]):
    st.markdown("<div class='section-title'>Recent Registrations</div>", unsafe_allow_html=True)
    st.markdown(
        "<div class='section-caption'>User registrations in the last 48 hours</div>",
        unsafe_allow_html=True,
    )
    if not rows:
        ui.alert(
            title="No recent registrations found",
            description="Nobody has signed up in the last 48 hours.",
            key="recent-users-empty-alert",
        )
        return

    frame = pd.DataFrame(
        [
            {
                "User ID": f"#{row.id}",
                "Name": row.name,
                "Email": row.email,
                "Registration Date & Time": row.date,
                "Status": row.status,
            }
            for row in rows
        ]
    )
    st.dataframe(frame, hide_index=True, width="stretch")


def tickets_section(tickets: List[TicketRow]) -> Optional[TicketRow]:
    """Render the ticket summary table. Returns the ticket whose View was clicked."""

    header_cols = st.columns([3, 1])
    with header_cols[0]:
        st.markdown("<div class='section-title'>Support Tickets</div>", unsafe_allow_html=True)
        st.markdown(
            "<div class='section-caption'>Recent support requests from users</div>",
            unsafe_allow_html=True,
        )
    with header_cols[1]:
        st.link_button("View All Tickets", get_tickets_url())

    if not tickets:
        ui.alert(
            title="No support tickets found",
            description="New requests from users will appear here.",
            key="tickets-empty-alert",
        )
        return None

    widths = [1, 2, 3, 1.3, 1.3, 2, 1]
    headings = ["Ticket ID", "User", "Subject", "Category", "Status", "Created", "Actions"]
    for col, heading in zip(st.columns(widths), headings):
        col.markdown(f"<div class='table-header'>{heading}</div>", unsafe_allow_html=True)

    clicked: Optional[TicketRow] = None
    for ticket in tickets[:DASHBOARD_TICKET_LIMIT]:
        cols = st.columns(widths)
        cols[0].write(f"T-{ticket.id}")
        cols[1].write(ticket.user)
        cols[2].write(ticket.subject)
        cols[3].markdown(_badge(ticket.category, CATEGORY_BADGE_VARIANTS), unsafe_allow_html=True)
        cols[4].markdown(_badge(ticket.status_label, STATUS_BADGE_VARIANTS), unsafe_allow_html=True)
        cols[5].write(ticket.created_at)
        if cols[6].button("View", key=_sanitize_key("ticket", str(ticket.id), "view")):
            clicked = ticket
    return clicked


@_dialog_decorator()("Support ticket", width="large")
def ticket_dialog() -> None:
    workflow = _workflow()
    ticket = workflow.selected
    if ticket is None:
        st.write("No ticket selected.")
        return

    st.markdown(f"#### Ticket #{ticket.id} - {html.escape(ticket.subject)}")
    st.caption(f"Submitted by {ticket.user} on {ticket.created_at}")

    detail_cols = st.columns([1, 3])
    detail_cols[0].markdown("**Status:**")
    detail_cols[1].markdown(_badge(ticket.status_label, STATUS_BADGE_VARIANTS), unsafe_allow_html=True)
    detail_cols[0].markdown("**Category:**")
    detail_cols[1].markdown(_badge(ticket.category, CATEGORY_BADGE_VARIANTS), unsafe_allow_html=True)

    st.markdown("**Message:**")
    st.markdown(
        f"<div class='ticket-message'>{html.escape(ticket.message)}</div>",
        unsafe_allow_html=True,
    )

    st.text_area(
        "Admin Response:",
        key=RESPONSE_KEY,
        placeholder="Type your response to the user here...",
        height=140,
    )

    error = st.session_state.pop(DIALOG_ERROR_KEY, None)
    if error:
        st.error(error)

    buttons = action_buttons(ticket.status, workflow.updating)
    button_cols = st.columns(len(buttons) + 1)
    for col, (target, label, disabled) in zip(button_cols, buttons):
        col.button(
            label,
            key=_sanitize_key("ticket", str(ticket.id), target.value),
            type="primary",
            disabled=disabled,
            on_click=_queue_action,
            args=(target,),
        )
    cancelled = button_cols[-1].button(
        "Cancel", key="ticket_dialog_cancel", disabled=workflow.updating
    )

    pending = workflow.pending_action
    if pending is not None:
        try:
            succeeded = workflow.run_pending_action()
        except InvalidTransitionError as exc:
            st.session_state[DIALOG_ERROR_KEY] = str(exc)
            succeeded = False
        if succeeded:
            st.session_state[NOTICE_STATE_KEY] = f"Ticket #{ticket.id} marked as {pending.value}."
            _trigger_rerun()
        else:
            st.session_state.setdefault(
                DIALOG_ERROR_KEY, f"Failed to mark ticket as {pending.value}. Try again."
            )
            # Redraw the dialog so the buttons come back enabled.
            st.rerun(scope="fragment")

    if cancelled:
        workflow.close_dialog()
        _trigger_rerun()


def _queue_action(target: TicketStatus) -> None:
    _workflow().request_action(target)


def main():
    st.set_page_config(page_title="Admin Dashboard", layout="wide")
    _configure_logging()
    _inject_theme()

    data = _get_dashboard_data()
    if data.error:
        _render_error(data.error)
        return

    _render_header(get_admin_name())

    notice = st.session_state.pop(NOTICE_STATE_KEY, None)
    if notice:
        st.success(notice)

    kpi_section(data)

    st.markdown("<div class='section-title'>System Performance</div>", unsafe_allow_html=True)
    build_charts(data)

    recent_registrations_table(data.recent_users)

    workflow = _workflow()
    clicked = tickets_section(workflow.tickets)
    if clicked is not None:
        workflow.open_ticket(clicked.id)
        ticket_dialog()


if __name__ == "__main__":
    main()
