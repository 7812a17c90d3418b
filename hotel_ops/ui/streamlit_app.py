from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Callable

import streamlit as st

from hotel_ops.dependencies.auth import Role
from hotel_ops.notifications.models import Channel
from hotel_ops.tickets.state import TicketAction, normalize_status
from hotel_ops.ui.api import APIError, HotelOpsAPIClient
from hotel_ops.ui.auth import AuthProfile, anonymous_profile, profile_from_identity
from hotel_ops.ui.board import CommandState, TicketBoard, countdown_text
from hotel_ops.ui.utils import parse_payload

DEFAULT_BASE_URL = os.getenv("HOTEL_OPS_API_BASE_URL", "http://localhost:8000")
LIVE_REFRESH_SECONDS = 3
CHANGE_WINDOW_SECONDS = 2.0
CHANGE_BATCH_LIMIT = 50
FULL_REFRESH_EVERY = 10

_ACTION_LABELS = {
    TicketAction.ACCEPT: "Accept",
    TicketAction.START: "Start",
    TicketAction.RESOLVE: "Resolve",
    TicketAction.CANCEL: "Cancel",
}


def _get_auth_profile() -> AuthProfile:
    profile = st.session_state.get("auth_profile")
    if isinstance(profile, AuthProfile):
        return profile
    profile = anonymous_profile()
    st.session_state["auth_profile"] = profile
    return profile


def _get_base_url() -> str:
    base_url = st.session_state.get("base_url")
    if not base_url:
        base_url = DEFAULT_BASE_URL
        st.session_state["base_url"] = base_url
    return str(base_url)


def _build_client() -> HotelOpsAPIClient:
    return HotelOpsAPIClient(base_url=_get_base_url(), token=_get_auth_profile().token)


def _get_board(client: HotelOpsAPIClient) -> TicketBoard:
    board = st.session_state.get("ticket_board")
    if not isinstance(board, TicketBoard) or board.client.token != client.token:
        board = TicketBoard(client)
        st.session_state["ticket_board"] = board
    board.client = client
    return board


def _render_sidebar() -> None:
    st.sidebar.header("Connection")
    st.sidebar.text_input("API base URL", value=_get_base_url(), key="base_url")

    st.sidebar.header("Sign in")
    token = st.sidebar.text_input("Access token", type="password", key="manual_token")
    if st.sidebar.button("Sign in with token"):
        client = HotelOpsAPIClient(base_url=_get_base_url(), token=token or None)
        try:
            identity = client.whoami()
        except APIError as exc:
            st.sidebar.error(str(exc))
        else:
            profile = profile_from_identity(token, identity)
            st.session_state["auth_profile"] = profile
            st.sidebar.success(f"Signed in as {profile.username}")

    if st.sidebar.button("Sign out"):
        st.session_state["auth_profile"] = anonymous_profile()
        st.session_state.pop("ticket_board", None)
        st.sidebar.info("Continuing as guest")

    st.sidebar.markdown("---")
    st.sidebar.markdown(f"**Signed in:** {_get_auth_profile().label}")


def _handle_api_call(
    callback: Callable[[], object], success_message: str | None = None
) -> tuple[bool, object | None]:
    try:
        result = callback()
    except APIError as exc:
        st.error(str(exc))
        return False, None
    else:
        if success_message:
            st.success(success_message)
        return True, result


def _render_guest_tab(client: HotelOpsAPIClient) -> None:
    st.subheader("Request a service")
    with st.form("request_form"):
        service_key = st.selectbox("Service", options=["towels", "housekeeping", "room_service", "maintenance", "other"])
        room = st.text_input("Room")
        booking_code = st.text_input("Booking code")
        submitted = st.form_submit_button("Send request")

    if submitted:
        success, ticket = _handle_api_call(
            lambda: client.create_ticket(
                service_key=service_key,
                room=room or None,
                booking_code=booking_code or None,
            )
        )
        if success and isinstance(ticket, dict):
            if ticket.get("deduped"):
                st.info("You already have an open request for this service; tracking it below.")
            else:
                st.success("Request sent")
            st.session_state["tracked_ticket_id"] = ticket["id"]
            st.session_state["tracked_ticket"] = ticket

    st.subheader("Track a request")
    ticket_id = st.text_input("Request ID", value=st.session_state.get("tracked_ticket_id", ""))
    if ticket_id and st.button("Track"):
        success, ticket = _handle_api_call(lambda: client.get_ticket(ticket_id))
        if success and isinstance(ticket, dict):
            st.session_state["tracked_ticket"] = ticket

    _render_tracked_ticket(client)


@st.fragment(run_every=LIVE_REFRESH_SECONDS)
def _render_tracked_ticket(client: HotelOpsAPIClient) -> None:
    ticket = st.session_state.get("tracked_ticket")
    if not isinstance(ticket, dict):
        return
    if not normalize_status(ticket["status"]).is_terminal:
        try:
            ticket = client.get_ticket(str(ticket["id"]))
        except APIError as exc:
            st.caption(f"Live updates paused: {exc}")
        else:
            st.session_state["tracked_ticket"] = ticket

    sla = ticket.get("sla") or {}
    left = countdown_text(ticket, datetime.now(timezone.utc))
    cols = st.columns(3)
    cols[0].metric("Status", ticket.get("status"))
    if left is not None:
        cols[1].metric("Time left", left)
    elif sla.get("outcome"):
        cols[1].metric("SLA", sla["outcome"])
    cols[2].metric("SLA minutes", sla.get("sla_minutes"))


def _render_staff_tab(client: HotelOpsAPIClient) -> None:
    st.subheader("Open requests")
    if st.button("Refresh board"):
        _handle_api_call(_get_board(client).refresh)

    _render_live_board(client)

    st.subheader("Request history")
    history_id = st.text_input("Request ID", key="history_ticket_id")
    if history_id and st.button("Show history"):
        success, events = _handle_api_call(lambda: client.get_events(history_id))
        if success and isinstance(events, list):
            for event in events:
                st.write(
                    f"{event.get('created_at')} {event.get('actor')} {event.get('action')}"
                    f" ({event.get('from_status') or '-'} -> {event.get('to_status')})"
                )


@st.fragment(run_every=LIVE_REFRESH_SECONDS)
def _render_live_board(client: HotelOpsAPIClient) -> None:
    board = _get_board(client)
    ticks = st.session_state.get("board_ticks", 0)
    st.session_state["board_ticks"] = ticks + 1
    try:
        # Changes made between stream windows are only picked up by a full refresh.
        if not board.rows or ticks % FULL_REFRESH_EVERY == 0:
            board.refresh()
        else:
            board.follow(client.iter_changes(max_events=CHANGE_BATCH_LIMIT, idle_timeout=CHANGE_WINDOW_SECONDS))
    except APIError as exc:
        st.caption(f"Live updates paused: {exc}")

    for ticket in board.tickets():
        ticket_id = str(ticket["id"])
        cols = st.columns([3, 2, 2, 3])
        cols[0].markdown(f"**{ticket.get('service_key')}** room {ticket.get('room') or '-'}")
        cols[1].write(ticket.get("status"))
        cols[2].write(board.countdown(ticket_id) or "")
        command = board.commands.get(ticket_id)
        if command is not None and command.state == CommandState.PENDING:
            cols[3].caption("Updating...")
            continue
        for action in board.offered_actions(ticket_id):
            if cols[3].button(_ACTION_LABELS[action], key=f"{ticket_id}-{action.value}"):
                result = board.submit(ticket_id, action)
                if result.state == CommandState.REJECTED:
                    st.warning(f"Update rejected: {result.error}")
                st.rerun()


def _render_dispatch_tab(client: HotelOpsAPIClient) -> None:
    st.subheader("Notification queue")
    with st.form("enqueue_form"):
        booking_id = st.text_input("Booking ID")
        channel = st.selectbox("Channel", options=[item.value for item in Channel])
        template_code = st.selectbox(
            "Template",
            options=["precheckin_link", "precheckin_reminder_1", "precheckin_reminder_2", "guest_login_link"],
        )
        payload_raw = st.text_area("Payload (JSON)", value="{}")
        enqueue = st.form_submit_button("Queue notification")

    if enqueue:
        try:
            payload = parse_payload(payload_raw)
        except ValueError as exc:
            st.error(str(exc))
        else:
            _handle_api_call(
                lambda: client.enqueue_notification(
                    booking_id=booking_id,
                    channel=channel,
                    template_code=template_code,
                    payload=payload,
                ),
                "Notification queued",
            )

    if st.button("Run dispatch cycle"):
        success, summary = _handle_api_call(client.dispatch_notifications)
        if success and isinstance(summary, dict):
            st.json(summary)


def main() -> None:
    st.set_page_config(page_title="Hotel Ops Console", layout="wide")
    _render_sidebar()

    client = _build_client()
    profile = _get_auth_profile()

    tabs: list[tuple[str, Callable[[HotelOpsAPIClient], None], tuple[Role, ...]]] = [
        ("Guest", _render_guest_tab, (Role.GUEST,)),
        ("Staff board", _render_staff_tab, (Role.STAFF,)),
        ("Notifications", _render_dispatch_tab, (Role.OWNER,)),
    ]

    available = [
        (label, renderer) for label, renderer, roles in tabs if any(profile.has_role(role) for role in roles)
    ]
    if not available:
        st.info("No console sections are available for this caller")
        return

    tab_objects = st.tabs([item[0] for item in available])
    for tab_object, (_, renderer) in zip(tab_objects, available):
        with tab_object:
            renderer(client)


if __name__ == "__main__":
    main()
