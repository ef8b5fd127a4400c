"""
Admin actions on support tickets.

State lives in a mutable mapping (``st.session_state`` on the page, a plain
dict in tests) so that the selected ticket, the response draft and the
in-flight flag survive Streamlit reruns.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, MutableMapping, Optional, Tuple

from admin_records import TicketRow, TicketStatus
from api_client import ApiError


logger = logging.getLogger(__name__)

TICKETS_KEY = "tickets"
SELECTED_KEY = "selected_ticket"
RESPONSE_KEY = "admin_response"
UPDATING_KEY = "ticket_updating"
PENDING_KEY = "ticket_pending_action"
UPDATING_LABEL = "Updating..."

# Order in which action buttons are offered. OPEN is reached only by viewing.
ACTION_LABELS: List[Tuple[TicketStatus, str]] = [
    (TicketStatus.IN_PROGRESS, "Mark In Progress"),
    (TicketStatus.RESOLVED, "Mark Resolved"),
    (TicketStatus.CLOSED, "Close Ticket"),
]


def available_actions(status: Optional[TicketStatus]) -> List[Tuple[TicketStatus, str]]:
    if status is None:
        return []
    return [(target, label) for target, label in ACTION_LABELS if status.can_transition_to(target)]


def action_buttons(
    status: Optional[TicketStatus], updating: bool
) -> List[Tuple[TicketStatus, str, bool]]:
    """Label and disabled flag for each action button in the ticket dialog."""

    return [
        (target, UPDATING_LABEL if updating else label, updating)
        for target, label in available_actions(status)
    ]


def _utc_timestamp(now: Optional[datetime] = None) -> str:
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_update_body(
    target: TicketStatus,
    admin_response: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"status": target.api_value}
    if admin_response:
        body["admin_response"] = admin_response
    if target is TicketStatus.RESOLVED:
        body["resolved_at"] = _utc_timestamp(now)
    return body


class TicketWorkflow:
    def __init__(self, client, state: MutableMapping[str, Any]) -> None:
        self.client = client
        self.state = state
        self.state.setdefault(TICKETS_KEY, [])
        self.state.setdefault(SELECTED_KEY, None)
        self.state.setdefault(RESPONSE_KEY, "")
        self.state.setdefault(UPDATING_KEY, False)

    @property
    def tickets(self) -> List[TicketRow]:
        return self.state[TICKETS_KEY]

    @property
    def selected(self) -> Optional[TicketRow]:
        return self.state.get(SELECTED_KEY)

    @property
    def updating(self) -> bool:
        return bool(self.state.get(UPDATING_KEY))

    @property
    def response_text(self) -> str:
        return self.state.get(RESPONSE_KEY) or ""

    def find(self, ticket_id: Any) -> TicketRow:
        for ticket in self.tickets:
            if ticket.id == ticket_id:
                return ticket
        raise KeyError(f"Unknown ticket {ticket_id}")

    def _patch(self, ticket_id: Any, status: TicketStatus, admin_response: Optional[str]) -> None:
        self.state[TICKETS_KEY] = [
            ticket.with_status(status, admin_response) if ticket.id == ticket_id else ticket
            for ticket in self.tickets
        ]
        selected = self.selected
        if selected is not None and selected.id == ticket_id:
            self.state[SELECTED_KEY] = selected.with_status(status, admin_response)

    def update_ticket_status(
        self,
        ticket_id: Any,
        target: TicketStatus,
        admin_response: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Send one transition to the API and patch local state on success.

        Returns the API's updated record, or ``None`` when the request failed.
        Illegal transitions raise ``InvalidTransitionError`` before any request.
        """

        ticket = self.find(ticket_id)
        if ticket.status is None:
            raise ValueError(f"Ticket {ticket_id} has unknown status {ticket.status_label!r}")
        ticket.status.transition_to(target)

        body = build_update_body(target, admin_response)
        logger.info("Updating ticket %s with: %s", ticket_id, body)
        self.state[UPDATING_KEY] = True
        try:
            result = self.client.update_support_ticket(ticket_id, body)
        except ApiError as exc:
            logger.error("Error updating ticket %s: %s", ticket_id, exc)
            return None
        finally:
            self.state[UPDATING_KEY] = False

        self._patch(ticket_id, target, admin_response)
        return result if result is not None else {}

    def open_ticket(self, ticket_id: Any) -> TicketRow:
        """Select a ticket for the detail dialog, marking new tickets as open."""

        ticket = self.find(ticket_id)
        self.state[SELECTED_KEY] = ticket
        self.state[RESPONSE_KEY] = ticket.admin_response or ""

        if ticket.status is TicketStatus.NEW:
            self.update_ticket_status(ticket.id, TicketStatus.OPEN)
            # Shown as open even if the request failed; the list keeps the API state.
            self.state[SELECTED_KEY] = ticket.with_status(TicketStatus.OPEN)
        return self.selected

    def apply_action(self, target: TicketStatus, admin_response: Optional[str] = None) -> bool:
        """Run an admin action on the selected ticket. Returns True on success."""

        selected = self.selected
        if selected is None:
            return False
        if self.updating:
            logger.warning("Ticket %s update already in flight", selected.id)
            return False
        if admin_response is not None:
            self.state[RESPONSE_KEY] = admin_response
        return self._apply(selected, target)

    def request_action(self, target: TicketStatus) -> bool:
        """Queue an action for the next run and mark the dialog as updating.

        Used as a button callback so the run that performs the request
        renders the action buttons disabled.
        """

        selected = self.selected
        if selected is None:
            return False
        if self.updating:
            logger.warning("Ticket %s update already in flight", selected.id)
            return False
        self.state[PENDING_KEY] = target
        self.state[UPDATING_KEY] = True
        return True

    @property
    def pending_action(self) -> Optional[TicketStatus]:
        return self.state.get(PENDING_KEY)

    def run_pending_action(self) -> Optional[bool]:
        """Perform a queued action. Returns None when nothing was queued."""

        target = self.state.pop(PENDING_KEY, None)
        if target is None:
            return None
        try:
            selected = self.selected
            if selected is None:
                return False
            return self._apply(selected, target)
        finally:
            self.state[UPDATING_KEY] = False

    def _apply(self, selected: TicketRow, target: TicketStatus) -> bool:
        if selected.status is None:
            raise ValueError(f"Ticket {selected.id} has unknown status {selected.status_label!r}")
        selected.status.transition_to(target)

        result = self.update_ticket_status(selected.id, target, self.response_text)
        if result is None:
            logger.error("Failed to mark ticket %s as %s", selected.id, target.value)
            return False

        logger.info("Ticket %s successfully marked as %s", selected.id, target.value)
        self.close_dialog()
        return True

    def close_dialog(self) -> None:
        self.state[SELECTED_KEY] = None
