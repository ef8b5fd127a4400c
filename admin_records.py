"""
Normalisation of user and support-ticket records returned by the admin API.

The API is inconsistent about field naming: the same attribute may arrive as
``createdAt`` or ``created_at``. Each entity has exactly one mapping function
here (``normalize_user`` / ``normalize_ticket``); nothing past this module
reads raw API field names. Ticket statuses are decoded into ``TicketStatus``
on the way in and encoded back to the underscore form only when an update
request is built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd


logger = logging.getLogger(__name__)

ACTIVE_WINDOW = timedelta(hours=24)
RECENT_REGISTRATION_WINDOW = timedelta(hours=48)
MAX_RECENT_REGISTRATIONS = 5

MISSING_DATE_LABEL = "N/A"
INVALID_DATE_LABEL = "Invalid date"
UNKNOWN_USER_NAME = "Unknown User"

# pandas resolves these relative to the wall clock; the API never sends them.
RELATIVE_DATE_WORDS = frozenset({"now", "today", "tomorrow", "yesterday"})
TRUTHY_STRINGS = frozenset({"1", "true", "yes"})


class InvalidTransitionError(ValueError):
    """Raised when a ticket is asked to move along an edge the lifecycle forbids."""

    def __init__(self, current: "TicketStatus", target: "TicketStatus") -> None:
        super().__init__(f"Cannot move ticket from {current.value} to {target.value}")
        self.current = current
        self.target = target


class TicketStatus(str, Enum):
    """Ticket lifecycle stage. Values are the hyphenated display form."""

    NEW = "new"
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"

    @property
    def api_value(self) -> str:
        return self.value.replace("-", "_")

    @classmethod
    def from_api(cls, value: Any) -> "TicketStatus":
        return cls(str(value).strip().lower().replace("_", "-"))

    def can_transition_to(self, target: "TicketStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]

    def transition_to(self, target: "TicketStatus") -> "TicketStatus":
        if not self.can_transition_to(target):
            raise InvalidTransitionError(self, target)
        return target


ALLOWED_TRANSITIONS: Dict[TicketStatus, frozenset] = {
    TicketStatus.NEW: frozenset({TicketStatus.OPEN, TicketStatus.IN_PROGRESS}),
    TicketStatus.OPEN: frozenset({TicketStatus.IN_PROGRESS}),
    TicketStatus.IN_PROGRESS: frozenset({TicketStatus.RESOLVED}),
    TicketStatus.RESOLVED: frozenset({TicketStatus.CLOSED}),
    TicketStatus.CLOSED: frozenset(),
}


@dataclass
class UserRecord:
    id: Any
    name: str
    email: str
    created_at: Optional[str] = None
    last_active: Optional[str] = None
    is_active: bool = False
    role: Optional[str] = None


@dataclass
class UserStats:
    total_users: int = 0
    active_users: int = 0
    new_users_this_month: int = 0


@dataclass
class RecentRegistration:
    id: Any
    name: str
    email: str
    date: str
    status: str


@dataclass
class TicketRow:
    """Display shape of a support ticket."""

    id: Any
    user: str
    user_id: Any
    subject: str
    message: str
    status: Optional[TicketStatus]
    status_label: str
    category: str
    created_at: str
    admin_response: Optional[str] = None

    def with_status(
        self, status: TicketStatus, admin_response: Optional[str] = None
    ) -> "TicketRow":
        return TicketRow(
            id=self.id,
            user=self.user,
            user_id=self.user_id,
            subject=self.subject,
            message=self.message,
            status=status,
            status_label=status.value,
            category=self.category,
            created_at=self.created_at,
            admin_response=admin_response or self.admin_response,
        )


def local_now(now: Optional[datetime] = None) -> datetime:
    """Return ``now`` (or the wall clock) as a timezone-aware local datetime."""

    if now is None:
        return datetime.now().astimezone()
    return now.astimezone()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an API timestamp into local time, or ``None`` when unusable.

    Naive timestamps are taken as local time.
    """

    if value is None or value == "":
        return None
    if not isinstance(value, (str, datetime)):
        return None
    if isinstance(value, str) and value.strip().lower() in RELATIVE_DATE_WORDS:
        return None
    try:
        parsed = pd.to_datetime(value, errors="coerce")
        if pd.isna(parsed):
            return None
        return parsed.to_pydatetime().astimezone()
    except (ValueError, TypeError, OverflowError, OSError):
        return None


def format_date(value: Any) -> str:
    """Render a timestamp as ``Mon D, YYYY, HH:MM``. Never raises."""

    if value is None or value == "":
        return MISSING_DATE_LABEL
    parsed = parse_timestamp(value)
    if parsed is None:
        logger.debug("Invalid date format: %r", value)
        return INVALID_DATE_LABEL
    return f"{parsed:%b} {parsed.day}, {parsed.year}, {parsed:%H:%M}"


def _pick(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return default


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    if isinstance(value, (int, float)):
        return value == 1
    return False


def normalize_user(raw: Mapping[str, Any]) -> UserRecord:
    return UserRecord(
        id=_pick(raw, "userId", "user_id", "id", default=0),
        name=_pick(raw, "fullName", "full_name", default=UNKNOWN_USER_NAME),
        email=_pick(raw, "email", default=""),
        created_at=_pick(raw, "createdAt", "created_at"),
        last_active=_pick(raw, "lastActive", "last_active"),
        is_active=_as_bool(_pick(raw, "isActive", "is_active", default=False)),
        role=_pick(raw, "role"),
    )


def normalize_ticket(raw: Mapping[str, Any]) -> TicketRow:
    user_id = _pick(raw, "userId", "user_id", default=0)
    embedded = raw.get("user") or {}
    user_name = _pick(embedded, "fullName", "full_name") if isinstance(embedded, Mapping) else None

    raw_status = str(_pick(raw, "status", default=""))
    try:
        status: Optional[TicketStatus] = TicketStatus.from_api(raw_status)
        status_label = status.value
    except ValueError:
        logger.warning("Unknown ticket status %r", raw_status)
        status = None
        status_label = raw_status.replace("_", "-")

    return TicketRow(
        id=_pick(raw, "ticketId", "ticket_id", "id", default=0),
        user=user_name or f"User #{user_id}",
        user_id=user_id,
        subject=_pick(raw, "subject", default=""),
        message=_pick(raw, "message", default=""),
        status=status,
        status_label=status_label,
        category=_pick(raw, "category", default=""),
        created_at=format_date(_pick(raw, "createdAt", "created_at")),
        admin_response=_pick(raw, "adminResponse", "admin_response"),
    )


def is_recently_active(user: UserRecord, now: Optional[datetime] = None) -> bool:
    last_active = parse_timestamp(user.last_active)
    if last_active is None:
        return False
    return last_active > local_now(now) - ACTIVE_WINDOW


def compute_user_stats(users: Iterable[UserRecord], now: Optional[datetime] = None) -> UserStats:
    now = local_now(now)
    stats = UserStats()
    for user in users:
        stats.total_users += 1
        if is_recently_active(user, now):
            stats.active_users += 1
        created = parse_timestamp(user.created_at)
        if created is not None and created.month == now.month and created.year == now.year:
            stats.new_users_this_month += 1
    return stats


def recent_registrations(
    users: Iterable[UserRecord], now: Optional[datetime] = None
) -> List[RecentRegistration]:
    """Newest users created within the last 48 hours, at most five."""

    cutoff = local_now(now) - RECENT_REGISTRATION_WINDOW
    dated = []
    for user in users:
        created = parse_timestamp(user.created_at)
        if created is None:
            logger.debug("User %s has no usable creation date", user.id)
            continue
        if created >= cutoff:
            dated.append((created, user))

    dated.sort(key=lambda pair: pair[0], reverse=True)
    return [
        RecentRegistration(
            id=user.id,
            name=user.name,
            email=user.email,
            date=format_date(user.created_at),
            status="active" if user.is_active else "inactive",
        )
        for _, user in dated[:MAX_RECENT_REGISTRATIONS]
    ]
