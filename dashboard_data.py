from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from admin_records import (
    RecentRegistration,
    TicketRow,
    UserStats,
    compute_user_stats,
    local_now,
    normalize_ticket,
    normalize_user,
    recent_registrations,
)
from api_client import ApiError
from system_metrics import MetricsSource, MockMetricsSource, SystemSummary


logger = logging.getLogger(__name__)

DASHBOARD_TICKET_LIMIT = 5


@dataclass
class DashboardData:
    user_stats: UserStats
    recent_users: List[RecentRegistration]
    tickets: List[TicketRow]
    system_metrics: pd.DataFrame
    user_activity: pd.DataFrame
    system_summary: SystemSummary
    loaded_at: datetime
    errors: List[str] = field(default_factory=list)

    @property
    def error(self) -> Optional[str]:
        return self.errors[0] if self.errors else None


def _collect(future: Future, endpoint: str, errors: List[str]) -> List[Dict[str, Any]]:
    try:
        records = future.result()
    except ApiError as exc:
        logger.error("Error fetching from %s: %s", endpoint, exc)
        errors.append(str(exc))
        return []
    if not isinstance(records, list):
        logger.error("Unexpected payload from %s: %r", endpoint, type(records).__name__)
        errors.append(f"Unexpected response from {endpoint}")
        return []
    return records


def load_dashboard_data(
    client,
    metrics_source: Optional[MetricsSource] = None,
    now: Optional[datetime] = None,
) -> DashboardData:
    """Fetch users and tickets and derive everything the page renders."""

    now = local_now(now)
    metrics_source = metrics_source or MockMetricsSource()
    errors: List[str] = []

    with ThreadPoolExecutor(max_workers=2) as pool:
        users_future = pool.submit(client.list_users)
        tickets_future = pool.submit(client.list_support_tickets)
        users_raw = _collect(users_future, "/api/users", errors)
        tickets_raw = _collect(tickets_future, "/api/support-tickets", errors)

    users = [normalize_user(raw) for raw in users_raw]
    tickets = [normalize_ticket(raw) for raw in tickets_raw]
    logger.info("Loaded %d users and %d tickets", len(users), len(tickets))

    return DashboardData(
        user_stats=compute_user_stats(users, now),
        recent_users=recent_registrations(users, now),
        tickets=tickets,
        system_metrics=metrics_source.system_metrics(now),
        user_activity=metrics_source.user_activity(now),
        system_summary=metrics_source.system_summary(),
        loaded_at=now,
        errors=errors,
    )
