"""
System telemetry for the dashboard charts.

``MetricsSource`` is what the chart layer consumes. Only a mock source exists
today; it synthesises plausible numbers until a real metrics feed is wired in.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

import pandas as pd

from admin_records import local_now


HOURS = 24

SYSTEM_METRIC_COLUMNS = ["Timestamp", "Time", "CPU Usage", "Memory Usage", "Requests"]
USER_ACTIVITY_COLUMNS = ["Timestamp", "Time", "Active Users"]


@dataclass
class SystemSummary:
    uptime: str
    uptime_window: str
    response_time: str
    response_time_label: str


class MetricsSource(ABC):
    """Source of hourly system and user-activity metrics."""

    @abstractmethod
    def system_metrics(self, now: Optional[datetime] = None) -> pd.DataFrame:
        """Hourly CPU %, memory % and request counts, oldest bucket first."""

    @abstractmethod
    def user_activity(self, now: Optional[datetime] = None) -> pd.DataFrame:
        """Hourly active-user counts, oldest bucket first."""

    @abstractmethod
    def system_summary(self) -> SystemSummary:
        """Headline uptime and response-time figures."""


def hourly_buckets(now: Optional[datetime] = None, hours: int = HOURS) -> List[datetime]:
    now = local_now(now)
    return [now - timedelta(hours=offset) for offset in range(hours, 0, -1)]


class MockMetricsSource(MetricsSource):
    """Randomised placeholder telemetry, regenerated on every call."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    def system_metrics(self, now: Optional[datetime] = None) -> pd.DataFrame:
        rows = []
        for bucket in hourly_buckets(now):
            rows.append(
                {
                    "Timestamp": bucket,
                    "Time": bucket.strftime("%H:%M"),
                    "CPU Usage": 20 + self.rng.random() * 30,
                    "Memory Usage": 30 + self.rng.random() * 40,
                    "Requests": int(50 + self.rng.random() * 150),
                }
            )
        return pd.DataFrame(rows, columns=SYSTEM_METRIC_COLUMNS)

    def user_activity(self, now: Optional[datetime] = None) -> pd.DataFrame:
        user_count = 100 + self.rng.random() * 50
        rows = []
        for bucket in hourly_buckets(now):
            user_count = max(50, user_count + (self.rng.random() * 20 - 10))
            rows.append(
                {
                    "Timestamp": bucket,
                    "Time": bucket.strftime("%H:%M"),
                    "Active Users": int(user_count),
                }
            )
        return pd.DataFrame(rows, columns=USER_ACTIVITY_COLUMNS)

    def system_summary(self) -> SystemSummary:
        return SystemSummary(
            uptime="99.9%",
            uptime_window="Last 30 days",
            response_time="45ms",
            response_time_label="Average",
        )
