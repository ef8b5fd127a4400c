import random
from datetime import datetime, timedelta

from system_metrics import MetricsSource, MockMetricsSource, hourly_buckets


NOW = datetime(2024, 3, 15, 12, 0).astimezone()


def test_hourly_buckets_end_one_hour_before_now():
    buckets = hourly_buckets(NOW)
    assert len(buckets) == 24
    assert buckets[0] == NOW - timedelta(hours=24)
    assert buckets[-1] == NOW - timedelta(hours=1)
    assert buckets == sorted(buckets)


def test_system_metrics_ranges():
    source = MockMetricsSource(random.Random(7))
    frame = source.system_metrics(NOW)

    assert len(frame) == 24
    assert frame["CPU Usage"].between(20, 50, inclusive="left").all()
    assert frame["Memory Usage"].between(30, 70, inclusive="left").all()
    assert frame["Requests"].between(50, 199).all()
    assert all(isinstance(value, int) for value in frame["Requests"].tolist())
    assert frame["Time"].iloc[-1] == "11:00"


def test_user_activity_random_walk_is_floored():
    source = MockMetricsSource(random.Random(3))
    frame = source.user_activity(NOW)

    counts = frame["Active Users"].tolist()
    assert len(counts) == 24
    assert min(counts) >= 50
    assert 90 <= counts[0] < 160
    for previous, current in zip(counts, counts[1:]):
        assert abs(current - previous) <= 11


def test_seeded_sources_are_reproducible():
    first = MockMetricsSource(random.Random(11)).system_metrics(NOW)
    second = MockMetricsSource(random.Random(11)).system_metrics(NOW)
    assert first.equals(second)


def test_mock_source_implements_interface():
    source = MockMetricsSource()
    assert isinstance(source, MetricsSource)
    summary = source.system_summary()
    assert summary.uptime == "99.9%"
    assert summary.response_time == "45ms"


class FlatRandom:
    """Always draws the bottom of the range."""

    def random(self):
        return 0.0


def test_user_activity_bottoms_out_at_floor():
    frame = MockMetricsSource(FlatRandom()).user_activity(NOW)

    counts = frame["Active Users"].tolist()
    assert counts[:6] == [90, 80, 70, 60, 50, 50]
    assert min(counts) == 50
    assert counts[-1] == 50
