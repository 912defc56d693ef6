"""
Pytest configuration and shared fixtures for the Pulse analytics test suite.

Model factories, raw-record builders and a mock snapshot store, reusable
across unit, golden, integration and property-based tests.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

# Set testing environment BEFORE importing settings
os.environ["TESTING"] = "true"
os.environ.setdefault("LOG_FORMAT", "console")


from pulse.config import EngineConfig, get_settings
from pulse.models.analytics import Baseline, HealthScore, PaymentState
from pulse.models.enums import EventType, PaymentStatus, Plan
from pulse.models.events import DateRange, Event, MetricPoint
from pulse.utils.logging import configure_logging

# Fixed reference instant: a Monday, so calendar weeks line up with signup weeks
T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Pydantic model factories
# ---------------------------------------------------------------------------


def make_event(
    entity_id: str = "user_001",
    event_type: EventType = EventType.CREATION,
    timestamp: Optional[datetime] = None,
    **attributes,
) -> Event:
    """Factory function for creating test Event objects."""
    return Event(
        entity_id=entity_id,
        type=event_type,
        timestamp=timestamp or T0,
        attributes=attributes,
    )


def make_signup_journey(
    entity_id: str,
    signup_at: datetime = T0,
    week1: tuple[EventType, ...] = (),
    later: Optional[dict[int, tuple[EventType, ...]]] = None,
) -> list[Event]:
    """
    Events for one entity: a signup, week-1 activity one day after signup,
    and optional activity in later periods (period index -> event types,
    placed one day into the period).
    """
    events = [make_event(entity_id, EventType.SIGNUP, signup_at)]
    for offset, event_type in enumerate(week1):
        events.append(
            make_event(entity_id, event_type, signup_at + timedelta(days=1, minutes=offset))
        )
    for period_index, types in (later or {}).items():
        for offset, event_type in enumerate(types):
            ts = signup_at + timedelta(days=7 * period_index + 1, minutes=offset)
            events.append(make_event(entity_id, event_type, ts))
    return events


def make_history(
    values: list[float],
    end: datetime = T0,
    step: timedelta = timedelta(days=1),
) -> list[MetricPoint]:
    """Metric history whose last point is one step before ``end``."""
    start = end - step * len(values)
    return [MetricPoint(timestamp=start + step * i, value=v) for i, v in enumerate(values)]


def make_baseline(
    metric_key: str = "daily_maps_created",
    expected_value: float = 100.0,
    spread: float = 10.0,
    sample_size: int = 7,
    window_days: int = 7,
) -> Baseline:
    """Factory function for creating test Baseline objects."""
    return Baseline(
        metric_key=metric_key,
        expected_value=expected_value,
        spread=spread,
        sample_size=sample_size,
        computed_at=T0,
        window_days=window_days,
        low_confidence=sample_size < 2,
    )


def make_payment_state(
    status: PaymentStatus = PaymentStatus.CURRENT,
    failed_charges: int = 0,
    plan: Plan = Plan.PRO,
) -> PaymentState:
    return PaymentState(status=status, failed_charges=failed_charges, plan=plan)


def make_raw_record(
    user_id: str = "user_001",
    event_type: str = "mindmap_generation",
    timestamp: Optional[object] = None,
    **fields,
) -> dict:
    """Raw event-store document in the producer's camelCase shape."""
    record = {
        "userId": user_id,
        "type": event_type,
        "timestamp": timestamp if timestamp is not None else T0.isoformat(),
    }
    record.update(fields)
    return record


def window(days: int = 30, end: datetime = T0) -> DateRange:
    """Inclusive window of ``days`` ending at ``end``."""
    return DateRange.between(end - timedelta(days=days), end)


# ---------------------------------------------------------------------------
# Mock storage
# ---------------------------------------------------------------------------


class MockStorage:
    """
    Recording mock of SnapshotStore for unit tests.

    No I/O; records every call so tests can assert on persistence behavior.
    """

    def __init__(self, previous_scores: Optional[dict[str, int]] = None):
        self._previous_scores = dict(previous_scores or {})
        self.written_scores: list[HealthScore] = []
        self.snapshots: list = []
        self.score_reads: list[str] = []

    def read_previous_health_score(self, entity_id):
        self.score_reads.append(entity_id)
        return self._previous_scores.get(entity_id)

    def write_health_scores(self, scores):
        self.written_scores.extend(scores)
        return len(scores)

    def write_snapshot(self, snapshot):
        self.snapshots.append(snapshot)
        return snapshot.snapshot_id

    def read_latest_snapshot(self):
        return self.snapshots[-1] if self.snapshots else None


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session", autouse=True)
def _configure_logging():
    """Configure structlog once for the test session."""
    configure_logging(get_settings())


@pytest.fixture
def engine_config():
    """Default engine configuration."""
    return EngineConfig()


@pytest.fixture
def mock_storage():
    """Fresh MockStorage instance for each test."""
    return MockStorage()


@pytest.fixture
def signup_window():
    """Signup window covering the first day of the test calendar."""
    return DateRange.between(T0 - timedelta(hours=1), T0 + timedelta(days=1))


@pytest.fixture
def scenario_a_events():
    """
    10 signups on T0; users 0-3 export in week 1; users 0-2 are active again
    in period 1; user 9 creates one map and never returns.
    """
    events = []
    for i in range(10):
        entity_id = f"user_{i:03d}"
        week1: tuple[EventType, ...] = ()
        later = None
        if i < 4:
            week1 = (EventType.CREATION, EventType.EXPORT)
        if i < 3:
            later = {1: (EventType.EDIT,)}
        if i == 9:
            week1 = (EventType.CREATION,)
        events.extend(make_signup_journey(entity_id, T0, week1=week1, later=later))
    return events


@pytest.fixture
def raw_feed():
    """Mixed raw records: valid documents from two producers plus malformed ones."""
    return [
        make_raw_record("u1", "user_created", T0.isoformat()),
        make_raw_record("u1", "mindmap_generation", (T0 + timedelta(days=1)).isoformat(),
                        generationTimeMs=1200),
        {"user_id": "u2", "type": "signup", "created_at": int(T0.timestamp() * 1000)},
        {"uid": "u2", "type": "mindmap_export", "time": T0 + timedelta(days=2),
         "data": {"status": "completed"}},
        make_raw_record("u1", "token_burn", (T0 + timedelta(days=1)).isoformat(),
                        promptTokens=100, completionTokens=50, cost=0.02, model="gpt-4o"),
        {"type": "mindmap_edit", "timestamp": T0.isoformat()},
        {"userId": "u3", "type": "mindmap_edit"},
        {"userId": "u3", "type": "mindmap_edit", "timestamp": "not a date"},
    ]
