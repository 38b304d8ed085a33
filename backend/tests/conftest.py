"""Shared test fixtures for the student analytics test suite."""

import pytest
import fakeredis

from student_analytics.capture.recorder import SessionRecorder
from student_analytics.data_pipeline.classifiers import ContentAnalyzer, TaskClassifier
from student_analytics.data_pipeline.log_store import StudentLogStore
from student_analytics.engine.adoption import AdoptionTracker
from student_analytics.models.events import InteractionEvent


# ── Redis ────────────────────────────────────────────────────────────────

@pytest.fixture
def r():
    """Fresh fakeredis instance per test (decode_responses=True like production)."""
    return fakeredis.FakeRedis(decode_responses=True)


# ── Clock ────────────────────────────────────────────────────────────────

class FakeClock:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ── Event Factory ────────────────────────────────────────────────────────

@pytest.fixture
def make_event():
    """Factory fixture that creates InteractionEvent instances with sensible defaults.

    Timestamps increase by one second per call unless ``ts`` is given.

    Usage:
        evt = make_event(task_id="t1", role="assistant", has_code=True)
    """
    _counter = 0

    def _factory(**overrides):
        nonlocal _counter
        _counter += 1
        defaults = {
            "task_id": "t1",
            "event_type": "turn_message",
            "ts": f"2026-03-01T10:{_counter // 60:02d}:{_counter % 60:02d}.000Z",
            "role": "user",
            "category": "other",
            "turn_index": 0,
        }
        defaults.update(overrides)
        return InteractionEvent(**defaults)

    return _factory


# ── Pipeline ─────────────────────────────────────────────────────────────

@pytest.fixture
def log_store(tmp_path):
    """File store rooted at a temporary workspace."""
    return StudentLogStore(tmp_path)


@pytest.fixture
def tracker(clock):
    return AdoptionTracker(timeout_ms=60_000, clock=clock)


@pytest.fixture
def recorder(log_store, tracker):
    return SessionRecorder(
        store=log_store,
        tracker=tracker,
        classifier=TaskClassifier(),
        analyzer=ContentAnalyzer(),
    )
