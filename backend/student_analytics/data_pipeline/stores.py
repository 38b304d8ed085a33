"""Event store selection from configuration."""

from __future__ import annotations

from pathlib import Path

import redis

from student_analytics.config.settings import EVENT_STORE_BACKEND, STUDENT_ID, WORKSPACE_DIR
from student_analytics.data_pipeline.log_store import StudentLogStore
from student_analytics.data_pipeline.redis_store import RedisEventStore


def open_event_store(
    backend: str = EVENT_STORE_BACKEND,
    student_id: str = STUDENT_ID,
    workspace_dir: str | Path = WORKSPACE_DIR,
    r: redis.Redis | None = None,
) -> StudentLogStore | RedisEventStore:
    """``file`` → NDJSON log under the workspace; ``redis`` → per-student Redis list."""
    if backend == "file":
        return StudentLogStore(workspace_dir)
    if backend == "redis":
        return RedisEventStore(student_id, r)
    raise ValueError(f"Unknown event store backend: {backend!r} (expected 'file' or 'redis')")
