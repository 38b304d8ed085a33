"""
Redis-backed event store and profile cache.

Keys per student:

    student:{id}:events   – LIST of InteractionEvent JSON strings (RPUSH order)
    student:{id}:profile  – STRING, last StudentProfile JSON, with TTL

Same surface as StudentLogStore so either can back the capture pipeline.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable, Optional

import redis

from student_analytics.config.settings import PROFILE_CACHE_TTL, REDIS_URL
from student_analytics.data_pipeline.log_store import parse_log_lines
from student_analytics.models.events import InteractionEvent
from student_analytics.models.profile import StudentProfile

logger = logging.getLogger(__name__)

EVENTS_KEY = "student:{student_id}:events"
PROFILE_KEY = "student:{student_id}:profile"


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


class RedisEventStore:
    def __init__(self, student_id: str, r: redis.Redis | None = None):
        self.student_id = student_id
        self.r = r or _get_redis()

    @property
    def events_key(self) -> str:
        return EVENTS_KEY.format(student_id=self.student_id)

    @property
    def profile_key(self) -> str:
        return PROFILE_KEY.format(student_id=self.student_id)

    # -- Events --

    def append(self, event: InteractionEvent) -> None:
        self.append_batch([event])

    def append_batch(self, events: Iterable[InteractionEvent]) -> None:
        payload = [e.to_json() for e in events]
        if not payload:
            return
        try:
            self.r.rpush(self.events_key, *payload)
        except redis.RedisError as exc:
            logger.error("Failed to persist %d interaction event(s) for %s: %s",
                         len(payload), self.student_id, exc)

    def read_all(self) -> list[InteractionEvent]:
        try:
            raw = self.r.lrange(self.events_key, 0, -1)
        except redis.RedisError as exc:
            logger.error("Failed to read interaction events for %s: %s", self.student_id, exc)
            return []
        lines = [v.decode() if isinstance(v, bytes) else v for v in raw]
        return parse_log_lines(lines, source=self.events_key)

    def exists(self) -> bool:
        try:
            return bool(self.r.exists(self.events_key))
        except redis.RedisError:
            return False

    def stats(self) -> Optional[dict[str, int]]:
        """Approximate byte size and event count, or None when Redis is unreachable."""
        try:
            if not self.r.exists(self.events_key):
                return None
            raw = self.r.lrange(self.events_key, 0, -1)
        except redis.RedisError:
            return None
        size = sum(len(v if isinstance(v, bytes) else v.encode("utf-8")) + 1 for v in raw)
        return {"size": size, "line_count": len(raw)}

    # -- Profile cache --

    def cache_profile(self, profile: StudentProfile, ttl: int = PROFILE_CACHE_TTL) -> None:
        try:
            self.r.set(self.profile_key, json.dumps(profile.to_dict(), ensure_ascii=False), ex=ttl)
        except redis.RedisError as exc:
            logger.error("Failed to cache profile for %s: %s", self.student_id, exc)

    def get_cached_profile(self) -> Optional[StudentProfile]:
        try:
            cached = self.r.get(self.profile_key)
        except redis.RedisError as exc:
            logger.warning("Profile cache read failed for %s: %s", self.student_id, exc)
            return None
        if not cached:
            return None
        try:
            return StudentProfile.from_dict(json.loads(cached))
        except (ValueError, TypeError) as exc:
            logger.warning("Discarding unreadable cached profile for %s: %s", self.student_id, exc)
            return None

    def clear(self) -> None:
        self.r.delete(self.events_key, self.profile_key)
