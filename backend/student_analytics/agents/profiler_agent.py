"""Profiler Agent — serves the student's competency profile over uAgents.

- Recomputes the profile from the full event log on startup and every
  PROFILER_RECOMPUTE_INTERVAL seconds, caching it in Redis with a TTL
- Answers ProfileQuery with StudentProfileReport (cached unless refresh=True)
- Implements Chat Protocol so the profile can be asked for in plain text

Usage:
    python -m student_analytics.agents.profiler_agent
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import redis
from uagents import Agent, Context

from student_analytics.agents.protocols import create_chat_protocol
from student_analytics.config.settings import (
    AGENT_DEPLOY_MODE,
    AGENT_ENDPOINT_BASE,
    PROFILE_CACHE_TTL,
    PROFILER_AGENT_PORT,
    PROFILER_AGENT_SEED,
    PROFILER_RECOMPUTE_INTERVAL,
    REDIS_URL,
    STUDENT_ID,
)
from student_analytics.data_pipeline.redis_store import RedisEventStore
from student_analytics.data_pipeline.stores import open_event_store
from student_analytics.engine.profiler import StudentProfiler
from student_analytics.models.messages import ProfileQuery, StudentProfileReport
from student_analytics.models.profile import STYLE_DESCRIPTIONS, StudentProfile

logger = logging.getLogger(__name__)


def build_report(student_id: str, profile: StudentProfile, cached: bool = False) -> StudentProfileReport:
    return StudentProfileReport(
        student_id=student_id,
        learning_style=profile.learning_style,
        style_confidence=profile.style_confidence,
        dominant_category=profile.dominant_category,
        metrics=profile.metrics(),
        total_tasks=profile.total_tasks,
        total_interactions=profile.total_interactions,
        avg_turns_per_task=profile.avg_turns_per_task,
        generated_at=profile.generated_at,
        time_range={"start": profile.time_range.start, "end": profile.time_range.end},
        cached=cached,
    )


def describe_profile(profile: StudentProfile) -> str:
    """One-paragraph chat answer."""
    if profile.total_interactions == 0:
        return "No interactions have been recorded yet, so there is no profile to report."
    return (
        f"Learning style: {profile.learning_style} "
        f"({profile.style_confidence * 100:.1f}% confidence). "
        f"{STYLE_DESCRIPTIONS.get(profile.learning_style, '')} "
        f"Across {profile.total_tasks} task(s), averaging {profile.avg_turns_per_task:.2f} turns each, "
        f"mostly {profile.dominant_category}. "
        f"AI dependency {profile.ai_dependency_score:.2f}, "
        f"adoption rate {profile.adoption_rate:.2f}, "
        f"self-modification {profile.self_modification_rate:.2f}."
    )


class ProfileService:
    """Cache-first profile computation shared by the agent's handlers."""

    def __init__(self, store, cache: RedisEventStore, profiler: Optional[StudentProfiler] = None):
        self.store = store
        self.cache = cache
        self.profiler = profiler or StudentProfiler()

    def recompute(self) -> StudentProfile:
        profile = self.profiler.generate(self.store.read_all())
        self.cache.cache_profile(profile, PROFILE_CACHE_TTL)
        logger.info("Profile recomputed: %s (%.3f) over %d interactions",
                    profile.learning_style, profile.style_confidence, profile.total_interactions)
        return profile

    def get(self, refresh: bool = False) -> tuple[StudentProfile, bool]:
        """(profile, served_from_cache)."""
        if not refresh:
            cached = self.cache.get_cached_profile()
            if cached is not None:
                return cached, True
        return self.recompute(), False


def create_profiler_agent(
    port: int = PROFILER_AGENT_PORT,
    student_id: str = STUDENT_ID,
    store=None,
    r: redis.Redis | None = None,
) -> Agent:
    """Create and configure the Profiler Agent for one student."""
    agent = Agent(
        name="student_profiler",
        seed=PROFILER_AGENT_SEED,
        port=port,
        endpoint=[f"{AGENT_ENDPOINT_BASE}:{port}/submit"] if AGENT_DEPLOY_MODE == "local" else [],
        mailbox=AGENT_DEPLOY_MODE == "agentverse",
    )

    # Lazily initialized so the agent can be built without Redis running
    _state: Dict[str, Any] = {"service": None}

    def _get_service() -> ProfileService:
        if _state["service"] is None:
            client = r or redis.Redis.from_url(REDIS_URL, decode_responses=True)
            _state["service"] = ProfileService(
                store=store or open_event_store(student_id=student_id, r=client),
                cache=RedisEventStore(student_id, client),
            )
        return _state["service"]

    # ── Startup ──────────────────────────────────────────────────────────

    @agent.on_event("startup")
    async def on_startup(ctx: Context):
        logger.info("Profiler Agent starting — address: %s", agent.address)
        profile = _get_service().recompute()
        ctx.storage.set("last_style", profile.learning_style)
        ctx.storage.set("recompute_count", "1")

    # ── Periodic recompute ───────────────────────────────────────────────

    @agent.on_interval(period=PROFILER_RECOMPUTE_INTERVAL)
    async def periodic_recompute(ctx: Context):
        profile = _get_service().recompute()
        previous = ctx.storage.get("last_style")
        if previous and previous != profile.learning_style:
            logger.info("Learning style changed: %s -> %s", previous, profile.learning_style)
        ctx.storage.set("last_style", profile.learning_style)
        count = int(ctx.storage.get("recompute_count") or "0") + 1
        ctx.storage.set("recompute_count", str(count))

    # ── Queries ──────────────────────────────────────────────────────────

    @agent.on_message(ProfileQuery, replies=StudentProfileReport)
    async def handle_profile_query(ctx: Context, sender: str, msg: ProfileQuery):
        logger.info("ProfileQuery (%s) for %s from %s", msg.query_type, msg.student_id, sender)
        if msg.student_id != student_id:
            # One agent per student: unknown ids get an empty profile
            logger.warning("ProfileQuery for unknown student %s", msg.student_id)
            profile, cached = StudentProfiler().generate([]), False
        else:
            profile, cached = _get_service().get(refresh=msg.refresh)
        await ctx.send(sender, build_report(msg.student_id, profile, cached))

    # ── Chat Protocol ────────────────────────────────────────────────────

    async def _chat_handler(ctx: Context, sender: str, text: str) -> str:
        refresh = "refresh" in text.lower()
        profile, _ = _get_service().get(refresh=refresh)
        return describe_profile(profile)

    chat_proto = create_chat_protocol(
        "Student Profiler",
        "Profiles how a student works with an AI coding assistant: dependency, adoption, editing and learning style",
        _chat_handler,
    )
    agent.include(chat_proto, publish_manifest=True)

    return agent


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s  %(levelname)-7s  %(name)-22s  %(message)s",
        datefmt="%H:%M:%S",
    )
    create_profiler_agent().run()
