"""FastAPI server exposing the capture pipeline and the student profile.

The editor integration posts session activity here (task start, messages,
assistant replies, edits, saves, task end); the server records it through a
SessionRecorder and serves the resulting profile and log statistics.

A background poller settles timed-out assistant turns and flushes debounced
edits every ADOPTION_POLL_INTERVAL seconds.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from uuid import uuid4

import redis
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from student_analytics.agents.profiler_agent import ProfileService
from student_analytics.capture.edit_tracker import CodeEditTracker
from student_analytics.capture.recorder import Recorded, SessionRecorder
from student_analytics.config.settings import (
    ADOPTION_POLL_INTERVAL,
    ADOPTION_TIMEOUT_MS,
    EDIT_DEBOUNCE_MS,
    EVENT_STORE_BACKEND,
    REDIS_URL,
    STUDENT_ID,
    WORKSPACE_DIR,
)
from student_analytics.data_pipeline.classifiers import ContentAnalyzer, TaskClassifier
from student_analytics.data_pipeline.redis_store import RedisEventStore
from student_analytics.data_pipeline.stores import open_event_store
from student_analytics.engine.adoption import AdoptionTracker
from student_analytics.engine.log_stats import summarize_log

logger = logging.getLogger(__name__)

app = FastAPI(title="Student Analytics", description="AI-assistant usage capture and student profiling")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_redis() -> redis.Redis:
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


# ── Shared State ─────────────────────────────────────────────────────────

_session: dict[str, Any] = {"recorder": None, "edit_tracker": None}
_poller_task: Optional[asyncio.Task] = None


def reset_session(store=None) -> SessionRecorder:
    """(Re)build the capture pipeline, dropping all in-memory pending state."""
    if store is None:
        store = open_event_store(r=_get_redis() if EVENT_STORE_BACKEND == "redis" else None)
    recorder = SessionRecorder(
        store=store,
        tracker=AdoptionTracker(timeout_ms=ADOPTION_TIMEOUT_MS),
        classifier=TaskClassifier(),
        analyzer=ContentAnalyzer(),
    )
    _session["recorder"] = recorder
    _session["edit_tracker"] = CodeEditTracker(
        recorder, debounce_ms=EDIT_DEBOUNCE_MS, workspace_dir=WORKSPACE_DIR,
    )
    logger.info("Capture pipeline ready (%s store)", type(store).__name__)
    return recorder


def _recorder() -> SessionRecorder:
    if _session["recorder"] is None:
        reset_session()
    return _session["recorder"]


def _edit_tracker() -> CodeEditTracker:
    _recorder()
    return _session["edit_tracker"]


def _profile_service() -> ProfileService:
    return ProfileService(
        store=_recorder().store,
        cache=RedisEventStore(STUDENT_ID, _get_redis()),
    )


def _recorded(rec: Recorded) -> dict:
    return {
        "event": rec.event.to_dict() if rec.event else None,
        "adoption": rec.adoption.to_dict() if rec.adoption else None,
    }


# ── REST Endpoints ───────────────────────────────────────────────────────

@app.get("/api/health")
async def health():
    r = _get_redis()
    try:
        r.ping()
        redis_ok = True
    except redis.RedisError:
        redis_ok = False

    return {
        "status": "ok",
        "redis": redis_ok,
        "store": EVENT_STORE_BACKEND,
        "pending_turns": len(_recorder().tracker),
        "buffered_edits": len(_edit_tracker()),
    }


class StartTaskRequest(BaseModel):
    task_id: Optional[str] = None
    text: str = ""
    images: int = 0
    files: int = 0


@app.post("/api/tasks/start")
async def start_task(req: StartTaskRequest):
    """Open a task with the student's initial request; it becomes the active task."""
    task_id = req.task_id or str(uuid4())
    rec = _recorder().start_task(task_id, req.text, images=req.images, files=req.files)
    _edit_tracker().set_active_task(task_id)
    return {"task_id": task_id, **_recorded(rec)}


class UserMessageRequest(BaseModel):
    text: str
    images: int = 0
    files: int = 0


@app.post("/api/tasks/{task_id}/messages")
async def post_user_message(task_id: str, req: UserMessageRequest):
    rec = _recorder().record_user_message(task_id, req.text, images=req.images, files=req.files)
    return {"task_id": task_id, **_recorded(rec)}


class AssistantTurnRequest(BaseModel):
    text: str = ""
    tools_used: list[str] = Field(default_factory=list)


@app.post("/api/tasks/{task_id}/assistant")
async def post_assistant_turn(task_id: str, req: AssistantTurnRequest):
    rec = _recorder().record_assistant_turn(task_id, req.text, req.tools_used)
    return {"task_id": task_id, **_recorded(rec)}


class EditRequest(BaseModel):
    file_path: str
    delta: int = 0


@app.post("/api/tasks/{task_id}/edits")
async def post_code_edit(task_id: str, req: EditRequest):
    """Buffer a document change; the code_edit event is written after the debounce window."""
    tracker = _edit_tracker()
    tracker.set_active_task(task_id)
    accepted = tracker.on_document_change(req.file_path, req.delta)
    return {"task_id": task_id, "accepted": accepted, "buffered_edits": len(tracker)}


class SaveRequest(BaseModel):
    file_path: str
    content: str = ""


@app.post("/api/tasks/{task_id}/saves")
async def post_file_save(task_id: str, req: SaveRequest):
    tracker = _edit_tracker()
    tracker.set_active_task(task_id)
    event = tracker.on_document_save(req.file_path, req.content)
    return {
        "task_id": task_id,
        "accepted": event is not None,
        "event": event.to_dict() if event else None,
    }


@app.post("/api/tasks/{task_id}/end")
async def end_task(task_id: str):
    """Flush the task's buffered edits, settle its pending turn and close it."""
    tracker = _edit_tracker()
    if tracker.active_task_id == task_id:
        edits = tracker.clear_active_task()
    else:
        edits = tracker.flush_task(task_id)
    rec = _recorder().end_task(task_id)
    return {
        "task_id": task_id,
        "flushed_edits": len(edits),
        "adoption": rec.adoption.to_dict() if rec.adoption else None,
    }


@app.get("/api/profile")
async def get_profile(refresh: bool = Query(False)):
    """Competency profile; served from the Redis cache unless refresh=true."""
    profile, cached = _profile_service().get(refresh=refresh)
    return {"student_id": STUDENT_ID, "cached": cached, "profile": profile.to_dict()}


@app.get("/api/stats")
async def get_stats():
    store = _recorder().store
    summary = summarize_log(store.read_all())
    return {"student_id": STUDENT_ID, "store": store.stats(), "analysis": summary.to_dict()}


@app.get("/api/adoption/pending")
async def get_pending_adoption():
    pending = _recorder().pending_summary()
    return {"count": len(pending), "pending": pending}


# ── Background poller ────────────────────────────────────────────────────

def poll_once() -> dict[str, int]:
    """One poller pass: settle expired turns, write out quiet edits."""
    finalized = _recorder().finalize_expired()
    flushed = _edit_tracker().flush_due()
    return {"finalized": len(finalized), "flushed": len(flushed)}


async def _adoption_poller():
    logger.info("Adoption poller started (every %.1fs)", ADOPTION_POLL_INTERVAL)
    while True:
        try:
            poll_once()
        except (OSError, redis.RedisError) as exc:
            logger.error("Adoption poller pass failed: %s", exc)
        await asyncio.sleep(ADOPTION_POLL_INTERVAL)


@app.on_event("startup")
async def start_background_tasks():
    global _poller_task
    _poller_task = asyncio.create_task(_adoption_poller())


@app.on_event("shutdown")
async def stop_background_tasks():
    if _poller_task and not _poller_task.done():
        _poller_task.cancel()
        try:
            await _poller_task
        except asyncio.CancelledError:
            pass
    # Buffered edits would otherwise be lost
    if _session["edit_tracker"] is not None:
        _session["edit_tracker"].flush_all()
