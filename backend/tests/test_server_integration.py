"""Integration tests for FastAPI server endpoints.

Uses httpx.AsyncClient with ASGITransport to test the REST API
without starting a real server. Redis is patched to use fakeredis and the
event log lives in a temporary workspace.
"""

import pytest
import pytest_asyncio
import fakeredis
from unittest.mock import patch
from httpx import AsyncClient, ASGITransport

from student_analytics import server
from student_analytics.data_pipeline.log_store import StudentLogStore


@pytest.fixture
def fake_redis():
    """Create a shared fakeredis instance for this test."""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def log_path_store(tmp_path):
    return StudentLogStore(tmp_path)


@pytest.fixture
def patched_app(fake_redis, log_path_store):
    """Point the server at fakeredis and a fresh capture pipeline."""
    with patch("student_analytics.server._get_redis", return_value=fake_redis):
        server.reset_session(log_path_store)
        yield server.app


@pytest_asyncio.fixture
async def client(patched_app):
    transport = ASGITransport(app=patched_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _run_code_task(client, task_id="api-t1"):
    await client.post("/api/tasks/start", json={"task_id": task_id, "text": "fix the bug"})
    await client.post(f"/api/tasks/{task_id}/assistant",
                      json={"text": "patched it", "tools_used": ["write_to_file"]})
    await client.post(f"/api/tasks/{task_id}/edits", json={"file_path": "src/a.py", "delta": 12})


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["redis"] is True
        assert data["pending_turns"] == 0
        assert data["buffered_edits"] == 0


class TestTaskLifecycle:
    @pytest.mark.asyncio
    async def test_start_task_generates_id(self, client):
        resp = await client.post("/api/tasks/start", json={"text": "排序算法的时间复杂度", "images": 1})
        assert resp.status_code == 200
        data = resp.json()
        assert data["task_id"]
        assert data["event"]["eventType"] == "task_start"
        assert data["event"]["category"] == "algorithm"
        assert data["event"]["imageCount"] == 1
        assert data["event"]["turnIndex"] == 0
        assert data["adoption"] is None

    @pytest.mark.asyncio
    async def test_assistant_turn(self, client):
        await client.post("/api/tasks/start", json={"task_id": "api-t1", "text": "fix the bug"})
        resp = await client.post("/api/tasks/api-t1/assistant",
                                 json={"text": "patched it", "tools_used": ["write_to_file"]})
        event = resp.json()["event"]
        assert event["role"] == "assistant"
        assert event["suggestionType"] == "code_generation"
        assert event["hasCode"] is True
        assert event["category"] == "debugging"
        assert event["turnIndex"] == 1

    @pytest.mark.asyncio
    async def test_edit_then_new_topic_is_adopted(self, client):
        await _run_code_task(client)
        resp = await client.post("/api/tasks/api-t1/messages", json={"text": "排序算法"})
        data = resp.json()
        assert data["adoption"]["adoptionStatus"] == "adopted"
        assert data["adoption"]["turnIndex"] == 1
        assert data["event"]["turnIndex"] == 2

    @pytest.mark.asyncio
    async def test_untouched_reply_then_new_topic_is_rejected(self, client):
        await client.post("/api/tasks/start", json={"task_id": "api-t1", "text": "fix the bug"})
        await client.post("/api/tasks/api-t1/assistant", json={"text": "Check the input"})
        resp = await client.post("/api/tasks/api-t1/messages", json={"text": "排序算法"})
        assert resp.json()["adoption"]["adoptionStatus"] == "rejected"

    @pytest.mark.asyncio
    async def test_edit_is_buffered(self, client):
        await _run_code_task(client)
        resp = await client.post("/api/tasks/api-t1/edits", json={"file_path": "src/a.py", "delta": -2})
        data = resp.json()
        assert data["accepted"] is True
        assert data["buffered_edits"] == 1

    @pytest.mark.asyncio
    async def test_ignored_edit_not_accepted(self, client):
        await client.post("/api/tasks/start", json={"task_id": "api-t1", "text": "x"})
        resp = await client.post("/api/tasks/api-t1/edits",
                                 json={"file_path": "/ws/node_modules/a.js", "delta": 1})
        assert resp.json()["accepted"] is False

    @pytest.mark.asyncio
    async def test_save_is_recorded(self, client):
        await client.post("/api/tasks/start", json={"task_id": "api-t1", "text": "x"})
        resp = await client.post("/api/tasks/api-t1/saves",
                                 json={"file_path": "Main.java", "content": ""})
        data = resp.json()
        assert data["accepted"] is True
        assert data["event"]["eventType"] == "file_save"
        assert data["event"]["languageHint"] == "java"

    @pytest.mark.asyncio
    async def test_end_task_flushes_and_settles(self, client, log_path_store):
        await _run_code_task(client)
        resp = await client.post("/api/tasks/api-t1/end")
        data = resp.json()
        assert data["flushed_edits"] == 1
        assert data["adoption"]["adoptionStatus"] == "adopted"

        types = [e.event_type for e in log_path_store.read_all()]
        assert types == ["task_start", "turn_message", "code_edit", "adoption_infer"]
        edit = log_path_store.read_all()[2]
        assert edit.change_delta == 12
        assert edit.file_path.endswith("a.py")

    @pytest.mark.asyncio
    async def test_end_unknown_task(self, client):
        resp = await client.post("/api/tasks/nope/end")
        assert resp.status_code == 200
        assert resp.json() == {"task_id": "nope", "flushed_edits": 0, "adoption": None}


class TestPendingAdoption:
    @pytest.mark.asyncio
    async def test_pending_listing(self, client):
        await _run_code_task(client)
        resp = await client.get("/api/adoption/pending")
        data = resp.json()
        assert data["count"] == 1
        assert data["pending"][0]["task_id"] == "api-t1"
        assert data["pending"][0]["has_code_edit"] is True

    @pytest.mark.asyncio
    async def test_poll_once_settles_expired_and_flushes(self, client, clock):
        recorder = server._session["recorder"]
        recorder.tracker._clock = clock
        server._session["edit_tracker"].debounce_ms = 0

        await _run_code_task(client)
        clock.advance(120)
        assert server.poll_once() == {"finalized": 1, "flushed": 1}
        assert (await client.get("/api/adoption/pending")).json()["count"] == 0


class TestProfileAndStats:
    @pytest.mark.asyncio
    async def test_profile_empty_log(self, client):
        resp = await client.get("/api/profile")
        data = resp.json()
        assert data["cached"] is False
        assert data["profile"]["learning_style"] == "Balanced"
        assert data["profile"]["style_confidence"] == 0.0

    @pytest.mark.asyncio
    async def test_profile_cached_then_refreshed(self, client):
        await _run_code_task(client)
        first = (await client.get("/api/profile")).json()
        assert first["cached"] is False
        assert first["profile"]["total_tasks"] == 1

        second = (await client.get("/api/profile")).json()
        assert second["cached"] is True

        await client.post("/api/tasks/start", json={"task_id": "api-t2", "text": "解释一下"})
        refreshed = (await client.get("/api/profile", params={"refresh": "true"})).json()
        assert refreshed["cached"] is False
        assert refreshed["profile"]["total_tasks"] == 2

    @pytest.mark.asyncio
    async def test_stats(self, client):
        await _run_code_task(client)
        await client.post("/api/tasks/api-t1/end")
        data = (await client.get("/api/stats")).json()
        assert data["store"]["line_count"] == 4
        analysis = data["analysis"]
        assert analysis["total_records"] == 4
        assert analysis["unique_task_ids"] == 1
        assert analysis["total_code_edits"] == 1
        assert analysis["adoption_rate"] == 1.0
        assert analysis["category_distribution"] == {"debugging": 2}
