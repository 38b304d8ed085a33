"""Tests for student_analytics.capture.edit_tracker — debounced code edit capture."""

import pytest

from student_analytics.capture.edit_tracker import CodeEditTracker


@pytest.fixture
def edits(recorder, clock, tmp_path):
    tracker = CodeEditTracker(recorder, debounce_ms=2000, clock=clock, workspace_dir=tmp_path)
    tracker.set_active_task("t1")
    return tracker


def _edit_events(store):
    return [e for e in store.read_all() if e.event_type == "code_edit"]


class TestIgnorePatterns:
    @pytest.mark.parametrize("path", [
        "/ws/.git/HEAD",
        "/ws/node_modules/x/index.js",
        "/ws/.cline-logs/student_interactions.log",
        "/ws/dist/bundle.js",
        "/ws/out/main.js",
        "/ws/server.log",
        "/ws/poetry.lock",
        "/ws/package-lock.json",
        "/ws/pnpm-lock.yaml",
    ])
    def test_ignored(self, path):
        assert CodeEditTracker.should_ignore(path) is True

    @pytest.mark.parametrize("path", ["/ws/src/main.py", "/ws/distance.py", "/ws/README.md"])
    def test_tracked(self, path):
        assert CodeEditTracker.should_ignore(path) is False


class TestDebounce:
    def test_changes_merge_within_window(self, edits, log_store, clock, tmp_path):
        path = str(tmp_path / "src" / "a.py")
        edits.on_document_change(path, 5)
        clock.advance(1)
        edits.on_document_change(path, -2)
        clock.advance(1.5)
        assert edits.flush_due() == []

        clock.advance(0.5)
        (evt,) = edits.flush_due()
        assert evt.change_delta == 3
        assert evt.content_length == 3
        assert evt.file_path == "src/a.py"
        assert evt.language_hint == "python"
        assert len(edits) == 0

    def test_files_are_debounced_separately(self, edits, clock, tmp_path):
        edits.on_document_change(str(tmp_path / "a.py"), 1)
        clock.advance(1.5)
        edits.on_document_change(str(tmp_path / "b.py"), 1)
        clock.advance(0.5)
        assert [e.file_path for e in edits.flush_due()] == ["a.py"]
        assert len(edits) == 1

    def test_explicit_now(self, edits, clock, tmp_path):
        edits.on_document_change(str(tmp_path / "a.py"), 1)
        assert len(edits.flush_due(now=clock.now + 2)) == 1

    def test_flush_all(self, edits, tmp_path):
        edits.on_document_change(str(tmp_path / "a.py"), 1)
        edits.on_document_change(str(tmp_path / "b.py"), 1)
        assert len(edits.flush_all()) == 2
        assert edits.flush_all() == []


class TestTaskAttribution:
    def test_no_active_task_is_dropped(self, recorder, clock, tmp_path, log_store):
        tracker = CodeEditTracker(recorder, clock=clock)
        assert tracker.on_document_change(str(tmp_path / "a.py"), 3) is False
        assert tracker.on_document_save(str(tmp_path / "a.py"), "x") is None
        assert log_store.read_all() == []

    def test_ignored_file_is_dropped(self, edits, tmp_path):
        assert edits.on_document_change(str(tmp_path / "node_modules" / "x.js"), 3) is False
        assert len(edits) == 0

    def test_change_reaches_adoption_tracker_immediately(self, recorder, edits, tmp_path):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "patch", tools_used=["replace_in_file"])
        edits.on_document_change(str(tmp_path / "a.py"), 2)
        assert recorder.tracker.get_pending_turn("t1").has_code_edit is True

    def test_flushed_edit_does_not_flag_newer_turn(self, recorder, edits, clock, tmp_path):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "first", tools_used=["replace_in_file"])
        edits.on_document_change(str(tmp_path / "a.py"), 5)
        recorder.record_assistant_turn("t1", "second")

        clock.advance(3)
        assert len(edits.flush_due()) == 1
        assert recorder.tracker.get_pending_turn("t1").has_code_edit is False

        rec = recorder.record_user_message("t1", "排序算法")
        assert rec.adoption.adoption_status == "rejected"

    def test_switching_task_flushes_other_tasks_buffer(self, edits, log_store, tmp_path):
        path = str(tmp_path / "a.py")
        edits.on_document_change(path, 4)
        edits.set_active_task("t2")
        edits.on_document_change(path, 7)

        (first,) = _edit_events(log_store)
        assert first.task_id == "t1"
        assert first.change_delta == 4
        (second,) = edits.flush_all()
        assert second.task_id == "t2"
        assert second.change_delta == 7

    def test_clear_active_task_flushes_its_edits(self, edits, log_store, tmp_path):
        edits.on_document_change(str(tmp_path / "a.py"), 4)
        flushed = edits.clear_active_task()
        assert len(flushed) == 1
        assert edits.active_task_id is None
        assert len(_edit_events(log_store)) == 1
        assert edits.clear_active_task() == []

    def test_flush_task_leaves_others(self, edits, tmp_path):
        edits.on_document_change(str(tmp_path / "a.py"), 1)
        edits.set_active_task("t2")
        edits.on_document_change(str(tmp_path / "b.py"), 1)
        assert [e.task_id for e in edits.flush_task("t1")] == ["t1"]
        assert len(edits) == 1


class TestSaves:
    def test_save_is_recorded_immediately(self, edits, log_store, tmp_path):
        evt = edits.on_document_save(str(tmp_path / "lib" / "util.ts"), "")
        assert evt.event_type == "file_save"
        assert evt.file_path == "lib/util.ts"
        assert evt.language_hint == "typescript"
        assert log_store.read_all()[-1].event_type == "file_save"

    def test_path_kept_without_workspace(self, recorder, clock):
        tracker = CodeEditTracker(recorder, clock=clock)
        tracker.set_active_task("t1")
        assert tracker.on_document_save("/abs/x.py", "").file_path == "/abs/x.py"
