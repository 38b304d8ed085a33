"""Tests for student_analytics.capture.recorder — turn bookkeeping and adoption events."""

import pytest

from student_analytics.capture.recorder import suggestion_type_for_tools


def _types(store):
    return [e.event_type for e in store.read_all()]


def _adoptions(store):
    return [e for e in store.read_all() if e.event_type == "adoption_infer"]


class TestSuggestionTypeForTools:
    @pytest.mark.parametrize("tools,expected", [
        (None, "explanation"),
        ([], "explanation"),
        (["write_to_file"], "code_generation"),
        (["replace_in_file"], "code_edit"),
        (["apply_patch", "replace_in_file"], "code_edit"),
        (["ask_followup_question"], "question"),
        (["attempt_completion"], "completion"),
        (["execute_command"], "command"),
        (["write_to_file", "execute_command"], "mixed"),
        (["read_file", "search_files"], "other"),
        (["read_file", "write_to_file"], "code_generation"),
    ])
    def test_mapping(self, tools, expected):
        assert suggestion_type_for_tools(tools) == expected


# ═══════════════════════════════════════════════════════════════════════════
# Turns and categories
# ═══════════════════════════════════════════════════════════════════════════


class TestTurns:
    def test_turn_indices(self, recorder, log_store):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "Try this")
        recorder.record_user_message("t1", "fix the crash too")
        recorder.record_code_edit("t1", "a.py", 4)
        recorder.record_assistant_turn("t1", "Done")

        messages = [e for e in log_store.read_all() if e.is_conversation]
        assert [e.turn_index for e in messages] == [0, 1, 2, 3]
        edits = [e for e in log_store.read_all() if e.event_type == "code_edit"]
        assert edits[0].turn_index == -1

    def test_task_start_fields(self, recorder):
        rec = recorder.start_task("t1", "排序算法的时间复杂度", images=2, files=1)
        evt = rec.event
        assert evt.event_type == "task_start"
        assert evt.role == "user"
        assert evt.category == "algorithm"
        assert evt.image_count == 2
        assert evt.file_count == 1
        assert evt.content_length == len("排序算法的时间复杂度")
        assert rec.adoption is None

    def test_assistant_inherits_last_user_category(self, recorder):
        recorder.start_task("t1", "fix the bug")
        rec = recorder.record_assistant_turn("t1", "Here is how to sort it")
        assert rec.event.category == "debugging"
        assert rec.event.role == "assistant"

    def test_assistant_without_user_is_other(self, recorder):
        assert recorder.record_assistant_turn("t9", "hello").event.category == "other"

    def test_code_writing_tool_sets_has_code(self, recorder):
        recorder.start_task("t1", "write a parser")
        rec = recorder.record_assistant_turn("t1", "I wrote the file.", tools_used=["write_to_file"])
        assert rec.event.has_code is True
        assert rec.event.suggestion_type == "code_generation"
        assert rec.event.tools_used == ["write_to_file"]

    def test_tasks_are_independent(self, recorder):
        recorder.start_task("a", "fix the bug")
        recorder.start_task("b", "解释一下")
        assert recorder.record_assistant_turn("a", "x").event.turn_index == 1
        assert recorder.record_assistant_turn("b", "y").event.category == "explanation"

    def test_end_task_resets_counters(self, recorder):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "x")
        recorder.end_task("t1")
        assert recorder.start_task("t1", "fix the bug").event.turn_index == 0


# ═══════════════════════════════════════════════════════════════════════════
# Adoption events
# ═══════════════════════════════════════════════════════════════════════════


class TestAdoptionEvents:
    def test_code_then_edit_then_new_topic_is_adopted(self, recorder, log_store):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "patched", tools_used=["write_to_file"])
        recorder.record_code_edit("t1", "a.py", 10)
        rec = recorder.record_user_message("t1", "排序算法")

        assert rec.adoption.adoption_status == "adopted"
        assert rec.adoption.turn_index == 1
        assert rec.adoption.suggestion_type == "code_generation"
        assert rec.adoption.has_code is True
        assert rec.adoption.category == "debugging"
        assert _types(log_store) == [
            "task_start", "turn_message", "code_edit", "adoption_infer", "turn_message",
        ]

    def test_same_topic_is_continued(self, recorder):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "Look at line 3")
        rec = recorder.record_user_message("t1", "still failing, fix it")
        assert rec.adoption.adoption_status == "continued"

    def test_topic_change_without_edit_is_rejected(self, recorder):
        recorder.start_task("t1", "排序算法")
        recorder.record_assistant_turn("t1", "Use merge")
        rec = recorder.record_user_message("t1", "fix the crash")
        assert rec.adoption.adoption_status == "rejected"

    def test_completion_is_adopted(self, recorder):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "All done", tools_used=["attempt_completion"])
        assert recorder.record_user_message("t1", "解释一下").adoption.adoption_status == "adopted"

    def test_no_pending_turn_writes_no_adoption(self, recorder, log_store):
        recorder.start_task("t1", "fix the bug")
        rec = recorder.record_user_message("t1", "also this")
        assert rec.adoption is None
        assert _adoptions(log_store) == []

    def test_superseded_turn_is_logged(self, recorder, log_store):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "first")
        rec = recorder.record_assistant_turn("t1", "second")
        assert rec.adoption.adoption_status == "unknown"
        assert rec.adoption.turn_index == 1
        assert len(_adoptions(log_store)) == 1

    def test_note_code_edit_marks_without_event(self, recorder, log_store):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "x", tools_used=["replace_in_file"])
        recorder.note_code_edit("t1")
        assert "code_edit" not in _types(log_store)
        assert recorder.end_task("t1").adoption.adoption_status == "adopted"

    def test_end_task_without_activity_is_unknown(self, recorder, log_store):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "x")
        rec = recorder.end_task("t1")
        assert rec.event is None
        assert rec.adoption.adoption_status == "unknown"
        assert _types(log_store)[-1] == "adoption_infer"

    def test_end_task_with_nothing_pending(self, recorder, log_store):
        recorder.start_task("t1", "fix the bug")
        assert recorder.end_task("t1").adoption is None
        assert _adoptions(log_store) == []

    def test_restart_settles_pending_turn(self, recorder, log_store):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "x")
        rec = recorder.start_task("t1", "fix the bug again")
        assert rec.adoption.adoption_status == "unknown"
        assert _types(log_store)[-2:] == ["adoption_infer", "task_start"]

    def test_timeout_finalization(self, recorder, log_store, clock):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "x", tools_used=["write_to_file"])
        recorder.record_file_save("t1", "a.py", "print('x')")
        assert recorder.finalize_expired() == []
        clock.advance(61)
        events = recorder.finalize_expired()
        assert [e.adoption_status for e in events] == ["adopted"]
        assert _adoptions(log_store)[-1].adoption_status == "adopted"
        assert recorder.finalize_expired() == []

    def test_pending_summary(self, recorder):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "x", tools_used=["write_to_file"])
        recorder.note_code_edit("t1")
        (summary,) = recorder.pending_summary()
        assert summary["task_id"] == "t1"
        assert summary["turn_index"] == 1
        assert summary["has_code_edit"] is True
        assert summary["has_file_save"] is False


# ═══════════════════════════════════════════════════════════════════════════
# Editor activity
# ═══════════════════════════════════════════════════════════════════════════


class TestEditorEvents:
    def test_code_edit_event(self, recorder):
        evt = recorder.record_code_edit("t1", "src/main.cpp", -25).event
        assert evt.event_type == "code_edit"
        assert evt.role == "user"
        assert evt.category == "other"
        assert evt.content_length == 25
        assert evt.change_delta == -25
        assert evt.has_code is True
        assert evt.language_hint == "cpp"
        assert evt.file_path == "src/main.cpp"

    def test_code_edit_without_notify_leaves_turn_untouched(self, recorder):
        recorder.start_task("t1", "fix the bug")
        recorder.record_assistant_turn("t1", "patch", tools_used=["replace_in_file"])
        recorder.record_code_edit("t1", "a.py", 3, notify=False)
        assert recorder.tracker.get_pending_turn("t1").has_code_edit is False

    def test_code_edit_explicit_language(self, recorder):
        assert recorder.record_code_edit("t1", "notes", 3, language_hint="python").event.language_hint == "python"

    def test_file_save_detects_language_from_content(self, recorder):
        evt = recorder.record_file_save("t1", "script", "def main():\n    print('x')\n").event
        assert evt.event_type == "file_save"
        assert evt.language_hint == "python"
        assert evt.turn_index == -1

    def test_file_save_falls_back_to_extension(self, recorder):
        assert recorder.record_file_save("t1", "Main.java", "").event.language_hint == "java"
