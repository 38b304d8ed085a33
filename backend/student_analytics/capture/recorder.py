"""Session recorder — turns raw assistant-session activity into logged events.

Owns the per-task bookkeeping the adoption tracker and the profiler rely on:

- turn indices (task_start is turn 0, every message after it takes the next)
- the last user category of each task, for same-topic detection
- the suggestion kind of each assistant turn, derived from the tools it used

Every adoption verdict the tracker produces is written back to the store as
an ``adoption_infer`` event, including verdicts for turns superseded by a newer
assistant turn and turns settled at task end or timeout.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from student_analytics.data_pipeline.classifiers import ContentAnalyzer, TaskClassifier
from student_analytics.engine.adoption import AdoptionTracker, PendingAssistantTurn
from student_analytics.models.events import (
    NO_TURN_INDEX,
    AdoptionStatus,
    EventType,
    InteractionEvent,
    LanguageHint,
    MessageRole,
    SuggestionType,
    TaskCategory,
)

logger = logging.getLogger(__name__)

# Tool name -> kind of suggestion it represents
TOOL_SUGGESTION_TYPES: dict[str, str] = {
    "write_to_file": SuggestionType.CODE_GENERATION.value,
    "replace_in_file": SuggestionType.CODE_EDIT.value,
    "apply_patch": SuggestionType.CODE_EDIT.value,
    "ask_followup_question": SuggestionType.QUESTION.value,
    "attempt_completion": SuggestionType.COMPLETION.value,
    "execute_command": SuggestionType.COMMAND.value,
}

# Tools whose use means the turn delivered code, whatever the message text says
CODE_WRITING_TOOLS = frozenset({"write_to_file", "replace_in_file", "apply_patch"})

# Leading slice of a saved file used for language detection
SAVE_SNIFF_CHARS = 500


class EventStore(Protocol):
    def append(self, event: InteractionEvent) -> None: ...
    def append_batch(self, events: Iterable[InteractionEvent]) -> None: ...
    def read_all(self) -> list[InteractionEvent]: ...


def suggestion_type_for_tools(tools_used: Optional[Iterable[str]]) -> str:
    """Classify an assistant turn by the tools it invoked.

    No tools is a plain explanation. Tools with no known kind (reads,
    searches) only decide the result when nothing else was used.
    """
    tools = list(tools_used or [])
    if not tools:
        return SuggestionType.EXPLANATION.value
    kinds = {TOOL_SUGGESTION_TYPES[t] for t in tools if t in TOOL_SUGGESTION_TYPES}
    if not kinds:
        return SuggestionType.OTHER.value
    if len(kinds) == 1:
        return kinds.pop()
    return SuggestionType.MIXED.value


@dataclass
class Recorded:
    """Result of one recorder call: the event written, plus any verdict it settled."""
    event: Optional[InteractionEvent]
    adoption: Optional[InteractionEvent] = None


class SessionRecorder:
    def __init__(
        self,
        store: EventStore,
        tracker: AdoptionTracker,
        classifier: TaskClassifier,
        analyzer: ContentAnalyzer,
    ):
        self.store = store
        self.tracker = tracker
        self.classifier = classifier
        self.analyzer = analyzer
        self._turns: dict[str, int] = {}
        self._last_category: dict[str, str] = {}
        self._lock = threading.RLock()

    # ── Conversation ────────────────────────────────────────────────────

    def start_task(
        self,
        task_id: str,
        text: str = "",
        images: int = 0,
        files: int = 0,
    ) -> Recorded:
        """Open (or restart) a task with the student's initial request."""
        with self._lock:
            adoption = self._settle(task_id)
            self._turns[task_id] = 0
        event = self._message_event(
            task_id, EventType.TASK_START, MessageRole.USER, text, images, files,
        )
        self.store.append_batch([e for e in (adoption, event) if e is not None])
        logger.info("Task %s started (%s, %s)", task_id, event.category, event.language_hint)
        return Recorded(event, adoption)

    def record_user_message(
        self,
        task_id: str,
        text: str,
        images: int = 0,
        files: int = 0,
    ) -> Recorded:
        """Log a follow-up message and judge the assistant turn it answers."""
        category = self.classifier.classify(text)
        with self._lock:
            prev_category = self._last_category.get(task_id)
            same_topic = AdoptionTracker.is_same_topic(prev_category, category)
            pending = self.tracker.get_pending_turn(task_id)
            status = self.tracker.on_user_message(task_id, same_topic)
            adoption = self._adoption_event(pending, status) if pending else None

        event = self._message_event(
            task_id, EventType.TURN_MESSAGE, MessageRole.USER, text, images, files,
            category=category,
        )
        self.store.append_batch([e for e in (adoption, event) if e is not None])
        return Recorded(event, adoption)

    def record_assistant_turn(
        self,
        task_id: str,
        text: str,
        tools_used: Optional[list[str]] = None,
    ) -> Recorded:
        """Log an assistant reply and start waiting for the student's reaction."""
        tools = list(tools_used or [])
        suggestion_type = suggestion_type_for_tools(tools)
        with self._lock:
            category = self._last_category.get(task_id, TaskCategory.OTHER.value)

        event = self._message_event(
            task_id, EventType.TURN_MESSAGE, MessageRole.ASSISTANT, text,
            category=category,
        )
        event.suggestion_type = suggestion_type
        event.tools_used = tools
        event.has_code = event.has_code or any(t in CODE_WRITING_TOOLS for t in tools)

        with self._lock:
            superseded = self.tracker.get_pending_turn(task_id)
            previous = self.tracker.register_assistant_turn(
                task_id, event.turn_index, suggestion_type, event.has_code, event.ts,
            )
        adoption = None
        if superseded is not None and previous is not None:
            adoption = self._adoption_event(superseded, previous)

        self.store.append_batch([e for e in (adoption, event) if e is not None])
        return Recorded(event, adoption)

    # ── Editor activity ─────────────────────────────────────────────────

    def note_code_edit(self, task_id: str) -> None:
        """Flag the pending turn as edited without writing an event."""
        self.tracker.on_code_edit(task_id)

    def record_code_edit(
        self,
        task_id: str,
        file_path: str,
        delta: int,
        language_hint: Optional[str] = None,
        notify: bool = True,
    ) -> Recorded:
        """Write a code_edit event.

        With ``notify=False`` the pending turn is not flagged; the edit tracker
        passes it for edits already reported when they happened.
        """
        if notify:
            self.tracker.on_code_edit(task_id)
        event = InteractionEvent(
            task_id=task_id,
            event_type=EventType.CODE_EDIT,
            role=MessageRole.USER,
            category=TaskCategory.OTHER,
            content_length=abs(delta),
            has_code=True,
            language_hint=language_hint or self.analyzer.language_from_extension(file_path),
            turn_index=NO_TURN_INDEX,
            file_path=file_path,
            change_delta=delta,
        )
        self.store.append(event)
        return Recorded(event)

    def record_file_save(self, task_id: str, file_path: str, content: str = "") -> Recorded:
        self.tracker.on_file_save(task_id)
        language = self.analyzer.infer_language(content[:SAVE_SNIFF_CHARS])
        if language == LanguageHint.UNKNOWN.value:
            language = self.analyzer.language_from_extension(file_path)
        event = InteractionEvent(
            task_id=task_id,
            event_type=EventType.FILE_SAVE,
            role=MessageRole.USER,
            category=TaskCategory.OTHER,
            content_length=len(content),
            has_code=True,
            language_hint=language,
            turn_index=NO_TURN_INDEX,
            file_path=file_path,
        )
        self.store.append(event)
        return Recorded(event)

    # ── Task boundaries ─────────────────────────────────────────────────

    def end_task(self, task_id: str) -> Recorded:
        """Settle whatever is still pending and forget the task's counters."""
        with self._lock:
            adoption = self._settle(task_id)
            self._turns.pop(task_id, None)
            self._last_category.pop(task_id, None)
        if adoption is not None:
            self.store.append(adoption)
        logger.info("Task %s ended", task_id)
        return Recorded(None, adoption)

    def finalize_expired(self, now: Optional[float] = None) -> list[InteractionEvent]:
        """Settle every pending turn that has outlived the tracker's timeout."""
        events = []
        for task_id in self.tracker.expired_task_ids(now):
            with self._lock:
                adoption = self._settle(task_id)
            if adoption is not None:
                events.append(adoption)
        if events:
            self.store.append_batch(events)
            logger.info("Finalized %d timed-out assistant turn(s)", len(events))
        return events

    def pending_summary(self) -> list[dict]:
        """Snapshot of the tracker's pending turns for the tasks seen so far."""
        with self._lock:
            task_ids = list(self._turns)
        out = []
        for tid in task_ids:
            pending = self.tracker.get_pending_turn(tid)
            if pending is not None:
                out.append({
                    "task_id": pending.task_id,
                    "turn_index": pending.turn_index,
                    "suggestion_type": pending.suggestion_type,
                    "has_code": pending.has_code,
                    "has_code_edit": pending.has_code_edit,
                    "has_file_save": pending.has_file_save,
                    "ts": pending.ts,
                })
        return out

    # ── Internals ───────────────────────────────────────────────────────

    def _next_turn(self, task_id: str) -> int:
        with self._lock:
            turn = self._turns.get(task_id, 0)
            self._turns[task_id] = turn + 1
            return turn

    def _message_event(
        self,
        task_id: str,
        event_type: EventType,
        role: MessageRole,
        text: str,
        images: int = 0,
        files: int = 0,
        category: Optional[str] = None,
    ) -> InteractionEvent:
        analysis = self.analyzer.analyze(text)
        if category is None:
            category = (
                self.classifier.classify(text) if role == MessageRole.USER
                else TaskCategory.OTHER.value
            )
        if role == MessageRole.USER:
            with self._lock:
                self._last_category[task_id] = category
        return InteractionEvent(
            task_id=task_id,
            event_type=event_type,
            role=role,
            category=category,
            content_length=analysis.content_length,
            has_code=analysis.has_code,
            language_hint=analysis.language_hint,
            image_count=images,
            file_count=files,
            turn_index=self._next_turn(task_id),
        )

    def _settle(self, task_id: str) -> Optional[InteractionEvent]:
        pending = self.tracker.get_pending_turn(task_id)
        if pending is None:
            return None
        status = self.tracker.finalize_if_pending(task_id)
        return self._adoption_event(pending, status)

    def _adoption_event(
        self,
        pending: PendingAssistantTurn,
        status: AdoptionStatus,
    ) -> InteractionEvent:
        with self._lock:
            category = self._last_category.get(pending.task_id, TaskCategory.OTHER.value)
        logger.debug("Task %s turn %d -> %s", pending.task_id, pending.turn_index, status.value)
        return InteractionEvent(
            task_id=pending.task_id,
            event_type=EventType.ADOPTION_INFER,
            role=MessageRole.ASSISTANT,
            category=category,
            has_code=pending.has_code,
            turn_index=pending.turn_index,
            suggestion_type=pending.suggestion_type,
            adoption_status=status,
        )
