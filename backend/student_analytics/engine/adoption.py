"""Adoption Tracker — infers whether a student adopted each AI suggestion.

Weak, local signals only (no NLP):

1. Code edit / file save after an assistant turn that contained code → adopted
2. Assistant declared the task complete → adopted
3. Student follows up on the same topic → continued
4. Student changes topic without touching code → rejected
5. Timeout or no follow-up message → adopted if code was touched, else unknown

At most one assistant turn per task waits for a verdict. Registering a newer
turn settles the older one first. The tracker never schedules itself: the
capture pipeline polls ``expired_task_ids()`` and calls ``finalize_if_pending``.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional

from student_analytics.config.settings import ADOPTION_TIMEOUT_MS
from student_analytics.models.events import AdoptionStatus, SuggestionType

logger = logging.getLogger(__name__)


@dataclass
class PendingAssistantTurn:
    """Most recent assistant turn of a task that has not been judged yet."""
    ts: str
    task_id: str
    turn_index: int
    suggestion_type: str
    has_code: bool
    has_code_edit: bool = False
    has_file_save: bool = False
    created_at: float = 0.0  # clock() seconds, for the timeout


class AdoptionTracker:
    """Per-task adoption state machine.

    All mutations of the pending table happen under one lock, so calls for
    the same task id are serialized regardless of the calling thread.
    """

    def __init__(
        self,
        timeout_ms: int = ADOPTION_TIMEOUT_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout_ms = timeout_ms
        self._clock = clock
        self._pending: dict[str, PendingAssistantTurn] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._pending)

    def register_assistant_turn(
        self,
        task_id: str,
        turn_index: int,
        suggestion_type: str,
        has_code: bool,
        ts: str,
    ) -> Optional[AdoptionStatus]:
        """Start waiting on a new assistant turn.

        Returns the behavior-only verdict of the turn it replaces, or None if
        nothing was pending for the task.
        """
        with self._lock:
            previous = self._settle_by_behavior(task_id)
            self._pending[task_id] = PendingAssistantTurn(
                ts=ts,
                task_id=task_id,
                turn_index=turn_index,
                suggestion_type=getattr(suggestion_type, "value", suggestion_type),
                has_code=has_code,
                created_at=self._clock(),
            )
        return previous

    def on_code_edit(self, task_id: str) -> None:
        with self._lock:
            pending = self._pending.get(task_id)
            if pending:
                pending.has_code_edit = True

    def on_file_save(self, task_id: str) -> None:
        with self._lock:
            pending = self._pending.get(task_id)
            if pending:
                pending.has_file_save = True

    def on_user_message(self, task_id: str, is_same_topic: bool) -> AdoptionStatus:
        """Judge the pending turn now that the student has replied."""
        with self._lock:
            pending = self._pending.pop(task_id, None)
        if pending is None:
            return AdoptionStatus.UNKNOWN

        status = infer_adoption(pending, is_same_topic)
        logger.debug("Task %s turn %d judged %s on user message",
                     task_id, pending.turn_index, status.value)
        return status

    def finalize_if_pending(self, task_id: str) -> AdoptionStatus:
        """Settle the pending turn without a follow-up message (task end / timeout)."""
        with self._lock:
            status = self._settle_by_behavior(task_id)
        return status if status is not None else AdoptionStatus.UNKNOWN

    def get_pending_turn(self, task_id: str) -> Optional[PendingAssistantTurn]:
        """Copy of the pending turn for a task, if any."""
        with self._lock:
            pending = self._pending.get(task_id)
            return replace(pending) if pending else None

    def expired_task_ids(self, now: Optional[float] = None) -> list[str]:
        """Tasks whose pending turn has waited longer than the timeout."""
        now = self._clock() if now is None else now
        limit = self.timeout_ms / 1000.0
        with self._lock:
            return [
                tid for tid, p in self._pending.items()
                if now - p.created_at > limit
            ]

    def clear(self) -> None:
        with self._lock:
            self._pending.clear()

    @staticmethod
    def is_same_topic(prev_category: Optional[str], current_category: Optional[str]) -> bool:
        """Same topic iff both categories are known and equal."""
        if not prev_category or not current_category:
            return False
        return getattr(prev_category, "value", prev_category) == getattr(
            current_category, "value", current_category
        )

    # -- internals (caller holds the lock) --

    def _settle_by_behavior(self, task_id: str) -> Optional[AdoptionStatus]:
        pending = self._pending.pop(task_id, None)
        if pending is None:
            return None
        status = infer_adoption_by_behavior(pending)
        logger.debug("Task %s turn %d settled %s by behavior",
                     task_id, pending.turn_index, status.value)
        return status


def infer_adoption(pending: PendingAssistantTurn, is_same_topic: bool) -> AdoptionStatus:
    """Message-arrival rule; first match wins."""
    touched = pending.has_code_edit or pending.has_file_save

    if pending.has_code and touched:
        return AdoptionStatus.ADOPTED

    if pending.suggestion_type == SuggestionType.COMPLETION.value:
        return AdoptionStatus.ADOPTED

    if is_same_topic:
        return AdoptionStatus.CONTINUED

    if not touched:
        return AdoptionStatus.REJECTED

    # Edited, then moved on to something else
    return AdoptionStatus.ADOPTED


def infer_adoption_by_behavior(pending: PendingAssistantTurn) -> AdoptionStatus:
    """Behavior-only rule. Never rejects: silence is not proof of rejection."""
    if pending.has_code_edit or pending.has_file_save:
        return AdoptionStatus.ADOPTED
    return AdoptionStatus.UNKNOWN
