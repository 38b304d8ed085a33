"""Code edit tracker — debounced capture of student editing activity.

Document changes reach the adoption tracker immediately, so a pending
assistant turn learns it was acted on without delay. The persisted
``code_edit`` event is debounced per file: changes to one file within
``debounce_ms`` of each other merge into a single event carrying their
summed character delta.

Nothing here runs a timer. The owner calls ``flush_due()`` periodically (the
server's poller does) and ``flush_all()`` on shutdown.
"""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from student_analytics.capture.recorder import SessionRecorder
from student_analytics.config.settings import EDIT_DEBOUNCE_MS

logger = logging.getLogger(__name__)

IGNORE_PATTERNS = [
    re.compile(r"[/\\]\.git[/\\]"),
    re.compile(r"[/\\]node_modules[/\\]"),
    re.compile(r"[/\\]\.cline-logs[/\\]"),
    re.compile(r"[/\\]dist[/\\]"),
    re.compile(r"[/\\]out[/\\]"),
    re.compile(r"\.log$"),
    re.compile(r"\.lock$"),
    re.compile(r"package-lock\.json$"),
    re.compile(r"pnpm-lock\.yaml$"),
]


@dataclass
class PendingEdit:
    task_id: str
    file_path: str
    total_delta: int
    last_change: float  # clock() seconds


class CodeEditTracker:
    def __init__(
        self,
        recorder: SessionRecorder,
        debounce_ms: int = EDIT_DEBOUNCE_MS,
        clock: Callable[[], float] = time.monotonic,
        workspace_dir: Optional[str | Path] = None,
    ):
        self.recorder = recorder
        self.debounce_ms = debounce_ms
        self._clock = clock
        self.workspace_dir = Path(workspace_dir) if workspace_dir else None
        self.active_task_id: Optional[str] = None
        self._pending: dict[str, PendingEdit] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._pending)

    # ── Context ─────────────────────────────────────────────────────────

    def set_active_task(self, task_id: str) -> None:
        self.active_task_id = task_id

    def clear_active_task(self) -> list:
        """Detach from the current task, writing out its buffered edits first."""
        task_id, self.active_task_id = self.active_task_id, None
        if task_id is None:
            return []
        return self.flush_task(task_id)

    def flush_task(self, task_id: str) -> list:
        """Persist every buffered edit of one task, due or not."""
        return self._flush(lambda p: p.task_id == task_id)

    # ── Editor events ───────────────────────────────────────────────────

    @staticmethod
    def should_ignore(file_path: str) -> bool:
        return any(p.search(file_path) for p in IGNORE_PATTERNS)

    def on_document_change(self, file_path: str, delta: int) -> bool:
        """Buffer a text change; returns False when it was not attributed to a task."""
        task_id = self.active_task_id
        if task_id is None or self.should_ignore(file_path):
            return False

        now = self._clock()
        stale = None
        with self._lock:
            pending = self._pending.get(file_path)
            if pending is not None and pending.task_id == task_id:
                pending.total_delta += delta
                pending.last_change = now
            else:
                stale = pending  # buffered under another task
                self._pending[file_path] = PendingEdit(task_id, file_path, delta, now)

        if stale is not None:
            self.recorder.record_code_edit(
                stale.task_id, self._relative(stale.file_path), stale.total_delta, notify=False,
            )
        self.recorder.note_code_edit(task_id)
        return True

    def on_document_save(self, file_path: str, content: str = ""):
        """Record a save immediately; saves are never debounced."""
        task_id = self.active_task_id
        if task_id is None or self.should_ignore(file_path):
            return None
        return self.recorder.record_file_save(task_id, self._relative(file_path), content).event

    # ── Flushing ────────────────────────────────────────────────────────

    def flush_due(self, now: Optional[float] = None) -> list:
        """Persist every buffered edit that has been quiet for the debounce window."""
        now = self._clock() if now is None else now
        window = self.debounce_ms / 1000.0
        return self._flush(lambda p: now - p.last_change >= window)

    def flush_all(self) -> list:
        return self._flush(lambda p: True)

    def _flush(self, predicate: Callable[[PendingEdit], bool]) -> list:
        with self._lock:
            due = [p for p in self._pending.values() if predicate(p)]
            for p in due:
                del self._pending[p.file_path]

        events = []
        for p in due:
            rec = self.recorder.record_code_edit(
                p.task_id, self._relative(p.file_path), p.total_delta, notify=False,
            )
            events.append(rec.event)
        if events:
            logger.debug("Flushed %d debounced edit(s)", len(events))
        return events

    def _relative(self, file_path: str) -> str:
        if self.workspace_dir is None:
            return file_path
        try:
            return os.path.relpath(file_path, self.workspace_dir)
        except ValueError:
            return file_path
