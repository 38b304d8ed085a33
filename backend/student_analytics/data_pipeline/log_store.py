"""
Append-only NDJSON store for the student interaction log.

Layout: ``<cwd>/.cline-logs/student_interactions.log``, one InteractionEvent
JSON object per line. Writes never raise: a failed append is logged and the
caller carries on.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from student_analytics.config.settings import LOG_DIR_NAME, LOG_FILE_NAME
from student_analytics.models.events import InteractionEvent

logger = logging.getLogger(__name__)


def parse_log_lines(lines: Iterable[str], source: str = "log") -> list[InteractionEvent]:
    """Parse NDJSON lines, skipping blank and malformed ones with a warning."""
    events: list[InteractionEvent] = []
    skipped = 0
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            events.append(InteractionEvent.from_json(line))
        except ValueError:  # json.JSONDecodeError is a ValueError
            skipped += 1
            logger.warning("%s line %d is not a valid record, skipped", source, lineno)
    if skipped:
        logger.warning("%s: %d malformed line(s) skipped", source, skipped)
    return events


class StudentLogStore:
    """File-backed event store rooted at a workspace directory."""

    def __init__(
        self,
        cwd: str | Path,
        dir_name: str = LOG_DIR_NAME,
        file_name: str = LOG_FILE_NAME,
    ):
        self.cwd = Path(cwd)
        self.dir_name = dir_name
        self.file_name = file_name

    @property
    def log_dir(self) -> Path:
        return self.cwd / self.dir_name

    @property
    def log_path(self) -> Path:
        return self.log_dir / self.file_name

    def append(self, event: InteractionEvent) -> None:
        self.append_batch([event])

    def append_batch(self, events: Iterable[InteractionEvent]) -> None:
        lines = [e.to_json() + "\n" for e in events]
        if not lines:
            return
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.writelines(lines)
        except OSError as exc:
            logger.error("Failed to persist %d interaction event(s) to %s: %s",
                         len(lines), self.log_path, exc)

    def read_all(self) -> list[InteractionEvent]:
        """Every parseable event in file order; [] when the log does not exist."""
        try:
            with open(self.log_path, encoding="utf-8") as f:
                return parse_log_lines(f, source=str(self.log_path))
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.error("Failed to read interaction log %s: %s", self.log_path, exc)
            return []

    def exists(self) -> bool:
        return self.log_path.is_file()

    def stats(self) -> Optional[dict[str, int]]:
        """File size in bytes and number of non-empty lines, or None if unreadable."""
        try:
            size = self.log_path.stat().st_size
            with open(self.log_path, encoding="utf-8") as f:
                line_count = sum(1 for line in f if line.strip())
        except OSError:
            return None
        return {"size": size, "line_count": line_count}

