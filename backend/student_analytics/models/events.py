"""Interaction event model for the student analytics log.

One InteractionEvent per NDJSON line. The on-disk keys are camelCase
(``taskId``, ``eventType`` ...) so logs written by the editor extension and
by this package are interchangeable.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

# turn_index used by code_edit / file_save, which never consume a turn
NO_TURN_INDEX = -1


class TaskCategory(str, Enum):
    ALGORITHM = "algorithm"
    DEBUGGING = "debugging"
    EXPLANATION = "explanation"
    LANGUAGE_REQUEST = "language_request"
    CODE_GENERATION = "code_generation"
    REFACTORING = "refactoring"
    TESTING = "testing"
    OTHER = "other"


# Fixed denominator for exploration breadth
ALL_CATEGORIES: tuple[str, ...] = tuple(c.value for c in TaskCategory)


class LanguageHint(str, Enum):
    CPP = "cpp"
    PYTHON = "python"
    JAVA = "java"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    C = "c"
    UNKNOWN = "unknown"


class EventType(str, Enum):
    TASK_START = "task_start"
    TURN_MESSAGE = "turn_message"
    CODE_EDIT = "code_edit"
    FILE_SAVE = "file_save"
    ADOPTION_INFER = "adoption_infer"


CONVERSATION_EVENT_TYPES = (EventType.TASK_START.value, EventType.TURN_MESSAGE.value)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class SuggestionType(str, Enum):
    CODE_GENERATION = "code_generation"  # write_to_file
    CODE_EDIT = "code_edit"              # replace_in_file / apply_patch
    EXPLANATION = "explanation"          # plain text, no tools
    QUESTION = "question"                # ask_followup_question
    COMPLETION = "completion"            # attempt_completion
    COMMAND = "command"                  # execute_command
    MIXED = "mixed"
    OTHER = "other"


class AdoptionStatus(str, Enum):
    ADOPTED = "adopted"
    REJECTED = "rejected"
    CONTINUED = "continued"
    UNKNOWN = "unknown"


def now_iso() -> str:
    """UTC timestamp in the log's ISO 8601 format (millisecond precision, Z suffix)."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# python attribute -> wire key
_WIRE_KEYS: dict[str, str] = {
    "ts": "ts",
    "task_id": "taskId",
    "event_type": "eventType",
    "role": "role",
    "category": "category",
    "content_length": "contentLength",
    "has_code": "hasCode",
    "language_hint": "languageHint",
    "image_count": "imageCount",
    "file_count": "fileCount",
    "turn_index": "turnIndex",
    "raw_content": "rawContent",
    "suggestion_type": "suggestionType",
    "tools_used": "toolsUsed",
    "file_path": "filePath",
    "change_delta": "changeDelta",
    "adoption_status": "adoptionStatus",
}


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _as_int(value: Any, default: Optional[int]) -> Optional[int]:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return default


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


@dataclass
class InteractionEvent:
    """A single record of the student interaction log.

    ``role`` is only meaningful for conversational events; ``suggestion_type``
    and ``tools_used`` only on assistant turns; ``file_path`` / ``change_delta``
    only on edit events; ``adoption_status`` only on adoption_infer events.
    """

    task_id: str
    event_type: str
    ts: str = field(default_factory=now_iso)
    role: Optional[str] = None
    category: Optional[str] = None
    content_length: int = 0
    has_code: bool = False
    language_hint: str = LanguageHint.UNKNOWN.value
    image_count: int = 0
    file_count: int = 0
    turn_index: Optional[int] = None
    raw_content: Optional[str] = None
    suggestion_type: Optional[str] = None
    tools_used: Optional[list[str]] = None
    file_path: Optional[str] = None
    change_delta: Optional[int] = None
    adoption_status: Optional[str] = None

    def __post_init__(self) -> None:
        # Accept enum members anywhere a plain string is stored
        for name in ("event_type", "role", "category", "language_hint",
                     "suggestion_type", "adoption_status"):
            setattr(self, name, _enum_value(getattr(self, name)))

    @property
    def is_conversation(self) -> bool:
        return self.event_type in CONVERSATION_EVENT_TYPES

    def to_dict(self) -> dict[str, Any]:
        """Wire representation; unset optional fields are omitted."""
        d: dict[str, Any] = {}
        for attr, key in _WIRE_KEYS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            d[key] = list(value) if attr == "tools_used" else value
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InteractionEvent:
        """Build an event from a wire dict, treating bad optional fields as absent."""
        tools = data.get("toolsUsed")
        if isinstance(tools, list):
            tools = [str(t) for t in tools]
        else:
            tools = None

        return cls(
            ts=data.get("ts") if isinstance(data.get("ts"), str) else "",
            task_id=str(data.get("taskId", "") or ""),
            event_type=str(data.get("eventType", "") or ""),
            role=_as_str(data.get("role")),
            category=_as_str(data.get("category")),
            content_length=_as_int(data.get("contentLength"), 0),
            has_code=data.get("hasCode") is True,
            language_hint=_as_str(data.get("languageHint")) or LanguageHint.UNKNOWN.value,
            image_count=_as_int(data.get("imageCount"), 0),
            file_count=_as_int(data.get("fileCount"), 0),
            turn_index=_as_int(data.get("turnIndex"), None),
            raw_content=_as_str(data.get("rawContent")),
            suggestion_type=_as_str(data.get("suggestionType")),
            tools_used=tools,
            file_path=_as_str(data.get("filePath")),
            change_delta=_as_int(data.get("changeDelta"), None),
            adoption_status=_as_str(data.get("adoptionStatus")),
        )

    @classmethod
    def from_json(cls, line: str) -> InteractionEvent:
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError("log record is not a JSON object")
        return cls.from_dict(data)
