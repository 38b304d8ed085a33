"""Descriptive statistics over an interaction log.

The counting side of the offline report: distributions, rates and chain
lengths. Learning-style inference lives in ``engine.profiler``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Iterable

from student_analytics.engine.profiler import UNKNOWN_CATEGORY, time_range
from student_analytics.models.events import (
    AdoptionStatus,
    EventType,
    InteractionEvent,
    MessageRole,
)
from student_analytics.models.profile import TimeRange


@dataclass
class LogStatsSummary:
    total_records: int = 0
    unique_task_ids: int = 0
    category_distribution: dict[str, int] = field(default_factory=dict)
    average_content_length: float = 0.0
    code_inclusion_rate: float = 0.0
    language_distribution: dict[str, int] = field(default_factory=dict)
    time_range: TimeRange = field(default_factory=TimeRange)
    image_usage_rate: float = 0.0
    file_usage_rate: float = 0.0
    average_turns_per_task: float = 0.0

    # Interaction chain
    assistant_output_ratio: float = 0.0
    code_generation_ratio: float = 0.0
    code_edit_rate: float = 0.0       # share of tasks with at least one edit
    adoption_rate: float = 0.0
    average_chain_length: float = 0.0  # events per task
    suggestion_type_distribution: dict[str, int] = field(default_factory=dict)
    tool_usage_distribution: dict[str, int] = field(default_factory=dict)
    total_assistant_turns: int = 0
    total_user_turns: int = 0
    total_code_edits: int = 0
    total_file_saves: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _ratio(num: int, den: int) -> float:
    return num / den if den > 0 else 0.0


def _count(values: Iterable[str]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for v in values:
        counts[v] = counts.get(v, 0) + 1
    return counts


def summarize_log(events: Iterable[InteractionEvent]) -> LogStatsSummary:
    """Compute the full statistics summary; an empty log yields all zeros."""
    logs = list(events)
    if not logs:
        return LogStatsSummary()

    task_ids = {e.task_id for e in logs}
    n_tasks = len(task_ids)

    conversation = [e for e in logs if e.is_conversation]
    n_conv = len(conversation)
    user_turns = [e for e in conversation if e.role == MessageRole.USER.value]
    assistant_turns = [e for e in conversation if e.role == MessageRole.ASSISTANT.value]
    code_edits = [e for e in logs if e.event_type == EventType.CODE_EDIT.value]
    file_saves = [e for e in logs if e.event_type == EventType.FILE_SAVE.value]

    turn_max: dict[str, int] = {}
    for e in conversation:
        turn_max[e.task_id] = max(turn_max.get(e.task_id, 0), (e.turn_index or 0) + 1)

    determined = [
        e for e in logs
        if e.event_type == EventType.ADOPTION_INFER.value
        and e.adoption_status
        and e.adoption_status != AdoptionStatus.UNKNOWN.value
    ]
    adopted = sum(1 for e in determined if e.adoption_status == AdoptionStatus.ADOPTED.value)

    tools = [t for e in assistant_turns for t in (e.tools_used or [])]

    return LogStatsSummary(
        total_records=len(logs),
        unique_task_ids=n_tasks,
        category_distribution=_count(e.category or UNKNOWN_CATEGORY for e in conversation),
        average_content_length=_ratio(sum(e.content_length or 0 for e in conversation), n_conv),
        code_inclusion_rate=_ratio(sum(1 for e in conversation if e.has_code), n_conv),
        language_distribution=_count(e.language_hint or "unknown" for e in conversation),
        time_range=time_range(logs),
        image_usage_rate=_ratio(sum(1 for e in conversation if e.image_count > 0), n_conv),
        file_usage_rate=_ratio(sum(1 for e in conversation if e.file_count > 0), n_conv),
        average_turns_per_task=_ratio(sum(turn_max.values()), n_tasks),
        assistant_output_ratio=_ratio(len(assistant_turns), n_conv),
        code_generation_ratio=_ratio(sum(1 for e in assistant_turns if e.has_code), len(assistant_turns)),
        code_edit_rate=_ratio(len({e.task_id for e in code_edits}), n_tasks),
        adoption_rate=_ratio(adopted, len(determined)),
        average_chain_length=_ratio(len(logs), n_tasks),
        suggestion_type_distribution=_count(e.suggestion_type or "unknown" for e in assistant_turns),
        tool_usage_distribution=_count(tools),
        total_assistant_turns=len(assistant_turns),
        total_user_turns=len(user_turns),
        total_code_edits=len(code_edits),
        total_file_saves=len(file_saves),
    )
