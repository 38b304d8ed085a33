"""Student Profiler — competency profile from the interaction log.

Turns the full event history of one student into a StudentProfile:

1. Six normalized behavioral metrics (AI dependency, code-edit ratio,
   adoption rate, self-modification rate, debugging frequency,
   exploration breadth) plus conversational depth and dominant category
2. A learning-style archetype chosen by competitive weighted scoring
3. A confidence for that archetype

Pure computation: no database, no I/O. Callers wanting a time-boxed profile
pre-filter the events they pass in.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable

from student_analytics.models.events import (
    ALL_CATEGORIES,
    AdoptionStatus,
    EventType,
    InteractionEvent,
    MessageRole,
    TaskCategory,
    now_iso,
)
from student_analytics.models.profile import (
    STYLE_ORDER,
    LearningStyle,
    StudentProfile,
    TimeRange,
)

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "unknown"

# Below this best score no style is clearly expressed
MIN_STYLE_SCORE = 0.3


# ═══════════════════════════════════════════════════════════════════════════
# Smoothing primitives
# ═══════════════════════════════════════════════════════════════════════════

def ramp(x: float, center: float, steepness: float) -> float:
    """Logistic soft threshold: ~0 well below ``center``, ~1 well above.

    ``steepness`` controls how sharp the transition is.
    """
    z = max(-60.0, min(60.0, -steepness * (x - center)))
    return 1.0 / (1.0 + math.exp(z))


def midness(x: float) -> float:
    """1 at x = 0.5, falling linearly to 0 at both ends."""
    return 1.0 - 2.0 * abs(x - 0.5)


# ═══════════════════════════════════════════════════════════════════════════
# Learning-style inference
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StyleMetrics:
    """Inputs of the learning-style rule set."""
    ai_dependency_score: float = 0.0
    code_edit_ratio: float = 0.0
    adoption_rate: float = 0.0
    self_modification_rate: float = 0.0
    debugging_frequency: float = 0.0
    exploration_breadth: float = 0.0
    avg_turns_per_task: float = 0.0
    dominant_category: str = UNKNOWN_CATEGORY


@dataclass(frozen=True)
class StyleInference:
    style: str
    confidence: float
    scores: dict[str, float]


def score_styles(m: StyleMetrics) -> dict[str, float]:
    """Independent match score per style, in STYLE_ORDER."""
    scores: dict[str, float] = {}

    # High AI share, little self-editing
    scores[LearningStyle.DEPENDENT.value] = (
        ramp(m.ai_dependency_score, 0.65, 10) * 0.4
        + (1 - m.self_modification_rate) * 0.3
        + (1 - m.code_edit_ratio) * 0.3
    )

    # Long dialogues, wide category range, active editing
    scores[LearningStyle.EXPLORATORY.value] = (
        ramp(m.avg_turns_per_task, 4, 1) * 0.3
        + m.exploration_breadth * 0.35
        + m.code_edit_ratio * 0.2
        + m.self_modification_rate * 0.15
    )

    # Adopt, then polish
    scores[LearningStyle.OPTIMIZER.value] = (
        m.adoption_rate * 0.3
        + m.self_modification_rate * 0.35
        + m.code_edit_ratio * 0.35
    )

    scores[LearningStyle.DEBUGGER.value] = (
        m.debugging_frequency * 0.6
        + ramp(m.avg_turns_per_task, 3, 1) * 0.2
        + (0.2 if m.dominant_category == TaskCategory.DEBUGGING.value else 0.0)
    )

    scores[LearningStyle.BALANCED.value] = (
        midness(m.ai_dependency_score)
        + midness(m.code_edit_ratio)
        + midness(m.adoption_rate)
        + midness(m.self_modification_rate)
    ) / 4

    return scores


def infer_learning_style(m: StyleMetrics) -> StyleInference:
    """Pick the best-scoring style.

    Strictly greater wins, so ties go to the style listed first in
    STYLE_ORDER. Confidence blends the best score with its lead over the
    runner-up. A best score under MIN_STYLE_SCORE falls back to Balanced with
    the best score itself as confidence.
    """
    scores = score_styles(m)

    best_style = LearningStyle.BALANCED.value
    best_score = 0.0
    for style in STYLE_ORDER:
        if scores[style] > best_score:
            best_score = scores[style]
            best_style = style

    ranked = sorted(scores.values(), reverse=True)
    gap = ranked[0] - ranked[1] if len(ranked) > 1 else ranked[0]

    if best_score < MIN_STYLE_SCORE:
        return StyleInference(LearningStyle.BALANCED.value, best_score, scores)

    confidence = max(0.0, min(best_score * 0.6 + gap * 0.4, 1.0))
    return StyleInference(best_style, round(confidence, 3), scores)


# ═══════════════════════════════════════════════════════════════════════════
# Profiler
# ═══════════════════════════════════════════════════════════════════════════

class StudentProfiler:
    """Builds a StudentProfile from raw interaction events.

    Usage::

        profile = StudentProfiler().generate(store.read_all())
    """

    def __init__(self, categories: Iterable[str] = ALL_CATEGORIES):
        self.categories = tuple(categories)

    def generate(self, events: Iterable[InteractionEvent]) -> StudentProfile:
        logs = list(events)
        if not logs:
            return self._empty_profile()

        conversation = [e for e in logs if e.is_conversation]
        user_turns = [e for e in conversation if e.role == MessageRole.USER.value]
        assistant_turns = [e for e in conversation if e.role == MessageRole.ASSISTANT.value]
        code_edits = [e for e in logs if e.event_type == EventType.CODE_EDIT.value]
        adoption_logs = [e for e in logs if e.event_type == EventType.ADOPTION_INFER.value]

        unique_task_ids = {e.task_id for e in logs}
        total_tasks = len(unique_task_ids)

        avg_turns = self.calc_avg_turns_per_task(conversation, total_tasks)
        metrics = StyleMetrics(
            ai_dependency_score=self.calc_ai_dependency(len(user_turns), len(assistant_turns)),
            code_edit_ratio=self.calc_code_edit_ratio(len(code_edits), assistant_turns),
            adoption_rate=self.calc_adoption_rate(adoption_logs),
            self_modification_rate=self.calc_self_modification_rate(code_edits, assistant_turns),
            debugging_frequency=self.calc_debugging_frequency(conversation),
            exploration_breadth=self.calc_exploration_breadth(conversation),
            avg_turns_per_task=avg_turns,
            dominant_category=self.calc_dominant_category(conversation),
        )
        inference = infer_learning_style(metrics)

        logger.debug("Profiled %d events over %d tasks: %s (%.3f)",
                     len(logs), total_tasks, inference.style, inference.confidence)

        return StudentProfile(
            total_tasks=total_tasks,
            avg_turns_per_task=avg_turns,
            total_interactions=len(logs),
            ai_dependency_score=metrics.ai_dependency_score,
            code_edit_ratio=metrics.code_edit_ratio,
            adoption_rate=metrics.adoption_rate,
            self_modification_rate=metrics.self_modification_rate,
            debugging_frequency=metrics.debugging_frequency,
            exploration_breadth=metrics.exploration_breadth,
            dominant_category=metrics.dominant_category,
            learning_style=inference.style,
            style_confidence=inference.confidence,
            generated_at=now_iso(),
            time_range=time_range(logs),
        )

    # -- Metrics --

    @staticmethod
    def calc_ai_dependency(user_count: int, assistant_count: int) -> float:
        """Share of the dialogue written by the assistant."""
        total = user_count + assistant_count
        return assistant_count / total if total > 0 else 0.0

    @staticmethod
    def calc_code_edit_ratio(code_edit_count: int, assistant_turns: list[InteractionEvent]) -> float:
        """Student edits per assistant reply containing code, capped at 1."""
        with_code = sum(1 for e in assistant_turns if e.has_code)
        if with_code == 0:
            return 0.0
        return min(code_edit_count / with_code, 1.0)

    @staticmethod
    def calc_adoption_rate(adoption_logs: list[InteractionEvent]) -> float:
        """Adopted share of the judged (non-unknown) suggestions."""
        determined = [
            e for e in adoption_logs
            if e.adoption_status and e.adoption_status != AdoptionStatus.UNKNOWN.value
        ]
        if not determined:
            return 0.0
        adopted = sum(1 for e in determined if e.adoption_status == AdoptionStatus.ADOPTED.value)
        return adopted / len(determined)

    @staticmethod
    def calc_self_modification_rate(
        code_edits: list[InteractionEvent],
        assistant_turns: list[InteractionEvent],
    ) -> float:
        """Of the tasks where the AI produced code, the share the student edited."""
        tasks_with_ai_code = {e.task_id for e in assistant_turns if e.has_code}
        if not tasks_with_ai_code:
            return 0.0
        tasks_with_edit = {e.task_id for e in code_edits}
        return len(tasks_with_edit & tasks_with_ai_code) / len(tasks_with_ai_code)

    @staticmethod
    def calc_debugging_frequency(conversation: list[InteractionEvent]) -> float:
        if not conversation:
            return 0.0
        debug_count = sum(1 for e in conversation if e.category == TaskCategory.DEBUGGING.value)
        return debug_count / len(conversation)

    def calc_exploration_breadth(self, conversation: list[InteractionEvent]) -> float:
        used = {e.category for e in conversation if e.category in self.categories}
        return len(used) / len(self.categories) if self.categories else 0.0

    @staticmethod
    def calc_dominant_category(conversation: list[InteractionEvent]) -> str:
        """Most frequent category; the first one reached wins a tie."""
        freq: dict[str, int] = {}
        for e in conversation:
            cat = e.category or UNKNOWN_CATEGORY
            freq[cat] = freq.get(cat, 0) + 1

        dominant = UNKNOWN_CATEGORY
        max_count = 0
        for cat, count in freq.items():
            if count > max_count:
                max_count = count
                dominant = cat
        return dominant

    @staticmethod
    def calc_avg_turns_per_task(conversation: list[InteractionEvent], total_tasks: int) -> float:
        """Mean conversational depth: highest turn index + 1 per task."""
        if total_tasks == 0:
            return 0.0
        turn_max: dict[str, int] = {}
        for e in conversation:
            turns = (e.turn_index or 0) + 1
            turn_max[e.task_id] = max(turn_max.get(e.task_id, 0), turns)
        return sum(turn_max.values()) / total_tasks

    # -- Helpers --

    @staticmethod
    def _empty_profile() -> StudentProfile:
        return StudentProfile(
            total_tasks=0,
            avg_turns_per_task=0.0,
            total_interactions=0,
            ai_dependency_score=0.0,
            code_edit_ratio=0.0,
            adoption_rate=0.0,
            self_modification_rate=0.0,
            debugging_frequency=0.0,
            exploration_breadth=0.0,
            dominant_category=UNKNOWN_CATEGORY,
            learning_style=LearningStyle.BALANCED.value,
            style_confidence=0.0,
            generated_at=now_iso(),
            time_range=TimeRange(),
        )


def time_range(events: Iterable[InteractionEvent]) -> TimeRange:
    """Earliest and latest non-empty timestamp; events need not be sorted."""
    stamps = sorted(e.ts for e in events if e.ts)
    if not stamps:
        return TimeRange()
    return TimeRange(start=stamps[0], end=stamps[-1])


def profile_summary(profile: StudentProfile) -> dict[str, Any]:
    """Compact view used in chat replies and log lines."""
    return {
        "learning_style": profile.learning_style,
        "style_confidence": profile.style_confidence,
        "dominant_category": profile.dominant_category,
        "total_tasks": profile.total_tasks,
        **{k: round(v, 3) for k, v in profile.metrics().items()},
    }
