"""Student competency profile value objects."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class LearningStyle(str, Enum):
    """Learning-style archetypes, in tie-break order."""

    DEPENDENT = "Dependent"      # leans on AI output, rarely edits on their own
    EXPLORATORY = "Exploratory"  # long dialogues, many categories, active editing
    OPTIMIZER = "Optimizer"      # adopts suggestions then polishes them
    DEBUGGER = "Debugger"        # mostly debugging work
    BALANCED = "Balanced"        # no dimension stands out


STYLE_ORDER: tuple[str, ...] = tuple(s.value for s in LearningStyle)

STYLE_DESCRIPTIONS: dict[str, str] = {
    LearningStyle.EXPLORATORY.value: (
        "Many multi-turn explorations across task types, actively modifies code."
    ),
    LearningStyle.DEPENDENT.value: (
        "Relies heavily on AI output and seldom edits independently; tends to "
        "accept suggestions passively."
    ),
    LearningStyle.OPTIMIZER.value: (
        "Adopts AI suggestions and then frequently refines and polishes them."
    ),
    LearningStyle.DEBUGGER.value: (
        "Mostly works on debugging tasks, focused on locating and fixing problems."
    ),
    LearningStyle.BALANCED.value: (
        "Moderate across all dimensions with no clear leaning."
    ),
}


@dataclass(frozen=True)
class TimeRange:
    start: str = ""
    end: str = ""


@dataclass(frozen=True)
class StudentProfile:
    """Snapshot of a student's working style, recomputed in full on each call."""

    # Basic counts
    total_tasks: int
    avg_turns_per_task: float
    total_interactions: int

    # Core metrics, each in [0, 1]
    ai_dependency_score: float
    code_edit_ratio: float
    adoption_rate: float
    self_modification_rate: float
    debugging_frequency: float
    exploration_breadth: float

    # Derived dimensions
    dominant_category: str
    learning_style: str
    style_confidence: float

    # Metadata
    generated_at: str
    time_range: TimeRange = field(default_factory=TimeRange)

    def metrics(self) -> dict[str, float]:
        """The six normalized metrics, keyed by name."""
        return {
            "ai_dependency_score": self.ai_dependency_score,
            "code_edit_ratio": self.code_edit_ratio,
            "adoption_rate": self.adoption_rate,
            "self_modification_rate": self.self_modification_rate,
            "debugging_frequency": self.debugging_frequency,
            "exploration_breadth": self.exploration_breadth,
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StudentProfile:
        data = dict(data)  # copy
        tr = data.pop("time_range", None) or {}
        fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**fields, time_range=TimeRange(start=tr.get("start", ""), end=tr.get("end", "")))
