"""Typed message models for the profiler agent.

uAgents Model subclasses, validated and serialized by the Fetch.ai runtime.
"""

from uagents import Model


class ProfileQuery(Model):
    """Request to the Profiler Agent for a student's competency profile."""
    student_id: str
    query_type: str = "full_profile"  # full_profile | learning_style | metrics
    refresh: bool = False             # bypass the cached profile


class StudentProfileReport(Model):
    """Returned by the Profiler Agent."""
    student_id: str
    learning_style: str           # Dependent | Exploratory | Optimizer | Debugger | Balanced
    style_confidence: float       # 0.0-1.0
    dominant_category: str        # TaskCategory value or "unknown"
    metrics: dict                 # six normalized metrics, 0.0-1.0 each
    total_tasks: int
    total_interactions: int
    avg_turns_per_task: float
    generated_at: str             # ISO 8601
    time_range: dict              # {"start": ..., "end": ...}
    cached: bool = False

