"""Offline analysis of a student interaction log.

Prints the log statistics report and the student profile report, and with
--json writes both to ``<log>_analysis.json`` next to the log.

Run: python -m student_analytics.scripts.analyze_student_log [log_path] [--json]
     (from backend/), or the ``analyze-student-log`` console script.
"""

from __future__ import annotations

import argparse
import json
import logging
import math
import sys
from pathlib import Path
from typing import Optional

from student_analytics.config.settings import LOG_DIR_NAME, LOG_FILE_NAME
from student_analytics.data_pipeline.log_store import parse_log_lines
from student_analytics.engine.log_stats import LogStatsSummary, summarize_log
from student_analytics.engine.profiler import StudentProfiler
from student_analytics.models.events import now_iso
from student_analytics.models.profile import STYLE_DESCRIPTIONS, StudentProfile

logger = logging.getLogger("analyze_student_log")

RULE = "=" * 60
SUB_RULE = "-" * 40


def _pct(value: float) -> str:
    return f"{value * 100:.1f}%"


def _print_distribution(title: str, dist: dict[str, int], label_width: int = 18) -> None:
    rows = sorted(dist.items(), key=lambda kv: kv[1], reverse=True)
    total = sum(count for _, count in rows)
    print(title)
    print(SUB_RULE)
    for label, count in rows:
        share = count / total if total else 0.0
        bar = "█" * math.ceil(share * 30)
        print(f"   {label:<{label_width}} {count:>5}  {_pct(share):>6}  {bar}")
    print()


def print_stats_report(s: LogStatsSummary) -> None:
    print("\n" + RULE)
    print("Student Programming Behavior Report")
    print(RULE + "\n")

    print("Overview")
    print(SUB_RULE)
    print(f"   Total records:          {s.total_records}")
    print(f"   Unique tasks:           {s.unique_task_ids}")
    print(f"   Avg content length:     {s.average_content_length:.1f} chars")
    print(f"   Avg turns per task:     {s.average_turns_per_task:.2f}")
    print()

    print("Interaction chain")
    print(SUB_RULE)
    print(f"   User messages:          {s.total_user_turns}")
    print(f"   Assistant replies:      {s.total_assistant_turns}")
    print(f"   Code edits:             {s.total_code_edits}")
    print(f"   File saves:             {s.total_file_saves}")
    print(f"   Avg chain length:       {s.average_chain_length:.2f} events/task")
    print()

    print("AI output")
    print(SUB_RULE)
    print(f"   Assistant output ratio: {_pct(s.assistant_output_ratio)}")
    print(f"   Code generation ratio:  {_pct(s.code_generation_ratio)}")
    print(f"   Code edit rate:         {_pct(s.code_edit_rate)}")
    print(f"   Adoption rate:          {_pct(s.adoption_rate)}")
    print()

    if s.suggestion_type_distribution:
        _print_distribution("Suggestion types", s.suggestion_type_distribution)
    if s.tool_usage_distribution:
        _print_distribution("Tool usage", s.tool_usage_distribution, label_width=24)

    if s.time_range.start and s.time_range.end:
        print("Time range")
        print(SUB_RULE)
        print(f"   Start: {s.time_range.start}")
        print(f"   End:   {s.time_range.end}")
        print()

    _print_distribution("Task categories", s.category_distribution)

    print("Code & attachments")
    print(SUB_RULE)
    print(f"   Code inclusion rate:    {_pct(s.code_inclusion_rate)}")
    print(f"   Image usage rate:       {_pct(s.image_usage_rate)}")
    print(f"   File usage rate:        {_pct(s.file_usage_rate)}")
    print()

    _print_distribution("Languages", s.language_distribution, label_width=14)
    print(RULE + "\n")


METRIC_LABELS = [
    ("AI dependency", "ai_dependency_score"),
    ("Code edit ratio", "code_edit_ratio"),
    ("Adoption rate", "adoption_rate"),
    ("Self-modification", "self_modification_rate"),
    ("Debugging freq.", "debugging_frequency"),
    ("Exploration", "exploration_breadth"),
]


def print_profile_report(p: StudentProfile) -> None:
    print("\n" + RULE)
    print("Student Profile")
    print(RULE + "\n")

    print("Summary")
    print(SUB_RULE)
    print(f"   Unique tasks:           {p.total_tasks}")
    print(f"   Total interactions:     {p.total_interactions}")
    print(f"   Avg turns per task:     {p.avg_turns_per_task:.2f}")
    print(f"   Dominant category:      {p.dominant_category}")
    print()

    print("Core metrics (0-1)")
    print(SUB_RULE)
    metrics = p.metrics()
    for label, key in METRIC_LABELS:
        value = metrics[key]
        filled = round(value * 25)
        print(f"   {label:<18} {value:.3f}  {'█' * filled}{'░' * (25 - filled)}")
    print()

    print("Learning style")
    print(SUB_RULE)
    print(f"   Style:       {p.learning_style}")
    print(f"   Confidence:  {_pct(p.style_confidence)}")
    print(f"   Description: {STYLE_DESCRIPTIONS.get(p.learning_style, '')}")
    print()

    if p.time_range.start and p.time_range.end:
        print("Analyzed period")
        print(SUB_RULE)
        print(f"   Start: {p.time_range.start}")
        print(f"   End:   {p.time_range.end}")
        print()

    print(f"Generated at: {p.generated_at}")
    print(RULE + "\n")


def analysis_output_path(log_path: Path) -> Path:
    """``foo.log`` -> ``foo_analysis.json``; other names get the suffix appended."""
    if log_path.suffix == ".log":
        return log_path.with_name(log_path.stem + "_analysis.json")
    return log_path.with_name(log_path.name + "_analysis.json")


def build_export(summary: LogStatsSummary, profile: StudentProfile) -> dict:
    return {
        "generatedAt": now_iso(),
        "analysis": summary.to_dict(),
        "studentProfile": profile.to_dict(),
    }


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Analyze a student interaction log")
    parser.add_argument(
        "log_path",
        nargs="?",
        default=None,
        help=f"Log file (default: ./{LOG_DIR_NAME}/{LOG_FILE_NAME})",
    )
    parser.add_argument("-j", "--json", action="store_true", help="Also export <log>_analysis.json")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s  %(levelname)-7s  %(name)-22s  %(message)s",
        datefmt="%H:%M:%S",
    )

    log_path = Path(args.log_path).resolve() if args.log_path else Path.cwd() / LOG_DIR_NAME / LOG_FILE_NAME
    if not log_path.is_file():
        logger.error("Log file not found: %s", log_path)
        return 1

    print(f"\nReading log: {log_path}")
    with open(log_path, encoding="utf-8") as f:
        events = parse_log_lines(f, source=str(log_path))
    print(f"Loaded {len(events)} record(s)")

    summary = summarize_log(events)
    print_stats_report(summary)

    profile = StudentProfiler().generate(events)
    print_profile_report(profile)

    if args.json:
        out = analysis_output_path(log_path)
        out.write_text(json.dumps(build_export(summary, profile), indent=2, ensure_ascii=False), encoding="utf-8")
        print(f"JSON report written to: {out}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
