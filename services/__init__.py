"""
Business Logic Services Module

This module contains the business logic for GradeMate:
- Grade service: builds the read-only grade snapshot the tools query
- Chat service: main coordinator for user interactions
  (import it from ``services.chat_service``; it depends on ``core``,
  which in turn reads snapshots from this package)

Services apply the domain rules; the agent loop lives in ``core``.
"""

from .grade_service import (
    # Data model
    CoursePart,
    Course,
    DerivedCourse,
    RuleSet,
    GradeStats,
    GradeSnapshot,

    # Parsing
    parse_score,
    parse_weight,
    parse_credit,
    score_to_gpa,
    aggregate_courses,

    # Rules & statistics
    build_default_multiplier,
    apply_course_rules,
    derive_courses,
    compute_stats,
    sum_credits,
    build_distribution,
    build_term_trend,

    # Snapshot
    build_snapshot,
    build_snapshot_from_rows,
)

__all__ = [
    "CoursePart",
    "Course",
    "DerivedCourse",
    "RuleSet",
    "GradeStats",
    "GradeSnapshot",
    "parse_score",
    "parse_weight",
    "parse_credit",
    "score_to_gpa",
    "aggregate_courses",
    "build_default_multiplier",
    "apply_course_rules",
    "derive_courses",
    "compute_stats",
    "sum_credits",
    "build_distribution",
    "build_term_trend",
    "build_snapshot",
    "build_snapshot_from_rows",
]
