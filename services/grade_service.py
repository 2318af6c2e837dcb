"""
Grade Service - Transcript Aggregation and Rule Engine

Turns raw transcript rows (one row per grade component) into the read-only
snapshot the analytic tools query:
- Aggregation of component rows into courses
- Rule application (×1.2 public courses, first-fail override)
- Weighted statistics, score distribution and term trend

The snapshot is built once per chat session and never mutated afterwards.
"""

import logging
import re
from dataclasses import dataclass, field, fields
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

from utils.text import format_term_label, normalize_text, parse_term, parse_year_start

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

# Word grades found in Chinese transcripts
WORD_SCORE_MAP = {
    "优秀": 95,
    "良好": 85,
    "中等": 75,
    "及格": 65,
    "合格": 75,
    "不及格": 50,
    "不合格": 50,
}

# Course names that default into the ×1.2 rule
MULTIPLIER_KEYWORDS = [
    "大学英语",
    "高等数学",
    "线性代数",
    "概率论",
    "大学物理",
]

MULTIPLIER = 1.2
FIRST_FAIL_SCORE = 60
VIRTUAL_ELECTIVE_CREDITS = 10

# Spreadsheet column headers
COLUMN_YEAR = "学年"
COLUMN_TERM = "学期"
COLUMN_COLLEGE = "开课学院"
COLUMN_CODE = "课程代码"
COLUMN_NAME = "课程名称"
COLUMN_CLASS = "教学班"
COLUMN_CREDIT = "学分"
COLUMN_ITEM = "成绩分项"
COLUMN_SCORE = "成绩"

RULE_TYPES = ("multiplier", "elective", "first_fail", "expansion")


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class CoursePart:
    """One graded component of a course (e.g. "期末(60%)")."""
    name: str
    score: Optional[float] = None
    weight: Optional[float] = None


@dataclass
class Course:
    """
    A course aggregated from transcript rows.

    Attributes:
        key: Stable identity "year|term|code|class" used by rule sets
        total_score: 总评 score, or the weighted average of parts when absent
    """
    key: str
    year: str = ""
    term: str = ""
    college: str = ""
    code: str = ""
    name: str = ""
    class_name: str = ""
    credit: float = 0.0
    parts: List[CoursePart] = field(default_factory=list)
    total_score: Optional[float] = None


@dataclass
class DerivedCourse(Course):
    """A course with the active rule set applied."""
    effective_score: Optional[float] = None
    gpa: float = 0.0
    multiplier: float = 1.0
    is_multiplier: bool = False
    is_elective: bool = False
    is_first_fail: bool = False
    is_expansion: bool = False


@dataclass(frozen=True)
class RuleSet:
    """Course keys selected for each rule."""
    multiplier: FrozenSet[str] = frozenset()
    elective: FrozenSet[str] = frozenset()
    first_fail: FrozenSet[str] = frozenset()
    expansion: FrozenSet[str] = frozenset()

    @classmethod
    def from_state(cls, state: Optional[Mapping[str, Mapping[str, bool]]]) -> "RuleSet":
        """
        Build a rule set from toggle state ``{rule_type: {course_key: bool}}``.

        Only keys toggled on are kept.
        """
        state = state or {}
        selected = {
            rule: frozenset(key for key, enabled in (state.get(rule) or {}).items() if enabled)
            for rule in RULE_TYPES
        }
        return cls(**selected)


@dataclass(frozen=True)
class GradeStats:
    """Weighted averages over the scored courses."""
    avg_score: float = 0.0
    avg_gpa: float = 0.0
    total_credits: float = 0.0
    weighted_credits: float = 0.0


@dataclass(frozen=True)
class GradeSnapshot:
    """
    Read-only data the analytic tools operate on.

    Attributes:
        courses: Aggregated courses without rules applied
        derived_courses: Every course with rules applied
        analysis_courses: Derived courses inside the current filter scope
        rule_set: Active rule selections
        stats: Weighted statistics under the current toggles
        distribution: Score bucket counts over analysis courses
        trend: Per-term weighted averages over analysis courses
        use_filter: 加权筛选 toggle
        use_multiplier: 加权倍率 toggle
    """
    courses: Tuple[Course, ...] = ()
    derived_courses: Tuple[DerivedCourse, ...] = ()
    analysis_courses: Tuple[DerivedCourse, ...] = ()
    rule_set: RuleSet = field(default_factory=RuleSet)
    stats: GradeStats = field(default_factory=GradeStats)
    distribution: Tuple[Dict[str, Any], ...] = ()
    trend: Tuple[Dict[str, Any], ...] = ()
    use_filter: bool = False
    use_multiplier: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.courses


# ============================================================================
# PARSING
# ============================================================================

def parse_weight(label: Any) -> Optional[float]:
    """Extract a percentage weight from a component label ("平时(40%)" → 0.4)."""
    if not label:
        return None
    match = re.search(r"(\d+(?:\.\d+)?)\s*%", str(label))
    if not match:
        return None
    return float(match.group(1)) / 100


def parse_score(value: Any) -> Optional[float]:
    """Parse a numeric or word grade; blank and unknown values give None."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value == value else None
    text = normalize_text(value)
    if not text:
        return None
    if text in WORD_SCORE_MAP:
        return float(WORD_SCORE_MAP[text])
    try:
        return float(text)
    except ValueError:
        return None


def parse_credit(value: Any) -> float:
    try:
        credit = float(value)
    except (TypeError, ValueError):
        return 0.0
    return credit if credit == credit else 0.0


def score_to_gpa(score: Optional[float]) -> float:
    """Map a percentage score to the 5-point GPA scale."""
    if score is None:
        return 0.0
    thresholds = (
        (95, 5.0), (90, 4.5), (85, 4.0), (82, 3.5), (78, 3.0),
        (75, 2.8), (72, 2.5), (68, 2.0), (65, 1.5), (60, 1.0),
    )
    for minimum, gpa in thresholds:
        if score >= minimum:
            return gpa
    return 0.0


# ============================================================================
# AGGREGATION
# ============================================================================

def aggregate_courses(rows: Iterable[Mapping[str, Any]]) -> List[Course]:
    """
    Group per-component transcript rows into courses.

    A row whose 成绩分项 contains "总评" sets the course total; any other
    labelled row becomes a part. Courses without a total fall back to the
    weight-averaged parts (or the plain mean when no part carries a weight).

    Args:
        rows: Dicts keyed by the spreadsheet column headers

    Returns:
        Courses in first-seen order
    """
    courses: Dict[str, Course] = {}

    for row in rows:
        year = normalize_text(row.get(COLUMN_YEAR))
        term = normalize_text(row.get(COLUMN_TERM))
        college = normalize_text(row.get(COLUMN_COLLEGE))
        code = normalize_text(row.get(COLUMN_CODE))
        name = normalize_text(row.get(COLUMN_NAME))
        class_name = normalize_text(row.get(COLUMN_CLASS))
        credit = parse_credit(row.get(COLUMN_CREDIT))
        item = normalize_text(row.get(COLUMN_ITEM))
        score = parse_score(row.get(COLUMN_SCORE))

        if not name and not code:
            continue

        key = "|".join(part for part in (year, term, code, class_name or name) if part)
        course = courses.get(key)
        if course is None:
            course = Course(
                key=key,
                year=year,
                term=term,
                college=college,
                code=code,
                name=name,
                class_name=class_name,
                credit=credit,
            )
            courses[key] = course

        if not course.credit and credit:
            course.credit = credit
        if not course.name and name:
            course.name = name

        if "总评" in item and score is not None:
            course.total_score = score
        elif item:
            course.parts.append(CoursePart(name=item, score=score, weight=parse_weight(item)))

    result = list(courses.values())
    for course in result:
        if course.total_score is not None:
            continue
        scored = [part for part in course.parts if part.score is not None]
        if not scored:
            continue
        weighted = [part for part in scored if part.weight is not None]
        if weighted:
            sum_weight = sum(part.weight for part in weighted)
            sum_score = sum(part.score * part.weight for part in weighted)
            course.total_score = sum_score / sum_weight if sum_weight else None
        else:
            course.total_score = sum(part.score for part in scored) / len(scored)

    logger.info(f"📚 Aggregated {len(result)} courses")
    return result


def build_default_multiplier(
    courses: Iterable[Course],
    existing: Optional[Mapping[str, bool]] = None,
) -> Dict[str, bool]:
    """Pre-select ×1.2 for public courses, keeping any explicit user choice."""
    result = dict(existing or {})
    for course in courses:
        if course.key in result:
            continue
        if any(keyword in course.name for keyword in MULTIPLIER_KEYWORDS):
            result[course.key] = True
    return result


# ============================================================================
# RULES & STATISTICS
# ============================================================================

def apply_course_rules(course: Course, rule_set: RuleSet, use_multiplier: bool) -> Dict[str, Any]:
    """
    Compute the rule-adjusted score of one course.

    Returns:
        Dict with effective_score, gpa, multiplier, weight_credit
    """
    effective_score = course.total_score
    if course.key in rule_set.first_fail:
        effective_score = FIRST_FAIL_SCORE

    multiplier = 1.0
    if use_multiplier and course.key in rule_set.multiplier and effective_score is not None:
        multiplier = MULTIPLIER
        effective_score = effective_score * multiplier

    return {
        "effective_score": effective_score,
        "gpa": score_to_gpa(effective_score),
        "multiplier": multiplier,
        "weight_credit": course.credit or 0,
    }


def derive_courses(courses: Iterable[Course], rule_set: RuleSet, use_multiplier: bool) -> List[DerivedCourse]:
    """Apply rules to every course and attach the rule flags."""
    derived = []
    for course in courses:
        outcome = apply_course_rules(course, rule_set, use_multiplier)
        base = {f.name: getattr(course, f.name) for f in fields(Course)}
        derived.append(DerivedCourse(
            **base,
            effective_score=outcome["effective_score"],
            gpa=outcome["gpa"],
            multiplier=outcome["multiplier"],
            is_multiplier=course.key in rule_set.multiplier,
            is_elective=course.key in rule_set.elective,
            is_first_fail=course.key in rule_set.first_fail,
            is_expansion=course.key in rule_set.expansion,
        ))
    return derived


def compute_stats(
    courses: Iterable[Course],
    rule_set: RuleSet,
    use_filter: bool = False,
    use_multiplier: bool = False,
) -> GradeStats:
    """
    Credit-weighted average score and GPA.

    With the filter on, expansion courses are dropped and general electives
    are folded into a single virtual course worth VIRTUAL_ELECTIVE_CREDITS
    credits scored at the electives' plain mean.
    """
    courses = list(courses)
    base_courses = courses
    elective_courses: List[Course] = []

    if use_filter:
        base_courses = [
            c for c in courses
            if c.key not in rule_set.expansion and c.key not in rule_set.elective
        ]
        elective_courses = [
            c for c in courses
            if c.key not in rule_set.expansion and c.key in rule_set.elective
        ]

    sum_score = 0.0
    sum_gpa = 0.0
    sum_weight = 0.0
    total_credits = 0.0

    for course in base_courses:
        outcome = apply_course_rules(course, rule_set, use_multiplier)
        if outcome["effective_score"] is None or not course.credit:
            continue
        sum_score += outcome["effective_score"] * course.credit
        sum_gpa += outcome["gpa"] * course.credit
        sum_weight += course.credit
        total_credits += course.credit

    if use_filter and elective_courses:
        scores = [
            apply_course_rules(c, rule_set, use_multiplier)["effective_score"]
            for c in elective_courses
        ]
        scores = [s for s in scores if s is not None]
        if scores:
            avg_elective = sum(scores) / len(scores)
            sum_score += avg_elective * VIRTUAL_ELECTIVE_CREDITS
            sum_gpa += score_to_gpa(avg_elective) * VIRTUAL_ELECTIVE_CREDITS
            sum_weight += VIRTUAL_ELECTIVE_CREDITS
            total_credits += VIRTUAL_ELECTIVE_CREDITS

    return GradeStats(
        avg_score=sum_score / sum_weight if sum_weight else 0.0,
        avg_gpa=sum_gpa / sum_weight if sum_weight else 0.0,
        total_credits=total_credits,
        weighted_credits=sum_weight,
    )


def sum_credits(
    courses: Iterable[Course],
    rule_set: RuleSet,
    exclude_expansion: bool = False,
    exclude_elective: bool = False,
) -> float:
    """Plain credit total, optionally excluding expansion or elective courses."""
    total = 0.0
    for course in courses:
        if exclude_expansion and course.key in rule_set.expansion:
            continue
        if exclude_elective and course.key in rule_set.elective:
            continue
        total += course.credit or 0
    return total


def build_distribution(courses: Iterable[DerivedCourse]) -> List[Dict[str, Any]]:
    """Count scored courses per score bucket."""
    buckets = [
        ("90+", 90, float("inf")),
        ("80-89", 80, 89.99),
        ("70-79", 70, 79.99),
        ("60-69", 60, 69.99),
        ("<60", float("-inf"), 59.99),
    ]
    result = [{"label": label, "count": 0} for label, _, _ in buckets]
    for course in courses:
        score = course.effective_score
        if score is None:
            continue
        for index, (_, low, high) in enumerate(buckets):
            if low <= score <= high:
                result[index]["count"] += 1
                break
    return result


def term_sort_key(year: Any, term: Any) -> Tuple[int, int]:
    return parse_year_start(year), parse_term(term)


def build_term_trend(courses: Iterable[DerivedCourse]) -> List[Dict[str, Any]]:
    """Credit-weighted average per term, oldest first."""
    terms: Dict[str, Dict[str, Any]] = {}
    for course in courses:
        if course.effective_score is None:
            continue
        year = course.year or "未知"
        term = course.term or ""
        entry = terms.setdefault(
            f"{year}|{term}",
            {"year": year, "term": term, "weighted_total": 0.0, "total_credits": 0.0},
        )
        entry["weighted_total"] += course.effective_score * (course.credit or 0)
        entry["total_credits"] += course.credit or 0

    items = sorted(terms.values(), key=lambda item: term_sort_key(item["year"], item["term"]))
    return [
        {
            "term": format_term_label(item["year"], item["term"]),
            "avg": item["weighted_total"] / item["total_credits"] if item["total_credits"] else 0,
        }
        for item in items
    ]


# ============================================================================
# SNAPSHOT
# ============================================================================

def build_snapshot(
    courses: Iterable[Course],
    rules: Union[RuleSet, Mapping[str, Mapping[str, bool]], None] = None,
    use_filter: bool = False,
    use_multiplier: bool = False,
) -> GradeSnapshot:
    """
    Build the read-only snapshot handed to the agent.

    Args:
        courses: Aggregated courses (see aggregate_courses)
        rules: RuleSet or toggle state ``{rule_type: {course_key: bool}}``
        use_filter: Exclude expansion courses and fold electives
        use_multiplier: Apply the ×1.2 rule

    Returns:
        GradeSnapshot
    """
    courses = tuple(courses)
    rule_set = rules if isinstance(rules, RuleSet) else RuleSet.from_state(rules)

    derived = derive_courses(courses, rule_set, use_multiplier)
    analysis = [c for c in derived if not (use_filter and c.is_expansion)]

    snapshot = GradeSnapshot(
        courses=courses,
        derived_courses=tuple(derived),
        analysis_courses=tuple(analysis),
        rule_set=rule_set,
        stats=compute_stats(courses, rule_set, use_filter, use_multiplier),
        distribution=tuple(build_distribution(analysis)),
        trend=tuple(build_term_trend(analysis)),
        use_filter=use_filter,
        use_multiplier=use_multiplier,
    )
    logger.debug(
        f"📊 Snapshot: {len(courses)} courses, avg {snapshot.stats.avg_score:.2f}, "
        f"filter={use_filter}, multiplier={use_multiplier}"
    )
    return snapshot


def build_snapshot_from_rows(
    rows: Iterable[Mapping[str, Any]],
    rules: Optional[Mapping[str, Mapping[str, bool]]] = None,
    use_filter: bool = False,
    use_multiplier: bool = False,
) -> GradeSnapshot:
    """Aggregate raw rows, pre-select ×1.2 courses and build the snapshot."""
    courses = aggregate_courses(rows)
    state = {rule: dict((rules or {}).get(rule) or {}) for rule in RULE_TYPES}
    state["multiplier"] = build_default_multiplier(courses, state["multiplier"])
    return build_snapshot(courses, state, use_filter, use_multiplier)
