"""
Transcript Analysis Tools

Function calling tools the agent can invoke over the student's grade
snapshot. Every tool has the signature ``(snapshot, args) -> dict``:
- ``snapshot`` is the read-only GradeSnapshot built for the session
- ``args`` is an already-coerced dict of model-supplied arguments

Tools never raise for bad input; they return ``{"error": ...}`` so the
model can correct itself on the next turn. Result keys are Chinese because
the payload is fed straight back to a Chinese-speaking model.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Optional

from services.grade_service import GradeSnapshot, DerivedCourse, sum_credits, term_sort_key
from tools.arguments import as_bool, round_to, safe_limit, safe_number
from utils.text import build_course_tags, format_term_label, normalize_for_search, normalize_text

logger = logging.getLogger(__name__)

MAX_DETAIL_CANDIDATES = 8


def _score(value: Optional[float]) -> Optional[float]:
    return None if value is None else round_to(value, 2)


def _course_haystack(course: DerivedCourse) -> str:
    year = course.year or ""
    term = course.term or ""
    fields = [
        course.name,
        course.code,
        course.college,
        course.class_name,
        year,
        term,
        f"{year} {term}",
        f"{year}学年",
        f"第{term}学期",
    ]
    return normalize_for_search(" ".join(f for f in fields if f))


def _matches_keyword(course: DerivedCourse, keyword: str) -> bool:
    haystack = _course_haystack(course)
    compact_haystack = haystack.replace(" ", "")
    tokens = [token for token in keyword.split(" ") if token]

    if len(tokens) > 1:
        return all(token in haystack or token in compact_haystack for token in tokens)

    return keyword in haystack or keyword.replace(" ", "") in compact_haystack


# ============================================================================
# CREDIT & SUMMARY TOOLS
# ============================================================================

def get_total_credits(snapshot: GradeSnapshot, args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Total earned credits, excluding the virtual elective credits.

    Args:
        excludeExpansion: Drop 拓展课程组 courses
        excludeElective: Drop 通识公选课 courses

    Returns:
        {"totalCredits", "courseCount", "scope"}
    """
    exclude_expansion = as_bool(args.get("excludeExpansion"))
    exclude_elective = as_bool(args.get("excludeElective"))
    total = sum_credits(
        snapshot.courses,
        snapshot.rule_set,
        exclude_expansion=exclude_expansion,
        exclude_elective=exclude_elective,
    )
    return {
        "totalCredits": round_to(total, 1),
        "courseCount": len(snapshot.courses),
        "scope": {
            "excludeExpansion": exclude_expansion,
            "excludeElective": exclude_elective,
        },
    }


def get_summary(snapshot: GradeSnapshot, args: Dict[str, Any]) -> Dict[str, Any]:
    """Overall weighted average, GPA, credit totals, distribution and trend."""
    stats = snapshot.stats
    total_credits = sum_credits(snapshot.courses, snapshot.rule_set)
    filtered_credits = sum_credits(
        snapshot.courses,
        snapshot.rule_set,
        exclude_expansion=snapshot.use_filter,
    )
    return {
        "avgScore": round_to(stats.avg_score, 2),
        "avgGpa": round_to(stats.avg_gpa, 2),
        "weightedCredits": round_to(stats.weighted_credits, 1),
        "totalCredits": round_to(total_credits, 1),
        "filteredCredits": round_to(filtered_credits, 1),
        "courseCount": len(snapshot.courses),
        "useFilter": snapshot.use_filter,
        "useMultiplier": snapshot.use_multiplier,
        "distribution": [dict(bucket) for bucket in snapshot.distribution],
        "trend": [
            {"term": item["term"], "avg": round_to(item["avg"], 2)}
            for item in snapshot.trend
        ],
    }


# ============================================================================
# COURSE LOOKUP TOOLS
# ============================================================================

def search_courses(snapshot: GradeSnapshot, args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keyword search over name, code, college, class, year and term.

    Multi-word keywords require every word to match.

    Args:
        keyword: Required search text
        limit: Max results (1-20, default 5)
    """
    keyword = normalize_text(args.get("keyword"))
    if not keyword:
        return {"error": "请提供 keyword 参数。"}

    limit = safe_limit(args.get("limit"))
    normalized = normalize_for_search(keyword)

    matches = [c for c in snapshot.derived_courses if _matches_keyword(c, normalized)][:limit]
    items = [
        {
            "课程": course.name,
            "学分": course.credit or 0,
            "成绩": _score(course.effective_score),
            "绩点": course.gpa,
            "学期": format_term_label(course.year, course.term),
            "标记": build_course_tags(course),
        }
        for course in matches
    ]
    logger.debug(f"🔍 search_courses '{keyword}': {len(items)} hits")
    return {"keyword": keyword, "total": len(items), "items": items}


def get_course_detail(snapshot: GradeSnapshot, args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Details of one course, including component scores.

    When several courses match, a candidate list is returned instead so the
    model can ask the user which one they meant.
    """
    name = normalize_text(args.get("name"))
    if not name:
        return {"error": "请提供 name 参数。"}

    hits = [course for course in snapshot.derived_courses if name in course.name]
    if not hits:
        return {"error": "未找到匹配课程。"}

    if len(hits) > 1:
        return {
            "multiple": True,
            "candidates": [
                {
                    "课程": course.name,
                    "学期": format_term_label(course.year, course.term),
                    "学分": course.credit or 0,
                }
                for course in hits[:MAX_DETAIL_CANDIDATES]
            ],
        }

    course = hits[0]
    return {
        "课程": course.name,
        "学期": format_term_label(course.year, course.term),
        "学分": course.credit or 0,
        "原始总评": _score(course.total_score),
        "规则后总评": _score(course.effective_score),
        "绩点": course.gpa,
        "标记": build_course_tags(course),
        "分项": [
            {
                "名称": part.name or "未命名",
                "分数": part.score,
                "比例": part.weight,
            }
            for part in course.parts
        ],
    }


def get_ranked_courses(snapshot: GradeSnapshot, args: Dict[str, Any]) -> Dict[str, Any]:
    """Highest ("top", default) or lowest ("bottom") scoring courses."""
    order = normalize_text(args.get("order")).lower() or "top"
    limit = safe_limit(args.get("limit"))

    scored = [c for c in snapshot.derived_courses if c.effective_score is not None]
    ranked = sorted(scored, key=lambda c: c.effective_score, reverse=order != "bottom")[:limit]

    return {
        "order": "low" if order == "bottom" else "high",
        "items": [
            {
                "课程": course.name,
                "成绩": _score(course.effective_score),
                "学分": course.credit or 0,
                "学期": format_term_label(course.year, course.term),
                "标记": build_course_tags(course),
            }
            for course in ranked
        ],
    }


# ============================================================================
# TERM & TARGET TOOLS
# ============================================================================

def get_term_summary(snapshot: GradeSnapshot, args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Credit totals and weighted averages per term, oldest first.

    Args:
        limit: Only the most recent N terms (defaults to all, capped at 20)
    """
    terms: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for course in snapshot.analysis_courses:
        year = course.year or "未知"
        term = course.term or ""
        entry = terms.setdefault(
            f"{year}|{term}",
            {"year": year, "term": term, "credits": 0.0, "total_score": 0.0, "scored_credits": 0.0},
        )
        credit = course.credit or 0
        entry["credits"] += credit
        if course.effective_score is not None and credit:
            entry["total_score"] += course.effective_score * credit
            entry["scored_credits"] += credit

    items = sorted(terms.values(), key=lambda item: term_sort_key(item["year"], item["term"]))
    limit = safe_limit(args.get("limit") or len(items))

    return {
        "scope": {
            "useFilter": snapshot.use_filter,
            "useMultiplier": snapshot.use_multiplier,
        },
        "items": [
            {
                "学期": format_term_label(item["year"], item["term"]),
                "学分": round_to(item["credits"], 1),
                "平均分": (
                    round_to(item["total_score"] / item["scored_credits"], 2)
                    if item["scored_credits"] else None
                ),
            }
            for item in items[-limit:]
        ],
    }


def calc_required_avg(snapshot: GradeSnapshot, args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Term average needed next term to reach a target overall average.

    required = (target * (current_credits + next_credits)
                - current_average * current_credits) / next_credits

    Two bases are supported: "weighted" (credits counted by the current
    weighted statistics) and "actual" (plain earned credits). Without a
    ``mode`` both are returned.
    """
    target_average = safe_number(args.get("targetAverage"), None)
    next_credits = safe_number(args.get("nextCredits"), None)
    if target_average is None or next_credits is None or next_credits <= 0:
        return {"error": "请提供有效的 targetAverage 与 nextCredits。"}

    stats = snapshot.stats
    mode = normalize_text(args.get("mode")).lower()
    has_average = args.get("currentAverage") is not None
    has_credits = args.get("currentCredits") is not None
    earned_credits = sum_credits(snapshot.courses, snapshot.rule_set)

    current_average = (
        safe_number(args.get("currentAverage"), stats.avg_score) if has_average else stats.avg_score
    )
    weighted_credits = (
        safe_number(args.get("currentCredits"), stats.weighted_credits)
        if has_credits else stats.weighted_credits
    )
    actual_credits = (
        safe_number(args.get("currentCredits"), earned_credits) if has_credits else earned_credits
    )

    def required(average: float, credits: float) -> Optional[float]:
        total = credits + next_credits
        if not total:
            return None
        return round_to((target_average * total - average * credits) / next_credits, 2)

    weighted_required = required(current_average, weighted_credits)
    actual_required = required(current_average, actual_credits)

    if mode in ("weighted", "actual"):
        credits = weighted_credits if mode == "weighted" else actual_credits
        return {
            "口径": mode,
            "当前平均分": round_to(current_average, 2),
            "当前学分": round_to(credits, 1),
            "目标平均分": round_to(target_average, 2),
            "下学期学分": round_to(next_credits, 1),
            "需要的学期平均分": weighted_required if mode == "weighted" else actual_required,
        }

    return {
        "目标平均分": round_to(target_average, 2),
        "下学期学分": round_to(next_credits, 1),
        "基于加权口径": {
            "当前平均分": round_to(current_average, 2),
            "当前学分": round_to(weighted_credits, 1),
            "需要的学期平均分": weighted_required,
        },
        "基于实际学分口径": {
            "当前平均分": round_to(current_average, 2),
            "当前学分": round_to(actual_credits, 1),
            "需要的学期平均分": actual_required,
        },
    }

