"""
Text normalization utilities.

Shared helpers for course search, term ordering and display labels used by
both the grade snapshot builder and the analytic tools.
"""

import html
import re
from typing import Any, List

# Chinese ordinal → term number
TERM_NUMERALS = {"一": 1, "二": 2, "三": 3, "四": 4}

_DASHES = re.compile(r"[—–]")
_SPACES = re.compile(r"\s+")


def normalize_text(value: Any) -> str:
    """Convert any value to a stripped string (None → "")."""
    if value is None:
        return ""
    return str(value).strip()


def normalize_for_search(value: Any) -> str:
    """
    Normalize text for keyword matching.

    Lower-cases, folds em/en dashes into "-" and collapses whitespace runs.

    Example:
        >>> normalize_for_search("  Linear   Algebra — II ")
        'linear algebra - ii'
    """
    text = normalize_text(value).lower()
    text = _DASHES.sub("-", text)
    return _SPACES.sub(" ", text)


def parse_year_start(value: Any) -> int:
    """Return the first four-digit year found in an academic year label, else 0."""
    match = re.search(r"(\d{4})", str(value))
    return int(match.group(1)) if match else 0


def parse_term(value: Any) -> int:
    """
    Parse a term label into its ordinal.

    Digits win ("2" → 2, "第2学期" → 2); otherwise a Chinese numeral is looked
    up ("第一学期" → 1). Unknown labels sort first (0).
    """
    text = normalize_text(value)
    match = re.search(r"\d+", text)
    if match:
        return int(match.group(0))
    for numeral, number in TERM_NUMERALS.items():
        if numeral in text:
            return number
    return 0


def format_term_label(year: Any, term: Any) -> str:
    """Render "2023-2024 学年 第1学期" style labels."""
    year_text = f"{year} 学年" if year else "未知学年"
    term_text = f"第{term}学期" if term else ""
    return " ".join(part for part in (year_text, term_text) if part)


def build_course_tags(course: Any) -> List[str]:
    """Collect the rule flags of a derived course as display tags."""
    tags = []
    if getattr(course, "is_multiplier", False):
        tags.append("×1.2")
    if getattr(course, "is_first_fail", False):
        tags.append("首次不及格")
    if getattr(course, "is_elective", False):
        tags.append("公选课")
    if getattr(course, "is_expansion", False):
        tags.append("拓展")
    return tags


def tool_card_html(tool: Any, result: bool = False) -> str:
    """
    Render the chat card shown for a tool call or tool result.

    The tool name comes from model output, so it is HTML-escaped before
    being embedded in markup rendered with unsafe_allow_html.
    """
    name = html.escape(normalize_text(tool))
    if result:
        return f"<div class='tool-card result'>📋 工具结果 <b>{name}</b></div>"
    return f"<div class='tool-card'>🔧 调用工具 <b>{name}</b></div>"
