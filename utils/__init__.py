"""
Utilities package for shared helper functions.
"""

from utils.text import (
    normalize_text,
    normalize_for_search,
    parse_year_start,
    parse_term,
    format_term_label,
    build_course_tags,
    tool_card_html,
)
from utils.session import (
    rule_widget_key,
    reset_rule_state,
)

__all__ = [
    'normalize_text',
    'normalize_for_search',
    'parse_year_start',
    'parse_term',
    'format_term_label',
    'build_course_tags',
    'tool_card_html',
    'rule_widget_key',
    'reset_rule_state',
]
