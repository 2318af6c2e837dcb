"""
Session state helpers for the Streamlit front-end.

Kept free of Streamlit imports so the state transitions can be tested
against a plain dict.
"""

from typing import Any, Dict, Iterable, MutableMapping, Optional

RULE_WIDGET_PREFIX = "rule_"


def rule_widget_key(rule: str) -> str:
    """Session key of the multiselect that edits *rule*."""
    return f"{RULE_WIDGET_PREFIX}{rule}"


def reset_rule_state(
    state: MutableMapping[str, Any],
    rule_names: Iterable[str],
    multiplier: Optional[Dict[str, bool]] = None,
) -> None:
    """
    Start the rule editor afresh after a transcript import.

    Widget-held selections are dropped so the multiselects rebuild from
    the new course list instead of replaying keys from the previous one.

    Args:
        state: st.session_state or any mutable mapping
        rule_names: Rule identifiers (multiplier, elective, ...)
        multiplier: Preselected ×1.2 courses for the new transcript
    """
    rules = {}
    for rule in rule_names:
        state.pop(rule_widget_key(rule), None)
        rules[rule] = {}
    if multiplier is not None:
        rules["multiplier"] = dict(multiplier)
    state["rules"] = rules
