"""
Unit Tests for Display and Session Helpers
"""

from utils import reset_rule_state, rule_widget_key, tool_card_html

RULES = ["multiplier", "elective", "first_fail", "expansion"]


class TestToolCardHtml:
    """Test tool_card_html."""

    def test_call_card(self):
        """Test a tool call renders the call card."""
        html = tool_card_html("get_summary")
        assert "class='tool-card'" in html
        assert "<b>get_summary</b>" in html

    def test_result_card(self):
        """Test a tool result renders the result card."""
        assert "tool-card result" in tool_card_html("get_summary", result=True)

    def test_model_supplied_name_is_escaped(self):
        """Test markup in a tool name is rendered as text."""
        html = tool_card_html("<img src=x onerror=alert(1)>")
        assert "<img" not in html
        assert "&lt;img src=x onerror=alert(1)&gt;" in html


class TestResetRuleState:
    """Test reset_rule_state."""

    def test_clears_widget_selections(self):
        """Test selections held by the rule multiselects are dropped on import."""
        state = {
            rule_widget_key("elective"): ["2022-2023|1|OLD|01"],
            rule_widget_key("multiplier"): ["2022-2023|1|OLD|02"],
            "courses": ["kept"],
        }
        reset_rule_state(state, RULES)

        assert rule_widget_key("elective") not in state
        assert rule_widget_key("multiplier") not in state
        assert state["courses"] == ["kept"]
        assert state["rules"] == {rule: {} for rule in RULES}

    def test_preselects_multiplier(self):
        """Test the new transcript's default multiplier courses are applied."""
        state = {}
        reset_rule_state(state, RULES, {"2023-2024|1|ENG|01": True})
        assert state["rules"]["multiplier"] == {"2023-2024|1|ENG|01": True}
        assert state["rules"]["elective"] == {}

    def test_widget_key(self):
        """Test widget keys are namespaced per rule."""
        assert rule_widget_key("first_fail") == "rule_first_fail"
