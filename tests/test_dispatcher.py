"""
Unit Tests for the Tool Dispatcher

Tests name lookup, argument coercion and error containment.
"""

from unittest.mock import Mock

import pytest

from tools import ToolDispatcher, get_tool_registry
from tests import sample_snapshot


@pytest.fixture
def snapshot():
    return sample_snapshot()


class TestToolDispatcher:
    """Test ToolDispatcher."""

    def test_default_registry(self, snapshot):
        """Test the default registry holds the seven tools."""
        dispatcher = ToolDispatcher(snapshot)
        assert sorted(dispatcher.tool_names) == sorted([
            "get_total_credits",
            "get_summary",
            "search_courses",
            "get_course_detail",
            "get_ranked_courses",
            "get_term_summary",
            "calc_required_avg",
        ])

    def test_unknown_tool(self, snapshot):
        """Test an unknown name returns an error result."""
        result = ToolDispatcher(snapshot).dispatch("drop_database", {})
        assert result == {"error": "unknown tool: drop_database"}

    def test_dispatch_real_tool(self, snapshot):
        """Test dispatching a registered tool over the snapshot."""
        result = ToolDispatcher(snapshot).dispatch("get_total_credits", {})
        assert result["totalCredits"] == 19.0

    def test_string_arguments_are_parsed(self):
        """Test JSON-string arguments are parsed into a dict."""
        tool = Mock(return_value={"ok": True})
        snapshot = sample_snapshot()
        dispatcher = ToolDispatcher(snapshot, registry={"probe": tool})

        dispatcher.dispatch("probe", '{"keyword": "英语"}')
        tool.assert_called_once_with(snapshot, {"keyword": "英语"})

    @pytest.mark.parametrize("raw", ["{broken", None, [1, 2], 3])
    def test_malformed_arguments_become_empty(self, raw):
        """Test malformed arguments become an empty dict."""
        tool = Mock(return_value={})
        snapshot = sample_snapshot()
        ToolDispatcher(snapshot, registry={"probe": tool}).dispatch("probe", raw)
        tool.assert_called_once_with(snapshot, {})

    def test_tool_exception_is_contained(self, snapshot):
        """Test a raising tool yields an error result."""
        tool = Mock(side_effect=ZeroDivisionError("division by zero"))
        result = ToolDispatcher(snapshot, registry={"probe": tool}).dispatch("probe", {})
        assert result == {"error": "tool probe failed: division by zero"}

    def test_non_mapping_result_is_wrapped(self, snapshot):
        """Test non-dict results are wrapped."""
        tool = Mock(return_value=42)
        assert ToolDispatcher(snapshot, registry={"probe": tool}).dispatch("probe") == {"result": 42}

    def test_registry_matches_catalogue(self):
        """Test every advertised tool is registered."""
        from config import TOOL_DEFINITIONS
        assert {t["name"] for t in TOOL_DEFINITIONS} == set(get_tool_registry())

    def test_oversized_limit_is_clamped(self, snapshot):
        """Test a limit beyond float range still dispatches and clamps to 20."""
        result = ToolDispatcher(snapshot).dispatch("search_courses", {"keyword": "20", "limit": 10 ** 400})
        assert "error" not in result
        assert len(result["items"]) == 6

    def test_infinite_limit_from_json_text(self, snapshot):
        """Test a 1e999 limit parsed from JSON text clamps to 20."""
        result = ToolDispatcher(snapshot).dispatch("search_courses", '{"keyword": "20", "limit": 1e999}')
        assert len(result["items"]) == 6
