"""
Prompt templates and tool definitions for GradeMate.

This module contains:
- The agent system prompt builder
- Tool catalogue advertised to the model
- Corrective instructions used by the agent loop
- Canned user-facing messages and quick prompts

All prompts should be maintained here (not hardcoded in services/tools).
"""

import json
from typing import Any, Dict, List, Optional

# ============================================================================
# TOOL DEFINITIONS
# ============================================================================

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": "get_total_credits",
        "description": (
            "计算已修学分总和（不含虚拟学分）。当用户询问“修了多少学分”或需要学分口径时使用。"
            "可按需排除拓展课程组或公选课，返回总学分与课程数量，便于后续分析。"
        ),
        "parameters": {
            "excludeExpansion": "boolean 可选，是否排除拓展课程组",
            "excludeElective": "boolean 可选，是否排除通识公选课",
        },
    },
    {
        "name": "get_summary",
        "description": (
            "返回当前成绩概览（加权均分、加权绩点、课程数、学分等）。当用户需要整体表现概览或"
            "“当前平均分/绩点是多少”时使用。结果包含趋势与分布，适合用于生成诊断与建议。"
        ),
        "parameters": {},
    },
    {
        "name": "search_courses",
        "description": (
            "按关键词搜索课程，可匹配课程名称、学年、学期、课程代码或开课学院。用于查找某类课程、"
            "某学期课程或核对具体课程表现。返回课程名、学分、成绩、绩点、学期与标记。"
        ),
        "parameters": {
            "keyword": "string 必填，课程关键词",
            "limit": "number 可选，返回条数",
        },
    },
    {
        "name": "get_course_detail",
        "description": (
            "获取单门课程详情，包括分项成绩与规则后分数。用于解释单门课程表现或核对课程细节。"
            "若多门命中会返回候选列表，需用户确认具体课程。"
        ),
        "parameters": {
            "name": "string 必填，课程名称或关键词",
        },
    },
    {
        "name": "get_ranked_courses",
        "description": (
            "按成绩排序返回课程列表（高分或低分）。用于找出拉低平均分的课程或识别优势课程，"
            "便于针对性改进。"
        ),
        "parameters": {
            "order": "string 必填，可选值 top/bottom",
            "limit": "number 可选，返回条数",
        },
    },
    {
        "name": "get_term_summary",
        "description": (
            "按学期汇总平均分与学分。用于回答“每学期表现如何”或“学期趋势”类问题。"
            "可指定返回最近若干学期。"
        ),
        "parameters": {
            "limit": "number 可选，仅返回最近若干学期",
        },
    },
    {
        "name": "calc_required_avg",
        "description": (
            "计算在未来学期修读一定学分时，为达到目标总平均分所需的学期平均分。"
            "适用于“保持95/96以上还需要多少”之类问题。可选择口径（weighted/actual），"
            "不传则返回两种口径。"
        ),
        "parameters": {
            "targetAverage": "number 必填，目标总平均分",
            "nextCredits": "number 必填，下学期计划修读学分",
            "currentAverage": "number 可选，当前总平均分（默认使用当前加权均分）",
            "currentCredits": "number 可选，当前已修学分（默认使用当前口径下学分）",
            "mode": "string 可选，weighted/actual，默认同时返回",
        },
    },
]

# The exact one-line shape the model must emit to request a tool
TOOL_CALL_SHAPE = json.dumps(
    {"tool": "工具名", "arguments": {"key": "value"}},
    ensure_ascii=False,
)

# ============================================================================
# SYSTEM PROMPT
# ============================================================================

AGENT_SYSTEM_PROMPT = """你是一个成绩分析智能体，必须使用中文回答。
当前开关：加权筛选={filter_state}，加权倍率={multiplier_state}。
用户补充：{note}

可用工具：
{tool_lines}

工具调用规则：
- 需要工具时，只输出一行 JSON，且必须符合以下结构：
{tool_shape}
- 不需要工具时，直接输出完整回答，不要输出 JSON
- 工具结果可信，优先基于工具结果回答
- 如缺少关键参数，请先向用户追问
- 避免重复调用同一工具；若信息已足够，请直接给结论
"""

# ============================================================================
# AGENT LOOP MESSAGES
# ============================================================================

TOOL_RESULT_TEMPLATE = "工具结果 {tool_name}:\n{payload}"

REPEAT_TOOL_PROMPT = "你刚才在重复调用工具。请停止调用工具，直接基于已有信息给出结论和建议。"

TOOL_LIMIT_PROMPT = "工具调用次数已达上限，请直接基于已有信息回答，不要再调用工具。"

EMPTY_ANSWER_MESSAGE = "模型未返回内容，请稍后再试。"

REQUEST_FAILED_MESSAGE = "AI 请求失败，请检查 Key、模型或网络环境。"

THINKING_HINT = "正在思考..."
TOOL_HINT = "正在调用工具..."

# Preconditions checked before a question is sent
MISSING_API_KEY_MESSAGE = "请先填写 SiliconFlow API Key"
MISSING_MODEL_MESSAGE = "请先获取并选择模型"
MISSING_COURSES_MESSAGE = "请先导入成绩数据"

QUICK_PROMPTS: List[Dict[str, str]] = [
    {"id": "analysis", "label": "成绩诊断", "prompt": "请基于当前成绩给出成绩诊断、学习规划、时间管理与职业建议。"},
    {"id": "credits", "label": "已修学分", "prompt": "我已经修了多少学分？"},
    {"id": "low", "label": "低分课程", "prompt": "列出我的低分课程。"},
    {"id": "trend", "label": "学期趋势", "prompt": "按学期汇总我的平均分和学分。"},
    {"id": "goal", "label": "目标均分", "prompt": "如果我想保持95以上，下学期修20学分需要平均分多少？"},
]

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def format_prompt(template: str, **kwargs) -> str:
    """
    Format a prompt template with provided variables.

    Args:
        template: Prompt template string with {placeholders}
        **kwargs: Variables to substitute into the template

    Returns:
        Formatted prompt string
    """
    try:
        return template.format(**kwargs)
    except KeyError as e:
        raise ValueError(f"Missing required prompt variable: {e}")


def format_tool_lines(tools: List[Dict[str, Any]]) -> str:
    """Render the catalogue as name/description/parameters blocks."""
    blocks = []
    for tool in tools:
        params = tool.get("parameters") or {}
        params_text = json.dumps(params, ensure_ascii=False, indent=2) if params else "无"
        blocks.append(f"工具: {tool['name']}\n说明: {tool['description']}\n参数: {params_text}")
    return "\n\n".join(blocks)


def build_agent_system_prompt(
    tools: Optional[List[Dict[str, Any]]] = None,
    note: str = "",
    use_filter: bool = False,
    use_multiplier: bool = False,
) -> str:
    """
    Build the system message that opens every upstream request.

    Args:
        tools: Tool catalogue to advertise (defaults to TOOL_DEFINITIONS)
        note: User-supplied free-text preferences
        use_filter: Current 加权筛选 toggle
        use_multiplier: Current 加权倍率 toggle

    Returns:
        System prompt text
    """
    note = (note or "").strip()
    return format_prompt(
        AGENT_SYSTEM_PROMPT,
        filter_state="开启" if use_filter else "关闭",
        multiplier_state="开启" if use_multiplier else "关闭",
        note=note or "无",
        tool_lines=format_tool_lines(TOOL_DEFINITIONS if tools is None else tools),
        tool_shape=TOOL_CALL_SHAPE,
    )


def format_tool_result(tool_name: str, result: Any) -> str:
    """Serialize a tool result into the synthesized user message."""
    payload = json.dumps(result, ensure_ascii=False, indent=2)
    return TOOL_RESULT_TEMPLATE.format(tool_name=tool_name, payload=payload)

