"""
GradeMate Test Suite

Unit tests for all modules. No network access: the completion endpoint is
replaced by mocked sessions or the scripted client below.
Run tests with: pytest tests/
"""

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import AgentSettings  # noqa: E402
from services.grade_service import Course, CoursePart, GradeSnapshot, build_snapshot  # noqa: E402

# Transcript rows as exported by the academic system (one row per component)
SAMPLE_ROWS: List[Dict[str, Any]] = [
    {"学年": "2022-2023", "学期": "1", "开课学院": "数学学院", "课程代码": "MATH101",
     "课程名称": "高等数学A", "教学班": "01", "学分": "5", "成绩分项": "平时(40%)", "成绩": "90"},
    {"学年": "2022-2023", "学期": "1", "开课学院": "数学学院", "课程代码": "MATH101",
     "课程名称": "高等数学A", "教学班": "01", "学分": "5", "成绩分项": "期末(60%)", "成绩": "80"},
    {"学年": "2022-2023", "学期": "1", "开课学院": "外国语学院", "课程代码": "ENG101",
     "课程名称": "大学英语", "教学班": "02", "学分": "3", "成绩分项": "总评", "成绩": "92"},
    {"学年": "2022-2023", "学期": "2", "开课学院": "计算机学院", "课程代码": "CS201",
     "课程名称": "数据结构", "教学班": "01", "学分": "4", "成绩分项": "总评", "成绩": "良好"},
    {"学年": "2023-2024", "学期": "1", "开课学院": "计算机学院", "课程代码": "CS301",
     "课程名称": "操作系统", "教学班": "01", "学分": "4", "成绩分项": "总评", "成绩": "55"},
    {"学年": "2023-2024", "学期": "2", "开课学院": "艺术学院", "课程代码": "GEN001",
     "课程名称": "音乐鉴赏", "教学班": "03", "学分": "2", "成绩分项": "总评", "成绩": "优秀"},
]


def make_course(
    name: str,
    credit: float,
    score: Optional[float],
    year: str = "2022-2023",
    term: str = "1",
    code: str = "",
    parts: Optional[List[CoursePart]] = None,
) -> Course:
    """Build a course with a key derived like aggregate_courses does."""
    code = code or name
    return Course(
        key=f"{year}|{term}|{code}|01",
        year=year,
        term=term,
        code=code,
        name=name,
        class_name="01",
        credit=credit,
        parts=list(parts or []),
        total_score=score,
    )


def sample_courses() -> List[Course]:
    return [
        make_course("高等数学A", 5, 84, code="MATH101",
                    parts=[CoursePart("平时(40%)", 90, 0.4), CoursePart("期末(60%)", 80, 0.6)]),
        make_course("大学英语", 3, 92, code="ENG101"),
        make_course("数据结构", 4, 85, term="2", code="CS201"),
        make_course("操作系统", 4, 55, year="2023-2024", code="CS301"),
        make_course("音乐鉴赏", 2, 95, year="2023-2024", term="2", code="GEN001"),
        make_course("创新创业实践", 1, 78, year="2023-2024", term="2", code="EXP001"),
    ]


def sample_snapshot(**kwargs) -> GradeSnapshot:
    """Snapshot over sample_courses(); kwargs go to build_snapshot."""
    return build_snapshot(sample_courses(), **kwargs)


def settings(**overrides) -> AgentSettings:
    """Settings with credentials filled in and no deadline."""
    base = AgentSettings(api_key="sk-test", model="Qwen/Qwen2.5-7B-Instruct", stream_deadline=None)
    return base.with_overrides(**overrides)


Reply = Union[str, Exception]


class ScriptedClient:
    """
    Stand-in for ChatCompletionClient that replays canned replies.

    Each ``complete`` call pops the next reply, streams it through
    ``on_delta`` in small increments and records the messages it was sent.
    An Exception reply is raised instead.
    """

    def __init__(self, replies: List[Reply], step: int = 4):
        self.replies = list(replies)
        self.step = step
        self.requests: List[List[Dict[str, str]]] = []

    def complete(
        self,
        messages: List[Dict[str, str]],
        on_delta: Optional[Callable[[str, str], None]] = None,
        cancel_token=None,
    ) -> str:
        self.requests.append([dict(m) for m in messages])
        if not self.replies:
            raise AssertionError("unexpected extra request")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply

        accumulated = ""
        for start in range(0, len(reply), self.step):
            increment = reply[start:start + self.step]
            accumulated += increment
            if on_delta:
                on_delta(increment, accumulated)
        return accumulated.strip()


__all__ = [
    "SAMPLE_ROWS",
    "make_course",
    "sample_courses",
    "sample_snapshot",
    "settings",
    "ScriptedClient",
]
