"""
Conversation State - one append-only log, two derived views.

The log holds user, assistant and tool entries. What the user sees
(``project_display``) and what is sent to the model (``project_upstream``)
are both computed from it by pure functions, so the two never drift.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import format_tool_result

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"
ROLE_TOOL = "tool"

PHASE_CALL = "call"
PHASE_RESULT = "result"


@dataclass(frozen=True)
class TranscriptEntry:
    """
    One immutable transcript entry.

    Attributes:
        role: "user", "assistant" or "tool"
        content: Message text (user/assistant entries)
        phase: "call" or "result" (tool entries)
        tool: Tool name (tool entries)
        payload: Coerced arguments for a call, result mapping for a result
        source_text: Raw assistant text that produced a tool call
    """
    role: str
    content: str = ""
    phase: Optional[str] = None
    tool: Optional[str] = None
    payload: Any = None
    source_text: str = ""

    @property
    def is_tool_call(self) -> bool:
        return self.role == ROLE_TOOL and self.phase == PHASE_CALL

    @property
    def is_tool_result(self) -> bool:
        return self.role == ROLE_TOOL and self.phase == PHASE_RESULT


class Conversation:
    """
    Append-only transcript for one chat session.

    Only the orchestrator appends; the display layer reads ``entries``.
    A tool call must be answered by a result for the same tool before any
    other entry is appended.
    """

    def __init__(self):
        self._entries: List[TranscriptEntry] = []

    @property
    def entries(self) -> Tuple[TranscriptEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def awaiting_result(self) -> Optional[str]:
        """Tool name whose result is still owed, if any."""
        if self._entries and self._entries[-1].is_tool_call:
            return self._entries[-1].tool
        return None

    def _append(self, entry: TranscriptEntry) -> TranscriptEntry:
        owed = self.awaiting_result
        if owed is not None and not (entry.is_tool_result and entry.tool == owed):
            raise ValueError(f"tool call '{owed}' must be followed by its result")
        self._entries.append(entry)
        return entry

    def add_user(self, content: str) -> TranscriptEntry:
        return self._append(TranscriptEntry(role=ROLE_USER, content=content))

    def add_assistant(self, content: str) -> TranscriptEntry:
        return self._append(TranscriptEntry(role=ROLE_ASSISTANT, content=content))

    def add_tool_call(self, tool: str, arguments: Dict[str, Any], source_text: str = "") -> TranscriptEntry:
        return self._append(TranscriptEntry(
            role=ROLE_TOOL,
            phase=PHASE_CALL,
            tool=tool,
            payload=arguments,
            source_text=source_text,
        ))

    def add_tool_result(self, tool: str, result: Any) -> TranscriptEntry:
        if self.awaiting_result != tool:
            raise ValueError(f"no pending call for tool result '{tool}'")
        return self._append(TranscriptEntry(
            role=ROLE_TOOL,
            phase=PHASE_RESULT,
            tool=tool,
            payload=result,
        ))

    def clear(self) -> None:
        """Drop every entry (explicit user reset)."""
        self._entries.clear()


# ============================================================================
# PROJECTIONS
# ============================================================================

def project_display(entries: Sequence[TranscriptEntry]) -> List[TranscriptEntry]:
    """Everything the user sees: the full transcript, in order."""
    return list(entries)


def project_upstream(
    entries: Sequence[TranscriptEntry],
    system_prompt: Optional[str] = None,
) -> List[Dict[str, str]]:
    """
    Message sequence sent to the model.

    User and assistant entries pass through. Tool exchanges are replayed
    only for the turn in flight (after the last user entry): the assistant's
    raw tool-call text followed by a user message carrying the result.

    Args:
        entries: Transcript entries
        system_prompt: Prepended as a system message if given

    Returns:
        List of {"role", "content"} dicts
    """
    messages: List[Dict[str, str]] = []
    if system_prompt is not None:
        messages.append({"role": ROLE_SYSTEM, "content": system_prompt})

    last_user = max(
        (i for i, entry in enumerate(entries) if entry.role == ROLE_USER),
        default=-1,
    )

    for index, entry in enumerate(entries):
        if entry.role in (ROLE_USER, ROLE_ASSISTANT):
            messages.append({"role": entry.role, "content": entry.content})
        elif index > last_user:
            if entry.is_tool_call:
                messages.append({"role": ROLE_ASSISTANT, "content": entry.source_text})
            elif entry.is_tool_result:
                messages.append({
                    "role": ROLE_USER,
                    "content": format_tool_result(entry.tool, entry.payload),
                })

    return messages
