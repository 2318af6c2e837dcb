"""
Response Classifier - Decides, while a turn streams, whether the model is
calling a tool or answering the user.

The decision is made once per turn from the accumulated text and never
reverses. Tool-call turns are kept off screen; answer turns are surfaced
on every delta.
"""

import re
from dataclasses import dataclass
from enum import Enum

from config import THINKING_HINT, TOOL_HINT

SNIFF_WINDOW = 160
TOOL_KEY_PATTERN = re.compile(r'"tool"\s*:', re.IGNORECASE)
JSON_FENCE = "```json"


class TurnKind(Enum):
    """What the current turn has been classified as."""
    PENDING = "pending"
    TOOL = "tool"
    ANSWER = "answer"


@dataclass(frozen=True)
class StreamUpdate:
    """
    Display snapshot after one delta.

    Attributes:
        kind: Current classification
        visible: Whether ``text`` should be shown to the user
        text: Accumulated answer text when visible, otherwise a status hint
    """
    kind: TurnKind
    visible: bool
    text: str


def looks_like_tool_call(text: str) -> bool:
    """True if the text opens like a JSON tool call."""
    head = text.lstrip()
    if not (head.startswith("{") or head[:len(JSON_FENCE)].lower() == JSON_FENCE):
        return False
    return TOOL_KEY_PATTERN.search(head[:SNIFF_WINDOW]) is not None


class ResponseClassifier:
    """
    One classifier per streamed turn.

    Example:
        >>> classifier = ResponseClassifier()
        >>> classifier.feed("你", "你").kind
        <TurnKind.ANSWER: 'answer'>
    """

    def __init__(self, force_answer: bool = False):
        """
        Args:
            force_answer: Start decided as ANSWER (forced final-answer requests)
        """
        self.kind = TurnKind.ANSWER if force_answer else TurnKind.PENDING

    def feed(self, increment: str, accumulated: str) -> StreamUpdate:
        """Update the decision with the latest accumulated text."""
        if self.kind is TurnKind.PENDING:
            if looks_like_tool_call(accumulated):
                self.kind = TurnKind.TOOL
            elif accumulated.strip():
                self.kind = TurnKind.ANSWER
        return self.snapshot(accumulated)

    def snapshot(self, accumulated: str = "") -> StreamUpdate:
        if self.kind is TurnKind.ANSWER:
            return StreamUpdate(TurnKind.ANSWER, True, accumulated)
        if self.kind is TurnKind.TOOL:
            return StreamUpdate(TurnKind.TOOL, False, TOOL_HINT)
        return StreamUpdate(TurnKind.PENDING, False, THINKING_HINT)

