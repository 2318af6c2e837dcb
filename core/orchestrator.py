"""
Agent Orchestrator - Main Agent Loop

Implements the tool-calling workflow for one user question:
1. Think: Stream one model turn and classify it live for display
2. Extract: Look for a tool call in the complete turn text
3. Act: Dispatch the tool and feed its result back upstream
4. Respond: Return the first turn that is not a tool call

Loops are bounded twice: an identical call repeated back-to-back is not
dispatched again, and after ``max_tool_rounds`` dispatches the model is
told to answer with what it has.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from langfuse import observe

from ai import ChatCompletionClient, CancelToken, AgentError, update_trace_metadata
from config import (
    AgentSettings,
    EMPTY_ANSWER_MESSAGE,
    REPEAT_TOOL_PROMPT,
    TOOL_LIMIT_PROMPT,
    TOOL_HINT,
    build_agent_system_prompt,
)
from services.grade_service import GradeSnapshot
from tools.arguments import coerce_arguments
from tools.dispatcher import ToolDispatcher
from .classifier import ResponseClassifier, StreamUpdate, TurnKind
from .conversation import Conversation, project_upstream
from .extractor import extract_tool_call

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[StreamUpdate], None]


# ============================================================================
# DATA STRUCTURES
# ============================================================================

class AgentStatus(Enum):
    """Agent execution status."""
    THINKING = "thinking"
    CLASSIFYING = "classifying"
    TOOL_DISPATCH = "tool_dispatch"
    ANSWER = "answer"
    ERROR = "error"


@dataclass
class ToolResult:
    """
    Result from a tool execution.

    Attributes:
        tool_name: Name of the tool that was called
        arguments: Coerced arguments it was called with
        success: False when the tool returned an error mapping
        result: The result mapping fed back to the model
        execution_time: Time taken to execute (seconds)
    """
    tool_name: str
    arguments: Dict[str, Any]
    success: bool
    result: Dict[str, Any] = field(default_factory=dict)
    execution_time: float = 0.0


@dataclass
class AgentState:
    """
    State of one ``run`` call.

    Tracks the status machine, dispatched tools, request count and outcome.
    """
    user_message: str
    status: AgentStatus = AgentStatus.THINKING
    tool_results: List[ToolResult] = field(default_factory=list)
    requests_sent: int = 0

    # Set when the answer came from a forced request ("repeat" or "limit")
    forced_reason: Optional[str] = None

    final_response: Optional[str] = None
    error_message: Optional[str] = None

    start_time: float = field(default_factory=time.time)
    total_execution_time: float = 0.0

    def add_tool_result(self, result: ToolResult):
        self.tool_results.append(result)

    def get_execution_summary(self) -> Dict[str, Any]:
        """Get a summary of the execution."""
        return {
            "status": self.status.value,
            "num_tool_calls": len(self.tool_results),
            "tools_used": sorted({tr.tool_name for tr in self.tool_results}),
            "requests": self.requests_sent,
            "forced_reason": self.forced_reason,
            "success": self.status == AgentStatus.ANSWER and self.final_response is not None,
            "execution_time": self.total_execution_time,
            "had_tool_errors": any(not tr.success for tr in self.tool_results),
        }


def tool_call_key(tool_name: str, arguments: Dict[str, Any]) -> str:
    """Identity of a tool call for repeat detection; key order is ignored."""
    return f"{tool_name}:{json.dumps(arguments, sort_keys=True, ensure_ascii=False)}"


# ============================================================================
# AGENT ORCHESTRATOR
# ============================================================================

class AgentOrchestrator:
    """
    Runs the think / extract / act loop for one conversation.

    The orchestrator is the only writer of its Conversation. Display code
    observes progress through ``on_update`` and reads the transcript.
    """

    def __init__(
        self,
        client: ChatCompletionClient,
        snapshot: GradeSnapshot,
        settings: AgentSettings,
        conversation: Optional[Conversation] = None,
        dispatcher: Optional[ToolDispatcher] = None,
        on_update: Optional[UpdateCallback] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            client: Streaming completion client
            snapshot: Read-only grade data the tools query
            settings: Loop limit, toggles and note for the system prompt
            conversation: Transcript to append to (a new one if omitted)
            dispatcher: Tool dispatcher (built over ``snapshot`` if omitted)
            on_update: Receives a StreamUpdate for every display change
        """
        self.client = client
        self.settings = settings
        self.conversation = conversation if conversation is not None else Conversation()
        self.dispatcher = dispatcher or ToolDispatcher(snapshot)
        self.on_update = on_update

    def system_prompt(self) -> str:
        return build_agent_system_prompt(
            note=self.settings.note,
            use_filter=self.settings.use_filter,
            use_multiplier=self.settings.use_multiplier,
        )

    @observe(name="agent_run")
    def run(self, question: str, cancel_token: Optional[CancelToken] = None) -> AgentState:
        """
        Answer one user question, calling tools as the model requests.

        Args:
            question: The user's message
            cancel_token: Cancels the in-flight request when triggered

        Returns:
            AgentState with the final answer and execution details

        Raises:
            TransportError: A request failed (state is marked ERROR first)
            RequestCancelled: The token was cancelled or its deadline passed
        """
        state = AgentState(user_message=question)
        self.conversation.add_user(question)
        system_prompt = self.system_prompt()
        max_rounds = self.settings.max_tool_rounds
        last_key: Optional[str] = None
        answer: Optional[str] = None

        try:
            for _ in range(max_rounds):
                text = self._request(state, system_prompt, cancel_token)
                tool_call = extract_tool_call(text)

                if tool_call is None:
                    answer = text or EMPTY_ANSWER_MESSAGE
                    break

                arguments = coerce_arguments(tool_call.arguments)
                key = tool_call_key(tool_call.tool, arguments)
                if key == last_key:
                    logger.warning(f"⚠️  Repeated tool call {tool_call.tool}, forcing an answer")
                    state.forced_reason = "repeat"
                    answer = self._forced_answer(state, system_prompt, REPEAT_TOOL_PROMPT, cancel_token)
                    break
                last_key = key

                self._dispatch(state, tool_call.tool, arguments, text)
            else:
                logger.warning(f"⚠️  Reached max tool calls limit ({max_rounds})")
                state.forced_reason = "limit"
                answer = self._forced_answer(state, system_prompt, TOOL_LIMIT_PROMPT, cancel_token)

        except AgentError as e:
            logger.error(f"❌ Agent execution failed: {e}")
            state.status = AgentStatus.ERROR
            state.error_message = str(e)
            state.total_execution_time = time.time() - state.start_time
            raise

        self.conversation.add_assistant(answer)
        state.final_response = answer
        state.status = AgentStatus.ANSWER
        state.total_execution_time = time.time() - state.start_time

        update_trace_metadata(
            model=self.settings.model,
            tool_rounds=len(state.tool_results),
            requests=state.requests_sent,
            forced_reason=state.forced_reason,
        )
        logger.info(
            f"✅ Agent completed in {len(state.tool_results)} tool calls, "
            f"{state.requests_sent} requests"
        )
        return state

    def ask(self, question: str, cancel_token: Optional[CancelToken] = None) -> str:
        """Convenience wrapper returning only the final answer text."""
        return self.run(question, cancel_token).final_response

    # ------------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------------

    def _emit(self, update: StreamUpdate) -> None:
        if self.on_update:
            self.on_update(update)

    def _request(
        self,
        state: AgentState,
        system_prompt: str,
        cancel_token: Optional[CancelToken],
        instruction: Optional[str] = None,
        force_answer: bool = False,
    ) -> str:
        """Stream one turn; classification only drives the display."""
        messages = project_upstream(self.conversation.entries, system_prompt)
        if instruction:
            messages.append({"role": "user", "content": instruction})

        classifier = ResponseClassifier(force_answer=force_answer)
        state.status = AgentStatus.THINKING
        self._emit(classifier.snapshot())

        def on_delta(increment: str, accumulated: str) -> None:
            state.status = AgentStatus.CLASSIFYING
            self._emit(classifier.feed(increment, accumulated))

        state.requests_sent += 1
        logger.debug(f"📤 Request #{state.requests_sent} with {len(messages)} messages")
        return self.client.complete(messages, on_delta=on_delta, cancel_token=cancel_token)

    def _forced_answer(
        self,
        state: AgentState,
        system_prompt: str,
        instruction: str,
        cancel_token: Optional[CancelToken],
    ) -> str:
        """Final request whose text is the answer even if it looks like a tool call."""
        text = self._request(state, system_prompt, cancel_token, instruction, force_answer=True)
        return text or EMPTY_ANSWER_MESSAGE

    def _dispatch(self, state: AgentState, tool_name: str, arguments: Dict[str, Any], source_text: str):
        state.status = AgentStatus.TOOL_DISPATCH
        self._emit(StreamUpdate(TurnKind.TOOL, False, TOOL_HINT))

        self.conversation.add_tool_call(tool_name, arguments, source_text=source_text)
        start = time.time()
        result = self.dispatcher.dispatch(tool_name, arguments)
        self.conversation.add_tool_result(tool_name, result)

        state.add_tool_result(ToolResult(
            tool_name=tool_name,
            arguments=arguments,
            success="error" not in result,
            result=result,
            execution_time=time.time() - start,
        ))
        if "error" in result:
            logger.warning(f"⚠️  Tool {tool_name} returned an error: {result['error']}")
