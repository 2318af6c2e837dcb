"""
Chat Service - Main Coordinator

Orchestrates one chat session:
1. Validates that a question can be sent (key, model, imported grades)
2. Runs the agent orchestrator over the session's conversation
3. Maps transport failures to a user-facing message
4. Returns a formatted response with execution metadata

This is the main entry point for the Streamlit UI.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ai import ChatCompletionClient, CancelToken, AgentError
from config import (
    AgentSettings,
    QUICK_PROMPTS,
    REQUEST_FAILED_MESSAGE,
    MISSING_API_KEY_MESSAGE,
    MISSING_MODEL_MESSAGE,
    MISSING_COURSES_MESSAGE,
)
from core import AgentOrchestrator, AgentState, Conversation, TranscriptEntry
from core.orchestrator import UpdateCallback
from services.grade_service import GradeSnapshot

logger = logging.getLogger(__name__)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class ChatResponse:
    """
    Response from the chat service.

    Attributes:
        message: The response text to display to the user
        success: Whether the request was handled successfully
        metadata: Additional metadata about the response
        agent_state: Full agent execution state (for debugging)
    """
    message: str
    success: bool
    metadata: Dict[str, Any]
    agent_state: Optional[AgentState] = None


# ============================================================================
# CHAT SERVICE
# ============================================================================

class ChatService:
    """
    Main chat service coordinator.

    Owns one Conversation; sessions never share state. Settings and the
    grade snapshot can be swapped between questions (the UI toggles them).
    """

    def __init__(
        self,
        settings: AgentSettings,
        snapshot: Optional[GradeSnapshot] = None,
        client: Optional[ChatCompletionClient] = None,
    ):
        """
        Initialize the chat service.

        Args:
            settings: Per-session endpoint, credentials and toggles
            snapshot: Grade data for the tools (None until a transcript is imported)
            client: Completion client; built from ``settings`` when omitted
        """
        self.settings = settings
        self.snapshot = snapshot
        self.session_id = str(uuid.uuid4())
        self.conversation = Conversation()
        self._client = client
        self._owns_client = client is None
        logger.info(f"✅ ChatService initialized (session: {self.session_id})")

    @property
    def client(self) -> ChatCompletionClient:
        if self._client is None:
            self._client = ChatCompletionClient(self.settings)
        return self._client

    @property
    def transcript(self) -> Tuple[TranscriptEntry, ...]:
        return self.conversation.entries

    def update_settings(self, settings: AgentSettings) -> None:
        """Swap settings; a client this service built is rebuilt lazily."""
        self.settings = settings
        if self._owns_client:
            self._client = None

    def update_snapshot(self, snapshot: Optional[GradeSnapshot]) -> None:
        self.snapshot = snapshot

    def reset(self) -> None:
        """Clear the conversation (explicit user reset)."""
        self.conversation.clear()
        logger.info(f"🧹 Conversation cleared (session: {self.session_id})")

    @staticmethod
    def quick_prompts() -> List[Dict[str, str]]:
        return [dict(prompt) for prompt in QUICK_PROMPTS]

    def check_ready(self, question: str) -> Optional[str]:
        """
        Check preconditions for sending a question.

        Returns:
            A user-facing message describing what is missing, or None
        """
        if not question:
            return None
        if not self.settings.api_key.strip():
            return MISSING_API_KEY_MESSAGE
        if not self.settings.model:
            return MISSING_MODEL_MESSAGE
        if self.snapshot is None or self.snapshot.is_empty:
            return MISSING_COURSES_MESSAGE
        return None

    def process_message(
        self,
        question: str,
        on_update: Optional[UpdateCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> ChatResponse:
        """
        Process a user message and generate a response.

        Args:
            question: The user's input text
            on_update: Receives live StreamUpdate snapshots while the model streams
            cancel_token: Cancels the in-flight request

        Returns:
            ChatResponse with the agent's reply and metadata
        """
        question = (question or "").strip()
        if not question:
            return ChatResponse(message="", success=False, metadata={"error": "empty_question"})

        problem = self.check_ready(question)
        if problem:
            logger.warning(f"⚠️  Not ready to send: {problem}")
            return ChatResponse(
                message=problem,
                success=False,
                metadata={"error": "precondition", "session_id": self.session_id},
            )

        logger.info(f"💬 Processing message (session: {self.session_id}): {question[:50]}...")

        orchestrator = AgentOrchestrator(
            client=self.client,
            snapshot=self.snapshot,
            settings=self.settings,
            conversation=self.conversation,
            on_update=on_update,
        )

        try:
            agent_state = orchestrator.run(question, cancel_token)
        except AgentError as e:
            logger.error(f"❌ Agent request failed: {e}")
            return ChatResponse(
                message=REQUEST_FAILED_MESSAGE,
                success=False,
                metadata={
                    "error": str(e),
                    "status_code": getattr(e, "status_code", None),
                    "session_id": self.session_id,
                },
            )

        summary = agent_state.get_execution_summary()
        return ChatResponse(
            message=agent_state.final_response,
            success=True,
            metadata={
                "tools_used": [tr.tool_name for tr in agent_state.tool_results],
                "tool_rounds": summary["num_tool_calls"],
                "requests": summary["requests"],
                "forced_reason": summary["forced_reason"],
                "execution_time": agent_state.total_execution_time,
                "session_id": self.session_id,
            },
            agent_state=agent_state,
        )
