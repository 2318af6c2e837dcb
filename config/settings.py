"""
Application settings and configuration values.

This module centralizes all configuration values including:
- Upstream completion endpoint and credentials
- Model parameters and agent loop limits
- Langfuse observability switches

Environment variables are loaded via python-dotenv. The values here are
defaults only: the orchestrator receives an AgentSettings instance so each
chat session can carry its own key, model and toggles.
"""

import os
from dataclasses import dataclass, replace
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# ============================================================================
# LLM CONFIGURATION
# ============================================================================

# OpenAI-compatible completion endpoint (SiliconFlow by default)
SILICONFLOW_BASE_URL = os.getenv("SILICONFLOW_BASE_URL", "https://api.siliconflow.cn/v1")
SILICONFLOW_API_KEY = os.getenv("SILICONFLOW_API_KEY", "")
AGENT_MODEL = os.getenv("AGENT_MODEL", "")

# Model Parameters
TEMPERATURE = float(os.getenv("TEMPERATURE", "0.6"))
MAX_TOKENS = int(os.getenv("MAX_TOKENS", "1200"))

# Agent loop
MAX_TOOL_ROUNDS = int(os.getenv("MAX_TOOL_ROUNDS", "6"))

# Timeout Settings (seconds)
CONNECT_TIMEOUT = float(os.getenv("CONNECT_TIMEOUT", "10"))
READ_TIMEOUT = float(os.getenv("READ_TIMEOUT", "60"))
STREAM_DEADLINE = float(os.getenv("STREAM_DEADLINE", "180"))
STREAM_CHUNK_SIZE = int(os.getenv("STREAM_CHUNK_SIZE", "1024"))

# ============================================================================
# LANGFUSE OBSERVABILITY
# ============================================================================

LANGFUSE_PUBLIC_KEY = os.getenv("LANGFUSE_PUBLIC_KEY")
LANGFUSE_SECRET_KEY = os.getenv("LANGFUSE_SECRET_KEY")
LANGFUSE_HOST = os.getenv("LANGFUSE_HOST", "https://cloud.langfuse.com")

# Enable/disable Langfuse tracing
LANGFUSE_ENABLED = os.getenv("LANGFUSE_ENABLED", "false").lower() == "true"

if LANGFUSE_ENABLED and (not LANGFUSE_PUBLIC_KEY or not LANGFUSE_SECRET_KEY):
    LANGFUSE_ENABLED = False

# ============================================================================
# APPLICATION SETTINGS
# ============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Upload Settings
MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))
SUPPORTED_TRANSCRIPT_EXTENSIONS = [".xlsx", ".csv"]

# UI Settings
APP_TITLE = "GradeMate 🎓"
APP_SUBTITLE = "成绩分析智能体"
PAGE_ICON = "🎓"


# ============================================================================
# PER-SESSION SETTINGS
# ============================================================================

@dataclass(frozen=True)
class AgentSettings:
    """
    Configuration injected into the transport client and the orchestrator.

    Attributes:
        api_key: Bearer token for the completion endpoint
        model: Model identifier sent with every request
        base_url: Endpoint root (``/chat/completions`` is appended)
        temperature: Sampling temperature
        max_tokens: Maximum tokens per response
        max_tool_rounds: Tool dispatches allowed before a final answer is forced
        connect_timeout: Socket connect timeout (seconds)
        read_timeout: Socket read timeout between chunks (seconds)
        stream_deadline: Wall-clock limit for one request, None disables it
        chunk_size: Bytes requested per streamed read
        use_filter: 加权筛选 toggle, advertised to the model
        use_multiplier: 加权倍率 toggle, advertised to the model
        note: Free-text preferences supplied by the user
    """
    api_key: str = ""
    model: str = ""
    base_url: str = SILICONFLOW_BASE_URL
    temperature: float = TEMPERATURE
    max_tokens: int = MAX_TOKENS
    max_tool_rounds: int = MAX_TOOL_ROUNDS
    connect_timeout: float = CONNECT_TIMEOUT
    read_timeout: float = READ_TIMEOUT
    stream_deadline: Optional[float] = STREAM_DEADLINE
    chunk_size: int = STREAM_CHUNK_SIZE
    use_filter: bool = False
    use_multiplier: bool = False
    note: str = ""

    @classmethod
    def from_env(cls) -> "AgentSettings":
        """Build settings from the environment defaults above."""
        return cls(api_key=SILICONFLOW_API_KEY, model=AGENT_MODEL)

    def with_overrides(self, **changes) -> "AgentSettings":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    @property
    def completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    @property
    def models_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/models"
