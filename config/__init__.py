"""
Configuration module for GradeMate.

This module provides centralized configuration management including:
- Application settings (endpoint, API key, model parameters, loop limits)
- Prompt templates and the tool catalogue
- Canned user-facing messages

All configurable values should be imported from this module to ensure
consistency across the application.
"""

from .settings import (
    # Endpoint & credentials
    SILICONFLOW_BASE_URL,
    SILICONFLOW_API_KEY,
    AGENT_MODEL,

    # LLM Settings
    TEMPERATURE,
    MAX_TOKENS,
    MAX_TOOL_ROUNDS,
    CONNECT_TIMEOUT,
    READ_TIMEOUT,
    STREAM_DEADLINE,
    STREAM_CHUNK_SIZE,

    # Langfuse Settings
    LANGFUSE_PUBLIC_KEY,
    LANGFUSE_SECRET_KEY,
    LANGFUSE_HOST,
    LANGFUSE_ENABLED,

    # Application Settings
    LOG_LEVEL,
    MAX_UPLOAD_SIZE_MB,
    SUPPORTED_TRANSCRIPT_EXTENSIONS,
    APP_TITLE,
    APP_SUBTITLE,
    PAGE_ICON,

    # Per-session settings
    AgentSettings,
)

from .prompts import (
    # Tool Definitions
    TOOL_DEFINITIONS,
    TOOL_CALL_SHAPE,

    # Agent loop messages
    TOOL_RESULT_TEMPLATE,
    REPEAT_TOOL_PROMPT,
    TOOL_LIMIT_PROMPT,
    EMPTY_ANSWER_MESSAGE,
    REQUEST_FAILED_MESSAGE,
    THINKING_HINT,
    TOOL_HINT,
    MISSING_API_KEY_MESSAGE,
    MISSING_MODEL_MESSAGE,
    MISSING_COURSES_MESSAGE,
    QUICK_PROMPTS,

    # Utilities
    format_prompt,
    format_tool_result,
    build_agent_system_prompt,
)

__all__ = [
    # Settings
    "SILICONFLOW_BASE_URL",
    "SILICONFLOW_API_KEY",
    "AGENT_MODEL",
    "TEMPERATURE",
    "MAX_TOKENS",
    "MAX_TOOL_ROUNDS",
    "CONNECT_TIMEOUT",
    "READ_TIMEOUT",
    "STREAM_DEADLINE",
    "STREAM_CHUNK_SIZE",
    "LANGFUSE_PUBLIC_KEY",
    "LANGFUSE_SECRET_KEY",
    "LANGFUSE_HOST",
    "LANGFUSE_ENABLED",
    "LOG_LEVEL",
    "MAX_UPLOAD_SIZE_MB",
    "SUPPORTED_TRANSCRIPT_EXTENSIONS",
    "APP_TITLE",
    "APP_SUBTITLE",
    "PAGE_ICON",
    "AgentSettings",

    # Prompts
    "TOOL_DEFINITIONS",
    "TOOL_CALL_SHAPE",
    "TOOL_RESULT_TEMPLATE",
    "REPEAT_TOOL_PROMPT",
    "TOOL_LIMIT_PROMPT",
    "EMPTY_ANSWER_MESSAGE",
    "REQUEST_FAILED_MESSAGE",
    "THINKING_HINT",
    "TOOL_HINT",
    "MISSING_API_KEY_MESSAGE",
    "MISSING_MODEL_MESSAGE",
    "MISSING_COURSES_MESSAGE",
    "QUICK_PROMPTS",
    "format_prompt",
    "format_tool_result",
    "build_agent_system_prompt",
]
