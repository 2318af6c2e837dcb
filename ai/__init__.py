"""
AI Infrastructure Module

This module provides the core LLM infrastructure for GradeMate:
- Streaming client for an OpenAI-compatible chat completions endpoint
- Incremental server-sent event decoding with truncated-line recovery
- Cancellation tokens and per-request deadlines
- Langfuse observability integration

All model traffic should go through this module to ensure consistent
observability, error handling, and configuration.
"""

from .llm_service import (
    # Client
    ChatCompletionClient,
    pick_default_model,

    # Stream decoding
    SSEStreamDecoder,
    decode_event_stream,
    extract_delta_content,

    # Cancellation & errors
    CancelToken,
    AgentError,
    TransportError,
    RequestCancelled,

    # Observability
    update_trace_metadata,
)

__all__ = [
    "ChatCompletionClient",
    "pick_default_model",
    "SSEStreamDecoder",
    "decode_event_stream",
    "extract_delta_content",
    "CancelToken",
    "AgentError",
    "TransportError",
    "RequestCancelled",
    "update_trace_metadata",
]
