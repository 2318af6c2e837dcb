"""
LLM Service - Streaming Chat Completion Client with Langfuse Observability

This service talks to an OpenAI-compatible ``/chat/completions`` endpoint
(SiliconFlow by default) and provides:
- One POST per model turn, streamed as server-sent events
- Incremental decoding of the event stream into text increments
- Single-shot fallback when the server answers with a plain JSON body
- Cooperative cancellation and a wall-clock deadline per request
- Langfuse tracing of every completion

The client never retries: a failed request raises TransportError and the
caller decides what to tell the user.
"""

import codecs
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional

import requests
from langfuse import Langfuse, observe

from config import (
    AgentSettings,
    LANGFUSE_PUBLIC_KEY,
    LANGFUSE_SECRET_KEY,
    LANGFUSE_HOST,
    LANGFUSE_ENABLED,
)

logger = logging.getLogger(__name__)

# ============================================================================
# INITIALIZATION
# ============================================================================

# Initialize Langfuse client (if enabled)
_langfuse_client: Optional[Langfuse] = None

if LANGFUSE_ENABLED:
    try:
        _langfuse_client = Langfuse(
            public_key=LANGFUSE_PUBLIC_KEY,
            secret_key=LANGFUSE_SECRET_KEY,
            host=LANGFUSE_HOST,
        )
        logger.info("✅ Langfuse observability initialized")
    except Exception as e:
        logger.warning(f"⚠️  Langfuse initialization failed: {e}. Continuing without tracing.")
        _langfuse_client = None
else:
    logger.info("ℹ️  Langfuse observability disabled")


def update_trace_metadata(**metadata: Any) -> None:
    """Attach metadata to the current Langfuse trace, if tracing is on."""
    if not _langfuse_client:
        return
    try:
        _langfuse_client.update_current_trace(metadata=metadata)
    except Exception as e:
        logger.debug(f"Could not update Langfuse trace: {e}")


# ============================================================================
# ERRORS
# ============================================================================

class AgentError(RuntimeError):
    """Base class for failures surfaced to the user."""


class TransportError(AgentError):
    """
    The completion request failed: non-success status, connection error,
    socket timeout or an unreadable body.

    Attributes:
        status_code: HTTP status if a response was received
        body: Response body text, kept for diagnostics
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RequestCancelled(TransportError):
    """The request was cancelled or ran past its deadline."""


# ============================================================================
# CANCELLATION
# ============================================================================

class CancelToken:
    """
    Thread-safe cancellation flag with an optional deadline.

    The UI thread calls ``cancel()``; the read loop calls ``check()``
    between chunks.
    """

    def __init__(self, deadline: Optional[float] = None):
        """
        Args:
            deadline: Seconds from now after which the token counts as expired
        """
        self._event = threading.Event()
        self._expires_at = time.monotonic() + deadline if deadline else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self) -> None:
        """Raise RequestCancelled if cancelled or past the deadline."""
        if self.cancelled:
            raise RequestCancelled("request cancelled")
        if self.expired:
            raise RequestCancelled("request deadline exceeded")


# ============================================================================
# STREAM DECODING
# ============================================================================

DONE_SENTINEL = "[DONE]"
DATA_PREFIX = "data:"
EVENT_STREAM_TYPE = "text/event-stream"

_PARSE_FAILED = object()


def extract_delta_content(data: Any) -> str:
    """
    Pull the text out of one completion payload.

    ``choices[0].delta.content`` wins; ``choices[0].message.content`` is the
    fallback for servers that send whole messages. Anything else gives "".
    """
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    choice = choices[0]

    delta = choice.get("delta")
    content = delta.get("content") if isinstance(delta, dict) else None
    if content is None:
        message = choice.get("message")
        content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else ""


class SSEStreamDecoder:
    """
    Reassembles server-sent completion events from arbitrary byte chunks.

    Bytes are decoded incrementally (a multi-byte character may straddle a
    chunk boundary), split on newlines, and any trailing partial line waits
    for the next chunk. A complete line that fails to parse but looks like
    the opening of an unclosed JSON object is held back and recombined with
    the next line. Only one line of lookback is kept: if the recombined
    text still fails, the fragment is dropped.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._pending = ""

    def feed(self, chunk: bytes) -> List[str]:
        """Decode one chunk and return the content increments it completed."""
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return self._process_lines(lines)

    def finish(self) -> List[str]:
        """Flush the decoder and the final unterminated line at end of body."""
        self._buffer += self._decoder.decode(b"", final=True)
        lines, self._buffer = [self._buffer], ""
        increments = self._process_lines(lines)
        if self._pending:
            logger.debug(f"Dropping unterminated stream fragment: {self._pending[:80]!r}")
            self._pending = ""
        return increments

    def _process_lines(self, lines: List[str]) -> List[str]:
        increments = []
        for line in lines:
            content = self._process_line(line)
            if content:
                increments.append(content)
        return increments

    def _process_line(self, raw_line: str) -> Optional[str]:
        line = raw_line.strip()
        if not line or line == DONE_SENTINEL:
            return None
        if line.startswith(DATA_PREFIX):
            line = line[len(DATA_PREFIX):].strip()
        if not line or line == DONE_SENTINEL:
            return None

        if self._pending:
            candidate, self._pending = self._pending + line, ""
            content = self._parse(candidate)
            if content is not _PARSE_FAILED:
                return content
            logger.debug(f"Recombined stream line still invalid, dropping fragment: {candidate[:80]!r}")

        content = self._parse(line)
        if content is not _PARSE_FAILED:
            return content

        if line.startswith("{") and not line.endswith("}"):
            self._pending = line
        else:
            logger.debug(f"Skipping undecodable stream line: {line[:80]!r}")
        return None

    @staticmethod
    def _parse(text: str):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return _PARSE_FAILED
        return extract_delta_content(data)


def decode_event_stream(chunks) -> Iterator[str]:
    """Decode an iterable of byte chunks into content increments."""
    decoder = SSEStreamDecoder()
    for chunk in chunks:
        if chunk:
            yield from decoder.feed(chunk)
    yield from decoder.finish()


# ============================================================================
# CHAT COMPLETION CLIENT
# ============================================================================

DeltaCallback = Callable[[str, str], None]


class ChatCompletionClient:
    """
    Streaming client for one conversation.

    One request is in flight at a time: ``stream_chat`` is a generator the
    caller drains before issuing the next request.
    """

    def __init__(self, settings: AgentSettings, session: Optional[requests.Session] = None):
        """
        Args:
            settings: Endpoint, credentials, generation parameters and timeouts
            session: Optional requests session (one is created if omitted)
        """
        self.settings = settings
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.api_key.strip()}",
            "Content-Type": "application/json",
        }

    def build_payload(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        """Request body for one turn."""
        return {
            "model": self.settings.model,
            "messages": messages,
            "stream": True,
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
        }

    def _timeout(self):
        return (self.settings.connect_timeout, self.settings.read_timeout)

    def stream_chat(
        self,
        messages: List[Dict[str, str]],
        cancel_token: Optional[CancelToken] = None,
    ) -> Iterator[str]:
        """
        Send one turn and yield text increments as they arrive.

        Args:
            messages: Upstream message sequence
            cancel_token: Checked before sending and between chunks

        Yields:
            Non-empty text increments

        Raises:
            TransportError: Non-success status, network failure or unreadable body
            RequestCancelled: Token cancelled or deadline exceeded
        """
        if cancel_token is None:
            cancel_token = CancelToken(self.settings.stream_deadline)
        cancel_token.check()

        try:
            response = self.session.post(
                self.settings.completions_url,
                json=self.build_payload(messages),
                headers=self._headers(),
                stream=True,
                timeout=self._timeout(),
            )
        except requests.RequestException as e:
            raise TransportError(f"request failed: {e}") from e

        try:
            if not response.ok:
                body = response.text
                logger.error(f"❌ Completion request failed: HTTP {response.status_code}")
                raise TransportError(
                    body or "请求失败",
                    status_code=response.status_code,
                    body=body,
                )

            content_type = response.headers.get("Content-Type", "")
            if EVENT_STREAM_TYPE not in content_type:
                text = self._read_whole_body(response)
                if text:
                    yield text
                return

            decoder = SSEStreamDecoder()
            try:
                for chunk in response.iter_content(chunk_size=self.settings.chunk_size):
                    cancel_token.check()
                    if chunk:
                        yield from decoder.feed(chunk)
            except requests.RequestException as e:
                raise TransportError(f"stream interrupted: {e}") from e
            yield from decoder.finish()
        finally:
            response.close()

    @staticmethod
    def _read_whole_body(response) -> str:
        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(
                f"unreadable response body: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e
        return extract_delta_content(data).strip()

    @observe(name="chat_completion", as_type="generation")
    def complete(
        self,
        messages: List[Dict[str, str]],
        on_delta: Optional[DeltaCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> str:
        """
        Run one turn to completion.

        Args:
            messages: Upstream message sequence
            on_delta: Called as ``on_delta(increment, accumulated)`` per increment
            cancel_token: Cancellation / deadline token

        Returns:
            The full assistant text, trimmed
        """
        start_time = time.time()
        accumulated = ""
        for increment in self.stream_chat(messages, cancel_token):
            accumulated += increment
            if on_delta:
                on_delta(increment, accumulated)

        logger.debug(f"📨 Completion: {len(accumulated)} chars, ⏱️  {time.time() - start_time:.2f}s")
        return accumulated.strip()

    def list_models(self) -> List[str]:
        """
        Fetch the chat models available to this API key.

        Returns:
            Sorted, de-duplicated model ids

        Raises:
            TransportError: If the request fails
        """
        try:
            response = self.session.get(
                self.settings.models_url,
                params={"type": "text", "sub_type": "chat"},
                headers={"Authorization": f"Bearer {self.settings.api_key.strip()}"},
                timeout=self._timeout(),
            )
        except requests.RequestException as e:
            raise TransportError(f"model list request failed: {e}") from e

        if not response.ok:
            raise TransportError(
                response.text or "获取模型列表失败",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(f"unreadable model list: {e}", status_code=response.status_code) from e

        items = data.get("data") if isinstance(data, dict) else None
        ids = {item.get("id") for item in items or [] if isinstance(item, dict) and item.get("id")}
        return sorted(ids)


def pick_default_model(models: List[str], current: str = "") -> str:
    """Keep the current model if still offered, else prefer a Qwen model."""
    if not models:
        return ""
    if current in models:
        return current
    return next((name for name in models if "Qwen" in name), models[0])
