"""
Unit Tests for the Streaming Chat Completion Client

Tests event-stream decoding, the single-shot fallback, failures and
cancellation. The HTTP session is mocked; nothing touches the network.
"""

import json
from typing import List, Optional
from unittest.mock import Mock, patch

import pytest
import requests

from ai.llm_service import (
    CancelToken,
    ChatCompletionClient,
    RequestCancelled,
    SSEStreamDecoder,
    TransportError,
    decode_event_stream,
    extract_delta_content,
    pick_default_model,
    update_trace_metadata,
)
from tests import settings


def sse_event(content: str) -> str:
    payload = {"choices": [{"delta": {"content": content}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def sse_body(*pieces: str, done: bool = True) -> bytes:
    body = "".join(sse_event(piece) for piece in pieces)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode("utf-8")


def split_every(data: bytes, size: int) -> List[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


def make_response(
    body: bytes = b"",
    status: int = 200,
    content_type: str = "text/event-stream",
    chunks: Optional[List[bytes]] = None,
):
    """Mocked requests.Response streaming *body* (or explicit *chunks*)."""
    response = Mock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.headers = {"Content-Type": content_type}
    response.text = body.decode("utf-8", errors="replace")
    response.iter_content.side_effect = lambda chunk_size=1024: iter(
        chunks if chunks is not None else split_every(body, chunk_size)
    )
    response.json.side_effect = lambda: json.loads(body.decode("utf-8"))
    return response


class TestExtractDeltaContent:
    """Test extract_delta_content helper."""

    def test_delta_content(self):
        """Test content is read from the streaming delta."""
        assert extract_delta_content({"choices": [{"delta": {"content": "你好"}}]}) == "你好"

    def test_falls_back_to_message_content(self):
        """Test non-streaming message content is accepted."""
        data = {"choices": [{"delta": {}, "message": {"content": "完整回答"}}]}
        assert extract_delta_content(data) == "完整回答"

    def test_empty_delta_string_is_kept(self):
        """Test an empty delta string wins over message content."""
        data = {"choices": [{"delta": {"content": ""}, "message": {"content": "x"}}]}
        assert extract_delta_content(data) == ""

    @pytest.mark.parametrize("data", [{}, {"choices": []}, {"choices": ["x"]}, [], None])
    def test_missing_content(self, data):
        """Test payloads without content give an empty string."""
        assert extract_delta_content(data) == ""


class TestSSEStreamDecoder:
    """Test incremental event-stream decoding."""

    TEXT_PIECES = ("你好，", "我是成绩", "分析助手。", "平均分 85.2")

    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 5, 17, 4096])
    def test_reassembles_across_arbitrary_chunking(self, chunk_size):
        """Test any chunking yields the same increments."""
        body = sse_body(*self.TEXT_PIECES)
        increments = list(decode_event_stream(split_every(body, chunk_size)))
        assert "".join(increments) == "".join(self.TEXT_PIECES)

    def test_multibyte_character_split_between_chunks(self):
        """Test a character split across chunks is decoded once."""
        body = sse_body("成绩")
        cut = body.index("成".encode("utf-8")) + 1
        decoder = SSEStreamDecoder()
        first = decoder.feed(body[:cut])
        rest = decoder.feed(body[cut:]) + decoder.finish()
        assert first == []
        assert rest == ["成绩"]

    def test_done_sentinels_and_blank_lines_skipped(self):
        """Test [DONE] and blank lines produce nothing."""
        body = (sse_event("A") + "\n\n[DONE]\n" + "data:[DONE]\n" + sse_event("B")).encode()
        assert list(decode_event_stream([body])) == ["A", "B"]

    def test_lines_without_data_prefix(self):
        """Test non-data lines are ignored."""
        line = json.dumps({"choices": [{"delta": {"content": "ok"}}]})
        assert list(decode_event_stream([f"{line}\r\n".encode()])) == ["ok"]

    def test_truncated_line_recombined_with_next(self):
        """Test a truncated payload is joined with the next line."""
        body = (
            'data: {"choices":[{"delta":{"content":"你\n'
            '好"}}]}\n'
        ).encode("utf-8")
        assert list(decode_event_stream([body])) == ["你好"]

    def test_failed_recombination_drops_fragment_only(self):
        """Test a bad fragment is dropped and the next line still parses."""
        body = (
            sse_event("A")
            + 'data: {"choices":[{"delta":{"content":"lost\n'
            + sse_event("B")
        ).encode("utf-8")
        assert "".join(decode_event_stream([body])) == "AB"

    def test_undecodable_line_is_not_fatal(self):
        """Test an unparseable line does not stop the stream."""
        body = ("data: not json at all\n" + sse_event("still here")).encode()
        assert list(decode_event_stream([body])) == ["still here"]

    def test_final_unterminated_line_flushed(self):
        """Test the last line is parsed without a trailing newline."""
        body = sse_event("A") + 'data: {"choices":[{"delta":{"content":"尾"}}]}'
        assert list(decode_event_stream([body.encode("utf-8")])) == ["A", "尾"]


class TestCancelToken:
    """Test CancelToken."""

    def test_cancel(self):
        """Test cancel marks the token and check raises."""
        token = CancelToken()
        token.check()
        token.cancel()
        assert token.cancelled
        with pytest.raises(RequestCancelled):
            token.check()

    def test_deadline_expiry(self):
        """Test a passed deadline raises on check."""
        token = CancelToken(deadline=30)
        assert not token.expired
        with patch("ai.llm_service.time.monotonic", return_value=10 ** 12):
            with pytest.raises(RequestCancelled, match="deadline"):
                token.check()

    def test_no_deadline_never_expires(self):
        """Test a token without deadline never expires."""
        assert CancelToken().expired is False


class TestChatCompletionClient:
    """Test ChatCompletionClient against a mocked session."""

    @pytest.fixture
    def session(self):
        return Mock()

    @pytest.fixture
    def client(self, session):
        return ChatCompletionClient(settings(), session=session)

    MESSAGES = [{"role": "user", "content": "我修了多少学分？"}]

    def test_build_payload(self, client):
        """Test the request body carries model, messages and sampling settings."""
        payload = client.build_payload(self.MESSAGES)
        assert payload["stream"] is True
        assert payload["model"] == "Qwen/Qwen2.5-7B-Instruct"
        assert payload["messages"] == self.MESSAGES
        assert payload["max_tokens"] == client.settings.max_tokens
        assert payload["temperature"] == client.settings.temperature

    def test_stream_chat_request_shape(self, client, session):
        """Test the POST goes to the completions URL with auth and timeouts."""
        response = make_response(sse_body("你好", "！"))
        session.post.return_value = response

        assert list(client.stream_chat(self.MESSAGES)) == ["你好", "！"]

        args, kwargs = session.post.call_args
        assert args[0] == client.settings.completions_url
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["stream"] is True
        assert kwargs["json"]["stream"] is True
        assert kwargs["timeout"] == (client.settings.connect_timeout, client.settings.read_timeout)
        response.close.assert_called_once()

    def test_complete_reports_deltas_and_trims(self, client, session):
        """Test complete streams deltas and returns stripped text."""
        session.post.return_value = make_response(sse_body("  你", "好 "))
        on_delta = Mock()

        assert client.complete(self.MESSAGES, on_delta=on_delta) == "你好"
        assert [c.args for c in on_delta.call_args_list] == [("  你", "  你"), ("好 ", "  你好 ")]

    def test_non_stream_body(self, client, session):
        """Test a JSON body is accepted in place of an event stream."""
        body = json.dumps({"choices": [{"message": {"content": "  共 128.5 学分  "}}]}).encode()
        session.post.return_value = make_response(body, content_type="application/json")
        on_delta = Mock()

        assert client.complete(self.MESSAGES, on_delta=on_delta) == "共 128.5 学分"
        on_delta.assert_called_once_with("共 128.5 学分", "共 128.5 学分")

    def test_non_stream_empty_content_has_no_callback(self, client, session):
        """Test empty JSON content sends no delta."""
        body = json.dumps({"choices": [{"message": {"content": "   "}}]}).encode()
        session.post.return_value = make_response(body, content_type="application/json")
        on_delta = Mock()

        assert client.complete(self.MESSAGES, on_delta=on_delta) == ""
        on_delta.assert_not_called()

    def test_non_stream_unreadable_body(self, client, session):
        """Test an unreadable JSON body raises TransportError."""
        session.post.return_value = make_response(b"<html>oops</html>", content_type="text/html")
        with pytest.raises(TransportError, match="unreadable"):
            client.complete(self.MESSAGES)

    def test_http_error_carries_status_and_body(self, client, session):
        """Test non-OK responses keep status and body."""
        response = make_response(b'{"message":"invalid api key"}', status=401)
        session.post.return_value = response

        with pytest.raises(TransportError) as exc_info:
            client.complete(self.MESSAGES)

        assert exc_info.value.status_code == 401
        assert "invalid api key" in exc_info.value.body
        response.close.assert_called_once()

    def test_connection_error(self, client, session):
        """Test connection failures raise TransportError."""
        session.post.side_effect = requests.ConnectionError("connection refused")
        with pytest.raises(TransportError, match="connection refused"):
            client.complete(self.MESSAGES)

    def test_interrupted_stream(self, client, session):
        """Test a stream cut mid-way raises TransportError."""
        response = make_response()
        response.iter_content.side_effect = requests.exceptions.ChunkedEncodingError("reset")
        session.post.return_value = response

        with pytest.raises(TransportError, match="interrupted"):
            client.complete(self.MESSAGES)

    def test_no_retry_after_failure(self, client, session):
        """Test a failed request is sent only once."""
        session.post.return_value = make_response(b"busy", status=503)
        with pytest.raises(TransportError):
            client.complete(self.MESSAGES)
        assert session.post.call_count == 1

    def test_cancelled_before_request(self, client, session):
        """Test a cancelled token stops the request before sending."""
        token = CancelToken()
        token.cancel()
        with pytest.raises(RequestCancelled):
            client.complete(self.MESSAGES, cancel_token=token)
        session.post.assert_not_called()

    def test_cancel_between_chunks_closes_response(self, client, session):
        """Test cancelling mid-stream closes the response."""
        chunks = [sse_event("第一段").encode(), sse_event("第二段").encode()]
        response = make_response(chunks=chunks)
        session.post.return_value = response
        token = CancelToken()
        received = []

        def on_delta(increment, accumulated):
            received.append(increment)
            token.cancel()

        with pytest.raises(RequestCancelled):
            client.complete(self.MESSAGES, on_delta=on_delta, cancel_token=token)

        assert received == ["第一段"]
        response.close.assert_called_once()


class TestListModels:
    """Test model discovery."""

    def test_sorted_unique_ids(self):
        """Test model ids are deduplicated and sorted."""
        session = Mock()
        response = make_response(
            json.dumps({"data": [{"id": "b"}, {"id": "a"}, {"id": "b"}, {}]}).encode(),
            content_type="application/json",
        )
        session.get.return_value = response
        client = ChatCompletionClient(settings(), session=session)

        assert client.list_models() == ["a", "b"]
        kwargs = session.get.call_args.kwargs
        assert kwargs["params"] == {"type": "text", "sub_type": "chat"}

    def test_failure_raises(self):
        """Test a failed model listing raises TransportError."""
        session = Mock()
        session.get.return_value = make_response(b"forbidden", status=403)
        client = ChatCompletionClient(settings(), session=session)

        with pytest.raises(TransportError) as exc_info:
            client.list_models()
        assert exc_info.value.status_code == 403


class TestPickDefaultModel:
    """Test pick_default_model."""

    def test_prefers_qwen(self):
        """Test a Qwen model is preferred."""
        assert pick_default_model(["deepseek-ai/DeepSeek-V3", "Qwen/Qwen2.5-72B-Instruct"]) == "Qwen/Qwen2.5-72B-Instruct"

    def test_keeps_current_if_offered(self):
        """Test the current model is kept when still offered."""
        assert pick_default_model(["a", "Qwen/x"], current="a") == "a"

    def test_first_when_no_qwen(self):
        """Test the first model is used without a Qwen option."""
        assert pick_default_model(["b", "c"]) == "b"

    def test_empty(self):
        """Test an empty list gives no model."""
        assert pick_default_model([]) == ""


class TestTraceMetadata:
    """Test update_trace_metadata."""

    def test_noop_without_langfuse(self):
        """Test nothing is sent when tracing is disabled."""
        with patch("ai.llm_service._langfuse_client", None):
            update_trace_metadata(model="m")

    def test_forwards_to_current_trace(self):
        """Test metadata reaches the active Langfuse trace."""
        langfuse = Mock()
        with patch("ai.llm_service._langfuse_client", langfuse):
            update_trace_metadata(model="m", tool_rounds=2)
        langfuse.update_current_trace.assert_called_once_with(metadata={"model": "m", "tool_rounds": 2})

    def test_trace_errors_are_swallowed(self):
        """Test a failing Langfuse client never breaks a request."""
        langfuse = Mock()
        langfuse.update_current_trace.side_effect = RuntimeError("no active span")
        with patch("ai.llm_service._langfuse_client", langfuse):
            update_trace_metadata(model="m")
