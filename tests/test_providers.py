from __future__ import annotations

import json
import unittest
from contextlib import aclosing
from types import SimpleNamespace

import httpx
import pytest

from altro.core.config import GenerationConfig
from altro.core.errors import (
    ERROR_502_MESSAGE,
    EmptyResponseError,
    TransportError,
    TransportTimeoutError,
    UpstreamUnavailableError,
)
from altro.core.lexicon import STRESS
from altro.providers.llm import (
    ChatRequest,
    NDJSONDecoder,
    OllamaChatClient,
    OpenAIChatClient,
    build_chat_client,
    build_message,
)

CASTLE = f"за{STRESS}мок"


def _line(content: str, done: bool = False) -> bytes:
    return (json.dumps({"message": {"role": "assistant", "content": content}, "done": done}, ensure_ascii=False) + "\n").encode("utf-8")


def _request() -> ChatRequest:
    return ChatRequest(
        model="test-model",
        messages=[build_message("system", "sys"), build_message("user", "текст")],
        options={"temperature": 0.4, "num_predict": 100},
        keep_alive="10m",
    )


class ChunkedStream(httpx.AsyncByteStream):
    def __init__(self, chunks):
        self._chunks = chunks

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk


def _client(handler) -> OllamaChatClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://ollama.test")
    return OllamaChatClient("http://ollama.test", client=http)


class NDJSONDecoderTests(unittest.TestCase):
    def test_multibyte_sequence_split_across_chunks(self):
        data = _line(CASTLE)
        cut = data.index(CASTLE.encode("utf-8")) + 1
        decoder = NDJSONDecoder()

        self.assertEqual(decoder.feed(data[:cut]), [])
        self.assertEqual(decoder.feed(data[cut:]), [CASTLE])
        self.assertEqual(decoder.parsed, 1)

    def test_malformed_lines_are_skipped(self):
        decoder = NDJSONDecoder()
        out = decoder.feed(b"not json\n" + _line("a") + b"\n")
        self.assertEqual(out, ["a"])
        self.assertEqual(decoder.parsed, 1)

    def test_flush_parses_trailing_line_and_done(self):
        decoder = NDJSONDecoder()
        self.assertEqual(decoder.feed(_line("a") + _line("b", done=True).rstrip(b"\n")), ["a"])
        self.assertFalse(decoder.done)
        self.assertEqual(decoder.flush(), ["b"])
        self.assertTrue(decoder.done)

    def test_payload_shape(self):
        payload = _request().to_payload(stream=True)
        self.assertEqual(payload["messages"][1], {"role": "user", "content": "текст"})
        self.assertTrue(payload["stream"])
        self.assertEqual(payload["keep_alive"], "10m")
        self.assertEqual(payload["options"]["num_predict"], 100)

    def test_backend_selection(self):
        self.assertIsInstance(build_chat_client(GenerationConfig()), OllamaChatClient)
        self.assertIsInstance(
            build_chat_client(GenerationConfig(backend="openai", openai_base_url="http://localhost:11434/v1")),
            OpenAIChatClient,
        )


@pytest.mark.asyncio
async def test_stream_yields_increments_in_order():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        body = _line("Старый ") + _line(CASTLE) + _line("", done=True)
        cut = body.index(CASTLE.encode("utf-8")) + 1
        return httpx.Response(200, stream=ChunkedStream([body[:cut], body[cut:]]))

    client = _client(handler)
    pieces = [piece async for piece in client.stream_chat(_request())]
    await client.aclose()

    assert pieces == ["Старый ", CASTLE]
    assert seen["path"] == "/api/chat"
    assert seen["body"]["stream"] is True


@pytest.mark.asyncio
async def test_chat_returns_full_content():
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["stream"] is False
        return httpx.Response(200, json={"message": {"role": "assistant", "content": "ответ"}, "done": True})

    client = _client(handler)
    assert await client.chat(_request()) == "ответ"
    await client.aclose()


@pytest.mark.asyncio
async def test_gateway_failure_maps_to_fixed_message():
    client = _client(lambda request: httpx.Response(502, text="bad gateway"))

    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await client.chat(_request())
    assert str(exc_info.value) == ERROR_502_MESSAGE

    with pytest.raises(UpstreamUnavailableError):
        async for _ in client.stream_chat(_request()):
            pass
    await client.aclose()


@pytest.mark.asyncio
async def test_other_status_carries_code():
    client = _client(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(TransportError) as exc_info:
        await client.chat(_request())
    assert exc_info.value.status_code == 500
    assert str(exc_info.value) == "Ollama request failed: 500"
    await client.aclose()


@pytest.mark.asyncio
async def test_unparseable_stream_is_empty_response():
    client = _client(lambda request: httpx.Response(200, content=b"garbage\nmore garbage"))
    with pytest.raises(EmptyResponseError):
        async for _ in client.stream_chat(_request()):
            pass
    await client.aclose()


@pytest.mark.asyncio
async def test_empty_chat_body_is_empty_response():
    client = _client(lambda request: httpx.Response(200, json={"message": {"content": "  "}}))
    with pytest.raises(EmptyResponseError):
        await client.chat(_request())
    await client.aclose()


@pytest.mark.asyncio
async def test_network_errors_are_mapped():
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    slow = _client(timeout)
    with pytest.raises(TransportTimeoutError):
        await slow.chat(_request())
    await slow.aclose()

    down = _client(refused)
    with pytest.raises(UpstreamUnavailableError):
        await down.chat(_request())
    await down.aclose()


class FakeCompletionStream:
    def __init__(self, pieces):
        self.pieces = pieces
        self.closed = False

    async def __aiter__(self):
        for piece in self.pieces:
            yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=piece))])

    async def close(self):
        self.closed = True


def _openai_client(stream: FakeCompletionStream) -> OpenAIChatClient:
    async def create(**kwargs):
        assert kwargs["stream"] is True
        assert kwargs["max_tokens"] == 100
        return stream

    fake = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return OpenAIChatClient(client=fake)


@pytest.mark.asyncio
async def test_openai_stream_closed_when_consumer_stops_early():
    stream = FakeCompletionStream(["Старый ", CASTLE, " стоял"])
    client = _openai_client(stream)

    async with aclosing(client.stream_chat(_request())) as pieces:
        async for piece in pieces:
            assert piece == "Старый "
            break

    assert stream.closed


@pytest.mark.asyncio
async def test_openai_stream_closed_after_full_read():
    stream = FakeCompletionStream(["a", "b"])
    client = _openai_client(stream)

    assert [piece async for piece in client.stream_chat(_request())] == ["a", "b"]
    assert stream.closed
