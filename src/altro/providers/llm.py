"""Chat transports for the generation service (Ollama NDJSON and OpenAI-compatible).

RU: Транспорт к сервису генерации: Ollama /api/chat (потоковый NDJSON) и
OpenAI-совместимый Chat Completions.
"""

from __future__ import annotations

import codecs
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence

import httpx
from dotenv import find_dotenv, load_dotenv
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from altro.core.config import GenerationConfig
from altro.core.errors import (
    EmptyResponseError,
    TransportError,
    TransportTimeoutError,
    UpstreamUnavailableError,
)

_dotenv_path = find_dotenv(filename=".env", usecwd=True)
if _dotenv_path:
    load_dotenv(_dotenv_path, override=False)

logger = logging.getLogger(__name__)


@dataclass
class ChatMessage:
    """Single chat message: {role, content}."""

    role: str
    content: str


@dataclass
class ChatRequest:
    """Transport-neutral request; `options` follows the Ollama naming."""

    model: str
    messages: Sequence[ChatMessage]
    options: Dict[str, Any] = field(default_factory=dict)
    keep_alive: Optional[str] = None

    def to_payload(self, *, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in self.messages],
            "options": dict(self.options),
            "stream": stream,
        }
        if self.keep_alive:
            payload["keep_alive"] = self.keep_alive
        return payload


class ChatTransport(Protocol):
    async def chat(self, request: ChatRequest) -> str:
        ...

    def stream_chat(self, request: ChatRequest) -> AsyncIterator[str]:
        ...

    async def aclose(self) -> None:
        ...


def build_message(role: str, content: str) -> ChatMessage:
    """Helper to create ChatMessage instances."""

    return ChatMessage(role=role, content=content)


def _extract_content(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    message = data.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), str):
        return message["content"]
    if isinstance(data.get("response"), str):
        return data["response"]
    return None


class NDJSONDecoder:
    """
    Incremental decoder for newline-delimited JSON over a byte stream.

    Multi-byte UTF-8 sequences split across chunks are resumed; malformed lines
    are skipped. `parsed` counts lines that were valid JSON.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.parsed = 0
        self.done = False

    def feed(self, chunk: bytes) -> List[str]:
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return self._parse_lines(lines)

    def flush(self) -> List[str]:
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        return self._parse_lines([rest])

    def _parse_lines(self, lines: Sequence[str]) -> List[str]:
        out: List[str] = []
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Пропущена некорректная строка NDJSON: %.80s", line)
                continue
            self.parsed += 1
            if isinstance(data, dict) and data.get("done"):
                self.done = True
            content = _extract_content(data)
            if content:
                out.append(content)
        return out


def _raise_for_status(response: httpx.Response) -> None:
    if 200 <= response.status_code < 300:
        return
    if response.status_code == 502:
        raise UpstreamUnavailableError()
    raise TransportError(response.status_code)


class OllamaChatClient:
    """Async client for Ollama-style `/api/chat`."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        *,
        endpoint: str = "/api/chat",
        timeout: Optional[float] = 600.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url
        self.endpoint = endpoint
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def chat(self, request: ChatRequest) -> str:
        """
        Non-streaming call; returns the full message content.

        RU: Пустой или нераспознанный ответ — EmptyResponseError.
        """

        payload = request.to_payload(stream=False)
        logger.debug("Ollama chat: model=%s, messages=%d, stream=False", request.model, len(payload["messages"]))
        try:
            response = await self._client.post(self.endpoint, json=payload)
        except httpx.TimeoutException as exc:
            raise TransportTimeoutError(str(exc)) from exc
        except httpx.TransportError as exc:
            raise UpstreamUnavailableError() from exc

        _raise_for_status(response)
        try:
            data = response.json()
        except ValueError as exc:
            raise EmptyResponseError() from exc
        content = _extract_content(data)
        if not content or not content.strip():
            raise EmptyResponseError()
        return content

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[str]:
        """
        Streaming call; yields content increments in arrival order.

        Closing the iterator closes the underlying HTTP response.
        """

        payload = request.to_payload(stream=True)
        logger.debug("Ollama chat: model=%s, messages=%d, stream=True", request.model, len(payload["messages"]))
        decoder = NDJSONDecoder()
        try:
            async with self._client.stream("POST", self.endpoint, json=payload) as response:
                if not 200 <= response.status_code < 300:
                    await response.aread()
                    _raise_for_status(response)
                async for chunk in response.aiter_bytes():
                    for piece in decoder.feed(chunk):
                        yield piece
                for piece in decoder.flush():
                    yield piece
        except httpx.TimeoutException as exc:
            raise TransportTimeoutError(str(exc)) from exc
        except httpx.TransportError as exc:
            raise UpstreamUnavailableError() from exc

        if decoder.parsed == 0:
            raise EmptyResponseError()

    async def aclose(self) -> None:
        await self._client.aclose()


class OpenAIChatClient:
    """OpenAI-compatible Chat Completions transport (Ollama also serves `/v1`)."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = 600.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._client = client or AsyncOpenAI(
            base_url=base_url,
            api_key=api_key or os.getenv("OPENAI_API_KEY") or "ollama",
            timeout=timeout,
        )

    @staticmethod
    def _request_kwargs(request: ChatRequest, *, stream: bool) -> Dict[str, Any]:
        options = request.options
        kwargs: Dict[str, Any] = {
            "model": request.model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "stream": stream,
        }
        for key in ("temperature", "top_p", "presence_penalty"):
            if options.get(key) is not None:
                kwargs[key] = options[key]
        if options.get("num_predict") is not None:
            kwargs["max_tokens"] = options["num_predict"]
        return kwargs

    async def _create(self, request: ChatRequest, *, stream: bool) -> Any:
        try:
            return await self._client.chat.completions.create(**self._request_kwargs(request, stream=stream))
        except APITimeoutError as exc:
            raise TransportTimeoutError(str(exc)) from exc
        except APIConnectionError as exc:
            raise UpstreamUnavailableError() from exc
        except APIStatusError as exc:
            if exc.status_code == 502:
                raise UpstreamUnavailableError() from exc
            raise TransportError(exc.status_code) from exc

    async def chat(self, request: ChatRequest) -> str:
        response = await self._create(request, stream=False)
        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise EmptyResponseError()
        return content

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[str]:
        stream = await self._create(request, stream=True)
        received = 0
        try:
            async for chunk in stream:
                received += 1
                if not chunk.choices:
                    continue
                piece = chunk.choices[0].delta.content
                if piece:
                    yield piece
        except APITimeoutError as exc:
            raise TransportTimeoutError(str(exc)) from exc
        except APIConnectionError as exc:
            raise UpstreamUnavailableError() from exc
        finally:
            # Ранний выход потребителя тоже закрывает HTTP-ответ
            await stream.close()
        if received == 0:
            raise EmptyResponseError()

    async def aclose(self) -> None:
        await self._client.close()


def build_chat_client(config: GenerationConfig) -> ChatTransport:
    """Transport for the configured backend (`ollama` | `openai`)."""

    if config.backend == "openai":
        return OpenAIChatClient(base_url=config.openai_base_url or None, timeout=config.timeout_seconds)
    return OllamaChatClient(config.base_url, endpoint=config.endpoint, timeout=config.timeout_seconds)
