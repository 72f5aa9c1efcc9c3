"""Generation orchestrator: request building, transport, degraded retry, post-processing.

RU: Оркестратор генерации. Один запрос в полете на экземпляр; единственная
автоматическая повторная попытка — упрощенный запрос после таймаута.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import re
import string
import time
from contextlib import aclosing, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable, Iterator, Optional

from altro.core.config import AltroConfig
from altro.core.diagnostics import GenerationDiagnostics, write_generation_log
from altro.core.errors import AltroError, GenerationTimeoutError, RequestInFlightError, TransportTimeoutError
from altro.core.mirror import has_no_obvious_errors, validate_semantic_changes
from altro.core.modes import Mode
from altro.core.prompts import (
    active_domain_labels,
    build_session_prompt,
    build_system_prompt,
    build_user_content,
    get_degraded_directive,
    get_disclaimer,
)
from altro.core.text import apply_declension_fixes, count_words, strip_inline_markers
from altro.core.vectors import (
    DomainSliders,
    Scenario,
    apply_opr_modulation,
    apply_scenario_coefficients,
    calculate_weights,
    deconstruct,
    is_neutral,
)
from altro.providers.llm import ChatRequest, ChatTransport, build_message

logger = logging.getLogger(__name__)

_SESSION_ALPHABET = string.digits + string.ascii_lowercase
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

ChunkSink = Callable[[str], None]
# Сигнал «сбросить накопленные инкременты»: после упрощенного повтора сток получает текст заново
ResetHook = Callable[[], None]


def new_session_id(now_ms: Optional[int] = None, rng: Optional[random.Random] = None) -> str:
    """Opaque session token: `s<epoch ms>-<7 base36 chars>`."""
    rng = rng or random.Random()
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(rng.choice(_SESSION_ALPHABET) for _ in range(7))
    return f"s{ms}-{suffix}"


@dataclass(frozen=True)
class GenerationParams:
    text: str
    mode: Mode = Mode.BRIDGE
    sliders: DomainSliders = field(default_factory=DomainSliders)
    scenario: Scenario = Scenario.WITHOUT
    directive: Optional[str] = None
    target_language: Optional[str] = None
    is_final_adaptation: bool = True
    session_id: Optional[str] = None


@dataclass(frozen=True)
class GenerationResult:
    text: str
    session_id: str
    mode: Mode
    degraded: bool = False
    isomorphism_fallback: bool = False
    disclaimer: bool = False
    deconstructed: bool = False
    # Только для зеркала: результат отличается от входа лишь техническими правками
    semantic_ok: Optional[bool] = None
    semantic_reason: Optional[str] = None


def extract_mirror_text(raw: str) -> str:
    """
    Mirror answers are requested as {"text": ...}; falls back to the raw content
    when no such object can be parsed.
    """

    value = (raw or "").strip()
    match = _JSON_OBJECT_RE.search(value)
    if not match:
        return value
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return value
    if isinstance(data, dict) and isinstance(data.get("text"), str):
        return data["text"]
    return value


class Orchestrator:
    """
    Builds, sends and post-processes generation requests.

    Parameters
    ----------
    transport:
        Chat transport (Ollama NDJSON or OpenAI-compatible).
    config:
        Generation settings and thresholds.
    """

    def __init__(
        self,
        transport: ChatTransport,
        config: Optional[AltroConfig] = None,
        *,
        prompts_path: Optional[str | Path] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._transport = transport
        self.config = config or AltroConfig()
        self._prompts_path = prompts_path
        self._rng = rng or random.Random()
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @contextmanager
    def _guard(self) -> Iterator[None]:
        if self._in_flight:
            raise RequestInFlightError()
        self._in_flight = True
        try:
            yield
        finally:
            self._in_flight = False

    # =========================
    # Request building
    # =========================

    def effective_sliders(self, params: GenerationParams) -> DomainSliders:
        mixed = apply_scenario_coefficients(
            params.sliders, params.scenario, self.config.thresholds.scenario_mix_ratio
        )
        return apply_opr_modulation(mixed)

    @staticmethod
    def effective_mode(params: GenerationParams, sliders: DomainSliders) -> Mode:
        mode = Mode(params.mode)
        if mode is not Mode.MIRROR and is_neutral(sliders):
            return Mode.MIRROR
        return mode

    def build_request(
        self,
        params: GenerationParams,
        *,
        mode: Mode,
        sliders: DomainSliders,
        session_id: str,
        degraded: bool = False,
    ) -> ChatRequest:
        gen = self.config.generation
        thresholds = self.config.thresholds
        directive = get_degraded_directive(self._prompts_path) if degraded else params.directive
        system = build_system_prompt(
            mode,
            sliders,
            directive=directive,
            target_language=params.target_language,
            is_final_adaptation=params.is_final_adaptation,
            penetration_threshold=thresholds.domain_penetration,
            internal_threshold=thresholds.internal_activation,
            external_threshold=thresholds.external_activation,
            prompts_path=self._prompts_path,
        )
        options = {
            "temperature": gen.temperature,
            "top_p": gen.top_p,
            "presence_penalty": gen.presence_penalty,
        }
        if mode is Mode.MIRROR and gen.mirror_num_predict:
            options["num_predict"] = gen.mirror_num_predict
        return ChatRequest(
            model=gen.model,
            messages=[
                build_message("system", build_session_prompt(system, session_id)),
                build_message("user", build_user_content(params.text)),
            ],
            options=options,
            keep_alive=gen.keep_alive,
        )

    # =========================
    # Transport
    # =========================

    async def _consume(self, request: ChatRequest, on_chunk: Optional[ChunkSink]) -> tuple[str, int]:
        parts = []
        async with aclosing(self._transport.stream_chat(request)) as increments:
            async for piece in increments:
                parts.append(piece)
                if on_chunk is not None:
                    on_chunk(piece)
        return "".join(parts), len(parts)

    async def _execute(
        self,
        params: GenerationParams,
        *,
        mode: Mode,
        sliders: DomainSliders,
        session_id: str,
        on_chunk: Optional[ChunkSink],
        on_reset: Optional[ResetHook],
        diagnostics: GenerationDiagnostics,
    ) -> tuple[str, bool]:
        gen = self.config.generation
        emitted = []

        def _sink(piece: str) -> None:
            emitted.append(piece)
            if on_chunk is not None:
                on_chunk(piece)

        request = self.build_request(params, mode=mode, sliders=sliders, session_id=session_id)
        try:
            if gen.stream:
                diagnostics.streamed = True
                content, diagnostics.chunks = await asyncio.wait_for(
                    self._consume(request, _sink), gen.timeout_seconds
                )
            else:
                content = await asyncio.wait_for(self._transport.chat(request), gen.timeout_seconds)
                _sink(content)
            return content, False
        except (asyncio.TimeoutError, TransportTimeoutError):
            logger.warning("Таймаут запроса (session=%s), упрощенный повтор без стриминга", session_id)

        retry = self.build_request(params, mode=mode, sliders=sliders, session_id=session_id, degraded=True)
        try:
            content = await asyncio.wait_for(self._transport.chat(retry), gen.timeout_seconds)
        except (asyncio.TimeoutError, TransportTimeoutError) as exc:
            raise GenerationTimeoutError() from exc
        if on_chunk is not None:
            if emitted and on_reset is not None:
                on_reset()
            if not emitted or on_reset is not None:
                on_chunk(content)
        return content, True

    # =========================
    # Post-processing
    # =========================

    def _postprocess(
        self,
        params: GenerationParams,
        raw: str,
        *,
        mode: Mode,
        sliders: DomainSliders,
        session_id: str,
        degraded: bool,
    ) -> GenerationResult:
        text = extract_mirror_text(raw) if mode is Mode.MIRROR else raw
        text = apply_declension_fixes(strip_inline_markers(text or "").strip())
        if not text:
            logger.debug("Пустой результат генерации, возвращается исходный текст")
            text = params.text

        fallback = False
        if mode is Mode.MIRROR and count_words(text) != count_words(params.text):
            logger.warning(
                "Нарушена изоморфность зеркала (%d != %d слов), возвращается исходный текст",
                count_words(text),
                count_words(params.text),
            )
            text, fallback = params.text, True

        semantic_ok: Optional[bool] = None
        semantic_reason: Optional[str] = None
        if mode is Mode.MIRROR:
            check = validate_semantic_changes(params.text, text)
            semantic_ok, semantic_reason = check.semantic_ok, check.reason
            if semantic_ok and not has_no_obvious_errors(text):
                semantic_ok, semantic_reason = False, "В тексте остались явные ошибки оформления"
            if not semantic_ok:
                logger.info("Зеркало: %s", semantic_reason)

        disclaimer = mode.is_rich and sliders.internal_display()["ethics"] > self.config.thresholds.ethics_disclaimer
        if disclaimer:
            text += get_disclaimer(self._prompts_path)

        return GenerationResult(
            text=text,
            session_id=session_id,
            mode=mode,
            degraded=degraded,
            isomorphism_fallback=fallback,
            disclaimer=disclaimer,
            semantic_ok=semantic_ok,
            semantic_reason=semantic_reason,
        )

    # =========================
    # Public API
    # =========================

    async def request(
        self,
        params: GenerationParams,
        on_chunk: Optional[ChunkSink] = None,
        on_reset: Optional[ResetHook] = None,
    ) -> GenerationResult:
        """
        Runs one orchestration call.

        RU: `on_chunk` получает инкременты в порядке поступления. Ошибки транспорта
        пробрасываются вызывающему; второй одновременный вызов отклоняется.

        If a streaming call times out after some increments were delivered, the
        degraded retry text is sent to `on_chunk` only after `on_reset()`; without
        `on_reset` the caller must replace its buffer with `result.text`.
        """

        session_id = params.session_id or new_session_id(rng=self._rng)
        if not params.text or not params.text.strip():
            return GenerationResult(text="", session_id=session_id, mode=Mode(params.mode))

        with self._guard():
            sliders = self.effective_sliders(params)
            mode = self.effective_mode(params, sliders)
            diagnostics = GenerationDiagnostics.start(session_id, mode.value, self.config.generation.model, params.text)
            diagnostics.active_domains = active_domain_labels(sliders)
            started = time.perf_counter()
            try:
                if mode.is_rich and calculate_weights(sliders).deconstruction:
                    logger.debug("Деконструкция (session=%s): запрос не отправляется", session_id)
                    result = GenerationResult(
                        text=deconstruct(params.text, self._rng),
                        session_id=session_id,
                        mode=mode,
                        deconstructed=True,
                    )
                else:
                    raw, degraded = await self._execute(
                        params,
                        mode=mode,
                        sliders=sliders,
                        session_id=session_id,
                        on_chunk=on_chunk,
                        on_reset=on_reset,
                        diagnostics=diagnostics,
                    )
                    result = self._postprocess(
                        params, raw, mode=mode, sliders=sliders, session_id=session_id, degraded=degraded
                    )
                diagnostics.output_preview = result.text[:320]
                diagnostics.degraded_retry = result.degraded
                diagnostics.isomorphism_fallback = result.isomorphism_fallback
                diagnostics.disclaimer = result.disclaimer
                return result
            except AltroError as exc:
                diagnostics.error = str(exc)
                raise
            finally:
                diagnostics.duration_ms = (time.perf_counter() - started) * 1000
                if self.config.generation.log_dir:
                    write_generation_log(diagnostics, self.config.generation.log_dir)

    async def stream(self, params: GenerationParams) -> AsyncIterator[str]:
        """
        Raw content increments of a streaming call, in arrival order.

        Closing the iterator stops the producer and the underlying transport.
        No timeout retry and no post-processing are applied here.
        """

        with self._guard():
            sliders = self.effective_sliders(params)
            mode = self.effective_mode(params, sliders)
            session_id = params.session_id or new_session_id(rng=self._rng)
            request = self.build_request(params, mode=mode, sliders=sliders, session_id=session_id)
            async with aclosing(self._transport.stream_chat(request)) as increments:
                async for piece in increments:
                    yield piece

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self) -> "Orchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
