from __future__ import annotations

import asyncio
import json
import random
import re
from unittest.mock import patch

import pytest

from altro.core.config import AltroConfig, GenerationConfig
from altro.core.errors import (
    GenerationTimeoutError,
    RequestInFlightError,
    TransportTimeoutError,
    UpstreamUnavailableError,
)
from altro.core.lexicon import STRESS
from altro.core.modes import Mode
from altro.core.orchestrator import (
    GenerationParams,
    Orchestrator,
    extract_mirror_text,
    new_session_id,
)
from altro.core.pipelines import adapt_pipeline, scan_pipeline
from altro.core.prompts import get_degraded_directive, get_disclaimer
from altro.core.validation import ValidationStatus
from altro.core.vectors import DomainSliders

CASTLE = f"за{STRESS}мок"


class FakeTransport:
    def __init__(
        self,
        *,
        pieces=(),
        reply="",
        stream_exc=None,
        chat_exc=None,
        stream_delay=0.0,
        gate=None,
    ):
        self.pieces = list(pieces)
        self.reply = reply
        self.stream_exc = stream_exc
        self.chat_exc = chat_exc
        self.stream_delay = stream_delay
        self.gate = gate
        self.calls = []
        self.closed = False

    async def chat(self, request):
        self.calls.append(("chat", request))
        if self.chat_exc is not None:
            raise self.chat_exc
        return self.reply

    async def stream_chat(self, request):
        self.calls.append(("stream", request))
        if self.gate is not None:
            await self.gate.wait()
        if self.stream_delay:
            await asyncio.sleep(self.stream_delay)
        for piece in self.pieces:
            yield piece
        if self.stream_exc is not None:
            raise self.stream_exc

    async def aclose(self):
        self.closed = True


def _config(**generation) -> AltroConfig:
    return AltroConfig(generation=GenerationConfig(**generation))


def _system(request) -> str:
    return request.messages[0].content


def test_session_id_format():
    assert re.fullmatch(r"s\d+-[0-9a-z]{7}", new_session_id())
    assert new_session_id(now_ms=5, rng=random.Random(1)).startswith("s5-")


def test_extract_mirror_text():
    assert extract_mirror_text('```json\n{"text": "Старый дом"}\n```') == "Старый дом"
    assert extract_mirror_text("просто текст") == "просто текст"
    assert extract_mirror_text('{"other": 1}') == '{"other": 1}'


@pytest.mark.asyncio
async def test_streaming_increments_reach_sink_in_order():
    transport = FakeTransport(pieces=["Древний ", f"[STRESS]{CASTLE}[/STRESS]", " стоял"])
    orchestrator = Orchestrator(transport, _config())
    seen = []

    result = await orchestrator.request(
        GenerationParams(text=f"Старый {CASTLE} стоял", sliders=DomainSliders(history=0.5)),
        on_chunk=seen.append,
    )

    assert seen == ["Древний ", f"[STRESS]{CASTLE}[/STRESS]", " стоял"]
    assert result.text == f"Древний {CASTLE} стоял"
    assert result.mode is Mode.BRIDGE
    assert not result.degraded

    kind, request = transport.calls[0]
    assert kind == "stream"
    assert _system(request).startswith(f"[Session: {result.session_id}]\n")
    assert f"[STRESS]{CASTLE}[/STRESS]" in request.messages[1].content
    assert "num_predict" not in request.options


@pytest.mark.asyncio
async def test_neutral_sliders_force_mirror_request():
    transport = FakeTransport(pieces=['{"text": "Старый ', f'{CASTLE}"}}'])
    orchestrator = Orchestrator(transport, _config())

    result = await orchestrator.request(GenerationParams(text="Старый замок", mode=Mode.SLANG))

    assert result.mode is Mode.MIRROR
    assert result.text == f"Старый {CASTLE}"
    assert not result.isomorphism_fallback
    request = transport.calls[0][1]
    assert request.options["num_predict"] == 100
    assert "DOMAIN WEIGHTS" not in _system(request)


@pytest.mark.asyncio
async def test_mirror_word_count_change_falls_back_to_input():
    transport = FakeTransport(pieces=[json.dumps({"text": f"Очень старый {CASTLE}"}, ensure_ascii=False)])
    orchestrator = Orchestrator(transport, _config())

    result = await orchestrator.request(GenerationParams(text="Старый замок", mode=Mode.MIRROR))

    assert result.isomorphism_fallback
    assert result.text == "Старый замок"


@pytest.mark.asyncio
async def test_timeout_triggers_single_degraded_retry():
    transport = FakeTransport(stream_exc=TransportTimeoutError("slow"), reply="Итог")
    orchestrator = Orchestrator(transport, _config())

    result = await orchestrator.request(GenerationParams(text="Старый дом", sliders=DomainSliders(history=0.5)))

    assert result.degraded
    assert result.text == "Итог"
    assert [kind for kind, _ in transport.calls] == ["stream", "chat"]
    assert get_degraded_directive() in _system(transport.calls[1][1])


@pytest.mark.asyncio
async def test_local_timeout_also_retries():
    transport = FakeTransport(pieces=["поздно"], stream_delay=1.0, reply="Итог")
    orchestrator = Orchestrator(transport, _config(timeout_seconds=0.05))

    result = await orchestrator.request(GenerationParams(text="Старый дом", sliders=DomainSliders(history=0.5)))

    assert result.degraded
    assert result.text == "Итог"


@pytest.mark.asyncio
async def test_second_timeout_is_terminal():
    transport = FakeTransport(
        stream_exc=TransportTimeoutError("slow"),
        chat_exc=TransportTimeoutError("slow again"),
    )
    orchestrator = Orchestrator(transport, _config())

    with pytest.raises(GenerationTimeoutError):
        await orchestrator.request(GenerationParams(text="Старый дом", sliders=DomainSliders(history=0.5)))
    assert len(transport.calls) == 2
    assert not orchestrator.in_flight


@pytest.mark.asyncio
async def test_gateway_failure_is_not_retried():
    transport = FakeTransport(stream_exc=UpstreamUnavailableError())
    orchestrator = Orchestrator(transport, _config())

    with pytest.raises(UpstreamUnavailableError):
        await orchestrator.request(GenerationParams(text="Старый дом", sliders=DomainSliders(history=0.5)))
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_concurrent_request_is_rejected():
    gate = asyncio.Event()
    transport = FakeTransport(pieces=["Готово"], gate=gate)
    orchestrator = Orchestrator(transport, _config())
    params = GenerationParams(text="Старый дом", sliders=DomainSliders(history=0.5))

    first = asyncio.create_task(orchestrator.request(params))
    for _ in range(3):
        await asyncio.sleep(0)
    assert orchestrator.in_flight

    with pytest.raises(RequestInFlightError):
        await orchestrator.request(params)

    gate.set()
    result = await first
    assert result.text == "Готово"
    assert not orchestrator.in_flight


@pytest.mark.asyncio
async def test_high_ethics_appends_disclaimer():
    transport = FakeTransport(pieces=["Текст"])
    orchestrator = Orchestrator(transport, _config())

    result = await orchestrator.request(
        GenerationParams(text="Старый дом", sliders=DomainSliders(ethics=0.6, history=0.5))
    )

    assert result.disclaimer
    assert result.text == "Текст" + get_disclaimer()


@pytest.mark.asyncio
async def test_history_floor_deconstructs_without_request():
    transport = FakeTransport(pieces=["не должно быть"])
    orchestrator = Orchestrator(transport, _config(), rng=random.Random(2))

    result = await orchestrator.request(GenerationParams(text="Старый дом", sliders=DomainSliders(history=-1.0)))

    assert result.deconstructed
    assert len(result.text) == len("Старый дом")
    assert transport.calls == []


@pytest.mark.asyncio
async def test_empty_content_falls_back_to_input():
    transport = FakeTransport(pieces=["", "  "])
    orchestrator = Orchestrator(transport, _config())

    result = await orchestrator.request(GenerationParams(text="Старый дом", sliders=DomainSliders(history=0.5)))

    assert result.text == "Старый дом"


@pytest.mark.asyncio
async def test_empty_input_short_circuits():
    transport = FakeTransport()
    result = await Orchestrator(transport, _config()).request(GenerationParams(text="   "))
    assert result.text == ""
    assert transport.calls == []


@pytest.mark.asyncio
async def test_stream_producer_releases_guard():
    transport = FakeTransport(pieces=["a", "b", "c"])
    orchestrator = Orchestrator(transport, _config())

    pieces = [p async for p in orchestrator.stream(GenerationParams(text="дом", sliders=DomainSliders(history=0.5)))]

    assert pieces == ["a", "b", "c"]
    assert not orchestrator.in_flight


@pytest.mark.asyncio
async def test_diagnostics_log_is_written(tmp_path):
    transport = FakeTransport(pieces=["Итог"])
    orchestrator = Orchestrator(transport, _config(log_dir=str(tmp_path)))

    await orchestrator.request(GenerationParams(text="Старый дом", sliders=DomainSliders(history=0.5)))

    files = list(tmp_path.glob("*.jsonl"))
    assert len(files) == 1
    record = json.loads(files[0].read_text(encoding="utf-8").strip())
    assert record["mode"] == "bridge"
    assert record["chunks"] == 1
    assert record["active_domains"] == ["История"]


@pytest.mark.asyncio
async def test_context_manager_closes_transport():
    transport = FakeTransport()
    async with Orchestrator(transport, _config()):
        pass
    assert transport.closed


@pytest.mark.asyncio
async def test_adapt_pipeline_validates_stress():
    transport = FakeTransport(pieces=[f"Древний {CASTLE} стоял"])
    orchestrator = Orchestrator(transport, _config())

    result = await adapt_pipeline(
        orchestrator,
        f"старый {CASTLE} стоял",
        sliders=DomainSliders(history=0.5),
    )

    assert result.sanitation.sanitized_text == f"Старый {CASTLE} стоял"
    assert result.validation.status is ValidationStatus.PASSED
    assert result.transformation_level > 0
    assert result.text == f"Древний {CASTLE} стоял"


@pytest.mark.asyncio
async def test_adapt_pipeline_reports_lost_marker():
    transport = FakeTransport(pieces=["Древний дом стоял"])
    orchestrator = Orchestrator(transport, _config())

    result = await adapt_pipeline(orchestrator, f"Старый {CASTLE} стоял", sliders=DomainSliders(history=0.5))

    assert result.validation.status is ValidationStatus.FAILED
    assert result.transformation_level == 0


def test_scan_pipeline_applies_local_mode():
    result = scan_pipeline("превет папа", mode=Mode.SLANG)
    assert result.sanitation.sanitized_text == "Привет папа"
    assert result.baseline.text == "Привет батя"


@pytest.mark.asyncio
async def test_degraded_retry_resets_partial_stream():
    transport = FakeTransport(pieces=["Древ"], stream_exc=TransportTimeoutError("slow"), reply="Итог")
    orchestrator = Orchestrator(transport, _config())
    events = []

    result = await orchestrator.request(
        GenerationParams(text="Старый дом", sliders=DomainSliders(history=0.5)),
        on_chunk=events.append,
        on_reset=lambda: events.append(None),
    )

    assert result.degraded
    assert events == ["Древ", None, "Итог"]


@pytest.mark.asyncio
async def test_degraded_retry_without_reset_keeps_sink_untouched():
    transport = FakeTransport(pieces=["Древ"], stream_exc=TransportTimeoutError("slow"), reply="Итог")
    orchestrator = Orchestrator(transport, _config())
    seen = []

    result = await orchestrator.request(
        GenerationParams(text="Старый дом", sliders=DomainSliders(history=0.5)), on_chunk=seen.append
    )

    assert seen == ["Древ"]
    assert result.text == "Итог"


@pytest.mark.asyncio
async def test_degraded_retry_feeds_empty_sink():
    transport = FakeTransport(stream_exc=TransportTimeoutError("slow"), reply="Итог")
    orchestrator = Orchestrator(transport, _config())
    seen = []

    await orchestrator.request(
        GenerationParams(text="Старый дом", sliders=DomainSliders(history=0.5)), on_chunk=seen.append
    )

    assert seen == ["Итог"]


@pytest.mark.asyncio
async def test_mirror_reports_semantic_check():
    clean = FakeTransport(pieces=[json.dumps({"text": f"Старый {CASTLE}"}, ensure_ascii=False)])
    result = await Orchestrator(clean, _config()).request(GenerationParams(text="Старый замок", mode=Mode.MIRROR))
    assert result.semantic_ok is True
    assert result.semantic_reason is None

    changed = FakeTransport(pieces=[json.dumps({"text": "Новый дом"}, ensure_ascii=False)])
    result = await Orchestrator(changed, _config()).request(GenerationParams(text="Старый дом", mode=Mode.MIRROR))
    assert result.text == "Новый дом"
    assert result.semantic_ok is False
    assert result.semantic_reason


@pytest.mark.asyncio
async def test_rich_modes_skip_semantic_check():
    transport = FakeTransport(pieces=["Новый дом"])
    result = await Orchestrator(transport, _config()).request(
        GenerationParams(text="Старый дом", sliders=DomainSliders(history=0.5))
    )
    assert result.semantic_ok is None


@pytest.mark.asyncio
async def test_adapt_pipeline_sends_sanitized_text_without_local_mode_pass():
    transport = FakeTransport(pieces=["Привет батя"])
    orchestrator = Orchestrator(transport, _config())

    with patch("altro.core.pipelines.process_locally", side_effect=AssertionError("local pass")):
        result = await adapt_pipeline(
            orchestrator, "превет папа", mode=Mode.SLANG, sliders=DomainSliders(history=0.5)
        )

    assert result.sanitation.sanitized_text == "Привет папа"
    assert transport.calls[0][1].messages[1].content == "Привет папа"
