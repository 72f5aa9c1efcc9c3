"""
================================================================================
EN: Text processing pipelines for ALTRO
RU: Конвейеры обработки текста ALTRO
================================================================================

EN: 1. scan_pipeline: tokenize, detect context errors and homonyms, spell-correct,
    build the sterilised baseline (no network).
RU: 1. scan_pipeline: токенизация, контекстные ошибки, омонимы, орфография и
    стерильный базовый текст (без сети).

EN: 2. adapt_pipeline: sanitise, then send the sanitised text to the generation
    service and validate stress markers of the result.
RU: 2. adapt_pipeline: санитация, затем генерация по очищенному тексту и
    проверка сохранности ударений в результате.
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, Mapping, Optional

from altro.core.config import AltroConfig
from altro.core.homonyms import DEFAULT_REGISTRY, HomonymRegistry
from altro.core.modes import Mode, ModeResult, process_locally
from altro.core.orchestrator import ChunkSink, GenerationParams, GenerationResult, Orchestrator, ResetHook
from altro.core.sanitation import SanitationInput, SanitationResult, run_core_sanitation
from altro.core.validation import ValidationResult, compute_transformation_level, validate
from altro.core.vectors import ActivePattern, DomainSliders, Scenario, get_active_pattern

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    sanitation: SanitationResult
    baseline: ModeResult


@dataclass(frozen=True)
class AdaptResult:
    text: str
    sanitation: SanitationResult
    generation: GenerationResult
    validation: ValidationResult
    transformation_level: int
    pattern: Optional[ActivePattern] = None


def _sanitize(
    text: str,
    *,
    context_weight: float,
    resolved: Optional[Mapping[str, str]],
    validated: FrozenSet[int],
    config: AltroConfig,
    registry: HomonymRegistry,
) -> SanitationResult:
    return run_core_sanitation(
        SanitationInput(
            text=text,
            validated_token_ids=frozenset(validated),
            resolved_homonyms=dict(resolved or {}),
            context_weight=context_weight,
        ),
        registry=registry,
        fuzzy_threshold=config.thresholds.fuzzy_auto_apply,
        context_threshold=config.thresholds.context_confidence,
    )


def scan_pipeline(
    text: str,
    *,
    mode: Mode = Mode.MIRROR,
    sliders: Optional[DomainSliders] = None,
    context_weight: float = 0.0,
    resolved: Optional[Mapping[str, str]] = None,
    validated: FrozenSet[int] = frozenset(),
    config: Optional[AltroConfig] = None,
    registry: HomonymRegistry = DEFAULT_REGISTRY,
) -> ScanResult:
    """
    EN: Local stage only: sanitation plus the mode's local rendition of the result.
    RU: Только локальная стадия: санитация и локальная обработка выбранным режимом.
    """
    sanitation = _sanitize(
        text,
        context_weight=context_weight,
        resolved=resolved,
        validated=validated,
        config=config or AltroConfig(),
        registry=registry,
    )
    baseline = process_locally(sanitation.sanitized_text, mode, sliders)
    logger.debug(
        "scan: suggestions=%d, unresolved=%d, complete=%s",
        len(sanitation.suggestions),
        len(sanitation.homonym_instances),
        sanitation.is_complete,
    )
    return ScanResult(sanitation=sanitation, baseline=baseline)


async def adapt_pipeline(
    orchestrator: Orchestrator,
    text: str,
    *,
    mode: Mode = Mode.BRIDGE,
    sliders: Optional[DomainSliders] = None,
    scenario: Scenario = Scenario.WITHOUT,
    directive: Optional[str] = None,
    target_language: Optional[str] = None,
    context_weight: float = 0.0,
    resolved: Optional[Mapping[str, str]] = None,
    context_confirmed: bool = False,
    validated: FrozenSet[int] = frozenset(),
    on_chunk: Optional[ChunkSink] = None,
    on_reset: Optional[ResetHook] = None,
    registry: HomonymRegistry = DEFAULT_REGISTRY,
) -> AdaptResult:
    """
    EN: Sanitises the text, sends it for adaptation and validates the output.
        Transport errors propagate unchanged.
    RU: Санитация, адаптация через сервис генерации и проверка результата.
        Ошибки транспорта пробрасываются без изменений.
    """
    sliders = sliders or DomainSliders()
    sanitation = _sanitize(
        text,
        context_weight=context_weight,
        resolved=resolved,
        validated=validated,
        config=orchestrator.config,
        registry=registry,
    )
    if not sanitation.is_complete:
        logger.info(
            "Текст содержит неразрешенные омонимы или подсказки (%d/%d), адаптация продолжается",
            len(sanitation.homonym_instances),
            len(sanitation.suggestions),
        )

    params = GenerationParams(
        text=sanitation.sanitized_text,
        mode=mode,
        sliders=sliders,
        scenario=scenario,
        directive=directive,
        target_language=target_language,
    )
    generation = await orchestrator.request(params, on_chunk=on_chunk, on_reset=on_reset)

    source = sanitation.sanitized_text
    effective = orchestrator.effective_sliders(params)
    check = validate(source, generation.text)
    level = compute_transformation_level(
        source,
        generation.text,
        source_sliders=DomainSliders(),
        adaptation_sliders=effective,
        validation=check,
        context_confirmed=context_confirmed,
    )
    return AdaptResult(
        text=generation.text,
        sanitation=sanitation,
        generation=generation,
        validation=check,
        transformation_level=level,
        pattern=get_active_pattern(effective, threshold=orchestrator.config.thresholds.pattern_match),
    )
