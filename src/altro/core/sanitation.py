from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Set, Tuple

from altro.core.context_errors import CONTEXT_CONFIDENCE_THRESHOLD, detect_context_errors
from altro.core.homonyms import (
    DEFAULT_REGISTRY,
    HomonymInstance,
    HomonymRecord,
    HomonymRegistry,
    find_homonym_instances,
    homonym_key,
    select_variant,
)
from altro.core.mirror import sterilize
from altro.core.spelling import AUTO_APPLY_CONFIDENCE, correct_word
from altro.core.text import normalize_stress_marks
from altro.core.tokenizer import Token, detokenize, tokenize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SanitationInput:
    """
    Input of the sanitation seam.

    validated_token_ids: tokens the user already confirmed as written.
    resolved_homonyms: occurrence key (`<base>_<offset>`) -> chosen variant.
    """

    text: str
    validated_token_ids: FrozenSet[int] = frozenset()
    resolved_homonyms: Mapping[str, str] = field(default_factory=dict)
    context_weight: float = 0.0


@dataclass(frozen=True)
class SanitationSuggestion:
    kind: str  # "spelling" | "context"
    phrase: str
    suggestion: str
    token_ids: Tuple[int, ...]
    low_confidence: bool
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class SanitationResult:
    sanitized_text: str
    suggestions: Tuple[SanitationSuggestion, ...]
    registry: Mapping[str, HomonymRecord]
    homonym_instances: Tuple[HomonymInstance, ...]
    is_complete: bool
    tokens: Tuple[Token, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "sanitizedText": self.sanitized_text,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "registry": {k: v.to_dict() for k, v in self.registry.items()},
            "homonymInstances": [dataclasses.asdict(i) for i in self.homonym_instances],
            "isComplete": self.is_complete,
        }


def run_core_sanitation(
    request: SanitationInput,
    *,
    registry: HomonymRegistry = DEFAULT_REGISTRY,
    fuzzy_threshold: float = AUTO_APPLY_CONFIDENCE,
    context_threshold: float = CONTEXT_CONFIDENCE_THRESHOLD,
) -> SanitationResult:
    """
    Runs tokenizer, context-error detector, homonym resolver and spell corrector
    over the text and returns the sterilised baseline.

    RU: Контекстные ошибки и табличные/уверенные правки применяются сразу,
    остальное возвращается как подсказки. Текст считается готовым, когда нет
    неразрешенных омонимов и подсказок.
    """

    if not request.text or not request.text.strip():
        return SanitationResult("", (), {}, (), True)

    tokens = tokenize(request.text, registry)
    by_id: Dict[int, Token] = {t.id: t for t in tokens}
    suggestions: List[SanitationSuggestion] = []
    handled: Set[int] = set(request.validated_token_ids)

    for found in detect_context_errors(tokens, request.context_weight, threshold=context_threshold):
        if any(tid in request.validated_token_ids for tid in found.token_ids):
            continue
        first, last = found.token_ids[0], found.token_ids[-1]
        span = [tid for tid in by_id if first <= tid <= last]
        handled.update(span)
        if found.low_confidence:
            suggestions.append(
                SanitationSuggestion("context", found.phrase, found.suggestion, found.token_ids, True)
            )
            continue
        logger.debug("Контекстная правка: %r -> %r", found.phrase, found.suggestion)
        for tid in span:
            by_id[tid] = dataclasses.replace(
                by_id[tid], spell_correction=found.suggestion if tid == first else ""
            )

    homonym_registry: Dict[str, HomonymRecord] = {}
    instances: List[HomonymInstance] = []
    for instance in find_homonym_instances(tokens, registry):
        variant = request.resolved_homonyms.get(instance.key)
        if variant is None:
            homonym_registry[instance.key] = HomonymRecord(resolved=False)
            instances.append(instance)

    position = 0
    for token in tokens:
        offset, position = position, position + len(token.text)
        if not token.is_word:
            continue
        current = by_id[token.id]
        base = registry.base_form(token.text)

        if token.is_homonym_candidate and base is not None:
            variant = request.resolved_homonyms.get(homonym_key(base, offset))
            if variant is not None:
                by_id[token.id], homonym_registry[homonym_key(base, offset)] = select_variant(
                    current, variant, registry
                )
            continue

        if token.has_stress_mark and base is not None:
            homonym_registry[homonym_key(base, offset)] = HomonymRecord(
                resolved=True, variant=normalize_stress_marks(token.text)
            )
            continue

        if not token.is_misspelled or token.id in handled:
            continue
        proposal = correct_word(token.text, threshold=fuzzy_threshold)
        if proposal is None:
            continue
        if proposal.applied:
            by_id[token.id] = dataclasses.replace(current, spell_correction=proposal.correction)
        else:
            suggestions.append(
                SanitationSuggestion(
                    "spelling",
                    token.text,
                    proposal.correction,
                    (token.id,),
                    True,
                    proposal.confidence,
                )
            )

    final_tokens = tuple(by_id[t.id] for t in tokens)
    sanitized = sterilize(normalize_stress_marks(detokenize(final_tokens)))
    return SanitationResult(
        sanitized_text=sanitized,
        suggestions=tuple(suggestions),
        registry=homonym_registry,
        homonym_instances=tuple(instances),
        is_complete=not instances and not suggestions,
        tokens=final_tokens,
    )
