"""
Domain vector calculus: 13 sliders (8 external, 5 internal) plus the OPR scalar.

RU: Движок никогда не меняет переданный снимок слайдеров — все функции
возвращают новые значения.
"""

from __future__ import annotations

import dataclasses
import random
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from altro.core.lexicon import (
    EXTERNAL_AXES,
    GOLD_STANDARD_SLIDERS,
    INTERNAL_AXES,
    REFERENCE_PROFILES,
    SCENARIO_PROFILES,
    ReferenceProfile,
)
from altro.core.text import ZERO_WIDTH_MARK

INTERNAL_ACTIVATION_THRESHOLD = 10.0  # шкала 0–100
EXTERNAL_ACTIVATION_THRESHOLD = 0.1
STANDBY_THRESHOLD = 0.3
PATTERN_MATCH_THRESHOLD = 0.7
SCENARIO_MIX_RATIO = 0.5
DECONSTRUCTION_LIMIT = -0.99
DECONSTRUCTION_RETENTION = 0.3
OPR_IDENTITY = 1.0

EXTERNAL_TO_INTERNAL: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "history": ("semantics", "context"),
        "aesthetics": ("imagery", "ethics"),
        "culture": ("imagery", "context"),
        "religion": ("ethics", "intent"),
        "society": ("context", "semantics"),
        "politics": ("intent", "semantics"),
        "economics": ("semantics",),
        "technology": ("context",),
    }
)

_PRESERVED_CHARS = frozenset(".!?,;:")


class Scenario(str, Enum):
    WITHOUT = "without"
    POETICS = "poetics"
    TECHNOCRAT = "technocrat"
    SACRED = "sacred"
    GOLD_STANDARD = "goldStandard"


@dataclass(frozen=True)
class DomainSliders:
    """
    Caller-owned snapshot of the 13 domain axes and OPR.

    Internal axes are in [0, 1], external axes and OPR in [-1, 1]. OPR = 1.0
    applies external axes at face value, 0 neutralises them.
    """

    semantics: float = 0.0
    context: float = 0.0
    intent: float = 0.0
    imagery: float = 0.0
    ethics: float = 0.0
    economics: float = 0.0
    politics: float = 0.0
    society: float = 0.0
    history: float = 0.0
    culture: float = 0.0
    aesthetics: float = 0.0
    technology: float = 0.0
    religion: float = 0.0
    opr: float = OPR_IDENTITY

    def __post_init__(self) -> None:
        for axis in INTERNAL_AXES:
            value = getattr(self, axis)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Внутренняя ось {axis} должна быть в диапазоне [0, 1], получено {value}.")
        for axis in EXTERNAL_AXES + ("opr",):
            value = getattr(self, axis)
            if not -1.0 <= value <= 1.0:
                raise ValueError(f"Ось {axis} должна быть в диапазоне [-1, 1], получено {value}.")

    @classmethod
    def from_mapping(cls, data: Mapping[str, float]) -> "DomainSliders":
        allowed = set(INTERNAL_AXES) | set(EXTERNAL_AXES) | {"opr"}
        return cls(**{k: float(v) for k, v in data.items() if k in allowed and v is not None})

    def internal(self) -> Dict[str, float]:
        return {axis: getattr(self, axis) for axis in INTERNAL_AXES}

    def external(self) -> Dict[str, float]:
        return {axis: getattr(self, axis) for axis in EXTERNAL_AXES}

    def internal_display(self) -> Dict[str, float]:
        """Internal axes on the 0–100 display scale."""
        return {axis: value * 100 for axis, value in self.internal().items()}

    def to_dict(self) -> Dict[str, float]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class CalculatedWeights:
    semantics_weight: float
    context_weight: float
    intent_weight: float
    imagery_weight: float
    ethics_weight: float
    geography_active: bool
    transcreation_active: bool
    deconstruction: bool

    def to_dict(self) -> Dict[str, object]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class ActivePattern:
    id: str
    name: str
    score: float


def _normalize_external(value: float) -> float:
    return (value + 1) / 2


def _calculated_weight(axis: str, sliders: DomainSliders) -> float:
    total = getattr(sliders, axis)
    for external, targets in EXTERNAL_TO_INTERNAL.items():
        if axis in targets:
            total += _normalize_external(getattr(sliders, external)) * 0.5
    return total


def calculate_weights(sliders: DomainSliders) -> CalculatedWeights:
    """
    Blends every internal axis with the external axes that feed it.

    weight(X) = X + sum(normalized(E) * 0.5) for each external E feeding X,
    where normalized(E) = (E + 1) / 2.
    """

    normalized_history = _normalize_external(sliders.history)
    return CalculatedWeights(
        semantics_weight=_calculated_weight("semantics", sliders),
        context_weight=_calculated_weight("context", sliders),
        intent_weight=_calculated_weight("intent", sliders),
        imagery_weight=_calculated_weight("imagery", sliders),
        ethics_weight=_calculated_weight("ethics", sliders),
        geography_active=(normalized_history + sliders.semantics) > 0.6,
        transcreation_active=normalized_history > 0.5 or sliders.semantics > 0.5,
        deconstruction=sliders.history <= DECONSTRUCTION_LIMIT,
    )


def calculate_scenario_weights(
    profile: Mapping[str, float],
    sliders: DomainSliders,
    mix_ratio: float = SCENARIO_MIX_RATIO,
) -> DomainSliders:
    """
    Mixes a scenario baseline (external axes in [0, 1]) with the user's sliders.

    external = (profile * 2 - 1) * (1 - mix_ratio) + slider * mix_ratio
    """

    if not 0.0 <= mix_ratio <= 1.0:
        raise ValueError(f"mix_ratio должен быть в диапазоне [0, 1], получено {mix_ratio}.")
    updates = {
        axis: (profile[axis] * 2 - 1) * (1 - mix_ratio) + getattr(sliders, axis) * mix_ratio
        for axis in EXTERNAL_AXES
        if axis in profile
    }
    return dataclasses.replace(sliders, **updates)


def apply_scenario_coefficients(
    sliders: DomainSliders,
    scenario: Scenario | str,
    mix_ratio: float = SCENARIO_MIX_RATIO,
) -> DomainSliders:
    scenario = Scenario(scenario)
    if scenario is Scenario.WITHOUT:
        return sliders
    if scenario is Scenario.GOLD_STANDARD:
        # Пресет верхнего уровня заменяет слайдеры целиком, OPR остается пользовательским.
        return dataclasses.replace(DomainSliders.from_mapping(GOLD_STANDARD_SLIDERS), opr=sliders.opr)
    return calculate_scenario_weights(SCENARIO_PROFILES[scenario.value], sliders, mix_ratio)


def apply_opr_modulation(sliders: DomainSliders, opr: Optional[float] = None) -> DomainSliders:
    """Effective external axis = raw * OPR. OPR = 0 neutralises every external axis."""
    value = sliders.opr if opr is None else opr
    updates = {axis: getattr(sliders, axis) * value for axis in EXTERNAL_AXES}
    return dataclasses.replace(sliders, **updates)


def _profile_attribute(sliders: DomainSliders, axis: str) -> float:
    value = getattr(sliders, axis)
    return _normalize_external(value) if axis in EXTERNAL_AXES else value


def get_active_pattern(
    sliders: DomainSliders,
    *,
    threshold: float = PATTERN_MATCH_THRESHOLD,
    profiles: Tuple[ReferenceProfile, ...] = REFERENCE_PROFILES,
) -> Optional[ActivePattern]:
    """
    Closest reference profile by average attribute match.

    match(attr) = 1 - |current - reference|, external axes compared on the
    [0, 1] scale. Only attributes the profile specifies count. Returns the best
    profile whose average exceeds `threshold`; ties keep the first profile.
    """

    best: Optional[ActivePattern] = None
    for profile in profiles:
        if not profile.weights:
            continue
        scores = [
            1 - abs(_profile_attribute(sliders, axis) - reference)
            for axis, reference in profile.weights.items()
        ]
        score = sum(scores) / len(scores)
        if score > threshold and (best is None or score > best.score):
            best = ActivePattern(id=profile.id, name=profile.name, score=score)
    return best


def has_active_domain_weights(
    sliders: DomainSliders,
    *,
    internal_threshold: float = INTERNAL_ACTIVATION_THRESHOLD,
    external_threshold: float = EXTERNAL_ACTIVATION_THRESHOLD,
) -> bool:
    if any(abs(v) > internal_threshold for v in sliders.internal_display().values()):
        return True
    return any(abs(v) > external_threshold for v in sliders.external().values())


def are_weights_in_standby(sliders: DomainSliders, *, threshold: float = STANDBY_THRESHOLD) -> bool:
    values = list(sliders.external().values()) + list(sliders.internal().values())
    return max(abs(v) for v in values) < threshold


def is_neutral(sliders: DomainSliders, *, tolerance: float = 1e-9) -> bool:
    """All 13 axes at zero; OPR is ignored since it only scales external axes."""
    values = list(sliders.external().values()) + list(sliders.internal().values())
    return all(abs(v) <= tolerance for v in values)


SEMANTIC_VECTORS: Mapping[str, str] = MappingProxyType(
    {
        "spirit": (
            "Для слов БЕЗ [STRESS] ищи более глубокие, архетипические смыслы. "
            "Сдвиг к сакральному, вечному, метафизическому."
        ),
        "imagery": (
            "Для слов БЕЗ [STRESS] заменяй буквальные описания на образы и метафоры. "
            "Сохраняй структуру предложения."
        ),
        "context": (
            "Усиливай связь фразы с внешним контекстом (история, культура, общество). "
            "Слова БЕЗ [STRESS] — точка привязки к среде."
        ),
    }
)


def get_semantic_displacement_directive(
    sliders: DomainSliders,
    *,
    internal_threshold: float = INTERNAL_ACTIVATION_THRESHOLD,
    external_threshold: float = EXTERNAL_ACTIVATION_THRESHOLD,
) -> str:
    """
    Steering block for spirituality / imagery / context axes.

    Returns an empty string when no axis clears its activation threshold.
    """

    display = sliders.internal_display()
    parts = []
    if sliders.religion > external_threshold:
        spirit = _normalize_external(sliders.religion) * 100
        parts.append(f"SPIRIT ({spirit:.0f}%): {SEMANTIC_VECTORS['spirit']}")
    if display["imagery"] > internal_threshold:
        parts.append(f"IMAGERY ({display['imagery']:.0f}%): {SEMANTIC_VECTORS['imagery']}")
    if display["context"] > internal_threshold:
        parts.append(f"CONTEXT ({display['context']:.0f}%): {SEMANTIC_VECTORS['context']}")
    if not parts:
        return ""
    header = "VECTOR DISPLACEMENT (искривление семантического поля, НЕ добавление слов):"
    footer = (
        "[STRESS] токены — неизменные константы. Вокруг них строится новый контекст. "
        "Результат: изоморфный (структура сохранена), семантически перекалиброванный."
    )
    return "\n".join([header, *parts, footer])


def deconstruct(
    text: str,
    rng: Optional[random.Random] = None,
    *,
    retention: float = DECONSTRUCTION_RETENTION,
) -> str:
    """
    Erasure mode: every character except spaces and sentence punctuation is
    replaced by a zero-width marker, keeping roughly `retention` of them.
    """

    if not text:
        return text
    rng = rng or random.Random()
    out = []
    for ch in text:
        if ch.isspace() or ch in _PRESERVED_CHARS:
            out.append(ch)
        elif rng.random() > retention:
            out.append(ZERO_WIDTH_MARK)
        else:
            out.append(ch)
    return "".join(out)
