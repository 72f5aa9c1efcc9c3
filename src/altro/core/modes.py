from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Mapping, Optional

from altro.core.homonyms import DEFAULT_REGISTRY, is_homonym_candidate
from altro.core.lexicon import SLANG_LEXICON, TRANSFIGURE_LEXICON
from altro.core.mirror import apply_base_correction, apply_concatenation_fixes, sterilize
from altro.core.text import WORD_PATTERN, has_stress_mark, match_case, normalize_word
from altro.core.vectors import DomainSliders, calculate_weights, deconstruct, get_active_pattern

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(WORD_PATTERN)


class Mode(str, Enum):
    MIRROR = "mirror"
    BRIDGE = "bridge"
    TRANSFIGURE = "transfigure"
    SLANG = "slang"

    @property
    def is_rich(self) -> bool:
        return self is not Mode.MIRROR


@dataclass(frozen=True)
class ModeResult:
    """Same shape for every mode handler."""

    mode: Mode
    text: str
    notice: Optional[str] = None
    requires_clarification: bool = False
    deconstructed: bool = False


def _swap_words(text: str, lexicon: Mapping[str, str]) -> str:
    """Replaces whole words from the lexicon; stressed (locked) words are never touched."""

    def _swap(match: re.Match) -> str:
        word = match.group(0)
        if has_stress_mark(word):
            return word
        replacement = lexicon.get(normalize_word(word))
        return match_case(word, replacement) if replacement else word

    return _WORD_RE.sub(_swap, text)


def _has_unresolved_homonyms(text: str) -> bool:
    return any(is_homonym_candidate(m.group(0), DEFAULT_REGISTRY) for m in _WORD_RE.finditer(text))


def _baseline(text: str) -> str:
    return sterilize(apply_concatenation_fixes(apply_base_correction(text)))


def _mirror(text: str, sliders: DomainSliders, rng: Optional[random.Random]) -> ModeResult:
    return ModeResult(Mode.MIRROR, _baseline(text))


def _deconstructed(mode: Mode, text: str, rng: Optional[random.Random]) -> ModeResult:
    logger.debug("Режим деконструкции: история на минимуме, текст стирается локально")
    return ModeResult(mode, deconstruct(text, rng), notice="Деконструкция: смысл стерт.", deconstructed=True)


def _bridge(text: str, sliders: DomainSliders, rng: Optional[random.Random]) -> ModeResult:
    if calculate_weights(sliders).deconstruction:
        return _deconstructed(Mode.BRIDGE, text, rng)
    out = _baseline(text)
    pattern = get_active_pattern(sliders)
    notice = f"Паттерн: {pattern.name}" if pattern else None
    return ModeResult(Mode.BRIDGE, out, notice=notice, requires_clarification=_has_unresolved_homonyms(out))


def _transfigure(text: str, sliders: DomainSliders, rng: Optional[random.Random]) -> ModeResult:
    if calculate_weights(sliders).deconstruction:
        return _deconstructed(Mode.TRANSFIGURE, text, rng)
    out = _swap_words(_baseline(text), TRANSFIGURE_LEXICON)
    return ModeResult(Mode.TRANSFIGURE, out, requires_clarification=_has_unresolved_homonyms(out))


def _slang(text: str, sliders: DomainSliders, rng: Optional[random.Random]) -> ModeResult:
    if calculate_weights(sliders).deconstruction:
        return _deconstructed(Mode.SLANG, text, rng)
    out = _swap_words(_baseline(text), SLANG_LEXICON)
    return ModeResult(Mode.SLANG, out, requires_clarification=_has_unresolved_homonyms(out))


MODE_HANDLERS: Mapping[Mode, Callable[[str, DomainSliders, Optional[random.Random]], ModeResult]] = {
    Mode.MIRROR: _mirror,
    Mode.BRIDGE: _bridge,
    Mode.TRANSFIGURE: _transfigure,
    Mode.SLANG: _slang,
}


def process_locally(
    text: str,
    mode: Mode | str,
    sliders: Optional[DomainSliders] = None,
    *,
    rng: Optional[random.Random] = None,
) -> ModeResult:
    """
    Local (no generation service) transformation for the given mode.

    Empty input short-circuits to an empty result.
    """

    mode = Mode(mode)
    if not text or not text.strip():
        return ModeResult(mode, "")
    return MODE_HANDLERS[mode](text, sliders or DomainSliders(), rng)


def available_modes() -> Dict[str, str]:
    return {
        Mode.MIRROR.value: "Зеркало: нормализация без лексических изменений",
        Mode.BRIDGE.value: "Мост: адаптация по весам доменов",
        Mode.TRANSFIGURE.value: "Преображение: глубокая транскреация",
        Mode.SLANG.value: "Сленг: разговорный регистр",
    }
