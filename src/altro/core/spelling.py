from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import AbstractSet, Mapping, Optional, Sequence

import pymorphy3

from altro.core.lexicon import PROPER_NOUNS, SPELLCHECK_CORRECTIONS, SPELLCHECK_DICTIONARY, SPELLCHECK_WORDS
from altro.core.text import has_stress_mark, match_case, normalize_word

MAX_LENGTH_DIFF = 4
MAX_EDIT_DISTANCE = 5
AUTO_APPLY_CONFIDENCE = 0.70


@dataclass(frozen=True)
class FuzzyMatch:
    correction: str
    confidence: float


@dataclass(frozen=True)
class SpellSuggestion:
    """
    Correction proposal for a single word.

    `applied` is True for exact-table hits and for fuzzy matches at or above
    the auto-apply threshold; otherwise the suggestion is shown to the user only.
    """

    word: str
    correction: str
    confidence: float
    applied: bool
    source: str  # "table" | "fuzzy"

    @property
    def low_confidence(self) -> bool:
        return not self.applied


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def suggest(word: str, dictionary: Sequence[str] = SPELLCHECK_WORDS) -> Optional[FuzzyMatch]:
    """
    Closest dictionary entry by edit distance.

    Candidates with a length difference above MAX_LENGTH_DIFF are skipped,
    distances above MAX_EDIT_DISTANCE are discarded, ties keep the first seen.
    Returns None for words shorter than 2 letters or already in the dictionary.
    """

    target = normalize_word(word)
    if len(target) < 2:
        return None

    best: Optional[str] = None
    best_distance = MAX_EDIT_DISTANCE + 1
    for candidate in dictionary:
        if candidate == target:
            return None
        if abs(len(candidate) - len(target)) > MAX_LENGTH_DIFF:
            continue
        distance = levenshtein(target, candidate)
        if distance < best_distance:
            best, best_distance = candidate, distance

    if best is None:
        return None
    confidence = 1 - best_distance / max(len(target), len(best))
    return FuzzyMatch(correction=best, confidence=confidence)


@lru_cache(maxsize=1)
def _morph_analyzer() -> pymorphy3.MorphAnalyzer:
    return pymorphy3.MorphAnalyzer()


@lru_cache(maxsize=8192)
def is_dictionary_form(form: str) -> bool:
    """
    Check if a word form exists in the Russian morphology dictionary.
    Проверяет, есть ли словоформа в словаре русской морфологии.

    Inflected forms count: «книгу», «вечером» are known.
    Словоформы тоже считаются: «книгу», «вечером» известны.
    """
    if not form:
        return False
    return any(parse.is_known for parse in _morph_analyzer().parse(form))


def is_known_word(
    word: str,
    dictionary: AbstractSet[str] = SPELLCHECK_DICTIONARY,
    proper_nouns: AbstractSet[str] = PROPER_NOUNS,
) -> bool:
    form = normalize_word(word)
    return form in dictionary or form in proper_nouns or is_dictionary_form(form)


def is_misspelled(word: str, corrections: Mapping[str, str] = SPELLCHECK_CORRECTIONS) -> bool:
    """Listed in the correction table or unknown to morphology; stressed words are trusted."""
    if not word or has_stress_mark(word):
        return False
    return normalize_word(word) in corrections or not is_known_word(word)


def correct_word(
    word: str,
    *,
    threshold: float = AUTO_APPLY_CONFIDENCE,
    corrections: Mapping[str, str] = SPELLCHECK_CORRECTIONS,
    dictionary: Sequence[str] = SPELLCHECK_WORDS,
) -> Optional[SpellSuggestion]:
    """
    Static table first, then fuzzy matching.

    RU: Табличная правка применяется всегда; нечеткая — только при confidence >= threshold.
    """

    if not word or has_stress_mark(word):
        return None
    form = normalize_word(word)
    if form in corrections:
        return SpellSuggestion(
            word=word,
            correction=match_case(word, corrections[form]),
            confidence=1.0,
            applied=True,
            source="table",
        )
    if is_known_word(word):
        return None
    match = suggest(word, dictionary)
    if match is None:
        return None
    return SpellSuggestion(
        word=word,
        correction=match_case(word, match.correction),
        confidence=match.confidence,
        applied=match.confidence >= threshold,
        source="fuzzy",
    )
