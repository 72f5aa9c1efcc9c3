from __future__ import annotations

import re
from typing import List, Optional

from altro.core.lexicon import DECLENSION_FIXES, STRESS

ZERO_WIDTH_MARK = "\u200b"
VOWELS = "аеёиоуыэюяАЕЁИОУЫЭЮЯ"

INLINE_MARKER_OPEN = "[STRESS]"
INLINE_MARKER_CLOSE = "[/STRESS]"

# Слово: кириллица + U+0301, апостроф после гласной (устаревшая запись ударения), дефисы внутри.
_WORD_UNIT = rf"(?:[а-яёА-ЯЁ{STRESS}]|(?<=[{VOWELS}])')"
WORD_PATTERN = rf"{_WORD_UNIT}+(?:-{_WORD_UNIT}+)*"
PUNCT_PATTERN = r"[.!?,;:()\[\]]+"

# Границы слова с учетом U+0301: combining mark не входит в \w.
WORD_BOUNDARY_BEFORE = rf"(?<![\w{STRESS}])"
WORD_BOUNDARY_AFTER = rf"(?![\w{STRESS}])"

_WORD_RE = re.compile(WORD_PATTERN)
_APOSTROPHE_STRESS_RE = re.compile(rf"([{VOWELS}])'")
_INLINE_MARKERS_RE = re.compile(r"\[/?STRESS\]|</?fixed>", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_stress_marks(text: str) -> str:
    """
    Converts the legacy apostrophe-after-vowel convention into U+0301.

    RU: «за'мок» → «за\u0301мок».
    """

    if not text or "'" not in text:
        return text
    return _APOSTROPHE_STRESS_RE.sub(rf"\1{STRESS}", text)


def strip_stress_marks(text: str) -> str:
    if not text:
        return text
    return normalize_stress_marks(text).replace(STRESS, "")


def has_stress_mark(text: str) -> bool:
    if not text:
        return False
    return STRESS in text or bool(_APOSTROPHE_STRESS_RE.search(text))


def normalize_word(word: str) -> str:
    """Marker-stripped, lower-cased dictionary key."""
    return strip_stress_marks(word or "").lower().strip()


def strip_inline_markers(text: str) -> str:
    if not text:
        return text
    return _INLINE_MARKERS_RE.sub("", text)


def count_words(text: str) -> int:
    value = strip_stress_marks(strip_inline_markers(text or ""))
    return len(value.split())


def find_words(text: str) -> List[str]:
    return _WORD_RE.findall(text or "")


def extract_accented_words(text: str) -> List[str]:
    """
    Returns every word carrying a stress marker, in order of appearance, normalised
    to U+0301 and without duplicates.
    """

    seen = set()
    out: List[str] = []
    for word in find_words(strip_inline_markers(text)):
        if not has_stress_mark(word):
            continue
        value = normalize_stress_marks(word)
        if value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def wrap_locked_words(text: str) -> str:
    """
    Wraps each stressed word as [STRESS]word[/STRESS].

    Existing inline markers are removed first, so the call is idempotent.
    """

    if not text:
        return text
    clean = strip_inline_markers(text)

    def _wrap(match: re.Match) -> str:
        word = match.group(0)
        if not has_stress_mark(word):
            return word
        return f"{INLINE_MARKER_OPEN}{normalize_stress_marks(word)}{INLINE_MARKER_CLOSE}"

    return _WORD_RE.sub(_wrap, clean)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def match_case(source: str, replacement: str) -> str:
    """Upper-cases the first letter of `replacement` when `source` starts upper-case."""
    if not source or not replacement:
        return replacement
    if source[0].isupper():
        return replacement[0].upper() + replacement[1:]
    return replacement


# =========================
# Vowel ordinals
# =========================


def vowel_count(word: str) -> int:
    return sum(1 for ch in strip_stress_marks(word) if ch in VOWELS)


def stressed_vowel_ordinal(word: str) -> Optional[int]:
    """
    0-based ordinal (among vowels) of the vowel that carries the stress marker,
    or None when the word is unmarked.
    """

    value = normalize_stress_marks(word or "")
    ordinal = -1
    previous_is_vowel = False
    for ch in value:
        if ch == STRESS:
            if previous_is_vowel:
                return ordinal
            continue
        previous_is_vowel = ch in VOWELS
        if previous_is_vowel:
            ordinal += 1
    return None


def place_stress(word: str, ordinal: int) -> str:
    """
    Puts U+0301 after the `ordinal`-th vowel of the marker-stripped word.

    An ordinal beyond the last vowel lands on the last vowel; a word without
    vowels is returned unchanged.
    """

    bare = strip_stress_marks(word)
    positions = [i for i, ch in enumerate(bare) if ch in VOWELS]
    if not positions:
        return bare
    index = positions[min(max(ordinal, 0), len(positions) - 1)]
    return bare[: index + 1] + STRESS + bare[index + 1 :]


# =========================
# Declension patches
# =========================

_DECLENSION_RULES = tuple(
    (re.compile(WORD_BOUNDARY_BEFORE + re.escape(src) + WORD_BOUNDARY_AFTER, re.IGNORECASE), dst)
    for src, dst in DECLENSION_FIXES
)


def apply_declension_fixes(text: str) -> str:
    """RU: «на замо\u0301ке» → «на замке\u0301» (и аналогичные фиксированные правки)."""
    if not text or STRESS not in text:
        return text
    out = text
    for pattern, replacement in _DECLENSION_RULES:
        out = pattern.sub(lambda m, r=replacement: match_case(m.group(0), r), out)
    return out
