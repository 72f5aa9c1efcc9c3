from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from altro.core.lexicon import (
    CONTEXT_ERROR_PATTERNS,
    FORBIDDEN_INTRODUCED_OBJECTS,
    GENDER_AGREEMENT_FIXES,
    PATH_AGREEMENT_FIXES,
    SPELLCHECK_CORRECTIONS,
)
from altro.core.text import (
    WORD_BOUNDARY_AFTER,
    WORD_BOUNDARY_BEFORE,
    collapse_whitespace,
    find_words,
    match_case,
    normalize_word,
    strip_stress_marks,
)


def _word_re(body: str) -> re.Pattern:
    return re.compile(WORD_BOUNDARY_BEFORE + body + WORD_BOUNDARY_AFTER, re.IGNORECASE)


# (pattern, group index to replace, replacement word)
_GENDER_RULES = tuple(
    rule
    for fix in GENDER_AGREEMENT_FIXES
    for rule in (
        (_word_re(rf"({fix.noun})(\s+)({fix.masculine})"), 3, fix.feminine),
        (_word_re(rf"({fix.masculine})(\s+)({fix.noun})"), 1, fix.feminine),
    )
)

# Слова между подлежащим и глаголом не пересекают границу предложения.
_PATH_RULES = tuple(
    (_word_re(rf"({fix.subject})(\s+(?:[^\s.!?]+\s+)*?)({fix.wrong_verb})"), fix.verb)
    for fix in PATH_AGREEMENT_FIXES
)

_BASE_CORRECTION_RE = _word_re(r"на\s+долго")
_FUSED_RULES = tuple((_word_re(re.escape(p.fused)), p.suggestion) for p in CONTEXT_ERROR_PATTERNS)

_GENDER_ERROR_RES = tuple(pattern for pattern, _, _ in _GENDER_RULES)
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+[.,!?;:]")
_MISSING_SPACE_AFTER_PUNCT_RE = re.compile(r"[.,!?;:](?=[^\s.,!?;:)\]»\"'])")
_DOTS_RE = re.compile(r"\.{2,}")
_PUNCT_SPACING_RE = re.compile(r"\s*([.,!?;:]+)\s*")


def _apply_gender_agreement(text: str) -> str:
    out = text
    for pattern, group, replacement in _GENDER_RULES:

        def _fix(m: re.Match, group: int = group, replacement: str = replacement) -> str:
            parts = [m.group(1), m.group(2), m.group(3)]
            parts[group - 1] = match_case(parts[group - 1], replacement)
            return "".join(parts)

        out = pattern.sub(_fix, out)
    return out


def _apply_path_agreement(text: str) -> str:
    out = text
    for pattern, verb in _PATH_RULES:
        out = pattern.sub(lambda m, v=verb: m.group(1) + m.group(2) + match_case(m.group(3), v), out)
    return out


def _capitalize_first_letter(text: str) -> str:
    for i, ch in enumerate(text):
        if ch.isalpha():
            if ch.islower():
                return text[:i] + ch.upper() + text[i + 1 :]
            return text
    return text


def sterilize(text: str) -> str:
    """
    Mirror-mode baseline: no lexical change.

    RU: Схлопывает пробелы, обрезает края, делает первую букву заглавной и
    применяет фиксированные правки согласования рода («крепость мой» → «крепость моя»,
    «путь … вела» → «путь … вел»).
    """

    if not text or not text.strip():
        return ""
    out = collapse_whitespace(text)
    out = _apply_gender_agreement(out)
    out = _apply_path_agreement(out)
    return _capitalize_first_letter(out)


def apply_base_correction(text: str) -> str:
    """RU: «на долго» → «надолго»."""
    if not text:
        return text
    return _BASE_CORRECTION_RE.sub(lambda m: match_case(m.group(0), "надолго"), text)


def apply_concatenation_fixes(text: str) -> str:
    if not text:
        return text
    out = text
    for pattern, suggestion in _FUSED_RULES:
        out = pattern.sub(lambda m, s=suggestion: match_case(m.group(0), s), out)
    return out


def has_no_obvious_errors(text: str) -> bool:
    """
    Cheap sanity check for a sterilised text: capital first letter, single
    spaces, no stray punctuation spacing, no fused words or gender slips.
    """

    if not text or not text.strip():
        return True
    value = text.strip()
    for ch in value:
        if ch.isalpha():
            if ch.islower():
                return False
            break
    if re.search(r"\s{2,}", value) or _DOTS_RE.search(value):
        return False
    if _SPACE_BEFORE_PUNCT_RE.search(value) or _MISSING_SPACE_AFTER_PUNCT_RE.search(value):
        return False
    if any(pattern.search(value) for pattern, _ in _FUSED_RULES):
        return False
    return not any(pattern.search(value) for pattern in _GENDER_ERROR_RES)


@dataclass(frozen=True)
class SemanticCheck:
    semantic_ok: bool
    reason: Optional[str] = None


def _normalize_for_compare(text: str) -> str:
    value = collapse_whitespace(strip_stress_marks(text)).lower()
    return _PUNCT_SPACING_RE.sub(r"\1 ", value).strip()


def validate_semantic_changes(input_text: str, output_text: str) -> SemanticCheck:
    """
    Accepts output that differs from input only by known technical fixes
    (spelling table, fused words, punctuation spacing).
    """

    if _normalize_for_compare(input_text) == _normalize_for_compare(output_text):
        return SemanticCheck(semantic_ok=True)

    expected = apply_concatenation_fixes(input_text)
    for wrong, right in SPELLCHECK_CORRECTIONS.items():
        expected = _word_re(re.escape(wrong)).sub(lambda m, r=right: match_case(m.group(0), r), expected)
    if _normalize_for_compare(expected) == _normalize_for_compare(output_text):
        return SemanticCheck(semantic_ok=True)

    source_words = {normalize_word(w) for w in find_words(input_text)}
    introduced = [
        w for w in find_words(output_text)
        if normalize_word(w) in FORBIDDEN_INTRODUCED_OBJECTS and normalize_word(w) not in source_words
    ]
    if introduced:
        return SemanticCheck(
            semantic_ok=False,
            reason=f"Добавлены новые объекты: {', '.join(introduced)}",
        )
    return SemanticCheck(
        semantic_ok=False,
        reason="Обнаружены семантические изменения, выходящие за рамки технических правок",
    )
