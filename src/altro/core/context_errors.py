from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from altro.core.lexicon import CONTEXT_ERROR_PATTERNS, ContextErrorPattern
from altro.core.text import match_case, normalize_word
from altro.core.tokenizer import Token, TokenKind

CONTEXT_CONFIDENCE_THRESHOLD = 0.7


@dataclass(frozen=True)
class ContextSuggestion:
    phrase: str
    suggestion: str
    token_ids: Tuple[int, ...]
    low_confidence: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "phrase": self.phrase,
            "suggestion": self.suggestion,
            "tokenIds": list(self.token_ids),
            "lowConfidence": self.low_confidence,
        }


def _index(patterns: Sequence[ContextErrorPattern]) -> Tuple[Dict[str, ContextErrorPattern], Dict[Tuple[str, str], ContextErrorPattern]]:
    fused: Dict[str, ContextErrorPattern] = {}
    split: Dict[Tuple[str, str], ContextErrorPattern] = {}
    for pattern in patterns:
        fused[pattern.fused] = pattern
        if pattern.split is not None and "".join(pattern.split) == pattern.fused:
            split[pattern.split] = pattern
    return fused, split


def detect_context_errors(
    tokens: Sequence[Token],
    context_weight: float = 0.0,
    *,
    threshold: float = CONTEXT_CONFIDENCE_THRESHOLD,
    patterns: Sequence[ContextErrorPattern] = CONTEXT_ERROR_PATTERNS,
) -> List[ContextSuggestion]:
    """
    Finds known fusion / mis-segmentation errors.

    Two shapes are recognised: a single fused token ("папаимама") and a span
    `<word1> <space> <word2>` whose concatenation is a known error ("Папа имама").
    Suggestions are low-confidence unless `context_weight` exceeds `threshold`.
    """

    fused_index, split_index = _index(patterns)
    low_confidence = not (context_weight > threshold)
    suggestions: List[ContextSuggestion] = []

    i = 0
    while i < len(tokens):
        token = tokens[i]
        if not token.is_word:
            i += 1
            continue

        if i + 2 < len(tokens) and tokens[i + 1].kind is TokenKind.SPACE and tokens[i + 2].is_word:
            second = tokens[i + 2]
            pattern = split_index.get((normalize_word(token.text), normalize_word(second.text)))
            if pattern is not None:
                suggestions.append(
                    ContextSuggestion(
                        phrase=f"{token.text} {second.text}",
                        suggestion=match_case(token.text, pattern.suggestion),
                        token_ids=(token.id, second.id),
                        low_confidence=low_confidence,
                    )
                )
                i += 3
                continue

        pattern = fused_index.get(normalize_word(token.text))
        if pattern is not None:
            suggestions.append(
                ContextSuggestion(
                    phrase=token.text,
                    suggestion=match_case(token.text, pattern.suggestion),
                    token_ids=(token.id,),
                    low_confidence=low_confidence,
                )
            )
        i += 1

    return suggestions
