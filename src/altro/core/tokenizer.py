from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from altro.core.homonyms import DEFAULT_REGISTRY, HomonymRegistry, is_homonym_candidate
from altro.core.lexicon import STRESS
from altro.core.spelling import is_misspelled
from altro.core.text import PUNCT_PATTERN, WORD_PATTERN, has_stress_mark

_TOKEN_RE = re.compile(rf"(\s+|{WORD_PATTERN}|{PUNCT_PATTERN}|[^\sа-яёА-ЯЁ{STRESS}.!?,;:()\[\]]+)")
_WORD_FULL_RE = re.compile(rf"^{WORD_PATTERN}$")
_SPACE_FULL_RE = re.compile(r"^\s+$")


class TokenKind(str, Enum):
    WORD = "word"
    SPACE = "space"
    PUNCT = "punct"


@dataclass(frozen=True)
class Token:
    """
    Typed text unit. Tokens are never mutated: corrections produce replacement
    tokens carrying provenance (`spell_correction`, `resolved_variant`).
    """

    id: int
    text: str
    kind: TokenKind
    has_stress_mark: bool = False
    is_locked: bool = False
    is_homonym_candidate: bool = False
    is_misspelled: bool = False
    spell_correction: Optional[str] = None
    resolved_variant: Optional[str] = None

    @property
    def is_word(self) -> bool:
        return self.kind is TokenKind.WORD

    @property
    def surface(self) -> str:
        """Text as it should appear after applied corrections."""
        if self.resolved_variant is not None:
            return self.resolved_variant
        if self.spell_correction is not None:
            return self.spell_correction
        return self.text


def _classify(value: str) -> TokenKind:
    if _SPACE_FULL_RE.match(value):
        return TokenKind.SPACE
    if _WORD_FULL_RE.match(value):
        return TokenKind.WORD
    # Пунктуация и все прочее (латиница, цифры) — не слова.
    return TokenKind.PUNCT


def tokenize(text: str, registry: HomonymRegistry = DEFAULT_REGISTRY) -> List[Token]:
    """
    Splits text into word / space / punct tokens.

    A stress mark always stays inside its word; concatenating token texts
    reproduces the input exactly.
    """

    if not text:
        return []
    tokens: List[Token] = []
    for idx, value in enumerate(_TOKEN_RE.findall(text)):
        kind = _classify(value)
        if kind is not TokenKind.WORD:
            tokens.append(Token(id=idx, text=value, kind=kind))
            continue
        stressed = has_stress_mark(value)
        tokens.append(
            Token(
                id=idx,
                text=value,
                kind=kind,
                has_stress_mark=stressed,
                is_locked=stressed,
                is_homonym_candidate=is_homonym_candidate(value, registry),
                is_misspelled=is_misspelled(value),
            )
        )
    return tokens


def detokenize(tokens: Iterable[Token], *, apply_corrections: bool = True) -> str:
    if apply_corrections:
        return "".join(t.surface for t in tokens)
    return "".join(t.text for t in tokens)
