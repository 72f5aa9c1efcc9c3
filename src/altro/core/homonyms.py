from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from altro.core.lexicon import (
    CONTEXT_SENSE_TRIGGERS,
    CONTEXT_SENSE_WINDOW,
    HOMONYM_DB,
    HOMONYM_WORD_FORMS,
    HomonymEntry,
    HomonymVariant,
)
from altro.core.text import (
    has_stress_mark,
    normalize_stress_marks,
    normalize_word,
    place_stress,
    stressed_vowel_ordinal,
)

if TYPE_CHECKING:
    from altro.core.tokenizer import Token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HomonymRecord:
    """Registry entry kept by the caller: {resolved, variant}."""

    resolved: bool
    variant: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {"resolved": self.resolved, "variant": self.variant}


@dataclass(frozen=True)
class HomonymInstance:
    id: str
    word: str
    position: int
    base_word: str
    suggested_variant: Optional[str] = None

    @property
    def key(self) -> str:
        return homonym_key(self.base_word, self.position)


def homonym_key(base_word: str, position: int) -> str:
    """Stable key for a homonym occurrence: `<base>_<char offset>`."""
    return f"{base_word}_{position}"


class HomonymRegistry:
    """
    Read-only view over the homonym tables.

    RU: Таблица «базовая форма → варианты» плюс таблица «словоформа → база».
    """

    def __init__(
        self,
        entries: Mapping[str, HomonymEntry] = HOMONYM_DB,
        word_forms: Mapping[str, str] = HOMONYM_WORD_FORMS,
        context_triggers: Mapping[str, Mapping[str, frozenset]] = CONTEXT_SENSE_TRIGGERS,
    ) -> None:
        self._entries = entries
        self._word_forms = word_forms
        self._context_triggers = context_triggers

    def base_form(self, word: str) -> Optional[str]:
        form = normalize_word(word)
        if not form:
            return None
        base = self._word_forms.get(form, form)
        return base if base in self._entries else None

    def entry(self, word: str) -> Optional[HomonymEntry]:
        base = self.base_form(word)
        return self._entries.get(base) if base else None

    def variants(self, word: str) -> Tuple[HomonymVariant, ...]:
        entry = self.entry(word)
        return entry.variants if entry else ()

    def is_ambiguous(self, word: str) -> bool:
        """Known base with at least one stress variant. Zero variants fail open."""
        return bool(self.variants(word))

    def context_triggers(self, word: str) -> Mapping[str, frozenset]:
        base = self.base_form(word)
        return self._context_triggers.get(base, {}) if base else {}


DEFAULT_REGISTRY = HomonymRegistry()


def is_homonym_candidate(word: str, registry: HomonymRegistry = DEFAULT_REGISTRY) -> bool:
    """
    True when the word belongs to a known homonym group and carries no stress mark.

    Any marker at all, even one matching no variant, is trusted as user intent.
    """

    if not word or has_stress_mark(word):
        return False
    return registry.is_ambiguous(word)


def resolve_by_stress(word: str, registry: HomonymRegistry = DEFAULT_REGISTRY) -> Optional[str]:
    """
    Returns the meaning of the variant whose stressed vowel sits at the same
    ordinal position as in `word`, or None.

    Parameters
    ----------
    word:
        Possibly inflected word with U+0301 (or the legacy apostrophe).

    Returns
    -------
    Optional[str]
        Meaning of the matched variant.
    """

    ordinal = stressed_vowel_ordinal(word)
    if ordinal is None:
        return None
    for variant in registry.variants(word):
        if stressed_vowel_ordinal(variant.surface_form) == ordinal:
            return variant.meaning
    return None


def apply_accent_preserving_inflection(original_word: str, exemplar_variant: str) -> str:
    """
    Transfers the stress position (by vowel ordinal) from a base-form exemplar
    onto an inflected form, keeping the user's suffix and letter case.

    RU: «замка» + «замо\u0301к» → «замка\u0301»; «замка» + «за\u0301мок» → «за\u0301мка».
    """

    ordinal = stressed_vowel_ordinal(exemplar_variant)
    if ordinal is None:
        return original_word
    return place_stress(original_word, ordinal)


def select_variant(
    token: "Token",
    variant: str,
    registry: HomonymRegistry = DEFAULT_REGISTRY,
) -> Tuple["Token", HomonymRecord]:
    """
    Resolves a homonym token with the chosen variant.

    Returns a replacement token (the original is never mutated) and the
    registry record to store under the occurrence key. Re-selecting the same
    variant yields identical content.
    """

    exemplar = normalize_stress_marks(variant)
    known = {normalize_stress_marks(v.surface_form) for v in registry.variants(token.text)}
    if known and exemplar not in known:
        logger.debug("Вариант %r не зарегистрирован для %r", variant, token.text)
    accented = apply_accent_preserving_inflection(token.text, exemplar)
    resolved = dataclasses.replace(
        token,
        resolved_variant=accented,
        has_stress_mark=True,
        is_locked=True,
        is_homonym_candidate=False,
        is_misspelled=False,
    )
    return resolved, HomonymRecord(resolved=True, variant=exemplar)


def find_homonym_instances(
    tokens: Sequence["Token"],
    registry: HomonymRegistry = DEFAULT_REGISTRY,
) -> List[HomonymInstance]:
    """
    Lists unresolved homonym occurrences with a context-derived sense hint.

    Ids follow `homonym_<base>_<n>_<offset>` where n counts occurrences of the
    same base word.
    """

    words = [t for t in tokens if t.is_word]
    counters: Dict[str, int] = {}
    instances: List[HomonymInstance] = []
    position = 0
    word_index = 0
    for token in tokens:
        if token.is_word:
            if token.is_homonym_candidate:
                base = registry.base_form(token.text) or normalize_word(token.text)
                count = counters.get(base, 0)
                counters[base] = count + 1
                instances.append(
                    HomonymInstance(
                        id=f"homonym_{base}_{count}_{position}",
                        word=token.text,
                        position=position,
                        base_word=base,
                        suggested_variant=guess_variant_from_context(
                            [w.text for w in words], word_index, registry
                        ),
                    )
                )
            word_index += 1
        position += len(token.text)
    return instances


def guess_variant_from_context(
    words: Sequence[str],
    index: int,
    registry: HomonymRegistry = DEFAULT_REGISTRY,
    *,
    window: int = CONTEXT_SENSE_WINDOW,
) -> Optional[str]:
    """
    Suggests a variant for words[index] from trigger words in a +-window.

    Returns None when no trigger or triggers of several senses are found.
    """

    if index < 0 or index >= len(words):
        return None
    triggers = registry.context_triggers(words[index])
    if not triggers:
        return None
    start = max(0, index - window)
    neighbours = {normalize_word(w) for i, w in enumerate(words[start : index + window + 1], start) if i != index}
    matched = [variant for variant, words_set in triggers.items() if neighbours & words_set]
    if len(matched) != 1:
        return None
    return matched[0]


def context_sense_labels(text_words: Iterable[str], registry: HomonymRegistry = DEFAULT_REGISTRY) -> List[str]:
    """Domain labels of senses detected from context for each bare homonym in the text."""
    words = list(text_words)
    labels: List[str] = []
    for i, word in enumerate(words):
        variant = guess_variant_from_context(words, i, registry)
        if variant is None:
            continue
        for candidate in registry.variants(word):
            if normalize_stress_marks(candidate.surface_form) == variant and candidate.domain not in labels:
                labels.append(candidate.domain)
    return labels
