from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from altro.core.homonyms import DEFAULT_REGISTRY, HomonymRegistry, is_homonym_candidate
from altro.core.text import WORD_PATTERN, find_words, has_stress_mark, normalize_stress_marks, normalize_word
from altro.core.vectors import DomainSliders

_WORD_RE = re.compile(WORD_PATTERN)


class ValidationStatus(str, Enum):
    PASSED = "PASSED"
    FAILED = "FAILED"
    WARNING = "WARNING"


class StressVerdict(str, Enum):
    SAME = "same"
    DIFFERENT = "different"
    SOURCE_UNMARKED = "source_unmarked"
    FAILED = "failed"


class IssueReason(str, Enum):
    MISSING_STRESS = "missing_stress"
    NOT_PRESERVED = "not_preserved"


@dataclass(frozen=True)
class ValidationIssue:
    word: str
    position: int
    reason: IssueReason

    def to_dict(self) -> Dict[str, object]:
        return {"word": self.word, "position": self.position, "reason": self.reason.value}


@dataclass(frozen=True)
class ValidationResult:
    status: ValidationStatus
    stress_verdict: StressVerdict
    issues: Tuple[ValidationIssue, ...] = ()

    @property
    def passed(self) -> bool:
        return self.status is ValidationStatus.PASSED

    def to_dict(self) -> Dict[str, object]:
        return {
            "status": self.status.value,
            "stressVerdict": self.stress_verdict.value,
            "issues": [issue.to_dict() for issue in self.issues],
        }


def _marked_occurrences(text: str) -> List[Tuple[str, int]]:
    return [
        (normalize_stress_marks(m.group(0)), m.start())
        for m in _WORD_RE.finditer(text or "")
        if has_stress_mark(m.group(0))
    ]


def _failed(*issues: ValidationIssue) -> ValidationResult:
    return ValidationResult(ValidationStatus.FAILED, StressVerdict.FAILED, tuple(issues))


def validate(
    source: str,
    adaptation: str,
    registry: HomonymRegistry = DEFAULT_REGISTRY,
) -> ValidationResult:
    """
    Compares stress markers of a source text and its adaptation.

    Rules, first match wins:
    1. unmarked homonym next to marked words in the source -> WARNING / source_unmarked;
    2. both texts empty -> FAILED;
    3. no marked words on either side -> FAILED;
    4. source marked, adaptation unmarked -> FAILED, one issue per lost marker;
    5. a source-marked word whose base form has no marked counterpart in the
       adaptation -> FAILED, one issue per missing word;
    6. PASSED: `different` if a matched pair differs in surface form, else `same`.
    """

    source = source or ""
    adaptation = adaptation or ""
    source_marked = _marked_occurrences(source)
    adaptation_marked = _marked_occurrences(adaptation)

    if source_marked and any(is_homonym_candidate(w, registry) for w in find_words(source)):
        return ValidationResult(ValidationStatus.WARNING, StressVerdict.SOURCE_UNMARKED)

    if not source.strip() and not adaptation.strip():
        return _failed()

    if not source_marked and not adaptation_marked:
        return _failed()

    if source_marked and not adaptation_marked:
        return _failed(
            *(ValidationIssue(word, pos, IssueReason.MISSING_STRESS) for word, pos in source_marked)
        )

    def _key(word: str) -> str:
        return registry.base_form(word) or normalize_word(word)

    adaptation_by_key: Dict[str, set] = {}
    for word, _ in adaptation_marked:
        adaptation_by_key.setdefault(_key(word), set()).add(word)

    missing: List[ValidationIssue] = []
    different = False
    for word, pos in source_marked:
        counterparts = adaptation_by_key.get(_key(word))
        if not counterparts:
            missing.append(ValidationIssue(word, pos, IssueReason.NOT_PRESERVED))
            continue
        if word not in counterparts:
            different = True

    if missing:
        return _failed(*missing)

    verdict = StressVerdict.DIFFERENT if different else StressVerdict.SAME
    return ValidationResult(ValidationStatus.PASSED, verdict)


# =========================
# Transformation level
# =========================


def text_similarity(source: str, adaptation: str) -> float:
    """Character-overlap similarity in [0, 1]; containment counts as at least 0.7."""
    if source == adaptation:
        return 1.0
    if not source.strip() or not adaptation.strip():
        return 0.0
    longer, shorter = (source, adaptation) if len(source) >= len(adaptation) else (adaptation, source)
    longer_lower, shorter_lower = longer.lower(), shorter.lower()
    matches = sum(1 for ch in shorter_lower if ch in longer_lower)
    base = matches / max(len(longer), 1)
    if shorter_lower in longer_lower:
        return max(base, 0.7)
    return base


def _slider_delta_part(source: Optional[DomainSliders], adaptation: Optional[DomainSliders]) -> float:
    if source is None or adaptation is None:
        return 0.0
    a = {**source.internal(), **source.external()}
    b = {**adaptation.internal(), **adaptation.external()}
    average = sum(abs(a[k] - b[k]) for k in a) / len(a)
    return min(50.0, average / 2 * 50)


def compute_transformation_level(
    source: str,
    adaptation: str,
    *,
    source_sliders: Optional[DomainSliders] = None,
    adaptation_sliders: Optional[DomainSliders] = None,
    validation: Optional[ValidationResult] = None,
    context_confirmed: bool = False,
) -> int:
    """
    Transformation level 0–100: text change (up to 50) plus slider delta (up to 50).

    A FAILED validation forces 0 unless the user confirmed the context.
    """

    if not (adaptation or "").strip():
        return 0
    failed = validation is not None and validation.status is ValidationStatus.FAILED
    if failed and not context_confirmed:
        return 0

    source_trim, adaptation_trim = (source or "").strip(), adaptation.strip()
    passed = validation is not None and validation.status is ValidationStatus.PASSED
    if source_trim == adaptation_trim or (not passed and not context_confirmed):
        text_part = 0.0
    elif context_confirmed and not passed:
        text_part = 25.0
    else:
        text_part = 25 + (1 - text_similarity(source_trim, adaptation_trim)) * 25

    return min(100, round(text_part + _slider_delta_part(source_sliders, adaptation_sliders)))
