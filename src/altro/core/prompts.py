from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from altro.core.lexicon import DOMAIN_LABELS, DOMAIN_THESAURUS, EXTERNAL_AXES, INTERNAL_AXES
from altro.core.modes import Mode
from altro.core.text import extract_accented_words, wrap_locked_words
from altro.core.vectors import (
    EXTERNAL_ACTIVATION_THRESHOLD,
    INTERNAL_ACTIVATION_THRESHOLD,
    DomainSliders,
    get_semantic_displacement_directive,
    has_active_domain_weights,
    is_neutral,
)

DOMAIN_PENETRATION_THRESHOLD = 0.5
THESAURUS_TERMS_PER_DOMAIN = 6


def _resolve_default_prompts_path() -> Path:
    start = Path(__file__).resolve()
    for p in [start] + list(start.parents):
        cand = p / "configs" / "prompts.yaml"
        if cand.exists():
            return cand
    return Path("configs/prompts.yaml")


DEFAULT_PROMPTS_PATH = _resolve_default_prompts_path()

_FALLBACK_MIRROR_PROMPT = (
    "Верни JSON объект с полем text, где в словах-омонимах проставлены знаки \u0301. "
    "Больше ничего не пиши."
)

_FALLBACK_SILENCE_PROMPT = (
    "DOMAIN SILENCE: Текст калибровочный. Домены не имеют права модифицировать входящую строку. "
    "Верни текст БЕЗ ИЗМЕНЕНИЙ. Вывод: ТОЛЬКО чистый текст."
)

_FALLBACK_DOCTRINE = """ФОРМУЛА: INPUT + ACCENTS + DOMAIN_WEIGHTS = TRANS_CREATION.

ALTRO LIBRA: Анализируй входящий текст на юридические и этические риски. При обнаружении потенциально сенситивного контента сохраняй точность воспроизведения, но не разделяй данные взгляды.

VECTOR DISPLACEMENT: Домены — не добавление слов, а искривление семантического поля. [STRESS] и \u0301 — неизменные константы. Вокруг них строится новый контекст. Результат: изоморфный (структура сохранена), семантически перекалиброванный.

ACCENTS: U+0301 и [STRESS] — неизменны. Слова с \u0301 — якорь: не склонять, не менять форму.
OPR: Ударения пользователя — закон. Необычный контекст — оправдать, не менять структуру.
ISOMORPHISM: НЕ означает идентичность слов. Меняй эпитеты и контекст согласно весам Доменов, сохраняя НЕИЗМЕННЫМИ только токены с \u0301 и общую структуру. 1 слово = 1 концепт. Не добавлять объекты (туманы, горы).
MORPHOLOGY: Замо\u0301к (запор) → на замке\u0301; за\u0301мок (строение) → на за\u0301мке.
PHYSICAL: Глаголы действия (повесить, запереть) → объект-устройство (замо\u0301к), не строение (за\u0301мок).
"""

_FALLBACK_DEGRADED_DIRECTIVE = (
    "УПРОЩЕНИЕ: Метафоры упрости. Сохрани ВСЕ [STRESS] токены и \u0301 в неприкосновенности. "
    "Вывод: ТОЛЬКО чистый текст."
)

_FALLBACK_DISCLAIMER = (
    "\n\n---\n[ALTRO LIBRA] Внимание: Данная адаптация является результатом частного использования "
    "инструмента семантической оркестровки. Ответственность за распространение несет пользователь."
)


@lru_cache(maxsize=8)
def _load_prompt_data(path: Optional[str | Path]) -> Dict[str, Any]:
    target = Path(path) if path is not None else DEFAULT_PROMPTS_PATH
    if not target.exists():
        return {}
    with target.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return data if isinstance(data, dict) else {}


def _get(key: str, fallback: str, path: Optional[str | Path]) -> str:
    value = _load_prompt_data(path).get(key)
    return str(value) if value else fallback


def get_mirror_prompt(path: Optional[str | Path] = None) -> str:
    return _get("mirror_prompt", _FALLBACK_MIRROR_PROMPT, path)


def get_silence_prompt(path: Optional[str | Path] = None) -> str:
    return _get("silence_prompt", _FALLBACK_SILENCE_PROMPT, path)


def get_doctrine(path: Optional[str | Path] = None) -> str:
    return _get("doctrine", _FALLBACK_DOCTRINE, path)


def get_degraded_directive(path: Optional[str | Path] = None) -> str:
    return _get("degraded_directive", _FALLBACK_DEGRADED_DIRECTIVE, path)


def get_disclaimer(path: Optional[str | Path] = None) -> str:
    return _get("disclaimer", _FALLBACK_DISCLAIMER, path)


def active_domain_labels(
    sliders: DomainSliders,
    *,
    internal_threshold: float = INTERNAL_ACTIVATION_THRESHOLD,
    external_threshold: float = EXTERNAL_ACTIVATION_THRESHOLD,
) -> List[str]:
    display = sliders.internal_display()
    labels = [DOMAIN_LABELS[axis] for axis in INTERNAL_AXES if display[axis] > internal_threshold]
    labels += [DOMAIN_LABELS[axis] for axis in EXTERNAL_AXES if abs(getattr(sliders, axis)) > external_threshold]
    return labels


def build_system_prompt(
    mode: Mode | str,
    sliders: DomainSliders,
    *,
    directive: Optional[str] = None,
    target_language: Optional[str] = None,
    is_final_adaptation: bool = True,
    penetration_threshold: float = DOMAIN_PENETRATION_THRESHOLD,
    internal_threshold: float = INTERNAL_ACTIVATION_THRESHOLD,
    external_threshold: float = EXTERNAL_ACTIVATION_THRESHOLD,
    prompts_path: Optional[str | Path] = None,
) -> str:
    """
    System instruction for the generation service.

    Parameters
    ----------
    mode:
        Mirror (and any request with all 13 axes neutral) gets only the short
        stress-marking instruction.
    sliders:
        Effective snapshot (scenario and OPR already applied).
    directive:
        User directive, inserted verbatim with highest priority.

    Returns
    -------
    str
        Prompt text without the session header.
    """

    mode = Mode(mode)
    if mode is Mode.MIRROR or is_neutral(sliders):
        return get_mirror_prompt(prompts_path)
    if not is_final_adaptation:
        return get_silence_prompt(prompts_path)

    directive = (directive or "").strip()
    thresholds = {"internal_threshold": internal_threshold, "external_threshold": external_threshold}
    weights_active = has_active_domain_weights(sliders, **thresholds)
    auto_directive = not directive and weights_active

    display = sliders.internal_display()
    history = abs(sliders.history) * 100
    domain_lock = display["semantics"] >= 99 and display["imagery"] >= 99 and history >= 99
    spirit = (sliders.religion + 1) / 2 * 100
    opr = sliders.opr * 100

    thesaurus_domains = [axis for axis in EXTERNAL_AXES if getattr(sliders, axis) > penetration_threshold]

    parts: List[str] = [get_doctrine(prompts_path)]
    if directive:
        parts.append(f"DIRECTIVE: {directive}\n")
    elif auto_directive:
        parts.append(
            "ZERO-DIRECTIVE MODE: Командная строка пуста, но слайдеры сдвинуты. "
            "Трансформация ОБЯЗАТЕЛЬНА. Веса доменов = директива.\n"
        )
    if weights_active:
        displacement = get_semantic_displacement_directive(sliders, **thresholds)
        if displacement:
            parts.append(f"\n{displacement}\n")
    if not directive and not auto_directive:
        parts.append("DOMAIN WEIGHTS = директива. Адаптировать по весам.\n")

    labels = active_domain_labels(sliders, **thresholds)
    tail = f"Домены: {', '.join(labels) if labels else '—'}. Вывод: ТОЛЬКО чистый текст."
    if domain_lock:
        tail += " 100/100/100: глубокая транскреация, метафоры, ударения OPR."
    if display["imagery"] > 70 and not domain_lock:
        tail += " Образность>70: метафоры."
    if spirit > 70:
        tail += " Духовность>70: экзистенциальный план."
    if display["imagery"] > 70 and display["context"] < display["imagery"]:
        tail += " Грамматика приоритетнее метафор: путь→вел, дорога→вела."
    if display["ethics"] > 80:
        tail += " Этика>80: без абсурда омонимов."
    if target_language:
        tail += f" Язык: {target_language}."
    if opr >= 0:
        tail += f" OPR: {opr:.0f}%."
    else:
        tail += f" OPR: {opr:.0f}% (КРИТИКА): рассматривай домены критически, выявляй их ограничения."
    parts.append(tail)

    if thesaurus_domains:
        vocab = "\nPLATO: тезаурус домена."
        for axis in thesaurus_domains:
            terms = DOMAIN_THESAURUS.get(axis, ())[:THESAURUS_TERMS_PER_DOMAIN]
            if terms:
                vocab += f" {DOMAIN_LABELS[axis]}: {', '.join(terms)}."
        if "religion" in thesaurus_domains:
            vocab += " SACRED: за\u0301мок→Обитель, замо\u0301к→Обет."
        parts.append(vocab)
        if opr < 100:
            parts.append("\nDYNAMIC: омонимы U+0301 + сетка домена.")

    return "".join(parts)


def build_session_prompt(system_prompt: str, session_id: Optional[str]) -> str:
    """Prefixes the opaque session token used for context isolation."""
    if not session_id:
        return system_prompt
    return f"[Session: {session_id}]\n{system_prompt}"


def build_user_content(text: str) -> str:
    """
    Wraps every stressed word in [STRESS]…[/STRESS] and appends the list of
    accented words as a redundant preservation cue.
    """

    wrapped = wrap_locked_words(text)
    accented = extract_accented_words(text)
    if not accented:
        return wrapped
    return f"{wrapped}\n[STRESS] Сохрани: {', '.join(accented)}"
