"""
Static lexical tables: homonym registry, spellcheck dictionary, pattern patches,
scenario profiles and domain vocabularies.

RU: Все таблицы — неизменяемые структуры, собираются один раз при импорте.
Расширение словарей — это правка данных, а не логики.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

STRESS = "\u0301"


# =========================
# Homonym registry
# =========================


@dataclass(frozen=True)
class HomonymVariant:
    surface_form: str
    meaning: str
    domain: str = ""


@dataclass(frozen=True)
class HomonymEntry:
    base_form: str
    variants: Tuple[HomonymVariant, ...] = ()


def _entry(base: str, *variants: Tuple[str, str, str]) -> Tuple[str, HomonymEntry]:
    return base, HomonymEntry(
        base_form=base,
        variants=tuple(HomonymVariant(surface_form=s, meaning=m, domain=d) for s, m, d in variants),
    )


HOMONYM_DB: Mapping[str, HomonymEntry] = MappingProxyType(
    dict(
        [
            _entry(
                "замок",
                (f"за{STRESS}мок", "строение, крепость", "Архитектура"),
                (f"замо{STRESS}к", "запорное устройство, механизм", "Механика"),
            ),
            _entry(
                "мука",
                (f"му{STRESS}ка", "страдание, мучение", "Эмоции"),
                (f"мука{STRESS}", "перемолотое зерно", "Быт"),
            ),
            _entry(
                "атлас",
                (f"а{STRESS}тлас", "сборник карт", "География"),
                (f"атла{STRESS}с", "гладкая ткань", "Текстиль"),
            ),
            _entry(
                "орган",
                (f"о{STRESS}рган", "часть организма, учреждение", "Биология"),
                (f"орга{STRESS}н", "клавишный духовой инструмент", "Музыка"),
            ),
            _entry(
                "дорога",
                (f"доро{STRESS}га", "путь, полоса для движения", "Пространство"),
                (f"дорога{STRESS}", "ценна, любима (краткое прилагательное)", "Ценность"),
            ),
            _entry(
                "хлопок",
                (f"хло{STRESS}пок", "растение, волокно", "Текстиль"),
                (f"хлопо{STRESS}к", "короткий резкий звук", "Звук"),
            ),
            _entry(
                "белки",
                (f"бе{STRESS}лки", "грызуны", "Природа"),
                (f"белки{STRESS}", "органические вещества", "Биохимия"),
            ),
            _entry(
                "стоит",
                (f"сто{STRESS}ит", "имеет цену", "Экономика"),
                (f"стои{STRESS}т", "находится в вертикальном положении", "Пространство"),
            ),
            _entry(
                "кружки",
                (f"кру{STRESS}жки", "посуда для питья", "Быт"),
                (f"кружки{STRESS}", "объединения по интересам, окружности", "Общество"),
            ),
            _entry(
                "ирис",
                (f"и{STRESS}рис", "цветок", "Природа"),
                (f"ири{STRESS}с", "тянучка", "Быт"),
            ),
            _entry(
                "пропасть",
                (f"про{STRESS}пасть", "обрыв, бездна", "Пространство"),
                (f"пропа{STRESS}сть", "исчезнуть", "Действие"),
            ),
            _entry(
                "дела",
                (f"де{STRESS}ла", "дело (род. падеж)", "Общество"),
                (f"дела{STRESS}", "занятия, обстоятельства", "Общество"),
            ),
            # Омонимы без различия ударения: смысл только из контекста, не помечаются.
            _entry("ключ"),
            _entry("коса"),
            _entry("лук"),
            _entry("брак"),
            _entry("гриф"),
            _entry("ласка"),
        ]
    )
)


HOMONYM_WORD_FORMS: Mapping[str, str] = MappingProxyType(
    {
        # замок / замо\u0301к
        "замка": "замок",
        "замку": "замок",
        "замке": "замок",
        "замком": "замок",
        "замки": "замок",
        "замков": "замок",
        "замкам": "замок",
        "замками": "замок",
        "замках": "замок",
        # мука
        "муки": "мука",
        "муке": "мука",
        "муку": "мука",
        "мукой": "мука",
        # атлас
        "атласа": "атлас",
        "атласе": "атлас",
        "атласу": "атлас",
        "атласом": "атлас",
        "атласы": "атлас",
        # орган
        "органа": "орган",
        "органе": "орган",
        "органу": "орган",
        "органом": "орган",
        "органы": "орган",
        "органов": "орган",
        "органам": "орган",
        # дорога
        "дороги": "дорога",
        "дороге": "дорога",
        "дорогу": "дорога",
        "дорогой": "дорога",
        # хлопок
        "хлопка": "хлопок",
        "хлопку": "хлопок",
        "хлопком": "хлопок",
        "хлопке": "хлопок",
        # белки
        "белок": "белки",
        "белков": "белки",
        "белкам": "белки",
        "белками": "белки",
        # пропасть
        "пропасти": "пропасть",
    }
)


# Триггеры соседних слов (окно в 4 слова) для подсказки смысла голого омонима.
CONTEXT_SENSE_WINDOW = 4

CONTEXT_SENSE_TRIGGERS: Mapping[str, Mapping[str, frozenset]] = MappingProxyType(
    {
        "замок": MappingProxyType(
            {
                f"замо{STRESS}к": frozenset({"открыт", "закрыт", "ключ", "дверь", "железный"}),
                f"за{STRESS}мок": frozenset({"старый", "стены", "башня", "ров", "ворота"}),
            }
        ),
        "мука": MappingProxyType(
            {
                f"мука{STRESS}": frozenset({"пшеничная", "ржаная", "тесто", "мешок", "килограмм"}),
                f"му{STRESS}ка": frozenset({"адская", "страшная", "терпеть", "боль", "душевная"}),
            }
        ),
    }
)


# =========================
# Spellcheck
# =========================

# Порядок важен: при равном расстоянии побеждает первый кандидат.
_BASE_WORDS: Tuple[str, ...] = (
    "а", "и", "в", "во", "на", "с", "со", "к", "ко", "о", "об", "от", "до", "по", "за", "из",
    "у", "не", "ни", "но", "да", "же", "ли", "бы", "то", "что", "как", "так", "где", "когда",
    "кто", "это", "этот", "эта", "эти", "тот", "та", "те", "он", "она", "оно", "они", "мы",
    "вы", "ты", "я", "мой", "моя", "моё", "мое", "мои", "твой", "твоя", "наш", "наша", "ваш",
    "его", "ее", "её", "их", "был", "была", "было", "были", "быть", "есть", "будет",
    "папа", "мама", "отец", "мать", "сын", "дочь", "брат", "сестра", "друг", "дом", "дома",
    "мир", "жизнь", "время", "день", "ночь", "год", "лет", "город", "страна", "земля",
    "вода", "небо", "свет", "тьма", "голос", "память", "граница", "дело", "кошка", "собака",
    "старый", "старая", "старое", "новый", "новая", "большой", "малый", "высокий", "железный",
    "стены", "стена", "башня", "ров", "ворота", "дверь", "двери", "окно", "открыт", "открыта",
    "закрыт", "закрыта", "путь", "вел", "вела", "вело", "шел", "шла", "шли", "идти", "пришел",
    "встреча", "встречи", "встретились", "встретил", "встретила", "привет", "здесь", "там",
    "сейчас", "теперь", "потом", "тогда", "всегда", "никогда", "очень", "уже", "еще", "ещё",
    "надолго", "долго", "быстро", "медленно", "хорошо", "плохо", "можно", "нужно", "надо",
    "сделать", "делать", "сказать", "сказал", "сказала", "знать", "знаю", "видеть", "видел",
    "любить", "люблю", "жить", "живу", "думать", "думаю", "прийти", "извините", "спасибо",
    "крепость", "обитель", "храм", "вера", "дух", "тайна", "обет", "печать", "вечность",
    "старый", "пшеничная", "тесто", "мешок", "боль", "адская", "страшная", "терпеть",
    "факт", "аргумент", "оппоненты", "оппонентов", "путешествие", "вознамерился", "направился",
    "кардинально", "агентство", "симпатичный", "общем", "наконец", "кто-то", "что-то",
    "сегодня", "вчера", "завтра", "утро", "вечер", "человек", "люди", "слово", "слова",
    "текст", "книга", "история", "культура", "общество", "политика", "экономика",
    "был", "стоял", "стояла", "стоит", "висел", "висит", "повесил", "запер", "запереть",
    "ключом", "ключа", "ключи", "на", "над", "под", "при", "через", "для", "без", "про",
    "весь", "вся", "все", "всё", "один", "одна", "два", "три", "много", "мало",
)


def _collect_homonym_forms() -> Tuple[str, ...]:
    forms = list(HOMONYM_DB.keys()) + list(HOMONYM_WORD_FORMS.keys())
    for entry in HOMONYM_DB.values():
        for variant in entry.variants:
            forms.append(variant.surface_form.replace(STRESS, ""))
    return tuple(forms)


def _unique(items: Tuple[str, ...]) -> Tuple[str, ...]:
    seen = set()
    out = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return tuple(out)


# Упорядоченный список для нечеткого поиска и множество для проверки принадлежности.
SPELLCHECK_WORDS: Tuple[str, ...] = _unique(_BASE_WORDS + _collect_homonym_forms())
SPELLCHECK_DICTIONARY: frozenset = frozenset(SPELLCHECK_WORDS)

SPELLCHECK_CORRECTIONS: Mapping[str, str] = MappingProxyType(
    {
        "встетились": "встретились",
        "встеча": "встреча",
        "превет": "привет",
        "сдесь": "здесь",
        "извените": "извините",
        "зделать": "сделать",
        "щас": "сейчас",
        "вообщем": "в общем",
        "координально": "кардинально",
        "агенство": "агентство",
        "прийдти": "прийти",
        "симпотичный": "симпатичный",
    }
)

PROPER_NOUNS: frozenset = frozenset(
    {
        "москва",
        "россия",
        "ростов",
        "ростове-на-дону",
        "дон",
        "красноярск",
        "красноярске",
        "петербург",
        "пушкин",
        "гамлет",
        "пелевин",
    }
)


# =========================
# Context errors (fusions / mis-segmentation)
# =========================


@dataclass(frozen=True)
class ContextErrorPattern:
    fused: str
    suggestion: str
    # Если задано — ошибка встречается и как два слова через пробел.
    split: Optional[Tuple[str, str]] = None


CONTEXT_ERROR_PATTERNS: Tuple[ContextErrorPattern, ...] = (
    ContextErrorPattern("папаимама", "папа и мама", ("папа", "имама")),
    ContextErrorPattern("ростовенадону", "Ростове-на-Дону"),
    ContextErrorPattern("вкрасноярске", "в Красноярске"),
    ContextErrorPattern("наконецто", "наконец-то", ("наконец", "то")),
    ContextErrorPattern("ктото", "кто-то"),
    ContextErrorPattern("чтото", "что-то"),
)


# =========================
# Grammar patches
# =========================


@dataclass(frozen=True)
class GenderAgreementFix:
    noun: str
    masculine: str
    feminine: str


GENDER_AGREEMENT_FIXES: Tuple[GenderAgreementFix, ...] = (
    GenderAgreementFix("крепость", "мой", "моя"),
    GenderAgreementFix("крепость", "твой", "твоя"),
    GenderAgreementFix("обитель", "мой", "моя"),
    GenderAgreementFix("обитель", "твой", "твоя"),
    GenderAgreementFix("цитадель", "мой", "моя"),
)


@dataclass(frozen=True)
class PathAgreementFix:
    subject: str
    wrong_verb: str
    verb: str


# путь (м.р.) → вел
PATH_AGREEMENT_FIXES: Tuple[PathAgreementFix, ...] = (
    PathAgreementFix("путь", "вела", "вел"),
    PathAgreementFix("путь", "вело", "вел"),
)

DECLENSION_FIXES: Tuple[Tuple[str, str], ...] = (
    (f"замо{STRESS}ке", f"замке{STRESS}"),
    (f"за{STRESS}мке{STRESS}", f"за{STRESS}мке"),
)


# =========================
# Local mode lexicons
# =========================

SLANG_LEXICON: Mapping[str, str] = MappingProxyType(
    {
        "факт": "пруф",
        "оппонентов": "хейтеров",
        "оппоненты": "хейтеры",
        "путешествие": "трип",
        "встреча": "стрелка",
        "папа": "батя",
        "отец": "батя",
        "мама": "матушка",
    }
)

TRANSFIGURE_LEXICON: Mapping[str, str] = MappingProxyType(
    {
        "факт": "аргумент",
        "вознамерился": "направился",
        "путешествие": "странствие",
    }
)


# =========================
# Domain profiles
# =========================

EXTERNAL_AXES: Tuple[str, ...] = (
    "economics",
    "politics",
    "society",
    "history",
    "culture",
    "aesthetics",
    "technology",
    "religion",
)
INTERNAL_AXES: Tuple[str, ...] = ("semantics", "context", "intent", "imagery", "ethics")

# Базовые профили сценариев: 8 внешних осей в шкале [0, 1].
SCENARIO_PROFILES: Mapping[str, Mapping[str, float]] = MappingProxyType(
    {
        "poetics": MappingProxyType(
            {
                "economics": 0.1,
                "politics": 0.2,
                "society": 0.4,
                "history": 0.6,
                "culture": 0.9,
                "aesthetics": 1.0,
                "technology": 0.1,
                "religion": 0.6,
            }
        ),
        "technocrat": MappingProxyType(
            {
                "economics": 0.8,
                "politics": 0.4,
                "society": 0.5,
                "history": 0.3,
                "culture": 0.3,
                "aesthetics": 0.3,
                "technology": 1.0,
                "religion": 0.1,
            }
        ),
        "sacred": MappingProxyType(
            {
                "economics": 0.1,
                "politics": 0.2,
                "society": 0.4,
                "history": 0.8,
                "culture": 0.8,
                "aesthetics": 0.7,
                "technology": 0.1,
                "religion": 1.0,
            }
        ),
    }
)

# Пресет верхнего уровня: заменяет слайдеры целиком (внутренние [0,1], внешние [-1,1]).
GOLD_STANDARD_SLIDERS: Mapping[str, float] = MappingProxyType(
    {
        "semantics": 0.8,
        "context": 0.8,
        "intent": 0.7,
        "imagery": 0.7,
        "ethics": 0.9,
        "economics": 0.0,
        "politics": 0.0,
        "society": 0.3,
        "history": 0.5,
        "culture": 0.6,
        "aesthetics": 0.6,
        "technology": 0.0,
        "religion": 0.3,
    }
)


@dataclass(frozen=True)
class ReferenceProfile:
    id: str
    name: str
    weights: Mapping[str, float]


REFERENCE_PROFILES: Tuple[ReferenceProfile, ...] = (
    ReferenceProfile(
        "family_roots_manifesto",
        "Манифест о семейных корнях",
        MappingProxyType({"history": 1.0, "society": 0.9, "context": 1.0, "imagery": 0.7, "ethics": 0.9}),
    ),
    ReferenceProfile(
        "poem_to_fate",
        "Стихотворение к Судьбе",
        MappingProxyType({"aesthetics": 1.0, "intent": 1.0, "ethics": 0.8, "semantics": 0.6}),
    ),
    ReferenceProfile(
        "hamlet_monologue",
        "Монолог Гамлета",
        MappingProxyType({"culture": 1.0, "religion": 0.8, "aesthetics": 0.9}),
    ),
    ReferenceProfile(
        "pelevin_slang",
        "Сленг Пелевина",
        MappingProxyType({"technology": 0.9, "culture": 0.7, "semantics": 0.8}),
    ),
)


# =========================
# Prompt vocabularies
# =========================

DOMAIN_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "semantics": "Семантика",
        "context": "Контекст",
        "intent": "Намерение",
        "imagery": "Образность",
        "ethics": "Этика",
        "economics": "Экономика",
        "aesthetics": "Эстетика",
        "politics": "Политика",
        "society": "Общество",
        "history": "История",
        "culture": "Культура",
        "technology": "Технологии",
        "religion": "Религия",
    }
)

DOMAIN_THESAURUS: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        "economics": ("ресурс", "актив", "объект", "транзакция", "верификация", "ликвидность", "инвестиция", "капитал"),
        "politics": ("суверенитет", "мандат", "резолюция", "коалиция", "легитимность", "консенсус"),
        "society": ("сообщество", "интеграция", "солидарность", "идентичность", "мобильность"),
        "history": ("преемственность", "наследие", "хроника", "летопись", "память"),
        "culture": ("традиция", "канон", "символ", "архетип", "нарратив"),
        "aesthetics": ("гармония", "ритм", "контраст", "текстура", "композиция"),
        "technology": ("интерфейс", "протокол", "алгоритм", "модуль", "синхронизация"),
        "religion": (
            "дух",
            "вера",
            "бытие",
            "вечность",
            "обитель",
            "храм",
            "тайна",
            "обет",
            "печать",
            "сакральное",
            "трансценденция",
        ),
    }
)

# Слова-объекты, появление которых в зеркальном выводе считается смысловой правкой.
FORBIDDEN_INTRODUCED_OBJECTS: frozenset = frozenset({"туман", "туманы", "гора", "горы", "море", "лес"})
