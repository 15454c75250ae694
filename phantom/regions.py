"""PhantomKeystroke Region Profiles - regional deception parameters.

This module provides:
- The immutable RegionProfile data model (timing, working hours, text rules)
- The seven built-in profiles: ru, zh, ko, de, fr, ar, fa
- RegionRegistry, built once and read without locking
- Country alias resolution for configuration values such as "CN" or "IR"
"""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from types import MappingProxyType

from phantom.exceptions import ConfigError, RegionError, UnknownRegion

logger = logging.getLogger(__name__)

SUPPORTED_REGIONS = ("ru", "zh", "ko", "de", "fr", "ar", "fa")
RANDOM_REGION = "random"

# Configuration values accepted in place of a region code
COUNTRY_ALIASES = {
    "ru": "ru",
    "zh": "zh",
    "cn": "zh",
    "zh-cn": "zh",
    "ko": "ko",
    "kp": "ko",
    "kr": "ko",
    "de": "de",
    "fr": "fr",
    "ar": "ar",
    "sa": "ar",
    "ae": "ar",
    "eg": "ar",
    "fa": "fa",
    "ir": "fa",
}


class MarkerPlacement(Enum):
    """Where a lexical marker may be inserted."""

    SUFFIX = "suffix"  # appended to an identifier: name_marker
    COMMENT = "comment"  # standalone trailing comment: # marker


@dataclass(frozen=True)
class SubstitutionRule:
    """Replace one character with another inside deceptive spans."""

    source: str
    replacement: str
    probability: float


@dataclass(frozen=True)
class LexicalMarker:
    """Region-characteristic token with its insertion probability."""

    token: str
    probability: float
    placement: MarkerPlacement = MarkerPlacement.COMMENT


@dataclass(frozen=True)
class PunctuationRule:
    """Locale punctuation. space_before adds the French-style thin gap."""

    source: str
    replacement: str
    space_before: bool = False


@dataclass(frozen=True)
class WorkingHours:
    """Local working window plus weekday mask (0 = Monday) and (month, day) holidays."""

    start: time
    end: time
    weekdays: frozenset[int] = frozenset({0, 1, 2, 3, 4})
    holidays: frozenset[tuple[int, int]] = frozenset()

    def is_holiday(self, day: date) -> bool:
        return (day.month, day.day) in self.holidays

    def is_workday(self, day: date) -> bool:
        return day.weekday() in self.weekdays

    def within(self, moment: time) -> bool:
        """Half-open [start, end); windows crossing midnight are supported."""
        moment = moment.replace(tzinfo=None)
        if self.start <= self.end:
            return self.start <= moment < self.end
        return moment >= self.start or moment < self.end


@dataclass(frozen=True)
class KeystrokeProfile:
    """Typing cadence of the persona. All durations in milliseconds."""

    mean_delay_ms: float = 110.0
    regional_factor: float = 1.0
    jitter_stddev_ms: float = 35.0
    min_delay_ms: float = 30.0
    max_delay_ms: float = 400.0
    typo_probability: float = 0.02
    pause_probability: float = 0.10
    pause_range_ms: tuple[float, float] = (150.0, 350.0)
    think_probability: float = 0.01
    think_range_ms: tuple[float, float] = (500.0, 1000.0)
    layout: str = "qwerty"


@dataclass(frozen=True)
class NumeralFormat:
    digits: str = "0123456789"

    def render_digits(self, text: str) -> str:
        if self.digits == "0123456789":
            return text
        return text.translate(str.maketrans("0123456789", self.digits))


@dataclass(frozen=True)
class DateFormat:
    pattern: str = "%Y-%m-%d"


@dataclass(frozen=True)
class RegionProfile:
    """Immutable deception parameters for one region code."""

    code: str
    name: str
    language: str
    timezone_offset: int  # signed minutes from UTC
    working_hours: WorkingHours
    keystroke_profile: KeystrokeProfile
    char_substitution_rules: tuple[SubstitutionRule, ...] = ()
    lexical_markers: tuple[LexicalMarker, ...] = ()
    punctuation_rules: tuple[PunctuationRule, ...] = ()
    identifier_translations: tuple[tuple[str, str], ...] = ()
    translation_probability: float = 0.0
    numeral_format: NumeralFormat = field(default_factory=NumeralFormat)
    date_format: DateFormat = field(default_factory=DateFormat)

    @property
    def tzinfo(self) -> timezone:
        return timezone(timedelta(minutes=self.timezone_offset))

    def local_time(self, moment: datetime) -> datetime:
        """Convert a wall-clock instant to the persona's local time (naive input = UTC)."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self.tzinfo)

    def utc_label(self) -> str:
        hours, minutes = divmod(abs(self.timezone_offset), 60)
        sign = "-" if self.timezone_offset < 0 else "+"
        if minutes:
            return f"UTC{sign}{hours}:{minutes:02d}"
        return f"UTC{sign}{hours}"

    def format_timestamp(self, moment: datetime) -> str:
        """Emulated local timestamp, e.g. '19.10.2026 14:05 UTC+3'."""
        local = self.local_time(moment)
        stamp = f"{local.strftime(self.date_format.pattern)} {local:%H:%M}"
        return f"{self.numeral_format.render_digits(stamp)} {self.utc_label()}"

    def with_timezone(self, offset_minutes: int) -> RegionProfile:
        return replace(self, timezone_offset=offset_minutes)


_TZ_PATTERN = re.compile(r"^(?:UTC|GMT)?\s*([+-]?)(\d{1,2})(?::?(\d{2}))?$", re.IGNORECASE)


def parse_timezone_offset(value) -> int:
    """Parse '+3', '-05:30', 'UTC+8' or an int (hours) into minutes."""
    if isinstance(value, bool):
        msg = f"Invalid timezone offset: {value!r}"
        raise ConfigError(msg)
    if isinstance(value, int):
        minutes = value * 60
    else:
        match = _TZ_PATTERN.match(str(value).strip())
        if not match:
            msg = f"Invalid timezone offset: {value!r}"
            raise ConfigError(msg)
        sign, hours, mins = match.groups()
        minutes = int(hours) * 60 + int(mins or 0)
        if sign == "-":
            minutes = -minutes
    if not -14 * 60 <= minutes <= 14 * 60:
        msg = f"Timezone offset out of range: {value!r}"
        raise ConfigError(msg)
    return minutes


def resolve_code(value: str) -> str:
    """Map a region code or country alias to a region code, or 'random'."""
    key = str(value).strip().lower()
    if key == RANDOM_REGION:
        return RANDOM_REGION
    if key not in COUNTRY_ALIASES:
        raise UnknownRegion(str(value))
    return COUNTRY_ALIASES[key]


# =============================================================================
# BUILT-IN PROFILES
# =============================================================================

_WEEKDAYS_MON_FRI = frozenset({0, 1, 2, 3, 4})


def _suffixes(*tokens: str, probability: float) -> tuple[LexicalMarker, ...]:
    return tuple(LexicalMarker(t, probability, MarkerPlacement.SUFFIX) for t in tokens)


def _comments(*tokens: str, probability: float) -> tuple[LexicalMarker, ...]:
    return tuple(LexicalMarker(t, probability, MarkerPlacement.COMMENT) for t in tokens)


def _swap(a: str, b: str, probability: float) -> tuple[SubstitutionRule, ...]:
    return (
        SubstitutionRule(a, b, probability),
        SubstitutionRule(b, a, probability),
        SubstitutionRule(a.upper(), b.upper(), probability),
        SubstitutionRule(b.upper(), a.upper(), probability),
    )


_ARABIC_PUNCTUATION = (
    PunctuationRule(",", "،"),  # Arabic comma
    PunctuationRule(";", "؛"),  # Arabic semicolon
    PunctuationRule("?", "؟"),  # Arabic question mark
)


def _builtin_profiles() -> tuple[RegionProfile, ...]:
    russian = RegionProfile(
        code="ru",
        name="Russian",
        language="ru",
        timezone_offset=180,
        working_hours=WorkingHours(
            start=time(9, 0),
            end=time(18, 0),
            weekdays=_WEEKDAYS_MON_FRI,
            holidays=frozenset(
                {(1, 1), (1, 2), (1, 7), (2, 23), (3, 8), (5, 1), (5, 9), (6, 12), (11, 4)}
            ),
        ),
        keystroke_profile=KeystrokeProfile(mean_delay_ms=105.0, regional_factor=1.1),
        # Latin -> Cyrillic homoglyphs, the classic layout-switch leftover
        char_substitution_rules=(
            SubstitutionRule("e", "е", 0.05),
            SubstitutionRule("o", "о", 0.03),
            SubstitutionRule("a", "а", 0.03),
            SubstitutionRule("c", "с", 0.02),
            SubstitutionRule("p", "р", 0.02),
        ),
        lexical_markers=(
            *_comments("проверка", "работа", "время", probability=0.04),
            *_suffixes("proverka", "rabota", "vremya", probability=0.03),
        ),
        identifier_translations=(
            ("result", "rezultat"),
            ("temp", "vremya"),
            ("data", "dannye"),
            ("file", "fail"),
            ("user", "polzovatel"),
            ("test", "proverka"),
        ),
        translation_probability=0.15,
        date_format=DateFormat("%d.%m.%Y"),
    )

    chinese = RegionProfile(
        code="zh",
        name="Chinese",
        language="zh",
        timezone_offset=480,
        working_hours=WorkingHours(
            start=time(9, 0),
            end=time(18, 0),
            weekdays=_WEEKDAYS_MON_FRI,
            holidays=frozenset(
                {(1, 1), (2, 1), (2, 2), (2, 3), (5, 1), (10, 1), (10, 2), (10, 3)}
            ),
        ),
        keystroke_profile=KeystrokeProfile(
            mean_delay_ms=95.0, regional_factor=1.25, typo_probability=0.03
        ),
        lexical_markers=(
            *_comments("测试", "临时", "检查", probability=0.05),
            *_suffixes("ceshi", "linshi", "jiancha", probability=0.04),
        ),
        punctuation_rules=(
            PunctuationRule(",", "，"),
            PunctuationRule("!", "！"),
            PunctuationRule("?", "？"),
            PunctuationRule(":", "："),
        ),
        identifier_translations=(
            ("data", "shuju"),
            ("info", "xinxi"),
            ("time", "shijian"),
            ("file", "wenjian"),
            ("user", "yonghu"),
            ("system", "xitong"),
            ("output", "shuchu"),
            ("input", "shuru"),
            ("error", "cuowu"),
            ("log", "rizhi"),
            ("result", "jieguo"),
            ("test", "ceshi"),
            ("value", "zhi"),
        ),
        translation_probability=0.2,
        date_format=DateFormat("%Y/%m/%d"),
    )

    korean = RegionProfile(
        code="ko",
        name="Korean",
        language="ko",
        timezone_offset=540,
        working_hours=WorkingHours(
            start=time(8, 0),
            end=time(17, 0),
            weekdays=frozenset({0, 1, 2, 3, 4, 5}),  # Sunday only off
            holidays=frozenset({(1, 1), (2, 16), (4, 15), (7, 27), (9, 9), (10, 10), (12, 17)}),
        ),
        keystroke_profile=KeystrokeProfile(mean_delay_ms=100.0, regional_factor=1.2),
        lexical_markers=(
            *_comments("테스트", "임시", "확인", probability=0.05),
            *_suffixes("teseuteu", "imsi", "hwagin", probability=0.04),
        ),
        identifier_translations=(
            ("data", "deiteo"),
            ("file", "pail"),
            ("user", "sayongja"),
            ("test", "teseuteu"),
            ("result", "gyeolgwa"),
            ("error", "oryu"),
        ),
        translation_probability=0.15,
        date_format=DateFormat("%Y.%m.%d"),
    )

    german = RegionProfile(
        code="de",
        name="German",
        language="de",
        timezone_offset=60,
        working_hours=WorkingHours(
            start=time(8, 0),
            end=time(17, 0),
            weekdays=_WEEKDAYS_MON_FRI,
            holidays=frozenset({(1, 1), (5, 1), (10, 3), (12, 24), (12, 25), (12, 26)}),
        ),
        keystroke_profile=KeystrokeProfile(mean_delay_ms=115.0, layout="qwertz"),
        # QWERTZ layout slip
        char_substitution_rules=_swap("y", "z", 0.12),
        lexical_markers=(
            *_comments("prüfen", "vorläufig", "erledigt", probability=0.04),
            *_suffixes("neu", "alt", "pruefen", probability=0.03),
        ),
        identifier_translations=(
            ("data", "daten"),
            ("file", "datei"),
            ("user", "benutzer"),
            ("result", "ergebnis"),
            ("test", "pruefung"),
            ("error", "fehler"),
        ),
        translation_probability=0.12,
        date_format=DateFormat("%d.%m.%Y"),
    )

    french = RegionProfile(
        code="fr",
        name="French",
        language="fr",
        timezone_offset=60,
        working_hours=WorkingHours(
            start=time(9, 0),
            end=time(18, 0),
            weekdays=_WEEKDAYS_MON_FRI,
            holidays=frozenset(
                {(1, 1), (5, 1), (5, 8), (7, 14), (8, 15), (11, 1), (11, 11), (12, 25)}
            ),
        ),
        keystroke_profile=KeystrokeProfile(mean_delay_ms=112.0, layout="azerty"),
        # AZERTY layout slips
        char_substitution_rules=(*_swap("a", "q", 0.06), *_swap("w", "z", 0.06)),
        lexical_markers=(
            *_comments("vérifier", "à faire", "provisoire", probability=0.04),
            *_suffixes("verif", "essai", "tmp", probability=0.03),
        ),
        punctuation_rules=(
            PunctuationRule("!", "!", space_before=True),
            PunctuationRule("?", "?", space_before=True),
            PunctuationRule(":", ":", space_before=True),
            PunctuationRule(";", ";", space_before=True),
        ),
        identifier_translations=(
            ("data", "donnees"),
            ("file", "fichier"),
            ("user", "utilisateur"),
            ("result", "resultat"),
            ("error", "erreur"),
            ("test", "essai"),
        ),
        translation_probability=0.12,
        date_format=DateFormat("%d/%m/%Y"),
    )

    arabic = RegionProfile(
        code="ar",
        name="Arabic",
        language="ar",
        timezone_offset=180,
        working_hours=WorkingHours(
            start=time(8, 0),
            end=time(16, 0),
            weekdays=frozenset({6, 0, 1, 2, 3}),  # Sunday - Thursday
            holidays=frozenset({(2, 22), (9, 23)}),
        ),
        keystroke_profile=KeystrokeProfile(
            mean_delay_ms=120.0, regional_factor=1.3, typo_probability=0.03
        ),
        lexical_markers=(
            *_comments("اختبار", "مؤقت", "تحقق", probability=0.05),
            *_suffixes("ikhtibar", "muaqqat", probability=0.03),
        ),
        punctuation_rules=_ARABIC_PUNCTUATION,
        identifier_translations=(
            ("data", "bayanat"),
            ("file", "malaf"),
            ("user", "mustakhdim"),
            ("result", "natija"),
        ),
        translation_probability=0.12,
        numeral_format=NumeralFormat(digits="٠١٢٣٤٥٦٧٨٩"),
        date_format=DateFormat("%d/%m/%Y"),
    )

    persian = RegionProfile(
        code="fa",
        name="Persian",
        language="fa",
        timezone_offset=210,
        working_hours=WorkingHours(
            start=time(8, 0),
            end=time(16, 0),
            weekdays=frozenset({5, 6, 0, 1, 2}),  # Saturday - Wednesday
            holidays=frozenset(
                {(3, 20), (3, 21), (3, 22), (3, 23), (4, 1), (4, 2), (6, 4), (2, 11)}
            ),
        ),
        keystroke_profile=KeystrokeProfile(
            mean_delay_ms=118.0, regional_factor=1.3, typo_probability=0.03
        ),
        # Arabic code points typed on a Persian layout
        char_substitution_rules=(
            SubstitutionRule("ي", "ی", 0.8),
            SubstitutionRule("ك", "ک", 0.8),
        ),
        lexical_markers=(
            *_comments("آزمایش", "موقت", "بررسی", probability=0.05),
            *_suffixes("azmayesh", "movaghat", probability=0.03),
        ),
        punctuation_rules=_ARABIC_PUNCTUATION,
        identifier_translations=(
            ("data", "dadeh"),
            ("file", "parvandeh"),
            ("user", "karbar"),
            ("result", "natijeh"),
        ),
        translation_probability=0.12,
        numeral_format=NumeralFormat(digits="۰۱۲۳۴۵۶۷۸۹"),
        date_format=DateFormat("%Y/%m/%d"),
    )

    return (russian, chinese, korean, german, french, arabic, persian)


# =============================================================================
# REGISTRY
# =============================================================================


class RegionRegistry:
    """
    Read-only catalog of region profiles.
    Built once at startup; lookups need no synchronization.
    """

    def __init__(self, profiles: Iterable[RegionProfile]):
        table: dict[str, RegionProfile] = {}
        for profile in profiles:
            if profile.code in table:
                msg = f"Duplicate region profile: {profile.code}"
                raise RegionError(msg)
            table[profile.code] = profile
        self._profiles = MappingProxyType(table)
        self._codes = tuple(table)

    @property
    def codes(self) -> tuple[str, ...]:
        return self._codes

    def lookup(self, code: str) -> RegionProfile:
        """Return the profile for code; UnknownRegion if unsupported."""
        profile = self._profiles.get(str(code).strip().lower())
        if profile is None:
            raise UnknownRegion(code)
        return profile

    def random(self, rng: random.Random) -> RegionProfile:
        """Uniform pick driven by the session PRNG."""
        return self._profiles[rng.choice(self._codes)]

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and code.lower() in self._profiles

    def __iter__(self) -> Iterator[RegionProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)


_registry: RegionRegistry | None = None


def get_registry() -> RegionRegistry:
    """Process-wide registry of the built-in profiles."""
    global _registry
    if _registry is None:
        _registry = RegionRegistry(_builtin_profiles())
        logger.debug("Region registry loaded: %s", ", ".join(_registry.codes))
    return _registry


def lookup(code: str) -> RegionProfile:
    return get_registry().lookup(code)
