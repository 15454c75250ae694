# phantom/opsec.py
# PhantomKeystroke OPSEC Validator
# Checks an operation against the asserted persona: local clock first,
# then the command text itself. Verdicts are advisory data; blocking is
# the caller's decision.

import logging
import re
from dataclasses import dataclass
from datetime import datetime

from phantom.regions import RegionProfile

logger = logging.getLogger(__name__)

OUTSIDE_WORKING_HOURS = "outside working hours"
HOLIDAY = "holiday"


@dataclass(frozen=True)
class OpsecVerdict:
    """Clean, or Suspicious with a reason."""

    suspicious: bool = False
    reason: str | None = None

    @classmethod
    def clean(cls) -> "OpsecVerdict":
        return cls()

    @classmethod
    def flag(cls, reason: str) -> "OpsecVerdict":
        return cls(suspicious=True, reason=reason)

    @property
    def is_clean(self) -> bool:
        return not self.suspicious

    def __str__(self) -> str:
        return f"Suspicious({self.reason})" if self.suspicious else "Clean"


CLEAN = OpsecVerdict.clean()


@dataclass(frozen=True)
class LintRule:
    """Text pattern that contradicts a persona. regions=None applies to all."""

    pattern: re.Pattern
    reason: str
    regions: frozenset[str] | None = None

    def applies(self, profile: RegionProfile) -> bool:
        return self.regions is None or profile.code in self.regions


LINT_RULES = (
    LintRule(re.compile(r"\bcolor\b", re.IGNORECASE), "US spelling 'color'", frozenset({"ru"})),
    LintRule(re.compile(r"[A-Za-z]:\\|\w\\\w"), "Windows path separators", frozenset({"de"})),
    LintRule(re.compile(r"[\u3040-\u30ff]"), "Japanese kana", frozenset({"zh"})),
    LintRule(re.compile(r"\u200e"), "left-to-right mark", frozenset({"ar", "fa"})),
    LintRule(
        re.compile(r"/(users|desktop|documents)/", re.IGNORECASE),
        "English home-directory names",
    ),
)


class OpsecValidator:
    """Evaluates operations against a RegionProfile."""

    def __init__(self, lint_rules: tuple[LintRule, ...] = LINT_RULES):
        self.lint_rules = lint_rules

    def validate(self, now: datetime, profile: RegionProfile) -> OpsecVerdict:
        """
        Wall-clock check in the persona's local time.

        Order: holiday, weekday mask, then the [start, end) window.
        Naive datetimes are taken as UTC.
        """
        local = profile.local_time(now)
        hours = profile.working_hours

        if hours.is_holiday(local.date()):
            return OpsecVerdict.flag(HOLIDAY)
        if not hours.is_workday(local.date()) or not hours.within(local.time()):
            return OpsecVerdict.flag(OUTSIDE_WORKING_HOURS)
        return CLEAN

    def check_command(self, text: str, profile: RegionProfile) -> OpsecVerdict:
        """Look for artifacts in the command that betray a different origin."""
        for rule in self.lint_rules:
            if rule.applies(profile) and rule.pattern.search(text):
                return OpsecVerdict.flag(f"{rule.reason} under {profile.name} persona")
        return CLEAN

    def assess(self, now: datetime, text: str, profile: RegionProfile) -> OpsecVerdict:
        """Combined verdict; the clock verdict wins when both fail."""
        verdict = self.validate(now, profile)
        if verdict.suspicious:
            return verdict
        return self.check_command(text, profile)
