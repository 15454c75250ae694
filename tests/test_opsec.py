"""Tests for the OPSEC validator."""

import dataclasses
import unittest
from datetime import datetime, time, timezone

from phantom.opsec import (
    CLEAN,
    HOLIDAY,
    OUTSIDE_WORKING_HOURS,
    OpsecValidator,
    OpsecVerdict,
)
from phantom.regions import WorkingHours, lookup


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


# 2026-10-21 is a Wednesday
WEDNESDAY = (2026, 10, 21)


class TestWallClock(unittest.TestCase):
    """Local-time checks against the persona's working hours."""

    def setUp(self) -> None:
        self.validator = OpsecValidator()
        self.russian = lookup("ru")

    def test_two_am_local_is_suspicious(self) -> None:
        profile = dataclasses.replace(
            self.russian,
            working_hours=WorkingHours(time(9, 0), time(18, 0), weekdays=frozenset(range(7))),
        )
        # 23:00 UTC is 02:00 the next day at UTC+3
        verdict = self.validator.validate(utc(2026, 10, 20, 23, 0), profile)
        assert verdict == OpsecVerdict.flag(OUTSIDE_WORKING_HOURS)
        assert str(verdict) == "Suspicious(outside working hours)"

    def test_inside_hours_is_clean(self) -> None:
        verdict = self.validator.validate(utc(*WEDNESDAY, 8, 0), self.russian)
        assert verdict is CLEAN
        assert verdict.is_clean
        assert str(verdict) == "Clean"

    def test_window_is_half_open(self) -> None:
        assert self.validator.validate(utc(*WEDNESDAY, 6, 0), self.russian).is_clean
        assert self.validator.validate(utc(*WEDNESDAY, 15, 0), self.russian).reason == OUTSIDE_WORKING_HOURS

    def test_weekend(self) -> None:
        # Sunday noon in Moscow
        verdict = self.validator.validate(utc(2026, 10, 25, 9, 0), self.russian)
        assert verdict.reason == OUTSIDE_WORKING_HOURS

    def test_holiday_checked_first(self) -> None:
        # 9 May 2026 is a Saturday and a Russian holiday
        verdict = self.validator.validate(utc(2026, 5, 9, 9, 0), self.russian)
        assert verdict.reason == HOLIDAY

    def test_naive_datetime_is_utc(self) -> None:
        assert self.validator.validate(datetime(*WEDNESDAY, 8, 0), self.russian).is_clean

    def test_persian_week(self) -> None:
        persian = lookup("fa")
        # 06:30 UTC is 10:00 at UTC+3:30
        friday = self.validator.validate(utc(2026, 10, 23, 6, 30), persian)
        saturday = self.validator.validate(utc(2026, 10, 24, 6, 30), persian)
        assert friday.reason == OUTSIDE_WORKING_HOURS
        assert saturday.is_clean

    def test_chinese_offset(self) -> None:
        chinese = lookup("zh")
        assert self.validator.validate(utc(*WEDNESDAY, 1, 0), chinese).is_clean
        assert not self.validator.validate(utc(*WEDNESDAY, 0, 59), chinese).is_clean


class TestCommandLint:
    def setup_method(self):
        self.validator = OpsecValidator()

    def test_us_spelling_under_russian_persona(self):
        verdict = self.validator.check_command("ls --color=auto", lookup("ru"))
        assert verdict.suspicious
        assert "US spelling" in verdict.reason
        assert "Russian" in verdict.reason

    def test_rule_scoped_to_region(self):
        assert self.validator.check_command("ls --color=auto", lookup("de")).is_clean

    def test_windows_paths_under_german_persona(self):
        assert self.validator.check_command("type C:\\Windows\\win.ini", lookup("de")).suspicious

    def test_kana_under_chinese_persona(self):
        assert self.validator.check_command("echo テスト", lookup("zh")).suspicious
        assert self.validator.check_command("echo 测试", lookup("zh")).is_clean

    def test_english_home_dirs_any_persona(self):
        for code in ("fr", "ko", "ar"):
            assert self.validator.check_command("ls /Users/admin/", lookup(code)).suspicious

    def test_plain_command_clean(self):
        for code in ("ru", "zh", "ko", "de", "fr", "ar", "fa"):
            assert self.validator.check_command("ls -la /tmp", lookup(code)) is CLEAN

    def test_custom_rules(self):
        assert OpsecValidator(lint_rules=()).check_command("ls --color", lookup("ru")).is_clean


class TestAssess:
    def test_clock_verdict_wins(self):
        verdict = OpsecValidator().assess(utc(2026, 10, 20, 23, 0), "ls --color", lookup("ru"))
        assert verdict.reason == OUTSIDE_WORKING_HOURS

    def test_lint_when_clock_clean(self):
        verdict = OpsecValidator().assess(utc(*WEDNESDAY, 8, 0), "ls --color", lookup("ru"))
        assert "US spelling" in verdict.reason

    def test_all_clean(self):
        assert OpsecValidator().assess(utc(*WEDNESDAY, 8, 0), "whoami", lookup("ru")).is_clean
