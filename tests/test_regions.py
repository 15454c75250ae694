"""Tests for the region profile registry."""

import dataclasses
import random
import unittest
from datetime import datetime, time, timezone

import pytest

from phantom.exceptions import ConfigError, RegionError, UnknownRegion
from phantom.regions import (
    SUPPORTED_REGIONS,
    RegionRegistry,
    SubstitutionRule,
    WorkingHours,
    get_registry,
    lookup,
    parse_timezone_offset,
    resolve_code,
)


class TestRegistryLookup(unittest.TestCase):
    """Test profile lookup."""

    def test_all_supported_regions_present(self) -> None:
        registry = get_registry()
        assert set(registry.codes) == set(SUPPORTED_REGIONS)
        assert len(registry) == 7
        for code in SUPPORTED_REGIONS:
            assert registry.lookup(code).code == code

    def test_unknown_region(self) -> None:
        with pytest.raises(UnknownRegion) as exc_info:
            lookup("xx")
        assert exc_info.value.code == "xx"
        assert isinstance(exc_info.value, RegionError)

    def test_lookup_is_case_insensitive(self) -> None:
        assert lookup("RU").code == "ru"
        assert "De" in get_registry()

    def test_registry_built_once(self) -> None:
        assert get_registry() is get_registry()

    def test_registry_is_read_only(self) -> None:
        registry = get_registry()
        with pytest.raises(TypeError):
            registry._profiles["xx"] = lookup("ru")

    def test_profiles_are_frozen(self) -> None:
        profile = lookup("de")
        with pytest.raises(dataclasses.FrozenInstanceError):
            profile.timezone_offset = 0

    def test_duplicate_profiles_rejected(self) -> None:
        with pytest.raises(RegionError):
            RegionRegistry([lookup("ru"), lookup("ru")])


class TestRandomSelection:
    """Random selection is driven only by the supplied PRNG."""

    def test_same_seed_same_region(self):
        registry = get_registry()
        first = [registry.random(random.Random(2024)).code for _ in range(3)]
        second = [registry.random(random.Random(2024)).code for _ in range(3)]
        assert first == second

    def test_sequence_reproducible(self):
        registry = get_registry()
        rng_a, rng_b = random.Random(11), random.Random(11)
        assert [registry.random(rng_a).code for _ in range(20)] == [
            registry.random(rng_b).code for _ in range(20)
        ]

    def test_covers_supported_set(self):
        registry = get_registry()
        rng = random.Random(5)
        seen = {registry.random(rng).code for _ in range(500)}
        assert seen == set(SUPPORTED_REGIONS)


class TestProfileData:
    """Spot checks on built-in persona data."""

    def test_german_layout_swap(self):
        rules = {(r.source, r.replacement) for r in lookup("de").char_substitution_rules}
        assert ("y", "z") in rules
        assert ("z", "y") in rules

    def test_french_azerty_swaps(self):
        rules = {(r.source, r.replacement) for r in lookup("fr").char_substitution_rules}
        assert ("a", "q") in rules
        assert ("w", "z") in rules

    def test_chinese_translations(self):
        translations = dict(lookup("zh").identifier_translations)
        assert translations["data"] == "shuju"
        assert translations["result"] == "jieguo"

    def test_offsets(self):
        assert lookup("ru").timezone_offset == 180
        assert lookup("zh").timezone_offset == 480
        assert lookup("fa").timezone_offset == 210

    def test_persian_weekend(self):
        hours = lookup("fa").working_hours
        assert 4 not in hours.weekdays  # Friday
        assert 5 in hours.weekdays  # Saturday

    def test_layouts(self):
        assert lookup("de").keystroke_profile.layout == "qwertz"
        assert lookup("fr").keystroke_profile.layout == "azerty"
        assert lookup("ru").keystroke_profile.layout == "qwerty"


class TestTimestamps:
    def test_russian_timestamp(self):
        moment = datetime(2026, 10, 19, 11, 5, tzinfo=timezone.utc)
        assert lookup("ru").format_timestamp(moment) == "19.10.2026 14:05 UTC+3"

    def test_persian_timestamp_uses_native_digits(self):
        moment = datetime(2026, 10, 19, 11, 5, tzinfo=timezone.utc)
        stamp = lookup("fa").format_timestamp(moment)
        assert stamp.endswith("UTC+3:30")
        assert not any(c.isascii() and c.isdigit() for c in stamp.removesuffix("UTC+3:30"))

    def test_numeral_format_only_maps_digits(self):
        assert [f.name for f in dataclasses.fields(lookup("ar").numeral_format)] == ["digits"]
        assert lookup("ar").numeral_format.render_digits("12:05") == "١٢:٠٥"
        assert lookup("de").numeral_format.render_digits("12:05") == "12:05"

    def test_naive_datetime_is_utc(self):
        profile = lookup("zh")
        local = profile.local_time(datetime(2026, 10, 19, 1, 0))
        assert local.hour == 9

    def test_with_timezone(self):
        profile = lookup("ru").with_timezone(-300)
        assert profile.timezone_offset == -300
        assert profile.utc_label() == "UTC-5"
        assert lookup("ru").timezone_offset == 180


class TestWorkingHours:
    def test_half_open_window(self):
        hours = WorkingHours(time(9, 0), time(18, 0))
        assert hours.within(time(9, 0))
        assert not hours.within(time(18, 0))
        assert not hours.within(time(2, 0))

    def test_overnight_window(self):
        hours = WorkingHours(time(22, 0), time(6, 0))
        assert hours.within(time(23, 30))
        assert hours.within(time(1, 0))
        assert not hours.within(time(12, 0))


class TestAliases:
    @pytest.mark.parametrize(
        "alias,code",
        [("CN", "zh"), ("kp", "ko"), ("KR", "ko"), ("IR", "fa"), ("SA", "ar"), ("de", "de"), ("random", "random")],
    )
    def test_resolve(self, alias, code):
        assert resolve_code(alias) == code

    def test_unknown_alias(self):
        with pytest.raises(UnknownRegion):
            resolve_code("XX")


class TestTimezoneParsing:
    @pytest.mark.parametrize(
        "value,minutes",
        [("+3", 180), ("-05:30", -330), ("UTC+8", 480), (3, 180), ("+3:30", 210), ("0", 0)],
    )
    def test_valid(self, value, minutes):
        assert parse_timezone_offset(value) == minutes

    @pytest.mark.parametrize("value", ["abc", "+15", True, "UTC+99"])
    def test_invalid(self, value):
        with pytest.raises(ConfigError):
            parse_timezone_offset(value)


def test_custom_rules_do_not_leak_into_registry():
    custom = dataclasses.replace(lookup("de"), char_substitution_rules=(SubstitutionRule("y", "z", 1.0),))
    assert len(custom.char_substitution_rules) == 1
    assert len(lookup("de").char_substitution_rules) == 4
