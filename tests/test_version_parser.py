"""Tests for module version parsing and list-file tokens."""

from decimal import Decimal

import pytest

from versioning.models import VersionKind
from versioning.parser import (
    distribution_from_release,
    is_valid_module_name,
    parse_version,
    to_dotted,
    tokenize_module_token,
)


class TestParseVersion:
    """Numification of decimal and dotted versions."""

    def test_decimal_trailing_zero_is_insignificant(self):
        assert parse_version("1.10").numified == parse_version("1.1").numified

    def test_decimal_kind_and_value(self):
        parsed = parse_version("1.23")
        assert parsed.kind == VersionKind.DECIMAL
        assert parsed.numified == Decimal("1.23")

    def test_underscore_marks_trial_and_is_dropped(self):
        parsed = parse_version("1.23_01")
        assert parsed.is_trial
        assert parsed.numified == Decimal("1.2301")

    def test_dotted_with_leading_v(self):
        parsed = parse_version("v1.2.3")
        assert parsed.kind == VersionKind.DOTTED
        assert parsed.numified == Decimal("1.002003")

    def test_dotted_without_v_needs_two_dots(self):
        assert parse_version("1.2.3").kind == VersionKind.DOTTED
        assert parse_version("1.2").kind == VersionKind.DECIMAL

    def test_dotted_equals_equivalent_decimal(self):
        assert parse_version("v5.36.0").numified == parse_version("5.036000").numified

    @pytest.mark.parametrize("raw", [None, "", "  ", "undef"])
    def test_missing(self, raw):
        parsed = parse_version(raw)
        assert parsed.kind == VersionKind.MISSING
        assert parsed.numified is None

    def test_unparsable_is_other(self):
        parsed = parse_version("1.0-beta")
        assert parsed.kind == VersionKind.OTHER
        assert parsed.numified is None

    def test_leading_dot_decimal(self):
        assert parse_version(".5").numified == Decimal("0.5")


class TestModuleNames:
    @pytest.mark.parametrize("name", ["Foo", "Foo::Bar", "Foo::Bar_Baz2", "_Private::X"])
    def test_valid(self, name):
        assert is_valid_module_name(name)

    @pytest.mark.parametrize("name", ["", "Foo::", "::Foo", "Foo Bar", "9Foo", "Foo-Bar"])
    def test_invalid(self, name):
        assert not is_valid_module_name(name)


class TestTokenizeModuleToken:
    def test_whitespace_separated(self):
        assert tokenize_module_token("Foo::Bar 1.23") == ("Foo::Bar", "1.23")

    def test_at_separated(self):
        assert tokenize_module_token("Foo::Bar@1.23") == ("Foo::Bar", "1.23")

    def test_name_only(self):
        assert tokenize_module_token("  Foo::Bar  ") == ("Foo::Bar", None)

    def test_empty(self):
        assert tokenize_module_token("") == ("", None)


class TestDistributionFromRelease:
    def test_uses_known_distribution_prefix(self):
        assert distribution_from_release("Foo-Bar-1.23", "Foo-Bar") == ("Foo-Bar", "1.23")

    def test_splits_on_last_hyphen_without_distribution(self):
        assert distribution_from_release("Foo-Bar-1.23", None) == ("Foo-Bar", "1.23")

    def test_no_hyphen_has_no_version(self):
        assert distribution_from_release("Foo", None) == ("Foo", "")


class TestToDotted:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("5.036000", "5.36.0"),
            ("5.036", "5.36.0"),
            ("5.8.9", "5.8.9"),
            ("5.36", "5.360.0"),
            ("v5.36", "5.36.0"),
            ("5.010001", "5.10.1"),
        ],
    )
    def test_conversion(self, raw, expected):
        assert to_dotted(raw) == expected

    def test_not_a_version(self):
        assert to_dotted("blead") is None
