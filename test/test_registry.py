"""Tests for rule validation, the registry and rule selection."""
from dataclasses import replace

import pytest

from core.errors import ConfigError, RuleNotFoundError
from rules.dsl import any_of, count_of, fact, words
from rules.ir import Severity
from rules.registry import RuleRegistry, get_registry, init_registry, validate_rule
from rules.utils import select_rules
from test_utils import make_rule


def valid(rule_id="ok-rule", **kwargs):
    kwargs.setdefault("requires", [words("foo")])
    return make_rule(rule_id, **kwargs)


class TestValidation:
    def test_valid_rule(self):
        validate_rule(valid())
        validate_rule(valid(scope="contract", requires=[fact("Inherits")]))
        validate_rule(valid(requires=[], counts=[count_of(words("a"), ">=", 0)]))

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"scope": "file"},
            {"within": ["code", "bytecode"]},
            {"within": []},
            {"requires": [words()]},
            {"requires": [words("")]},
            {"requires": [words("  ")]},
            {"requires": [fact("NoSuchFact")]},
            {"requires": [fact("Inherits")]},
            {"counts": [count_of(words("a"), "~=", 1)]},
            {"counts": [count_of(words("a"), ">=", -1)]},
            {"counts": [count_of(words("a"), ">=", "2")]},
            {"counts": [count_of(words("a"), ">=", True)]},
            {"counts": [count_of(words(), ">=", 1)]},
            {"unless": any_of()},
            {"unless": fact("Unknown")},
            {"requires": [], "unless": words("x")},
            {"languages": ["cobol"]},
            {"kinds": ["method"]},
            {"kinds": []},
            {"message": "{contract} owned by {owner}"},
            {"message": "unbalanced {contract"},
            {"severity": "info"},
        ],
    )
    def test_malformed_rules(self, kwargs):
        with pytest.raises(ConfigError):
            validate_rule(valid(**kwargs))

    def test_empty_id(self):
        with pytest.raises(ConfigError, match="empty id"):
            validate_rule(valid(""))

    def test_id_with_whitespace(self):
        with pytest.raises(ConfigError, match="whitespace"):
            validate_rule(valid("bad id"))

    def test_unknown_severity_fails_at_build(self):
        with pytest.raises(ConfigError, match="Unknown severity"):
            valid(severity="urgent")

    def test_bad_dsl_arguments(self):
        with pytest.raises(ConfigError):
            any_of(42)
        with pytest.raises(ConfigError):
            valid(requires=[42])
        with pytest.raises(ConfigError):
            count_of(["a"], "==", 1)


class TestRegistry:
    def _registry(self):
        return RuleRegistry(
            [
                valid("b-rule", category="oracle", severity="low"),
                valid("a-rule", category="access-control", severity="high"),
                valid("c-rule", category="oracle", severity="critical"),
            ]
        )

    def test_sorted_by_id(self):
        registry = self._registry()
        assert [r.id for r in registry.get_all_rules()] == ["a-rule", "b-rule", "c-rule"]
        assert [r.id for r in registry] == ["a-rule", "b-rule", "c-rule"]
        assert len(registry) == 3
        assert "b-rule" in registry
        assert "x-rule" not in registry

    def test_get_rule(self):
        registry = self._registry()
        assert registry.get_rule("c-rule").severity is Severity.CRITICAL
        with pytest.raises(RuleNotFoundError) as exc:
            registry.get_rule("missing")
        assert str(exc.value) == "Unknown detector: missing"
        assert isinstance(exc.value, KeyError)

    def test_categories(self):
        assert self._registry().categories() == {
            "access-control": ["a-rule"],
            "oracle": ["b-rule", "c-rule"],
        }

    def test_duplicate_id_names_both_sources(self):
        first = replace(valid("dup"), source="one.hy")
        second = replace(valid("dup"), source="two.hy")
        with pytest.raises(ConfigError) as exc:
            RuleRegistry([first, second])
        assert "one.hy" in str(exc.value)
        assert "two.hy" in str(exc.value)

    def test_invalid_rule_rejected_at_construction(self):
        with pytest.raises(ConfigError):
            RuleRegistry([valid(), valid("x", scope="nowhere")])


class TestGlobalRegistry:
    def test_not_initialised(self):
        with pytest.raises(ConfigError):
            get_registry()

    def test_init_once(self):
        registry = init_registry([valid()])
        assert get_registry() is registry
        with pytest.raises(ConfigError, match="already initialised"):
            init_registry([valid("other")])
        assert get_registry() is registry

    def test_accepts_built_registry(self):
        registry = RuleRegistry([valid()])
        assert init_registry(registry) is registry


class TestSelectRules:
    def _registry(self):
        return RuleRegistry(
            [
                valid("a-rule", category="access-control", severity="high"),
                valid("b-rule", category="oracle", severity="low"),
                valid("c-rule", category="oracle", severity="critical"),
            ]
        )

    def test_all_by_default(self):
        assert [r.id for r in select_rules(self._registry())] == ["a-rule", "b-rule", "c-rule"]

    def test_selected(self):
        rules = select_rules(self._registry(), selected=["c-rule", "a-rule", "c-rule"])
        assert [r.id for r in rules] == ["a-rule", "c-rule"]

    def test_unknown_selected(self):
        with pytest.raises(RuleNotFoundError):
            select_rules(self._registry(), selected=["nope"])

    def test_category(self):
        assert [r.id for r in select_rules(self._registry(), category="oracle")] == ["b-rule", "c-rule"]
        with pytest.raises(ConfigError):
            select_rules(self._registry(), category="missing")

    def test_suppress(self):
        rules = select_rules(self._registry(), suppress=["b-rule", "unknown"])
        assert [r.id for r in rules] == ["a-rule", "c-rule"]

    def test_nothing_left(self):
        with pytest.raises(ConfigError, match="No detectors left"):
            select_rules(self._registry(), suppress=["a-rule", "b-rule", "c-rule"])
