"""Tests for parameter declarations, precedence resolution, and binding contexts."""

import pytest
from pydantic import ValidationError

from tagguard.exceptions import InvalidParameterValue, MissingDefault, UnboundParameter
from tagguard.governance.parameters import (
    BindingContext,
    ParameterDefinition,
    ParameterResolver,
    ParameterType,
    resolve_parameter,
)


def _effect(default: str | None = "Audit") -> ParameterDefinition:
    return ParameterDefinition(
        name="effect", default=default, allowed_values=["Audit", "Deny", "Disabled"]
    )


def _allowed(default: list[str] | None = None) -> ParameterDefinition:
    return ParameterDefinition(name="allowedValues", type=ParameterType.array, default=default)


# ── Definitions ───────────────────────────────────────────────


class TestParameterDefinition:
    def test_string_value_any_case(self):
        assert _effect().validate_value("deny") == "deny"
        assert _effect().validate_value("DISABLED") == "DISABLED"

    def test_value_outside_allowed(self):
        with pytest.raises(InvalidParameterValue):
            _effect().validate_value("Modify")

    def test_wrong_type(self):
        with pytest.raises(InvalidParameterValue):
            _effect().validate_value(["Audit"])
        with pytest.raises(InvalidParameterValue):
            _allowed().validate_value("dev")

    def test_array_becomes_tuple(self):
        assert _allowed().validate_value(["dev", "test"]) == ("dev", "test")

    def test_array_of_non_strings(self):
        with pytest.raises(InvalidParameterValue):
            _allowed().validate_value(["dev", 3])

    def test_invalid_default_is_rejected_at_declaration(self):
        with pytest.raises(InvalidParameterValue):
            _effect(default="Append")

    def test_has_default(self):
        assert _effect().has_default() is True
        assert _effect(default=None).has_default() is False

    def test_empty_array_default_counts_as_missing(self):
        assert _allowed(default=[]).has_default() is False
        assert _allowed(default=["dev"]).has_default() is True


# ── Resolution ────────────────────────────────────────────────


class TestResolveParameter:
    def test_assignment_wins(self):
        assert resolve_parameter(_effect(), assigned="Deny", initiative_default="Disabled") == "Deny"

    def test_initiative_default_beats_policy_default(self):
        assert resolve_parameter(_effect(), initiative_default="Disabled") == "Disabled"

    def test_policy_default(self):
        assert resolve_parameter(_effect()) == "Audit"

    def test_none_assignment_falls_through(self):
        assert resolve_parameter(_effect(), assigned=None) == "Audit"

    def test_missing_default(self):
        with pytest.raises(MissingDefault) as exc_info:
            resolve_parameter(_effect(default=None))
        assert exc_info.value.parameter == "effect"

    def test_empty_array_default_raises(self):
        with pytest.raises(MissingDefault):
            resolve_parameter(_allowed(default=[]))

    def test_empty_initiative_default_falls_through(self):
        assert resolve_parameter(_allowed(default=["dev"]), initiative_default=[]) == ("dev",)

    def test_explicit_empty_array_is_honoured(self):
        assert resolve_parameter(_allowed(default=["dev"]), assigned=[]) == ()

    def test_assigned_value_is_validated(self):
        with pytest.raises(InvalidParameterValue):
            resolve_parameter(_effect(), assigned="Nope")


class TestParameterResolver:
    def test_bind_all_definitions(self):
        resolver = ParameterResolver(
            {"effect": _effect(), "allowedValues": _allowed(default=["dev"])}
        )
        ctx = resolver.bind(assigned={"effect": "Deny"})
        assert ctx.values == {"effect": "Deny", "allowedValues": ("dev",)}

    def test_bind_with_initiative_defaults(self):
        resolver = ParameterResolver({"allowedValues": _allowed()})
        ctx = resolver.bind(initiative_defaults={"allowedValues": ["prod"]})
        assert ctx.get("allowedValues") == ("prod",)

    def test_undeclared_assignment(self):
        resolver = ParameterResolver({"effect": _effect()})
        with pytest.raises(UnboundParameter) as exc_info:
            resolver.bind(assigned={"colour": "blue"})
        assert exc_info.value.parameter == "colour"

    def test_missing_value_fails_the_bind(self):
        resolver = ParameterResolver({"effect": _effect(), "allowedValues": _allowed()})
        with pytest.raises(MissingDefault):
            resolver.bind()

    def test_definitions_are_copied(self):
        resolver = ParameterResolver({"effect": _effect()})
        resolver.definitions.clear()
        assert "effect" in resolver.definitions

    def test_resolve_reads_context(self):
        ctx = BindingContext(values={"effect": "Audit"})
        assert ParameterResolver.resolve("effect", ctx) == "Audit"


class TestBindingContext:
    def test_get_unbound(self):
        ctx = BindingContext(values={"effect": "Audit"})
        with pytest.raises(UnboundParameter):
            ctx.get("allowedValues")

    def test_contains(self):
        ctx = BindingContext(values={"effect": "Audit"})
        assert "effect" in ctx
        assert "allowedValues" not in ctx

    def test_frozen(self):
        ctx = BindingContext(values={"effect": "Audit"})
        with pytest.raises(ValidationError):
            ctx.values = {}
