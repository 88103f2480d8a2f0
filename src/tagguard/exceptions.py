# Copyright (c) TagGuard Contributors. All rights reserved.
# Licensed under the MIT License.
"""Centralized exception hierarchy for TagGuard.

All TagGuard exceptions inherit from TagGuardError, so callers can catch
every engine failure with a single handler while the scanner still reports
each kind separately.
"""


class TagGuardError(Exception):
    """Base exception for all TagGuard errors."""

    kind = "error"


class PolicyDefinitionError(TagGuardError):
    """A policy rule or condition tree is structurally invalid."""

    kind = "policy_definition"


class MalformedCondition(PolicyDefinitionError):
    """A condition tree is invalid: bad field key, missing operand, or a cycle."""

    kind = "malformed_condition"


class ParameterError(TagGuardError):
    """Errors related to parameter declaration, binding, or resolution."""

    kind = "parameter"


class UnboundParameter(ParameterError):
    """A condition or binding refers to a parameter that has no value."""

    kind = "unbound_parameter"

    def __init__(self, name: str, message: str | None = None) -> None:
        self.parameter = name
        super().__init__(message or f"Parameter '{name}' is not bound")


class MissingDefault(ParameterError):
    """A declared parameter has neither a default nor an assigned value."""

    kind = "missing_default"

    def __init__(self, name: str, message: str | None = None) -> None:
        self.parameter = name
        super().__init__(
            message or f"Parameter '{name}' has no default and no assigned value"
        )


class InvalidParameterValue(ParameterError):
    """A parameter value does not match its declared type or allowed values."""

    kind = "invalid_parameter_value"


class InitiativeError(TagGuardError):
    """An initiative references unknown rules or undeclared parameters."""

    kind = "initiative"


class InventoryError(TagGuardError):
    """A resource inventory document is malformed."""

    kind = "inventory"


__all__ = [
    "TagGuardError",
    "PolicyDefinitionError",
    "MalformedCondition",
    "ParameterError",
    "UnboundParameter",
    "MissingDefault",
    "InvalidParameterValue",
    "InitiativeError",
    "InventoryError",
]
