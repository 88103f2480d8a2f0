"""
Parameters

Declared rule parameters, assignment-time binding, and the immutable
binding context handed down to evaluation.

Resolution order for a parameter value:
    explicit assignment binding > initiative-level default > policy-level default
"""

from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..exceptions import InvalidParameterValue, MissingDefault, UnboundParameter


class ParameterType(str, Enum):
    """Declared parameter types."""

    string = "string"
    array = "array"


class ParameterDefinition(BaseModel):
    """A parameter declared by a policy rule or an initiative."""

    name: str = Field(..., description="Parameter name")
    type: ParameterType = Field(default=ParameterType.string)
    default: Optional[Any] = Field(None, description="Default value, if any")
    allowed_values: Optional[list[str]] = Field(
        None, description="Permitted values (each element, for arrays)"
    )
    description: Optional[str] = Field(None)

    @model_validator(mode="after")
    def _check_default(self) -> "ParameterDefinition":
        if self.default is not None:
            self.validate_value(self.default)
        return self

    def has_default(self) -> bool:
        """True when the default can stand in for an assignment. Empty arrays cannot."""
        if self.default is None:
            return False
        if self.type == ParameterType.array and len(self.default) == 0:
            return False
        return True

    def validate_value(self, value: Any) -> Any:
        """
        Check a value against the declared type and allowed values.

        Returns the value in its immutable form (arrays become tuples).
        Allowed-value matching is case-insensitive.
        """
        allowed = (
            {v.lower() for v in self.allowed_values}
            if self.allowed_values is not None
            else None
        )

        if self.type == ParameterType.string:
            if not isinstance(value, str):
                raise InvalidParameterValue(
                    f"Parameter '{self.name}' expects a string, got {type(value).__name__}"
                )
            if allowed is not None and value.lower() not in allowed:
                raise InvalidParameterValue(
                    f"Parameter '{self.name}' value {value!r} not in {self.allowed_values}"
                )
            return value

        if not isinstance(value, (list, tuple)):
            raise InvalidParameterValue(
                f"Parameter '{self.name}' expects an array, got {type(value).__name__}"
            )
        for item in value:
            if not isinstance(item, str):
                raise InvalidParameterValue(
                    f"Parameter '{self.name}' expects an array of strings, got {item!r}"
                )
            if allowed is not None and item.lower() not in allowed:
                raise InvalidParameterValue(
                    f"Parameter '{self.name}' element {item!r} not in {self.allowed_values}"
                )
        return tuple(value)


class BindingContext(BaseModel):
    """Resolved parameter values for one rule. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    values: dict[str, Any] = Field(default_factory=dict)

    def get(self, name: str) -> Any:
        """Return the bound value for ``name``; raise UnboundParameter if absent."""
        if name not in self.values:
            raise UnboundParameter(name)
        return self.values[name]

    def __contains__(self, name: object) -> bool:
        return name in self.values


_UNSET = object()


def resolve_parameter(
    definition: ParameterDefinition,
    assigned: Any = _UNSET,
    initiative_default: Any = _UNSET,
) -> Any:
    """
    Resolve one parameter by precedence and validate the winner.

    ``assigned`` is an explicit assignment-time value (an explicit empty
    array is honoured). ``initiative_default`` is the default of the
    initiative parameter mapped onto this one; an empty array there is
    treated as absent, like any other default.
    """
    if assigned is not _UNSET and assigned is not None:
        return definition.validate_value(assigned)

    if initiative_default is not _UNSET and initiative_default is not None:
        if not (
            definition.type == ParameterType.array and len(initiative_default) == 0
        ):
            return definition.validate_value(initiative_default)

    if definition.has_default():
        return definition.validate_value(definition.default)

    raise MissingDefault(definition.name)


class ParameterResolver:
    """
    Binds a rule's declared parameters into a BindingContext.

    Binding happens once, when an initiative is constructed, so a missing
    value fails the whole configuration up front rather than part-way
    through a scan.
    """

    def __init__(self, definitions: Mapping[str, ParameterDefinition]) -> None:
        self._definitions = dict(definitions)

    @property
    def definitions(self) -> dict[str, ParameterDefinition]:
        return dict(self._definitions)

    def bind(
        self,
        assigned: Optional[Mapping[str, Any]] = None,
        initiative_defaults: Optional[Mapping[str, Any]] = None,
    ) -> BindingContext:
        assigned = assigned or {}
        initiative_defaults = initiative_defaults or {}

        for name in assigned:
            if name not in self._definitions:
                raise UnboundParameter(name, f"Value supplied for undeclared parameter '{name}'")

        values = {}
        for name, definition in self._definitions.items():
            values[name] = resolve_parameter(
                definition,
                assigned.get(name, _UNSET),
                initiative_defaults.get(name, _UNSET),
            )
        return BindingContext(values=values)

    @staticmethod
    def resolve(name: str, context: BindingContext) -> Any:
        """Look up a bound value during evaluation."""
        return context.get(name)
