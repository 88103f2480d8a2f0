"""
Resource Inventory

Immutable snapshots of resources and their parent scopes (resource groups).
An inventory is supplied by an external collector; the engine only reads it.
"""

from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import json
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator

from .exceptions import InventoryError


class _Tagged(BaseModel):
    """Base for snapshots whose tag map is read-only."""

    model_config = ConfigDict(frozen=True)

    tags: Mapping[str, str] = Field(default_factory=dict, validate_default=True)

    @field_validator("tags", mode="after")
    @classmethod
    def _freeze_tags(cls, value: Mapping[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(value))

    @field_serializer("tags")
    def _serialize_tags(self, value: Mapping[str, str]) -> dict[str, str]:
        return dict(value)


class Scope(_Tagged):
    """A parent scope (resource group) used as the source for tag inheritance."""

    id: str = Field(..., description="Scope identifier")


class Resource(_Tagged):
    """
    A resource snapshot.

    Snapshots are frozen: applying a tag patch produces a new Resource
    via ``with_tags`` rather than mutating this one.
    """

    id: str = Field(..., description="Resource identifier")
    scope_id: Optional[str] = Field(None, description="Parent scope identifier")

    # Descriptive only, never evaluated
    type: Optional[str] = Field(None)
    location: Optional[str] = Field(None)

    def with_tags(self, updates: dict[str, str]) -> "Resource":
        """Return a copy of this resource with ``updates`` merged into its tags."""
        merged = dict(self.tags)
        merged.update(updates)
        return self.model_validate({**self.model_dump(), "tags": merged})


class Inventory(BaseModel):
    """Resources together with the scopes they belong to."""

    resources: list[Resource] = Field(default_factory=list)
    scopes: dict[str, Scope] = Field(default_factory=dict)

    def scope_for(self, resource: Resource) -> Scope:
        """Return the parent scope of a resource, or an empty scope if unknown."""
        if resource.scope_id and resource.scope_id in self.scopes:
            return self.scopes[resource.scope_id]
        return Scope(id=resource.scope_id or "", tags={})

    def add_scope(self, scope: Scope) -> None:
        self.scopes[scope.id] = scope

    def add_resource(self, resource: Resource) -> None:
        self.resources.append(resource)

    def __len__(self) -> int:
        return len(self.resources)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Inventory":
        """
        Build an inventory from a document.

        Scopes may be given as a list of ``{id, tags}`` objects or as a
        mapping of scope id to tag map.
        """
        if not isinstance(data, dict):
            raise InventoryError("Inventory document must be a mapping")

        raw_scopes = data.get("scopes") or {}
        try:
            if isinstance(raw_scopes, dict):
                scopes = {
                    scope_id: Scope(id=scope_id, tags=tags or {})
                    for scope_id, tags in raw_scopes.items()
                }
            elif isinstance(raw_scopes, list):
                scopes = {}
                for item in raw_scopes:
                    scope = Scope(**item)
                    scopes[scope.id] = scope
            else:
                raise InventoryError("'scopes' must be a list or a mapping")

            resources = [Resource(**item) for item in data.get("resources") or []]
        except (TypeError, ValidationError) as e:
            raise InventoryError(f"Invalid inventory document: {e}") from e

        return cls(resources=resources, scopes=scopes)

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "Inventory":
        """Load an inventory from YAML."""
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise InventoryError(f"Invalid inventory YAML: {e}") from e
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, json_content: str) -> "Inventory":
        """Load an inventory from JSON."""
        try:
            data = json.loads(json_content)
        except json.JSONDecodeError as e:
            raise InventoryError(f"Invalid inventory JSON: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: str | Path) -> "Inventory":
        """Load an inventory from a ``.json``, ``.yaml`` or ``.yml`` file."""
        path = Path(path)
        content = path.read_text()
        if path.suffix == ".json":
            return cls.from_json(content)
        return cls.from_yaml(content)
