"""
Tag Inheritance

Computes and applies modify-effect patches: tags missing on a resource are
copied from its parent scope. Patch computation is read-only; application
runs once per resource, in rule declaration order, and the first rule to
patch a key wins.
"""

import logging
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..inventory import Resource, Scope

logger = logging.getLogger(__name__)


class TagPatch(BaseModel):
    """A single tag to merge into a resource."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str
    source_scope: Optional[str] = None
    rule_name: Optional[str] = None


class PatchConflict(BaseModel):
    """Two modify rules targeted the same key in one pass; the earlier one was kept."""

    resource_id: str
    key: str
    kept_rule: Optional[str] = None
    kept_value: str
    dropped_rule: Optional[str] = None
    dropped_value: str


class PatchOutcome(BaseModel):
    """Result of applying a pass of patches to one resource."""

    resource: Resource
    applied: list[TagPatch] = Field(default_factory=list)
    conflicts: list[PatchConflict] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.applied)


def compute_patches(
    tag_names: Iterable[str],
    resource: Resource,
    scope: Scope,
    rule_name: Optional[str] = None,
) -> list[TagPatch]:
    """
    Patches for every named tag that is absent on the resource but present on the scope.

    A tag missing on both sides yields nothing; inheritance never flags.
    """
    patches: list[TagPatch] = []
    seen: set[str] = set()
    for name in tag_names:
        if name in seen or name in resource.tags:
            continue
        seen.add(name)
        if name in scope.tags:
            patches.append(
                TagPatch(
                    key=name,
                    value=scope.tags[name],
                    source_scope=scope.id or None,
                    rule_name=rule_name,
                )
            )
    return patches


def apply_patches(resource: Resource, patch_sets: Iterable[list[TagPatch]]) -> PatchOutcome:
    """
    Merge patch sets into a resource in the order given.

    Keys already present on the resource are left alone, so applying the
    same patches twice changes nothing. A key patched by an earlier set is
    never overwritten by a later one; the clash is recorded and logged.
    """
    winners: dict[str, TagPatch] = {}
    conflicts: list[PatchConflict] = []

    for patches in patch_sets:
        for patch in patches:
            if patch.key in resource.tags:
                continue
            kept = winners.get(patch.key)
            if kept is not None:
                conflict = PatchConflict(
                    resource_id=resource.id,
                    key=patch.key,
                    kept_rule=kept.rule_name,
                    kept_value=kept.value,
                    dropped_rule=patch.rule_name,
                    dropped_value=patch.value,
                )
                logger.warning(
                    f"Patch conflict on {resource.id} tag '{patch.key}': "
                    f"keeping '{kept.rule_name}', dropping '{patch.rule_name}'"
                )
                conflicts.append(conflict)
                continue
            winners[patch.key] = patch

    applied = list(winners.values())
    patched = resource.with_tags({p.key: p.value for p in applied}) if applied else resource
    return PatchOutcome(resource=patched, applied=applied, conflicts=conflicts)
