"""Tests for tag inheritance: patch computation, first-wins merging, and idempotence."""

import logging

from tagguard.governance.inheritance import TagPatch, apply_patches, compute_patches
from tagguard.inventory import Resource, Scope


RG = Scope(id="rg-app", tags={"Environment": "staging", "Owner": "platform", "CostCenter": "cc-42"})


def _resource(**tags) -> Resource:
    return Resource(id="vm1", tags=tags, scope_id=RG.id)


def _patch(key: str, value: str, rule: str) -> TagPatch:
    return TagPatch(key=key, value=value, source_scope=RG.id, rule_name=rule)


class TestComputePatches:
    def test_missing_tags_come_from_scope(self):
        patches = compute_patches(["Environment", "Owner"], _resource(), RG, rule_name="inherit")
        assert [(p.key, p.value) for p in patches] == [
            ("Environment", "staging"),
            ("Owner", "platform"),
        ]
        assert all(p.rule_name == "inherit" for p in patches)

    def test_present_tags_are_not_overwritten(self):
        patches = compute_patches(["Environment"], _resource(Environment="dev"), RG)
        assert patches == []

    def test_missing_on_scope(self):
        assert compute_patches(["Team"], _resource(), RG) == []

    def test_duplicate_names(self):
        patches = compute_patches(["Owner", "Owner"], _resource(), RG)
        assert len(patches) == 1

    def test_resource_is_not_mutated(self):
        resource = _resource()
        compute_patches(["Environment"], resource, RG)
        assert resource.tags == {}


class TestApplyPatches:
    def test_merge(self):
        outcome = apply_patches(_resource(Owner="alice"), [[_patch("Environment", "staging", "a")]])
        assert outcome.resource.tags == {"Owner": "alice", "Environment": "staging"}
        assert outcome.changed
        assert outcome.conflicts == []

    def test_original_snapshot_is_untouched(self):
        resource = _resource()
        apply_patches(resource, [[_patch("Environment", "staging", "a")]])
        assert resource.tags == {}

    def test_first_rule_wins(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tagguard.governance.inheritance"):
            outcome = apply_patches(
                _resource(),
                [
                    [_patch("Environment", "staging", "first")],
                    [_patch("Environment", "production", "second")],
                ],
            )
        assert outcome.resource.tags == {"Environment": "staging"}
        assert [p.rule_name for p in outcome.applied] == ["first"]
        conflict = outcome.conflicts[0]
        assert (conflict.key, conflict.kept_rule, conflict.dropped_rule) == (
            "Environment",
            "first",
            "second",
        )
        assert conflict.dropped_value == "production"
        assert "Patch conflict" in caplog.text

    def test_existing_key_wins_over_patch(self):
        outcome = apply_patches(_resource(Environment="dev"), [[_patch("Environment", "staging", "a")]])
        assert outcome.resource.tags == {"Environment": "dev"}
        assert not outcome.changed

    def test_no_patches(self):
        resource = _resource(Owner="alice")
        outcome = apply_patches(resource, [])
        assert outcome.resource is resource
        assert not outcome.changed

    def test_reapplying_is_a_no_op(self):
        patches = compute_patches(["Environment", "Owner", "CostCenter"], _resource(), RG)
        once = apply_patches(_resource(), [patches])
        twice = apply_patches(once.resource, [patches])
        assert twice.resource.tags == once.resource.tags
        assert twice.applied == []
        assert compute_patches(["Environment", "Owner", "CostCenter"], once.resource, RG) == []
