"""
Definition Loading

Loads rules, initiatives and assignments from YAML or JSON files. A rules
file may hold a single rule, a list of rules, or a mapping with a ``rules``
key; Azure Policy definitions are converted on the way in.
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .arm import is_arm_definition, rule_from_arm
from .initiative import Initiative
from .rules import PolicyRule
from ..exceptions import PolicyDefinitionError

logger = logging.getLogger(__name__)

SUFFIXES = (".yaml", ".yml", ".json")


def read_document(path: str | Path) -> Any:
    """Parse a YAML or JSON file by its suffix."""
    path = Path(path)
    with open(path, "r") as f:
        try:
            if path.suffix == ".json":
                return json.load(f)
            return yaml.safe_load(f)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise PolicyDefinitionError(f"Cannot parse {path}: {e}") from e


def rules_from_document(data: Any) -> list[PolicyRule]:
    if isinstance(data, dict) and "rules" in data:
        data = data["rules"]
    items = data if isinstance(data, list) else [data]

    rules = []
    for item in items:
        if not isinstance(item, dict):
            raise PolicyDefinitionError(f"Rule entry must be a mapping, got {item!r}")
        try:
            if is_arm_definition(item):
                rules.append(rule_from_arm(item))
            else:
                rules.append(PolicyRule.from_dict(item))
        except ValidationError as e:
            raise PolicyDefinitionError(f"Invalid rule {item.get('name', '<unnamed>')!r}: {e}") from e
    return rules


def load_rules(path: str | Path) -> list[PolicyRule]:
    """Load rules from a file, or from every YAML/JSON file in a directory."""
    path = Path(path)
    if path.is_dir():
        rules: list[PolicyRule] = []
        for file in sorted(p for p in path.iterdir() if p.suffix in SUFFIXES):
            rules.extend(rules_from_document(read_document(file)))
    else:
        rules = rules_from_document(read_document(path))

    names = [r.name for r in rules]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise PolicyDefinitionError(f"Duplicate rule names: {', '.join(duplicates)}")

    logger.debug(f"Loaded {len(rules)} rules from {path}")
    return rules


def load_initiative(path: str | Path) -> Initiative:
    """Load an initiative from a YAML or JSON file."""
    data = read_document(path)
    if not isinstance(data, dict):
        raise PolicyDefinitionError(f"Initiative document {path} must be a mapping")
    try:
        return Initiative(**data)
    except ValidationError as e:
        raise PolicyDefinitionError(f"Invalid initiative in {path}: {e}") from e


def load_assignment(path: str | Path) -> dict[str, Any]:
    """
    Load assignment parameter values.

    Accepts ``{"parameters": {...}}`` or a bare mapping; values may be
    wrapped as ``{"value": ...}`` the way deployment parameter files write them.
    """
    data = read_document(path) or {}
    if not isinstance(data, dict):
        raise PolicyDefinitionError(f"Assignment document {path} must be a mapping")
    values = data.get("parameters", data)
    if not isinstance(values, dict):
        raise PolicyDefinitionError(f"Assignment parameters in {path} must be a mapping")
    return {
        name: value["value"] if isinstance(value, dict) and "value" in value else value
        for name, value in values.items()
    }
