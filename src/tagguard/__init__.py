"""
TagGuard - Tag Governance Policy Engine

Evaluates resource-tagging policies (required tags, allowed values,
inheritance from the resource group) over a cloud resource inventory.

Version: 0.1.0
"""

__version__ = "0.1.0"

# Inventory
from .inventory import Resource, Scope, Inventory

# Governance
from .governance import (
    Condition,
    ParameterDefinition,
    PolicyRule,
    Effect,
    Verdict,
    EvaluationResult,
    TagPatch,
    PatchConflict,
    Initiative,
    RuleReference,
    BoundInitiative,
    ComplianceEngine,
    ComplianceReport,
    ResourceReport,
    ComplianceScanner,
)

# Configuration
from .config import ScanSettings

# Exceptions
from .exceptions import (
    TagGuardError,
    PolicyDefinitionError,
    MalformedCondition,
    ParameterError,
    UnboundParameter,
    MissingDefault,
    InvalidParameterValue,
    InitiativeError,
    InventoryError,
)

__all__ = [
    # Version
    "__version__",

    # Inventory
    "Resource",
    "Scope",
    "Inventory",

    # Governance
    "Condition",
    "ParameterDefinition",
    "PolicyRule",
    "Effect",
    "Verdict",
    "EvaluationResult",
    "TagPatch",
    "PatchConflict",
    "Initiative",
    "RuleReference",
    "BoundInitiative",
    "ComplianceEngine",
    "ComplianceReport",
    "ResourceReport",
    "ComplianceScanner",

    # Configuration
    "ScanSettings",

    # Exceptions
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
