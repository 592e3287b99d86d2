"""Static analysis: source model, whole-program index, rules and engine."""

from .source_model import (
    ScanUnit,
    SourceModel,
    SourceParser,
    FunctionDef,
    StructDef,
    FieldDef,
    ModuleDef,
    detect_language,
    mask_source,
)
from .index import ProgramIndex
from .engine import RuleEngine, EngineResult
from .discovery import discover_units, discover_fuzz_harnesses, iter_source_files
from .rules import Rule, RULE_CLASSES, builtin_rules, create_rule, get_rule_class

__all__ = [
    "ScanUnit",
    "SourceModel",
    "SourceParser",
    "FunctionDef",
    "StructDef",
    "FieldDef",
    "ModuleDef",
    "detect_language",
    "mask_source",
    "ProgramIndex",
    "RuleEngine",
    "EngineResult",
    "discover_units",
    "discover_fuzz_harnesses",
    "iter_source_files",
    "Rule",
    "RULE_CLASSES",
    "builtin_rules",
    "create_rule",
    "get_rule_class",
]
