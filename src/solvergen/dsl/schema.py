# src/solvergen/dsl/schema.py
from __future__ import annotations
from typing import Dict, Any

from solvergen.errors import ModelValidationError

__all__ = [
    "validate_tables",
    "validate_equation_targets",
]

_OPTIONAL_TABLES = ("model", "params", "fixed", "functions", "monitors", "solver")


def _require_table(doc: Dict[str, Any], key: str) -> None:
    if key not in doc or not isinstance(doc[key], dict):
        raise ModelValidationError(f"Missing required table [{key}]")


def validate_tables(doc: Dict[str, Any]) -> None:
    """Presence and shape checks for top-level tables.

    Required: [states], [equations]
    Optional: [model], [params], [fixed], [functions], [monitors], [solver]
    """
    if not isinstance(doc, dict):
        raise ModelValidationError("Model document must be a table")

    _require_table(doc, "states")
    if not doc["states"]:
        raise ModelValidationError("[states] must declare at least one state variable")

    _require_table(doc, "equations")

    for key in _OPTIONAL_TABLES:
        tbl = doc.get(key)
        if tbl is not None and not isinstance(tbl, dict):
            raise ModelValidationError(f"[{key}] must be a table if present")

    unknown = set(doc.keys()) - {"states", "equations", *_OPTIONAL_TABLES}
    if unknown:
        raise ModelValidationError(f"Unknown top-level tables: {sorted(unknown)}")


def validate_equation_targets(doc: Dict[str, Any]) -> None:
    """Every equation must target a declared state, and every state needs one."""
    states = set(doc["states"].keys())
    targets = set(doc["equations"].keys())

    unknown = targets - states
    if unknown:
        raise ModelValidationError(
            f"Equation targets must be declared in [states], unknown: {sorted(unknown)}"
        )
    missing = [s for s in doc["states"] if s not in targets]
    if missing:
        raise ModelValidationError(f"State variables without an equation: {missing}")
