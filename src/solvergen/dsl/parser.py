# src/solvergen/dsl/parser.py
from __future__ import annotations
from typing import Dict, Any, List

from solvergen.errors import ModelValidationError
from .schema import validate_tables, validate_equation_targets

__all__ = [
    "parse_model",
    "ic_to_expr",
]


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def ic_to_expr(value: Any) -> str:
    """Render an initial condition from TOML as an expression string.

    Numbers become literals, lists become ``np.array([...])``; strings are
    kept as-is and evaluated later.
    """
    if isinstance(value, str):
        return value
    if _is_number(value):
        return repr(float(value))
    if isinstance(value, list) and value and all(_is_number(v) for v in value):
        return "np.array([" + ", ".join(repr(float(v)) for v in value) + "])"
    raise ModelValidationError(
        f"Initial condition must be a number, a list of numbers or a string expression, got {value!r}"
    )


def _read_params(tbl: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name, val in tbl.items():
        if _is_number(val):
            out[name] = val
        elif isinstance(val, list) and val and all(_is_number(v) for v in val):
            out[name] = list(val)
        else:
            raise ModelValidationError(
                f"[params].{name} must be a number or a list of numbers, got {type(val).__name__}"
            )
    return out


def _read_exprs(tbl: Dict[str, Any], table: str) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for name, val in tbl.items():
        if not isinstance(val, str):
            raise ModelValidationError(f"[{table}].{name} must be a string expression")
        out[name] = val
    return out


def _read_solver(tbl: Dict[str, Any]) -> Dict[str, Any]:
    # option values are validated by SolverOptions; only keep plain data here
    out: Dict[str, Any] = {}
    for key, val in tbl.items():
        if isinstance(val, list):
            val = list(val)
        out[key] = val
    return out


def parse_model(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Parse a model TOML dict into a normalized model dict (no codegen).

    Returns keys:
      model, states, ics, odes, params, fixed, functions, monitors, solver
    """
    validate_tables(doc)
    validate_equation_targets(doc)

    model = dict(doc.get("model") or {})
    label = model.get("label")
    if label is not None and not isinstance(label, str):
        raise ModelValidationError("[model].label must be a string if present")

    # Declaration order of [states] is the state-vector order
    states: List[str] = list(doc["states"].keys())
    ics = {name: ic_to_expr(doc["states"][name]) for name in states}
    odes = _read_exprs(doc["equations"], "equations")

    return {
        "model": {"label": label},
        "states": states,
        "ics": ics,
        "odes": {name: odes[name] for name in states},
        "params": _read_params(doc.get("params") or {}),
        "fixed": _read_exprs(doc.get("fixed") or {}, "fixed"),
        "functions": _read_exprs(doc.get("functions") or {}, "functions"),
        "monitors": _read_exprs(doc.get("monitors") or {}, "monitors"),
        "solver": _read_solver(doc.get("solver") or {}),
    }
