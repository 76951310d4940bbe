# src/solvergen/dsl/spec.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Tuple, Dict, Any
import json
import hashlib

from solvergen.errors import ModelValidationError

__all__ = [
    "ModelSpec",
    "RESERVED_NAMES",
    "PROGRAM_LOCALS",
    "build_spec",
    "compute_spec_hash",
]

# Names the generated program and the rhs expression rely on
RESERVED_NAMES = frozenset({"t", "X", "np", "numpy", "p"})

# Locals of the generated solve_ode(); states/fixed/monitors/functions may not shadow them
PROGRAM_LOCALS = frozenset({
    "T", "time", "data", "dt", "tspan", "downsample_factor", "nsamp", "ic",
    "odefun", "solve_ode", "OUTPUTS",
    "load_parameters", "load_unit", "seed_rng", "time_vector",
    "euler", "rk2", "rk4", "modified_euler",
    "rk45", "rk23", "dop853", "radau", "bdf", "lsoda",
})


@dataclass(frozen=True)
class ModelSpec:
    """Normalized model: everything the generator reads, in declaration order.

    Transformations never mutate a spec; they build a new one with
    ``dataclasses.replace``.
    """
    label: str | None
    state_variables: Tuple[str, ...]           # ordered
    odes: Dict[str, str]                       # state -> rhs expression
    ics: Dict[str, str]                        # state -> initial-condition expression
    parameters: Dict[str, Any] = field(default_factory=dict)
    fixed_variables: Dict[str, str] = field(default_factory=dict)
    functions: Dict[str, str] = field(default_factory=dict)   # name -> "lambda ...: ..."
    monitors: Dict[str, str] = field(default_factory=dict)
    solver: Dict[str, Any] = field(default_factory=dict)      # [solver] defaults

    def output_names(self) -> Tuple[str, ...]:
        """Generated program outputs after T: states, then monitors, then fixed variables."""
        return (
            tuple(self.state_variables)
            + tuple(self.monitors.keys())
            + tuple(self.fixed_variables.keys())
        )


# ---- builders ----------------------------------------------------------------

def _check_identifiers(groups: Dict[str, Tuple[str, ...]]) -> None:
    seen: Dict[str, str] = {}
    for group, names in groups.items():
        for name in names:
            if not isinstance(name, str) or not name.isidentifier():
                raise ModelValidationError(f"{group} name {name!r} is not a valid identifier")
            if name in RESERVED_NAMES:
                raise ModelValidationError(f"{group} name {name!r} is reserved")
            if group != "parameter" and name in PROGRAM_LOCALS:
                raise ModelValidationError(
                    f"{group} name {name!r} is reserved by the generated program"
                )
            if name in seen:
                raise ModelValidationError(
                    f"Name {name!r} declared as both {seen[name]} and {group}"
                )
            seen[name] = group


def _check_expressions(normal: Dict[str, Any]) -> None:
    from solvergen.compiler.codegen.rewrite import parse_expr, lambda_args

    for table in ("odes", "ics", "fixed", "monitors"):
        for name, expr in normal[table].items():
            try:
                parse_expr(expr)
            except ModelValidationError as e:
                raise ModelValidationError(f"[{table}].{name}: {e}") from e
    for name, expr in normal["functions"].items():
        try:
            lambda_args(expr)
        except ModelValidationError as e:
            raise ModelValidationError(f"[functions].{name}: {e}") from e


def _check_dependencies(normal: Dict[str, Any]) -> None:
    """Fixed variables are evaluated before integration; equations never see monitors."""
    from solvergen.compiler.codegen.rewrite import free_names

    states = set(normal["states"])
    monitors = set(normal["monitors"])
    for name, expr in normal["fixed"].items():
        bad = free_names(expr) & (states | monitors)
        if bad:
            raise ModelValidationError(
                f"[fixed].{name} may not depend on state variables or monitors: {sorted(bad)}"
            )
    for name, expr in normal["odes"].items():
        bad = free_names(expr) & monitors
        if bad:
            raise ModelValidationError(
                f"[equations].{name} may not depend on monitors: {sorted(bad)}"
            )


def build_spec(normal: Dict[str, Any]) -> ModelSpec:
    states = tuple(normal["states"])
    params = dict(normal.get("params") or {})
    fixed = dict(normal.get("fixed") or {})
    functions = dict(normal.get("functions") or {})
    monitors = dict(normal.get("monitors") or {})

    _check_identifiers({
        "state variable": states,
        "parameter": tuple(params),
        "fixed variable": tuple(fixed),
        "function": tuple(functions),
        "monitor": tuple(monitors),
    })
    for s in states:
        if s not in normal["odes"]:
            raise ModelValidationError(f"State variable {s!r} has no equation")
        if s not in normal["ics"]:
            raise ModelValidationError(f"State variable {s!r} has no initial condition")
    checked = {
        "states": states,
        "odes": normal["odes"],
        "ics": normal["ics"],
        "fixed": fixed,
        "monitors": monitors,
        "functions": functions,
    }
    _check_expressions(checked)
    _check_dependencies(checked)

    return ModelSpec(
        label=(normal.get("model") or {}).get("label"),
        state_variables=states,
        odes={s: normal["odes"][s] for s in states},
        ics={s: normal["ics"][s] for s in states},
        parameters=params,
        fixed_variables=fixed,
        functions=functions,
        monitors=monitors,
        solver=dict(normal.get("solver") or {}),
    )


# ---- hashing -----------------------------------------------------------------

def _json_canon(spec: ModelSpec) -> str:
    payload = {
        "label": spec.label,
        "state_variables": list(spec.state_variables),
        "odes": spec.odes,
        "ics": spec.ics,
        "parameters": spec.parameters,
        "fixed_variables": spec.fixed_variables,
        "functions": spec.functions,
        "monitors": spec.monitors,
        "solver": spec.solver,
    }
    # keep declaration order: it is part of the output contract
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def compute_spec_hash(spec: ModelSpec) -> str:
    canon = _json_canon(spec)
    return hashlib.sha256(canon.encode("utf-8")).hexdigest()
