# src/solvergen/compiler/codegen/odefun.py
"""
Right-hand-side builder.

Collapses a model's equations into one expression over ``t`` and the flat
state vector ``X``, together with the initial-condition vector and the
element-name list (one state-variable name per slot of ``X``).
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple
import ast
import builtins

import numpy as np

from solvergen.dsl.spec import ModelSpec
from solvergen.errors import ModelValidationError
from solvergen.runtime.support import record_namespace
from .rewrite import sanitize_expr, literal_node, replace_names, inline_functions, parse_expr

__all__ = ["OdeFunction", "build_odefun", "evaluation_namespace", "evaluate_ic"]

_SAFE_BUILTINS = {
    name: getattr(builtins, name)
    for name in ("abs", "min", "max", "round", "len", "range", "sum", "float", "int")
}


@dataclass(frozen=True)
class OdeFunction:
    expr: str                      # rhs over (t, X); identical text for inline and separate units
    ic: np.ndarray                 # flat float64 initial-condition vector
    elem_names: Tuple[str, ...]    # len(elem_names) == len(ic)


def evaluation_namespace(
    spec: ModelSpec,
    *,
    record: Optional[Mapping[str, Any]] = None,
    prefix: str = "p.",
) -> Dict[str, Any]:
    """Names visible to initial-condition expressions: numpy, parameters, functions.

    With ``record`` the parameter record is also bound under the prefix
    (``p`` for ``"p."``), so externalized expressions evaluate as well.
    """
    ns: Dict[str, Any] = {"__builtins__": _SAFE_BUILTINS, "np": np, "numpy": np}
    for name, value in spec.parameters.items():
        ns[name] = np.asarray(value, dtype=np.float64) if isinstance(value, list) else value
    if record is not None:
        ns[prefix.rstrip(".")] = record_namespace(record)
    for name, src in spec.functions.items():
        try:
            ns[name] = eval(compile(sanitize_expr(src), f"<function:{name}>", "eval"), ns)
        except Exception as e:
            raise ModelValidationError(f"Cannot evaluate function {name!r}: {e}") from e
    return ns


def evaluate_ic(name: str, expr: str, namespace: Dict[str, Any]) -> np.ndarray:
    """Evaluate one initial-condition expression to a flat float64 vector."""
    try:
        value = eval(compile(sanitize_expr(expr), f"<ic:{name}>", "eval"), dict(namespace))
        arr = np.atleast_1d(np.asarray(value, dtype=np.float64)).ravel()
    except Exception as e:
        raise ModelValidationError(
            f"Cannot evaluate initial condition of {name!r} ({expr!r}): {e}"
        ) from e
    if arr.size == 0:
        raise ModelValidationError(f"Initial condition of {name!r} is empty")
    return arr


def _resolved_fixed(spec: ModelSpec, param_subs: Dict[str, Any]) -> Dict[str, str]:
    # each fixed variable may use parameters and earlier fixed variables
    resolved: Dict[str, str] = {}
    for name, expr in spec.fixed_variables.items():
        expr = inline_functions(expr, spec.functions)
        resolved[name] = replace_names(expr, {**param_subs, **resolved})
    return resolved


def build_odefun(spec: ModelSpec) -> OdeFunction:
    """Return the single rhs expression, IC vector and element names for ``spec``."""
    param_subs = {name: literal_node(v) for name, v in spec.parameters.items()}
    fixed = _resolved_fixed(spec, param_subs)
    namespace = evaluation_namespace(spec)

    ic_blocks: List[np.ndarray] = []
    elem_names: List[str] = []
    sizes: List[int] = []
    state_subs: Dict[str, str] = {}
    offset = 0
    for s in spec.state_variables:
        ic_s = evaluate_ic(s, spec.ics[s], namespace)
        n = ic_s.size
        state_subs[s] = f"X[{offset}:{offset + n}]"
        ic_blocks.append(ic_s)
        elem_names.extend([s] * n)
        sizes.append(n)
        offset += n

    subs = {**param_subs, **fixed, **state_subs}
    blocks: List[str] = []
    for s, n in zip(spec.state_variables, sizes):
        rhs = replace_names(inline_functions(spec.odes[s], spec.functions), subs)
        # broadcast scalar right-hand sides to the block length
        blocks.append(f"np.zeros({n}) + ({rhs})")
    expr = "np.concatenate((" + ", ".join(blocks) + ",))"

    return OdeFunction(
        expr=_canonical(expr),
        ic=np.concatenate(ic_blocks),
        elem_names=tuple(elem_names),
    )


def _canonical(expr: str) -> str:
    return ast.unparse(parse_expr(expr))
