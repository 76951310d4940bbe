# src/solvergen/compiler/params.py
"""
Parameter embedding.

Two strategies:

- substitute: parameter values are inlined as literals into every equation.
  The generated program is self-contained but has to be regenerated to
  change a value.
- externalize: every parameter reference becomes ``p.<name>`` and the values
  live in a JSON parameter record next to the generated program.

The record merges solver-configuration fields with model parameters. Fields
inserted later win on a name collision, so a model parameter named ``dt``
replaces the solver's ``dt``. Each collision is warned about
(``ParameterCollisionWarning``) before it is applied.

The odefun always carries parameter values as literals, so the record only
holds the model parameters the main program itself reads. Its keys are
exactly the ``p.<name>`` references of the main program.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union
from pathlib import Path
import ast
import contextlib
import json
import logging
import uuid
import warnings

import numpy as np

from solvergen.dsl.spec import ModelSpec
from solvergen.errors import ArtifactIOError, ConfigurationError, ParameterCollisionWarning
from solvergen.compiler.options import SolverOptions, check_record_field
from solvergen.compiler.codegen.rewrite import literal_node, parse_expr
from solvergen.compiler.transforms import rewrite_equations

__all__ = [
    "PARAMETER_PREFIX",
    "PARAMETER_FILENAME",
    "substitute_parameters",
    "externalize_parameters",
    "referenced_parameters",
    "solver_record",
    "merge_parameter_record",
    "resolve_seed",
    "write_parameter_record",
    "load_parameter_record",
]

logger = logging.getLogger(__name__)

PARAMETER_PREFIX = "p."
PARAMETER_FILENAME = "params.json"


def substitute_parameters(spec: ModelSpec) -> ModelSpec:
    """Inline every parameter value as a literal."""
    return rewrite_equations(spec, {name: literal_node(v) for name, v in spec.parameters.items()})


def _check_prefix(prefix: str) -> None:
    head = prefix[:-1]
    if not prefix.endswith(".") or not head.isidentifier():
        raise ConfigurationError(f"Parameter prefix must look like 'name.', got {prefix!r}")


def externalize_parameters(spec: ModelSpec, prefix: str = PARAMETER_PREFIX) -> ModelSpec:
    """Rewrite every parameter reference to ``prefix + name``."""
    _check_prefix(prefix)
    return rewrite_equations(spec, {name: f"{prefix}{name}" for name in spec.parameters})


def referenced_parameters(
    spec: ModelSpec,
    *,
    include_functions: bool = False,
    prefix: str = PARAMETER_PREFIX,
) -> List[str]:
    """Parameters an externalized ``spec`` reads as ``prefix + name`` in the main program.

    Only fixed variables, monitors and (when emitted) function definitions
    end up in the main program. ODEs are inlined into the odefun with
    literal values, and ICs are read from the record's ``ic`` field.
    """
    _check_prefix(prefix)
    var = prefix[:-1]
    exprs = list(spec.fixed_variables.values()) + list(spec.monitors.values())
    if include_functions:
        exprs += list(spec.functions.values())
    found = set()
    for expr in exprs:
        for node in ast.walk(parse_expr(expr)):
            if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name) and node.value.id == var:
                found.add(node.attr)
    return [name for name in spec.parameters if name in found]


def _jsonable(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, tuple):
        return [_jsonable(v) for v in value]
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


def solver_record(options: SolverOptions, ic: Sequence[float]) -> Dict[str, Any]:
    """Solver-configuration fields read by the generated program through the prefix."""
    record: Dict[str, Any] = {
        "tspan": [float(options.tspan[0]), float(options.tspan[1])],
        "dt": float(options.dt),
        "downsample_factor": int(options.downsample_factor),
        "random_seed": options.random_seed,
        "ic": _jsonable(np.asarray(ic, dtype=np.float64)),
    }
    if options.adaptive_solver_options:
        record["adaptive_solver_options"] = _jsonable(dict(options.adaptive_solver_options))
    return record


def merge_parameter_record(
    options: SolverOptions,
    parameters: Mapping[str, Any],
    ic: Sequence[float],
    referenced: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """Solver fields first, then model parameters; later fields win on collision.

    With ``referenced`` only those model parameters are recorded, apart from
    collisions, which always replace the solver field. A colliding value
    must be valid for the field it replaces.
    """
    record = solver_record(options, ic)
    keep = None if referenced is None else set(referenced)
    for name, value in parameters.items():
        if name in record:
            check_record_field(options, name, value)
            logger.warning("model parameter %r overrides solver field %r in the parameter record", name, name)
            warnings.warn(
                f"Model parameter {name!r} collides with solver field {name!r}; "
                f"the model value replaces it in the parameter record",
                ParameterCollisionWarning,
                stacklevel=2,
            )
        elif keep is not None and name not in keep:
            continue
        record[name] = _jsonable(value)
    return record


def resolve_seed(seed: Union[str, int], entropy: Optional[int] = None) -> int:
    """Turn a seed spec into one concrete 32-bit seed.

    ``"shuffle"`` draws from ``entropy`` (fresh OS entropy when None),
    ``"default"`` is 0 and integers pass through. The global RNG is not touched.
    """
    if isinstance(seed, bool):
        raise ConfigurationError(f"Invalid random_seed {seed!r}")
    if isinstance(seed, int):
        return seed
    if seed == "default":
        return 0
    if seed == "shuffle":
        if entropy is None:
            entropy = np.random.SeedSequence().entropy
        return int(entropy) % 2**32
    raise ConfigurationError(f"Invalid random_seed {seed!r}")


def write_parameter_record(record: Mapping[str, Any], path: Union[str, Path]) -> Path:
    """Write the record as JSON, fully replacing any previous file at ``path``."""
    path = Path(path)
    tmp_path = path.with_name(f".{path.name}.tmp-{uuid.uuid4().hex[:8]}")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            tmp_path.write_text(json.dumps(_jsonable(dict(record)), indent=2) + "\n", encoding="utf-8")
            tmp_path.replace(path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                tmp_path.unlink()
    except OSError as exc:
        raise ArtifactIOError(str(path), str(exc)) from exc
    return path


def load_parameter_record(path: Union[str, Path]) -> Dict[str, Any]:
    return json.loads(Path(path).read_text(encoding="utf-8"))
