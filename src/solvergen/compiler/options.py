# src/solvergen/compiler/options.py
"""
Typed solver options.

All keyword options accepted by ``write_solver`` land in a frozen
``SolverOptions`` record that is validated once, at entry. Values outside
their allowed set raise ``ConfigurationError``; nothing is coerced.
"""
from __future__ import annotations
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple, Union
from pathlib import Path
import math

import numpy as np

from solvergen.errors import ConfigurationError

__all__ = [
    "FIXED_STEP_SOLVERS",
    "ADAPTIVE_SOLVERS",
    "SOLVER_TYPES",
    "SEED_SPECS",
    "ADAPTIVE_OPTION_KEYS",
    "SolverOptions",
    "resolve_options",
    "check_record_field",
]

FIXED_STEP_SOLVERS = ("euler", "rk2", "rk4", "modified_euler")
ADAPTIVE_SOLVERS = ("rk45", "rk23", "dop853", "radau", "bdf", "lsoda")
SOLVER_TYPES = ("native", "native_separate")
SEED_SPECS = ("shuffle", "default")
ADAPTIVE_OPTION_KEYS = ("rtol", "atol", "max_step", "first_step")

Target = Union[str, Path, Any, None]


@dataclass(frozen=True)
class SolverOptions:
    ic: Optional[Tuple[float, ...]] = None
    tspan: Tuple[float, float] = (0.0, 100.0)
    dt: float = 0.01
    downsample_factor: int = 1
    random_seed: Union[str, int] = "shuffle"
    solver: str = "euler"
    solver_type: str = "native"
    adaptive_solver_options: Optional[Dict[str, float]] = None
    reduce_function_calls_flag: bool = True
    save_parameters_flag: bool = True
    target: Target = None
    compile_flag: Optional[bool] = None   # None -> capability-detected
    verbose_flag: bool = True

    @property
    def is_adaptive(self) -> bool:
        return self.solver in ADAPTIVE_SOLVERS

    @property
    def separate_odefun(self) -> bool:
        """True when the rhs goes to its own unit for ahead-of-time compilation."""
        return bool(self.compile_flag) and self.solver_type == "native_separate"

    @property
    def is_stream_target(self) -> bool:
        return self.target is None or hasattr(self.target, "write")

    def validate(self) -> "SolverOptions":
        _check_tspan(self.tspan)
        _check_positive_number("dt", self.dt)
        if isinstance(self.downsample_factor, bool) or not isinstance(self.downsample_factor, int) \
                or self.downsample_factor < 1:
            raise ConfigurationError(
                f"downsample_factor must be a positive integer, got {self.downsample_factor!r}"
            )
        _check_seed(self.random_seed)
        if self.solver not in FIXED_STEP_SOLVERS + ADAPTIVE_SOLVERS:
            raise ConfigurationError(
                f"Unknown solver {self.solver!r}; choose one of "
                f"{list(FIXED_STEP_SOLVERS + ADAPTIVE_SOLVERS)}"
            )
        if self.solver_type not in SOLVER_TYPES:
            raise ConfigurationError(
                f"solver_type must be one of {list(SOLVER_TYPES)}, got {self.solver_type!r}"
            )
        _check_adaptive_options(self.adaptive_solver_options, self.solver)
        for flag in ("reduce_function_calls_flag", "save_parameters_flag", "verbose_flag", "compile_flag"):
            value = getattr(self, flag)
            if not isinstance(value, bool):
                raise ConfigurationError(f"{flag} must be a bool, got {value!r}")
        if self.ic is not None:
            if len(self.ic) == 0 or not all(_is_number(v) for v in self.ic):
                raise ConfigurationError("ic must be a non-empty sequence of numbers")
        if self.target is not None and not isinstance(self.target, (str, Path)) \
                and not hasattr(self.target, "write"):
            raise ConfigurationError(
                f"target must be a file path or an open text stream, got {type(self.target).__name__}"
            )
        if isinstance(self.target, (str, Path)):
            stem = Path(self.target).stem
            if not stem.isidentifier():
                raise ConfigurationError(
                    f"target file name {Path(self.target).name!r} must be a valid Python module name"
                )
        if self.compile_flag:
            from solvergen.compiler.jit.compile import numba_available
            if not numba_available():
                raise ConfigurationError("compile_flag=True requires numba to be installed")
        if self.separate_odefun and self.is_stream_target:
            raise ConfigurationError(
                "solver_type='native_separate' with compile_flag=True requires a file target"
            )
        return self


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _check_positive_number(name: str, value: Any) -> None:
    if not _is_number(value) or not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive number, got {value!r}")


def _check_tspan(tspan: Any) -> None:
    if not isinstance(tspan, (tuple, list)) or len(tspan) != 2 or not all(_is_number(v) for v in tspan):
        raise ConfigurationError(f"tspan must be [begin, end], got {tspan!r}")
    if not tspan[1] > tspan[0]:
        raise ConfigurationError(f"tspan end must be greater than begin, got {tspan!r}")


def _check_seed(seed: Any) -> None:
    if isinstance(seed, str):
        if seed not in SEED_SPECS:
            raise ConfigurationError(
                f"random_seed string must be one of {list(SEED_SPECS)}, got {seed!r}"
            )
        return
    if isinstance(seed, bool) or not isinstance(seed, int) or not 0 <= seed < 2**32:
        raise ConfigurationError(
            f"random_seed must be 'shuffle', 'default' or an integer in [0, 2**32), got {seed!r}"
        )


def _check_adaptive_options(opts: Any, solver: str) -> None:
    if opts is None:
        return
    if not isinstance(opts, dict):
        raise ConfigurationError("adaptive_solver_options must be a dict")
    if solver not in ADAPTIVE_SOLVERS:
        raise ConfigurationError(
            f"adaptive_solver_options only apply to adaptive solvers, not {solver!r}"
        )
    unknown = set(opts) - set(ADAPTIVE_OPTION_KEYS)
    if unknown:
        raise ConfigurationError(
            f"Unknown adaptive_solver_options keys {sorted(unknown)}; allowed: {list(ADAPTIVE_OPTION_KEYS)}"
        )
    for key, value in opts.items():
        _check_positive_number(f"adaptive_solver_options[{key!r}]", value)


def _normalize(key: str, value: Any) -> Any:
    if key == "tspan" and isinstance(value, list):
        return tuple(value)
    if key == "ic" and value is not None:
        try:
            return tuple(np.asarray(value, dtype=float).ravel().tolist())
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"ic must be numeric: {e}") from e
    if key == "adaptive_solver_options" and value is not None and isinstance(value, Mapping):
        return dict(value)
    return value


def resolve_options(
    overrides: Mapping[str, Any] | None = None,
    *,
    model_defaults: Mapping[str, Any] | None = None,
) -> SolverOptions:
    """Build validated options: explicit overrides > model [solver] table > defaults."""
    known = {f.name for f in fields(SolverOptions)}
    merged: Dict[str, Any] = {}
    for source, values in (("[solver]", model_defaults or {}), ("option", overrides or {})):
        unknown = set(values) - known
        if unknown:
            raise ConfigurationError(f"Unknown {source} keys: {sorted(unknown)}")
        for key, value in values.items():
            merged[key] = _normalize(key, value)

    opts = SolverOptions(**merged)
    if opts.compile_flag is None:
        from solvergen.compiler.jit.compile import numba_available
        opts = replace(opts, compile_flag=numba_available())
    return opts.validate()


def check_record_field(options: SolverOptions, name: str, value: Any) -> None:
    """Validate ``value`` as a replacement for the solver field ``name``."""
    try:
        replace(options, **{name: _normalize(name, value)}).validate()
    except ConfigurationError as e:
        raise ConfigurationError(
            f"Model parameter {name!r} cannot replace solver field {name!r}: {e}"
        ) from e
