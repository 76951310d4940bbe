# src/solvergen/compiler/codegen/solver.py
"""
Main-program emitter.

The generated module is assembled from named section builders, each
returning an independent block of text. ``emit_solver`` concatenates them
in this fixed order:

  1. signature           OUTPUTS tuple, ``def solve_ode():`` and its docstring
  2. parameters          parameter-record load, or inlined tspan/dt/downsample_factor
  3. time vector         T and nsamp
  4. fixed variables
  5. functions           only when function calls are kept
  6. initial conditions  ic and the single RNG seeding statement
  7. integration         one solver call
  8. state extraction    one ``name = data[a:b, :].T`` per state variable
  9. monitors
 10. return

Builders that have nothing to emit return an empty string and are skipped.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from solvergen.dsl.spec import ModelSpec
from solvergen.errors import ElementMappingError
from solvergen.compiler.options import SolverOptions
from .odefun import evaluate_ic

__all__ = [
    "ElementLayout",
    "element_layout",
    "emit_header",
    "emit_signature",
    "emit_parameters",
    "emit_time_vector",
    "emit_fixed_variables",
    "emit_functions",
    "emit_initial_conditions",
    "emit_integration",
    "emit_state_extraction",
    "emit_monitors",
    "emit_return",
    "emit_solver",
]

INDENT = "    "
INLINE_ODEFUN = "odefun"


@dataclass(frozen=True)
class ElementLayout:
    """Ordered (state variable, offset, element count) triples."""
    entries: Tuple[Tuple[str, int, int], ...]

    @property
    def size(self) -> int:
        if not self.entries:
            return 0
        _, offset, count = self.entries[-1]
        return offset + count


def element_layout(
    spec: ModelSpec,
    elem_names: Sequence[str],
    namespace: Dict[str, Any],
) -> ElementLayout:
    """Recompute each state's element count from its IC and check it against ``elem_names``."""
    entries: List[Tuple[str, int, int]] = []
    offset = 0
    for name in spec.state_variables:
        count = evaluate_ic(name, spec.ics[name], namespace).size
        found = tuple(elem_names[offset:offset + count])
        if len(found) != count or any(e != name for e in found):
            raise ElementMappingError(name, offset, count, found)
        entries.append((name, offset, count))
        offset += count
    if offset != len(elem_names):
        trailing = tuple(elem_names[offset:])
        raise ElementMappingError(trailing[0], offset, 0, trailing)
    return ElementLayout(tuple(entries))


# ---- helpers -----------------------------------------------------------------

def _section(title: str, lines: Iterable[str]) -> str:
    lines = list(lines)
    if not lines:
        return ""
    out = [f"{INDENT}# ---- {title} " + "-" * max(4, 60 - len(title))]
    out.extend(f"{INDENT}{line}" for line in lines)
    return "\n".join(out)


def _record_var(prefix: str) -> str:
    return prefix[:-1]


def _literal_seed(seed: Any) -> str:
    return repr(seed)


# ---- sections ----------------------------------------------------------------

def emit_header(
    options: SolverOptions,
    *,
    externalized: bool,
    label: Optional[str] = None,
    spec_hash: Optional[str] = None,
) -> str:
    names = [options.solver, "seed_rng", "time_vector"]
    if externalized:
        names.append("load_parameters")
    if options.separate_odefun:
        names.append("load_unit")
    lines = ["# Auto-generated by solvergen.compiler.codegen.solver"]
    if label:
        lines.append(f"# model: {label}")
    if spec_hash:
        lines.append(f"# spec hash: {spec_hash}")
    lines += [
        "from __future__ import annotations",
        "",
        "import numpy as np",
        "",
        f"from solvergen.runtime import {', '.join(sorted(names))}",
    ]
    return "\n".join(lines)


def emit_signature(spec: ModelSpec) -> str:
    outputs = ("T",) + spec.output_names()
    listing = ", ".join(outputs)
    return "\n".join([
        f"OUTPUTS = {outputs!r}",
        "",
        "",
        "def solve_ode():",
        f'{INDENT}"""Return [{listing}]."""',
    ])


def emit_parameters(
    options: SolverOptions,
    *,
    externalized: bool,
    prefix: str = "p.",
    record_name: str = "params.json",
) -> str:
    if externalized:
        var = _record_var(prefix)
        # stream targets have no file to anchor the record to
        anchor = "None" if options.is_stream_target else "__file__"
        lines = [
            f"{var} = load_parameters({anchor}, {record_name!r})",
            f"tspan = {prefix}tspan",
            f"dt = {prefix}dt",
            f"downsample_factor = {prefix}downsample_factor",
        ]
    else:
        lines = [
            f"tspan = ({float(options.tspan[0])!r}, {float(options.tspan[1])!r})",
            f"dt = {float(options.dt)!r}",
            f"downsample_factor = {int(options.downsample_factor)!r}",
        ]
    return _section("parameters", lines)


def emit_time_vector() -> str:
    return _section("time vector", [
        "T = time_vector(tspan, dt, downsample_factor)",
        "nsamp = T.size",
    ])


def emit_fixed_variables(spec: ModelSpec) -> str:
    return _section("fixed variables", [f"{name} = {expr}" for name, expr in spec.fixed_variables.items()])


def emit_functions(spec: ModelSpec, options: SolverOptions) -> str:
    if options.reduce_function_calls_flag:
        return ""
    return _section("functions", [f"{name} = {src}" for name, src in spec.functions.items()])


def emit_initial_conditions(
    options: SolverOptions,
    ic: Sequence[float],
    *,
    externalized: bool,
    prefix: str = "p.",
) -> str:
    if externalized:
        lines = [f"ic = {prefix}ic", f"seed_rng({prefix}random_seed)"]
    else:
        values = [float(v) for v in ic]
        lines = [f"ic = np.array({values!r})", f"seed_rng({_literal_seed(options.random_seed)})"]
    return _section("initial conditions", lines)


def emit_integration(
    options: SolverOptions,
    *,
    externalized: bool,
    unit_name: Optional[str] = None,
    prefix: str = "p.",
) -> str:
    lines: List[str] = []
    if options.separate_odefun:
        if not unit_name:
            raise ValueError("unit_name is required when the odefun is emitted separately")
        lines.append(f"{unit_name} = load_unit(__file__, {unit_name!r})")
        callee = unit_name
    else:
        callee = INLINE_ODEFUN

    args = [callee, "T", "ic"]
    if not options.is_adaptive:
        args.append("downsample_factor")
    elif options.adaptive_solver_options:
        if externalized:
            args.append(f"**{prefix}adaptive_solver_options")
        else:
            args += [f"{k}={float(v)!r}" for k, v in options.adaptive_solver_options.items()]
    lines.append(f"time, data = {options.solver}({', '.join(args)})")
    return _section("integration", lines)


def emit_state_extraction(layout: ElementLayout) -> str:
    return _section("state variables", [
        f"{name} = data[{offset}:{offset + count}, :].T" for name, offset, count in layout.entries
    ])


def emit_monitors(spec: ModelSpec) -> str:
    if not spec.monitors:
        return ""
    lines = ["t = T.reshape(-1, 1)"]
    lines += [f"{name} = {expr}" for name, expr in spec.monitors.items()]
    return _section("monitors", lines)


def emit_return(spec: ModelSpec) -> str:
    return f"{INDENT}return " + ", ".join(("T",) + spec.output_names())


def emit_solver(
    spec: ModelSpec,
    options: SolverOptions,
    *,
    ic: Sequence[float],
    layout: ElementLayout,
    externalized: bool,
    unit_name: Optional[str] = None,
    prefix: str = "p.",
    record_name: str = "params.json",
    spec_hash: Optional[str] = None,
) -> str:
    """Compose the main program (everything up to and including ``return``)."""
    head = emit_header(options, externalized=externalized, label=spec.label, spec_hash=spec_hash)
    body = [
        emit_parameters(options, externalized=externalized, prefix=prefix, record_name=record_name),
        emit_time_vector(),
        emit_fixed_variables(spec),
        emit_functions(spec, options),
        emit_initial_conditions(options, ic, externalized=externalized, prefix=prefix),
        emit_integration(options, externalized=externalized, unit_name=unit_name, prefix=prefix),
        emit_state_extraction(layout),
        emit_monitors(spec),
        emit_return(spec),
    ]
    text = f"{head}\n\n\n{emit_signature(spec)}\n"
    text += "\n\n".join(part for part in body if part)
    return text + "\n"
