# src/solvergen/compiler/build.py
from __future__ import annotations
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union
import logging
import textwrap

import numpy as np

from solvergen.dsl.spec import ModelSpec, build_spec, compute_spec_hash
from solvergen.dsl.parser import parse_model
from solvergen.errors import ConfigurationError, ModelValidationError
from solvergen.compiler.options import SolverOptions, resolve_options
from solvergen.compiler.transforms import propagate_functions
from solvergen.compiler.params import (
    PARAMETER_FILENAME,
    PARAMETER_PREFIX,
    externalize_parameters,
    merge_parameter_record,
    referenced_parameters,
    resolve_seed,
    substitute_parameters,
    write_parameter_record,
)
from solvergen.compiler.codegen.odefun import build_odefun, evaluation_namespace
from solvergen.compiler.codegen.solver import element_layout, emit_solver
from solvergen.compiler.codegen.emitter import emit_inline_odefun, emit_odefun_unit
from solvergen.compiler.artifacts import STREAM, wait_for_visibility, write_artifact
from solvergen.compiler.jit.compile import CompilationResult, compile_odefun_unit

__all__ = ["GeneratedProgram", "load_model", "write_solver"]

logger = logging.getLogger(__name__)

ModelSource = Union[ModelSpec, Mapping[str, Any], str, Path]


@dataclass(frozen=True)
class GeneratedProgram:
    """Everything one ``write_solver`` call produced."""
    path: Any                                   # main artifact Path, or STREAM
    source: str
    options: SolverOptions
    elem_names: Tuple[str, ...]
    parameter_record: Optional[Dict[str, Any]] = None
    parameter_path: Optional[Path] = None
    odefun_path: Optional[Path] = None
    odefun_source: Optional[str] = None
    compilation: Optional[CompilationResult] = None

    @property
    def compiled(self) -> bool:
        return self.compilation is not None and self.compilation.ok

    def raise_for_compilation(self) -> None:
        if self.compilation is not None and self.compilation.error is not None:
            raise self.compilation.error


# ---- model loading -------------------------------------------------------------

def _load_toml(text: Optional[str] = None, path: Optional[Path] = None) -> Dict[str, Any]:
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # Python < 3.11

    try:
        if path is not None:
            with open(path, "rb") as f:
                return tomllib.load(f)
        return tomllib.loads(text or "")
    except OSError as e:
        raise ModelValidationError(f"Failed to load model from {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        where = path if path is not None else "inline model"
        raise ModelValidationError(f"Failed to parse {where}: {e}") from e


def load_model(source: ModelSource) -> ModelSpec:
    """Load a model from a TOML path, an ``inline:`` TOML string, a TOML dict or a spec.

    Inline forms:
        "inline: [states]\\nx = 1.0\\n..."
        "inline:\\n    [states]\\n    x = 1.0\\n..."
    """
    if isinstance(source, ModelSpec):
        return source
    if isinstance(source, Mapping):
        return build_spec(parse_model(dict(source)))
    if isinstance(source, str) and source.strip().startswith("inline:"):
        body = source.strip()[len("inline:"):]
        doc = _load_toml(text=textwrap.dedent(body.lstrip(" ")).strip())
        return build_spec(parse_model(doc))
    path = Path(source)
    if not path.is_file():
        raise ModelValidationError(f"Model file not found: {path}")
    return build_spec(parse_model(_load_toml(path=path)))


# ---- generation ----------------------------------------------------------------

def _stage(opts: SolverOptions, stage: str, msg: str = "", *args: Any) -> None:
    if opts.verbose_flag:
        logger.info("[%s] " + msg, stage, *args)


def _record_path(opts: SolverOptions) -> Path:
    if opts.is_stream_target:
        return Path.cwd() / PARAMETER_FILENAME
    return Path(opts.target).parent / PARAMETER_FILENAME


def _resolve_ic(opts: SolverOptions, model_ic: np.ndarray) -> np.ndarray:
    if opts.ic is None:
        return model_ic
    ic = np.asarray(opts.ic, dtype=np.float64)
    if ic.size != model_ic.size:
        raise ConfigurationError(
            f"ic has {ic.size} value(s) but the model has {model_ic.size} state element(s)"
        )
    return ic


def write_solver(model: ModelSource, **options: Any) -> GeneratedProgram:
    """Generate a standalone solver program for ``model``.

    Keyword options are those of ``SolverOptions``; they override the model's
    ``[solver]`` table, which overrides the defaults.

    Stages: Validated -> FunctionBuilt -> ParametersResolved -> MainEmitted
    -> OdefunEmitted -> Finalized (-> Compiled).
    """
    spec = load_model(model)
    opts = resolve_options(options, model_defaults=spec.solver)
    _stage(opts, "Validated", "%d state variable(s), solver=%s", len(spec.state_variables), opts.solver)

    odefun = build_odefun(spec)
    ic = _resolve_ic(opts, odefun.ic)
    _stage(opts, "FunctionBuilt", "%d state element(s)", len(odefun.elem_names))

    if opts.separate_odefun and isinstance(opts.random_seed, str):
        opts = replace(opts, random_seed=resolve_seed(opts.random_seed))
    work = propagate_functions(spec, monitors=opts.reduce_function_calls_flag)
    externalized = opts.save_parameters_flag
    record: Optional[Dict[str, Any]] = None
    record_path: Optional[Path] = None
    if externalized:
        work = externalize_parameters(work, PARAMETER_PREFIX)
        used = referenced_parameters(
            work, include_functions=not opts.reduce_function_calls_flag, prefix=PARAMETER_PREFIX,
        )
        record = merge_parameter_record(opts, spec.parameters, ic, referenced=used)
        inlined = [name for name in spec.parameters if name not in record]
        if inlined:
            _stage(
                opts, "ParametersResolved",
                "not read by the main program, inlined as literals: %s", ", ".join(inlined),
            )
        # IC expressions may read any parameter through the prefix
        full = dict(record)
        full.update((name, spec.parameters[name]) for name in inlined)
        namespace = evaluation_namespace(work, record=full, prefix=PARAMETER_PREFIX)
    else:
        work = substitute_parameters(work)
        namespace = evaluation_namespace(work)
    layout = element_layout(work, odefun.elem_names, namespace)
    if record is not None:
        record_path = write_parameter_record(record, _record_path(opts))
        _stage(opts, "ParametersResolved", "parameter record written to %s", record_path)
    else:
        _stage(opts, "ParametersResolved", "parameters inlined as literals")

    unit_name: Optional[str] = None
    unit_path: Optional[Path] = None
    if opts.separate_odefun:
        target = Path(opts.target)
        unit_name = f"{target.stem}_odefun"
        unit_path = target.parent / f"{unit_name}.py"
    source = emit_solver(
        work,
        opts,
        ic=ic,
        layout=layout,
        externalized=externalized,
        unit_name=unit_name,
        prefix=PARAMETER_PREFIX,
        record_name=PARAMETER_FILENAME,
        spec_hash=compute_spec_hash(spec),
    )
    _stage(opts, "MainEmitted")

    odefun_source: Optional[str] = None
    if unit_name is not None:
        odefun_source = emit_odefun_unit(unit_name, odefun.expr)
    else:
        source += emit_inline_odefun(odefun.expr)
    path = write_artifact(opts.target, source)
    if unit_path is not None:
        write_artifact(unit_path, odefun_source)
    _stage(opts, "OdefunEmitted", "%s", unit_path if unit_path is not None else "inline")

    if path is not STREAM:
        wait_for_visibility(path)
    if unit_path is not None:
        wait_for_visibility(unit_path)
    _stage(opts, "Finalized", "%s", "<stream>" if path is STREAM else path)

    compilation: Optional[CompilationResult] = None
    if unit_path is not None:
        compilation = compile_odefun_unit(unit_path, unit_name)
        if compilation.ok:
            _stage(opts, "Compiled", "%s", compilation.artifact_path or unit_path)

    return GeneratedProgram(
        path=path,
        source=source,
        options=opts,
        elem_names=odefun.elem_names,
        parameter_record=record,
        parameter_path=record_path,
        odefun_path=unit_path,
        odefun_source=odefun_source,
        compilation=compilation,
    )
