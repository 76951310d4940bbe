# tests/integration/test_write_solver.py
"""
End-to-end generation.

Covers:
- literal parameters without a record (scenario A)
- parameter record next to the program (scenario B)
- separate, ahead-of-time compiled right-hand side (scenario C)
- byte-identical regeneration and the record/reference round trip
- running the generated program against dx/dt = -x
"""
from __future__ import annotations
import importlib.util
import io
import json
import re
import sys
import uuid
from pathlib import Path

import numpy as np
import pytest

from solvergen import STREAM, write_solver, load_model
from solvergen.errors import ConfigurationError, ParameterCollisionWarning

MODELS = Path(__file__).parent.parent / "data" / "models"


def run_program(path: Path):
    name = f"generated_{uuid.uuid4().hex[:8]}"
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
        return module, module.solve_ode()
    finally:
        sys.modules.pop(name, None)


def p_references(source: str):
    return set(re.findall(r"\bp\.([A-Za-z_]\w*)", source))


# ---- scenario A -----------------------------------------------------------------

def test_scenario_a_literals_without_record(tmp_path):
    target = tmp_path / "solve_ode.py"
    prog = write_solver(
        MODELS / "decay.toml",
        solver="euler",
        dt=0.1,
        tspan=[0, 1],
        save_parameters_flag=False,
        compile_flag=False,
        target=target,
        verbose_flag=False,
    )
    src = target.read_text()
    assert prog.path == target
    assert prog.source == src
    assert prog.parameter_record is None and prog.parameter_path is None
    assert not (tmp_path / "params.json").exists()
    assert "tspan = (0.0, 1.0)" in src
    assert "dt = 0.1" in src
    assert "load_parameters" not in src
    assert "x = data[0:1, :].T" in src
    assert "def odefun(t, X):" in src

    _, (T, x) = run_program(target)
    assert T.shape == (11,)
    assert x.shape == (11, 1)
    assert np.allclose(x[:, 0], 0.9 ** np.arange(11))


# ---- scenario B -----------------------------------------------------------------

def test_scenario_b_parameter_record(tmp_path):
    target = tmp_path / "solve_ode.py"
    prog = write_solver(
        MODELS / "decay.toml",
        solver="euler",
        dt=0.1,
        tspan=[0, 1],
        random_seed=11,
        compile_flag=False,
        target=target,
        verbose_flag=False,
    )
    record_path = tmp_path / "params.json"
    assert prog.parameter_path == record_path
    record = json.loads(record_path.read_text())
    assert list(record) == ["tspan", "dt", "downsample_factor", "random_seed", "ic"]
    assert record["ic"] == [1.0]
    src = target.read_text()
    assert "p = load_parameters(__file__, 'params.json')" in src
    assert "tspan = (0.0, 1.0)" not in src

    _, (T, x) = run_program(target)
    assert np.allclose(x[:, 0], 0.9 ** np.arange(11))


def test_record_values_feed_fixed_variables(tmp_path):
    target = tmp_path / "solve_ode.py"
    write_solver(MODELS / "vector.toml", compile_flag=False, target=target, verbose_flag=False)
    record_path = tmp_path / "params.json"
    record = json.loads(record_path.read_text())
    record["a"] = 3.0
    record_path.write_text(json.dumps(record))
    _, outputs = run_program(target)
    f1 = outputs[-1]
    assert f1 == 6.0


# ---- scenario C -----------------------------------------------------------------

def test_scenario_c_separate_compiled_unit(tmp_path):
    pytest.importorskip("numba")
    target = tmp_path / "solve_ode.py"
    prog = write_solver(
        MODELS / "decay.toml",
        solver="euler",
        dt=0.1,
        tspan=[0, 1],
        compile_flag=True,
        solver_type="native_separate",
        target=target,
        verbose_flag=False,
    )
    unit = tmp_path / "solve_ode_odefun.py"
    assert prog.odefun_path == unit
    main_src = target.read_text()
    unit_src = unit.read_text()
    assert "load_unit(__file__, 'solve_ode_odefun')" in main_src
    assert "def odefun(" not in main_src
    assert "float64[:](float64, float64[:])" in unit_src
    assert "assert len(np.shape(t)) == 0" in unit_src
    assert "assert X.ndim == 1" in unit_src
    # shuffle is resolved once and recorded as a concrete seed
    assert isinstance(prog.options.random_seed, int)
    assert prog.parameter_record["random_seed"] == prog.options.random_seed

    assert prog.compilation is not None
    assert prog.compilation.ok, prog.compilation.stderr
    prog.raise_for_compilation()

    _, (T, x) = run_program(target)
    assert np.allclose(x[:, 0], 0.9 ** np.arange(11))


def test_separate_unit_needs_file_target():
    pytest.importorskip("numba")
    with pytest.raises(ConfigurationError, match="file target"):
        write_solver(
            MODELS / "decay.toml",
            compile_flag=True,
            solver_type="native_separate",
            target=io.StringIO(),
            verbose_flag=False,
        )


# ---- properties -----------------------------------------------------------------

def test_literal_output_order(tmp_path):
    prog = write_solver(
        MODELS / "vector.toml", compile_flag=False, target=tmp_path / "solve_ode.py", verbose_flag=False,
    )
    assert '"""Return [T, v1, v2, m1, f1]."""' in prog.source
    assert "return T, v1, v2, m1, f1" in prog.source
    assert prog.elem_names == ("v1", "v1", "v2")


def test_idempotent_generation(tmp_path):
    kwargs = dict(compile_flag=False, random_seed=5, verbose_flag=False)
    first = write_solver(MODELS / "vector.toml", target=tmp_path / "a" / "solve_ode.py", **kwargs)
    second = write_solver(MODELS / "vector.toml", target=tmp_path / "b" / "solve_ode.py", **kwargs)
    assert first.source == second.source
    assert (tmp_path / "a" / "solve_ode.py").read_bytes() == (tmp_path / "b" / "solve_ode.py").read_bytes()
    assert (tmp_path / "a" / "params.json").read_bytes() == (tmp_path / "b" / "params.json").read_bytes()


def test_record_round_trip_matches_references(tmp_path):
    prog = write_solver(
        MODELS / "vector.toml", compile_flag=False, target=tmp_path / "solve_ode.py", verbose_flag=False,
    )
    record = json.loads(prog.parameter_path.read_text())
    assert set(record) == p_references(prog.source)


def test_record_round_trip_with_rhs_only_parameter(tmp_path, caplog):
    caplog.set_level("INFO", logger="solvergen")
    prog = write_solver(MODELS / "decay.toml", compile_flag=False, target=tmp_path / "solve_ode.py")
    record = json.loads(prog.parameter_path.read_text())
    assert set(record) == p_references(prog.source)
    assert "k" not in record
    assert "inlined as literals: k" in caplog.text


def test_record_keeps_function_parameters_when_calls_are_kept(tmp_path):
    prog = write_solver(
        "inline:\n"
        "[states]\nx = 1.0\n"
        "[params]\nc = 2.0\n"
        "[functions]\nshift = \"lambda u: u + c\"\n"
        "[monitors]\nm = \"shift(x)\"\n"
        "[equations]\nx = \"-x\"\n",
        reduce_function_calls_flag=False,
        compile_flag=False,
        target=tmp_path / "solve_ode.py",
        verbose_flag=False,
    )
    record = json.loads(prog.parameter_path.read_text())
    assert record["c"] == 2.0
    assert set(record) == p_references(prog.source)


def test_invalid_collision_is_rejected(tmp_path):
    model = "inline:\n[states]\nx = 1.0\n[params]\ndownsample_factor = 2.5\n[equations]\nx = \"-x\"\n"
    with pytest.raises(ConfigurationError, match="downsample_factor"):
        write_solver(model, compile_flag=False, target=tmp_path / "solve_ode.py", verbose_flag=False)
    assert not (tmp_path / "params.json").exists()


def test_round_trip_with_adaptive_options(tmp_path):
    pytest.importorskip("scipy")
    prog = write_solver(
        MODELS / "vector.toml",
        solver="rk45",
        adaptive_solver_options={"rtol": 1e-8, "atol": 1e-10},
        compile_flag=False,
        target=tmp_path / "solve_ode.py",
        verbose_flag=False,
    )
    record = json.loads(prog.parameter_path.read_text())
    assert set(record) == p_references(prog.source)
    _, (T, v1, v2, m1, f1) = run_program(tmp_path / "solve_ode.py")
    # v1' = -2 v1 + w, elementwise
    w = np.array([0.1, 0.2])
    expected = w / 2 + (np.array([1.0, 2.0]) - w / 2) * np.exp(-2 * T[:, None])
    assert np.allclose(v1, expected, atol=1e-6)


def test_generated_program_outputs(tmp_path):
    target = tmp_path / "solve_ode.py"
    write_solver(
        MODELS / "vector.toml", solver="rk4", compile_flag=False, target=target, verbose_flag=False,
    )
    module, (T, v1, v2, m1, f1) = run_program(target)
    assert module.OUTPUTS == ("T", "v1", "v2", "m1", "f1")
    assert T.shape == (101,)
    assert v1.shape == (101, 2)
    assert v2.shape == (101, 1)
    assert f1 == 4.0
    assert np.allclose(m1, v2 ** 2 + 4.0 * 0.1)
    # v2' = -v2 + 0.16  ->  v2 = 0.16 + (0.5 - 0.16) exp(-t)
    assert np.allclose(v2[:, 0], 0.16 + 0.34 * np.exp(-T), atol=1e-8)


def test_keep_function_calls_in_monitors(tmp_path):
    target = tmp_path / "solve_ode.py"
    prog = write_solver(
        MODELS / "vector.toml",
        reduce_function_calls_flag=False,
        save_parameters_flag=False,
        compile_flag=False,
        target=target,
        verbose_flag=False,
    )
    assert "sq = lambda u: u ** 2" in prog.source
    assert "m1 = sq(v2)" in prog.source
    _, (T, v1, v2, m1, f1) = run_program(target)
    assert np.allclose(m1, v2 ** 2 + f1 * 0.1)


def test_initial_condition_override(tmp_path):
    target = tmp_path / "solve_ode.py"
    prog = write_solver(
        MODELS / "vector.toml", ic=[0.0, 0.0, 1.0], compile_flag=False, target=target, verbose_flag=False,
    )
    assert prog.parameter_record["ic"] == [0.0, 0.0, 1.0]
    with pytest.raises(ConfigurationError, match="state element"):
        write_solver(MODELS / "vector.toml", ic=[1.0], compile_flag=False, target=target, verbose_flag=False)


def test_parameter_collision_warns_and_model_wins(tmp_path):
    target = tmp_path / "solve_ode.py"
    with pytest.warns(ParameterCollisionWarning, match="dt"):
        prog = write_solver(
            MODELS / "collide.toml", dt=0.01, tspan=[0, 1], compile_flag=False, target=target, verbose_flag=False,
        )
    assert prog.parameter_record["dt"] == 0.5
    T, x, scaled = run_program(target)[1]
    # the model's dt replaced the solver step
    assert np.allclose(np.diff(T), 0.5)


def test_stream_target(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    buf = io.StringIO()
    prog = write_solver(MODELS / "decay.toml", compile_flag=False, target=buf, verbose_flag=False)
    assert prog.path is STREAM
    assert buf.getvalue() == prog.source
    assert not buf.closed
    assert prog.parameter_path == tmp_path / "params.json"
    assert "load_parameters(None, 'params.json')" in prog.source


def test_inline_model_and_spec_inputs(tmp_path):
    inline = """inline:
        [states]
        x = 2.0
        [equations]
        x = "-x"
    """
    spec = load_model(inline)
    assert spec.ics == {"x": "2.0"}
    a = write_solver(inline, compile_flag=False, target=tmp_path / "a.py", verbose_flag=False, random_seed=1)
    b = write_solver(spec, compile_flag=False, target=tmp_path / "b.py", verbose_flag=False, random_seed=1)
    assert a.source == b.source


def test_model_not_mutated(tmp_path):
    spec = load_model(MODELS / "vector.toml")
    before = (dict(spec.odes), dict(spec.monitors), dict(spec.fixed_variables), dict(spec.parameters))
    write_solver(spec, compile_flag=False, target=tmp_path / "solve_ode.py", verbose_flag=False)
    assert (spec.odes, spec.monitors, spec.fixed_variables, spec.parameters) == before


def test_verbose_logs_stages(tmp_path, caplog):
    caplog.set_level("INFO", logger="solvergen")
    write_solver(MODELS / "decay.toml", compile_flag=False, target=tmp_path / "solve_ode.py")
    text = caplog.text
    for stage in ("Validated", "FunctionBuilt", "ParametersResolved", "MainEmitted", "OdefunEmitted", "Finalized"):
        assert f"[{stage}]" in text


def test_quiet_logs_nothing(tmp_path, caplog):
    caplog.set_level("INFO", logger="solvergen")
    write_solver(MODELS / "decay.toml", compile_flag=False, target=tmp_path / "solve_ode.py", verbose_flag=False)
    assert "[Validated]" not in caplog.text
