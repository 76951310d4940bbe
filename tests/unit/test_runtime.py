# tests/unit/test_runtime.py
import json

import numpy as np
import pytest

from solvergen.runtime import (
    INTEGRATORS,
    euler, rk2, rk4, modified_euler, rk45,
    time_vector, load_parameters, seed_rng, load_unit,
)
from solvergen.compiler.options import FIXED_STEP_SOLVERS, ADAPTIVE_SOLVERS


def decay(t, X):
    return -X


# ---- time vector ----------------------------------------------------------------

def test_time_vector_stride_and_count():
    T = time_vector((0, 100), 0.01, 2)
    assert T.size == 5001
    assert np.isclose(T[1] - T[0], 0.02)
    assert T[0] == 0.0
    assert np.isclose(T[-1], 100.0)


def test_time_vector_end_not_reachable():
    T = time_vector((0.0, 1.0), 0.3)
    assert np.allclose(T, [0.0, 0.3, 0.6, 0.9])


def test_time_vector_offset_begin():
    T = time_vector((2.0, 3.0), 0.5)
    assert np.allclose(T, [2.0, 2.5, 3.0])


# ---- integrators ----------------------------------------------------------------

def test_registry_covers_all_solvers():
    assert set(INTEGRATORS) == set(FIXED_STEP_SOLVERS + ADAPTIVE_SOLVERS)


@pytest.mark.parametrize("solver,tol", [
    (euler, 2e-2),
    (rk2, 1e-3),
    (modified_euler, 1e-3),
    (rk4, 1e-7),
])
def test_fixed_step_against_analytic(solver, tol):
    T = time_vector((0.0, 1.0), 0.01)
    time, data = solver(decay, T, np.array([1.0]))
    assert data.shape == (1, T.size)
    assert np.array_equal(time, T)
    assert np.max(np.abs(data[0] - np.exp(-T))) < tol


def test_substeps_store_only_samples():
    T = time_vector((0.0, 1.0), 0.1, 2)
    time, data = euler(decay, T, [1.0], 2)
    assert data.shape == (1, 6)
    # two Euler steps of 0.1 between samples
    assert np.isclose(data[0, 1], 0.9 ** 2)


def test_substeps_validated():
    with pytest.raises(ValueError):
        euler(decay, [0.0, 1.0], [1.0], 0)


def test_vector_state_blocks():
    T = time_vector((0.0, 0.5), 0.1)
    _, data = rk4(lambda t, X: np.array([-X[0], -2.0 * X[1]]), T, [1.0, 1.0], 10)
    assert data.shape == (2, T.size)
    assert np.allclose(data[1], np.exp(-2 * T), atol=1e-6)


@pytest.mark.parametrize("name", ADAPTIVE_SOLVERS)
def test_adaptive_against_analytic(name):
    pytest.importorskip("scipy")
    T = time_vector((0.0, 1.0), 0.1)
    time, data = INTEGRATORS[name](decay, T, [1.0], rtol=1e-8, atol=1e-10)
    assert np.allclose(time, T)
    assert np.allclose(data[0], np.exp(-T), atol=1e-5)


def test_adaptive_failure_raises():
    pytest.importorskip("scipy")

    def blowup(t, X):
        return X ** 2

    with pytest.raises(RuntimeError, match="rk45"):
        rk45(blowup, np.linspace(0.0, 2.0, 5), [1.0])


# ---- support --------------------------------------------------------------------

def test_load_parameters_next_to_anchor(tmp_path):
    (tmp_path / "params.json").write_text(json.dumps({
        "tspan": [0.0, 1.0], "dt": 0.1, "ic": [1.0, 2.0], "opts": {"rtol": 1e-6},
    }))
    p = load_parameters(str(tmp_path / "solve_ode.py"), "params.json")
    assert p.tspan == (0.0, 1.0)
    assert p.dt == 0.1
    assert isinstance(p.ic, np.ndarray) and p.ic.dtype == np.float64
    assert p.opts == {"rtol": 1e-6}


def test_load_parameters_working_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "params.json").write_text(json.dumps({"dt": 0.2}))
    assert load_parameters(None).dt == 0.2


def test_seed_rng_reproducible():
    assert seed_rng(5) == 5
    a = np.random.random(3)
    seed_rng(5)
    assert np.array_equal(a, np.random.random(3))
    assert seed_rng("default") == 0
    assert 0 <= seed_rng("shuffle") < 2**32


def test_load_unit(tmp_path):
    (tmp_path / "my_unit.py").write_text("def my_unit(t, X):\n    return -X\n")
    fn = load_unit(str(tmp_path / "main.py"), "my_unit")
    assert fn(0.0, 3.0) == -3.0
