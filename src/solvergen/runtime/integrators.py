# src/solvergen/runtime/integrators.py
"""
Integrators called by generated programs.

All share one calling convention::

    time, data = solver(odefun, T, y0, ...)

``odefun(t, X)`` returns dX/dt as a 1-D float64 array and ``data`` has one
row per state element and one column per sample of ``T``.

Fixed-step solvers take ``substeps`` (the downsample factor): that many
steps of size ``(T[k] - T[k-1]) / substeps`` are taken between samples and
only the sample points are stored. Adaptive solvers wrap
``scipy.integrate.solve_ivp`` and accept its ``rtol``, ``atol``,
``max_step`` and ``first_step`` options.
"""
from __future__ import annotations
from typing import Callable, Dict, Tuple

import numpy as np

__all__ = [
    "euler", "rk2", "rk4", "modified_euler",
    "rk45", "rk23", "dop853", "radau", "bdf", "lsoda",
    "INTEGRATORS",
]

OdeFun = Callable[[float, np.ndarray], np.ndarray]


# ---- fixed-step ----------------------------------------------------------------

def _euler_step(f: OdeFun, t: float, y: np.ndarray, h: float) -> np.ndarray:
    return y + h * f(t, y)


def _rk2_step(f: OdeFun, t: float, y: np.ndarray, h: float) -> np.ndarray:
    # explicit midpoint
    k1 = f(t, y)
    k2 = f(t + 0.5 * h, y + 0.5 * h * k1)
    return y + h * k2


def _modified_euler_step(f: OdeFun, t: float, y: np.ndarray, h: float) -> np.ndarray:
    # Heun: trapezoid with an Euler predictor
    k1 = f(t, y)
    k2 = f(t + h, y + h * k1)
    return y + 0.5 * h * (k1 + k2)


def _rk4_step(f: OdeFun, t: float, y: np.ndarray, h: float) -> np.ndarray:
    k1 = f(t, y)
    k2 = f(t + 0.5 * h, y + 0.5 * h * k1)
    k3 = f(t + 0.5 * h, y + 0.5 * h * k2)
    k4 = f(t + h, y + h * k3)
    return y + (h / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)


def _fixed_step(step: Callable, odefun: OdeFun, T, y0, substeps: int = 1) -> Tuple[np.ndarray, np.ndarray]:
    T = np.asarray(T, dtype=np.float64)
    y = np.array(y0, dtype=np.float64).ravel()
    substeps = int(substeps)
    if substeps < 1:
        raise ValueError(f"substeps must be >= 1, got {substeps}")
    data = np.empty((y.size, T.size), dtype=np.float64)
    if T.size == 0:
        return T, data
    data[:, 0] = y
    for k in range(1, T.size):
        t = T[k - 1]
        h = (T[k] - t) / substeps
        for _ in range(substeps):
            y = step(odefun, t, y, h)
            t += h
        data[:, k] = y
    return T, data


def euler(odefun: OdeFun, T, y0, substeps: int = 1):
    return _fixed_step(_euler_step, odefun, T, y0, substeps)


def rk2(odefun: OdeFun, T, y0, substeps: int = 1):
    return _fixed_step(_rk2_step, odefun, T, y0, substeps)


def rk4(odefun: OdeFun, T, y0, substeps: int = 1):
    return _fixed_step(_rk4_step, odefun, T, y0, substeps)


def modified_euler(odefun: OdeFun, T, y0, substeps: int = 1):
    return _fixed_step(_modified_euler_step, odefun, T, y0, substeps)


# ---- adaptive ------------------------------------------------------------------

def _adaptive(name: str, method: str) -> Callable:
    def integrate(odefun: OdeFun, T, y0, **options):
        from scipy.integrate import solve_ivp

        T = np.asarray(T, dtype=np.float64)
        y0 = np.array(y0, dtype=np.float64).ravel()
        if T.size < 2:
            return T, y0.reshape(-1, 1)[:, :T.size]
        sol = solve_ivp(odefun, (T[0], T[-1]), y0, method=method, t_eval=T, **options)
        if not sol.success:
            raise RuntimeError(f"{name} integration failed: {sol.message}")
        return sol.t, sol.y

    integrate.__name__ = name
    integrate.__qualname__ = name
    integrate.__doc__ = f"Adaptive integration with scipy's {method} method, sampled at ``T``."
    return integrate


rk45 = _adaptive("rk45", "RK45")
rk23 = _adaptive("rk23", "RK23")
dop853 = _adaptive("dop853", "DOP853")
radau = _adaptive("radau", "Radau")
bdf = _adaptive("bdf", "BDF")
lsoda = _adaptive("lsoda", "LSODA")


INTEGRATORS: Dict[str, Callable] = {
    "euler": euler,
    "rk2": rk2,
    "rk4": rk4,
    "modified_euler": modified_euler,
    "rk45": rk45,
    "rk23": rk23,
    "dop853": dop853,
    "radau": radau,
    "bdf": bdf,
    "lsoda": lsoda,
}
