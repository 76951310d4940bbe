# src/solvergen/runtime/__init__.py
"""Helpers imported by generated solver programs."""
from __future__ import annotations

from .integrators import (
    euler, rk2, rk4, modified_euler,
    rk45, rk23, dop853, radau, bdf, lsoda,
    INTEGRATORS,
)
from .support import time_vector, record_namespace, load_parameters, seed_rng, load_unit

__all__ = [
    "euler", "rk2", "rk4", "modified_euler",
    "rk45", "rk23", "dop853", "radau", "bdf", "lsoda",
    "INTEGRATORS",
    "time_vector", "record_namespace", "load_parameters", "seed_rng", "load_unit",
]
