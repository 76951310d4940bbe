# src/solvergen/runtime/support.py
from __future__ import annotations
from pathlib import Path
from types import ModuleType, SimpleNamespace
from typing import Any, Callable, Mapping, Optional, Union
import importlib.util
import json
import sys

import numpy as np

__all__ = ["time_vector", "record_namespace", "load_parameters", "seed_rng", "load_unit"]

try:
    from numba import njit

    @njit(cache=False)
    def _seed_numba(seed):  # numba keeps its own generator state
        np.random.seed(seed)

    _NUMBA_OK = True
except Exception:
    _NUMBA_OK = False
    _seed_numba = None  # type: ignore


def time_vector(tspan, dt: float, downsample_factor: int = 1) -> np.ndarray:
    """Sample times from tspan[0] with stride ``downsample_factor * dt``.

    The end point is included when it is reachable within rounding.
    """
    begin, end = float(tspan[0]), float(tspan[1])
    stride = float(dt) * int(downsample_factor)
    if stride <= 0:
        raise ValueError(f"dt * downsample_factor must be positive, got {stride}")
    n = int(np.floor((end - begin) / stride + 1e-9)) + 1
    return begin + stride * np.arange(max(n, 1), dtype=np.float64)


def record_namespace(record: Mapping[str, Any]) -> SimpleNamespace:
    """Attribute view of a parameter record; number lists become float64 arrays."""
    values = {}
    for key, value in record.items():
        if key == "tspan":
            value = tuple(value)
        elif isinstance(value, list):
            value = np.asarray(value, dtype=np.float64)
        values[key] = value
    return SimpleNamespace(**values)


def _anchor_dir(anchor: Optional[Union[str, Path]]) -> Path:
    if anchor is None:
        return Path.cwd()
    return Path(anchor).resolve().parent


def load_parameters(anchor: Optional[Union[str, Path]], name: str = "params.json") -> SimpleNamespace:
    """Read the parameter record stored next to ``anchor`` (a module's ``__file__``).

    With ``anchor=None`` the record is looked up in the working directory.
    """
    path = _anchor_dir(anchor) / name
    with open(path, "r", encoding="utf-8") as f:
        return record_namespace(json.load(f))


def seed_rng(seed: Union[str, int]) -> int:
    """Seed numpy's global generator (and numba's, when available); return the seed used."""
    from solvergen.compiler.params import resolve_seed

    value = resolve_seed(seed)
    np.random.seed(value)
    if _NUMBA_OK:
        _seed_numba(value)
    return value


def load_unit(anchor: Union[str, Path], name: str) -> Callable:
    """Import the sibling module ``<name>.py`` of ``anchor`` and return its ``name`` attribute."""
    path = _anchor_dir(anchor) / f"{name}.py"
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load unit {name!r} from {path}")
    module: ModuleType = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)  # type: ignore[attr-defined]
    except Exception:
        sys.modules.pop(name, None)
        raise
    return getattr(module, name)
