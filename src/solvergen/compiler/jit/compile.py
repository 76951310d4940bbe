# src/solvergen/compiler/jit/compile.py
"""
Ahead-of-time compilation of a separately emitted odefun unit.

The unit carries an explicit numba signature, so importing it compiles the
function eagerly and, with ``cache=True``, writes numba's on-disk cache into
the unit's ``__pycache__``. The import runs in a child interpreter; the
written sources are left untouched whatever the outcome.
"""
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
import logging
import subprocess
import sys
import textwrap
import warnings

from solvergen.errors import CompilationError

__all__ = ["CompilationResult", "compile_odefun_unit", "numba_available"]

logger = logging.getLogger(__name__)

try:
    import numba  # noqa: F401
    _NUMBA_OK = True
except Exception:
    _NUMBA_OK = False

_COMPILE_SCRIPT = textwrap.dedent(
    """
    import importlib.util
    import sys

    path, name = sys.argv[1], sys.argv[2]
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    fn = getattr(module, name)
    if not getattr(fn, "signatures", None):
        raise SystemExit(f"{name} was imported but not compiled")
    print(len(fn.signatures))
    """
).strip()


def numba_available() -> bool:
    return _NUMBA_OK


@dataclass(frozen=True)
class CompilationResult:
    ok: bool
    source_path: Path
    artifact_path: Optional[Path] = None   # numba index file in __pycache__, when found
    returncode: Optional[int] = None
    stderr: str = ""
    error: Optional[CompilationError] = None


def _find_cache_index(path: Path, function_name: str) -> Optional[Path]:
    cache_dir = path.parent / "__pycache__"
    if not cache_dir.is_dir():
        return None
    hits = sorted(cache_dir.glob(f"{path.stem}.{function_name}-*.nbi"))
    return hits[0] if hits else None


def _failed(path: Path, detail: str, *, returncode: Optional[int] = None, stderr: str = "") -> CompilationResult:
    error = CompilationError(str(path), detail)
    logger.warning("compilation of %s failed: %s", path, detail)
    warnings.warn(str(error), RuntimeWarning, stacklevel=3)
    return CompilationResult(
        ok=False,
        source_path=path,
        returncode=returncode,
        stderr=stderr,
        error=error,
    )


def compile_odefun_unit(
    path: Union[str, Path],
    function_name: str,
    *,
    timeout: float = 300.0,
) -> CompilationResult:
    """Compile ``function_name`` in the unit at ``path`` in a subprocess.

    Failures never raise here: they come back as ``result.error`` and are
    also emitted as a ``RuntimeWarning``.
    """
    path = Path(path).resolve()
    if not _NUMBA_OK:
        return _failed(path, "numba is not installed")
    cmd = [sys.executable, "-c", _COMPILE_SCRIPT, str(path), function_name]
    logger.info("compiling %s:%s", path.name, function_name)
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(path.parent),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return _failed(path, f"compiler did not finish within {timeout:g}s")
    except OSError as exc:
        return _failed(path, f"cannot start compiler: {exc}")

    if proc.returncode != 0:
        detail = proc.stderr.strip() or proc.stdout.strip() or f"exit status {proc.returncode}"
        return _failed(path, detail, returncode=proc.returncode, stderr=proc.stderr)

    return CompilationResult(
        ok=True,
        source_path=path,
        artifact_path=_find_cache_index(path, function_name),
        returncode=proc.returncode,
        stderr=proc.stderr,
    )
