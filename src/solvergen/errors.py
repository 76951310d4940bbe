# src/solvergen/errors.py
from __future__ import annotations
from typing import Iterable

__all__ = [
    "SolvergenError",
    "ConfigurationError",
    "ModelValidationError",
    "ElementMappingError",
    "ArtifactIOError",
    "ArtifactTimeoutError",
    "CompilationError",
    "ParameterCollisionWarning",
]


class SolvergenError(Exception):
    """Base error for the solvergen package."""


class ConfigurationError(SolvergenError):
    """Raised when a solver option is outside its allowed set."""
    def __init__(self, message: str):
        super().__init__(message)


class ModelValidationError(SolvergenError):
    """Raised when a model (TOML or dict) fails validation or parsing."""
    def __init__(self, message: str):
        super().__init__(message)


class ElementMappingError(SolvergenError):
    """Raised when the element-name list disagrees with a state variable's block."""
    def __init__(self, var: str, offset: int, count: int, found: Iterable[str]):
        self.var = var
        self.offset = offset
        self.count = count
        self.found = tuple(found)
        msg = f"Element mapping mismatch for state variable '{var}'\n"
        msg += f"Expected {count} slot(s) at offset {offset}\n"
        msg += f"Found: {list(self.found)}"
        super().__init__(msg)


class ArtifactIOError(SolvergenError, OSError):
    """Raised when a generated artifact cannot be opened or written."""
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot write artifact {path}: {reason}")


class ArtifactTimeoutError(ArtifactIOError, TimeoutError):
    """Raised when a written artifact does not become visible in time."""
    def __init__(self, path: str, timeout: float):
        self.timeout = timeout
        super().__init__(path, f"not visible after {timeout:g}s")


class CompilationError(SolvergenError):
    """Raised (or reported) when ahead-of-time compilation of the odefun unit fails."""
    def __init__(self, path: str, detail: str):
        self.path = path
        self.detail = detail
        msg = f"Compilation failed for {path}"
        if detail:
            msg += f"\n{detail}"
        super().__init__(msg)


class ParameterCollisionWarning(UserWarning):
    """A model parameter shadows a solver-config field in the parameter record."""
