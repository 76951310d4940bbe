# src/solvergen/__init__.py
from __future__ import annotations

from .compiler.build import GeneratedProgram, load_model, write_solver
from .compiler.options import SolverOptions, resolve_options
from .compiler.artifacts import STREAM
from .dsl.spec import ModelSpec
from .errors import (
    SolvergenError,
    ConfigurationError,
    ModelValidationError,
    ElementMappingError,
    ArtifactIOError,
    ArtifactTimeoutError,
    CompilationError,
    ParameterCollisionWarning,
)

__all__ = [
    # Entry points
    "write_solver", "load_model",
    # Types
    "GeneratedProgram", "SolverOptions", "resolve_options", "ModelSpec", "STREAM",
    # Errors
    "SolvergenError", "ConfigurationError", "ModelValidationError", "ElementMappingError",
    "ArtifactIOError", "ArtifactTimeoutError", "CompilationError", "ParameterCollisionWarning",
]
