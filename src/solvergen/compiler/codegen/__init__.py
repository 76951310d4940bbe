# src/solvergen/compiler/codegen/__init__.py
from . import emitter, odefun, rewrite, solver

__all__ = ["emitter", "odefun", "rewrite", "solver"]
