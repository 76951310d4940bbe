# src/solvergen/compiler/codegen/emitter.py
from __future__ import annotations

__all__ = ["emit_inline_odefun", "emit_odefun_unit", "ODEFUN_SIGNATURE"]

# t is a float64 scalar, X a 1-D float64 state vector
ODEFUN_SIGNATURE = "float64[:](float64, float64[:])"


def emit_inline_odefun(expr: str, name: str = "odefun") -> str:
    """Module-level rhs placed after ``solve_ode``; it reads nothing but ``t`` and ``X``."""
    return "\n".join([
        "",
        "",
        f"def {name}(t, X):",
        f"    return {expr}",
        "",
    ])


def emit_odefun_unit(name: str, expr: str) -> str:
    """Standalone module holding the rhs as an eagerly compiled numba function.

    The expression text is the same string ``emit_inline_odefun`` receives.
    """
    return "\n".join([
        "# Auto-generated by solvergen.compiler.codegen.emitter (odefun unit)",
        "from __future__ import annotations",
        "",
        "import numpy as np",
        "from numba import njit",
        "",
        f"__all__ = [{name!r}]",
        "",
        "",
        f"@njit({ODEFUN_SIGNATURE!r}, cache=True)",
        f"def {name}(t, X):",
        "    assert len(np.shape(t)) == 0",
        "    assert X.ndim == 1",
        f"    return {expr}",
        "",
    ])
