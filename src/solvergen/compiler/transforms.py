# src/solvergen/compiler/transforms.py
from __future__ import annotations
from dataclasses import replace
from typing import Mapping

from solvergen.dsl.spec import ModelSpec
from solvergen.compiler.codegen.rewrite import Replacement, replace_names, inline_functions

__all__ = ["rewrite_equations", "propagate_functions"]


def rewrite_equations(spec: ModelSpec, subs: Mapping[str, Replacement]) -> ModelSpec:
    """Apply one name substitution to every equation string of ``spec``.

    Covers equations, initial conditions, fixed variables, monitors and the
    bodies of functions (their own arguments shadow ``subs``).
    """
    def rw(table: Mapping[str, str]):
        return {k: replace_names(v, subs) for k, v in table.items()}

    return replace(
        spec,
        odes=rw(spec.odes),
        ics=rw(spec.ics),
        fixed_variables=rw(spec.fixed_variables),
        functions=rw(spec.functions),
        monitors=rw(spec.monitors),
    )


def propagate_functions(spec: ModelSpec, *, monitors: bool = True) -> ModelSpec:
    """Expand function call sites into their bodies.

    Fixed variables, equations and initial conditions are always expanded;
    monitors only when ``monitors`` is true, so that a generated program
    can still call the function handles it defines.
    """
    fns = spec.functions

    def inl(table: Mapping[str, str]):
        return {k: inline_functions(v, fns) for k, v in table.items()}

    return replace(
        spec,
        odes=inl(spec.odes),
        ics=inl(spec.ics),
        fixed_variables=inl(spec.fixed_variables),
        monitors=inl(spec.monitors) if monitors else dict(spec.monitors),
    )
