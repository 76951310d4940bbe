# src/solvergen/compiler/codegen/rewrite.py
from __future__ import annotations
from typing import Any, Dict, List, Mapping, Set, Union
import ast
import re

import numpy as np

from solvergen.errors import ModelValidationError

__all__ = [
    "sanitize_expr",
    "parse_expr",
    "literal_node",
    "replace_names",
    "free_names",
    "inline_functions",
    "lambda_args",
]

_POW = re.compile(r"\^")

Replacement = Union[str, ast.AST]


def sanitize_expr(expr: str) -> str:
    """Normalize DSL math to Python."""
    expr = expr.strip()
    expr = _POW.sub("**", expr)
    return expr


def parse_expr(expr: str) -> ast.expr:
    try:
        return ast.parse(sanitize_expr(expr), mode="eval").body
    except SyntaxError as e:
        raise ModelValidationError(f"Invalid expression {expr!r}: {e.msg}") from e


def _clone(node: ast.AST) -> ast.expr:
    return ast.parse(ast.unparse(node), mode="eval").body  # simple structural clone


def literal_node(value: Any) -> ast.expr:
    """AST for a numeric parameter value (scalar or 1-D list)."""
    if isinstance(value, np.ndarray):
        value = value.tolist()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, bool) or not isinstance(value, (int, float, list, tuple)):
        raise ModelValidationError(f"Cannot inline non-numeric value {value!r}")
    if isinstance(value, (list, tuple)):
        return ast.Call(
            func=ast.Attribute(value=ast.Name(id="np", ctx=ast.Load()), attr="array", ctx=ast.Load()),
            args=[ast.List(elts=[literal_node(v) for v in value], ctx=ast.Load())],
            keywords=[],
        )
    # negatives as UnaryOp so unparse keeps precedence, e.g. (-2.0) ** 2
    if value < 0:
        return ast.UnaryOp(op=ast.USub(), operand=ast.Constant(value=-value))
    return ast.Constant(value=value)


def _as_node(rep: Replacement) -> ast.AST:
    if isinstance(rep, ast.AST):
        return rep
    return parse_expr(rep)


class _NameReplacer(ast.NodeTransformer):
    """Replace free names with expression ASTs; lambda arguments shadow."""

    def __init__(self, subs: Mapping[str, ast.AST]):
        super().__init__()
        self.subs = subs
        self._shadowed: List[Set[str]] = []

    def _is_shadowed(self, name: str) -> bool:
        return any(name in scope for scope in self._shadowed)

    def visit_Name(self, node: ast.Name):
        if isinstance(node.ctx, ast.Load) and node.id in self.subs and not self._is_shadowed(node.id):
            return ast.copy_location(_clone(self.subs[node.id]), node)
        return node

    def visit_Lambda(self, node: ast.Lambda):
        self._shadowed.append({a.arg for a in node.args.args})
        try:
            node.body = self.visit(node.body)
        finally:
            self._shadowed.pop()
        return node


def replace_names(expr: str, subs: Mapping[str, Replacement]) -> str:
    """Return ``expr`` with each free name in ``subs`` replaced by its expression."""
    if not subs:
        return ast.unparse(parse_expr(expr))
    nodes = {k: _as_node(v) for k, v in subs.items()}
    tree = _NameReplacer(nodes).visit(parse_expr(expr))
    ast.fix_missing_locations(tree)
    return ast.unparse(tree)


def free_names(expr: str) -> Set[str]:
    """Names read by ``expr`` that are not bound by an enclosing lambda."""
    found: Set[str] = set()

    class _Collector(_NameReplacer):
        def visit_Name(self, node: ast.Name):
            if isinstance(node.ctx, ast.Load) and not self._is_shadowed(node.id):
                found.add(node.id)
            return node

    _Collector({}).visit(parse_expr(expr))
    return found


def lambda_args(expr: str) -> List[str]:
    """Positional argument names of a ``lambda`` function definition."""
    node = parse_expr(expr)
    if not isinstance(node, ast.Lambda):
        raise ModelValidationError(f"Function definitions must be lambda expressions, got {expr!r}")
    a = node.args
    if a.vararg or a.kwarg or a.kwonlyargs or a.defaults or a.posonlyargs:
        raise ModelValidationError(
            f"Function {expr!r} may only use plain positional arguments"
        )
    return [arg.arg for arg in a.args]


class _FunctionInliner(ast.NodeTransformer):
    """Expand calls to model functions into their lambda bodies."""

    def __init__(self, fn_defs: Dict[str, ast.Lambda]):
        super().__init__()
        self.fn_defs = fn_defs
        self._stack: List[str] = []

    def visit_Call(self, node: ast.Call):
        node = self.generic_visit(node)
        if not (isinstance(node.func, ast.Name) and node.func.id in self.fn_defs):
            return node
        name = node.func.id
        lam = self.fn_defs[name]
        argnames = [a.arg for a in lam.args.args]
        if node.keywords or len(node.args) != len(argnames):
            raise ModelValidationError(
                f"Function '{name}' expects {len(argnames)} positional argument(s), "
                f"got {len(node.args)}"
            )
        if name in self._stack:
            raise ModelValidationError(
                f"Recursive function call detected: {' -> '.join(self._stack + [name])}"
            )
        body = _NameReplacer(dict(zip(argnames, node.args))).visit(_clone(lam.body))
        self._stack.append(name)
        try:
            body = self.visit(body)  # continue inlining inside
        finally:
            self._stack.pop()
        return ast.copy_location(body, node)


def inline_functions(expr: str, functions: Mapping[str, str]) -> str:
    """Return ``expr`` with every call to a function in ``functions`` expanded."""
    if not functions:
        return ast.unparse(parse_expr(expr))
    fn_defs: Dict[str, ast.Lambda] = {}
    for name, src in functions.items():
        lambda_args(src)  # validates shape
        fn_defs[name] = parse_expr(src)  # type: ignore[assignment]
    tree = _FunctionInliner(fn_defs).visit(parse_expr(expr))
    ast.fix_missing_locations(tree)
    return ast.unparse(tree)
