# tests/unit/test_rewrite.py
import numpy as np
import pytest

from solvergen.errors import ModelValidationError
from solvergen.compiler.codegen.rewrite import (
    sanitize_expr,
    parse_expr,
    literal_node,
    replace_names,
    free_names,
    inline_functions,
    lambda_args,
)


def test_sanitize_power():
    assert sanitize_expr("  a^2 + b^c ") == "a**2 + b**c"


def test_parse_expr_syntax_error():
    with pytest.raises(ModelValidationError, match="Invalid expression"):
        parse_expr("x +")


def test_replace_names_basic():
    assert replace_names("a*x + b", {"a": "2.0"}) == "2.0 * x + b"


def test_replace_names_keeps_attribute_names():
    # only free names are replaced, never attribute parts
    assert replace_names("np.sin(a)", {"sin": "q", "a": "p.a"}) == "np.sin(p.a)"


def test_replace_names_negative_literal_keeps_precedence():
    out = replace_names("a ** 2", {"a": literal_node(-2.0)})
    assert eval(out) == 4.0


def test_replace_names_list_literal():
    out = replace_names("w[1] * 3", {"w": literal_node([1.0, 2.0])})
    assert out == "np.array([1.0, 2.0])[1] * 3"
    assert eval(out, {"np": np}) == 6.0


def test_replace_names_lambda_arguments_shadow():
    assert replace_names("lambda a: a + b", {"a": "1", "b": "2"}) == "lambda a: a + 2"


def test_replace_names_wraps_compound_replacement():
    assert replace_names("2 * x", {"x": "a + b"}) == "2 * (a + b)"


def test_free_names_skips_lambda_arguments():
    assert free_names("lambda u: u + k * x") == {"k", "x"}
    assert free_names("np.exp(-t / tau)") == {"np", "t", "tau"}


def test_literal_node_rejects_non_numeric():
    with pytest.raises(ModelValidationError):
        literal_node(True)
    with pytest.raises(ModelValidationError):
        literal_node("1.0")


def test_lambda_args():
    assert lambda_args("lambda a, b: a * b") == ["a", "b"]
    with pytest.raises(ModelValidationError, match="lambda"):
        lambda_args("a * b")
    with pytest.raises(ModelValidationError, match="positional"):
        lambda_args("lambda *a: a")


def test_inline_functions_basic():
    fns = {"f": "lambda u: u^2", "g": "lambda a, b: a*b"}
    assert inline_functions("f(x) + g(2, y)", fns) == "x ** 2 + 2 * y"


def test_inline_functions_argument_precedence():
    assert inline_functions("f(a + b)", {"f": "lambda u: u*2"}) == "(a + b) * 2"


def test_inline_functions_nested():
    fns = {"f": "lambda u: g(u) + 1", "g": "lambda v: 2*v"}
    assert inline_functions("f(x)", fns) == "2 * x + 1"


def test_inline_functions_leaves_other_calls():
    assert inline_functions("np.sin(f(x))", {"f": "lambda u: -u"}) == "np.sin(-x)"


def test_inline_functions_recursion_detected():
    with pytest.raises(ModelValidationError, match="Recursive"):
        inline_functions("f(x)", {"f": "lambda u: f(u)"})


def test_inline_functions_argument_count():
    with pytest.raises(ModelValidationError, match="expects 1"):
        inline_functions("f(x, y)", {"f": "lambda u: u"})


def test_inline_functions_without_functions_canonicalizes():
    assert inline_functions("x^2", {}) == "x ** 2"
