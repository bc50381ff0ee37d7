import textwrap

from jsdeob import js_ast
from jsdeob.passes import numeric_folding

from ast_helpers import assert_number, first_init


def _fold(source):
    ast = js_ast.parse(textwrap.dedent(source))
    metadata = numeric_folding.run(ast)
    return ast, metadata


def test_power_and_modulo_fold():
    ast, metadata = _fold("var a = 2 ** 10; var b = 7 % 3;")
    assert_number(first_init(ast, "a"), 1024)
    assert_number(first_init(ast, "b"), 1)
    assert metadata["expressions_folded"] == 2


def test_double_negation_folds_to_positive():
    ast, _ = _fold("var a = -(-5);")
    assert_number(first_init(ast, "a"), 5)


def test_nested_arithmetic_folds_to_one_node():
    ast, metadata = _fold("var a = (1 + 2) * (10 - 4) / 3;")
    assert_number(first_init(ast, "a"), 6)
    assert metadata["expressions_folded"] == 1


def test_negative_result_is_unary_minus_over_literal():
    ast, _ = _fold("var a = 3 - 10;")
    init = first_init(ast, "a")
    assert init.type == "UnaryExpression"
    assert init.operator == "-"
    assert_number(init.argument, 7)


def test_remainder_takes_the_sign_of_the_dividend():
    ast, _ = _fold("var a = -7 % 3; var b = 7 % -3;")
    a = first_init(ast, "a")
    assert a.type == "UnaryExpression"
    assert_number(a.argument, 1)
    assert_number(first_init(ast, "b"), 1)


def test_division_by_zero_uses_ieee_semantics():
    ast, _ = _fold("var a = 1 / 0; var b = -1 / 0; var c = 0 / 0; var d = 5 % 0;")
    assert js_ast.is_identifier(first_init(ast, "a"), "Infinity")
    b = first_init(ast, "b")
    assert b.type == "UnaryExpression"
    assert js_ast.is_identifier(b.argument, "Infinity")
    assert js_ast.is_identifier(first_init(ast, "c"), "NaN")
    assert js_ast.is_identifier(first_init(ast, "d"), "NaN")


def test_fractional_results_survive():
    ast, _ = _fold("var a = 1 / 4;")
    assert_number(first_init(ast, "a"), 0.25)


def test_non_decimal_literals_are_normalised():
    ast, metadata = _fold("var a = 0x10; var b = 0b101; var c = 0o17;")
    for name, value in (("a", 16), ("b", 5), ("c", 15)):
        init = first_init(ast, name)
        assert_number(init, value)
        assert init.raw == str(value)
    assert metadata["literals_normalized"] == 3


def test_assignment_right_side_is_replaced():
    ast, metadata = _fold("var x; x = 3 * 4;")
    assignment = next(js_ast.iter_nodes(ast, "AssignmentExpression"))
    assert js_ast.is_identifier(assignment.left, "x")
    assert_number(assignment.right, 12)
    assert metadata["expressions_folded"] == 1


def test_unresolvable_operands_abort_only_that_expression():
    ast, _ = _fold("var a = 1 + y; var b = 2 * 3;")
    assert first_init(ast, "a").type == "BinaryExpression"
    assert_number(first_init(ast, "b"), 6)


def test_strings_and_other_operators_are_left_alone():
    ast, metadata = _fold('var a = "1" + 2; var b = 1 << 2; var c = typeof 5;')
    assert first_init(ast, "a").type == "BinaryExpression"
    assert first_init(ast, "b").type == "BinaryExpression"
    assert first_init(ast, "c").type == "UnaryExpression"
    assert metadata["changes"] == 0


def test_folding_is_idempotent():
    ast, first = _fold("var a = 0x20 - 2 ** 6; x = 9 % 4;")
    assert first["changes"] > 0
    second = numeric_folding.run(ast)
    assert second["changes"] == 0


def test_evaluate_numeric_returns_none_for_non_constants():
    ast = js_ast.parse("var a = b * 2;")
    assert numeric_folding.evaluate_numeric(first_init(ast, "a")) is None


def test_integer_literals_beyond_double_range_read_as_infinity():
    huge = "0x" + "f" * 300
    ast, metadata = _fold(f"var a = {huge}; var b = 1 - {huge}; var c = {huge} * 0;")
    assert js_ast.is_identifier(first_init(ast, "a"), "Infinity")
    b = first_init(ast, "b")
    assert b.type == "UnaryExpression"
    assert js_ast.is_identifier(b.argument, "Infinity")
    assert js_ast.is_identifier(first_init(ast, "c"), "NaN")
    assert metadata["changes"] > 0
