from jsdeob import js_ast
from jsdeob.passes import bracket_to_dot

from ast_helpers import first_init


def test_identifier_like_keys_become_dot_access():
    ast = js_ast.parse('var v = obj["name"]; obj["$set_1"] = 2; a["b"]["c"](1);')
    metadata = bracket_to_dot.run(ast)

    init = first_init(ast, "v")
    assert init.computed is False
    assert init.property.name == "name"
    members = list(js_ast.iter_nodes(ast, "MemberExpression"))
    assert all(not member.computed for member in members)
    assert metadata["members_converted"] == 4


def test_other_keys_stay_computed():
    ast = js_ast.parse('var a = o["not-valid"]; var b = o[0]; var c = o[key]; var d = o["1x"];')
    metadata = bracket_to_dot.run(ast)
    for name in "abcd":
        assert first_init(ast, name).computed is True
    assert metadata["members_converted"] == 0
    assert metadata["skipped"] == 2


def test_generated_source_uses_dot_syntax():
    ast = js_ast.parse('console["log"](window["document"]);')
    bracket_to_dot.run(ast)
    code = js_ast.generate(ast)
    assert "console.log(window.document)" in code
