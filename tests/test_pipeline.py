import logging
import textwrap

import pytest

from jsdeob import js_ast, pipeline
from jsdeob.exceptions import JSParseError, PipelineExecutionError
from jsdeob.plugin import PassState, Plugin

from ast_helpers import call_names

SAMPLE = textwrap.dedent(
    """
    var arr = ["log", "hello"];
    function d(i) { return arr[i - 16]; }
    function Qc(a, b) { return a + b; }
    console[d(0x10)](Qc("hel", "lo"), 2 ** 3);
    """
)


def _noop_plugin(name):
    return Plugin(name=name, visitor={})


def _boom(path, state):
    raise RuntimeError("boom")


def test_default_pipeline_order():
    deob = pipeline.default_pipeline()
    assert deob.pass_names == [
        "string_deobfuscator",
        "function_inliner",
        "string_folding",
        "bracket_to_dot",
        "numeric_folding",
    ]
    renaming = pipeline.default_pipeline({"rename_map": {"a": "b"}})
    assert renaming.pass_names[-1] == "variable_rename"


def test_full_pipeline_recovers_readable_source():
    ctx = pipeline.default_pipeline().run(SAMPLE)

    assert call_names(ctx.ast) == []
    assert "console.log(" in ctx.output
    assert "hello" in ctx.output
    assert "2 ** 3" not in ctx.output
    assert ctx.report.strings_recovered == 1
    assert ctx.report.calls_inlined == 1
    assert ctx.report.concats_collapsed == 1
    assert ctx.report.members_converted == 1
    assert ctx.report.expressions_folded == 1
    assert ctx.report.output_length == len(ctx.output)
    assert [name for name, _ in ctx.timings] == ctx.report.passes_run


def test_second_run_changes_nothing():
    first = pipeline.deobfuscate(SAMPLE)
    ctx = pipeline.default_pipeline().run(first)
    assert ctx.report.total_changes == 0


def test_passes_can_be_selected():
    deob = pipeline.default_pipeline()
    only = deob.run("var x = 0x10 + 1;", only=["numeric_folding"])
    assert set(only.pass_metadata) == {"numeric_folding"}

    skipped = deob.run("var x = 1;", skip=["numeric_folding", "string_folding"])
    assert "numeric_folding" not in skipped.pass_metadata
    assert "string_folding" not in skipped.pass_metadata
    assert "function_inliner" in skipped.pass_metadata


def test_pipeline_execution_error_contains_pass_name():
    deob = pipeline.Deobfuscator()
    deob.add_pass(_noop_plugin("first"))
    deob.add_pass(Plugin(name="boom", visitor={"Program": _boom}))

    with pytest.raises(PipelineExecutionError) as excinfo:
        deob.run("var a = 1;")

    err = excinfo.value
    assert err.pass_name == "boom"
    assert [name for name, _ in err.timings] == ["first"]
    assert err.duration >= 0.0
    assert isinstance(err.__cause__, RuntimeError)
    assert err.report is not None
    assert err.report.passes_run == ["first"]
    assert err.report.errors == ["boom: boom"]


def test_registry_runs_in_order_not_registration_order():
    seen = []

    def recorder(name):
        return Plugin(name=name, visitor={"Program": lambda path, state: seen.append(name)})

    registry = pipeline.PassRegistry()
    registry.register_pass(recorder("late"), 50)
    registry.register_pass(recorder("early"), 5)
    registry.add_pass(recorder("last"))
    ctx = pipeline.Context(source="", ast=js_ast.parse("1;"))
    timings = registry.run_passes(ctx)

    assert seen == ["early", "late", "last"]
    assert [name for name, _ in timings] == seen


def test_pass_state_is_fresh_for_every_run():
    states = []

    def remember(path, state):
        states.append(state)
        state.changes += 1

    plugin = Plugin(name="remember", visitor={"Program": remember}, state_factory=PassState)
    deob = pipeline.Deobfuscator().add_pass(plugin)
    first = deob.run("1;")
    second = deob.run("2;")

    assert states[0] is not states[1]
    assert first.pass_metadata["remember"]["changes"] == 1
    assert second.pass_metadata["remember"]["changes"] == 1


def test_pass_completion_is_logged(caplog):
    caplog.set_level(logging.INFO, logger="jsdeob.pipeline")
    pipeline.default_pipeline().run("var x = 2 ** 10;")
    messages = [record.getMessage() for record in caplog.records]
    assert any(message.startswith("pass numeric_folding completed in") for message in messages)
    assert any("changes=1" in message for message in messages)


def test_parse_errors_are_fatal():
    with pytest.raises(JSParseError):
        pipeline.deobfuscate("function (")


def test_options_are_merged_over_defaults():
    deob = pipeline.Deobfuscator({"rot13_strings": True, "beautify": None})
    assert deob.options["rot13_strings"] is True
    assert deob.options["beautify"] is True
    assert deob.options["array_rotation"] == 221


def test_beautify_can_be_disabled():
    source = "function f(){return 1}"
    plain = pipeline.deobfuscate(source, {"beautify": False})
    assert plain == js_ast.generate(js_ast.parse(source))


def test_unsupported_shapes_leave_the_program_unchanged():
    source = textwrap.dedent(
        """
        var x = y + 1;
        var s = 'a' + 1 + b;
        Qc(...args);
        obj[key]();
        d(1)(2);
        """
    )
    output = pipeline.deobfuscate(source, {"beautify": False})
    assert output == js_ast.generate(js_ast.parse(source))


def test_recursive_helpers_and_huge_literals_do_not_abort_the_run():
    source = textwrap.dedent(
        """
        function Qc(a) { return Qc(a) + 1; }
        var x = Qc(1);
        var y = 0x%s;
        """
        % ("f" * 300)
    )
    ctx = pipeline.default_pipeline({"beautify": False}).run(source)
    assert "Qc(1)" in ctx.output
    assert "y = Infinity" in ctx.output
    assert ctx.report.calls_inlined == 0
    assert ctx.report.errors == []
