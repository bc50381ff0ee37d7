import json
import textwrap

import pytest

from jsdeob import main as cli_main
from jsdeob import pipeline
from jsdeob.plugin import Plugin

SOURCE = textwrap.dedent(
    """
    var arr = ["log", "hello"];
    function d(i) { return arr[i - 16]; }
    console[d(0x10)](d(17) + " world", 0x20);
    """
)


@pytest.fixture
def workdir(tmp_path, monkeypatch, restore_root_logging):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _write_source(workdir, text=SOURCE, name="sample.js"):
    path = workdir / name
    path.write_text(text, encoding="utf-8")
    return path


def test_cli_writes_default_output_path(workdir):
    source = _write_source(workdir)

    exit_code = cli_main.main([str(source)])

    assert exit_code == 0
    output = (workdir / "sample_deob.js").read_text(encoding="utf-8")
    assert "console.log(" in output
    assert "hello world" in output
    assert "32" in output
    assert (workdir / "jsdeob.log").exists()


def test_cli_honours_output_flag_and_report(workdir, capsys):
    source = _write_source(workdir)
    target = workdir / "out" / "clean.js"

    exit_code = cli_main.main([str(source), "-o", str(target), "--report", "--profile"])

    assert exit_code == 0
    assert target.exists()
    captured = capsys.readouterr()
    assert "=== Deobfuscation Report ===" in captured.out
    assert "Strings recovered: 2" in captured.out
    assert "Pass timings:" in captured.out


def test_cli_report_json(workdir):
    source = _write_source(workdir)
    report_path = workdir / "report.json"

    assert cli_main.main([str(source), "--report-json", str(report_path)]) == 0

    data = json.loads(report_path.read_text(encoding="utf-8"))
    assert data["strings_recovered"] == 2
    assert data["passes_run"][0] == "string_deobfuscator"


def test_cli_only_passes(workdir):
    source = _write_source(workdir)

    assert cli_main.main([str(source), "--only-passes", "numeric_folding"]) == 0

    output = (workdir / "sample_deob.js").read_text(encoding="utf-8")
    assert "d(16)" in output
    assert "0x" not in output


def test_cli_rename_map_and_inline(workdir):
    source = _write_source(
        workdir,
        "function wrap(a) { return a + 1; }\nvar value = wrap(counter);\n",
    )
    mapping = workdir / "names.json"
    mapping.write_text(json.dumps({"counter": "total"}), encoding="utf-8")

    exit_code = cli_main.main(
        [str(source), "--inline", "wrap", "--rename-map", str(mapping), "--no-beautify"]
    )

    assert exit_code == 0
    output = (workdir / "sample_deob.js").read_text(encoding="utf-8")
    assert "total + 1" in output
    assert "wrap(" not in output.split("var value", 1)[1]


def test_cli_config_file_sets_options(workdir):
    source = _write_source(
        workdir,
        'var r = ["a", "b", "c"];\nfunction g(i) { return r[i]; }\nvar first = g(0);\n',
    )
    config = workdir / "options.json"
    config.write_text(json.dumps({"array_rotation": 1}), encoding="utf-8")

    assert cli_main.main([str(source), "--config", str(config)]) == 0
    output = (workdir / "sample_deob.js").read_text(encoding="utf-8")
    assert "first = 'b'" in output or 'first = "b"' in output

    assert cli_main.main([str(source), "--config", str(config), "--array-rotation", "2"]) == 0
    output = (workdir / "sample_deob.js").read_text(encoding="utf-8")
    assert "first = 'c'" in output or 'first = "c"' in output


def test_cli_missing_input_fails(workdir):
    assert cli_main.main([str(workdir / "missing.js")]) == 1
    assert not (workdir / "missing_deob.js").exists()


def test_cli_invalid_javascript_fails_without_output(workdir):
    source = _write_source(workdir, "function (", name="broken.js")

    assert cli_main.main([str(source)]) == 1
    assert not (workdir / "broken_deob.js").exists()
    assert "failed processing" in (workdir / "jsdeob.log").read_text(encoding="utf-8")


def test_cli_trace_file(workdir):
    source = _write_source(workdir)
    trace = workdir / "trace.log"

    assert cli_main.main([str(source), "--trace", str(trace)]) == 0

    text = trace.read_text(encoding="utf-8")
    assert "resolved d(16" in text


def test_cli_pass_failure_is_reported(workdir, monkeypatch, capsys):
    source = _write_source(workdir)
    report_path = workdir / "report.json"

    def _explode(path, state):
        raise RuntimeError("exploded")

    def _failing_pipeline(options):
        deob = pipeline.Deobfuscator(options)
        deob.add_pass(Plugin(name="explode", visitor={"Program": _explode}))
        return deob

    monkeypatch.setattr(cli_main.pipeline, "default_pipeline", _failing_pipeline)

    exit_code = cli_main.main([str(source), "--report", "--report-json", str(report_path)])

    assert exit_code == 1
    assert not (workdir / "sample_deob.js").exists()
    captured = capsys.readouterr()
    assert "Errors:\n  - explode: exploded" in captured.out
    data = json.loads(report_path.read_text(encoding="utf-8"))
    assert data["errors"] == ["explode: exploded"]
