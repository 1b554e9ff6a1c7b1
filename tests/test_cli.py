import io
import json

import pytest

from feltrun.__main__ import _main, colored_note


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    # keep config files of the environment out of the way
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def write_source(workdir):
    def write(text: str, name: str = "snippet.felt") -> str:
        path = workdir / name
        path.write_text(text)
        return str(path)

    return write


TESTS = """
@test
def test_true():
    assert 1 == 1


@test
def test_false():
    assert 1 == 2, "one is not two"
"""


def test_run(write_source, capsys):
    path = write_source("def main():\n    return 42\n")

    result = _main(["--source", path])

    assert result.exitcode == 0
    assert result.success
    assert capsys.readouterr().out == "Run completed successfully, returning [42]\n"


def test_run_from_stdin(workdir, monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("def main():\n    panic('boom')\n"))

    result = _main(["--source", "-"])

    assert result.exitcode == 0
    assert capsys.readouterr().out == "Run panicked with ['boom'].\n"


def test_tests(write_source, capsys):
    path = write_source(TESTS)

    result = _main(["--source", path, "--test", "--no-status"])
    out = capsys.readouterr().out

    assert result.exitcode == 1
    assert not result.success
    assert result.passed == ["lib::test_true"]
    assert result.failed == ["lib::test_false"]
    assert "running 2 tests" in out
    assert "failures:" in out
    assert "lib::test_false: Panicked with ['one is not two']." in out
    assert "test result: FAILED. 1 passed; 1 failed; 0 ignored; 0 filtered out;" in out


def test_tests_pass(write_source, capsys):
    path = write_source(TESTS)

    result = _main(["--source", path, "--test", "--filter", "true"])

    assert result.exitcode == 0
    assert "test result: ok. 1 passed; 0 failed; 0 ignored; 1 filtered out;" in (
        capsys.readouterr().out
    )


def test_json_output(write_source, workdir):
    path = write_source(TESTS)
    json_path = workdir / "out.json"

    _main(["--source", path, "--test", "--json-output", str(json_path)])

    output = json.loads(json_path.read_text())
    assert output["exitcode"] == 1
    assert output["success"] is False
    assert output["passed"] == ["lib::test_true"]
    assert output["failed"] == ["lib::test_false"]
    assert output["message"].startswith("running 2 tests")


def test_compilation_failure(write_source, workdir, capsys):
    path = write_source("def main(:\n")
    json_path = workdir / "out.json"

    result = _main(["--source", path, "--json-output", str(json_path)])

    assert result.exitcode == 1
    assert result.message.startswith("Compilation failed.")
    assert "Run completed" not in capsys.readouterr().out

    output = json.loads(json_path.read_text())
    assert output["success"] is False
    assert output["message"] == result.message


def test_entry_point_not_found(write_source):
    result = _main(["--source", write_source("def foo():\n    pass\n")])

    assert result.exitcode == 1
    assert result.message == "Function with suffix `::main` to run not found."


def test_missing_source_file(workdir):
    result = _main(["--source", str(workdir / "missing.felt")])
    assert result.exitcode == 1
    assert result.message.startswith("Failed to read")


def test_no_source(workdir):
    assert _main([]).exitcode == 1


def test_config_file(write_source, workdir, capsys):
    path = write_source("def main():\n    return 1\n")
    (workdir / "feltrun.toml").write_text("[global]\nprint-memory = true\n")

    result = _main(["--source", path])

    assert result.exitcode == 0
    assert "Full memory: [_, 1, ]" in capsys.readouterr().out


def test_colored_note():
    assert colored_note("running 2 tests") == "running 2 tests"

    colored = colored_note("test lib::t ... ok (gas usage est.: 3)")
    assert colored.startswith("test lib::t ... ")
    assert colored.endswith(" (gas usage est.: 3)")
    assert colored != "test lib::t ... ok (gas usage est.: 3)"
