from __future__ import annotations

import pytest
from click.testing import CliRunner

from buildgraph.cli import cli
from buildgraph.workflows.generator import writer_for

BUILD = """\
from buildgraph.dsl import TargetRegistry, workflow
from buildgraph.params import param

REGISTRY = TargetRegistry()
PARAMS = [param("Message", default="hi")]


def _write(ctx):
    (ctx.services.root / "out.txt").write_text(ctx.get_param("Message"), encoding="utf-8")


def _boom():
    raise RuntimeError("boom")


@REGISTRY.register()
def Prepare(t):
    return t.described_as("Prepare things")


@REGISTRY.register()
def Write(t):
    return t.depends_on("Prepare").uses_param("Message").executes(_write)


@REGISTRY.register()
def Broken(t):
    return t.executes(_boom)


WORKFLOWS = [workflow("CI", targets=["Prepare", "Write"], backends=["github", "shell"])]
"""


@pytest.fixture
def project(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "build.py").write_text(BUILD, encoding="utf-8")
    return tmp_path


def invoke(*args):
    return CliRunner().invoke(cli, list(args))


def test_run_succeeds(project):
    result = invoke("run", "Write", "--param", "message=hello")

    assert result.exit_code == 0, result.output
    assert (project / "out.txt").read_text(encoding="utf-8") == "hello"
    assert "RUN STARTED" in result.output


def test_run_failure_exits_1(project):
    result = invoke("run", "Broken")

    assert result.exit_code == 1
    assert "boom" in result.output


def test_unknown_target_exits_2(project):
    result = invoke("run", "Nope")

    assert result.exit_code == 2
    assert "Unknown target" in result.output


def test_bad_param_is_a_usage_error(project):
    result = invoke("run", "Write", "--param", "novalue")

    assert result.exit_code == 2
    assert "KEY=VALUE" in result.output


def test_cycle_is_reported(project):
    (project / "build.py").write_text(
        "from buildgraph.dsl import TargetRegistry\n"
        "REGISTRY = TargetRegistry()\n"
        "@REGISTRY.register()\n"
        "def A(t):\n"
        "    return t.depends_on('B')\n"
        "@REGISTRY.register()\n"
        "def B(t):\n"
        "    return t.depends_on('A')\n",
        encoding="utf-8",
    )

    result = invoke("run", "A")

    assert result.exit_code == 1
    assert "Invalid build configuration" in result.output
    assert "Circular dependency detected" in result.output


def test_list_hides_builtin_targets(project):
    result = invoke("list")

    assert result.exit_code == 0
    assert "Prepare things" in result.output
    assert "StoreArtifact" not in result.output


def test_gen_then_check(project):
    assert invoke("check").exit_code == 1

    result = invoke("gen")
    assert result.exit_code == 0, result.output
    assert (project / ".github" / "workflows" / "CI.yml").exists()
    assert (project / ".buildgraph" / "workflows" / "CI.sh").exists()

    assert invoke("check").exit_code == 0
    assert "up to date" in invoke("gen").output

    (project / ".github" / "workflows" / "CI.yml").write_text("stale\n", encoding="utf-8")
    result = invoke("check")
    assert result.exit_code == 1
    assert "CI.yml" in result.output


def test_missing_build_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    result = invoke("list")

    assert result.exit_code == 1
    assert "No build file found" in result.output


def test_several_build_files_need_choosing(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "a_build.py").write_text(BUILD, encoding="utf-8")
    (tmp_path / "b_build.py").write_text(BUILD, encoding="utf-8")

    assert invoke("list").exit_code == 1
    assert invoke("list", "--build", "a_build").exit_code == 0


def test_unknown_backend():
    with pytest.raises(ValueError, match="Unknown workflow backend"):
        writer_for("jenkins")
