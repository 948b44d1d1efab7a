from __future__ import annotations

import asyncio

import pytest

from buildgraph.dag import resolve
from buildgraph.dsl import build, sh, target
from buildgraph.model import RunState
from buildgraph.params import ParamCatalog, param
from buildgraph.runner import BuildExecutor, TaskContext, execute, load_build, run_build
from buildgraph.variables import VariableService, default_variable_providers


def recorder():
    calls = []

    def task(label):
        def run():
            calls.append(label)
        return run

    return calls, task


def boom():
    raise RuntimeError("boom")


def statuses(model):
    return {t.name: model.states[t].status for t in model.targets}


# ---- failure propagation ----

def test_failed_dependency_skips_dependent(make_services, console):
    calls, task = recorder()
    model = resolve([target("A", boom), target("B", task("B"), depends_on=["A"])], ["B"])

    result = run_build(model, ["B"], make_services(), console)

    assert statuses(model) == {"A": RunState.FAILED, "B": RunState.SKIPPED}
    assert calls == []
    assert not result.ok
    assert result.status("B") is RunState.SKIPPED


def test_scenario_build_failure(make_services, console):
    calls, task = recorder()
    defs = [
        target("Restore", task("Restore")),
        target("Build", boom, depends_on=["Restore"]),
        target("Test", task("Test"), depends_on=["Build"]),
        target("Publish", task("Publish"), depends_on=["Test"]),
    ]
    model = resolve(defs, ["Publish"])

    run_build(model, ["Publish"], make_services(), console)

    assert statuses(model) == {
        "Restore": RunState.SUCCEEDED,
        "Build": RunState.FAILED,
        "Test": RunState.SKIPPED,
        "Publish": RunState.SKIPPED,
    }
    assert calls == ["Restore"]


def test_unrelated_branch_still_runs(make_services, console):
    calls, task = recorder()
    defs = [
        target("A", boom),
        target("B", task("B"), depends_on=["A"]),
        target("C", task("C")),
        target("All", task("All"), depends_on=["B", "C"]),
    ]
    model = resolve(defs, ["All"])

    run_build(model, ["All"], make_services(), console)

    assert calls == ["C"]
    assert model.state("C").status is RunState.SUCCEEDED
    assert model.state("All").status is RunState.SKIPPED


def test_skipped_dependency_does_not_block_with_skip(make_services, console):
    calls, task = recorder()
    model = resolve([target("A", boom), target("B", task("B"), depends_on=["A"])], ["B"], skip_dependencies=True)

    result = run_build(model, ["B"], make_services(), console)

    assert calls == ["B"]
    assert statuses(model) == {"A": RunState.SKIPPED, "B": RunState.SUCCEEDED}
    assert result.ok


def test_diamond_runs_shared_dependency_once(make_services, console):
    calls, task = recorder()
    defs = [
        target("A", task("A")),
        target("B", task("B"), depends_on=["A"]),
        target("C", task("C"), depends_on=["A"]),
        target("D", task("D"), depends_on=["B", "C"]),
    ]
    model = resolve(defs, ["D"])

    run_build(model, ["D"], make_services(), console)

    assert calls == ["A", "B", "C", "D"]


def test_tasks_stop_at_first_failure(make_services, console):
    calls, task = recorder()
    model = resolve([target("A", task("one"), boom, task("two"))], ["A"])

    run_build(model, ["A"], make_services(), console)

    assert calls == ["one"]
    assert model.state("A").status is RunState.FAILED


def test_duration_recorded_on_success_and_failure(make_services, console):
    model = resolve([target("Ok", lambda: None), target("Bad", boom)], ["Ok", "Bad"])

    run_build(model, ["Ok", "Bad"], make_services(), console)

    assert model.state("Ok").run_duration is not None
    assert model.state("Bad").run_duration is not None


def test_unknown_requested_target(make_services, console):
    model = resolve([target("A")])

    with pytest.raises(KeyError):
        run_build(model, ["Nope"], make_services(), console)


# ---- tasks ----

def test_context_and_async_tasks(make_services, console):
    seen = {}

    async def with_ctx(ctx):
        await asyncio.sleep(0)
        seen["ctx"] = ctx

    def no_args():
        seen["plain"] = True

    model = resolve([target("A", with_ctx, no_args)], ["A"])
    services = make_services()

    result = asyncio.run(execute(model, ["A"], services, console))

    assert result.ok
    assert isinstance(seen["ctx"], TaskContext)
    assert seen["ctx"].target.name == "A"
    assert seen["ctx"].services is services
    assert seen["plain"] is True


def test_shell_steps(make_services, console, capsys):
    model = resolve(
        [target("A", sh("greet", "echo hello")), target("B", sh("fail", "exit 3"), depends_on=["A"])],
        ["B"],
    )

    run_build(model, ["B"], make_services(), console)

    out = capsys.readouterr().out
    assert model.state("A").status is RunState.SUCCEEDED
    assert model.state("B").status is RunState.FAILED
    assert "hello" in out
    assert "Exit code: 3" in out


def test_ctx_run_captures_output(make_services, console):
    captured = {}

    async def task(ctx):
        captured["result"] = await ctx.run("sh", "-c", "echo out; echo err 1>&2")

    model = resolve([target("A", task)], ["A"])
    run_build(model, ["A"], make_services(), console)

    result = captured["result"]
    assert result.ok
    assert result.stdout.strip() == "out"
    assert result.stderr.strip() == "err"


# ---- params ----

def test_missing_required_param_fails_before_running(make_services, console):
    calls, task = recorder()
    model = resolve([target("Deploy", task("Deploy"), requires=["ApiKey"])], ["Deploy"])

    result = run_build(model, ["Deploy"], make_services(), console)

    assert calls == []
    assert model.state("Deploy").status is RunState.FAILED
    assert not result.ok


def test_required_param_from_cli(make_services, console):
    seen = []
    catalog = ParamCatalog([param("ApiKey", "key")])
    model = resolve([target("Deploy", lambda ctx: seen.append(ctx.get_param("ApiKey")), requires=["ApiKey"])], ["Deploy"])

    run_build(model, ["Deploy"], make_services(catalog, cli_args={"api-key": "abc"}), console)

    assert model.state("Deploy").status is RunState.SUCCEEDED
    assert seen == ["abc"]


def test_required_param_satisfied_by_default(make_services, console):
    catalog = ParamCatalog([param("Configuration", default="Release")])
    model = resolve([target("Build", lambda: None, requires=["Configuration"])], ["Build"])

    run_build(model, ["Build"], make_services(catalog), console)

    assert model.state("Build").status is RunState.SUCCEEDED


def test_secret_values_are_masked(make_services, console, capsys):
    catalog = ParamCatalog([param("Token", secret=True)])

    def leak(ctx):
        raise RuntimeError(f"bad token {ctx.get_param('Token')}")

    model = resolve([target("A", leak, requires=["Token"])], ["A"])
    run_build(model, ["A"], make_services(catalog, environ={"TOKEN": "hunter2"}), console)

    out = capsys.readouterr().out
    assert "hunter2" not in out
    assert "*****" in out


# ---- variables ----

def test_variable_flows_from_producer_to_consumer(make_services, console):
    seen = []

    async def produce(ctx):
        await ctx.write_variable("Version", "1.2.3")

    defs = [
        target("Produce", produce, produces_variables=["Version"]),
        target("Consume", lambda ctx: seen.append(ctx.get_param("Version")), consumes_variables=[("Produce", "Version")]),
    ]
    model = resolve(defs, ["Consume"])

    run_build(model, ["Consume"], make_services(), console)

    assert seen == ["1.2.3"]


def test_missing_variable_fails_consumer(make_services, console):
    calls, task = recorder()
    defs = [
        target("Produce", produces_variables=["Version"]),
        target("Consume", task("Consume"), consumes_variables=[("Produce", "Version")]),
    ]
    model = resolve(defs, ["Consume"])

    run_build(model, ["Consume"], make_services(), console)

    assert model.state("Produce").status is RunState.SUCCEEDED
    assert model.state("Consume").status is RunState.FAILED
    assert calls == []


def test_variable_written_on_github_runner_reaches_consumer(tmp_path, make_services, console):
    seen = []
    output = tmp_path / "github_output"
    environ = {"GITHUB_ACTIONS": "true", "GITHUB_OUTPUT": str(output)}
    services = make_services(environ=environ)
    services.variables = VariableService(services.params, default_variable_providers(tmp_path / "state", environ))

    async def produce(ctx):
        await ctx.write_variable("Version", "1.2.3")

    defs = [
        target("Produce", produce, produces_variables=["Version"]),
        target("Consume", lambda ctx: seen.append(ctx.get_param("Version")), consumes_variables=[("Produce", "Version")]),
    ]
    model = resolve(defs, ["Consume"])

    run_build(model, ["Consume"], services, console)

    assert model.state("Consume").status is RunState.SUCCEEDED
    assert seen == ["1.2.3"]
    assert output.read_text(encoding="utf-8") == "Version=1.2.3\n"


def test_consumed_variable_can_come_from_cli(make_services, console):
    seen = []
    catalog = ParamCatalog([param("Version")])
    defs = [
        target("Produce", produces_variables=["Version"]),
        target("Consume", lambda ctx: seen.append(ctx.get_param("Version")), consumes_variables=[("Produce", "Version")]),
    ]
    model = resolve(defs, ["Consume"], skip_dependencies=True)

    run_build(model, ["Consume"], make_services(catalog, cli_args={"version": "1.2.3"}), console)

    assert model.state("Produce").status is RunState.SKIPPED
    assert model.state("Consume").status is RunState.SUCCEEDED
    assert seen == ["1.2.3"]


def test_required_param_is_checked_against_its_sources(make_services, console):
    catalog = ParamCatalog([param("Channel")])
    services = make_services(catalog)
    services.params.set_cached("Channel", "beta")
    model = resolve([target("Deploy", lambda: None, requires=["Channel"])], ["Deploy"])

    run_build(model, ["Deploy"], services, console)

    assert model.state("Deploy").status is RunState.FAILED


# ---- summary ----

def test_summary_skips_hidden_targets_that_never_ran(make_services, console, capsys):
    defs = [target("Visible", lambda: None), build("Helper").hidden().build()]
    model = resolve(defs, ["Visible"])

    result = run_build(model, ["Visible"], make_services(), console)

    assert [r.name for r in result.results] == ["Visible"]
    assert "RESULTS" in capsys.readouterr().out


def test_executor_reports_every_visible_target(make_services, console):
    model = resolve([target("A", lambda: None), target("B")], ["A"])

    result = asyncio.run(BuildExecutor(model, make_services(), console).execute(["A"]))

    assert [(r.name, r.status) for r in result.results] == [
        ("A", RunState.SUCCEEDED),
        ("B", RunState.SKIPPED),
    ]


# ---- build files ----

def test_load_build_with_registry(tmp_path):
    path = tmp_path / "build.py"
    path.write_text(
        "from buildgraph.dsl import TargetRegistry, workflow\n"
        "from buildgraph.params import param\n"
        "REGISTRY = TargetRegistry()\n"
        "@REGISTRY.register()\n"
        "def Compile(t):\n"
        "    return t.step('make', 'make')\n"
        "PARAMS = [param('Configuration')]\n"
        "WORKFLOWS = [workflow('CI', targets=['Compile'], backends=['github'])]\n",
        encoding="utf-8",
    )

    loaded = load_build(path)

    assert [d.name for d in loaded.definitions] == ["Compile"]
    assert "Configuration" in loaded.catalog
    assert [w.name for w in loaded.workflows] == ["CI"]


def test_load_build_requires_targets(tmp_path):
    path = tmp_path / "build.py"
    path.write_text("X = 1\n", encoding="utf-8")

    with pytest.raises(TypeError, match="REGISTRY"):
        load_build(path)
