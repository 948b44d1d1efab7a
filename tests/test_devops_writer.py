from __future__ import annotations

import yaml

from buildgraph.dag import resolve
from buildgraph.dsl import matrix, step_ref, target, workflow
from buildgraph.params import ParamCatalog, param
from buildgraph.runner import with_builtins
from buildgraph.workflows.compiler import compile_workflow
from buildgraph.workflows.definition import (
    CustomStep,
    DeployEnvironment,
    GitPullRequestTrigger,
    GitPushTrigger,
    ManualBoolInput,
    ManualChoiceInput,
    ManualStringInput,
    ManualTrigger,
    RunnerPool,
    ScheduleTrigger,
    SecretInjection,
    SetupPythonStep,
    VariableGroup,
    VaultEnvironmentInjection,
    VaultSecretInjection,
)
from buildgraph.workflows.devops import DevopsWorkflowWriter


def catalog():
    return ParamCatalog([
        param("Os"),
        param("Verbose", default="true"),
        param("Channel", default="stable"),
        param("Note"),
        param("BuildNumber"),
        param("ApiKey", secret=True),
        param("VaultToken", secret=True),
        param("VaultUrl"),
    ])


def definitions():
    return [
        target("Version", produces_variables=["BuildNumber"]),
        target("Build", depends_on=["Version"], uses=["Os"], produces=["dist"]),
        target(
            "Publish",
            consumes=[("Build", "dist")],
            consumes_variables=[("Version", "BuildNumber")],
            requires=["ApiKey"],
            uses=["Verbose", "Channel", "Note"],
        ),
    ]


def load(wf):
    defs, cat = with_builtins(definitions(), catalog())
    model = compile_workflow(wf, resolve(defs), cat)
    return yaml.safe_load(DevopsWorkflowWriter().render(model))


def release(**kw):
    return workflow(
        "Release",
        targets=[
            "Version",
            step_ref("Build").with_matrix(matrix("Os", ["ubuntu-latest", "it's-odd"])),
            step_ref("Publish").with_options(DeployEnvironment("prod")),
        ],
        backends=["devops"],
        **kw,
    )


def test_push_trigger_disables_pr():
    data = load(release(triggers=[GitPushTrigger(included_branches=("main",), excluded_paths=("docs/*",))]))

    assert data["trigger"] == {"branches": {"include": ["main"]}, "paths": {"exclude": ["docs/*"]}}
    assert data["pr"] == "none"


def test_no_triggers():
    data = load(release())

    assert data["trigger"] == "none"
    assert "pr" not in data


def test_pr_and_schedule():
    data = load(release(triggers=[
        GitPullRequestTrigger(included_branches=("main",)),
        ScheduleTrigger("0 3 * * *"),
    ]))

    assert data["pr"] == {"branches": {"include": ["main"]}}
    assert data["schedules"] == [{"cron": "0 3 * * *", "displayName": "0 3 * * *", "always": True}]


def test_parameters():
    trigger = ManualTrigger((
        ManualBoolInput("verbose", "Verbose"),
        ManualChoiceInput("channel", "Channel", choices=("stable", "beta")),
        ManualStringInput("note", "Note"),
    ))

    params = {p["name"]: p for p in load(release(triggers=[trigger]))["parameters"]}

    assert params["verbose"]["type"] == "boolean"
    assert params["verbose"]["default"] is True
    assert params["channel"]["default"] == "stable"
    assert params["channel"]["values"] == ["stable", "beta"]
    assert params["note"] == {"name": "note", "displayName": "note | Note", "type": "string"}


def test_variable_groups_and_jobs():
    data = load(release(options=[VariableGroup("shared"), SecretInjection("ApiKey")]))
    jobs = {j["job"]: j for j in data["jobs"]}

    assert data["variables"] == [{"group": "shared"}]
    assert [j["job"] for j in data["jobs"]] == ["Version", "Build", "Publish"]
    assert jobs["Build"]["dependsOn"] == ["Version"]
    assert jobs["Publish"]["environment"] == {"name": "prod"}
    assert jobs["Version"]["pool"] == {"vmImage": "ubuntu-latest"}


def test_matrix_entries_are_quoted():
    build = {j["job"]: j for j in load(release())["jobs"]}["Build"]

    assert build["strategy"]["matrix"] == {
        "001_ubuntu-latest": {"os": "ubuntu-latest"},
        "002_it-s-odd": {"os": "it's-odd"},
    }
    command = build["steps"][1]
    assert command["script"] == "buildgraph run Build --skip --headless"
    assert command["name"] == "Build"
    assert command["env"] == {"os": "$(os)", "build-slice": "$(os)"}
    publish = build["steps"][2]
    assert publish["task"] == "PublishPipelineArtifact@1"
    assert publish["inputs"]["artifactName"] == "dist-$(os)"


def test_consumed_variables_and_secrets():
    data = load(release(options=[SecretInjection("ApiKey")]))
    publish = {j["job"]: j for j in data["jobs"]}["Publish"]

    assert publish["variables"] == {"build-number": "$[ dependencies.Version.outputs['Version.build-number'] ]"}
    assert publish["steps"][0] == {"checkout": "self", "fetchDepth": 0}
    assert publish["steps"][1]["task"] == "DownloadPipelineArtifact@2"
    assert publish["steps"][2]["env"] == {"build-number": "$(build-number)", "api-key": "$(API_KEY)"}


def test_vault_bindings():
    wf = release(options=[VaultSecretInjection("VaultToken"), VaultEnvironmentInjection("VaultUrl")])

    publish = {j["job"]: j for j in load(wf)["jobs"]}["Publish"]

    assert publish["steps"][2]["env"]["vault-token"] == "$(VAULT_TOKEN)"
    assert publish["steps"][2]["env"]["vault-url"] == "$(VAULT_URL)"


def test_named_pool_with_demands():
    wf = release(options=[RunnerPool(name="builders", demands=("docker",))])

    version = {j["job"]: j for j in load(wf)["jobs"]}["Version"]

    assert version["pool"] == {"name": "builders", "demands": ["docker"]}


def test_path(tmp_path):
    defs, cat = with_builtins(definitions(), catalog())
    model = compile_workflow(release(), resolve(defs), cat)

    assert DevopsWorkflowWriter().path_for(model, tmp_path) == tmp_path / ".devops" / "workflows" / "Release.yml"


def test_values_that_look_like_numbers_stay_strings():
    trigger = ManualTrigger((ManualChoiceInput("channel", "Channel", choices=("1_000", "0b101"), default="0b101"),))
    wf = workflow(
        "Release",
        targets=["Version", step_ref("Build").with_matrix(matrix("Os", ["0x1F", ".inf"]))],
        triggers=[trigger, GitPushTrigger(included_branches=("1_000",))],
        backends=["devops"],
    )

    data = load(wf)
    build = {j["job"]: j for j in data["jobs"]}["Build"]
    channel = {p["name"]: p for p in data["parameters"]}["channel"]

    assert build["strategy"]["matrix"] == {"001_0x1F": {"os": "0x1F"}, "002_inf": {"os": ".inf"}}
    assert channel["values"] == ["1_000", "0b101"]
    assert channel["default"] == "0b101"
    assert data["trigger"]["branches"]["include"] == ["1_000"]


def test_setup_and_custom_steps_follow_checkout():
    wf = release(options=[SetupPythonStep(python_version="3.10"), CustomStep("Lint", "ruff check .")])

    version = {j["job"]: j for j in load(wf)["jobs"]}["Version"]
    steps = version["steps"]

    assert steps[0] == {"checkout": "self", "fetchDepth": 0}
    assert steps[1] == {
        "task": "UsePythonVersion@0",
        "displayName": "Setup Python",
        "inputs": {"versionSpec": "3.10"},
    }
    assert steps[2] == {"script": "pip install -e .", "displayName": "Install buildgraph"}
    assert steps[3] == {"script": "ruff check .", "displayName": "Lint"}
    assert steps[4]["script"] == "buildgraph run Version --skip --headless"
