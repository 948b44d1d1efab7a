from __future__ import annotations

import logging

from buildgraph.dag import resolve
from buildgraph.dsl import matrix, step_ref, target, workflow
from buildgraph.params import ParamCatalog, param
from buildgraph.runner import with_builtins
from buildgraph.workflows.compiler import compile_workflow
from buildgraph.workflows.definition import (
    ManualBoolInput,
    ManualStringInput,
    ManualTrigger,
    ParamInjection,
    SecretInjection,
    UseCustomArtifactProvider,
)
from buildgraph.workflows.shell import ShellWorkflowWriter


def catalog():
    return ParamCatalog([
        param("Os"),
        param("Verbose", default="false"),
        param("Note"),
        param("BuildNumber"),
        param("ApiKey", secret=True),
    ])


def definitions():
    return [
        target("Version", produces_variables=["BuildNumber"]),
        target("Build", depends_on=["Version"], uses=["Os", "Verbose"], produces=["dist"]),
        target(
            "Publish",
            consumes=[("Build", "dist")],
            consumes_variables=[("Version", "BuildNumber")],
            requires=["ApiKey"],
            uses=["Note"],
        ),
    ]


def render(wf):
    defs, cat = with_builtins(definitions(), catalog())
    return ShellWorkflowWriter().render(compile_workflow(wf, resolve(defs), cat))


def local(**kw):
    return workflow(
        "Local",
        targets=[
            "Version",
            step_ref("Build").with_matrix(matrix("Os", ["linux", "mac os"])),
            "Publish",
        ],
        backends=["shell"],
        **kw,
    )


def test_header():
    lines = render(local()).splitlines()

    assert lines[:4] == [
        "#!/usr/bin/env bash",
        "# name: Local",
        "set -euo pipefail",
        'cd "$(dirname "$0")/../.."',
    ]


def test_inputs_default_or_prompt():
    text = render(local(triggers=[ManualTrigger((
        ManualBoolInput("verbose", "Verbose"),
        ManualStringInput("note", "Release note"),
    ))]))

    assert 'VERBOSE="${VERBOSE:-}"\nif [ -z "$VERBOSE" ]; then\n  VERBOSE=false\nfi' in text
    assert "  read -r -p 'Enter value for note: ' NOTE" in text
    assert '--param "note=${NOTE:-}"' in text


def test_matrix_is_unrolled():
    lines = render(local()).splitlines()

    assert "# Build [001_linux]" in lines
    assert "# Build [002_mac-os]" in lines
    assert "buildgraph run Build --skip --headless --param os=linux --param build-slice=linux" in lines
    assert "buildgraph run Build --skip --headless --param 'os=mac os' --param 'build-slice=mac os'" in lines


def test_variables_are_not_passed_and_secrets_come_from_env():
    lines = render(local(options=[SecretInjection("ApiKey")])).splitlines()

    assert 'buildgraph run Publish --skip --headless --param "api-key=${API_KEY:-}"' in lines
    assert not any("build-number" in line for line in lines)


def test_param_injection_is_literal():
    lines = render(local(options=[ParamInjection("Note", "hello world")])).splitlines()

    assert "buildgraph run Publish --skip --headless --param 'note=hello world'" in lines


def test_native_artifacts_become_comments(caplog):
    with caplog.at_level(logging.WARNING):
        text = render(local())

    assert "# artifact dist: no custom artifact provider, kept locally" in text
    assert "no custom artifact provider is configured" in caplog.text


def test_custom_provider_runs_store_per_slice():
    lines = render(local(options=[UseCustomArtifactProvider()])).splitlines()

    assert "buildgraph run StoreArtifact --skip --headless --param artifacts=dist --param build-slice=linux" in lines
    assert "buildgraph run RetrieveArtifact --skip --headless --param artifacts=dist" in lines


def test_jobs_follow_build_order():
    text = render(local())

    assert text.index("# Version") < text.index("# Build [001_linux]") < text.index("# Publish")


def test_path(tmp_path):
    defs, cat = with_builtins(definitions(), catalog())
    model = compile_workflow(local(), resolve(defs), cat)

    assert ShellWorkflowWriter().path_for(model, tmp_path) == tmp_path / ".buildgraph" / "workflows" / "Local.sh"
