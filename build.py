# build.py
# Build definition for buildgraph itself: `buildgraph run Test`, `buildgraph gen`
from __future__ import annotations

from buildgraph.dsl import TargetRegistry, matrix, step_ref, workflow
from buildgraph.params import param
from buildgraph.workflows.definition import (
    PULL_REQUEST_INTO_MAIN,
    PUSH_TO_MAIN,
    ManualBoolInput,
    ManualTrigger,
    SecretInjection,
    SetupPythonStep,
)

REGISTRY = TargetRegistry()

PARAMS = [
    param("PythonVersion", "Interpreter used by the test matrix", default="3.12"),
    param("Verbose", "Run pytest verbosely", default="false"),
    param("PypiToken", "Upload token for the package index", secret=True),
]


@REGISTRY.register()
def Restore(t):
    return t.described_as("Install the package with its test extra").step(
        "Install package", 'pip install -e ".[test]"'
    )


@REGISTRY.register()
def Build(t):
    return (
        t.described_as("Build sdist and wheel")
        .depends_on("Restore")
        .step("Build dist", "python -m pip wheel --no-deps -w .buildgraph/publish/dist .")
        .produces_artifact("dist")
    )


async def _pytest(ctx):
    args = ["-m", "pytest", "-q"]
    if ctx.get_param("Verbose") == "true":
        args.append("-v")
    result = await ctx.run("python", *args)
    print(result.stdout)
    if not result.ok:
        raise RuntimeError(f"pytest exited with {result.exit_code}")


@REGISTRY.register()
def Test(t):
    return t.described_as("Run the test suite").depends_on("Build").uses_param("PythonVersion", "Verbose").executes(_pytest)


@REGISTRY.register()
def Publish(t):
    return (
        t.described_as("Upload the built distribution")
        .depends_on("Test")
        .consumes_artifact("Build", "dist")
        .requires_param("PypiToken")
        .step("Upload", "python -m twine upload .buildgraph/artifacts/dist/*")
    )


SETUP = SetupPythonStep(install='pip install -e ".[test]"')

WORKFLOWS = [
    workflow(
        "Validate",
        targets=[
            "Build",
            step_ref("Test").with_matrix(matrix("PythonVersion", ["3.10", "3.11", "3.12"])),
        ],
        triggers=[PULL_REQUEST_INTO_MAIN, ManualTrigger((ManualBoolInput("verbose", "Verbose pytest output"),))],
        options=[SETUP],
        backends=["github", "shell"],
    ),
    workflow(
        "Release",
        targets=["Build", "Test", step_ref("Publish").without_artifact_publishing()],
        triggers=[PUSH_TO_MAIN],
        options=[SETUP, SecretInjection("PypiToken")],
        backends=["github", "devops"],
    ),
]
