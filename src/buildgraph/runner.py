# runner.py
from __future__ import annotations

import asyncio
import inspect
import logging
import runpy
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from . import settings
from .artifacts import ARTIFACT_PARAMS, ArtifactProvider, FileArtifactProvider, artifact_targets
from .dsl import TargetRegistry
from .model import BuildModel, RunState, Step, Task, TargetDefinition, TargetModel
from .params import (
    EnvironmentSecretsProvider,
    ParamCatalog,
    ParamDefinition,
    ParamError,
    ParamService,
    load_config,
)
from .process import ProcessResult, StepFailure, run, run_shell
from .ui.console import Console, get_console
from .variables import VariableService, default_variable_providers
from .workflows.definition import WorkflowDefinition

log = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Services / context
# ----------------------------------------------------------------------

@dataclass
class Services:
    """Collaborators shared by every task of one run."""
    params: ParamService
    variables: VariableService
    artifacts: Optional[ArtifactProvider]
    build_id: str
    root: Path = field(default_factory=lambda: Path("."))

    @classmethod
    def create(
        cls,
        root: str | Path = ".",
        catalog: ParamCatalog | None = None,
        cli_args: Dict[str, str] | None = None,
    ) -> Services:
        root_p = Path(root)
        catalog = catalog or ParamCatalog()
        params = ParamService(
            catalog,
            cli_args=cli_args,
            config=load_config(root_p / settings.CONFIG_FILE),
            secrets_providers=[EnvironmentSecretsProvider(settings.SECRET_PREFIX)],
        )
        build_id = settings.build_id(root_p)
        return cls(
            params=params,
            variables=VariableService(params, default_variable_providers(settings.state_dir(root_p))),
            artifacts=default_artifact_provider(root_p, build_id),
            build_id=build_id,
            root=root_p,
        )


def default_artifact_provider(root: str | Path = ".", build_id: Optional[str] = None) -> FileArtifactProvider:
    root_p = Path(root)
    return FileArtifactProvider(
        root_p / settings.ARTIFACT_STORE,
        root_p / settings.PUBLISH_DIR,
        root_p / settings.ARTIFACTS_DIR,
        build_id,
    )


class TaskContext:
    """What a task callable receives: params, variables, processes, artifacts."""

    def __init__(self, target: TargetModel, services: Services):
        self.target = target
        self.services = services

    @property
    def build_id(self) -> str:
        return self.services.build_id

    @property
    def artifacts(self) -> Optional[ArtifactProvider]:
        return self.services.artifacts

    def get_param(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.services.params.get_param(key, default)

    def require_param(self, key: str) -> str:
        return self.services.params.require_param(key)

    async def write_variable(self, name: str, value: str) -> None:
        await self.services.variables.write_variable(name, value, target=self.target.name)

    async def run(self, name: str, *args: str, cwd: str | Path | None = None) -> ProcessResult:
        return await run(name, args, cwd if cwd is not None else self.services.root)


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class TargetResult:
    name: str
    status: RunState
    duration: Optional[float] = None


@dataclass
class BuildResult:
    results: List[TargetResult]

    @property
    def ok(self) -> bool:
        return not any(r.status is RunState.FAILED for r in self.results)

    def status(self, name: str) -> RunState:
        for r in self.results:
            if r.name == name:
                return r.status
        raise KeyError(f"Target '{name}' not found")


# ----------------------------------------------------------------------
# Executor
# ----------------------------------------------------------------------

def _wants_context(fn: Any) -> bool:
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        return True
    return any(
        p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.VAR_POSITIONAL)
        for p in sig.parameters.values()
    )


class BuildExecutor:
    """
    Runs PENDING_RUN targets depth-first, one task at a time.

    A target whose dependency failed (or was skipped because of a failure)
    ends up SKIPPED without running. Task exceptions never escape.
    """

    def __init__(self, model: BuildModel, services: Services, console: Console | None = None):
        self.model = model
        self.services = services
        self.console = console or get_console()
        self.console.mask = services.params.mask_secrets
        self._blocked: set[str] = set()

    async def execute(self, requested: Sequence[str]) -> BuildResult:
        for name in requested:
            await self._visit(self.model.get_target(name))

        result = BuildResult([
            TargetResult(t.name, self.model.states[t].status, self.model.states[t].run_duration)
            for t in self.model.targets
            if not t.hidden or self.model.states[t].run_duration is not None
        ])
        self.console.print_summary((r.name, r.status.value, r.duration) for r in result.results)
        return result

    async def _visit(self, target: TargetModel) -> None:
        state = self.model.states[target]
        if state.status is not RunState.PENDING_RUN:
            return

        for dep in target.dependencies:
            await self._visit(dep)

        for dep in target.dependencies:
            dep_status = self.model.states[dep].status
            if dep_status is RunState.FAILED or dep.name in self._blocked:
                state.status = RunState.SKIPPED
                self._blocked.add(target.name)
                log.warning("Skipping target %s: dependency %s did not succeed", target.name, dep.name)
                self.console.print_target_skipped(target.name, f"dependency {dep.name} did not succeed")
                return

        started = time.monotonic()
        try:
            if not await self._check_inputs(target):
                state.status = RunState.FAILED
                return

            state.status = RunState.RUNNING
            self.console.print_target_start(target.name)
            try:
                ctx = TaskContext(target, self.services)
                for task in target.tasks:
                    await self._run_task(target, task, ctx)
            except Exception as exc:
                state.status = RunState.FAILED
                log.error(
                    "Target %s failed: %s",
                    target.name,
                    self.services.params.mask_secrets(str(exc)),
                    exc_info=log.isEnabledFor(logging.DEBUG),
                )
                if isinstance(exc, StepFailure):
                    self.console.print_output(exc.stdout)
                    self.console.print_failure(exc.step, exc.stderr or str(exc), exc.exit_code, exc.hint)
                self.console.print_failure(target.name, str(exc), is_target=True)
            else:
                state.status = RunState.SUCCEEDED
            finally:
                self.console.print_target_end(target.name)
        finally:
            state.run_duration = time.monotonic() - started

        if state.status is RunState.SUCCEEDED:
            self.console.print_success(target.name, state.run_duration)

    async def _check_inputs(self, target: TargetModel) -> bool:
        params = self.services.params
        for cv in target.consumed_variables:
            await self.services.variables.read_variable(cv.target_name, cv.variable_name)
            # a variable written earlier in this run, or passed as a param, counts too
            if not params.get_param(cv.variable_name):
                log.error(
                    "Target %s requires variable %s from target %s, which has no value",
                    target.name, cv.variable_name, cv.target_name,
                )
                self.console.print_failure(
                    target.name,
                    f"Missing variable {cv.variable_name} from target {cv.target_name}",
                    is_target=True,
                )
                return False

        for key in target.required_params:
            if params.catalog.is_secret(key):
                value = params.get_param(key)
            else:
                with params.no_cache():
                    value = params.get_param(key)
            if not value:
                err = ParamError(key, params.catalog.external_arg_name(key))
                log.error("Target %s: %s", target.name, err)
                self.console.print_failure(target.name, str(err), is_target=True)
                return False

        return True

    async def _run_task(self, target: TargetModel, task: Task, ctx: TaskContext) -> None:
        if isinstance(task, Step):
            self.console.print_step(task.name)
            result = await run_shell(target.name, task, self.services.root)
            self.console.print_output(result.stdout)
            return

        outcome = task(ctx) if _wants_context(task) else task()
        if inspect.isawaitable(outcome):
            await outcome


async def execute(
    model: BuildModel,
    requested: Sequence[str],
    services: Services,
    console: Console | None = None,
) -> BuildResult:
    return await BuildExecutor(model, services, console).execute(requested)


def run_build(
    model: BuildModel,
    requested: Sequence[str],
    services: Services,
    console: Console | None = None,
) -> BuildResult:
    """Synchronous entry point for callers outside an event loop."""
    return asyncio.run(execute(model, requested, services, console))


# ----------------------------------------------------------------------
# Build file loading
# ----------------------------------------------------------------------

@dataclass
class LoadedBuild:
    path: Path
    definitions: List[TargetDefinition]
    catalog: ParamCatalog
    workflows: List[WorkflowDefinition]


def _as_catalog(value: Any) -> ParamCatalog:
    if value is None:
        return ParamCatalog()
    if isinstance(value, ParamCatalog):
        return value
    items = list(value)
    if not all(isinstance(p, ParamDefinition) for p in items):
        raise TypeError("PARAMS must be a ParamCatalog or a list of ParamDefinition")
    return ParamCatalog(items)


def load_build(path: str | Path) -> LoadedBuild:
    """
    Load a build from a python file path.

    The file must define either:
      - REGISTRY = TargetRegistry()
      - targets() -> List[TargetDefinition] (or a TargetRegistry)
    and may define PARAMS (catalog or list) and WORKFLOWS (list).
    """
    build_path = Path(path).expanduser().resolve()
    if not build_path.exists():
        raise FileNotFoundError(f"Build file not found: {build_path}")
    if build_path.suffix != ".py":
        raise ValueError(f"Build file must be a .py file, got: {build_path.name}")

    globals_dict = runpy.run_path(str(build_path), run_name=f"buildgraph_build_{build_path.stem}")

    found: Any = None
    if isinstance(globals_dict.get("REGISTRY"), TargetRegistry):
        found = globals_dict["REGISTRY"]
    elif callable(globals_dict.get("targets")):
        found = globals_dict["targets"]()

    if isinstance(found, TargetRegistry):
        definitions = found.definitions()
    elif isinstance(found, list) and all(isinstance(d, TargetDefinition) for d in found):
        definitions = found
    else:
        raise TypeError(
            "Build file must define REGISTRY = TargetRegistry() "
            "or targets() -> List[TargetDefinition]."
        )

    workflows = list(globals_dict.get("WORKFLOWS", []) or [])
    if not all(isinstance(w, WorkflowDefinition) for w in workflows):
        raise TypeError("WORKFLOWS must be a list of workflow(...) definitions")

    return LoadedBuild(build_path, definitions, _as_catalog(globals_dict.get("PARAMS")), workflows)


def with_builtins(
    definitions: Iterable[TargetDefinition],
    catalog: ParamCatalog,
    provider: ArtifactProvider | None = None,
) -> tuple[List[TargetDefinition], ParamCatalog]:
    """Add the artifact store/retrieve targets and their params unless the build defines them."""
    definitions = list(definitions)
    names = {d.name for d in definitions}
    definitions += [d for d in artifact_targets(provider) if d.name not in names]
    return definitions, catalog.merged(ParamCatalog(ARTIFACT_PARAMS))
