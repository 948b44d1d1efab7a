# workflows/definition.py
"""Authoring-time workflow types: triggers, options, target references."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Sequence, TypeVar


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

class WorkflowTrigger:
    """Marker base for workflow triggers."""


@dataclass(frozen=True)
class GitPushTrigger(WorkflowTrigger):
    included_branches: tuple[str, ...] = ()
    excluded_branches: tuple[str, ...] = ()
    included_paths: tuple[str, ...] = ()
    excluded_paths: tuple[str, ...] = ()
    included_tags: tuple[str, ...] = ()
    excluded_tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class GitPullRequestTrigger(WorkflowTrigger):
    included_branches: tuple[str, ...] = ()
    excluded_branches: tuple[str, ...] = ()
    included_paths: tuple[str, ...] = ()
    excluded_paths: tuple[str, ...] = ()
    types: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScheduleTrigger(WorkflowTrigger):
    cron: str


@dataclass(frozen=True)
class ManualInput:
    # `name` is the param's external argument name
    name: str
    description: str
    required: Optional[bool] = None


@dataclass(frozen=True)
class ManualBoolInput(ManualInput):
    default: Optional[bool] = None


@dataclass(frozen=True)
class ManualStringInput(ManualInput):
    default: Optional[str] = None


@dataclass(frozen=True)
class ManualChoiceInput(ManualInput):
    choices: tuple[str, ...] = ()
    default: Optional[str] = None


@dataclass(frozen=True)
class ManualTrigger(WorkflowTrigger):
    inputs: tuple[ManualInput, ...] = ()


PUSH_TO_MAIN = GitPushTrigger(included_branches=("main",))
PULL_REQUEST_INTO_MAIN = GitPullRequestTrigger(included_branches=("main",))


# ---------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------

class WorkflowOption:
    """
    Base for workflow options.

    Options whose type sets allow_multiple=False keep only their last
    occurrence when merged.
    """
    allow_multiple: bool = False


@dataclass(frozen=True)
class UseCustomArtifactProvider(WorkflowOption):
    enabled: bool = True


@dataclass(frozen=True)
class SecretInjection(WorkflowOption):
    """Expose the secret param `param` from the backend's secret store."""
    param: Optional[str]
    allow_multiple = True


@dataclass(frozen=True)
class VaultSecretInjection(WorkflowOption):
    """Credential (a secret param) the vault provider needs; injected into steps requiring secrets."""
    param: Optional[str]
    allow_multiple = True


@dataclass(frozen=True)
class VaultEnvironmentInjection(WorkflowOption):
    """Non-secret configuration the vault provider needs (e.g. its URL)."""
    param: Optional[str]
    allow_multiple = True


@dataclass(frozen=True)
class EnvironmentInjection(WorkflowOption):
    """Expose param `param` from backend-level variables to every step."""
    param: Optional[str]
    allow_multiple = True


@dataclass(frozen=True)
class ParamInjection(WorkflowOption):
    """Pass a literal value for `param` to every step."""
    param: str
    value: str
    allow_multiple = True


@dataclass(frozen=True)
class RunnerPool(WorkflowOption):
    labels: tuple[str, ...] = ("ubuntu-latest",)
    group: Optional[str] = None
    # cloud pipeline pools: hosted image or named pool
    hosted: Optional[str] = None
    name: Optional[str] = None
    demands: tuple[str, ...] = ()


@dataclass(frozen=True)
class VariableGroup(WorkflowOption):
    name: str
    allow_multiple = True


@dataclass(frozen=True)
class DeployEnvironment(WorkflowOption):
    name: str


@dataclass(frozen=True)
class SetupPythonStep(WorkflowOption):
    """
    Install an interpreter and buildgraph on the runner before any other step.

    `install` is run with the interpreter on PATH; it must make the
    `buildgraph` command available.
    """
    python_version: str = "3.12"
    install: str = "pip install -e ."


@dataclass(frozen=True)
class CustomStep(WorkflowOption):
    """A raw shell command run after setup and before the job's own steps."""
    name: str
    run: str
    allow_multiple = True


O = TypeVar("O", bound=WorkflowOption)


def merge_options(options: Iterable[WorkflowOption]) -> List[WorkflowOption]:
    """
    Merge options grouped by type, preserving first-seen type order.

    ParamInjection keeps the last value per param.
    """
    groups: dict[type, list[WorkflowOption]] = {}
    for opt in options:
        groups.setdefault(type(opt), []).append(opt)

    merged: List[WorkflowOption] = []
    for typ, entries in groups.items():
        if typ is ParamInjection:
            last: dict[str, WorkflowOption] = {}
            for e in entries:
                last.pop(e.param, None)  # type: ignore[attr-defined]
                last[e.param] = e  # type: ignore[attr-defined]
            merged.extend(last.values())
        elif typ.allow_multiple:
            merged.extend(entries)
        else:
            merged.append(entries[-1])
    return merged


def options_of(options: Iterable[WorkflowOption], typ: type[O]) -> List[O]:
    return [o for o in options if isinstance(o, typ)]


def first_option(options: Iterable[WorkflowOption], typ: type[O]) -> Optional[O]:
    found = options_of(options, typ)
    return found[0] if found else None


def custom_artifacts_enabled(options: Iterable[WorkflowOption]) -> bool:
    return any(o.enabled for o in options_of(options, UseCustomArtifactProvider))


# ---------------------------------------------------------------------
# Targets / workflows
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class MatrixDimension:
    """A named axis of values. `name` is a param key."""
    name: str
    values: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkflowTargetDefinition:
    name: str
    matrix_dimensions: tuple[MatrixDimension, ...] = ()
    options: tuple[WorkflowOption, ...] = ()
    suppress_artifact_publishing: bool = False

    def with_matrix(self, *dimensions: MatrixDimension) -> WorkflowTargetDefinition:
        return replace(self, matrix_dimensions=self.matrix_dimensions + tuple(dimensions))

    def with_options(self, *options: WorkflowOption) -> WorkflowTargetDefinition:
        return replace(self, options=self.options + tuple(options))

    def without_artifact_publishing(self) -> WorkflowTargetDefinition:
        return replace(self, suppress_artifact_publishing=True)


@dataclass(frozen=True)
class WorkflowDefinition:
    name: str
    triggers: tuple[WorkflowTrigger, ...] = ()
    options: tuple[WorkflowOption, ...] = ()
    targets: tuple[WorkflowTargetDefinition, ...] = ()
    # backend identifiers, see workflows.generator.BACKENDS
    backends: tuple[str, ...] = field(default_factory=tuple)

    def target_names(self) -> Sequence[str]:
        return [t.name for t in self.targets]
