# model.py
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union


@dataclass(frozen=True)
class Step:
    """A single shell command inside a target."""
    name: str
    run: str
    cwd: str | None = None


# A task is either a shell Step or a python callable (sync or async).
Task = Union[Step, Callable[..., Any]]


@dataclass(frozen=True)
class DefinedParam:
    name: str
    required: bool = True


@dataclass(frozen=True)
class ProducedArtifact:
    artifact_name: str
    build_slice: str | None = None


@dataclass(frozen=True)
class ConsumedArtifact:
    target_name: str
    artifact_name: str
    build_slice: str | None = None


@dataclass(frozen=True)
class ConsumedVariable:
    target_name: str
    variable_name: str


@dataclass(frozen=True)
class Extension:
    """Another target whose contract is merged into this one."""
    target_name: str
    run_after: bool = False


@dataclass(frozen=True)
class TargetDefinition:
    """
    Declarative, authoring-time description of a target.

    Built by the DSL helpers and never mutated afterwards; the resolver
    turns it into a TargetModel.
    """
    name: str
    description: str | None = None
    hidden: bool = False
    tasks: tuple[Task, ...] = ()
    dependencies: tuple[str, ...] = ()
    params: tuple[DefinedParam, ...] = ()
    produced_artifacts: tuple[ProducedArtifact, ...] = ()
    consumed_artifacts: tuple[ConsumedArtifact, ...] = ()
    produced_variables: tuple[str, ...] = ()
    consumed_variables: tuple[ConsumedVariable, ...] = ()
    extends: tuple[Extension, ...] = ()

    @property
    def required_params(self) -> list[str]:
        return [p.name for p in self.params if p.required]


@dataclass(eq=False)
class TargetModel:
    """
    Resolved target. Dependencies are references to other TargetModels.

    Identity-hashed so it can key the state map.
    """
    name: str
    description: str | None
    hidden: bool
    tasks: tuple[Task, ...]
    params: tuple[DefinedParam, ...]
    produced_artifacts: tuple[ProducedArtifact, ...]
    consumed_artifacts: tuple[ConsumedArtifact, ...]
    produced_variables: tuple[str, ...]
    consumed_variables: tuple[ConsumedVariable, ...]
    dependencies: List[TargetModel] = field(default_factory=list)

    @property
    def required_params(self) -> list[str]:
        return [p.name for p in self.params if p.required]

    def __repr__(self) -> str:
        deps = ", ".join(d.name for d in self.dependencies)
        return f"TargetModel({self.name!r}, deps=[{deps}])"


class RunState(enum.Enum):
    SKIPPED = "skipped"
    PENDING_RUN = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class TargetState:
    name: str
    status: RunState = RunState.SKIPPED
    run_duration: Optional[float] = None  # seconds


@dataclass
class BuildModel:
    """Targets in topological order plus their per-run state."""
    targets: List[TargetModel]
    states: Dict[TargetModel, TargetState]

    def get_target(self, name: str) -> TargetModel:
        for t in self.targets:
            if t.name == name:
                return t
        raise KeyError(f"Target '{name}' not found")

    def has_target(self, name: str) -> bool:
        return any(t.name == name for t in self.targets)

    def state(self, name: str) -> TargetState:
        return self.states[self.get_target(name)]
