# workflows/model.py
"""
Backend-neutral compiled workflow plan.

Produced by the compiler, consumed (read-only) by the writers. Every
reference that differs between backends is kept symbolic here as an
EnvBinding; the writer decides the literal syntax.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

from .definition import WorkflowOption, WorkflowTrigger


class StepKind(enum.Enum):
    COMMAND = "command"
    DOWNLOAD_ARTIFACT = "download_artifact"
    UPLOAD_ARTIFACT = "upload_artifact"
    RETRIEVE_ARTIFACTS = "retrieve_artifacts"
    STORE_ARTIFACTS = "store_artifacts"


class BindingKind(enum.Enum):
    INPUT = "input"                    # manual trigger input
    VARIABLE = "variable"              # output of another job
    SECRET = "secret"                  # backend secret store
    VAULT_VARIABLE = "vault_variable"  # backend variable needed by the vault provider
    ENVIRONMENT = "environment"        # backend-level variable
    LITERAL = "literal"                # fixed value
    MATRIX = "matrix"                  # current matrix value
    SLICE = "slice"                    # current build slice


@dataclass(frozen=True)
class EnvBinding:
    """
    One name -> value pair handed to a step.

    `name` is the external argument name. `value` holds the literal for
    LITERAL bindings (and explicit slices), `source` the producing target
    for VARIABLE bindings.
    """
    name: str
    kind: BindingKind
    value: str = ""
    source: Optional[str] = None

    @property
    def env_name(self) -> str:
        return self.name.upper().replace("-", "_")


@dataclass(frozen=True)
class WorkflowStepModel:
    kind: StepKind
    # target name for command-like steps, artifact name for native artifact steps
    name: str
    env: tuple[EnvBinding, ...] = ()
    artifacts: tuple[str, ...] = ()
    # explicit slice wins over the job's matrix slice
    build_slice: Optional[str] = None
    # primary command of the job: gets an id/name so outputs can be read
    primary: bool = False

    def is_command(self) -> bool:
        return self.kind in (StepKind.COMMAND, StepKind.RETRIEVE_ARTIFACTS, StepKind.STORE_ARTIFACTS)


@dataclass(frozen=True)
class MatrixAxis:
    """A matrix dimension with its param key translated to the external arg name."""
    arg_name: str
    values: tuple[str, ...]


@dataclass(frozen=True)
class MatrixInstance:
    slice_id: str
    values: tuple[tuple[str, str], ...]  # (arg_name, value) per axis

    def value_of(self, arg_name: str) -> str:
        return dict(self.values)[arg_name]


@dataclass(frozen=True)
class WorkflowJobModel:
    name: str
    dependencies: tuple[str, ...] = ()
    matrix: tuple[MatrixAxis, ...] = ()
    matrix_instances: tuple[MatrixInstance, ...] = ()
    steps: tuple[WorkflowStepModel, ...] = ()
    options: tuple[WorkflowOption, ...] = ()
    # (producer target, arg name) pairs read by any step of this job
    consumed_variables: tuple[tuple[str, str], ...] = ()
    # arg names this job publishes as outputs
    outputs: tuple[str, ...] = ()
    suppress_artifact_publishing: bool = False

    @property
    def is_matrix(self) -> bool:
        return bool(self.matrix)


@dataclass(frozen=True)
class WorkflowModel:
    name: str
    triggers: tuple[WorkflowTrigger, ...] = ()
    options: tuple[WorkflowOption, ...] = ()
    jobs: tuple[WorkflowJobModel, ...] = ()
    warnings: tuple[str, ...] = field(default=(), compare=False)

    def job(self, name: str) -> WorkflowJobModel:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(f"Job '{name}' not found in workflow '{self.name}'")
