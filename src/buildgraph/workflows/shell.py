# workflows/shell.py
"""Local shell script (.buildgraph/workflows/<name>.sh)."""

from __future__ import annotations

import logging
import shlex
from typing import Optional

from ..params import env_var_name
from .definition import ManualBoolInput, ManualChoiceInput, ManualTrigger
from .model import (
    BindingKind,
    EnvBinding,
    MatrixInstance,
    StepKind,
    WorkflowJobModel,
    WorkflowModel,
    WorkflowStepModel,
)
from .writer import WorkflowWriter

log = logging.getLogger(__name__)


class ShellWorkflowWriter(WorkflowWriter):
    """
    Runs the workflow's jobs one after another on this machine.

    Matrix jobs are unrolled, one block per slice. Variables travel through
    the local state directory, so they are not passed on the command line.
    """
    backend = "shell"
    directory = (".buildgraph", "workflows")
    extension = "sh"

    def write_workflow(self, model: WorkflowModel) -> None:
        self.write_line("#!/usr/bin/env bash")
        self.write_line(f"# name: {model.name}")
        self.write_line("set -euo pipefail")
        self.write_line('cd "$(dirname "$0")/../.."')
        self.write_line()

        manual = next((t for t in model.triggers if isinstance(t, ManualTrigger)), None)
        if manual is not None:
            for i in manual.inputs:
                self._write_input(i)

        for job in model.jobs:
            self.write_line()
            self._write_job(model, job)

    def _write_input(self, i) -> None:
        var = env_var_name(i.name)
        default = getattr(i, "default", None)
        if isinstance(i, ManualBoolInput) and default is not None:
            default = "true" if default else "false"
        elif isinstance(i, ManualChoiceInput) and default is None and i.choices:
            default = i.choices[0]

        self.write_line(f'{var}="${{{var}:-}}"')
        self.write_line(f'if [ -z "${var}" ]; then')
        with self.section():
            if default is not None:
                self.write_line(f"{var}={shlex.quote(str(default))}")
            else:
                self.write_line(f"read -r -p {shlex.quote(f'Enter value for {i.name}: ')} {var}")
        self.write_line("fi")

    def _write_job(self, model: WorkflowModel, job: WorkflowJobModel) -> None:
        if not job.matrix_instances:
            self.write_line(f"# {job.name}")
            for step in job.steps:
                self._write_step(model, job, step, None)
            return

        for inst in job.matrix_instances:
            self.write_line(f"# {job.name} [{inst.slice_id}]")
            for step in job.steps:
                self._write_step(model, job, step, inst)
            self.write_line()

    def _write_step(
        self,
        model: WorkflowModel,
        job: WorkflowJobModel,
        step: WorkflowStepModel,
        instance: Optional[MatrixInstance],
    ) -> None:
        if step.kind in (StepKind.DOWNLOAD_ARTIFACT, StepKind.UPLOAD_ARTIFACT):
            verb = "consumes" if step.kind is StepKind.DOWNLOAD_ARTIFACT else "produces"
            log.warning(
                "Workflow %s target %s %s artifact %s but no custom artifact provider is configured; "
                "artifacts will only be available locally",
                model.name, job.name, verb, step.name,
            )
            self.write_line(f"# artifact {step.name}: no custom artifact provider, kept locally")
            return

        args = [a for a in (self._arg(b, instance) for b in step.env) if a]
        line = self.command_line(step.name)
        if args:
            line += " " + " ".join(args)
        self.write_line(line)

    def _arg(self, binding: EnvBinding, instance: Optional[MatrixInstance]) -> Optional[str]:
        kind = binding.kind
        if kind is BindingKind.VARIABLE:
            return None
        if kind in (BindingKind.INPUT, BindingKind.SECRET, BindingKind.VAULT_VARIABLE, BindingKind.ENVIRONMENT):
            return f'--param "{binding.name}=${{{binding.env_name}:-}}"'
        if kind is BindingKind.MATRIX:
            value = instance.value_of(binding.name) if instance else ""
        elif kind is BindingKind.SLICE:
            value = "-".join(v for _, v in instance.values) if instance else ""
        else:
            value = binding.value
        return "--param " + shlex.quote(f"{binding.name}={value}")
