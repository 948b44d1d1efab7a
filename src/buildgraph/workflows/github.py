# workflows/github.py
"""Hosted actions YAML (.github/workflows/<name>.yml)."""

from __future__ import annotations

import logging
from typing import Sequence

from .. import settings
from .definition import (
    CustomStep,
    DeployEnvironment,
    GitPullRequestTrigger,
    GitPushTrigger,
    ManualBoolInput,
    ManualChoiceInput,
    ManualTrigger,
    RunnerPool,
    ScheduleTrigger,
    SetupPythonStep,
    VariableGroup,
    first_option,
    options_of,
)
from .model import (
    BindingKind,
    EnvBinding,
    MatrixAxis,
    StepKind,
    WorkflowJobModel,
    WorkflowModel,
    WorkflowStepModel,
)
from .writer import WorkflowWriter, yaml_flow_list, yaml_scalar

log = logging.getLogger(__name__)

ARTIFACT_DIRECTORY = "${{ github.workspace }}/" + settings.ARTIFACTS_DIR
PUBLISH_DIRECTORY = "${{ github.workspace }}/" + settings.PUBLISH_DIR


class GithubWorkflowWriter(WorkflowWriter):
    backend = "github"
    directory = (".github", "workflows")
    extension = "yml"

    def matrix_reference(self, arg_name: str) -> str:
        return f"${{{{ matrix.{arg_name} }}}}"

    def binding_value(self, binding: EnvBinding, matrix: Sequence[MatrixAxis]) -> str:
        kind = binding.kind
        if kind is BindingKind.INPUT:
            return f"${{{{ inputs.{binding.name} }}}}"
        if kind is BindingKind.VARIABLE:
            return f"${{{{ needs.{binding.source}.outputs.{binding.name} }}}}"
        if kind is BindingKind.SECRET:
            return f"${{{{ secrets.{binding.env_name} }}}}"
        if kind in (BindingKind.VAULT_VARIABLE, BindingKind.ENVIRONMENT):
            return f"${{{{ vars.{binding.env_name} }}}}"
        if kind is BindingKind.MATRIX:
            return self.matrix_reference(binding.name)
        if kind is BindingKind.SLICE:
            return self.slice_reference(matrix)
        return yaml_scalar(binding.value)

    # ---- workflow ----

    def write_workflow(self, model: WorkflowModel) -> None:
        self.write_line(f"name: {model.name}")
        self.write_line()

        if options_of(model.options, VariableGroup):
            log.debug("variable groups have no equivalent here; ignored for %s", model.name)

        with self.section("on:"):
            manual = next((t for t in model.triggers if isinstance(t, ManualTrigger)), None)
            # a workflow without triggers can still be started by hand
            if manual is not None or not model.triggers:
                with self.section("workflow_dispatch:"):
                    if manual is not None and manual.inputs:
                        self._write_inputs(manual)

            for pull in (t for t in model.triggers if isinstance(t, GitPullRequestTrigger)):
                with self.section("pull_request:"):
                    self._list("branches:", pull.included_branches)
                    self._list("branches-ignore:", pull.excluded_branches)
                    self._list("paths:", pull.included_paths)
                    self._list("paths-ignore:", pull.excluded_paths)
                    self._list("types:", pull.types)

            for push in (t for t in model.triggers if isinstance(t, GitPushTrigger)):
                with self.section("push:"):
                    self._list("branches:", push.included_branches)
                    self._list("branches-ignore:", push.excluded_branches)
                    self._list("paths:", push.included_paths)
                    self._list("paths-ignore:", push.excluded_paths)
                    self._list("tags:", push.included_tags)
                    self._list("tags-ignore:", push.excluded_tags)

            schedules = [t for t in model.triggers if isinstance(t, ScheduleTrigger)]
            if schedules:
                with self.section("schedule:"):
                    for s in schedules:
                        self.write_line(f"- cron: {yaml_scalar(s.cron)}")

        self.write_line()

        with self.section("jobs:"):
            for job in model.jobs:
                self.write_line()
                self._write_job(job)

    def _list(self, header: str, values: Sequence[str]) -> None:
        if not values:
            return
        with self.section(header):
            for v in values:
                self.write_line(f"- {yaml_scalar(v)}")

    def _write_inputs(self, manual: ManualTrigger) -> None:
        with self.section("inputs:"):
            for i in manual.inputs:
                with self.section(f"{i.name}:"):
                    self.write_line(f"description: {yaml_scalar(i.description)}")
                    default = getattr(i, "default", None)
                    if isinstance(default, str) and default == "":
                        default = None
                    required = i.required if i.required is not None else default is None
                    self.write_line(f"required: {'true' if required else 'false'}")

                    if isinstance(i, ManualBoolInput):
                        self.write_line("type: boolean")
                        if default is not None:
                            self.write_line(f"default: {'true' if default else 'false'}")
                    elif isinstance(i, ManualChoiceInput):
                        self.write_line("type: choice")
                        with self.section("options:"):
                            for choice in i.choices:
                                self.write_line(f"- {yaml_scalar(choice)}")
                        if default is not None:
                            self.write_line(f"default: {yaml_scalar(default)}")
                    else:
                        self.write_line("type: string")
                        if default is not None:
                            self.write_line(f"default: {yaml_scalar(default)}")

    # ---- jobs ----

    def _write_job(self, job: WorkflowJobModel) -> None:
        with self.section(f"{job.name}:"):
            if job.dependencies:
                self.write_line(f"needs: [ {', '.join(job.dependencies)} ]")

            if job.matrix:
                with self.section("strategy:"), self.section("matrix:"):
                    for axis in job.matrix:
                        self.write_line(f"{axis.arg_name}: {yaml_flow_list(axis.values)}")

            pool = first_option(job.options, RunnerPool) or RunnerPool()
            labels = pool.labels or ("ubuntu-latest",)
            labels_display = labels[0] if len(labels) == 1 else f"[ {', '.join(labels)} ]"
            if pool.group:
                with self.section("runs-on:"):
                    self.write_line(f"group: {pool.group}")
                    self.write_line(f"labels: {labels_display}")
            else:
                self.write_line(f"runs-on: {labels_display}")

            env_option = first_option(job.options, DeployEnvironment)
            if env_option is not None:
                self.write_line(f"environment: {env_option.name}")

            if job.outputs:
                with self.section("outputs:"):
                    for arg in job.outputs:
                        self.write_line(f"{arg}: ${{{{ steps.{job.name}.outputs.{arg} }}}}")

            with self.section("steps:"):
                self.write_line()
                with self.section("- name: Checkout"):
                    self.write_line("uses: actions/checkout@v4")
                    with self.section("with:"):
                        self.write_line("fetch-depth: 0")

                self._write_setup(job)

                for step in job.steps:
                    self.write_line()
                    self._write_step(job, step)

    def _write_setup(self, job: WorkflowJobModel) -> None:
        setup = first_option(job.options, SetupPythonStep)
        if setup is not None:
            self.write_line()
            with self.section("- name: Setup Python"):
                self.write_line("uses: actions/setup-python@v5")
                with self.section("with:"):
                    self.write_line(f"python-version: {yaml_scalar(setup.python_version, quoted=True)}")
            self.write_line()
            with self.section("- name: Install buildgraph"):
                self.write_line(f"run: {yaml_scalar(setup.install)}")

        for custom in options_of(job.options, CustomStep):
            self.write_line()
            with self.section(f"- name: {yaml_scalar(custom.name)}"):
                self.write_line(f"run: {yaml_scalar(custom.run)}")

    def _write_step(self, job: WorkflowJobModel, step: WorkflowStepModel) -> None:
        if step.kind in (StepKind.DOWNLOAD_ARTIFACT, StepKind.UPLOAD_ARTIFACT):
            download = step.kind is StepKind.DOWNLOAD_ARTIFACT
            verb, action, directory = (
                ("Download", "download-artifact", ARTIFACT_DIRECTORY)
                if download
                else ("Upload", "upload-artifact", PUBLISH_DIRECTORY)
            )
            with self.section(f"- name: {verb} {step.name}"):
                self.write_line(f"uses: actions/{action}@v4")
                with self.section("with:"):
                    self.write_line(f"name: {self.artifact_label(step, job.matrix)}")
                    self.write_line(f'path: "{directory}/{step.name}"')
            return

        with self.section(f"- name: {step.name}"):
            if step.primary:
                self.write_line(f"id: {step.name}")
            self.write_line(f"run: {self.command_line(step.name)}")
            if step.env:
                with self.section("env:"):
                    for b in step.env:
                        self.write_line(f"{b.name}: {self.binding_value(b, job.matrix)}")
