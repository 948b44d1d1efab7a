# workflows/devops.py
"""Cloud pipeline YAML (.devops/workflows/<name>.yml)."""

from __future__ import annotations

from typing import Sequence

from .. import settings
from .definition import (
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
from .writer import WorkflowWriter, yaml_scalar

ARTIFACT_DIRECTORY = "$(Build.SourcesDirectory)/" + settings.ARTIFACTS_DIR
PUBLISH_DIRECTORY = "$(Build.SourcesDirectory)/" + settings.PUBLISH_DIR
DEFAULT_IMAGE = "ubuntu-latest"


def _quoted(value: object) -> str:
    return yaml_scalar(str(value), quoted=True)


class DevopsWorkflowWriter(WorkflowWriter):
    backend = "devops"
    directory = (".devops", "workflows")
    extension = "yml"

    # ---- references ----

    def matrix_reference(self, arg_name: str) -> str:
        return f"$({arg_name})"

    def binding_value(self, binding: EnvBinding, matrix: Sequence[MatrixAxis]) -> str:
        kind = binding.kind
        if kind is BindingKind.INPUT:
            return f"${{{{ parameters.{binding.name} }}}}"
        if kind is BindingKind.VARIABLE:
            # declared as a job variable, see _write_job
            return f"$({binding.name})"
        if kind in (BindingKind.SECRET, BindingKind.VAULT_VARIABLE, BindingKind.ENVIRONMENT):
            return f"$({binding.env_name})"
        if kind is BindingKind.MATRIX:
            return self.matrix_reference(binding.name)
        if kind is BindingKind.SLICE:
            return self.slice_reference(matrix)
        return yaml_scalar(binding.value)

    # ---- workflow ----

    def write_workflow(self, model: WorkflowModel) -> None:
        self.write_line(f"name: {model.name}")
        self.write_line()

        manual = next((t for t in model.triggers if isinstance(t, ManualTrigger)), None)
        if manual is not None and manual.inputs:
            self._write_parameters(manual)

        groups = options_of(model.options, VariableGroup)
        if groups:
            with self.section("variables:"):
                for g in groups:
                    self.write_line(f"- group: {g.name}")

        pushes = [t for t in model.triggers if isinstance(t, GitPushTrigger)]
        pulls = [t for t in model.triggers if isinstance(t, GitPullRequestTrigger)]
        schedules = [t for t in model.triggers if isinstance(t, ScheduleTrigger)]

        if pushes:
            with self.section("trigger:"):
                for push in pushes:
                    self._write_filters(push)
        else:
            self.write_line("trigger: none")

        if pulls:
            with self.section("pr:"):
                for pull in pulls:
                    self._write_filters(pull)
        elif pushes:
            self.write_line("pr: none")

        if schedules:
            with self.section("schedules:"):
                for s in schedules:
                    with self.section(f"- cron: {_quoted(s.cron)}"):
                        self.write_line(f"displayName: {_quoted(s.cron)}")
                        self.write_line("always: true")

        self.write_line()

        with self.section("jobs:"):
            for job in model.jobs:
                self.write_line()
                self._write_job(model, job)

    def _write_parameters(self, manual: ManualTrigger) -> None:
        with self.section("parameters:"):
            for i in manual.inputs:
                with self.section(f"- name: {i.name}"):
                    self.write_line(f"displayName: {_quoted(f'{i.name} | {i.description}')}")
                    if isinstance(i, ManualBoolInput):
                        self.write_line("type: boolean")
                        if i.default is not None:
                            self.write_line(f"default: {'true' if i.default else 'false'}")
                    elif isinstance(i, ManualChoiceInput):
                        self.write_line("type: string")
                        default = i.default if i.default is not None else (i.choices[0] if i.choices else "")
                        self.write_line(f"default: {_quoted(default)}")
                        with self.section("values:"):
                            for choice in i.choices:
                                self.write_line(f"- {_quoted(choice)}")
                    elif isinstance(i, ManualStringInput):
                        self.write_line("type: string")
                        if i.default is not None:
                            self.write_line(f"default: {_quoted(i.default)}")
                    else:
                        self.write_line("type: string")

    def _write_filters(self, trigger) -> None:
        def block(header: str, include: Sequence[str], exclude: Sequence[str]) -> None:
            if not include and not exclude:
                return
            with self.section(header):
                if include:
                    with self.section("include:"):
                        for v in include:
                            self.write_line(f"- {_quoted(v)}")
                if exclude:
                    with self.section("exclude:"):
                        for v in exclude:
                            self.write_line(f"- {_quoted(v)}")

        block("branches:", trigger.included_branches, trigger.excluded_branches)
        block("paths:", trigger.included_paths, trigger.excluded_paths)
        if isinstance(trigger, GitPushTrigger):
            block("tags:", trigger.included_tags, trigger.excluded_tags)

    # ---- jobs ----

    def _write_job(self, model: WorkflowModel, job: WorkflowJobModel) -> None:
        with self.section(f"- job: {job.name}"):
            if job.dependencies:
                self.write_line(f"dependsOn: [ {', '.join(job.dependencies)} ]")

            if job.matrix_instances:
                with self.section("strategy:"), self.section("matrix:"):
                    for inst in job.matrix_instances:
                        with self.section(f"{inst.slice_id}:"):
                            for arg, value in inst.values:
                                self.write_line(f"{arg}: {_quoted(value)}")

            pool = first_option(job.options, RunnerPool)
            with self.section("pool:"):
                if pool is None:
                    self.write_line(f"vmImage: {DEFAULT_IMAGE}")
                else:
                    if pool.name:
                        self.write_line(f"name: {pool.name}")
                    else:
                        self.write_line(f"vmImage: {pool.hosted or (pool.labels[0] if pool.labels else DEFAULT_IMAGE)}")
                    if pool.demands:
                        with self.section("demands:"):
                            for d in pool.demands:
                                self.write_line(f"- {d}")

            env_option = first_option(job.options, DeployEnvironment)
            if env_option is not None:
                with self.section("environment:"):
                    self.write_line(f"name: {env_option.name}")

            if job.consumed_variables:
                with self.section("variables:"):
                    for producer, arg in job.consumed_variables:
                        self.write_line(f"{arg}: $[ dependencies.{producer}.outputs['{producer}.{arg}'] ]")

            with self.section("steps:"):
                self.write_line()
                with self.section("- checkout: self"):
                    self.write_line("fetchDepth: 0")

                self._write_setup(job)

                for step in job.steps:
                    self.write_line()
                    self._write_step(job, step)

    def _write_setup(self, job: WorkflowJobModel) -> None:
        setup = first_option(job.options, SetupPythonStep)
        if setup is not None:
            self.write_line()
            with self.section("- task: UsePythonVersion@0"):
                self.write_line("displayName: Setup Python")
                with self.section("inputs:"):
                    self.write_line(f"versionSpec: {_quoted(setup.python_version)}")
            self.write_line()
            with self.section(f"- script: {yaml_scalar(setup.install)}"):
                self.write_line("displayName: Install buildgraph")

        for custom in options_of(job.options, CustomStep):
            self.write_line()
            with self.section(f"- script: {yaml_scalar(custom.run)}"):
                self.write_line(f"displayName: {_quoted(custom.name)}")

    def _write_step(self, job: WorkflowJobModel, step: WorkflowStepModel) -> None:
        if step.kind is StepKind.DOWNLOAD_ARTIFACT:
            label = self.artifact_label(step, job.matrix)
            with self.section("- task: DownloadPipelineArtifact@2"):
                self.write_line(f"displayName: {label}")
                with self.section("inputs:"):
                    self.write_line(f"artifact: {label}")
                    self.write_line(f'path: "{ARTIFACT_DIRECTORY}/{step.name}"')
            return

        if step.kind is StepKind.UPLOAD_ARTIFACT:
            label = self.artifact_label(step, job.matrix)
            with self.section("- task: PublishPipelineArtifact@1"):
                self.write_line(f"displayName: {label}")
                with self.section("inputs:"):
                    self.write_line(f"artifactName: {label}")
                    self.write_line(f'targetPath: "{PUBLISH_DIRECTORY}/{step.name}"')
            return

        with self.section(f"- script: {self.command_line(step.name)}"):
            if step.primary:
                self.write_line(f"name: {step.name}")
            if step.env:
                with self.section("env:"):
                    for b in step.env:
                        self.write_line(f"{b.name}: {self.binding_value(b, job.matrix)}")
