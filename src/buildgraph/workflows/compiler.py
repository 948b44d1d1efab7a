# workflows/compiler.py
"""
Build model + workflow definition -> backend-neutral WorkflowModel.

Compilation never raises for inconsistencies inside a workflow: they are
logged as warnings (and kept on WorkflowModel.warnings) and only the broken
binding is dropped. A workflow naming a target that does not exist is a
configuration error.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from ..artifacts import (
    ARTIFACTS_PARAM,
    BUILD_SLICE_PARAM,
    RETRIEVE_ARTIFACT_TARGET,
    STORE_ARTIFACT_TARGET,
)
from ..dag import ConfigurationError
from ..model import BuildModel, ConsumedArtifact, ProducedArtifact, TargetModel
from ..params import ParamCatalog
from .definition import (
    EnvironmentInjection,
    ManualBoolInput,
    ManualInput,
    ManualTrigger,
    ParamInjection,
    SecretInjection,
    VaultEnvironmentInjection,
    VaultSecretInjection,
    WorkflowDefinition,
    WorkflowOption,
    WorkflowTargetDefinition,
    WorkflowTrigger,
    custom_artifacts_enabled,
    merge_options,
    options_of,
)
from .model import (
    BindingKind,
    EnvBinding,
    MatrixAxis,
    MatrixInstance,
    StepKind,
    WorkflowJobModel,
    WorkflowModel,
    WorkflowStepModel,
)

log = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Matrix
# ----------------------------------------------------------------------

def sanitize_slice_value(value: str) -> str:
    cleaned = "".join(c if c.isalnum() else "-" for c in value)
    while "--" in cleaned:
        cleaned = cleaned.replace("--", "-")
    return cleaned.strip("-")


def slice_id(counter: int, values: Iterable[str]) -> str:
    """slice_id(3, ["b", "1"]) -> '003_b_1'"""
    return f"{counter:03d}_" + "_".join(sanitize_slice_value(v) for v in values)


def expand_matrix(axes: Sequence[MatrixAxis]) -> tuple[MatrixInstance, ...]:
    """Cartesian product of all axes; the first axis varies slowest."""
    if not axes:
        return ()
    names = [a.arg_name for a in axes]
    return tuple(
        MatrixInstance(slice_id(i, combo), tuple(zip(names, combo)))
        for i, combo in enumerate(itertools.product(*(a.values for a in axes)), start=1)
    )


# ----------------------------------------------------------------------
# Compiler
# ----------------------------------------------------------------------

class _Compilation:
    def __init__(
        self,
        definition: WorkflowDefinition,
        build_model: BuildModel,
        catalog: ParamCatalog,
    ):
        self.definition = definition
        self.build_model = build_model
        self.catalog = catalog
        self.warnings: List[str] = []

        self.options = merge_options(definition.options)
        self.refs: Dict[str, WorkflowTargetDefinition] = {}
        for ref in definition.targets:
            if not build_model.has_target(ref.name):
                raise ConfigurationError(
                    f"Workflow '{definition.name}' references target '{ref.name}' which does not exist.",
                    [ref.name],
                )
            self.refs[ref.name] = ref

        # resolver order restricted to the workflow's targets
        self.in_scope: List[TargetModel] = [t for t in build_model.targets if t.name in self.refs]
        self.scope_names = {t.name for t in self.in_scope}
        self.suppressed = {n for n, r in self.refs.items() if r.suppress_artifact_publishing}
        self.custom_artifacts = custom_artifacts_enabled(self.options)
        self.manual_inputs: List[ManualInput] = [
            i for trig in definition.triggers if isinstance(trig, ManualTrigger) for i in trig.inputs
        ]

    def warn(self, message: str) -> None:
        text = f"Workflow {self.definition.name}: {message}"
        if text not in self.warnings:
            log.warning(text)
            self.warnings.append(text)

    # ---- top level ----

    def run(self) -> WorkflowModel:
        triggers = tuple(self._trigger(t) for t in self.definition.triggers)
        jobs = tuple(self._job(t) for t in self.in_scope)
        return WorkflowModel(
            name=self.definition.name,
            triggers=triggers,
            options=tuple(self.options),
            jobs=jobs,
            warnings=tuple(self.warnings),
        )

    def _trigger(self, trigger: WorkflowTrigger) -> WorkflowTrigger:
        if not isinstance(trigger, ManualTrigger):
            return trigger

        inputs = []
        for i in trigger.inputs:
            d = self.catalog.find_by_arg_name(i.name)
            if d is None:
                self.warn(f"manual input '{i.name}' does not correspond to any param")
                inputs.append(i)
                continue
            # fall back to the param's declared default
            if hasattr(i, "default") and i.default is None and d.default is not None:
                if isinstance(i, ManualBoolInput):
                    i = replace(i, default=d.default.lower() in ("true", "1", "yes"))
                else:
                    i = replace(i, default=d.default)
            inputs.append(i)
        return ManualTrigger(tuple(inputs))

    # ---- jobs ----

    def _job(self, target: TargetModel) -> WorkflowJobModel:
        ref = self.refs[target.name]
        step_options = tuple(ref.options)

        axes = []
        for dim in ref.matrix_dimensions:
            if not dim.values:
                self.warn(f"target {target.name} has matrix dimension '{dim.name}' with no values; ignoring it")
                continue
            axes.append(MatrixAxis(self.catalog.external_arg_name(dim.name), tuple(dim.values)))
        matrix = tuple(axes)

        steps: List[WorkflowStepModel] = []
        steps.extend(self._retrieve_steps(target, step_options, matrix))
        steps.append(
            WorkflowStepModel(
                kind=StepKind.COMMAND,
                name=target.name,
                env=self._command_env(target, step_options, self._matrix_bindings(matrix)),
                primary=True,
            )
        )
        if not ref.suppress_artifact_publishing:
            steps.extend(self._store_steps(target, step_options, matrix))

        consumed: List[tuple[str, str]] = []
        for step in steps:
            t = self.build_model.get_target(step.name) if step.is_command() and self.build_model.has_target(step.name) else None
            if t is None:
                continue
            for cv in t.consumed_variables:
                pair = (cv.target_name, self.catalog.external_arg_name(cv.variable_name))
                if cv.target_name in self.scope_names and pair not in consumed:
                    consumed.append(pair)

        return WorkflowJobModel(
            name=target.name,
            dependencies=tuple(d.name for d in target.dependencies if d.name in self.scope_names),
            matrix=matrix,
            matrix_instances=expand_matrix(matrix),
            steps=tuple(steps),
            options=tuple(merge_options((*self.options, *step_options))),
            consumed_variables=tuple(consumed),
            outputs=tuple(self.catalog.external_arg_name(v) for v in target.produced_variables),
            suppress_artifact_publishing=ref.suppress_artifact_publishing,
        )

    @staticmethod
    def _matrix_bindings(matrix: Sequence[MatrixAxis]) -> List[EnvBinding]:
        if not matrix:
            return []
        out = [EnvBinding(a.arg_name, BindingKind.MATRIX) for a in matrix]
        out.append(EnvBinding(BUILD_SLICE_PARAM, BindingKind.SLICE))
        return out

    # ---- artifacts ----

    def _check_consumed(self, target: TargetModel, artifact: ConsumedArtifact) -> None:
        producer = artifact.target_name
        if producer not in self.scope_names:
            self.warn(
                f"target {target.name} consumes artifact {artifact.artifact_name} from target {producer}, "
                f"which is not part of this workflow"
            )
            return
        if producer in self.suppressed:
            self.warn(
                f"target {target.name} consumes artifact {artifact.artifact_name} from target {producer}, "
                f"which has artifact publishing suppressed; this may cause the workflow to fail"
            )
        produced = self.build_model.get_target(producer).produced_artifacts
        if not any(p.artifact_name == artifact.artifact_name for p in produced):
            self.warn(
                f"target {target.name} consumes artifact {artifact.artifact_name} "
                f"which target {producer} does not produce"
            )

    @staticmethod
    def _group_by_slice(artifacts: Sequence[ProducedArtifact | ConsumedArtifact]) -> List[tuple[Optional[str], List[str]]]:
        groups: Dict[Optional[str], List[str]] = {}
        for a in artifacts:
            groups.setdefault(a.build_slice or None, []).append(a.artifact_name)
        return list(groups.items())

    def _provider_step(
        self,
        kind: StepKind,
        target_name: str,
        names: List[str],
        build_slice: Optional[str],
        step_options: Sequence[WorkflowOption],
        matrix: Sequence[MatrixAxis],
    ) -> WorkflowStepModel:
        extras = [EnvBinding(ARTIFACTS_PARAM, BindingKind.LITERAL, ",".join(names))]
        if build_slice:
            extras.append(EnvBinding(BUILD_SLICE_PARAM, BindingKind.LITERAL, build_slice))
        elif matrix:
            extras.append(EnvBinding(BUILD_SLICE_PARAM, BindingKind.SLICE))

        if self.build_model.has_target(target_name):
            env = self._command_env(self.build_model.get_target(target_name), step_options, extras)
        else:
            self.warn(f"custom artifact provider is enabled but target {target_name} is not defined")
            env = tuple(extras)

        return WorkflowStepModel(
            kind=kind,
            name=target_name,
            env=env,
            artifacts=tuple(names),
            build_slice=build_slice,
        )

    def _retrieve_steps(self, target, step_options, matrix) -> List[WorkflowStepModel]:
        for a in target.consumed_artifacts:
            self._check_consumed(target, a)

        if not target.consumed_artifacts:
            return []
        if self.custom_artifacts:
            return [
                self._provider_step(StepKind.RETRIEVE_ARTIFACTS, RETRIEVE_ARTIFACT_TARGET, names, s, step_options, matrix)
                for s, names in self._group_by_slice(target.consumed_artifacts)
            ]
        return [
            WorkflowStepModel(kind=StepKind.DOWNLOAD_ARTIFACT, name=a.artifact_name, build_slice=a.build_slice)
            for a in target.consumed_artifacts
        ]

    def _store_steps(self, target, step_options, matrix) -> List[WorkflowStepModel]:
        if not target.produced_artifacts:
            return []
        if self.custom_artifacts:
            return [
                self._provider_step(StepKind.STORE_ARTIFACTS, STORE_ARTIFACT_TARGET, names, s, step_options, matrix)
                for s, names in self._group_by_slice(target.produced_artifacts)
            ]
        return [
            WorkflowStepModel(kind=StepKind.UPLOAD_ARTIFACT, name=a.artifact_name, build_slice=a.build_slice)
            for a in target.produced_artifacts
        ]

    # ---- env ----

    def _command_env(
        self,
        target: TargetModel,
        step_options: Sequence[WorkflowOption],
        extras: Sequence[EnvBinding] = (),
    ) -> tuple[EnvBinding, ...]:
        env: Dict[str, EnvBinding] = {}
        catalog = self.catalog
        param_args = {catalog.external_arg_name(p.name) for p in target.params}

        for i in self.manual_inputs:
            if i.name in param_args:
                env[i.name] = EnvBinding(i.name, BindingKind.INPUT)

        for cv in target.consumed_variables:
            arg = catalog.external_arg_name(cv.variable_name)
            if cv.target_name not in self.scope_names:
                self.warn(
                    f"target {target.name} consumes variable {cv.variable_name} from target {cv.target_name}, "
                    f"which is not part of this workflow"
                )
                continue
            producer = self.build_model.get_target(cv.target_name)
            if cv.variable_name not in producer.produced_variables:
                self.warn(
                    f"target {target.name} consumes variable {cv.variable_name} "
                    f"which target {cv.target_name} does not produce"
                )
            env[arg] = EnvBinding(arg, BindingKind.VARIABLE, source=cv.target_name)

        all_options = [*self.options, *step_options]
        secret_params = [p.name for p in target.params if catalog.is_secret(p.name)]

        if secret_params:
            for opt in options_of(all_options, VaultSecretInjection):
                d = self._injected_param(target, opt.param, "vault secret injection")
                if d is not None:
                    env[d.arg_name] = EnvBinding(d.arg_name, BindingKind.SECRET)
            for opt in options_of(all_options, VaultEnvironmentInjection):
                d = self._injected_param(target, opt.param, "vault environment injection")
                if d is not None:
                    env[d.arg_name] = EnvBinding(d.arg_name, BindingKind.VAULT_VARIABLE)

            injections = options_of(all_options, SecretInjection)
            if any(not o.param for o in injections):
                self.warn(f"target {target.name} has a secret injection with a null value")
            for opt in injections:
                if opt.param and opt.param not in catalog:
                    self.warn(f"secret injection references param '{opt.param}' which does not exist")
            for key in secret_params:
                if any(o.param == key for o in injections):
                    arg = catalog.external_arg_name(key)
                    env[arg] = EnvBinding(arg, BindingKind.SECRET)

        param_injections = options_of(all_options, ParamInjection)
        overridden = {p.param for p in param_injections}
        for opt in options_of(all_options, EnvironmentInjection):
            if opt.param in overridden:
                continue
            d = self._injected_param(target, opt.param, "environment injection")
            if d is not None:
                env[d.arg_name] = EnvBinding(d.arg_name, BindingKind.ENVIRONMENT)

        for opt in param_injections:
            d = self._injected_param(target, opt.param, "param injection")
            if d is not None:
                env[d.arg_name] = EnvBinding(d.arg_name, BindingKind.LITERAL, opt.value)

        for b in extras:
            env[b.name] = b

        return tuple(b for b in env.values() if b.kind is not BindingKind.LITERAL or b.value)

    def _injected_param(self, target: TargetModel, key: Optional[str], what: str):
        if not key:
            self.warn(f"target {target.name} has a {what} with a null value")
            return None
        d = self.catalog.get(key)
        if d is None:
            self.warn(f"target {target.name} has a {what} for param '{key}' which does not exist")
        return d


def compile_workflow(
    definition: WorkflowDefinition,
    build_model: BuildModel,
    catalog: ParamCatalog | None = None,
) -> WorkflowModel:
    """
    Compile one workflow definition. Pure: same inputs, same model.

    The model does not depend on the backend; every writer renders the same one.
    """
    log.debug("compiling workflow %s", definition.name)
    return _Compilation(definition, build_model, catalog or ParamCatalog()).run()
