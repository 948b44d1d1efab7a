# src/buildgraph/dsl.py
from __future__ import annotations

from typing import Callable, Iterable, List, Optional, Sequence, Union

from .model import (
    ConsumedArtifact,
    ConsumedVariable,
    DefinedParam,
    Extension,
    ProducedArtifact,
    Step,
    Task,
    TargetDefinition,
)
from .workflows.definition import (
    MatrixDimension,
    WorkflowDefinition,
    WorkflowOption,
    WorkflowTargetDefinition,
    WorkflowTrigger,
)


# ---------------------------------------------------------------------
# Step helper
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd)


# ---------------------------------------------------------------------
# Functional target helper
# ---------------------------------------------------------------------

def target(
    name: str,
    *tasks: Task,
    description: str | None = None,
    hidden: bool = False,
    depends_on: Optional[Sequence[str]] = None,
    requires: Optional[Sequence[str]] = None,
    uses: Optional[Sequence[str]] = None,
    produces: Optional[Sequence[str]] = None,
    consumes: Optional[Sequence[tuple]] = None,
    produces_variables: Optional[Sequence[str]] = None,
    consumes_variables: Optional[Sequence[tuple[str, str]]] = None,
    extends: Optional[Sequence[str]] = None,
) -> TargetDefinition:
    """
    Build a TargetDefinition in one call.

    `consumes` takes (target, artifact) or (target, artifact, slice) tuples,
    `consumes_variables` takes (target, variable) tuples.
    """
    params = [DefinedParam(p, True) for p in (requires or [])]
    params += [DefinedParam(p, False) for p in (uses or [])]

    return TargetDefinition(
        name=name,
        description=description,
        hidden=hidden,
        tasks=tuple(tasks),
        dependencies=tuple(depends_on or ()),
        params=tuple(params),
        produced_artifacts=tuple(ProducedArtifact(a) for a in (produces or ())),
        consumed_artifacts=tuple(ConsumedArtifact(*c) for c in (consumes or ())),
        produced_variables=tuple(produces_variables or ()),
        consumed_variables=tuple(ConsumedVariable(t, v) for t, v in (consumes_variables or ())),
        extends=tuple(Extension(e) for e in (extends or ())),
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class TargetBuilder:
    def __init__(self, name: str):
        self.name = name
        self._description: str | None = None
        self._hidden = False
        self._tasks: list[Task] = []
        self._deps: list[str] = []
        self._params: list[DefinedParam] = []
        self._produced_artifacts: list[ProducedArtifact] = []
        self._consumed_artifacts: list[ConsumedArtifact] = []
        self._produced_variables: list[str] = []
        self._consumed_variables: list[ConsumedVariable] = []
        self._extends: list[Extension] = []

    def described_as(self, description: str):
        self._description = description
        return self

    def hidden(self, hidden: bool = True):
        self._hidden = hidden
        return self

    def executes(self, *tasks: Task):
        self._tasks.extend(tasks)
        return self

    def step(self, name: str, run: str, cwd: str | None = None):
        self._tasks.append(Step(name=name, run=run, cwd=cwd))
        return self

    def depends_on(self, *target_names: str):
        self._deps.extend(target_names)
        return self

    def requires_param(self, *param_names: str):
        self._params.extend(DefinedParam(p, True) for p in param_names)
        return self

    def uses_param(self, *param_names: str):
        self._params.extend(DefinedParam(p, False) for p in param_names)
        return self

    def produces_artifact(self, artifact_name: str, build_slice: str | None = None):
        self._produced_artifacts.append(ProducedArtifact(artifact_name, build_slice))
        return self

    def consumes_artifact(
        self,
        target_name: str,
        artifact_name: str,
        build_slice: Union[str, Iterable[str], None] = None,
    ):
        # several slices of the same artifact
        if build_slice is not None and not isinstance(build_slice, str):
            for s in build_slice:
                self._consumed_artifacts.append(ConsumedArtifact(target_name, artifact_name, s))
            return self
        self._consumed_artifacts.append(ConsumedArtifact(target_name, artifact_name, build_slice))
        return self

    def produces_variable(self, variable_name: str):
        self._produced_variables.append(variable_name)
        return self

    def consumes_variable(self, target_name: str, variable_name: str):
        self._consumed_variables.append(ConsumedVariable(target_name, variable_name))
        return self

    def extends(self, target_name: str, *, run_after: bool = False):
        self._extends.insert(0, Extension(target_name, run_after))
        return self

    def build(self) -> TargetDefinition:
        return TargetDefinition(
            name=self.name,
            description=self._description,
            hidden=self._hidden,
            tasks=tuple(self._tasks),
            dependencies=tuple(self._deps),
            params=tuple(self._params),
            produced_artifacts=tuple(self._produced_artifacts),
            consumed_artifacts=tuple(self._consumed_artifacts),
            produced_variables=tuple(self._produced_variables),
            consumed_variables=tuple(self._consumed_variables),
            extends=tuple(self._extends),
        )


def build(name: str) -> TargetBuilder:
    """Convenience: build('Test').step(...).build()"""
    return TargetBuilder(name)


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------

Factory = Callable[[TargetBuilder], Union[TargetBuilder, TargetDefinition, None]]


class TargetRegistry:
    """
    Name -> builder function table.

    Factories run on every call to definitions(), so each resolve gets
    fresh definitions. Registering a name twice keeps both entries; the
    resolver rejects the duplicate.
    """

    def __init__(self) -> None:
        self._entries: List[tuple[str, Union[Factory, TargetDefinition]]] = []

    def add(self, definition: TargetDefinition) -> TargetDefinition:
        self._entries.append((definition.name, definition))
        return definition

    def register(self, name: str | None = None):
        """
        Decorator form:

            @registry.register()
            def Build(t):
                return t.depends_on("Restore").step("compile", "make")
        """
        def deco(fn: Factory) -> Factory:
            self._entries.append((name or fn.__name__, fn))
            return fn
        return deco

    def include(self, other: TargetRegistry) -> TargetRegistry:
        """Compose another registry's targets into this one."""
        self._entries.extend(other._entries)
        return self

    def names(self) -> list[str]:
        return [n for n, _ in self._entries]

    def definitions(self) -> list[TargetDefinition]:
        out: list[TargetDefinition] = []
        for name, entry in self._entries:
            if isinstance(entry, TargetDefinition):
                out.append(entry)
                continue
            builder = TargetBuilder(name)
            result = entry(builder)
            if result is None:
                result = builder
            if isinstance(result, TargetBuilder):
                result = result.build()
            if not isinstance(result, TargetDefinition):
                raise TypeError(
                    f"Target factory {name!r} must return a TargetBuilder or TargetDefinition, "
                    f"got {type(result).__name__}"
                )
            out.append(result)
        return out

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------
# Matrix / workflow helpers
# ---------------------------------------------------------------------

def matrix(param: str, values: Iterable[object]) -> MatrixDimension:
    """matrix("os", ["ubuntu-latest", "windows-latest"])"""
    return MatrixDimension(param, tuple(str(v) for v in values))


def workflow(
    name: str,
    *,
    targets: Sequence[Union[str, WorkflowTargetDefinition]] = (),
    triggers: Sequence[WorkflowTrigger] = (),
    options: Sequence[WorkflowOption] = (),
    backends: Sequence[str] = (),
) -> WorkflowDefinition:
    """Workflow definition helper; bare strings become plain target references."""
    refs = [t if isinstance(t, WorkflowTargetDefinition) else WorkflowTargetDefinition(t) for t in targets]
    return WorkflowDefinition(
        name=name,
        triggers=tuple(triggers),
        options=tuple(options),
        targets=tuple(refs),
        backends=tuple(backends),
    )


def step_ref(name: str) -> WorkflowTargetDefinition:
    """Start a workflow target reference for chaining: step_ref("Test").with_matrix(...)"""
    return WorkflowTargetDefinition(name)


__all__ = [
    "sh",
    "target",
    "TargetBuilder",
    "build",
    "TargetRegistry",
    "matrix",
    "workflow",
    "step_ref",
]

