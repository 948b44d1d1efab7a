# dag.py
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Sequence

from .model import BuildModel, RunState, TargetDefinition, TargetModel, TargetState

log = logging.getLogger(__name__)

# DFS marks
_UNVISITED = 0
_IN_PROGRESS = 1
_DONE = 2


class ConfigurationError(Exception):
    """Fatal build-graph error. Raised before anything runs."""

    def __init__(self, message: str, targets: Sequence[str] = ()):
        super().__init__(message)
        self.targets = list(targets)


# ----------------------------------------------------------------------
# Extensions
# ----------------------------------------------------------------------

def apply_extensions(
    definition: TargetDefinition,
    by_name: Dict[str, TargetDefinition],
    _seen: tuple[str, ...] = (),
) -> TargetDefinition:
    """
    Merge every extended base definition into `definition`.

    Base contracts are prepended unless the extension asks to run after.
    """
    if not definition.extends:
        return definition

    if definition.name in _seen:
        chain = " -> ".join((*_seen, definition.name))
        raise ConfigurationError(f"Circular target extension detected: {chain}.", [definition.name])

    merged = definition
    for ext in definition.extends:
        base = by_name.get(ext.target_name)
        if base is None:
            raise ConfigurationError(
                f"Target '{definition.name}' extends target '{ext.target_name}' which does not exist.",
                [definition.name, ext.target_name],
            )
        base = apply_extensions(base, by_name, (*_seen, definition.name))

        def join(ours: tuple, theirs: tuple) -> tuple:
            return ours + theirs if ext.run_after else theirs + ours

        merged = replace(
            merged,
            tasks=join(merged.tasks, base.tasks),
            dependencies=join(merged.dependencies, base.dependencies),
            params=join(merged.params, base.params),
            produced_artifacts=join(merged.produced_artifacts, base.produced_artifacts),
            consumed_artifacts=join(merged.consumed_artifacts, base.consumed_artifacts),
            produced_variables=join(merged.produced_variables, base.produced_variables),
            consumed_variables=join(merged.consumed_variables, base.consumed_variables),
        )

    return replace(merged, extends=())


# ----------------------------------------------------------------------
# Graph
# ----------------------------------------------------------------------

def _dependency_names(definition: TargetDefinition) -> List[str]:
    """Declared deps plus producers of consumed artifacts/variables, de-duplicated in order."""
    names: List[str] = []
    for n in (
        *definition.dependencies,
        *(a.target_name for a in definition.consumed_artifacts),
        *(v.target_name for v in definition.consumed_variables),
    ):
        if n not in names:
            names.append(n)
    return names


def topo_sort(models: List[TargetModel]) -> List[TargetModel]:
    """
    Order targets dependencies-first using an iterative DFS.

    Nodes are addressed by index into `models`; each carries a three-state
    mark. Hitting an in-progress node means a cycle.
    """
    index = {id(m): i for i, m in enumerate(models)}
    marks = [_UNVISITED] * len(models)
    ordered: List[TargetModel] = []

    for root in range(len(models)):
        if marks[root] != _UNVISITED:
            continue

        # (node index, next dependency position)
        stack: List[List[int]] = [[root, 0]]
        marks[root] = _IN_PROGRESS

        while stack:
            frame = stack[-1]
            node, pos = frame
            deps = models[node].dependencies

            if pos < len(deps):
                frame[1] += 1
                child = index[id(deps[pos])]

                if marks[child] == _IN_PROGRESS:
                    path_nodes = [models[f[0]].name for f in stack]
                    start = path_nodes.index(models[child].name)
                    cycle = path_nodes[start:] + [models[child].name]
                    raise ConfigurationError(
                        f"Circular dependency detected: {' -> '.join(cycle)}.",
                        cycle,
                    )
                if marks[child] == _UNVISITED:
                    marks[child] = _IN_PROGRESS
                    stack.append([child, 0])
                continue

            marks[node] = _DONE
            ordered.append(models[node])
            stack.pop()

    return ordered


def resolve(
    definitions: Iterable[TargetDefinition],
    requested: Sequence[str] = (),
    skip_dependencies: bool = False,
) -> BuildModel:
    """
    Build a validated, ordered BuildModel.

    Raises ConfigurationError on duplicate names, missing dependencies,
    missing extension bases or cycles.
    """
    definitions = list(definitions)

    names = [d.name for d in definitions]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ConfigurationError(
            f"One or more targets are defined multiple times: {', '.join(repr(d) for d in dupes)}.",
            dupes,
        )

    by_name = {d.name: d for d in definitions}
    definitions = [apply_extensions(d, by_name) for d in definitions]

    models = [
        TargetModel(
            name=d.name,
            description=d.description,
            hidden=d.hidden,
            tasks=d.tasks,
            params=d.params,
            produced_artifacts=d.produced_artifacts,
            consumed_artifacts=d.consumed_artifacts,
            produced_variables=d.produced_variables,
            consumed_variables=d.consumed_variables,
        )
        for d in definitions
    ]
    model_by_name = {m.name: m for m in models}

    for d in definitions:
        model = model_by_name[d.name]
        for dep in _dependency_names(d):
            if dep not in model_by_name:
                raise ConfigurationError(
                    f"Target '{d.name}' depends on target '{dep}' which does not exist.",
                    [d.name, dep],
                )
            model.dependencies.append(model_by_name[dep])

    ordered = topo_sort(models)
    states: Dict[TargetModel, TargetState] = {t: TargetState(t.name) for t in ordered}

    for name in requested:
        if name not in model_by_name:
            raise KeyError(f"Target '{name}' not found")
        states[model_by_name[name]].status = RunState.PENDING_RUN

    if not skip_dependencies:
        modified = True
        while modified:
            modified = False
            for t in ordered:
                if states[t].status is not RunState.PENDING_RUN:
                    continue
                for dep in t.dependencies:
                    if states[dep].status is not RunState.PENDING_RUN:
                        states[dep].status = RunState.PENDING_RUN
                        modified = True

    log.debug(
        "resolved %d targets, %d pending",
        len(ordered),
        sum(1 for s in states.values() if s.status is RunState.PENDING_RUN),
    )
    return BuildModel(targets=ordered, states=states)
