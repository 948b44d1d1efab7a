# workflows/generator.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Type

from ..model import BuildModel
from ..params import ParamCatalog
from .compiler import compile_workflow
from .definition import WorkflowDefinition
from .devops import DevopsWorkflowWriter
from .github import GithubWorkflowWriter
from .shell import ShellWorkflowWriter
from .writer import DEFAULT_COMMAND, WorkflowWriter

log = logging.getLogger(__name__)

BACKENDS: Dict[str, Type[WorkflowWriter]] = {
    DevopsWorkflowWriter.backend: DevopsWorkflowWriter,
    GithubWorkflowWriter.backend: GithubWorkflowWriter,
    ShellWorkflowWriter.backend: ShellWorkflowWriter,
}


def writer_for(backend: str, command: str = DEFAULT_COMMAND) -> WorkflowWriter:
    try:
        return BACKENDS[backend](command)
    except KeyError:
        raise ValueError(
            f"Unknown workflow backend '{backend}'. Known backends: {', '.join(sorted(BACKENDS))}"
        ) from None


def _each(build_model: BuildModel, definitions: Iterable[WorkflowDefinition], catalog, command: str):
    for definition in definitions:
        if not definition.backends:
            log.warning("Workflow %s has no backends; nothing to generate", definition.name)
            continue
        model = compile_workflow(definition, build_model, catalog)
        for backend in definition.backends:
            yield model, writer_for(backend, command)


def generate_workflows(
    build_model: BuildModel,
    definitions: Iterable[WorkflowDefinition],
    catalog: ParamCatalog | None = None,
    root: str | Path = ".",
    *,
    command: str = DEFAULT_COMMAND,
) -> List[Path]:
    """Compile and write every (workflow, backend) pair. Returns the files that changed."""
    written: List[Path] = []
    for model, writer in _each(build_model, definitions, catalog, command):
        if writer.generate(model, root):
            written.append(writer.path_for(model, root))
    return written


def check_workflows(
    build_model: BuildModel,
    definitions: Iterable[WorkflowDefinition],
    catalog: ParamCatalog | None = None,
    root: str | Path = ".",
    *,
    command: str = DEFAULT_COMMAND,
) -> List[Path]:
    """Return the workflow files that are missing or out of date."""
    stale: List[Path] = []
    for model, writer in _each(build_model, definitions, catalog, command):
        if writer.is_dirty(model, root):
            stale.append(writer.path_for(model, root))
    return stale
