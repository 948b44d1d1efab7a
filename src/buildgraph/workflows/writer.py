# workflows/writer.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

import yaml

from .model import EnvBinding, MatrixAxis, WorkflowModel, WorkflowStepModel

log = logging.getLogger(__name__)

DEFAULT_COMMAND = "buildgraph run"

# never fold long scalars across lines
_NO_WRAP = 2 ** 30


def yaml_scalar(value: str, *, quoted: bool = False) -> str:
    """
    Render one string as a YAML scalar for the value side of `key: `.

    PyYAML quotes it whenever a reader would resolve it to another type
    (numbers, booleans, null); `quoted` forces single quotes.
    """
    text = yaml.safe_dump(
        [str(value)],
        default_flow_style=False,
        default_style="'" if quoted else None,
        allow_unicode=True,
        width=_NO_WRAP,
    )
    # "- <scalar>\n"
    return text[2:].rstrip("\n")


def yaml_flow_list(values: Iterable[str]) -> str:
    """`[a, b]` with each item quoted as needed."""
    return yaml.safe_dump(
        [str(v) for v in values],
        default_flow_style=True,
        allow_unicode=True,
        width=_NO_WRAP,
    ).rstrip("\n")


class WorkflowWriter:
    """
    Base for backend writers.

    Subclasses implement write_workflow() with write_line()/section();
    render() returns the text, generate() puts it on disk.
    """
    backend: str = ""
    directory: tuple[str, ...] = ()
    extension: str = ""
    tab_size: int = 2

    def __init__(self, command: str = DEFAULT_COMMAND):
        self.command = command
        self._lines: List[str] = []
        self._indent = 0

    # ---- emission ----

    def write_line(self, text: str = "") -> None:
        if text:
            self._lines.append(" " * (self._indent * self.tab_size) + text)
        else:
            self._lines.append("")

    def indent(self) -> None:
        self._indent += 1

    def dedent(self) -> None:
        if self._indent == 0:
            raise RuntimeError("dedent below column zero")
        self._indent -= 1

    @contextmanager
    def section(self, header: str | None = None) -> Iterator[None]:
        if header is not None:
            self.write_line(header)
        self.indent()
        try:
            yield
        finally:
            self.dedent()

    # ---- rendering ----

    def write_workflow(self, model: WorkflowModel) -> None:
        raise NotImplementedError

    def render(self, model: WorkflowModel) -> str:
        self._lines = []
        self._indent = 0
        self.write_workflow(model)
        # collapse runs of blank lines, drop trailing ones
        out: List[str] = []
        for line in self._lines:
            if line == "" and (not out or out[-1] == ""):
                continue
            out.append(line)
        while out and out[-1] == "":
            out.pop()
        self._lines = []
        return "\n".join(out) + "\n"

    # ---- shared helpers ----

    def command_line(self, target: str) -> str:
        return f"{self.command} {target} --skip --headless"

    def binding_value(self, binding: EnvBinding, matrix: Sequence[MatrixAxis]) -> str:
        raise NotImplementedError

    def matrix_reference(self, arg_name: str) -> str:
        raise NotImplementedError

    def slice_reference(self, matrix: Sequence[MatrixAxis]) -> str:
        return "-".join(self.matrix_reference(a.arg_name) for a in matrix)

    def artifact_label(self, step: WorkflowStepModel, matrix: Sequence[MatrixAxis]) -> str:
        """Artifact name as stored by the backend, suffixed with its slice."""
        if step.build_slice:
            return f"{step.name}-{step.build_slice}"
        if matrix:
            return f"{step.name}-{self.slice_reference(matrix)}"
        return step.name

    # ---- files ----

    def path_for(self, model: WorkflowModel, root: str | Path = ".") -> Path:
        return Path(root).joinpath(*self.directory) / f"{model.name}.{self.extension}"

    def is_dirty(self, model: WorkflowModel, root: str | Path = ".") -> bool:
        path = self.path_for(model, root)
        if not path.exists():
            return True
        return path.read_text(encoding="utf-8") != self.render(model)

    def generate(self, model: WorkflowModel, root: str | Path = ".") -> bool:
        """Write the workflow file if its content changed. Returns True when written."""
        path = self.path_for(model, root)
        text = self.render(model)
        existed = path.exists()

        if existed and path.read_text(encoding="utf-8") == text:
            log.debug("%s workflow %s is up to date", self.backend, path)
            return False

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        log.info("%s %s workflow %s", "Updated" if existed else "Created", self.backend, path)
        return True
