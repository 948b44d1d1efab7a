from __future__ import annotations

import pytest

from buildgraph.artifacts import FileArtifactProvider
from buildgraph.params import ParamCatalog, ParamService
from buildgraph.runner import Services
from buildgraph.ui.console import Console
from buildgraph.variables import FileVariableProvider, VariableService


@pytest.fixture
def make_services(tmp_path):
    """Services isolated from the real environment, rooted in tmp_path."""

    def make(catalog=None, cli_args=None, environ=None, config=None):
        params = ParamService(
            catalog or ParamCatalog(),
            cli_args=cli_args,
            config=config,
            environ=environ or {},
        )
        return Services(
            params=params,
            variables=VariableService(params, [FileVariableProvider(tmp_path / "state")]),
            artifacts=FileArtifactProvider(
                tmp_path / "store", tmp_path / "publish", tmp_path / "artifacts", "run-1"
            ),
            build_id="run-1",
            root=tmp_path,
        )

    return make


@pytest.fixture
def console():
    return Console()
