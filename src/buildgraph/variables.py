# variables.py
"""
Variables: small values one target writes and a later target (possibly in
another CI job) reads. Each CI backend has its own transport; locally they
live in a JSON file under the state directory.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Protocol

from .params import ParamCatalog, ParamService, env_var_name

log = logging.getLogger(__name__)


class VariableProvider(Protocol):
    async def write_variable(self, target: str, arg_name: str, value: str) -> bool:
        """Return True when this provider handled the write."""
        ...

    async def read_variable(self, target: str, arg_name: str) -> Optional[str]:
        """Return the value, or None when this provider cannot supply it."""
        ...


def _from_env(environ: Mapping[str, str], arg_name: str) -> Optional[str]:
    return environ.get(arg_name) or environ.get(env_var_name(arg_name)) or None


class GithubVariableProvider:
    """Job outputs via $GITHUB_OUTPUT; consumers receive them as step env."""

    def __init__(self, environ: Mapping[str, str] | None = None):
        self.environ = os.environ if environ is None else environ

    @property
    def active(self) -> bool:
        return self.environ.get("GITHUB_ACTIONS") == "true"

    async def write_variable(self, target: str, arg_name: str, value: str) -> bool:
        output = self.environ.get("GITHUB_OUTPUT")
        if not self.active or not output:
            return False
        with open(output, "a", encoding="utf-8") as f:
            f.write(f"{arg_name}={value}\n")
        return True

    async def read_variable(self, target: str, arg_name: str) -> Optional[str]:
        return _from_env(self.environ, arg_name) if self.active else None


class DevopsVariableProvider:
    """Output variables via the ##vso logging command."""

    def __init__(self, environ: Mapping[str, str] | None = None):
        self.environ = os.environ if environ is None else environ

    @property
    def active(self) -> bool:
        return bool(self.environ.get("TF_BUILD"))

    async def write_variable(self, target: str, arg_name: str, value: str) -> bool:
        if not self.active:
            return False
        print(f"##vso[task.setvariable variable={arg_name};isoutput=true]{value}", flush=True)
        return True

    async def read_variable(self, target: str, arg_name: str) -> Optional[str]:
        return _from_env(self.environ, arg_name) if self.active else None


class FileVariableProvider:
    """Fallback: `{"<target>:<arg>": value}` in <state_dir>/variables.json."""

    def __init__(self, state_dir: str | Path):
        self.path = Path(state_dir) / "variables.json"

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        return json.loads(self.path.read_text(encoding="utf-8"))

    async def write_variable(self, target: str, arg_name: str, value: str) -> bool:
        data = self._load()
        data[f"{target}:{arg_name}"] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        return True

    async def read_variable(self, target: str, arg_name: str) -> Optional[str]:
        return self._load().get(f"{target}:{arg_name}")


class VariableService:
    def __init__(
        self,
        params: ParamService,
        providers: Iterable[VariableProvider],
        catalog: ParamCatalog | None = None,
    ):
        self.params = params
        self.providers: List[VariableProvider] = list(providers)
        self.catalog = catalog or params.catalog

    async def write_variable(self, name: str, value: str, *, target: str = "") -> None:
        arg = self.catalog.external_arg_name(name)
        for provider in self.providers:
            if await provider.write_variable(target, arg, value):
                log.debug("variable %s written by %s", arg, type(provider).__name__)
                # the writer can read its own variable back
                self.params.set_cached(name, value)
                return
        raise RuntimeError(f"No variable provider accepted variable '{arg}'")

    async def read_variable(self, target: str, name: str) -> Optional[str]:
        """Read `name` as produced by `target` and make it visible to get_param."""
        arg = self.catalog.external_arg_name(name)
        for provider in self.providers:
            value = await provider.read_variable(target, arg)
            if value is not None:
                log.debug("variable %s from %s via %s", arg, target, type(provider).__name__)
                self.params.set_cached(name, value)
                return value
        return None


def default_variable_providers(
    state_dir: str | Path,
    environ: Mapping[str, str] | None = None,
) -> List[VariableProvider]:
    return [GithubVariableProvider(environ), DevopsVariableProvider(environ), FileVariableProvider(state_dir)]
