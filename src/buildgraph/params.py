# params.py
from __future__ import annotations

import enum
import json
import logging
import os
import re
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Protocol

log = logging.getLogger(__name__)

MASK = "*****"


class ParamError(Exception):
    """A required param has no value from any source."""

    def __init__(self, key: str, arg_name: str | None = None):
        self.key = key
        self.arg_name = arg_name or key
        super().__init__(
            f"Missing value for param '{key}'. Pass --param {self.arg_name}=VALUE "
            f"or set {env_var_name(self.arg_name)}."
        )


class ParamSource(enum.Flag):
    NONE = 0
    CACHE = 1
    CLI = 2
    ENVIRONMENT = 4
    CONFIG = 8
    SECRETS = 16
    ALL = CACHE | CLI | ENVIRONMENT | CONFIG | SECRETS


def env_var_name(arg_name: str) -> str:
    return arg_name.upper().replace("-", "_")


def _kebab(name: str) -> str:
    s = re.sub(r"(?<=[a-z0-9])([A-Z])", r"-\1", name)
    return s.replace("_", "-").lower()


@dataclass(frozen=True)
class ParamDefinition:
    """
    A param key (used in target code) and how it is seen from outside:
    CLI flag, environment variable, config key, generated workflow env.
    """
    name: str
    arg_name: str
    description: str = ""
    default: Optional[str] = None
    sources: ParamSource = ParamSource.ALL
    secret: bool = False

    @property
    def env_name(self) -> str:
        return env_var_name(self.arg_name)


def param(
    name: str,
    description: str = "",
    *,
    arg_name: str | None = None,
    default: object = None,
    sources: ParamSource = ParamSource.ALL,
    secret: bool = False,
) -> ParamDefinition:
    """param("NugetApiKey", "Feed key", secret=True) -> arg name 'nuget-api-key'"""
    return ParamDefinition(
        name=name,
        arg_name=arg_name or _kebab(name),
        description=description,
        default=None if default is None else str(default),
        sources=sources,
        secret=secret,
    )


class ParamCatalog:
    """Param key -> definition lookup table."""

    def __init__(self, definitions: Iterable[ParamDefinition] = ()):
        self._by_name: Dict[str, ParamDefinition] = {}
        for d in definitions:
            self.add(d)

    def add(self, definition: ParamDefinition) -> ParamDefinition:
        if definition.name in self._by_name:
            raise ValueError(f"Param '{definition.name}' is defined multiple times")
        self._by_name[definition.name] = definition
        return definition

    def get(self, key: str) -> Optional[ParamDefinition]:
        return self._by_name.get(key)

    def external_arg_name(self, key: str) -> str:
        # undeclared keys are used as-is
        d = self._by_name.get(key)
        return d.arg_name if d else key

    def is_secret(self, key: str) -> bool:
        d = self._by_name.get(key)
        return bool(d and d.secret)

    def required_sources(self, key: str) -> ParamSource:
        d = self._by_name.get(key)
        return d.sources if d else ParamSource.ALL

    def find_by_arg_name(self, arg_name: str) -> Optional[ParamDefinition]:
        for d in self._by_name.values():
            if d.arg_name == arg_name:
                return d
        return None

    def merged(self, other: ParamCatalog) -> ParamCatalog:
        out = ParamCatalog(self)
        for d in other:
            if d.name not in out:
                out.add(d)
        return out

    def __contains__(self, key: object) -> bool:
        return key in self._by_name

    def __iter__(self) -> Iterator[ParamDefinition]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)


# ----------------------------------------------------------------------
# Secrets
# ----------------------------------------------------------------------

class SecretsProvider(Protocol):
    def get_secret(self, key: str) -> Optional[str]:
        ...


class EnvironmentSecretsProvider:
    """Reads secrets from `<prefix><ARG_NAME>` environment variables."""

    def __init__(self, prefix: str = "", environ: Mapping[str, str] | None = None):
        self.prefix = prefix
        self.environ = os.environ if environ is None else environ

    def get_secret(self, key: str) -> Optional[str]:
        return self.environ.get(f"{self.prefix}{env_var_name(key)}") or None


# ----------------------------------------------------------------------
# Config file
# ----------------------------------------------------------------------

def load_config(path: str | Path) -> Dict[str, str]:
    """
    Read `{"params": {arg-name: value}}` from a JSON file.

    A missing file yields an empty mapping.
    """
    p = Path(path)
    if not p.exists():
        return {}
    data = json.loads(p.read_text(encoding="utf-8"))
    params = data.get("params", {}) if isinstance(data, dict) else {}
    if not isinstance(params, dict):
        raise ValueError(f"{p}: 'params' must be a JSON object")
    return {str(k): str(v) for k, v in params.items() if v is not None}


# ----------------------------------------------------------------------
# Resolution
# ----------------------------------------------------------------------

class ParamService:
    """
    Resolves param values. Precedence:
      cache -> CLI -> environment -> config file -> secrets (secret params only) -> default
    """

    def __init__(
        self,
        catalog: ParamCatalog | None = None,
        *,
        cli_args: Mapping[str, str] | None = None,
        config: Mapping[str, str] | None = None,
        secrets_providers: Iterable[SecretsProvider] = (),
        environ: Mapping[str, str] | None = None,
    ):
        self.catalog = catalog or ParamCatalog()
        self.cli_args = dict(cli_args or {})
        self.config = dict(config or {})
        self.secrets_providers: List[SecretsProvider] = list(secrets_providers)
        self.environ = os.environ if environ is None else environ
        self._cache: Dict[str, str] = {}
        self._cache_enabled = True
        self._secret_values: set[str] = set()

    def _definition(self, key: str) -> ParamDefinition:
        return self.catalog.get(key) or ParamDefinition(name=key, arg_name=key)

    def get_param(self, key: str, default: Optional[str] = None) -> Optional[str]:
        d = self._definition(key)
        sources = d.sources

        if self._cache_enabled and ParamSource.CACHE in sources and key in self._cache:
            return self._cache[key]

        value = self._lookup(d)
        if value is None:
            value = d.default if d.default is not None else default
            if value is None:
                return None

        if d.secret:
            self._secret_values.add(value)
        if self._cache_enabled and ParamSource.CACHE in sources:
            self._cache[key] = value
        return value

    def _lookup(self, d: ParamDefinition) -> Optional[str]:
        sources = d.sources

        if ParamSource.CLI in sources and self.cli_args.get(d.arg_name):
            log.debug("param %s from cli", d.name)
            return self.cli_args[d.arg_name]

        if ParamSource.ENVIRONMENT in sources:
            for var in (d.env_name, d.arg_name):
                if self.environ.get(var):
                    log.debug("param %s from environment (%s)", d.name, var)
                    return self.environ[var]

        if ParamSource.CONFIG in sources and self.config.get(d.arg_name):
            log.debug("param %s from config", d.name)
            return self.config[d.arg_name]

        if d.secret and ParamSource.SECRETS in sources:
            for provider in self.secrets_providers:
                value = provider.get_secret(d.arg_name)
                if value:
                    log.debug("param %s from %s", d.name, type(provider).__name__)
                    return value

        return None

    def require_param(self, key: str) -> str:
        value = self.get_param(key)
        if value is None or value == "":
            raise ParamError(key, self._definition(key).arg_name)
        return value

    def set_cached(self, key: str, value: str) -> None:
        self._cache[key] = value
        if self.catalog.is_secret(key):
            self._secret_values.add(value)

    def clear_cache(self) -> None:
        self._cache.clear()

    @contextmanager
    def no_cache(self) -> Iterator[None]:
        """Resolve straight from the sources for the duration of the block."""
        previous = self._cache_enabled
        self._cache_enabled = False
        try:
            yield
        finally:
            self._cache_enabled = previous

    def mask_secrets(self, text: str) -> str:
        for secret in sorted(self._secret_values, key=len, reverse=True):
            if secret:
                text = text.replace(secret, MASK)
        return text
