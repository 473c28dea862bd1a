"""
Parameter resolver — one immutable snapshot of build parameters per run.

Values are resolved in precedence order:
    invocation argument  >  environment variable  >  manifest  >  declared default

Empty strings count as absent at every level. The snapshot is built
once at startup and shared read-only with the executor and every
action; nothing mutates it afterwards.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Literal, Mapping

from buildrig.core.config.manifest import Manifest
from buildrig.core.errors import MissingRequiredParameter, ParameterError
from buildrig.core.models.build import ParameterDecl

logger = logging.getLogger(__name__)

ParameterSource = Literal["argument", "environment", "manifest", "default"]

CONFIGURATION = "configuration"

# Any of these set means we are on a build server, not a developer machine
_SERVER_ENV_MARKERS = (
    "CI",
    "TF_BUILD",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "JENKINS_URL",
    "TEAMCITY_VERSION",
    "BUILDKITE",
    "APPVEYOR",
    "TRAVIS",
)

_FALSY = ("", "0", "false", "no", "off")


class Configuration(str, Enum):
    """Build configuration run mode."""

    DEBUG = "Debug"
    RELEASE = "Release"

    @classmethod
    def parse(cls, value: str) -> Configuration:
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        valid = ", ".join(m.value for m in cls)
        raise ParameterError(f"Invalid configuration '{value}'. Valid: {valid}")


def is_local_build(environ: Mapping[str, str] | None = None) -> bool:
    """True unless a CI/server marker variable is set to a truthy value."""
    env = os.environ if environ is None else environ
    return not any(
        env.get(name, "").strip().lower() not in _FALSY for name in _SERVER_ENV_MARKERS
    )


def default_configuration(environ: Mapping[str, str] | None = None) -> Configuration:
    """Debug locally, Release on a build server."""
    return Configuration.DEBUG if is_local_build(environ) else Configuration.RELEASE


@dataclass(frozen=True)
class Parameter:
    """A resolved parameter and where its value came from."""

    name: str
    value: str | None
    source: ParameterSource
    secret: bool = False

    @property
    def present(self) -> bool:
        return bool(self.value)

    def display_value(self) -> str:
        if self.value is None:
            return ""
        return "***" if self.secret else self.value


class ParameterSnapshot(Mapping[str, Parameter]):
    """Read-only view over resolved parameters."""

    def __init__(self, parameters: Mapping[str, Parameter]):
        self._params = MappingProxyType(dict(parameters))

    def __getitem__(self, name: str) -> Parameter:
        return self._params[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._params)

    def __len__(self) -> int:
        return len(self._params)

    def value(self, name: str) -> str | None:
        """Resolved value, or None for undeclared/absent parameters."""
        param = self._params.get(name)
        return param.value if param else None

    def require(self, name: str) -> str:
        """Resolved value, raising if it is absent or empty."""
        value = self.value(name)
        if not value:
            raise MissingRequiredParameter(name)
        return value

    @property
    def configuration(self) -> Configuration:
        value = self.value(CONFIGURATION)
        if not value:
            return default_configuration()
        return Configuration.parse(value)

    def template_values(self) -> dict[str, str]:
        """Plain name → value mapping of present parameters (for templating)."""
        return {name: p.value for name, p in self._params.items() if p.value is not None}

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {
            name: {"value": p.display_value(), "source": p.source}
            for name, p in self._params.items()
        }


class ParameterResolver:
    """Resolve declared parameters against arguments, environment and defaults.

    Args:
        declarations: Declared parameters from the build file.
        arguments: Explicit invocation-time values (``--param k=v``).
        environ: Environment to read (default: ``os.environ``).
        manifest: Optional pinned-version manifest for declarations
            that name a ``manifest_key``.
    """

    def __init__(
        self,
        declarations: Mapping[str, ParameterDecl] | None = None,
        arguments: Mapping[str, str] | None = None,
        environ: Mapping[str, str] | None = None,
        manifest: Manifest | None = None,
    ):
        self._decls = dict(declarations or {})
        self._args = {k: v for k, v in (arguments or {}).items()}
        self._environ = os.environ if environ is None else environ
        self._manifest = manifest

    def _env_names(self, name: str, decl: ParameterDecl | None) -> list[str]:
        if decl is not None and decl.env:
            return [decl.env]
        names = [name.upper()]
        if name not in names:
            names.append(name)
        return names

    def resolve(self, name: str, declared_default: str | None = None) -> Parameter:
        """Resolve one parameter by precedence."""
        decl = self._decls.get(name)
        secret = bool(decl and decl.secret)

        value = self._args.get(name)
        if value:
            return Parameter(name, value, "argument", secret)

        for env_name in self._env_names(name, decl):
            value = self._environ.get(env_name)
            if value:
                return Parameter(name, value, "environment", secret)

        if decl is not None and decl.manifest_key and self._manifest is not None:
            value = self._manifest.get(decl.manifest_key)
            if value:
                return Parameter(name, value, "manifest", secret)

        default = declared_default
        if default is None and decl is not None:
            default = decl.default
        if default is None and name == CONFIGURATION:
            default = default_configuration(self._environ).value
        return Parameter(name, default or None, "default", secret)

    def snapshot(self) -> ParameterSnapshot:
        """Resolve every declared parameter (plus configuration and any
        ad-hoc arguments) into an immutable snapshot."""
        names = list(self._decls)
        if CONFIGURATION not in names:
            names.append(CONFIGURATION)
        for name in self._args:
            if name not in names:
                names.append(name)

        resolved: dict[str, Parameter] = {}
        for name in names:
            param = self.resolve(name)
            if name == CONFIGURATION and param.value:
                # Normalise spelling and reject unknown configurations early
                param = Parameter(
                    name, Configuration.parse(param.value).value, param.source, param.secret
                )
            resolved[name] = param
            logger.debug(
                "Parameter %s=%r (from %s)", name, param.display_value(), param.source
            )

        return ParameterSnapshot(resolved)


def parse_assignments(pairs: list[str] | tuple[str, ...]) -> dict[str, str]:
    """Parse ``key=value`` strings from the command line."""
    out: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ParameterError(f"Expected KEY=VALUE, got '{pair}'")
        out[key] = value
    return out
