"""
Build file schema — the declarative shape of build.yml.

These Pydantic models only validate what the user wrote. The config
loader converts them into frozen value objects (Target, TargetGraph)
before anything is planned or executed.

Example:

    name: my-product
    default: pack
    parameters:
      api_key: {description: "Feed API key", secret: true}
    toolchain:
      command: dotnet
      install_url: https://dot.net/v1/dotnet-install.sh
    targets:
      compile:
        action: "{toolchain} build -c {configuration}"
      pack:
        depends_on: [compile]
        matrix:
          project: [core, cli]
        action:
          adapter: toolchain
          params: {args: [pack, "{project}"]}
"""

from __future__ import annotations

from pathlib import PurePosixPath, PureWindowsPath
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _as_list(value: Any) -> Any:
    """Accept a bare string where a list of strings is expected."""
    if isinstance(value, str):
        return [value]
    return value


class ParameterDecl(BaseModel):
    """A declared build parameter."""

    model_config = ConfigDict(extra="forbid")

    description: str = ""
    default: str | None = None
    env: str | None = None          # explicit env var name (default: NAME upper-cased)
    secret: bool = False            # never logged or echoed
    manifest_key: str | None = None  # fall back to the pinned-version manifest

    @field_validator("default", mode="before")
    @classmethod
    def _stringify_default(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class ToolchainDecl(BaseModel):
    """How to find or privately install the build runtime."""

    model_config = ConfigDict(extra="forbid")

    command: str                                  # executable name, e.g. "dotnet"
    install_url: str                              # versionless install routine URL
    probe_args: list[str] = Field(default_factory=lambda: ["--version"])
    channel: str = "Current"
    manifest: str = "global.json"
    manifest_key: str = "version"
    scratch_dir: str = ".buildrig/temp"
    install_args: list[str] = Field(default_factory=lambda: ["--no-path"])
    env: dict[str, str] = Field(default_factory=dict)

    @field_validator("env", mode="before")
    @classmethod
    def _stringify_env(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return value


class ActionDecl(BaseModel):
    """Reference to an adapter plus its parameter templates."""

    model_config = ConfigDict(extra="forbid")

    adapter: str = "shell"
    params: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _shell_shorthand(cls, data: Any) -> Any:
        # `action: "make all"` is short for a shell command
        if isinstance(data, str):
            return {"adapter": "shell", "params": {"command": data}}
        return data


class GlobAxis(BaseModel):
    """A fan-out axis whose values are files matched at run time."""

    model_config = ConfigDict(extra="forbid")

    glob: str

    @field_validator("glob")
    @classmethod
    def _relative_pattern(cls, value: str) -> str:
        # Patterns are evaluated under the build root
        if not value.strip():
            raise ValueError("glob pattern must not be empty")
        if PurePosixPath(value).is_absolute() or PureWindowsPath(value).is_absolute():
            raise ValueError(f"glob pattern must be relative to the build root: {value}")
        return value


class PreconditionDecl(BaseModel):
    """Exactly one precondition predicate."""

    model_config = ConfigDict(extra="forbid")

    parameter: str | None = None
    clean_working_tree: bool | None = None
    branch: list[str] | None = None
    configuration: str | None = None

    @field_validator("branch", mode="before")
    @classmethod
    def _branch_list(cls, value: Any) -> Any:
        return _as_list(value)

    @model_validator(mode="after")
    def _exactly_one(self) -> PreconditionDecl:
        kinds = [k for k, v in self.model_dump().items() if v is not None]
        if len(kinds) != 1:
            raise ValueError(
                "a precondition must declare exactly one of: "
                "parameter, clean_working_tree, branch, configuration"
            )
        return self


class TargetDecl(BaseModel):
    """A target as written in build.yml."""

    model_config = ConfigDict(extra="forbid")

    description: str = ""
    depends_on: list[str] = Field(default_factory=list)
    before: list[str] = Field(default_factory=list)
    after: list[str] = Field(default_factory=list)
    requires: list[PreconditionDecl] = Field(default_factory=list)
    action: ActionDecl | None = None
    matrix: dict[str, list[str] | GlobAxis] = Field(default_factory=dict)
    policy: Literal["fail-fast", "complete-on-failure"] = "fail-fast"
    parallelism: int | None = Field(default=None, ge=1)
    load_bearing: bool = True
    allow_empty_matrix: bool = False

    @field_validator("depends_on", "before", "after", mode="before")
    @classmethod
    def _names(cls, value: Any) -> Any:
        return _as_list(value)

    @field_validator("matrix", mode="before")
    @classmethod
    def _stringify_axes(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        out: dict[str, Any] = {}
        for axis, values in value.items():
            if isinstance(values, list):
                out[str(axis)] = [str(v) for v in values]
            else:
                out[str(axis)] = values
        return out


class BuildFile(BaseModel):
    """Root of build.yml."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    name: str = ""
    default: str | None = None
    parallelism: int = Field(default=4, ge=1)
    parameters: dict[str, ParameterDecl] = Field(default_factory=dict)
    toolchain: ToolchainDecl | None = None
    targets: dict[str, TargetDecl] = Field(default_factory=dict)

    @field_validator("parameters", "targets", mode="before")
    @classmethod
    def _empty_mapping(cls, value: Any) -> Any:
        # `parameters:` with nothing under it parses as None
        if value is None:
            return {}
        if isinstance(value, dict):
            return {k: (v if v is not None else {}) for k, v in value.items()}
        return value
