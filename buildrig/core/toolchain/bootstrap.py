"""
Toolchain bootstrap — find or privately install the build runtime.

Resolution order:
    1. A responsive runtime already on PATH is used as-is.
    2. Otherwise a spec is chosen: the version pinned in the manifest,
       else the configured channel.
    3. A private install that already matches the spec is reused.
    4. Otherwise the vendor install routine is downloaded into the
       scratch directory and run against the private install directory.

The private directory lives under the build root and is never shared
with a system-wide installation. PATH is never modified. Any failure
is fatal: there is no retry.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import stat
import subprocess
import urllib.request
from pathlib import Path
from typing import Callable, Literal, Mapping

from pydantic import BaseModel, ConfigDict, model_validator

from buildrig.core.config.manifest import Manifest
from buildrig.core.errors import ToolchainBootstrapFailure
from buildrig.core.models.build import ToolchainDecl

logger = logging.getLogger(__name__)

STAMP_FILE = ".buildrig-toolchain.json"
PRIVATE_DIR = "toolchain"

ToolchainSource = Literal["system", "cached", "installed"]


# ── Models ──────────────────────────────────────────────────────────


class ToolchainSpec(BaseModel):
    """A version string or a channel name, never both."""

    model_config = ConfigDict(frozen=True)

    version: str | None = None
    channel: str | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> ToolchainSpec:
        if bool(self.version) == bool(self.channel):
            raise ValueError("a toolchain spec names exactly one of version or channel")
        return self

    def install_args(self) -> list[str]:
        if self.version:
            return ["--version", self.version]
        return ["--channel", self.channel or ""]

    def __str__(self) -> str:
        if self.version:
            return f"version {self.version}"
        return f"channel {self.channel}"


class Toolchain(BaseModel):
    """The runtime executable every action of this run uses."""

    model_config = ConfigDict(frozen=True)

    executable: Path
    source: ToolchainSource
    spec: ToolchainSpec | None = None


# ── Process and network seams ───────────────────────────────────────


Downloader = Callable[[str, Path], None]
Runner = Callable[[list[str], Mapping[str, str]], tuple[int, str]]


def download_file(url: str, dest: Path, timeout: int = 60) -> None:
    """Fetch *url* into *dest*. Raises on any network or HTTP error."""
    req = urllib.request.Request(url, headers={"User-Agent": "buildrig/1.0"})
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        data = resp.read()
    dest.write_bytes(data)
    logger.debug("Downloaded %s (%d bytes) → %s", url, len(data), dest)


def run_process(argv: list[str], env: Mapping[str, str], timeout: int = 900) -> tuple[int, str]:
    """Run *argv* and return ``(returncode, combined output)``."""
    result = subprocess.run(
        argv,
        env=dict(env),
        capture_output=True,
        text=True,
        timeout=timeout,
    )
    output = (result.stdout + result.stderr).strip()
    return result.returncode, output


# ── Resolver ────────────────────────────────────────────────────────


class ToolchainBootstrapResolver:
    """Ensure a compatible runtime exists without global installation.

    Args:
        decl: Toolchain section of the build file.
        root: Build root; the scratch directory is created beneath it.
        environ: Base environment for probes and the install routine
            (default: ``os.environ``). The declaration's ``env`` is
            layered on top.
        downloader: ``(url, dest)`` callable, injectable for tests.
        runner: ``(argv, env) -> (returncode, output)``, injectable for tests.
        which: PATH lookup, injectable for tests.
    """

    def __init__(
        self,
        decl: ToolchainDecl,
        root: Path,
        environ: Mapping[str, str] | None = None,
        downloader: Downloader = download_file,
        runner: Runner = run_process,
        which: Callable[[str], str | None] = shutil.which,
    ):
        self.decl = decl
        self.root = root
        self._environ = dict(os.environ if environ is None else environ)
        self._environ.update(decl.env)
        self._download = downloader
        self._run = runner
        self._which = which

    # ── Layout ──

    @property
    def scratch_dir(self) -> Path:
        return self.root / self.decl.scratch_dir

    @property
    def install_dir(self) -> Path:
        """Private installation directory, owned by this build."""
        return self.scratch_dir / PRIVATE_DIR

    @property
    def private_executable(self) -> Path:
        name = self.decl.command
        if os.name == "nt" and not name.endswith(".exe"):
            name += ".exe"
        return self.install_dir / name

    @property
    def script_path(self) -> Path:
        name = self.decl.install_url.rstrip("/").rsplit("/", 1)[-1] or "install.sh"
        return self.scratch_dir / name

    @property
    def stamp_path(self) -> Path:
        return self.install_dir / STAMP_FILE

    # ── Steps ──

    def probe(self, executable: str | Path) -> bool:
        """True if the executable answers its diagnostic command."""
        argv = [str(executable), *self.decl.probe_args]
        try:
            code, output = self._run(argv, self._environ)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("Probe %s failed: %s", executable, e)
            return False
        if code != 0:
            logger.debug("Probe %s exited %d: %s", executable, code, output)
            return False
        logger.debug("Probe %s: %s", executable, output.splitlines()[0] if output else "ok")
        return True

    def find_system(self) -> Toolchain | None:
        """A responsive runtime already on PATH, if any."""
        found = self._which(self.decl.command)
        if not found:
            logger.debug("No '%s' on PATH", self.decl.command)
            return None
        if not self.probe(found):
            logger.info("Found %s on PATH but it did not respond to the probe", found)
            return None
        return Toolchain(executable=Path(found), source="system")

    def resolve_spec(self) -> ToolchainSpec:
        """Pinned version from the manifest, else the default channel."""
        manifest = Manifest(self.root / self.decl.manifest)
        version = manifest.get(self.decl.manifest_key)
        if version:
            logger.debug("Pinned %s from %s", version, manifest.path.name)
            return ToolchainSpec(version=version)
        return ToolchainSpec(channel=self.decl.channel)

    def read_stamp(self) -> ToolchainSpec | None:
        if not self.stamp_path.is_file():
            return None
        try:
            data = json.loads(self.stamp_path.read_text(encoding="utf-8"))
            return ToolchainSpec.model_validate(data)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable toolchain stamp %s: %s", self.stamp_path, e)
            return None

    def write_stamp(self, spec: ToolchainSpec) -> None:
        self.stamp_path.write_text(spec.model_dump_json(exclude_none=True), encoding="utf-8")

    def find_cached(self, spec: ToolchainSpec) -> Toolchain | None:
        """The private install, if it was made for *spec* and still works."""
        exe = self.private_executable
        if not exe.is_file():
            return None
        if self.read_stamp() != spec:
            logger.debug("Private toolchain at %s was installed for a different spec", exe)
            return None
        if not self.probe(exe):
            return None
        return Toolchain(executable=exe, source="cached", spec=spec)

    def install(self, spec: ToolchainSpec) -> Toolchain:
        """Download the install routine and install *spec* privately.

        Raises:
            ToolchainBootstrapFailure: On download failure, a non-zero
                exit from the routine, or a missing executable afterwards.
        """
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        script = self.script_path

        logger.info("Downloading install routine from %s", self.decl.install_url)
        try:
            self._download(self.decl.install_url, script)
        except Exception as e:
            raise ToolchainBootstrapFailure(
                f"Failed to download install routine from {self.decl.install_url}: {e}"
            ) from e

        try:
            script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError as e:
            raise ToolchainBootstrapFailure(f"Cannot mark {script} executable: {e}") from e

        argv = [
            str(script),
            "--install-dir", str(self.install_dir),
            *spec.install_args(),
            *self.decl.install_args,
        ]
        logger.info("Installing %s (%s) into %s", self.decl.command, spec, self.install_dir)
        try:
            code, output = self._run(argv, self._environ)
        except (OSError, subprocess.SubprocessError) as e:
            raise ToolchainBootstrapFailure(f"Install routine could not run: {e}") from e
        if code != 0:
            tail = "\n".join(output.splitlines()[-10:])
            raise ToolchainBootstrapFailure(
                f"Install routine exited with code {code}" + (f":\n{tail}" if tail else "")
            )

        exe = self.private_executable
        if not exe.is_file():
            raise ToolchainBootstrapFailure(
                f"Install routine succeeded but {exe} does not exist"
            )

        self.write_stamp(spec)
        return Toolchain(executable=exe, source="installed", spec=spec)

    def resolve(self) -> Toolchain:
        """Run the whole bootstrap and return the toolchain for this run."""
        toolchain = self.find_system()
        if toolchain is None:
            spec = self.resolve_spec()
            toolchain = self.find_cached(spec) or self.install(spec)

        logger.info("Using %s toolchain at %s", toolchain.source, toolchain.executable)
        return toolchain
