"""
Shell command adapters — run build tools and capture their output.

``shell`` runs a rendered command line; ``toolchain`` runs the
bootstrapped runtime executable with an argument list. Both inherit
the process environment plus the build context's overrides and never
change PATH.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time
from pathlib import Path

from buildrig.adapters.base import Adapter, ExecutionContext
from buildrig.core.models.action import Receipt

logger = logging.getLogger(__name__)


class ShellCommandAdapter(Adapter):
    """Execute shell commands and capture output.

    Action params:
        command (str): The command to execute.
        shell (bool): Whether to run through shell (default: True).
        timeout (int): Timeout in seconds (default: 3600).
        cwd (str): Working directory relative to the build root.
    """

    default_timeout = 3600

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        command = context.params.get("command", "")
        if not command:
            return False, "Missing required param: 'command'"

        cwd = context.working_dir
        if cwd and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"

        return True, ""

    def _argv(self, context: ExecutionContext) -> tuple[list[str] | str, bool]:
        command = context.params["command"]
        use_shell = context.params.get("shell", True)
        if use_shell:
            return command, True
        return shlex.split(command), False

    def execute(self, context: ExecutionContext) -> Receipt:
        argv, use_shell = self._argv(context)
        return self._run(context, argv, use_shell)

    def _run(self, context: ExecutionContext, argv: list[str] | str, use_shell: bool) -> Receipt:
        timeout = context.params.get("timeout", self.default_timeout)
        cwd = context.working_dir
        env = os.environ.copy()
        env.update(context.env)
        display = argv if isinstance(argv, str) else shlex.join(argv)

        logger.debug("Executing: %s (cwd=%s)", display, cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                shell=use_shell,
                cwd=cwd,
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout,
            )

            elapsed_ms = int((time.monotonic() - start) * 1000)
            output = result.stdout.strip()
            stderr = result.stderr.strip()

            if result.returncode == 0:
                return Receipt.success(
                    adapter=self.name,
                    action_id=context.action.id,
                    output=output,
                    duration_ms=elapsed_ms,
                    metadata={
                        "command": display,
                        "return_code": result.returncode,
                        "stderr": stderr,
                    },
                )
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=stderr or f"Command exited with code {result.returncode}",
                duration_ms=elapsed_ms,
                metadata={
                    "command": display,
                    "return_code": result.returncode,
                    "stdout": output,
                },
            )

        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command timed out after {timeout}s",
                metadata={"command": display, "timeout": timeout},
            )
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command execution error: {e}",
                metadata={"command": display},
            )


class ToolchainAdapter(ShellCommandAdapter):
    """Run the resolved toolchain executable.

    Action params:
        args (list[str] | str): Arguments appended to the executable.
        timeout (int): Timeout in seconds (default: 3600).
        cwd (str): Working directory relative to the build root.
    """

    @property
    def name(self) -> str:
        return "toolchain"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if context.build is None or context.build.toolchain is None:
            return False, "No toolchain resolved for this run"
        args = context.params.get("args")
        if not args:
            return False, "Missing required param: 'args'"
        cwd = context.working_dir
        if cwd and not Path(cwd).is_dir():
            return False, f"Working directory does not exist: {cwd}"
        return True, ""

    def _argv(self, context: ExecutionContext) -> tuple[list[str] | str, bool]:
        assert context.build is not None and context.build.toolchain is not None
        args = context.params["args"]
        if isinstance(args, str):
            args = shlex.split(args)
        return [str(context.build.toolchain.executable), *[str(a) for a in args]], False
