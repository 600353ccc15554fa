"""
Shell Command Tool - execution of shell commands with pipes and redirections.

Commands run through ``/bin/sh -c`` with a bounded timeout and output cap.
Every call is classified dangerous, so the agent asks before running it.
"""

import asyncio
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any

from ..errors import ToolExecutionError
from .base import BaseTool, RiskLevel, ToolParameter, get_int, get_str
from .system_tools import truncate_output

logger = logging.getLogger(__name__)


@dataclass
class ShellConfig:
    """Configuration for shell command execution."""

    enabled: bool = True
    default_timeout_seconds: int = 30
    max_timeout_seconds: int = 120
    max_output_chars: int = 15_000

    blocked_patterns: list[str] = field(default_factory=lambda: [
        r"rm\s+-rf\s+/(\s|$)",
        r"rm\s+-rf\s+~",
        r"mkfs",
        r"dd\s+if=.*of=/dev/",
        r":\(\)\s*\{\s*:\|:&\s*\};:",
    ])

    working_dir: str | None = None


class ShellTool(BaseTool):
    """Runs a command line through the system shell."""

    name = "shell"
    description = (
        "Execute a shell command. Supports pipes (|), redirections (>), and other "
        "shell features. Use this for complex commands that need shell processing."
    )
    parameters = [
        ToolParameter(
            "command", "string",
            "The shell command to execute (supports pipes, redirections, etc.)",
            required=True,
        ),
        ToolParameter("timeout", "integer", "Timeout in seconds (default: 30, max: 120)"),
    ]
    risk = RiskLevel.DANGEROUS

    def __init__(self, config: ShellConfig | None = None):
        self.config = config or ShellConfig()
        # The per-command timeout fires first; this is the registry's backstop
        self.timeout = float(self.config.max_timeout_seconds + 5)

    def _check_command(self, command: str) -> None:
        if not self.config.enabled:
            raise ToolExecutionError("Shell execution is disabled")

        for pattern in self.config.blocked_patterns:
            if re.search(pattern, command, re.IGNORECASE):
                raise ToolExecutionError("Command blocked: contains a blocked pattern")

    def _timeout_for(self, args: dict[str, Any]) -> int:
        timeout = get_int(args, "timeout", self.config.default_timeout_seconds)
        if timeout <= 0:
            return self.config.default_timeout_seconds
        return min(timeout, self.config.max_timeout_seconds)

    async def execute(self, args: dict[str, Any]) -> str:
        command = get_str(args, "command")
        if not command:
            raise ToolExecutionError("command is required")

        self._check_command(command)
        timeout = self._timeout_for(args)

        logger.info("Running shell command: %s", command)
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=self.config.working_dir,
            env=os.environ.copy(),
        )

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ToolExecutionError(f"command timed out after {timeout} seconds") from None

        output = truncate_output(
            stdout.decode("utf-8", errors="replace").strip(),
            self.config.max_output_chars,
        )

        if process.returncode != 0:
            detail = f"\n{output}" if output else ""
            raise ToolExecutionError(f"command failed with exit status {process.returncode}{detail}")

        return output
