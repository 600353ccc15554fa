"""
System inspection tools - date, files, processes, environment.

Thin wrappers over standard Unix commands. Output is trimmed and capped so
a single call cannot flood the model's context.
"""

import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from ..errors import ToolExecutionError
from .base import BaseTool, RiskLevel, ToolParameter, get_bool, get_int, get_str

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 10_000
MAX_CAT_LINES = 1000
DEFAULT_LINES = 10
MAX_LINES = 100

RFC1123 = "%a, %d %b %Y %H:%M:%S %Z"


def truncate_output(text: str, limit: int = MAX_OUTPUT_CHARS) -> str:
    """Cap output at ``limit`` characters with a visible marker."""
    if len(text) > limit:
        return text[:limit] + "\n... (output truncated)"
    return text


async def run_command(*argv: str, timeout: float = 30.0) -> str:
    """Run a command without a shell and return its combined output."""
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env=os.environ.copy(),
        )
    except FileNotFoundError:
        raise ToolExecutionError(f"command not found: {argv[0]}") from None

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise ToolExecutionError(f"command timed out after {timeout:g} seconds") from None

    output = stdout.decode("utf-8", errors="replace").strip()
    if process.returncode != 0:
        logger.debug("Command %s exited with %s", argv[0], process.returncode)
        detail = f": {truncate_output(output)}" if output else ""
        raise ToolExecutionError(f"command failed with exit status {process.returncode}{detail}")

    return truncate_output(output)


def _required_str(args: dict[str, Any], key: str) -> str:
    value = get_str(args, key)
    if not value:
        raise ToolExecutionError(f"{key} is required")
    return value


def _line_count(args: dict[str, Any]) -> int:
    lines = get_int(args, "lines", DEFAULT_LINES)
    if lines <= 0:
        return DEFAULT_LINES
    return min(lines, MAX_LINES)


class DateTool(BaseTool):
    name = "date"
    description = (
        "Get the current date and time. Use a strftime format string to "
        "customize output."
    )
    parameters = [
        ToolParameter("format", "string", "Optional strftime format (e.g. '%Y-%m-%d', '%H:%M:%S')"),
    ]
    risk = RiskLevel.SAFE

    async def execute(self, args: dict[str, Any]) -> str:
        fmt = get_str(args, "format") or RFC1123
        return datetime.now().astimezone().strftime(fmt)


class ListDirectoryTool(BaseTool):
    name = "ls"
    description = (
        "List files and directories in a given path. Returns detailed listing "
        "with permissions, size, and modification time."
    )
    parameters = [
        ToolParameter("path", "string", "Directory path to list (default: current directory)"),
        ToolParameter("long", "boolean", "Use long format with details (default: true)"),
        ToolParameter("all", "boolean", "Show hidden files (default: false)"),
    ]

    async def execute(self, args: dict[str, Any]) -> str:
        argv = ["ls"]
        if get_bool(args, "long", True):
            argv.append("-l")
        if get_bool(args, "all", False):
            argv.append("-a")
        argv.append(get_str(args, "path") or ".")
        return await run_command(*argv, timeout=self.timeout)


class ReadFileTool(BaseTool):
    name = "cat"
    description = (
        "Read and return the contents of a file. Limited to the first "
        f"{MAX_CAT_LINES} lines."
    )
    parameters = [
        ToolParameter("path", "string", "Path to the file to read", required=True),
    ]

    async def execute(self, args: dict[str, Any]) -> str:
        path = Path(_required_str(args, "path")).expanduser()
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise ToolExecutionError(f"reading {path}: {e.strerror or e}") from e

        lines = content.split("\n")
        if len(lines) > MAX_CAT_LINES:
            return "\n".join(lines[:MAX_CAT_LINES]) + "\n... (truncated, file has more lines)"
        return content


class PwdTool(BaseTool):
    name = "pwd"
    description = "Get the current working directory."
    risk = RiskLevel.SAFE

    async def execute(self, args: dict[str, Any]) -> str:
        return os.getcwd()


class ProcessListTool(BaseTool):
    name = "ps"
    description = (
        "List running processes. Shows process ID, CPU usage, memory usage, "
        "and command."
    )
    parameters = [
        ToolParameter("all", "boolean", "Show all processes, not just the user's (default: false)"),
    ]

    async def execute(self, args: dict[str, Any]) -> str:
        argv = ["ps", "-o", "pid,pcpu,pmem,comm"]
        if get_bool(args, "all", False):
            argv.insert(1, "-e")
        return await run_command(*argv, timeout=self.timeout)


class WhichTool(BaseTool):
    name = "which"
    description = "Find the full path to a command."
    parameters = [
        ToolParameter("command", "string", "The command to find", required=True),
    ]
    risk = RiskLevel.SAFE

    async def execute(self, args: dict[str, Any]) -> str:
        return await run_command("which", _required_str(args, "command"), timeout=self.timeout)


class EchoTool(BaseTool):
    name = "echo"
    description = "Echo the input text. Useful for testing tool functionality."
    parameters = [
        ToolParameter("text", "string", "Text to echo", required=True),
    ]
    risk = RiskLevel.SAFE

    async def execute(self, args: dict[str, Any]) -> str:
        text = args.get("text")
        if not isinstance(text, str):
            raise ToolExecutionError("text is required")
        return text


class EnvTool(BaseTool):
    name = "env"
    description = "List environment variables. Can optionally filter by name pattern."
    parameters = [
        ToolParameter("filter", "string", "Optional filter pattern (substring match)"),
    ]

    async def execute(self, args: dict[str, Any]) -> str:
        pattern = get_str(args, "filter").lower()
        entries = [
            f"{key}={value}" for key, value in sorted(os.environ.items())
            if not pattern or pattern in f"{key}={value}".lower()
        ]
        return truncate_output("\n".join(entries))


class HeadTool(BaseTool):
    name = "head"
    description = "Read the first N lines of a file."
    parameters = [
        ToolParameter("path", "string", "Path to the file", required=True),
        ToolParameter("lines", "integer", f"Number of lines to read (default: {DEFAULT_LINES}, max: {MAX_LINES})"),
    ]

    async def execute(self, args: dict[str, Any]) -> str:
        path = _required_str(args, "path")
        return await run_command("head", "-n", str(_line_count(args)), path, timeout=self.timeout)


class TailTool(BaseTool):
    name = "tail"
    description = "Read the last N lines of a file."
    parameters = [
        ToolParameter("path", "string", "Path to the file", required=True),
        ToolParameter("lines", "integer", f"Number of lines to read (default: {DEFAULT_LINES}, max: {MAX_LINES})"),
    ]

    async def execute(self, args: dict[str, Any]) -> str:
        path = _required_str(args, "path")
        return await run_command("tail", "-n", str(_line_count(args)), path, timeout=self.timeout)


class DiskFreeTool(BaseTool):
    name = "df"
    description = "Show disk space usage for file systems."
    parameters = [
        ToolParameter("human", "boolean", "Show sizes in human readable format (default: true)"),
    ]

    async def execute(self, args: dict[str, Any]) -> str:
        argv = ["df"]
        if get_bool(args, "human", True):
            argv.append("-h")
        return await run_command(*argv, timeout=self.timeout)


class UnameTool(BaseTool):
    name = "uname"
    description = "Get system information (OS, kernel version, etc.)."
    parameters = [
        ToolParameter("all", "boolean", "Show all information (default: true)"),
    ]
    risk = RiskLevel.SAFE

    async def execute(self, args: dict[str, Any]) -> str:
        if get_bool(args, "all", True):
            return await run_command("uname", "-a", timeout=self.timeout)
        return await run_command("uname", timeout=self.timeout)


def create_system_tools() -> list[BaseTool]:
    """Create all system inspection tools."""
    return [
        DateTool(),
        ListDirectoryTool(),
        ReadFileTool(),
        PwdTool(),
        ProcessListTool(),
        WhichTool(),
        EchoTool(),
        EnvTool(),
        HeadTool(),
        TailTool(),
        DiskFreeTool(),
        UnameTool(),
    ]
