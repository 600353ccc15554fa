"""
Tool call approval for interactive sessions.

Before a tool runs the user is shown the exact call and asked to allow it.
A refusal abandons the whole turn.
"""

import asyncio
import json

import structlog

from ..llm.base import ToolCall

logger = structlog.get_logger()

YELLOW = "\033[1;33m"
CYAN = "\033[1;36m"
GREEN = "\033[1;32m"
RESET = "\033[0m"


def _format_value(value: object) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def format_tool_call(call: ToolCall) -> str:
    """Format a tool call for display, showing the exact command or payload."""
    lines = [
        "",
        f"{YELLOW}━━━ Tool Call ━━━{RESET}",
        f"{CYAN}Tool:{RESET} {call.name}",
    ]

    args = call.args or {}
    if args:
        lines.append(f"{CYAN}Payload:{RESET}")
        for key, value in args.items():
            lines.append(f"  {key}: {_format_value(value)}")

    # Shell commands are shown on their own so they are hard to miss
    if call.name == "shell" and isinstance(args.get("command"), str):
        lines.append("")
        lines.append(f"{GREEN}▶ Executing:{RESET} {args['command']}")

    return "\n".join(lines) + "\n"


def _ask(call: ToolCall) -> bool:
    print(format_tool_call(call), end="")
    try:
        answer = input(f"{YELLOW}Allow execution? [y/N]: {RESET}")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


async def prompt_confirmation(call: ToolCall) -> bool:
    """Ask on the terminal whether ``call`` may run. Anything but y/yes denies."""
    allowed = await asyncio.to_thread(_ask, call)
    logger.info("tool call reviewed", tool=call.name, allowed=allowed)
    return allowed
