"""
Command-line interface for igent.
"""

import argparse
import asyncio
import logging
import sys

import structlog

from . import __version__
from .config import PROVIDER_MODELS, ProviderConfig, Settings, get_settings
from .errors import ConfigError, IgentError, ToolDenied

logger = structlog.get_logger()

COMMANDS = ("config", "list", "memory", "skill")

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

REPL_HELP = """Commands:
  /help          - Show this help
  /new [name]    - Start a new conversation
  /list          - List conversations
  /switch <id>   - Switch to a conversation
  /delete <id>   - Delete a conversation
  /memory        - List memories
  /memory add <type> <content> - Add memory
  /skills        - List skills
  /tools         - List available tools
  /clear         - Clear screen
  /exit          - Exit"""


def configure_logging(level: str = "info", fmt: str = "text") -> None:
    """Route structlog through stdlib logging to stderr."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=LOG_LEVELS.get(level.lower(), logging.INFO),
        force=True,
    )

    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_root_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="igent",
        description="igent - AI agent with persistent context",
        epilog=f"Management commands: {', '.join(COMMANDS)}",
    )
    parser.add_argument("prompt", nargs="*", help="Message to send (interactive mode when empty)")
    parser.add_argument("-C", "--conversation", default="default", help="Conversation ID")
    parser.add_argument(
        "--stream",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Stream the raw model response without tool use",
    )
    parser.add_argument("-v", "--version", action="store_true", help="Show version")
    return parser


def build_command_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="igent")
    subparsers = parser.add_subparsers(dest="command", required=True)

    config_parser = subparsers.add_parser("config", help="Manage configuration")
    config_sub = config_parser.add_subparsers(dest="config_command", required=True)
    config_sub.add_parser("show", help="Show current configuration")
    config_sub.add_parser("init", help="Write a configuration file")

    subparsers.add_parser("list", help="List conversations")

    memory_parser = subparsers.add_parser("memory", help="Manage agent memory")
    memory_sub = memory_parser.add_subparsers(dest="memory_command", required=True)
    memory_sub.add_parser("list", help="List all memories")
    add_parser = memory_sub.add_parser("add", help="Add a memory")
    add_parser.add_argument("type", help="fact, preference or context")
    add_parser.add_argument("content", nargs="+", help="What to remember")
    delete_parser = memory_sub.add_parser("delete", help="Delete a memory")
    delete_parser.add_argument("id", help="Memory ID")

    skill_parser = subparsers.add_parser("skill", help="Manage agent skills")
    skill_sub = skill_parser.add_subparsers(dest="skill_command", required=True)
    skill_sub.add_parser("list", help="List all skills")
    skill_add = skill_sub.add_parser("add", help="Add or replace a skill")
    skill_add.add_argument("id", help="Skill ID")
    skill_add.add_argument("name", help="Skill name, matched against user input")
    skill_add.add_argument("prompt", help="Text added to the system prompt when matched")
    skill_add.add_argument("--description", default="", help="Short description")
    skill_add.add_argument(
        "--trigger",
        action="append",
        default=[],
        metavar="KEY=REGEX",
        help="Extra regex that activates the skill (repeatable)",
    )
    skill_remove = skill_sub.add_parser("remove", help="Remove a skill")
    skill_remove.add_argument("id", help="Skill ID")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    argv = sys.argv[1:] if argv is None else argv

    root_parser = build_root_parser()
    args, extra = root_parser.parse_known_args(argv)

    if args.version:
        print("igent", __version__)
        return

    try:
        settings = get_settings()
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(settings.logging.level, settings.logging.format)

    if args.prompt and args.prompt[0] in COMMANDS:
        command_args = build_command_parser().parse_args(args.prompt + extra)
        code = run_command(command_args, settings)
    else:
        if extra:
            root_parser.error(f"unrecognized arguments: {' '.join(extra)}")
        code = asyncio.run(run_agent(settings, args.conversation, " ".join(args.prompt), args.stream))

    if code:
        sys.exit(code)


def _create_agent(settings: Settings, **kwargs):
    from .agent import Agent

    return Agent(settings=settings, **kwargs)


async def run_agent(settings: Settings, conversation_id: str, prompt: str, stream: bool) -> int:
    """Send one message, or start the REPL when ``prompt`` is empty."""
    from .agent import prompt_confirmation

    try:
        agent = _create_agent(settings, confirm=prompt_confirmation)
        agent.set_conversation(conversation_id)
    except IgentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        if not prompt:
            await interactive(agent)
            return 0

        try:
            if stream:
                await agent.chat_stream(prompt, lambda chunk: print(chunk, end="", flush=True), stream=True)
                print()
            else:
                print(await agent.chat(prompt))
        except ToolDenied:
            return 1
        except IgentError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        return 0
    finally:
        await agent.close()


async def interactive(agent) -> None:
    """Run the interactive REPL until /exit or end of input."""
    logger.info("starting interactive session", conversation=agent.conversation_id)
    print(f"{agent.settings.agent.name} ready. Type your message (Ctrl+C or /exit to exit).")

    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except (EOFError, KeyboardInterrupt):
            break

        text = line.strip()
        if not text:
            continue

        if text.startswith("/"):
            if not handle_command(agent, text):
                break
            continue

        print()
        try:
            await agent.chat_stream(text, lambda chunk: print(chunk, end="", flush=True))
        except ToolDenied:
            print("\n")
            continue
        except IgentError as e:
            print(f"\nError: {e}")
            continue
        print("\n")

    print("Goodbye!")


def handle_command(agent, text: str) -> bool:
    """Process a slash command. Returns False when the session should end."""
    parts = text.split()
    cmd, rest = parts[0], parts[1:]

    try:
        if cmd == "/help":
            print(REPL_HELP)
        elif cmd == "/new":
            name = rest[0] if rest else "default"
            agent.set_conversation(name)
            print(f"Started new conversation: {name}")
        elif cmd == "/list":
            print("Conversations:")
            for conversation_id in agent.list_conversations():
                marker = " *" if conversation_id == agent.conversation_id else ""
                print(f"  {conversation_id}{marker}")
        elif cmd == "/switch":
            if not rest:
                print("Usage: /switch <conversation-id>")
            else:
                agent.set_conversation(rest[0])
                print(f"Switched to: {rest[0]}")
        elif cmd == "/delete":
            if not rest:
                print("Usage: /delete <conversation-id>")
            else:
                agent.delete_conversation(rest[0])
                print(f"Deleted: {rest[0]}")
        elif cmd == "/memory":
            if rest and rest[0] == "add":
                if len(rest) < 3:
                    print("Usage: /memory add <type> <content>")
                else:
                    agent.add_memory(" ".join(rest[2:]), rest[1])
                    print("Memory added")
            else:
                print("Memories:")
                for memory in agent.list_memories():
                    print(f"  [{memory.type}] {memory.content}")
        elif cmd == "/skills":
            print("Skills:")
            for skill in agent.list_skills():
                print(f"  {skill.name}: {skill.description}")
        elif cmd == "/tools":
            print("Available Tools:")
            for tool in agent.list_tools():
                print(f"  {tool.name}: {tool.description}")
        elif cmd == "/clear":
            print("\033[2J\033[H", end="")
        elif cmd == "/exit":
            return False
        else:
            print(f"Unknown command: {cmd}")
    except IgentError as e:
        print(f"Error: {e}")

    return True


def run_command(args: argparse.Namespace, settings: Settings) -> int:
    """Run a management subcommand."""
    try:
        if args.command == "config":
            if args.config_command == "show":
                show_config(settings)
            else:
                init_config(settings)
        elif args.command == "list":
            list_conversations(settings)
        elif args.command == "memory":
            manage_memory(args, settings)
        elif args.command == "skill":
            manage_skills(args, settings)
    except IgentError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def _store(settings: Settings):
    from .storage import JSONStore

    return JSONStore(settings.ensure_work_dir())


def mask(value: str) -> str:
    if not value:
        return "(not set)"
    return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"


def show_config(settings: Settings) -> None:
    """Show current configuration."""
    print(f"Provider: {settings.provider.type}")
    print(f"Base URL: {settings.provider.base_url or '(provider default)'}")
    print(f"API Key: {mask(settings.provider.api_key)}")
    print(f"Model: {settings.provider.model}")
    print(f"Work Dir: {settings.work_dir}")
    print(f"Max Messages: {settings.context.max_messages}")
    print(f"Max Tokens: {settings.context.max_tokens}")
    print(f"Summarize When: {settings.context.summarize_when}")
    print(f"Log Level: {settings.logging.level}")


def _ask(prompt: str) -> str:
    try:
        return input(prompt).strip()
    except EOFError:
        return ""


def init_config(settings: Settings) -> None:
    """Interactively write the per-user .env file."""
    api_key = settings.provider.api_key or _ask("Enter API key: ")

    provider = _ask(f"Provider (openai/zhipu/anthropic) [{settings.provider.type}]: ").lower()
    if provider == "glm":
        provider = "zhipu"
    provider = provider or settings.provider.type
    if provider not in PROVIDER_MODELS:
        raise ConfigError(f"Unknown LLM provider: {provider}")

    default_model = PROVIDER_MODELS[provider]
    model = _ask(f"Model [{default_model}]: ") or default_model

    settings.provider = ProviderConfig(type=provider, api_key=api_key, model=model)
    settings.ensure_work_dir()
    settings.env_path.write_text(settings.to_env(), encoding="utf-8")
    print(f"Configuration saved to: {settings.env_path}")


def list_conversations(settings: Settings) -> None:
    conversation_ids = _store(settings).conversations.list_ids()
    if not conversation_ids:
        print("No conversations found")
        return
    print("Conversations:")
    for conversation_id in conversation_ids:
        print(f"  {conversation_id}")


def manage_memory(args: argparse.Namespace, settings: Settings) -> None:
    from .storage import MemoryItem

    memories = _store(settings).memories

    if args.memory_command == "list":
        items = sorted(memories.load_all(), key=lambda m: m.created_at)
        if not items:
            print("No memories found")
            return
        print("Memories:")
        for m in items:
            print(f"  {m.id} [{m.type}] {m.content} (relevance: {m.relevance:.2f})")
    elif args.memory_command == "add":
        memory = MemoryItem(content=" ".join(args.content), type=args.type, relevance=1.0)
        memories.save(memory)
        print(f"Memory added successfully (id: {memory.id})")
    elif args.memory_command == "delete":
        memories.delete(args.id)
        print(f"Memory deleted: {args.id}")


def manage_skills(args: argparse.Namespace, settings: Settings) -> None:
    from .skills import SkillRegistry
    from .storage import Skill

    registry = SkillRegistry(_store(settings).skills)

    if args.skill_command == "list":
        skills = registry.list()
        if not skills:
            print("No skills found")
            return
        print("Skills:")
        for s in skills:
            status = "enabled" if s.enabled else "disabled"
            print(f"  {s.name} ({status}): {s.description}")
    elif args.skill_command == "add":
        parameters = {}
        for trigger in args.trigger:
            key, sep, pattern = trigger.partition("=")
            if not sep or not key:
                raise ConfigError(f"invalid trigger {trigger!r}, expected KEY=REGEX")
            parameters[f"trigger_{key}"] = pattern
        registry.register(
            Skill(
                id=args.id,
                name=args.name,
                description=args.description,
                prompt=args.prompt,
                parameters=parameters,
            )
        )
        print(f"Skill registered: {args.id}")
    elif args.skill_command == "remove":
        registry.unregister(args.id)
        print(f"Skill removed: {args.id}")


if __name__ == "__main__":
    main()
