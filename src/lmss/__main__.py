"""CLI entry point for lmss."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from lmss.agent import Agent
from lmss.client import LmssClient
from lmss.config import AppConfig, load_config
from lmss.errors import LmssError
from lmss.log import setup_logging
from lmss.service import LmssService
from lmss.tools import ToolRegistry

EXIT_COMMANDS = {"exit", "quit"}


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="lmss",
        description="Client for a local LM Studio server",
    )
    parser.add_argument("-c", "--config", default="lmss.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")
    parser.add_argument("--base-url", help="Override the server URL from the config")
    parser.add_argument("--model", help="Model to use instead of the configured default")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("config-check", help="Validate configuration")
    subparsers.add_parser("models", help="List models loaded on the server")
    subparsers.add_parser("status", help="Show server readiness")

    chat_parser = subparsers.add_parser("chat", help="Send one message and print the reply")
    chat_parser.add_argument("message", help="Message to send")
    chat_parser.add_argument("-s", "--system", help="System prompt")
    chat_parser.add_argument("--stream", action="store_true", help="Print the reply as it streams")

    agent_parser = subparsers.add_parser("agent", help="Interactive agent with file system tools")
    agent_parser.add_argument("-w", "--working-dir", help="Directory the tools operate in")
    agent_parser.add_argument("--no-tools", action="store_true", help="Chat without tools")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    if args.command == "config-check":
        _check_config(args.config, args.env)
        return

    config = _load(args.config, args.env, args.base_url)
    setup_logging(config.log_level)

    if args.command == "models":
        coro = _models(config)
    elif args.command == "status":
        coro = _status(config)
    elif args.command == "chat":
        coro = _chat(config, args.model, args.message, args.system, args.stream)
    else:
        coro = _agent(config, args.model, args.working_dir, args.no_tools)

    try:
        sys.exit(asyncio.run(coro))
    except KeyboardInterrupt:
        sys.exit(130)


def _load(config_path: str, env_path: str, base_url: str | None) -> AppConfig:
    """Load config, falling back to defaults when the file is missing."""
    try:
        config = load_config(config_path, env_path)
    except FileNotFoundError:
        config = AppConfig()
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    if base_url:
        client = config.client.model_copy(update={"base_url": base_url.rstrip("/")})
        config = config.model_copy(update={"client": client})
    return config


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    try:
        config = load_config(config_path, env_path)
        print(f"Configuration valid: {config_path}")
        print(f"  Server   : {config.client.base_url}")
        print(f"  Model    : {config.client.default_model or '(first loaded)'}")
        print(f"  Timeouts : request {config.client.request_timeout}s, models {config.client.model_fetch_timeout}s")
        print(f"  Log level: {config.log_level}")
        tools = config.agent.tools
        print(f"  Tools    : {', '.join(tools) if tools else '(none)'}")
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


async def _models(config: AppConfig) -> int:
    async with LmssClient(config.client) as client:
        try:
            models = await client.list_models()
        except LmssError as e:
            _report(e)
            return 1

    if not models:
        print("No models loaded.")
        return 1
    for model in models:
        marker = "*" if model == client.current_model else " "
        print(f" {marker} {model}")
    return 0


async def _status(config: AppConfig) -> int:
    async with LmssClient(config.client) as client:
        service = LmssService(client)
        readiness = await service.check_readiness()
        status = await service.get_server_status()

    print(f"Server  : {status.base_url}")
    print(f"Healthy : {status.is_healthy}")
    print(f"Models  : {', '.join(status.available_models) if status.available_models else '(none)'}")
    print(f"Current : {status.current_model or '(none)'}")
    print(readiness.message)
    if not readiness.is_ready:
        print(f"  {readiness.suggested_action}")
        return 1
    return 0


async def _chat(
    config: AppConfig, model: str | None, message: str, system_prompt: str | None, stream: bool
) -> int:
    async with LmssClient(config.client) as client:
        try:
            if model and not await client.set_current_model(model):
                print(f"Model not available: {model}", file=sys.stderr)
                return 1
            if stream:
                async for part in client.send_message_stream(message, system_prompt):
                    print(part, end="", flush=True)
                print()
            else:
                print(await client.send_message(message, system_prompt or config.agent.system_prompt))
        except LmssError as e:
            _report(e)
            return 1
    return 0


async def _agent(config: AppConfig, model: str | None, working_dir: str | None, no_tools: bool) -> int:
    root = Path(working_dir or config.agent.working_dir or Path.cwd())
    registry = ToolRegistry()
    if not no_tools:
        registry.discover_and_register(root, names=config.agent.tools)

    async with LmssClient(config.client) as client:
        if model and not await client.set_current_model(model):
            print(f"Model not available: {model}", file=sys.stderr)
            return 1

        agent = Agent(
            client,
            config.agent.system_prompt,
            working_dir=root,
            registry=registry,
            temperature=config.agent.temperature,
            max_tokens=config.agent.max_tokens,
        )
        print(f"Working directory: {agent.working_dir}")
        print(f"Tools: {', '.join(registry.names()) or '(none)'}")
        print("Type 'exit' to quit, 'clear' to reset the conversation.")

        loop = asyncio.get_running_loop()
        while True:
            try:
                line = await loop.run_in_executor(None, input, "> ")
            except EOFError:
                break
            text = line.strip()
            if not text:
                continue
            if text.lower() in EXIT_COMMANDS:
                break
            if text.lower() == "clear":
                agent.clear_conversation()
                print("Conversation cleared.")
                continue

            try:
                print(await agent.chat(text))
            except LmssError as e:
                _report(e)
    return 0


def _report(error: LmssError) -> None:
    print(f"Error: {error.kind.user_message}", file=sys.stderr)
    print(f"  {error}", file=sys.stderr)
    print(f"  {error.suggested_action}", file=sys.stderr)


if __name__ == "__main__":
    main()
