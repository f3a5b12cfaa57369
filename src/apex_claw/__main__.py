"""CLI entry point for apex-claw."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from apex_claw.ai.upstream.signing import get_target_model, is_search_model, is_thinking_model
from apex_claw.config import AppConfig, load_config
from apex_claw.errors import ConfigMissingError
from apex_claw.log import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apex-claw",
        description="Personal Telegram agent backed by chat.z.ai",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (
        ("start", "Start the bot"),
        ("config-check", "Validate configuration"),
        ("model-info", "Show the configured model and how it maps upstream"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
        sub.add_argument("-e", "--env", default=".env", help="Path to .env file")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    if args.command is None:
        # Default to start
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "model-info":
        _model_info(args.config, args.env)
    elif args.command == "start":
        _run(args.config, args.env)


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load(config_path, env_path)
    try:
        config.require_mandatory()
    except ConfigMissingError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"Configuration valid: {config_path}")
    print(f"  Owner: {config.telegram.owner_id}")
    print(f"  Upstream: {config.upstream.base_url} ({'static token' if config.upstream.token else 'guest token'})")
    print(f"  Model: {config.agent.model} (max {config.agent.max_iterations} iterations)")
    print(f"  Scheduler: tz={config.scheduler.timezone} tick={config.scheduler.tick_seconds}s")
    print(f"  Workspace: {config.tools.workspace_dir}")
    print(f"  Voice: {'enabled' if config.transcription.url else 'disabled'}")


def _model_info(config_path: str, env_path: str) -> None:
    """Show how the configured model is sent upstream."""
    config = _load(config_path, env_path)
    model = config.agent.model

    print("AI Model Configuration")
    print("=" * 50)
    print(f"  Model    : {model}")
    print(f"  Upstream : {get_target_model(model)}")
    print(f"  Thinking : {is_thinking_model(model)}")
    print(f"  Search   : {is_search_model(model)}")
    print(f"  Endpoint : {config.upstream.base_url}")
    print()


def _run(config_path: str, env_path: str) -> None:
    """Load config and start the application."""
    config = _load(config_path, env_path)
    try:
        config.require_mandatory()
    except ConfigMissingError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Set the missing values in .env or copy config.example.yaml to config.yaml")
        sys.exit(1)

    setup_logging(config.log_level, json=config.log_json)

    from apex_claw.app import ApexClawApp

    async def _async_main() -> None:
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: _signal_handler())

        app = ApexClawApp(config)
        await app.start()
        try:
            await stop_event.wait()
        finally:
            await app.stop()

    asyncio.run(_async_main())


if __name__ == "__main__":
    main()
