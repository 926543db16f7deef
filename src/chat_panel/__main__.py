"""CLI entry point for chat-panel."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from zoneinfo import ZoneInfo

from chat_panel.ai.client import create_ai_client
from chat_panel.app import ChatPanelApp
from chat_panel.config import AppConfig, load_config
from chat_panel.core.errors import ChatPanelError
from chat_panel.log import setup_logging
from chat_panel.memory.conversation_store import ConversationStore
from chat_panel.reports.assembler import ReportAssembler, render_transcript
from chat_panel.storage.database import Database
from chat_panel.storage.json_store import JsonFileStore
from chat_panel.storage.message_repo import MessageRepository


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="chat-panel",
        description="Auto-reply bot, conversation memory and daily reports over a messaging client",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_common(subparsers.add_parser("start", help="Start the bot"))
    _add_common(subparsers.add_parser("config-check", help="Validate configuration"))
    _add_common(subparsers.add_parser("stats", help="Show conversation memory statistics"))

    report_parser = subparsers.add_parser("report", help="Print a daily report from the message archive")
    _add_common(report_parser)
    report_parser.add_argument("-d", "--date", default=None, help="Day to report on (YYYY-MM-DD), default today")
    report_parser.add_argument("--no-ai", action="store_true", help="Print the raw transcript instead of a summary")

    args = parser.parse_args()

    if args.command is None:
        args.command = "start"
        args.config = "config.yaml"
        args.env = ".env"

    config = _load(args.config, args.env)

    if args.command == "config-check":
        _check_config(args.config, config)
    elif args.command == "stats":
        _stats(config)
    elif args.command == "report":
        setup_logging(config.log_level, config.log_format)
        asyncio.run(_report(config, args.date, use_ai=not args.no_ai))
    elif args.command == "start":
        setup_logging(config.log_level, config.log_format)
        _run(config)


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml and edit it first.", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, config: AppConfig) -> None:
    """Print a summary of the validated configuration."""
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory : {config.data_dir}")
    print(f"  Messaging      : {'telegram' if config.telegram else '(none)'}")
    try:
        ai_client = create_ai_client(config)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    state = "ready" if ai_client.available else "disabled"
    print(f"  AI backend     : {config.ai.backend} ({ai_client.model_name}, {state})")
    print(f"  Message index  : {config.storage.db_path}")
    print(f"  Conversations  : {config.storage.conversations_path}")
    print(
        f"  Memory         : {config.memory.max_messages_per_session} msgs/session, "
        f"expire after {config.memory.session_timeout_hours:g}h"
    )
    print(f"  Report timezone: {config.reports.timezone}")


def _stats(config: AppConfig) -> None:
    store = ConversationStore(JsonFileStore(config.storage.conversations_path))
    for key, value in store.stats().items():
        print(f"{key:>15}: {value}")


async def _report(config: AppConfig, date: str | None, use_ai: bool) -> None:
    """Build a report without a live messaging session (archive only)."""
    db = Database(config.storage.db_path)
    await db.initialize()
    tz = ZoneInfo(config.reports.timezone)
    try:
        assembler = ReportAssembler(
            MessageRepository(db),
            None,
            create_ai_client(config),
            tz=tz,
            custom_prompt=config.reports.custom_prompt,
            live_fetch_limit=config.reports.live_fetch_limit,
            ai_timeout=config.reports.ai_timeout_seconds,
        )
        try:
            result = await assembler.assemble(date=date, use_ai=use_ai)
        except ChatPanelError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    finally:
        await db.close()

    print(f"Report for {result.date} [{result.source}] - {result.count} messages")
    print()
    if result.summary is not None:
        print(result.summary)
    else:
        print(render_transcript(result.messages, tz))


def _run(config: AppConfig) -> None:
    """Start the application and block until a shutdown signal."""

    async def _async_main() -> None:
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(stop_event.set))

        try:
            app = ChatPanelApp(config)
        except ValueError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            sys.exit(1)

        await app.start()
        try:
            await stop_event.wait()
        finally:
            await app.stop()

    asyncio.run(_async_main())


if __name__ == "__main__":
    main()
