#!/usr/bin/env python3
"""Main entry point for livechat."""

import argparse
import asyncio
import logging
import sys

from .__version__ import __version__
from .chat.manager import ChatManager
from .chat.models import ChatMessage, Identity
from .core.settings import Settings

logger = logging.getLogger(__name__)


def setup_logging(level: int = logging.INFO) -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    # Suppress noisy third-party loggers
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="livechat", description="Follow a channel's live chat.")
    parser.add_argument("channel_id", help="Channel to join")
    parser.add_argument("--user-id", default=None, help="Viewer user id")
    parser.add_argument("--username", default=None, help="Viewer display name")
    parser.add_argument("--tier", default=None, help="Subscription tier (default: free)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def build_identity(args: argparse.Namespace, settings: Settings) -> Identity:
    """Command line values take precedence over the saved account."""
    account = settings.account
    return Identity(
        user_id=args.user_id or account.user_id,
        username=args.username or account.username,
        token=account.access_token,
        tier=args.tier or account.tier or "free",
    )


async def run(args: argparse.Namespace, settings: Settings) -> None:
    manager = ChatManager(settings)

    def on_message(message: ChatMessage) -> None:
        print(manager.render_text(message), flush=True)

    manager.message_appended.connect(on_message)
    manager.notice.connect(lambda text: print(f"! {text}", flush=True))

    try:
        await manager.start(args.channel_id, build_identity(args, settings))
        # Runs until interrupted
        await asyncio.Event().wait()
    finally:
        await manager.stop()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.debug else logging.INFO)
    settings = Settings.load()

    try:
        asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, leaving chat")
    return 0


if __name__ == "__main__":
    sys.exit(main())
