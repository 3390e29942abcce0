"""Koe voice chat entry point.

Usage:
    python -m koe [OPTIONS]

Options:
    --config PATH    Path to YAML config file
    --profile NAME   Profile name (dev, prod, test)
    --serve          Run the relay server instead of the client
    --say TEXT       Speak one line of text and exit
    --help           Show this help message
    --version        Show version
"""

# Load .env file before anything else
from pathlib import Path as _Path

from dotenv import load_dotenv

# Try to find .env in project root (parent of src/)
_env_file = _Path(__file__).parent.parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    load_dotenv()  # Fall back to current directory

import argparse
import asyncio
import getpass
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from . import __version__
from .config.loader import load_config
from .config.profiles import detect_profile
from .errors import KoeError

if TYPE_CHECKING:
    from .app import VoiceChatApp
    from .config import KoeConfig


def setup_logging(level: str) -> None:
    """Configure logging based on config."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="koe",
        description="Koe - voice chat with spoken replies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m koe                     # Chat with auto-detected profile
  python -m koe --continuous        # Listen continuously between replies
  python -m koe --say "こんにちは"     # Speak one line and exit
  python -m koe --serve             # Run the relay server

Commands while chatting:
  /stop  /volume N  /rate N  /voice [ID]  /listen  /mode M  /quit

Environment:
  KOE_PROFILE      Set profile (dev, prod, test)
  KOE_PASSWORD     Relay password (prompted for if unset)
  MASTER_PASSWORD  Relay server password (--serve)
""",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to YAML config file",
        metavar="PATH",
    )

    parser.add_argument(
        "--profile",
        choices=["dev", "prod", "test"],
        help="Configuration profile to use",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Koe v{__version__}",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Load config and exit (for testing)",
    )

    parser.add_argument(
        "--mock-audio",
        action="store_true",
        help="Use mock audio components (for testing without hardware)",
    )

    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the relay server",
    )

    parser.add_argument(
        "--continuous",
        action="store_true",
        help="Keep listening for speech between replies",
    )

    parser.add_argument(
        "--say",
        metavar="TEXT",
        help="Speak TEXT and exit",
    )

    return parser.parse_args(argv)


def load_from_args(args: argparse.Namespace) -> "KoeConfig":
    """Load configuration selected by command line arguments."""
    if args.config:
        config = load_config(path=args.config)
    else:
        config = load_config(profile=args.profile)
    if args.continuous:
        config.capture.mode = "continuous"
    return config


def serve(config: "KoeConfig", logger: logging.Logger) -> int:
    """Run the relay server until interrupted."""
    import uvicorn

    from .server import RelaySecrets, create_app

    secrets = RelaySecrets.from_env()
    app = create_app(config.server, secrets)
    logger.info(f"Relay listening on http://{config.server.host}:{config.server.port}")
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )
    return 0


async def run_client(
    app: "VoiceChatApp", config: "KoeConfig", say: str | None, logger: logging.Logger
) -> int:
    """Log in, then chat interactively or speak one line."""
    password = os.environ.get(config.relay.password_env) or await asyncio.to_thread(
        getpass.getpass, "Relay password: "
    )
    try:
        await app.login(password)
    except KoeError as e:
        logger.error(f"Login failed: {e}")
        await app.aclose()
        return 1

    try:
        if say is not None:
            result = await app.speak(say)
            return 0 if result is not None and result.completed else 1
        await app.run()
    finally:
        await app.aclose()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for Koe.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    args = parse_args(argv)

    try:
        config = load_from_args(args)
    except FileNotFoundError as e:
        print(f"Error: Config file not found: {e}", file=sys.stderr)
        return 1
    except (TypeError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    setup_logging(config.logging.level)
    logger = logging.getLogger("koe")

    logger.info(f"Koe v{__version__}")
    logger.info(f"Profile: {args.profile or detect_profile().value}")
    logger.info(f"Log level: {config.logging.level}")

    if args.dry_run:
        logger.info("Dry run mode - exiting after config load")
        logger.info(f"Relay: {config.relay.base_url}")
        logger.info(f"Chat: {config.chat.provider}:{config.chat.model or 'default'}")
        logger.info(f"Voice: {config.tts.voice_model_id} ({config.tts.quality})")
        logger.info(f"Player: {config.playback.player} (streaming={config.playback.streaming})")
        return 0

    if args.serve:
        return serve(config, logger)

    from .app import VoiceChatApp

    use_mocks = config.testing.mock_audio_enabled or args.mock_audio
    try:
        app = VoiceChatApp.from_config(config, use_mocks=use_mocks)
    except RuntimeError as e:
        logger.error(f"Failed to initialize components: {e}")
        print(f"\nError: Failed to initialize Koe: {e}")
        print("\nMake sure you have:")
        print("  1. Installed an audio player: mpv (streaming), afplay or ffplay")
        print("  2. Started the relay: python -m koe --serve")
        return 1

    print("\n" + "=" * 50)
    print("  Koe")
    print("=" * 50)
    print(f"  Version: {__version__}")
    print(f"  Relay: {config.relay.base_url}")
    print(f"  Chat: {config.chat.provider}")
    print(f"  Streaming: {'yes' if app.engine.streaming_capable else 'no'}")
    print(f"  Voice input: {config.capture.mode if app.capture_loop else 'off'}")
    print("=" * 50 + "\n")

    try:
        return asyncio.run(run_client(app, config, args.say, logger))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        return 130


if __name__ == "__main__":
    sys.exit(main())
