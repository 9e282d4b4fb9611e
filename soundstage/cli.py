"""
Soundstage CLI entry point.

Provides command-line interface for running Soundstage.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from soundstage import __version__
from soundstage.app import SoundstageApp
from soundstage.config import Config, ConfigError, load_config
from soundstage.generation import GenerationError
from soundstage.playback import PlaybackError, TransportError, ValidationError

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_GENERATION_ERROR = 2
EXIT_OUTPUT_ERROR = 3


def setup_logging(level: str = "info") -> None:
    """Configure logging to stdout."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
        force=True,
    )


def _parse_volume(value: str) -> int:
    """Parse a 0-100 volume argument."""
    try:
        v = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid volume: {value}. Use 0-100")
    if not 0 <= v <= 100:
        raise argparse.ArgumentTypeError(f"Invalid volume: {v}. Use 0-100")
    return v


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="soundstage",
        description="Real-time background music and ambience player",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  soundstage --list-devices
  soundstage --generate battle
  soundstage --generate forest --ambience --force
  soundstage --mood battle --volume 60
  soundstage --play "Artist - Title.mp3" other.mp3
  soundstage --playlist "Road Trip" --shuffle --repeat
  soundstage --play-all --shuffle --output null

Environment Variables:
  REPLICATE_API_TOKEN, SOUNDSTAGE_CACHE_DIR, SOUNDSTAGE_LIBRARY_DIR
  SOUNDSTAGE_PLAYLISTS, SOUNDSTAGE_OUTPUT, SOUNDSTAGE_DEVICE
  SOUNDSTAGE_FFMPEG, SOUNDSTAGE_LOG_LEVEL
""",
    )

    # General
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List audio output devices and exit",
    )

    # Configuration
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("./config.yaml"),
        metavar="PATH",
        help="Path to config file (default: ./config.yaml)",
    )

    # Generation
    gen_group = parser.add_argument_group("Generation")
    gen_group.add_argument(
        "--generate",
        metavar="KEY",
        help="Generate and cache audio for a mood (or ambience) key, then exit",
    )
    gen_group.add_argument(
        "--ambience",
        action="store_true",
        help="Use the ambience prompts instead of music (with --generate/--mood)",
    )
    gen_group.add_argument(
        "--force",
        action="store_true",
        help="Regenerate even if a cached file exists (with --generate)",
    )

    # Playback
    play_group = parser.add_argument_group("Playback")
    source = play_group.add_mutually_exclusive_group()
    source.add_argument(
        "--mood",
        metavar="KEY",
        help="Play generated mood music (or ambience), looping",
    )
    source.add_argument(
        "--play",
        nargs="+",
        metavar="NAME|PATH",
        help="Play files or catalog tracks in order",
    )
    source.add_argument(
        "--playlist",
        metavar="NAME",
        help="Play a stored playlist",
    )
    source.add_argument(
        "--play-all",
        action="store_true",
        help="Play the whole track catalog",
    )
    play_group.add_argument(
        "--no-loop",
        action="store_true",
        help="Play a mood once instead of looping (with --mood)",
    )
    play_group.add_argument(
        "--shuffle",
        action="store_true",
        help="Shuffle the playlist or catalog",
    )
    play_group.add_argument(
        "--repeat",
        action="store_true",
        help="Repeat the current track",
    )
    play_group.add_argument(
        "--volume",
        type=_parse_volume,
        metavar="0-100",
        help="Playback volume (default: 100)",
    )

    # Output
    output_group = parser.add_argument_group("Output")
    output_group.add_argument(
        "--output",
        choices=["local", "null"],
        metavar="TYPE",
        help="Output type: local, null",
    )
    output_group.add_argument(
        "--device",
        metavar="NAME|INDEX",
        help="Audio output device (default: system default)",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        metavar="LEVEL",
        help="Log level: debug, info, warning, error",
    )

    return parser.parse_args(argv)


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def args_to_dict(args: argparse.Namespace) -> dict:
    """Convert argparse namespace to nested config dict."""
    result: dict = {}

    # Map CLI args to config paths
    mappings = {
        "volume": ("playback", "default_volume"),
        "output": ("output", "type"),
        "device": ("output", "device"),
        "log_level": ("logging", "level"),
    }

    for arg_name, path in mappings.items():
        value = getattr(args, arg_name, None)
        if value is None:
            continue
        _set_nested(result, path, value)

    return result


def log_config(config: Config) -> None:
    """Log configuration summary (without sensitive data)."""
    logger.info(f"Output: {config.output.type} ({config.output.device})")
    logger.info(f"Cache directory: {config.cache.directory}")
    logger.info(f"Library directory: {config.catalog.library_dir}")
    logger.info(f"Volume: {config.playback.default_volume}")
    if config.generation.api_token:
        logger.info(f"Generation API: {config.generation.base_url}")
    else:
        logger.info("Generation API: disabled (no token)")


def run_list_devices() -> int:
    """Print audio output devices."""
    from soundstage.sinks.local import format_devices

    try:
        listing = format_devices()
    except TransportError as e:
        print(f"Cannot list audio devices: {e}")
        return EXIT_OUTPUT_ERROR

    if not listing:
        print("No audio output devices found.")
        return EXIT_SUCCESS
    print("Audio output devices:\n")
    print(listing)
    return EXIT_SUCCESS


def build_action(args: argparse.Namespace):
    """Turn playback flags into a coroutine run once the output is open."""
    kind = "ambience" if args.ambience else "music"

    async def action(app: SoundstageApp) -> None:
        engine = app.engine
        assert engine is not None
        if args.repeat:
            engine.toggle_repeat()

        if args.mood:
            await app.play_mood(args.mood, kind=kind, loop=not args.no_loop)
        elif args.play:
            await app.play_tracks(args.play)
        elif args.playlist:
            if args.shuffle:
                engine.toggle_shuffle()
            await engine.play_playlist(args.playlist)
        elif args.play_all:
            await engine.play_all(shuffle=args.shuffle)
        else:
            logger.info("Nothing to play, waiting for shutdown signal")

    return action


async def run_generate(app: SoundstageApp, key: str, kind: str, force: bool) -> None:
    await app.start(with_output=False)
    try:
        await app.generate(key, kind=kind, force=force)
    finally:
        await app.stop()


def run_main(args: argparse.Namespace) -> int:
    """
    Run Soundstage.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    # Setup basic logging first (will be reconfigured after config load)
    setup_logging("info")

    logger.info(f"Soundstage v{__version__}")

    try:
        # Load configuration
        cli_config = args_to_dict(args)
        config = load_config(args.config, cli_config)

        # Reconfigure logging with loaded level
        setup_logging(config.logging.level)

        log_config(config)

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    kind = "ambience" if args.ambience else "music"
    try:
        if args.generate:
            app = SoundstageApp(config)
            asyncio.run(run_generate(app, args.generate, kind, args.force))
            return EXIT_SUCCESS

        app = SoundstageApp(config, exit_when_idle=not args.mood or args.no_loop)
        asyncio.run(app.run(build_action(args)))
        return EXIT_SUCCESS

    except GenerationError as e:
        logger.error(f"Generation failed: {e}")
        return EXIT_GENERATION_ERROR

    except TransportError as e:
        logger.error(f"Output error: {e}")
        return EXIT_OUTPUT_ERROR

    except ValidationError as e:
        logger.error(f"{e}")
        return EXIT_CONFIG_ERROR

    except PlaybackError as e:
        logger.error(f"Playback error: {e}")
        return EXIT_OUTPUT_ERROR

    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_SUCCESS


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code: 0=success, 1=config error, 2=generation error, 3=output error
    """
    args = parse_args(argv)

    if args.list_devices:
        return run_list_devices()
    return run_main(args)


if __name__ == "__main__":
    sys.exit(main())
