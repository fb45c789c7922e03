import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from narrator.backends.catalog import AVAILABLE_MODELS
from narrator.core.config import BackendKind, Config, VoiceSettings
from narrator.core.exceptions import ConfigurationError
from narrator.core.logging import setup_logging
from narrator.document import ChapterCursor, load_text_book
from narrator.engine import SpeechEngine, UnifiedPlaybackState

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="narrator", description="Read text documents aloud, chapter by chapter")
    parser.add_argument("files", nargs="*", help="UTF-8 text files, one chapter each")
    parser.add_argument("--engine", choices=[kind.value for kind in BackendKind], help="Speech backend")
    parser.add_argument("--model-id", help="Hugging Face text-to-speech model (model engine)")
    parser.add_argument("--voice", help="Host voice name or language (ondevice engine)")
    parser.add_argument("--speed", type=float, help="Speaking speed, 0.5 to 2.0")
    parser.add_argument("--volume", type=float, help="Volume, 0 to 1")
    parser.add_argument("--pitch", type=float, help="Pitch, 0 to 2")
    parser.add_argument("--chapter", type=int, default=1, help="Chapter to start from (1-based)")
    parser.add_argument("--title", help="Book title")
    parser.add_argument("--author", help="Book author")
    parser.add_argument("--log-level", help="Logging level")
    parser.add_argument("--list-models", action="store_true", help="List downloadable models and exit")
    return parser

def apply_arguments(config: Config, args: argparse.Namespace) -> Config:
    if args.engine:
        config.engine = BackendKind(args.engine)
    if args.model_id:
        config.model.model_id = args.model_id
    if args.voice:
        config.ondevice.voice = args.voice
    if args.log_level:
        config.logging.level = args.log_level.upper()
    config.voice = VoiceSettings(
        speed=config.voice.speed if args.speed is None else args.speed,
        volume=config.voice.volume if args.volume is None else args.volume,
        pitch=config.voice.pitch if args.pitch is None else args.pitch,
    ).clamped()
    return config

async def run(args: argparse.Namespace) -> int:
    config = apply_arguments(Config.load(), args)
    setup_logging(level=config.logging.level, fmt=config.logging.format)
    logger = logging.getLogger("main")

    book = load_text_book(args.files, title=args.title, author=args.author)
    if not book.chapters:
        logger.error("No readable chapters in the given files")
        return 1
    cursor = ChapterCursor(book)
    if not cursor.go_to(args.chapter - 1):
        logger.warning(f"Chapter {args.chapter} does not exist, starting from the first one")

    engine = SpeechEngine(config)
    chapter_done = asyncio.Event()
    stopping = False

    def on_state(state: UnifiedPlaybackState):
        if state.error or (state.progress >= 100 and not state.is_playing):
            chapter_done.set()

    engine.on_state_change(on_state)

    # Handle graceful shutdown
    loop = asyncio.get_running_loop()
    def stop_all():
        nonlocal stopping
        logger.info("Stopping...")
        stopping = True
        chapter_done.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_all)

    logger.info(f"Reading '{book.title}' by {book.author} ({len(book.chapters)} chapters) with {config.engine.value}")
    try:
        state = await engine.start()
        if state.error:
            logger.error(f"Speech backend unavailable: {state.error}")
            return 1

        while not stopping:
            chapter = cursor.current
            logger.info(f"Chapter {cursor.index + 1}/{len(book.chapters)}: {chapter.label}")
            chapter_done.clear()
            await engine.speak(chapter.text)
            await chapter_done.wait()

            if engine.state.error:
                logger.error(f"Playback stopped: {engine.state.error}")
                return 1
            if stopping or not cursor.next():
                break
    finally:
        await engine.close()

    logger.info("Done.")
    return 0

def cli(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.list_models:
        for model in AVAILABLE_MODELS:
            print(f"{model.id:<26} {model.name:<10} {model.size:>7}  {model.quality:<6}  {model.description}")
        return 0

    if not args.files:
        print("narrator: at least one text file is required", file=sys.stderr)
        return 2

    try:
        return asyncio.run(run(args))
    except ConfigurationError as e:
        print(f"narrator: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130

if __name__ == "__main__":
    sys.exit(cli())
