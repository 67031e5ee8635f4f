import argparse
import asyncio
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from batch_translator import BatchTranslator, EventKind, TranslationEvent
from caption_cache import JsonFileStore, MemoryStore, ResultCache
from captions_io import JsonExporter, lang_code, load_captions, save_captions
from chunk_scheduler import ChunkScheduler
from incremental_translator import IncrementalTranslator
from translation_client import GeminiClient, TokenBucket
from translator_config import MODES, Settings, get_mode, load_settings
from translator_errors import BackendError, ConfigError

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


class ProgressPrinter:
    """Observer that renders batch events on the terminal"""

    def __init__(self, desc: str):
        self.desc = desc
        self.bar: tqdm | None = None

    def __call__(self, event: TranslationEvent) -> None:
        if event.kind == EventKind.PROGRESS:
            if self.bar is None:
                self.bar = tqdm(total=100, desc=self.desc, unit="%")
            self.bar.update(event.payload - self.bar.n)
        elif event.kind == EventKind.STATUS:
            if self.bar is not None:
                self.bar.set_postfix_str(event.payload)
            else:
                print(f"  {event.payload}")
        elif event.kind == EventKind.COMPLETE:
            if self.bar is not None:
                self.bar.update(100 - self.bar.n)
                self.bar.close()
                self.bar = None
        elif event.kind == EventKind.ERROR:
            if self.bar is not None:
                self.bar.close()
                self.bar = None
            print(f"  ❌ {event.payload}")


def make_client(settings: Settings, rpm: int | None = None) -> GeminiClient:
    return GeminiClient(
        settings.api_key,
        model_id=settings.model_id,
        timeout=settings.api_timeout,
        rate_limiter=TokenBucket.per_minute(rpm or settings.max_rpm),
    )


def default_output_path(input_path: Path, tag: str) -> Path:
    return input_path.with_name(f"{input_path.stem}.{tag}{input_path.suffix}")


async def run_translate(args, settings: Settings) -> int:
    input_path = Path(args.input)
    try:
        items = load_captions(input_path)
    except (OSError, ValueError) as e:
        print(f"  Error reading {input_path.name}: {e}")
        return EXIT_FAILED
    if not items:
        print(f"  {input_path.name} contains no captions, skipped.")
        return EXIT_FAILED

    cache_file = Path(args.cache_file) if args.cache_file else settings.cache_file
    store = JsonFileStore(cache_file) if cache_file else MemoryStore()
    export_dir = Path(args.export_dir) if args.export_dir else settings.export_dir
    exporter = JsonExporter(export_dir, settings.target_lang) if export_dir else None
    config = get_mode(args.mode or settings.speed_mode)

    print(f"\n▶ Translating {len(items)} captions from {input_path.name}")
    async with make_client(settings, args.rpm) as client:
        translator = BatchTranslator(
            client,
            ResultCache(store),
            observer=ProgressPrinter(f"Translating {input_path.name}"),
            scheduler=ChunkScheduler(chunk_timeout=args.chunk_timeout),
            exporter=exporter,
            source_lang=settings.source_lang,
            target_lang=settings.target_lang,
        )
        try:
            translated = await translator.translate_batch(items, config)
        except ConfigError as e:
            print(f"  {e}. Set GEMINI_API_KEY or add it to translator_config.json.")
            return EXIT_CONFIG

    output = Path(args.output) if args.output else default_output_path(
        input_path, lang_code(settings.target_lang))
    try:
        save_captions(translated, output)
    except OSError as e:
        print(f"  Error saving {output}: {e}")
        return EXIT_FAILED
    print(f"  ✅ Saved translation: {output}")
    return EXIT_OK


async def run_sentence(args, settings: Settings) -> int:
    errors: list[str] = []

    def collect(event: TranslationEvent) -> None:
        if event.kind == EventKind.ERROR:
            errors.append(event.payload)

    if not settings.api_key:
        print("  No API key configured.")
        return EXIT_CONFIG

    async with make_client(settings) as client:
        translator = IncrementalTranslator(
            client, observer=collect,
            enabled=settings.translation_enabled,
            target_lang=settings.target_lang,
        )
        translation = await translator.translate_one(args.current, args.prev, args.next)

    if translation is None:
        print(f"  Translation failed: {errors[0] if errors else 'translation disabled'}")
        return EXIT_FAILED
    print(translation)
    return EXIT_OK


async def run_test_connection(args, settings: Settings) -> int:
    if not settings.api_key:
        print("  No API key to test.")
        return EXIT_CONFIG
    async with make_client(settings) as client:
        try:
            await client.check_connection()
        except BackendError as e:
            print(f"  Connection Failed: {e}")
            return EXIT_FAILED
    print("  Connection Successful!")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Caption translator using Gemini, with content-addressed caching."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    tr = sub.add_parser("translate", help="Translate a caption file (.json or .srt)")
    tr.add_argument("input", help="Caption file to translate")
    tr.add_argument("-o", "--output", help="Output path (.json or .srt). Default: next to the input.")
    tr.add_argument("--mode", choices=sorted(MODES), help="Speed mode. Default: SPEED_MODE or stable.")
    tr.add_argument("--cache-file", help="JSON file used as the persistent result cache")
    tr.add_argument("--export-dir", help="Directory for lecture_<id>_<lang>.json exports")
    tr.add_argument("--rpm", type=int, help="Max requests per minute to the API")
    tr.add_argument("--chunk-timeout", type=float,
                    help="Seconds before a chunk is abandoned and kept untranslated")

    se = sub.add_parser("sentence", help="Translate one sentence with surrounding context")
    se.add_argument("current", help="Sentence to translate")
    se.add_argument("--prev", default="", help="Previous sentence")
    se.add_argument("--next", default="", help="Next sentence")

    sub.add_parser("test-connection", help="Check that the API key works")
    return parser


COMMANDS = {
    "translate": run_translate,
    "sentence": run_sentence,
    "test-connection": run_test_connection,
}


def cli_main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = load_settings()
    return asyncio.run(COMMANDS[args.command](args, settings))


if __name__ == "__main__":
    sys.exit(cli_main())
