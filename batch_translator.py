"""
Batch translation of a whole caption list.

Workflow:
1. Fingerprint the captions and serve a cached translation when one exists
2. Otherwise translate chunk by chunk through the scheduler
3. Cache complete results, export them, and report to the observer
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from caption_cache import ResultCache
from captions import CaptionItem, Chunk, ChunkResult, fingerprint
from chunk_scheduler import ChunkScheduler, merge_results
from response_parser import align_by_position, extract_records_strict, has_usable_text
from translation_client import TranslationBackend, build_batch_prompt
from translator_config import MODES, SOURCE_LANG, TARGET_LANG, ModeConfig, mode_name
from translator_errors import ConfigError, ParseError

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    STATUS = "status-update"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class TranslationEvent:
    kind: EventKind
    payload: Any


Observer = Callable[[TranslationEvent], None]
Exporter = Callable[[str, list[CaptionItem]], Path]


def ignore_event(event: TranslationEvent) -> None:
    pass


class BatchTranslator:
    def __init__(self, backend: TranslationBackend, cache: ResultCache,
                 observer: Observer | None = None,
                 scheduler: ChunkScheduler | None = None,
                 exporter: Exporter | None = None,
                 source_lang: str = SOURCE_LANG,
                 target_lang: str = TARGET_LANG):
        self.backend = backend
        self.cache = cache
        self.observer = observer or ignore_event
        self.scheduler = scheduler or ChunkScheduler()
        self.exporter = exporter
        self.source_lang = source_lang
        self.target_lang = target_lang

    def _emit(self, kind: EventKind, payload: Any) -> None:
        self.observer(TranslationEvent(kind, payload))

    def _status(self, message: str) -> None:
        self._emit(EventKind.STATUS, message)

    async def translate_chunk(self, chunk: Chunk) -> ChunkResult:
        """Prompt, call and align one chunk; errors propagate to the scheduler"""
        prompt = build_batch_prompt(chunk.items, self.source_lang, self.target_lang)
        raw = await self.backend.call(prompt)
        logger.debug("Chunk %d result:\n%s", chunk.origin_index, raw)
        records = extract_records_strict(raw)
        if chunk.items and not has_usable_text(records, len(chunk.items)):
            raise ParseError(f"Reply for chunk {chunk.origin_index} has no usable text")
        return ChunkResult(
            origin_index=chunk.origin_index,
            items=align_by_position(records, chunk.items),
        )

    def _export(self, fp: str, items: list[CaptionItem]) -> None:
        if self.exporter is None:
            return
        try:
            self.exporter(fp, items)
        except (OSError, ValueError) as e:
            logger.warning("Export of %s failed: %s", fp, e)

    async def translate_batch(self, items: list[CaptionItem],
                              config: ModeConfig | None = None) -> list[CaptionItem]:
        config = config or MODES["stable"]
        items = list(items)
        logger.info("Starting batch translation for %d lines.", len(items))

        if not self.backend.is_configured:
            self._emit(EventKind.ERROR, "No API key configured")
            raise ConfigError("No API key configured")

        try:
            fp = fingerprint(items)
            logger.info("Content ID: %s", fp)

            cached = self.cache.get(fp)
            if cached is not None:
                logger.info("Cache hit for %s, serving from storage.", fp)
                self._status("Loaded from cache")
                self._emit(EventKind.COMPLETE, cached.items)
                self._status("READY (Cached)")
                return cached.items

            label = mode_name(config).capitalize()
            logger.info("Mode: %s (chunk_size=%d, concurrency=%d, delay=%dms)",
                        label, config.chunk_size, config.concurrency, config.inter_batch_delay_ms)

            def on_progress(percent: int) -> None:
                self._emit(EventKind.PROGRESS, percent)
                self._status(f"Translating... {percent}% ({label})")

            results = await self.scheduler.run_chunks(items, config, self.translate_chunk, on_progress)
            translated = merge_results(results)
            failed = [r.origin_index for r in results if r.failed]

            if failed:
                logger.warning(
                    "%d of %d chunk(s) kept original text (offsets %s); result not cached",
                    len(failed), len(results), failed,
                )
            else:
                self.cache.put(fp, translated)
            self._export(fp, translated)
        except Exception as e:
            logger.exception("Batch translation failed")
            self._emit(EventKind.ERROR, f"Batch Failed: {e}")
            raise

        self._emit(EventKind.COMPLETE, translated)
        self._status("READY (Partial)" if failed else "READY (Saved)")
        return translated
