"""
Chunked, wave-based dispatch of a caption list.

Chunks are sent in waves of ``concurrency``; a wave finishes completely
before the next one starts, with a throttle delay between waves. Completion
order inside a wave is arbitrary, so results are always re-sorted by
origin_index before merging.
"""

import asyncio
import logging
import math
from typing import Awaitable, Callable

from captions import CaptionItem, Chunk, ChunkResult
from translator_config import ModeConfig

logger = logging.getLogger(__name__)

ChunkTranslator = Callable[[Chunk], Awaitable[ChunkResult]]
ProgressCallback = Callable[[int], None]


def split_into_chunks(items: list[CaptionItem], chunk_size: int) -> list[Chunk]:
    return [
        Chunk(origin_index=i, items=list(items[i:i + chunk_size]))
        for i in range(0, len(items), chunk_size)
    ]


def merge_results(results: list[ChunkResult]) -> list[CaptionItem]:
    merged: list[CaptionItem] = []
    for result in sorted(results, key=lambda r: r.origin_index):
        merged.extend(result.items)
    return merged


def progress_percent(completed: int, total: int) -> int:
    """Percentage rounded half up"""
    if total <= 0:
        return 100
    return int(math.floor(completed / total * 100 + 0.5))


class ChunkScheduler:
    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 chunk_timeout: float | None = None):
        self._sleep = sleep
        self.chunk_timeout = chunk_timeout

    async def _translate_safely(self, chunk: Chunk, translate_chunk: ChunkTranslator) -> ChunkResult:
        try:
            if self.chunk_timeout is not None:
                result = await asyncio.wait_for(translate_chunk(chunk), self.chunk_timeout)
            else:
                result = await translate_chunk(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "Chunk %d failed (%s: %s); keeping original text",
                chunk.origin_index, type(e).__name__, e,
            )
            return ChunkResult(origin_index=chunk.origin_index, items=list(chunk.items), failed=True)

        if len(result.items) != len(chunk.items):
            logger.warning(
                "Chunk %d returned %d items for %d; keeping original text",
                chunk.origin_index, len(result.items), len(chunk.items),
            )
            return ChunkResult(origin_index=chunk.origin_index, items=list(chunk.items), failed=True)
        return ChunkResult(origin_index=chunk.origin_index, items=list(result.items), failed=result.failed)

    async def run_chunks(self, items: list[CaptionItem], config: ModeConfig,
                         translate_chunk: ChunkTranslator,
                         on_progress: ProgressCallback | None = None) -> list[ChunkResult]:
        """Dispatch every chunk and return results sorted by origin_index"""
        chunks = split_into_chunks(items, config.chunk_size)
        total = len(chunks)
        completed = 0
        results: list[ChunkResult] = []

        for start in range(0, total, config.concurrency):
            wave = chunks[start:start + config.concurrency]
            if on_progress is not None:
                on_progress(progress_percent(completed, total))

            logger.debug("Dispatching wave of %d chunk(s) starting at chunk %d", len(wave), start)
            wave_results = await asyncio.gather(
                *(self._translate_safely(chunk, translate_chunk) for chunk in wave)
            )
            results.extend(wave_results)
            completed += len(wave)

            if start + config.concurrency < total:
                await self._sleep(config.inter_batch_delay_ms / 1000.0)

        results.sort(key=lambda r: r.origin_index)
        return results

    async def run(self, items: list[CaptionItem], config: ModeConfig,
                  translate_chunk: ChunkTranslator,
                  on_progress: ProgressCallback | None = None) -> list[CaptionItem]:
        results = await self.run_chunks(items, config, translate_chunk, on_progress)
        return merge_results(results)
