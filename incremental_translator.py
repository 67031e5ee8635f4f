"""Context-aware translation of one caption sentence at a time."""

import logging

from batch_translator import EventKind, Observer, TranslationEvent, ignore_event
from caption_cache import SentenceCache
from translation_client import TranslationBackend, build_sentence_prompt
from translator_config import TARGET_LANG
from translator_errors import BackendError, TranslationError

logger = logging.getLogger(__name__)


class IncrementalTranslator:
    def __init__(self, backend: TranslationBackend, cache: SentenceCache | None = None,
                 observer: Observer | None = None, enabled: bool = True,
                 target_lang: str = TARGET_LANG):
        self.backend = backend
        self.cache = cache if cache is not None else SentenceCache()
        self.observer = observer or ignore_event
        self.enabled = enabled
        self.target_lang = target_lang

    def clear_cache(self) -> None:
        self.cache.clear()

    def _report(self, error: TranslationError) -> None:
        logger.warning("Translation failed: %s", error)
        self.observer(TranslationEvent(EventKind.ERROR, str(error)))

    async def translate_one(self, current: str, prev: str = "", next_: str = "") -> str | None:
        """Translation of ``current`` or None; failures go to the observer"""
        if not current:
            return None

        cached = self.cache.get(current)
        if cached is not None:
            logger.debug("Serving from cache: %s", current)
            return cached

        if not self.enabled or not self.backend.is_configured:
            logger.info("Translation disabled or no key.")
            return None

        prompt = build_sentence_prompt(current, prev, next_, self.target_lang)
        try:
            reply = await self.backend.call(prompt)
        except BackendError as e:
            self._report(TranslationError(str(e) or "Unknown Error"))
            return None

        translation = (reply or "").strip()
        if not translation:
            self._report(TranslationError("Empty translation returned"))
            return None

        self.cache.set(current, translation)
        return translation
