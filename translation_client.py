"""
translation_client.py
──────────────────────────────────────────────────────────
Gemini access for caption translation.

1. Prompt templates for batch (JSON records) and single-sentence requests
2. A token bucket that paces requests per minute
3. GeminiClient: one prompt in, raw model text out, with retry/backoff
"""

import asyncio
import json
import logging
import random
import time
from textwrap import dedent
from typing import Awaitable, Callable, Protocol

import httpx

from captions import CaptionItem, format_timestamp
from translator_config import (
    API_TIMEOUT,
    GEMINI_API_ENDPOINT,
    GEMINI_MODEL_ID,
    MAX_RETRIES,
    MAX_RPM,
    SOURCE_LANG,
    TARGET_LANG,
)
from translator_errors import BackendError

logger = logging.getLogger(__name__)


class TranslationBackend(Protocol):
    """Anything that turns a prompt into raw model text"""

    @property
    def is_configured(self) -> bool: ...

    async def call(self, prompt: str) -> str: ...


# ─────────────────────────────────────────────────────────
#  Prompts
# ─────────────────────────────────────────────────────────
BATCH_PROMPT_TEMPLATE = dedent("""
    You are a professional subtitle translator. Translate the {source_lang} subtitles (JSON) into {target_lang} subtitles (JSON).
    You MUST follow these four synchronisation rules.

    [SYNCHRONISATION RULES]
    1. Timestamp count match (1:1 mapping):
       - The number of items in the output list must be exactly the number of items in the input list.
       - Never add or remove list items.

    2. Context-aware translation:
       - Do not translate each timestamp in isolation; connect it with the surrounding lines.
       - When a sentence is split across lines, understand the whole meaning first, then place it in natural {target_lang} order.

    3. Structure sync:
       - The translation must have the same number of sentences as the original.
       - If a sentence spans three timestamps, its translation must span the same three timestamps.

    4. Proportional split:
       - If a sentence is split as [AAA... / BBB...], split the translation in the same proportion.
       - Never pile all the content into one timestamp.

    Input Format:
    [
      {{"id": "00:00:02", "text": "Welcome to this course..."}},
      ...
    ]

    Output Format (JSON Only):
    [
      {{"id": "00:00:02", "text": "<{target_lang} translation>"}},
      ...
    ]

    Input:
    ```json
    {payload}
    ```
""").strip()

SENTENCE_PROMPT_TEMPLATE = dedent("""
    Context:
    \"\"\"
    {prev}
    \"\"\"

    Target Sentence:
    \"\"\"
    {current}
    \"\"\"

    Future Context:
    \"\"\"
    {next}
    \"\"\"

    Instruction:
    Translate the "Target Sentence" into natural, technical {target_lang}.
    - Use the context to disambiguate terms (e.g., "bias", "weight", "class").
    - Output ONLY the {target_lang} translation. Do not include quotes or explanations.
""").strip()


def build_batch_prompt(items: list[CaptionItem], source_lang: str = SOURCE_LANG,
                       target_lang: str = TARGET_LANG) -> str:
    records = [{"id": format_timestamp(item.start_in_seconds), "text": item.text} for item in items]
    payload = json.dumps(records, ensure_ascii=False, indent=2)
    return BATCH_PROMPT_TEMPLATE.format(
        source_lang=source_lang, target_lang=target_lang, payload=payload
    )


def build_sentence_prompt(current: str, prev: str = "", next_: str = "",
                          target_lang: str = TARGET_LANG) -> str:
    return SENTENCE_PROMPT_TEMPLATE.format(
        prev=prev or "", current=current, next=next_ or "", target_lang=target_lang
    )


# ─────────────────────────────────────────────────────────
#  Token Bucket Rate Limiter
# ─────────────────────────────────────────────────────────
class TokenBucket:
    def __init__(self, capacity: int, refill_rate: float):
        self.capacity = capacity
        self.tokens = capacity
        self.refill_rate = refill_rate  # tokens per second
        self.last_refill = time.monotonic()
        self.lock = asyncio.Lock()

    def _refill(self, now: float) -> None:
        elapsed = now - self.last_refill
        if elapsed > 0:
            self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: int = 1) -> None:
        async with self.lock:
            now = time.monotonic()
            self._refill(now)

            if self.tokens < tokens:
                wait_time = (tokens - self.tokens) / self.refill_rate
                await asyncio.sleep(wait_time)
                now = time.monotonic()
                self._refill(now)

            self.tokens -= tokens

    @classmethod
    def per_minute(cls, rpm: int) -> "TokenBucket":
        return cls(capacity=rpm, refill_rate=rpm / 60.0)


# ─────────────────────────────────────────────────────────
#  Gemini client
# ─────────────────────────────────────────────────────────
def _extract_text(data: dict) -> str:
    try:
        return data["candidates"][0]["content"]["parts"][0].get("text") or ""
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return response.text[:200] or "API Error"


class GeminiClient:
    """Calls Gemini generateContent over a shared httpx.AsyncClient."""

    def __init__(self, api_key: str | None, model_id: str = GEMINI_MODEL_ID,
                 timeout: float = API_TIMEOUT, max_retries: int = MAX_RETRIES,
                 rate_limiter: TokenBucket | None = None,
                 http_client: httpx.AsyncClient | None = None,
                 endpoint: str = GEMINI_API_ENDPOINT,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.api_key = api_key
        self.model_id = model_id
        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limiter = rate_limiter or TokenBucket.per_minute(MAX_RPM)
        self.endpoint = endpoint
        self._http_client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def url(self) -> str:
        return f"{self.endpoint}/{self.model_id}:generateContent"

    async def _client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
            )
            self._owns_client = True
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()
        self._http_client = None

    async def __aenter__(self) -> "GeminiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _post_once(self, prompt: str) -> str:
        await self.rate_limiter.acquire(1)
        client = await self._client()
        response = await client.post(
            self.url,
            headers={"Content-Type": "application/json", "x-goog-api-key": self.api_key},
            json={"contents": [{"parts": [{"text": prompt}]}]},
        )
        if response.status_code >= 400:
            raise BackendError(_error_message(response), status_code=response.status_code)
        try:
            data = response.json()
        except ValueError as e:
            raise BackendError(f"Non-JSON response from Gemini: {response.text[:200]}") from e
        text = _extract_text(data)
        if not text.strip():
            raise BackendError("Gemini returned no usable text")
        return text

    async def call(self, prompt: str) -> str:
        """Send one prompt; retries transient failures, raises BackendError when exhausted"""
        if not self.is_configured:
            raise BackendError("No API key configured")

        last_error: BackendError | None = None
        for attempt in range(self.max_retries):
            try:
                return await self._post_once(prompt)
            except BackendError as e:
                last_error = e
                status = e.status_code
                logger.warning(
                    "Gemini error attempt %d/%d. Status: %s. %s",
                    attempt + 1, self.max_retries, status, str(e)[:200],
                )
                if status == 429:
                    if attempt < self.max_retries - 1:
                        logger.warning("Rate limit hit. Waiting longer...")
                        await self._sleep(min(60, 15 + (3 ** attempt) + random.random()))
                elif status is not None and status < 500:
                    break
                elif attempt < self.max_retries - 1:
                    await self._sleep((2 ** attempt) + random.random())
            except httpx.HTTPError as e:
                last_error = BackendError(f"{type(e).__name__}: {e}")
                logger.warning(
                    "Gemini request attempt %d/%d failed: %s - %s",
                    attempt + 1, self.max_retries, type(e).__name__, str(e)[:200],
                )
                if attempt < self.max_retries - 1:
                    await self._sleep((2 ** attempt) + random.random())

        raise last_error or BackendError("Gemini call failed")

    async def check_connection(self) -> bool:
        """Minimal round trip to verify the key and model; raises BackendError on failure"""
        await self.call("Test")
        return True
