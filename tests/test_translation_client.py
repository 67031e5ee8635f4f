import asyncio
import json
import logging
import sys
from pathlib import Path

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from captions import CaptionItem
from translation_client import GeminiClient, TokenBucket, build_batch_prompt, build_sentence_prompt
from translator_errors import BackendError


def gemini_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_client(handler, **kwargs):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("rate_limiter", TokenBucket.per_minute(6000))
    return GeminiClient("test-key", model_id="gemini-test", http_client=http_client, **kwargs)


def run_call(client, prompt="Translate"):
    async def go():
        try:
            return await client.call(prompt)
        finally:
            await client._http_client.aclose()
    return asyncio.run(go())


def test_call_posts_prompt_and_returns_text():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=gemini_reply("안녕"))

    assert run_call(make_client(handler), "hello") == "안녕"
    assert "models/gemini-test:generateContent" in seen["url"]
    assert seen["body"] == {"contents": [{"parts": [{"text": "hello"}]}]}


def test_api_key_travels_in_header_not_in_logged_url(caplog):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key_header"] = request.headers.get("x-goog-api-key")
        return httpx.Response(200, json=gemini_reply("ok"))

    client = GeminiClient("SECRET-KEY-123", model_id="gemini-test",
                          rate_limiter=TokenBucket.per_minute(6000))

    async def go():
        client._http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        try:
            return await client.call("hello")
        finally:
            await client.aclose()

    with caplog.at_level(logging.DEBUG):
        assert asyncio.run(go()) == "ok"

    assert seen["key_header"] == "SECRET-KEY-123"
    assert "key=" not in seen["url"]
    assert "SECRET-KEY-123" not in caplog.text


def test_client_error_fails_fast_with_api_message():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": {"message": "API key not valid"}})

    with pytest.raises(BackendError) as exc_info:
        run_call(make_client(handler))
    assert exc_info.value.status_code == 400
    assert "API key not valid" in str(exc_info.value)
    assert len(calls) == 1


def test_server_error_is_retried_then_succeeds():
    responses = [httpx.Response(503, text="unavailable"), httpx.Response(200, json=gemini_reply("ok"))]
    waits = []

    async def record_sleep(seconds):
        waits.append(seconds)

    client = make_client(lambda request: responses.pop(0), sleep=record_sleep)
    assert run_call(client) == "ok"
    assert responses == []
    assert len(waits) == 1 and 1 <= waits[0] < 2


def test_empty_candidates_raise_backend_error():
    def handler(request):
        return httpx.Response(200, json={"candidates": []})

    with pytest.raises(BackendError):
        run_call(make_client(handler, max_retries=1))


def test_transport_error_becomes_backend_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(BackendError) as exc_info:
        run_call(make_client(handler, max_retries=1))
    assert "ConnectError" in str(exc_info.value)


def test_unconfigured_client_refuses_to_call():
    client = GeminiClient(None)
    assert client.is_configured is False
    with pytest.raises(BackendError):
        asyncio.run(client.call("hello"))


def test_check_connection_uses_a_minimal_prompt():
    prompts = []

    def handler(request):
        prompts.append(json.loads(request.content)["contents"][0]["parts"][0]["text"])
        return httpx.Response(200, json=gemini_reply("Hi"))

    client = make_client(handler)

    async def go():
        try:
            return await client.check_connection()
        finally:
            await client._http_client.aclose()

    assert asyncio.run(go()) is True
    assert prompts == ["Test"]


def test_batch_prompt_carries_records_and_languages():
    prompt = build_batch_prompt([CaptionItem(62.0, 64.0, "Welcome")], "English", "Japanese")
    assert '"id": "00:01:02"' in prompt
    assert '"text": "Welcome"' in prompt
    assert "English" in prompt and "Japanese" in prompt


def test_sentence_prompt_places_context_around_target():
    prompt = build_sentence_prompt("target", "before", "after", "Korean")
    assert prompt.index("before") < prompt.index("target") < prompt.index("after")
