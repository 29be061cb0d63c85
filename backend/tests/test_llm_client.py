"""
Tests for the Moonshot text-generation client, using httpx.MockTransport.
"""

import json

import httpx
import pytest

from alerts.llm import MoonshotClient
from core.exceptions import ProviderError


def _client(handler, api_key: str = "test-key") -> MoonshotClient:
    return MoonshotClient(
        api_key=api_key,
        base_url="https://llm.test/v1/",
        model="moonshot-v1-8k",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


def _completion(content) -> dict:
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}


@pytest.mark.asyncio
class TestMoonshotClient:
    async def test_success_returns_stripped_content(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion('  {"title": "t", "message": "m"}\n'))

        text = await _client(handler).generate("system", "user", max_tokens=200, temperature=0.7)

        assert text == '{"title": "t", "message": "m"}'
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"]["model"] == "moonshot-v1-8k"
        assert seen["body"]["max_tokens"] == 200
        assert seen["body"]["stream"] is False
        assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]

    async def test_missing_key_never_calls_provider(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("provider should not be called")

        with pytest.raises(ProviderError, match="not configured"):
            await _client(handler, api_key="").generate("system", "user")

    async def test_server_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="upstream exploded")

        with pytest.raises(ProviderError, match="HTTP 500"):
            await _client(handler).generate("system", "user")

    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(ProviderError, match="timed out"):
            await _client(handler).generate("system", "user")

    async def test_non_json_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(ProviderError):
            await _client(handler).generate("system", "user")

    @pytest.mark.parametrize(
        "payload",
        [{}, {"choices": []}, {"choices": [{"message": {}}]}, _completion(None)],
    )
    async def test_malformed_payload(self, payload):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=payload)

        with pytest.raises(ProviderError):
            await _client(handler).generate("system", "user")
