"""
Text-generation provider client.

Moonshot exposes an OpenAI-compatible chat-completions endpoint. Every failure
mode (missing key, timeout, transport error, non-2xx, malformed payload) is
raised as ProviderError so callers only have one thing to absorb.
"""

from typing import Protocol

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.config import get_settings
from core.exceptions import ProviderError

logger = structlog.get_logger()


class TextGenerator(Protocol):
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str: ...


class MoonshotClient:
    """Client for the Moonshot chat-completions API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.moonshot_api_key
        self.base_url = (base_url or settings.moonshot_base_url).rstrip("/")
        self.model = model or settings.moonshot_model
        self.timeout = timeout if timeout is not None else settings.llm_timeout_seconds
        self._transport = transport
        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(min=1, max=4),
        retry=retry_if_exception_type((httpx.ConnectError, httpx.RemoteProtocolError)),
        reraise=True,
    )
    async def _post_completion(self, body: dict) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers=self.headers,
                json=body,
            )
            response.raise_for_status()
            return response.json()

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 512,
        temperature: float = 0.7,
    ) -> str:
        if not self.api_key:
            raise ProviderError("Moonshot API key is not configured")

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
        }

        try:
            payload = await self._post_completion(body)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"Moonshot request timed out after {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"Moonshot returned HTTP {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(f"Moonshot request failed: {exc}") from exc

        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError("Moonshot response has no choices") from exc
        if not isinstance(content, str):
            raise ProviderError("Moonshot response content is not text")
        return content.strip()
