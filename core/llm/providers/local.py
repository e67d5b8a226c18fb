import os
import httpx
import json
from typing import AsyncGenerator, AsyncIterable, Union

from core.contracts.provider import LLMProvider
from config.models import ModelConfig
from core.registry import provider_registry
from utils.errors import ProviderError


def _error_message(body: str) -> str:
    try:
        error_details = json.loads(body)
        error = error_details.get("error", body)
        if isinstance(error, dict):
            return error.get("message", body)
        return str(error)
    except (json.JSONDecodeError, AttributeError):
        return body


@provider_registry.register("local")
class LocalProvider(LLMProvider):
    """
    Engine for a local OpenAI-compatible completions server (llama.cpp server, Ollama, vLLM).

    The prompt is already templated for the model, so it goes to the raw
    ``/completions`` endpoint rather than ``/chat/completions``.
    """

    def __init__(self, config: ModelConfig):
        self.config = config

        # Local servers rarely check the key, but some proxies require a non-empty one.
        self._api_key = config.api_key or os.getenv("LOCAL_API_KEY", "local")

        self._base_url = config.base_url or os.getenv("LOCAL_LLM_BASE_URL")
        if not self._base_url:
            raise ProviderError("Local provider requires a `base_url` to be set in the config.")

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.config.timeout_sec,
        )

    async def _request(self, payload: dict) -> httpx.Response:
        try:
            response = await self._client.post("/completions", json=payload)
            response.raise_for_status()
            return response
        except httpx.TimeoutException as e:
            raise ProviderError(f"Request to local provider timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            message = _error_message(e.response.text)
            raise ProviderError(f"Local provider API error ({e.response.status_code}): {message}") from e
        except httpx.RequestError as e:
            raise ProviderError(f"An unexpected network error occurred with the local provider: {e}") from e

    def _build_payload(self, prompt: str, stream: bool) -> dict:
        return {
            "model": self.config.name,
            "prompt": prompt,
            "stream": stream,
            **self.config.parameters,
        }

    async def _process_stream(self, response: httpx.Response) -> AsyncGenerator[str, None]:
        """Yields the text of each server-sent completion chunk until ``[DONE]``."""
        async for line in response.aiter_lines():
            if not line.startswith("data:"):
                continue
            chunk_str = line[len("data:"):].strip()
            if chunk_str == "[DONE]":
                break
            if not chunk_str:
                continue
            try:
                chunk = json.loads(chunk_str)
                text = chunk.get("choices", [{}])[0].get("text")
            except (json.JSONDecodeError, IndexError, AttributeError):
                continue
            if text:
                yield text

    async def _stream(self, payload: dict) -> AsyncGenerator[str, None]:
        try:
            async with self._client.stream("POST", "/completions", json=payload) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    message = _error_message(body)
                    raise ProviderError(f"Local provider API error ({response.status_code}): {message}")
                async for chunk in self._process_stream(response):
                    yield chunk
        except httpx.TimeoutException as e:
            raise ProviderError(f"Request to local provider timed out: {e}") from e
        except httpx.RequestError as e:
            raise ProviderError(f"An unexpected network error occurred with the local provider: {e}") from e

    async def generate(self, prompt: str, *, stream: bool = False) -> Union[str, AsyncIterable[str]]:
        payload = self._build_payload(prompt, stream)

        if stream:
            return self._stream(payload)

        response = await self._request(payload)
        data = response.json()
        try:
            return data["choices"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Unexpected response from local provider: {data}") from e
