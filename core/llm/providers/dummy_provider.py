from typing import AsyncIterable, Union
import asyncio

from core.contracts.provider import LLMProvider
from config.models import ModelConfig
from core.registry import provider_registry


@provider_registry.register("dummy")
class DummyProvider(LLMProvider):
    """An offline engine that answers every prompt with a fixed response."""

    def __init__(self, config: ModelConfig, response: str = "test response", delay_sec: float = 0.0):
        self.config = config
        self._response = response
        self._delay_sec = delay_sec
        self.prompts = []

    async def generate(self, prompt: str, *, stream: bool = False) -> Union[str, AsyncIterable[str]]:
        self.prompts.append(prompt)
        if stream:
            async def stream_generator():
                for i, word in enumerate(self._response.split()):
                    yield word if i == 0 else " " + word
                    await asyncio.sleep(self._delay_sec)
            return stream_generator()

        await asyncio.sleep(self._delay_sec)
        return self._response
