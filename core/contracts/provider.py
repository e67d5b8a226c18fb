from typing import AsyncIterable, Protocol, Union


class LLMProvider(Protocol):
    """A text-generation engine fed with fully formatted prompts."""

    async def generate(
        self, prompt: str, *, stream: bool = False
    ) -> Union[str, AsyncIterable[str]]:
        """
        Generates a completion for an already templated prompt.

        Args:
            prompt: The formatted prompt, used verbatim as the model's input context.
            stream: Whether to stream the response.

        Returns:
            The completion, either as a string or an async iterable of chunks.
        """
        ...
