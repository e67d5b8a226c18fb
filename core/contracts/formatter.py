from typing import Protocol


class PromptFormatter(Protocol):
    """Turns a raw user message into the tagged prompt a model expects."""

    def format(self, user_text: str) -> str:
        ...
