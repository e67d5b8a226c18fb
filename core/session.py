from typing import AsyncIterable, AsyncIterator, List, Optional, Sequence, Union

import core.formatter  # noqa: F401  registers the built-in formatters
from config.models import Config
from core.contracts.formatter import PromptFormatter
from core.contracts.models import RetrievedContext, Turn
from core.contracts.provider import LLMProvider
from core.documents import select_contexts
from core.formatter.prompt_formatter import get_template
from core.llm.router import get_provider
from core.registry import formatter_registry
from utils.errors import FormatterError, ProviderError, SessionError
from utils.logger import logger


class ChatSession:
    """
    One conversation with a model.

    The session owns a single formatter, so the system preamble is sent with
    the first prompt only. Retrieved document chunks, when given, are folded
    into the query before it is formatted.
    """

    def __init__(
        self,
        config: Config,
        formatter: Optional[PromptFormatter] = None,
        provider: Optional[LLMProvider] = None,
    ):
        self.config = config
        self.formatter = formatter if formatter is not None else self._create_formatter()
        self._provider = provider
        self._turns: List[Turn] = []

    @property
    def turns(self) -> List[Turn]:
        return list(self._turns)

    @property
    def provider(self) -> LLMProvider:
        # Created lazily so prompt-only use needs no reachable engine.
        if self._provider is None:
            self._provider = get_provider(self.config.model)
        return self._provider

    def _create_formatter(self) -> PromptFormatter:
        formatter_config = self.config.formatter
        template = get_template(formatter_config.family, self.config.templates)
        kwargs = {"template": template}
        if formatter_config.type == "jinja":
            kwargs["template_dir"] = formatter_config.template_dir
            kwargs["template_name"] = formatter_config.template

        try:
            return formatter_registry.create(formatter_config.type, **kwargs)
        except KeyError:
            available = list(formatter_registry.keys())
            raise SessionError(
                f"Unknown formatter '{formatter_config.type}'. Available formatters: {available}"
            )
        except FormatterError:
            raise
        except Exception as e:
            raise SessionError(f"Failed to create formatter '{formatter_config.type}': {e}") from e

    def retrieve(self, query: str, documents: Sequence[RetrievedContext]) -> List[RetrievedContext]:
        """Picks the document chunks most relevant to ``query``, up to ``session.max_context_chunks``."""
        selected = select_contexts(query, documents, self.config.session.max_context_chunks)
        logger.debug(f"Selected {len(selected)} of {len(documents)} context chunks")
        return selected

    def compose_query(self, query: str, contexts: Optional[Sequence[RetrievedContext]] = None) -> str:
        """
        Prepends retrieved context to the query.

        At most ``session.max_context_chunks`` chunks are used. Without any
        context the query is returned unchanged.
        """
        limit = self.config.session.max_context_chunks
        joint_context = "".join(" " + c.context for c in (contexts or [])[:limit])
        if joint_context:
            logger.debug(f"Using {min(len(contexts), limit)} context chunks, {len(joint_context)} chars")
            return f"Context: {joint_context}\n\nQuery: {query}"
        return query

    def build_prompt(self, query: str, contexts: Optional[Sequence[RetrievedContext]] = None) -> str:
        """Formats the next turn. Advances the formatter past the first turn."""
        prompt = self.formatter.format(self.compose_query(query, contexts))
        logger.debug(f"Built prompt for turn {len(self._turns) + 1}: {len(prompt)} chars")
        return prompt

    async def ask(
        self,
        query: str,
        contexts: Optional[Sequence[RetrievedContext]] = None,
        stream: Optional[bool] = None,
    ) -> Union[str, AsyncIterator[str]]:
        """
        Sends the next turn to the engine.

        Returns the response text, or an async iterator of chunks when
        streaming. The turn is recorded once the full response is known.
        """
        if stream is None:
            stream = self.config.model.stream

        prompt = self.build_prompt(query, contexts)
        provider = self.provider

        logger.info(f"Sending turn {len(self._turns) + 1} to provider '{self.config.model.provider}'")
        try:
            result = await provider.generate(prompt, stream=stream)
        except ProviderError as e:
            logger.error(f"Provider failed: {e}")
            raise

        if not stream:
            self._record(query, prompt, result)
            return result
        return self._collect_stream(query, prompt, result)

    async def _collect_stream(self, query: str, prompt: str, chunks: AsyncIterable[str]) -> AsyncIterator[str]:
        parts: List[str] = []
        async for chunk in chunks:
            parts.append(chunk)
            yield chunk
        self._record(query, prompt, "".join(parts))

    def _record(self, query: str, prompt: str, response: str):
        self._turns.append(Turn(query=query, prompt=prompt, response=response))
        logger.debug(f"Recorded turn {len(self._turns)}: {len(response)} chars of response")
