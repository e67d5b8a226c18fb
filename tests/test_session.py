import asyncio
import unittest

from config.models import Config, FormatterConfig, ModelConfig, SessionConfig
from core.contracts.models import PromptTemplate, RetrievedContext, Turn
from core.formatter.jinja_formatter import Jinja2Formatter
from core.formatter.prompt_formatter import SYSTEM_PREAMBLE, TemplateFormatter
from core.llm.providers.dummy_provider import DummyProvider
from core.session import ChatSession
from utils.errors import FormatterError, ProviderError, SessionError


class FailingProvider:
    async def generate(self, prompt: str, *, stream: bool = False):
        raise ProviderError("engine offline")


class TestChatSession(unittest.TestCase):
    def setUp(self):
        self.config = Config(
            model=ModelConfig(provider="dummy", stream=False),
            session=SessionConfig(max_context_chunks=3),
        )
        self.contexts = [
            RetrievedContext(file_name="a.pdf", context="Alpha."),
            RetrievedContext(file_name="b.pdf", context="Beta."),
            RetrievedContext(file_name="c.pdf", context="Gamma."),
            RetrievedContext(file_name="d.pdf", context="Delta."),
        ]

    def test_default_formatter(self):
        session = ChatSession(self.config)
        self.assertIsInstance(session.formatter, TemplateFormatter)
        self.assertNotIsInstance(session.formatter, Jinja2Formatter)

    def test_jinja_formatter_from_config(self):
        self.config.formatter = FormatterConfig(type="jinja")
        session = ChatSession(self.config)
        self.assertIsInstance(session.formatter, Jinja2Formatter)
        self.assertEqual(
            session.build_prompt("Hello"),
            "<|system|>\nYou are a helpful assistant. Be helpful but brief.<|end|>\n<|user|>Hello\n<|end|>\n<|assistant|>\n",
        )

    def test_configured_family(self):
        self.config.formatter = FormatterConfig(family="plain")
        self.config.templates = {
            "plain": PromptTemplate(
                system_preamble="SYSTEM\n", user_prefix="U: ", end_marker="\n", assistant_header="A: "
            )
        }
        session = ChatSession(self.config)
        self.assertEqual(session.build_prompt("hi"), "SYSTEM\nU: hi\nA: ")
        self.assertEqual(session.build_prompt("again"), "U: again\nA: ")

    def test_unknown_family(self):
        self.config.formatter = FormatterConfig(family="nope")
        with self.assertRaises(FormatterError):
            ChatSession(self.config)

    def test_unknown_formatter_type(self):
        self.config.formatter = FormatterConfig(type="nope")
        with self.assertRaises(SessionError):
            ChatSession(self.config)

    def test_compose_query_without_context(self):
        session = ChatSession(self.config)
        self.assertEqual(session.compose_query("What is RAG?"), "What is RAG?")
        self.assertEqual(session.compose_query("What is RAG?", []), "What is RAG?")

    def test_compose_query_with_context(self):
        session = ChatSession(self.config)
        self.assertEqual(
            session.compose_query("Which letters?", self.contexts),
            "Context:  Alpha. Beta. Gamma.\n\nQuery: Which letters?",
        )

    def test_compose_query_respects_limit(self):
        self.config.session = SessionConfig(max_context_chunks=1)
        session = ChatSession(self.config)
        self.assertEqual(
            session.compose_query("q", self.contexts),
            "Context:  Alpha.\n\nQuery: q",
        )
        self.config.session = SessionConfig(max_context_chunks=0)
        self.assertEqual(session.compose_query("q", self.contexts), "q")

    def test_build_prompt_only_first_has_preamble(self):
        session = ChatSession(self.config)
        first = session.build_prompt("Hello", self.contexts[:1])
        second = session.build_prompt("How are you?")
        self.assertEqual(
            first,
            SYSTEM_PREAMBLE + "<|user|>Context:  Alpha.\n\nQuery: Hello\n<|end|>\n<|assistant|>\n",
        )
        self.assertEqual(second, "<|user|>How are you?\n<|end|>\n<|assistant|>\n")

    def test_ask_records_turns(self):
        provider = DummyProvider(self.config.model, response="Hi!")
        session = ChatSession(self.config, provider=provider)

        self.assertEqual(asyncio.run(session.ask("Hello")), "Hi!")
        self.assertEqual(asyncio.run(session.ask("And again")), "Hi!")

        self.assertEqual(provider.prompts[0], session.turns[0].prompt)
        self.assertTrue(provider.prompts[0].startswith(SYSTEM_PREAMBLE))
        self.assertFalse(provider.prompts[1].startswith(SYSTEM_PREAMBLE))
        self.assertEqual(
            session.turns[1],
            Turn(query="And again", prompt="<|user|>And again\n<|end|>\n<|assistant|>\n", response="Hi!"),
        )

    def test_ask_streaming(self):
        provider = DummyProvider(self.config.model, response="Hello there")
        session = ChatSession(self.config, provider=provider)

        async def run():
            chunks = await session.ask("Hi", stream=True)
            self.assertEqual(session.turns, [])
            return [chunk async for chunk in chunks]

        self.assertEqual(asyncio.run(run()), ["Hello", " there"])
        self.assertEqual(len(session.turns), 1)
        self.assertEqual(session.turns[0].response, "Hello there")

    def test_ask_uses_registry_provider(self):
        session = ChatSession(self.config)
        self.assertEqual(asyncio.run(session.ask("Hello")), "test response")
        self.assertIsInstance(session.provider, DummyProvider)

    def test_provider_failure(self):
        session = ChatSession(self.config, provider=FailingProvider())
        with self.assertRaises(ProviderError):
            asyncio.run(session.ask("Hello"))
        self.assertEqual(session.turns, [])
        # The prompt was produced, so the preamble is not sent again.
        self.assertFalse(session.formatter.is_first_turn)

    def test_turns_is_a_copy(self):
        session = ChatSession(self.config, provider=DummyProvider(self.config.model))
        asyncio.run(session.ask("Hello"))
        session.turns.clear()
        self.assertEqual(len(session.turns), 1)


class TestRetrieve(unittest.TestCase):
    def test_retrieve_limits_and_ranks(self):
        config = Config(model=ModelConfig(provider="dummy"), session=SessionConfig(max_context_chunks=1))
        session = ChatSession(config)
        documents = [
            RetrievedContext(file_name="fruit.txt", context="Bananas are yellow."),
            RetrievedContext(file_name="geo.txt", context="The capital of France is Paris."),
        ]
        selected = session.retrieve("What is the capital of France?", documents)
        self.assertEqual([c.file_name for c in selected], ["geo.txt"])
        self.assertEqual(
            session.compose_query("What is the capital of France?", selected),
            "Context:  The capital of France is Paris.\n\nQuery: What is the capital of France?",
        )


if __name__ == "__main__":
    unittest.main()
