"""
Phi-style chat prompt formatting.

A session's first prompt carries the system preamble; every later prompt is
just the user turn followed by the assistant header. User text is inserted
verbatim: delimiter-like substrings inside it are not escaped.
"""
import threading
from typing import Dict, Mapping, Optional

from core.contracts.formatter import PromptFormatter
from core.contracts.models import PromptTemplate
from core.registry import formatter_registry
from utils.errors import FormatterError

# Microsoft Phi prompt format
SYSTEM_PREAMBLE = "<|system|>\nYou are a helpful assistant. Be helpful but brief.<|end|>\n"
USER_PREFIX = "<|user|>"
END_MARKER = "\n<|end|>\n"
ASSISTANT_HEADER = "<|assistant|>\n"

PHI_TEMPLATE = PromptTemplate(
    system_preamble=SYSTEM_PREAMBLE,
    user_prefix=USER_PREFIX,
    end_marker=END_MARKER,
    assistant_header=ASSISTANT_HEADER,
)

BUILTIN_TEMPLATES: Dict[str, PromptTemplate] = {
    "phi": PHI_TEMPLATE,
}


def get_template(
    family: str, overrides: Optional[Mapping[str, PromptTemplate]] = None
) -> PromptTemplate:
    """
    Resolves a prompt family by name.

    Families defined in ``overrides`` (usually the ``templates`` section of the
    configuration) shadow the built-in ones.

    Raises:
        FormatterError: If no family with that name exists.
    """
    if overrides and family in overrides:
        return overrides[family]
    if family in BUILTIN_TEMPLATES:
        return BUILTIN_TEMPLATES[family]
    available = sorted(set(BUILTIN_TEMPLATES) | set(overrides or {}))
    raise FormatterError(f"Unknown prompt family '{family}'. Available families: {available}")


def render_turn(user_text: str, turn_index: int = 0, template: PromptTemplate = PHI_TEMPLATE) -> str:
    """
    Formats one user turn without any hidden state.

    The system preamble is included only for ``turn_index == 0``.
    """
    if turn_index < 0:
        raise FormatterError(f"Turn index must not be negative, got {turn_index}")

    turn = template.user_prefix + user_text + template.end_marker + template.assistant_header
    if turn_index == 0:
        return template.system_preamble + turn
    return turn


@formatter_registry.register("template")
class TemplateFormatter(PromptFormatter):
    """
    Stateful formatter for a single conversation.

    ``is_first_turn`` is true until the first prompt is produced and never
    goes back.
    """

    def __init__(self, template: PromptTemplate = PHI_TEMPLATE):
        self.template = template
        self.is_first_turn = True
        self._lock = threading.Lock()

    def _render(self, user_text: str, first_turn: bool) -> str:
        return render_turn(user_text, 0 if first_turn else 1, self.template)

    def format(self, user_text: str) -> str:
        # The flag only flips once a prompt was actually produced.
        with self._lock:
            prompt = self._render(user_text, self.is_first_turn)
            self.is_first_turn = False
        return prompt
