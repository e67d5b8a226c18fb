from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader

from core.contracts.models import PromptTemplate
from core.formatter.prompt_formatter import PHI_TEMPLATE, TemplateFormatter
from core.registry import formatter_registry
from utils.errors import FormatterError


@formatter_registry.register("jinja")
class Jinja2Formatter(TemplateFormatter):
    """
    A formatter whose turn layout lives in a Jinja2 template.

    The template is rendered with ``template`` (the family delimiters),
    ``user_text`` and ``first_turn``.
    """

    def __init__(
        self,
        template: PromptTemplate = PHI_TEMPLATE,
        template_dir: Optional[str] = None,
        template_name: str = "turn.j2",
    ):
        super().__init__(template)
        if template_dir is None:
            # Default template directory relative to this file
            template_dir = str(Path(__file__).parent / "templates")

        self.template_dir = template_dir
        self.template_name = template_name
        try:
            self.env = Environment(
                loader=FileSystemLoader(self.template_dir),
                trim_blocks=True,
                lstrip_blocks=True,
            )
        except Exception as e:
            raise FormatterError(f"Failed to initialize Jinja2 environment: {e}") from e

    def _render(self, user_text: str, first_turn: bool) -> str:
        try:
            layout = self.env.get_template(self.template_name)
            return layout.render(
                template=self.template,
                user_text=user_text,
                first_turn=first_turn,
            )
        except Exception as e:
            raise FormatterError(f"Failed to render template {self.template_name}: {e}") from e
