# Importing the formatters registers them with formatter_registry.
from core.formatter import jinja_formatter, prompt_formatter
