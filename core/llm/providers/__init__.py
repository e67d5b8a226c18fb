# Importing the providers registers them with provider_registry.
from core.llm.providers import dummy_provider, local
