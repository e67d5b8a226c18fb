from config.models import ModelConfig
from core.contracts.provider import LLMProvider
import core.llm.providers  # noqa: F401  registers the built-in providers
from core.registry import provider_registry
from utils.errors import ProviderError


def get_provider(config: ModelConfig) -> LLMProvider:
    """
    Factory function to get a generation engine based on the config.

    Raises:
        ProviderError: If the provider is not found or fails to be created.
    """
    try:
        # The provider's __init__ is expected to take the config object.
        return provider_registry.create(config.provider, config=config)
    except KeyError:
        available = list(provider_registry.keys())
        raise ProviderError(
            f"Unknown provider '{config.provider}'. "
            f"Available providers: {available}"
        )
    except ProviderError:
        raise
    except Exception as e:
        raise ProviderError(f"Failed to create provider '{config.provider}': {e}") from e
