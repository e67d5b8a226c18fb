import os
import re
import yaml
from typing import Any, Dict, IO

from utils.errors import ConfigError

# Regex for environment variable substitution
ENV_VAR_MATCHER = re.compile(r"\$\{(\w+)\}")
# Plain scalars that contain at least one ${VAR} anywhere
ENV_VAR_SCALAR = re.compile(r".*\$\{\w+\}", re.DOTALL)


def _env_var_constructor(loader: yaml.SafeLoader, node: yaml.ScalarNode) -> str:
    """
    Substitutes every ``${VAR_NAME}`` in a scalar with the value of the
    VAR_NAME environment variable, keeping the surrounding text.
    """
    value = loader.construct_scalar(node)

    def replace(match: re.Match) -> str:
        env_var = match.group(1)
        replacement = os.getenv(env_var)
        if replacement is None:
            raise ConfigError(f"Environment variable '{env_var}' not found for substitution in config.")
        return replacement

    return ENV_VAR_MATCHER.sub(replace, value)


class EnvVarLoader(yaml.SafeLoader):
    """A SafeLoader that resolves ``${VAR}`` in plain scalars from the environment."""


EnvVarLoader.add_constructor("!env", _env_var_constructor)
EnvVarLoader.add_implicit_resolver("!env", ENV_VAR_SCALAR, None)


def load_config(config_file: IO[str]) -> Dict[str, Any]:
    """
    Loads a YAML configuration file.

    Args:
        config_file: A file-like object representing the YAML configuration.

    Returns:
        A dictionary containing the configuration.

    Raises:
        ConfigError: If the file cannot be parsed, is not a mapping, or
            references an unset environment variable.
    """
    try:
        config = yaml.load(config_file, Loader=EnvVarLoader)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML configuration: {e}") from e

    if not config:
        return {}
    if not isinstance(config, dict):
        raise ConfigError(f"Configuration must be a mapping, got {type(config).__name__}")
    return config
