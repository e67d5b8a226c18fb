import collections.abc
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from config.loader import load_config
from config.models import Config
from utils.errors import ConfigError
from utils.logger import logger

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"
USER_CONFIG_DIR = Path.home() / ".chatprompt"
USER_CONFIG_PATH = USER_CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_FILENAME = ".chatprompt.yaml"


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merges ``source`` into ``target``.
    Lists are replaced, not merged.
    """
    for key, value in source.items():
        if isinstance(value, collections.abc.Mapping) and key in target and isinstance(target[key], collections.abc.Mapping):
            target[key] = deep_merge(dict(target[key]), value)
        else:
            target[key] = value
    return target


def find_project_root(start_dir: Path = Path(".")) -> Optional[Path]:
    """
    Finds the project root by searching upwards for a .git directory or pyproject.toml.
    """
    d = start_dir.resolve()
    while d != d.parent:
        if (d / ".git").is_dir() or (d / "pyproject.toml").is_file():
            return d
        d = d.parent
    return None


def find_project_config(start_dir: Path = Path(".")) -> Optional[Path]:
    project_root = find_project_root(start_dir)
    if project_root:
        project_config_path = project_root / PROJECT_CONFIG_FILENAME
        if project_config_path.is_file():
            return project_config_path
    return None


def load_and_merge_configs(custom_config_path: Optional[str] = None) -> Config:
    """
    Loads the default, user and project configurations and merges them in that order.
    A custom config path replaces all of them.

    Raises:
        ConfigError: If a file cannot be parsed or validated. Only an
            unreadable user or project file is skipped with a warning.
    """
    # (path, optional) pairs
    config_paths: List[Tuple[Path, bool]] = []

    if DEFAULT_CONFIG_PATH.is_file():
        config_paths.append((DEFAULT_CONFIG_PATH, False))
    else:
        raise ConfigError("Default configuration file not found.")

    if USER_CONFIG_PATH.is_file():
        config_paths.append((USER_CONFIG_PATH, True))

    project_config_path = find_project_config()
    if project_config_path:
        config_paths.append((project_config_path, True))

    if custom_config_path:
        path = Path(custom_config_path)
        if not path.is_file():
            raise ConfigError(f"Custom config file not found at: {custom_config_path}")
        config_paths = [(path, False)]
        logger.info(f"Using custom configuration from: {custom_config_path}")

    merged_config: Dict[str, Any] = {}
    for path, optional in config_paths:
        logger.debug(f"Loading configuration from: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                config_data = load_config(f)
        except OSError as e:
            if not optional:
                raise ConfigError(f"Could not read config at {path}: {e}") from e
            logger.warning(f"Could not read config at {path}: {e}")
            continue
        except ConfigError as e:
            raise ConfigError(f"Invalid config at {path}: {e}") from e
        merged_config = deep_merge(merged_config, config_data)

    try:
        final_config = Config(**merged_config)
    except Exception as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e

    redacted = final_config.model_dump_json(indent=2, exclude={"model": {"api_key"}})
    logger.debug(f"Final merged config: {redacted}")
    return final_config
