"""Load aggregator configuration from a YAML file."""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from processor.models import Source

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = 'config.yaml'
DEFAULT_TITLE = 'Calendar'
DEFAULT_REFRESH_INTERVAL = 15
DEFAULT_PORT = 3000
DEFAULT_FETCH_TIMEOUT = 30
DEFAULT_COLOR = '#3788d8'


class ConfigLoadError(Exception):
    """Configuration file is missing, unreadable or invalid."""


@dataclass
class AppConfig:
    """Parsed aggregator configuration."""
    sources: List[Source] = field(default_factory=list)
    title: str = DEFAULT_TITLE
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    port: int = DEFAULT_PORT
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT

    def get_source(self, source_id: str) -> Optional[Source]:
        """Get a configured source by id."""
        for source in self.sources:
            if source.id == source_id:
                return source
        return None


def resolve_config_path(path: Optional[Union[str, Path]] = None) -> Path:
    """
    Pick the configuration file path.

    Args:
        path: Explicit path; falls back to CONFIG_PATH then ./config.yaml

    Returns:
        Path to the configuration file
    """
    if path:
        return Path(path)
    return Path(os.environ.get('CONFIG_PATH', DEFAULT_CONFIG_PATH))


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    Read and validate the YAML configuration.

    Args:
        path: Configuration file path (see resolve_config_path)

    Returns:
        AppConfig instance

    Raises:
        ConfigLoadError: If the file cannot be read, parsed or validated
    """
    config_path = resolve_config_path(path)

    try:
        with open(config_path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigLoadError(f"Cannot read {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Invalid YAML in {config_path}: {e}") from e

    config = parse_config(data)
    logger.info(f"Configuration loaded from {config_path}")
    return config


def parse_config(data: Any) -> AppConfig:
    """
    Build an AppConfig from already-parsed configuration data.

    Args:
        data: Mapping as produced by yaml.safe_load

    Returns:
        AppConfig instance

    Raises:
        ConfigLoadError: If required keys are missing or malformed
    """
    if not isinstance(data, dict):
        raise ConfigLoadError("Configuration must be a mapping")

    raw_sources = data.get('sources')
    if not isinstance(raw_sources, list):
        raise ConfigLoadError("'sources' must be a list")

    sources = []
    seen_ids = set()
    for index, entry in enumerate(raw_sources):
        source = _parse_source(entry, index)
        if source.id in seen_ids:
            raise ConfigLoadError(f"Duplicate source id: {source.id!r}")
        seen_ids.add(source.id)
        sources.append(source)

    return AppConfig(
        sources=sources,
        title=data.get('title') or DEFAULT_TITLE,
        refresh_interval=_positive_number(
            data.get('refreshInterval') or DEFAULT_REFRESH_INTERVAL, 'refreshInterval'
        ),
        port=_int_value(
            data.get('port') or os.environ.get('PORT') or DEFAULT_PORT, 'port'
        ),
        fetch_timeout=_positive_number(
            data.get('fetchTimeout') or DEFAULT_FETCH_TIMEOUT, 'fetchTimeout'
        )
    )


def _parse_source(entry: Dict[str, Any], index: int) -> Source:
    """
    Validate one entry of the sources list.

    Args:
        entry: Raw source mapping
        index: Position in the list, for error messages

    Returns:
        Source instance
    """
    if not isinstance(entry, dict):
        raise ConfigLoadError(f"Source #{index} must be a mapping")

    for key in ('id', 'name', 'url'):
        value = entry.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ConfigLoadError(f"Source #{index} is missing required key {key!r}")

    return Source(
        id=entry['id'],
        name=entry['name'],
        url=entry['url'],
        color=entry.get('color') or DEFAULT_COLOR,
        enabled=entry.get('enabled') is not False
    )


def _positive_number(value: Any, key: str) -> float:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigLoadError(f"{key!r} must be a positive number, got {value!r}")
    return value


def _int_value(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigLoadError(f"{key!r} must be an integer, got {value!r}") from e
