"""Configuration loading: YAML config file merged with CLI overrides.

Precedence, lowest to highest: built-in defaults (``Constants``), the config
file (its ``survey:`` section when present, otherwise the top-level mapping),
then command-line flags.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, Optional

import yaml

from common.errors import ConfigurationError
from resolution.models import SurveyConfig

logger = logging.getLogger(__name__)

# config-file key -> (SurveyConfig field, CLI dest)
_FIELDS = {
    "ignore_pattern": ("ignore_pattern", "IGNORE"),
    "match_pattern": ("match_pattern", "MATCH"),
    "runtime_version": ("runtime_version", "UNCORE"),
    "remnants": ("remnants_policy", "REMNANTS"),
    "use_persistent_cache": ("use_persistent_cache", "USE_CACHE"),
    "cache_path": ("cache_path", "CACHE_FILE"),
    "workers": ("workers", "WORKERS"),
    "registry_url": ("registry_url", "REGISTRY_URL"),
    "download_url": ("download_url", None),
}


def load_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    """Load survey settings from a YAML (or JSON) file.

    Args:
        config_path: Path to the config file, or None.

    Returns:
        Mapping of config keys; empty when no path is given.

    Raises:
        ConfigurationError: missing file, unparsable content or non-mapping root.
    """
    if not config_path:
        return {}
    if not os.path.isfile(config_path):
        raise ConfigurationError(f"config file not found: {config_path}")
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"cannot parse {config_path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path}: expected a mapping at the top level")
    section = data.get("survey", data)
    if not isinstance(section, dict):
        raise ConfigurationError(f"{config_path}: 'survey' must be a mapping")
    unknown = sorted(k for k in section if k not in _FIELDS)
    if unknown and section is not data:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
    return {k: v for k, v in section.items() if k in _FIELDS}


def _check_pattern(name: str, pattern: Optional[str]) -> None:
    if pattern is None:
        return
    try:
        re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError(f"invalid {name} regular expression {pattern!r}: {exc}") from exc


def build_survey_config(args: Any, file_values: Optional[Dict[str, Any]] = None) -> SurveyConfig:
    """Merge defaults, config file values and CLI arguments into a SurveyConfig."""
    if file_values is None:
        file_values = load_config_file(getattr(args, "CONFIG", None))
    config = SurveyConfig()
    for key, (attr, dest) in _FIELDS.items():
        if key in file_values and file_values[key] is not None:
            setattr(config, attr, file_values[key])
        if dest is not None:
            value = getattr(args, dest, None)
            if value is not None:
                setattr(config, attr, value)

    if config.runtime_version is not None:
        config.runtime_version = str(config.runtime_version)
    config.remnants_policy = bool(config.remnants_policy)
    config.use_persistent_cache = bool(config.use_persistent_cache)
    try:
        config.workers = int(config.workers)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"workers must be an integer, got {config.workers!r}") from exc
    if config.workers < 1:
        raise ConfigurationError("workers must be at least 1")
    _check_pattern("ignore", config.ignore_pattern)
    _check_pattern("match", config.match_pattern)
    return config
