"""YAML-backed self-healing configuration.

The file layout groups settings under ``self_healing`` with nested
``strategy_cache``, ``strategy_generation`` and ``healing`` sections; the
flat :class:`HealingConfiguration` is built from it through ``FIELDS``.
"""

import logging
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .config import settings
from .errors import ConfigurationError
from .models.healing_models import HealingConfiguration

logger = logging.getLogger(__name__)

__all__ = [
    "ConfigurationError",
    "SelfHealingConfigLoader",
    "get_healing_config",
    "save_healing_config",
]

ROOT_KEY = "self_healing"

# attribute -> (path below ROOT_KEY, inclusive bounds or None)
FIELDS: Dict[str, Tuple[Tuple[str, ...], Optional[Tuple[int, int]]]] = {
    "enabled": (("enabled",), None),
    "max_retries": (("max_retries",), (0, 10)),
    "max_healing_attempts": (("max_healing_attempts",), (1, 10)),
    "settle_delay_ms": (("settle_delay_ms",), (0, 60000)),
    "cache_path": (("strategy_cache", "path"), None),
    "reinforcement_increment": (("strategy_cache", "reinforcement_increment"), (0, 100)),
    "max_priority": (("strategy_cache", "max_priority"), (1, 100)),
    "decay_step": (("strategy_cache", "decay_step"), (0, 100)),
    "ai_strategies_enabled": (("strategy_generation", "ai_enabled"), None),
    "max_text_length": (("strategy_generation", "max_text_length"), (1, 500)),
    "registry_dir": (("healing", "registry_dir"), None),
    "inventory_limit": (("healing", "inventory_limit"), (1, 200)),
}


def _lookup(section: Dict[str, Any], path: Tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(section, dict) or key not in section:
            return None
        section = section[key]
    return section


class SelfHealingConfigLoader:
    """Reads, validates and writes the self-healing YAML file."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path or settings.SELF_HEALING_CONFIG_PATH)
        self._cached: Optional[HealingConfiguration] = None
        self._cached_mtime: Optional[float] = None

    def load_config(self, force_reload: bool = False) -> HealingConfiguration:
        """Return the validated configuration, re-reading the file when it changed.

        Raises:
            ConfigurationError: If the file is unreadable or holds invalid values
        """
        if self._cached is not None and not force_reload and self._mtime() == self._cached_mtime:
            return self._cached

        try:
            config = self._build(self._read())
            self._check(config)
        except ConfigurationError as e:
            logger.error(f"Rejected self-healing configuration at {self.config_path}: {e}")
            raise

        self._cached, self._cached_mtime = config, self._mtime()
        logger.info(f"Loaded self-healing configuration from {self.config_path}")
        return config

    def save_config(self, config: HealingConfiguration) -> None:
        """Validate ``config`` and write it in the nested file layout."""
        self._check(config)

        document: Dict[str, Any] = {}
        for attribute, (path, _) in FIELDS.items():
            section = document
            for key in path[:-1]:
                section = section.setdefault(key, {})
            section[path[-1]] = getattr(config, attribute)

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump({ROOT_KEY: document}, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigurationError(f"Could not write {self.config_path}: {e}") from e

        self._cached, self._cached_mtime = config, self._mtime()
        logger.info(f"Saved self-healing configuration to {self.config_path}")

    def _mtime(self) -> Optional[float]:
        return self.config_path.stat().st_mtime if self.config_path.exists() else None

    def _read(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            logger.info(f"No configuration at {self.config_path}; using defaults")
            return {}

        try:
            data = yaml.safe_load(self.config_path.read_text(encoding='utf-8'))
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Could not read {self.config_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration file must hold a mapping at the top level")
        return data.get(ROOT_KEY) or {}

    def _build(self, section: Dict[str, Any]) -> HealingConfiguration:
        defaults = HealingConfiguration()
        types = {f.name: type(getattr(defaults, f.name)) for f in fields(HealingConfiguration)}
        values = {}

        for attribute, (path, _) in FIELDS.items():
            raw = _lookup(section, path)
            if raw is None:
                continue
            try:
                values[attribute] = types[attribute](raw)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"{'.'.join(path)}: {e}") from e

        # Environment paths win over the file
        if settings.LOCATOR_CACHE_PATH:
            values["cache_path"] = settings.LOCATOR_CACHE_PATH
        if settings.SELECTOR_REGISTRY_DIR:
            values["registry_dir"] = settings.SELECTOR_REGISTRY_DIR

        return replace(defaults, **values)

    def _check(self, config: HealingConfiguration) -> None:
        problems = []
        for attribute, (path, bounds) in FIELDS.items():
            value = getattr(config, attribute)
            if bounds is None:
                if isinstance(value, str) and not value:
                    problems.append(f"{'.'.join(path)} must not be empty")
            elif not bounds[0] <= value <= bounds[1]:
                problems.append(f"{'.'.join(path)} must be between {bounds[0]} and {bounds[1]}")

        if problems:
            raise ConfigurationError("Invalid self-healing configuration: " + "; ".join(problems))


config_loader = SelfHealingConfigLoader()


def get_healing_config(force_reload: bool = False) -> HealingConfiguration:
    """Current configuration with the global ``SELF_HEALING_ENABLED`` switch applied."""
    config = config_loader.load_config(force_reload)
    if not settings.SELF_HEALING_ENABLED:
        return replace(config, enabled=False)
    return config


def save_healing_config(config: HealingConfiguration) -> None:
    config_loader.save_config(config)
