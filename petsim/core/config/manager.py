"""
ConfigManager: YAML-backed tuning configuration.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable values (rates, effect
  definitions, stat baselines, tick and save intervals).
- Back configuration with YAML files under `config/`.
- Support hot reload of the YAML tree without a restart.

Responsibilities
----------------
- Load and deep-merge every YAML file found under the config directory.
- Validate each top-level section against the schema registry.
- Serve reads from an in-memory tree with lightweight metrics.

Key Design Decisions
--------------------
- Instance-based so tests and embedders can build isolated managers via
  `from_dict()` without touching the filesystem.
- Invalid YAML never half-applies: a reload that fails validation keeps the
  previous tree.
- `get()` falls back to the default only for missing or null keys; falsy values (0, False, "")
  are returned as configured.

Dependencies
------------
- PyYAML: parsing of `config/*.yaml`
- `petsim.core.config.validator`: schema validation
- `petsim.core.logging.logger.get_logger`: structured logging
"""

from __future__ import annotations

import copy
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

import yaml

from petsim.core.config.config import Config
from petsim.core.config.errors import ConfigInitializationError, ConfigValidationError
from petsim.core.config.validator import validate_config_value
from petsim.core.logging.logger import get_logger

logger = get_logger(__name__)

_MISSING = object()


@dataclass(slots=True)
class ConfigMetrics:
    gets: int = 0
    misses: int = 0
    reloads: int = 0
    reload_failures: int = 0
    total_get_time_ms: float = 0.0


class ConfigManager:
    """
    Tuning configuration with dot-notation access.

    Features
    --------
    - Hierarchical config access with dot notation (e.g. `"ratelimits.base_rates.Chat"`).
    - Recursive schema validation per top-level key.
    - Hot reload from disk.
    - Read metrics for health snapshots.

    Examples
    --------
    >>> manager = ConfigManager()
    >>> manager.initialize()
    >>> manager.get("ratelimits.base_rates.PurchaseItem")
    30
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self._config_dir = Path(config_dir) if config_dir is not None else Config.CONFIG_DIR
        self._tree: Dict[str, Any] = {}
        self._initialized = False
        self._loaded_files: List[str] = []
        self._metrics = ConfigMetrics()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConfigManager":
        """Build an initialized manager from an in-memory tree."""
        manager = cls()
        tree = copy.deepcopy(dict(data))
        manager._validate_tree(tree)
        manager._tree = tree
        manager._initialized = True
        return manager

    # =========================================================================
    # YAML LOADING
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: Mapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, Mapping) and isinstance(target.get(key), MutableMapping):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    def _load_yaml_tree(self) -> Dict[str, Any]:
        if not self._config_dir.exists():
            raise ConfigInitializationError(
                f"Config directory not found: {self._config_dir}"
            )

        yaml_files = sorted(self._config_dir.rglob("*.yaml")) + sorted(
            self._config_dir.rglob("*.yml")
        )
        if not yaml_files:
            raise ConfigInitializationError(
                f"No YAML config files found in {self._config_dir}"
            )

        tree: Dict[str, Any] = {}
        loaded: List[str] = []

        for yaml_file in yaml_files:
            relative = str(yaml_file.relative_to(self._config_dir))
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except yaml.YAMLError as exc:
                raise ConfigInitializationError(
                    f"Failed to parse YAML config {relative}: {exc}"
                ) from exc

            if isinstance(data, Mapping):
                self._deep_merge_dict(tree, data)
                loaded.append(relative)
                logger.debug("Loaded YAML config", extra={"file": relative})
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={"file": relative, "root_type": type(data).__name__},
                )

        self._loaded_files = loaded
        return tree

    @staticmethod
    def _validate_tree(tree: Mapping[str, Any]) -> None:
        for top_key, value in tree.items():
            validate_config_value(top_key, value)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def initialize(self) -> None:
        """
        Load and validate the YAML tree.

        Raises
        ------
        ConfigInitializationError
            If the directory is missing, empty or unparsable.
        ConfigValidationError
            If a section does not match its schema.
        """
        if self._initialized:
            return

        tree = self._load_yaml_tree()
        self._validate_tree(tree)
        self._tree = tree
        self._initialized = True

        logger.info(
            "YAML configs loaded",
            extra={
                "config_dir": str(self._config_dir),
                "yaml_file_count": len(self._loaded_files),
                "top_level_keys": sorted(self._tree.keys()),
            },
        )

    def reload(self) -> bool:
        """
        Re-read the YAML tree from disk.

        Returns
        -------
        bool
            True if the new tree was applied; False if it failed to load or
            validate (the previous tree stays active).
        """
        try:
            tree = self._load_yaml_tree()
            self._validate_tree(tree)
        except (ConfigInitializationError, ConfigValidationError) as exc:
            self._metrics.reload_failures += 1
            logger.error(
                "Config reload failed; keeping previous configuration",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        self._tree = tree
        self._initialized = True
        self._metrics.reloads += 1
        logger.info("Config reloaded", extra={"yaml_file_count": len(self._loaded_files)})
        return True

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # READS
    # =========================================================================

    def _resolve(self, key: str) -> Any:
        value: Any = self._tree
        for part in key.split("."):
            if isinstance(value, Mapping) and part in value:
                value = value[part]
            else:
                return _MISSING
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Parameters
        ----------
        key:
            Dot-notation config path (e.g. `"effects.save_interval_seconds"`).
        default:
            Value to return if the key is not present.

        Examples
        --------
        >>> manager.get("ratelimits.anti_exploit.punishment.kick_threshold")
        10
        >>> manager.get("ratelimits.base_rates.Teleport", 0)
        0
        """
        start_time = time.perf_counter()
        self._metrics.gets += 1

        if not self._initialized:
            logger.warning(
                "ConfigManager accessed before initialization",
                extra={"config_key": key},
            )

        try:
            value = self._resolve(key)
            if value is _MISSING or value is None:
                self._metrics.misses += 1
                return default
            return value
        finally:
            self._metrics.total_get_time_ms += (time.perf_counter() - start_time) * 1000

    def get_section(self, key: str) -> Dict[str, Any]:
        """Return a deep copy of a mapping section, or an empty dict."""
        value = self.get(key)
        if isinstance(value, Mapping):
            return copy.deepcopy(dict(value))
        return {}

    def has(self, key: str) -> bool:
        return self._resolve(key) is not _MISSING

    # =========================================================================
    # METRICS
    # =========================================================================

    def get_metrics(self) -> Dict[str, Any]:
        metrics = asdict(self._metrics)
        metrics["avg_get_time_ms"] = (
            round(self._metrics.total_get_time_ms / self._metrics.gets, 4)
            if self._metrics.gets
            else 0.0
        )
        return metrics

    def health_snapshot(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "config_dir": str(self._config_dir),
            "loaded_files": list(self._loaded_files),
            "top_level_keys": len(self._tree),
            "reload_failures": self._metrics.reload_failures,
        }


__all__ = ["ConfigManager", "ConfigMetrics"]
