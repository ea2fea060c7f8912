# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for packviz."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration validation fails critically."""

    pass


class Config:
    """Analysis settings.

    Loads settings from .packviz.yml with validation and defaults. Invalid or
    unknown settings are logged and replaced by defaults; they never abort a run.
    """

    DEFAULTS = {
        "used_types_only": False,
        "ignore_platform_types": True,
        "max_workers": 0,  # 0: let the thread pool pick
        "max_file_lines": 10000,
        "max_file_size_bytes": 10 * 1024 * 1024,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses default location.
        """
        if config_path is None:
            config_path = Path.cwd() / ".packviz.yml"

        self.config_path = config_path
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load and validate configuration from file."""
        if not self.config_path.exists():
            logger.info(f"Configuration file not found at {self.config_path}, using defaults")
            self._config = self.DEFAULTS.copy()
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning(
                f"Error parsing configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self.DEFAULTS.copy()
            return
        except OSError as e:
            logger.warning(
                f"Error reading configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self.DEFAULTS.copy()
            return

        if loaded_config is None:
            logger.warning("Configuration file is empty, using defaults")
            self._config = self.DEFAULTS.copy()
            return

        if not isinstance(loaded_config, dict):
            logger.warning(
                f"Configuration file must contain a YAML dictionary, "
                f"got {type(loaded_config)}, using defaults"
            )
            self._config = self.DEFAULTS.copy()
            return

        self._config = self.DEFAULTS.copy()
        self._validate_and_merge(loaded_config)

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        for key, value in loaded_config.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue

            if not self._validate_parameter(key, value):
                logger.warning(
                    f"Invalid value for '{key}': {value}, using default {self.DEFAULTS[key]}"
                )
                continue

            self._config[key] = value

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        expected_type = type(self.DEFAULTS[key])
        # bool is a subclass of int, reject it for numeric settings
        if expected_type is int and isinstance(value, bool):
            return False
        if not isinstance(value, expected_type):
            return False

        if key == "max_workers":
            return bool(value >= 0)
        elif key in ("max_file_lines", "max_file_size_bytes"):
            return bool(value > 0)

        return True

    @property
    def used_types_only(self) -> bool:
        """Whether nodes without edges are dropped from package documents."""
        value = self._config["used_types_only"]
        assert isinstance(value, bool)
        return value

    @property
    def ignore_platform_types(self) -> bool:
        """Whether builtin and standard library types are ignored as edge targets."""
        value = self._config["ignore_platform_types"]
        assert isinstance(value, bool)
        return value

    @property
    def max_workers(self) -> Optional[int]:
        """Worker threads for edge extraction, None for the pool default."""
        value = self._config["max_workers"]
        assert isinstance(value, int)
        return value or None

    @property
    def max_file_lines(self) -> int:
        value = self._config["max_file_lines"]
        assert isinstance(value, int)
        return value

    @property
    def max_file_size_bytes(self) -> int:
        value = self._config["max_file_size_bytes"]
        assert isinstance(value, int)
        return value
