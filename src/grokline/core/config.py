#!/usr/bin/env python3
"""Configuration loader that reads grokline.json (JSON with // comments)"""
from __future__ import annotations

import copy
import json
import logging
import os
import re
from pathlib import Path
from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "patterns": {
        # Pattern groups registered by the CLI when --group is not given
        "default_groups": ["patterns"],
        "definition_files": [],
    },
    "compiler": {
        "rename_reserved_keywords": False,
        "reject_empty_loops": True,
    },
    "cache": {
        "max_size": 500,
        "hard_limit": 2000,
        "memory_threshold": 0.10,
        "cleanup_interval_s": 300,
        "stale_after_s": 1800,
        "shutdown_timeout_s": 5.0,
        "weak_values": True,
    },
    "matching": {
        "max_input_length": 1048576,
        "keep_empty_captures": True,
        "max_engines_per_context": 128,
    },
    "logging": {
        "level": "INFO",
        "console": True,
        # Rotating files under <project_dir>/logs
        "file": False,
        "json": False,
    },
}


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_OUTPUTS = ("console", "file", "both", "none")


class ConfigurationError(Exception):
    """Raised when there's a configuration issue that prevents safe operation."""
    pass


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """Load configuration from grokline.json layered over the built-in defaults"""

    def __init__(self, config_path: str | Path | None = None) -> None:
        if config_path is None:
            config_path = self._find_config_file()

        # None means "defaults only"
        self.config_file = str(config_path) if config_path is not None else None

        file_config: dict[str, Any] = {}
        if config_path is not None:
            try:
                with open(config_path, encoding="utf-8") as f:
                    content = f.read()
            except OSError as e:
                raise ConfigurationError(f"Cannot read config file {config_path}: {e}") from e

            # Remove single-line comments (// ...) for JSONC support
            content = re.sub(r"^\s*//.*$", "", content, flags=re.MULTILINE)

            try:
                file_config = json.loads(content) if content.strip() else {}
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(f"Top level of {config_path} must be an object")

        self._config = _deep_merge(DEFAULT_CONFIG, file_config)
        self.project_dir = str(Path(config_path).parent) if config_path is not None else str(Path.cwd())

    def _find_config_file(self) -> Path | None:
        """Find config file in multiple locations"""
        # Method 1: Explicit environment override
        env_path = os.environ.get("GROKLINE_CONFIG")
        if env_path:
            path = Path(env_path)
            if not path.exists():
                raise ConfigurationError(f"GROKLINE_CONFIG points to a missing file: {env_path}")
            return path

        # Method 2: Current working directory
        for filename in ["grokline.jsonc", "grokline.json"]:
            config_path = Path.cwd() / filename
            if config_path.exists():
                return config_path

        # Method 3: Built-in defaults
        return None

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a value using dot notation (e.g., 'cache.max_size')"""
        keys = key_path.split(".")
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def __setitem__(self, key: str, value: Any) -> None:
        """Set a value in the config dictionary to support item assignment"""
        self._config[key] = value

    def __getitem__(self, key: str) -> Any:
        """Get a value from the config dictionary to support item access"""
        return self._config[key]

    def set(self, key_path: str, value: Any) -> None:
        """Set a value using dot notation (e.g., 'matching.max_input_length')"""
        keys = key_path.split(".")
        target = self._config

        # Navigate to the parent of the target key
        for key in keys[:-1]:
            if key not in target:
                target[key] = {}
            target = target[key]

        # Set the final value
        target[keys[-1]] = value

    def _int_setting(self, env_var: str, key_path: str, minimum: int = 0) -> int:
        # Check environment variable first, then config
        raw = os.environ.get(env_var)
        source = env_var
        if raw is None:
            raw = self.get(key_path)
            source = key_path
        try:
            value = int(raw)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{source} must be an integer, got {raw!r}") from None
        if value < minimum:
            raise ConfigurationError(f"{source} must be >= {minimum}, got {value}")
        return value

    @property
    def cache_max_size(self) -> int:
        return self._int_setting("GROKLINE_CACHE_SIZE", "cache.max_size", minimum=1)

    @property
    def cache_hard_limit(self) -> int:
        return self._int_setting("GROKLINE_CACHE_HARD_LIMIT", "cache.hard_limit", minimum=1)

    @property
    def cache_memory_threshold(self) -> float:
        value = float(self.get("cache.memory_threshold", 0.10))
        if not 0.0 < value <= 1.0:
            raise ConfigurationError(f"cache.memory_threshold must be in (0, 1], got {value}")
        return value

    @property
    def cache_cleanup_interval(self) -> float:
        return float(self.get("cache.cleanup_interval_s", 300))

    @property
    def cache_stale_after(self) -> float:
        return float(self.get("cache.stale_after_s", 1800))

    @property
    def cache_shutdown_timeout(self) -> float:
        return float(self.get("cache.shutdown_timeout_s", 5.0))

    @property
    def cache_weak_values(self) -> bool:
        return bool(self.get("cache.weak_values", True))

    @property
    def max_input_length(self) -> int:
        return self._int_setting("GROKLINE_MAX_INPUT_LENGTH", "matching.max_input_length")

    @property
    def keep_empty_captures(self) -> bool:
        return bool(self.get("matching.keep_empty_captures", True))

    @property
    def max_engines_per_context(self) -> int:
        return self._int_setting("GROKLINE_MAX_ENGINES", "matching.max_engines_per_context", minimum=1)

    @property
    def rename_reserved_keywords(self) -> bool:
        return bool(self.get("compiler.rename_reserved_keywords", False))

    @property
    def reject_empty_loops(self) -> bool:
        return bool(self.get("compiler.reject_empty_loops", True))

    @property
    def log_level(self) -> str:
        level = str(os.environ.get("GROKLINE_LOG_LEVEL") or self.get("logging.level", "INFO")).upper()
        if level not in LOG_LEVELS:
            raise ConfigurationError(f"Log level must be one of {', '.join(LOG_LEVELS)}, got {level!r}")
        return level

    def _log_outputs(self) -> tuple[bool, bool]:
        """(console, file), from GROKLINE_LOG_OUTPUT when it is set"""
        output = os.environ.get("GROKLINE_LOG_OUTPUT")
        if output is None:
            return bool(self.get("logging.console", True)), bool(self.get("logging.file", False))
        output = output.lower()
        if output not in LOG_OUTPUTS:
            raise ConfigurationError(f"GROKLINE_LOG_OUTPUT must be one of {', '.join(LOG_OUTPUTS)}, got {output!r}")
        return output in ("console", "both"), output in ("file", "both")

    @property
    def log_console(self) -> bool:
        return self._log_outputs()[0]

    @property
    def log_file(self) -> bool:
        return self._log_outputs()[1]

    @property
    def log_json(self) -> bool:
        log_format = os.environ.get("GROKLINE_LOG_FORMAT")
        if log_format is None:
            return bool(self.get("logging.json", False))
        if log_format.lower() not in ("json", "text"):
            raise ConfigurationError(f"GROKLINE_LOG_FORMAT must be json or text, got {log_format!r}")
        return log_format.lower() == "json"

    @property
    def default_groups(self) -> list[str]:
        return list(self.get("patterns.default_groups", ["patterns"]))

    @property
    def definition_files(self) -> list[str]:
        """Extra pattern definition files, resolved relative to the config file"""
        files = []
        for entry in self.get("patterns.definition_files", []):
            path = Path(entry)
            if not path.is_absolute():
                path = Path(self.project_dir) / path
            files.append(str(path))
        return files

    def save(self, path: str | Path | None = None) -> None:
        """Save the current configuration back to the config file"""
        target = path or self.config_file
        if target is None:
            raise ConfigurationError("No config file to save to; pass an explicit path")

        with open(target, "w", encoding="utf-8") as f:
            json.dump(self._config, f, indent=2)
        self.config_file = str(target)


# Create a global instance lazily
_config_loader: ConfigLoader | None = None


def get_config() -> ConfigLoader:
    """Get the global config loader instance"""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader


def reset_config() -> None:
    """Forget the global config loader so the next get_config() re-reads it"""
    global _config_loader
    _config_loader = None


# ========================= CENTRALIZED LOGGING SETUP =========================


def setup_logging(
    module_name: str,
    log_level: str | None = None,
    include_console: bool | None = None,
    include_file: bool | None = None,
) -> logging.LoggerAdapter:
    """
    Setup standardized logging for grokline modules.

    Args:
        module_name: Name of the module (usually __name__)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        include_console: Whether to log to console
        include_file: Whether to log to file

    Returns:
        Configured ContextLogger instance

    """
    from .logging import get_logger as get_structured_logger

    return get_structured_logger(
        name=module_name,
        log_level=log_level,
        include_console=include_console,
        include_file=include_file,
    )


def load_config(config_path: str | Path | None = None) -> ConfigLoader:
    """Load configuration from config file (alias for creating ConfigLoader)."""
    return ConfigLoader(config_path)
