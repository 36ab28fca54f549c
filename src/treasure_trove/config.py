"""
Configuration for treasure-trove.

Configuration is merged from several places, lowest priority first:
1. Built-in defaults
2. /etc/treasure-trove/config.yaml or config.json
3. ~/.config/treasure-trove/config.yaml or config.json
4. ./config.yaml, ./config.json, ./treasure-trove.yaml or ./treasure-trove.json
5. Environment variables TREASURE_TROVE_* (nested keys joined by "__")

YAML is preferred over JSON at each location; only the first file found
at a location is used.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

ENV_PREFIX = "TREASURE_TROVE_"

CONFIG_FILENAMES = ["config.yaml", "config.json", "treasure-trove.yaml", "treasure-trove.json"]
CONFIG_USER_FILENAMES = ["config.yaml", "config.json"]

DEFAULTS: dict[str, Any] = {
    "store_file": "inventory.json",
    "api": {"host": "127.0.0.1", "port": 3000},
    "llm": {
        "enabled": False,
        "provider": "ollama",  # "ollama" (local) or "anthropic"
        "endpoint": "http://localhost:11434",
        "model": "llama3.2",
        "timeout": 10.0,
    },
    "printer": {
        "queue": "zebra",
        "backend": "cups",  # "cups" (lp) or "socket" (raw TCP, port 9100)
        "max_attempts": 3,
        "retry_delay": 1.0,
        "timeout": 10.0,
    },
    "labels": {
        # 2" x 1" label at 203 dpi
        "width": 406,
        "height": 203,
        "show_date": True,
        "qr_base_url": None,
    },
}


def _get_config_dirs() -> list[Path]:
    """Get list of config directories to search, lowest priority first."""
    return [
        Path("/etc/treasure-trove"),
        Path.home() / ".config" / "treasure-trove",
        Path.cwd(),
    ]


def find_config_files() -> list[Path]:
    """Find all existing config files, lowest priority first.

    At each location only the first existing file (YAML before JSON) is
    returned.
    """
    found_files = []
    for dir_path in _get_config_dirs():
        filenames = CONFIG_FILENAMES if dir_path == Path.cwd() else CONFIG_USER_FILENAMES
        for filename in filenames:
            path = dir_path / filename
            if path.exists():
                found_files.append(path)
                break
    return found_files


def find_config_file() -> Path | None:
    """Return the config file that takes precedence, or None."""
    files = find_config_files()
    return files[-1] if files else None


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base in place; nested dicts are merged key by key."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _copy_defaults() -> dict[str, Any]:
    """Copy DEFAULTS so that merging never mutates the module constant."""
    return json.loads(json.dumps(DEFAULTS))


def _load_config_file(path: Path) -> dict[str, Any]:
    """Load one YAML or JSON config file.

    Raises:
        ImportError: If a YAML file is found but PyYAML is not installed.
        json.JSONDecodeError: If a JSON file is malformed.
    """
    if path.suffix in (".yaml", ".yml"):
        try:
            import yaml
        except ImportError as e:
            raise ImportError(
                "PyYAML required for .yaml config files. Install with: pip install treasure-trove[yaml]"
            ) from e
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load config from file(s), merged over the defaults.

    Args:
        path: Optional explicit config file. When given, only this file is
              loaded (plus defaults and environment variables).

    Returns:
        Merged configuration dictionary.
    """
    config = _copy_defaults()

    if path is not None:
        if path.exists():
            _deep_merge(config, _load_config_file(path))
    else:
        for config_path in find_config_files():
            _deep_merge(config, _load_config_file(config_path))

    _apply_env_overrides(config)
    return config


def _apply_env_overrides(config: dict[str, Any]) -> None:
    """Apply TREASURE_TROVE_* overrides, e.g. TREASURE_TROVE_PRINTER__QUEUE=zd420."""
    for key, value in os.environ.items():
        if key.startswith(ENV_PREFIX):
            _set_nested_value(config, key[len(ENV_PREFIX):].lower(), value)


def _set_nested_value(config: dict, key: str, value: str) -> None:
    """Set a nested value from double-underscore notation ("llm__enabled")."""
    parts = key.split("__")
    target = config
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[parts[-1]] = _convert_value(value)


def _convert_value(value: str) -> Any:
    """Convert an environment string to bool, int or float where possible."""
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


def get_config_value(config: dict[str, Any], key: str, default: Any = None) -> Any:
    """Get a config value using dot notation, e.g. "printer.queue"."""
    target = config
    for part in key.split("."):
        if isinstance(target, dict) and part in target:
            target = target[part]
        else:
            return default
    return target


class Config:
    """Configuration holder with typed accessors for the settings in use."""

    def __init__(self, path: Path | None = None, data: dict[str, Any] | None = None):
        """Load configuration.

        Args:
            path: Optional explicit config file; otherwise all standard
                  locations are searched and merged.
            data: Settings merged over the defaults instead of reading any
                  file or environment variable. Handy for tests and
                  embedding.
        """
        if data is not None:
            self._paths: list[Path] = []
            self._data = _deep_merge(_copy_defaults(), data)
            return
        if path is not None:
            self._paths = [path] if path.exists() else []
        else:
            self._paths = find_config_files()
        self._data = load_config(path)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        return cls(data=data)

    @property
    def path(self) -> Path | None:
        """Return the highest-priority loaded config file, or None."""
        return self._paths[-1] if self._paths else None

    @property
    def paths(self) -> list[Path]:
        return self._paths.copy()

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value using dot notation."""
        return get_config_value(self._data, key, default)

    @property
    def store_file(self) -> Path | None:
        """Return the JSON store path, or None for an in-memory store."""
        val = self.get("store_file")
        return Path(val) if val else None

    @property
    def api_host(self) -> str:
        return self.get("api.host", "127.0.0.1")

    @property
    def api_port(self) -> int:
        return int(self.get("api.port", 3000))

    # Language model

    @property
    def llm_enabled(self) -> bool:
        return bool(self.get("llm.enabled", False))

    @property
    def llm_provider(self) -> str:
        return self.get("llm.provider", "ollama")

    @property
    def llm_endpoint(self) -> str | None:
        return self.get("llm.endpoint")

    @property
    def llm_model(self) -> str:
        return self.get("llm.model", "llama3.2")

    @property
    def llm_timeout(self) -> float:
        return float(self.get("llm.timeout", 10.0))

    # Printer

    @property
    def printer_queue(self) -> str:
        return str(self.get("printer.queue", "zebra"))

    @property
    def printer_backend(self) -> str:
        return self.get("printer.backend", "cups")

    @property
    def printer_max_attempts(self) -> int:
        return int(self.get("printer.max_attempts", 3))

    @property
    def printer_retry_delay(self) -> float:
        return float(self.get("printer.retry_delay", 1.0))

    @property
    def printer_timeout(self) -> float:
        return float(self.get("printer.timeout", 10.0))

    # Labels

    @property
    def labels_width(self) -> int:
        return int(self.get("labels.width", 406))

    @property
    def labels_height(self) -> int:
        return int(self.get("labels.height", 203))

    @property
    def labels_show_date(self) -> bool:
        return bool(self.get("labels.show_date", True))

    @property
    def labels_qr_base_url(self) -> str | None:
        """Return the base URL encoded in label QR codes; None disables them."""
        return self.get("labels.qr_base_url") or None
