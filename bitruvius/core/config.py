"""Configuration management system"""

from pathlib import Path
from typing import Any, Optional
import yaml


class Config:
    """Centralized configuration manager with dot-notation access."""

    _instance: Optional["Config"] = None
    _config: dict = {}

    def __new__(cls, config_path: Optional[str] = None):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if self._initialized and config_path is None:
            return

        if config_path is None:
            config_path = self._find_config()

        self._load(config_path)
        self._initialized = True

    def _find_config(self) -> str:
        """Find config.yaml in the working directory or project root."""
        candidates = [Path.cwd()]
        current = Path(__file__).parent
        for _ in range(5):
            candidates.append(current)
            current = current.parent

        for directory in candidates:
            config_file = directory / "config.yaml"
            if config_file.exists():
                return str(config_file)

        raise FileNotFoundError("config.yaml not found")

    def _load(self, config_path: str) -> None:
        """Load configuration from YAML file."""
        with open(config_path, "r") as f:
            self._config = yaml.safe_load(f) or {}
        self._config_path = config_path

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load(self._config_path)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get config value using dot notation.

        Example:
            config.get("ik.iterations", 10)
            config.get("skeleton.definition")
        """
        keys = key.split(".")
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set config value using dot notation (runtime only, not persisted)."""
        keys = key.split(".")
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    @property
    def path(self) -> str:
        return self._config_path

    @property
    def app(self) -> dict:
        return self._config.get("app", {})

    @property
    def simulation(self) -> dict:
        return self._config.get("simulation", {})

    @property
    def ik(self) -> dict:
        return self._config.get("ik", {})

    @property
    def joint_chain(self) -> dict:
        return self._config.get("joint_chain", {})

    @property
    def skeleton(self) -> dict:
        return self._config.get("skeleton", {})

    def __repr__(self) -> str:
        return f"Config({self._config_path})"
