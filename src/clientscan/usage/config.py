import json
import os
from pathlib import Path
from typing import Any

import commentjson  # type: ignore

from .models import MethodSpec


class ConfigurationManager:
    """
    Manages loading and merging of application configuration.
    """

    def __init__(self, *, base_path: Path | None = None) -> None:
        self._base_path = base_path or Path(__file__).parent

    def load_config(
        self, user_config_path: str | None, cli_overrides: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Loads defaults, merges with user JSON, and applies CLI overrides.
        """
        config = self._load_defaults()

        if user_config_path:
            self._merge_user_file(config, Path(user_config_path))

        # Repeatable --method flags extend the table instead of replacing it
        extra_methods = cli_overrides.pop("methods", None)
        if extra_methods:
            config["methods"] = {**config.get("methods", {}), **extra_methods}

        # Apply CLI overrides (filtering out None values)
        config.update({k: v for k, v in cli_overrides.items() if v is not None})

        # Ensure concurrency is set
        if not config.get("concurrency"):
            config["concurrency"] = os.cpu_count() or 1

        self._validate(config)
        return config

    def _load_defaults(self) -> dict[str, Any]:
        defaults_path = self._base_path / "defaults.json"
        if not defaults_path.exists():
            return {}

        try:
            with open(defaults_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except Exception:
            return {}

    def _merge_user_file(self, config: dict[str, Any], path: Path) -> None:
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                user_conf = commentjson.load(f)
        except Exception as e:
            raise ValueError(f"Failed to parse config file {path}: {e}")
        if not isinstance(user_conf, dict):
            raise ValueError(f"Config file {path} must contain a JSON object.")
        config.update(user_conf)

    @staticmethod
    def _validate(config: dict[str, Any]) -> None:
        namespace = config.get("target_namespace")
        if not isinstance(namespace, str) or not namespace:
            raise ValueError("Config 'target_namespace' must be a non-empty string.")
        aliases = config.get("namespace_aliases") or []
        if not isinstance(aliases, list) or not all(isinstance(a, str) for a in aliases):
            raise ValueError("Config 'namespace_aliases' must be a list of strings.")
        if not isinstance(config.get("methods"), dict) or not config["methods"]:
            raise ValueError("Config 'methods' must be a non-empty object.")
        # Raises on malformed entries
        MethodSpecTable.from_config(config["methods"])


class MethodSpecTable:
    """Read-only table of tracked client methods, keyed by method name."""

    def __init__(self, specs: dict[str, MethodSpec]) -> None:
        self._specs = dict(specs)

    @classmethod
    def from_config(cls, methods: dict[str, Any]) -> "MethodSpecTable":
        """
        Accepts ``{"get": 3}`` or ``{"get": {"index": 1, "keyword": "res"}}`` entries.
        """
        specs: dict[str, MethodSpec] = {}
        for name, entry in methods.items():
            keyword = None
            if isinstance(entry, dict):
                index = entry.get("index")
                keyword = entry.get("keyword")
                if keyword is not None and not isinstance(keyword, str):
                    raise ValueError(f"Method '{name}': 'keyword' must be a string.")
            else:
                index = entry
            if isinstance(index, bool) or not isinstance(index, int):
                raise ValueError(f"Method '{name}': argument index must be an integer, got {index!r}.")
            if index < 1:
                raise ValueError(f"Method '{name}': argument index is 1-based, got {index}.")
            specs[name] = MethodSpec(name=name, arg_index=index, keyword=keyword)
        return cls(specs)

    def lookup(self, method_name: str) -> MethodSpec | None:
        return self._specs.get(method_name)

    def names(self) -> list[str]:
        return sorted(self._specs)


def parse_method_flag(flag: str) -> tuple[str, int]:
    """Parses a ``NAME=INDEX`` command-line method definition."""
    name, sep, index = flag.partition("=")
    name = name.strip()
    if not sep or not name:
        raise ValueError(f"Invalid method definition {flag!r}; expected NAME=INDEX.")
    try:
        return name, int(index)
    except ValueError:
        raise ValueError(f"Invalid argument index in {flag!r}; expected an integer.")
