"""
Configuration loader for the dialog planning engine.
Reads settings from YAML file with environment variable substitution.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class PlanningConfig:
    expire_after_ms: Optional[int] = None   # idle time before conversation state is reset
    plan_history_limit: int = 10            # finished plans kept per planning dialog
    save_etag: str = "*"                    # ETag stamped on documents written after a turn


@dataclass
class StorageConfig:
    backend: str = "memory"                 # "memory" | "file"
    file_dir: str = "./data"                # directory for file backend


@dataclass
class Settings:
    app_name: str = "DialogPlanner"
    debug: bool = False
    planning: PlanningConfig = field(default_factory=PlanningConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "PLANNING_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)

        if "planning" in raw:
            p = raw["planning"] or {}
            settings.planning = PlanningConfig(
                expire_after_ms=_optional_int(p.get("expire_after_ms")),
                plan_history_limit=int(p.get("plan_history_limit", 10)),
                save_etag=str(p.get("save_etag", "*")),
            )

        if "storage" in raw:
            s = raw["storage"] or {}
            settings.storage = StorageConfig(
                backend=s.get("backend", settings.storage.backend),
                file_dir=s.get("file_dir", settings.storage.file_dir),
            )

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
