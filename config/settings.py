"""
Configuration loader for the queue dispatcher.
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
class DispatcherConfig:
    event_prefix: str = ""                 # e.g. "Processor" → "Processor.message.seen"
    allow_import: bool = False             # resolve dotted import paths, not just registry names
    allowed_prefixes: list[str] = field(default_factory=list)   # empty = any module


@dataclass
class QueueConfig:
    backend: str = "memory"                # only "memory" ships with the package
    concurrency: int = 5                   # max deliveries processed at once per worker
    receive_timeout: float = 2.0           # seconds to block waiting for a delivery


@dataclass
class Settings:
    app_name: str = "QueueDispatcher"
    debug: bool = False
    dispatcher: DispatcherConfig = field(default_factory=DispatcherConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    callables: dict[str, str] = field(default_factory=dict)     # registry name → import path


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


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file. Missing file → defaults."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "DISPATCHER_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = _as_bool(raw.get("debug"), settings.debug)

        if "dispatcher" in raw:
            d = raw["dispatcher"] or {}
            settings.dispatcher = DispatcherConfig(
                event_prefix=d.get("event_prefix", ""),
                allow_import=_as_bool(d.get("allow_import"), False),
                allowed_prefixes=list(d.get("allowed_prefixes") or []),
            )

        if "queue" in raw:
            q = raw["queue"] or {}
            settings.queue = QueueConfig(
                backend=q.get("backend", "memory"),
                concurrency=int(q.get("concurrency", 5)),
                receive_timeout=float(q.get("receive_timeout", 2.0)),
            )

        settings.callables = dict(raw.get("callables") or {})

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
