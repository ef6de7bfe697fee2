"""Configuration loader that keeps all runtime constants centralized."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml


CONFIG_PATH = Path(__file__).resolve().parent / "app_config.yaml"


@dataclass(frozen=True)
class AppConfig:
    """Strongly-typed wrapper over the raw YAML document."""

    raw: Dict[str, Any]

    @property
    def version(self) -> str:
        return str(self.raw.get("version", "v1"))

    @property
    def gateway(self) -> Dict[str, Any]:
        return self.raw.get("gateway", {})

    @property
    def storage(self) -> Dict[str, Any]:
        return self.raw.get("storage", {})

    @property
    def pricing(self) -> Dict[str, Any]:
        return self.raw.get("pricing", {})

    @property
    def timer(self) -> Dict[str, Any]:
        return self.raw.get("timer", {})

    @property
    def menu(self) -> Dict[str, Any]:
        return self.raw.get("menu", {})

    @property
    def gateway_backend(self) -> str:
        return os.environ.get("LOUNGE_GATEWAY") or str(self.gateway.get("backend", "memory"))

    @property
    def storage_backend(self) -> str:
        return os.environ.get("LOUNGE_STORAGE") or str(self.storage.get("backend", "memory"))

    @property
    def default_categories(self) -> List[str]:
        return list(self.menu.get("default_categories", ["Food", "Fast Food", "Beverages"]))


@lru_cache(maxsize=1)
def get_settings(path: Path | None = None) -> AppConfig:
    """Load configuration once per process."""

    config_path = path or CONFIG_PATH
    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):  # pragma: no cover - invalid file guard
        raise ValueError("Configuration file must define a mapping at the top level.")
    return AppConfig(raw=data)
