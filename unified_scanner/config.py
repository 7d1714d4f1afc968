from __future__ import annotations

import os
import re
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from unified_scanner.errors import ConfigValidationError


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


class SuppressionRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    pattern: str
    reason: str

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid suppression regex {value!r}: {exc}") from exc
        return value


class CacheSettings(BaseModel):
    enabled: bool = False
    ttl_seconds: int = Field(default=900, ge=0)
    dir: str = ".unified-scanner/cache"


class ScanConfig(BaseModel):
    target: str = "."
    producers: dict[str, bool] = Field(default_factory=dict)
    parallel_workers: int = Field(default=4, ge=1)
    producer_timeout: float | None = Field(default=600.0, gt=0)
    context_timeout: float | None = Field(default=5.0, gt=0)
    context_concurrency: int = Field(default=4, ge=1)
    context_lines: int = Field(default=5, ge=0)
    exclude_defaults: bool = True
    suppression_rules: list[SuppressionRule] = Field(default_factory=list)
    incremental_scan: bool = False
    cache: CacheSettings = Field(default_factory=CacheSettings)

    def is_enabled(self, producer_name: str) -> bool:
        return bool(self.producers.get(producer_name, True))


def build_config(data: dict[str, Any]) -> ScanConfig:
    try:
        return ScanConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigValidationError(str(exc)) from exc


def load_yaml(path: str) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def resolve_settings(path: str) -> ScanConfig:
    """Load one YAML settings file, fill defaults and env overrides, validate."""
    settings = load_yaml(path)
    if not isinstance(settings, dict):
        raise ConfigValidationError(f"Settings file {path} must contain a mapping")
    settings.setdefault("scanners", {})
    settings.setdefault("execution", {})
    settings.setdefault("suppression", {})
    settings.setdefault("cache", {})
    settings.setdefault("target", ".")
    settings["execution"].setdefault("parallel_workers", int(os.getenv("SCANNER_PARALLEL_WORKERS", "4")))
    settings["execution"].setdefault("producer_timeout", float(os.getenv("SCANNER_PRODUCER_TIMEOUT", "600")))
    settings["execution"].setdefault("incremental_scan", False)
    settings["suppression"].setdefault("exclude_defaults", True)
    settings["suppression"].setdefault("rules", [])
    settings["cache"].setdefault("enabled", _env_bool("SCANNER_CACHE_ENABLED", "false"))
    settings["cache"].setdefault("ttl_seconds", int(os.getenv("SCANNER_CACHE_TTL_SECONDS", "900")))
    settings["cache"].setdefault("dir", os.getenv("SCANNER_CACHE_DIR", ".unified-scanner/cache"))

    execution = settings["execution"]
    suppression = settings["suppression"]
    payload: dict[str, Any] = {
        "target": settings["target"],
        "producers": {
            name: bool((options or {}).get("enabled", True)) if isinstance(options, dict) else bool(options)
            for name, options in settings["scanners"].items()
        },
        "parallel_workers": execution["parallel_workers"],
        "producer_timeout": execution["producer_timeout"],
        "incremental_scan": execution["incremental_scan"],
        "exclude_defaults": suppression["exclude_defaults"],
        "suppression_rules": suppression["rules"],
        "cache": settings["cache"],
    }
    for key in ("context_timeout", "context_concurrency", "context_lines"):
        if key in suppression:
            payload[key] = suppression[key]
    return build_config(payload)
