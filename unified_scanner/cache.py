from __future__ import annotations

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any

from unified_scanner.models import Finding

LOGGER = logging.getLogger(__name__)


def build_cache_key(producer_name: str, target: str, context: dict[str, Any] | None = None) -> str:
    payload = {
        "producer": producer_name,
        "target": target,
        "context": context or {},
    }
    encoded = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def _cache_file(cache_dir: Path, cache_key: str) -> Path:
    return cache_dir / f"{cache_key}.json"


def load_cached_findings(cache_dir: Path, cache_key: str, ttl_seconds: int) -> list[Finding] | None:
    cache_file = _cache_file(cache_dir, cache_key)
    try:
        age = time.time() - cache_file.stat().st_mtime
    except OSError:
        return None
    if age > ttl_seconds:
        return None

    try:
        payload = json.loads(cache_file.read_text(encoding="utf-8"))
        return [Finding.from_dict(item) for item in payload]
    except (OSError, ValueError, KeyError, TypeError) as exc:
        LOGGER.warning("Ignoring unreadable cache entry %s: %s", cache_file, exc)
        return None


def store_cached_findings(cache_dir: Path, cache_key: str, findings: list[Finding]) -> None:
    cache_dir.mkdir(parents=True, exist_ok=True)
    cache_file = _cache_file(cache_dir, cache_key)
    cache_file.write_text(
        json.dumps([finding.to_dict() for finding in findings], ensure_ascii=False),
        encoding="utf-8",
    )
