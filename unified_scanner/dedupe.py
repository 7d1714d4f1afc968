from __future__ import annotations

from collections.abc import Iterable

from unified_scanner.models import Finding


def dedupe(raw: Iterable[Finding]) -> list[Finding]:
    """Collapse findings sharing ``(file, line, rule_id)``.

    The highest-confidence instance wins; on equal confidence the first one
    seen is kept. Output follows first-seen key order.
    """
    best: dict[tuple[str, int, str], Finding] = {}
    for finding in raw:
        key = finding.dedup_key
        existing = best.get(key)
        if existing is None or finding.confidence > existing.confidence:
            best[key] = finding
    return list(best.values())
