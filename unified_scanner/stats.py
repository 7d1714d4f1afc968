from __future__ import annotations

from collections.abc import Sequence

from unified_scanner.models import Finding, ScanStats


def aggregate(kept: Sequence[Finding], suppressed_count: int = 0) -> ScanStats:
    stats = ScanStats(total=len(kept), suppressed_count=suppressed_count)
    for finding in kept:
        stats.by_severity[finding.severity.value] += 1
        stats.by_category[finding.category.value] += 1
        stats.by_source[finding.source.value] += 1
    return stats
