from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from unified_scanner.models import Severity, ScanResult

DEFAULT_FAIL_ON = (Severity.CRITICAL, Severity.HIGH)


@dataclass
class PolicyOutcome:
    status: str
    violations: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.status == "PASS"


def evaluate_policy(result: ScanResult, fail_on: Iterable[Severity | str] = DEFAULT_FAIL_ON) -> PolicyOutcome:
    """Classify a finished scan against blocking severities.

    Only kept findings count. The caller decides what a BLOCK means for its
    process; nothing here exits.
    """
    blocking = {Severity(str(item).upper()) if not isinstance(item, Severity) else item for item in fail_on}
    violations = []
    for severity in Severity:
        if severity not in blocking:
            continue
        count = result.stats.by_severity.get(severity.value, 0)
        if count:
            violations.append(f"{count} {severity.value} finding(s)")
    return PolicyOutcome(status="BLOCK" if violations else "PASS", violations=violations)
