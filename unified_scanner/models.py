from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        """Higher is more severe: CRITICAL=4 ... INFO=0."""
        return len(SEVERITY_ORDER) - 1 - SEVERITY_ORDER.index(self)


SEVERITY_ORDER = (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW, Severity.INFO)


class Category(str, Enum):
    SECRETS = "secrets"
    INJECTION = "injection"
    AUTH = "auth"
    CRYPTO = "crypto"
    DEPENDENCY = "dependency"
    OTHER = "other"


class ScanSource(str, Enum):
    TRUFFLEHOG = "truffleHog"
    SEMGREP = "semgrep"
    CUSTOM_NPM = "custom-npm"
    CUSTOM_REACT = "custom-react"
    CUSTOM_SECRETS = "custom-secrets"


class Effort(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RunStatus(str, Enum):
    SUCCESS = "success"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


def clamp_confidence(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


@dataclass
class Remediation:
    summary: str
    code: str | None = None
    references: list[str] = field(default_factory=list)
    effort: Effort = Effort.MEDIUM

    def __post_init__(self) -> None:
        self.effort = Effort(self.effort)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "code": self.code,
            "references": list(self.references),
            "effort": self.effort.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Remediation":
        return cls(
            summary=data.get("summary") or "",
            code=data.get("code"),
            references=list(data.get("references") or []),
            effort=Effort(data.get("effort") or Effort.MEDIUM.value),
        )


@dataclass
class Finding:
    id: str
    rule_id: str
    source: ScanSource
    severity: Severity
    category: Category
    file: str
    line: int
    title: str
    description: str
    snippet: str
    remediation: Remediation
    confidence: float
    detected_at: str = field(default_factory=utc_now_iso)
    cwe: str | None = None
    owasp: str | None = None
    column: int | None = None
    end_line: int | None = None
    end_column: int | None = None
    suppressed_by: str | None = None

    def __post_init__(self) -> None:
        self.source = ScanSource(self.source)
        self.severity = Severity(self.severity)
        self.category = Category(self.category)
        # line 0 marks a file-level finding
        if self.line < 0:
            raise ValueError(f"Finding line must be >= 0, got {self.line}")
        self.confidence = clamp_confidence(self.confidence)

    @property
    def dedup_key(self) -> tuple[str, int, str]:
        return (self.file, self.line, self.rule_id)

    def with_suppression(self, reason: str) -> "Finding":
        return replace(self, suppressed_by=reason)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["source"] = self.source.value
        payload["severity"] = self.severity.value
        payload["category"] = self.category.value
        payload["remediation"] = self.remediation.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Finding":
        return cls(
            id=data["id"],
            rule_id=data["rule_id"],
            source=ScanSource(data["source"]),
            severity=Severity(data["severity"]),
            category=Category(data["category"]),
            file=data["file"],
            line=int(data.get("line") or 0),
            title=data.get("title") or "",
            description=data.get("description") or "",
            snippet=data.get("snippet") or "",
            remediation=Remediation.from_dict(data.get("remediation") or {}),
            confidence=data.get("confidence", 0.0),
            detected_at=data.get("detected_at") or utc_now_iso(),
            cwe=data.get("cwe"),
            owasp=data.get("owasp"),
            column=data.get("column"),
            end_line=data.get("end_line"),
            end_column=data.get("end_column"),
            suppressed_by=data.get("suppressed_by"),
        )


@dataclass(frozen=True)
class ScanRunRecord:
    name: str
    status: RunStatus
    duration: float = 0.0
    finding_count: int = 0
    error: str | None = None
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScanRunRecord":
        return cls(
            name=data["name"],
            status=RunStatus(data["status"]),
            duration=float(data.get("duration", 0.0)),
            finding_count=int(data.get("finding_count", 0)),
            error=data.get("error"),
            cached=bool(data.get("cached", False)),
        )


def _zero_buckets(enum_cls: type[Enum]) -> dict[str, int]:
    return {member.value: 0 for member in enum_cls}


@dataclass
class ScanStats:
    total: int = 0
    by_severity: dict[str, int] = field(default_factory=lambda: _zero_buckets(Severity))
    by_category: dict[str, int] = field(default_factory=lambda: _zero_buckets(Category))
    by_source: dict[str, int] = field(default_factory=lambda: _zero_buckets(ScanSource))
    suppressed_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScanStats":
        stats = cls(total=int(data.get("total", 0)), suppressed_count=int(data.get("suppressed_count", 0)))
        stats.by_severity.update({k: int(v) for k, v in (data.get("by_severity") or {}).items()})
        stats.by_category.update({k: int(v) for k, v in (data.get("by_category") or {}).items()})
        stats.by_source.update({k: int(v) for k, v in (data.get("by_source") or {}).items()})
        return stats


@dataclass
class PerformanceSettings:
    parallel_workers: int = 4
    cache_hit_rate: float = 0.0
    incremental_scan: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PerformanceSettings":
        return cls(
            parallel_workers=int(data.get("parallel_workers", 4)),
            cache_hit_rate=float(data.get("cache_hit_rate", 0.0)),
            incremental_scan=bool(data.get("incremental_scan", False)),
        )


@dataclass
class ScanResult:
    scan_id: str
    version: str
    started_at: str
    target: str
    completed_at: str | None = None
    duration: float = 0.0
    findings: list[Finding] = field(default_factory=list)
    suppressed: list[Finding] = field(default_factory=list)
    runs: list[ScanRunRecord] = field(default_factory=list)
    stats: ScanStats = field(default_factory=ScanStats)
    performance: PerformanceSettings = field(default_factory=PerformanceSettings)

    def severity_counts(self) -> dict[str, int]:
        return dict(self.stats.by_severity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scan_id": self.scan_id,
            "version": self.version,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration": self.duration,
            "target": self.target,
            "runs": [run.to_dict() for run in self.runs],
            "findings": [finding.to_dict() for finding in self.findings],
            "suppressed": [finding.to_dict() for finding in self.suppressed],
            "stats": self.stats.to_dict(),
            "performance": self.performance.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScanResult":
        return cls(
            scan_id=data["scan_id"],
            version=data.get("version") or "",
            started_at=data["started_at"],
            completed_at=data.get("completed_at"),
            duration=float(data.get("duration", 0.0)),
            target=data.get("target") or "",
            findings=[Finding.from_dict(item) for item in data.get("findings") or []],
            suppressed=[Finding.from_dict(item) for item in data.get("suppressed") or []],
            runs=[ScanRunRecord.from_dict(item) for item in data.get("runs") or []],
            stats=ScanStats.from_dict(data.get("stats") or {}),
            performance=PerformanceSettings.from_dict(data.get("performance") or {}),
        )
