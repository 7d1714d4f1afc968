import pytest

from unified_scanner.models import (
    Category,
    Effort,
    Finding,
    RunStatus,
    ScanRunRecord,
    ScanSource,
    ScanStats,
    Severity,
)


def test_confidence_is_clamped(make_finding):
    assert make_finding(confidence=1.7).confidence == 1.0
    assert make_finding(confidence=-0.2).confidence == 0.0
    assert make_finding(confidence=0.42).confidence == 0.42


def test_negative_line_rejected(make_finding):
    with pytest.raises(ValueError):
        make_finding(line=-1)


def test_line_zero_is_file_level(make_finding):
    finding = make_finding(line=0)
    assert finding.dedup_key == ("src/app.ts", 0, "generic-rule")


def test_enum_fields_coerced_from_strings(make_finding):
    finding = make_finding(severity="MEDIUM", category="crypto", source="truffleHog")
    assert finding.severity is Severity.MEDIUM
    assert finding.category is Category.CRYPTO
    assert finding.source is ScanSource.TRUFFLEHOG


def test_unknown_enum_value_rejected(make_finding):
    with pytest.raises(ValueError):
        make_finding(severity="URGENT")
    with pytest.raises(ValueError):
        make_finding(category="xss")


def test_severity_rank_ordering():
    ranks = [s.rank for s in (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW, Severity.INFO)]
    assert ranks == sorted(ranks, reverse=True)
    assert Severity.CRITICAL.rank > Severity.INFO.rank


def test_with_suppression_returns_annotated_copy(make_finding):
    finding = make_finding()
    suppressed = finding.with_suppression("because")
    assert suppressed.suppressed_by == "because"
    assert finding.suppressed_by is None
    assert suppressed.id == finding.id


def test_finding_dict_round_trip(make_finding):
    finding = make_finding(cwe="CWE-89", column=4, end_line=12, end_column=9)
    finding.remediation.references.append("https://cwe.mitre.org/data/definitions/89.html")
    finding.remediation.effort = Effort.HIGH
    payload = finding.to_dict()
    assert payload["severity"] == "HIGH"
    assert payload["remediation"]["effort"] == "high"
    assert Finding.from_dict(payload) == finding


def test_run_record_is_frozen():
    record = ScanRunRecord(name="semgrep", status=RunStatus.SUCCESS)
    with pytest.raises(AttributeError):
        record.status = RunStatus.ERROR


def test_stats_default_buckets_are_complete():
    stats = ScanStats()
    assert set(stats.by_severity) == {s.value for s in Severity}
    assert set(stats.by_category) == {c.value for c in Category}
    assert set(stats.by_source) == {s.value for s in ScanSource}
    assert all(v == 0 for v in stats.by_severity.values())
