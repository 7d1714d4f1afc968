import json

import pytest

from unified_scanner.errors import SerializationError
from unified_scanner.models import (
    PerformanceSettings,
    RunStatus,
    ScanResult,
    ScanRunRecord,
    Severity,
)
from unified_scanner.reporting import (
    dump_json,
    dump_sarif,
    load_json,
    precision_for,
    render_summary_markdown,
    rule_name,
    to_sarif,
    validate_sarif,
    write_reports,
)
from unified_scanner.stats import aggregate


@pytest.fixture
def scan_result(make_finding):
    kept = [
        make_finding(rule_id="sql-injection", severity=Severity.CRITICAL, line=1, confidence=0.95, column=3),
        make_finding(rule_id="sql-injection", severity=Severity.CRITICAL, line=7),
        make_finding(rule_id="weak-hash", severity=Severity.LOW, category="crypto", line=2, confidence=0.4),
    ]
    kept[0].remediation.code = "db.query(sql, [id])"
    kept[0].remediation.references.append("https://owasp.org/www-community/attacks/SQL_Injection")
    suppressed = [make_finding(file="src/App.test.ts").with_suppression("excluded")]
    return ScanResult(
        scan_id="scan-1",
        version="1.0.0",
        started_at="2026-01-01T00:00:00+00:00",
        completed_at="2026-01-01T00:00:05+00:00",
        duration=5.0,
        target="/repo",
        findings=kept,
        suppressed=suppressed,
        runs=[
            ScanRunRecord(name="semgrep", status=RunStatus.SUCCESS, duration=1.5, finding_count=4),
            ScanRunRecord(name="truffleHog", status=RunStatus.UNAVAILABLE, error="Tool not available"),
        ],
        stats=aggregate(kept, suppressed_count=1),
        performance=PerformanceSettings(parallel_workers=2, cache_hit_rate=0.5),
    )


def test_json_round_trip(scan_result):
    assert load_json(dump_json(scan_result)) == scan_result


def test_json_is_pretty_and_keeps_unicode(scan_result, make_finding):
    scan_result.findings.append(make_finding(title="Clé exposée", line=99))
    text = dump_json(scan_result)
    assert "Clé exposée" in text
    assert text.startswith("{\n  ")


def test_load_json_rejects_garbage():
    with pytest.raises(SerializationError):
        load_json("not json")
    with pytest.raises(SerializationError):
        load_json(json.dumps({"findings": []}))


def test_sarif_rules_and_results(scan_result):
    sarif = to_sarif(scan_result)
    run = sarif["runs"][0]
    rules = run["tool"]["driver"]["rules"]

    assert sarif["version"] == "2.1.0"
    assert [r["id"] for r in rules] == ["sql-injection", "weak-hash"]
    assert len(run["results"]) == 3
    assert run["tool"]["driver"]["version"] == "1.0.0"


def test_sarif_rule_descriptor(scan_result):
    rule = to_sarif(scan_result)["runs"][0]["tool"]["driver"]["rules"][0]
    assert rule["name"] == "SqlInjection"
    assert rule["properties"]["security-severity"] == "9.0"
    assert rule["properties"]["precision"] == "very-high"
    assert rule["properties"]["tags"] == ["injection", "security"]
    assert "db.query(sql, [id])" in rule["help"]["markdown"]
    assert "### References" in rule["help"]["markdown"]


def test_sarif_result_levels_and_regions(scan_result):
    results = to_sarif(scan_result)["runs"][0]["results"]
    critical, _, low = results

    assert critical["level"] == "error"
    assert low["level"] == "warning"
    region = critical["locations"][0]["physicalLocation"]["region"]
    assert region["startLine"] == 1
    assert region["startColumn"] == 3
    assert "endLine" not in region
    assert region["snippet"]["text"] == "runQuery(input)"


def test_sarif_excludes_suppressed(scan_result):
    uris = [
        r["locations"][0]["physicalLocation"]["artifactLocation"]["uri"]
        for r in to_sarif(scan_result)["runs"][0]["results"]
    ]
    assert "src/App.test.ts" not in uris


def test_sarif_rejects_duplicate_kept_findings(scan_result, make_finding):
    scan_result.findings.append(make_finding(rule_id="sql-injection", line=1))
    with pytest.raises(SerializationError):
        to_sarif(scan_result)


def test_empty_result_is_valid_sarif():
    result = ScanResult(scan_id="empty", version="1.0.0", started_at="2026-01-01T00:00:00+00:00", target=".")
    document = json.loads(dump_sarif(result))
    assert validate_sarif(document)
    assert document["runs"][0]["results"] == []
    assert document["runs"][0]["tool"]["driver"]["rules"] == []


def test_validate_sarif_rejects_incomplete_documents():
    assert not validate_sarif({})
    assert not validate_sarif({"$schema": "x", "version": "2.1.0", "runs": [{"results": []}]})
    assert not validate_sarif([])


@pytest.mark.parametrize(
    "confidence,expected",
    [(0.95, "very-high"), (0.9, "very-high"), (0.8, "high"), (0.5, "medium"), (0.2, "low")],
)
def test_precision_buckets(confidence, expected):
    assert precision_for(confidence) == expected


def test_rule_name():
    assert rule_name("hardcoded-api-key") == "HardcodedApiKey"
    assert rule_name("eval") == "Eval"


def test_summary_markdown(scan_result):
    summary = render_summary_markdown(scan_result)
    assert "**Total Findings:** 3" in summary
    assert "| Critical | 2 |" in summary
    assert "Critical vulnerabilities found!" in summary
    assert "1 likely false positives suppressed" in summary


def test_write_reports(tmp_path, scan_result):
    written = write_reports(scan_result, tmp_path / "out" / "scan.json", tmp_path / "out" / "scan.sarif")

    assert set(written) == {"json", "sarif"}
    assert load_json((tmp_path / "out" / "scan.json").read_text(encoding="utf-8")) == scan_result
    assert validate_sarif(json.loads((tmp_path / "out" / "scan.sarif").read_text(encoding="utf-8")))
    assert write_reports(scan_result) == {}


def test_file_level_finding_points_at_first_line_in_sarif(scan_result, make_finding):
    scan_result.findings.append(make_finding(file="package.json", line=0))

    result = to_sarif(scan_result)["runs"][0]["results"][-1]

    assert result["locations"][0]["physicalLocation"]["region"]["startLine"] == 1
    assert load_json(dump_json(scan_result)).findings[-1].line == 0
