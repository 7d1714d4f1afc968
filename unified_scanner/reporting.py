"""
Serialize a finalized ScanResult: lossless JSON dump and SARIF 2.1.0.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from unified_scanner.errors import SerializationError
from unified_scanner.models import Finding, ScanResult, Severity

LOGGER = logging.getLogger(__name__)

SARIF_VERSION = "2.1.0"
SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
TOOL_NAME = "Unified Security Scanner"
TOOL_URI = "https://github.com/unified-scanner/unified-scanner"

LEVEL_MAP = {
    Severity.CRITICAL: "error",
    Severity.HIGH: "error",
    Severity.MEDIUM: "warning",
    Severity.LOW: "warning",
    Severity.INFO: "note",
}

SECURITY_SEVERITY = {
    Severity.CRITICAL: "9.0",
    Severity.HIGH: "7.0",
    Severity.MEDIUM: "5.0",
    Severity.LOW: "3.0",
    Severity.INFO: "1.0",
}


def _dumps(payload: Any) -> str:
    try:
        return json.dumps(payload, indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"result is not serializable: {exc}") from exc


def dump_json(result: ScanResult) -> str:
    return _dumps(result.to_dict())


def load_json(text: str) -> ScanResult:
    try:
        return ScanResult.from_dict(json.loads(text))
    except (KeyError, TypeError, ValueError) as exc:
        raise SerializationError(f"not a scan result document: {exc}") from exc


def precision_for(confidence: float) -> str:
    if confidence >= 0.9:
        return "very-high"
    if confidence >= 0.75:
        return "high"
    if confidence >= 0.5:
        return "medium"
    return "low"


def rule_name(rule_id: str) -> str:
    return "".join(word[:1].upper() + word[1:] for word in rule_id.split("-"))


def _help_markdown(finding: Finding) -> str:
    markdown = f"## {finding.title}\n\n{finding.description}\n\n"
    if finding.remediation.code:
        markdown += f"### Remediation\n\n```\n{finding.remediation.code}\n```\n\n"
    if finding.remediation.references:
        markdown += "### References\n\n"
        for reference in finding.remediation.references:
            markdown += f"- {reference}\n"
    return markdown


def _rule_descriptor(finding: Finding) -> dict[str, Any]:
    return {
        "id": finding.rule_id,
        "name": rule_name(finding.rule_id),
        "shortDescription": {"text": finding.title},
        "fullDescription": {"text": finding.description},
        "help": {
            "text": finding.remediation.summary,
            "markdown": _help_markdown(finding),
        },
        "properties": {
            "tags": [finding.category.value, "security"],
            "precision": precision_for(finding.confidence),
            "security-severity": SECURITY_SEVERITY[finding.severity],
        },
    }


def _sarif_result(finding: Finding) -> dict[str, Any]:
    # SARIF lines are 1-based; file-level findings (line 0) point at the first line
    region: dict[str, Any] = {"startLine": max(1, finding.line)}
    if finding.column is not None:
        region["startColumn"] = finding.column
    if finding.end_line is not None:
        region["endLine"] = finding.end_line
    if finding.end_column is not None:
        region["endColumn"] = finding.end_column
    region["snippet"] = {"text": finding.snippet}
    return {
        "ruleId": finding.rule_id,
        "level": LEVEL_MAP[finding.severity],
        "message": {"text": finding.title},
        "locations": [
            {
                "physicalLocation": {
                    "artifactLocation": {"uri": finding.file},
                    "region": region,
                }
            }
        ],
    }


def to_sarif(result: ScanResult) -> dict[str, Any]:
    """Build a SARIF 2.1.0 document from the kept findings only.

    One rule descriptor per distinct rule id, taken from the first finding
    carrying it; one result per kept finding.
    """
    seen_keys: set[tuple[str, int, str]] = set()
    rules: dict[str, dict[str, Any]] = {}
    results: list[dict[str, Any]] = []
    for finding in result.findings:
        if finding.dedup_key in seen_keys:
            raise SerializationError(f"duplicate kept finding {finding.dedup_key}")
        seen_keys.add(finding.dedup_key)
        if finding.rule_id not in rules:
            rules[finding.rule_id] = _rule_descriptor(finding)
        results.append(_sarif_result(finding))

    return {
        "$schema": SARIF_SCHEMA,
        "version": SARIF_VERSION,
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": TOOL_NAME,
                        "version": result.version,
                        "informationUri": TOOL_URI,
                        "rules": list(rules.values()),
                    }
                },
                "results": results,
            }
        ],
    }


def dump_sarif(result: ScanResult) -> str:
    return _dumps(to_sarif(result))


def validate_sarif(document: dict[str, Any]) -> bool:
    if not isinstance(document, dict):
        return False
    if not document.get("$schema") or not document.get("version") or not isinstance(document.get("runs"), list):
        return False
    for run in document["runs"]:
        if not isinstance(run, dict):
            return False
        driver = (run.get("tool") or {}).get("driver")
        if not isinstance(driver, dict) or not isinstance(run.get("results"), list):
            return False
    return True


def render_summary_markdown(result: ScanResult) -> str:
    """Severity summary suitable for a pull request comment."""
    counts = result.severity_counts()
    lines = [
        "## Security Scan Results",
        "",
        f"**Total Findings:** {result.stats.total}",
        "",
        "| Severity | Count |",
        "|----------|-------|",
    ]
    for severity in Severity:
        lines.append(f"| {severity.value.title()} | {counts.get(severity.value, 0)} |")
    lines.append("")
    if counts.get(Severity.CRITICAL.value):
        lines.append("**Critical vulnerabilities found!** Please review and fix before merging.")
    elif counts.get(Severity.HIGH.value):
        lines.append("**High severity issues found.** Consider reviewing before merging.")
    else:
        lines.append("**No critical or high severity issues found.**")
    if result.stats.suppressed_count:
        lines.append("")
        lines.append(f"_{result.stats.suppressed_count} likely false positives suppressed._")
    return "\n".join(lines)


def write_text_file(path: str | Path, content: str) -> None:
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(content, encoding="utf-8")


def write_reports(result: ScanResult, json_path: str | Path | None = None, sarif_path: str | Path | None = None) -> dict[str, str]:
    """Persist the requested artifacts and return their paths keyed by format."""
    written: dict[str, str] = {}
    if json_path:
        write_text_file(json_path, dump_json(result))
        written["json"] = str(json_path)
    if sarif_path:
        write_text_file(sarif_path, dump_sarif(result))
        written["sarif"] = str(sarif_path)
    for fmt, path in written.items():
        LOGGER.info("Wrote %s report for scan %s to %s", fmt, result.scan_id, path)
    return written
