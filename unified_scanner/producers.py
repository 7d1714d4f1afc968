from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from unified_scanner.config import ScanConfig
from unified_scanner.errors import ProducerExecutionError
from unified_scanner.models import Category, Effort, Finding, Remediation, ScanSource, Severity, utc_now_iso

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class Producer(Protocol):
    """A black-box source of findings.

    ``is_available`` must be fast and side-effect free; a raise is treated as
    unavailable. ``scan`` may raise, which is recorded as a producer error.
    Producers translate their tool's native output into ``Finding`` themselves.
    """

    name: str

    async def is_available(self) -> bool: ...

    async def scan(self, config: ScanConfig) -> list[Finding]: ...


def producer_cache_context(producer: Producer) -> dict[str, Any]:
    hook = getattr(producer, "cache_context", None)
    return hook() if callable(hook) else {}


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


async def run_command(command: list[str], cwd: str | None = None, env: dict[str, str] | None = None) -> tuple[int, str, str]:
    LOGGER.info("Executing command: %s", " ".join(command))
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=cwd,
            env=env or os.environ.copy(),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ProducerExecutionError(f"failed to spawn {command[0]}: {exc}") from exc
    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        # deadline hit: do not leave the tool running
        process.kill()
        await process.wait()
        raise
    return (
        process.returncode if process.returncode is not None else -1,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


class CommandProducer:
    """Base for producers that shell out to a scanner binary.

    Subclasses set ``name`` and ``binary`` and implement ``build_command`` and
    ``parse_output``; ``parse_output`` is the only place the tool's native
    output shape is known.
    """

    name = "command"
    binary = ""
    accepted_exit_codes: tuple[int, ...] = (0,)

    def build_command(self, config: ScanConfig) -> list[str]:
        raise NotImplementedError

    def parse_output(self, stdout: str, config: ScanConfig) -> list[Finding]:
        raise NotImplementedError

    def cache_context(self) -> dict[str, Any]:
        return {"binary": self.binary, "accepted_exit_codes": list(self.accepted_exit_codes)}

    async def is_available(self) -> bool:
        return command_exists(self.binary)

    async def scan(self, config: ScanConfig) -> list[Finding]:
        code, stdout, stderr = await run_command(self.build_command(config))
        if code not in self.accepted_exit_codes:
            raise ProducerExecutionError(f"{self.name} exited with code {code}: {stderr or stdout}")
        return self.parse_output(stdout, config)


# ---------------------------------------------------------------------------
# SARIF ingestion
# ---------------------------------------------------------------------------

class SarifModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SarifText(SarifModel):
    text: str = ""


class SarifRegion(SarifModel):
    start_line: int = Field(default=0, alias="startLine", ge=0)
    start_column: int | None = Field(default=None, alias="startColumn")
    end_line: int | None = Field(default=None, alias="endLine")
    end_column: int | None = Field(default=None, alias="endColumn")
    snippet: SarifText | None = None


class SarifArtifactLocation(SarifModel):
    uri: str = "unknown"


class SarifPhysicalLocation(SarifModel):
    artifact_location: SarifArtifactLocation = Field(default_factory=SarifArtifactLocation, alias="artifactLocation")
    region: SarifRegion = Field(default_factory=SarifRegion)


class SarifLocation(SarifModel):
    physical_location: SarifPhysicalLocation | None = Field(default=None, alias="physicalLocation")


class SarifResult(SarifModel):
    rule_id: str = Field(default="unknown", alias="ruleId")
    level: str = "warning"
    message: SarifText = Field(default_factory=SarifText)
    locations: list[SarifLocation] = Field(default_factory=list)


class SarifRule(SarifModel):
    id: str
    short_description: SarifText | None = Field(default=None, alias="shortDescription")
    full_description: SarifText | None = Field(default=None, alias="fullDescription")
    help: SarifText | None = None


class SarifDriver(SarifModel):
    name: str = "unknown"
    version: str | None = None
    rules: list[SarifRule] = Field(default_factory=list)


class SarifTool(SarifModel):
    driver: SarifDriver = Field(default_factory=SarifDriver)


class SarifRun(SarifModel):
    tool: SarifTool = Field(default_factory=SarifTool)
    results: list[SarifResult] = Field(default_factory=list)


class SarifLog(SarifModel):
    schema_uri: str | None = Field(default=None, alias="$schema")
    version: str
    runs: list[SarifRun] = Field(default_factory=list)


LEVEL_SEVERITY = {
    "error": Severity.CRITICAL,
    "warning": Severity.HIGH,
    "note": Severity.MEDIUM,
    "info": Severity.LOW,
    "none": Severity.LOW,
}

CATEGORY_HINTS = (
    (("secret", "credential"), Category.SECRETS),
    (("injection", "sqli"), Category.INJECTION),
    (("auth", "login"), Category.AUTH),
    (("crypto", "hash"), Category.CRYPTO),
    (("dependency", "package"), Category.DEPENDENCY),
)

SARIF_CONFIDENCE = 0.8


def _severity(level: str | None) -> Severity:
    return LEVEL_SEVERITY.get(str(level or "").lower(), Severity.LOW)


def infer_category(rule_id: str) -> Category:
    lowered = rule_id.lower()
    for hints, category in CATEGORY_HINTS:
        if any(hint in lowered for hint in hints):
            return category
    return Category.OTHER


def source_for_tool(tool_name: str) -> ScanSource:
    lowered = tool_name.lower()
    if "semgrep" in lowered:
        return ScanSource.SEMGREP
    if "trufflehog" in lowered:
        return ScanSource.TRUFFLEHOG
    return ScanSource.CUSTOM_SECRETS


def _rel_path(base_path: str | None, uri: str) -> str:
    file_path = uri[len("file://"):] if uri.startswith("file://") else uri
    try:
        if base_path and Path(file_path).is_absolute():
            return Path(file_path).resolve().relative_to(Path(base_path).resolve()).as_posix()
    except ValueError:
        pass
    return file_path


def sarif_to_findings(log: SarifLog, base_path: str | None = None, source: ScanSource | None = None) -> list[Finding]:
    findings: list[Finding] = []
    for run in log.runs:
        rules = {rule.id: rule for rule in run.tool.driver.rules}
        run_source = source or source_for_tool(run.tool.driver.name)
        for result in run.results:
            location = result.locations[0].physical_location if result.locations else None
            if location is None:
                continue
            rule = rules.get(result.rule_id)
            region = location.region
            message = result.message.text
            description = rule.full_description.text if rule and rule.full_description else message
            summary = rule.help.text if rule and rule.help else "Review and fix the identified security issue"
            findings.append(
                Finding(
                    id=str(uuid.uuid4()),
                    rule_id=result.rule_id,
                    source=run_source,
                    severity=_severity(result.level),
                    category=infer_category(result.rule_id),
                    file=_rel_path(base_path, location.artifact_location.uri),
                    line=region.start_line,
                    column=region.start_column,
                    end_line=region.end_line,
                    end_column=region.end_column,
                    title=message,
                    description=description,
                    snippet=region.snippet.text if region.snippet else "",
                    remediation=Remediation(summary=summary, references=[], effort=Effort.MEDIUM),
                    confidence=SARIF_CONFIDENCE,
                    detected_at=utc_now_iso(),
                )
            )
    return findings


class SarifFileProducer:
    """Feeds findings from a SARIF 2.1.0 file another tool already wrote."""

    def __init__(self, path: str | Path, name: str | None = None, source: ScanSource | None = None) -> None:
        self.path = Path(path)
        self.name = name or f"sarif:{self.path.name}"
        self.source = source

    def cache_context(self) -> dict[str, Any]:
        try:
            mtime = self.path.stat().st_mtime
        except OSError:
            mtime = None
        return {"path": str(self.path), "mtime": mtime}

    async def is_available(self) -> bool:
        return self.path.is_file()

    async def scan(self, config: ScanConfig) -> list[Finding]:
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            log = SarifLog.model_validate(json.loads(raw))
        except (OSError, ValueError, ValidationError) as exc:
            raise ProducerExecutionError(f"invalid SARIF input {self.path}: {exc}") from exc
        return sarif_to_findings(log, base_path=config.target, source=self.source)
