"""
Shared fixtures for pipeline tests.
"""
import itertools

import pytest

from unified_scanner.config import ScanConfig
from unified_scanner.errors import ContextReadError
from unified_scanner.models import Category, Finding, Remediation, ScanSource, Severity
from unified_scanner.suppression import ContextWindow, SuppressionEngine


class StaticContextProvider:
    """Serves file contents from a dict; unknown files fail like unreadable ones."""

    def __init__(self, files=None):
        self.files = files or {}
        self.reads = []

    async def read_window(self, finding, radius):
        self.reads.append(finding.file)
        if finding.file not in self.files:
            raise ContextReadError(f"no such file {finding.file}")
        return ContextWindow.around(self.files[finding.file], finding.line, radius)


@pytest.fixture
def make_finding():
    counter = itertools.count(1)

    def _make(**overrides):
        n = next(counter)
        data = {
            "id": f"finding-{n}",
            "rule_id": "generic-rule",
            "source": ScanSource.SEMGREP,
            "severity": Severity.HIGH,
            "category": Category.INJECTION,
            "file": "src/app.ts",
            "line": 10,
            "title": "Potential issue",
            "description": "Something risky happens here",
            "snippet": "runQuery(input)",
            "remediation": Remediation(summary="Validate the input"),
            "confidence": 0.8,
            "detected_at": "2026-01-01T00:00:00+00:00",
        }
        data.update(overrides)
        return Finding(**data)

    return _make


@pytest.fixture
def context_files():
    return {}


@pytest.fixture
def context_provider(context_files):
    return StaticContextProvider(context_files)


@pytest.fixture
def engine(context_provider):
    return SuppressionEngine(ScanConfig(), context_provider=context_provider)
