from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from wcmatch import glob as wcglob

from unified_scanner.config import ScanConfig
from unified_scanner.errors import ContextReadError
from unified_scanner.heuristics import DEFAULT_HEURISTICS, Heuristic
from unified_scanner.models import Finding
from unified_scanner.pool import WorkerPool

LOGGER = logging.getLogger(__name__)

GLOB_FLAGS = wcglob.GLOBSTAR | wcglob.BRACE | wcglob.DOTGLOB

DEFAULT_EXCLUSIONS = (
    # tests
    "**/*.test.{ts,tsx,js,jsx}",
    "**/*.spec.{ts,tsx,js,jsx}",
    "**/__tests__/**",
    "**/__mocks__/**",
    "**/fixtures/**",
    "**/examples/**",
    "**/demo/**",
    "**/*.stories.{ts,tsx,js,jsx}",
    # docs
    "**/*.md",
    "**/*.mdx",
    "**/docs/**",
    "**/.storybook/**",
    "**/README*",
    "**/CHANGELOG*",
    "**/CONTRIBUTING*",
    "**/SECURITY*",
    "**/LICENSE*",
    # dependencies and build output
    "**/node_modules/**",
    "**/vendor/**",
    "**/dist/**",
    "**/build/**",
    "**/coverage/**",
    "**/reports/**",
    # lockfiles carry integrity hashes
    "**/yarn.lock",
    "**/package-lock.json",
    "**/pnpm-lock.yaml",
    "**/composer.lock",
    # sample configs
    "**/*.example.{json,yml,yaml}",
    "**/*.sample.{json,yml,yaml}",
    "**/example.config.*",
    "**/.env.example",
    "**/.env.template",
    # scanner rule definitions
    "**/rules/**/*.{yml,yaml}",
    "**/patterns/**/*.{yml,yaml}",
)

TEST_PREFIXES = ("MOCK_", "TEST_", "EXAMPLE_", "SAMPLE_", "FIXTURE_", "DEMO_", "PLACEHOLDER_", "YOUR_", "REPLACE_")
TEST_KEYWORDS = re.compile(
    r"\b(?:describe|it|test|expect)(?:\.\w+)*\s*\(|\b(?:jest|vitest|mocha)\.|\b(?:beforeEach|afterEach|beforeAll|afterAll)\b",
    re.IGNORECASE,
)
INLINE_DIRECTIVES = ("nosec", "noqa")

REASON_EXCLUDED = "File matches exclusion pattern (test/docs/dependencies)"
REASON_TEST_PREFIX = "Variable has test/mock prefix (MOCK_, TEST_, etc.)"
REASON_TEST_CONTEXT = "Found in test context (describe/it/test/expect)"
REASON_INLINE_DIRECTIVE = "Suppressed by nosec comment"


def normalize_path(file_path: str) -> str:
    path = file_path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


def glob_match(file_path: str, patterns: str | Sequence[str]) -> bool:
    if isinstance(patterns, str):
        patterns = [patterns]
    if not patterns:
        return False
    return wcglob.globmatch(normalize_path(file_path), list(patterns), flags=GLOB_FLAGS)


@dataclass(frozen=True)
class ContextWindow:
    """Source lines around a finding. ``start_line`` is the 1-based number of ``lines[0]``."""

    start_line: int
    lines: tuple[str, ...]

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    def line_at(self, line_number: int) -> str | None:
        index = line_number - self.start_line
        if 0 <= index < len(self.lines):
            return self.lines[index]
        return None

    @classmethod
    def around(cls, content: str, line: int, radius: int = 5) -> "ContextWindow":
        all_lines = content.split("\n")
        start = max(0, line - radius - 1)
        end = min(len(all_lines), line + radius)
        return cls(start_line=start + 1, lines=tuple(all_lines[start:end]))


class ContextProvider(Protocol):
    async def read_window(self, finding: Finding, radius: int) -> ContextWindow:
        """Return the lines around ``finding.line`` or raise ContextReadError."""
        ...


class FileContextProvider:
    def __init__(self, root: str | Path = ".") -> None:
        self.root = Path(root)

    def resolve(self, file_path: str) -> Path:
        root = self.root.resolve()
        path = (root / file_path).resolve()
        if not path.is_relative_to(root):
            raise ContextReadError(f"{file_path} is outside {root}")
        return path

    async def read_window(self, finding: Finding, radius: int) -> ContextWindow:
        path = self.resolve(finding.file)
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ContextReadError(f"cannot read {path}: {exc}") from exc
        return ContextWindow.around(content, finding.line, radius)


@dataclass(frozen=True)
class SuppressionDecision:
    suppress: bool
    reason: str | None = None
    stage: str | None = None


KEEP = SuppressionDecision(suppress=False)


@dataclass
class SuppressionOutcome:
    kept: list[Finding] = field(default_factory=list)
    suppressed: list[Finding] = field(default_factory=list)


def has_test_prefix(snippet: str) -> bool:
    return any(prefix in snippet for prefix in TEST_PREFIXES)


def has_inline_directive(window: ContextWindow, line: int) -> bool:
    # line 0 is file-level: only the first line of the window applies
    own = window.line_at(line) if line > 0 else window.line_at(window.start_line)
    previous = window.line_at(line - 1) if line > 1 else None
    return any(
        directive in candidate
        for candidate in (own, previous)
        if candidate is not None
        for directive in INLINE_DIRECTIVES
    )


class SuppressionEngine:
    """Decides, finding by finding, whether a detection is a likely false positive.

    Stages run in a fixed order and the first match wins: default exclusion
    globs, configured rules, naming prefixes, test-framework context, inline
    ``nosec``/``noqa`` directives, then the domain heuristics. Context reads
    go through a bounded pool and may fail; a failed read only disables the
    stages that need the context.
    """

    def __init__(
        self,
        config: ScanConfig | None = None,
        context_provider: ContextProvider | None = None,
        pool: WorkerPool | None = None,
        heuristics: Iterable[Heuristic] | None = None,
    ) -> None:
        self.config = config or ScanConfig()
        self.context_provider = context_provider or FileContextProvider(self.config.target)
        self.pool = pool or WorkerPool(self.config.context_concurrency)
        self.heuristics = tuple(DEFAULT_HEURISTICS if heuristics is None else heuristics)
        self.exclusions: tuple[str, ...] = DEFAULT_EXCLUSIONS if self.config.exclude_defaults else ()
        self.rules = [(rule, re.compile(rule.pattern)) for rule in self.config.suppression_rules]

    async def _read_context(self, finding: Finding) -> ContextWindow | None:
        try:
            return await asyncio.wait_for(
                self.context_provider.read_window(finding, self.config.context_lines),
                timeout=self.config.context_timeout,
            )
        except ContextReadError as exc:
            LOGGER.debug("No context for %s:%s: %s", finding.file, finding.line, exc)
        except asyncio.TimeoutError:
            LOGGER.debug("Context read timed out for %s:%s", finding.file, finding.line)
        return None

    async def evaluate(self, finding: Finding) -> SuppressionDecision:
        if self.exclusions and glob_match(finding.file, self.exclusions):
            return SuppressionDecision(True, REASON_EXCLUDED, "default-exclusion")

        for rule, pattern in self.rules:
            if glob_match(finding.file, rule.file) and pattern.search(finding.snippet or ""):
                return SuppressionDecision(True, rule.reason, "custom-rule")

        if has_test_prefix(finding.snippet or ""):
            return SuppressionDecision(True, REASON_TEST_PREFIX, "naming-prefix")

        window = await self._read_context(finding)
        if window is not None:
            if TEST_KEYWORDS.search(window.text):
                return SuppressionDecision(True, REASON_TEST_CONTEXT, "test-context")
            if has_inline_directive(window, finding.line):
                return SuppressionDecision(True, REASON_INLINE_DIRECTIVE, "inline-directive")

        for heuristic in self.heuristics:
            if heuristic.check(finding, window):
                return SuppressionDecision(True, heuristic.reason, heuristic.name)

        return KEEP

    async def filter(self, findings: Sequence[Finding]) -> SuppressionOutcome:
        decisions = await self.pool.map(self.evaluate, findings)
        outcome = SuppressionOutcome()
        for finding, decision in zip(findings, decisions):
            if decision.suppress:
                outcome.suppressed.append(finding.with_suppression(decision.reason or ""))
            else:
                outcome.kept.append(finding)
        return outcome
