"""Domain-specific false-positive heuristics.

These are best-effort pattern checks tuned by hand against common false
positives (CLI path handling, documentation samples, scanner rule files,
lockfile hashes, public client-side keys). They have no accuracy target and
are kept separate from the suppression engine so callers can replace or
extend ``DEFAULT_HEURISTICS``.
"""
from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from unified_scanner.models import Category, Finding

if TYPE_CHECKING:
    from unified_scanner.suppression import ContextWindow


CheckFn = Callable[[Finding, "ContextWindow | None"], bool]


@dataclass(frozen=True)
class Heuristic:
    name: str
    reason: str
    check: CheckFn


CLI_FILE = re.compile(r"commands?|cli|bin|scan|orchestrator|adapters?|analyzers?")
PATH_OPERATION = re.compile(r"path\.(join|resolve|normalize)")
PATH_VALIDATION = re.compile(r"validate|sanitize|normalize|resolve")

DOC_FILE = re.compile(r"\.(md|rst|txt)$|docs?/", re.IGNORECASE)
DOC_MARKERS = re.compile(
    r"<[^>]+>|\[[^\]]+\]|\{\{[^}]+\}\}|example|sample|demo|placeholder|your_|replace_",
    re.IGNORECASE,
)

RULE_DIR = re.compile(r"rules?/", re.IGNORECASE)
RULE_DATA_FILE = re.compile(r"\.(yml|yaml)$")

LOCKFILE = re.compile(r"(^|/)(yarn\.lock|package-lock\.json|pnpm-lock\.yaml|composer\.lock)$")
INTEGRITY_HASHES = (
    re.compile(r"resolved.*\.tgz#[a-f0-9]{40}"),
    re.compile(r"integrity.*sha[0-9]+-[A-Za-z0-9+/=]+"),
    re.compile(r'"[a-f0-9]{40,64}"'),
)


@dataclass(frozen=True)
class PublicKeySignature:
    provider: str
    pattern: re.Pattern[str]
    read_only: bool


PUBLIC_KEY_SIGNATURES = (
    PublicKeySignature(
        "algolia",
        re.compile(r"""algolia.*appId.*['"]([A-Z0-9]{10})['"].*apiKey.*['"]([a-f0-9]{32})['"]"""),
        True,
    ),
    PublicKeySignature("algolia", re.compile(r"ALGOLIA.*APP_ID.*API_KEY"), True),
    # usable from a browser only when referrer-restricted, never auto-suppressed
    PublicKeySignature("google-maps", re.compile(r"google.*maps.*api.*key", re.IGNORECASE), False),
    PublicKeySignature("stripe-publishable", re.compile(r"pk_[a-zA-Z0-9]{24,}"), True),
    PublicKeySignature("firebase", re.compile(r"firebase.*config.*apiKey", re.IGNORECASE), True),
)

PUBLIC_MARKERS = re.compile(r"public|client|frontend|browser|read.?only", re.IGNORECASE)
CONFIG_STRUCTURE = re.compile(r"const.*config|export.*config|\{[^}]*appId[^}]*apiKey[^}]*\}", re.IGNORECASE)
PUBLIC_FILE = re.compile(r"config|constants|settings", re.IGNORECASE)
SEARCH_USAGE = re.compile(r"search|query|index", re.IGNORECASE)
WRITE_USAGE = re.compile(r"admin|write|delete|update", re.IGNORECASE)
CLIENT_CONFIG = re.compile(r"client|frontend|public", re.IGNORECASE)
ALGOLIA_APP_ID = re.compile(r"""appId.*['"]([A-Z0-9]{10})['"]""")


def is_cli_path_operation(finding: Finding, window: ContextWindow | None = None) -> bool:
    snippet = finding.snippet or ""
    if not CLI_FILE.search(finding.file) or not PATH_OPERATION.search(snippet):
        return False
    return bool(PATH_VALIDATION.search(snippet)) or "path-traversal" in finding.rule_id


def is_documentation_example(finding: Finding, window: ContextWindow | None = None) -> bool:
    if not DOC_FILE.search(finding.file):
        return False
    return bool(DOC_MARKERS.search(finding.snippet or "")) or finding.category is Category.SECRETS


def is_scanner_rule_definition(finding: Finding, window: ContextWindow | None = None) -> bool:
    if not (RULE_DIR.search(finding.file) and RULE_DATA_FILE.search(finding.file)):
        return False
    return finding.category is Category.SECRETS or "hardcoded" in finding.rule_id


def is_lockfile_integrity_hash(finding: Finding, window: ContextWindow | None = None) -> bool:
    if finding.category is not Category.SECRETS or not LOCKFILE.search(finding.file):
        return False
    snippet = finding.snippet or ""
    return any(pattern.search(snippet) for pattern in INTEGRITY_HASHES)


def _is_algolia_search_only(context: str) -> bool:
    search_only = bool(SEARCH_USAGE.search(context)) and not WRITE_USAGE.search(context)
    return search_only and bool(CLIENT_CONFIG.search(context) or ALGOLIA_APP_ID.search(context))


def is_public_api_key(finding: Finding, window: ContextWindow | None = None) -> bool:
    if window is None or finding.category is not Category.SECRETS:
        return False
    context = window.text
    snippet = finding.snippet or ""
    for signature in PUBLIC_KEY_SIGNATURES:
        if not (signature.pattern.search(context) or signature.pattern.search(snippet)):
            continue
        if not signature.read_only:
            continue
        if (
            PUBLIC_MARKERS.search(context)
            or CONFIG_STRUCTURE.search(context)
            or PUBLIC_FILE.search(finding.file)
            or _is_algolia_search_only(context)
        ):
            return True
    return False


DEFAULT_HEURISTICS: tuple[Heuristic, ...] = (
    Heuristic("cli-path-operation", "CLI tool legitimate path operations", is_cli_path_operation),
    Heuristic("documentation-example", "Documentation with example credentials", is_documentation_example),
    Heuristic("scanner-rule-definition", "Security scanner rule definitions", is_scanner_rule_definition),
    Heuristic("lockfile-integrity-hash", "Package manager integrity hash", is_lockfile_integrity_hash),
    Heuristic("public-api-key", "Legitimate public/read-only API key", is_public_api_key),
)
