from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from unified_scanner.cache import build_cache_key, load_cached_findings, store_cached_findings
from unified_scanner.config import ScanConfig
from unified_scanner.dedupe import dedupe
from unified_scanner.errors import ProducerTimeout, ProducerUnavailable
from unified_scanner.models import Finding, PerformanceSettings, RunStatus, ScanResult, ScanRunRecord, utc_now_iso
from unified_scanner.pool import WorkerPool
from unified_scanner.producers import Producer, producer_cache_context
from unified_scanner.stats import aggregate
from unified_scanner.suppression import SuppressionEngine
from unified_scanner.telemetry import LoggingObserver, ScanObserver

LOGGER = logging.getLogger(__name__)

SCANNER_VERSION = "1.0.0"


@dataclass
class _ProducerOutcome:
    record: ScanRunRecord
    findings: list[Finding] = field(default_factory=list)


class ScanCoordinator:
    """Runs producers under a bounded pool and finalizes one ScanResult.

    Pipeline order is fixed: producers, dedupe, suppression, statistics. A
    producer that is unavailable, raises, or misses its deadline is recorded
    and the scan carries on with whatever the others returned.
    """

    def __init__(
        self,
        config: ScanConfig | None = None,
        engine: SuppressionEngine | None = None,
        observer: ScanObserver | None = None,
    ) -> None:
        self.config = config or ScanConfig()
        self.engine = engine or SuppressionEngine(self.config)
        self.observer = observer or LoggingObserver()
        self.pool = WorkerPool(self.config.parallel_workers)
        self._cache_hits = 0
        self._invoked = 0

    def _notify(self, hook: str, *args) -> None:
        try:
            getattr(self.observer, hook)(*args)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Observer hook %s failed", hook)

    async def _probe(self, producer: Producer) -> tuple[bool, str | None]:
        try:
            return bool(await producer.is_available()), None
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Availability probe for %s failed: %s", producer.name, exc)
            return False, str(exc)

    async def _invoke(self, producer: Producer) -> list[Finding]:
        timeout = self.config.producer_timeout
        try:
            return list(await asyncio.wait_for(producer.scan(self.config), timeout=timeout))
        except asyncio.TimeoutError as exc:
            raise ProducerTimeout(f"timed out after {timeout:g}s") from exc

    async def _execute(self, producer: Producer) -> _ProducerOutcome:
        available, probe_error = await self._probe(producer)
        if not available:
            record = ScanRunRecord(
                name=producer.name,
                status=RunStatus.UNAVAILABLE,
                error=probe_error or "Tool not available",
            )
            self._notify("producer_finished", record)
            return _ProducerOutcome(record)
        return await self.pool.submit(self._run_available, producer)

    async def _run_available(self, producer: Producer) -> _ProducerOutcome:
        self._notify("producer_started", producer.name)
        self._invoked += 1
        started = time.monotonic()
        cache = self.config.cache
        cache_dir = Path(cache.dir)
        cache_key = None
        try:
            if cache.enabled:
                cache_key = build_cache_key(producer.name, self.config.target, producer_cache_context(producer))
                cached = await asyncio.to_thread(load_cached_findings, cache_dir, cache_key, cache.ttl_seconds)
                if cached is not None:
                    self._cache_hits += 1
                    record = ScanRunRecord(
                        name=producer.name,
                        status=RunStatus.SUCCESS,
                        duration=time.monotonic() - started,
                        finding_count=len(cached),
                        cached=True,
                    )
                    self._notify("producer_finished", record)
                    return _ProducerOutcome(record, cached)

            findings = await self._invoke(producer)
            if cache_key is not None:
                try:
                    await asyncio.to_thread(store_cached_findings, cache_dir, cache_key, findings)
                except OSError as exc:
                    LOGGER.warning("Could not cache findings for %s: %s", producer.name, exc)
            record = ScanRunRecord(
                name=producer.name,
                status=RunStatus.SUCCESS,
                duration=time.monotonic() - started,
                finding_count=len(findings),
            )
            outcome = _ProducerOutcome(record, findings)
        except ProducerUnavailable as exc:
            LOGGER.warning("Producer %s reported unavailable during scan: %s", producer.name, exc)
            record = ScanRunRecord(
                name=producer.name,
                status=RunStatus.UNAVAILABLE,
                duration=time.monotonic() - started,
                error=str(exc) or "Tool not available",
            )
            outcome = _ProducerOutcome(record)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Producer %s failed for target %s", producer.name, self.config.target)
            record = ScanRunRecord(
                name=producer.name,
                status=RunStatus.ERROR,
                duration=time.monotonic() - started,
                error=str(exc) or exc.__class__.__name__,
            )
            outcome = _ProducerOutcome(record)
        self._notify("producer_finished", outcome.record)
        return outcome

    async def run(self, producers: Sequence[Producer]) -> ScanResult:
        self._cache_hits = 0
        self._invoked = 0
        started = time.monotonic()
        result = ScanResult(
            scan_id=str(uuid.uuid4()),
            version=SCANNER_VERSION,
            started_at=utc_now_iso(),
            target=self.config.target,
        )

        selected = []
        for producer in producers:
            if self.config.is_enabled(producer.name):
                selected.append(producer)
            else:
                LOGGER.debug("Producer %s disabled by configuration", producer.name)
        self._notify("scan_started", result.scan_id, result.target, [p.name for p in selected])

        raw: list[Finding] = []
        tasks = [asyncio.create_task(self._execute(producer)) for producer in selected]
        for completed in asyncio.as_completed(tasks):
            produced = await completed
            # whole batches only, in completion order
            raw.extend(produced.findings)
            result.runs.append(produced.record)

        unique = dedupe(raw)
        self._notify("findings_deduplicated", len(raw), len(unique))

        partition = await self.engine.filter(unique)
        for finding in partition.suppressed:
            self._notify("finding_suppressed", finding)
        result.findings = partition.kept
        result.suppressed = partition.suppressed
        result.stats = aggregate(partition.kept, suppressed_count=len(partition.suppressed))
        result.performance = PerformanceSettings(
            parallel_workers=self.config.parallel_workers,
            cache_hit_rate=self._cache_hits / self._invoked if self._invoked else 0.0,
            incremental_scan=self.config.incremental_scan,
        )
        result.completed_at = utc_now_iso()
        result.duration = time.monotonic() - started
        self._notify("scan_finished", result)
        return result


def run_scan(
    producers: Sequence[Producer],
    config: ScanConfig | None = None,
    engine: SuppressionEngine | None = None,
    observer: ScanObserver | None = None,
) -> ScanResult:
    """Synchronous entry point for callers without an event loop."""
    return asyncio.run(ScanCoordinator(config, engine=engine, observer=observer).run(producers))
