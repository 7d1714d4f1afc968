from __future__ import annotations

import logging

from unified_scanner.models import Finding, ScanResult, ScanRunRecord

LOGGER = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


class ScanObserver:
    """Progress hooks called by the coordinator. Every hook is a no-op here."""

    def scan_started(self, scan_id: str, target: str, producer_names: list[str]) -> None:
        pass

    def producer_started(self, name: str) -> None:
        pass

    def producer_finished(self, record: ScanRunRecord) -> None:
        pass

    def findings_deduplicated(self, raw_count: int, unique_count: int) -> None:
        pass

    def finding_suppressed(self, finding: Finding) -> None:
        pass

    def scan_finished(self, result: ScanResult) -> None:
        pass


class LoggingObserver(ScanObserver):
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or LOGGER

    def scan_started(self, scan_id: str, target: str, producer_names: list[str]) -> None:
        self.logger.info("Starting scan %s target=%s producers=%s", scan_id, target, ",".join(producer_names))

    def producer_started(self, name: str) -> None:
        self.logger.info("Running producer %s", name)

    def producer_finished(self, record: ScanRunRecord) -> None:
        if record.error:
            self.logger.warning("Producer %s %s: %s", record.name, record.status.value, record.error)
        else:
            self.logger.info(
                "Producer %s %s with %s findings in %.2fs%s",
                record.name,
                record.status.value,
                record.finding_count,
                record.duration,
                " (cached)" if record.cached else "",
            )

    def findings_deduplicated(self, raw_count: int, unique_count: int) -> None:
        self.logger.info("Deduplicated %s raw findings into %s", raw_count, unique_count)

    def finding_suppressed(self, finding: Finding) -> None:
        self.logger.debug("Suppressed %s at %s:%s: %s", finding.rule_id, finding.file, finding.line, finding.suppressed_by)

    def scan_finished(self, result: ScanResult) -> None:
        self.logger.info(
            "Scan %s finished in %.2fs: %s findings, %s suppressed",
            result.scan_id,
            result.duration,
            result.stats.total,
            result.stats.suppressed_count,
        )
