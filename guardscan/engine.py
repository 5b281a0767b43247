"""Compose scanning, guard analysis and aggregation into one audit run."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config import ScanSettings
from .guard import GuardAnalyzer
from .result import Report, ReportAggregator
from .rules import RuleRegistry
from .scanner import Scanner

logger = logging.getLogger(__name__)


def run_audit(
    root: str | Path,
    registry: RuleRegistry,
    settings: Optional[ScanSettings] = None,
    scanner: Optional[Scanner] = None,
) -> Report:
    """Scan ``root`` with ``registry`` and return the aggregated report.

    Raises ``RootNotFoundError`` before any file is read when ``root`` is not
    a directory.
    """

    scanner = scanner or Scanner(settings)
    outcome = scanner.scan(root, registry)
    findings, suppressed = GuardAnalyzer().partition(outcome.matches)
    logger.info(
        "%d raw matches: %d confirmed, %d suppressed by guards",
        len(outcome.matches),
        len(findings),
        len(suppressed),
    )
    return ReportAggregator().aggregate(
        findings,
        warnings=outcome.warnings,
        files_scanned=outcome.files_scanned,
        root=str(root),
    )
