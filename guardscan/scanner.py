"""Walk a source tree and collect raw rule matches line by line."""

from __future__ import annotations

import logging
import re
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Sequence, Tuple

from .config import ScanSettings
from .errors import FileReadError, RootNotFoundError, RuleEvaluationError
from .result import FILE_SKIPPED, PATH_MISSING, RULE_FAILED, RawMatch, ScanWarning
from .rules import Rule, RuleRegistry
from .utils import iter_source_files, iter_text_lines, relative_posix

logger = logging.getLogger(__name__)

# Failures of a single rule against a single file; anything else propagates.
RULE_ERRORS = (re.error, RecursionError, TypeError, ValueError)


@dataclass
class ScanOutcome:
    """Raw matches and warnings from one scan run."""

    matches: List[RawMatch] = field(default_factory=list)
    warnings: List[ScanWarning] = field(default_factory=list)
    files_scanned: int = 0


@dataclass
class FileScan:
    matches: List[RawMatch]
    warnings: List[ScanWarning]
    completed: bool


class Scanner:
    """Apply a rule registry to every eligible file under a root directory."""

    def __init__(
        self,
        settings: Optional[ScanSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or ScanSettings()
        self._clock = clock

    def scan(self, root: str | Path, registry: RuleRegistry) -> ScanOutcome:
        root_path = Path(root)
        if not root_path.is_dir():
            raise RootNotFoundError(str(root))
        root_path = root_path.resolve()

        outcome = ScanOutcome(warnings=self._check_expected_paths(root_path))
        jobs: List[Tuple[Path, str, Tuple[Rule, ...]]] = []
        for path in iter_source_files(root_path, self.settings.exclude_dirs):
            rel_path = relative_posix(path, root_path)
            rules = registry.rules_for(rel_path)
            if rules:
                jobs.append((path, rel_path, rules))
        logger.debug("Scanning %d candidate files under %s", len(jobs), root_path)

        executor = ThreadPoolExecutor(max_workers=self.settings.workers, thread_name_prefix="guardscan")
        try:
            futures = [executor.submit(self.scan_file, path, rel_path, rules) for path, rel_path, rules in jobs]
            for future in futures:
                result = future.result()
                outcome.matches.extend(result.matches)
                outcome.warnings.extend(result.warnings)
                if result.completed:
                    outcome.files_scanned += 1
        except BaseException:
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)
        return outcome

    def scan_file(self, path: Path, rel_path: str, rules: Sequence[Rule]) -> FileScan:
        """Scan one file against ``rules``.

        An unreadable file yields no matches and a single skip warning. A rule
        that raises while matching is disabled for the rest of this file and
        its matches in this file are dropped.
        """

        try:
            size = path.stat().st_size
        except OSError as exc:
            return self._skipped(rel_path, exc.strerror or str(exc))
        if size > self.settings.max_file_size_bytes:
            return self._skipped(rel_path, f"larger than {self.settings.max_file_size_bytes} bytes")

        timeout = self.settings.file_timeout_seconds
        deadline = self._clock() + timeout
        previous: Deque[str] = deque(maxlen=max(rule.context_window for rule in rules))
        active: List[Rule] = list(rules)
        found: Dict[str, List[RawMatch]] = {rule.id: [] for rule in rules}
        warnings: List[ScanWarning] = []

        try:
            for line_number, line in enumerate(iter_text_lines(path, rel_path), start=1):
                if self._clock() > deadline:
                    raise FileReadError(rel_path, f"timed out after {timeout:g}s")
                context: Optional[Tuple[str, ...]] = None
                for rule in list(active):
                    try:
                        match = rule.search(line)
                    except RULE_ERRORS as exc:
                        error = RuleEvaluationError(rule.id, rel_path, exc)
                        logger.warning("%s", error)
                        warnings.append(ScanWarning(RULE_FAILED, rel_path, str(exc), rule.id))
                        active.remove(rule)
                        del found[rule.id]
                        continue
                    if match is None:
                        continue
                    if context is None:
                        context = tuple(previous)
                    found[rule.id].append(
                        RawMatch(
                            rule=rule,
                            file_path=rel_path,
                            line_number=line_number,
                            matched_text=match.group(0),
                            line=line,
                            match_start=match.start(),
                            context=context[-rule.context_window:] if rule.context_window else (),
                        )
                    )
                previous.append(line)
        except FileReadError as exc:
            return self._skipped(rel_path, exc.reason)

        matches = [match for rule in rules if rule.id in found for match in found[rule.id]]
        return FileScan(matches=matches, warnings=warnings, completed=True)

    def _skipped(self, rel_path: str, reason: str) -> FileScan:
        logger.warning("Skipping %s: %s", rel_path, reason)
        return FileScan(matches=[], warnings=[ScanWarning(FILE_SKIPPED, rel_path, reason)], completed=False)

    def _check_expected_paths(self, root: Path) -> List[ScanWarning]:
        warnings = []
        for expected in self.settings.expected_paths:
            if not (root / expected).exists():
                logger.warning("Expected path not found: %s", expected)
                warnings.append(ScanWarning(PATH_MISSING, expected, "not found"))
        return warnings
