"""Core result data structures for the scanner."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

from .severity import SEVERITY_ORDER, Severity

if TYPE_CHECKING:  # pragma: no cover
    from .rules import Rule

RULE_WIDTH = 64
FILE_SKIPPED = "file-skipped"
RULE_FAILED = "rule-failed"
PATH_MISSING = "path-missing"


@dataclass(frozen=True)
class RawMatch:
    """An unresolved hit of one rule against one line of one file."""

    rule: "Rule"
    file_path: str
    line_number: int
    matched_text: str
    line: str
    match_start: int = 0
    context: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Finding:
    """A raw match that survived guard evaluation."""

    rule_id: str
    description: str
    severity: Severity
    category: str
    file_path: str
    line_number: int
    matched_text: str
    line: str

    @classmethod
    def from_match(cls, match: RawMatch) -> "Finding":
        rule = match.rule
        return cls(
            rule_id=rule.id,
            description=rule.description,
            severity=rule.severity,
            category=rule.category,
            file_path=match.file_path,
            line_number=match.line_number,
            matched_text=match.matched_text,
            line=match.line,
        )

    @property
    def location(self) -> str:
        return f"{self.file_path}:{self.line_number}"

    def sort_key(self) -> Tuple[int, str, str, int, str, str]:
        return (
            self.severity.rank,
            self.category,
            self.file_path,
            self.line_number,
            self.rule_id,
            self.matched_text,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "rule": self.rule_id,
            "description": self.description,
            "severity": self.severity.value,
            "category": self.category,
            "path": self.file_path,
            "line": self.line_number,
            "match": self.matched_text,
            "source": self.line.strip(),
        }


@dataclass(frozen=True)
class ScanWarning:
    """A non-fatal problem that made the scan less than complete."""

    kind: str
    path: str
    message: str
    rule_id: Optional[str] = None

    def sort_key(self) -> Tuple[str, str, str, str]:
        return (self.kind, self.path, self.rule_id or "", self.message)

    def render(self) -> str:
        if self.rule_id:
            return f"WARNING: rule {self.rule_id} failed on {self.path}: {self.message}"
        if self.kind == PATH_MISSING:
            return f"WARNING: expected path not found: {self.path}"
        return f"WARNING: skipped {self.path}: {self.message}"

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"kind": self.kind, "path": self.path, "message": self.message, "rule": self.rule_id}


@dataclass(frozen=True)
class Report:
    """Ordered findings plus the warnings gathered while producing them."""

    root: str
    findings: Tuple[Finding, ...] = ()
    warnings: Tuple[ScanWarning, ...] = ()
    files_scanned: int = 0

    @property
    def total(self) -> int:
        return len(self.findings)

    @property
    def files_skipped(self) -> int:
        return sum(1 for warning in self.warnings if warning.kind == FILE_SKIPPED)

    @property
    def rules_failed(self) -> int:
        return sum(1 for warning in self.warnings if warning.kind == RULE_FAILED)

    @property
    def complete(self) -> bool:
        return self.files_skipped == 0 and self.rules_failed == 0

    def counts_by_severity(self) -> Dict[Severity, int]:
        counts = {severity: 0 for severity in SEVERITY_ORDER}
        for finding in self.findings:
            counts[finding.severity] += 1
        return counts

    def grouped(self) -> List[Tuple[Severity, List[Tuple[str, List[Finding]]]]]:
        """Return findings nested by severity, then category, in report order."""

        sections: List[Tuple[Severity, List[Tuple[str, List[Finding]]]]] = []
        for finding in self.findings:
            if not sections or sections[-1][0] is not finding.severity:
                sections.append((finding.severity, []))
            categories = sections[-1][1]
            if not categories or categories[-1][0] != finding.category:
                categories.append((finding.category, []))
            categories[-1][1].append(finding)
        return sections

    def worst_severity(self) -> Optional[Severity]:
        return self.findings[0].severity if self.findings else None

    def to_dict(self) -> Dict[str, object]:
        return {
            "root": self.root,
            "summary": {
                "total": self.total,
                "by_severity": {severity.value: count for severity, count in self.counts_by_severity().items()},
                "files_scanned": self.files_scanned,
                "files_skipped": self.files_skipped,
                "rules_failed": self.rules_failed,
            },
            "findings": [finding.to_dict() for finding in self.findings],
            "warnings": [warning.to_dict() for warning in self.warnings],
        }


class ReportAggregator:
    """Turn confirmed findings into a deterministically ordered report."""

    def aggregate(
        self,
        findings: Iterable[Finding],
        warnings: Iterable[ScanWarning] = (),
        files_scanned: int = 0,
        root: str = "",
    ) -> Report:
        ordered = tuple(sorted(findings, key=Finding.sort_key))
        ordered_warnings = tuple(sorted(set(warnings), key=ScanWarning.sort_key))
        return Report(root=root, findings=ordered, warnings=ordered_warnings, files_scanned=files_scanned)


def format_report(report: Report) -> str:
    """Create the human-readable audit report for console output."""

    lines: List[str] = []
    _header(lines, "Compliance Audit Report")
    lines.append(f"Project: {report.root}")
    lines.append(f"Files scanned: {report.files_scanned}")
    lines.append(f"Files skipped: {report.files_skipped}")
    lines.append(f"Rule evaluation failures: {report.rules_failed}")
    for warning in report.warnings:
        lines.append(f"  {warning.render()}")

    for severity, categories in report.grouped():
        count = sum(len(items) for _, items in categories)
        _header(lines, f"{severity.value} findings ({count})")
        for category, items in categories:
            lines.append("")
            lines.append(f"--- {category} ---")
            for finding in items:
                lines.append(f"  [{finding.severity.value}] {finding.description}")
                lines.append(f"    {finding.location}: {finding.matched_text}")

    _header(lines, "Audit Summary")
    lines.append(f"Total findings: {report.total}")
    counts = report.counts_by_severity()
    lines.append("  " + "  ".join(f"{severity.value}: {counts[severity]}" for severity in SEVERITY_ORDER))
    if not report.complete:
        lines.append(
            f"Scan incomplete: {report.files_skipped} file(s) skipped, "
            f"{report.rules_failed} rule evaluation(s) failed."
        )
    if report.total == 0:
        lines.append("No issues detected. Review manually before submission.")
    else:
        lines.append("Review each finding above. BLOCKER items must be fixed before submission.")
    return "\n".join(lines) + "\n"


def _header(lines: List[str], title: str) -> None:
    lines.append("")
    lines.append("=" * RULE_WIDTH)
    lines.append(f"  {title}")
    lines.append("=" * RULE_WIDTH)
