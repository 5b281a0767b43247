"""Command-line entry point for the guardscan compliance scanner."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

from . import __version__
from .config import AuditConfig, load_config
from .engine import run_audit
from .errors import ConfigError, RootNotFoundError
from .result import Report, format_report
from .severity import Severity

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="guardscan",
        description="Context-aware static compliance scanner for source trees",
    )
    parser.add_argument(
        "root",
        nargs="?",
        help="Project root directory to scan.",
    )
    parser.add_argument(
        "--rules",
        default=None,
        help="YAML rules document (defaults to the bundled Google Play rule set).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of files scanned concurrently.",
    )
    parser.add_argument(
        "--timeout",
        dest="file_timeout_seconds",
        type=float,
        default=None,
        help="Seconds allowed per file before it is skipped.",
    )
    parser.add_argument(
        "--max-file-size",
        dest="max_file_size_bytes",
        type=int,
        default=None,
        help="Skip files larger than this many bytes.",
    )
    parser.add_argument(
        "--out",
        "--output",
        dest="output_path",
        type=str,
        default=None,
        help="Also write the structured report as JSON (e.g., artifacts/audit.json).",
    )
    parser.add_argument(
        "--fail-on",
        choices=[severity.value for severity in Severity],
        type=str.upper,
        default=None,
        help="Exit with status 2 when a finding of this severity or worse is reported.",
    )
    parser.add_argument(
        "--list-rules",
        action="store_true",
        help="Print the loaded rules and exit.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug detail to stderr.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def write_output(report: Report, output_path: str | None) -> None:
    sys.stdout.write(format_report(report))

    if output_path:
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(json.dumps(report.to_dict(), indent=2) + "\n", encoding="utf-8")
        logger.info("Report written to %s", output_path)


def list_rules(config: AuditConfig) -> None:
    print(f"Rules from {config.source}:")
    for rule in config.registry.list():
        guard = f" guard(window={rule.context_window})" if rule.guard_required else ""
        print(f"  {rule.id:<32} [{rule.severity.value}] {rule.category}{guard}")


def exit_code(report: Report, fail_on: str | None) -> int:
    if fail_on is None:
        return 0
    threshold = Severity(fail_on)
    worst = report.worst_severity()
    if worst is not None and worst.rank <= threshold.rank:
        return 2
    return 0


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    try:
        config = load_config(args.rules)
        if args.list_rules:
            list_rules(config)
            return 0
        if args.root is None:
            parser.error("the following arguments are required: root")
        settings = config.settings.with_overrides(
            workers=args.workers,
            file_timeout_seconds=args.file_timeout_seconds,
            max_file_size_bytes=args.max_file_size_bytes,
        )
        report = run_audit(args.root, config.registry, settings)
    except (ConfigError, RootNotFoundError) as exc:
        sys.stderr.write(f"ERROR: {exc}\n")
        return 1

    write_output(report, args.output_path)
    return exit_code(report, args.fail_on)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
