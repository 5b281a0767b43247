import itertools
import re
from pathlib import Path

import pytest

from guardscan.config import ScanSettings
from guardscan.errors import RootNotFoundError
from guardscan.result import FILE_SKIPPED, PATH_MISSING, RULE_FAILED
from guardscan.rules import FileFilter, Rule, RuleRegistry
from guardscan.scanner import Scanner
from guardscan.severity import Severity
from guardscan.utils import code as code_utils
from guardscan.utils import iter_source_files


def registry_of(*entries):
    return RuleRegistry.load({"rules": list(entries)})


def entry(rule_id, patterns, **extra):
    data = {
        "id": rule_id,
        "description": rule_id.replace("-", " "),
        "severity": "WARNING",
        "category": "Code Audit",
        "patterns": patterns,
    }
    data.update(extra)
    return data


def write(root, rel_path, content):
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    return path


class ExplodingPattern:
    pattern = "boom"

    def search(self, line):
        raise re.error("catastrophic pattern")


def test_missing_or_non_directory_root_is_fatal(tmp_path):
    registry = registry_of(entry("todo", "TODO"))

    with pytest.raises(RootNotFoundError, match="Directory not found"):
        Scanner().scan(tmp_path / "missing", registry)

    regular_file = write(tmp_path, "file.txt", "TODO\n")
    with pytest.raises(RootNotFoundError):
        Scanner().scan(regular_file, registry)


def test_each_rule_matching_a_line_yields_its_own_match(tmp_path):
    write(tmp_path, "Main.kt", 'val url = "https://x?token=abc"\nfun ok() = 1\n')
    registry = registry_of(
        entry("secret-word", "token"),
        entry("url-param", "token="),
    )

    outcome = Scanner().scan(tmp_path, registry)

    assert sorted((m.rule.id, m.line_number) for m in outcome.matches) == [
        ("secret-word", 1),
        ("url-param", 1),
    ]
    assert outcome.files_scanned == 1
    assert outcome.warnings == []


def test_file_filters_select_candidate_files(tmp_path):
    write(tmp_path, "app/src/main/Main.kt", "Log.d(TAG, x)\n")
    write(tmp_path, "app/src/test/MainTest.kt", "Log.d(TAG, x)\n")
    write(tmp_path, "app/src/main/AndroidManifest.xml", '<uses-permission android:name="READ_SMS"/>\n')
    write(tmp_path, "docs/notes.md", "Log.d and READ_SMS\n")
    registry = registry_of(
        entry("log", r"Log\.d\(", files={"extensions": [".kt"], "paths": ["app/*"], "exclude": ["*test/*"]}),
        entry("sms", "READ_SMS", files={"names": ["AndroidManifest.xml"]}),
    )

    outcome = Scanner().scan(tmp_path, registry)

    assert sorted((m.rule.id, m.file_path) for m in outcome.matches) == [
        ("log", "app/src/main/Main.kt"),
        ("sms", "app/src/main/AndroidManifest.xml"),
    ]
    assert outcome.files_scanned == 2


def test_excluded_directories_are_not_walked(tmp_path):
    write(tmp_path, "src/Main.kt", "TODO\n")
    write(tmp_path, "build/generated/Main.kt", "TODO\n")
    write(tmp_path, ".git/hooks/pre-commit", "TODO\n")

    outcome = Scanner(ScanSettings(exclude_dirs=(".git", "build"))).scan(tmp_path, registry_of(entry("todo", "TODO")))

    assert [m.file_path for m in outcome.matches] == ["src/Main.kt"]


def test_excluded_directories_are_pruned_before_descent(tmp_path, monkeypatch):
    write(tmp_path, "src/Main.kt", "TODO\n")
    write(tmp_path, "node_modules/pkg/deep/index.kt", "TODO\n")
    write(tmp_path, "src/build/Gen.kt", "TODO\n")
    visited = []
    real_walk = code_utils.os.walk

    def recording_walk(top, *args, **kwargs):
        for dirpath, dirnames, filenames in real_walk(top, *args, **kwargs):
            visited.append(Path(dirpath).relative_to(tmp_path).as_posix())
            yield dirpath, dirnames, filenames

    monkeypatch.setattr(code_utils.os, "walk", recording_walk)

    files = list(iter_source_files(tmp_path, ("node_modules", "build")))

    assert [path.relative_to(tmp_path).as_posix() for path in files] == ["src/Main.kt"]
    assert visited == [".", "src"]


def test_binary_and_undecodable_files_are_skipped_without_aborting(tmp_path):
    write(tmp_path, "a.bin", b"TODO\x00\x01\x02")
    write(tmp_path, "b.txt", b"TODO first\n\xff\xfe broken\n")
    write(tmp_path, "c.txt", "TODO fine\n")

    outcome = Scanner().scan(tmp_path, registry_of(entry("todo", "TODO")))

    assert [m.file_path for m in outcome.matches] == ["c.txt"]
    assert sorted((w.kind, w.path) for w in outcome.warnings) == [
        (FILE_SKIPPED, "a.bin"),
        (FILE_SKIPPED, "b.txt"),
    ]
    assert outcome.files_scanned == 1


def test_oversized_files_are_skipped(tmp_path):
    write(tmp_path, "big.txt", "TODO " * 100)

    outcome = Scanner(ScanSettings(max_file_size_bytes=10)).scan(tmp_path, registry_of(entry("todo", "TODO")))

    assert outcome.matches == []
    assert outcome.warnings[0].kind == FILE_SKIPPED
    assert "larger than 10 bytes" in outcome.warnings[0].message


def test_slow_files_are_skipped_after_timeout(tmp_path):
    write(tmp_path, "slow.txt", "TODO\nTODO\n")
    ticks = itertools.count(step=10)
    scanner = Scanner(ScanSettings(file_timeout_seconds=1.0, workers=1), clock=lambda: next(ticks))

    outcome = scanner.scan(tmp_path, registry_of(entry("todo", "TODO")))

    assert outcome.matches == []
    assert outcome.warnings[0].kind == FILE_SKIPPED
    assert "timed out" in outcome.warnings[0].message


def test_failing_rule_is_isolated_to_its_file(tmp_path):
    write(tmp_path, "Main.kt", "TODO\nTODO again\n")
    broken = Rule(
        id="broken",
        description="broken rule",
        severity=Severity.INFO,
        category="Hygiene",
        patterns=(ExplodingPattern(),),
        file_filter=FileFilter(),
    )
    healthy = registry_of(entry("todo", "TODO")).get("todo")

    outcome = Scanner().scan(tmp_path, RuleRegistry([broken, healthy]))

    assert [(m.rule.id, m.line_number) for m in outcome.matches] == [("todo", 1), ("todo", 2)]
    assert len(outcome.warnings) == 1
    warning = outcome.warnings[0]
    assert (warning.kind, warning.rule_id, warning.path) == (RULE_FAILED, "broken", "Main.kt")
    assert outcome.files_scanned == 1


def test_matches_carry_bounded_context(tmp_path):
    write(tmp_path, "Main.kt", "one\ntwo\nthree\nfour\nLog.d(x)\n")
    registry = registry_of(
        entry("log", r"Log\.d", guard_required=True, guard_patterns="DEBUG", context_window=2),
        entry("four", "four"),
    )

    outcome = Scanner().scan(tmp_path, registry)
    by_rule = {m.rule.id: m for m in outcome.matches}

    assert by_rule["log"].context == ("three", "four")
    assert by_rule["log"].match_start == 0
    assert by_rule["four"].context == ()


def test_expected_paths_report_missing_entries(tmp_path):
    write(tmp_path, "app/src/main/Main.kt", "fun main() {}\n")
    settings = ScanSettings(expected_paths=("app/src/main", "app/src/main/AndroidManifest.xml"))

    outcome = Scanner(settings).scan(tmp_path, registry_of(entry("todo", "TODO")))

    assert [(w.kind, w.path) for w in outcome.warnings] == [(PATH_MISSING, "app/src/main/AndroidManifest.xml")]


def test_worker_count_does_not_change_results(tmp_path):
    for index in range(20):
        write(tmp_path, f"pkg{index % 3}/File{index}.kt", "TODO\nnothing\nTODO\n")
    registry = registry_of(entry("todo", "TODO"))

    serial = Scanner(ScanSettings(workers=1)).scan(tmp_path, registry)
    parallel = Scanner(ScanSettings(workers=8)).scan(tmp_path, registry)

    assert [(m.file_path, m.line_number) for m in serial.matches] == [
        (m.file_path, m.line_number) for m in parallel.matches
    ]
    assert serial.files_scanned == parallel.files_scanned == 20
