"""Rule registry for scanner."""

from __future__ import annotations

import re
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import PurePosixPath
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from guardscan.errors import ConfigError
from guardscan.severity import Severity

RULE_KEYS = frozenset(
    {
        "id",
        "description",
        "severity",
        "category",
        "patterns",
        "files",
        "ignore_case",
        "exclude_patterns",
        "require_patterns",
        "guard_required",
        "guard_patterns",
        "context_window",
    }
)
REQUIRED_RULE_KEYS = ("id", "description", "severity", "category", "patterns")
FILTER_KEYS = frozenset({"extensions", "names", "paths", "exclude"})


@dataclass(frozen=True)
class FileFilter:
    """Decide whether a file, given by its root-relative POSIX path, is in scope."""

    extensions: Tuple[str, ...] = ()
    names: Tuple[str, ...] = ()
    paths: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()

    def accepts(self, rel_path: str) -> bool:
        name = PurePosixPath(rel_path).name
        if self.extensions or self.names:
            lowered = name.lower()
            by_ext = any(lowered.endswith(ext) for ext in self.extensions)
            if not by_ext and name not in self.names:
                return False
        if self.paths and not any(fnmatchcase(rel_path, glob) for glob in self.paths):
            return False
        return not any(fnmatchcase(rel_path, glob) for glob in self.exclude)


@dataclass(frozen=True)
class Rule:
    """A configured textual check.

    ``patterns`` locate candidate lines. ``exclude_patterns`` and
    ``require_patterns`` refine a candidate line the way a piped
    ``grep -v``/``grep`` would. When ``guard_required`` is set, a match is
    only reported if none of ``guard_patterns`` appears within
    ``context_window`` lines of it.
    """

    id: str
    description: str
    severity: Severity
    category: str
    patterns: Tuple[re.Pattern[str], ...]
    file_filter: FileFilter = FileFilter()
    guard_required: bool = False
    guard_patterns: Tuple[re.Pattern[str], ...] = ()
    context_window: int = 0
    exclude_patterns: Tuple[re.Pattern[str], ...] = ()
    require_patterns: Tuple[re.Pattern[str], ...] = ()

    def applies_to(self, rel_path: str) -> bool:
        return self.file_filter.accepts(rel_path)

    def search(self, line: str) -> Optional[re.Match[str]]:
        """Return the first pattern match on ``line`` that survives refinement."""

        for pattern in self.patterns:
            match = pattern.search(line)
            if match is None:
                continue
            if any(p.search(line) for p in self.exclude_patterns):
                return None
            if self.require_patterns and not any(p.search(line) for p in self.require_patterns):
                return None
            return match
        return None

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "severity": self.severity.value,
            "category": self.category,
            "patterns": [p.pattern for p in self.patterns],
            "guard_required": self.guard_required,
            "guard_patterns": [p.pattern for p in self.guard_patterns],
            "context_window": self.context_window,
        }


class RuleRegistry:
    """Immutable, ordered collection of rules keyed by id."""

    def __init__(self, rules: Sequence[Rule]) -> None:
        by_id: Dict[str, Rule] = {}
        for rule in rules:
            if rule.id in by_id:
                raise ConfigError(f"Duplicate rule id: {rule.id}")
            by_id[rule.id] = rule
        self._rules: Tuple[Rule, ...] = tuple(rules)
        self._by_id = by_id

    @classmethod
    def load(cls, config: Any) -> "RuleRegistry":
        """Build a registry from a parsed rules document.

        Any malformed rule fails the whole load.
        """

        if not isinstance(config, Mapping):
            raise ConfigError("Rules document must be a mapping with a 'rules' list")
        raw_rules = config.get("rules")
        if not isinstance(raw_rules, list) or not raw_rules:
            raise ConfigError("Rules document must contain a non-empty 'rules' list")
        return cls([_build_rule(item, index) for index, item in enumerate(raw_rules, start=1)])

    def list(self) -> Tuple[Rule, ...]:
        return self._rules

    def get(self, rule_id: str) -> Rule:
        return self._by_id[rule_id]

    def rules_for(self, rel_path: str) -> Tuple[Rule, ...]:
        """Return the rules whose file filter accepts ``rel_path``."""

        return tuple(rule for rule in self._rules if rule.applies_to(rel_path))

    @property
    def max_context_window(self) -> int:
        return max((rule.context_window for rule in self._rules), default=0)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id


# ----------------------------------------------------------------------
# Parsing helpers
# ----------------------------------------------------------------------
def _build_rule(item: Any, index: int) -> Rule:
    if not isinstance(item, Mapping):
        raise ConfigError(f"Rule #{index} must be a mapping")
    missing = [key for key in REQUIRED_RULE_KEYS if key not in item]
    if missing:
        label = item.get("id", f"#{index}")
        raise ConfigError(f"Rule {label} is missing keys: {', '.join(missing)}")

    rule_id = str(item["id"]).strip()
    if not rule_id:
        raise ConfigError(f"Rule #{index} has an empty id")
    unknown = sorted(set(item) - RULE_KEYS)
    if unknown:
        raise ConfigError(f"Rule {rule_id} has unknown keys: {', '.join(unknown)}")

    try:
        severity = Severity.parse(item["severity"])
    except ValueError as exc:
        raise ConfigError(f"Rule {rule_id}: {exc}") from None

    flags = re.IGNORECASE if _as_bool(item.get("ignore_case", False), rule_id, "ignore_case") else 0
    patterns = _compile_all(item["patterns"], flags, rule_id, "patterns")
    if not patterns:
        raise ConfigError(f"Rule {rule_id} must declare at least one pattern")

    guard_required = _as_bool(item.get("guard_required", False), rule_id, "guard_required")
    guard_patterns = _compile_all(item.get("guard_patterns"), flags, rule_id, "guard_patterns")
    if guard_required and not guard_patterns:
        raise ConfigError(f"Rule {rule_id} requires a guard but declares no guard_patterns")
    if guard_patterns and not guard_required:
        raise ConfigError(f"Rule {rule_id} declares guard_patterns but guard_required is false")

    context_window = item.get("context_window", 0)
    if isinstance(context_window, bool) or not isinstance(context_window, int) or context_window < 0:
        raise ConfigError(f"Rule {rule_id}: context_window must be a non-negative integer")

    return Rule(
        id=rule_id,
        description=str(item["description"]),
        severity=severity,
        category=str(item["category"]),
        patterns=patterns,
        file_filter=_build_filter(item.get("files"), rule_id),
        guard_required=guard_required,
        guard_patterns=guard_patterns,
        context_window=context_window,
        exclude_patterns=_compile_all(item.get("exclude_patterns"), flags, rule_id, "exclude_patterns"),
        require_patterns=_compile_all(item.get("require_patterns"), flags, rule_id, "require_patterns"),
    )


def _build_filter(raw: Any, rule_id: str) -> FileFilter:
    if raw is None:
        return FileFilter()
    if not isinstance(raw, Mapping):
        raise ConfigError(f"Rule {rule_id}: 'files' must be a mapping")
    unknown = sorted(set(raw) - FILTER_KEYS)
    if unknown:
        raise ConfigError(f"Rule {rule_id}: unknown 'files' keys: {', '.join(unknown)}")

    extensions = []
    for ext in _string_list(raw.get("extensions"), rule_id, "files.extensions"):
        ext = ext.lower()
        extensions.append(ext if ext.startswith(".") else f".{ext}")
    return FileFilter(
        extensions=tuple(extensions),
        names=tuple(_string_list(raw.get("names"), rule_id, "files.names")),
        paths=tuple(_string_list(raw.get("paths"), rule_id, "files.paths")),
        exclude=tuple(_string_list(raw.get("exclude"), rule_id, "files.exclude")),
    )


def _compile_all(raw: Any, flags: int, rule_id: str, field: str) -> Tuple[re.Pattern[str], ...]:
    compiled: List[re.Pattern[str]] = []
    for expression in _string_list(raw, rule_id, field):
        if not expression:
            raise ConfigError(f"Rule {rule_id}: empty expression in {field}")
        try:
            compiled.append(re.compile(expression, flags))
        except re.error as exc:
            raise ConfigError(f"Rule {rule_id}: invalid expression {expression!r} in {field}: {exc}") from exc
    return tuple(compiled)


def _string_list(raw: Any, rule_id: str, field: str) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return [raw]
    if not isinstance(raw, list) or not all(isinstance(entry, str) for entry in raw):
        raise ConfigError(f"Rule {rule_id}: {field} must be a string or a list of strings")
    return list(raw)


def _as_bool(value: Any, rule_id: str, field: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"Rule {rule_id}: {field} must be true or false")
    return value
