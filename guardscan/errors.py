"""Exception hierarchy for the scanner."""

from __future__ import annotations

from typing import Optional


class GuardscanError(Exception):
    """Base class for every error raised by guardscan."""


class ConfigError(GuardscanError, ValueError):
    """Rule configuration is malformed; raised before any scanning begins."""


class RootNotFoundError(GuardscanError):
    """The scan root does not exist or is not a directory."""

    def __init__(self, root: str) -> None:
        super().__init__(f"Directory not found: {root}")
        self.root = root


class FileReadError(GuardscanError):
    """A single file could not be read; the file is skipped."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class RuleEvaluationError(GuardscanError):
    """One rule failed against one file; other rules keep running."""

    def __init__(self, rule_id: str, path: str, cause: Optional[BaseException] = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"rule {rule_id} failed on {path}{detail}")
        self.rule_id = rule_id
        self.path = path
        self.cause = cause
