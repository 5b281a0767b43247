"""Severity definitions for scanner findings."""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    """Enumerate the supported severity levels for findings."""

    BLOCKER = "BLOCKER"
    WARNING = "WARNING"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        """Return the report ordering position; lower sorts first."""

        ordering = {
            Severity.BLOCKER: 0,
            Severity.WARNING: 1,
            Severity.INFO: 2,
        }
        return ordering[self]

    @classmethod
    def parse(cls, value: object) -> "Severity":
        """Coerce a configuration value such as ``"blocker"`` into a member."""

        try:
            return cls(str(value).strip().upper())
        except ValueError:
            choices = ", ".join(member.value for member in cls)
            raise ValueError(f"unknown severity {value!r} (expected one of: {choices})") from None


SEVERITY_ORDER = (Severity.BLOCKER, Severity.WARNING, Severity.INFO)
