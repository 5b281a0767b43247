"""Decide whether a raw match is covered by a debug or feature-flag guard.

The analysis is line oriented and deliberately not syntax aware. A match is
suppressed when one of its rule's guard expressions either appears earlier on
the match's own line (``if (BuildConfig.DEBUG) Log.d(...)``) or appears on one
of the ``context_window`` lines above it, on a line that reads as the opening
of a conditional block (``if (BuildConfig.DEBUG) {``).

Two failure modes are known and accepted: a block guard whose scope closed
before the match still suppresses it, and a guard further away than the
window is never seen. The window is tuned per rule.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from .result import Finding, RawMatch

logger = logging.getLogger(__name__)

CONDITIONAL_HEADER = re.compile(r"^\s*(?:\}\s*)?(?:(?:else\s+)?if|elif|when|unless)\s*\(")
PREPROCESSOR_IF = re.compile(r"^\s*#\s*if(?:n?def)?\b")
BLOCK_END = re.compile(r"(?:\{|:|->)\s*$")
TRAILING_COMMENT = re.compile(r"\s+(?://|#(?!\s*if)).*$")

INLINE = "inline"
BLOCK = "block"


@dataclass(frozen=True)
class Suppressed:
    """A raw match dropped because a guard covers it."""

    match: RawMatch
    reason: str
    guard_line: int


def opens_conditional(line: str) -> bool:
    """Return True when ``line`` plausibly opens a conditional block.

    A line opens a block when its code ends with ``{``, ``:`` or ``->``, or
    when it is a bare ``if (...)`` header whose condition closes the line.
    ``if (BuildConfig.DEBUG) Log.d(...)`` is a complete statement and opens
    nothing.
    """

    if PREPROCESSOR_IF.search(line):
        return True
    code = TRAILING_COMMENT.sub("", line).rstrip()
    if BLOCK_END.search(code):
        return True
    header = CONDITIONAL_HEADER.match(code)
    return header is not None and _condition_ends_line(code, header.end() - 1)


def _condition_ends_line(code: str, start: int) -> bool:
    depth = 0
    for index in range(start, len(code)):
        char = code[index]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index == len(code) - 1
    return False


class GuardAnalyzer:
    """Split raw matches into confirmed findings and suppressed matches."""

    def evaluate(self, match: RawMatch) -> Union[Finding, Suppressed]:
        rule = match.rule
        if not rule.guard_required:
            return Finding.from_match(match)

        if self._has_inline_guard(match):
            return Suppressed(match=match, reason=INLINE, guard_line=match.line_number)

        guard_line = self._find_block_guard(match)
        if guard_line is not None:
            return Suppressed(match=match, reason=BLOCK, guard_line=guard_line)
        return Finding.from_match(match)

    def partition(self, matches: Iterable[RawMatch]) -> Tuple[List[Finding], List[Suppressed]]:
        findings: List[Finding] = []
        suppressed: List[Suppressed] = []
        for match in matches:
            outcome = self.evaluate(match)
            if isinstance(outcome, Suppressed):
                logger.debug(
                    "Suppressed %s at %s:%d (%s guard on line %d)",
                    match.rule.id,
                    match.file_path,
                    match.line_number,
                    outcome.reason,
                    outcome.guard_line,
                )
                suppressed.append(outcome)
            else:
                findings.append(outcome)
        return findings, suppressed

    # ------------------------------------------------------------------
    # Guard detection
    # ------------------------------------------------------------------
    def _has_inline_guard(self, match: RawMatch) -> bool:
        return any(
            guard.search(match.line, 0, match.match_start) for guard in match.rule.guard_patterns
        )

    def _find_block_guard(self, match: RawMatch) -> Optional[int]:
        window = match.rule.context_window
        if window == 0 or not match.context:
            return None
        # context holds the lines immediately above the match, oldest first
        candidates = match.context[-window:]
        for offset, line in enumerate(reversed(candidates), start=1):
            if not any(guard.search(line) for guard in match.rule.guard_patterns):
                continue
            if opens_conditional(line):
                return match.line_number - offset
        return None
