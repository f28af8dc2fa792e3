from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional
import logging
import re

logger = logging.getLogger(__name__)


PASS_MARKER = "✓"
FAIL_MARKER = "✗"

# "    /users/abc:.read: auth != null" or "  foo: .validate:bar"
RULE_CHECK_PATTERN = re.compile(r"^\s+([^.]*):\s*(?:\.(read|write|validate):)?.*")
OUTCOME_PATTERN = re.compile(r"^\s+=> (true|false)")
LOCATION_PATTERN = re.compile(r"^\d+:\d+: ")
INDENT_PATTERN = re.compile(r"^\s+")


class ParserState(str, Enum):
    """Named states of the transcript parser."""
    IDLE = "idle"
    AWAITING_OUTCOME = "awaiting_outcome"


class LineKind(str, Enum):
    """Diagnostic line classes, listed in classification priority order."""
    RULE_CHECK = "rule_check"
    OUTCOME = "outcome"
    LOCATION = "location"
    OTHER = "other"


def classify_line(line: str) -> LineKind:
    """Classify a stripped diagnostic line.

    Indented lines are either outcomes (``=> true``/``=> false``) or rule
    checks; top-level lines are either rule-source locations (``3:14: ...``)
    or anything else.
    """
    if INDENT_PATTERN.match(line):
        if OUTCOME_PATTERN.match(line):
            return LineKind.OUTCOME
        return LineKind.RULE_CHECK
    if LOCATION_PATTERN.match(line):
        return LineKind.LOCATION
    return LineKind.OTHER


def rewrite_rule_check(line: str) -> str:
    """Rewrite an indented rule check to a pending entry like `` read /users/abc``.

    Lines that don't look like ``<path>:[.<kind>:]...`` are kept verbatim.
    """
    def _replace(match: re.Match) -> str:
        kind = match.group(2) or "read"
        if kind == "validate":
            kind = "value"
        return f" {kind} {match.group(1)}"

    return RULE_CHECK_PATTERN.sub(_replace, line, count=1)


class TranscriptParser:
    """Folds the backend's rule-evaluation transcript into trace entries, one line at a time.

    The backend prints a depth-first trace: every rule check is followed either by
    its boolean outcome or by a deeper check. Only the most recent unresolved check
    is kept waiting; a shallower check superseded by a deeper one (or by any other
    top-level line) is dropped. Passing ``value`` checks are removed once resolved
    since they never explain a denial.

    The parser never buffers lines for lookahead. Its whole state is the entry
    list, the named state, and the index of the pending entry.
    """

    def __init__(self, entries: Optional[List[str]] = None, location_indent: str = "   "):
        self.entries: List[str] = entries if entries is not None else []
        self.location_indent = location_indent
        self.state = ParserState.IDLE
        self.pending_index: Optional[int] = None
        self._transitions: Dict[LineKind, Callable[[str], None]] = {
            LineKind.RULE_CHECK: self._on_rule_check,
            LineKind.OUTCOME: self._on_outcome,
            LineKind.LOCATION: self._on_location,
            LineKind.OTHER: self._on_other,
        }

    def reset(self) -> None:
        """Clear all entries and return to the idle state."""
        self.entries.clear()
        self.state = ParserState.IDLE
        self.pending_index = None

    def consume(self, line: str) -> None:
        """Feed one stripped diagnostic line through the transition table."""
        kind = classify_line(line)
        self._transitions[kind](line)

    def feed(self, lines: Iterable[str]) -> List[str]:
        """Consume every line in order and return the resulting entries."""
        for line in lines:
            self.consume(line)
        return self.entries

    def _pending_is_last(self) -> bool:
        return (
            self.state is ParserState.AWAITING_OUTCOME
            and self.pending_index == len(self.entries) - 1
        )

    def _drop_stale_pending(self) -> None:
        if self._pending_is_last():
            self.entries.pop()

    def _clear_pending(self) -> None:
        self.state = ParserState.IDLE
        self.pending_index = None

    def _on_rule_check(self, line: str) -> None:
        self._drop_stale_pending()
        self.entries.append(rewrite_rule_check(line))
        self.state = ParserState.AWAITING_OUTCOME
        self.pending_index = len(self.entries) - 1

    def _on_outcome(self, line: str) -> None:
        if self.state is not ParserState.AWAITING_OUTCOME or self.pending_index is None:
            logger.debug("Ignoring rule outcome with no pending check: %r", line)
            return
        passed = OUTCOME_PATTERN.match(line).group(1) == "true"
        pending = self.entries[self.pending_index]
        if passed and pending.startswith(" value"):
            del self.entries[self.pending_index]
        else:
            self.entries[self.pending_index] = (PASS_MARKER if passed else FAIL_MARKER) + pending
        self._clear_pending()

    def _on_location(self, line: str) -> None:
        # Locations belong to the pending check; state is left untouched.
        self.entries.append(self.location_indent + line)

    def _on_other(self, line: str) -> None:
        self._drop_stale_pending()
        self.entries.append(line)
        self._clear_pending()
