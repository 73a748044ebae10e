"""
Exceptions raised by the grok pattern compiler, matcher and pattern store.

Every error carries the structured details callers need (the unresolved name,
the cyclic path, the offending position) in addition to a readable message.
"""
from __future__ import annotations

from typing import Optional, Sequence


class GrokError(Exception):
    """Base exception for all grokline errors."""


class CompileError(GrokError):
    """Base exception for errors raised while compiling a grok pattern."""

    def __init__(self, message: str, pattern: Optional[str] = None):
        self.pattern = pattern
        super().__init__(message)


class UnresolvedReferenceError(CompileError):
    """Raised when a %{NAME} reference has no definition."""

    def __init__(self, name: str, pattern: Optional[str] = None):
        self.name = name
        super().__init__(f"No definition found for pattern %{{{name}}}", pattern=pattern)


class CyclicReferenceError(CompileError):
    """Raised when expanding a reference would recurse through itself."""

    def __init__(self, path: Sequence[str], pattern: Optional[str] = None):
        self.path = tuple(path)
        super().__init__(f"Cyclic pattern reference: {' -> '.join(self.path)}", pattern=pattern)


class InvalidSyntaxError(CompileError):
    """Raised for a malformed %{...} token or a regex the engine refuses."""

    def __init__(
        self,
        position: int,
        reason: str = "malformed %{...} token",
        definition: Optional[str] = None,
        pattern: Optional[str] = None,
    ):
        self.position = position
        self.reason = reason
        self.definition = definition
        where = f"definition {definition!r}" if definition else "pattern"
        super().__init__(f"Invalid syntax in {where} at position {position}: {reason}", pattern=pattern)


class InputTooLargeError(GrokError):
    """Raised when an input line exceeds the configured maximum length."""

    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(f"Input length {length} exceeds maximum of {limit} characters")


class PatternStoreError(GrokError):
    """Raised when pattern definitions cannot be loaded or a group is unknown."""
