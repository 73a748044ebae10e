#!/usr/bin/env python3
"""
Match a compiled grok pattern against one line and decode the captures.

The input-length guard runs before any regex evaluation: together with the
compiler's refusal of empty loops it bounds worst-case matching cost.
"""
from __future__ import annotations

import threading
from typing import Any, Dict, Optional

from ..core.config import ConfigLoader, setup_logging
from .exceptions import InputTooLargeError
from .grok import CompiledPattern, FieldPath, MatchResult, field_key
from .matcher_pool import MatcherPool

logger = setup_logging(__name__)

DEFAULT_MAX_INPUT_LENGTH = 1_048_576

TYPE_ALIASES = {
    "string": "string",
    "str": "string",
    "int": "int",
    "integer": "int",
    "long": "int",
    "float": "float",
    "double": "float",
    "bool": "bool",
    "boolean": "bool",
}

_TRUE_WORDS = frozenset(("true", "yes", "on", "1"))
_FALSE_WORDS = frozenset(("false", "no", "off", "0"))

# Process-wide, applies to every subsequent match call
_max_input_length = DEFAULT_MAX_INPUT_LENGTH
_settings_lock = threading.Lock()


def set_max_input_length(limit: int) -> None:
    """Set the maximum accepted line length; 0 disables the check (not recommended)."""
    global _max_input_length
    if limit < 0:
        raise ValueError(f"max input length must be >= 0, got {limit}")
    with _settings_lock:
        _max_input_length = int(limit)
    if limit == 0:
        logger.warning("Input length limit disabled; matching is unbounded")


def get_max_input_length() -> int:
    return _max_input_length


def normalize_type(name: str) -> Optional[str]:
    return TYPE_ALIASES.get(name.strip().lower())


def coerce_value(value: str, type_name: Optional[str]) -> Any:
    """
    Convert a captured string to its declared type.

    A value that does not parse is returned unchanged; this never fails.
    """
    if type_name is None or type_name == "string":
        return value
    try:
        if type_name == "int":
            return int(value)
        if type_name == "float":
            return float(value)
    except ValueError:
        logger.debug(f"Could not convert {value!r} to {type_name}; keeping the raw string")
        return value
    if type_name == "bool":
        lowered = value.strip().lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        logger.debug(f"Could not convert {value!r} to bool; keeping the raw string")
    return value


def _assign(fields: Dict[str, Any], path: FieldPath, value: Any) -> None:
    node = fields
    for segment in path[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    node[path[-1]] = value


class GrokMatcher:
    """Runs compiled patterns through pooled engines and builds MatchResults."""

    def __init__(self, pool: Optional[MatcherPool] = None, keep_empty_captures: bool = True):
        self.pool = pool or MatcherPool()
        self.keep_empty_captures = keep_empty_captures

    @classmethod
    def from_config(cls, config: ConfigLoader) -> "GrokMatcher":
        return cls(
            pool=MatcherPool(max_engines_per_context=config.max_engines_per_context),
            keep_empty_captures=config.keep_empty_captures,
        )

    def match(self, compiled: CompiledPattern, line: str) -> Optional[MatchResult]:
        """
        Match one line.

        Args:
            compiled: Pattern from GrokCompiler.compile()
            line: One line of input text

        Returns:
            MatchResult, or None when the line does not conform

        Raises:
            InputTooLargeError: If the line exceeds the max input length
        """
        limit = _max_input_length
        if limit and len(line) > limit:
            raise InputTooLargeError(len(line), limit)

        engine = self.pool.for_current_context(compiled.regex)
        found = engine.reset(line).find()
        if found is None:
            return None

        fields: Dict[str, Any] = {}
        written = set()
        for index, path in compiled.group_field_map.items():
            value = found.group(index)
            if value is None:
                # Did not participate; never overwrites a sibling group's capture
                if path in written or not self.keep_empty_captures:
                    continue
                _assign(fields, path, None)
                written.add(path)
                continue

            type_name = compiled.group_type_map.get(index)
            if type_name is not None:
                value = coerce_value(value, type_name)
            # Groups sharing a field: the last participating one wins
            _assign(fields, path, value)
            written.add(path)

        return MatchResult(fields=fields, start=found.start(), end=found.end(), matched=found.group(0))

    def release_context(self) -> int:
        """Drop the engines held for the calling worker (call at teardown)."""
        return self.pool.release_context()


_default_matcher: Optional[GrokMatcher] = None
_default_lock = threading.Lock()


def get_default_matcher() -> GrokMatcher:
    global _default_matcher
    if _default_matcher is None:
        with _default_lock:
            if _default_matcher is None:
                _default_matcher = GrokMatcher()
    return _default_matcher


def match(compiled: CompiledPattern, line: str) -> Optional[MatchResult]:
    """Match with the shared default matcher."""
    return get_default_matcher().match(compiled, line)


def describe_fields(compiled: CompiledPattern) -> Dict[str, Optional[str]]:
    """Field key -> declared type (None for plain strings)."""
    described: Dict[str, Optional[str]] = {}
    for index, path in compiled.group_field_map.items():
        described[field_key(path)] = compiled.group_type_map.get(index, described.get(field_key(path)))
    return described
