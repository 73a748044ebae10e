#!/usr/bin/env python3
"""
Compiled grok patterns and match results.

A CompiledPattern is immutable once built and is shared between threads
without copying. Field paths are tuples of segments: ("w1",) for a flat
name, ("log", "level") for %{...:[log][level]}.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

if TYPE_CHECKING:
    from .matcher import GrokMatcher

FieldPath = Tuple[str, ...]

_BRACKET_SEGMENT = re.compile(r"\[([^\[\]]+)\]")


def field_key(path: FieldPath) -> str:
    """Render a field path the way it is written in a pattern."""
    if len(path) == 1:
        return path[0]
    return "".join(f"[{segment}]" for segment in path)


def parse_field_key(key: Union[str, FieldPath]) -> FieldPath:
    """Accepts "name", "[a][b]" or an already-split tuple."""
    if isinstance(key, tuple):
        return key
    if key.startswith("["):
        segments = _BRACKET_SEGMENT.findall(key)
        if segments and "".join(f"[{s}]" for s in segments) == key:
            return tuple(segments)
    return (key,)


class RegexHandle:
    """Weak-referenceable holder for a compiled re.Pattern."""

    __slots__ = ("regex", "__weakref__")

    def __init__(self, regex: "re.Pattern[str]"):
        self.regex = regex


@dataclass(frozen=True)
class CompiledPattern:
    """A grok pattern expanded into one native regex plus its field bookkeeping."""
    source_text: str
    regex: "re.Pattern[str]"
    # capture group index -> field path, in group order
    group_field_map: Mapping[int, FieldPath]
    # capture group index -> "int" | "float" | "bool" | "string"
    group_type_map: Mapping[int, str] = field(default_factory=dict)
    # Keeps the shared regex cache entry alive for as long as this pattern lives
    regex_handle: Optional[RegexHandle] = field(default=None, compare=False, repr=False)

    @property
    def field_paths(self) -> List[FieldPath]:
        """Distinct output field paths in first-seen order."""
        seen: Dict[FieldPath, None] = {}
        for path in self.group_field_map.values():
            seen.setdefault(path, None)
        return list(seen)

    @property
    def field_names(self) -> List[str]:
        return [field_key(path) for path in self.field_paths]

    def match(self, line: str, matcher: Optional["GrokMatcher"] = None) -> Optional["MatchResult"]:
        """Match one line; None when it does not conform."""
        if matcher is None:
            from .matcher import get_default_matcher
            matcher = get_default_matcher()
        return matcher.match(self, line)

    def capture(self, line: str, matcher: Optional["GrokMatcher"] = None) -> Dict[str, Any]:
        """Like match() but returns the field dict, empty when nothing matched."""
        result = self.match(line, matcher)
        return result.fields if result is not None else {}


@dataclass
class MatchResult:
    """Fields decoded from one successful match; nested paths are nested dicts."""
    fields: Dict[str, Any]
    start: int = 0
    end: int = 0
    matched: str = ""

    def get(self, path: Union[str, FieldPath], default: Any = None) -> Any:
        node: Any = self.fields
        for segment in parse_field_key(path):
            if not isinstance(node, dict) or segment not in node:
                return default
            node = node[segment]
        return node

    def flattened(self) -> Dict[str, Any]:
        """One entry per leaf, keyed by field_key() of its path."""
        flat: Dict[str, Any] = {}

        def walk(node: Dict[str, Any], prefix: FieldPath) -> None:
            for key, value in node.items():
                path = prefix + (key,)
                if isinstance(value, dict):
                    walk(value, path)
                else:
                    flat[field_key(path)] = value

        walk(self.fields, ())
        return flat

    def to_json(self, **kwargs: Any) -> str:
        return json.dumps(self.fields, **kwargs)

    def __getitem__(self, key: str) -> Any:
        return self.fields[key]

    def __contains__(self, key: object) -> bool:
        return key in self.fields

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)
