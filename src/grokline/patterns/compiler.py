#!/usr/bin/env python3
"""
Grok pattern compiler.

Expands ``%{NAME[:SUBNAME][=DEFINITION]}`` references recursively into one
native regex. Every named reference becomes a Python named group with a
synthetic identifier (``_g0``, ``_g1``, ...), so the same output field may
appear any number of times; the group index recorded for each field is read
back from the compiled regex.

Usage:
    compiler = GrokCompiler(PatternStore.from_groups("patterns"))
    grok = compiler.compile("%{LOGLEVEL:[log][level]} %{IP:[source][ip]}")
    grok.match("ERROR 192.168.1.1").fields
"""
from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set, Tuple, Union

from ..core.config import ConfigLoader, get_config, setup_logging
from .exceptions import CyclicReferenceError, InvalidSyntaxError, UnresolvedReferenceError
from .grok import CompiledPattern, FieldPath, RegexHandle, parse_field_key
from .matcher import normalize_type
from .pattern_cache import GrokCache
from .pattern_store import PatternStore, parse_pattern_definitions
from .pattern_types import PatternGroup
from .regex_safety import find_empty_loop

logger = setup_logging(__name__)

RESERVED_KEYWORDS: Dict[str, str] = {
    "timestamp": "log_timestamp",
    "time": "log_time",
    "message": "log_message",
    "content": "log_content",
    "category": "log_category",
    "pcode": "log_pcode",
    "logContent": "log_body",
}

_NAME_INTERIOR = frozenset("_-.")
_SUBNAME_INTERIOR = frozenset("_-.:;,/' \t")
_TYPE_SUFFIX = re.compile(r"^(.*?)[:;]([A-Za-z]+)$")

# Named groups in pattern-file bodies, (?<field>...) or (?P<field>...), and
# backreferences to them, \k<field> or (?P=field). Other escapes are matched
# so an escaped paren never opens a group.
_FIELD_CHARS = r"[A-Za-z0-9_@.\-\[\]]+"
_BODY_NAMED_GROUP = re.compile(
    rf"\\k<({_FIELD_CHARS})>|\\.|\(\?P?<({_FIELD_CHARS})>|\(\?P=({_FIELD_CHARS})\)",
    re.DOTALL,
)


@dataclass(frozen=True)
class GrokToken:
    """One %{...} reference found in pattern text."""
    start: int
    end: int
    name: str
    subname: Optional[str] = None
    definition: Optional[str] = None
    field_path: Optional[FieldPath] = None
    type_name: Optional[str] = None


def _is_bounded(text: str, interior: frozenset) -> bool:
    if not text or not text[0].isalnum() or not text[-1].isalnum():
        return False
    return all(c.isalnum() or c in interior for c in text)


def is_pattern_name(name: str) -> bool:
    return _is_bounded(name, _NAME_INTERIOR)


def _split_type(subname: str) -> Tuple[str, Optional[str]]:
    match = _TYPE_SUFFIX.match(subname)
    if match:
        type_name = normalize_type(match.group(2))
        if type_name is not None:
            return match.group(1), type_name
    return subname, None


def _is_escaped(text: str, pos: int) -> bool:
    backslashes = 0
    while pos > backslashes and text[pos - backslashes - 1] == "\\":
        backslashes += 1
    return backslashes % 2 == 1


def parse_tokens(text: str, definition: Optional[str] = None) -> List[GrokToken]:
    """
    Find every %{...} reference in text, left to right.

    A ``%{`` preceded by an odd number of backslashes is literal text.

    Args:
        text: Pattern text or a definition body
        definition: Name of the definition being scanned, for error messages

    Raises:
        InvalidSyntaxError: For a %{ that does not start a well-formed token
    """
    tokens: List[GrokToken] = []
    pos = text.find("%{")
    while pos >= 0:
        if _is_escaped(text, pos):
            pos = text.find("%{", pos + 2)
            continue
        token = _parse_token(text, pos, definition)
        tokens.append(token)
        pos = text.find("%{", token.end)
    return tokens


def _parse_token(text: str, start: int, definition: Optional[str]) -> GrokToken:
    def fail(position: int, reason: str) -> InvalidSyntaxError:
        return InvalidSyntaxError(position, reason, definition=definition)

    length = len(text)
    cursor = start + 2
    while cursor < length and (text[cursor].isalnum() or text[cursor] in _NAME_INTERIOR):
        cursor += 1
    name = text[start + 2:cursor]
    if not is_pattern_name(name):
        raise fail(start, f"invalid pattern name {name!r}")
    if cursor >= length:
        raise fail(start, "unterminated %{...} token")

    subname = field_path = type_name = None
    if text[cursor] == ":":
        cursor += 1
        if cursor < length and text[cursor] == "[":
            segments = []
            while cursor < length and text[cursor] == "[":
                close = text.find("]", cursor)
                segment = text[cursor + 1:close] if close > 0 else ""
                if close < 0 or not segment or "[" in segment:
                    raise fail(cursor, "malformed bracketed field path")
                segments.append(segment)
                cursor = close + 1
            subname = "".join(f"[{s}]" for s in segments)
            field_path = tuple(segments)
            if cursor < length and text[cursor] in ":;":
                type_start = cursor + 1
                cursor = type_start
                while cursor < length and text[cursor].isalpha():
                    cursor += 1
                type_name = normalize_type(text[type_start:cursor])
                if type_name is None:
                    raise fail(type_start, f"unknown field type {text[type_start:cursor]!r}")
        else:
            sub_start = cursor
            while cursor < length and text[cursor] not in "}=":
                cursor += 1
            raw = text[sub_start:cursor]
            field_name, type_name = _split_type(raw)
            if not _is_bounded(field_name, _SUBNAME_INTERIOR):
                raise fail(sub_start, f"invalid field name {raw!r}")
            subname = raw
            field_path = (field_name,)

    inline = None
    if cursor < length and text[cursor] == "=":
        # Brace-balanced so an inline body may use {m,n} quantifiers
        depth = 0
        body_start = cursor + 1
        cursor = body_start
        while cursor < length:
            char = text[cursor]
            if char == "\\":
                cursor += 2
                continue
            if char == "{":
                depth += 1
            elif char == "}":
                if depth == 0:
                    break
                depth -= 1
            cursor += 1
        inline = text[body_start:cursor]

    if cursor >= length or text[cursor] != "}":
        raise fail(start, "unterminated %{...} token")

    return GrokToken(
        start=start,
        end=cursor + 1,
        name=name,
        subname=subname,
        definition=inline,
        field_path=field_path,
        type_name=type_name,
    )


class _Expansion:
    """State for expanding one pattern: allocated groups plus the reference path."""

    def __init__(self, compiler: "GrokCompiler", source_text: str):
        self.compiler = compiler
        self.source_text = source_text
        # (synthetic group name, field path, type) in allocation order
        self.groups: List[Tuple[str, FieldPath, Optional[str]]] = []
        self.path: List[str] = []
        self.on_path: Set[str] = set()

    def allocate(self, field_path: FieldPath, type_name: Optional[str] = None) -> str:
        group_name = f"_g{len(self.groups)}"
        self.groups.append((group_name, self.compiler.output_path(field_path), type_name))
        return group_name

    def expand(self, text: str, definition: Optional[str] = None) -> str:
        try:
            tokens = parse_tokens(text, definition)
        except InvalidSyntaxError as e:
            e.pattern = self.source_text
            raise

        # Body group name -> synthetic name, for backreferences within this body
        renamed: Dict[str, str] = {}
        pieces = []
        pos = 0
        for token in tokens:
            pieces.append(self.rewrite_named_groups(text[pos:token.start], renamed))
            pieces.append(self.expand_token(token))
            pos = token.end
        pieces.append(self.rewrite_named_groups(text[pos:], renamed))
        return "".join(pieces)

    def expand_token(self, token: GrokToken) -> str:
        name = token.name
        body = token.definition
        # Only stored definitions join the path: inside %{A=x%{A}} the inner
        # reference is the stored A.
        tracked = body is None
        if tracked:
            if name in self.on_path:
                cycle = self.path[self.path.index(name):] + [name]
                raise CyclicReferenceError(cycle, pattern=self.source_text)
            body = self.compiler.resolve(name)
            if body is None:
                raise UnresolvedReferenceError(name, pattern=self.source_text)

        # Allocate before expanding so group names follow left-to-right order
        group_name = self.allocate(token.field_path, token.type_name) if token.field_path else None

        if tracked:
            self.path.append(name)
            self.on_path.add(name)
        try:
            inner = self.expand(body, definition=name)
        finally:
            if tracked:
                self.path.pop()
                self.on_path.discard(name)

        if group_name is None:
            return f"(?:{inner})"
        return f"(?P<{group_name}>{inner})"

    def rewrite_named_groups(self, fragment: str, renamed: Dict[str, str]) -> str:
        def replace(match: "re.Match[str]") -> str:
            field = match.group(2)
            if field is not None:
                group_name = self.allocate(parse_field_key(field))
                renamed[field] = group_name
                return f"(?P<{group_name}>"
            reference = match.group(1) or match.group(3)
            if reference is not None and reference in renamed:
                return f"(?P={renamed[reference]})"
            return match.group(0)

        return _BODY_NAMED_GROUP.sub(replace, fragment)


class GrokCompiler:
    """
    Compiles grok pattern text into CompiledPatterns.

    Definitions registered on the compiler shadow those of the pattern store;
    an inline %{NAME=...} definition shadows both for that occurrence only.
    """

    def __init__(
        self,
        store: Optional[PatternStore] = None,
        cache: Optional[GrokCache] = None,
        rename_reserved_keywords: bool = False,
        reject_empty_loops: bool = True,
    ):
        self.store = store if store is not None else PatternStore()
        self.cache = cache if cache is not None else GrokCache()
        self.rename_reserved_keywords = rename_reserved_keywords
        self.reject_empty_loops = reject_empty_loops
        self._definitions: Dict[str, str] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Optional[ConfigLoader] = None, groups: Optional[List[str]] = None) -> "GrokCompiler":
        """Build a compiler with the configured pattern groups and definition files."""
        config = config or get_config()
        store = PatternStore.from_groups(*(groups if groups is not None else config.default_groups))
        for path in config.definition_files:
            store.load_file(path)
        return cls(
            store=store,
            cache=GrokCache.from_config(config),
            rename_reserved_keywords=config.rename_reserved_keywords,
            reject_empty_loops=config.reject_empty_loops,
        )

    # ------------------------------------------------------------ registry

    def register(self, name: str, body: str) -> None:
        """Register an ad hoc definition (replaces any earlier one of that name)."""
        self.register_all({name: body})

    def register_all(self, definitions: Mapping[str, str]) -> None:
        for name in definitions:
            if not is_pattern_name(name):
                raise InvalidSyntaxError(0, f"invalid pattern name {name!r}", definition=name)
        with self._lock:
            self._definitions = {**self._definitions, **definitions}
        self._invalidate()

    def register_group(self, group: Union[PatternGroup, str]) -> None:
        """Load a built-in pattern group into the compiler's store."""
        self.store.load_group(group)
        self._invalidate()

    def register_file(self, path: Union[str, Path]) -> None:
        """Register every definition of a pattern file as ad hoc definitions."""
        path = Path(path)
        with open(path, encoding="utf-8") as f:
            definitions = parse_pattern_definitions(f, source=str(path))
        self.register_all(definitions)
        logger.debug(f"Registered {len(definitions)} definitions from {path}")

    def resolve(self, name: str) -> Optional[str]:
        """Definition body for name: ad hoc definitions first, then the store."""
        body = self._definitions.get(name)
        if body is not None:
            return body
        definition = self.store.lookup(name)
        return definition.body if definition is not None else None

    @property
    def definitions(self) -> Dict[str, str]:
        """Ad hoc definitions registered on this compiler."""
        return dict(self._definitions)

    def _invalidate(self) -> None:
        # Cached patterns were expanded against the old definitions
        self.cache.clear()

    def output_path(self, field_path: FieldPath) -> FieldPath:
        if self.rename_reserved_keywords and len(field_path) == 1:
            renamed = RESERVED_KEYWORDS.get(field_path[0])
            if renamed is not None:
                return (renamed,)
        return field_path

    # ------------------------------------------------------------- compile

    def expand(self, pattern_text: str) -> str:
        """Fully expanded regex text for pattern_text (no caching)."""
        return _Expansion(self, pattern_text).expand(pattern_text)

    def compile(self, pattern_text: str) -> CompiledPattern:
        """
        Compile grok pattern text.

        Args:
            pattern_text: Pattern such as "%{IP:client} %{WORD:method}"

        Returns:
            CompiledPattern, possibly shared from the cache

        Raises:
            UnresolvedReferenceError: If a referenced name has no definition
            CyclicReferenceError: If a reference recurses through itself
            InvalidSyntaxError: For malformed tokens, a regex the engine refuses,
                or an unbounded repetition of a group that can match nothing
        """
        cached = self.cache.get(pattern_text)
        if cached is not None:
            return cached

        expansion = _Expansion(self, pattern_text)
        try:
            regex_text = expansion.expand(pattern_text)
            handle = self._compile_regex(pattern_text, regex_text)
        except (UnresolvedReferenceError, CyclicReferenceError, InvalidSyntaxError) as e:
            logger.warning(f"Failed to compile grok pattern {pattern_text!r}: {e}")
            raise

        regex = handle.regex
        group_field_map: Dict[int, FieldPath] = {}
        group_type_map: Dict[int, str] = {}
        for group_name, field_path, type_name in expansion.groups:
            index = regex.groupindex[group_name]
            group_field_map[index] = field_path
            if type_name is not None and type_name != "string":
                group_type_map[index] = type_name

        compiled = CompiledPattern(
            source_text=pattern_text,
            regex=regex,
            group_field_map=dict(sorted(group_field_map.items())),
            group_type_map=dict(sorted(group_type_map.items())),
            regex_handle=handle,
        )
        self.cache.put(pattern_text, compiled)
        logger.debug(f"Compiled {pattern_text!r} into {regex.groups} groups, {len(compiled.field_paths)} fields")
        return compiled

    def _compile_regex(self, pattern_text: str, regex_text: str) -> RegexHandle:
        handle = self.cache.get_regex(regex_text)
        if handle is not None:
            return handle

        if self.reject_empty_loops:
            position = find_empty_loop(regex_text)
            if position is not None:
                context = regex_text[max(0, position - 24):position + 1]
                raise InvalidSyntaxError(
                    position,
                    f"unbounded repetition of a group that can match the empty string near {context!r}",
                    pattern=pattern_text,
                )

        try:
            regex = re.compile(regex_text)
        except re.error as e:
            raise InvalidSyntaxError(
                e.pos or 0, f"regex rejected by the engine: {e.msg}", pattern=pattern_text
            ) from e

        handle = RegexHandle(regex)
        self.cache.put_regex(regex_text, handle)
        return handle

    def close(self) -> None:
        """Stop the cache's background sweep."""
        self.cache.shutdown()

    def __enter__(self) -> "GrokCompiler":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
