#!/usr/bin/env python3
"""
Pattern store: the name -> definition mapping the compiler resolves against.

Definitions are loaded once, in groups, and treated as read-only by the
compiler afterwards. Lookups never lock; loading and adding definitions
serialise on a single writer lock.
"""
from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional, Union

from ..core.config import setup_logging
from .exceptions import PatternStoreError
from .pattern_types import PatternGroup

if TYPE_CHECKING:
    from .repository import PatternRepository

logger = setup_logging(__name__)

# NAME, first run of whitespace, then the definition verbatim
_DEFINITION_LINE = re.compile(r"^\s*(\S+)\s+(.*)$")


@dataclass(frozen=True)
class PatternDefinition:
    """A named, reusable pattern body (may contain further %{...} references)."""
    name: str
    body: str
    group: Optional[str] = None


def parse_pattern_definitions(lines: Iterable[str], source: str = "<patterns>") -> Dict[str, str]:
    """
    Parse line-oriented pattern definitions.

    Blank lines and lines starting with '#' are ignored. Every other line is
    NAME<whitespace>DEFINITION; the first run of whitespace is the only
    delimiter and the rest of the line is kept verbatim.

    Args:
        lines: Lines of a pattern file (line terminators are stripped)
        source: Name used in log messages

    Returns:
        Mapping of pattern name to definition body, later lines winning
    """
    patterns: Dict[str, str] = {}
    for lineno, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        match = _DEFINITION_LINE.match(line)
        if match is None or not match.group(2):
            logger.warning(f"Skipping definition without a body at {source}:{lineno}: {stripped!r}")
            continue

        name, body = match.group(1), match.group(2)
        if name in patterns:
            logger.debug(f"{source}:{lineno} redefines {name}")
        patterns[name] = body
    return patterns


class PatternStore:
    """Read-mostly mapping of pattern name to PatternDefinition."""

    def __init__(
        self,
        definitions: Optional[Mapping[str, str]] = None,
        repository: Optional["PatternRepository"] = None,
    ):
        self._definitions: Dict[str, PatternDefinition] = {}
        self._loaded_groups: List[str] = []
        self._repository = repository
        self._lock = threading.Lock()
        if definitions:
            self.add_all(definitions)

    @classmethod
    def from_groups(cls, *groups: Union[PatternGroup, str], repository: Optional["PatternRepository"] = None) -> "PatternStore":
        """Build a store with the given built-in groups loaded."""
        store = cls(repository=repository)
        for group in groups:
            store.load_group(group)
        return store

    @property
    def repository(self) -> "PatternRepository":
        if self._repository is None:
            from .repository import get_repository
            self._repository = get_repository()
        return self._repository

    def lookup(self, name: str) -> Optional[PatternDefinition]:
        """Return the definition registered under name, or None."""
        return self._definitions.get(name)

    def load_group(self, group: Union[PatternGroup, str]) -> Dict[str, str]:
        """
        Load a built-in pattern group into the store.

        Args:
            group: PatternGroup member, enum name or file name

        Returns:
            The group's name -> body mapping

        Raises:
            PatternStoreError: If the group is unknown or cannot be read
        """
        resolved = group if isinstance(group, PatternGroup) else PatternGroup.lookup(group)
        if resolved is None:
            raise PatternStoreError(f"Unknown pattern group: {group}")

        patterns = self.repository.load_patterns(resolved)
        with self._lock:
            self._add_locked(patterns, resolved.file_name)
            if resolved.file_name not in self._loaded_groups:
                self._loaded_groups.append(resolved.file_name)
        logger.debug(f"Loaded {len(patterns)} definitions from group {resolved.file_name}")
        return patterns

    def load_file(self, path: Union[str, Path]) -> Dict[str, str]:
        """Load a pattern definition file from disk."""
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                patterns = parse_pattern_definitions(f, source=str(path))
        except OSError as e:
            raise PatternStoreError(f"Failed to load patterns from {path}: {e}") from e

        with self._lock:
            self._add_locked(patterns, path.name)
        return patterns

    def add(self, name: str, body: str, group: Optional[str] = None) -> None:
        with self._lock:
            self._add_locked({name: body}, group)

    def add_all(self, definitions: Mapping[str, str], group: Optional[str] = None) -> None:
        with self._lock:
            self._add_locked(definitions, group)

    def _add_locked(self, definitions: Mapping[str, str], group: Optional[str]) -> None:
        # Build a new dict and swap it in so lock-free readers never see a resize
        updated = dict(self._definitions)
        for name, body in definitions.items():
            if not name or not isinstance(body, str):
                raise PatternStoreError(f"Invalid pattern definition for {name!r}")
            updated[name] = PatternDefinition(name=name, body=body, group=group)
        self._definitions = updated

    @property
    def loaded_groups(self) -> List[str]:
        return list(self._loaded_groups)

    def names(self) -> List[str]:
        return sorted(self._definitions)

    def as_dict(self) -> Dict[str, str]:
        return {name: definition.body for name, definition in self._definitions.items()}

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)
