#!/usr/bin/env python3
"""
Loader for the built-in pattern definition files.

Files are read from package data on first use and cached per group, the
same lazy, lock-guarded loading the resource constants use.
"""
from __future__ import annotations

import threading
from importlib import resources
from typing import Dict, List, Optional

from ..core.config import setup_logging
from .exceptions import PatternStoreError
from .pattern_store import parse_pattern_definitions
from .pattern_types import RESOURCE_PACKAGE, PatternGroup

logger = setup_logging(__name__)

CATEGORY_ORDER = (
    "Core",
    "Web Servers",
    "Cloud",
    "Databases",
    "System & Network",
    "Applications",
    "Monitoring & Backup",
)


class PatternRepository:
    """Reads and caches built-in pattern groups."""

    def __init__(self, package: str = RESOURCE_PACKAGE):
        self.package = package
        self._cache: Dict[PatternGroup, Dict[str, str]] = {}
        self._lock = threading.Lock()

    def _resource(self, group: PatternGroup):
        return resources.files(self.package).joinpath(group.file_name)

    def is_available(self, group: PatternGroup) -> bool:
        """Check if a pattern file exists and is accessible."""
        try:
            return self._resource(group).is_file()
        except (ModuleNotFoundError, FileNotFoundError):
            return False

    def get_file_content(self, group: PatternGroup) -> str:
        """Raw text of a group's pattern file."""
        try:
            return self._resource(group).read_text(encoding="utf-8")
        except (ModuleNotFoundError, FileNotFoundError, OSError) as e:
            raise PatternStoreError(f"Pattern file not found: {group.file_name}") from e

    def load_group(self, group: PatternGroup) -> Dict[str, str]:
        """
        Load one pattern group.

        Returns:
            A copy of the group's name -> body mapping

        Raises:
            PatternStoreError: If the group file cannot be read
        """
        cached = self._cache.get(group)
        if cached is not None:
            return dict(cached)

        with self._lock:
            # Double-check after acquiring the lock
            cached = self._cache.get(group)
            if cached is None:
                content = self.get_file_content(group)
                cached = parse_pattern_definitions(content.splitlines(), source=group.file_name)
                self._cache[group] = cached
                logger.debug(f"Loaded {len(cached)} patterns from {group.file_name}")
        return dict(cached)

    def load_patterns(self, *groups: PatternGroup) -> Dict[str, str]:
        """
        Load and merge several groups; later groups win on name clashes.

        A single group propagates load failures. When several groups are
        requested, unavailable ones are skipped with a warning.
        """
        if len(groups) == 1:
            return self.load_group(groups[0])

        merged: Dict[str, str] = {}
        for group in groups:
            if not self.is_available(group):
                logger.warning(f"Skipping unavailable pattern group {group.file_name}")
                continue
            merged.update(self.load_group(group))
        return merged

    def load_all_patterns(self) -> Dict[str, str]:
        # Base patterns first so vendor groups may refine them
        ordered = sorted(PatternGroup, key=lambda g: not g.is_base)
        return self.load_patterns(*ordered)

    def get_pattern_names(self, group: PatternGroup) -> List[str]:
        return sorted(self.load_group(group))

    def get_pattern(self, group: PatternGroup, name: str) -> Optional[str]:
        return self.load_group(group).get(name)

    def find_pattern(self, name: str) -> Dict[PatternGroup, str]:
        """Search every available group for a pattern name."""
        results: Dict[PatternGroup, str] = {}
        for group in PatternGroup:
            if not self.is_available(group):
                continue
            body = self.get_pattern(group, name)
            if body is not None:
                results[group] = body
        return results

    def get_pattern_statistics(self) -> Dict[PatternGroup, int]:
        """Definition count per group (0 for unavailable groups)."""
        stats: Dict[PatternGroup, int] = {}
        for group in PatternGroup:
            if not self.is_available(group):
                stats[group] = 0
                continue
            try:
                stats[group] = len(self.load_group(group))
            except PatternStoreError as e:
                logger.warning(f"Could not count patterns in {group.file_name}: {e}")
                stats[group] = 0
        return stats

    def groups_by_category(self) -> Dict[str, List[PatternGroup]]:
        categories: Dict[str, List[PatternGroup]] = {name: [] for name in CATEGORY_ORDER}
        for group in PatternGroup:
            categories.setdefault(group.category, []).append(group)
        return {name: groups for name, groups in categories.items() if groups}

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()


_repository: Optional[PatternRepository] = None
_repository_lock = threading.Lock()


def get_repository() -> PatternRepository:
    """Shared repository for the built-in files (they never change at runtime)."""
    global _repository
    if _repository is None:
        with _repository_lock:
            if _repository is None:
                _repository = PatternRepository()
    return _repository
