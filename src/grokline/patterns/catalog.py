#!/usr/bin/env python3
"""Read-only reporting view over the built-in pattern groups."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .exceptions import PatternStoreError
from .pattern_types import PatternGroup
from .repository import PatternRepository, get_repository


@dataclass
class PatternGroupInfo:
    name: str
    file_name: str
    description: str
    category: str
    resource_path: str
    available: bool


@dataclass
class PatternGroupDetails:
    info: PatternGroupInfo
    patterns: Dict[str, str]

    @property
    def pattern_count(self) -> int:
        return len(self.patterns)


@dataclass
class PatternInfo:
    name: str
    definition: str
    group: PatternGroup

    @property
    def group_name(self) -> str:
        return self.group.name


@dataclass
class PatternStatistics:
    total_patterns: int
    available_groups: int
    total_groups: int
    group_counts: Dict[str, int] = field(default_factory=dict)


class PatternCatalog:
    """Enumerates groups, categories and counts; has no effect on compilation."""

    def __init__(self, repository: Optional[PatternRepository] = None):
        self.repository = repository or get_repository()

    def _info(self, group: PatternGroup) -> PatternGroupInfo:
        return PatternGroupInfo(
            name=group.name,
            file_name=group.file_name,
            description=group.description,
            category=group.category,
            resource_path=group.resource_path,
            available=self.repository.is_available(group),
        )

    def resolve(self, name: str) -> PatternGroup:
        group = PatternGroup.lookup(name)
        if group is None:
            raise PatternStoreError(f"Unknown pattern group: {name}")
        return group

    def list_groups(self) -> List[PatternGroupInfo]:
        return [self._info(group) for group in PatternGroup]

    def groups_by_category(self) -> Dict[str, List[PatternGroupInfo]]:
        return {
            category: [self._info(group) for group in groups]
            for category, groups in self.repository.groups_by_category().items()
        }

    def group_details(self, name: str) -> PatternGroupDetails:
        group = self.resolve(name)
        return PatternGroupDetails(info=self._info(group), patterns=self.repository.load_group(group))

    def get_pattern(self, group_name: str, pattern_name: str) -> Optional[PatternInfo]:
        group = self.resolve(group_name)
        body = self.repository.get_pattern(group, pattern_name)
        if body is None:
            return None
        return PatternInfo(pattern_name, body, group)

    def search(self, pattern_name: str) -> List[PatternInfo]:
        return [
            PatternInfo(pattern_name, body, group)
            for group, body in self.repository.find_pattern(pattern_name).items()
        ]

    def statistics(self) -> PatternStatistics:
        counts = self.repository.get_pattern_statistics()
        return PatternStatistics(
            total_patterns=sum(counts.values()),
            available_groups=sum(1 for count in counts.values() if count > 0),
            total_groups=len(counts),
            group_counts={group.name: count for group, count in counts.items()},
        )

    def merged_patterns(self, *group_names: str) -> Dict[str, str]:
        groups = [self.resolve(name) for name in group_names]
        return self.repository.load_patterns(*groups)
