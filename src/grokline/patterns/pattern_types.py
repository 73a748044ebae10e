#!/usr/bin/env python3
"""Built-in pattern groups shipped under grokline/resources/patterns."""
from __future__ import annotations

from enum import Enum
from typing import Optional

RESOURCE_PACKAGE = "grokline.resources.patterns"


class PatternGroup(Enum):
    """One pattern definition file per group."""

    PATTERNS = ("grok-patterns", "Base grok patterns", "Core")
    AWS = ("aws", "AWS S3, ELB and CloudFront access log patterns", "Cloud")
    BACULA = ("bacula", "Bacula backup log patterns", "Monitoring & Backup")
    BIND = ("bind", "BIND9 DNS query log patterns", "System & Network")
    BRO = ("bro", "Bro network monitor log patterns", "System & Network")
    FIREWALLS = ("firewalls", "Cisco ASA, NetScreen, iptables and Shorewall firewall patterns", "System & Network")
    HAPROXY = ("haproxy", "HAProxy load balancer log patterns", "Web Servers")
    HTTPD = ("httpd", "Apache HTTP server log patterns", "Web Servers")
    JAVA = ("java", "Java application log patterns", "Applications")
    JUNOS = ("junos", "Juniper JunOS flow log patterns", "System & Network")
    LINUX_SYSLOG = ("linux-syslog", "Linux system log patterns", "System & Network")
    MCOLLECTIVE = ("mcollective", "MCollective orchestration log patterns", "Monitoring & Backup")
    MONGODB = ("mongodb", "MongoDB database log patterns", "Databases")
    NAGIOS = ("nagios", "Nagios monitoring log patterns", "Monitoring & Backup")
    POSTFIX = ("postfix", "Postfix mail server log patterns", "Applications")
    POSTGRESQL = ("postgresql", "PostgreSQL database log patterns", "Databases")
    RAILS = ("rails", "Ruby on Rails request log patterns", "Applications")
    REDIS = ("redis", "Redis server log patterns", "Databases")
    RUBY = ("ruby", "Ruby logger patterns", "Applications")

    def __init__(self, file_name: str, description: str, category: str):
        self.file_name = file_name
        self.description = description
        self.category = category

    @property
    def resource_path(self) -> str:
        return f"{RESOURCE_PACKAGE.replace('.', '/')}/{self.file_name}"

    @property
    def is_base(self) -> bool:
        return self is PatternGroup.PATTERNS

    @classmethod
    def from_file_name(cls, file_name: Optional[str]) -> Optional["PatternGroup"]:
        if file_name is None:
            return None
        for group in cls:
            if group.file_name == file_name:
                return group
        return None

    @classmethod
    def lookup(cls, name: str) -> Optional["PatternGroup"]:
        """Resolve an enum name ("LINUX_SYSLOG") or a file name ("linux-syslog")."""
        key = name.strip()
        try:
            return cls[key.upper().replace("-", "_")]
        except KeyError:
            return cls.from_file_name(key.lower())

    def __str__(self) -> str:
        return f"PatternGroup(name={self.name}, file={self.file_name}, description={self.description})"
