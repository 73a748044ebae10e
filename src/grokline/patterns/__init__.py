"""
Grok pattern compilation, caching and matching.

Pipeline: PatternStore -> GrokCompiler (cache-checked) -> CompiledPattern
-> GrokMatcher (pooled engines) -> MatchResult.
"""

from .catalog import PatternCatalog
from .compiler import RESERVED_KEYWORDS, GrokCompiler, GrokToken, parse_tokens
from .exceptions import (
    CompileError,
    CyclicReferenceError,
    GrokError,
    InputTooLargeError,
    InvalidSyntaxError,
    PatternStoreError,
    UnresolvedReferenceError,
)
from .grok import CompiledPattern, MatchResult, field_key
from .matcher import GrokMatcher, coerce_value, get_max_input_length, match, set_max_input_length
from .matcher_pool import MatcherPool, MatchEngine, current_context
from .pattern_cache import CacheStats, GrokCache
from .pattern_store import PatternDefinition, PatternStore, parse_pattern_definitions
from .pattern_types import PatternGroup
from .repository import PatternRepository, get_repository

__all__ = [
    "RESERVED_KEYWORDS",
    "CacheStats",
    "CompileError",
    "CompiledPattern",
    "CyclicReferenceError",
    "GrokCache",
    "GrokCompiler",
    "GrokError",
    "GrokMatcher",
    "GrokToken",
    "InputTooLargeError",
    "InvalidSyntaxError",
    "MatchEngine",
    "MatchResult",
    "MatcherPool",
    "PatternCatalog",
    "PatternDefinition",
    "PatternGroup",
    "PatternRepository",
    "PatternStore",
    "PatternStoreError",
    "UnresolvedReferenceError",
    "coerce_value",
    "current_context",
    "field_key",
    "get_max_input_length",
    "get_repository",
    "match",
    "parse_pattern_definitions",
    "parse_tokens",
    "set_max_input_length",
]
