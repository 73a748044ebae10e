"""grokline - compile grok patterns into native regexes and parse log lines into records."""

__version__ = "0.3.0"

from .patterns import (  # noqa: E402
    CompiledPattern,
    GrokCache,
    GrokCompiler,
    GrokError,
    GrokMatcher,
    MatchResult,
    PatternStore,
    match,
)

__all__ = [
    "__version__",
    "CompiledPattern",
    "GrokCache",
    "GrokCompiler",
    "GrokError",
    "GrokMatcher",
    "MatchResult",
    "PatternStore",
    "match",
]
