"""Shared fixtures and a rich failure view for grok matching tests."""
from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest
from rich.console import Console
from rich.table import Table

# Add the src directory to the path for all tests
sys.path.insert(0, str(Path(__file__).parent.parent.joinpath("src").resolve()))

from grokline.patterns import GrokCache, GrokCompiler, GrokMatcher, PatternStore
from grokline.patterns.matcher import get_max_input_length, set_max_input_length

# Keep library logging out of test output
for logger_name in ("grokline.patterns.compiler", "grokline.patterns.pattern_cache"):
    logging.getLogger(logger_name).setLevel(logging.CRITICAL)

console = Console()


def no_memory_pressure():
    """Memory reader reporting 1% usage so admission control never triggers."""
    return 1, 100


def make_cache(**kwargs) -> GrokCache:
    kwargs.setdefault("cleanup_interval", 0)
    kwargs.setdefault("memory_reader", no_memory_pressure)
    return GrokCache(**kwargs)


@pytest.fixture(autouse=True)
def restore_max_input_length():
    """The input length limit is process-wide; put it back after every test."""
    previous = get_max_input_length()
    yield
    set_max_input_length(previous)


@pytest.fixture
def store():
    return PatternStore.from_groups("patterns")


@pytest.fixture
def compiler(store):
    grok_compiler = GrokCompiler(store, cache=make_cache())
    yield grok_compiler
    grok_compiler.close()


@pytest.fixture
def empty_compiler():
    grok_compiler = GrokCompiler(PatternStore(), cache=make_cache())
    yield grok_compiler
    grok_compiler.close()


@pytest.fixture
def matcher():
    return GrokMatcher()


@pytest.fixture
def cache():
    grok_cache = make_cache(max_size=5)
    yield grok_cache
    grok_cache.shutdown()


def assert_fields(line: str, expected: dict, actual):
    """Compare decoded fields, printing a side-by-side table on mismatch."""
    actual_fields = actual.fields if actual is not None else None
    if expected != actual_fields:
        table = Table(title=f"Field mismatch for {line!r}", show_header=True, header_style="bold magenta")
        table.add_column("Field", style="cyan")
        table.add_column("Expected", style="green")
        table.add_column("Actual", style="red")
        keys = list(expected) + [k for k in (actual_fields or {}) if k not in expected]
        for key in keys:
            table.add_row(key, repr(expected.get(key)), repr((actual_fields or {}).get(key)))
        console.print(table)

    assert expected == actual_fields, f"Line {line!r} should decode to {expected}, got {actual_fields}"
