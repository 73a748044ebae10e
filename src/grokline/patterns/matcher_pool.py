#!/usr/bin/env python3
"""
Per-execution-context pool of reusable match engines.

Engines are registered under the live context object (the running asyncio
task, or the thread when no event loop is running) instead of thread-local
storage, so the same pool serves worker threads and cooperative tasks alike.
Contexts are held weakly: once a task or thread is garbage collected its
engines go with it, and release_context() frees them earlier.
"""
from __future__ import annotations

import asyncio
import re
import threading
import weakref
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from ..core.config import setup_logging

logger = setup_logging(__name__)

DEFAULT_MAX_ENGINES_PER_CONTEXT = 128


def current_context() -> object:
    """The calling execution context: the running task, else the current thread."""
    try:
        task = asyncio.current_task()
    except RuntimeError:
        task = None
    if task is not None:
        return task
    return threading.current_thread()


class MatchEngine:
    """A matcher bound to one compiled regex and rebound to each new input."""

    __slots__ = ("regex", "_search", "input", "last_match", "uses")

    def __init__(self, regex: "re.Pattern[str]"):
        self.regex = regex
        self._search = regex.search
        self.input = ""
        self.last_match: Optional["re.Match[str]"] = None
        self.uses = 0

    def reset(self, text: str) -> "MatchEngine":
        self.input = text
        self.last_match = None
        return self

    def find(self) -> Optional["re.Match[str]"]:
        """Search the current input anywhere, like a grok match."""
        self.uses += 1
        self.last_match = self._search(self.input)
        return self.last_match


class MatcherPool:
    """Registry of match engines keyed by execution context and regex."""

    def __init__(
        self,
        max_engines_per_context: int = DEFAULT_MAX_ENGINES_PER_CONTEXT,
        context: Callable[[], object] = current_context,
    ):
        """
        Args:
            max_engines_per_context: Engines kept per context before the least
                recently used one is dropped
            context: Returns the calling context; the object must support
                weak references
        """
        self.max_engines_per_context = max(1, max_engines_per_context)
        self._context = context
        self._contexts: "weakref.WeakKeyDictionary[object, OrderedDict[Tuple[str, int], MatchEngine]]" = (
            weakref.WeakKeyDictionary()
        )
        self._lock = threading.Lock()

    def _engines(self, create: bool = False) -> "Optional[OrderedDict[Tuple[str, int], MatchEngine]]":
        context = self._context()
        engines = self._contexts.get(context)
        if engines is None and create:
            with self._lock:
                engines = self._contexts.setdefault(context, OrderedDict())
        return engines

    def for_current_context(self, regex: "re.Pattern[str]") -> MatchEngine:
        """Engine for regex owned by the calling context, created on first use."""
        engines = self._engines(create=True)
        regex_key = (regex.pattern, regex.flags)
        engine = engines.get(regex_key)
        if engine is None:
            engine = MatchEngine(regex)
            engines[regex_key] = engine
            if len(engines) > self.max_engines_per_context:
                engines.popitem(last=False)
        else:
            engines.move_to_end(regex_key)
        return engine

    def release_context(self) -> int:
        """Drop every engine retained for the calling context; returns how many."""
        context = self._context()
        with self._lock:
            engines = self._contexts.pop(context, None)
        count = len(engines) if engines else 0
        if count:
            logger.debug(f"Released {count} match engines")
        return count

    def engine_count(self) -> int:
        """Engines retained by the calling context."""
        engines = self._engines()
        return len(engines) if engines else 0

    @property
    def context_count(self) -> int:
        """Live contexts holding engines."""
        return len(self._contexts)

    def clear(self) -> None:
        with self._lock:
            self._contexts.clear()
