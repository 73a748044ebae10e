"""
Static check for quantified groups that can match the empty string.

A group such as ``(a*)*`` or ``(|x)+`` under an unbounded quantifier lets the
engine expand zero-width iterations indefinitely and is a classic source of
catastrophic backtracking. The compiler refuses such patterns up front.
"""
from __future__ import annotations

import re
from typing import Optional, Tuple

_BRACE_QUANTIFIER = re.compile(r"\{(\d*)(,?)(\d*)\}")
_ZERO_WIDTH_ESCAPES = frozenset("AbBZz")
_HEX_ESCAPE_WIDTH = {"x": 2, "u": 4, "U": 8}


class _NullabilityScanner:
    """Recursive-descent walk computing whether each sub-expression is nullable."""

    def __init__(self, regex: str):
        self.text = regex
        self.pos = 0
        self.problem: Optional[int] = None

    def run(self) -> Optional[int]:
        while self.pos < len(self.text):
            self.parse_alternation()
            if self.pos < len(self.text) and self.text[self.pos] == ")":
                # Unbalanced; the regex engine reports it
                self.pos += 1
        return self.problem

    def parse_alternation(self) -> bool:
        nullable = self.parse_sequence()
        while self.pos < len(self.text) and self.text[self.pos] == "|":
            self.pos += 1
            branch = self.parse_sequence()
            nullable = nullable or branch
        return nullable

    def parse_sequence(self) -> bool:
        nullable = True
        while self.pos < len(self.text) and self.text[self.pos] not in "|)":
            atom_nullable, is_group = self.parse_atom()
            minimum, unbounded, quantifier_pos = self.parse_quantifier()
            if quantifier_pos is not None:
                if unbounded and is_group and atom_nullable and self.problem is None:
                    self.problem = quantifier_pos
                if minimum == 0:
                    atom_nullable = True
            nullable = nullable and atom_nullable
        return nullable

    def _skip_past(self, char: str) -> None:
        end = self.text.find(char, self.pos)
        self.pos = len(self.text) if end < 0 else end + 1

    def _close_group(self) -> None:
        if self.pos < len(self.text) and self.text[self.pos] == ")":
            self.pos += 1

    def parse_atom(self) -> Tuple[bool, bool]:
        """Returns (nullable, is_group) for the atom at the cursor."""
        text = self.text
        char = text[self.pos]

        if char == "(":
            return self.parse_group()

        if char == "[":
            self.skip_class()
            return False, False

        if char == "\\":
            return self.parse_escape(), False

        self.pos += 1
        return char in "^$", False

    def parse_group(self) -> Tuple[bool, bool]:
        text = self.text
        self.pos += 1
        if not text.startswith("?", self.pos):
            nullable = self.parse_alternation()
            self._close_group()
            return nullable, True

        head = text[self.pos:self.pos + 3]
        if head.startswith("?#"):
            self._skip_past(")")
            return True, False
        if head.startswith(("?=", "?!")) or head in ("?<=", "?<!"):
            self.pos += 2 if head.startswith(("?=", "?!")) else 3
            self.parse_alternation()
            self._close_group()
            return True, False
        if head.startswith("?P="):
            self._skip_past(")")
            return True, False
        if head.startswith("?("):
            self._skip_past(")")
            self.parse_alternation()
            self._close_group()
            return True, True
        if head.startswith(("?P<", "?<")):
            self._skip_past(">")
        elif head.startswith(("?:", "?>")):
            self.pos += 2
        else:
            # Inline flags: (?imsx) applies globally, (?imsx-imsx:...) scopes a group
            end = len(text)
            for index in range(self.pos + 1, len(text)):
                if text[index] in ":)":
                    end = index
                    break
            if end >= len(text) or text[end] == ")":
                self.pos = min(end + 1, len(text))
                return True, False
            self.pos = end + 1

        nullable = self.parse_alternation()
        self._close_group()
        return nullable, True

    def skip_class(self) -> None:
        text = self.text
        self.pos += 1
        if text.startswith("^", self.pos):
            self.pos += 1
        if text.startswith("]", self.pos):
            self.pos += 1
        while self.pos < len(text):
            char = text[self.pos]
            if char == "\\":
                self.pos += 2
            elif char == "]":
                self.pos += 1
                return
            else:
                self.pos += 1

    def parse_escape(self) -> bool:
        text = self.text
        self.pos += 1
        if self.pos >= len(text):
            return False
        char = text[self.pos]
        self.pos += 1
        if char in _ZERO_WIDTH_ESCAPES:
            return True
        if char in _HEX_ESCAPE_WIDTH:
            self.pos += _HEX_ESCAPE_WIDTH[char]
            return False
        if char == "N" and text.startswith("{", self.pos):
            self._skip_past("}")
            return False
        if char == "0":
            # Octal escape: up to two more digits
            limit = self.pos + 2
            while self.pos < min(limit, len(text)) and text[self.pos] in "01234567":
                self.pos += 1
            return False
        if char.isdigit():
            # Backreference; the referenced group may have matched nothing
            while self.pos < len(text) and text[self.pos].isdigit():
                self.pos += 1
            return True
        return False

    def parse_quantifier(self) -> Tuple[int, bool, Optional[int]]:
        """Returns (minimum, unbounded, position) or (1, False, None) when absent."""
        text = self.text
        if self.pos >= len(text):
            return 1, False, None

        start = self.pos
        char = text[start]
        if char == "*":
            minimum, unbounded = 0, True
            self.pos += 1
        elif char == "+":
            minimum, unbounded = 1, True
            self.pos += 1
        elif char == "?":
            minimum, unbounded = 0, False
            self.pos += 1
        elif char == "{":
            match = _BRACE_QUANTIFIER.match(text, start)
            if match is None or (not match.group(1) and not match.group(2)):
                # A literal brace
                return 1, False, None
            low, comma, high = match.groups()
            minimum = int(low) if low else 0
            unbounded = bool(comma) and not high
            self.pos = match.end()
        else:
            return 1, False, None

        # Lazy or possessive modifier
        if self.pos < len(text) and text[self.pos] in "?+":
            self.pos += 1
        return minimum, unbounded, start


def find_empty_loop(regex: str) -> Optional[int]:
    """
    Find an unbounded quantifier applied to a group that can match nothing.

    Args:
        regex: Regular expression source

    Returns:
        Position of the offending quantifier, or None if the regex is safe
    """
    return _NullabilityScanner(regex).run()
