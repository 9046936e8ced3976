"""
Regex helpers that only ever look at SQL code.

Every pattern is run against the masked copy of the statement (see
``parser_utils.mask_literals``), so quoted data and comments, including the
marker comments rewriters leave behind, can never match. Groups and
replacements are always taken from the original text.
"""
import re
from functools import lru_cache
from typing import Callable, Iterator, Optional, Tuple, Union

from .parser_utils import apply_edits, mask_literals


def re_flags(flags_str: str) -> int:
    """
    Convert a flags string (e.g., 'IGNORECASE|DOTALL') into combined re flags.

    Args:
        flags_str: String containing flag names separated by '|'.

    Returns:
        Combined re flags integer.
    """
    flags = 0
    if not flags_str:
        return flags
    for part in flags_str.split('|'):
        p = part.strip().upper()
        if p == 'IGNORECASE':
            flags |= re.IGNORECASE
        elif p == 'DOTALL':
            flags |= re.DOTALL
        elif p == 'MULTILINE':
            flags |= re.MULTILINE
    return flags


@lru_cache(maxsize=256)
def function_call_pattern(name: str) -> re.Pattern:
    """Whole-word, case-insensitive ``NAME(`` matcher ending at the parenthesis."""
    return re.compile(rf'\b{re.escape(name)}\s*\(', re.IGNORECASE)


@lru_cache(maxsize=256)
def word_pattern(word: str) -> re.Pattern:
    return re.compile(rf'\b{re.escape(word)}\b', re.IGNORECASE)


_GROUP_REF = re.compile(r'\\(\d+)|\\g<(\w+)>')


class SourceMatch:
    """A match found in masked text whose groups read from the original text."""

    def __init__(self, match: re.Match, text: str):
        self._match = match
        self._text = text

    def group(self, idx: Union[int, str] = 0) -> Optional[str]:
        start, end = self._match.span(idx)
        if start < 0:
            return None
        return self._text[start:end]

    def groups(self) -> tuple:
        return tuple(self.group(i) for i in range(1, (self._match.re.groups or 0) + 1))

    def start(self, idx: Union[int, str] = 0) -> int:
        return self._match.start(idx)

    def end(self, idx: Union[int, str] = 0) -> int:
        return self._match.end(idx)

    def span(self, idx: Union[int, str] = 0) -> Tuple[int, int]:
        return self._match.span(idx)

    def expand(self, template: str) -> str:
        def _ref(ref):
            key = ref.group(1) or ref.group(2)
            value = self.group(int(key) if key.isdigit() else key)
            return value or ''
        return _GROUP_REF.sub(_ref, template)


def finditer_code(pattern: re.Pattern, text: str, masked: Optional[str] = None) -> Iterator[SourceMatch]:
    masked = mask_literals(text) if masked is None else masked
    for match in pattern.finditer(masked):
        yield SourceMatch(match, text)


def search_code(pattern: re.Pattern, text: str, masked: Optional[str] = None, pos: int = 0) -> Optional[SourceMatch]:
    masked = mask_literals(text) if masked is None else masked
    match = pattern.search(masked, pos)
    return SourceMatch(match, text) if match else None


def sub_code(pattern: re.Pattern, repl: Union[str, Callable[[SourceMatch], Optional[str]]],
             text: str, count: int = 0) -> Tuple[str, int]:
    """
    ``re.subn`` restricted to code.

    *repl* is either a template (``\\1`` and ``\\g<name>`` references) or a
    callable returning the replacement, or None to leave that match alone.
    """
    edits = []
    for match in finditer_code(pattern, text):
        replacement = match.expand(repl) if isinstance(repl, str) else repl(match)
        if replacement is None:
            continue
        edits.append((match.start(), match.end(), replacement))
        if count and len(edits) >= count:
            break
    if not edits:
        return text, 0
    return apply_edits(text, edits), len(edits)
