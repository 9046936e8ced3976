"""
Scanner primitives used by every rewriter.

WHAT THIS FILE DOES:
====================
Parses just enough SQL structure to rewrite it safely without a grammar:
balanced parentheses, quoted literals, comments, comma separated argument
lists, binary-operator operands and statement boundaries.

All functions are pure. None of them raises on malformed SQL: an unmatched
bracket or unterminated literal yields ``NOT_FOUND`` or an empty operand, and
the caller skips that occurrence and keeps scanning.

FUNCTIONS:
==========
  - find_matching_bracket(): index just after the ``)`` matching a ``(``.
  - split_function_arguments(): depth-0 comma split of an argument string.
  - extract_operand_before() / extract_operand_after(): operands of an infix operator.
  - mask_literals(): same-length copy of the text with literal contents and
    comments blanked, so regexes only ever see code.
  - rewrite_function_calls(): outer-first rewrite of every call to a function.
  - apply_edits(): applies non-overlapping (start, end, replacement) spans once.
  - statement_spans() / split_statements(): semicolon split outside literals.
  - safe_parse_one(): sqlglot parse with the error captured instead of raised.
"""
import re
from typing import Callable, Iterable, List, NamedTuple, Optional, Tuple

import sqlglot
from sqlglot import exp

from app.utils.logger import setup_logger

logger = setup_logger(__name__)

NOT_FOUND = -1

_QUOTES = ("'", '"', '`')
_IDENT_CHARS = re.compile(r'[\w.$#]')

# Words that can never be the operand of an infix operator
_NON_OPERAND_KEYWORDS = frozenset({
    'SELECT', 'FROM', 'WHERE', 'AND', 'OR', 'NOT', 'THEN', 'ELSE', 'WHEN', 'AS', 'ON', 'IN',
    'IS', 'BY', 'LIKE', 'SET', 'VALUES', 'RETURN', 'RETURNING', 'UNION', 'ALL', 'DISTINCT',
    'HAVING', 'GROUP', 'ORDER', 'JOIN', 'INTO', 'BETWEEN', 'EXISTS', 'WITH', 'USING',
})

_CASE_END_PATTERN = re.compile(r'\b(CASE|END)\b', re.IGNORECASE)

_PLSQL_HEADER = re.compile(
    r'^\s*(?:CREATE\s+(?:OR\s+REPLACE\s+)?(?:EDITIONABLE\s+|NONEDITIONABLE\s+)?'
    r'(?:PROCEDURE|FUNCTION|TRIGGER|PACKAGE(?:\s+BODY)?|TYPE\s+BODY)\b|DECLARE\b|BEGIN\b)',
    re.IGNORECASE,
)
_SLASH_TERMINATOR = re.compile(r'^[ \t]*/[ \t]*$', re.MULTILINE)


class LiteralRegion(NamedTuple):
    kind: str    # 'string', 'identifier', 'backtick', 'line_comment', 'block_comment'
    start: int
    end: int     # exclusive
    closed: bool


# ---------------------------------------------------------------------------
# Literal and comment scanning
# ---------------------------------------------------------------------------

def _skip_quoted(text: str, index: int) -> int:
    """Return the index after the quoted region starting at *index*, or NOT_FOUND."""
    quote = text[index]
    i = index + 1
    n = len(text)
    while i < n:
        if text[i] == quote:
            # A doubled quote is an escaped quote, not the terminator
            if i + 1 < n and text[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return NOT_FOUND


def _skip_comment(text: str, index: int) -> int:
    """Return the index after a comment starting at *index*, or *index* if none starts there."""
    if text.startswith('--', index):
        newline = text.find('\n', index)
        return len(text) if newline == -1 else newline
    if text.startswith('/*', index):
        close = text.find('*/', index + 2)
        return len(text) if close == -1 else close + 2
    return index


def literal_regions(text: str) -> List[LiteralRegion]:
    """List every quoted literal, quoted identifier and comment in *text*."""
    regions = []
    kinds = {"'": 'string', '"': 'identifier', '`': 'backtick'}
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in _QUOTES:
            end = _skip_quoted(text, i)
            if end == NOT_FOUND:
                regions.append(LiteralRegion(kinds[ch], i, n, False))
                break
            regions.append(LiteralRegion(kinds[ch], i, end, True))
            i = end
            continue
        if ch == '-' and text.startswith('--', i):
            end = _skip_comment(text, i)
            regions.append(LiteralRegion('line_comment', i, end, True))
            i = end
            continue
        if ch == '/' and text.startswith('/*', i):
            end = _skip_comment(text, i)
            regions.append(LiteralRegion('block_comment', i, end, text.endswith('*/', 0, end) and end - i >= 4))
            i = end
            continue
        i += 1
    return regions


def mask_literals(text: str) -> str:
    """
    Return a copy of *text* of the same length in which literal contents and
    comments are blanked out.

    Quote delimiters are kept so that patterns can still see that a literal is
    present; comment text is replaced entirely (newlines survive). Indices in
    the masked copy line up one-to-one with the original.
    """
    if not text:
        return text
    chars = list(text)
    for region in literal_regions(text):
        if region.kind in ('line_comment', 'block_comment'):
            for i in range(region.start, region.end):
                if chars[i] != '\n':
                    chars[i] = ' '
        else:
            inner_end = region.end - 1 if region.closed else region.end
            for i in range(region.start + 1, inner_end):
                if chars[i] != '\n':
                    chars[i] = ' '
    return ''.join(chars)


# ---------------------------------------------------------------------------
# Brackets and arguments
# ---------------------------------------------------------------------------

def find_matching_bracket(text: str, open_paren_index: int) -> int:
    """
    Find the close of the bracket opened at *open_paren_index*.

    Characters inside single, double or backtick quoted regions (with the
    doubled-quote escape) and inside comments are ignored.

    Returns:
        The index just after the matching ``)``, or NOT_FOUND when the text is
        truncated or *open_paren_index* does not point at ``(``.
    """
    if open_paren_index < 0 or open_paren_index >= len(text) or text[open_paren_index] != '(':
        return NOT_FOUND

    depth = 0
    i = open_paren_index
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in _QUOTES:
            i = _skip_quoted(text, i)
            if i == NOT_FOUND:
                return NOT_FOUND
            continue
        if ch in '-/':
            after = _skip_comment(text, i)
            if after != i:
                i = after
                continue
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return NOT_FOUND


def find_matching_open_bracket(masked: str, close_paren_index: int) -> int:
    """Backward counterpart of find_matching_bracket; expects masked text."""
    if close_paren_index < 0 or close_paren_index >= len(masked) or masked[close_paren_index] != ')':
        return NOT_FOUND
    depth = 0
    for i in range(close_paren_index, -1, -1):
        ch = masked[i]
        if ch == ')':
            depth += 1
        elif ch == '(':
            depth -= 1
            if depth == 0:
                return i
    return NOT_FOUND


def enclosing_open_bracket(masked: str, index: int) -> int:
    """Index of the innermost unclosed ``(`` before *index*, or NOT_FOUND at top level."""
    depth = 0
    for i in range(index - 1, -1, -1):
        ch = masked[i]
        if ch == ')':
            depth += 1
        elif ch == '(':
            if depth == 0:
                return i
            depth -= 1
    return NOT_FOUND


def paren_depth_at(masked: str, index: int) -> int:
    depth = 0
    for ch in masked[:index]:
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
    return depth


def search_top_level(pattern: re.Pattern, masked: str, pos: int = 0) -> Optional[re.Match]:
    """First match of *pattern* at bracket depth 0 of *masked*, at or after *pos*."""
    for match in pattern.finditer(masked, pos):
        if paren_depth_at(masked, match.start()) == 0:
            return match
    return None


def _split_top_level(text: str, is_separator: Callable[[str, int], int]) -> List[Tuple[int, int]]:
    """Split *text* at depth-0 separators; returns (start, end) spans."""
    masked = mask_literals(text)
    spans = []
    depth = 0
    start = 0
    i = 0
    n = len(masked)
    while i < n:
        ch = masked[i]
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
        elif depth == 0:
            width = is_separator(masked, i)
            if width:
                spans.append((start, i))
                i += width
                start = i
                continue
        i += 1
    spans.append((start, n))
    return spans


def split_function_arguments(args_text: str) -> List[str]:
    """
    Split a function's argument string on depth-0 commas.

    Commas inside nested parentheses, quoted literals and comments do not
    split. Each argument is stripped; blank input yields an empty list.
    """
    if not args_text or not args_text.strip():
        return []
    spans = _split_top_level(args_text, lambda masked, i: 1 if masked[i] == ',' else 0)
    return [args_text[s:e].strip() for s, e in spans]


_AND_AT = re.compile(r'\bAND\b', re.IGNORECASE)
_BETWEEN = re.compile(r'\bBETWEEN\b', re.IGNORECASE)


def split_conjuncts(predicate: str) -> List[str]:
    """Split a predicate on depth-0 ``AND`` keywords, keeping ``BETWEEN x AND y`` intact."""
    if not predicate or not predicate.strip():
        return []

    def is_and(masked, i):
        match = _AND_AT.match(masked, i)
        if not match or (i > 0 and (masked[i - 1].isalnum() or masked[i - 1] == '_')):
            return 0
        return match.end() - i

    parts = []
    pending_between = False
    for s, e in _split_top_level(predicate, is_and):
        piece = predicate[s:e].strip()
        if pending_between and parts:
            parts[-1] = f"{parts[-1]} AND {piece}"
            pending_between = False
        else:
            parts.append(piece)
            pending_between = bool(_BETWEEN.search(mask_literals(piece)))
    return [p for p in parts if p]


# ---------------------------------------------------------------------------
# Operands of infix operators
# ---------------------------------------------------------------------------

def _match_case_backward(masked: str, end_keyword_start: int) -> int:
    depth = 1
    tokens = list(_CASE_END_PATTERN.finditer(masked, 0, end_keyword_start))
    for token in reversed(tokens):
        if token.group(1).upper() == 'END':
            depth += 1
        else:
            depth -= 1
            if depth == 0:
                return token.start()
    return NOT_FOUND


def _match_case_forward(masked: str, case_keyword_end: int) -> int:
    depth = 1
    for token in _CASE_END_PATTERN.finditer(masked, case_keyword_end):
        if token.group(1).upper() == 'CASE':
            depth += 1
        else:
            depth -= 1
            if depth == 0:
                return token.end()
    return NOT_FOUND


def extract_operand_before(text: str, operator_index: int, masked: Optional[str] = None) -> Tuple[str, int]:
    """
    Extract the operand immediately to the left of an infix operator.

    Operand shapes, in priority order: quoted string literal, parenthesised
    expression or function call, ``CASE ... END`` block, dotted identifier.

    Returns:
        (operand, start_index). When no operand can be extracted the result is
        ``("", operator_index)``, meaning "do not rewrite this occurrence".
    """
    masked = mask_literals(text) if masked is None else masked
    fail = ('', operator_index)
    j = operator_index - 1
    while j >= 0 and masked[j].isspace():
        j -= 1
    if j < 0:
        return fail

    ch = masked[j]
    if ch in _QUOTES:
        start = masked.rfind(ch, 0, j)
        if start == -1:
            return fail
        # Allow a qualifier in front of a quoted identifier ("S"."T")
        while start > 0 and (_IDENT_CHARS.match(masked[start - 1]) or masked[start - 1] in '"`'):
            start -= 1
    elif ch == ')':
        start = find_matching_open_bracket(masked, j)
        if start == NOT_FOUND:
            return fail
        k = start
        while k > 0 and masked[k - 1].isspace():
            k -= 1
        name_start = k
        while name_start > 0 and _IDENT_CHARS.match(masked[name_start - 1]):
            name_start -= 1
        if name_start < k:
            name = masked[name_start:k].upper()
            if name not in _NON_OPERAND_KEYWORDS:
                start = name_start
    elif _IDENT_CHARS.match(ch) or ch in ':@':
        start = j
        while start > 0 and (_IDENT_CHARS.match(masked[start - 1]) or masked[start - 1] in ':@'):
            start -= 1
        word = masked[start:j + 1].upper()
        if word == 'END':
            start = _match_case_backward(masked, start)
            if start == NOT_FOUND:
                return fail
        elif word in _NON_OPERAND_KEYWORDS:
            return fail
    else:
        return fail

    return text[start:j + 1], start


def extract_operand_after(text: str, index_after_operator: int, masked: Optional[str] = None) -> Tuple[str, int]:
    """
    Extract the operand immediately to the right of an infix operator.

    Returns:
        (operand, end_index_exclusive), or ``("", index_after_operator)`` when
        no operand can be extracted.
    """
    masked = mask_literals(text) if masked is None else masked
    fail = ('', index_after_operator)
    n = len(masked)
    j = index_after_operator
    while j < n and masked[j].isspace():
        j += 1
    if j >= n:
        return fail

    ch = masked[j]
    if ch == "'":
        close = masked.find("'", j + 1)
        if close == -1:
            return fail
        end = close + 1
    elif ch in '"`':
        close = masked.find(ch, j + 1)
        if close == -1:
            return fail
        end = close + 1
        while end < n and (_IDENT_CHARS.match(masked[end]) or masked[end] in '"`'):
            end += 1
    elif ch == '(':
        end = find_matching_bracket(masked, j)
        if end == NOT_FOUND:
            return fail
        while end < n and _IDENT_CHARS.match(masked[end]):
            end += 1
    elif _IDENT_CHARS.match(ch) or ch in ':@':
        end = j + 1
        while end < n and _IDENT_CHARS.match(masked[end]):
            end += 1
        word = masked[j:end].upper()
        if word == 'CASE':
            end = _match_case_forward(masked, end)
            if end == NOT_FOUND:
                return fail
        elif word in _NON_OPERAND_KEYWORDS:
            return fail
        else:
            k = end
            while k < n and masked[k].isspace():
                k += 1
            if k < n and masked[k] == '(':
                call_end = find_matching_bracket(masked, k)
                if call_end == NOT_FOUND:
                    return fail
                end = call_end
    else:
        return fail

    return text[j:end], end


# ---------------------------------------------------------------------------
# Edits and function-call rewriting
# ---------------------------------------------------------------------------

def apply_edits(text: str, edits: Iterable[Tuple[int, int, str]]) -> str:
    """
    Apply ``(start, end, replacement)`` spans in one pass.

    Spans are applied left to right; a span overlapping one already accepted
    is dropped, so the earlier (outer) edit wins.
    """
    ordered = sorted(edits, key=lambda e: (e[0], -e[1]))
    if not ordered:
        return text
    pieces = []
    cursor = 0
    for start, end, replacement in ordered:
        if start < cursor:
            continue
        pieces.append(text[cursor:start])
        pieces.append(replacement)
        cursor = end
    pieces.append(text[cursor:])
    return ''.join(pieces)


class FunctionCall(NamedTuple):
    start: int          # first character of the function name
    open_index: int     # index of '('
    end: int            # index after ')'
    args_text: str


def find_function_calls(text: str, pattern: re.Pattern, masked: Optional[str] = None) -> List[FunctionCall]:
    """All complete calls matched by *pattern* (which must end at the ``(``), left to right."""
    masked = mask_literals(text) if masked is None else masked
    calls = []
    for match in pattern.finditer(masked):
        open_index = match.end() - 1
        end = find_matching_bracket(masked, open_index)
        if end == NOT_FOUND:
            continue
        calls.append(FunctionCall(match.start(), open_index, end, text[open_index + 1:end - 1]))
    return calls


def rewrite_function_calls(text: str, pattern: re.Pattern,
                           rebuild: Callable[[List[str]], Optional[str]]) -> Tuple[str, int]:
    """
    Rewrite every call matched by *pattern*, outermost call first.

    The argument text of each call is rewritten recursively before *rebuild*
    sees it, so nested calls of the same function are converted independently.
    *rebuild* receives the split argument list and returns the replacement,
    or None to keep the call (its nested rewrites are still applied).

    Returns:
        (new_text, number_of_calls_rewritten)
    """
    masked = mask_literals(text)
    edits = []
    count = 0
    resume_at = 0
    for match in pattern.finditer(masked):
        if match.start() < resume_at:
            continue
        open_index = match.end() - 1
        end = find_matching_bracket(masked, open_index)
        if end == NOT_FOUND:
            continue

        inner = text[open_index + 1:end - 1]
        new_inner, nested = rewrite_function_calls(inner, pattern, rebuild)
        replacement = rebuild(split_function_arguments(new_inner))
        if replacement is None:
            if nested:
                edits.append((open_index + 1, end - 1, new_inner))
            count += nested
        else:
            edits.append((match.start(), end, replacement))
            count += 1 + nested
        resume_at = end
    return apply_edits(text, edits), count


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

def is_plsql_block(sql: str) -> bool:
    """True for procedure/function/trigger/package bodies and anonymous blocks."""
    return bool(_PLSQL_HEADER.match(mask_literals(sql)))


def statement_spans(text: str) -> List[Tuple[int, int]]:
    """
    Split *text* into statement spans on semicolons outside literals and comments.

    Each span excludes its terminating semicolon. A PL/SQL block extends to a
    line holding only ``/`` (or to the end of the text) since its body
    contains semicolons of its own.
    """
    masked = mask_literals(text)
    spans = []
    start = 0
    n = len(masked)
    while start < n:
        segment_head = masked[start:]
        if _PLSQL_HEADER.match(segment_head):
            slash = _SLASH_TERMINATOR.search(masked, start)
            end = slash.start() if slash else n
            spans.append((start, end))
            start = slash.end() if slash else n
            continue
        semicolon = masked.find(';', start)
        if semicolon == -1:
            spans.append((start, n))
            break
        spans.append((start, semicolon))
        start = semicolon + 1
    return spans


def split_statements(text: str) -> List[str]:
    """Stripped, non-blank statements of *text* in their original order."""
    statements = []
    for start, end in statement_spans(text):
        statement = text[start:end].strip()
        if mask_literals(statement).strip():
            statements.append(statement)
    return statements


# ---------------------------------------------------------------------------
# AST parser collaborator
# ---------------------------------------------------------------------------

def safe_parse_one(sql: str, dialect: str) -> tuple[exp.Expression | None, str | None]:
    """
    Safely parses a single SQL statement into an AST.

    Args:
        sql: The SQL statement string to parse.
        dialect: The sqlglot dialect to use for parsing.

    Returns:
        A tuple containing (ast, error_message).
        If successful, ast is the parsed expression and error_message is None.
        If it fails, ast is None and error_message describes the failure.
    """
    if not sql or not sql.strip():
        return None, "Empty statement"
    try:
        ast = sqlglot.parse_one(sql, read=dialect)
    except Exception as e:  # sqlglot raises ParseError, TokenError and occasionally plain errors
        logger.debug(f"sqlglot could not parse statement ({dialect}): {e}")
        return None, f"Failed to parse statement: {e}"
    if ast is None:
        return None, "Parser returned no expression"
    return ast, None
