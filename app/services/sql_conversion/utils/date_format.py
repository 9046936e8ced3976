"""
Date-format token translation.

Oracle and PostgreSQL share the picture-format style (``YYYY-MM-DD HH24:MI``)
while MySQL uses ``%`` specifiers (``%Y-%m-%d %H:%i``). The per-pair token
tables live in the rule files (``date_format_tokens``); this module only knows
how to apply one to a format string.

Tokens are matched longest first and replaced in a single pass, so text that
a replacement produces is never translated a second time (``MM`` -> ``%m``
must not then be seen as ``M`` + ``M``).
"""
import re
from functools import lru_cache
from typing import Mapping, Optional, Tuple

from ..models import Dialect

# Oracle/PostgreSQL number formats (TO_CHAR(n, 'FM999G990D00')) are not dates
_NUMERIC_FORMAT = re.compile(r'^(?:FM)?[90$.,DGLSVXB\s+-]*(?:MI|PR|S|EEEE)?$', re.IGNORECASE)
_DOUBLE_QUOTED = re.compile(r'"[^"]*"')
_MYSQL_SPECIFIER = re.compile(r'%.')
_LETTER_RUN = re.compile(r'[A-Za-z]+')


def is_quoted_literal(arg: str) -> bool:
    return len(arg) >= 2 and arg.startswith("'") and arg.endswith("'")


def literal_body(arg: str) -> str:
    return arg[1:-1]


def is_numeric_format(body: str) -> bool:
    stripped = body.strip()
    return bool(stripped) and bool(re.search(r'[90]', stripped)) and bool(_NUMERIC_FORMAT.match(stripped))


@lru_cache(maxsize=32)
def _picture_token_pattern(tokens: Tuple[str, ...]) -> re.Pattern:
    ordered = sorted(tokens, key=len, reverse=True)
    return re.compile('|'.join(re.escape(t) for t in ordered) + '|%', re.IGNORECASE)


def _translate_picture(body: str, tokens: Mapping[str, str], target: Dialect) -> str:
    """Oracle/PostgreSQL picture format -> target format."""
    lookup = {key.upper(): value for key, value in tokens.items()}
    pattern = _picture_token_pattern(tuple(sorted(lookup)))
    to_mysql = target is Dialect.MYSQL

    def _token(match):
        text = match.group(0)
        if text == '%':
            return '%%' if to_mysql else text
        return lookup[text.upper()]

    pieces = []
    last = 0
    for quoted in _DOUBLE_QUOTED.finditer(body):
        pieces.append(pattern.sub(_token, body[last:quoted.start()]) if lookup else body[last:quoted.start()])
        inner = quoted.group(0)
        # Quoted text is literal output in a picture format; MySQL has no quoting
        pieces.append(inner[1:-1].replace('%', '%%') if to_mysql else inner)
        last = quoted.end()
    tail = body[last:]
    pieces.append(pattern.sub(_token, tail) if lookup else tail)
    return ''.join(pieces)


def _translate_specifiers(body: str, tokens: Mapping[str, str]) -> str:
    """MySQL ``%`` specifiers -> picture format; literal letters get double quotes."""
    pieces = []
    last = 0
    for match in _MYSQL_SPECIFIER.finditer(body):
        pieces.append(_quote_letters(body[last:match.start()]))
        pieces.append(tokens.get(match.group(0), match.group(0)[1:]))
        last = match.end()
    pieces.append(_quote_letters(body[last:]))
    return ''.join(pieces)


def _quote_letters(text: str) -> str:
    return _LETTER_RUN.sub(lambda m: f'"{m.group(0)}"', text)


def translate_format(body: str, source: Dialect, target: Dialect, tokens: Mapping[str, str]) -> str:
    """
    Translate the body of a format literal (without its single quotes).

    Matching is case-insensitive for picture formats and case-sensitive for
    MySQL specifiers (``%m`` and ``%M`` mean different things).
    """
    if source is Dialect.MYSQL:
        return _translate_specifiers(body, tokens)
    return _translate_picture(body, tokens, target)


def has_date_tokens(body: str, source: Dialect, tokens: Mapping[str, str]) -> bool:
    if source is Dialect.MYSQL:
        return bool(_MYSQL_SPECIFIER.search(body))
    if is_numeric_format(body):
        return False
    unquoted = _DOUBLE_QUOTED.sub('', body)
    lookup = [key.upper() for key in tokens]
    if not lookup:
        return bool(unquoted.strip())
    return any(token in unquoted.upper() for token in lookup)


def translate_format_literal(literal: str, source: Dialect, target: Dialect,
                             tokens: Mapping[str, str]) -> Optional[str]:
    """Translate a quoted format literal; None when *literal* is not a plain string literal."""
    if not is_quoted_literal(literal):
        return None
    return f"'{translate_format(literal_body(literal), source, target, tokens)}'"
