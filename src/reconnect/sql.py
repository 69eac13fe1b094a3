"""
SQL text helpers used by the retry policy.

This module provides:
1. `is_read_query()` - leading-keyword check for read statements
2. `compile_like_pattern()` - LIKE-style glob to anchored regex compiler

Neither function parses SQL. Statements are classified by their first keyword
only, and anything unrecognized is treated as a write.
"""
import re

__all__ = [
    'READ_SQL_REGEX',
    'is_read_query',
    'compile_like_pattern',
]

READ_SQL_REGEX = re.compile(r'\A\s*(?:SELECT|SHOW|SET)\b', re.IGNORECASE)

_LITERAL_RUN = re.compile(r'[^\\%_]+')


def is_read_query(sql: str | None) -> bool:
    """Check whether a statement only reads data.

    Returns True when the text starts (after whitespace) with SELECT, SHOW
    or SET, case-insensitive. Missing or empty text is a write.
    """
    if not sql:
        return False
    return READ_SQL_REGEX.match(sql) is not None


def compile_like_pattern(text: str) -> re.Pattern[str]:
    """Compile a LIKE-style glob into an anchored regular expression.

    - `%` matches any sequence of characters, including none
    - `_` matches exactly one character
    - `\\X` matches `X` literally

    The pattern must match the whole string. Case is preserved.

    >>> bool(compile_like_pattern('app_%').search('app_prod'))
    True
    >>> bool(compile_like_pattern('prod').search('production'))
    False
    """
    buf: list[str] = []
    pos = 0
    end = len(text)

    while pos < end:
        if m := _LITERAL_RUN.match(text, pos):
            buf.append(re.escape(m.group()))
            pos = m.end()
            continue

        char = text[pos]
        if char == '\\':
            if pos + 1 >= end:
                raise ValueError(f'Unterminated escape at end of pattern: {text!r}')
            buf.append(re.escape(text[pos + 1]))
            pos += 2
        elif char == '%':
            buf.append('.*')
            pos += 1
        elif char == '_':
            buf.append('.')
            pos += 1
        else:
            raise ValueError(f'Unexpected character {char!r} in pattern: {text!r}')

    return re.compile(rf"\A{''.join(buf)}\Z", re.DOTALL)
