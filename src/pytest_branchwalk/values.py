"""Core value helpers for the tree runtime.

This module defines the value categories recognized by the runtime and
small utilities for turning declared literal values into runtime values.
"""

from datetime import date, datetime, timedelta
from typing import Any

#: A value in runtime represents any Python object stored in a namespace:
#: declared literals, fragment return values, or values set by fragments.
type RuntimeValue = Any

#: A namespace maps variable names to runtime values.
type Namespace = dict[str, RuntimeValue]

MAPPINGS = (dict,)
SCALARS = (date, datetime, timedelta, str, bytes, int, float, bool)
SEQUENCES = (list, tuple, set)

QUOTES = ('"', "'", '`')


def strip_quotes(value: str) -> str:
    """Strip one pair of matching surrounding quote characters.

    Declared literal values keep the quotes they were written with in
    the source (`{x}='A'`). Only a matching pair is removed; a value
    quoted on one side only is returned as-is.

    Args:
        value: Declared literal text.

    Returns:
        The text without its surrounding quotes.
    """
    text = value.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in QUOTES:  # noqa: PLR2004
        return text[1:-1]

    return text


def to_text(value: RuntimeValue) -> str:
    """Render a runtime value for substitution into a text.

    Args:
        value: A runtime value.

    Returns:
        The empty string for `None`, otherwise `str(value)`.
    """
    if value is None:
        return ''

    return f'{value}'
