"""Value-safe interpolation of named values into SQL templates.

Placeholders follow the glue convention:

- ``{name}`` renders ``values["name"]`` as a SQL literal
- ``{name*}`` collapses a sequence into comma-separated literals
- ``{`name`}`` renders the value as a quoted identifier (``*`` also allowed)
- ``{{`` and ``}}`` produce literal braces

Only the supplied values are quoted. The template text itself is trusted and
passed through untouched.

Example:
    >>> render_sql("SELECT * FROM t WHERE id IN ({ids*}) AND name = {name}",
    ...            ids=[1, 2], name="O'Neil")
    "SELECT * FROM t WHERE id IN (1, 2) AND name = 'O''Neil'"
"""

from __future__ import annotations

import math
import numbers
import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from plugapi.exceptions import QueryTemplateError

_PLACEHOLDER_RE = re.compile(r"\{\{|\}\}|\{([^{}]*)\}")

_SCALAR_TYPES = (str, bytes, bytearray, Mapping)


def quote_literal(value: Any) -> str:
    """Render a single Python value as a SQL literal.

    Raises:
        QueryTemplateError: If the value has no SQL literal form.
    """
    if value is None:
        return "NULL"
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, numbers.Integral):
        return str(int(value))
    if isinstance(value, Decimal):
        if value.is_nan():
            return "NULL"
        if value.is_infinite():
            raise QueryTemplateError(f"Cannot render infinite value {value} as SQL")
        return str(value)
    if isinstance(value, numbers.Real):
        number = float(value)
        if math.isnan(number):
            return "NULL"
        if math.isinf(number):
            raise QueryTemplateError(f"Cannot render infinite value {value} as SQL")
        return repr(number)
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    if isinstance(value, datetime):
        return "'" + value.isoformat(sep=" ") + "'"
    if isinstance(value, (date, time)):
        return "'" + value.isoformat() + "'"
    if isinstance(value, (bytes, bytearray)):
        return "X'" + bytes(value).hex().upper() + "'"

    raise QueryTemplateError(
        f"Cannot render value of type {type(value).__name__} as a SQL literal"
    )


def quote_identifier(value: Any) -> str:
    """Render a string as a double-quoted SQL identifier."""
    if not isinstance(value, str) or not value:
        raise QueryTemplateError(f"Identifier must be a non-empty string, got {value!r}")
    return '"' + value.replace('"', '""') + '"'


def _is_collection(value: Any) -> bool:
    return isinstance(value, Iterable) and not isinstance(value, _SCALAR_TYPES)


def _render_placeholder(expression: str, values: Mapping[str, Any]) -> str:
    expr = expression.strip()

    collapse = expr.endswith("*")
    if collapse:
        expr = expr[:-1].rstrip()

    as_identifier = len(expr) >= 2 and expr.startswith("`") and expr.endswith("`")
    if as_identifier:
        expr = expr[1:-1].strip()

    if not expr.isidentifier():
        raise QueryTemplateError(
            f"Invalid placeholder {{{expression}}}: only plain names are supported"
        )
    if expr not in values:
        raise QueryTemplateError(f"No value supplied for placeholder '{expr}'")

    value = values[expr]
    quote = quote_identifier if as_identifier else quote_literal

    if collapse:
        if not _is_collection(value):
            return quote(value)
        items = [quote(item) for item in value]
        return ", ".join(items) if items else "NULL"

    if _is_collection(value):
        raise QueryTemplateError(
            f"Placeholder '{expr}' received a collection; use {{{expr}*}} to collapse it"
        )
    return quote(value)


def render_sql(sql_template: str, **values: Any) -> str:
    """Interpolate named values into a SQL template.

    Args:
        sql_template: SQL text with ``{name}`` placeholders.
        **values: Values for the placeholders.

    Returns:
        The SQL text with every placeholder replaced by a quoted value.

    Raises:
        QueryTemplateError: If a placeholder is malformed, has no value, or
            its value cannot be rendered.
    """

    def replace(match: re.Match[str]) -> str:
        token = match.group(0)
        if token == "{{":
            return "{"
        if token == "}}":
            return "}"
        return _render_placeholder(match.group(1), values)

    return _PLACEHOLDER_RE.sub(replace, sql_template)
