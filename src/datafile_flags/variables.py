"""Conversion of variable values to their declared types.

Each converter returns ``None`` when the value cannot be represented in the
target type; none of them raise.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any

from datafile_flags.types import VariableType

__all__ = ["convert_variable_value"]

_INTEGER_PATTERN = re.compile(r"^\s*[+-]?\d+\s*$")
_DOUBLE_PATTERN = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*$")


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _to_string(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _to_boolean(value: Any) -> bool:
    return value is True


def _to_integer(value: Any) -> int | None:
    if isinstance(value, str):
        return int(value) if _INTEGER_PATTERN.match(value) else None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _to_double(value: Any) -> float | None:
    if isinstance(value, str):
        return float(value) if _DOUBLE_PATTERN.match(value) else None
    if _is_number(value):
        return float(value)
    return None


def _to_array(value: Any) -> list[Any] | None:
    return list(value) if isinstance(value, list | tuple) else None


def _to_object(value: Any) -> dict[str, Any] | None:
    return dict(value) if isinstance(value, Mapping) else None


_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    VariableType.STRING: _to_string,
    VariableType.BOOLEAN: _to_boolean,
    VariableType.INTEGER: _to_integer,
    VariableType.DOUBLE: _to_double,
    VariableType.ARRAY: _to_array,
    VariableType.OBJECT: _to_object,
}


def convert_variable_value(value: Any, variable_type: VariableType | str) -> Any:
    """Convert ``value`` to ``variable_type``.

    Strings are parsed for ``integer`` and ``double``. ``boolean`` is ``True``
    only for an actual ``True``. ``json`` and unknown types pass the value
    through unchanged.

    Args:
        value: The resolved variable value.
        variable_type: The requested type.

    Returns:
        The converted value, or ``None`` if ``value`` is ``None`` or cannot be converted.
    """
    if value is None:
        return None
    converter = _CONVERTERS.get(variable_type)
    if converter is None:
        return value
    return converter(value)
