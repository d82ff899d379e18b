"""Field values stored on entity graph nodes.

A field value is one of ``str | int | float | bool | None`` or a list of
field values. Values are normalized on the way in so equality is total and
does not depend on Python's loose comparisons (``True == 1``).
"""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping
from typing import Any, TypeAlias

from rzmanager.errors import InvalidFieldValueError

FieldValue: TypeAlias = "str | int | float | bool | None | list[FieldValue]"

_SCALARS = (str, int, float, bool, type(None))


def normalize_value(value: Any, path: str = "") -> FieldValue:
    """Validate a field value and return a detached, normalized copy.

    Tuples become lists. Anything that is not a scalar or a list of
    field values is rejected, and so are NaN and infinite floats.

    Args:
        value: Raw value from the editor or a row snapshot.
        path: Location of the value, used in error messages.

    Returns:
        The normalized value. Lists are always new objects.

    Raises:
        InvalidFieldValueError: If the value (or a nested item) is unsupported.
    """
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidFieldValueError(value, path, "NaN and infinity have no SQL literal")
    if isinstance(value, _SCALARS):
        return value
    if isinstance(value, (list, tuple)):
        return [normalize_value(item, f"{path}[{i}]") for i, item in enumerate(value)]
    raise InvalidFieldValueError(value, path)


def normalize_values(values: Mapping[str, Any]) -> dict[str, FieldValue]:
    """Normalize every value of a field mapping, preserving key order."""
    return {str(key): normalize_value(val, str(key)) for key, val in values.items()}


def values_equal(a: FieldValue, b: FieldValue) -> bool:
    """Deep structural equality for field values.

    Booleans never equal numbers, ints and floats compare numerically,
    NaN equals NaN, and lists compare element-wise.
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
            return True
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b, strict=True))
    return False


def mappings_equal(a: Mapping[str, FieldValue], b: Mapping[str, FieldValue]) -> bool:
    """Key-wise deep equality of two field mappings (order-insensitive)."""
    if a.keys() != b.keys():
        return False
    return all(values_equal(a[key], b[key]) for key in a)


def copy_value(value: FieldValue) -> FieldValue:
    """Return a detached copy of a field value."""
    return copy.deepcopy(value)
