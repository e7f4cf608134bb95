# coercion.py — Numeric coercion rules shared by charts & statistics
"""
coercion.py — Numeric Coercion Utility

One rule for turning a raw cell value into a number:
a value coerces iff its leading numeric prefix ("12 kg" -> 12,
"10%" -> 10, "1,000" -> 1) parses to a finite number.

Two consumers, two failure policies:
- statistics: failures are EXCLUDED (coerce_number -> None)
- chart y/z values: failures become 0 (coerce_or_zero)

Chart x values on 3D kinds keep their category when they do not coerce
(coerce_axis_value -> Numeric | Categorical).
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Union

import numpy as np
import pandas as pd


# =============================================================================
# CONSTANTS
# =============================================================================

NUMERIC_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


# =============================================================================
# TAGGED AXIS VALUES
# =============================================================================

@dataclass(frozen=True)
class Numeric:
    """An axis value that coerced to a finite number."""
    value: float


@dataclass(frozen=True)
class Categorical:
    """An axis value kept as its label."""
    value: str


AxisValue = Union[Numeric, Categorical]


# =============================================================================
# SCALAR COERCION
# =============================================================================

def coerce_number(value: Any) -> float | None:
    """
    Parse a cell value as a finite float.

    Text is read up to the end of its leading number, so trailing units
    and separators are ignored.

    Returns:
        The float, or None when the value is null, boolean, text without
        a leading number, or parses to NaN / +-Inf.
    """
    if value is None or isinstance(value, (bool, np.bool_)):
        return None

    if isinstance(value, (int, float, np.integer, np.floating)):
        number = float(value)
    elif isinstance(value, str):
        match = NUMERIC_PREFIX.match(value.strip())
        if match is None:
            return None
        number = float(match.group())
    else:
        return None

    if not math.isfinite(number):
        return None
    return number


def coerce_or_zero(value: Any) -> float:
    """Chart rule: a value that fails coercion is plotted as 0."""
    number = coerce_number(value)
    return 0.0 if number is None else number


def coerce_axis_value(value: Any) -> AxisValue:
    """Numeric when the value coerces, otherwise its label."""
    number = coerce_number(value)
    if number is not None:
        return Numeric(number)
    return Categorical("" if value is None else str(value))


def coerce_series(series: pd.Series) -> pd.Series:
    """
    Vectorized strict coercion.

    Returns:
        float Series aligned with the input; failures are NaN so that
        .dropna() leaves only coercible values.
    """
    return series.map(coerce_number).astype(float)


# =============================================================================
# FORMATTING
# =============================================================================

def format_number(value: float | int) -> str:
    """Render 10.0 as "10" and 72.5 as "72.5"."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def group_key(value: Any) -> str:
    """
    Stable string form of an x value used as a grouping key.

    Numerically-equal values of different representations (10, 10.0)
    share a key; null becomes "null".
    """
    if value is None:
        return "null"
    if isinstance(value, (bool, np.bool_)):
        return "true" if value else "false"
    if isinstance(value, (int, float, np.integer, np.floating)):
        number = float(value)
        if not math.isfinite(number):
            return str(number)
        return format_number(number)
    return str(value)


def axis_value_payload(value: AxisValue) -> float | str:
    """Unwrap a tagged axis value for a renderer."""
    return value.value
