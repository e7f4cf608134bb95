# validators.py — Input sanitization & validation
# Client-input error taxonomy, chart request guards, JSON scrubbing
"""
validators.py — Input Sanitization & Validation

Production implementation for:
- Client input errors (bad request family)
- Chart kind / aggregation sanitization
- Axis membership checks against a dataset's headers
- JSON-safe payload scrubbing
"""

from __future__ import annotations

from typing import Any, Iterable

import numpy as np


# =============================================================================
# CONSTANTS
# =============================================================================

CHART_KINDS_2D = ("bar", "line", "pie", "doughnut", "scatter", "radar")
CHART_KINDS_3D = ("scatter3d", "bar3d")
CHART_KINDS = CHART_KINDS_2D + CHART_KINDS_3D
CATEGORICAL_COLOR_KINDS = {"pie", "doughnut"}

AGGREGATIONS = ("none", "sum", "avg", "count", "min", "max")
DEFAULT_AGGREGATION = "none"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ClientInputError(ValueError):
    """Base exception for bad-request errors. Never retried."""
    pass


class EmptyDatasetError(ClientInputError):
    """Raised when an upload yields zero records."""
    pass


class InvalidAxisError(ClientInputError):
    """Raised when an x/y axis is missing or not a dataset header."""
    pass


class Missing3DAxisError(InvalidAxisError):
    """Raised when a 3D chart is requested without a valid z axis."""
    pass


class InvalidChartRequestError(ClientInputError):
    """Raised for unknown chart kinds, aggregations or missing fields."""
    pass


# =============================================================================
# CHART REQUEST VALIDATION
# =============================================================================

def sanitize_chart_kind(kind: str | None) -> str:
    """
    Normalize a chart kind.

    Returns:
        One of CHART_KINDS

    Raises:
        InvalidChartRequestError: If the kind is missing or unknown
    """
    if not kind:
        raise InvalidChartRequestError("Chart type is required")

    kind_lower = str(kind).lower().strip()
    if kind_lower not in CHART_KINDS:
        raise InvalidChartRequestError(
            f"Unsupported chart type: {kind}. Allowed: {', '.join(CHART_KINDS)}"
        )
    return kind_lower


def sanitize_aggregation(aggregation: str | None) -> str:
    """
    Normalize an aggregation name. Missing/empty means "none".

    Raises:
        InvalidChartRequestError: If the aggregation is unknown
    """
    if not aggregation:
        return DEFAULT_AGGREGATION

    agg_lower = str(aggregation).lower().strip()
    if agg_lower not in AGGREGATIONS:
        raise InvalidChartRequestError(
            f"Unsupported aggregation: {aggregation}. Allowed: {', '.join(AGGREGATIONS)}"
        )
    return agg_lower


def is_3d_kind(kind: str) -> bool:
    return kind in CHART_KINDS_3D


def validate_axes(
    headers: Iterable[str],
    x_axis: str | None,
    y_axis: str | None,
    z_axis: str | None = None,
    chart_kind: str = "bar",
) -> None:
    """
    Check that requested axes are headers of the dataset.

    A z axis is only checked (and required) for 3D kinds; for 2D kinds a
    supplied z axis is ignored.

    Raises:
        InvalidAxisError: x or y missing / not a header
        Missing3DAxisError: 3D kind without a valid z axis
    """
    header_set = set(headers)

    if not x_axis or not y_axis or x_axis not in header_set or y_axis not in header_set:
        raise InvalidAxisError("Invalid axis selection")

    if is_3d_kind(chart_kind) and (not z_axis or z_axis not in header_set):
        raise Missing3DAxisError("Invalid Z-axis selection for 3D chart")


# =============================================================================
# JSON SANITIZATION
# =============================================================================

def sanitize_dict_for_json(obj: Any) -> Any:
    """
    Recursively sanitize a dict/list for JSON serialization.
    Handles numpy types, NaN, Inf, tuples.
    """
    if obj is None:
        return None

    if isinstance(obj, dict):
        return {k: sanitize_dict_for_json(v) for k, v in obj.items()}

    if isinstance(obj, (list, tuple)):
        return [sanitize_dict_for_json(v) for v in obj]

    if isinstance(obj, np.ndarray):
        return sanitize_dict_for_json(obj.tolist())

    if isinstance(obj, (np.bool_,)):
        return bool(obj)

    if isinstance(obj, (np.integer,)):
        return int(obj)

    if isinstance(obj, (np.floating, float)):
        if not np.isfinite(obj):
            return None
        return float(obj)

    return obj
