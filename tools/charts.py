# charts.py — Chart data derivation (2D series / 3D traces)
# Maps (x, y, z?, aggregation, chart kind) onto a renderer-ready structure
"""
charts.py — Chart Data Deriver

derive_chart_data(dataset, request) returns one of:

- 2D series (Chart.js shape):
    {labels: [...], datasets: [{label, data, backgroundColor, borderColor}]}
- 3D traces (plotly figure shape):
    {data: [scatter3d trace], layout: {scene: {xaxis, yaxis, zaxis}, title}}

Rules:
- y (and z) values that fail numeric coercion are plotted as 0
- 3D x values keep their label when they do not coerce
- aggregation groups rows by the stringified x value, first-seen order
- pie/doughnut get one color per label, every other kind one color
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping
from uuid import uuid4

import pandas as pd
import plotly.graph_objects as go

from tools.coercion import (
    AxisValue,
    axis_value_payload,
    coerce_axis_value,
    coerce_or_zero,
    format_number,
    group_key,
    Numeric,
)
from tools.colors import generate_colors
from tools.dataset import Dataset
from tools.validators import (
    CATEGORICAL_COLOR_KINDS,
    InvalidChartRequestError,
    is_3d_kind,
    sanitize_aggregation,
    sanitize_chart_kind,
    sanitize_dict_for_json,
    validate_axes,
)


# =============================================================================
# CONSTANTS
# =============================================================================

# Presentation constants per 3D kind
MARKER_STYLES = {
    "scatter3d": {
        "size": 5,
        "colorscale": "Viridis",
        "showscale": True,
    },
    "bar3d": {
        "size": 8,
        "colorscale": "Portland",
        "showscale": True,
        "line": {"color": "white", "width": 0.5},
    },
}
TITLE_PREFIXES = {"scatter3d": "3D Scatter", "bar3d": "3D Bar"}

# Group reducers; "count" ignores the values
GROUP_REDUCERS = {
    "sum": "sum",
    "avg": "mean",
    "count": "size",
    "min": "min",
    "max": "max",
}


# =============================================================================
# REQUEST
# =============================================================================

@dataclass(frozen=True)
class ChartRequest:
    """A validated-shape chart request (axis membership is checked later)."""
    chart_kind: str
    x_axis: str
    y_axis: str
    z_axis: str | None = None
    aggregation: str = "none"
    dataset_id: str | None = None
    title: str | None = None
    description: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ChartRequest":
        """
        Parse the HTTP JSON body
        {fileId, chartType, xAxis, yAxis, zAxis?, aggregation?, title?, description?}.

        Raises:
            InvalidChartRequestError: Missing required field, unknown kind
                or unknown aggregation
        """
        missing = [
            key for key in ("fileId", "chartType", "xAxis", "yAxis")
            if not payload.get(key)
        ]
        if missing:
            raise InvalidChartRequestError(
                "Please provide fileId, chartType, xAxis, and yAxis"
            )

        return cls(
            chart_kind=sanitize_chart_kind(payload["chartType"]),
            x_axis=str(payload["xAxis"]),
            y_axis=str(payload["yAxis"]),
            z_axis=payload.get("zAxis") or None,
            aggregation=sanitize_aggregation(payload.get("aggregation")),
            dataset_id=str(payload["fileId"]),
            title=payload.get("title") or None,
            description=payload.get("description") or None,
        )


# =============================================================================
# DERIVATION
# =============================================================================

def derive_chart_data(dataset: Dataset, request: ChartRequest) -> dict:
    """
    Transform a dataset into chart-ready data.

    Args:
        dataset: Source dataset (never mutated)
        request: Chart request

    Returns:
        2D series dict or 3D trace dict (see module docstring)

    Raises:
        InvalidChartRequestError: Unknown chart kind / aggregation
        InvalidAxisError: x or y not a header
        Missing3DAxisError: 3D kind without a valid z axis
    """
    kind = sanitize_chart_kind(request.chart_kind)
    aggregation = sanitize_aggregation(request.aggregation)
    validate_axes(dataset.headers, request.x_axis, request.y_axis, request.z_axis, kind)

    if is_3d_kind(kind):
        chart_data = _build_3d_traces(dataset, request.x_axis, request.y_axis, request.z_axis, kind)
    elif aggregation == "none":
        chart_data = _build_raw_series(dataset, request.x_axis, request.y_axis)
    else:
        chart_data = _build_aggregated_series(
            dataset, request.x_axis, request.y_axis, aggregation, kind
        )

    return sanitize_dict_for_json(chart_data)


def _build_3d_traces(
    dataset: Dataset,
    x_axis: str,
    y_axis: str,
    z_axis: str,
    kind: str,
) -> dict:
    """One scatter3d trace with per-point hover text."""
    x_tagged = [coerce_axis_value(v) for v in dataset.column(x_axis)]
    y_values = [coerce_or_zero(v) for v in dataset.column(y_axis)]
    z_values = [coerce_or_zero(v) for v in dataset.column(z_axis)]

    hover = [
        f"{x_axis}: {_hover_value(x)}<br>{y_axis}: {format_number(y)}<br>{z_axis}: {format_number(z)}"
        for x, y, z in zip(x_tagged, y_values, z_values)
    ]

    marker = dict(MARKER_STYLES[kind])
    marker["color"] = z_values

    trace = go.Scatter3d(
        x=[axis_value_payload(x) for x in x_tagged],
        y=y_values,
        z=z_values,
        mode="markers",
        marker=marker,
        text=hover,
    )
    layout = go.Layout(
        scene=dict(
            xaxis=dict(title=dict(text=x_axis)),
            yaxis=dict(title=dict(text=y_axis)),
            zaxis=dict(title=dict(text=z_axis)),
        ),
        title=dict(text=f"{TITLE_PREFIXES[kind]}: {x_axis} vs {y_axis} vs {z_axis}"),
    )

    return {
        "data": [trace.to_plotly_json()],
        "layout": layout.to_plotly_json(),
    }


def _hover_value(value: AxisValue) -> str:
    if isinstance(value, Numeric):
        return format_number(value.value)
    return value.value


def _build_raw_series(dataset: Dataset, x_axis: str, y_axis: str) -> dict:
    """Row-order labels and y values, one color."""
    labels = dataset.column(x_axis)
    values = [coerce_or_zero(v) for v in dataset.column(y_axis)]
    color = generate_colors(1)[0]

    return {
        "labels": labels,
        "datasets": [{
            "label": y_axis,
            "data": values,
            "backgroundColor": color,
            "borderColor": color,
        }],
    }


def _build_aggregated_series(
    dataset: Dataset,
    x_axis: str,
    y_axis: str,
    aggregation: str,
    kind: str,
) -> dict:
    """One value per distinct x, in first-seen order."""
    frame = pd.DataFrame({
        "key": [group_key(v) for v in dataset.column(x_axis)],
        "value": [coerce_or_zero(v) for v in dataset.column(y_axis)],
    })

    grouped = frame.groupby("key", sort=False)["value"]
    reduced = getattr(grouped, GROUP_REDUCERS[aggregation])()
    labels = [str(label) for label in reduced.index]
    values = reduced.tolist()

    colors = generate_colors(max(len(labels), 1))
    if kind in CATEGORICAL_COLOR_KINDS:
        background = border = colors[:len(labels)]
    else:
        background = border = colors[0]

    return {
        "labels": labels,
        "datasets": [{
            "label": y_axis,
            "data": values,
            "backgroundColor": background,
            "borderColor": border,
        }],
    }


# =============================================================================
# CHART RECORD
# =============================================================================

def build_chart_record(
    user_id: str,
    dataset: Dataset,
    request: ChartRequest,
    chart_data: dict,
) -> dict:
    """Persistable chart entity owned by `user_id`, referencing `dataset`."""
    return {
        "id": uuid4().hex,
        "userId": user_id,
        "fileId": dataset.id,
        "chartType": request.chart_kind,
        "chartConfig": {
            "xAxis": request.x_axis,
            "yAxis": request.y_axis,
            "zAxis": request.z_axis,
            "aggregation": request.aggregation or "none",
        },
        "chartData": chart_data,
        "title": request.title or f"{request.y_axis} vs {request.x_axis}",
        "description": request.description or "",
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }


def generate_chart(user_id: str, dataset: Dataset, request: ChartRequest) -> dict:
    """
    Derive chart data and wrap it in a chart record.

    The dataset gains a back-reference to the new chart.
    """
    chart_data = derive_chart_data(dataset, request)
    record = build_chart_record(user_id, dataset, request, chart_data)
    dataset.chart_ids.append(record["id"])
    return record
