"""
statistics.py — Statistical Summarizer

Per-column min / max / avg / count over values that pass strict numeric
coercion. Columns without a single coercible value are omitted.

summarize_dataset() produces the payload consumed by insight generation:
{filename, rowCount, columnCount, headers, sampleData, statistics}
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from tools.coercion import coerce_series
from tools.dataset import Dataset
from tools.validators import sanitize_dict_for_json


# =============================================================================
# CONSTANTS
# =============================================================================

SAMPLE_ROWS = 5


# =============================================================================
# COLUMN STATISTICS
# =============================================================================

@dataclass(frozen=True)
class ColumnStats:
    min: float
    max: float
    avg: float
    count: int

    def to_dict(self) -> dict:
        return {"min": self.min, "max": self.max, "avg": self.avg, "count": self.count}


def column_statistics(dataset: Dataset) -> dict[str, ColumnStats]:
    """
    Compute statistics for every header with at least one numeric value.

    Non-coercible cells are excluded, never counted as zero.

    Args:
        dataset: Source dataset (read only)

    Returns:
        {header: ColumnStats} in header order
    """
    frame = dataset.to_frame()

    result: dict[str, ColumnStats] = {}
    for header in dataset.headers:
        series = coerce_series(frame[header]).dropna()
        if series.empty:
            continue

        with np.errstate(over="ignore"):
            avg_val = float(series.mean())
        if not np.isfinite(avg_val):
            # sum overflowed; scaling first keeps the mean of finite values finite
            avg_val = float((series / len(series)).sum())

        result[header] = ColumnStats(
            min=float(series.min()),
            max=float(series.max()),
            avg=avg_val,
            count=int(len(series)),
        )

    return result


# =============================================================================
# DATA SUMMARY
# =============================================================================

def summarize_dataset(dataset: Dataset) -> dict:
    """
    Build the summary handed to insight generation.

    Returns:
        {
            filename: str,
            rowCount: int,
            columnCount: int,
            headers: list[str],
            sampleData: first 5 records,
            statistics: {header: {min, max, avg, count}}
        }
    """
    stats = column_statistics(dataset)

    return sanitize_dict_for_json({
        "filename": dataset.name,
        "rowCount": dataset.row_count,
        "columnCount": dataset.column_count,
        "headers": list(dataset.headers),
        "sampleData": dataset.records[:SAMPLE_ROWS],
        "statistics": {header: col.to_dict() for header, col in stats.items()},
    })
