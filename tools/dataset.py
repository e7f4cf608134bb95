# dataset.py — In-memory dataset model & schema inference
"""
dataset.py — Dataset Model

An uploaded table as an ordered list of records plus headers.
Headers are the keys of the first record, in their original order;
row/column counts are derived, never stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping
from uuid import uuid4

import numpy as np
import pandas as pd

from tools.validators import EmptyDatasetError, sanitize_dict_for_json


# =============================================================================
# CONSTANTS
# =============================================================================

OVERVIEW_PREVIEW_ROWS = 10


# =============================================================================
# MODEL
# =============================================================================

@dataclass
class Dataset:
    """
    A parsed upload.

    Records are read-only for every consumer. The back-reference fields
    (chart_ids, insight_id) are the only attributes updated after creation.
    """
    name: str
    headers: list[str]
    records: list[dict[str, Any]]
    id: str = field(default_factory=lambda: uuid4().hex)
    owner_id: str | None = None
    chart_ids: list[str] = field(default_factory=list)
    insight_id: str | None = None

    @property
    def row_count(self) -> int:
        return len(self.records)

    @property
    def column_count(self) -> int:
        return len(self.headers)

    def column(self, header: str) -> list[Any]:
        """Values of one column in row order; absent keys read as None."""
        return [record.get(header) for record in self.records]

    def to_frame(self) -> pd.DataFrame:
        """
        Object-dtype DataFrame with one column per header.

        Raw cell values are preserved (no dtype inference) so the
        coercion rules see exactly what was uploaded.
        """
        return pd.DataFrame(
            {header: pd.Series(self.column(header), dtype=object) for header in self.headers},
            columns=self.headers,
        )


# =============================================================================
# SCHEMA INFERENCE
# =============================================================================

def infer_dataset(
    records: Iterable[Mapping[str, Any]],
    name: str = "dataset",
    owner_id: str | None = None,
) -> Dataset:
    """
    Build a Dataset from spreadsheet records.

    Args:
        records: Ordered flat key -> value records (null for empty cells)
        name: Original filename
        owner_id: Uploading user

    Returns:
        Dataset whose headers are the first record's keys

    Raises:
        EmptyDatasetError: If there are no records
    """
    rows = [dict(record) for record in records]
    if not rows:
        raise EmptyDatasetError("Excel file is empty")

    headers = [str(key) for key in rows[0].keys()]
    return Dataset(name=name, headers=headers, records=rows, owner_id=owner_id)


def records_from_frame(df: pd.DataFrame) -> list[dict[str, Any]]:
    """
    Convert a parsed sheet to records with a null fill for empty cells.

    Every record carries every column, NaN/NaT become None and numpy
    scalars become Python scalars.
    """
    if df is None or df.empty:
        return []

    frame = df.copy()
    frame.columns = [str(c) for c in frame.columns]
    frame = frame.astype(object).where(pd.notna(frame), None)

    records = []
    for row in frame.to_dict(orient="records"):
        records.append({key: _native_cell(value) for key, value in row.items()})
    return records


def _native_cell(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if isinstance(value, np.generic):
        return value.item()
    return value


def dataset_overview(dataset: Dataset) -> dict:
    """Upload response payload: identity, counts, headers and a preview."""
    return sanitize_dict_for_json({
        "fileId": dataset.id,
        "filename": dataset.name,
        "rowCount": dataset.row_count,
        "columnCount": dataset.column_count,
        "headers": list(dataset.headers),
        "preview": dataset.records[:OVERVIEW_PREVIEW_ROWS],
    })
