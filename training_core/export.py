from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd


def _export_cell(value: Any) -> str:
    if value is None or value is pd.NaT:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    if isinstance(value, (datetime, date)):
        # en-US short date, e.g. 1/5/2024
        return f"{value.month}/{value.day}/{value.year}"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def exportable_columns(rows: Sequence[Dict[str, Any]], columns: Optional[List[str]] = None) -> List[str]:
    if not rows:
        return []
    columns = columns or list(rows[0].keys())
    return [c for c in columns if not any(callable(row.get(c)) for row in rows)]


def rows_to_csv(rows: Sequence[Dict[str, Any]], columns: Optional[List[str]] = None) -> bytes:
    """Serialize result rows to CSV bytes (header from the first row unless `columns` is given)."""
    cols = exportable_columns(rows, columns)
    if not cols:
        return b""
    df = pd.DataFrame([{c: _export_cell(row.get(c)) for c in cols} for row in rows], columns=cols)
    return df.to_csv(index=False, lineterminator="\n").encode("utf-8")


def frame_to_csv(df: pd.DataFrame) -> bytes:
    return rows_to_csv(df.to_dict(orient="records"))
