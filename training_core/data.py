from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd

from training_core.filters import COURSE_TYPES, DashboardFilters, apply_filters, normalize_filters


logger = logging.getLogger(__name__)

DATA_URL_ENV = "TRAINING_DATA_URL"
DATA_DIR_ENV = "TRAINING_DATA_DIR"
DATA_DIR = Path(__file__).resolve().parents[1] / "data"
FILE_GLOB = "*.csv"

# Published sheet header -> record field.
RECORD_COLUMNS = {
    "Trainee Name": "trainee_name",
    "Email": "email",
    "Branch": "branch",
    "District Head": "district_head",
    "Supervisor": "supervisor",
    "Course Title": "course_title",
    "Completion Rate (%)": "completion_rate",
    "Pre-Assessment Score": "pre_assessment_score",
    "Post-Assessment Score": "post_assessment_score",
    "Average Quiz Score": "average_quiz_score",
    "Course Type": "course_type",
    "Completion Date": "completion_date",
    "Training Hours": "training_hours",
}

TEXT_FIELDS = ["trainee_name", "email", "branch", "district_head", "supervisor", "course_title", "course_type"]
NUMERIC_FIELDS = [
    "completion_rate",
    "pre_assessment_score",
    "post_assessment_score",
    "average_quiz_score",
    "training_hours",
]
RECORD_FIELDS = [
    "id",
    "trainee_name",
    "email",
    "branch",
    "district_head",
    "supervisor",
    "course_title",
    "completion_rate",
    "pre_assessment_score",
    "post_assessment_score",
    "average_quiz_score",
    "course_type",
    "completion_date",
    "training_hours",
]

_LEADING_NUMBER = r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"


class DataSourceError(RuntimeError):
    pass


class CourseType(str, Enum):
    MANDATORY = "Mandatory"
    OPTIONAL = "Optional"


@dataclass(frozen=True)
class TrainingRecord:
    id: int
    trainee_name: str
    email: str
    branch: str
    district_head: str
    supervisor: str
    course_title: str
    completion_rate: float
    pre_assessment_score: float
    post_assessment_score: float
    average_quiz_score: float
    course_type: CourseType
    completion_date: datetime
    training_hours: float


# ---------------- Helpers ----------------
def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    """Round the exact binary value half away from zero (fixed-point display rounding)."""
    if value is None or pd.isna(value):
        return None
    q = Decimal(10) ** -ndigits
    return float(Decimal(float(value)).quantize(q, rounding=ROUND_HALF_UP))


def safe_div(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return float(numerator) / float(denominator)


def rank_by(df: pd.DataFrame, column: str) -> pd.DataFrame:
    """Stable descending sort on `column` with a sequential 1..N rank (ties keep input order)."""
    ranked = df.sort_values(column, ascending=False, kind="mergesort").reset_index(drop=True)
    ranked.insert(0, "rank", range(1, len(ranked) + 1))
    return ranked


def leading_number(series: pd.Series) -> pd.Series:
    """Parse the leading numeric prefix of each cell ("85%" -> 85); anything else becomes 0."""
    extracted = series.astype(str).str.extract(_LEADING_NUMBER, expand=False)
    return pd.to_numeric(extracted, errors="coerce").fillna(0.0).astype(float)


def _record_row(record: Union[TrainingRecord, Dict[str, Any]]) -> Dict[str, Any]:
    row = asdict(record) if isinstance(record, TrainingRecord) else dict(record)
    course_type = row.get("course_type")
    if isinstance(course_type, CourseType):
        row["course_type"] = course_type.value
    return row


def _coerce_record_dtypes(df: pd.DataFrame) -> pd.DataFrame:
    df["id"] = pd.to_numeric(df["id"]).astype("int64")
    for col in TEXT_FIELDS:
        df[col] = df[col].fillna("").astype(str)
    for col in NUMERIC_FIELDS:
        df[col] = pd.to_numeric(df[col]).fillna(0.0).astype(float)
    df["completion_date"] = pd.to_datetime(df["completion_date"])
    return df


def records_to_frame(records: Iterable[Union[TrainingRecord, Dict[str, Any]]]) -> pd.DataFrame:
    """Build the record store frame from TrainingRecord objects (or equivalent dicts)."""
    rows = [_record_row(r) for r in records]
    return _coerce_record_dtypes(pd.DataFrame(rows, columns=RECORD_FIELDS))


def empty_records_frame() -> pd.DataFrame:
    return records_to_frame([])


def filter_options(records: pd.DataFrame) -> Dict[str, List[str]]:
    def distinct(col: str) -> List[str]:
        if records.empty:
            return []
        return sorted(v for v in records[col].unique().tolist() if v)

    return {
        "branches": distinct("branch"),
        "district_heads": distinct("district_head"),
        "supervisors": distinct("supervisor"),
        "courses": distinct("course_title"),
        "course_types": list(COURSE_TYPES),
    }


# ---------------- Loaders ----------------
def get_data_source() -> Optional[str]:
    url = os.environ.get(DATA_URL_ENV, "").strip()
    if url:
        return url
    data_dir = Path(os.environ.get(DATA_DIR_ENV) or DATA_DIR)
    files = sorted(data_dir.glob(FILE_GLOB))
    return str(files[-1]) if files else None


def source_signature(source: str) -> Tuple[str, float]:
    path = Path(source)
    if "://" not in source and path.exists():
        return str(path), path.stat().st_mtime
    return source, 0.0


def parse_training_frame(raw: pd.DataFrame, *, now: Optional[datetime] = None) -> pd.DataFrame:
    """Map a raw sheet export (all-string cells) onto the record store schema."""
    raw = raw.rename(columns=lambda c: str(c).strip())
    df = pd.DataFrame(index=range(len(raw)))
    for header, col in RECORD_COLUMNS.items():
        values = raw[header] if header in raw.columns else pd.Series("", index=raw.index)
        df[col] = values.fillna("").astype(str).str.strip().to_numpy()

    df.insert(0, "id", range(1, len(df) + 1))
    for col in NUMERIC_FIELDS:
        df[col] = leading_number(df[col])
    df["course_type"] = df["course_type"].where(df["course_type"] == CourseType.MANDATORY.value, CourseType.OPTIONAL.value)

    dates = pd.to_datetime(df["completion_date"], errors="coerce", format="mixed")
    invalid = dates.isna()
    if invalid.any():
        logger.warning(
            "Invalid completion date in %d row(s) (ids %s); falling back to load time",
            int(invalid.sum()),
            df.loc[invalid, "id"].head(10).tolist(),
        )
        dates = dates.fillna(pd.Timestamp(now or datetime.now()))
    df["completion_date"] = dates
    return _coerce_record_dtypes(df[RECORD_FIELDS])


def load_training_records(source: str) -> pd.DataFrame:
    try:
        raw = pd.read_csv(source, dtype=str, keep_default_na=False, skip_blank_lines=True)
    except (OSError, ValueError) as exc:
        raise DataSourceError(f"Failed to load training data from {source}: {exc}") from exc
    records = parse_training_frame(raw)
    logger.info("Loaded %d training records from %s", len(records), source)
    return records


# ---------------- Public API (Streamlit parity + FastAPI use) ----------------
@lru_cache(maxsize=4)
def _load_dashboard_data_cached(source_sig: Tuple[str, float]) -> Dict[str, object]:
    source, _ = source_sig
    records = load_training_records(source)
    return {"source": source, "records": records, "options": filter_options(records)}


def load_dashboard_data() -> Dict[str, object]:
    source = get_data_source()
    if not source:
        raise DataSourceError(
            f"No training data configured: set {DATA_URL_ENV} to a published CSV export "
            f"or place a *.csv file under {os.environ.get(DATA_DIR_ENV) or DATA_DIR}"
        )
    return _load_dashboard_data_cached(source_signature(source))


def prepare_context(filters: dict | DashboardFilters, data_ctx: Dict[str, object]) -> Dict[str, object]:
    records: pd.DataFrame = data_ctx.get("records")
    if records is None:
        records = empty_records_frame()
    filt = filters if isinstance(filters, DashboardFilters) else normalize_filters(filters)
    return {
        "filters": filt,
        "records": records,
        "filtered": apply_filters(records, filt),
        "options": data_ctx.get("options") or filter_options(records),
    }
