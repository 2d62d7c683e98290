"""
ORN Prognosis Model - Prediction Service
========================================

Turns one set of form values into CIF estimates for ORN (cause 1).

Each submission:
1. builds a CovariateRecord from the form state
2. encodes it into a one-row frame matching the model's training encoding
3. predicts the CIF over the dense grid (chart) and over the requested
   time points (table)

Encoding is the only place a prediction can go wrong in a way the user
cannot see: a factor level that does not line up with training silently
shifts the linear predictor. encode_record() therefore compares every
factor's level list with the fitted model's before any arithmetic, and
refuses to encode on a mismatch.
"""

import logging
import math
from dataclasses import dataclass, fields
from typing import Mapping, Sequence, Tuple, Type

import numpy as np
import pandas as pd

from .config import (
    CovariateLevel, TumorSite, PeriodontalGrade, NodeStatus, InsuranceType, TumorStage,
    CATEGORICAL_FIELDS, NUMERIC_FIELDS, FEATURE_COLUMNS,
    CAUSE_OF_INTEREST, TIME_GRID, DEFAULT_TIME_POINTS,
)
from .model_store import FineGrayModel, ModelStore

logger = logging.getLogger(__name__)


class CovariateError(ValueError):
    """Form values cannot form a valid CovariateRecord."""


class LevelMismatchError(ValueError):
    """Record cannot be encoded the way the model was trained."""


# =============================================================================
# COVARIATE RECORD
# =============================================================================

# Record attribute -> model column
COLUMN_NAMES = {
    "tumor_site": "Disease_Site_Merged_2",
    "periodontal_grade": "Periodontal_Grading",
    "node_status": "Node",
    "insurance_type": "Insurance_Type",
    "tumor_stage": "T",
    "age": "Age",
    "d10cc": "D10cc",
    "rt_dose": "RT_Dose",
    "smoking_pack_years": "Smoking_Pack_per_Year",
    "teeth_before_extraction": "Number_Teeth_before_Extraction",
}


@dataclass(frozen=True)
class CovariateRecord:
    """
    One patient's covariates, built fresh from the form on each submission.

    Attributes:
        tumor_site: Disease site (Others / Oropharynx / Oral Cavity)
        periodontal_grade: Periodontal grading 0-IV
        node_status: N0-N3
        insurance_type: None / Private / Public
        tumor_stage: T0-T4
        age: Years
        d10cc: Dose to the hottest 10cc of mandible (Gy)
        rt_dose: Total prescribed RT dose (Gy)
        smoking_pack_years: Pack-years
        teeth_before_extraction: Teeth present before extraction
    """
    tumor_site: TumorSite
    periodontal_grade: PeriodontalGrade
    node_status: NodeStatus
    insurance_type: InsuranceType
    tumor_stage: TumorStage
    age: float
    d10cc: float
    rt_dose: float
    smoking_pack_years: float
    teeth_before_extraction: float

    def __post_init__(self):
        for f in fields(self):
            column = COLUMN_NAMES[f.name]
            value = getattr(self, f.name)
            if column in CATEGORICAL_FIELDS:
                enum_cls = CATEGORICAL_FIELDS[column].enum_cls
                if not isinstance(value, enum_cls):
                    raise CovariateError(f"{f.name} must be a {enum_cls.__name__}, got {value!r}")
            else:
                bounds = NUMERIC_FIELDS[column]
                if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                    raise CovariateError(f"{f.name} must be a finite number, got {value!r}")
                if not bounds.contains(value):
                    raise CovariateError(
                        f"{f.name}={value:g} outside {bounds.min_value:g}-{bounds.max_value:g}"
                    )

    @classmethod
    def from_form(cls, values: Mapping[str, object]) -> "CovariateRecord":
        """
        Build a record from raw widget values keyed by model column name.

        Categorical values may be enum members or their level strings
        ("0", "1", ...); numeric values anything float() accepts.
        """
        kwargs = {}
        for attr, column in COLUMN_NAMES.items():
            if column not in values:
                raise CovariateError(f"Missing value for {column}")
            raw = values[column]
            if column in CATEGORICAL_FIELDS:
                kwargs[attr] = _coerce_level(CATEGORICAL_FIELDS[column].enum_cls, raw, column)
            else:
                try:
                    kwargs[attr] = float(raw)
                except (TypeError, ValueError) as exc:
                    raise CovariateError(f"{column} must be numeric, got {raw!r}") from exc
        return cls(**kwargs)

    def to_row(self) -> dict:
        """Column name -> level string or float."""
        row = {}
        for attr, column in COLUMN_NAMES.items():
            value = getattr(self, attr)
            row[column] = value.value if isinstance(value, CovariateLevel) else float(value)
        return row


def _coerce_level(enum_cls: Type[CovariateLevel], raw, column: str) -> CovariateLevel:
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw))
    except ValueError as exc:
        raise CovariateError(
            f"{column}={raw!r} is not one of {enum_cls.levels()}"
        ) from exc


def encode_record(record: CovariateRecord, model: FineGrayModel) -> pd.DataFrame:
    """
    Encode a record as a one-row frame in the model's column order.

    Factor columns are pandas Categoricals carrying the full level set,
    including levels not selected, so the encoding matches training.

    Raises:
        LevelMismatchError: if the model's features or factor levels differ
            from the form's, or a value is outside the fitted levels
    """
    if sorted(model.features) != sorted(FEATURE_COLUMNS):
        raise LevelMismatchError(
            f"Model features {list(model.features)} do not match form fields {FEATURE_COLUMNS}"
        )

    row = record.to_row()
    columns = {}
    for column in model.features:
        if column in CATEGORICAL_FIELDS:
            levels = CATEGORICAL_FIELDS[column].enum_cls.levels()
            fitted = list(model.factor_levels.get(column, ()))
            if fitted != levels:
                raise LevelMismatchError(
                    f"{column}: form levels {levels} do not match fitted levels {fitted}"
                )
            if row[column] not in fitted:
                raise LevelMismatchError(f"{column}={row[column]!r} not in fitted levels {fitted}")
            columns[column] = pd.Categorical([row[column]], categories=levels)
        else:
            if column in model.factor_levels:
                raise LevelMismatchError(f"{column} is numeric on the form but a factor in the model")
            columns[column] = [row[column]]

    return pd.DataFrame(columns, columns=list(model.features))


# =============================================================================
# PREDICTION
# =============================================================================

@dataclass(frozen=True)
class PredictionResult:
    """CIF of the cause of interest at each time, in request order."""
    times: Tuple[float, ...]
    cif: Tuple[float, ...]

    def __post_init__(self):
        if len(self.times) != len(self.cif):
            raise ValueError("times and cif must have equal length")

    def __len__(self):
        return len(self.times)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"Time": list(self.times), "CIF": list(self.cif)})


def predict_risk(
    model: FineGrayModel,
    record: CovariateRecord,
    times: Sequence[float],
    cause: int = CAUSE_OF_INTEREST
) -> np.ndarray:
    """
    Predicted CIF for one record at each requested time.

    Args:
        model: Fitted model from the store (not modified)
        record: Patient covariates (not modified)
        times: Non-negative times in months, any order
        cause: Event type to report; must be the model's fitted cause

    Returns:
        Array of CIF values in [0, 1], one per time, same order

    Raises:
        LevelMismatchError: on an encoding mismatch
        ValueError: on a foreign cause or a negative / non-finite time
    """
    if cause != model.cause:
        raise ValueError(f"Model was fitted for cause {model.cause}, not {cause}")

    t = np.asarray(list(times), dtype=float)
    if t.ndim != 1:
        raise ValueError("times must be a flat sequence")
    if not np.all(np.isfinite(t)) or np.any(t < 0):
        raise ValueError(f"times must be finite and non-negative: {t.tolist()}")

    frame = encode_record(record, model)
    return model.cumulative_incidence(frame.iloc[0], t)


# =============================================================================
# TIME POINTS
# =============================================================================

@dataclass(frozen=True)
class TimePointsRequest:
    """Requested horizons in input order; used_default marks the fallback."""
    times: Tuple[float, ...]
    used_default: bool = False


def parse_time_points(text: str) -> TimePointsRequest:
    """
    Parse comma-separated time points.

    Entries that are not finite non-negative numbers are dropped. Order
    and duplicates are kept. If nothing survives, DEFAULT_TIME_POINTS is
    returned with used_default=True.

    >>> parse_time_points("abc, 200").times
    (200.0,)
    """
    times = []
    for token in (text or "").split(","):
        token = token.strip()
        if not token:
            continue
        try:
            value = float(token)
        except ValueError:
            logger.debug(f"Dropping time point {token!r}")
            continue
        if math.isfinite(value) and value >= 0:
            times.append(value)
        else:
            logger.debug(f"Dropping time point {token!r}")

    if not times:
        return TimePointsRequest(times=DEFAULT_TIME_POINTS, used_default=True)
    return TimePointsRequest(times=tuple(times))


# =============================================================================
# REQUEST HANDLER
# =============================================================================

@dataclass(frozen=True)
class PredictionOutput:
    """Everything one submission renders."""
    record: CovariateRecord
    time_request: TimePointsRequest
    curve: PredictionResult
    at_times: PredictionResult


def run_prediction(
    store: ModelStore,
    record: CovariateRecord,
    time_request: TimePointsRequest
) -> PredictionOutput:
    """Predict over the dense grid and at the requested times."""
    grid_cif = predict_risk(store.model, record, TIME_GRID)
    point_cif = predict_risk(store.model, record, time_request.times)

    logger.info(
        f"Prediction: CIF at {TIME_GRID[-1]:g} months = {grid_cif[-1]:.3f}; "
        f"{len(time_request.times)} requested time point(s)"
    )

    return PredictionOutput(
        record=record,
        time_request=time_request,
        curve=PredictionResult(times=TIME_GRID, cif=tuple(float(c) for c in grid_cif)),
        at_times=PredictionResult(
            times=time_request.times, cif=tuple(float(c) for c in point_cif)
        ),
    )
