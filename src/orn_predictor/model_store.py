"""
ORN Prognosis Model - Model Store
=================================

Read-only artifacts loaded once at process start:

- the fitted Fine-Gray competing-risks model (YAML), and
- three cohort-average reference CIF curves (CSV, columns Time,MeanCIF).

Fine-Gray Prediction
--------------------
The subdistribution hazard model gives the cumulative incidence of the
cause of interest as:

    F(t|x) = 1 - exp(-H₀(t) × exp(x'β))

Where:
- H₀(t) is the baseline cumulative subdistribution hazard, a right-
  continuous step function over the event times seen in training
- x is the design row: treatment-contrast dummies for each factor
  (first level is the reference) followed by the numeric covariates
- β are the fitted coefficients

H₀ is zero before the first event time and held at its last value after
the final event time.

Everything here is immutable after load: frozen dataclasses, read-only
mappings and read-only numpy arrays. The store is shared by every session
without locking.
"""

import logging
from types import MappingProxyType
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import yaml

from .config import AppSettings, ReferenceOption, REFERENCE_STYLES

logger = logging.getLogger(__name__)


class ArtifactError(RuntimeError):
    """A startup artifact is missing or malformed."""


# =============================================================================
# FITTED MODEL
# =============================================================================

@dataclass(frozen=True, eq=False)
class FineGrayModel:
    """
    Fitted Fine-Gray model for a single cause.

    Attributes:
        cause: Event type the subdistribution hazard was fitted for
        features: Covariate columns in model order
        factor_levels: Factor column -> levels in training order
        coefficients: Design column -> log subdistribution hazard ratio.
            Dummy columns are named column + level, e.g. "Node2".
        baseline_times: Sorted event times (months)
        baseline_cumhaz: H₀ at each event time, non-decreasing
        version: Artifact version string
    """
    cause: int
    features: Tuple[str, ...]
    factor_levels: Mapping[str, Tuple[str, ...]]
    coefficients: Mapping[str, float]
    baseline_times: np.ndarray
    baseline_cumhaz: np.ndarray
    version: str = "unknown"

    @property
    def max_time(self) -> float:
        return float(self.baseline_times[-1]) if len(self.baseline_times) else 0.0

    def design_columns(self) -> List[str]:
        """Design-matrix column names in model order."""
        columns = []
        for feature in self.features:
            if feature in self.factor_levels:
                columns.extend(f"{feature}{level}" for level in self.factor_levels[feature][1:])
            else:
                columns.append(feature)
        return columns

    def design_row(self, row: pd.Series) -> np.ndarray:
        """
        Expand one encoded covariate row into the design vector.

        Raises:
            KeyError: if a model feature is absent from the row
            ValueError: if a factor value is not one of the model levels
        """
        values = []
        for feature in self.features:
            value = row[feature]
            if feature in self.factor_levels:
                levels = self.factor_levels[feature]
                if value not in levels:
                    raise ValueError(f"{feature}={value!r} is not a fitted level {list(levels)}")
                values.extend(1.0 if value == level else 0.0 for level in levels[1:])
            else:
                values.append(float(value))
        return np.asarray(values, dtype=float)

    def linear_predictor(self, row: pd.Series) -> float:
        beta = np.array([self.coefficients[c] for c in self.design_columns()], dtype=float)
        lp = float(self.design_row(row) @ beta)
        logger.debug(f"Linear predictor: {lp:.4f}")
        return lp

    def baseline_at(self, times: Sequence[float]) -> np.ndarray:
        """Step-function lookup of H₀ at arbitrary times."""
        t = np.asarray(times, dtype=float)
        idx = np.searchsorted(self.baseline_times, t, side="right") - 1
        safe_idx = np.clip(idx, 0, None)
        return np.where(idx >= 0, self.baseline_cumhaz[safe_idx], 0.0)

    def cumulative_incidence(self, row: pd.Series, times: Sequence[float]) -> np.ndarray:
        """F(t|x) for one covariate row at each requested time."""
        risk = np.exp(self.linear_predictor(row))
        cif = 1.0 - np.exp(-self.baseline_at(times) * risk)
        return np.clip(cif, 0.0, 1.0)


def _read_only(values, name: str) -> np.ndarray:
    try:
        arr = np.array(values, dtype=float)
    except (TypeError, ValueError) as exc:
        raise ArtifactError(f"{name} must be numeric") from exc
    arr.setflags(write=False)
    return arr


def load_model(path: Path) -> FineGrayModel:
    """
    Load a fitted model from YAML.

    Expected layout:

        metadata: {version: ..., cause: 1}
        features: [column, ...]
        factors: {column: [level, ...], ...}
        coefficients: {design_column: beta, ...}
        baseline: {time: [...], cumhaz: [...]}

    Raises:
        ArtifactError: if the file is missing or inconsistent
    """
    path = Path(path)
    if not path.exists():
        raise ArtifactError(f"Model artifact not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ArtifactError(f"Model artifact is not valid YAML: {path}") from exc

    if not isinstance(data, dict):
        raise ArtifactError(f"Model artifact must be a mapping: {path}")

    missing = [k for k in ("features", "coefficients", "baseline") if k not in data]
    if missing:
        raise ArtifactError(f"Model artifact missing sections: {missing}")

    metadata = data.get("metadata", {}) or {}
    features = tuple(str(f) for f in data["features"])
    factors = {
        str(k): tuple(str(level) for level in v)
        for k, v in (data.get("factors") or {}).items()
    }
    unknown = [k for k in factors if k not in features]
    if unknown:
        raise ArtifactError(f"Factors not listed in features: {unknown}")

    baseline = data["baseline"] or {}
    times = _read_only(baseline.get("time", []), "baseline.time")
    cumhaz = _read_only(baseline.get("cumhaz", []), "baseline.cumhaz")
    if times.shape != cumhaz.shape or times.ndim != 1 or len(times) == 0:
        raise ArtifactError("baseline.time and baseline.cumhaz must be equal-length, non-empty lists")
    if np.any(times < 0) or np.any(np.diff(times) <= 0):
        raise ArtifactError("baseline.time must be non-negative and strictly increasing")
    if np.any(cumhaz < 0) or np.any(np.diff(cumhaz) < 0):
        raise ArtifactError("baseline.cumhaz must be non-negative and non-decreasing")

    try:
        coefficients = {str(k): float(v) for k, v in data["coefficients"].items()}
    except (TypeError, ValueError) as exc:
        raise ArtifactError("coefficients must map names to numbers") from exc

    model = FineGrayModel(
        cause=int(metadata.get("cause", 1)),
        features=features,
        factor_levels=MappingProxyType(factors),
        coefficients=MappingProxyType(coefficients),
        baseline_times=times,
        baseline_cumhaz=cumhaz,
        version=str(metadata.get("version", "unknown")),
    )

    expected = model.design_columns()
    absent = [c for c in expected if c not in coefficients]
    extra = [c for c in coefficients if c not in expected]
    if absent or extra:
        raise ArtifactError(f"Coefficient mismatch: missing {absent}, unexpected {extra}")

    logger.info(
        f"Loaded Fine-Gray model v{model.version} (cause {model.cause}, "
        f"{len(expected)} terms, horizon {model.max_time:g} months)"
    )
    return model


# =============================================================================
# REFERENCE CURVES
# =============================================================================

@dataclass(frozen=True, eq=False)
class ReferenceCurve:
    """Cohort-average CIF trajectory, sorted by time."""
    option: ReferenceOption
    times: np.ndarray
    mean_cif: np.ndarray

    @property
    def label(self) -> str:
        return REFERENCE_STYLES[self.option].label

    def to_frame(self) -> pd.DataFrame:
        """Fresh (Time, MeanCIF) frame; edits never reach the store."""
        return pd.DataFrame({"Time": self.times.copy(), "MeanCIF": self.mean_cif.copy()})


def load_reference_curve(option: ReferenceOption, path: Path) -> ReferenceCurve:
    """
    Load a reference curve CSV.

    Raises:
        ArtifactError: if the file is missing, lacks Time/MeanCIF or holds
            non-numeric values
    """
    path = Path(path)
    if not path.exists():
        raise ArtifactError(f"Reference curve not found: {path}")

    df = pd.read_csv(path)
    missing = [c for c in ("Time", "MeanCIF") if c not in df.columns]
    if missing:
        raise ArtifactError(f"{path.name}: missing columns {missing}")

    df = df[["Time", "MeanCIF"]].apply(pd.to_numeric, errors="coerce")
    if df.empty or df.isna().any().any():
        raise ArtifactError(f"{path.name}: empty or non-numeric Time/MeanCIF values")

    df = df.sort_values("Time", kind="stable")

    logger.info(f"Loaded reference curve '{option.value}' ({len(df)} rows) from {path.name}")
    return ReferenceCurve(
        option=option,
        times=_read_only(df["Time"].to_numpy(), f"{path.name}:Time"),
        mean_cif=_read_only(df["MeanCIF"].to_numpy(), f"{path.name}:MeanCIF"),
    )


# =============================================================================
# STORE
# =============================================================================

@dataclass(frozen=True, eq=False)
class ModelStore:
    """Everything a request handler needs; built once, shared by reference."""
    model: FineGrayModel
    references: Mapping[ReferenceOption, ReferenceCurve]

    def reference(self, option: ReferenceOption) -> ReferenceCurve:
        return self.references[option]


def load_model_store(settings: Optional[AppSettings] = None) -> ModelStore:
    """
    Load the model and all reference curves.

    Any failure is fatal for the process: the caller should not serve
    predictions without a complete store.
    """
    settings = settings or AppSettings.from_env()
    logger.info(f"Loading artifacts from {settings.artifact_dir}")

    model = load_model(settings.model_path)
    references: Dict[ReferenceOption, ReferenceCurve] = {
        option: load_reference_curve(option, settings.reference_path(option))
        for option in ReferenceOption
    }
    return ModelStore(model=model, references=MappingProxyType(references))
