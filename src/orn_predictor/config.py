"""
ORN Prognosis Model - Configuration & Domain Types
==================================================

This module defines the covariate domains, time grid and runtime settings
for the ORN (osteoradionecrosis) cumulative incidence dashboard.

Factor Levels
-------------
The Fine-Gray model was fitted with every categorical covariate encoded as
a factor with a fixed level order. The enums below declare those levels in
the same order. Member declaration order IS the training-time level order,
so reordering members silently changes the encoding.

Runtime Settings
----------------
Only the port, artifact directory and log level are configurable, all
through environment variables (see AppSettings).
"""

import logging
import os
from enum import Enum
from dataclasses import dataclass
from typing import Dict, List, Tuple, Type
from pathlib import Path


# =============================================================================
# CATEGORICAL COVARIATES
# =============================================================================

class CovariateLevel(str, Enum):
    """Base for categorical covariates; value is the factor level string."""

    @property
    def display_name(self) -> str:
        return LEVEL_LABELS[type(self)][self.value]

    @classmethod
    def levels(cls) -> List[str]:
        """Factor levels in training-time order."""
        return [member.value for member in cls]


class TumorSite(CovariateLevel):
    OTHERS = "0"
    OROPHARYNX = "1"
    ORAL_CAVITY = "2"


class PeriodontalGrade(CovariateLevel):
    GRADE_0 = "0"
    GRADE_I = "1"
    GRADE_II = "2"
    GRADE_III = "3"
    GRADE_IV = "4"


class NodeStatus(CovariateLevel):
    N0 = "0"
    N1 = "1"
    N2 = "2"
    N3 = "3"


class InsuranceType(CovariateLevel):
    NONE = "0"
    PRIVATE = "1"
    PUBLIC = "2"


class TumorStage(CovariateLevel):
    T0 = "0"
    T1 = "1"
    T2 = "2"
    T3 = "3"
    T4 = "4"


# Labels shown in the input form
LEVEL_LABELS: Dict[Type[CovariateLevel], Dict[str, str]] = {
    TumorSite: {"0": "Others", "1": "Oropharynx", "2": "Oral Cavity"},
    PeriodontalGrade: {"0": "0", "1": "I", "2": "II", "3": "III", "4": "IV"},
    NodeStatus: {"0": "N0", "1": "N1", "2": "N2", "3": "N3"},
    InsuranceType: {"0": "No Insurance", "1": "Private", "2": "Public"},
    TumorStage: {"0": "T0", "1": "T1", "2": "T2", "3": "T3", "4": "T4"},
}


# =============================================================================
# FEATURE SCHEMA
# =============================================================================

@dataclass(frozen=True)
class NumericField:
    """Bounded numeric input with the form default."""
    label: str
    min_value: float
    max_value: float
    default: float

    def contains(self, value: float) -> bool:
        return self.min_value <= value <= self.max_value


@dataclass(frozen=True)
class CategoricalField:
    """Closed choice input; default is a member of `enum_cls`."""
    label: str
    enum_cls: Type[CovariateLevel]
    default: CovariateLevel


# Model column name -> field definition. Keys are the column names the
# model was trained on.
CATEGORICAL_FIELDS: Dict[str, CategoricalField] = {
    "Disease_Site_Merged_2": CategoricalField("Tumor Site", TumorSite, TumorSite.ORAL_CAVITY),
    "Periodontal_Grading": CategoricalField(
        "Periodontal Grading", PeriodontalGrade, PeriodontalGrade.GRADE_III
    ),
    "Node": CategoricalField("Node Status", NodeStatus, NodeStatus.N2),
    "Insurance_Type": CategoricalField("Insurance Type", InsuranceType, InsuranceType.NONE),
    "T": CategoricalField("Tumor Status", TumorStage, TumorStage.T2),
}

NUMERIC_FIELDS: Dict[str, NumericField] = {
    "D10cc": NumericField("D10cc (Gy)", 0, 100, 55),
    "Number_Teeth_before_Extraction": NumericField("Number of Teeth Before Extraction", 0, 32, 20),
    "Smoking_Pack_per_Year": NumericField("Smoking Pack-Year", 0, 200, 50),
    "Age": NumericField("Age", 0, 120, 60),
    "RT_Dose": NumericField("RT Total Prescribed Dose", 0, 80, 66),
}

# Column order expected by the fitted model
FEATURE_COLUMNS: List[str] = [
    "Insurance_Type", "Node", "Periodontal_Grading",
    "Disease_Site_Merged_2", "Age",
    "Smoking_Pack_per_Year", "T",
    "Number_Teeth_before_Extraction", "RT_Dose", "D10cc",
]

# On-screen order of the form widgets
FORM_ORDER: List[str] = [
    "Disease_Site_Merged_2", "D10cc", "Periodontal_Grading", "Node",
    "Number_Teeth_before_Extraction", "Smoking_Pack_per_Year",
    "Insurance_Type", "T", "Age", "RT_Dose",
]


# =============================================================================
# PREDICTION CONSTANTS
# =============================================================================

# ORN is cause 1; competing causes are not reported
CAUSE_OF_INTEREST = 1

# Dense grid for the CIF curve (months)
TIME_GRID: Tuple[float, ...] = tuple(float(t) for t in range(0, 115))

DEFAULT_TIME_POINTS: Tuple[float, ...] = (60.0, 114.0)
DEFAULT_TIME_TEXT = "60"

CIF_DECIMALS = 3


# =============================================================================
# REFERENCE CURVES
# =============================================================================

class ReferenceOption(str, Enum):
    """
    Cohort-average curves that can be overlaid on the individual curve.

    Declaration order is the order curves are drawn in, whatever order
    the user picked them in.
    """
    OVERALL = "overall"
    POSITIVE = "pos"
    NEGATIVE = "neg"


@dataclass(frozen=True)
class ReferenceStyle:
    label: str          # legend / selector label
    hover_name: str     # prefix in the hover text
    color: str
    dash: str           # plotly dash style
    filename: str


REFERENCE_STYLES: Dict[ReferenceOption, ReferenceStyle] = {
    ReferenceOption.OVERALL: ReferenceStyle(
        "Average Overall in PMCC", "Overall CIF", "red", "dash", "mean_cif_data_all.csv"
    ),
    ReferenceOption.POSITIVE: ReferenceStyle(
        "Average ORN Positive in PMCC", "ORN Positive CIF", "orange", "dot",
        "mean_cif_data_ORN_positive.csv"
    ),
    ReferenceOption.NEGATIVE: ReferenceStyle(
        "Average ORN Negative in PMCC", "ORN Negative CIF", "green", "dashdot",
        "mean_cif_data_ORN_negative.csv"
    ),
}

DEFAULT_REFERENCES: List[ReferenceOption] = [ReferenceOption.OVERALL]

INDIVIDUAL_COLOR = "blue"


# =============================================================================
# RUNTIME SETTINGS
# =============================================================================

DEFAULT_ARTIFACT_DIR = Path(__file__).parent / "artifacts"
MODEL_FILENAME = "final_fg_model.yaml"
DEFAULT_PORT = 10000
BIND_HOST = "0.0.0.0"


class SettingsError(ValueError):
    """An environment variable holds a value the process cannot start with."""


@dataclass(frozen=True)
class AppSettings:
    """Process-level settings read once at startup."""
    port: int = DEFAULT_PORT
    host: str = BIND_HOST
    artifact_dir: Path = DEFAULT_ARTIFACT_DIR
    log_level: str = "INFO"

    @property
    def model_path(self) -> Path:
        return self.artifact_dir / MODEL_FILENAME

    def reference_path(self, option: ReferenceOption) -> Path:
        return self.artifact_dir / REFERENCE_STYLES[option].filename

    @classmethod
    def from_env(cls, environ=None) -> "AppSettings":
        """
        Build settings from environment variables.

        PORT            listening port (default 10000)
        ORN_ARTIFACT_DIR directory holding the model and reference curves
        ORN_LOG_LEVEL   logging level name (default INFO)

        Raises:
            SettingsError: PORT is not an integer in 1-65535, or
                ORN_LOG_LEVEL is not a logging level name
        """
        env = os.environ if environ is None else environ

        raw_port = env.get("PORT", str(DEFAULT_PORT))
        try:
            port = int(raw_port)
        except ValueError:
            raise SettingsError(f"PORT must be an integer, got {raw_port!r}") from None
        if not 1 <= port <= 65535:
            raise SettingsError(f"PORT must be between 1 and 65535, got {port}")

        log_level = env.get("ORN_LOG_LEVEL", "INFO").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise SettingsError(f"ORN_LOG_LEVEL must be a logging level name, got {log_level!r}")

        artifact_dir = env.get("ORN_ARTIFACT_DIR")
        return cls(
            port=port,
            artifact_dir=Path(artifact_dir) if artifact_dir else DEFAULT_ARTIFACT_DIR,
            log_level=log_level,
        )
