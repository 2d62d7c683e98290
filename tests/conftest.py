"""
Shared fixtures: the shipped artifacts and a small hand-checkable model.
"""

import sys
from pathlib import Path

import pytest
import yaml

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from orn_predictor.config import (
    AppSettings, FEATURE_COLUMNS, CATEGORICAL_FIELDS, REFERENCE_STYLES,
    TumorSite, PeriodontalGrade, NodeStatus, InsuranceType, TumorStage,
)
from orn_predictor.model_store import load_model_store
from orn_predictor.prediction import CovariateRecord


def simple_model_dict(**coefficient_overrides):
    """
    Every form feature present, all coefficients zero unless overridden.

    Baseline H0 steps to 0.1 at t=1, 0.3 at t=2 and 0.5 at t=10.
    """
    factors = {c: f.enum_cls.levels() for c, f in CATEGORICAL_FIELDS.items()}
    coefficients = {}
    for feature in FEATURE_COLUMNS:
        if feature in factors:
            for level in factors[feature][1:]:
                coefficients[f"{feature}{level}"] = 0.0
        else:
            coefficients[feature] = 0.0
    coefficients.update(coefficient_overrides)
    return {
        "metadata": {"version": "test", "cause": 1},
        "features": list(FEATURE_COLUMNS),
        "factors": factors,
        "coefficients": coefficients,
        "baseline": {"time": [1.0, 2.0, 10.0], "cumhaz": [0.1, 0.3, 0.5]},
    }


def write_artifacts(directory: Path, model_dict=None):
    """Model YAML plus three two-row reference curves."""
    directory.mkdir(parents=True, exist_ok=True)
    with open(directory / "final_fg_model.yaml", "w") as f:
        yaml.safe_dump(model_dict or simple_model_dict(), f)
    for i, style in enumerate(REFERENCE_STYLES.values()):
        # Deliberately unsorted to exercise sorting on load
        (directory / style.filename).write_text(
            f"Time,MeanCIF\n10,{0.1 * (i + 1):.3f}\n0,0.0\n"
        )
    return directory


@pytest.fixture
def simple_settings(tmp_path):
    return AppSettings(artifact_dir=write_artifacts(tmp_path / "artifacts"))


@pytest.fixture
def simple_store(simple_settings):
    return load_model_store(simple_settings)


@pytest.fixture(scope="session")
def store():
    """Store built from the artifacts shipped with the package."""
    return load_model_store(AppSettings())


@pytest.fixture
def record():
    """The form's default patient."""
    return CovariateRecord(
        tumor_site=TumorSite.ORAL_CAVITY,
        periodontal_grade=PeriodontalGrade.GRADE_III,
        node_status=NodeStatus.N2,
        insurance_type=InsuranceType.NONE,
        tumor_stage=TumorStage.T2,
        age=60.0,
        d10cc=55.0,
        rt_dose=66.0,
        smoking_pack_years=50.0,
        teeth_before_extraction=20.0,
    )


@pytest.fixture
def make_store(tmp_path):
    """Factory: store for simple_model_dict() with coefficient overrides."""
    def _make(**coefficient_overrides):
        directory = write_artifacts(tmp_path / "custom", simple_model_dict(**coefficient_overrides))
        return load_model_store(AppSettings(artifact_dir=directory))
    return _make
