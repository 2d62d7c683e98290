"""
ORN Prognosis Model
===================
Predicted cumulative incidence of osteoradionecrosis from a fitted
Fine-Gray competing-risks model.
"""

from .config import (
    AppSettings,
    SettingsError,
    TumorSite,
    PeriodontalGrade,
    NodeStatus,
    InsuranceType,
    TumorStage,
    ReferenceOption
)

from .model_store import (
    ArtifactError,
    FineGrayModel,
    ModelStore,
    ReferenceCurve,
    load_model_store
)

from .prediction import (
    CovariateError,
    CovariateRecord,
    LevelMismatchError,
    PredictionResult,
    TimePointsRequest,
    parse_time_points,
    predict_risk,
    run_prediction
)

__version__ = "1.0.0"
