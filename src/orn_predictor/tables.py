"""
ORN Prognosis Model - CIF Table
===============================
CIF values at the requested time points, in the order they were typed.
"""

import pandas as pd

from .config import CIF_DECIMALS
from .prediction import PredictionResult


def build_cif_table(result: PredictionResult) -> pd.DataFrame:
    """Time / CIF rows as text; CIF fixed to three decimals."""
    return pd.DataFrame({
        "Time": [f"{t:.15g}" for t in result.times],
        "CIF": [f"{c:.{CIF_DECIMALS}f}" for c in result.cif],
    })


def table_to_csv(table: pd.DataFrame) -> str:
    return table.to_csv(index=False)
