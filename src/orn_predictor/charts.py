"""
ORN Prognosis Model - CIF Chart
===============================
Individual CIF curve with optional cohort-average overlays.
"""

from typing import Iterable, Mapping

import numpy as np
import plotly.graph_objects as go

from .config import ReferenceOption, REFERENCE_STYLES, INDIVIDUAL_COLOR, CIF_DECIMALS
from .model_store import ReferenceCurve
from .prediction import PredictionResult


def _hover_text(times, values, name: str):
    return [f"Time: {t:g}<br>{name}: {v:.{CIF_DECIMALS}f}" for t, v in zip(times, values)]


def build_cif_figure(
    curve: PredictionResult,
    references: Mapping[ReferenceOption, ReferenceCurve],
    selected: Iterable[ReferenceOption] = ()
) -> go.Figure:
    """
    Plot the individual CIF and any selected reference curves.

    Reference traces are added in ReferenceOption order with fixed
    colour/dash, so the chart does not depend on the order the options
    were picked in.
    """
    chosen = {ReferenceOption(option) for option in selected}

    cif = np.round(np.asarray(curve.cif, dtype=float), CIF_DECIMALS)

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=list(curve.times),
        y=cif,
        mode='lines+markers',
        name='Individual CIF',
        line=dict(color=INDIVIDUAL_COLOR, width=2),
        marker=dict(color=INDIVIDUAL_COLOR, size=4),
        text=_hover_text(curve.times, cif, "CIF"),
        hoverinfo='text'
    ))

    for option in ReferenceOption:
        if option not in chosen:
            continue
        ref = references[option]
        style = REFERENCE_STYLES[option]
        fig.add_trace(go.Scatter(
            x=ref.times,
            y=ref.mean_cif,
            mode='lines+markers',
            name=style.label,
            line=dict(color=style.color, dash=style.dash, width=2),
            marker=dict(color=style.color, size=4),
            text=_hover_text(ref.times, ref.mean_cif, style.hover_name),
            hoverinfo='text'
        ))

    fig.update_layout(
        template='plotly_white',
        xaxis_title="Time (months)",
        yaxis_title="CIF",
        yaxis_range=[0, 1],
        hovermode='closest',
        legend=dict(orientation='h', yanchor='bottom', y=1.02, x=0),
        height=450
    )
    return fig
