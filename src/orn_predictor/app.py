"""
ORN Prognosis Model - Streamlit Application
===========================================
Enter a patient's covariates, press Predict, and view the predicted
cumulative incidence of ORN with cohort-average reference curves.

Run with:
    streamlit run src/orn_predictor/app.py
or:
    python -m orn_predictor
"""

import logging
from pathlib import Path

import streamlit as st

from orn_predictor.config import (
    AppSettings, SettingsError, CATEGORICAL_FIELDS, NUMERIC_FIELDS, FORM_ORDER,
    ReferenceOption, REFERENCE_STYLES, DEFAULT_REFERENCES, DEFAULT_TIME_TEXT,
)
from orn_predictor.model_store import ArtifactError, ModelStore, load_model_store
from orn_predictor.prediction import (
    CovariateRecord, PredictionOutput, parse_time_points, run_prediction,
)
from orn_predictor.charts import build_cif_figure
from orn_predictor.tables import build_cif_table, table_to_csv

logger = logging.getLogger(__name__)


# ============================================================
# PAGE CONFIG
# ============================================================

st.set_page_config(
    page_title="ORN Prognosis Model",
    page_icon="🦷",
    layout="wide",
    initial_sidebar_state="expanded"
)


@st.cache_resource(show_spinner="Loading model...")
def get_store(artifact_dir: str) -> ModelStore:
    """Loaded once per process and shared by every session."""
    return load_model_store(AppSettings(artifact_dir=Path(artifact_dir)))


# ============================================================
# SIDEBAR - INPUT FORM
# ============================================================

def render_input_form():
    """
    Covariate form.

    Returns (values, time_text) on submit, None otherwise.
    Widget edits alone never trigger a prediction.
    """
    with st.sidebar.form("predictor_inputs"):
        st.subheader("Enter Predictor Values")

        values = {}
        for column in FORM_ORDER:
            if column in CATEGORICAL_FIELDS:
                spec = CATEGORICAL_FIELDS[column]
                options = list(spec.enum_cls)
                values[column] = st.selectbox(
                    spec.label,
                    options,
                    index=options.index(spec.default),
                    format_func=lambda level: level.display_name,
                    key=f"input_{column}"
                )
            else:
                spec = NUMERIC_FIELDS[column]
                values[column] = st.number_input(
                    spec.label,
                    min_value=float(spec.min_value),
                    max_value=float(spec.max_value),
                    value=float(spec.default),
                    key=f"input_{column}"
                )

        time_text = st.text_input(
            "Time Points (comma-separated)",
            value=DEFAULT_TIME_TEXT,
            help="Months, e.g. 12, 60, 114"
        )

        submitted = st.form_submit_button("Predict", type="primary")
        st.caption("Click the button to generate the CIF curve and predictions.")

    if not submitted:
        return None
    return values, time_text


def render_reference_selector():
    """Overlay choice; redraws the current chart without recomputing."""
    return st.sidebar.multiselect(
        "Show Reference (Average CIF) Options",
        list(ReferenceOption),
        default=DEFAULT_REFERENCES,
        format_func=lambda option: REFERENCE_STYLES[option].label,
        key="reference_options"
    )


def handle_submit(store: ModelStore, values, time_text):
    """Recompute and replace the displayed result; errors leave it as is."""
    try:
        record = CovariateRecord.from_form(values)
        output = run_prediction(store, record, parse_time_points(time_text))
    except ValueError as exc:
        logger.exception("Prediction failed")
        st.error(f"Prediction failed: {exc}")
        return

    st.session_state.result = output


# ============================================================
# RESULTS
# ============================================================

def render_results(store: ModelStore, references):
    """Chart and table for the last submission, or a prompt if none yet."""
    output: PredictionOutput = st.session_state.get("result")

    if output is None:
        st.info("Enter predictor values in the sidebar and click **Predict**.")
        return

    st.subheader("CIF Curve")
    fig = build_cif_figure(output.curve, store.references, references)
    st.plotly_chart(fig, use_container_width=True)

    st.subheader("CIF Values at Requested Time Points")
    if output.time_request.used_default:
        st.caption("No valid time points entered; showing the default horizons.")

    table = build_cif_table(output.at_times)
    st.table(table)

    st.download_button(
        "Download CSV",
        table_to_csv(table),
        "orn_cif_values.csv",
        "text/csv"
    )


# ============================================================
# MAIN APP
# ============================================================

def main():
    """Main application"""

    try:
        settings = AppSettings.from_env()
    except SettingsError as exc:
        st.error(f"Invalid configuration: {exc}")
        st.stop()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    st.title("ORN Prognosis Model")

    try:
        store = get_store(str(settings.artifact_dir))
    except ArtifactError as exc:
        logger.error(f"Cannot start: {exc}")
        st.error(f"Model artifacts could not be loaded: {exc}")
        st.stop()

    submission = render_input_form()
    references = render_reference_selector()
    if submission is not None:
        handle_submit(store, *submission)

    tab_results, tab_model = st.tabs(["Results", "Model"])

    with tab_results:
        render_results(store, references)

    with tab_model:
        st.markdown(
            f"Fine-Gray subdistribution hazard model v{store.model.version}, "
            f"cause {store.model.cause} (ORN). "
            f"Baseline hazard defined up to {store.model.max_time:g} months."
        )
        st.dataframe(
            {"Term": list(store.model.coefficients.keys()),
             "Coefficient": list(store.model.coefficients.values())},
            use_container_width=True
        )

    st.markdown("---")
    st.caption("ORN Prognosis Model | Predictions are per session and not stored")


if __name__ == "__main__":
    main()
