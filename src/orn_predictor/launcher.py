"""
Start the dashboard with the configured host and port.

    python -m orn_predictor
    orn-predictor

PORT overrides the default port; the host is always 0.0.0.0. The model
artifacts are loaded once before Streamlit starts, so a missing or broken
artifact directory ends the process instead of serving sessions.
"""

import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from streamlit.web import cli as stcli

from .config import AppSettings, SettingsError
from .model_store import ArtifactError, load_model_store

logger = logging.getLogger(__name__)

APP_PATH = Path(__file__).parent / "app.py"


def streamlit_argv(settings: AppSettings) -> List[str]:
    """Command line handed to `streamlit run`."""
    return [
        "streamlit", "run", str(APP_PATH),
        "--server.port", str(settings.port),
        "--server.address", settings.host,
        "--server.headless", "true",
    ]


def main(settings: Optional[AppSettings] = None):
    if settings is None:
        try:
            settings = AppSettings.from_env()
        except SettingsError as exc:
            sys.exit(f"Invalid configuration: {exc}")

    logging.basicConfig(level=settings.log_level)

    try:
        load_model_store(settings)
    except ArtifactError as exc:
        logger.error(f"Cannot start: {exc}")
        sys.exit(1)

    # The app runs in this process and reads the same directory
    os.environ["ORN_ARTIFACT_DIR"] = str(settings.artifact_dir)
    logger.info(f"Serving ORN dashboard on {settings.host}:{settings.port}")
    sys.argv = streamlit_argv(settings)
    sys.exit(stcli.main())
