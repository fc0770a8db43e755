"""Contains all code for loading flowline attribute tables"""

import logging
from pathlib import Path
from typing import Any, cast

import pandas as pd
import polars as pl

from hydrofabric_collapse.collapse.network import REQUIRED_COLUMNS, prepare_flowlines
from hydrofabric_collapse.config import RunConfig

logger = logging.getLogger(__name__)


def read_flowlines(path: str | Path) -> pd.DataFrame:
    """Reads a flowline attribute table from parquet or CSV

    Parameters
    ----------
    path : str | Path
        The flowline table location

    Returns
    -------
    pd.DataFrame
        The validated flowline table

    Raises
    ------
    ValueError
        If the file type is not supported or the table is malformed
    """
    path = Path(path)
    if path.suffix == ".parquet":
        flowlines = pl.read_parquet(path)
    elif path.suffix == ".csv":
        flowlines = pl.read_csv(path, schema_overrides={col: pl.Float64 for col in REQUIRED_COLUMNS[2:]})
    else:
        raise ValueError(f"Unsupported file type: {path}")
    return prepare_flowlines(flowlines.to_pandas())


def load_flowlines(**context: dict[str, Any]) -> dict[str, pd.DataFrame]:
    """
    Loads the flowline attribute table.

    Parameters
    ----------
    **context : dict
        Airflow-compatible context containing:
        - ti : TaskInstance for XCom operations
        - config : RunConfig with pipeline configuration
        - task_id : str identifier for this task
        - run_id : str identifier for this pipeline run

    Returns
    -------
    dict[str, pd.DataFrame]
        The flowlines in memory
    """
    cfg = cast(RunConfig, context["config"])
    flowlines = read_flowlines(cfg.input_path)
    logger.info(f"Load Task: Ingested {len(flowlines)} flowlines from: {cfg.input_path}")
    return {"flowlines": flowlines}
