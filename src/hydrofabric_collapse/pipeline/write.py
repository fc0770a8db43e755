"""Contains all code for writing collapsed network data"""

import logging
from pathlib import Path
from typing import Any, cast

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from hydrofabric_collapse.config import RunConfig
from hydrofabric_collapse.schemas.collapse import CollapsedFlowlines, ReconciledFlowlines
from hydrofabric_collapse.task_instance import TaskInstance

logger = logging.getLogger(__name__)


def _write_table(df: pd.DataFrame, columns: list[str], schema: pa.Schema, file_name: Path) -> None:
    """Writes the schema columns of a table to parquet, filling absent columns with nulls"""
    df = df.copy()
    for col in columns:
        if col not in df.columns:
            df[col] = None
    table = pa.Table.from_pandas(df[columns], schema=schema, preserve_index=False)
    file_name.parent.mkdir(parents=True, exist_ok=True)
    file_name.unlink(missing_ok=True)  # deletes files that exist with the same name
    pq.write_table(table, file_name)


def write_collapsed_network(**context: dict[str, Any]) -> dict[str, Path]:
    """Writes the collapsed and reconciled flowlines to disk

    Parameters
    ----------
    **context : dict
        Airflow-compatible context containing:
        - ti : TaskInstance for XCom operations
        - config : RunConfig with pipeline configuration

    Returns
    -------
    dict[str, Path]
        The written file paths
    """
    cfg = cast(RunConfig, context["config"])
    ti = cast(TaskInstance, context["ti"])

    collapsed = ti.xcom_pull(task_id="collapse", key="collapsed_flowlines")
    _write_table(
        collapsed, CollapsedFlowlines.columns(), CollapsedFlowlines.arrow_schema(), cfg.output_file_path
    )
    logger.info(f"write task: wrote collapsed flowlines to {cfg.output_file_path}")
    written = {"collapsed_file_path": cfg.output_file_path}

    reconciled = ti.xcom_pull(task_id="reconcile", key="reconciled_flowlines")
    if reconciled is not None:
        _write_table(
            reconciled,
            ReconciledFlowlines.columns(),
            ReconciledFlowlines.arrow_schema(),
            cfg.reconciled_file_path,
        )
        logger.info(f"write task: wrote reconciled flowlines to {cfg.reconciled_file_path}")
        written["reconciled_file_path"] = cfg.reconciled_file_path

    return written
