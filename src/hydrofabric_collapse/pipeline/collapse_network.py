"""Contains all code for running the collapse on the loaded flowlines"""

import logging
from typing import Any, cast

import pandas as pd

from hydrofabric_collapse.collapse.collapse import collapse_flowlines
from hydrofabric_collapse.config import RunConfig
from hydrofabric_collapse.task_instance import TaskInstance

logger = logging.getLogger(__name__)


def collapse_network(**context: dict[str, Any]) -> dict[str, pd.DataFrame]:
    """
    Collapses short and non-confluence flowlines.

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
        The collapsed flowlines
    """
    ti = cast(TaskInstance, context["ti"])
    cfg = cast(RunConfig, context["config"])
    flowlines = ti.xcom_pull(task_id="load", key="flowlines")

    logger.info(f"collapse task: Collapsing flowlines shorter than {cfg.collapse.thresh} km")
    collapsed = collapse_flowlines(
        flowlines,
        thresh=cfg.collapse.thresh,
        add_category=cfg.collapse.add_category,
        mainstem_thresh=cfg.collapse.mainstem_thresh,
        warn=cfg.collapse.warn,
    )
    return {"collapsed_flowlines": collapsed}
