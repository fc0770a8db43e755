"""Contains all code for grouping collapsed flowlines into features"""

import logging
from typing import Any, cast

import pandas as pd

from hydrofabric_collapse.collapse.membership import reconcile_collapsed_flowlines
from hydrofabric_collapse.task_instance import TaskInstance

logger = logging.getLogger(__name__)


def reconcile_network(**context: dict[str, Any]) -> dict[str, pd.DataFrame]:
    """
    Groups the collapsed flowlines into the features that survive the collapse.

    Parameters
    ----------
    **context : dict
        Airflow-compatible context containing:
        - ti : TaskInstance for XCom operations
        - config : RunConfig with pipeline configuration

    Returns
    -------
    dict[str, pd.DataFrame]
        The reconciled network
    """
    ti = cast(TaskInstance, context["ti"])
    collapsed = ti.xcom_pull(task_id="collapse", key="collapsed_flowlines")
    logger.info("reconcile task: Grouping collapsed flowlines")
    return {"reconciled_flowlines": reconcile_collapsed_flowlines(collapsed)}
