"""Local runner for collapsing a flowline network"""

import argparse
from collections.abc import Callable
from datetime import datetime
from typing import Any, Self

from pydantic import ValidationError

from hydrofabric_collapse import RunConfig, TaskInstance
from hydrofabric_collapse.logs import setup_logging
from hydrofabric_collapse.pipeline.collapse_network import collapse_network
from hydrofabric_collapse.pipeline.load import load_flowlines
from hydrofabric_collapse.pipeline.reconcile_network import reconcile_network
from hydrofabric_collapse.pipeline.write import write_collapsed_network

logger = setup_logging()


class LocalRunner:
    """Runs collapse tasks in-process, passing their outputs through XCom.

    Parameters
    ----------
    config : RunConfig
        The collapse run configuration
    run_id : str or None, default=None
        Identifier for this run. Defaults to the current timestamp as 'YYYYMMDD_HHMMSS'
    """

    def __init__(self, config: RunConfig, run_id: str | None = None) -> None:
        self.config: RunConfig = config
        self.run_id: str = run_id or datetime.now().strftime("%Y%m%d_%H%M%S")
        self.ti: TaskInstance = TaskInstance()
        self.results: dict[str, dict[str, Any]] = {}

    def __enter__(self: Self) -> Self:
        return self

    def __exit__(self: Self, *args: str, **kwargs: str) -> None:
        logger.info(f"runner: Finished run {self.run_id} with {len(self.results)} tasks")

    def run_task(
        self,
        task_id: str,
        python_callable: Callable[..., dict[str, Any]],
        op_kwargs: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Runs one task and pushes every key it returns to XCom as ``<task_id>.<key>``

        Parameters
        ----------
        task_id : str
            The task name other tasks pull from
        python_callable : Callable[..., dict[str, Any]]
            The task. Receives op_kwargs plus the ti, task_id, run_id and config context
        op_kwargs : dict[str, Any] or None, default=None
            Extra keyword arguments for the task

        Returns
        -------
        dict[str, Any]
            The task output
        """
        logger.info(f"Running task: {task_id}")
        context: dict[str, Any] = {
            "ti": self.ti,
            "task_id": task_id,
            "run_id": self.run_id,
            "config": self.config,
        }
        result = python_callable(**{**(op_kwargs or {}), **context})

        for k, v in result.items():
            self.ti.xcom_push(f"{task_id}.{k}", v)
        self.results[task_id] = result

        logger.info(f"Task {task_id} completed")
        return result

    def get_result(self, task_id: str) -> dict[str, Any]:
        """The output of a task that already ran. Raises ValueError otherwise"""
        if task_id not in self.results:
            raise ValueError(f"Task {task_id} has not run")
        return self.results[task_id]


def run_pipeline(runner: LocalRunner) -> None:
    """Runs the load, collapse, reconcile, and write tasks in order"""
    runner.run_task(task_id="load", python_callable=load_flowlines, op_kwargs={})
    runner.run_task(task_id="collapse", python_callable=collapse_network, op_kwargs={})
    if runner.config.reconcile:
        runner.run_task(task_id="reconcile", python_callable=reconcile_network, op_kwargs={})
    runner.run_task(task_id="write", python_callable=write_collapsed_network, op_kwargs={})


def main() -> int:
    """Main entry point for the flowline collapse CLI.

    Returns
    -------
    int
        Exit code: 0 for success, 1 for failure.
    """
    parser = argparse.ArgumentParser(description="A local runner for collapsing flowline networks")
    parser.add_argument("--config", required=True, help="Config file")
    args = parser.parse_args()

    try:
        config = RunConfig.from_yaml(args.config)
    except ValidationError as e:
        print("Configuration validation failed:")
        for error in e.errors():
            print(f"  {error['loc']}: {error['msg']}")
        return 1
    except FileNotFoundError:
        logger.error(f"Config file not found: {args.config}")
        return 1

    with LocalRunner(config) as runner:
        run_pipeline(runner)
        for name, path in runner.get_result("write").items():
            print(f"{name}: {path}")

    return 0


if __name__ == "__main__":
    exit(main())
