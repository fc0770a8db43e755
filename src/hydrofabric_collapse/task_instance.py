"""An in-memory stand-in for the Airflow TaskInstance XCom store"""

from typing import Any


class TaskInstance:
    """Stores task results keyed by ``<task_id>.<key>``"""

    def __init__(self) -> None:
        self._xcom: dict[str, Any] = {}

    def xcom_push(self, key: str, value: Any) -> None:
        """Push a value to XCom

        Parameters
        ----------
        key : str
            The XCom key, formatted as ``<task_id>.<key>``
        value : Any
            The value to store
        """
        self._xcom[key] = value

    def xcom_pull(self, task_id: str, key: str = "return_value") -> Any:
        """Pull a value pushed by another task

        Parameters
        ----------
        task_id : str
            The task that pushed the value
        key : str, optional
            The key the value was returned under, by default "return_value"

        Returns
        -------
        Any
            The stored value, or None if the task never pushed it
        """
        return self._xcom.get(f"{task_id}.{key}")
