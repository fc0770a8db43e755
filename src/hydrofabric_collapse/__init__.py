from ._version import __version__
from .collapse.collapse import collapse_flowlines
from .collapse.membership import reconcile_collapsed_flowlines
from .config import RunConfig
from .exceptions import ConfigurationWarning, NetworkCycleError, StuckLoopError
from .pipeline.collapse_network import collapse_network
from .pipeline.load import load_flowlines
from .pipeline.reconcile_network import reconcile_network
from .pipeline.write import write_collapsed_network
from .schemas.collapse import CollapseConfig
from .task_instance import TaskInstance

__all__ = [
    "__version__",
    "CollapseConfig",
    "ConfigurationWarning",
    "NetworkCycleError",
    "RunConfig",
    "StuckLoopError",
    "TaskInstance",
    "collapse_flowlines",
    "collapse_network",
    "load_flowlines",
    "reconcile_collapsed_flowlines",
    "reconcile_network",
    "write_collapsed_network",
]
