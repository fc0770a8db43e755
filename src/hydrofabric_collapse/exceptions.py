"""Warnings and errors raised while collapsing a flowline network"""


class ConfigurationWarning(UserWarning):
    """Raised when a stage is invoked on a table it cannot safely modify.

    The stage returns its input unchanged.
    """


class StuckLoopError(RuntimeError):
    """A bounded fixed-point loop failed to converge.

    Signals a malformed network (cyclic toCOMID or provenance pointers). Not retried.
    """


class NetworkCycleError(StuckLoopError):
    """The toCOMID network is not a directed acyclic graph"""
