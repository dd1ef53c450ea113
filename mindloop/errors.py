"""
Error taxonomy for the decision core.

None of these is allowed to escape the decision loop. They are raised
close to the failure and caught at the component boundary, where the
failure is logged and the previous learned state is kept.
"""
from __future__ import annotations


class MindloopError(Exception):
    """Base class for all decision-core errors."""


class ConfigurationError(MindloopError):
    """A configuration file or value could not be used."""


class PersistenceError(MindloopError):
    """A persisted document could not be read or written."""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class NumericInstabilityError(MindloopError):
    """A learning update produced a non-finite value."""


class ActionExecutionError(MindloopError):
    """The action-execution collaborator failed to perform an action."""

    def __init__(self, action: str, message: str = ""):
        super().__init__(f"action {action!r} failed" + (f": {message}" if message else ""))
        self.action = action
