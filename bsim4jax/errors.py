"""Exception and warning types raised by the BSIM4 engine.

FatalParameterError and its GeometryError subclass abort the enclosing
analysis. ModelError reports an inconsistent model state found during
evaluation. ClampedWarning is never raised: it is the record type for
recoverable parameter clamps collected by the diagnostics sink.
"""


class Bsim4Error(Exception):
    """Base class for all BSIM4 engine errors."""


class FatalParameterError(Bsim4Error):
    """A physically impossible parameter or derived quantity."""

    def __init__(self, message: str, parameter: str | None = None, value: float | None = None):
        super().__init__(message)
        self.parameter = parameter
        self.value = value


class GeometryError(FatalParameterError):
    """Effective channel length or width is not positive."""


class ModelError(Bsim4Error):
    """Inconsistent model state detected while evaluating a bias point."""


class ClampedWarning(UserWarning):
    """An out-of-range parameter was replaced by a safe value."""

    def __init__(self, message: str, parameter: str | None = None):
        super().__init__(message)
        self.parameter = parameter

    @property
    def message(self) -> str:
        return str(self.args[0])
