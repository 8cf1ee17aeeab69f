# errors.py
# Exception taxonomy for plan loading, execution and corpus persistence.
#
# Load-time and file errors propagate to the caller. Step-level errors
# (StepError, SchemaMismatchError) are recorded on the run instance and
# counted; the engine never raises them.


class PlanError(Exception):
    """Base class for every error raised by this package."""


class DuplicateSuiteError(PlanError):
    """Raised when a suite name is declared twice in one plan. Aborts the load."""


class PlanParseError(PlanError):
    """Raised when a DSL chunk cannot be decoded into suite → test list shape."""

    def __init__(self, message: str, chunk_index: int | None = None) -> None:
        super().__init__(message)
        self.chunk_index = chunk_index


class SuiteNotFoundError(PlanError):
    """Raised by the engine when a suite is unknown or has no tests."""


class RecursiveReferenceError(PlanError):
    """Raised when a suite reaches itself through ref steps."""


class UnresolvedReferenceError(PlanError):
    """Raised when a parameter points at a step that has not run yet."""


class CorpusError(PlanError):
    """Raised when a failure corpus record cannot be decoded."""


class UnrecoverableWriteError(PlanError):
    """
    Raised when dump output cannot be fully written.

    Never caught inside the package: a partially written plan is worse than
    no plan, so the process is expected to terminate.
    """


class StepError(PlanError):
    """A response that did not match the expected outcome of a step."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SchemaMismatchError(PlanError):
    """A response body that did not validate against the schema store."""
