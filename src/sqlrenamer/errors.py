"""Domain errors for SQLRenamer."""

from typing import Optional

from sqlrenamer.errors_catalog import actionable_error


class RenamerError(RuntimeError):
    """Raised when the rename cannot continue safely."""


class ConnectFailure(RenamerError):
    """Raised when an administrative session to a host cannot be opened."""

    def __init__(self, host: str, reason: str):
        super().__init__(f"Could not open an administrative session to {host}: {reason}")
        self.host = host
        self.reason = reason


class NamespaceNotFound(RenamerError):
    """Raised when an alias namespace does not exist on a host."""

    def __init__(self, host: str, namespace: str):
        super().__init__(f"Alias namespace '{namespace}' not found on {host}.")
        self.host = host
        self.namespace = namespace


class QuiesceFailure(RenamerError):
    """Raised when a database could not be forced into single-user mode."""

    def __init__(self, database: str, attempts: int, reason: str = ""):
        message = actionable_error("quiesce_exhausted", database=database, attempts=str(attempts))
        if reason:
            message = f"{message}\nLast error: {reason}"
        super().__init__(message)
        self.database = database
        self.attempts = attempts


class IdentityMismatch(RenamerError):
    """Raised when the instance reports a different name than the one just assigned."""

    def __init__(self, expected: str, actual: str):
        super().__init__(actionable_error("identity_mismatch", target=expected, actual=actual))
        self.expected = expected
        self.actual = actual


class RenameFailure(RenamerError):
    """Raised when a fatal rename step failed.

    The message is the triggering cause verbatim; ``step`` names the failed step and
    ``report`` carries everything collected up to that point.
    """

    def __init__(self, message: str, step: Optional[str] = None, report=None):
        super().__init__(message)
        self.step = step
        self.report = report
