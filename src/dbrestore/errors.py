"""Domain errors for dbrestore."""

from typing import Optional

from dbrestore.models import Phase


class RestoreError(RuntimeError):
    """Raised when the restore pipeline cannot continue safely."""

    default_phase = Phase.RESTORE

    def __init__(
        self,
        message: str,
        phase: Optional[Phase] = None,
        statement: Optional[str] = None,
        line_number: Optional[int] = None,
        tool_error: Optional[str] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.phase = phase or self.default_phase
        self.statement = statement
        self.line_number = line_number
        self.tool_error = tool_error
        self.recoverable = recoverable

    def describe(self) -> str:
        if self.line_number:
            return f"{self.phase.value} failed at line {self.line_number}: {self.message}"
        return f"{self.phase.value} failed: {self.message}"


class PreflightError(RestoreError):
    default_phase = Phase.PREFLIGHT


class InputNotFoundError(PreflightError):
    pass


class UnrecognizedFormatError(PreflightError):
    pass


class ToolNotFoundError(PreflightError):
    pass


class AuthenticationRequiredError(PreflightError):
    pass


class ConnectivityError(PreflightError):
    pass


class HookError(RestoreError):
    """Raised when a pre- or post-restore hook fails. Always fatal."""


class RestoreToolError(RestoreError):
    """Non-zero exit from a restore tool; ``recoverable`` marks tool warnings."""


class SummaryQueryError(RestoreError):
    """Summary queries failed. Callers downgrade this to a warning."""


class RestoreCancelledError(RestoreError):
    """The restore was cancelled by the operator, a signal or a timeout."""
