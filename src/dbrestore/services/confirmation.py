"""Confirmation gate for destructive restores."""

from dbrestore.errors import RestoreCancelledError
from dbrestore.models import Phase


class ConfirmationService:
    """Asks the operator to type ``yes`` before objects get dropped."""

    def __init__(self, console):
        self.console = console

    def confirm_destructive(self):
        self.console.print(
            "\n[bold yellow]⚠️  WARNING:[/bold yellow] This will drop existing database objects before restore."
        )
        try:
            answer = self.console.input("Type 'yes' to confirm: ")
        except EOFError:
            raise RestoreCancelledError(
                "Failed to read confirmation; restore cancelled.", phase=Phase.PREFLIGHT
            ) from None

        if answer.strip().lower() != "yes":
            raise RestoreCancelledError("Restore cancelled by user.", phase=Phase.PREFLIGHT)
