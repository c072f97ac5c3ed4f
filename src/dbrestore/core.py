import dataclasses
import logging
import sys
import threading
import time
from typing import Callable, Optional

from rich.console import Console
from rich.markup import escape

from .constants import DEFAULT_API_URL, POST_RESTORE_STATEMENT
from .errors import RestoreCancelledError, RestoreError
from .models import Phase, RestoreOutcome, RestoreRequest, Strategy
from .services.command_runner import CommandRunner
from .services.confirmation import ConfirmationService
from .services.database import DatabaseService
from .services.executors import build_executors
from .services.format_detector import FormatDetector
from .services.hooks import HookRunner, should_use_hooks
from .services.password_storage import build_password_storage
from .services.preflight import PreflightService
from .services.service_lookup import ServiceLookup
from .services.summary import SummaryReporter, format_duration

console = Console(stderr=True)
logger = logging.getLogger("dbrestore")


class Restorer:
    """Runs one restore of one dump into one target database."""

    def __init__(
        self,
        request: RestoreRequest,
        api_key: Optional[str] = None,
        project_id: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        password_storage: str = "keyring",
        clock: Callable[[], float] = time.monotonic,
    ):
        if request.is_stdin and request.input_stream is None:
            request = dataclasses.replace(request, input_stream=sys.stdin.buffer)
        self.request = request
        self.clock = clock
        self.current_phase = Phase.PREFLIGHT
        self.pre_hook_ran = False

        try:
            storage = build_password_storage(password_storage, logger=logger)
        except ValueError as exc:
            raise RestoreError(str(exc), phase=Phase.PREFLIGHT) from exc

        self.command_runner = CommandRunner(logger=logger)
        self.database_service = DatabaseService(logger=logger)
        self.preflight_service = PreflightService(
            format_detector=FormatDetector(),
            service_lookup=ServiceLookup(api_key=api_key, project_id=project_id, api_url=api_url),
            password_storage=storage,
            database_service=self.database_service,
            command_runner=self.command_runner,
            logger=logger,
            console=console,
        )
        self.confirmation_service = ConfirmationService(console=console)
        self.hook_runner = HookRunner(database_service=self.database_service, logger=logger)
        self.executors = build_executors(self.command_runner, logger, console, clock=clock)
        self.summary_reporter = SummaryReporter(
            database_service=self.database_service,
            logger=logger,
            console=console,
        )

    def _status(self, message: str, verbose_only: bool = False):
        if self.request.quiet or (verbose_only and not self.request.verbose):
            return
        console.print(message)

    def _check_cancelled(self, cancel_event: Optional[threading.Event]):
        if cancel_event is not None and cancel_event.is_set():
            raise RestoreCancelledError(f"Restore cancelled before the {self.current_phase.value} stage.")

    def restore(self, cancel_event: Optional[threading.Event] = None) -> RestoreOutcome:
        """Runs the pipeline and raises ``RestoreError`` on the first failure."""
        try:
            return self._restore(cancel_event)
        except RestoreError as exc:
            exc.phase = self.current_phase
            raise

    def _restore(self, cancel_event: Optional[threading.Event]) -> RestoreOutcome:
        request = self.request
        started = self.clock()

        self.current_phase = Phase.PREFLIGHT
        self._status("[blue]⚙️  Preparing restore...[/blue]")
        logger.info("Running preflight checks for service %s", request.service_id)
        preflight = self.preflight_service.run(request)
        if request.verbose and not request.quiet:
            self.preflight_service.print_report(request, preflight)

        if request.clean and not request.confirm:
            self.confirmation_service.confirm_destructive()

        use_hooks = should_use_hooks(request, preflight.report)
        if use_hooks:
            self.current_phase = Phase.PRE_HOOK
            self._check_cancelled(cancel_event)
            self._status("Running TimescaleDB pre-restore hooks...", verbose_only=True)
            self.hook_runner.run_pre_restore(preflight.connection)
            self.pre_hook_ran = True
            self._status("[green]✓ TimescaleDB pre-restore hooks executed[/green]", verbose_only=True)

        self.current_phase = Phase.RESTORE
        self._check_cancelled(cancel_event)
        self._status("[blue]📦 Restoring database...[/blue]")
        strategy = preflight.report.dump_format.strategy
        logger.info("Restoring %s dump with the %s strategy", preflight.report.dump_format.value, strategy.value)
        execution = self.executors[strategy].execute(request, preflight, cancel_event=cancel_event)

        if use_hooks:
            self.current_phase = Phase.POST_HOOK
            self._check_cancelled(cancel_event)
            self._status("\nRunning TimescaleDB post-restore hooks...", verbose_only=True)
            self.hook_runner.run_post_restore(preflight.connection)
            self._status("[green]✓ TimescaleDB post-restore hooks executed[/green]", verbose_only=True)

        summary = None
        if execution.strategy is Strategy.SCRIPT and not request.quiet:
            console.print()
            summary = self.summary_reporter.report(
                preflight.connection,
                has_extension=preflight.report.has_extension,
                duration_seconds=execution.duration_seconds,
            )

        return RestoreOutcome(
            status=RestoreOutcome.SUCCESS,
            summary=summary,
            duration_seconds=self.clock() - started,
        )

    def _warn_post_hook_skipped(self):
        if self.pre_hook_ran and self.current_phase in (Phase.RESTORE, Phase.POST_HOOK):
            message = (
                "The post-restore hook did not complete. "
                f"Run `{POST_RESTORE_STATEMENT}` on the target to resume background jobs."
            )
            logger.warning(message)
            console.print(f"[yellow]Warning:[/yellow] {escape(message)}")

    def run(self, cancel_event: Optional[threading.Event] = None) -> RestoreOutcome:
        try:
            outcome = self.restore(cancel_event)
            if outcome.summary is None and not self.request.quiet:
                console.print(
                    f"[green]✓ Restore completed in {format_duration(outcome.duration_seconds)}[/green]"
                )
            logger.info("Restore completed.")
            return outcome

        except (RestoreCancelledError, KeyboardInterrupt) as exc:
            console.print("[bold yellow]Restore cancelled.[/bold yellow]")
            logger.info("Restore cancelled during %s: %s", self.current_phase.value, exc)
            self._warn_post_hook_skipped()
            error = exc if isinstance(exc, RestoreCancelledError) else RestoreCancelledError(
                "Operation cancelled by user.", phase=self.current_phase
            )
            return RestoreOutcome(status=RestoreOutcome.CANCELLED, phase=self.current_phase, error=error)

        except RestoreError as exc:
            console.print(f"[bold red]Error:[/bold red] {escape(exc.describe())}")
            if exc.recoverable and exc.tool_error:
                console.print(
                    "[yellow]The restore tool reported diagnostics that may be benign warnings:[/yellow]"
                )
                console.print(escape(exc.tool_error.rstrip()))
            logger.error(exc.describe())
            self._warn_post_hook_skipped()
            return RestoreOutcome(status=RestoreOutcome.FAILED, phase=exc.phase, error=exc)

        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {escape(str(exc))}")
            logger.exception("Unexpected error")
            self._warn_post_hook_skipped()
            return RestoreOutcome(status=RestoreOutcome.FAILED, phase=self.current_phase, error=exc)
