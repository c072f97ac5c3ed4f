"""Restore strategies: the archive tool and the SQL script interpreter."""

import gzip
import os
import subprocess
import threading
import time
from contextlib import ExitStack
from typing import Callable, Dict, Optional

from rich.markup import escape

from dbrestore.constants import ARCHIVE_TOOL, PASSWORD_ENV_VAR, SCRIPT_TOOL
from dbrestore.errors import RestoreToolError
from dbrestore.errors_catalog import actionable_error
from dbrestore.models import ExecutionResult, Phase, RestoreRequest, Strategy
from dbrestore.services.arguments import archive_tool_args, script_tool_args


class BaseExecutor:
    strategy: Strategy

    def __init__(self, command_runner, logger, console, clock: Callable[[], float] = time.monotonic):
        self.command_runner = command_runner
        self.logger = logger
        self.console = console
        self.clock = clock

    def build_env(self, preflight) -> Optional[Dict[str, str]]:
        """Environment for the child; ``None`` inherits ours unchanged."""
        password = preflight.connection.password
        if not preflight.storage_kind.requires_injection or not password:
            return None
        env = dict(os.environ)
        env[PASSWORD_ENV_VAR] = password
        return env

    def execute(self, request: RestoreRequest, preflight, cancel_event: Optional[threading.Event] = None):
        raise NotImplementedError


class ArchiveRestoreExecutor(BaseExecutor):
    """Runs pg_restore for custom, tar and directory dumps."""

    strategy = Strategy.ARCHIVE

    def build_command(self, request: RestoreRequest, preflight):
        return [preflight.report.tool_path] + archive_tool_args(request, preflight.connection.dsn())

    def execute(self, request: RestoreRequest, preflight, cancel_event: Optional[threading.Event] = None):
        cmd = self.build_command(request, preflight)
        display_cmd = [ARCHIVE_TOOL] + cmd[1:]
        if request.verbose:
            self.console.print(f"\nExecuting: {escape(' '.join(display_cmd))}")

        started = self.clock()
        result = self.command_runner.execute(
            cmd,
            display_cmd=display_cmd,
            input_stream=request.input_stream if request.is_stdin else None,
            stdout=request.output,
            capture_stderr=True,
            env=self.build_env(preflight),
            cancel_event=cancel_event,
            timeout=request.timeout,
        )
        duration = self.clock() - started

        diagnostics = result.stderr or ""
        if result.returncode != 0:
            raise self.classify_failure(result.returncode, diagnostics)

        if diagnostics.strip() and request.verbose:
            self.console.print(f"\n[yellow]Warnings:[/yellow]\n{escape(diagnostics)}")

        return ExecutionResult(strategy=self.strategy, duration_seconds=duration, warnings=diagnostics)

    @staticmethod
    def classify_failure(returncode: int, diagnostics: str) -> RestoreToolError:
        # pg_restore exits non-zero for warnings too. Any diagnostic text is
        # treated as recoverable; the text itself is not parsed further.
        if diagnostics.strip():
            message = f"{ARCHIVE_TOOL} reported errors (exit code {returncode})."
            if "unsupported version" in diagnostics.lower():
                message = f"{message} {actionable_error('archive_unsupported_version')}"
            return RestoreToolError(
                message,
                phase=Phase.RESTORE,
                tool_error=diagnostics,
                recoverable=True,
            )
        return RestoreToolError(
            f"{ARCHIVE_TOOL} failed with exit code {returncode}.",
            phase=Phase.RESTORE,
            recoverable=False,
        )


class ScriptRestoreExecutor(BaseExecutor):
    """Runs psql for plain and gzip-compressed SQL scripts."""

    strategy = Strategy.SCRIPT

    def build_command(self, request: RestoreRequest, preflight):
        read_stdin = request.is_stdin or preflight.report.dump_format.is_compressed
        return [preflight.report.tool_path] + script_tool_args(
            request, preflight.connection.dsn(), read_stdin=read_stdin
        )

    def execute(self, request: RestoreRequest, preflight, cancel_event: Optional[threading.Event] = None):
        cmd = self.build_command(request, preflight)
        display_cmd = [SCRIPT_TOOL] + cmd[1:]

        if request.verbose:
            stdout, stderr = request.output, request.errors
        else:
            stdout, stderr = subprocess.DEVNULL, subprocess.DEVNULL

        with ExitStack() as stack:
            input_stream = self._open_input(request, preflight, stack)

            started = self.clock()
            result = self.command_runner.execute(
                cmd,
                display_cmd=display_cmd,
                input_stream=input_stream,
                stdout=stdout,
                stderr=stderr,
                env=self.build_env(preflight),
                cancel_event=cancel_event,
                timeout=request.timeout,
            )
            duration = self.clock() - started

        if result.returncode != 0:
            # psql does not separate warnings from errors; any failure is fatal.
            raise RestoreToolError(
                f"{SCRIPT_TOOL} execution failed with exit code {result.returncode}.",
                phase=Phase.RESTORE,
                recoverable=False,
            )

        return ExecutionResult(strategy=self.strategy, duration_seconds=duration)

    @staticmethod
    def _open_input(request: RestoreRequest, preflight, stack: ExitStack):
        compressed = preflight.report.dump_format.is_compressed
        if request.is_stdin:
            if compressed:
                return stack.enter_context(gzip.GzipFile(fileobj=request.input_stream, mode="rb"))
            return request.input_stream
        if compressed:
            return stack.enter_context(gzip.open(request.file_path, "rb"))
        return None


def build_executors(command_runner, logger, console, clock) -> Dict[Strategy, BaseExecutor]:
    return {
        Strategy.ARCHIVE: ArchiveRestoreExecutor(command_runner, logger, console, clock=clock),
        Strategy.SCRIPT: ScriptRestoreExecutor(command_runner, logger, console, clock=clock),
    }
