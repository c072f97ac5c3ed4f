"""Preflight validation for dbrestore.

Stages run in a fixed order and each one aborts the pipeline on failure, so
no later stage (and no mutation) happens after a failed check:

1. file accessibility (skipped for stdin)
2. format detection
3. client tool resolution
4. remote service resolution and secret lookup
5. connectivity and capability probe
"""

import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import psycopg
from packaging.version import InvalidVersion, Version

from dbrestore.constants import EXTENSION_NAME
from dbrestore.errors import (
    AuthenticationRequiredError,
    InputNotFoundError,
    PreflightError,
    RestoreError,
    ToolNotFoundError,
)
from dbrestore.errors_catalog import actionable_error
from dbrestore.models import (
    ConnectionDetails,
    DumpFormat,
    PreflightReport,
    RestoreRequest,
    ServiceEndpoint,
    Strategy,
)
from dbrestore.services.password_storage import StorageKind
from dbrestore.services.summary import format_bytes


@dataclass(frozen=True)
class PreflightResult:
    report: PreflightReport
    service: ServiceEndpoint
    connection: ConnectionDetails
    storage_kind: StorageKind


class PreflightService:
    """Runs the ordered readiness checks and produces a ``PreflightReport``."""

    VERSION_PATTERN = re.compile(r"(\d+(?:\.\d+)*)")

    def __init__(
        self,
        format_detector,
        service_lookup,
        password_storage,
        database_service,
        command_runner,
        logger,
        console,
        which=shutil.which,
    ):
        self.format_detector = format_detector
        self.service_lookup = service_lookup
        self.password_storage = password_storage
        self.database_service = database_service
        self.command_runner = command_runner
        self.logger = logger
        self.console = console
        self.which = which

    def validate_request(self, request: RestoreRequest):
        if request.jobs < 1:
            raise PreflightError("--jobs must be at least 1.")
        if request.jobs > 1 and request.single_transaction:
            raise PreflightError("--jobs greater than 1 cannot be combined with --single-transaction.")
        if request.quiet and request.verbose:
            raise PreflightError("--quiet and --verbose are mutually exclusive.")

    def run(self, request: RestoreRequest) -> PreflightResult:
        self.validate_request(request)
        report = PreflightReport()

        self.check_file(request, report)
        dump_format = self.detect_format(request, report)
        self.resolve_tool(dump_format.strategy, report)
        service = self.service_lookup.get_service(request.service_id)
        connection = self.build_connection(request, service)
        self.probe_database(connection, report)

        missing = report.missing_fields()
        if missing:
            raise PreflightError(f"Preflight report is incomplete: {', '.join(missing)}")

        return PreflightResult(
            report=report,
            service=service,
            connection=connection,
            storage_kind=self.password_storage.kind,
        )

    def check_file(self, request: RestoreRequest, report: PreflightReport):
        if request.is_stdin:
            report.file_exists = True
            report.file_readable = True
            report.file_size = 0
            return

        path = Path(request.file_path)
        if not path.exists():
            raise InputNotFoundError(actionable_error("input_not_found", path=request.file_path))
        report.file_exists = True

        try:
            if path.is_dir():
                os.listdir(path)
            else:
                with open(path, "rb"):
                    pass
        except OSError as exc:
            raise InputNotFoundError(
                actionable_error("input_not_readable", path=request.file_path)
            ) from exc
        report.file_readable = True
        report.file_size = 0 if path.is_dir() else path.stat().st_size

    def detect_format(self, request: RestoreRequest, report: PreflightReport) -> DumpFormat:
        dump_format = self.format_detector.detect(
            request.file_path,
            explicit_format=request.format,
            stream=request.input_stream,
        )
        if request.is_stdin and dump_format is DumpFormat.DIRECTORY:
            raise PreflightError(actionable_error("directory_from_stdin"))

        self.logger.debug("Detected dump format: %s", dump_format.value)
        report.dump_format = dump_format
        return dump_format

    def resolve_tool(self, strategy: Strategy, report: PreflightReport):
        tool_path = self.which(strategy.tool_name)
        if not tool_path:
            raise ToolNotFoundError(actionable_error("tool_not_found", tool=strategy.tool_name))

        report.tool_available = True
        report.tool_path = tool_path
        report.tool_version = self._read_tool_version(tool_path)

    def build_connection(self, request: RestoreRequest, service: ServiceEndpoint) -> ConnectionDetails:
        secret = self.password_storage.get(service, request.role, database=request.database)
        kind = self.password_storage.kind

        if secret is None:
            if request.require_password:
                raise AuthenticationRequiredError(
                    actionable_error("password_required", role=request.role, backend=kind.value)
                )
            self.logger.debug("No stored password for role %s (%s storage).", request.role, kind.value)

        return ConnectionDetails(
            role=request.role,
            host=service.host,
            port=service.port,
            database=request.database,
            password=secret if kind.requires_injection else None,
        )

    def probe_database(self, connection: ConnectionDetails, report: PreflightReport):
        try:
            probe = self.database_service.probe(connection, extension=EXTENSION_NAME)
        except psycopg.Error as exc:
            raise PreflightError(f"Failed to inspect the target database: {exc}") from exc

        report.service_reachable = True
        report.database_exists = True
        report.server_version = probe.version
        report.server_version_num = probe.version_num
        report.has_extension = probe.extension_version is not None
        report.extension_version = probe.extension_version

        self._warn_on_tool_mismatch(report)

    def print_report(self, request: RestoreRequest, result: PreflightResult):
        report = result.report
        dump_format = report.dump_format

        self.console.print("\n[bold]Pre-flight validation:[/bold]")
        if request.is_stdin:
            self.console.print(f"[green]✓[/green] File: stdin ({dump_format.value})")
        else:
            if dump_format is DumpFormat.DIRECTORY:
                size = "directory"
            else:
                size = format_bytes(report.file_size)
            self.console.print(
                f"[green]✓[/green] File: {request.file_path} ({size}, {dump_format.value})"
            )
        self.console.print(f"[green]✓[/green] Service: {result.service.service_id} (accessible)")
        self.console.print(f"[green]✓[/green] Database: {request.database} (PostgreSQL)")
        if report.has_extension:
            self.console.print(f"[green]✓[/green] TimescaleDB: {report.extension_version} detected")
        self.console.print(
            f"[green]✓[/green] {dump_format.strategy.tool_name}: found at {report.tool_path}"
        )
        self.console.print("\nReady to restore.")

    def _read_tool_version(self, tool_path: str) -> Optional[Version]:
        try:
            result = self.command_runner.run([tool_path, "--version"], timeout=10)
        except RestoreError as exc:
            self.logger.debug("Could not read tool version: %s", exc)
            return None

        match = self.VERSION_PATTERN.search(result.stdout or "")
        if result.returncode != 0 or not match:
            return None
        try:
            return Version(match.group(1))
        except InvalidVersion:
            return None

    def _warn_on_tool_mismatch(self, report: PreflightReport):
        tool_version = report.get("tool_version")
        server_num = report.get("server_version_num")
        if report.dump_format.strategy is not Strategy.ARCHIVE or not tool_version or not server_num:
            return

        server_major = server_num // 10000
        if tool_version.major < server_major:
            message = actionable_error(
                "archive_tool_outdated",
                tool_version=str(tool_version),
                server_version=str(server_major),
            )
            self.logger.warning(message)
            self.console.print(f"[yellow]Warning:[/yellow] {message}")
