import subprocess

import psycopg
import pytest

from dbrestore.errors import (
    AuthenticationRequiredError,
    ConnectivityError,
    InputNotFoundError,
    PreflightError,
    RestoreError,
    ToolNotFoundError,
)
from dbrestore.models import DumpFormat, RestoreRequest, ServiceEndpoint
from dbrestore.services.database import ServerProbe
from dbrestore.services.format_detector import FormatDetector
from dbrestore.services.password_storage import StorageKind
from dbrestore.services.preflight import PreflightService


class DummyLogger:
    def __init__(self):
        self.warnings = []

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, message, *args, **_kwargs):
        self.warnings.append(message % args if args else message)


class DummyConsole:
    def __init__(self):
        self.lines = []

    def print(self, *args, **_kwargs):
        self.lines.append(" ".join(str(arg) for arg in args))


class FakeLookup:
    def __init__(self, error=None):
        self.calls = 0
        self.error = error

    def get_service(self, service_id):
        self.calls += 1
        if self.error:
            raise self.error
        return ServiceEndpoint(service_id=service_id, project_id="proj", host="db.example.com", port=5433)


class FakeStorage:
    def __init__(self, kind=StorageKind.KEYRING, secret="s3cret"):
        self.kind = kind
        self.secret = secret
        self.databases = []

    def get(self, service, role, database=None):
        self.databases.append(database)
        return self.secret


class FakeDatabase:
    def __init__(self, probe=None, error=None):
        self.result = probe or ServerProbe(version="PostgreSQL 16.2", version_num=160002, extension_version="2.14.2")
        self.error = error
        self.calls = []

    def probe(self, connection, extension):
        self.calls.append((connection, extension))
        if self.error:
            raise self.error
        return self.result


class FakeRunner:
    def __init__(self, stdout="pg_restore (PostgreSQL) 16.2\n", error=None):
        self.stdout = stdout
        self.error = error

    def run(self, cmd, timeout=None):
        if self.error:
            raise self.error
        return subprocess.CompletedProcess(cmd, 0, stdout=self.stdout, stderr="")


def build_service(lookup=None, storage=None, database=None, runner=None, which=None, logger=None, console=None):
    return PreflightService(
        format_detector=FormatDetector(),
        service_lookup=lookup or FakeLookup(),
        password_storage=storage or FakeStorage(),
        database_service=database or FakeDatabase(),
        command_runner=runner or FakeRunner(),
        logger=logger or DummyLogger(),
        console=console or DummyConsole(),
        which=which or (lambda tool: f"/usr/bin/{tool}"),
    )


@pytest.fixture
def custom_dump(tmp_path):
    dump = tmp_path / "backup.dump"
    dump.write_bytes(b"PGDMP" + b"\x00" * 64)
    return dump


def test_preflight_populates_every_report_field(custom_dump):
    service = build_service()
    result = service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump)))

    report = result.report
    assert report.missing_fields() == []
    assert report.dump_format is DumpFormat.CUSTOM
    assert report.file_size == custom_dump.stat().st_size
    assert report.tool_path == "/usr/bin/pg_restore"
    assert str(report.tool_version) == "16.2"
    assert report.has_extension is True
    assert report.extension_version == "2.14.2"
    assert report.server_version_num == 160002
    assert result.connection.host == "db.example.com"
    assert result.connection.port == 5433
    assert result.connection.password == "s3cret"
    assert result.storage_kind is StorageKind.KEYRING


def test_missing_file_stops_before_later_stages(tmp_path):
    lookup = FakeLookup()
    database = FakeDatabase()
    service = build_service(lookup=lookup, database=database)

    with pytest.raises(InputNotFoundError):
        service.run(RestoreRequest(service_id="svc", file_path=str(tmp_path / "missing.dump")))

    assert lookup.calls == 0
    assert database.calls == []


def test_missing_tool_stops_before_service_lookup(custom_dump):
    lookup = FakeLookup()
    service = build_service(lookup=lookup, which=lambda tool: None)

    with pytest.raises(ToolNotFoundError, match="pg_restore"):
        service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump)))

    assert lookup.calls == 0


def test_plain_dump_resolves_script_tool(tmp_path):
    dump = tmp_path / "schema.sql"
    dump.write_text("CREATE TABLE t (id int);\n", encoding="utf-8")
    service = build_service(runner=FakeRunner(stdout="psql (PostgreSQL) 15.4\n"))

    result = service.run(RestoreRequest(service_id="svc", file_path=str(dump)))

    assert result.report.tool_path == "/usr/bin/psql"
    assert result.report.dump_format is DumpFormat.PLAIN


def test_missing_extension_is_not_a_failure(custom_dump):
    database = FakeDatabase(probe=ServerProbe(version="PostgreSQL 16.2", version_num=160002, extension_version=None))
    service = build_service(database=database)

    result = service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump)))

    assert result.report.has_extension is False
    assert result.report.extension_version is None


def test_authentication_failure_propagates(custom_dump):
    lookup = FakeLookup(error=AuthenticationRequiredError("no credentials"))
    database = FakeDatabase()
    service = build_service(lookup=lookup, database=database)

    with pytest.raises(AuthenticationRequiredError):
        service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump)))

    assert database.calls == []


def test_required_password_missing_is_fatal(custom_dump):
    database = FakeDatabase()
    service = build_service(storage=FakeStorage(secret=None), database=database)

    with pytest.raises(AuthenticationRequiredError, match="No password found for role 'tsdbadmin'"):
        service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump), require_password=True))

    assert database.calls == []


def test_missing_password_is_tolerated_by_default(custom_dump):
    service = build_service(storage=FakeStorage(secret=None))

    result = service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump)))

    assert result.connection.password is None


def test_pgpass_secret_is_not_injected(custom_dump):
    service = build_service(storage=FakeStorage(kind=StorageKind.PGPASS, secret="from-file"))

    result = service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump)))

    assert result.connection.password is None
    assert result.storage_kind is StorageKind.PGPASS


def test_connectivity_error_propagates(custom_dump):
    database = FakeDatabase(error=ConnectivityError("Failed to connect to database: timeout"))
    service = build_service(database=database)

    with pytest.raises(ConnectivityError, match="timeout"):
        service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump)))


def test_query_errors_during_probe_are_wrapped(custom_dump):
    database = FakeDatabase(error=psycopg.ProgrammingError("permission denied"))
    service = build_service(database=database)

    with pytest.raises(PreflightError, match="permission denied"):
        service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump)))


def test_unreadable_tool_version_is_not_fatal(custom_dump):
    service = build_service(runner=FakeRunner(error=RestoreError("timed out")))

    result = service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump)))

    assert result.report.get("tool_version") is None
    assert result.report.missing_fields() == []


def test_outdated_archive_tool_logs_warning(custom_dump):
    logger = DummyLogger()
    console = DummyConsole()
    service = build_service(runner=FakeRunner(stdout="pg_restore (PostgreSQL) 14.9\n"), logger=logger, console=console)

    service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump)))

    assert any("pg_restore 14.9 is older than the server (PostgreSQL 16)" in warning for warning in logger.warnings)


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"jobs": 0}, "--jobs must be at least 1"),
        ({"jobs": 4, "single_transaction": True}, "--single-transaction"),
        ({"quiet": True, "verbose": True}, "mutually exclusive"),
    ],
)
def test_invalid_requests_are_rejected_before_any_stage(custom_dump, overrides, message):
    lookup = FakeLookup()
    service = build_service(lookup=lookup)

    with pytest.raises(PreflightError, match=message):
        service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump), **overrides))

    assert lookup.calls == 0


def test_directory_format_from_stdin_is_rejected():
    service = build_service()

    with pytest.raises(PreflightError, match="standard input"):
        service.run(RestoreRequest(service_id="svc", file_path="-", format="directory"))


def test_print_report_lists_checks(custom_dump):
    console = DummyConsole()
    service = build_service(console=console)
    request = RestoreRequest(service_id="svc", file_path=str(custom_dump), verbose=True)

    service.print_report(request, service.run(request))

    output = "\n".join(console.lines)
    assert "(69 B, custom)" in output
    assert "Service: svc (accessible)" in output
    assert "TimescaleDB: 2.14.2 detected" in output
    assert "pg_restore: found at /usr/bin/pg_restore" in output


def test_secret_lookup_is_scoped_to_target_database(custom_dump):
    storage = FakeStorage(kind=StorageKind.PGPASS)
    service = build_service(storage=storage)

    service.run(RestoreRequest(service_id="svc", file_path=str(custom_dump), database="analytics"))

    assert storage.databases == ["analytics"]
