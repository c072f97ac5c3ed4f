"""Shared domain models for dbrestore."""

from dataclasses import dataclass, field
from enum import Enum
from typing import IO, Any, Dict, List, Optional

from dbrestore.constants import (
    ARCHIVE_TOOL,
    DEFAULT_DATABASE,
    DEFAULT_PORT,
    DEFAULT_ROLE,
    EXIT_CANCELLED,
    EXIT_FAILURE,
    EXIT_SUCCESS,
    SCRIPT_TOOL,
    STDIN_MARKER,
)


class Phase(str, Enum):
    PREFLIGHT = "preflight"
    PRE_HOOK = "pre-hook"
    RESTORE = "restore"
    POST_HOOK = "post-hook"


class Strategy(str, Enum):
    ARCHIVE = "archive"
    SCRIPT = "script"

    @property
    def tool_name(self) -> str:
        return ARCHIVE_TOOL if self is Strategy.ARCHIVE else SCRIPT_TOOL


class DumpFormat(str, Enum):
    PLAIN = "plain"
    PLAIN_COMPRESSED = "plain-compressed"
    CUSTOM = "custom"
    TAR = "tar"
    DIRECTORY = "directory"

    @property
    def strategy(self) -> Strategy:
        if self in (DumpFormat.PLAIN, DumpFormat.PLAIN_COMPRESSED):
            return Strategy.SCRIPT
        return Strategy.ARCHIVE

    @property
    def is_compressed(self) -> bool:
        return self is DumpFormat.PLAIN_COMPRESSED


@dataclass(frozen=True)
class RestoreRequest:
    """Caller-supplied restore parameters, immutable for the whole run."""

    service_id: str
    file_path: str
    database: str = DEFAULT_DATABASE
    role: str = DEFAULT_ROLE
    format: Optional[str] = None
    clean: bool = False
    if_exists: bool = False
    no_owner: bool = False
    no_privileges: bool = False
    single_transaction: bool = False
    on_error_stop: bool = True
    jobs: int = 1
    force_hooks: bool = False
    skip_hooks: bool = False
    confirm: bool = False
    quiet: bool = False
    verbose: bool = False
    require_password: bool = False
    timeout: Optional[float] = None
    input_stream: Optional[IO[bytes]] = field(default=None, repr=False, compare=False)
    output: Optional[IO[str]] = field(default=None, repr=False, compare=False)
    errors: Optional[IO[str]] = field(default=None, repr=False, compare=False)

    @property
    def is_stdin(self) -> bool:
        return self.file_path == STDIN_MARKER


@dataclass(frozen=True)
class ServiceEndpoint:
    """Connection metadata for a remote service, as returned by the lookup API."""

    service_id: str
    project_id: str
    host: str
    port: int = DEFAULT_PORT
    pooler_host: Optional[str] = None
    pooler_port: Optional[int] = None

    @property
    def pooling_available(self) -> bool:
        return self.pooler_host is not None


@dataclass(frozen=True)
class ConnectionDetails:
    role: str
    host: str
    port: int
    database: str
    password: Optional[str] = field(default=None, repr=False)

    def dsn(self) -> str:
        """Connection URI handed to tools; never embeds the password."""
        return f"postgresql://{self.role}@{self.host}:{self.port}/{self.database}?sslmode=require"


_UNSET: Any = object()


class PreflightReport:
    """Evidence gathered before any mutation.

    Every field is written exactly once. Reading the report is only
    meaningful after ``missing_fields()`` comes back empty.
    """

    REQUIRED_FIELDS = (
        "file_exists",
        "file_readable",
        "file_size",
        "dump_format",
        "tool_available",
        "tool_path",
        "service_reachable",
        "database_exists",
        "server_version",
        "has_extension",
        "extension_version",
    )
    OPTIONAL_FIELDS = ("tool_version", "server_version_num")

    def __init__(self):
        for name in self.REQUIRED_FIELDS + self.OPTIONAL_FIELDS:
            object.__setattr__(self, name, _UNSET)

    def __setattr__(self, name: str, value: Any):
        if name not in self.REQUIRED_FIELDS + self.OPTIONAL_FIELDS:
            raise AttributeError(f"Unknown preflight field: {name}")
        if getattr(self, name) is not _UNSET:
            raise ValueError(f"Preflight field '{name}' was already recorded.")
        object.__setattr__(self, name, value)

    def is_set(self, name: str) -> bool:
        return getattr(self, name) is not _UNSET

    def get(self, name: str, default: Any = None) -> Any:
        value = getattr(self, name)
        return default if value is _UNSET else value

    def missing_fields(self) -> List[str]:
        return [name for name in self.REQUIRED_FIELDS if not self.is_set(name)]

    def as_dict(self) -> Dict[str, Any]:
        return {
            name: self.get(name)
            for name in self.REQUIRED_FIELDS + self.OPTIONAL_FIELDS
            if self.is_set(name)
        }


@dataclass(frozen=True)
class ExecutionResult:
    strategy: Strategy
    duration_seconds: float
    warnings: str = ""


@dataclass(frozen=True)
class RestoreSummary:
    tables: int = 0
    views: int = 0
    functions: int = 0
    sequences: int = 0
    indexes: int = 0
    hypertables: int = 0
    total_rows: int = 0
    has_extension: bool = False
    duration_seconds: float = 0.0


@dataclass(frozen=True)
class RestoreOutcome:
    """Terminal result of one pipeline run."""

    status: str
    phase: Optional[Phase] = None
    error: Optional[Exception] = None
    summary: Optional[RestoreSummary] = None
    duration_seconds: Optional[float] = None

    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def ok(self) -> bool:
        return self.status == self.SUCCESS

    @property
    def recoverable(self) -> bool:
        return bool(getattr(self.error, "recoverable", False))

    @property
    def exit_code(self) -> int:
        if self.status == self.SUCCESS:
            return EXIT_SUCCESS
        if self.status == self.CANCELLED:
            return EXIT_CANCELLED
        return EXIT_FAILURE
