"""Declarative option-to-argument tables for the restore tools.

Each table is an ordered sequence of ``(name, emitter)`` pairs. An emitter
takes the request and returns the arguments it contributes (possibly none).
Evaluating a table in order gives a stable, diffable argument list.
"""

from typing import Callable, List, Sequence, Tuple

from dbrestore.models import DumpFormat, RestoreRequest

Emitter = Callable[[RestoreRequest], List[str]]


def _flag(attribute: str, *args: str) -> Emitter:
    def emit(request: RestoreRequest) -> List[str]:
        return list(args) if getattr(request, attribute) else []

    return emit


def _format_hint(request: RestoreRequest) -> List[str]:
    if not request.format:
        return []
    hint = request.format.strip().lower()
    if hint in (DumpFormat.CUSTOM.value, DumpFormat.TAR.value, DumpFormat.DIRECTORY.value):
        return [f"--format={hint}"]
    return []


def _jobs(request: RestoreRequest) -> List[str]:
    return [f"--jobs={request.jobs}"] if request.jobs > 1 else []


def _error_mode(request: RestoreRequest) -> List[str]:
    if request.on_error_stop:
        return ["--set", "ON_ERROR_STOP=1"]
    return ["--set", "ON_ERROR_ROLLBACK=on"]


def _verbosity(request: RestoreRequest) -> List[str]:
    if request.verbose and not request.quiet:
        return ["--echo-all"]
    return ["--quiet", "--set", "VERBOSITY=terse"]


ARCHIVE_TOOL_ARGUMENTS: Sequence[Tuple[str, Emitter]] = (
    ("format", _format_hint),
    ("clean", _flag("clean", "--clean")),
    ("if_exists", _flag("if_exists", "--if-exists")),
    ("no_owner", _flag("no_owner", "--no-owner")),
    ("no_privileges", _flag("no_privileges", "--no-privileges")),
    ("single_transaction", _flag("single_transaction", "--single-transaction")),
    ("jobs", _jobs),
    ("on_error_stop", _flag("on_error_stop", "--exit-on-error")),
    ("verbose", _flag("verbose", "--verbose")),
)

SCRIPT_TOOL_ARGUMENTS: Sequence[Tuple[str, Emitter]] = (
    ("on_error_stop", _error_mode),
    ("single_transaction", _flag("single_transaction", "--single-transaction")),
    ("verbosity", _verbosity),
)


def render(table: Sequence[Tuple[str, Emitter]], request: RestoreRequest) -> List[str]:
    args: List[str] = []
    for _name, emitter in table:
        args.extend(emitter(request))
    return args


def archive_tool_args(request: RestoreRequest, dsn: str) -> List[str]:
    """Arguments for the archive tool; the dump path, when any, comes last."""
    args = [f"--dbname={dsn}"] + render(ARCHIVE_TOOL_ARGUMENTS, request)
    if not request.is_stdin:
        args.append(request.file_path)
    return args


def script_tool_args(request: RestoreRequest, dsn: str, read_stdin: bool) -> List[str]:
    args = [dsn] + render(SCRIPT_TOOL_ARGUMENTS, request)
    args.extend(["--file", "-" if read_stdin else request.file_path])
    return args
