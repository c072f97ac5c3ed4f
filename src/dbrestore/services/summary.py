"""Post-restore summary reporting and number formatting helpers."""

import psycopg
from rich.markup import escape

from dbrestore.errors import RestoreError, SummaryQueryError
from dbrestore.models import ConnectionDetails, RestoreSummary

_KIB = 1024
_MIB = 1024 * _KIB
_GIB = 1024 * _MIB
_ROW_UNITS = ((1_000, "K"), (1_000_000, "M"), (1_000_000_000, "B"))


def pluralize(count: int) -> str:
    return "" if count == 1 else "s"


def format_row_count(count: int) -> str:
    if count < 1_000:
        return str(count)
    # The unit is picked after rounding so 999_999 reads 1.0M, not 1000.0K.
    for divisor, unit in _ROW_UNITS:
        scaled = round(count / divisor, 1)
        if scaled < 1_000 or unit == "B":
            return f"{scaled:.1f}{unit}"


def format_bytes(size: int) -> str:
    if size >= _GIB:
        return f"{size / _GIB:.1f} GB"
    if size >= _MIB:
        return f"{size / _MIB:.1f} MB"
    if size >= _KIB:
        return f"{size / _KIB:.1f} KB"
    return f"{size} B"


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3600:
        return f"{int(seconds // 60)}m{int(seconds) % 60}s"
    return f"{int(seconds // 3600)}h{int(seconds // 60) % 60}m"


class SummaryReporter:
    """Counts what landed in the target database and prints a compact summary.

    Failures here never fail the restore: the data is already loaded, so
    query errors are downgraded to a printed warning.
    """

    LABELS = (
        ("tables", "table"),
        ("views", "view"),
        ("functions", "function"),
        ("sequences", "sequence"),
        ("indexes", "index"),
        ("hypertables", "hypertable"),
    )
    IRREGULAR_PLURALS = {"index": "indexes"}

    def __init__(self, database_service, logger, console):
        self.database_service = database_service
        self.logger = logger
        self.console = console

    def collect(self, connection: ConnectionDetails, has_extension: bool, duration_seconds: float) -> RestoreSummary:
        try:
            counts = self.database_service.collect_counts(connection, has_extension=has_extension)
        except (psycopg.Error, RestoreError) as exc:
            raise SummaryQueryError(str(exc)) from exc

        return RestoreSummary(
            has_extension=has_extension,
            duration_seconds=duration_seconds,
            **counts,
        )

    def report(self, connection: ConnectionDetails, has_extension: bool, duration_seconds: float):
        try:
            summary = self.collect(connection, has_extension, duration_seconds)
        except SummaryQueryError as exc:
            self.logger.warning("Could not retrieve restore summary: %s", exc)
            self.console.print(f"[yellow]⚠️  Warning: Could not retrieve restore summary: {escape(str(exc))}[/yellow]")
            return None

        for line in self.render(summary):
            self.console.print(line)
        return summary

    def render(self, summary: RestoreSummary):
        lines = [f"✓ Restore completed in {format_duration(summary.duration_seconds)}", ""]

        stats = []
        for attribute, label in self.LABELS:
            count = getattr(summary, attribute)
            if attribute == "hypertables" and not summary.has_extension:
                continue
            if count > 0:
                if count != 1 and label in self.IRREGULAR_PLURALS:
                    noun = self.IRREGULAR_PLURALS[label]
                else:
                    noun = label + pluralize(count)
                stats.append(f"{count} {noun}")

        if stats:
            lines.append("📊 " + " • ".join(stats))
        if summary.total_rows > 0:
            lines.append(f"📈 {format_row_count(summary.total_rows)} rows")
        return lines
