"""Short-lived PostgreSQL connections for probing, hooks and summaries."""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

import psycopg

from dbrestore.constants import CONNECT_TIMEOUT_SECONDS, EXTENSION_NAME
from dbrestore.errors import ConnectivityError
from dbrestore.errors_catalog import actionable_error
from dbrestore.models import ConnectionDetails


@dataclass(frozen=True)
class ServerProbe:
    version: str
    version_num: Optional[int]
    extension_version: Optional[str]


class DatabaseService:
    """Opens one connection per operation and always closes it afterwards."""

    SUMMARY_QUERIES = {
        "tables": "SELECT COUNT(*) FROM pg_tables WHERE schemaname = 'public'",
        "views": "SELECT COUNT(*) FROM pg_views WHERE schemaname = 'public'",
        "functions": (
            "SELECT COUNT(*) FROM pg_proc p "
            "JOIN pg_namespace n ON p.pronamespace = n.oid "
            "WHERE n.nspname = 'public'"
        ),
        "sequences": "SELECT COUNT(*) FROM pg_sequences WHERE schemaname = 'public'",
        "indexes": "SELECT COUNT(*) FROM pg_indexes WHERE schemaname = 'public'",
        "total_rows": (
            "SELECT COALESCE(SUM(n_live_tup), 0) FROM pg_stat_user_tables "
            "WHERE schemaname = 'public'"
        ),
    }
    HYPERTABLE_QUERY = (
        "SELECT COUNT(*) FROM timescaledb_information.hypertables "
        "WHERE hypertable_schema = 'public'"
    )

    def __init__(self, logger, connect=psycopg.connect, connect_timeout: int = CONNECT_TIMEOUT_SECONDS):
        self.logger = logger
        self.connect = connect
        self.connect_timeout = connect_timeout

    @contextmanager
    def connection(self, details: ConnectionDetails, read_only: bool = False) -> Iterator[Any]:
        kwargs: Dict[str, Any] = {"connect_timeout": self.connect_timeout, "autocommit": True}
        if details.password:
            kwargs["password"] = details.password

        self.logger.debug("Connecting to %s", details.dsn())
        try:
            conn = self.connect(details.dsn(), **kwargs)
        except psycopg.OperationalError as exc:
            raise ConnectivityError(self._describe_connect_failure(exc, details)) from exc

        try:
            if read_only:
                conn.execute("SET default_transaction_read_only = on")
            yield conn
        finally:
            conn.close()

    def probe(self, details: ConnectionDetails, extension: str = EXTENSION_NAME) -> ServerProbe:
        """Reads the server version and the optional extension's version."""
        with self.connection(details, read_only=True) as conn:
            version = self._scalar(conn, "SELECT version()")
            version_num = self._scalar(conn, "SELECT current_setting('server_version_num')::int")
            row = conn.execute(
                "SELECT extversion FROM pg_extension WHERE extname = %s", (extension,)
            ).fetchone()

        return ServerProbe(
            version=version,
            version_num=version_num,
            extension_version=row[0] if row else None,
        )

    def execute(self, details: ConnectionDetails, statement: str):
        with self.connection(details) as conn:
            conn.execute(statement)

    def collect_counts(self, details: ConnectionDetails, has_extension: bool) -> Dict[str, int]:
        with self.connection(details, read_only=True) as conn:
            counts = {name: int(self._scalar(conn, query)) for name, query in self.SUMMARY_QUERIES.items()}
            counts["hypertables"] = int(self._scalar(conn, self.HYPERTABLE_QUERY)) if has_extension else 0
        return counts

    @staticmethod
    def _scalar(conn, query: str) -> Any:
        row = conn.execute(query).fetchone()
        return row[0] if row else None

    @staticmethod
    def _describe_connect_failure(exc: Exception, details: ConnectionDetails) -> str:
        reason = str(exc).strip()
        if "does not exist" in reason and details.database in reason:
            return actionable_error("database_missing", database=details.database)
        return actionable_error("database_unreachable", reason=reason)
