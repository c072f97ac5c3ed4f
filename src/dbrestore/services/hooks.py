"""TimescaleDB pre/post restore hooks."""

import psycopg

from dbrestore.constants import EXTENSION_NAME, POST_RESTORE_STATEMENT, PRE_RESTORE_STATEMENT
from dbrestore.errors import ConnectivityError, HookError
from dbrestore.errors_catalog import actionable_error
from dbrestore.models import ConnectionDetails, Phase, PreflightReport, RestoreRequest


def should_use_hooks(request: RestoreRequest, report: PreflightReport) -> bool:
    """Skip beats force, and force beats auto-detection of the extension."""
    if request.skip_hooks:
        return False
    if request.force_hooks:
        return True
    return bool(report.has_extension)


class HookRunner:
    """Pauses and resumes background maintenance around a bulk load.

    ``timescaledb_pre_restore()`` stops background workers and policies;
    ``timescaledb_post_restore()`` brings them back. Both are idempotent and
    each call uses its own short-lived connection.
    """

    def __init__(self, database_service, logger):
        self.database_service = database_service
        self.logger = logger

    def run_pre_restore(self, connection: ConnectionDetails):
        self._run(connection, PRE_RESTORE_STATEMENT, Phase.PRE_HOOK, "pre-restore")

    def run_post_restore(self, connection: ConnectionDetails):
        self._run(connection, POST_RESTORE_STATEMENT, Phase.POST_HOOK, "post-restore")

    def _run(self, connection: ConnectionDetails, statement: str, phase: Phase, hook: str):
        self.logger.debug("Running %s hook: %s", hook, statement)
        try:
            self.database_service.execute(connection, statement)
        except (psycopg.Error, ConnectivityError) as exc:
            raise HookError(
                actionable_error(
                    "hook_failed",
                    extension=EXTENSION_NAME,
                    hook=hook,
                    reason=str(exc).strip(),
                    statement=statement,
                ),
                phase=phase,
                statement=statement,
            ) from exc
