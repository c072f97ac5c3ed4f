import logging
import os

import click
from rich.logging import RichHandler

from .constants import DEFAULT_API_URL, DEFAULT_CONFIG_FILE, DEFAULT_DATABASE, DEFAULT_ROLE
from .core import Restorer
from .errors import RestoreError
from .models import RestoreRequest
from .services.config_loader import ConfigLoader
from .services.format_detector import FORMAT_CHOICES
from .services.password_storage import StorageKind


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.argument("file", type=click.Path(allow_dash=True))
@click.option("--service-id", required=False, help="Identifier of the target service.")
@click.option("--database", required=False, help=f"Target database (default: {DEFAULT_DATABASE}).")
@click.option("--role", required=False, help=f"Database role to connect as (default: {DEFAULT_ROLE}).")
@click.option(
    "--format",
    "dump_format",
    required=False,
    type=click.Choice(FORMAT_CHOICES, case_sensitive=False),
    help="Dump format. Auto-detected when omitted.",
)
@click.option("--clean", is_flag=True, default=None, help="Drop existing objects before restoring.")
@click.option("--if-exists", is_flag=True, default=None, help="Use IF EXISTS when dropping objects.")
@click.option("--no-owner", is_flag=True, default=None, help="Skip restoration of object ownership.")
@click.option("--no-privileges", is_flag=True, default=None, help="Skip restoration of access privileges.")
@click.option(
    "--single-transaction",
    is_flag=True,
    default=None,
    help="Restore as a single transaction.",
)
@click.option(
    "--on-error-stop/--continue-on-error",
    default=None,
    help="Stop at the first error (default) or keep going.",
)
@click.option(
    "--jobs",
    required=False,
    type=int,
    default=None,
    help="Parallel jobs for archive restores (default: 1).",
)
@click.option("--force-hooks", is_flag=True, default=None, help="Run TimescaleDB hooks even if undetected.")
@click.option("--skip-hooks", is_flag=True, default=None, help="Never run TimescaleDB hooks.")
@click.option("--confirm", is_flag=True, default=None, help="Skip the confirmation prompt for --clean.")
@click.option("--quiet", is_flag=True, default=None, help="Only print errors.")
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose output and logging.")
@click.option(
    "--timeout",
    required=False,
    type=float,
    default=None,
    help="Maximum seconds the restore tool may run.",
)
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option("--api-url", required=False, envvar="DBRESTORE_API_URL", help="Base URL of the service API.")
@click.option("--api-key", required=False, envvar="DBRESTORE_API_KEY", help="API key for service lookups.")
@click.option("--project-id", required=False, envvar="DBRESTORE_PROJECT_ID", help="Project owning the service.")
@click.option(
    "--password-storage",
    required=False,
    envvar="DBRESTORE_PASSWORD_STORAGE",
    type=click.Choice([kind.value for kind in StorageKind], case_sensitive=False),
    help="Where the database password is stored (default: keyring).",
)
@click.option(
    "--require-password",
    is_flag=True,
    default=None,
    help="Fail when no stored password is found.",
)
def main(
    file,
    service_id,
    database,
    role,
    dump_format,
    clean,
    if_exists,
    no_owner,
    no_privileges,
    single_transaction,
    on_error_stop,
    jobs,
    force_hooks,
    skip_hooks,
    confirm,
    quiet,
    verbose,
    timeout,
    config,
    log_file,
    api_url,
    api_key,
    project_id,
    password_storage,
    require_password,
):
    """Restore a PostgreSQL dump FILE (or - for stdin) into a cloud database service."""
    logger = logging.getLogger("dbrestore")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except RestoreError as exc:
        raise click.ClickException(str(exc)) from exc

    service_id = _resolve_option(service_id, config_values, "service_id")
    database = _resolve_option(database, config_values, "database", default=DEFAULT_DATABASE)
    role = _resolve_option(role, config_values, "role", default=DEFAULT_ROLE)
    dump_format = _resolve_option(dump_format, config_values, "format")
    clean = bool(_resolve_option(clean, config_values, "clean", default=False))
    if_exists = bool(_resolve_option(if_exists, config_values, "if_exists", default=False))
    no_owner = bool(_resolve_option(no_owner, config_values, "no_owner", default=False))
    no_privileges = bool(_resolve_option(no_privileges, config_values, "no_privileges", default=False))
    single_transaction = bool(
        _resolve_option(single_transaction, config_values, "single_transaction", default=False)
    )
    on_error_stop = bool(_resolve_option(on_error_stop, config_values, "on_error_stop", default=True))
    jobs = int(_resolve_option(jobs, config_values, "jobs", default=1))
    force_hooks = bool(_resolve_option(force_hooks, config_values, "force_hooks", default=False))
    skip_hooks = bool(_resolve_option(skip_hooks, config_values, "skip_hooks", default=False))
    quiet = bool(_resolve_option(quiet, config_values, "quiet", default=False))
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    timeout = _resolve_option(timeout, config_values, "timeout")
    log_file = _resolve_option(log_file, config_values, "log_file")
    api_url = _resolve_option(api_url, config_values, "api_url", default=DEFAULT_API_URL)
    api_key = _resolve_option(api_key, config_values, "api_key")
    project_id = _resolve_option(project_id, config_values, "project_id")
    password_storage = _resolve_option(
        password_storage, config_values, "password_storage", default=StorageKind.KEYRING.value
    )
    require_password = bool(
        _resolve_option(require_password, config_values, "require_password", default=False)
    )

    if not service_id:
        raise click.ClickException("Missing required option '--service-id' (or provide it in config).")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    elif quiet:
        logger.setLevel(logging.WARNING)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    request = RestoreRequest(
        service_id=str(service_id),
        file_path=file,
        database=str(database),
        role=str(role),
        format=dump_format,
        clean=clean,
        if_exists=if_exists,
        no_owner=no_owner,
        no_privileges=no_privileges,
        single_transaction=single_transaction,
        on_error_stop=on_error_stop,
        jobs=jobs,
        force_hooks=force_hooks,
        skip_hooks=skip_hooks,
        confirm=bool(confirm),
        quiet=quiet,
        verbose=verbose,
        require_password=require_password,
        timeout=float(timeout) if timeout is not None else None,
    )

    try:
        restorer = Restorer(
            request,
            api_key=api_key,
            project_id=project_id,
            api_url=api_url,
            password_storage=str(password_storage).lower(),
        )
    except RestoreError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(restorer.run().exit_code)


if __name__ == "__main__":
    main()
