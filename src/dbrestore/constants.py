"""Shared constants for dbrestore."""

STDIN_MARKER = "-"

DEFAULT_ROLE = "tsdbadmin"
DEFAULT_DATABASE = "tsdb"
DEFAULT_PORT = 5432
DEFAULT_API_URL = "https://console.cloud.timescale.com/public/api/v1"
DEFAULT_CONFIG_FILE = ".dbrestore.yml"

ARCHIVE_TOOL = "pg_restore"
SCRIPT_TOOL = "psql"

EXTENSION_NAME = "timescaledb"
PRE_RESTORE_STATEMENT = "SELECT public.timescaledb_pre_restore()"
POST_RESTORE_STATEMENT = "SELECT public.timescaledb_post_restore()"

HEADER_READ_SIZE = 512
GZIP_MAGIC = b"\x1f\x8b"
CUSTOM_ARCHIVE_MAGIC = b"PGDMP"
TAR_MAGIC = b"ustar"
TAR_MAGIC_OFFSET = 257
DIRECTORY_TOC_FILE = "toc.dat"

KEYRING_SERVICE_NAME = "dbrestore"
PASSWORD_ENV_VAR = "PGPASSWORD"

CONNECT_TIMEOUT_SECONDS = 10
API_TIMEOUT_SECONDS = 30
TERMINATE_GRACE_SECONDS = 5.0
POLL_INTERVAL_SECONDS = 0.2

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130
