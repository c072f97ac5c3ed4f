"""Actionable error catalog for dbrestore."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "input_not_found": {
        "what": "Dump file not found: {path}",
        "next": "Check the path, or pass `-` to read the dump from standard input.",
    },
    "input_not_readable": {
        "what": "Dump file is not readable: {path}",
        "next": "Check the file permissions for the current user.",
    },
    "unsupported_format": {
        "what": "Unsupported dump format: {format}",
        "next": "Use one of: plain, plain-compressed, custom, tar, directory.",
    },
    "invalid_directory_dump": {
        "what": "Directory is not a valid pg_dump directory-format dump: {path}",
        "next": "Point at a directory created with `pg_dump --format=directory` (it contains toc.dat).",
    },
    "directory_from_stdin": {
        "what": "Directory-format dumps cannot be read from standard input.",
        "next": "Pass the dump directory path instead of `-`.",
    },
    "tool_not_found": {
        "what": "Required client tool not found: {tool}",
        "next": "Install the PostgreSQL client tools and make sure `{tool}` is on PATH.",
    },
    "authentication_required": {
        "what": "Authentication required: {reason}",
        "next": "Set DBRESTORE_API_KEY and DBRESTORE_PROJECT_ID (or api_key/project_id in the config file) and retry.",
    },
    "password_required": {
        "what": "No password found for role '{role}' in {backend} storage.",
        "next": "Store the password for this service, or choose another --password-storage backend.",
    },
    "database_unreachable": {
        "what": "Failed to connect to database: {reason}",
        "next": "Check that the service is running and reachable from this network.",
    },
    "database_missing": {
        "what": "Target database '{database}' does not exist.",
        "next": "Create the database first or pass an existing one with --database.",
    },
    "archive_tool_outdated": {
        "what": "pg_restore {tool_version} is older than the server (PostgreSQL {server_version}).",
        "next": "Install client tools matching the server major version if the restore fails.",
    },
    "archive_unsupported_version": {
        "what": "The dump was created by a newer pg_dump than this pg_restore understands.",
        "next": "Install a newer pg_restore matching the pg_dump version used for the dump.",
    },
    "hook_failed": {
        "what": "{extension} {hook} hook failed: {reason}",
        "next": "Run `{statement}` manually, then retry or re-run with --skip-hooks.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
