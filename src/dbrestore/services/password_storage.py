"""Secret storage backends for service passwords."""

import os
from enum import Enum
from pathlib import Path
from typing import Optional

import keyring
from keyring.errors import KeyringError

from dbrestore.constants import KEYRING_SERVICE_NAME
from dbrestore.models import ServiceEndpoint


class StorageKind(str, Enum):
    NONE = "none"
    KEYRING = "keyring"
    PGPASS = "pgpass"

    @property
    def requires_injection(self) -> bool:
        """Whether tools need the secret handed to them explicitly.

        ``pgpass`` is discovered natively by libpq and the client tools, and
        ``none`` has nothing to hand over.
        """
        return self is StorageKind.KEYRING


class NoStorage:
    """Operator opted out of password storage; lookups always miss."""

    kind = StorageKind.NONE

    def get(self, service: ServiceEndpoint, role: str, database: Optional[str] = None) -> Optional[str]:
        return None


class KeyringStorage:
    """Passwords kept in the operating system credential store."""

    kind = StorageKind.KEYRING

    def __init__(self, logger, keyring_module=keyring, service_name: str = KEYRING_SERVICE_NAME):
        self.logger = logger
        self.keyring = keyring_module
        self.service_name = service_name

    @staticmethod
    def username(service: ServiceEndpoint, role: str) -> str:
        return f"password-{service.project_id}-{service.service_id}-{role}"

    def get(self, service: ServiceEndpoint, role: str, database: Optional[str] = None) -> Optional[str]:
        try:
            password = self.keyring.get_password(self.service_name, self.username(service, role))
        except KeyringError as exc:
            self.logger.debug("Keyring lookup failed: %s", exc)
            return None
        return password or None


class PgpassStorage:
    """Passwords kept in a libpq password file (``~/.pgpass`` by default)."""

    kind = StorageKind.PGPASS

    def __init__(self, logger, path: Optional[str] = None):
        self.logger = logger
        self.path = Path(path or os.environ.get("PGPASSFILE") or Path.home() / ".pgpass")

    def get(self, service: ServiceEndpoint, role: str, database: Optional[str] = None) -> Optional[str]:
        if not self.path.is_file():
            self.logger.debug("No password file found at %s", self.path)
            return None

        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            self.logger.debug("Could not read %s: %s", self.path, exc)
            return None

        wanted = (service.host, str(service.port), database, role)
        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            parts = self._split(line)
            if len(parts) != 5:
                continue

            host, port, dbname, username, password = parts
            if all(self._matches(value, target) for value, target in zip((host, port, dbname, username), wanted)):
                return password or None

        return None

    @staticmethod
    def _matches(value: str, target: Optional[str]) -> bool:
        # A None target (database not known to the caller) matches any entry.
        return value == "*" or target is None or value == target

    @staticmethod
    def _split(line: str):
        # Fields are colon-separated; "\:" and "\\" are escapes.
        parts, current, escaped = [], [], False
        for char in line:
            if escaped:
                current.append(char)
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == ":":
                parts.append("".join(current))
                current = []
            else:
                current.append(char)
        parts.append("".join(current))
        return parts


def build_password_storage(kind: str, logger):
    try:
        storage_kind = StorageKind(kind)
    except ValueError:
        choices = ", ".join(item.value for item in StorageKind)
        raise ValueError(f"Unknown password storage '{kind}'. Choose one of: {choices}.") from None

    if storage_kind is StorageKind.KEYRING:
        return KeyringStorage(logger=logger)
    if storage_kind is StorageKind.PGPASS:
        return PgpassStorage(logger=logger)
    return NoStorage()
