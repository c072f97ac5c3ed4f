"""Configuration loader for dbrestore."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from dbrestore.errors import RestoreError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "service_id",
        "database",
        "role",
        "format",
        "clean",
        "if_exists",
        "no_owner",
        "no_privileges",
        "single_transaction",
        "on_error_stop",
        "jobs",
        "force_hooks",
        "skip_hooks",
        "verbose",
        "quiet",
        "log_file",
        "api_url",
        "api_key",
        "project_id",
        "password_storage",
        "require_password",
        "timeout",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise RestoreError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise RestoreError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise RestoreError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise RestoreError(f"Unknown configuration keys: {unknown_list}")

        return parsed
