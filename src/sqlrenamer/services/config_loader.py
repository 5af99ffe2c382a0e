"""Configuration loader for SQLRenamer."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from sqlrenamer.errors import RenamerError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "new_name",
        "instance",
        "databases",
        "hosts",
        "username",
        "password",
        "verbose",
        "log_file",
        "report_file",
        "backup_dir",
        "sqlcmd",
        "command_timeout",
        "quiesce_attempts",
        "quiesce_delay_seconds",
        "aliases_only",
        "match_server",
    }
    LIST_KEYS = {"databases", "hosts"}

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise RenamerError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise RenamerError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise RenamerError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise RenamerError(f"Unknown configuration keys: {unknown_list}")

        for key in self.LIST_KEYS & set(parsed.keys()):
            value = parsed[key]
            if isinstance(value, str):
                parsed[key] = [value]
            elif not isinstance(value, list):
                raise RenamerError(f"Configuration key '{key}' must be a list of names.")

        return parsed
