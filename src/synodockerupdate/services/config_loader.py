"""Configuration loader for syno-docker-update."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from synodockerupdate.errors_catalog import updater_error


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "backup",
        "compose",
        "docker",
        "force",
        "stage",
        "verbose",
        "log_file",
        "download_timeout",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise updater_error("config_invalid", detail=f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise updater_error(
                "config_invalid",
                detail=f"Invalid config file '{config_path}': {exc}",
            ) from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise updater_error(
                "config_invalid",
                detail="Config file must contain a YAML mapping at the root.",
            )

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise updater_error("config_invalid", detail=f"Unknown configuration keys: {unknown_list}")

        return parsed
