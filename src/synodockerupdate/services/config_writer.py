"""dockerd.json log driver configuration."""

import json
import os
from typing import Any, Dict

from synodockerupdate.constants import LOG_DRIVER


def build_daemon_config(data_root: str, log_driver: str = LOG_DRIVER) -> Dict[str, Any]:
    return {
        "data-root": data_root,
        "log-driver": log_driver,
        "registry-mirrors": [],
        "group": "administrators",
    }


def render_daemon_config(config: Dict[str, Any]) -> str:
    return json.dumps(config, indent=4) + "\n"


class ConfigWriter:
    """Rewrites the daemon configuration when the log driver is not set."""

    def __init__(self, logger, token: str = LOG_DRIVER):
        self.logger = logger
        self.token = token

    def needs_update(self, path: str) -> bool:
        if not os.path.isfile(path):
            return True
        with open(path, "r", encoding="utf-8", errors="replace") as file_obj:
            return self.token not in file_obj.read()

    def ensure_log_driver_config(self, path: str, template: str) -> bool:
        """Write ``template`` to ``path`` unless it already mentions the driver.

        Returns True when the file was written. The file is replaced as a
        whole, never merged.
        """
        if not self.needs_update(path):
            self.logger.info("Log driver already configured in %s", path)
            return False

        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="\n") as file_obj:
            file_obj.write(template)
        self.logger.info("Wrote daemon configuration to %s", path)
        return True
