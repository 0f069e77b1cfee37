"""Command-line input validation for syno-docker-update."""

import os
import re

from synodockerupdate.errors_catalog import updater_error
from synodockerupdate.models import VersionTriple

VERSION_INPUT_PATTERN = re.compile(r"^\d+\.\d+\.\d+")


def _looks_missing(value) -> bool:
    return not value or value.startswith("-")


class ValidationService:
    """Validates user supplied versions, backup names and paths."""

    def validate_version_input(self, value: str, label: str) -> VersionTriple:
        match = VERSION_INPUT_PATTERN.match(value or "")
        if not match or match.group(0) != value:
            raise updater_error(
                "invalid_version_format",
                show_usage=True,
                label=label,
                value=value or "",
            )
        return VersionTriple.parse(value)

    def validate_backup_filename(self, value: str) -> str:
        # A flag right after --backup means the name was left out.
        if _looks_missing(value):
            raise updater_error(
                "backup_path_required",
                show_usage=True,
                detail="Filename not provided.",
            )
        return value

    def validate_working_dir(self, value: str) -> str:
        if _looks_missing(value):
            raise updater_error("invalid_working_dir", show_usage=True, detail="Path not specified.")

        path = value.rstrip("/") or "/"
        if not os.path.isdir(path):
            raise updater_error(
                "invalid_working_dir",
                show_usage=True,
                detail=f"Path not found ({path}).",
            )
        return path
