"""Actionable error catalog for syno-docker-update."""

from typing import Dict

from .errors import UpdaterError

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "root_required": {
        "what": "You need to be root to run this script.",
        "next": "Run the command again with sudo.",
    },
    "no_command": {
        "what": "No command specified.",
        "next": "Choose one of: backup, download PATH, install PATH, restore, update.",
    },
    "unrecognized_argument": {
        "what": "Unrecognized parameter ({argument}).",
        "next": "Check the usage text above.",
    },
    "unsupported_host": {
        "what": "This script supports DSM {supported}.x only, detected {detected}.",
        "next": "Use --force to override.",
    },
    "missing_runtime": {
        "what": "Could not detect current Docker version.",
        "next": "Use --force to override.",
    },
    "missing_compose": {
        "what": "Could not detect current Docker Compose version.",
        "next": "Use --force to override.",
    },
    "runtime_unavailable": {
        "what": "Could not find Docker binaries for downloading.",
        "next": "Check network access or pass an explicit --docker VERSION.",
    },
    "compose_unavailable": {
        "what": "Could not find Docker Compose binaries for downloading.",
        "next": "Check network access or pass an explicit --compose VERSION.",
    },
    "already_up_to_date": {
        "what": "Already on target version for Docker and Docker Compose.",
        "next": "Use --force to reinstall the same versions.",
    },
    "backup_path_required": {
        "what": "{detail}",
        "next": "Specify the backup archive with --backup NAME.",
    },
    "backup_write_failed": {
        "what": "Backup issue, archive was not created ({path}).",
        "next": "Check free space and permissions of the backup location.",
    },
    "missing_binaries": {
        "what": "Could not find Docker binaries ({path}).",
        "next": "Download the Docker archive first or pick another PATH.",
    },
    "missing_compose_archive": {
        "what": "Docker Compose binary could not be extracted from archive ({path}).",
        "next": "Verify the backup archive was created by this tool.",
    },
    "missing_compose_download": {
        "what": "Could not find Docker Compose binary ({path}).",
        "next": "Download the Docker Compose binary first or pick another PATH.",
    },
    "missing_config": {
        "what": "Log driver configuration could not be extracted from archive ({path}).",
        "next": "Verify the backup archive was created by this tool.",
    },
    "extract_failed": {
        "what": "Files could not be extracted from archive ({path}).",
        "next": "Remove the archive and download it again.",
    },
    "download_failed": {
        "what": "Binary could not be downloaded ({url}).",
        "next": "Check network access and that the target version exists.",
    },
    "invalid_version_format": {
        "what": "Unrecognized target {label} version ({value}).",
        "next": "Use a version in the form MAJOR.MINOR.PATCH.",
    },
    "invalid_working_dir": {
        "what": "{detail}",
        "next": "Provide an existing directory for PATH.",
    },
    "service_restart_failed": {
        "what": "Could not bring Docker Engine back online.",
        "next": "Check the Docker package in Package Center.",
    },
    "command_not_found": {
        "what": "Required command not found: {command}.",
        "next": "Install it or run the tool on a Synology host.",
    },
    "config_invalid": {
        "what": "{detail}",
        "next": "Fix the configuration file and try again.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"


def updater_error(code: str, show_usage: bool = False, **kwargs: str) -> UpdaterError:
    """Build an ``UpdaterError`` whose message comes from the catalog."""
    return UpdaterError(actionable_error(code, **kwargs), code=code, show_usage=show_usage)
