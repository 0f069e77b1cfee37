"""Backup and release archive helpers for syno-docker-update."""

import os
import shutil
import tarfile
from pathlib import Path

from synodockerupdate.constants import (
    BIN_DIR_NAME,
    COMPOSE_BIN_NAME,
    EXTRACTED_DIR_NAME,
    SYNO_DOCKER_JSON_NAME,
)
from synodockerupdate.errors import UpdaterError
from synodockerupdate.errors_catalog import updater_error


class ArchiveService:
    """Creates the backup archive and extracts backups and Docker releases."""

    def __init__(self, logger):
        self.logger = logger

    def is_within_dir(self, base_dir: Path, candidate: Path) -> bool:
        try:
            return os.path.commonpath([str(base_dir), str(candidate)]) == str(base_dir)
        except ValueError:
            return False

    def safe_extract_tar(self, archive_path: str, destination_dir: str):
        base = Path(destination_dir).resolve()

        try:
            with tarfile.open(archive_path, "r:gz") as tar_ref:
                members = tar_ref.getmembers()
                for member in members:
                    target_path = (base / member.name).resolve()
                    if not self.is_within_dir(base, target_path):
                        raise UpdaterError(
                            f"Unsafe archive entry detected: `{member.name}`. "
                            "Archive extraction aborted to prevent path traversal."
                        )

                base.mkdir(parents=True, exist_ok=True)
                # The filter keyword is missing from older 3.9-3.11 patch releases.
                extract_kwargs = {"filter": "tar"} if hasattr(tarfile, "tar_filter") else {}
                tar_ref.extractall(base, members=members, **extract_kwargs)
        except (tarfile.TarError, OSError) as exc:
            raise UpdaterError(f"Invalid archive: {archive_path} ({exc})") from exc

    def create_backup(self, bin_dir: str, config_file: str, dest_path: str):
        """Bundle ``bin_dir`` as ``bin/`` and ``config_file`` into a gzip tarball."""
        self.logger.info("Creating backup %s", dest_path)
        os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)

        try:
            with tarfile.open(dest_path, "w:gz") as tar_ref:
                tar_ref.add(bin_dir, arcname=BIN_DIR_NAME)
                tar_ref.add(config_file, arcname=os.path.basename(config_file))
        except (tarfile.TarError, OSError) as exc:
            self.logger.error("Backup failed: %s", exc)
            if os.path.exists(dest_path):
                os.remove(dest_path)
            raise updater_error("backup_write_failed", path=dest_path) from exc

        if not os.path.isfile(dest_path):
            raise updater_error("backup_write_failed", path=dest_path)

    def extract_backup(self, archive_path: str, config_name: str = SYNO_DOCKER_JSON_NAME) -> str:
        """Extract a backup next to itself and rename ``bin/`` to ``docker/``.

        Returns the directory the backup was extracted into.
        """
        base_dir = os.path.dirname(os.path.abspath(archive_path))
        bin_dir = os.path.join(base_dir, BIN_DIR_NAME)
        docker_dir = os.path.join(base_dir, EXTRACTED_DIR_NAME)

        self.safe_extract_tar(archive_path, base_dir)

        if os.path.isdir(bin_dir):
            if os.path.isdir(docker_dir):
                shutil.rmtree(docker_dir)
            os.rename(bin_dir, docker_dir)

        if not os.path.isdir(docker_dir):
            raise updater_error("missing_binaries", path=docker_dir)

        compose_path = os.path.join(docker_dir, COMPOSE_BIN_NAME)
        if not os.path.isfile(compose_path):
            raise updater_error("missing_compose_archive", path=compose_path)

        config_path = os.path.join(base_dir, config_name)
        if not os.path.isfile(config_path):
            raise updater_error("missing_config", path=config_path)

        return base_dir

    def extract_downloaded(self, archive_path: str, destination_dir: str) -> str:
        """Extract a Docker static release; it must unpack into ``docker/``."""
        try:
            self.safe_extract_tar(archive_path, destination_dir)
        except UpdaterError as exc:
            self.logger.error(str(exc))
            raise updater_error("extract_failed", path=archive_path) from exc

        docker_dir = os.path.join(destination_dir, EXTRACTED_DIR_NAME)
        if not os.path.isdir(docker_dir):
            raise updater_error("extract_failed", path=archive_path)
        return docker_dir
