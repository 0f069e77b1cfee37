"""Installed and available version detection for Docker and Docker Compose."""

import os
import re
from typing import Iterable, Optional, Tuple

import requests

from synodockerupdate.constants import (
    DOWNLOAD_DOCKER,
    DOWNLOAD_GITHUB,
    DOWNLOAD_TIMEOUT,
    DSM_SUPPORTED_VERSION,
    DSM_VERSION_FILE,
    GITHUB_RELEASES,
)
from synodockerupdate.errors import UpdaterError
from synodockerupdate.errors_catalog import updater_error
from synodockerupdate.models import HostProfile, VersionTriple

DOCKER_INDEX_PATTERN = re.compile(r">docker-(\d+\.\d+\.\d+(?:-ce)?)\.tgz")
DOCKER_ARCHIVE_PATTERN = re.compile(r"^docker-(\d+\.\d+\.\d+(?:-ce)?)\.tgz$")
COMPOSE_TAG_PATTERN = re.compile(r'href="' + re.escape(GITHUB_RELEASES) + r'/(\d+\.\d+\.\d+)"')
VERSION_OUTPUT_PATTERN = re.compile(r"(\d+\.\d+\.\d+(?:-ce)?)")


def select_latest(candidates: Iterable[str], pattern: re.Pattern) -> Optional[VersionTriple]:
    """Return the highest version captured by ``pattern`` across ``candidates``.

    Versions are compared field by field as integers, so ``1.10.0`` wins
    over ``1.9.10``.
    """
    versions = []
    for candidate in candidates:
        for match in pattern.finditer(candidate):
            parsed = VersionTriple.try_parse(match.group(1))
            if parsed is not None:
                versions.append(parsed)

    if not versions:
        return None
    return max(versions)


def parse_version_output(output: str) -> Optional[VersionTriple]:
    """Extract the first ``N.N.N`` version from a ``--version`` style banner."""
    match = VERSION_OUTPUT_PATTERN.search(output or "")
    if not match:
        return None
    return VersionTriple.try_parse(match.group(1))


def parse_dsm_version_file(content: str) -> HostProfile:
    values = {}
    for line in content.splitlines():
        if "=" not in line:
            continue
        key, _, raw_value = line.partition("=")
        values[key.strip()] = raw_value.strip().strip('"')

    return HostProfile(
        product_version=values.get("productversion") or None,
        major_version=values.get("majorversion") or None,
        build=values.get("buildnumber") or None,
    )


class VersionProbe:
    """Reads installed versions locally and available versions remotely."""

    def __init__(
        self,
        command_runner,
        logger,
        requests_module=requests,
        version_file: str = DSM_VERSION_FILE,
        timeout: float = DOWNLOAD_TIMEOUT,
    ):
        self.command_runner = command_runner
        self.logger = logger
        self.requests = requests_module
        self.version_file = version_file
        self.timeout = timeout

    def detect_host(self) -> HostProfile:
        try:
            with open(self.version_file, "r", encoding="utf-8") as file_obj:
                return parse_dsm_version_file(file_obj.read())
        except OSError as exc:
            self.logger.debug("Could not read %s: %s", self.version_file, exc)
            return HostProfile()

    def _detect_tool_version(self, cmd) -> Optional[VersionTriple]:
        try:
            result = self.command_runner.run(cmd, check=False, capture_output=True)
        except UpdaterError as exc:
            self.logger.debug("Version detection failed for %s: %s", cmd[0], exc)
            return None

        if result.returncode != 0:
            return None
        return parse_version_output(result.stdout)

    def detect_installed(self) -> Tuple[HostProfile, Optional[VersionTriple], Optional[VersionTriple]]:
        host = self.detect_host()
        docker_version = self._detect_tool_version(["docker", "-v"])
        compose_version = self._detect_tool_version(["docker-compose", "-v"])
        return host, docker_version, compose_version

    def _fetch_listing(self, url: str) -> str:
        self.logger.debug("Fetching release listing %s", url)
        try:
            response = self.requests.get(url, timeout=self.timeout)
            response.raise_for_status()
        except self.requests.RequestException as exc:
            self.logger.warning("Could not read release listing %s: %s", url, exc)
            return ""
        return response.text

    def latest_docker_version(self) -> Optional[VersionTriple]:
        listing = self._fetch_listing(f"{DOWNLOAD_DOCKER}/")
        return select_latest(listing.splitlines(), DOCKER_INDEX_PATTERN)

    def latest_compose_version(self) -> Optional[VersionTriple]:
        # Release candidates never match: the tag must end right after PATCH.
        listing = self._fetch_listing(f"{DOWNLOAD_GITHUB}/tags")
        return select_latest(listing.splitlines(), COMPOSE_TAG_PATTERN)

    def detect_available(
        self,
        target_docker: Optional[VersionTriple] = None,
        target_compose: Optional[VersionTriple] = None,
    ) -> Tuple[Optional[VersionTriple], Optional[VersionTriple]]:
        if target_docker is None:
            target_docker = self.latest_docker_version()
        if target_compose is None:
            target_compose = self.latest_compose_version()
        return target_docker, target_compose

    def detect_from_local_archives(self, directory: str) -> Optional[VersionTriple]:
        try:
            names = [
                name
                for name in os.listdir(directory)
                if os.path.isfile(os.path.join(directory, name))
            ]
        except OSError as exc:
            self.logger.debug("Could not list %s: %s", directory, exc)
            return None
        return select_latest(names, DOCKER_ARCHIVE_PATTERN)

    def validate_installed(
        self,
        host: HostProfile,
        docker_version: Optional[VersionTriple],
        compose_version: Optional[VersionTriple],
        force: bool = False,
    ):
        if force:
            return

        if not host.supported:
            raise updater_error(
                "unsupported_host",
                supported=DSM_SUPPORTED_VERSION,
                detected=host.product_version or "Unknown",
            )
        if docker_version is None:
            raise updater_error("missing_runtime")
        if compose_version is None:
            raise updater_error("missing_compose")

    def validate_available(
        self,
        target_docker: Optional[VersionTriple],
        target_compose: Optional[VersionTriple],
    ):
        if target_docker is None:
            raise updater_error("runtime_unavailable")
        if target_compose is None:
            raise updater_error("compose_unavailable")
