"""Shared domain models for syno-docker-update."""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from packaging import version

from .constants import (
    BIN_DIR_NAME,
    DSM_SUPPORTED_VERSION,
    SYNO_DOCKER_BIN_PATH,
    SYNO_DOCKER_DIR,
    SYNO_DOCKER_JSON_NAME,
    SYNO_DOCKER_JSON_PATH,
)

UNKNOWN = "Unknown"

_VERSION_PATTERN = re.compile(r"^(\d+\.\d+\.\d+)(-ce)?$")


@dataclass(frozen=True, order=True)
class VersionTriple:
    """Semantic version of Docker or Docker Compose.

    Ordering and equality look at the numeric fields only. The ``-ce``
    suffix used by older Docker releases is kept so artifact names can be
    rebuilt from the version.
    """

    major: int
    minor: int
    patch: int
    suffix: str = field(default="", compare=False)
    text: str = field(default="", compare=False, repr=False)

    @classmethod
    def parse(cls, text: str) -> "VersionTriple":
        clean_text = text.strip()
        match = _VERSION_PATTERN.match(clean_text)
        if not match:
            raise ValueError(f"Not a MAJOR.MINOR.PATCH version: {text!r}")

        major, minor, patch = version.Version(match.group(1)).release
        return cls(major, minor, patch, match.group(2) or "", clean_text)

    @classmethod
    def try_parse(cls, text: Optional[str]) -> Optional["VersionTriple"]:
        if not text:
            return None
        try:
            return cls.parse(text)
        except ValueError:
            return None

    def __str__(self) -> str:
        # Keep zero padding such as 18.09.1, release file names depend on it.
        return self.text or f"{self.major}.{self.minor}.{self.patch}{self.suffix}"


def display_version(value) -> str:
    return str(value) if value else UNKNOWN


@dataclass(frozen=True)
class HostProfile:
    """DSM host information read from the version file."""

    product_version: Optional[str] = None
    major_version: Optional[str] = None
    build: Optional[str] = None

    @property
    def supported(self) -> bool:
        return self.major_version == DSM_SUPPORTED_VERSION


class ServiceStatus(Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


class Command(Enum):
    BACKUP = "backup"
    DOWNLOAD = "download"
    INSTALL = "install"
    RESTORE = "restore"
    UPDATE = "update"

    @property
    def takes_path(self) -> bool:
        return self in (Command.DOWNLOAD, Command.INSTALL)


@dataclass(frozen=True)
class SynologyPaths:
    """Managed locations of the Synology Docker package."""

    bin_parent: str = SYNO_DOCKER_BIN_PATH
    config_dir: str = SYNO_DOCKER_JSON_PATH
    config_name: str = SYNO_DOCKER_JSON_NAME
    package_dir: str = SYNO_DOCKER_DIR

    @property
    def bin_dir(self) -> str:
        return os.path.join(self.bin_parent, BIN_DIR_NAME)

    @property
    def config_file(self) -> str:
        return os.path.join(self.config_dir, self.config_name)

    @property
    def data_root(self) -> str:
        return f"{self.package_dir}/target/docker"


@dataclass(frozen=True)
class Step:
    """One numbered unit of work in a command pipeline."""

    name: str
    description: Callable[["WorkflowContext"], str]
    action: Callable[[], None]
    applicable: Callable[["WorkflowContext"], bool] = lambda _context: True


@dataclass
class WorkflowContext:
    """Run state shared by every step of one invocation."""

    command: Command
    working_dir: str
    backup_file: str
    backup_file_explicit: bool = False
    target_docker: Optional[VersionTriple] = None
    target_compose: Optional[VersionTriple] = None
    skip_docker_update: bool = False
    skip_compose_update: bool = False
    force: bool = False
    stage: bool = True
    host: HostProfile = field(default_factory=HostProfile)
    docker_version: Optional[VersionTriple] = None
    compose_version: Optional[VersionTriple] = None
    step: int = 0
    total_steps: int = 0

    @property
    def docker_archive_name(self) -> str:
        return f"docker-{self.target_docker}.tgz"
