import logging
import os
import subprocess
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

import requests
from rich.console import Console

from .constants import (
    BACKUP_NAME_FORMAT,
    BIN_MODE,
    COMPOSE_ASSET,
    COMPOSE_BIN_NAME,
    CONFIG_MODE,
    DEFAULT_WORKING_DIR,
    DOWNLOAD_DOCKER,
    DOWNLOAD_GITHUB,
    DOWNLOAD_TIMEOUT,
    EXTRACTED_DIR_NAME,
    SYNO_DOCKER_SERV_NAME,
)
from .errors import UpdaterError
from .errors_catalog import updater_error
from .models import (
    Command,
    ServiceStatus,
    Step,
    SynologyPaths,
    VersionTriple,
    WorkflowContext,
    display_version,
)
from .services.archive import ArchiveService
from .services.command_runner import CommandRunner
from .services.config_writer import ConfigWriter, build_daemon_config, render_daemon_config
from .services.download import DownloadService
from .services.filesystem import FileSystemService
from .services.service_controller import ServiceController
from .services.version_probe import VersionProbe

console = Console()
logger = logging.getLogger("synodockerupdate")

HEADER = "Update Docker Engine and Docker Compose on Synology to target version"

VersionInput = Optional[Union[str, VersionTriple]]


def _as_version(value: VersionInput) -> Optional[VersionTriple]:
    if value is None or isinstance(value, VersionTriple):
        return value
    return VersionTriple.parse(value)


def default_backup_file(working_dir: str, now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime(BACKUP_NAME_FORMAT)
    return os.path.join(working_dir, stamp)


class DockerUpdater:
    """Runs one backup, download, install, restore or update pipeline.

    Every command first runs its unnumbered pre-flight checks (version
    detection and target resolution), then its fixed list of numbered
    steps. The first failing step ends the run; the working directory is
    left as is for inspection.
    """

    PIPELINES: Dict[Command, tuple] = {
        Command.BACKUP: ("stop_service", "prepare", "backup", "start_service"),
        Command.DOWNLOAD: ("prepare", "download_docker", "download_compose"),
        Command.INSTALL: (
            "stop_service",
            "prepare",
            "backup",
            "extract_docker",
            "install_binaries",
            "update_log_driver",
            "start_service",
        ),
        Command.RESTORE: (
            "stop_service",
            "extract_backup",
            "restore_binaries",
            "restore_log_driver",
            "start_service",
        ),
        Command.UPDATE: (
            "stop_service",
            "prepare",
            "backup",
            "download_docker",
            "extract_docker",
            "download_compose",
            "install_binaries",
            "update_log_driver",
            "start_service",
            "clean",
        ),
    }

    def __init__(
        self,
        command: Union[str, Command],
        working_dir: str = DEFAULT_WORKING_DIR,
        backup_file: Optional[str] = None,
        target_docker: VersionInput = None,
        target_compose: VersionInput = None,
        force: bool = False,
        stage: bool = True,
        download_timeout: float = DOWNLOAD_TIMEOUT,
        paths: Optional[SynologyPaths] = None,
        service_name: str = SYNO_DOCKER_SERV_NAME,
        version_probe: Optional[VersionProbe] = None,
        service_controller: Optional[ServiceController] = None,
        download_service: Optional[DownloadService] = None,
        archive_service: Optional[ArchiveService] = None,
        config_writer: Optional[ConfigWriter] = None,
        filesystem_service: Optional[FileSystemService] = None,
    ):
        working_dir = working_dir.rstrip("/") or "/"
        self.context = WorkflowContext(
            command=Command(command),
            working_dir=working_dir,
            backup_file=backup_file or default_backup_file(working_dir),
            backup_file_explicit=backup_file is not None,
            target_docker=_as_version(target_docker),
            target_compose=_as_version(target_compose),
            force=force,
            stage=stage,
        )
        self.paths = paths or SynologyPaths()
        self.service_name = service_name

        self.command_runner = CommandRunner(logger=logger)
        self.version_probe = version_probe or VersionProbe(
            command_runner=self.command_runner,
            logger=logger,
            requests_module=requests,
            timeout=download_timeout,
        )
        self.service_controller = service_controller or ServiceController(
            logger=logger,
            run_cmd=self._run_cmd,
        )
        self.download_service = download_service or DownloadService(
            logger=logger,
            console=console,
            requests_module=requests,
            timeout=download_timeout,
        )
        self.archive_service = archive_service or ArchiveService(logger=logger)
        self.config_writer = config_writer or ConfigWriter(logger=logger)
        self.filesystem_service = filesystem_service or FileSystemService(
            logger=logger,
            console=console,
        )

        self.steps = self._build_steps()
        self.preflight: Dict[Command, List[Callable[[], None]]] = {
            Command.BACKUP: [self.detect_current_versions],
            Command.DOWNLOAD: [self.detect_current_versions, self.define_target_version],
            Command.INSTALL: [self.detect_current_versions, self.define_target_download],
            Command.RESTORE: [self.define_restore, self.detect_current_versions],
            Command.UPDATE: [
                self.detect_current_versions,
                self.define_target_version,
                self.define_update,
            ],
        }

    def _run_cmd(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
    ) -> subprocess.CompletedProcess:
        return self.command_runner.run(cmd, check=check, capture_output=capture_output)

    # Paths inside the working directory

    @property
    def extracted_dir(self) -> str:
        return os.path.join(self.context.working_dir, EXTRACTED_DIR_NAME)

    @property
    def docker_archive_path(self) -> str:
        return os.path.join(self.context.working_dir, self.context.docker_archive_name)

    @property
    def compose_path(self) -> str:
        return os.path.join(self.context.working_dir, COMPOSE_BIN_NAME)

    def docker_url(self) -> str:
        return f"{DOWNLOAD_DOCKER}/{self.context.docker_archive_name}"

    def compose_url(self) -> str:
        return f"{DOWNLOAD_GITHUB}/releases/download/{self.context.target_compose}/{COMPOSE_ASSET}"

    # Pre-flight checks

    def detect_current_versions(self):
        context = self.context
        host, docker_version, compose_version = self.version_probe.detect_installed()
        context.host = host
        context.docker_version = docker_version
        context.compose_version = compose_version

        console.print(f"Current DSM version: {display_version(host.product_version)}")
        console.print(f"Current Docker version: {display_version(docker_version)}")
        console.print(f"Current Docker Compose version: {display_version(compose_version)}")

        self.version_probe.validate_installed(
            host,
            docker_version,
            compose_version,
            force=context.force,
        )

    def define_target_version(self):
        context = self.context
        context.target_docker, context.target_compose = self.version_probe.detect_available(
            context.target_docker,
            context.target_compose,
        )
        console.print(f"Target Docker version: {display_version(context.target_docker)}")
        console.print(f"Target Docker Compose version: {display_version(context.target_compose)}")
        self.version_probe.validate_available(context.target_docker, context.target_compose)

    def define_target_download(self):
        context = self.context
        if context.target_docker is None:
            context.target_docker = self.version_probe.detect_from_local_archives(context.working_dir)

        # Side-loaded binaries carry no version we can read for compose.
        console.print(f"Target Docker version: {display_version(context.target_docker)}")
        console.print(f"Target Docker Compose version: {display_version(None)}")

        if context.target_docker is None or not os.path.isfile(self.docker_archive_path):
            archive = (
                self.docker_archive_path
                if context.target_docker is not None
                else os.path.join(context.working_dir, "docker-<version>.tgz")
            )
            raise updater_error("missing_binaries", path=archive)
        if not os.path.isfile(self.compose_path):
            raise updater_error("missing_compose_download", path=self.compose_path)

    def define_restore(self):
        context = self.context
        if not context.backup_file_explicit:
            raise updater_error(
                "backup_path_required",
                detail="Please specify backup filename (--backup NAME).",
            )
        context.working_dir = os.path.dirname(os.path.abspath(context.backup_file))

    def define_update(self):
        context = self.context
        if context.force:
            return

        docker_current = context.docker_version == context.target_docker
        compose_current = context.compose_version == context.target_compose
        if docker_current and compose_current:
            raise updater_error("already_up_to_date")

        context.skip_docker_update = docker_current
        context.skip_compose_update = compose_current
        if docker_current:
            console.print("[yellow]Docker is already on target version, skipping its update.[/yellow]")
        if compose_current:
            console.print(
                "[yellow]Docker Compose is already on target version, skipping its update.[/yellow]"
            )

    # Steps

    def _build_steps(self) -> Dict[str, Step]:
        def docker_pending(context: WorkflowContext) -> bool:
            return not context.skip_docker_update

        def compose_pending(context: WorkflowContext) -> bool:
            return not context.skip_compose_update

        steps = [
            Step("stop_service", lambda _ctx: "Stopping Docker service", self.execute_stop_service),
            Step(
                "prepare",
                lambda ctx: f"Preparing working environment ({ctx.working_dir})",
                self.execute_prepare,
            ),
            Step(
                "backup",
                lambda ctx: f"Backing up current Docker binaries ({ctx.backup_file})",
                self.execute_backup,
            ),
            Step(
                "download_docker",
                lambda _ctx: f"Downloading target Docker binary ({self.docker_url()})",
                self.execute_download_docker,
                docker_pending,
            ),
            Step(
                "extract_docker",
                lambda _ctx: f"Extracting target Docker binary ({self.docker_archive_path})",
                self.execute_extract_docker,
                docker_pending,
            ),
            Step(
                "download_compose",
                lambda _ctx: f"Downloading target Docker Compose binary ({self.compose_url()})",
                self.execute_download_compose,
                compose_pending,
            ),
            Step("install_binaries", lambda _ctx: "Installing binaries", self.execute_install_binaries),
            Step("update_log_driver", lambda _ctx: "Configuring log driver", self.execute_update_log_driver),
            Step("start_service", lambda _ctx: "Starting Docker service", self.execute_start_service),
            Step("clean", lambda _ctx: "Cleaning the working folder", self.execute_clean),
            Step(
                "extract_backup",
                lambda ctx: f"Extracting Docker backup ({ctx.backup_file})",
                self.execute_extract_backup,
            ),
            Step("restore_binaries", lambda _ctx: "Restoring binaries", self.execute_restore_binaries),
            Step("restore_log_driver", lambda _ctx: "Restoring log driver", self.execute_restore_log_driver),
        ]
        return {step.name: step for step in steps}

    def execute_stop_service(self):
        if self.service_controller.stop(self.service_name):
            logger.info("Stopped %s", self.service_name)

    def execute_prepare(self):
        self.filesystem_service.ensure_dir(self.context.working_dir)
        self.filesystem_service.cleanup_dir(self.extracted_dir)

    def execute_backup(self):
        self.archive_service.create_backup(
            self.paths.bin_dir,
            self.paths.config_file,
            self.context.backup_file,
        )

    def execute_download_docker(self):
        self.download_service.fetch(
            self.docker_url(),
            self.docker_archive_path,
            description=f"Downloading {self.context.docker_archive_name}...",
            follow_redirects=False,
        )

    def execute_extract_docker(self):
        self.archive_service.extract_downloaded(self.docker_archive_path, self.context.working_dir)

    def execute_download_compose(self):
        self.download_service.fetch(
            self.compose_url(),
            self.compose_path,
            description=f"Downloading {COMPOSE_BIN_NAME} {self.context.target_compose}...",
            follow_redirects=True,
        )

    def _report_stage(self, actions: List[str], notice: str):
        for action in actions:
            console.print(f"[dim]{action}[/dim]")
            logger.debug("Staged action: %s", action)
        console.print(f"[yellow]{notice}[/yellow]")

    def execute_install_binaries(self):
        context = self.context
        bin_dir = self.paths.bin_dir
        actions = []
        if not context.skip_docker_update:
            actions.append(f"mv {self.extracted_dir}/* {bin_dir}/")
        if not context.skip_compose_update:
            actions.append(f"mv {self.compose_path} {bin_dir}/{COMPOSE_BIN_NAME}")
        actions.append(f"chmod +x {bin_dir}/*")

        if context.stage:
            self._report_stage(actions, "Skipping installation in STAGE mode")
            return

        if not context.skip_docker_update:
            self.filesystem_service.move_dir_contents(self.extracted_dir, bin_dir, BIN_MODE)
        if not context.skip_compose_update:
            self.filesystem_service.move_file(
                self.compose_path,
                os.path.join(bin_dir, COMPOSE_BIN_NAME),
                BIN_MODE,
            )

    def execute_update_log_driver(self):
        config_file = self.paths.config_file
        if self.context.stage:
            action = "keep" if not self.config_writer.needs_update(config_file) else "write"
            self._report_stage(
                [f"{action} {config_file}"],
                "Skipping configuration in STAGE mode",
            )
            return

        template = render_daemon_config(build_daemon_config(self.paths.data_root))
        self.config_writer.ensure_log_driver_config(config_file, template)

    def execute_start_service(self):
        status = self.service_controller.start(self.service_name)
        if status == ServiceStatus.RUNNING:
            return

        error = updater_error("service_restart_failed")
        if not self.context.force:
            raise error

        console.print(f"[bold red]ERROR:[/bold red] {error}")
        logger.warning(str(error))

    def execute_clean(self):
        self.filesystem_service.cleanup_dir(self.extracted_dir)

    def execute_extract_backup(self):
        self.archive_service.extract_backup(self.context.backup_file, self.paths.config_name)

    def execute_restore_binaries(self):
        bin_dir = self.paths.bin_dir
        actions = [f"mv {self.extracted_dir}/* {bin_dir}/", f"chmod +x {bin_dir}/*"]
        if self.context.stage:
            self._report_stage(actions, "Skipping restoring in STAGE mode")
            return

        self.filesystem_service.move_dir_contents(self.extracted_dir, bin_dir, BIN_MODE)

    def execute_restore_log_driver(self):
        extracted_config = os.path.join(self.context.working_dir, self.paths.config_name)
        actions = [f"mv {extracted_config} {self.paths.config_file}"]
        if self.context.stage:
            self._report_stage(actions, "Skipping restoring in STAGE mode")
            return

        self.filesystem_service.move_file(extracted_config, self.paths.config_file, CONFIG_MODE)

    # Pipeline execution

    def _run_step(self, step: Step):
        context = self.context
        if not step.applicable(context):
            logger.debug("Skipping step %s", step.name)
            return

        context.step += 1
        description = step.description(context)
        console.print(f"[bold blue]Step {context.step} from {context.total_steps}:[/bold blue] {description}")
        logger.debug("Running step %s", step.name)
        step.action()

    def _execute(self, command: Command):
        context = self.context
        context.command = command
        context.step = 0

        for check in self.preflight[command]:
            check()

        steps = [self.steps[name] for name in self.PIPELINES[command]]
        context.total_steps = sum(1 for step in steps if step.applicable(context))

        for step in steps:
            self._run_step(step)

    def _set_working_dir(self, path: Optional[str]):
        if path is not None:
            self.context.working_dir = path.rstrip("/") or "/"

    def run_backup(self):
        self._execute(Command.BACKUP)

    def run_download(self, target_dir: Optional[str] = None):
        self._set_working_dir(target_dir)
        self._execute(Command.DOWNLOAD)

    def run_install(self, source_dir: Optional[str] = None):
        self._set_working_dir(source_dir)
        self._execute(Command.INSTALL)

    def run_restore(self):
        self._execute(Command.RESTORE)

    def run_update(self):
        self._execute(Command.UPDATE)

    def run(self) -> int:
        operations = {
            Command.BACKUP: self.run_backup,
            Command.DOWNLOAD: self.run_download,
            Command.INSTALL: self.run_install,
            Command.RESTORE: self.run_restore,
            Command.UPDATE: self.run_update,
        }

        try:
            logger.debug("Running command %s", self.context.command.value)
            operations[self.context.command]()
            console.print("[green]Done.[/green]")
            return 0

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            return 1
        except UpdaterError as exc:
            console.print(f"[bold red]ERROR:[/bold red] {exc}")
            logger.error(str(exc))
            return 1
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            return 1
