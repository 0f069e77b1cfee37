import logging
import os

import click
from rich.logging import RichHandler

from .constants import DEFAULT_WORKING_DIR, DOWNLOAD_TIMEOUT
from .core import HEADER, DockerUpdater, UpdaterError, console
from .errors_catalog import actionable_error
from .models import Command
from .services.config_loader import ConfigLoader
from .services.validation import ValidationService

DEFAULT_CONFIG_NAME = ".syno_docker_update.yml"


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


class UpdaterCliError(click.ClickException):
    """Prints ``ERROR:`` (and the usage text when asked) and exits with 1."""

    exit_code = 1

    def __init__(self, message, ctx=None, show_usage=False):
        super().__init__(message)
        self.ctx = ctx
        self.show_usage = show_usage

    def show(self, file=None):
        if self.show_usage and self.ctx is not None:
            click.echo(self.ctx.get_help(), file=file)
            click.echo(file=file)
        click.echo(f"ERROR: {self.format_message()}", file=file)


class UpdaterCommand(click.Command):
    """Reports unknown options and stray arguments the same way as other errors."""

    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as exc:
            raise UpdaterCliError(
                actionable_error("unrecognized_argument", argument=exc.format_message()),
                ctx=ctx,
                show_usage=True,
            ) from exc


def _fail(ctx, exc: UpdaterError):
    raise UpdaterCliError(str(exc), ctx=ctx, show_usage=exc.show_usage) from exc


def _ensure_root(ctx):
    geteuid = getattr(os, "geteuid", None)
    if geteuid is not None and geteuid() != 0:
        raise UpdaterCliError(actionable_error("root_required"), ctx=ctx, show_usage=True)


@click.command(
    cls=UpdaterCommand,
    context_settings={"help_option_names": ["-h", "--help"]},
    epilog=(
        "Commands:\n\n"
        "\b\n"
        "  backup          Create a backup of Docker and Docker Compose binaries\n"
        "                  and dockerd configuration\n"
        "  download PATH   Download Docker and Docker Compose binaries to PATH\n"
        "  install PATH    Update Docker and Docker Compose from files on PATH\n"
        "  restore         Restore Docker and Docker Compose from backup\n"
        "  update          Update Docker and Docker Compose to target version\n"
        "                  (creates backup first)"
    ),
)
@click.argument("command", required=False, type=click.Choice([c.value for c in Command]))
@click.argument("path", required=False)
@click.option(
    "-b",
    "--backup",
    required=False,
    help=(
        "Path and name of the backup (defaults to "
        f"'{DEFAULT_WORKING_DIR}/docker_backup_YYMMDDHHMMSS.tgz')"
    ),
)
@click.option("-c", "--compose", required=False, help="Docker Compose target version (defaults to latest)")
@click.option("-d", "--docker", required=False, help="Docker target version (defaults to latest)")
@click.option("-f", "--force", is_flag=True, default=None, help="Force update (bypass compatibility check)")
@click.option(
    "-s/-S",
    "--stage/--no-stage",
    default=None,
    help="Stage only, do not replace binaries or the log driver configuration (default: on)",
)
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_NAME} if present.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option(
    "--download-timeout",
    required=False,
    type=float,
    default=None,
    help="HTTP timeout in seconds for release listings and downloads.",
)
@click.pass_context
def main(
    ctx,
    command,
    path,
    backup,
    compose,
    docker,
    force,
    stage,
    config,
    verbose,
    log_file,
    download_timeout,
):
    """Update or restore Docker Engine and Docker Compose on Synology to a target version."""
    logger = logging.getLogger("synodockerupdate")
    console.print(f"[bold]{HEADER}[/bold]")
    console.print()

    _ensure_root(ctx)

    try:
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_NAME)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = ConfigLoader().load(resolved_config)
    except UpdaterError as exc:
        _fail(ctx, exc)

    backup = _resolve_option(backup, config_values, "backup")
    compose = _resolve_option(compose, config_values, "compose")
    docker = _resolve_option(docker, config_values, "docker")
    force = bool(_resolve_option(force, config_values, "force", default=False))
    stage = bool(_resolve_option(stage, config_values, "stage", default=True))
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    download_timeout = float(
        _resolve_option(download_timeout, config_values, "download_timeout", default=DOWNLOAD_TIMEOUT)
    )

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    validation = ValidationService()
    working_dir = DEFAULT_WORKING_DIR
    try:
        if backup is not None:
            backup = validation.validate_backup_filename(str(backup))
        if compose is not None:
            compose = validation.validate_version_input(str(compose), "Docker Compose")
        if docker is not None:
            docker = validation.validate_version_input(str(docker), "Docker")

        if command is None:
            raise UpdaterError(actionable_error("no_command"), code="no_command", show_usage=True)

        selected = Command(command)
        if selected.takes_path:
            working_dir = validation.validate_working_dir(path or "")
        elif path is not None:
            raise UpdaterError(
                actionable_error("unrecognized_argument", argument=path),
                code="unrecognized_argument",
                show_usage=True,
            )
    except UpdaterError as exc:
        _fail(ctx, exc)

    updater = DockerUpdater(
        command=selected,
        working_dir=working_dir,
        backup_file=backup,
        target_docker=docker,
        target_compose=compose,
        force=force,
        stage=stage,
        download_timeout=download_timeout,
    )

    raise SystemExit(updater.run())


if __name__ == "__main__":
    main()
