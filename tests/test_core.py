import io
import json
import tarfile
from datetime import datetime
from pathlib import Path

import pytest

from synodockerupdate.core import DockerUpdater, UpdaterError, default_backup_file
from synodockerupdate.models import Command, HostProfile, ServiceStatus, SynologyPaths, VersionTriple
from synodockerupdate.services.version_probe import VersionProbe

DSM6 = HostProfile(product_version="6.2.3", major_version="6", build="25426")


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class FakeProbe(VersionProbe):
    def __init__(self, docker="18.09.0", compose="1.24.0", host=DSM6, latest_docker="19.03.12",
                 latest_compose="1.26.0"):
        super().__init__(command_runner=None, logger=DummyLogger(), requests_module=None)
        self.host = host
        self.docker = VersionTriple.try_parse(docker)
        self.compose = VersionTriple.try_parse(compose)
        self.latest_docker = VersionTriple.try_parse(latest_docker)
        self.latest_compose = VersionTriple.try_parse(latest_compose)

    def detect_installed(self):
        return self.host, self.docker, self.compose

    def latest_docker_version(self):
        return self.latest_docker

    def latest_compose_version(self):
        return self.latest_compose


class FakeServiceController:
    def __init__(self, starts=True):
        self.starts = starts
        self.calls = []

    def stop(self, service_name):
        self.calls.append(("stop", service_name))
        return True

    def start(self, service_name):
        self.calls.append(("start", service_name))
        return ServiceStatus.RUNNING if self.starts else ServiceStatus.STOPPED


def docker_release(files):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar_ref:
        for name, payload in files.items():
            info = tarfile.TarInfo(f"docker/{name}")
            info.size = len(payload)
            tar_ref.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()


class FakeDownloadService:
    def __init__(self):
        self.urls = []

    def fetch(self, url, dest_path, description="", follow_redirects=True):
        self.urls.append(url)
        if url.endswith(".tgz"):
            payload = docker_release({"docker": b"new docker", "dockerd": b"new dockerd"})
        else:
            payload = b"new compose"
        with open(dest_path, "wb") as file_obj:
            file_obj.write(payload)


@pytest.fixture
def paths(tmp_path):
    managed = tmp_path / "managed"
    bin_dir = managed / "usr" / "bin"
    bin_dir.mkdir(parents=True)
    (bin_dir / "docker").write_bytes(b"old docker")
    (bin_dir / "dockerd").write_bytes(b"old dockerd")
    (bin_dir / "docker-compose").write_bytes(b"old compose")
    (managed / "etc").mkdir()
    (managed / "etc" / "dockerd.json").write_text('{"log-driver": "db"}', encoding="utf-8")
    return SynologyPaths(
        bin_parent=str(managed / "usr"),
        config_dir=str(managed / "etc"),
        package_dir=str(managed / "pkg"),
    )


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


def snapshot(paths):
    files = {}
    for root in (paths.bin_parent, paths.config_dir):
        for path in sorted(Path(root).rglob("*")):
            if path.is_file():
                files[str(path)] = (path.read_bytes(), path.stat().st_mtime_ns)
    return files


def build_updater(command, paths, work_dir, probe=None, controller=None, downloader=None, **kwargs):
    return DockerUpdater(
        command=command,
        working_dir=str(work_dir),
        paths=paths,
        version_probe=probe or FakeProbe(),
        service_controller=controller or FakeServiceController(),
        download_service=downloader or FakeDownloadService(),
        **kwargs,
    )


def test_default_backup_file_is_timestamped(work_dir):
    path = default_backup_file(str(work_dir), now=datetime(2020, 6, 3, 14, 5, 9))

    assert path == str(work_dir / "docker_backup_20200603_140509.tgz")


def test_working_dir_has_no_trailing_separator(paths, work_dir):
    updater = build_updater(Command.BACKUP, paths, f"{work_dir}/")

    assert updater.context.working_dir == str(work_dir)


def test_update_fails_when_already_on_target(paths, work_dir):
    controller = FakeServiceController()
    probe = FakeProbe(docker="19.03.12", compose="1.26.0")
    updater = build_updater(Command.UPDATE, paths, work_dir, probe=probe, controller=controller)

    with pytest.raises(UpdaterError) as exc_info:
        updater.run_update()

    assert exc_info.value.code == "already_up_to_date"
    assert controller.calls == []
    assert updater.run() == 1


def test_update_with_force_runs_every_step(paths, work_dir):
    probe = FakeProbe(docker="19.03.12", compose="1.26.0")
    downloader = FakeDownloadService()
    updater = build_updater(Command.UPDATE, paths, work_dir, probe=probe, downloader=downloader, force=True)

    updater.run_update()

    assert updater.context.total_steps == 10
    assert updater.context.step == 10
    assert len(downloader.urls) == 2


def test_update_skips_artifact_already_on_target(paths, work_dir):
    probe = FakeProbe(docker="19.03.12", compose="1.24.0")
    downloader = FakeDownloadService()
    updater = build_updater(Command.UPDATE, paths, work_dir, probe=probe, downloader=downloader)

    updater.run_update()

    assert updater.context.skip_docker_update is True
    assert updater.context.skip_compose_update is False
    assert updater.context.total_steps == 8
    assert updater.context.step == 8
    assert downloader.urls == [
        "https://github.com/docker/compose/releases/download/1.26.0/docker-compose-Linux-x86_64"
    ]


def test_update_skips_compose_when_on_target(paths, work_dir):
    probe = FakeProbe(docker="18.09.0", compose="1.26.0")
    downloader = FakeDownloadService()
    updater = build_updater(Command.UPDATE, paths, work_dir, probe=probe, downloader=downloader)

    updater.run_update()

    assert updater.context.total_steps == 9
    assert downloader.urls == [
        "https://download.docker.com/linux/static/stable/x86_64/docker-19.03.12.tgz"
    ]


def test_update_in_stage_mode_leaves_managed_files_untouched(paths, work_dir):
    before = snapshot(paths)
    updater = build_updater(Command.UPDATE, paths, work_dir)

    assert updater.context.stage is True
    assert updater.run() == 0

    assert snapshot(paths) == before
    assert (work_dir / "docker-19.03.12.tgz").is_file()
    assert not (work_dir / "docker").exists()
    assert list(work_dir.glob("docker_backup_*.tgz"))


def test_update_installs_binaries_and_config(paths, work_dir):
    controller = FakeServiceController()
    updater = build_updater(Command.UPDATE, paths, work_dir, controller=controller, stage=False)

    assert updater.run() == 0

    bin_dir = paths.bin_dir
    assert Path(bin_dir, "docker").read_bytes() == b"new docker"
    assert Path(bin_dir, "dockerd").read_bytes() == b"new dockerd"
    assert Path(bin_dir, "docker-compose").read_bytes() == b"new compose"
    with open(paths.config_file, encoding="utf-8") as file_obj:
        assert json.load(file_obj)["log-driver"] == "json-file"
    assert not (work_dir / "docker").exists()
    assert controller.calls == [("stop", "pkgctl-Docker"), ("start", "pkgctl-Docker")]


def test_update_stops_when_remote_versions_unavailable(paths, work_dir):
    controller = FakeServiceController()
    probe = FakeProbe(latest_docker=None)
    updater = build_updater(Command.UPDATE, paths, work_dir, probe=probe, controller=controller)

    with pytest.raises(UpdaterError) as exc_info:
        updater.run_update()

    assert exc_info.value.code == "runtime_unavailable"
    assert controller.calls == []


def test_unsupported_host_fails_before_service_stop(paths, work_dir):
    controller = FakeServiceController()
    probe = FakeProbe(host=HostProfile(product_version="7.0", major_version="7", build="41890"))
    updater = build_updater(Command.BACKUP, paths, work_dir, probe=probe, controller=controller)

    with pytest.raises(UpdaterError) as exc_info:
        updater.run_backup()

    assert exc_info.value.code == "unsupported_host"
    assert controller.calls == []


def test_backup_creates_archive_and_restarts_service(paths, work_dir):
    controller = FakeServiceController()
    backup_file = work_dir / "nested" / "backup.tgz"
    updater = build_updater(
        Command.BACKUP,
        paths,
        work_dir,
        controller=controller,
        backup_file=str(backup_file),
    )

    updater.run_backup()

    assert backup_file.is_file()
    assert updater.context.total_steps == 4
    with tarfile.open(backup_file, "r:gz") as tar_ref:
        names = tar_ref.getnames()
    assert "bin/docker-compose" in names
    assert "dockerd.json" in names
    assert controller.calls[0][0] == "stop"
    assert controller.calls[-1][0] == "start"


def test_download_fetches_both_artifacts(paths, work_dir):
    controller = FakeServiceController()
    target = work_dir / "downloads"
    target.mkdir()
    updater = build_updater(
        Command.DOWNLOAD,
        paths,
        work_dir,
        controller=controller,
        target_docker="18.09.1",
    )

    updater.run_download(f"{target}/")

    assert updater.context.total_steps == 3
    assert (target / "docker-18.09.1.tgz").is_file()
    assert (target / "docker-compose").read_bytes() == b"new compose"
    assert controller.calls == []


def test_install_resolves_version_from_local_archive(paths, work_dir):
    (work_dir / "docker-18.09.1.tgz").write_bytes(docker_release({"docker": b"side-loaded"}))
    (work_dir / "docker-compose").write_bytes(b"side-loaded compose")
    updater = build_updater(Command.INSTALL, paths, work_dir, stage=False)

    updater.run_install()

    assert str(updater.context.target_docker) == "18.09.1"
    assert updater.context.target_compose is None
    assert updater.context.total_steps == 7
    assert updater.context.step == 7
    assert Path(paths.bin_dir, "docker").read_bytes() == b"side-loaded"
    assert Path(paths.bin_dir, "docker-compose").read_bytes() == b"side-loaded compose"


def test_install_in_stage_mode_leaves_managed_files_untouched(paths, work_dir):
    (work_dir / "docker-18.09.1.tgz").write_bytes(docker_release({"docker": b"side-loaded"}))
    (work_dir / "docker-compose").write_bytes(b"side-loaded compose")
    before = snapshot(paths)
    updater = build_updater(Command.INSTALL, paths, work_dir)

    assert updater.context.stage is True
    assert updater.run() == 0

    assert snapshot(paths) == before
    assert str(updater.context.target_docker) == "18.09.1"
    assert updater.context.target_compose is None


def test_install_fails_without_docker_archive(paths, work_dir):
    (work_dir / "docker-compose").write_bytes(b"compose")
    updater = build_updater(Command.INSTALL, paths, work_dir)

    with pytest.raises(UpdaterError) as exc_info:
        updater.run_install()

    assert exc_info.value.code == "missing_binaries"


def test_install_fails_without_compose_binary(paths, work_dir):
    (work_dir / "docker-18.09.1.tgz").write_bytes(docker_release({"docker": b"x"}))
    updater = build_updater(Command.INSTALL, paths, work_dir)

    with pytest.raises(UpdaterError) as exc_info:
        updater.run_install()

    assert exc_info.value.code == "missing_compose_download"


def test_restore_requires_explicit_backup(paths, work_dir):
    updater = build_updater(Command.RESTORE, paths, work_dir)

    with pytest.raises(UpdaterError) as exc_info:
        updater.run_restore()

    assert exc_info.value.code == "backup_path_required"


def test_restore_puts_back_backed_up_state(paths, work_dir, tmp_path):
    backup_dir = tmp_path / "backups"
    backup_file = backup_dir / "docker_backup.tgz"
    build_updater(Command.BACKUP, paths, work_dir, backup_file=str(backup_file)).run_backup()
    original = snapshot(paths)

    build_updater(Command.UPDATE, paths, work_dir, stage=False).run_update()
    assert Path(paths.bin_dir, "docker").read_bytes() == b"new docker"

    updater = build_updater(
        Command.RESTORE,
        paths,
        work_dir,
        backup_file=str(backup_file),
        stage=False,
    )
    updater.run_restore()

    assert updater.context.working_dir == str(backup_dir)
    assert updater.context.total_steps == 5
    restored = snapshot(paths)
    assert {path: content for path, (content, _) in restored.items()} == {
        path: content for path, (content, _) in original.items()
    }


def test_restore_in_stage_mode_only_extracts(paths, work_dir, tmp_path):
    backup_file = tmp_path / "backups" / "docker_backup.tgz"
    build_updater(Command.BACKUP, paths, work_dir, backup_file=str(backup_file)).run_backup()
    before = snapshot(paths)

    build_updater(Command.RESTORE, paths, work_dir, backup_file=str(backup_file)).run_restore()

    assert snapshot(paths) == before
    assert (tmp_path / "backups" / "docker" / "docker-compose").is_file()


def test_service_restart_failure_is_fatal_without_force(paths, work_dir):
    updater = build_updater(
        Command.BACKUP,
        paths,
        work_dir,
        controller=FakeServiceController(starts=False),
    )

    with pytest.raises(UpdaterError) as exc_info:
        updater.run_backup()

    assert exc_info.value.code == "service_restart_failed"


def test_service_restart_failure_is_a_warning_with_force(paths, work_dir):
    updater = build_updater(
        Command.BACKUP,
        paths,
        work_dir,
        controller=FakeServiceController(starts=False),
        force=True,
    )

    assert updater.run() == 0
