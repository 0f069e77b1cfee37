"""Fixed locations, URLs and defaults for the Synology Docker package."""

DSM_SUPPORTED_VERSION = "6"
DSM_VERSION_FILE = "/etc.defaults/VERSION"

DOWNLOAD_DOCKER = "https://download.docker.com/linux/static/stable/x86_64"
DOWNLOAD_GITHUB = "https://github.com/docker/compose"
GITHUB_RELEASES = "/docker/compose/releases/tag"
COMPOSE_ASSET = "docker-compose-Linux-x86_64"

SYNO_SERVICE_CTL = "synoservicectl"
SYNO_DOCKER_SERV_NAME = "pkgctl-Docker"
SYNO_DOCKER_DIR = "/var/packages/Docker"
SYNO_DOCKER_BIN_PATH = f"{SYNO_DOCKER_DIR}/target/usr"
SYNO_DOCKER_JSON_PATH = f"{SYNO_DOCKER_DIR}/etc"
SYNO_DOCKER_JSON_NAME = "dockerd.json"

DEFAULT_WORKING_DIR = "/tmp/docker_update"
BACKUP_NAME_FORMAT = "docker_backup_%Y%m%d_%H%M%S.tgz"

BIN_DIR_NAME = "bin"
EXTRACTED_DIR_NAME = "docker"
COMPOSE_BIN_NAME = "docker-compose"

LOG_DRIVER = "json-file"
DOWNLOAD_TIMEOUT = 60.0
DOWNLOAD_CHUNK_SIZE = 8192

BIN_MODE = 0o755
CONFIG_MODE = 0o644
