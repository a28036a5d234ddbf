"""Fixed names, paths and modes of a Hawkra self-hosted deployment."""

INSTALL_DIR = "/opt/hawkra"
HOSTS_FILE = "/etc/hosts"
OS_RELEASE_FILE = "/etc/os-release"
HOSTS_BACKUP_SUFFIX = ".hawkra-backup"

PACKAGE_URL = "https://github.com/reconhawklabs/Hawkra-Selfhosted/archive/refs/heads/main.tar.gz"
COMPOSE_FILE = "docker-compose.selfhosted.yml"
ENV_FILE = ".env"
CADDYFILE = "Caddyfile"
ENTRYPOINT = "caddy/docker-entrypoint.sh"
LICENSE_KEY = "license/license.key"
CERT_FILE = "certs/cert.pem"
KEY_FILE = "certs/key.pem"
INSTALL_SUBDIRS = ("license", "caddy", "certs")
PACKAGE_FILES = (COMPOSE_FILE, CADDYFILE, ENTRYPOINT)
SELINUX_PATHS = ("license", "caddy", CADDYFILE, "certs")
SELINUX_CONTEXT = "svirt_sandbox_file_t"

CONTAINER_PREFIXES = ("hawkra-", "hawkra_")
VOLUME_PREFIX = "hawkra_"
IMAGE_REGISTRY_PREFIX = "ghcr.io/reconhawk/"
INFRA_IMAGES = ("postgres:16-alpine", "redis:7-alpine", "caddy:2-alpine")
BACKEND_SERVICE = "backend"

SUPPORTED_ARCHITECTURES = ("x86_64", "aarch64")
APT_DISTROS = ("ubuntu", "debian")
DNF_DISTROS = ("fedora",)

READINESS_TIMEOUT = 120
POLL_INTERVAL = 5
LOG_TAIL_LINES = 100
CRASH_LOG_LINES = 30

UNINSTALL_PHRASE = "uninstall"
ADMIN_EMAIL = "admin@hawkra.local"

ENV_FILE_MODE = 0o600
SCRIPT_MODE = 0o755
DIR_MODE = 0o755
PUBLIC_FILE_MODE = 0o644
PRIVATE_FILE_MODE = 0o600
