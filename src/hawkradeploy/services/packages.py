"""Package-manager bootstrap for prerequisites and the Docker engine."""

from pathlib import Path
from typing import Callable

import requests

from hawkradeploy.errors import DeployError
from hawkradeploy.errors_catalog import actionable_error
from hawkradeploy.models import Platform

DOCKER_PACKAGES = [
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
]
DOCKER_DNF_REPO = "https://download.docker.com/linux/fedora/docker-ce.repo"


class PackageService:
    """Installs system packages through apt or dnf."""

    APT_KEYRING_DIR = "/etc/apt/keyrings"
    APT_SOURCES_FILE = "/etc/apt/sources.list.d/docker.list"

    def __init__(self, logger, console, run_cmd: Callable, docker_runtime_service, requests_module=requests):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.docker_runtime_service = docker_runtime_service
        self.requests = requests_module

    def install_prerequisites(self, target: Platform):
        self.console.print("[blue]Installing prerequisites...[/blue]")
        if target.package_manager == "apt":
            self.run_cmd(["apt-get", "update", "-qq"], capture_output=True)
            self.run_cmd(
                ["apt-get", "install", "-y", "-qq", "curl", "ca-certificates", "gnupg", "openssl"],
                capture_output=True,
            )
        else:
            self.run_cmd(
                ["dnf", "install", "-y", "-q", "curl", "ca-certificates", "gnupg2", "openssl"],
                capture_output=True,
            )
        self.console.print("[green]Prerequisites installed.[/green]")

    def install_docker(self, target: Platform):
        runtime = self.docker_runtime_service
        if runtime.is_available():
            if runtime.has_compose_plugin():
                self.console.print(
                    "[green]Docker and Docker Compose already installed. Skipping.[/green]"
                )
                return
            self.console.print("[blue]Docker found but Compose plugin missing. Installing...[/blue]")
        else:
            self.console.print("[blue]Installing Docker...[/blue]")

        if target.package_manager == "apt":
            self._install_docker_apt(target)
        else:
            self._install_docker_dnf()

        self.run_cmd(["systemctl", "enable", "--now", "docker"], capture_output=True)

        if not runtime.has_compose_plugin():
            raise DeployError(actionable_error("compose_missing"))
        self.console.print("[green]Docker installed and running.[/green]")

    def _install_docker_apt(self, target: Platform):
        base_url = f"https://download.docker.com/linux/{target.distro_id}"
        keyring = Path(self.APT_KEYRING_DIR) / "docker.gpg"

        self.run_cmd(["install", "-m", "0755", "-d", self.APT_KEYRING_DIR])
        try:
            response = self.requests.get(f"{base_url}/gpg", timeout=60)
            response.raise_for_status()
        except self.requests.RequestException as exc:
            raise DeployError(f"Could not download the Docker signing key: {exc}") from exc

        self.run_cmd(
            ["gpg", "--dearmor", "--yes", "-o", str(keyring)],
            capture_output=True,
            input_text=response.text,
        )
        keyring.chmod(0o644)

        dpkg_arch = self.run_cmd(["dpkg", "--print-architecture"], capture_output=True).stdout.strip()
        Path(self.APT_SOURCES_FILE).write_text(
            f"deb [arch={dpkg_arch} signed-by={keyring}] {base_url} {target.codename} stable\n",
            encoding="utf-8",
        )

        self.run_cmd(["apt-get", "update", "-qq"], capture_output=True)
        self.run_cmd(["apt-get", "install", "-y", "-qq"] + DOCKER_PACKAGES, capture_output=True)

    def _install_docker_dnf(self):
        self.run_cmd(["dnf", "-y", "-q", "install", "dnf-plugins-core"], capture_output=True)

        # DNF4 syntax first; DNF5 ships `addrepo --from-repofile` instead.
        result = self.run_cmd(
            ["dnf", "config-manager", "--add-repo", DOCKER_DNF_REPO],
            check=False,
            capture_output=True,
        )
        if result.returncode != 0:
            result = self.run_cmd(
                ["dnf", "config-manager", "addrepo", f"--from-repofile={DOCKER_DNF_REPO}"],
                check=False,
                capture_output=True,
            )
        if result.returncode != 0:
            raise DeployError("Failed to add Docker repository. Check your Fedora version.")

        self.run_cmd(["dnf", "install", "-y", "-q"] + DOCKER_PACKAGES, capture_output=True)
