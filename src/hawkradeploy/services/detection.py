"""Installation-state detection for hawkradeploy."""

import os
from pathlib import Path

from hawkradeploy.constants import ENV_FILE
from hawkradeploy.models import InstallationArtifacts, InstallationState


class InstallationDetector:
    """Derives the installation state from the host, fresh on every call."""

    def __init__(self, logger, docker_runtime_service=None):
        self.logger = logger
        self.docker_runtime_service = docker_runtime_service
        self.last_error = ""

    def detect(self, install_dir: str) -> InstallationState:
        # Only the generated env file marks an install; the directory may pre-exist empty.
        self.last_error = ""
        root = Path(install_dir)
        marker = root / ENV_FILE

        if root.exists() and not root.is_dir():
            self.last_error = f"{root} exists but is not a directory"
            return InstallationState.ERROR

        if not marker.exists():
            return InstallationState.FRESH_INSTALL

        if not marker.is_file():
            self.last_error = f"{marker} exists but is not a regular file"
            return InstallationState.ERROR

        if not os.access(marker, os.R_OK):
            self.last_error = f"{marker} is not readable"
            return InstallationState.ERROR

        self.logger.debug("Found installation marker at %s", marker)
        return InstallationState.EXISTING_INSTALL

    def find_artifacts(self, install_dir: str) -> InstallationArtifacts:
        containers = []
        volumes = []
        runtime = self.docker_runtime_service
        if runtime is not None and runtime.is_available():
            containers = runtime.list_containers()
            volumes = runtime.list_volumes()

        return InstallationArtifacts(
            install_dir_exists=Path(install_dir).is_dir(),
            containers=containers,
            volumes=volumes,
        )
