"""Pre-flight checks shared by the installer and the uninstaller."""

import os
import platform
import shlex
from pathlib import Path
from typing import Callable, Dict, Optional

from hawkradeploy.constants import (
    APT_DISTROS,
    DNF_DISTROS,
    OS_RELEASE_FILE,
    SUPPORTED_ARCHITECTURES,
)
from hawkradeploy.errors import DeployError
from hawkradeploy.errors_catalog import actionable_error
from hawkradeploy.models import Platform


class PreflightService:
    """Fail-fast host checks. Every failure raises DeployError."""

    def __init__(
        self,
        logger,
        console,
        run_cmd: Optional[Callable] = None,
        os_release_file: str = OS_RELEASE_FILE,
        geteuid: Callable[[], int] = os.geteuid,
        machine: Callable[[], str] = platform.machine,
    ):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.os_release_file = os_release_file
        self.geteuid = geteuid
        self.machine = machine

    def ensure_root(self, command: str):
        if self.geteuid() != 0:
            raise DeployError(actionable_error("not_root", command=command))

    def ensure_architecture(self) -> str:
        arch = self.machine()
        if arch not in SUPPORTED_ARCHITECTURES:
            raise DeployError(actionable_error("unsupported_architecture", arch=arch))
        return arch

    def read_os_release(self) -> Dict[str, str]:
        path = Path(self.os_release_file)
        if not path.is_file():
            raise DeployError(actionable_error("os_release_missing", path=str(path)))

        values = {}
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, raw_value = line.split("=", 1)
            try:
                parts = shlex.split(raw_value)
            except ValueError:
                parts = [raw_value.strip("\"'")]
            values[key.strip()] = parts[0] if parts else ""
        return values

    def _lsb_codename(self) -> str:
        if self.run_cmd is None:
            return ""
        try:
            result = self.run_cmd(["lsb_release", "-cs"], check=False, capture_output=True)
        except DeployError:
            return ""
        if result.returncode != 0:
            return ""
        return (result.stdout or "").strip()

    def detect_platform(self) -> Platform:
        arch = self.ensure_architecture()
        release = self.read_os_release()
        distro_id = release.get("ID", "unknown")
        codename = release.get("VERSION_CODENAME", "")

        if distro_id in APT_DISTROS:
            package_manager = "apt"
            if not codename:
                codename = self._lsb_codename()
            if not codename:
                raise DeployError(actionable_error("missing_codename"))
        elif distro_id in DNF_DISTROS:
            package_manager = "dnf"
        else:
            raise DeployError(actionable_error("unsupported_distribution", distro=distro_id))

        detected = Platform(
            distro_id=distro_id,
            codename=codename,
            package_manager=package_manager,
            architecture=arch,
        )
        self.console.print(
            f"[green]Detected {distro_id} ({package_manager}) on {arch}[/green]"
        )
        self.logger.info("Detected platform: %s", detected)
        return detected
