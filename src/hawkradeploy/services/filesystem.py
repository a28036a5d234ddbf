"""Filesystem helpers for hawkradeploy."""

import logging
import os
import shutil
from pathlib import Path
from typing import Callable, List, Optional

from rich.console import Console

from hawkradeploy.constants import (
    CERT_FILE,
    DIR_MODE,
    ENTRYPOINT,
    INSTALL_SUBDIRS,
    KEY_FILE,
    LICENSE_KEY,
    PACKAGE_FILES,
    PRIVATE_FILE_MODE,
    PUBLIC_FILE_MODE,
    SCRIPT_MODE,
    SELINUX_CONTEXT,
    SELINUX_PATHS,
)
from hawkradeploy.errors import DeployError
from hawkradeploy.errors_catalog import actionable_error
from hawkradeploy.models import StepOutcome


class FileSystemService:
    """Encapsulates file and directory side effects under the install root."""

    def __init__(self, logger: logging.Logger, console: Console, run_cmd: Optional[Callable] = None):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd

    def set_permissions(self, path, mode: int) -> bool:
        try:
            os.chmod(path, mode)
            return True
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)
            return False

    def deploy_package(self, extract_dir: str, install_dir: str):
        source = Path(extract_dir)
        target = Path(install_dir)
        for subdir in INSTALL_SUBDIRS:
            (target / subdir).mkdir(parents=True, exist_ok=True)

        for name in PACKAGE_FILES:
            if not (source / name).is_file():
                raise DeployError(actionable_error("package_file_missing", name=name))

        for name in PACKAGE_FILES:
            shutil.copyfile(source / name, target / name)

        if not (target / LICENSE_KEY).exists() and (source / LICENSE_KEY).is_file():
            shutil.copyfile(source / LICENSE_KEY, target / LICENSE_KEY)
            self.console.print(
                "[blue]Trial license copied. Replace with your production license after setup.[/blue]"
            )

    def fix_permissions(self, install_dir: str) -> StepOutcome:
        root = Path(install_dir)
        failures = []
        planned = [
            (root / ENTRYPOINT, SCRIPT_MODE),
            (root / "license", DIR_MODE),
            (root / LICENSE_KEY, PRIVATE_FILE_MODE),
            (root / CERT_FILE, PUBLIC_FILE_MODE),
            (root / KEY_FILE, PRIVATE_FILE_MODE),
        ]
        for path, mode in planned:
            if not path.exists():
                continue
            if not self.set_permissions(path, mode):
                failures.append(str(path))

        if failures:
            return StepOutcome("permissions", False, "Some permissions could not be set", failures)
        return StepOutcome("permissions", True, "Permissions set")

    def selinux_enforcing(self) -> bool:
        if self.run_cmd is None or shutil.which("getenforce") is None:
            return False
        try:
            result = self.run_cmd(["getenforce"], check=False, capture_output=True)
        except DeployError:
            return False
        return result.returncode == 0 and (result.stdout or "").strip() == "Enforcing"

    def relabel_for_containers(self, install_dir: str) -> Optional[StepOutcome]:
        if not self.selinux_enforcing():
            return None

        self.console.print("[blue]SELinux detected. Relabelling bind-mount paths...[/blue]")
        failures: List[str] = []
        for name in SELINUX_PATHS:
            path = os.path.join(install_dir, name)
            result = self.run_cmd(
                ["chcon", "-Rt", SELINUX_CONTEXT, path], check=False, capture_output=True
            )
            if result.returncode != 0:
                failures.append(path)

        if failures:
            return StepOutcome("selinux", False, "Some paths could not be relabelled", failures)
        self.console.print("[green]SELinux labels applied.[/green]")
        return StepOutcome("selinux", True, "SELinux labels applied")

    def cleanup_dir(self, path: Optional[str]):
        if path and os.path.exists(path):
            try:
                shutil.rmtree(path)
                self.logger.debug("Removed directory: %s", path)
            except OSError as exc:
                message = f"Warning: Could not remove {path}: {exc}"
                self.console.print(f"[yellow]{message}[/yellow]")
                self.logger.warning(message)

    def remove_install_dir(self, install_dir: str) -> StepOutcome:
        if not os.path.isdir(install_dir):
            self.console.print(f"{install_dir} does not exist. Skipping.")
            return StepOutcome("install_dir", False, f"{install_dir} does not exist")

        self.console.print(f"[blue]Removing {install_dir}...[/blue]")
        self.cleanup_dir(install_dir)

        if os.path.exists(install_dir):
            message = f"Could not fully remove {install_dir}. Check permissions."
            self.console.print(f"[yellow]{message}[/yellow]")
            return StepOutcome("install_dir", False, message)

        self.console.print(f"[green]Removed {install_dir}[/green]")
        return StepOutcome("install_dir", True, f"Removed {install_dir}")
