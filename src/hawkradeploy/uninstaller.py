import logging
import os
import subprocess
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .constants import (
    COMPOSE_FILE,
    HOSTS_FILE,
    IMAGE_REGISTRY_PREFIX,
    INFRA_IMAGES,
    INSTALL_DIR,
    UNINSTALL_PHRASE,
)
from .errors import DeployError, OperationCancelled
from .models import HostsStatus, HostsUpdateResult, StepOutcome, TeardownSummary
from .services.command_runner import CommandRunner
from .services.confirmation import ConfirmationGate
from .services.detection import InstallationDetector
from .services.docker_runtime import DockerRuntimeService
from .services.environment import EnvironmentService
from .services.filesystem import FileSystemService
from .services.hosts_file import HostsFileService
from .services.preflight import PreflightService

console = Console()
logger = logging.getLogger("hawkradeploy")

DESTROYED_ITEMS = (
    "All workspaces, assets, vulnerabilities, and user accounts",
    "The PostgreSQL database and all stored data",
    "Uploaded files, credentials, notes, and compliance evidence",
    "Your uploaded license file",
    "TLS certificates and configuration",
    "All Docker containers, images, and volumes for Hawkra",
    "The hosts file entry added by the installer",
)


class Uninstaller:
    """Removes every trace of a Hawkra installation, step by step.

    Only the pre-flight checks and the typed confirmation can stop the run.
    Every teardown step afterwards is best-effort and reports into a
    ``TeardownSummary``.
    """

    def __init__(self, install_dir: str = INSTALL_DIR, hosts_file: str = HOSTS_FILE):
        self.install_dir = install_dir
        self.compose_file = os.path.join(self.install_dir, COMPOSE_FILE)
        self.current_step: Optional[str] = None
        self.summary = TeardownSummary()

        self.command_runner = CommandRunner(logger=logger)
        self.confirmation_gate = ConfirmationGate(console=console)
        self.preflight_service = PreflightService(logger=logger, console=console, run_cmd=self._run_cmd)
        self.docker_runtime_service = DockerRuntimeService(
            logger=logger,
            console=console,
            run_cmd=self._run_cmd,
            subprocess_module=subprocess,
        )
        self.detector = InstallationDetector(logger=logger, docker_runtime_service=self.docker_runtime_service)
        self.hosts_service = HostsFileService(
            logger=logger, console=console, run_cmd=self._run_cmd, hosts_file=hosts_file
        )
        self.environment_service = EnvironmentService(logger=logger, console=console)
        self.filesystem_service = FileSystemService(logger=logger, console=console, run_cmd=self._run_cmd)

    def _run_cmd(self, cmd: List[str], check: bool = True, capture_output: bool = False, **kwargs):
        return self.command_runner.run(cmd, check=check, capture_output=capture_output, **kwargs)

    def _run_step(self, name: str, callback, *args, **kwargs):
        self.current_step = name
        logger.debug("Step started: %s", name)
        result = callback(*args, **kwargs)
        logger.debug("Step finished: %s", name)
        return result

    def preflight(self):
        self.confirmation_gate.ensure_interactive("uninstall")
        self.preflight_service.ensure_root("uninstall")

        artifacts = self.detector.find_artifacts(self.install_dir)
        if not artifacts.found_anything:
            raise OperationCancelled("No Hawkra installation found. Nothing to uninstall.")

    def confirm_uninstall(self):
        console.print("")
        console.print(
            "[bold red]WARNING: This will permanently delete your entire Hawkra installation.[/bold red]"
        )
        console.print("")
        console.print("  The following will be destroyed:")
        for item in DESTROYED_ITEMS + (f"The {self.install_dir} directory and everything inside it",):
            console.print(f"    - {item}")
        console.print("")
        console.print("  [bold]This action cannot be undone.[/bold]")
        console.print("")
        self.confirmation_gate.require_phrase(UNINSTALL_PHRASE)
        console.print("")

    def read_domain(self):
        try:
            domain = self.environment_service.read_domain(self.install_dir)
        except (DeployError, ValueError) as exc:
            logger.warning(str(exc))
            domain = None

        self.summary.domain = domain
        if domain:
            console.print(f"[blue]Detected domain: {domain}[/blue]")
        else:
            console.print(
                "[yellow]Could not detect APP_DOMAIN. The hosts file entry will need manual "
                "cleanup if one was added.[/yellow]"
            )

    def _compose_cmd(self) -> Optional[List[str]]:
        try:
            return self.docker_runtime_service.get_docker_compose_cmd()
        except DeployError as exc:
            logger.debug(str(exc))
            return None

    def remove_containers(self) -> StepOutcome:
        console.print("[blue]Stopping and removing containers...[/blue]")
        runtime = self.docker_runtime_service

        if not runtime.is_available():
            console.print("[yellow]Docker is not running. Skipping container removal.[/yellow]")
            return StepOutcome("containers", False, "Docker is not running")

        compose_cmd = self._compose_cmd() if os.path.isfile(self.compose_file) else None
        if compose_cmd is not None:
            if runtime.compose_down(compose_cmd, self.compose_file, self.install_dir):
                console.print("[green]Containers and volumes removed via docker compose.[/green]")
                self.summary.volumes = StepOutcome("volumes", True, "Removed via docker compose")
                return StepOutcome("containers", True, "Removed via docker compose")
            console.print("[yellow]docker compose down failed. Falling back to manual removal.[/yellow]")

        containers = runtime.list_containers()
        if not containers:
            console.print("No Hawkra containers found.")
            return StepOutcome("containers", False, "No containers found")

        removed = [name for name in containers if runtime.remove_container(name)]
        if removed:
            console.print("[green]Containers removed manually.[/green]")
            return StepOutcome("containers", True, "Removed manually", removed)

        console.print("[yellow]Could not remove containers. They may need manual cleanup.[/yellow]")
        return StepOutcome("containers", False, "Could not remove containers", containers)

    def remove_volumes(self) -> StepOutcome:
        if self.summary.removed_volumes:
            return self.summary.volumes

        runtime = self.docker_runtime_service
        if not runtime.is_available():
            console.print("[yellow]Docker is not running. Skipping volume removal.[/yellow]")
            return StepOutcome("volumes", False, "Docker is not running")

        console.print("[blue]Removing Docker volumes...[/blue]")
        volumes = runtime.list_volumes()
        if not volumes:
            console.print("No Hawkra volumes found.")
            return StepOutcome("volumes", False, "No volumes found")

        removed = []
        for volume in volumes:
            if runtime.remove_volume(volume):
                removed.append(volume)
            else:
                self.summary.retained_volumes.append(volume)
                console.print(f"[yellow]Could not remove volume: {volume} (may be in use)[/yellow]")

        if removed:
            console.print("[green]Docker volumes removed.[/green]")
        return StepOutcome("volumes", bool(removed), f"Removed {len(removed)} volume(s)", removed)

    def remove_images(self) -> StepOutcome:
        runtime = self.docker_runtime_service
        if not runtime.is_available():
            console.print("[yellow]Docker is not running. Skipping image removal.[/yellow]")
            return StepOutcome("images", False, "Docker is not running")

        console.print("[blue]Removing Docker images...[/blue]")
        present = runtime.list_images()
        removed = []

        for image in present:
            if image.startswith(IMAGE_REGISTRY_PREFIX) and runtime.remove_image(image):
                removed.append(image)

        # shared base images are refused by the runtime while other containers use them
        for image in INFRA_IMAGES:
            if image not in present:
                continue
            if runtime.remove_image(image):
                removed.append(image)
            else:
                self.summary.kept_images.append(image)
                console.print(f"Kept {image} (in use by another container)")

        if removed:
            console.print(f"[green]Removed {len(removed)} Docker image(s).[/green]")
            return StepOutcome("images", True, f"Removed {len(removed)} image(s)", removed)
        console.print("No Hawkra images found.")
        return StepOutcome("images", False, "No images removed")

    def remove_hosts_entry(self):
        if not self.summary.domain:
            return None
        return self.hosts_service.remove_entry(self.summary.domain)

    def remove_install_dir(self) -> StepOutcome:
        return self.filesystem_service.remove_install_dir(self.install_dir)

    def print_summary(self):
        summary = self.summary
        table = Table.grid(padding=(0, 1))
        table.add_column()
        table.add_column()

        def row(done: bool, success_text: str, failure_text: str):
            if done:
                table.add_row("[green]+[/green]", success_text)
            else:
                table.add_row("[yellow]-[/yellow]", failure_text)

        row(summary.removed_containers, "Docker containers stopped and removed", "No containers were removed")
        row(
            summary.removed_volumes,
            "Docker volumes deleted (database, file storage, certs)",
            "No volumes were removed",
        )
        if summary.retained_volumes:
            table.add_row(
                "[yellow]![/yellow]",
                f"Volumes still in use and kept: {', '.join(summary.retained_volumes)}",
            )
        row(
            summary.removed_images,
            "Docker images removed (hawkra, postgres, redis, caddy)",
            "No images were removed",
        )
        if summary.kept_images:
            table.add_row("[yellow]![/yellow]", f"Images kept (in use): {', '.join(summary.kept_images)}")

        hosts_path = self.hosts_service.hosts_path
        if summary.removed_hosts_entry:
            table.add_row("[green]+[/green]", f"{hosts_path} entry removed ({summary.domain})")
        elif summary.hosts_entry is not None and not summary.hosts_entry.ok:
            table.add_row("[yellow]-[/yellow]", summary.hosts_entry.message)
        elif summary.domain:
            table.add_row("[yellow]-[/yellow]", f"No {hosts_path} entry was found for {summary.domain}")
        else:
            table.add_row("[yellow]-[/yellow]", f"Could not determine domain. Check {hosts_path} manually")
        if summary.hosts_entry is not None and summary.hosts_entry.backup_path:
            table.add_row("[yellow]![/yellow]", f"Hosts backup kept at {summary.hosts_entry.backup_path}")

        row(summary.removed_install_dir, f"{self.install_dir} deleted", f"{self.install_dir} was not removed")

        table.add_row("", "")
        table.add_row("", "[bold]Not removed:[/bold]")
        table.add_row("", "- Docker itself (still installed)")
        table.add_row("", "- System packages installed by the installer (curl, openssl, etc.)")

        console.print("")
        console.print(Panel(table, title="[bold green]Hawkra uninstall complete[/bold green]", expand=False))

    def _best_effort(self, name: str, callback, fallback):
        try:
            return self._run_step(name, callback)
        except (DeployError, OSError, ValueError) as exc:
            message = f"Step '{name}' failed: {exc}"
            console.print(f"[yellow]{message}[/yellow]")
            logger.warning(message)
            return fallback(message)

    def teardown(self) -> TeardownSummary:
        summary = self.summary
        summary.containers = self._best_effort(
            "removing containers", self.remove_containers, lambda msg: StepOutcome("containers", False, msg)
        )
        summary.volumes = self._best_effort(
            "removing volumes", self.remove_volumes, lambda msg: StepOutcome("volumes", False, msg)
        )
        summary.images = self._best_effort(
            "removing images", self.remove_images, lambda msg: StepOutcome("images", False, msg)
        )
        summary.hosts_entry = self._best_effort(
            "removing hosts entry",
            self.remove_hosts_entry,
            lambda msg: HostsUpdateResult(HostsStatus.ABORTED, summary.domain or "", message=msg),
        )
        summary.install_dir = self._best_effort(
            "removing install directory",
            self.remove_install_dir,
            lambda msg: StepOutcome("install_dir", False, msg),
        )
        return summary

    def run(self) -> int:
        console.print(Panel.fit("[bold]Hawkra Self-Hosted Uninstaller[/bold]"))

        try:
            self._run_step("pre-flight checks", self.preflight)
            self._run_step("confirmation", self.confirm_uninstall)
            self._run_step("reading domain", self.read_domain)
        except OperationCancelled as exc:
            console.print(f"[blue]{exc}[/blue]")
            logger.info(str(exc))
            return 0
        except KeyboardInterrupt:
            console.print("")
            console.print("[blue]Uninstall cancelled. Your installation is untouched.[/blue]")
            return 1
        except DeployError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            return 1

        try:
            self.teardown()
            self.print_summary()
        except KeyboardInterrupt:
            console.print("")
            console.print(f"[bold red]Uninstall interrupted during {self.current_step}.[/bold red]")
            console.print("[yellow]Some Hawkra resources may remain. Re-run the uninstaller to finish.[/yellow]")
            logger.error("Uninstall interrupted during %s", self.current_step)
            return 1
        return 0
