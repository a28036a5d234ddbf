import logging
import os
import re
import signal
import socket
import subprocess
import tempfile
import threading
from typing import Any, Dict, List, Mapping, Optional

import click
import requests
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .constants import (
    ADMIN_EMAIL,
    BACKEND_SERVICE,
    COMPOSE_FILE,
    ENV_FILE,
    HOSTS_FILE,
    INSTALL_DIR,
    PACKAGE_URL,
    POLL_INTERVAL,
    READINESS_TIMEOUT,
)
from .errors import DeployError, OperationCancelled
from .errors_catalog import actionable_error
from .models import InstallationState, InstallSummary, Platform, ReadinessOutcome
from .services.archive import ArchiveService
from .services.command_runner import CommandRunner
from .services.confirmation import ConfirmationGate
from .services.detection import InstallationDetector
from .services.docker_runtime import DockerRuntimeService
from .services.download import DownloadService
from .services.environment import EnvironmentService
from .services.filesystem import FileSystemService
from .services.hosts_file import HostsFileService
from .services.packages import PackageService
from .services.preflight import PreflightService
from .services.readiness import ReadinessService

console = Console()
logger = logging.getLogger("hawkradeploy")

DOMAIN_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]*$")


def validate_domain(domain: str) -> str:
    clean = (domain or "").strip()
    if not clean:
        raise DeployError("No domain provided.")
    if not DOMAIN_PATTERN.match(clean):
        raise DeployError(actionable_error("invalid_domain", domain=clean))
    return clean


def _raise_interrupt(_signum, _frame):
    raise KeyboardInterrupt


class Installer:
    """Installs or reconfigures Hawkra on this host."""

    def __init__(
        self,
        install_dir: str = INSTALL_DIR,
        hosts_file: str = HOSTS_FILE,
        domain: Optional[str] = None,
        package_url: str = PACKAGE_URL,
        package_source: Optional[str] = None,
        readiness_timeout: int = READINESS_TIMEOUT,
        poll_interval: int = POLL_INTERVAL,
        lets_encrypt: bool = False,
        mail: Optional[Mapping[str, Any]] = None,
        ai: Optional[Mapping[str, Any]] = None,
    ):
        self.install_dir = install_dir
        self.domain = domain
        self.package_url = package_url
        self.package_source = package_source
        self.readiness_timeout = readiness_timeout
        self.poll_interval = poll_interval
        self.lets_encrypt = lets_encrypt
        self.mail = dict(mail or {})
        self.ai = dict(ai or {})
        self.env_path = os.path.join(self.install_dir, ENV_FILE)
        self.compose_file = os.path.join(self.install_dir, COMPOSE_FILE)
        self.current_step: Optional[str] = None
        self.platform: Optional[Platform] = None
        self.compose_cmd: Optional[List[str]] = None
        self.temp_dir: Optional[str] = None
        self._previous_sigterm = None
        self.summary = InstallSummary()
        self.prompt = click.prompt

        self.command_runner = CommandRunner(logger=logger)
        self.confirmation_gate = ConfirmationGate(console=console)
        self.preflight_service = PreflightService(logger=logger, console=console, run_cmd=self._run_cmd)
        self.docker_runtime_service = DockerRuntimeService(
            logger=logger,
            console=console,
            run_cmd=self._run_cmd,
            subprocess_module=subprocess,
        )
        self.detector = InstallationDetector(logger=logger)
        self.package_service = PackageService(
            logger=logger,
            console=console,
            run_cmd=self._run_cmd,
            docker_runtime_service=self.docker_runtime_service,
            requests_module=requests,
        )
        self.hosts_service = HostsFileService(
            logger=logger, console=console, run_cmd=self._run_cmd, hosts_file=hosts_file
        )
        self.download_service = DownloadService(logger=logger, console=console, requests_module=requests)
        self.archive_service = ArchiveService()
        self.filesystem_service = FileSystemService(logger=logger, console=console, run_cmd=self._run_cmd)
        self.environment_service = EnvironmentService(logger=logger, console=console)
        self.readiness_service = ReadinessService(logger=logger, console=console)

    def _run_cmd(self, cmd: List[str], check: bool = True, capture_output: bool = False, **kwargs):
        return self.command_runner.run(cmd, check=check, capture_output=capture_output, **kwargs)

    def _run_step(self, name: str, callback, *args, **kwargs):
        self.current_step = name
        logger.debug("Step started: %s", name)
        result = callback(*args, **kwargs)
        logger.debug("Step finished: %s", name)
        return result

    def _warn(self, message: str):
        console.print(f"[yellow]{message}[/yellow]")
        logger.warning(message)
        self.summary.warnings.append(message)

    def preflight(self):
        console.print("[blue]Running pre-flight checks...[/blue]")
        self.confirmation_gate.ensure_interactive("install")
        self.preflight_service.ensure_root("install")
        self.platform = self.preflight_service.detect_platform()

        state = self.detector.detect(self.install_dir)
        if state == InstallationState.ERROR:
            raise DeployError(
                actionable_error(
                    "invalid_install_state", path=self.install_dir, reason=self.detector.last_error
                )
            )

        if state == InstallationState.EXISTING_INSTALL:
            self.summary.existing_install = True
            console.print(
                f"[yellow]An existing Hawkra installation was found at {self.install_dir}.[/yellow]"
            )
            self.confirmation_gate.confirm(
                "Overwrite configuration? Existing Docker volumes (data) will be preserved.",
                cancel_message="Installation cancelled. Your existing installation is untouched.",
            )

    def install_prereqs(self):
        self.package_service.install_prerequisites(self.platform)

    def install_docker(self):
        self.package_service.install_docker(self.platform)

    def _current_hostname(self) -> str:
        return socket.getfqdn() or socket.gethostname()

    def select_domain(self) -> str:
        if self.domain:
            return validate_domain(self.domain)

        current_hostname = self._current_hostname()
        console.print("")
        console.print("[bold]Domain Configuration[/bold]")
        console.print("  Hawkra requires a domain name for TLS certificates.")
        console.print(f"  Your server's current hostname is: [bold]{current_hostname}[/bold]")
        console.print("")
        console.print(f"  1) Use current hostname: {current_hostname}")
        console.print("  2) Enter a custom domain")
        console.print("")
        choice = self.prompt("  Choose [1/2] (default: 1)", default="1", show_default=False)

        if str(choice).strip() == "2":
            custom = self.prompt(
                "  Enter domain (e.g., hawkra.yourcompany.local)", default="", show_default=False
            )
            return validate_domain(custom)
        return validate_domain(current_hostname)

    def configure_domain(self):
        self.domain = self.select_domain()
        self.summary.domain = self.domain
        console.print(f"[green]Using domain: {self.domain}[/green]")
        logger.info("Using domain %s", self.domain)

        result = self.hosts_service.ensure_entry(self.domain)
        self.summary.hosts_entry = result
        if not result.ok:
            self.summary.warnings.append(result.message)

    def download_package(self):
        console.print("[blue]Downloading Hawkra client package...[/blue]")
        self.temp_dir = tempfile.mkdtemp(prefix="hawkra-extract-")
        tarball = os.path.join(self.temp_dir, "package.tar.gz")
        extract_dir = os.path.join(self.temp_dir, "package")
        os.makedirs(extract_dir)

        self.download_service.fetch_package(self.package_url, tarball, local_source=self.package_source)
        self.archive_service.safe_extract_tar(tarball, extract_dir, strip_components=1)
        self.filesystem_service.deploy_package(extract_dir, self.install_dir)

        self.filesystem_service.cleanup_dir(self.temp_dir)
        self.temp_dir = None
        console.print(f"[green]Client package deployed to {self.install_dir}[/green]")

    def generate_env(self):
        console.print("[blue]Generating .env configuration...[/blue]")
        existing: Dict[str, str] = self.environment_service.read(self.env_path)
        sections = self.environment_service.build(
            domain=self.domain,
            existing=existing,
            lets_encrypt=self.lets_encrypt,
            mail=self.mail,
            ai=self.ai,
        )
        self.environment_service.write(self.env_path, sections)
        console.print("[green]Environment file created.[/green]")

    def fix_permissions(self):
        console.print("[blue]Setting file permissions...[/blue]")
        for outcome in (
            self.filesystem_service.fix_permissions(self.install_dir),
            self.filesystem_service.relabel_for_containers(self.install_dir),
        ):
            if outcome is not None and not outcome.succeeded:
                self._warn(f"{outcome.message}: {', '.join(outcome.details)}")
        console.print("[green]Permissions set.[/green]")

    def pull_images(self):
        console.print("[blue]Pulling container images (this may take a few minutes)...[/blue]")
        self.compose_cmd = self.docker_runtime_service.get_docker_compose_cmd()
        self.docker_runtime_service.compose_pull(self.compose_cmd, self.compose_file, self.install_dir)
        console.print("[green]All images pulled.[/green]")

    def start_containers(self):
        console.print("[blue]Starting Hawkra...[/blue]")
        if self.compose_cmd is None:
            self.compose_cmd = self.docker_runtime_service.get_docker_compose_cmd()
        self.docker_runtime_service.compose_up(self.compose_cmd, self.compose_file, self.install_dir)
        console.print("[green]Containers started.[/green]")

    def _backend_logs(self, tail: Optional[int] = None) -> str:
        return self.docker_runtime_service.compose_logs(
            self.compose_cmd, self.compose_file, self.install_dir, BACKEND_SERVICE, tail=tail
        )

    def _backend_state(self) -> Optional[str]:
        return self.docker_runtime_service.compose_service_state(
            self.compose_cmd, self.compose_file, self.install_dir, BACKEND_SERVICE
        )

    def wait_for_backend(self):
        result = self.readiness_service.wait(
            logs=self._backend_logs,
            state=self._backend_state,
            timeout=self.readiness_timeout,
            interval=self.poll_interval,
        )
        self.summary.readiness = result

        if result.outcome == ReadinessOutcome.CRASHED:
            console.print("[yellow]Backend container exited unexpectedly. Logs:[/yellow]")
            console.print(result.logs, markup=False, highlight=False)
            raise DeployError(
                actionable_error("backend_crashed", state=result.state, compose_file=self.compose_file)
            )

        if result.outcome == ReadinessOutcome.TIMED_OUT:
            self._warn(
                f"Backend did not produce credentials within {self.readiness_timeout}s. "
                "It may still be starting."
            )
            console.print(
                f"    cd {self.install_dir} && docker compose -f {COMPOSE_FILE} logs -f backend"
            )

    def extract_password(self):
        if self.summary.readiness and self.summary.readiness.outcome == ReadinessOutcome.CRASHED:
            return
        self.summary.admin_password = self.readiness_service.extract_admin_password(self._backend_logs())

    def print_summary(self):
        table = Table.grid(padding=(0, 2))
        table.add_column(style="bold")
        table.add_column()
        table.add_row("URL:", f"https://{self.domain}/login")
        table.add_row("Admin:", ADMIN_EMAIL)
        if self.summary.admin_password:
            table.add_row("Password:", self.summary.admin_password)
        else:
            table.add_row(
                "Password:",
                "Run the following command to retrieve it:\n"
                f"docker compose -f {self.compose_file} logs backend | grep -i password",
            )
        table.add_row("", "")
        table.add_row(
            "Next steps:",
            "1. Open the URL above in your browser\n"
            "2. Accept the self-signed certificate warning (if applicable)\n"
            "3. Log in with the admin credentials above\n"
            "4. Upload your license file when prompted\n"
            '5. Click "Complete Setup"\n'
            "6. Change the default admin password in Account Settings",
        )
        table.add_row("", "")
        table.add_row("Installation directory:", self.install_dir)
        table.add_row("View logs:", f"cd {self.install_dir} && docker compose -f {COMPOSE_FILE} logs -f")
        for warning in self.summary.warnings:
            table.add_row("[yellow]Warning:[/yellow]", warning)

        title = "Hawkra reconfiguration complete!" if self.summary.existing_install else "Hawkra installation complete!"
        console.print("")
        console.print(Panel(table, title=f"[bold green]{title}[/bold green]", expand=False))
        console.print("  See the deployment guide for SMTP, AI, and MFA configuration.")

    def cleanup(self):
        self.filesystem_service.cleanup_dir(self.temp_dir)
        self.temp_dir = None

    def _install_signal_handler(self) -> bool:
        if threading.current_thread() is not threading.main_thread():
            return False
        self._previous_sigterm = signal.signal(signal.SIGTERM, _raise_interrupt)
        return True

    def run(self) -> int:
        handler_installed = self._install_signal_handler()
        console.print(Panel.fit("[bold]Hawkra Self-Hosted Installer[/bold]"))

        try:
            self._run_step("pre-flight checks", self.preflight)
            self._run_step("installing prerequisites", self.install_prereqs)
            self._run_step("installing Docker", self.install_docker)
            self._run_step("domain configuration", self.configure_domain)
            self._run_step("downloading client package", self.download_package)
            self._run_step("generating environment file", self.generate_env)
            self._run_step("setting file permissions", self.fix_permissions)
            self._run_step("pulling container images", self.pull_images)
            self._run_step("starting containers", self.start_containers)
            self._run_step("waiting for backend", self.wait_for_backend)
            self._run_step("extracting admin credentials", self.extract_password)
            self.print_summary()
            return 0

        except OperationCancelled as exc:
            console.print("")
            console.print(f"[blue]{exc}[/blue]")
            logger.info(str(exc))
            return 0
        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Installation interrupted at step: %s", self.current_step or "init")
            return 1
        except DeployError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            console.print(
                f"[red]Installation failed at step: {self.current_step or 'unknown'}. "
                "Check the output above for details.[/red]"
            )
            logger.error(str(exc))
            return 1
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error during step: %s", self.current_step)
            return 1
        finally:
            self.cleanup()
            if handler_installed:
                signal.signal(signal.SIGTERM, self._previous_sigterm or signal.SIG_DFL)
