"""Hosts-file reconciliation for the application's hostname.

Adds or removes the single ``<address> <hostname>`` line that the installer
owns, leaving every other line of the system file untouched. Removal follows
a verify-before-commit discipline: the filtered content is written next to
the original, checked for emptiness and for the loopback line, and only then
promoted. The backup is deleted only after the promoted file passes the
loopback check a second time.

There is no locking. Two concurrent runs on the same host can race on the
read-modify-write of the hosts file.
"""

import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from hawkradeploy.constants import HOSTS_BACKUP_SUFFIX, HOSTS_FILE
from hawkradeploy.errors import DeployError
from hawkradeploy.models import DomainRecord, HostsStatus, HostsUpdateResult

_LOOPBACK_LINE = re.compile(r"^\s*127\.0\.0\.1\s")
# non-UTF-8 bytes round-trip unchanged
_RAW_BYTES = "surrogateescape"


class HostsFileService:
    """Surgical, line-level edits of a hosts file."""

    def __init__(self, logger, console, run_cmd=None, hosts_file: str = HOSTS_FILE):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.hosts_path = Path(hosts_file)

    @property
    def backup_path(self) -> Path:
        return self.hosts_path.with_name(self.hosts_path.name + HOSTS_BACKUP_SUFFIX)

    def _read_lines(self) -> List[str]:
        try:
            return self.hosts_path.read_text(encoding="utf-8", errors=_RAW_BYTES).splitlines(keepends=True)
        except FileNotFoundError:
            return []

    @staticmethod
    def _tokens(line: str) -> List[str]:
        return line.split("#", 1)[0].split()

    @classmethod
    def maps_hostname(cls, line: str, hostname: str) -> bool:
        """Any address followed by ``hostname`` as a whole token."""
        tokens = cls._tokens(line)
        return len(tokens) >= 2 and hostname in tokens[1:]

    @staticmethod
    def is_owned_entry(line: str, hostname: str) -> bool:
        """Exactly ``<address> <hostname>`` with nothing else on the line."""
        tokens = line.split()
        return len(tokens) == 2 and not tokens[0].startswith("#") and tokens[1] == hostname

    @staticmethod
    def has_loopback(content: str) -> bool:
        return any(_LOOPBACK_LINE.match(line) for line in content.splitlines())

    def has_entry(self, hostname: str) -> bool:
        return any(self.maps_hostname(line, hostname) for line in self._read_lines())

    def detect_primary_address(self) -> Optional[str]:
        if self.run_cmd is None:
            return None
        try:
            result = self.run_cmd(["hostname", "-I"], check=False, capture_output=True)
        except DeployError as exc:
            self.logger.debug("Address detection failed: %s", exc)
            return None
        if result.returncode != 0:
            return None
        addresses = (result.stdout or "").split()
        return addresses[0] if addresses else None

    def ensure_entry(self, hostname: str, address: Optional[str] = None) -> HostsUpdateResult:
        if self.has_entry(hostname):
            self.console.print(f"[green]{hostname} already present in {self.hosts_path}[/green]")
            return HostsUpdateResult(HostsStatus.ALREADY_PRESENT, hostname)

        if address is None:
            address = self.detect_primary_address()
        if not address:
            message = (
                f"Could not detect LAN IP. You may need to manually add {hostname} "
                f"to {self.hosts_path}."
            )
            self.console.print(f"[yellow]{message}[/yellow]")
            self.logger.warning(message)
            return HostsUpdateResult(HostsStatus.SKIPPED, hostname, message=message)

        record = DomainRecord(address=address, hostname=hostname)
        existing = self._read_lines()
        prefix = "" if not existing or existing[-1].endswith("\n") else "\n"
        try:
            with open(self.hosts_path, "a", encoding="utf-8", errors=_RAW_BYTES) as file_obj:
                file_obj.write(f"{prefix}{record.render()}\n")
        except OSError as exc:
            message = f"Could not update {self.hosts_path}: {exc}"
            self.logger.warning(message)
            return HostsUpdateResult(HostsStatus.SKIPPED, hostname, address=address, message=message)

        self.console.print(f"[green]Added {hostname} -> {address} to {self.hosts_path}[/green]")
        self.logger.info("Added %s -> %s to %s", hostname, address, self.hosts_path)
        return HostsUpdateResult(HostsStatus.ADDED, hostname, address=address)

    def remove_entry(self, hostname: str) -> HostsUpdateResult:
        lines = self._read_lines()
        if not any(self.is_owned_entry(line, hostname) for line in lines):
            self.console.print(f"No {self.hosts_path} entry found for {hostname}")
            return HostsUpdateResult(HostsStatus.NOT_FOUND, hostname)

        self.console.print(f"[blue]Removing {self.hosts_path} entry for {hostname}...[/blue]")
        backup = self.backup_path
        try:
            shutil.copy2(self.hosts_path, backup)
        except OSError as exc:
            return self._abort(hostname, f"Could not back up {self.hosts_path}: {exc}", backup=None)

        content = "".join(line for line in lines if not self.is_owned_entry(line, hostname))

        fd, temp_path = tempfile.mkstemp(
            prefix=f".{self.hosts_path.name}-", dir=str(self.hosts_path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", errors=_RAW_BYTES) as file_obj:
                file_obj.write(content)

            if not content.strip():
                return self._abort(
                    hostname,
                    "Hosts file modification produced an empty file",
                    backup=backup,
                )
            if not self.has_loopback(content):
                return self._abort(
                    hostname,
                    "Modified hosts file is missing the localhost line",
                    backup=backup,
                )

            try:
                self._promote(Path(temp_path))
            except OSError as exc:
                return self._abort(hostname, f"Failed to write new {self.hosts_path}: {exc}", backup=backup)
        finally:
            if os.path.exists(temp_path):
                os.remove(temp_path)

        if self.has_loopback(self.hosts_path.read_text(encoding="utf-8", errors=_RAW_BYTES)):
            backup.unlink()
            retained = None
        else:
            retained = str(backup)
            message = f"Post-write verification failed. Backup preserved at {backup}"
            self.console.print(f"[yellow]{message}[/yellow]")
            self.logger.warning(message)

        self.console.print(f"[green]Removed {hostname} from {self.hosts_path}[/green]")
        self.logger.info("Removed %s from %s", hostname, self.hosts_path)
        return HostsUpdateResult(HostsStatus.REMOVED, hostname, backup_path=retained)

    def _promote(self, temp_path: Path):
        shutil.copymode(self.hosts_path, temp_path)
        try:
            os.replace(temp_path, self.hosts_path)
        except OSError as exc:
            # bind-mounted hosts files (containers) refuse rename
            self.logger.debug("Rename refused (%s); copying over %s", exc, self.hosts_path)
            shutil.copyfile(temp_path, self.hosts_path)

    def _abort(self, hostname: str, reason: str, backup: Optional[Path]) -> HostsUpdateResult:
        retained = None
        if backup is not None and backup.exists():
            shutil.copyfile(backup, self.hosts_path)
            retained = str(backup)
            message = f"{reason}. Original restored; backup kept at {backup}"
        else:
            message = f"{reason}. {self.hosts_path} was not modified"
        self.console.print(f"[yellow]{message}[/yellow]")
        self.logger.warning(message)
        return HostsUpdateResult(HostsStatus.ABORTED, hostname, backup_path=retained, message=message)
