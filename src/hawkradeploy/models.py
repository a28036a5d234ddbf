"""Shared domain models for hawkradeploy."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class InstallationState(str, Enum):
    FRESH_INSTALL = "fresh_install"
    EXISTING_INSTALL = "existing_install"
    ERROR = "error"


class HostsStatus(str, Enum):
    ADDED = "added"
    ALREADY_PRESENT = "already_present"
    SKIPPED = "skipped"
    REMOVED = "removed"
    NOT_FOUND = "not_found"
    ABORTED = "aborted"


class ReadinessOutcome(str, Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"
    CRASHED = "crashed"


@dataclass(frozen=True)
class Platform:
    """Host facts gathered during pre-flight."""

    distro_id: str
    codename: str
    package_manager: str
    architecture: str


@dataclass(frozen=True)
class DomainRecord:
    address: str
    hostname: str

    def render(self) -> str:
        return f"{self.address}    {self.hostname}"


@dataclass(frozen=True)
class InstallationArtifacts:
    """Traces of an installation that the uninstaller can act on."""

    install_dir_exists: bool
    containers: List[str] = field(default_factory=list)
    volumes: List[str] = field(default_factory=list)

    @property
    def found_anything(self) -> bool:
        return self.install_dir_exists or bool(self.containers) or bool(self.volumes)


@dataclass(frozen=True)
class HostsUpdateResult:
    status: HostsStatus
    hostname: str
    address: Optional[str] = None
    backup_path: Optional[str] = None
    message: str = ""

    @property
    def changed(self) -> bool:
        return self.status in (HostsStatus.ADDED, HostsStatus.REMOVED)

    @property
    def ok(self) -> bool:
        return self.status not in (HostsStatus.SKIPPED, HostsStatus.ABORTED)


@dataclass(frozen=True)
class StepOutcome:
    """Result of one best-effort step."""

    name: str
    succeeded: bool
    message: str = ""
    details: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ReadinessResult:
    outcome: ReadinessOutcome
    elapsed: int
    state: Optional[str] = None
    logs: str = ""


@dataclass
class TeardownSummary:
    """Accumulated outcome of an uninstall run."""

    domain: Optional[str] = None
    containers: Optional[StepOutcome] = None
    volumes: Optional[StepOutcome] = None
    images: Optional[StepOutcome] = None
    hosts_entry: Optional[HostsUpdateResult] = None
    install_dir: Optional[StepOutcome] = None
    retained_volumes: List[str] = field(default_factory=list)
    kept_images: List[str] = field(default_factory=list)

    @staticmethod
    def _succeeded(outcome: Optional[StepOutcome]) -> bool:
        return bool(outcome and outcome.succeeded)

    @property
    def removed_containers(self) -> bool:
        return self._succeeded(self.containers)

    @property
    def removed_volumes(self) -> bool:
        return self._succeeded(self.volumes)

    @property
    def removed_images(self) -> bool:
        return self._succeeded(self.images)

    @property
    def removed_hosts_entry(self) -> bool:
        return bool(self.hosts_entry and self.hosts_entry.status == HostsStatus.REMOVED)

    @property
    def removed_install_dir(self) -> bool:
        return self._succeeded(self.install_dir)


@dataclass
class InstallSummary:
    """Accumulated outcome of an install run."""

    domain: Optional[str] = None
    existing_install: bool = False
    hosts_entry: Optional[HostsUpdateResult] = None
    readiness: Optional[ReadinessResult] = None
    admin_password: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
