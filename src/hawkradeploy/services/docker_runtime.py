"""Docker runtime services for hawkradeploy."""

import json
import subprocess
from typing import Any, Callable, Dict, List, Optional

from hawkradeploy.constants import BACKEND_SERVICE, CONTAINER_PREFIXES, VOLUME_PREFIX
from hawkradeploy.errors import DeployError


class DockerRuntimeService:
    """Queries and drives the Docker engine and the compose plugin."""

    def __init__(self, logger, console, run_cmd: Callable, subprocess_module=subprocess):
        self.logger = logger
        self.console = console
        self.run_cmd = run_cmd
        self.subprocess = subprocess_module

    def get_docker_compose_cmd(self) -> List[str]:
        try:
            self.subprocess.run(["docker", "compose", "version"], check=True, capture_output=True)
            return ["docker", "compose"]
        except (self.subprocess.CalledProcessError, FileNotFoundError):
            try:
                self.subprocess.run(["docker-compose", "--version"], check=True, capture_output=True)
                return ["docker-compose"]
            except (self.subprocess.CalledProcessError, FileNotFoundError):
                raise DeployError(
                    "Docker Compose is not available. Install the Docker Compose plugin "
                    "(`docker compose`) and try again."
                )

    def _query(self, cmd: List[str]) -> Optional[subprocess.CompletedProcess]:
        try:
            result = self.run_cmd(cmd, check=False, capture_output=True, quiet=True)
        except DeployError as exc:
            self.logger.debug("Docker query failed: %s", exc)
            return None
        if result.returncode != 0:
            return None
        return result

    def is_available(self) -> bool:
        return self._query(["docker", "info"]) is not None

    def has_compose_plugin(self) -> bool:
        return self._query(["docker", "compose", "version"]) is not None

    @staticmethod
    def parse_json_records(output: str) -> List[Dict[str, Any]]:
        """Parses ``--format json`` output: either a JSON array or one object per line."""
        text = (output or "").strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                return []
            return [item for item in parsed if isinstance(item, dict)]

        records = []
        for line in text.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                item = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(item, dict):
                records.append(item)
        return records

    def _records(self, cmd: List[str]) -> List[Dict[str, Any]]:
        result = self._query(cmd)
        if result is None:
            return []
        return self.parse_json_records(result.stdout)

    def list_containers(self, prefixes=CONTAINER_PREFIXES) -> List[str]:
        names = []
        for record in self._records(["docker", "ps", "-a", "--format", "{{json .}}"]):
            for name in str(record.get("Names", "")).split(","):
                if name.startswith(tuple(prefixes)):
                    names.append(name)
        return names

    def list_volumes(self, prefix: str = VOLUME_PREFIX) -> List[str]:
        return [
            record["Name"]
            for record in self._records(["docker", "volume", "ls", "--format", "{{json .}}"])
            if str(record.get("Name", "")).startswith(prefix)
        ]

    def list_images(self) -> List[str]:
        images = []
        for record in self._records(["docker", "images", "--format", "{{json .}}"]):
            repository = record.get("Repository")
            tag = record.get("Tag")
            if not repository or repository == "<none>" or not tag or tag == "<none>":
                continue
            images.append(f"{repository}:{tag}")
        return images

    def remove_container(self, name: str) -> bool:
        self._query(["docker", "stop", name])
        return self._query(["docker", "rm", "-f", name]) is not None

    def remove_volume(self, name: str) -> bool:
        return self._query(["docker", "volume", "rm", name]) is not None

    def remove_image(self, image: str) -> bool:
        return self._query(["docker", "rmi", image]) is not None

    def compose_base(self, compose_cmd: List[str], compose_file: str, project_dir: str) -> List[str]:
        return compose_cmd + ["-f", compose_file, "--project-directory", project_dir]

    def compose_pull(self, compose_cmd: List[str], compose_file: str, project_dir: str):
        self.run_cmd(
            self.compose_base(compose_cmd, compose_file, project_dir) + ["pull"],
            check=True,
            retry_count=2,
            retry_backoff_seconds=5.0,
        )

    def compose_up(self, compose_cmd: List[str], compose_file: str, project_dir: str):
        self.run_cmd(
            self.compose_base(compose_cmd, compose_file, project_dir) + ["up", "-d"],
            check=True,
        )

    def compose_down(self, compose_cmd: List[str], compose_file: str, project_dir: str) -> bool:
        return (
            self._query(
                self.compose_base(compose_cmd, compose_file, project_dir)
                + ["down", "--volumes", "--remove-orphans"]
            )
            is not None
        )

    def compose_logs(
        self,
        compose_cmd: List[str],
        compose_file: str,
        project_dir: str,
        service: str = BACKEND_SERVICE,
        tail: Optional[int] = None,
    ) -> str:
        cmd = self.compose_base(compose_cmd, compose_file, project_dir) + ["logs", "--no-color"]
        if tail is not None:
            cmd.append(f"--tail={tail}")
        cmd.append(service)
        result = self._query(cmd)
        if result is None:
            return ""
        return result.stdout or ""

    def compose_service_state(
        self,
        compose_cmd: List[str],
        compose_file: str,
        project_dir: str,
        service: str = BACKEND_SERVICE,
    ) -> Optional[str]:
        records = self._records(
            self.compose_base(compose_cmd, compose_file, project_dir)
            + ["ps", "--all", service, "--format", "json"]
        )
        for record in records:
            if record.get("Service", service) == service:
                state = record.get("State")
                return str(state).lower() if state else None
        return None
