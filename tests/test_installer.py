import io
import os
import subprocess
import tarfile

import pytest

import hawkradeploy.installer as installer_module
from hawkradeploy.errors import DeployError
from hawkradeploy.installer import Installer, validate_domain
from hawkradeploy.models import HostsStatus, ReadinessOutcome
from hawkradeploy.services.confirmation import ConfirmationGate
from hawkradeploy.services.preflight import PreflightService

BASE_HOSTS = "127.0.0.1 localhost\n"
PACKAGE_FILES = {
    "docker-compose.selfhosted.yml": b"services:\n  backend:\n    image: ghcr.io/reconhawk/hawkra-backend\n",
    "Caddyfile": b"{$APP_DOMAIN} {\n  reverse_proxy frontend:3000\n}\n",
    "caddy/docker-entrypoint.sh": b"#!/bin/sh\nexec caddy run\n",
    "license/license.key": b"trial-license",
}


class FakeStream:
    def __init__(self, tty):
        self.tty = tty

    def isatty(self):
        return self.tty


class ScriptedPrompt:
    def __init__(self, answers):
        self.answers = list(answers)
        self.questions = []

    def __call__(self, text, **_kwargs):
        self.questions.append(text)
        return self.answers.pop(0)


class FakeRuntime:
    """Stands in for the compose deployment of the backend service."""

    def __init__(self, states=None, ready_after=None):
        self.states = list(states or ["running"])
        self.ready_after = ready_after
        self.log_calls = 0
        self.calls = []

    def get_docker_compose_cmd(self):
        return ["docker", "compose"]

    def compose_pull(self, *args):
        self.calls.append("pull")

    def compose_up(self, *args):
        self.calls.append("up")

    def compose_logs(self, compose_cmd, compose_file, project_dir, service="backend", tail=None):
        self.log_calls += 1
        if tail == 30:
            return "backend-1  | panic: cannot connect to database"
        if self.ready_after is not None and self.log_calls > self.ready_after:
            return "backend-1  | Admin user created. Email: admin@hawkra.local password: Secr3tPass"
        return "backend-1  | starting"

    def compose_service_state(self, *args):
        if len(self.states) > 1:
            return self.states.pop(0)
        return self.states[0]


def _package_tarball(tmp_path, files=None):
    tar_path = tmp_path / "hawkra-selfhosted.tar.gz"
    with tarfile.open(tar_path, "w:gz") as archive:
        for name, payload in (files or PACKAGE_FILES).items():
            info = tarfile.TarInfo(f"Hawkra-Selfhosted-main/{name}")
            info.size = len(payload)
            archive.addfile(info, io.BytesIO(payload))
    return tar_path


def _hostname_cmd(cmd, check=True, capture_output=False, **_kwargs):
    return subprocess.CompletedProcess(cmd, 0, stdout="10.0.0.5 172.17.0.1\n", stderr="")


def _build_installer(tmp_path, answers, runtime=None, tty=True, package_files=None, **kwargs):
    hosts = tmp_path / "hosts"
    if not hosts.exists():
        hosts.write_text(BASE_HOSTS, encoding="utf-8")
    os_release = tmp_path / "os-release"
    os_release.write_text("ID=ubuntu\nVERSION_CODENAME=noble\n", encoding="utf-8")

    kwargs.setdefault("readiness_timeout", 120)
    kwargs.setdefault("poll_interval", 5)
    installer = Installer(
        install_dir=str(tmp_path / "hawkra"),
        hosts_file=str(hosts),
        package_source=str(_package_tarball(tmp_path, package_files)),
        **kwargs,
    )

    prompt = ScriptedPrompt(answers)
    installer.prompt = prompt
    installer.confirmation_gate = ConfirmationGate(
        installer_module.console, stdin=FakeStream(tty), prompt=prompt
    )
    installer.preflight_service = PreflightService(
        logger=installer_module.logger,
        console=installer_module.console,
        os_release_file=str(os_release),
        geteuid=lambda: 0,
        machine=lambda: "x86_64",
    )
    installer.steps_run = []
    installer.install_prereqs = lambda: installer.steps_run.append("prereqs")
    installer.install_docker = lambda: installer.steps_run.append("docker")
    installer.hosts_service.run_cmd = _hostname_cmd
    installer.filesystem_service.run_cmd = None
    installer.docker_runtime_service = runtime or FakeRuntime(ready_after=1)
    installer.sleeps = []
    installer.readiness_service.sleep = installer.sleeps.append
    return installer


def _owned_lines(hosts_path, hostname):
    return [
        line
        for line in hosts_path.read_text(encoding="utf-8").splitlines()
        if line.split()[1:] == [hostname]
    ]


def test_validate_domain():
    assert validate_domain("  hawkra.example.local ") == "hawkra.example.local"

    with pytest.raises(DeployError, match="Invalid domain format"):
        validate_domain("bad domain!")
    with pytest.raises(DeployError, match="No domain provided"):
        validate_domain("   ")


def test_fresh_install_end_to_end(tmp_path):
    installer = _build_installer(tmp_path, answers=["2", "app.local"])

    assert installer.run() == 0

    install_dir = tmp_path / "hawkra"
    hosts = tmp_path / "hosts"
    assert hosts.read_text(encoding="utf-8").startswith(BASE_HOSTS)
    owned = _owned_lines(hosts, "app.local")
    assert len(owned) == 1
    assert owned[0].split() == ["10.0.0.5", "app.local"]

    env = installer.environment_service.read(str(install_dir / ".env"))
    assert env["APP_DOMAIN"] == "app.local"
    assert env["FRONTEND_URL"] == "https://app.local"
    assert len(env["POSTGRES_PASSWORD"]) == 64
    assert (install_dir / "caddy" / "docker-entrypoint.sh").is_file()
    assert (install_dir / "license" / "license.key").read_bytes() == b"trial-license"

    assert installer.steps_run == ["prereqs", "docker"]
    assert installer.docker_runtime_service.calls == ["pull", "up"]
    assert installer.summary.existing_install is False
    assert installer.summary.hosts_entry.status == HostsStatus.ADDED
    assert installer.summary.readiness.outcome == ReadinessOutcome.READY
    assert installer.summary.admin_password == "Secr3tPass"
    assert installer.temp_dir is None


def test_fresh_installs_get_different_database_credentials(tmp_path):
    first_root = tmp_path / "first"
    second_root = tmp_path / "second"
    first_root.mkdir()
    second_root.mkdir()

    assert _build_installer(first_root, answers=["2", "app.local"]).run() == 0
    assert _build_installer(second_root, answers=["2", "app.local"]).run() == 0

    first_env = (first_root / "hawkra" / ".env").read_text(encoding="utf-8")
    second_env = (second_root / "hawkra" / ".env").read_text(encoding="utf-8")
    first_password = [line for line in first_env.splitlines() if line.startswith("POSTGRES_PASSWORD=")]
    second_password = [line for line in second_env.splitlines() if line.startswith("POSTGRES_PASSWORD=")]
    assert first_password != second_password


def test_reconfigure_preserves_credential_and_hosts_entry(tmp_path):
    install_dir = tmp_path / "hawkra"
    install_dir.mkdir()
    (install_dir / ".env").write_text(
        "APP_DOMAIN=app.local\nPOSTGRES_PASSWORD=abc123\nMFA_ISSUER=Hawkra\n", encoding="utf-8"
    )
    hosts = tmp_path / "hosts"
    hosts.write_text(BASE_HOSTS + "10.0.0.5    app.local\n", encoding="utf-8")

    installer = _build_installer(tmp_path, answers=["y", "2", "app.local"])

    assert installer.run() == 0

    env = installer.environment_service.read(str(install_dir / ".env"))
    assert env["POSTGRES_PASSWORD"] == "abc123"
    assert env["MFA_ISSUER"] == "Hawkra"
    assert len(_owned_lines(hosts, "app.local")) == 1
    assert installer.summary.existing_install is True
    assert installer.summary.hosts_entry.status == HostsStatus.ALREADY_PRESENT


def test_declined_reconfigure_changes_nothing(tmp_path):
    install_dir = tmp_path / "hawkra"
    install_dir.mkdir()
    env_file = install_dir / ".env"
    env_file.write_text("APP_DOMAIN=app.local\nPOSTGRES_PASSWORD=abc123\n", encoding="utf-8")

    installer = _build_installer(tmp_path, answers=["n"])

    assert installer.run() == 0
    assert env_file.read_text(encoding="utf-8") == "APP_DOMAIN=app.local\nPOSTGRES_PASSWORD=abc123\n"
    assert installer.steps_run == []
    assert installer.docker_runtime_service.calls == []


def test_backend_crash_fails_fast(tmp_path):
    runtime = FakeRuntime(states=["running", "running", "exited"])
    installer = _build_installer(tmp_path, answers=["2", "app.local"], runtime=runtime)

    assert installer.run() == 1

    assert installer.current_step == "waiting for backend"
    readiness = installer.summary.readiness
    assert readiness.outcome == ReadinessOutcome.CRASHED
    assert readiness.elapsed == 10
    assert readiness.elapsed < installer.readiness_timeout
    assert installer.sleeps == [5, 5]
    assert "panic" in readiness.logs
    assert installer.summary.admin_password is None


def test_readiness_timeout_is_not_fatal(tmp_path):
    installer = _build_installer(
        tmp_path, answers=["2", "app.local"], runtime=FakeRuntime(), readiness_timeout=15
    )

    assert installer.run() == 0

    assert installer.summary.readiness.outcome == ReadinessOutcome.TIMED_OUT
    assert installer.summary.admin_password is None
    assert any("did not produce credentials" in warning for warning in installer.summary.warnings)


def test_credential_logged_after_timeout_still_reaches_summary(tmp_path):
    runtime = FakeRuntime(ready_after=3)
    installer = _build_installer(tmp_path, answers=["2", "app.local"], runtime=runtime, readiness_timeout=15)

    assert installer.run() == 0

    assert installer.summary.readiness.outcome == ReadinessOutcome.TIMED_OUT
    assert runtime.log_calls == 4
    assert installer.summary.admin_password == "Secr3tPass"


def test_non_interactive_run_stops_before_any_change(tmp_path):
    installer = _build_installer(tmp_path, answers=[], tty=False)

    assert installer.run() == 1

    assert installer.current_step == "pre-flight checks"
    assert installer.steps_run == []
    assert not (tmp_path / "hawkra").exists()
    assert (tmp_path / "hosts").read_text(encoding="utf-8") == BASE_HOSTS


def test_preset_domain_skips_prompt(tmp_path):
    installer = _build_installer(tmp_path, answers=[], domain="hawkra.example.local")

    assert installer.run() == 0

    assert installer.prompt.questions == []
    assert len(_owned_lines(tmp_path / "hosts", "hawkra.example.local")) == 1


def test_incomplete_package_fails_and_cleans_temp_dir(tmp_path, monkeypatch):
    scratch = tmp_path / "scratch"

    def fake_mkdtemp(prefix=None):
        scratch.mkdir()
        return str(scratch)

    monkeypatch.setattr(installer_module.tempfile, "mkdtemp", fake_mkdtemp)
    files = {name: payload for name, payload in PACKAGE_FILES.items() if name != "Caddyfile"}
    installer = _build_installer(tmp_path, answers=["2", "app.local"], package_files=files)

    assert installer.run() == 1

    assert installer.current_step == "downloading client package"
    assert not scratch.exists()
    assert not os.path.exists(tmp_path / "hawkra" / ".env")
