import os
import stat
import subprocess

import hawkradeploy.services.hosts_file as hosts_module
from hawkradeploy.models import HostsStatus
from hawkradeploy.services.hosts_file import HostsFileService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


BASE_HOSTS = "127.0.0.1 localhost\n::1 localhost ip6-localhost\n"


def _service(hosts_path, run_cmd=None) -> HostsFileService:
    return HostsFileService(
        logger=DummyLogger(), console=DummyConsole(), run_cmd=run_cmd, hosts_file=str(hosts_path)
    )


def _entries(hosts_path, address, hostname):
    return [
        line
        for line in hosts_path.read_text(encoding="utf-8").splitlines()
        if line.split() == [address, hostname]
    ]


def test_ensure_entry_twice_leaves_exactly_one_line(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_text(BASE_HOSTS, encoding="utf-8")
    service = _service(hosts)

    first = service.ensure_entry("app.local", address="10.0.0.5")
    second = service.ensure_entry("app.local", address="10.0.0.5")

    assert first.status == HostsStatus.ADDED
    assert second.status == HostsStatus.ALREADY_PRESENT
    assert second.ok
    assert len(_entries(hosts, "10.0.0.5", "app.local")) == 1
    assert hosts.read_text(encoding="utf-8").startswith(BASE_HOSTS)


def test_ensure_entry_uses_first_detected_address(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_text(BASE_HOSTS, encoding="utf-8")

    def fake_run_cmd(cmd, check=True, capture_output=False):
        assert cmd == ["hostname", "-I"]
        return subprocess.CompletedProcess(cmd, 0, stdout="10.0.0.5 172.17.0.1 \n", stderr="")

    result = _service(hosts, run_cmd=fake_run_cmd).ensure_entry("app.local")

    assert result.status == HostsStatus.ADDED
    assert result.address == "10.0.0.5"
    assert len(_entries(hosts, "10.0.0.5", "app.local")) == 1


def test_ensure_entry_skips_without_address(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_text(BASE_HOSTS, encoding="utf-8")

    def failing_run_cmd(cmd, check=True, capture_output=False):
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="")

    result = _service(hosts, run_cmd=failing_run_cmd).ensure_entry("app.local")

    assert result.status == HostsStatus.SKIPPED
    assert not result.ok
    assert hosts.read_text(encoding="utf-8") == BASE_HOSTS


def test_ensure_entry_matches_whole_tokens_only(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_text(BASE_HOSTS + "10.0.0.9 myapp.local app.local.example\n", encoding="utf-8")
    service = _service(hosts)

    assert service.has_entry("app.local") is False

    result = service.ensure_entry("app.local", address="10.0.0.5")

    assert result.status == HostsStatus.ADDED


def test_ensure_entry_detects_hostname_on_shared_line(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_text("127.0.0.1 localhost app.local\n", encoding="utf-8")

    result = _service(hosts).ensure_entry("app.local", address="10.0.0.5")

    assert result.status == HostsStatus.ALREADY_PRESENT
    assert hosts.read_text(encoding="utf-8") == "127.0.0.1 localhost app.local\n"


def test_ensure_entry_ignores_commented_lines(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_text(BASE_HOSTS + "# 10.0.0.5 app.local\n", encoding="utf-8")

    result = _service(hosts).ensure_entry("app.local", address="10.0.0.5")

    assert result.status == HostsStatus.ADDED


def test_ensure_entry_adds_missing_trailing_newline(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_text("127.0.0.1 localhost", encoding="utf-8")

    _service(hosts).ensure_entry("app.local", address="10.0.0.5")

    lines = hosts.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "127.0.0.1 localhost"
    assert lines[1].split() == ["10.0.0.5", "app.local"]


def test_remove_entry_not_found_leaves_file_byte_identical(tmp_path):
    hosts = tmp_path / "hosts"
    original = b"127.0.0.1 localhost\n# comment\n10.0.0.9   other.local\n"
    hosts.write_bytes(original)
    service = _service(hosts)

    result = service.remove_entry("app.local")

    assert result.status == HostsStatus.NOT_FOUND
    assert not result.changed
    assert hosts.read_bytes() == original
    assert not service.backup_path.exists()


def test_remove_entry_drops_owned_line_and_backup(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_text(BASE_HOSTS + "10.0.0.5    app.local\n", encoding="utf-8")
    service = _service(hosts)

    result = service.remove_entry("app.local")

    assert result.status == HostsStatus.REMOVED
    assert result.backup_path is None
    assert hosts.read_text(encoding="utf-8") == BASE_HOSTS
    assert not service.backup_path.exists()
    assert list(tmp_path.iterdir()) == [hosts]


def test_remove_entry_preserves_file_mode(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_text(BASE_HOSTS + "10.0.0.5 app.local\n", encoding="utf-8")
    os.chmod(hosts, 0o644)

    _service(hosts).remove_entry("app.local")

    assert stat.S_IMODE(os.stat(hosts).st_mode) == 0o644


def test_remove_entry_leaves_shared_lines_untouched(tmp_path):
    hosts = tmp_path / "hosts"
    original = "127.0.0.1 localhost app.local\n"
    hosts.write_text(original, encoding="utf-8")

    result = _service(hosts).remove_entry("app.local")

    assert result.status == HostsStatus.NOT_FOUND
    assert hosts.read_text(encoding="utf-8") == original


def test_remove_entry_is_idempotent(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_text(BASE_HOSTS + "10.0.0.5 app.local\n", encoding="utf-8")
    service = _service(hosts)

    assert service.remove_entry("app.local").status == HostsStatus.REMOVED
    assert service.remove_entry("app.local").status == HostsStatus.NOT_FOUND
    assert hosts.read_text(encoding="utf-8") == BASE_HOSTS


def test_remove_entry_refuses_empty_result_and_keeps_backup(tmp_path):
    hosts = tmp_path / "hosts"
    original = b"10.0.0.5 app.local\n"
    hosts.write_bytes(original)
    service = _service(hosts)

    result = service.remove_entry("app.local")

    assert result.status == HostsStatus.ABORTED
    assert hosts.read_bytes() == original
    assert service.backup_path.exists()
    assert service.backup_path.read_bytes() == original
    assert result.backup_path == str(service.backup_path)


def test_remove_entry_refuses_result_without_loopback(tmp_path):
    hosts = tmp_path / "hosts"
    original = b"::1 localhost\n10.0.0.5 app.local\n"
    hosts.write_bytes(original)
    service = _service(hosts)

    result = service.remove_entry("app.local")

    assert result.status == HostsStatus.ABORTED
    assert "localhost" in result.message
    assert hosts.read_bytes() == original
    assert service.backup_path.read_bytes() == original


def test_remove_entry_keeps_backup_when_post_write_check_fails(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_text(BASE_HOSTS + "10.0.0.5 app.local\n", encoding="utf-8")
    service = _service(hosts)

    answers = iter([True, False])
    service.has_loopback = lambda _content: next(answers)

    result = service.remove_entry("app.local")

    assert result.status == HostsStatus.REMOVED
    assert result.backup_path == str(service.backup_path)
    assert service.backup_path.exists()
    assert hosts.read_text(encoding="utf-8") == BASE_HOSTS


def test_remove_entry_copies_in_place_when_rename_is_refused(tmp_path, monkeypatch):
    hosts = tmp_path / "hosts"
    hosts.write_text(BASE_HOSTS + "10.0.0.5 app.local\n", encoding="utf-8")
    service = _service(hosts)

    def refuse_rename(*_args, **_kwargs):
        raise OSError("Device or resource busy")

    monkeypatch.setattr(hosts_module.os, "replace", refuse_rename)

    result = service.remove_entry("app.local")

    assert result.status == HostsStatus.REMOVED
    assert hosts.read_text(encoding="utf-8") == BASE_HOSTS
    assert not service.backup_path.exists()
    assert list(tmp_path.iterdir()) == [hosts]


def test_remove_entry_keeps_non_utf8_bytes_intact(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_bytes(b"# caf\xe9 server\n127.0.0.1 localhost\n10.0.0.5 app.local\n")
    service = _service(hosts)

    result = service.remove_entry("app.local")

    assert result.status == HostsStatus.REMOVED
    assert hosts.read_bytes() == b"# caf\xe9 server\n127.0.0.1 localhost\n"
    assert not service.backup_path.exists()


def test_ensure_entry_appends_to_non_utf8_file(tmp_path):
    hosts = tmp_path / "hosts"
    hosts.write_bytes(b"127.0.0.1 localhost\n10.0.0.9 m\xfcnchen.local\n")
    service = _service(hosts)

    assert not service.has_entry("app.local")
    result = service.ensure_entry("app.local", address="10.0.0.5")

    assert result.status == HostsStatus.ADDED
    assert hosts.read_bytes().startswith(b"127.0.0.1 localhost\n10.0.0.9 m\xfcnchen.local\n")
    assert hosts.read_bytes().endswith(b"app.local\n")
