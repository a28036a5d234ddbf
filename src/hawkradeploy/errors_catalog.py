"""Actionable error catalog for hawkradeploy."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "not_a_terminal": {
        "what": "This command requires an interactive terminal.",
        "next": "Run it directly from a shell: `sudo hawkradeploy {command}`.",
    },
    "not_root": {
        "what": "This command must be run as root.",
        "next": "Re-run it with sudo: `sudo hawkradeploy {command}`.",
    },
    "unsupported_architecture": {
        "what": "Unsupported architecture: {arch}.",
        "next": "Hawkra requires an x86_64 or aarch64 host.",
    },
    "os_release_missing": {
        "what": "Cannot detect Linux distribution. {path} not found.",
        "next": "Run the installer on Ubuntu, Debian or Fedora.",
    },
    "unsupported_distribution": {
        "what": "Unsupported distribution: {distro}.",
        "next": "This installer supports Ubuntu, Debian and Fedora.",
    },
    "missing_codename": {
        "what": "Cannot determine distribution codename.",
        "next": "Set VERSION_CODENAME in /etc/os-release or install lsb-release.",
    },
    "invalid_install_state": {
        "what": "Cannot determine installation state at {path}: {reason}",
        "next": "Inspect the path manually and remove anything that is not a Hawkra install.",
    },
    "invalid_domain": {
        "what": "Invalid domain format: '{domain}'.",
        "next": "Use only letters, numbers, dots, hyphens and underscores.",
    },
    "package_file_missing": {
        "what": "Client package is missing required file: {name}",
        "next": "Check `package_url`/`package_source` points at a Hawkra self-hosted release.",
    },
    "compose_missing": {
        "what": "Docker Compose plugin is not available after installation.",
        "next": "Check your package manager output and install `docker-compose-plugin`.",
    },
    "backend_crashed": {
        "what": "Backend container exited unexpectedly (state: {state}).",
        "next": "Inspect the logs above or run `docker compose -f {compose_file} logs backend`.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
