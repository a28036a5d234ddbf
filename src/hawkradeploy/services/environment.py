"""Environment file generation for the compose deployment.

The file doubles as the installation marker. An existing ``POSTGRES_PASSWORD``
is always carried over; it must match the one the database volume was
initialised with.
"""

import os
import re
import secrets
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Mapping, Optional

from hawkradeploy.constants import COMPOSE_FILE, ENV_FILE, ENV_FILE_MODE
from hawkradeploy.errors import DeployError

CREDENTIAL_KEY = "POSTGRES_PASSWORD"
MAIL_KEYS = {
    "host": "SMTP_HOST",
    "port": "SMTP_PORT",
    "username": "SMTP_USERNAME",
    "password": "SMTP_PASSWORD",
    "from_email": "SMTP_FROM_EMAIL",
}
AI_KEYS = {
    "provider": "AI_PROVIDER",
    "api_key": "AI_API_KEY",
    "model": "AI_MODEL",
}
_COMPOSE_DOMAIN = re.compile(r"APP_DOMAIN[=:]\s?(\S+)")
_RAW_BYTES = "surrogateescape"


def _format_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class EnvironmentService:
    """Reads, renders and writes the deployment's ``.env`` file."""

    def __init__(self, logger, console, token_factory=None):
        self.logger = logger
        self.console = console
        self.token_factory = token_factory or (lambda: secrets.token_hex(32))

    def read(self, env_path: str) -> Dict[str, str]:
        path = Path(env_path)
        if not path.is_file():
            return {}
        try:
            lines = path.read_text(encoding="utf-8", errors=_RAW_BYTES).splitlines()
        except OSError as exc:
            raise DeployError(f"Could not read {env_path}: {exc}") from exc

        values: Dict[str, str] = {}
        for line in lines:
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or "=" not in stripped:
                continue
            key, value = stripped.split("=", 1)
            values[key.strip()] = value.strip()
        return values

    def read_domain(self, install_dir: str) -> Optional[str]:
        domain = self.read(os.path.join(install_dir, ENV_FILE)).get("APP_DOMAIN")
        if domain:
            return domain

        compose_path = Path(install_dir) / COMPOSE_FILE
        if compose_path.is_file():
            try:
                match = _COMPOSE_DOMAIN.search(compose_path.read_text(encoding="utf-8", errors=_RAW_BYTES))
            except OSError:
                match = None
            if match and not match.group(1).startswith("$"):
                return match.group(1)
        return None

    def build(
        self,
        domain: str,
        existing: Optional[Mapping[str, str]] = None,
        lets_encrypt: bool = False,
        mail: Optional[Mapping[str, object]] = None,
        ai: Optional[Mapping[str, object]] = None,
    ) -> Dict[str, Dict[str, str]]:
        existing = dict(existing or {})

        password = existing.get(CREDENTIAL_KEY, "")
        if not password:
            if existing:
                self.logger.warning(
                    "Existing configuration has no %s; generating a new one.", CREDENTIAL_KEY
                )
            password = self.token_factory()

        url = f"https://{domain}"
        sections: Dict[str, Dict[str, str]] = {
            "Domain": {"APP_DOMAIN": domain},
            "Database": {CREDENTIAL_KEY: password},
            "URLs (derived from APP_DOMAIN)": {
                "FRONTEND_URL": url,
                "BACKEND_URL": url,
                "CORS_ALLOWED_ORIGINS": url,
                "COOKIE_DOMAIN": domain,
                "COOKIE_SECURE": "true",
            },
        }

        tls: Dict[str, str] = {}
        if lets_encrypt:
            tls["LETS_ENCRYPT"] = "true"
        elif "LETS_ENCRYPT" in existing:
            tls["LETS_ENCRYPT"] = existing["LETS_ENCRYPT"]
        if tls:
            sections["TLS"] = tls

        for title, options, mapping in (("Mail", mail, MAIL_KEYS), ("AI provider", ai, AI_KEYS)):
            values = {env_key: existing[env_key] for env_key in mapping.values() if env_key in existing}
            for option, env_key in mapping.items():
                if options and options.get(option) not in (None, ""):
                    values[env_key] = _format_value(options[option])
            if values:
                sections[title] = values

        managed = {key for section in sections.values() for key in section}
        preserved = {key: value for key, value in existing.items() if key not in managed}
        if preserved:
            sections["Preserved settings"] = preserved
        return sections

    def render(self, sections: Mapping[str, Mapping[str, str]]) -> str:
        generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        lines = [
            "# Hawkra Self-Hosted Configuration",
            f"# Generated by hawkradeploy on {generated}",
        ]
        for title, values in sections.items():
            lines.append("")
            lines.append(f"# {title}")
            lines.extend(f"{key}={value}" for key, value in values.items())
        return "\n".join(lines) + "\n"

    def write(self, env_path: str, sections: Mapping[str, Mapping[str, str]]):
        content = self.render(sections)
        # the old file stays intact until the new one is complete
        temp_path = None
        try:
            fd, temp_path = tempfile.mkstemp(prefix=".env-", dir=os.path.dirname(env_path) or ".")
            with os.fdopen(fd, "w", encoding="utf-8", errors=_RAW_BYTES) as file_obj:
                os.fchmod(file_obj.fileno(), ENV_FILE_MODE)
                file_obj.write(content)
            os.replace(temp_path, env_path)
        except OSError as exc:
            raise DeployError(f"Could not write {env_path}: {exc}") from exc
        finally:
            if temp_path and os.path.exists(temp_path):
                os.remove(temp_path)
        self.logger.info("Wrote environment file %s", env_path)
