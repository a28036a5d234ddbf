"""Configuration loader for hawkradeploy."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from hawkradeploy.errors import DeployError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "install_dir",
        "hosts_file",
        "domain",
        "package_url",
        "package_source",
        "readiness_timeout",
        "poll_interval",
        "lets_encrypt",
        "verbose",
        "log_file",
        "mail",
        "ai",
    }
    MAPPING_KEYS = {
        "mail": {"host", "port", "username", "password", "from_email"},
        "ai": {"provider", "api_key", "model"},
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise DeployError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise DeployError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise DeployError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise DeployError(f"Unknown configuration keys: {unknown_list}")

        for key, allowed in self.MAPPING_KEYS.items():
            section = parsed.get(key)
            if section is None:
                continue
            if not isinstance(section, dict):
                raise DeployError(f"Configuration key '{key}' must be a mapping.")
            unknown_nested = sorted(set(section.keys()) - allowed)
            if unknown_nested:
                raise DeployError(
                    f"Unknown '{key}' settings: {', '.join(unknown_nested)}"
                )

        return parsed
