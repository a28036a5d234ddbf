import logging
import os

import click
from rich.logging import RichHandler

from .constants import HOSTS_FILE, INSTALL_DIR, PACKAGE_URL, POLL_INTERVAL, READINESS_TIMEOUT
from .errors import DeployError
from .installer import Installer
from .services.config_loader import ConfigLoader
from .uninstaller import Uninstaller

DEFAULT_CONFIG_NAME = ".hawkradeploy.yml"


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _configure_logging(verbose: bool, log_file):
    logger = logging.getLogger("hawkradeploy")
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)


def _load_config(config_path):
    resolved_config = config_path
    if resolved_config is None:
        default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_NAME)
        if os.path.exists(default_config_path):
            resolved_config = default_config_path

    try:
        return ConfigLoader().load(resolved_config)
    except DeployError as exc:
        raise click.ClickException(str(exc)) from exc


def _common_options(func):
    options = [
        click.option(
            "--config",
            required=False,
            type=click.Path(),
            help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_NAME} if present.",
        ),
        click.option("--install-dir", required=False, help=f"Installation root (default: {INSTALL_DIR})."),
        click.option("--hosts-file", required=False, help=f"Hosts file to manage (default: {HOSTS_FILE})."),
        click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging"),
        click.option("--log-file", type=click.Path(), help="Path to log file"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
def main():
    """Install, reconfigure and remove a self-hosted Hawkra deployment."""


@main.command()
@_common_options
@click.option("--domain", required=False, help="Domain to serve Hawkra on. Skips the domain prompt.")
@click.option("--package-url", required=False, help="HTTPS URL of the client package tarball.")
@click.option(
    "--package-source",
    required=False,
    type=click.Path(),
    help="Local client package tarball to use instead of downloading.",
)
@click.option(
    "--readiness-timeout",
    required=False,
    type=int,
    default=None,
    help=f"Seconds to wait for the backend to become ready (default: {READINESS_TIMEOUT}).",
)
@click.option(
    "--poll-interval",
    required=False,
    type=int,
    default=None,
    help=f"Seconds between readiness checks (default: {POLL_INTERVAL}).",
)
@click.option(
    "--lets-encrypt",
    is_flag=True,
    default=None,
    help="Let Caddy provision public certificates automatically.",
)
def install(
    config,
    install_dir,
    hosts_file,
    verbose,
    log_file,
    domain,
    package_url,
    package_source,
    readiness_timeout,
    poll_interval,
    lets_encrypt,
):
    """Install Hawkra, or reconfigure an existing installation."""
    config_values = _load_config(config)

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    _configure_logging(verbose, _resolve_option(log_file, config_values, "log_file"))

    readiness_timeout = int(
        _resolve_option(readiness_timeout, config_values, "readiness_timeout", default=READINESS_TIMEOUT)
    )
    poll_interval = int(_resolve_option(poll_interval, config_values, "poll_interval", default=POLL_INTERVAL))
    if readiness_timeout <= 0 or poll_interval <= 0:
        raise click.ClickException("Readiness timeout and poll interval must be positive.")

    try:
        installer = Installer(
            install_dir=_resolve_option(install_dir, config_values, "install_dir", default=INSTALL_DIR),
            hosts_file=_resolve_option(hosts_file, config_values, "hosts_file", default=HOSTS_FILE),
            domain=_resolve_option(domain, config_values, "domain"),
            package_url=_resolve_option(package_url, config_values, "package_url", default=PACKAGE_URL),
            package_source=_resolve_option(package_source, config_values, "package_source"),
            readiness_timeout=readiness_timeout,
            poll_interval=poll_interval,
            lets_encrypt=bool(_resolve_option(lets_encrypt, config_values, "lets_encrypt", default=False)),
            mail=config_values.get("mail"),
            ai=config_values.get("ai"),
        )
    except DeployError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(installer.run())


@main.command()
@_common_options
def uninstall(config, install_dir, hosts_file, verbose, log_file):
    """Permanently remove Hawkra, its data and its hosts entry."""
    config_values = _load_config(config)

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    _configure_logging(verbose, _resolve_option(log_file, config_values, "log_file"))

    uninstaller = Uninstaller(
        install_dir=_resolve_option(install_dir, config_values, "install_dir", default=INSTALL_DIR),
        hosts_file=_resolve_option(hosts_file, config_values, "hosts_file", default=HOSTS_FILE),
    )
    raise SystemExit(uninstaller.run())


if __name__ == "__main__":
    main()
