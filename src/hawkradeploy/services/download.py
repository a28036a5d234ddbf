"""Client package retrieval with progress reporting."""

import os
import shutil
from typing import Optional
from urllib.parse import urlparse

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from hawkradeploy.errors import DeployError


class DownloadService:
    """Fetches the package tarball over HTTPS, or copies a local one."""

    def __init__(self, logger, console, requests_module, timeout: float = 60.0):
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.timeout = timeout

    def download_file(self, url: str, dest_path: str, description: str = "Downloading..."):
        self.logger.info("Downloading %s to %s", url, dest_path)
        if urlparse(url).scheme.lower() != "https":
            raise DeployError(f"Refusing to download {description} over insecure HTTP: {url}")

        try:
            with self.requests.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                total_size = int(response.headers.get("Content-Length", 0))

                os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)

                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TaskProgressColumn(),
                    TimeElapsedColumn(),
                    console=self.console,
                ) as progress:
                    task = progress.add_task(f"[cyan]{description}", total=total_size or None)
                    with open(dest_path, "wb") as file_obj:
                        for chunk in response.iter_content(chunk_size=8192):
                            if not chunk:
                                continue
                            file_obj.write(chunk)
                            progress.update(task, advance=len(chunk))
        except self.requests.RequestException as exc:
            raise DeployError(
                f"Failed to download client package: {exc}. Check your internet connection."
            ) from exc

    def fetch_package(self, location: str, dest_path: str, local_source: Optional[str] = None) -> str:
        if local_source:
            if not os.path.isfile(local_source):
                raise DeployError(f"Package source not found: {local_source}")
            shutil.copyfile(local_source, dest_path)
            self.logger.info("Using local package %s", local_source)
            return dest_path

        self.download_file(location, dest_path, "Downloading Hawkra client package...")
        return dest_path
