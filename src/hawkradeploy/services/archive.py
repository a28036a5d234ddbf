"""Archive extraction helpers for hawkradeploy."""

import os
import shutil
import tarfile
from pathlib import Path, PurePosixPath

from hawkradeploy.errors import DeployError


class ArchiveService:
    """Extracts the client package tarball without trusting its member paths."""

    def is_within_dir(self, base_dir: Path, candidate: Path) -> bool:
        try:
            return os.path.commonpath([str(base_dir), str(candidate)]) == str(base_dir)
        except ValueError:
            return False

    @staticmethod
    def _strip(name: str, components: int) -> str:
        parts = [part for part in PurePosixPath(name.replace("\\", "/")).parts if part not in ("", ".")]
        return "/".join(parts[components:])

    def safe_extract_tar(self, tar_path: str, destination_dir: str, strip_components: int = 1):
        base = Path(destination_dir).resolve()

        try:
            with tarfile.open(tar_path, "r:*") as archive:
                members = archive.getmembers()
                for member in members:
                    if member.issym() or member.islnk():
                        raise DeployError(
                            f"Unsafe archive entry detected: `{member.name}` is a link."
                        )
                    relative = self._strip(member.name, strip_components)
                    if not relative:
                        continue
                    target_path = (base / relative).resolve()
                    if not self.is_within_dir(base, target_path):
                        raise DeployError(
                            f"Unsafe archive entry detected: `{member.name}`. "
                            "Extraction aborted to prevent path traversal."
                        )

                for member in members:
                    relative = self._strip(member.name, strip_components)
                    if not relative:
                        continue
                    target_path = (base / relative).resolve()

                    if member.isdir():
                        target_path.mkdir(parents=True, exist_ok=True)
                        continue
                    if not member.isfile():
                        continue

                    target_path.parent.mkdir(parents=True, exist_ok=True)
                    source = archive.extractfile(member)
                    if source is None:
                        continue
                    with source, open(target_path, "wb") as dst:
                        shutil.copyfileobj(source, dst)
        except tarfile.TarError as exc:
            raise DeployError(f"Invalid package archive: {tar_path}") from exc
