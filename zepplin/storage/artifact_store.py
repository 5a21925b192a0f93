"""
Storage for package archives, keyed by owner, repo and version.

Archives live next to the registry data as::

    <root>/<owner>/<repo>/<version>/<repo>-<version>.zpkg
    <root>/<owner>/<repo>/<version>/<repo>-<version>.zpkg.json

The ``.json`` sidecar holds the package metadata in its canonical form. Both
files are written through a temp file and an atomic replace.
"""

import hashlib
import logging
import secrets
import shutil
import threading
from pathlib import Path
from typing import Iterator, Optional

import aiofiles
from pydantic import BaseModel, Field

from zepplin.domain.errors import NotFoundError, RecordValidationError
from zepplin.domain.models import Package, PackageMetadata, Release
from zepplin.domain.serializer import encode_package
from zepplin.domain.version import Version, format_version
from zepplin.storage.file_utils import path_segment, write_atomic

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".zpkg"
CHUNK_SIZE = 64 * 1024


class ArtifactFile(BaseModel):
    """A stored archive and the checksum it was stored with."""

    owner: str
    repo: str
    version: Version
    file_path: Path
    file_size: int = Field(ge=0)
    sha256: str = Field(description="Lowercase hex SHA256 of the archive bytes.")
    metadata: PackageMetadata


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class ArtifactStore:
    """Archive files for package versions, kept under ``root``."""

    def __init__(self, root: Path):
        self._root = Path(root)
        self._lock = threading.Lock()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _version_dir(self, owner: str, repo: str, version: Version) -> Path:
        return self._root / path_segment(owner) / path_segment(repo) / format_version(version)

    def get_artifact_path(self, owner: str, repo: str, version: Version) -> Path:
        filename = f"{path_segment(repo)}-{format_version(version)}{ARTIFACT_SUFFIX}"
        return self._version_dir(owner, repo, version) / filename

    def artifact_exists(self, owner: str, repo: str, version: Version) -> bool:
        return self.get_artifact_path(owner, repo, version).is_file()

    def store_artifact(self, package: Package, data: bytes, version: Optional[Version] = None) -> ArtifactFile:
        """
        Store ``data`` as the archive of ``package`` at ``version``.

        ``version`` defaults to the package's own version. Storing the same
        version again replaces the previous archive and its sidecar.
        """
        if version is None:
            version = package.version
        if version is None:
            raise RecordValidationError(f"{package.full_name}: an archive needs a version")

        metadata = package.to_metadata().model_copy(update={"version": version})
        path = self.get_artifact_path(package.owner, package.repo, version)
        checksum = sha256_hex(data)

        with self._lock:
            replaced = path.exists()
            write_atomic(path, data)
            write_atomic(path.with_name(path.name + ".json"), encode_package(metadata))

        action = "Replaced" if replaced else "Stored"
        logger.info(f"{action} archive {path.name} for {package.full_name} ({len(data)} bytes, sha256={checksum})")
        return ArtifactFile(
            owner=package.owner,
            repo=package.repo,
            version=version,
            file_path=path,
            file_size=len(data),
            sha256=checksum,
            metadata=metadata,
        )

    def _existing_path(self, owner: str, repo: str, version: Version) -> Path:
        path = self.get_artifact_path(owner, repo, version)
        if not path.is_file():
            raise NotFoundError(f"No archive for {owner}/{repo} {format_version(version)}")
        return path

    def retrieve_artifact(self, owner: str, repo: str, version: Version) -> bytes:
        return self._existing_path(owner, repo, version).read_bytes()

    def iter_artifact(self, owner: str, repo: str, version: Version) -> Iterator[bytes]:
        path = self._existing_path(owner, repo, version)
        with path.open("rb") as f:
            while True:
                chunk = f.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    async def read_artifact(self, owner: str, repo: str, version: Version) -> bytes:
        path = self._existing_path(owner, repo, version)
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    def verify_artifact(self, owner: str, repo: str, version: Version, expected_sha256: str) -> bool:
        """Recompute the archive checksum and compare it to ``expected_sha256``."""
        hasher = hashlib.sha256()
        for chunk in self.iter_artifact(owner, repo, version):
            hasher.update(chunk)
        actual = hasher.hexdigest()

        if not secrets.compare_digest(actual.encode(), expected_sha256.lower().encode("utf-8")):
            logger.error(
                f"Archive checksum mismatch for {owner}/{repo} {format_version(version)}: "
                f"expected {expected_sha256}, got {actual}"
            )
            return False
        return True

    def delete_artifact(self, owner: str, repo: str, version: Version) -> None:
        """Delete the archive and its sidecar. Raises NotFoundError."""
        with self._lock:
            self._existing_path(owner, repo, version)
            shutil.rmtree(self._version_dir(owner, repo, version))
        logger.info(f"Deleted archive for {owner}/{repo} {format_version(version)}")


def apply_to_release(release: Release, artifact: ArtifactFile) -> Release:
    """Copy of ``release`` carrying the size and checksum of ``artifact``."""
    return release.model_copy(update={"file_size": artifact.file_size, "sha256": artifact.sha256})
