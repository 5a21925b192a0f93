import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from zepplin.domain.models import Alias, Comment, DownloadStats, Package, Release, User
from zepplin.storage.file_utils import path_segment, write_atomic
from zepplin.storage.memory_store import DownloadKey, InMemoryRegistryStore

logger = logging.getLogger(__name__)


class AliasFile(BaseModel):
    aliases: List[Alias] = Field(default_factory=list)


class UserFile(BaseModel):
    users: List[User] = Field(default_factory=list)


class DownloadFile(BaseModel):
    downloads: List[DownloadStats] = Field(default_factory=list)


class CommentFile(BaseModel):
    comments: List[Comment] = Field(default_factory=list)


class StoreState(BaseModel):
    """Bookkeeping that cannot be rebuilt from the records themselves."""

    retired: List[Tuple[str, str]] = Field(default_factory=list)
    next_release_id: int = 1


class JsonRegistryStore(InMemoryRegistryStore):
    """
    Registry store persisted as JSON files under ``data_dir``.

    The full state is loaded into memory on ``open()``. Every mutation is
    written through to disk before it becomes visible in memory; files are
    replaced atomically so a crash never leaves a half-written record.
    """

    def __init__(self, data_dir: Path, intern_strings: bool = False):
        super().__init__(intern_strings=intern_strings)
        self._data_dir = Path(data_dir)

        # Ensure data directory exists
        if not self._data_dir.exists():
            self._data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def open(self) -> None:
        with self._lock:
            self._reset_state()
            self._load_from_disk()
            self._open = True
            logger.info(
                f"Opened JSON store at {self._data_dir}: "
                f"{len(self._packages)} packages, {len(self._releases)} releases"
            )

    # ------------------------------------------------------------------
    # Paths & file helpers
    # ------------------------------------------------------------------

    def _package_dir(self, owner: str, repo: str) -> Path:
        return self._data_dir / "packages" / path_segment(owner) / path_segment(repo)

    def _write_text(self, path: Path, text: str) -> None:
        write_atomic(path, text)

    def _read_model(self, path: Path, model_type):
        if not path.exists():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return model_type(**raw)
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.warning(f"Skipping unreadable file {path}: {e}")
            return None

    # ------------------------------------------------------------------
    # Persistence hooks
    # ------------------------------------------------------------------

    def _persist_package(self, package: Package) -> None:
        path = self._package_dir(package.owner, package.repo) / "package.json"
        self._write_text(path, package.model_dump_json(indent=2, exclude_none=True))

    def _discard_package(self, owner: str, repo: str) -> None:
        state = StoreState(
            retired=sorted(self._retired | {(owner, repo)}),
            next_release_id=self._next_release_id,
        )
        self._write_text(self._data_dir / "state.json", state.model_dump_json(indent=2))

        # Release files under the package directory are kept.
        (self._package_dir(owner, repo) / "package.json").unlink(missing_ok=True)

    def _persist_release(self, release: Release) -> None:
        path = self._package_dir(release.owner, release.repo) / "releases" / f"{release.id}.json"
        self._write_text(path, release.model_dump_json(indent=2, exclude_none=True))

    def _persist_aliases(self, aliases: Dict[str, Alias]) -> None:
        store = AliasFile(aliases=list(aliases.values()))
        self._write_text(self._data_dir / "aliases.json", store.model_dump_json(indent=2))

    def _persist_users(self, users: Dict[str, User]) -> None:
        store = UserFile(users=list(users.values()))
        self._write_text(self._data_dir / "users.json", store.model_dump_json(indent=2))

    def _persist_downloads(self, downloads: Dict[DownloadKey, DownloadStats]) -> None:
        store = DownloadFile(downloads=list(downloads.values()))
        self._write_text(self._data_dir / "downloads.json", store.model_dump_json(indent=2))

    def _persist_comments(self, comments: Dict[int, Comment]) -> None:
        store = CommentFile(comments=list(comments.values()))
        self._write_text(self._data_dir / "comments.json", store.model_dump_json(indent=2))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load_from_disk(self) -> None:
        self._load_packages()

        state: Optional[StoreState] = self._read_model(self._data_dir / "state.json", StoreState)
        if state is not None:
            self._retired = {tuple(key) for key in state.retired}
            self._next_release_id = max(self._next_release_id, state.next_release_id)

        aliases: Optional[AliasFile] = self._read_model(self._data_dir / "aliases.json", AliasFile)
        if aliases is not None:
            self._aliases = {a.short_name: a for a in aliases.aliases}

        users: Optional[UserFile] = self._read_model(self._data_dir / "users.json", UserFile)
        if users is not None:
            self._users = {u.username: u for u in users.users}
            self._tokens = {u.api_token: u.username for u in users.users}

        downloads: Optional[DownloadFile] = self._read_model(self._data_dir / "downloads.json", DownloadFile)
        if downloads is not None:
            self._downloads = {(d.owner, d.repo, d.tag_name): d for d in downloads.downloads}

        comments: Optional[CommentFile] = self._read_model(self._data_dir / "comments.json", CommentFile)
        if comments is not None:
            self._comments = {c.id: c for c in comments.comments}
            if self._comments:
                self._next_comment_id = max(self._comments) + 1

    def _load_packages(self) -> None:
        packages_dir = self._data_dir / "packages"
        if not packages_dir.exists():
            return

        loaded: List[Package] = []
        for package_json in packages_dir.glob("*/*/package.json"):
            package = self._read_model(package_json, Package)
            if package is None:
                continue
            if package_json.parent != self._package_dir(package.owner, package.repo):
                logger.warning(f"Skipping package {package_json} filed under the wrong directory")
                continue
            loaded.append(package)

        # Releases of removed packages have no package.json beside them.
        for release_json in packages_dir.glob("*/*/releases/*.json"):
            release = self._read_model(release_json, Release)
            if release is None:
                continue
            if release_json.parent.parent != self._package_dir(release.owner, release.repo):
                logger.warning(f"Skipping release {release_json} filed under the wrong package")
                continue
            self._releases[release.id] = release
            self._release_tags[(release.owner, release.repo, release.tag_name)] = release.id

        for package in sorted(loaded, key=lambda p: p.created_at):
            self._packages[package.key] = self._intern_package(package)

        if self._releases:
            self._next_release_id = max(self._releases) + 1
