from __future__ import annotations

import logging
import threading
from datetime import datetime, time, timezone
from typing import Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from zepplin.domain.errors import (
    DuplicateIdentityError,
    NotFoundError,
    RecordValidationError,
    StoreClosedError,
    UnauthorizedError,
)
from zepplin.domain.models import (
    Alias,
    Comment,
    DownloadStats,
    Package,
    RegistryStats,
    Release,
    SearchResult,
    User,
    as_utc,
    is_reserved_name,
    utcnow,
)
from zepplin.domain.text_utils import matches_any
from zepplin.storage.db_manager import RegistryStore
from zepplin.storage.interning import StringPool

logger = logging.getLogger(__name__)

PackageKey = Tuple[str, str]
DownloadKey = Tuple[str, str, Optional[str]]


def _release_order(release: Release) -> tuple:
    # Published releases first (newest first), then unpublished by id.
    published = release.published_at.timestamp() if release.published_at else 0.0
    return (release.published_at is None, -published, -release.id)


class InMemoryRegistryStore(RegistryStore):
    """
    Registry store keeping every collection in process memory.

    A single re-entrant lock serialises all operations, so readers never see
    a half-applied mutation and concurrent download increments never lose
    updates. Subclasses add durability by overriding the ``_persist_*``
    hooks, which run before the in-memory state is committed: if a hook
    raises, nothing changes.
    """

    def __init__(self, intern_strings: bool = False):
        self._lock = threading.RLock()
        self._open = False
        self._pool: Optional[StringPool] = StringPool() if intern_strings else None
        self._reset_state()

    def _reset_state(self) -> None:
        self._packages: Dict[PackageKey, Package] = {}
        self._retired: Set[PackageKey] = set()
        self._releases: Dict[int, Release] = {}
        self._release_tags: Dict[Tuple[str, str, str], int] = {}
        self._next_release_id = 1
        self._aliases: Dict[str, Alias] = {}
        self._users: Dict[str, User] = {}
        self._tokens: Dict[str, str] = {}
        self._downloads: Dict[DownloadKey, DownloadStats] = {}
        self._comments: Dict[int, Comment] = {}
        self._next_comment_id = 1

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        with self._lock:
            self._open = True

    def close(self) -> None:
        with self._lock:
            self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def _ensure_open(self) -> None:
        if not self._open:
            raise StoreClosedError(f"{type(self).__name__} is closed")

    # ------------------------------------------------------------------
    # Persistence hooks (no-ops in memory)
    # ------------------------------------------------------------------

    def _persist_package(self, package: Package) -> None:
        pass

    def _discard_package(self, owner: str, repo: str) -> None:
        pass

    def _persist_release(self, release: Release) -> None:
        pass

    def _persist_aliases(self, aliases: Dict[str, Alias]) -> None:
        pass

    def _persist_users(self, users: Dict[str, User]) -> None:
        pass

    def _persist_downloads(self, downloads: Dict[DownloadKey, DownloadStats]) -> None:
        pass

    def _persist_comments(self, comments: Dict[int, Comment]) -> None:
        pass

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    def _intern_package(self, package: Package) -> Package:
        if self._pool is None:
            return package
        pool = self._pool
        return package.model_copy(update={
            "owner": pool.intern(package.owner),
            "repo": pool.intern(package.repo),
            "license": pool.intern(package.license),
            "author": pool.intern(package.author),
            "topics": pool.intern_all(package.topics),
        })

    def add_package(self, package: Package) -> None:
        # model_copy skips field validation, so identities are rechecked here.
        for label, value in (("owner", package.owner), ("repo", package.repo)):
            if not value or is_reserved_name(value):
                raise RecordValidationError(f"Invalid package {label} '{value}'")
        with self._lock:
            self._ensure_open()
            key = package.key
            if key in self._packages:
                raise DuplicateIdentityError(f"Package {package.full_name} already exists")
            if key in self._retired:
                raise DuplicateIdentityError(f"Package {package.full_name} was removed and cannot be reused")

            stored = self._intern_package(package.model_copy(
                deep=True,
                update={"created_at": as_utc(package.created_at), "updated_at": as_utc(package.updated_at)},
            ))
            self._persist_package(stored)
            self._packages[key] = stored
            logger.debug(f"Added package {package.full_name}")

    def get_package(self, owner: str, repo: str) -> Optional[Package]:
        with self._lock:
            self._ensure_open()
            package = self._packages.get((owner, repo))
            return package.model_copy(deep=True) if package else None

    def list_packages(self) -> List[Package]:
        with self._lock:
            self._ensure_open()
            return [p.model_copy(deep=True) for p in self._packages.values()]

    def _matching(self, query: str) -> List[Package]:
        return [
            p for p in self._packages.values()
            if matches_any((p.name, p.description), query)
        ]

    def search_packages(self, query: str) -> List[Package]:
        with self._lock:
            self._ensure_open()
            return [p.model_copy(deep=True) for p in self._matching(query)]

    def search_results(self, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        with self._lock:
            self._ensure_open()
            matches = self._matching(query)
            if limit is not None:
                matches = matches[:max(limit, 0)]

            results: List[SearchResult] = []
            for p in matches:
                latest = self._latest_release(p.owner, p.repo)
                if latest is not None:
                    latest_version = str(latest.version)
                elif p.version is not None:
                    latest_version = str(p.version)
                else:
                    latest_version = None
                stats = self._downloads.get((p.owner, p.repo, None))
                results.append(SearchResult(
                    owner=p.owner,
                    repo=p.repo,
                    description=p.description,
                    topics=list(p.topics),
                    stars=p.stars,
                    download_count=stats.download_count if stats else 0,
                    latest_version=latest_version,
                    updated_at=p.updated_at,
                ))
            return results

    def update_package(self, package: Package) -> Package:
        with self._lock:
            self._ensure_open()
            existing = self._packages.get(package.key)
            if existing is None:
                raise NotFoundError(f"Package {package.full_name} not found")

            stored = self._intern_package(package.model_copy(
                deep=True,
                update={"created_at": existing.created_at, "updated_at": utcnow()},
            ))
            self._persist_package(stored)
            self._packages[package.key] = stored
            logger.debug(f"Updated package {package.full_name}")
            return stored.model_copy(deep=True)

    def remove_package(self, owner: str, repo: str) -> None:
        with self._lock:
            self._ensure_open()
            key = (owner, repo)
            if key not in self._packages:
                raise NotFoundError(f"Package {owner}/{repo} not found")

            self._discard_package(owner, repo)
            del self._packages[key]
            self._retired.add(key)
            logger.debug(f"Removed package {owner}/{repo}")

    def resolve(self, name: str) -> Package:
        if "/" in name:
            owner, _, repo = name.partition("/")
            package = self.get_package(owner, repo)
            if package is None:
                raise NotFoundError(f"Package {name} not found")
            return package
        return self.resolve_alias(name)

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    def add_release(self, release: Release) -> Release:
        with self._lock:
            self._ensure_open()
            if release.package_key not in self._packages:
                raise NotFoundError(f"Package {release.owner}/{release.repo} not found")
            tag_key = (release.owner, release.repo, release.tag_name)
            if tag_key in self._release_tags:
                raise DuplicateIdentityError(
                    f"Release {release.tag_name} already exists for {release.owner}/{release.repo}"
                )

            stored = release.model_copy(deep=True, update={"id": self._next_release_id})
            self._persist_release(stored)
            self._releases[stored.id] = stored
            self._release_tags[tag_key] = stored.id
            self._next_release_id += 1
            logger.debug(f"Added release {stored.tag_name} (id={stored.id}) to {stored.owner}/{stored.repo}")
            return stored.model_copy(deep=True)

    def _package_releases(self, owner: str, repo: str) -> List[Release]:
        return [r for r in self._releases.values() if r.owner == owner and r.repo == repo]

    def get_releases(self, owner: str, repo: str) -> List[Release]:
        with self._lock:
            self._ensure_open()
            releases = sorted(self._package_releases(owner, repo), key=_release_order)
            return [r.model_copy(deep=True) for r in releases]

    def get_release(self, owner: str, repo: str, tag_name: str) -> Optional[Release]:
        with self._lock:
            self._ensure_open()
            release_id = self._release_tags.get((owner, repo, tag_name))
            if release_id is None:
                return None
            return self._releases[release_id].model_copy(deep=True)

    def update_release(
        self,
        owner: str,
        repo: str,
        tag_name: str,
        *,
        name: Optional[str] = None,
        body: Optional[str] = None,
        draft: Optional[bool] = None,
        prerelease: Optional[bool] = None,
    ) -> Release:
        with self._lock:
            self._ensure_open()
            release_id = self._release_tags.get((owner, repo, tag_name))
            if release_id is None:
                raise NotFoundError(f"Release {tag_name} not found for {owner}/{repo}")

            changes = {
                field: value
                for field, value in (("name", name), ("body", body), ("draft", draft), ("prerelease", prerelease))
                if value is not None
            }
            updated = self._releases[release_id].model_copy(deep=True, update=changes)
            self._persist_release(updated)
            self._releases[release_id] = updated
            return updated.model_copy(deep=True)

    def _latest_release(self, owner: str, repo: str) -> Optional[Release]:
        candidates = [
            r for r in self._package_releases(owner, repo)
            if not r.draft and not r.prerelease and r.version is not None
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: r.version)

    def get_latest_release(self, owner: str, repo: str) -> Optional[Release]:
        with self._lock:
            self._ensure_open()
            latest = self._latest_release(owner, repo)
            return latest.model_copy(deep=True) if latest else None

    # ------------------------------------------------------------------
    # Aliases
    # ------------------------------------------------------------------

    def add_alias(self, alias: Alias) -> None:
        if "/" in alias.short_name:
            raise RecordValidationError(f"Alias '{alias.short_name}' must not contain '/'")
        with self._lock:
            self._ensure_open()
            if alias.short_name in self._aliases:
                raise DuplicateIdentityError(f"Alias {alias.short_name} already exists")
            if (alias.owner, alias.repo) not in self._packages:
                raise NotFoundError(f"Alias target {alias.resolved_name} not found")

            aliases = {**self._aliases, alias.short_name: alias.model_copy(deep=True)}
            self._persist_aliases(aliases)
            self._aliases = aliases
            logger.debug(f"Added alias {alias.short_name} -> {alias.resolved_name}")

    def get_alias(self, short_name: str) -> Optional[Alias]:
        with self._lock:
            self._ensure_open()
            alias = self._aliases.get(short_name)
            return alias.model_copy(deep=True) if alias else None

    def resolve_alias(self, short_name: str) -> Package:
        with self._lock:
            self._ensure_open()
            alias = self._aliases.get(short_name)
            if alias is None:
                raise NotFoundError(f"Alias {short_name} not found")
            package = self._packages.get((alias.owner, alias.repo))
            if package is None:
                raise NotFoundError(f"Alias {short_name} points to missing package {alias.resolved_name}")
            return package.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, username: str, email: str, password_hash: str, api_token: str) -> None:
        try:
            user = User(username=username, email=email, password_hash=password_hash, api_token=api_token)
        except ValidationError as e:
            raise RecordValidationError(f"Invalid user record: {e}") from e

        with self._lock:
            self._ensure_open()
            if username in self._users:
                raise DuplicateIdentityError(f"User {username} already exists")
            if api_token in self._tokens:
                raise DuplicateIdentityError("API token is already in use")

            users = {**self._users, username: user}
            self._persist_users(users)
            self._users = users
            self._tokens[api_token] = username
            logger.debug(f"Created user {username}")

    def get_user_by_token(self, token: str) -> Optional[str]:
        with self._lock:
            self._ensure_open()
            username = self._tokens.get(token)
            if username is None:
                return None
            user = self._users.get(username)
            if user is None or not user.is_active:
                return None
            return user.username

    def get_user_by_username(self, username: str) -> Optional[str]:
        with self._lock:
            self._ensure_open()
            user = self._users.get(username)
            if user is None or not user.is_active:
                return None
            return user.password_hash

    def get_user(self, username: str) -> Optional[User]:
        with self._lock:
            self._ensure_open()
            user = self._users.get(username)
            return user.model_copy(deep=True) if user else None

    def deactivate_user(self, username: str) -> None:
        with self._lock:
            self._ensure_open()
            user = self._users.get(username)
            if user is None:
                raise NotFoundError(f"User {username} not found")
            if not user.is_active:
                return

            users = {**self._users, username: user.model_copy(update={"is_active": False})}
            self._persist_users(users)
            self._users = users
            logger.debug(f"Deactivated user {username}")

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    def increment_download_count(
        self, owner: str, repo: str, tag_name: Optional[str] = None, amount: int = 1
    ) -> None:
        if amount < 1:
            raise RecordValidationError(f"Download increment must be positive, got {amount}")
        with self._lock:
            self._ensure_open()
            key = (owner, repo, tag_name)
            current = self._downloads.get(key)
            stats = DownloadStats(
                owner=owner,
                repo=repo,
                tag_name=tag_name,
                download_count=(current.download_count if current else 0) + amount,
                last_downloaded=utcnow(),
            )
            downloads = {**self._downloads, key: stats}
            self._persist_downloads(downloads)
            self._downloads = downloads

    def get_download_count(self, owner: str, repo: str, tag_name: Optional[str] = None) -> int:
        with self._lock:
            self._ensure_open()
            stats = self._downloads.get((owner, repo, tag_name))
            return stats.download_count if stats else 0

    def get_download_stats(self, owner: str, repo: str, tag_name: Optional[str] = None) -> Optional[DownloadStats]:
        with self._lock:
            self._ensure_open()
            stats = self._downloads.get((owner, repo, tag_name))
            return stats.model_copy() if stats else None

    def get_total_packages(self) -> int:
        with self._lock:
            self._ensure_open()
            return len(self._packages)

    def get_total_downloads(self) -> int:
        with self._lock:
            self._ensure_open()
            return sum(s.download_count for s in self._downloads.values())

    def get_registry_stats(self) -> RegistryStats:
        with self._lock:
            self._ensure_open()
            midnight = datetime.combine(utcnow().date(), time.min, tzinfo=timezone.utc)
            today = sum(
                s.download_count
                for s in self._downloads.values()
                if s.last_downloaded is not None and s.last_downloaded >= midnight
            )
            return RegistryStats(
                total_packages=len(self._packages),
                total_downloads=sum(s.download_count for s in self._downloads.values()),
                downloads_today=today,
            )

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def _require_author(self, author: str) -> None:
        user = self._users.get(author)
        if user is None or not user.is_active:
            raise UnauthorizedError(f"User {author} is not an active user")

    def add_comment(
        self,
        owner: str,
        repo: str,
        author: str,
        content: str,
        parent_id: Optional[int] = None,
    ) -> Comment:
        if not content or not content.strip():
            raise RecordValidationError("Comment content must not be empty")

        with self._lock:
            self._ensure_open()
            if (owner, repo) not in self._packages:
                raise NotFoundError(f"Package {owner}/{repo} not found")
            self._require_author(author)

            package_id = f"{owner}/{repo}"
            if parent_id is not None:
                parent = self._comments.get(parent_id)
                if parent is None or parent.is_deleted or parent.package_id != package_id:
                    raise NotFoundError(f"Parent comment {parent_id} not found on {package_id}")

            now = utcnow()
            comment = Comment(
                id=self._next_comment_id,
                package_id=package_id,
                author=author,
                content=content,
                created_at=now,
                updated_at=now,
                parent_id=parent_id,
            )
            comments = {**self._comments, comment.id: comment}
            self._persist_comments(comments)
            self._comments = comments
            self._next_comment_id += 1
            return comment.model_copy()

    def get_comments(self, owner: str, repo: str, include_deleted: bool = False) -> List[Comment]:
        with self._lock:
            self._ensure_open()
            package_id = f"{owner}/{repo}"
            return [
                c.model_copy()
                for c in sorted(self._comments.values(), key=lambda c: c.id)
                if c.package_id == package_id and (include_deleted or not c.is_deleted)
            ]

    def _editable_comment(self, comment_id: int, author: str) -> Comment:
        comment = self._comments.get(comment_id)
        if comment is None or comment.is_deleted:
            raise NotFoundError(f"Comment {comment_id} not found")
        if comment.author != author:
            raise UnauthorizedError(f"User {author} cannot modify comment {comment_id}")
        return comment

    def update_comment(self, comment_id: int, author: str, content: str) -> Comment:
        if not content or not content.strip():
            raise RecordValidationError("Comment content must not be empty")

        with self._lock:
            self._ensure_open()
            comment = self._editable_comment(comment_id, author)
            updated = comment.model_copy(update={"content": content, "updated_at": utcnow()})
            comments = {**self._comments, comment_id: updated}
            self._persist_comments(comments)
            self._comments = comments
            return updated.model_copy()

    def delete_comment(self, comment_id: int, author: str) -> None:
        with self._lock:
            self._ensure_open()
            comment = self._editable_comment(comment_id, author)
            tombstone = comment.model_copy(update={"is_deleted": True, "updated_at": utcnow()})
            comments = {**self._comments, comment_id: tombstone}
            self._persist_comments(comments)
            self._comments = comments
