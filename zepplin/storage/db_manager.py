from abc import ABC, abstractmethod
from typing import List, Optional

from zepplin.domain.models import (
    Alias,
    Comment,
    DownloadStats,
    Package,
    RegistryStats,
    Release,
    SearchResult,
    User,
)


class RegistryStore(ABC):
    """
    Abstract base class for registry storage engines.

    Implementations are interchangeable: callers depend only on this
    contract. Identity violations and lookup misses are raised as the typed
    errors in ``zepplin.domain.errors``; no operation applies part of its
    effect.
    """

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    def open(self) -> None:
        """Make the store usable (e.g. load persisted state)."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the store. Further operations raise StoreClosedError."""
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    def __enter__(self) -> "RegistryStore":
        if not self.is_open:
            self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    @abstractmethod
    def add_package(self, package: Package) -> None:
        """Insert a package. Raises DuplicateIdentityError if (owner, repo) exists or was retired."""
        pass

    @abstractmethod
    def get_package(self, owner: str, repo: str) -> Optional[Package]:
        """Look up a package by identity."""
        pass

    @abstractmethod
    def list_packages(self) -> List[Package]:
        """Snapshot of all packages. Order is not part of the contract."""
        pass

    @abstractmethod
    def search_packages(self, query: str) -> List[Package]:
        """Case-sensitive substring match on package name and description."""
        pass

    @abstractmethod
    def search_results(self, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        """Same matching as search_packages, enriched with downloads and latest version."""
        pass

    @abstractmethod
    def update_package(self, package: Package) -> Package:
        """Replace metadata of an existing package. Raises NotFoundError."""
        pass

    @abstractmethod
    def remove_package(self, owner: str, repo: str) -> None:
        """
        Remove a package; aliases pointing at it become dangling.

        Its releases are kept as an audit trail and stay readable. Raises NotFoundError.
        """
        pass

    @abstractmethod
    def resolve(self, name: str) -> Package:
        """Resolve 'owner/repo' or an alias short name. Raises NotFoundError."""
        pass

    # ------------------------------------------------------------------
    # Releases
    # ------------------------------------------------------------------

    @abstractmethod
    def add_release(self, release: Release) -> Release:
        """
        Add a release to an existing package and return the stored copy.
        The store assigns the release id.
        """
        pass

    @abstractmethod
    def get_releases(self, owner: str, repo: str) -> List[Release]:
        """Releases of a package, most recently published first."""
        pass

    @abstractmethod
    def get_release(self, owner: str, repo: str, tag_name: str) -> Optional[Release]:
        pass

    @abstractmethod
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
        """Edit release metadata. Fields left as None are unchanged."""
        pass

    @abstractmethod
    def get_latest_release(self, owner: str, repo: str) -> Optional[Release]:
        """Highest-versioned release that is neither a draft nor a prerelease."""
        pass

    # ------------------------------------------------------------------
    # Aliases
    # ------------------------------------------------------------------

    @abstractmethod
    def add_alias(self, alias: Alias) -> None:
        pass

    @abstractmethod
    def get_alias(self, short_name: str) -> Optional[Alias]:
        pass

    @abstractmethod
    def resolve_alias(self, short_name: str) -> Package:
        """Resolve an alias to its live package. Raises NotFoundError if unknown or dangling."""
        pass

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @abstractmethod
    def create_user(self, username: str, email: str, password_hash: str, api_token: str) -> None:
        pass

    @abstractmethod
    def get_user_by_token(self, token: str) -> Optional[str]:
        """Username owning ``token``; active users only."""
        pass

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[str]:
        """Password hash of an active user."""
        pass

    @abstractmethod
    def get_user(self, username: str) -> Optional[User]:
        pass

    @abstractmethod
    def deactivate_user(self, username: str) -> None:
        pass

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    @abstractmethod
    def increment_download_count(
        self, owner: str, repo: str, tag_name: Optional[str] = None, amount: int = 1
    ) -> None:
        """Add ``amount`` downloads to the package counter, or to one release when tag_name is set."""
        pass

    @abstractmethod
    def get_download_count(self, owner: str, repo: str, tag_name: Optional[str] = None) -> int:
        pass

    @abstractmethod
    def get_download_stats(self, owner: str, repo: str, tag_name: Optional[str] = None) -> Optional[DownloadStats]:
        pass

    @abstractmethod
    def get_total_packages(self) -> int:
        pass

    @abstractmethod
    def get_total_downloads(self) -> int:
        pass

    @abstractmethod
    def get_registry_stats(self) -> RegistryStats:
        pass

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    @abstractmethod
    def add_comment(
        self,
        owner: str,
        repo: str,
        author: str,
        content: str,
        parent_id: Optional[int] = None,
    ) -> Comment:
        pass

    @abstractmethod
    def get_comments(self, owner: str, repo: str, include_deleted: bool = False) -> List[Comment]:
        pass

    @abstractmethod
    def update_comment(self, comment_id: int, author: str, content: str) -> Comment:
        pass

    @abstractmethod
    def delete_comment(self, comment_id: int, author: str) -> None:
        """Tombstone a comment; the record keeps its place in the thread."""
        pass
