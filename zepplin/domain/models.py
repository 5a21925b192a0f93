"""
Pydantic models for the zepplin package registry.

This module defines every entity the registry core stores or returns:
- Packages, their dependency specifications and manifest-style metadata
- Releases, aliases and download accounting
- Users and threaded package comments
- Query results and the API response envelope

All models use Pydantic for validation, serialization, and type safety.
Timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Generic, List, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from zepplin.domain.version import Version


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Names that cannot identify a package: they collide with path navigation.
RESERVED_NAMES = frozenset({".", ".."})


def is_reserved_name(value: str) -> bool:
    return value in RESERVED_NAMES


def _reject_reserved(value: str) -> str:
    if is_reserved_name(value):
        raise ValueError(f"'{value}' is a reserved name")
    return value


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]
Identifier = Annotated[str, Field(min_length=1), AfterValidator(_reject_reserved)]


ZERO_VERSION = Version(major=0, minor=0, patch=0)


# ---------------------------------------------------------------------------
# Package Models
# ---------------------------------------------------------------------------


class Dependency(BaseModel):
    """
    A dependency declared by a package.

    Dependencies are scoped to their owning package and are immutable once
    created. A dependency fetched from somewhere other than the registry
    carries either a source URL or a local path.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        min_length=1,
        description="Name of the required package.",
    )
    version: Version = Field(
        description="Required version of the dependency.",
    )
    url: Optional[str] = Field(
        default=None,
        description="Optional source URL the dependency is fetched from.",
    )
    path: Optional[str] = Field(
        default=None,
        description="Optional local path for path-based dependencies.",
    )


class Package(BaseModel):
    """
    A named, owner-scoped unit of distributable code.

    Identity is the case-sensitive (owner, repo) pair. The store never holds
    two packages with the same identity and never reuses an identity after
    the package has been removed.
    """

    owner: Identifier = Field(
        description="Owning user or organisation.",
    )
    repo: Identifier = Field(
        description="Repository name; also the package name.",
    )
    description: Optional[str] = Field(
        default=None,
        description="Free-text description of the package.",
    )
    topics: List[str] = Field(
        default_factory=list,
        description="Topics used for categorising and browsing packages.",
    )
    license: Optional[str] = Field(
        default=None,
        description="License identifier (e.g., 'MIT').",
    )
    homepage: Optional[str] = Field(
        default=None,
        description="URL of the package's homepage.",
    )
    repository_url: Optional[str] = Field(
        default=None,
        description="URL of the source repository.",
    )
    stars: int = Field(
        default=0,
        ge=0,
        description="Star count reported by the hosting service.",
    )
    created_at: UtcDatetime = Field(
        default_factory=utcnow,
        description="When the package was first published or imported.",
    )
    updated_at: UtcDatetime = Field(
        default_factory=utcnow,
        description="When the package metadata was last refreshed.",
    )
    is_private: bool = Field(
        default=False,
        description="If True, the package is hidden from public listings.",
    )

    # Manifest-level metadata
    author: Optional[str] = Field(
        default=None,
        description="Author of the package. Defaults to the owner when rendered.",
    )
    version: Optional[Version] = Field(
        default=None,
        description="Latest published version, if known.",
    )
    dependencies: List[Dependency] = Field(
        default_factory=list,
        description="Dependencies declared by the latest version.",
    )
    minimum_zig_version: Optional[str] = Field(
        default=None,
        description="Minimum toolchain version required to build the package.",
    )

    @property
    def name(self) -> str:
        return self.repo

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def key(self) -> tuple[str, str]:
        return (self.owner, self.repo)

    def to_metadata(self) -> "PackageMetadata":
        """Project this package onto the manifest shape used by the serializer."""
        return PackageMetadata(
            name=self.repo,
            version=self.version or ZERO_VERSION,
            description=self.description,
            author=self.author or self.owner,
            license=self.license,
            homepage=self.homepage,
            repository=self.repository_url,
            keywords=list(self.topics),
            dependencies=list(self.dependencies),
            minimum_zig_version=self.minimum_zig_version,
        )


class PackageMetadata(BaseModel):
    """
    Manifest-style package metadata.

    This is the canonical shape rendered by the metadata serializer. Fields
    listed as optional in the serializer are omitted from the JSON text when
    unset instead of being emitted as null.
    """

    name: str = Field(description="Package name.")
    version: Version = Field(description="Published version.")
    description: Optional[str] = Field(default=None)
    author: Optional[str] = Field(default=None)
    license: Optional[str] = Field(default=None)
    homepage: Optional[str] = Field(default=None)
    repository: Optional[str] = Field(default=None)
    keywords: List[str] = Field(default_factory=list)
    dependencies: List[Dependency] = Field(default_factory=list)
    minimum_zig_version: Optional[str] = Field(default=None)


# ---------------------------------------------------------------------------
# Release Models
# ---------------------------------------------------------------------------


class Release(BaseModel):
    """
    A tagged publication of a package's contents.

    The store assigns ``id`` when the release is added; any value supplied by
    the caller is replaced. Tags are unique within the owning package.
    Releases are never deleted; only name, body, draft and prerelease may be
    edited after publication.
    """

    id: int = Field(
        default=0,
        ge=0,
        description="Store-assigned identifier.",
    )
    owner: Identifier
    repo: Identifier
    tag_name: str = Field(
        min_length=1,
        description="Tag of the release (e.g., 'v0.6.0').",
    )
    name: Optional[str] = Field(default=None, description="Human-readable release title.")
    body: Optional[str] = Field(default=None, description="Release notes.")
    draft: bool = Field(default=False)
    prerelease: bool = Field(default=False)
    created_at: UtcDatetime = Field(default_factory=utcnow)
    published_at: Optional[UtcDatetime] = Field(default=None)
    tarball_url: Optional[str] = Field(default=None)
    zipball_url: Optional[str] = Field(default=None)
    download_url: Optional[str] = Field(default=None)
    file_size: int = Field(
        default=0,
        ge=0,
        description="Size of the release asset in bytes.",
    )
    sha256: Optional[str] = Field(
        default=None,
        description="SHA256 checksum of the release asset.",
    )

    @property
    def version(self) -> Optional[Version]:
        return Version.from_tag(self.tag_name)

    @property
    def package_key(self) -> tuple[str, str]:
        return (self.owner, self.repo)


# ---------------------------------------------------------------------------
# Alias & Download Models
# ---------------------------------------------------------------------------


class Alias(BaseModel):
    """
    A short, human-friendly name resolving to an (owner, repo) pair.

    Aliases are resolved lazily: when the target package has been removed the
    alias stays stored but resolving it is a lookup failure.
    """

    short_name: Identifier
    owner: Identifier
    repo: Identifier
    created_at: UtcDatetime = Field(default_factory=utcnow)
    created_by: Optional[str] = Field(default=None)

    @property
    def resolved_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class DownloadStats(BaseModel):
    """Download counter for a package, or for one release when tag_name is set."""

    owner: str
    repo: str
    tag_name: Optional[str] = None
    download_count: int = Field(default=0, ge=0)
    last_downloaded: Optional[UtcDatetime] = None


# ---------------------------------------------------------------------------
# User & Comment Models
# ---------------------------------------------------------------------------


class User(BaseModel):
    """
    Registered user account.

    Users are deactivated instead of deleted so that comments and releases
    keep referring to a real account. Inactive users never authenticate.
    """

    username: str = Field(min_length=1)
    email: str
    password_hash: str
    api_token: str = Field(min_length=1)
    is_active: bool = True
    created_at: UtcDatetime = Field(default_factory=utcnow)


class Comment(BaseModel):
    """
    A comment on a package, optionally replying to another comment.

    Deleting a comment sets ``is_deleted``; the record stays in place so that
    replies keep a valid parent.
    """

    id: int = Field(ge=1)
    package_id: str = Field(description="Full name of the package ('owner/repo').")
    author: str
    content: str
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)
    parent_id: Optional[int] = None
    is_deleted: bool = False


# ---------------------------------------------------------------------------
# Query Result Models
# ---------------------------------------------------------------------------


class SearchResult(BaseModel):
    """A search hit enriched with download and release information."""

    owner: str
    repo: str
    description: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    stars: int = 0
    download_count: int = 0
    latest_version: Optional[str] = None
    updated_at: UtcDatetime


class RegistryStats(BaseModel):
    total_packages: int = 0
    total_downloads: int = 0
    downloads_today: int = 0


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """
    Response envelope shared by every query operation of a serving layer.

    Exactly one of ``data`` and ``error_message`` is meaningful, depending on
    ``success``.
    """

    success: bool
    data: Optional[T] = None
    error_message: Optional[str] = None

    @classmethod
    def ok(cls, data: T) -> "ApiResponse[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str) -> "ApiResponse[T]":
        return cls(success=False, error_message=message)

    @classmethod
    def from_error(cls, error: Exception) -> "ApiResponse[T]":
        return cls.fail(str(error) or type(error).__name__)
