"""
Typed error kinds raised by the registry core.

The store never crashes on user-supplied data: every identity violation,
lookup miss or credential failure is raised as one of these exceptions and
the serving layer decides how to present it.
"""

from __future__ import annotations


class RegistryError(Exception):
    """Base error for all registry operations."""


class InvalidVersionError(RegistryError, ValueError):
    """Raised when a version string is not exactly three unsigned integers."""


class DuplicateIdentityError(RegistryError):
    """Raised on a unique-key violation (package, release tag, alias, user)."""


class NotFoundError(RegistryError, LookupError):
    """Raised when a required key does not resolve to a live record."""


class UnauthorizedError(RegistryError):
    """Raised for inactive or unmatched credentials and tokens."""


class RecordValidationError(RegistryError, ValueError):
    """Raised when a submitted record fails required-field checks."""


class StoreClosedError(RegistryError):
    """Raised when an operation is attempted on a closed store."""


class CatalogError(RegistryError):
    """Base error for remote catalog clients. Never raised by the store."""


class CatalogNetworkError(CatalogError):
    """Raised when a catalog cannot be reached after retries."""


class CatalogParseError(CatalogError):
    """Raised when a catalog response cannot be decoded."""
