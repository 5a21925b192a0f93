from __future__ import annotations

import hashlib
import logging
import secrets

from zepplin.domain.errors import UnauthorizedError
from zepplin.storage.db_manager import RegistryStore

logger = logging.getLogger(__name__)

HASH_SCHEME = "sha256"


def _hash_password_sha256(password: str, salt: str) -> str:
    data = (salt + password).encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def hash_password(password: str) -> str:
    """Salted SHA-256 in the stored form ``sha256$<salt>$<hex>``."""
    salt = secrets.token_hex(16)
    return f"{HASH_SCHEME}${salt}${_hash_password_sha256(password, salt)}"


def verify_password(password: str, stored: str) -> bool:
    parts = stored.split("$")
    if len(parts) != 3 or parts[0] != HASH_SCHEME:
        return False
    _, salt, expected = parts
    if not salt:
        return False

    actual = _hash_password_sha256(password, salt)
    return secrets.compare_digest(expected, actual)


def generate_api_token() -> str:
    return secrets.token_urlsafe(32)


def register_user(store: RegistryStore, username: str, email: str, password: str) -> str:
    """Create an account and return its freshly issued API token."""
    token = generate_api_token()
    store.create_user(username, email, hash_password(password), token)
    logger.info(f"Registered user {username}")
    return token


def authenticate(store: RegistryStore, username: str, password: str) -> str:
    # Unknown, inactive and wrong-password all fail the same way.
    stored = store.get_user_by_username(username)
    if stored is None or not verify_password(password, stored):
        logger.debug(f"Rejected credentials for {username}")
        raise UnauthorizedError("Invalid username or password")
    return username


def authenticate_token(store: RegistryStore, token: str) -> str:
    if not token:
        raise UnauthorizedError("Missing API token")

    username = store.get_user_by_token(token)
    if username is None:
        raise UnauthorizedError("Invalid API token")
    return username
