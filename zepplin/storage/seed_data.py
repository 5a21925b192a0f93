"""Demo records for a freshly created registry."""

import logging

from zepplin.domain.errors import DuplicateIdentityError
from zepplin.domain.models import Package
from zepplin.domain.version import Version
from zepplin.storage.db_manager import RegistryStore

logger = logging.getLogger(__name__)

DEMO_USERNAME = "testuser"
DEMO_TOKEN = "test-token"

DEMO_PACKAGES = [
    Package(
        owner="mitchellh",
        repo="xev",
        version=Version(major=0, minor=2, patch=0),
        description="Cross-platform event loop",
        author="Mitchell Hashimoto",
        license="MIT",
        repository_url="https://github.com/mitchellh/libxev",
    ),
    Package(
        owner="sam701",
        repo="zig-cli",
        version=Version(major=0, minor=8, patch=0),
        description="Command line argument parsing library",
        author="Sam Windell",
        license="MIT",
        repository_url="https://github.com/sam701/zig-cli",
    ),
    Package(
        owner="sqlite",
        repo="sqlite",
        version=Version(major=3, minor=46, patch=0),
        description="Embedded SQL database engine",
        author="SQLite Development Team",
        license="Public Domain",
        repository_url="https://www.sqlite.org/",
    ),
    Package(
        owner="ghostkellz",
        repo="zepplin",
        version=Version(major=0, minor=1, patch=0),
        description="Zig package manager and registry",
        author="Zepplin Team",
        license="MIT",
        repository_url="https://github.com/ghostkellz/zepplin",
    ),
]

DEMO_DOWNLOADS = {
    ("mitchellh", "xev"): 1247,
    ("sam701", "zig-cli"): 856,
    ("sqlite", "sqlite"): 342,
}


def seed_demo_data(store: RegistryStore) -> int:
    """
    Populate ``store`` with the demo packages, user and download counters.

    Records that already exist are left untouched, so seeding an existing
    registry is harmless. Returns the number of packages added.
    """
    added = 0
    for package in DEMO_PACKAGES:
        if store.get_package(package.owner, package.repo) is not None:
            continue
        try:
            store.add_package(package)
        except DuplicateIdentityError:
            logger.info(f"Demo package {package.full_name} was removed earlier; not re-adding")
            continue
        added += 1

        count = DEMO_DOWNLOADS.get(package.key)
        if count:
            store.increment_download_count(package.owner, package.repo, amount=count)

    if store.get_user(DEMO_USERNAME) is None:
        store.create_user(DEMO_USERNAME, "test@example.com", "mock-hash", DEMO_TOKEN)

    logger.info(f"Seeded {added} demo packages")
    return added
