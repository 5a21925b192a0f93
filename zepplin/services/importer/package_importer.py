"""
Import packages from third-party catalogs into a registry store.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError

from zepplin.core.config import configure_logging, load_config
from zepplin.core.dependencies import open_store
from zepplin.domain.errors import DuplicateIdentityError, RecordValidationError
from zepplin.domain.models import Package, as_utc, is_reserved_name
from zepplin.domain.serializer import write_package_file
from zepplin.domain.text_utils import clean_text
from zepplin.services.importer.catalog_client import CatalogClient, ZiglibsCatalogClient
from zepplin.storage.db_manager import RegistryStore

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"[A-Za-z0-9_.-]+")


class ImportReport(BaseModel):
    """Outcome of importing one catalog."""

    source: str
    imported: int = 0
    duplicates: int = 0
    invalid: int = 0
    skipped: List[str] = Field(
        default_factory=list,
        description="'owner/repo: reason' for every package that was not imported.",
    )

    @property
    def total(self) -> int:
        return self.imported + self.duplicates + self.invalid


def _check_name(label: str, value: str) -> None:
    if not _NAME_RE.fullmatch(value) or is_reserved_name(value):
        raise RecordValidationError(f"Invalid {label} '{value}'")


def _check_url(label: str, value: Optional[str]) -> None:
    if value is None:
        return
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise RecordValidationError(f"{label} must be an http(s) URL, got '{value}'")


class PackageImporter:
    """
    Feeds externally sourced packages into a store.

    Every candidate is normalized and validated before it reaches the store,
    and each one is added with a single ``add_package`` call so a rejected
    candidate never leaves partial state behind.
    """

    def __init__(self, store: RegistryStore, export_dir: Optional[Path] = None):
        self.store = store
        self.export_dir = export_dir

    def normalize(self, package: Package) -> Package:
        topics: List[str] = []
        for topic in package.topics:
            cleaned = clean_text(topic)
            if cleaned and cleaned.lower() not in topics:
                topics.append(cleaned.lower())

        return package.model_copy(update={
            "owner": package.owner.strip(),
            "repo": package.repo.strip(),
            "description": clean_text(package.description),
            "license": clean_text(package.license),
            "homepage": clean_text(package.homepage),
            "repository_url": clean_text(package.repository_url),
            "author": clean_text(package.author),
            "minimum_zig_version": clean_text(package.minimum_zig_version),
            "topics": topics,
        })

    def validate(self, package: Package) -> None:
        _check_name("owner", package.owner)
        _check_name("repo", package.repo)
        if as_utc(package.updated_at) < as_utc(package.created_at):
            raise RecordValidationError(f"{package.full_name}: updated_at is earlier than created_at")
        _check_url("homepage", package.homepage)
        _check_url("repository_url", package.repository_url)

    def submit(self, package: Package) -> Package:
        """Normalize, validate and add one package. Returns the stored form."""
        package = self.normalize(package)
        self.validate(package)
        self.store.add_package(package)
        logger.debug(f"Imported {package.full_name}")
        return package

    def submit_raw(self, record: Dict[str, Any]) -> Package:
        try:
            package = Package(**record)
        except (ValidationError, TypeError) as e:
            raise RecordValidationError(f"Invalid package record: {e}") from e
        return self.submit(package)

    async def import_from(self, client: CatalogClient) -> ImportReport:
        """
        Fetch every package ``client`` lists and submit them one at a time.

        Duplicates and invalid records are counted and skipped; catalog
        network or parse errors propagate.
        """
        candidates = await client.fetch_packages()
        report = ImportReport(source=client.name)

        for candidate in candidates:
            try:
                stored = self.submit(candidate)
            except DuplicateIdentityError as e:
                report.duplicates += 1
                report.skipped.append(f"{candidate.full_name}: {e}")
                logger.warning(f"Skipping duplicate {candidate.full_name}")
                continue
            except RecordValidationError as e:
                report.invalid += 1
                report.skipped.append(f"{candidate.full_name}: {e}")
                logger.warning(f"Skipping invalid {candidate.full_name}: {e}")
                continue

            report.imported += 1
            if self.export_dir is not None:
                await write_package_file(self.export_dir / stored.owner / f"{stored.repo}.json", stored)

        logger.info(
            f"Import from {report.source} finished: {report.imported} imported, "
            f"{report.duplicates} duplicates, {report.invalid} invalid"
        )
        return report


async def import_ziglibs(data_dir: Optional[Path] = None) -> ImportReport:
    config = load_config()
    updates: Dict[str, Any] = {"backend": "json"}
    if data_dir is not None:
        updates["data_dir"] = data_dir
    config = config.model_copy(update=updates)
    configure_logging(config.log_level)

    with open_store(config) as store:
        client = ZiglibsCatalogClient.from_settings(config.catalog)
        return await PackageImporter(store).import_from(client)


if __name__ == "__main__":
    import asyncio
    import sys

    target_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else None
    print(f"Importing ziglibs packages into: {target_dir or 'configured data dir'}")

    try:
        result = asyncio.run(import_ziglibs(target_dir))
        print(f"\nSuccess! {result.imported} imported, {result.duplicates} duplicates, {result.invalid} invalid")
    except Exception as e:
        print(f"\nError: {e}")
        sys.exit(1)
