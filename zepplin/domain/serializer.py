"""
Canonical JSON text for package metadata and releases.

Both encoders build their output from the same chunk generator, so the
buffered form (``encode_*``) and the streamed form (``stream_*``) are
byte-identical for the same input. String values are always JSON-escaped.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Protocol, Tuple

import aiofiles

from zepplin.domain.models import ApiResponse, Dependency, Package, PackageMetadata, Release
from zepplin.domain.text_utils import strip_unset

logger = logging.getLogger(__name__)

INDENT = "  "


class TextSink(Protocol):
    def write(self, text: str) -> Any: ...


def _string(value: Optional[str]) -> str:
    return json.dumps(value or "", ensure_ascii=False)


def _value(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _timestamp(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp())


def _dependency(dep: Dependency) -> dict:
    return strip_unset({
        "name": dep.name,
        "version": str(dep.version),
        "url": dep.url or None,
        "path": dep.path or None,
    })


def _iter_object(fields: Iterable[Tuple[str, str]]) -> Iterator[str]:
    yield "{\n"
    first = True
    for key, rendered in fields:
        if not first:
            yield ",\n"
        yield f"{INDENT}{_value(key)}: {rendered}"
        first = False
    yield "\n}"


def _package_fields(metadata: PackageMetadata) -> Iterator[Tuple[str, str]]:
    yield "name", _string(metadata.name)
    yield "version", _string(str(metadata.version))
    yield "description", _string(metadata.description)
    yield "author", _string(metadata.author)
    yield "license", _string(metadata.license)

    # Optional fields are left out entirely when unset.
    if metadata.homepage:
        yield "homepage", _string(metadata.homepage)
    if metadata.repository:
        yield "repository", _string(metadata.repository)
    if metadata.keywords:
        yield "keywords", _value(list(metadata.keywords))
    if metadata.dependencies:
        yield "dependencies", _value([_dependency(d) for d in metadata.dependencies])
    if metadata.minimum_zig_version:
        yield "minimum_zig_version", _string(metadata.minimum_zig_version)


def _release_fields(release: Release) -> Iterator[Tuple[str, str]]:
    yield "id", _value(release.id)
    yield "tag_name", _string(release.tag_name)
    yield "name", _string(release.name)
    yield "body", _string(release.body)
    yield "draft", _value(release.draft)
    yield "prerelease", _value(release.prerelease)
    yield "created_at", _value(_timestamp(release.created_at))
    yield "published_at", _value(_timestamp(release.published_at))
    yield "tarball_url", _string(release.tarball_url)
    yield "zipball_url", _string(release.zipball_url)
    yield "download_url", _string(release.download_url)
    yield "file_size", _value(release.file_size)
    yield "sha256", _string(release.sha256)


def _as_metadata(value: PackageMetadata | Package) -> PackageMetadata:
    if isinstance(value, Package):
        return value.to_metadata()
    return value


def iter_package_chunks(value: PackageMetadata | Package) -> Iterator[str]:
    return _iter_object(_package_fields(_as_metadata(value)))


def iter_release_chunks(release: Release) -> Iterator[str]:
    return _iter_object(_release_fields(release))


def encode_package(value: PackageMetadata | Package) -> str:
    return "".join(iter_package_chunks(value))


def stream_package(value: PackageMetadata | Package, sink: TextSink) -> None:
    for chunk in iter_package_chunks(value):
        sink.write(chunk)


def encode_release(release: Release) -> str:
    return "".join(iter_release_chunks(release))


def stream_release(release: Release, sink: TextSink) -> None:
    for chunk in iter_release_chunks(release):
        sink.write(chunk)


def encode_response(response: ApiResponse) -> str:
    return response.model_dump_json()


async def write_package_file(path: Path, value: PackageMetadata | Package) -> Path:
    """
    Stream the canonical metadata text for a package into ``path``.

    Parent directories are created as needed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        for chunk in iter_package_chunks(value):
            await f.write(chunk)
    logger.debug(f"Wrote package metadata to {path}")
    return path
