"""
Three-component version numbers.

Only ``major.minor.patch`` is supported; pre-release and build metadata are
rejected rather than ignored.
"""

from __future__ import annotations

import enum
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator

from zepplin.domain.errors import InvalidVersionError

# Each component is an unsigned 32-bit integer.
MAX_COMPONENT = 2**32 - 1

_SEGMENT_RE = re.compile(r"[0-9]+", re.ASCII)


class Ordering(enum.IntEnum):
    LESS = -1
    EQUAL = 0
    GREATER = 1


class Version(BaseModel):
    """
    Immutable semantic version value.

    Embedded in other models it serializes to its dotted string form and
    accepts a dotted string on input, so ``{"version": "0.6.0"}`` round-trips.
    """

    model_config = ConfigDict(frozen=True)

    major: int = Field(ge=0, le=MAX_COMPONENT)
    minor: int = Field(ge=0, le=MAX_COMPONENT)
    patch: int = Field(ge=0, le=MAX_COMPONENT)

    @classmethod
    def parse(cls, text: str) -> "Version":
        """
        Parse ``"major.minor.patch"``.

        Raises InvalidVersionError for a missing, extra, empty, signed,
        non-numeric or out-of-range segment.
        """
        if not isinstance(text, str):
            raise InvalidVersionError(f"Version must be a string, got {type(text).__name__}")

        parts = text.split(".")
        if len(parts) != 3:
            raise InvalidVersionError(f"Invalid version '{text}': expected 3 segments, got {len(parts)}")

        numbers = []
        for part in parts:
            if not _SEGMENT_RE.fullmatch(part):
                raise InvalidVersionError(f"Invalid version '{text}': segment '{part}' is not an unsigned integer")
            value = int(part)
            if value > MAX_COMPONENT:
                raise InvalidVersionError(f"Invalid version '{text}': segment '{part}' is out of range")
            numbers.append(value)

        return cls(major=numbers[0], minor=numbers[1], patch=numbers[2])

    @classmethod
    def from_tag(cls, tag: str) -> Optional["Version"]:
        """Parse a release tag such as ``v1.2.3``; None if it is not a version."""
        candidate = tag[1:] if tag[:1] in ("v", "V") else tag
        try:
            return cls.parse(candidate)
        except InvalidVersionError:
            return None

    @model_validator(mode="before")
    @classmethod
    def _coerce_text(cls, data: Any) -> Any:
        if isinstance(data, str):
            parsed = cls.parse(data)
            return {"major": parsed.major, "minor": parsed.minor, "patch": parsed.patch}
        return data

    @model_serializer
    def _serialize(self) -> str:
        return str(self)

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.as_tuple() < other.as_tuple()

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.as_tuple() <= other.as_tuple()

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.as_tuple() > other.as_tuple()

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.as_tuple() >= other.as_tuple()


def parse_version(text: str) -> Version:
    return Version.parse(text)


def format_version(version: Version) -> str:
    return str(version)


def compare(a: Version, b: Version) -> Ordering:
    left, right = a.as_tuple(), b.as_tuple()
    if left < right:
        return Ordering.LESS
    if left > right:
        return Ordering.GREATER
    return Ordering.EQUAL
