import os
from pathlib import Path
from typing import Union
from urllib.parse import quote

from zepplin.domain.errors import RecordValidationError
from zepplin.domain.models import is_reserved_name


def path_segment(name: str) -> str:
    """Quote ``name`` so it is safe as exactly one path component."""
    if not name or is_reserved_name(name):
        raise RecordValidationError(f"'{name}' cannot be stored as a path segment")
    return quote(name, safe="")


def write_atomic(path: Path, content: Union[str, bytes]) -> None:
    """Write to a sibling temp file, then replace ``path`` in one step."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    if isinstance(content, bytes):
        tmp_path.write_bytes(content)
    else:
        tmp_path.write_text(content, encoding="utf-8")
    os.replace(tmp_path, path)
