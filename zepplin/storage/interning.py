"""Optional string interning for store-owned text."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional


class StringPool:
    """
    Maps each distinct string to one canonical instance.

    Packages imported from catalogs repeat the same owners, licenses and
    topics many times; interning keeps a single copy of each.
    """

    def __init__(self) -> None:
        self._strings: Dict[str, str] = {}
        self._lock = threading.Lock()

    def intern(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        with self._lock:
            return self._strings.setdefault(value, value)

    def intern_all(self, values: Iterable[str]) -> List[str]:
        return [self.intern(v) for v in values]

    def __len__(self) -> int:
        return len(self._strings)

    def __contains__(self, value: object) -> bool:
        return value in self._strings
