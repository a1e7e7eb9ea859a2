"""Registration of preview video handles owned by the presentation layer."""

from __future__ import annotations

import contextlib
import logging
from typing import Any, Callable, Dict, Iterator, List, Set, Tuple

logger = logging.getLogger(__name__)


class PreviewRegistry:
    """Tracks handles that are currently mounted, keyed by website id.

    The registry never opens or closes a handle; callers register on mount
    and unregister on unmount.
    """

    def __init__(self) -> None:
        self._handles: Dict[str, Any] = {}
        self._primed: Set[str] = set()

    def __contains__(self, website_id: str) -> bool:
        return website_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def register(self, website_id: str, handle: Any) -> None:
        if handle is None:
            self.unregister(website_id)
            return
        self._handles[website_id] = handle

    def unregister(self, website_id: str) -> None:
        self._handles.pop(website_id, None)

    @contextlib.contextmanager
    def scoped(self, website_id: str, handle: Any) -> Iterator[Any]:
        self.register(website_id, handle)
        try:
            yield handle
        finally:
            self.unregister(website_id)

    def pending(self) -> List[Tuple[str, Any]]:
        """Handles not yet primed, in registration order."""
        return [
            (website_id, handle)
            for website_id, handle in self._handles.items()
            if website_id not in self._primed
        ]

    def mark_primed(self, website_id: str) -> None:
        self._primed.add(website_id)

    def is_primed(self, website_id: str) -> bool:
        return website_id in self._primed

    def prime_all(self, prime: Callable[[Any], None]) -> int:
        """Prime pending handles one at a time; returns how many succeeded."""
        primed = 0
        for website_id, handle in self.pending():
            try:
                prime(handle)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to prime preview %s: %s", website_id, exc)
                continue
            self.mark_primed(website_id)
            primed += 1
        return primed
