"""Last read page per document, kept in a small JSON file.

Writes are debounced so rapid page turns cost one write. Independent of the
reading analytics: it remembers position, not time.
"""

import asyncio
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class LastPageStore:

    def __init__(self, path: str | Path = "data/last_pages.json", debounce_ms: int = 500):
        self.path = Path(path)
        self.debounce_ms = debounce_ms
        self._cache: dict[str, int] | None = None
        self._handle: asyncio.TimerHandle | None = None
        self._dirty = False

    def _pages(self) -> dict[str, int]:
        if self._cache is not None:
            return self._cache
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            self._cache = {str(k): int(v) for k, v in data.items()}
        except FileNotFoundError:
            self._cache = {}
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable last-page file %s: %s", self.path, e)
            self._cache = {}
        return self._cache

    def get_last_page(self, document_id: str) -> int:
        return self._pages().get(document_id, 1)

    def save_last_page(self, document_id: str, page: int) -> None:
        """Remember `page`; the file is written after the debounce window."""
        if page < 1:
            raise ValueError(f"Page numbers start at 1, got {page}")
        self._pages()[document_id] = page
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.debounce_ms / 1000, self.flush)

    def remove_last_page(self, document_id: str) -> None:
        if self._pages().pop(document_id, None) is not None:
            self._dirty = True
            self.flush()

    def flush(self) -> None:
        """Write pending changes now."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if not self._dirty:
            return
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w") as f:
                json.dump(self._pages(), f)
            os.replace(tmp, self.path)
        except OSError as e:
            logger.warning("Failed to save last pages to %s: %s", self.path, e)
            return
        self._dirty = False
