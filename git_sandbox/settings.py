"""Process-wide global working directory.

A caller may pin one directory with ``git_set_working_dir``.  While it is
set, a path equal to :data:`PLACEHOLDER_PATH` resolves to the pinned
directory instead of being taken literally.

The registry is a single mutable slot.  Concurrent ``set`` / ``clear`` calls
race last-write-wins with no versioning: callers that need a deterministic
set -> operate -> clear sequence must serialize it themselves.  The lock only
keeps individual reads and writes atomic.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Optional

logger = logging.getLogger(__name__)

# Reserved literal that resolves to the global working directory.
PLACEHOLDER_PATH = "."


class GlobalWorkingDirectoryRegistry:
    """Holds at most one pinned absolute directory."""

    def __init__(self, initial: Optional[str] = None):
        self._lock = threading.Lock()
        self._path: Optional[str] = None
        if initial is not None:
            self.set(initial)

    def get(self) -> Optional[str]:
        with self._lock:
            return self._path

    def set(self, path: Optional[str]) -> Optional[str]:
        """Pin *path* (or clear with ``None``). Returns the previous value."""
        if path is not None:
            if not path or not os.path.isabs(path):
                raise ValueError(
                    f"Global working directory must be an absolute path: {path!r}"
                )
            path = os.path.normpath(path)
        with self._lock:
            previous, self._path = self._path, path
        if path is None:
            logger.info("Global working directory cleared (was %s)", previous)
        else:
            logger.info("Global working directory set to %s", path)
        return previous

    def clear(self) -> Optional[str]:
        """Clear the pinned directory. Returns the value that was set."""
        return self.set(None)

    def resolve(self, path: str) -> Optional[str]:
        """Return the pinned directory if *path* is the placeholder, else None."""
        if path == PLACEHOLDER_PATH:
            return self.get()
        return None
