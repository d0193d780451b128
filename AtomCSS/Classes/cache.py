import asyncio
import errno
import hashlib
import logging
import os
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Iterable, Optional, Set

logger = logging.getLogger(__name__)

RETRYABLE_ERRNOS = {errno.ENOENT, errno.EBUSY, errno.EPERM, errno.EACCES}


@dataclass
class FileCacheEntry:
    content: str
    mtime: int
    size: int


@dataclass
class CssCacheEntry:
    signature: str
    rendered_css: str
    timestamp: float
    access_count: int = 0
    paths: Set[str] = field(default_factory=set)


def _stat(path):
    st = os.stat(path)
    return st.st_mtime_ns, st.st_size


def _read(path):
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


class FileCache:
    """Content cache keyed by absolute path, valid while mtime and size both match.

    Reads that race an editor save are retried with exponential backoff:
    retryable OS errors, and empty content while stat reports a non-zero size.
    """

    def __init__(self, max_size=1000, max_retries=3, base_delay=0.08, sleep=asyncio.sleep):
        self.max_size = max_size
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep
        self._entries: "OrderedDict[str, FileCacheEntry]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self):
        return len(self._entries)

    def __contains__(self, path):
        return os.path.abspath(path) in self._entries

    async def read(self, path) -> str:
        key = os.path.abspath(path)
        attempt = 0
        while True:
            try:
                mtime, size = await asyncio.to_thread(_stat, key)
                cached = self._entries.get(key)
                if cached is not None and cached.mtime == mtime and cached.size == size:
                    self.hits += 1
                    return cached.content
                content = await asyncio.to_thread(_read, key)
            except OSError as e:
                if e.errno in RETRYABLE_ERRNOS and attempt < self.max_retries:
                    logger.debug("Retrying read of %s after %s", key, e)
                    await self._sleep(self.base_delay * 2 ** attempt)
                    attempt += 1
                    continue
                raise
            if content == "" and size > 0 and attempt < self.max_retries:
                logger.debug("Empty read of %s (size %d), retrying", key, size)
                await self._sleep(self.base_delay * 2 ** attempt)
                attempt += 1
                continue
            self.misses += 1
            self._store(key, FileCacheEntry(content, mtime, size))
            return content

    def _store(self, key, entry):
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = entry

    def invalidate(self, path):
        self._entries.pop(os.path.abspath(path), None)

    def clear(self):
        self._entries.clear()


class CssCache:
    """Rendered CSS keyed by a canonical signature of the class set that produced it."""

    def __init__(self, max_size=5000, max_age=24 * 60 * 60, clock=time.monotonic):
        self.max_size = max_size
        self.max_age = max_age
        self._clock = clock
        self._entries = {}
        self.hits = 0
        self.misses = 0

    def __len__(self):
        return len(self._entries)

    @staticmethod
    def signature(classes: Iterable[str], *options, ordered=False) -> str:
        """With ordered=True the sequence is hashed as given, for renders that keep insertion order."""
        digest = hashlib.sha1()
        names = list(dict.fromkeys(classes)) if ordered else sorted(set(classes))
        for cls in names:
            digest.update(cls.encode("utf-8"))
            digest.update(b"\n")
        for option in options:
            digest.update(f"|{option}".encode("utf-8"))
        return digest.hexdigest()

    def get(self, signature) -> Optional[str]:
        entry = self._entries.get(signature)
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        entry.access_count += 1
        return entry.rendered_css

    def put(self, signature, css, paths: Iterable[str] = ()):
        if signature not in self._entries:
            while len(self._entries) >= self.max_size:
                oldest = min(self._entries.values(), key=lambda e: e.timestamp)
                del self._entries[oldest.signature]
        self._entries[signature] = CssCacheEntry(
            signature=signature,
            rendered_css=css,
            timestamp=self._clock(),
            paths={os.path.abspath(p) for p in paths},
        )

    def invalidate_path(self, path) -> int:
        key = os.path.abspath(path)
        stale = [sig for sig, entry in self._entries.items() if key in entry.paths]
        for sig in stale:
            del self._entries[sig]
        return len(stale)

    def sweep(self, max_age=None) -> int:
        max_age = self.max_age if max_age is None else max_age
        cutoff = self._clock() - max_age
        stale = [sig for sig, entry in self._entries.items() if entry.timestamp < cutoff]
        for sig in stale:
            del self._entries[sig]
        return len(stale)

    def clear(self):
        self._entries.clear()
