import asyncio
import enum
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from AtomCSS.Build.tables import FileClassRecord

logger = logging.getLogger(__name__)

IGNORED_DIRS = {"node_modules", ".git", "__pycache__"}


class ScanState(enum.Enum):
    UNSCANNED = "unscanned"
    SCANNING = "scanning"
    LOCKED = "locked"


@dataclass
class ScanResult:
    file_count: int = 0
    class_count: int = 0
    static_count: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)


class _ClassBook:
    """Ref-counted class set of one kind (dynamic or static).

    A class is a member iff its count is positive or it is in the baseline.
    """

    def __init__(self):
        self.members: Set[str] = set()
        self.ref_counts: Dict[str, int] = {}
        self.baseline: Set[str] = set()

    def increment(self, cls, ratchet=False):
        self.ref_counts[cls] = self.ref_counts.get(cls, 0) + 1
        self.members.add(cls)
        if ratchet:
            self.baseline.add(cls)

    def decrement(self, cls):
        count = self.ref_counts.get(cls, 0) - 1
        if count > 0:
            self.ref_counts[cls] = count
            return
        self.ref_counts.pop(cls, None)
        if cls not in self.baseline:
            self.members.discard(cls)

    def seed(self, classes):
        for cls in classes:
            self.baseline.add(cls)
            self.members.add(cls)

    def reset(self, preserve_baseline):
        self.ref_counts.clear()
        if not preserve_baseline:
            self.baseline.clear()
        self.members = set(self.baseline)


class ClassRegistry:
    """Global class registry for one watch session.

    Records are replaced whole on every update so interleaved events for
    different files commute.
    """

    def __init__(self):
        self.dynamic = _ClassBook()
        self.static = _ClassBook()
        self.records: Dict[str, FileClassRecord] = {}
        self.state = ScanState.UNSCANNED
        self.scan_timestamp: Optional[float] = None
        self.incremental_mode = False

    @property
    def locked(self):
        return self.state is ScanState.LOCKED

    def _key(self, path):
        return os.path.abspath(path)

    def _release(self, record):
        for cls in record.dynamic_classes:
            self.dynamic.decrement(cls)
        for cls in record.static_classes:
            self.static.decrement(cls)

    def update_file_data(self, path, record: FileClassRecord):
        key = self._key(path)
        previous = self.records.get(key)
        if previous is not None:
            self._release(previous)
        record.dynamic_classes = list(dict.fromkeys(record.dynamic_classes))
        record.static_classes = list(dict.fromkeys(record.static_classes))
        for cls in record.dynamic_classes:
            self.dynamic.increment(cls, ratchet=self.incremental_mode)
        for cls in record.static_classes:
            self.static.increment(cls, ratchet=self.incremental_mode)
        self.records[key] = record

    def remove_file_data(self, path) -> Optional[FileClassRecord]:
        previous = self.records.pop(self._key(path), None)
        if previous is not None:
            self._release(previous)
        return previous

    def add_baseline_classes(self, dynamic: Iterable[str] = (), static: Iterable[str] = ()):
        self.dynamic.seed(dynamic)
        self.static.seed(static)

    def baseline_classes(self) -> Set[str]:
        return self.dynamic.baseline | self.static.baseline

    def all_classes(self) -> Set[str]:
        return self.dynamic.members | self.static.members

    def referenced_classes(self) -> Set[str]:
        return set(self.dynamic.ref_counts) | set(self.static.ref_counts)

    def contains(self, cls) -> bool:
        return cls in self.dynamic.members or cls in self.static.members

    def ref_count(self, cls) -> int:
        return self.dynamic.ref_counts.get(cls, 0) + self.static.ref_counts.get(cls, 0)

    def ordered_classes(self) -> List[str]:
        """Members in first-seen order across file records, baseline-only classes last."""
        ordered = {}
        for record in self.records.values():
            for cls in record.all_classes():
                if self.contains(cls):
                    ordered[cls] = None
        for cls in sorted(self.all_classes()):
            ordered.setdefault(cls, None)
        return list(ordered)

    def mark_ready(self):
        if self.state is ScanState.UNSCANNED:
            self.state = ScanState.LOCKED

    def collect_style_rules(self) -> Dict[str, str]:
        rules = {}
        for record in self.records.values():
            rules.update(record.style_rules)
        return rules

    def paths_for(self, classes: Iterable[str]) -> Set[str]:
        wanted = set(classes)
        return {path for path, record in self.records.items() if wanted.intersection(record.all_classes())}

    async def perform_full_scan(self, roots: Iterable[str], file_types: Iterable[str],
                                parse: Callable[[str], Awaitable[FileClassRecord]],
                                preserve_baseline: bool = True) -> ScanResult:
        self.state = ScanState.SCANNING
        self.records.clear()
        self.dynamic.reset(preserve_baseline)
        self.static.reset(preserve_baseline)
        result = ScanResult()
        for path in iter_source_files(roots, file_types, result.errors):
            try:
                record = await parse(path)
            except (OSError, ValueError) as e:
                logger.warning("Failed to scan %s: %s", path, e)
                result.errors.append((path, str(e)))
                continue
            self.update_file_data(path, record)
            result.file_count += 1
        result.class_count = len(self.dynamic.members)
        result.static_count = len(self.static.members)
        self.scan_timestamp = time.time()
        self.state = ScanState.LOCKED
        logger.info("Scanned %d files: %d dynamic, %d static classes",
                    result.file_count, result.class_count, result.static_count)
        if result.errors:
            logger.warning("%d paths could not be scanned", len(result.errors))
        return result

    async def wait_for_lock(self, max_retries=5, delay=0.2, sleep=asyncio.sleep) -> bool:
        for _ in range(max_retries):
            if self.locked:
                return True
            await sleep(delay)
        return self.locked


def matches_type(path, file_types) -> bool:
    return os.path.splitext(path)[1].lstrip(".").lower() in {t.lstrip(".").lower() for t in file_types}


def iter_source_files(roots, file_types, errors=None):
    def on_error(e):
        if errors is not None:
            errors.append((e.filename, e.strerror or str(e)))
        logger.warning("Cannot read %s: %s", e.filename, e)

    for root in roots:
        if os.path.isfile(root):
            if matches_type(root, file_types):
                yield os.path.abspath(root)
            continue
        if not os.path.isdir(root):
            on_error(FileNotFoundError(2, "No such file or directory", root))
            continue
        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS and not d.startswith("."))
            for name in sorted(filenames):
                if matches_type(name, file_types):
                    yield os.path.abspath(os.path.join(dirpath, name))
