import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from AtomCSS.Build.builder import ClassResolver, generate_css
from AtomCSS.Build.dump import append_css, read_common_css, recover_baseline, write_base, write_css
from AtomCSS.Build.parser import parse_markup
from AtomCSS.Build.tables import FileClassRecord
from AtomCSS.Classes.cache import CssCache, FileCache
from AtomCSS.Classes.config import ConfigError, Settings
from AtomCSS.Classes.registry import IGNORED_DIRS, ClassRegistry, ScanResult, matches_type
from AtomCSS.Classes.throttle import Debouncer, Throttle

logger = logging.getLogger(__name__)

RETRY_DELAY = 0.05
RESCHEDULE_DELAY = 0.5


@dataclass
class WatchEvent:
    kind: str
    path: str
    time: float


class BuildManagerEventHandler(FileSystemEventHandler):
    """Forwards watchdog events from the observer thread into the build loop."""

    def __init__(self, loop, queue, roots, file_types, config_path=None, clock=time.monotonic):
        super().__init__()
        self.loop = loop
        self.queue = queue
        self.roots = [os.path.abspath(r) for r in roots]
        self.file_types = file_types
        self.config_path = config_path
        self.clock = clock

    def accepts(self, path) -> bool:
        if path == self.config_path:
            return True
        if not matches_type(path, self.file_types):
            return False
        parts = set(path.split(os.sep))
        if parts & IGNORED_DIRS:
            return False
        for root in self.roots:
            if path == root or path.startswith(root.rstrip(os.sep) + os.sep):
                return True
        return False

    def push(self, kind, path):
        path = os.path.abspath(os.fsdecode(path))
        if not self.accepts(path):
            return
        event = WatchEvent(kind, path, self.clock())
        self.loop.call_soon_threadsafe(self.queue.put_nowait, event)

    def on_created(self, event):
        if not event.is_directory:
            self.push("add", event.src_path)

    def on_modified(self, event):
        if not event.is_directory:
            self.push("change", event.src_path)

    def on_deleted(self, event):
        if not event.is_directory:
            self.push("unlink", event.src_path)

    def on_moved(self, event):
        if not event.is_directory:
            self.push("unlink", event.src_path)
            self.push("add", event.dest_path)


class BuildManager:
    """Owns the registry, caches and output state for one watched project."""

    def __init__(self, settings: Settings, overrides: Optional[Dict] = None,
                 sleep=asyncio.sleep, clock=time.monotonic):
        self.overrides = dict(overrides or {})
        self._sleep = sleep
        self._clock = clock
        self.registry = ClassRegistry()
        self.file_cache = FileCache(sleep=sleep)
        self.css_cache = CssCache()
        self.throttle = Throttle(sleep=sleep)
        self.written: Set[str] = set()
        self.last_css: Optional[str] = None
        self.appends = 0
        self.unused: List[str] = []
        self._sequence: Dict[str, int] = {}
        self._failures: Dict[str, int] = {}
        self.debouncer: Optional[Debouncer] = None
        self.apply_settings(settings)

    def apply_settings(self, settings: Settings):
        if self.debouncer is not None:
            self.debouncer.cancel()
        self.settings = settings
        self.resolver = ClassResolver(settings.tables, settings.base_unit, settings.unit_conversion,
                                      settings.property_units)
        self.debouncer = Debouncer(self._write_full, settings.debounce_ms / 1000,
                                   sleep=self._sleep, clock=self._clock)

    @property
    def append_mode(self) -> bool:
        return self.settings.write_mode == "appendDelta"

    async def parse_file(self, path) -> FileClassRecord:
        content = await self.file_cache.read(path)
        ext = os.path.splitext(path)[1].lstrip(".").lower()
        return parse_markup(content, self.settings.tables, path,
                            style_blocks=ext in self.settings.style_block_types)

    def render(self, classes, sort=None) -> str:
        sort = self.settings.sort_classes if sort is None else sort
        return generate_css(classes, self.resolver, self.settings.css_format, sort,
                            extra_static=self.registry.collect_style_rules())

    async def start(self, force_scan=False) -> Optional[ScanResult]:
        """Recovers the baseline, runs the startup scan and writes the first output."""
        recovered = set()
        if self.append_mode or self.settings.incremental_only_add:
            dynamic, static = await recover_baseline(self.settings.output_file)
            self.registry.add_baseline_classes(dynamic, static)
            recovered = dynamic | static
        result = None
        # without a startup scan only the recovered baseline protects existing output
        skip_scan = not self.settings.rebuild_on_start and self.settings.incremental_only_add
        if force_scan or not skip_scan:
            result = await self.registry.perform_full_scan(
                self.settings.input_paths, self.settings.file_types, self.parse_file)
            self.report_unused(recovered)
            if self.append_mode:
                await self._write_base()
            else:
                await self.write_now()
        else:
            logger.info("Skipping startup rebuild, output is updated on change only")
            self.registry.mark_ready()
        self.registry.incremental_mode = self.settings.incremental_only_add
        return result

    def report_unused(self, recovered):
        referenced = self.registry.referenced_classes()
        self.unused = sorted(recovered - referenced)
        if not self.unused:
            return
        limit = self.settings.unused_report_limit
        logger.info("%d classes from the previous output are no longer used", len(self.unused))
        for cls in self.unused[:limit]:
            logger.info("  unused: %s", cls)
        if len(self.unused) > limit:
            logger.info("  ... and %d more", len(self.unused) - limit)

    async def handle_event(self, event: WatchEvent):
        if self.settings.config_path and event.path == self.settings.config_path:
            if event.kind != "unlink":
                await self.reload_config()
            return
        if event.kind == "unlink":
            self.remove_file(event.path, event.time)
            return
        self.throttle.schedule(event.path, lambda: self.process_change(event.path, event.time),
                               delay=0, priority=1)

    def remove_file(self, path, event_time=None):
        self._sequence[path] = self._sequence.get(path, 0) + 1
        self.throttle.cancel(path)
        self._failures.pop(path, None)
        self.file_cache.invalidate(path)
        self.css_cache.invalidate_path(path)
        if self.registry.remove_file_data(path) is None:
            return
        logger.debug("Removed %s from the registry", path)
        if not self.append_mode:
            self.debouncer.trigger(path, event_time)

    async def process_change(self, path, event_time=None):
        event_time = self._clock() if event_time is None else event_time
        seq = self._sequence[path] = self._sequence.get(path, 0) + 1
        record, error = None, None
        for attempt in range(max(1, self.settings.parse_retries)):
            try:
                record = await self.parse_file(path)
                break
            except (OSError, ValueError) as e:
                error = e
                logger.debug("Parse of %s failed (attempt %d): %s", path, attempt + 1, e)
                if attempt + 1 < self.settings.parse_retries:
                    await self._sleep(RETRY_DELAY * (attempt + 1))
        if self._sequence.get(path) != seq:
            logger.debug("Discarding stale parse of %s", path)
            return
        if record is None:
            self._parse_failed(path, error, event_time)
            return
        self._failures.pop(path, None)
        self.css_cache.invalidate_path(path)
        self.registry.update_file_data(path, record)
        if self.append_mode:
            await self._append_delta(record)
        else:
            self.debouncer.trigger(path, event_time)

    def _parse_failed(self, path, error, event_time):
        failures = self._failures[path] = self._failures.get(path, 0) + 1
        if failures >= self.settings.failure_warn_threshold:
            logger.warning("Failed to parse %s %d times in a row: %s", path, failures, error)
            return
        self.throttle.schedule(path, lambda: self.process_change(path, event_time),
                               delay=RESCHEDULE_DELAY * failures, priority=0)

    async def with_common_css(self, css) -> str:
        path = self.settings.common_css_path
        if not path:
            return css
        common = await asyncio.to_thread(read_common_css, path)
        if not common:
            return css
        return f"{common}\n{css}"

    async def _write_full(self, started):
        if not await self.registry.wait_for_lock(5, 0.2, sleep=self._sleep):
            logger.warning("Registry scan has not finished, writing best-effort output")
        classes = self.registry.ordered_classes()
        style_rules = self.registry.collect_style_rules()
        signature = CssCache.signature(classes, self.settings.css_format, self.settings.sort_classes,
                                       sorted(style_rules.items()),
                                       ordered=not self.settings.sort_classes)
        css = self.css_cache.get(signature)
        if css is None:
            css = self.render(classes)
            self.css_cache.put(signature, css, self.registry.records.keys())
        self.css_cache.sweep()
        css = await self.with_common_css(css)
        output = self.settings.output_file
        if css == self.last_css and os.path.exists(output):
            logger.debug("Output unchanged, skipping write")
            return
        try:
            await asyncio.to_thread(write_css, output, css)
        except OSError as e:
            logger.error("Could not write %s: %s", output, e)
            return
        self.last_css = css
        logger.info("Build in %.3f seconds", self._clock() - started)

    async def _write_base(self):
        classes = self.registry.ordered_classes()
        css = await self.with_common_css(self.render(classes))
        await asyncio.to_thread(write_base, self.settings.output_file, css)
        self.written = set(classes)
        self.last_css = None
        logger.info("Wrote base output with %d classes to %s", len(classes), self.settings.output_file)

    async def _append_delta(self, record: FileClassRecord):
        members = self.registry.all_classes()
        fresh = [cls for cls in record.all_classes() if cls in members and cls not in self.written]
        fresh += sorted(members - self.written - set(fresh))
        if not fresh:
            return
        fragment = self.render(fresh, sort=False)
        try:
            appended = await asyncio.to_thread(append_css, self.settings.output_file, fragment)
        except OSError as e:
            logger.error("Could not append to %s: %s", self.settings.output_file, e)
            return
        self.written.update(fresh)
        if appended:
            self.appends += 1
            logger.info("Appended %d new classes to %s", len(fresh), self.settings.output_file)

    async def write_now(self):
        await self.debouncer.flush()

    async def rebuild(self, preserve_baseline=True) -> ScanResult:
        self.throttle.cancel_all()
        self.debouncer.cancel()
        self.file_cache.clear()
        self.css_cache.clear()
        result = await self.registry.perform_full_scan(
            self.settings.input_paths, self.settings.file_types, self.parse_file,
            preserve_baseline=preserve_baseline)
        self.registry.incremental_mode = self.settings.incremental_only_add
        if self.append_mode:
            await self._write_base()
        else:
            await self.write_now()
        return result

    async def reload_config(self) -> bool:
        path = self.settings.config_path
        try:
            settings = Settings.load(path, True, **self.overrides)
        except ConfigError as e:
            logger.error("Keeping previous configuration: %s", e)
            return False
        logger.info("Configuration changed, rebuilding")
        self.apply_settings(settings)
        await self.rebuild(preserve_baseline=True)
        return True

    async def drain(self):
        while self.throttle.pending or self.debouncer.pending:
            await self.throttle.drain()
            await self.debouncer.wait()

    def build(self) -> Optional[ScanResult]:
        return asyncio.run(self.start(force_scan=True))

    def watch_targets(self):
        targets = {}
        for root in self.settings.input_paths:
            root = os.path.abspath(root)
            if os.path.isdir(root):
                targets[root] = True
            else:
                targets.setdefault(os.path.dirname(root), False)
        if self.settings.config_path:
            config_dir = os.path.dirname(self.settings.config_path)
            covered = any(recursive and (config_dir == d or config_dir.startswith(d + os.sep))
                          for d, recursive in targets.items())
            if not covered:
                targets.setdefault(config_dir, False)
        return targets

    async def _watch(self):
        loop = asyncio.get_running_loop()
        queue = asyncio.Queue()
        await self.start()
        handler = BuildManagerEventHandler(loop, queue, self.settings.input_paths,
                                           self.settings.file_types, self.settings.config_path,
                                           clock=self._clock)
        observer = Observer()
        for path, recursive in self.watch_targets().items():
            observer.schedule(handler, path=path, recursive=recursive)
        observer.start()
        logger.info("Watching %s for changes...", ", ".join(self.settings.input_paths))
        try:
            while True:
                event = await queue.get()
                handler.file_types = self.settings.file_types
                await self.handle_event(event)
        finally:
            self.throttle.cancel_all()
            self.debouncer.cancel()
            observer.stop()
            observer.join()

    def watch(self):
        try:
            asyncio.run(self._watch())
        except KeyboardInterrupt:
            logger.info("Stopped watching")
