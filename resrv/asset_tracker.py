# asset_tracker.py
'''
Event-driven asset watching based on the `watchdog` library.

API
---
start(asset_dir, ignore_patterns=...)  ->  AssetTracker
    • asset_dir       : directory watched recursively
    • ignore_patterns : glob patterns for editor swap / lock / backup files
AssetTracker.track_change()  ->  ChangeEvent   (awaitable)
AssetTracker.stop()                              (awaitable)

The observer thread never runs loop code itself: every accepted event is
handed to the loop as a `queue.put` and the thread waits for it, so a full
queue stalls the observer rather than dropping the change.
'''

from __future__ import annotations

import asyncio
import enum
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from watchdog.events import (
  EVENT_TYPE_CREATED,
  EVENT_TYPE_DELETED,
  EVENT_TYPE_MODIFIED,
  EVENT_TYPE_MOVED,
  FileSystemEvent,
  PatternMatchingEventHandler,
)
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

ASSET_TRACKER_BUFFER_SIZE = 128

DEFAULT_IGNORE_PATTERNS = (
  '*.swp', '*.swx', '*.swo',   # vim
  '*~', '.#*',                 # backups, emacs locks
  '4913',                      # vim write probe
  '*.tmp',
)

_CONTENT_EVENTS = frozenset({
  EVENT_TYPE_CREATED,
  EVENT_TYPE_MODIFIED,
  EVENT_TYPE_MOVED,
  EVENT_TYPE_DELETED,
})

_Fingerprint = Tuple[int, int]


class ChangeEvent(enum.Enum):
  '''Something under the watched directory changed.'''
  FILE_CHANGE = 'file_change'


def _fingerprint(path: str) -> _Fingerprint:
  st = os.stat(path)
  return st.st_mtime_ns, st.st_size


# ─────────────────────────────────────────────────────────────────────────────
# watchdog handler — runs on the observer thread
# ─────────────────────────────────────────────────────────────────────────────
class _AssetChangeHandler(PatternMatchingEventHandler):
  def __init__(
    self,
    root: Path,
    loop: asyncio.AbstractEventLoop,
    queue: asyncio.Queue[ChangeEvent],
    ignore_patterns: Iterable[str],
  ) -> None:
    super().__init__(ignore_patterns=list(ignore_patterns), ignore_directories=True)
    self._root = root
    self._loop = loop
    self._queue = queue
    self._seen: Dict[str, _Fingerprint] = {}

  def snapshot(self) -> None:
    '''Record content fingerprints of every file currently under the root.'''
    for dirpath, _dirs, files in os.walk(self._root):
      for name in files:
        path = os.path.join(dirpath, name)
        try:
          self._seen[path] = _fingerprint(path)
        except OSError:
          continue   # vanished mid-walk

  def dispatch(self, event: FileSystemEvent) -> None:
    # directory events never reach on_any_event (ignore_directories)
    if (event.is_directory
        and event.event_type == EVENT_TYPE_DELETED
        and os.fsdecode(event.src_path) == str(self._root)):
      logger.error('watch target removed: %s', self._root)
    super().dispatch(event)

  def on_any_event(self, event: FileSystemEvent) -> None:
    logger.debug('watchdog event: %r', event)
    try:
      accepted = self._accept(event)
    except OSError as exc:
      logger.warning('error while inspecting %s: %s', event.src_path, exc)
      return
    if accepted:
      self._emit()

  def _accept(self, event: FileSystemEvent) -> bool:
    if event.event_type not in _CONTENT_EVENTS:
      return False

    src = os.fsdecode(event.src_path)
    if event.event_type == EVENT_TYPE_MODIFIED:
      # watchdog maps chmod/chown (IN_ATTRIB) to "modified" too
      try:
        current = _fingerprint(src)
      except FileNotFoundError:
        return False
      if self._seen.get(src) == current:
        logger.debug('metadata-only change ignored: %s', src)
        return False
      self._seen[src] = current
      return True

    if event.event_type == EVENT_TYPE_CREATED:
      try:
        self._seen[src] = _fingerprint(src)
      except FileNotFoundError:
        self._seen.pop(src, None)
    elif event.event_type == EVENT_TYPE_MOVED:
      self._seen.pop(src, None)
      dest = os.fsdecode(event.dest_path)
      try:
        self._seen[dest] = _fingerprint(dest)
      except FileNotFoundError:
        pass
    else:
      self._seen.pop(src, None)
    return True

  def _emit(self) -> None:
    try:
      fut = asyncio.run_coroutine_threadsafe(
        self._queue.put(ChangeEvent.FILE_CHANGE), self._loop,
      )
      fut.result()
    except Exception:
      logger.critical('failed to hand change event to the event loop', exc_info=True)
      raise
    logger.debug('change event queued')


# ─────────────────────────────────────────────────────────────────────────────
# Public handle
# ─────────────────────────────────────────────────────────────────────────────
class AssetTracker:
  def __init__(self, asset_dir: Path, observer: Observer,
               queue: asyncio.Queue[ChangeEvent]) -> None:
    self.asset_dir = asset_dir
    self._observer = observer
    self._queue = queue

  async def track_change(self) -> ChangeEvent:
    '''Suspend until the next accepted filesystem change.'''
    return await self._queue.get()

  def pending(self) -> int:
    return self._queue.qsize()

  async def stop(self) -> None:
    # join on a worker thread: the observer may be waiting on this loop
    await asyncio.to_thread(self._stop_observer)

  def _stop_observer(self) -> None:
    self._observer.stop()
    self._observer.join()
    logger.debug('watcher stopped on %s', self.asset_dir)


def start(
  asset_dir: str | Path,
  *,
  ignore_patterns: Optional[Iterable[str]] = None,
  loop: Optional[asyncio.AbstractEventLoop] = None,
) -> AssetTracker:
  '''
  Begin recursive monitoring of *asset_dir*.

  Must be called with a running event loop (or an explicit *loop*).  Raises
  `OSError` when the directory cannot be watched; there is no degraded mode.
  '''
  root = Path(asset_dir).resolve()
  if not root.is_dir():
    raise NotADirectoryError(f'asset directory does not exist: {root}')

  loop = loop or asyncio.get_running_loop()
  queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=ASSET_TRACKER_BUFFER_SIZE)
  if ignore_patterns is None:
    ignore_patterns = DEFAULT_IGNORE_PATTERNS
  handler = _AssetChangeHandler(root, loop, queue, ignore_patterns)
  handler.snapshot()

  observer = Observer()
  observer.schedule(handler, str(root), recursive=True)
  observer.start()
  logger.debug('watcher started on %s', root)

  return AssetTracker(root, observer, queue)
