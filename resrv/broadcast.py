# broadcast.py
'''
Latest-value fan-out of change events.

    BroadcastCell            single writer, many readers; holds the newest
                             ChangeEvent plus a version that only grows
    broadcast_asset_change   aggregator task: tracker queue → cell

Readers never see history, only "something newer than what I last saw".
Bursts collapse into whatever the cell holds when a reader wakes up.
'''

from __future__ import annotations

import asyncio
import logging
from typing import Tuple

from .asset_tracker import AssetTracker, ChangeEvent

logger = logging.getLogger(__name__)


class BroadcastCell:
  def __init__(self, initial: ChangeEvent = ChangeEvent.FILE_CHANGE) -> None:
    self._value = initial
    self._version = 0
    self._cond = asyncio.Condition()

  @property
  def version(self) -> int:
    return self._version

  @property
  def value(self) -> ChangeEvent:
    return self._value

  async def publish(self, event: ChangeEvent) -> int:
    '''Replace the held event, bump the version and wake every parked reader.'''
    async with self._cond:
      self._value = event
      self._version += 1
      self._cond.notify_all()
      return self._version

  async def wait_newer(self, seen: int) -> Tuple[int, ChangeEvent]:
    '''
    Suspend until the version moves past *seen*.

    Returns the version observed together with the value at that version;
    intermediate versions published while the caller was away are skipped.
    '''
    async with self._cond:
      await self._cond.wait_for(lambda: self._version > seen)
      return self._version, self._value


async def broadcast_asset_change(tracker: AssetTracker, cell: BroadcastCell) -> None:
  '''Drain *tracker* forever, republishing each change into *cell*.'''
  while True:
    event = await tracker.track_change()
    version = await cell.publish(event)
    logger.debug('published change, version %d', version)
