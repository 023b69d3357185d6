# session.py
'''
Websocket endpoint pushing "reload" to browsers.

Each connection is a Session running two tasks:
  • sender   : waits for the BroadcastCell to move past its baseline,
               sends one "reload", repeats
  • receiver : reads client frames, drops everything, stops on close
Whichever task finishes first cancels the other.
'''

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Set

from aiohttp import WSCloseCode, WSMsgType, web

from .broadcast import BroadcastCell

logger = logging.getLogger(__name__)

RELOAD_MESSAGE = 'reload'

_session_ids = itertools.count(1)


class Session:
  def __init__(self, ws: web.WebSocketResponse, cell: BroadcastCell) -> None:
    self.id = next(_session_ids)
    self.ws = ws
    self.cell = cell
    # captured at upgrade so a change older than the connection is not replayed
    self.seen = cell.version
    self.alive = True

  def __repr__(self) -> str:
    return f'<Session #{self.id} seen={self.seen} alive={self.alive}>'

  async def send_loop(self) -> None:
    while True:
      self.seen, _event = await self.cell.wait_newer(self.seen)
      try:
        await self.ws.send_str(RELOAD_MESSAGE)
      except ConnectionResetError as exc:
        logger.error('session #%d: failed to send reload: %s', self.id, exc)
        return
      logger.debug('session #%d: sent reload for version %d', self.id, self.seen)

  async def recv_loop(self) -> None:
    async for msg in self.ws:
      if msg.type == WSMsgType.ERROR:
        logger.warning('session #%d: websocket error: %s', self.id, self.ws.exception())
        return
    # iteration ends on close / closing / closed
    logger.debug('session #%d: client closed', self.id)

  async def run(self) -> None:
    sender = asyncio.create_task(self.send_loop(), name=f'session-{self.id}-send')
    receiver = asyncio.create_task(self.recv_loop(), name=f'session-{self.id}-recv')
    tasks = {sender, receiver}
    try:
      await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
      self.alive = False
      for task in tasks:
        task.cancel()
      results = await asyncio.gather(sender, receiver, return_exceptions=True)
      for name, result in zip(('sender', 'receiver'), results):
        if isinstance(result, Exception):
          logger.error('session #%d: %s failed', self.id, name, exc_info=result)
      if not self.ws.closed:
        await self.ws.close()


# ─────────────────────────────────────────────────────────────────────────────
# aiohttp glue
# ─────────────────────────────────────────────────────────────────────────────
cell_key = web.AppKey('broadcast_cell', BroadcastCell)
sessions_key = web.AppKey('sessions', Set[Session])


async def notify_reload(request: web.Request) -> web.WebSocketResponse:
  ws = web.WebSocketResponse()
  session = Session(ws, request.app[cell_key])
  await ws.prepare(request)
  logger.info('session #%d: websocket opened from %s', session.id, request.remote)

  sessions = request.app[sessions_key]
  sessions.add(session)
  try:
    await session.run()
  finally:
    sessions.discard(session)
    logger.info('session #%d: closed', session.id)
  return ws


async def close_sessions(app: web.Application) -> None:
  '''on_shutdown hook: end every open session.'''
  for session in list(app[sessions_key]):
    await session.ws.close(code=WSCloseCode.GOING_AWAY, message=b'server shutdown')
