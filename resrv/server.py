# server.py
'''
Application assembly.

    create_app(cfg, watch=True) -> web.Application
    serve(cfg)                                     blocks until interrupted

Routing: ``/notifyreload`` is the websocket; every other path is a static
file under the asset directory, with HTML answered by the injection
middleware instead.
'''

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator

from aiohttp import web

from . import asset_tracker
from .broadcast import BroadcastCell, broadcast_asset_change
from .config import Config
from .inject import InjectionConfig, html_reload_injection, injection_key
from .session import cell_key, close_sessions, notify_reload, sessions_key

logger = logging.getLogger(__name__)

NOTIFY_PATH = '/notifyreload'


async def _track_assets(app: web.Application) -> AsyncIterator[None]:
  '''Cleanup context: watcher + aggregator live exactly as long as the app.'''
  cfg = app[injection_key]
  # raises on failure: serving without livereload is not an option
  tracker = asset_tracker.start(cfg.asset_dir)
  task = asyncio.create_task(
    broadcast_asset_change(tracker, app[cell_key]), name='broadcast-asset-change',
  )
  logger.info('watching %s for changes', cfg.asset_dir)

  yield

  # observer first: it may be parked on a full queue the aggregator drains
  await tracker.stop()
  task.cancel()
  with contextlib.suppress(asyncio.CancelledError):
    await task


def create_app(cfg: Config, *, watch: bool = True) -> web.Application:
  app = web.Application(middlewares=[html_reload_injection])
  app[injection_key] = InjectionConfig.for_dir(cfg.dir)
  app[cell_key] = BroadcastCell()
  app[sessions_key] = set()

  app.router.add_get(NOTIFY_PATH, notify_reload)
  app.router.add_static('/', app[injection_key].asset_dir, follow_symlinks=False)

  if watch:
    app.cleanup_ctx.append(_track_assets)
  app.on_shutdown.append(close_sessions)
  return app


def serve(cfg: Config) -> None:
  host, port = cfg.host_port
  logger.info('cfg: %r', cfg)
  web.run_app(create_app(cfg), host=host, port=port, print=None)
