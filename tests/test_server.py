# test_server.py
'''
End-to-end: real watcher, real HTTP, real websocket.

Two-space indent, single quotes everywhere.
'''

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from aiohttp import WSMsgType

from resrv.config import Config
from resrv.inject import load_snippet
from resrv.server import NOTIFY_PATH, create_app
from resrv.session import sessions_key

RELOAD_TIMEOUT = 5.0


@pytest.fixture
def site(tmp_path: Path) -> Path:
  (tmp_path / 'index.html').write_text(
    '<html><body><h1>hello</h1></body></html>', encoding='utf-8',
  )
  (tmp_path / 'style.css').write_text('h1 { color: red; }', encoding='utf-8')
  return tmp_path


@pytest.fixture
async def app_client(site: Path, aiohttp_client):
  app = create_app(Config(dir=site))
  return app, await aiohttp_client(app)


async def _wait_for_session(app) -> None:
  for _ in range(100):
    if app[sessions_key]:
      return
    await asyncio.sleep(0.02)
  raise AssertionError('websocket session never registered')


async def test_change_reloads_connected_client(app_client, site: Path):
  app, client = app_client

  resp = await client.get('/')
  body = await resp.read()
  assert resp.status == 200
  assert body.endswith(b'<h1>hello</h1>\n' + load_snippet() + b'</body></html>')

  ws = await client.ws_connect(NOTIFY_PATH)
  await _wait_for_session(app)

  with open(site / 'style.css', 'a', encoding='utf-8') as fh:
    fh.write('\nh2 { color: blue; }')

  msg = await ws.receive(timeout=RELOAD_TIMEOUT)
  assert msg.type == WSMsgType.TEXT and msg.data == 'reload'

  with pytest.raises(asyncio.TimeoutError):
    await ws.receive(timeout=1.0)
  await ws.close()


async def test_chmod_does_not_reload(app_client, site: Path):
  app, client = app_client
  ws = await client.ws_connect(NOTIFY_PATH)
  await _wait_for_session(app)

  (site / 'style.css').chmod(0o600)
  with pytest.raises(asyncio.TimeoutError):
    await ws.receive(timeout=1.5)
  await ws.close()


async def test_every_client_is_notified(app_client, site: Path):
  app, client = app_client
  sockets = [await client.ws_connect(NOTIFY_PATH) for _ in range(3)]
  for _ in range(100):
    if len(app[sessions_key]) == 3:
      break
    await asyncio.sleep(0.02)

  (site / 'new.html').touch()

  for ws in sockets:
    msg = await ws.receive(timeout=RELOAD_TIMEOUT)
    assert msg.data == 'reload'
    await ws.close()


async def test_unwatchable_directory_fails_startup(tmp_path: Path, aiohttp_client):
  gone = tmp_path / 'gone'
  gone.mkdir()
  app = create_app(Config(dir=gone))
  gone.rmdir()
  with pytest.raises(OSError):
    await aiohttp_client(app)
