# inject.py
'''
HTML reload-script injection.

Every request is first mapped onto the asset directory.  When it resolves to
an on-disk HTML file the file is read here, the reload snippet is spliced in
front of the first ``</body>`` and the result is served directly; anything
else falls through to the static file route untouched.
'''

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from importlib.resources import files
from pathlib import Path
from typing import Awaitable, Callable, Optional

from aiohttp import web

logger = logging.getLogger(__name__)

BODY_END_DELIMITER = b'</body>'
HTML_SUFFIXES = frozenset({'.html', '.htm'})

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def load_snippet() -> bytes:
  '''The bundled reload client, read once at startup.'''
  return files(__package__).joinpath('injected.html').read_bytes()


@dataclass(frozen=True)
class InjectionConfig:
  asset_dir: Path
  inject_snippet: bytes

  @classmethod
  def for_dir(cls, asset_dir: str | Path, snippet: Optional[bytes] = None) -> 'InjectionConfig':
    return cls(Path(asset_dir).resolve(), load_snippet() if snippet is None else snippet)


injection_key = web.AppKey('injection_config', InjectionConfig)


# ─────────────────────────────────────────────────────────────────────────────
# Pure helpers
# ─────────────────────────────────────────────────────────────────────────────
def resolve_asset_path(asset_dir: Path, url_path: str) -> Optional[Path]:
  '''
  Map *url_path* onto *asset_dir*; a trailing ``/`` means ``index.html``.
  Returns None for paths that would leave the asset directory or that
  cannot be mapped at all (embedded NUL, unresolvable links).
  '''
  if url_path.endswith('/'):
    url_path += 'index.html'
  try:
    candidate = (asset_dir / url_path.lstrip('/')).resolve()
  except (ValueError, OSError) as exc:
    logger.debug('no injection -- unmappable path %r: %s', url_path, exc)
    return None
  if candidate != asset_dir and asset_dir not in candidate.parents:
    return None
  return candidate


def is_inject_candidate(path: Optional[Path]) -> bool:
  if path is None:
    return False
  if not path.is_file():
    logger.debug('no injection -- not a file: %s', path)
    return False
  if path.suffix.lower() not in HTML_SUFFIXES:
    logger.debug('no injection -- wrong extension: %s', path)
    return False
  return True


def inject_js_into_html(html: bytes, js: bytes) -> bytes:
  before, sep, after = html.partition(BODY_END_DELIMITER)
  if not sep:
    logger.warning('could not find where to inject js into html')
    return html
  return b''.join((before, b'\n', js, sep, after))


async def load_html_from(path: Path) -> bytes:
  return await asyncio.to_thread(path.read_bytes)


# ─────────────────────────────────────────────────────────────────────────────
# Middleware
# ─────────────────────────────────────────────────────────────────────────────
@web.middleware
async def html_reload_injection(request: web.Request, handler: Handler) -> web.StreamResponse:
  # only requests headed for the static route; never the websocket
  if not isinstance(request.match_info.route.resource, web.StaticResource):
    return await handler(request)

  cfg = request.app[injection_key]
  asset_path = resolve_asset_path(cfg.asset_dir, request.path)

  if (asset_path is not None and asset_path.is_dir()
      and not request.path.endswith('/')):
    location = request.rel_url.with_path(request.path + '/').with_query(request.query)
    raise web.HTTPMovedPermanently(location)

  if not is_inject_candidate(asset_path):
    return await handler(request)

  try:
    content = await load_html_from(asset_path)
  except OSError as exc:
    logger.error('failed to load file for injection: %s; %s', asset_path, exc)
    raise web.HTTPInternalServerError(text='failed to load html asset') from exc

  logger.debug('injecting reload script into %s', asset_path)
  return web.Response(
    status=200,
    body=inject_js_into_html(content, cfg.inject_snippet),
    content_type='text/html',
  )
