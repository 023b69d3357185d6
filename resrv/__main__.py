# __main__.py
import logging
import os

from .config import load_cfg
from .server import serve


def _log_level(verbose: int) -> int:
  override = os.environ.get('RESRV_LOG')
  if override:
    level = logging.getLevelName(override.upper())
    if isinstance(level, int):
      return level
  return logging.DEBUG if verbose else logging.INFO


def main() -> None:
  cfg = load_cfg()
  logging.basicConfig(
    level=_log_level(cfg.verbose),
    format='%(asctime)s %(levelname)-7s %(name)s: %(message)s',
  )
  serve(cfg)


if __name__ == '__main__':
  main()
