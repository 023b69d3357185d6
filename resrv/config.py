# config.py
import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

DEFAULT_URL = '127.0.0.1:9812'


def parse_listen_address(url: str) -> Tuple[str, int]:
  '''
  Split ``host:port`` (or ``[v6-host]:port``) into its parts.

  Raises ValueError when the port is missing or not in 1..65535.
  '''
  host, sep, port_s = url.strip().rpartition(':')
  if not sep or not host:
    raise ValueError(f'expected host:port, got {url!r}')
  if host.startswith('[') and host.endswith(']'):
    host = host[1:-1]
  try:
    port = int(port_s)
  except ValueError:
    raise ValueError(f'invalid port in {url!r}') from None
  if not 0 < port < 65536:
    raise ValueError(f'port out of range in {url!r}')
  return host, port


@dataclass(frozen=True)
class Config:
  url: str = DEFAULT_URL
  dir: Path = Path('.')
  verbose: int = 0

  @property
  def host_port(self) -> Tuple[str, int]:
    return parse_listen_address(self.url)


def parse_argv(argv: Optional[List[str]] = None) -> argparse.Namespace:
  '''
  Parse command-line arguments for *resrv*.

  Parameters
  ----------
  argv
    A custom argument list (mainly for testing).  When None the
    function uses ``sys.argv[1:]`` automatically.

  Returns
  -------
  argparse.Namespace
    • url     : Optional listen address, host:port
    • dir     : Path of the asset directory to serve and watch
    • verbose : Verbosity count (-v, -vv, …)
  '''
  from . import __version__

  parser = argparse.ArgumentParser(
      prog='resrv',
      description='Serve a directory and reload browsers when its files change.',
  )

  parser.add_argument(
      '--url',
      '-u',
      default=None,
      help=f'Address to listen on, host:port (default: {DEFAULT_URL}).',
  )

  parser.add_argument(
      '--dir',
      '-d',
      required=True,
      type=Path,
      metavar='ASSET_DIR',
      help='Directory to serve and watch for changes.',
  )

  # verbosity
  parser.add_argument(
      '--verbose',
      '-v',
      action='count',
      default=0,
      help='Increase logging verbosity; repeat for more detail.',
  )

  parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

  try:
    import argcomplete
    argcomplete.autocomplete(parser)
  except ImportError:
    pass
  args = parser.parse_args(argv)

  if args.url is None:
    args.url = DEFAULT_URL
  try:
    parse_listen_address(args.url)
  except ValueError as exc:
    parser.error(str(exc))
  if not args.dir.is_dir():
    parser.error(f'asset directory does not exist: {args.dir}')
  return args


def load_cfg(argv: Optional[List[str]] = None) -> Config:
  args = parse_argv(argv)
  return Config(url=args.url, dir=args.dir, verbose=args.verbose)
