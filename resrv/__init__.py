# resrv/__init__.py
from importlib.metadata import version, PackageNotFoundError

try:
  __version__ = version(__name__)
except PackageNotFoundError:      # development mode
  __version__ = '0.0.0.dev0'

from .asset_tracker import ChangeEvent, AssetTracker          # re-export
from .broadcast import BroadcastCell, broadcast_asset_change  # re-export
from .config import Config, load_cfg                          # re-export
from .inject import InjectionConfig, inject_js_into_html      # re-export
from .server import create_app, serve                         # re-export

__all__ = [
  'ChangeEvent', 'AssetTracker',
  'BroadcastCell', 'broadcast_asset_change',
  'Config', 'load_cfg',
  'InjectionConfig', 'inject_js_into_html',
  'create_app', 'serve',
]
