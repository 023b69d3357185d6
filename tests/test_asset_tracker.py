# test_asset_tracker.py
'''
Tests for asset_tracker.start / AssetTracker

Requirements
------------
* Two-space indent, single quotes
* Uses pytest and watchdog's real backend
'''

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import pytest

from resrv import asset_tracker as at
from resrv.asset_tracker import ChangeEvent

# inotify pairs moves for up to 0.5 s before delivering
FIRST_EVENT_TIMEOUT = 3.0
QUIET_PERIOD = 1.2


# ─────────────────────────────────────────────────────────────────────────────
# Utility
# ─────────────────────────────────────────────────────────────────────────────
def _append(path: Path, data: bytes = b'x') -> None:
  with open(path, 'ab') as fh:
    fh.write(data)


async def _expect_exactly_one(tracker: at.AssetTracker) -> None:
  event = await asyncio.wait_for(tracker.track_change(), FIRST_EVENT_TIMEOUT)
  assert event is ChangeEvent.FILE_CHANGE
  await asyncio.sleep(QUIET_PERIOD)
  assert tracker.pending() == 0, f'expected 1 change event, got {1 + tracker.pending()}'


async def _expect_none(tracker: at.AssetTracker) -> None:
  await asyncio.sleep(QUIET_PERIOD)
  assert tracker.pending() == 0


@pytest.fixture
def asset_dir(tmp_path: Path) -> Path:
  (tmp_path / 'style.css').write_text('body {}', encoding='utf-8')
  (tmp_path / 'sub').mkdir()
  (tmp_path / 'sub' / 'page.html').write_text('<body></body>', encoding='utf-8')
  return tmp_path


@pytest.fixture
async def tracker(asset_dir: Path):
  t = at.start(asset_dir)
  yield t
  await t.stop()


# ─────────────────────────────────────────────────────────────────────────────
# Accepted events: exactly one ChangeEvent each
# ─────────────────────────────────────────────────────────────────────────────
async def test_create_file(tracker, asset_dir: Path):
  (asset_dir / 'new.js').touch()
  await _expect_exactly_one(tracker)


async def test_modify_content(tracker, asset_dir: Path):
  _append(asset_dir / 'style.css', b'p {}')
  await _expect_exactly_one(tracker)


async def test_modify_in_subdirectory(tracker, asset_dir: Path):
  _append(asset_dir / 'sub' / 'page.html', b'<p>')
  await _expect_exactly_one(tracker)


async def test_rename_file(tracker, asset_dir: Path):
  os.rename(asset_dir / 'style.css', asset_dir / 'main.css')
  await _expect_exactly_one(tracker)


async def test_delete_file(tracker, asset_dir: Path):
  (asset_dir / 'style.css').unlink()
  await _expect_exactly_one(tracker)


# ─────────────────────────────────────────────────────────────────────────────
# Rejected events
# ─────────────────────────────────────────────────────────────────────────────
async def test_permission_change_ignored(tracker, asset_dir: Path):
  os.chmod(asset_dir / 'style.css', 0o600)
  await _expect_none(tracker)


async def test_directory_creation_ignored(tracker, asset_dir: Path):
  (asset_dir / 'empty').mkdir()
  await _expect_none(tracker)


async def test_swap_file_ignored(tracker, asset_dir: Path):
  (asset_dir / '.style.css.swp').write_bytes(b'swap')
  await _expect_none(tracker)


async def test_read_only_access_ignored(tracker, asset_dir: Path):
  (asset_dir / 'style.css').read_bytes()
  await _expect_none(tracker)


# ─────────────────────────────────────────────────────────────────────────────
# Setup and handoff
# ─────────────────────────────────────────────────────────────────────────────
async def test_missing_directory_is_fatal(tmp_path: Path):
  with pytest.raises(OSError):
    at.start(tmp_path / 'nope')


async def test_each_change_is_queued(tracker, asset_dir: Path):
  _append(asset_dir / 'style.css', b'a')
  await asyncio.wait_for(tracker.track_change(), FIRST_EVENT_TIMEOUT)
  (asset_dir / 'other.txt').touch()
  await asyncio.wait_for(tracker.track_change(), FIRST_EVENT_TIMEOUT)


async def test_stop_prevents_future_events(asset_dir: Path):
  t = at.start(asset_dir)
  await t.stop()
  _append(asset_dir / 'style.css')
  await asyncio.sleep(QUIET_PERIOD)
  assert t.pending() == 0


async def test_stat_error_is_logged_and_watching_continues(tracker, asset_dir: Path,
                                                           monkeypatch, caplog):
  fingerprint = at._fingerprint

  def _locked(path: str):
    if path.endswith('style.css'):
      raise PermissionError(13, 'Permission denied', path)
    return fingerprint(path)

  monkeypatch.setattr(at, '_fingerprint', _locked)
  caplog.set_level(logging.WARNING, logger='resrv.asset_tracker')

  _append(asset_dir / 'style.css', b'p {}')
  await _expect_none(tracker)
  assert 'error while inspecting' in caplog.text

  _append(asset_dir / 'sub' / 'page.html', b'<p>')
  await _expect_exactly_one(tracker)
