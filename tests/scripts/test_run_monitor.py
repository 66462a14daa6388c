"""Tests for scripts/run_monitor.py — the fixed-interval monitor CLI."""
import importlib.util
import os
from unittest.mock import patch, MagicMock

import pytest

from scrapesync.config import ConfigurationError

SCRIPT = os.path.join(os.path.dirname(__file__), '..', '..', 'scripts', 'run_monitor.py')


@pytest.fixture
def cli():
    spec = importlib.util.spec_from_file_location('run_monitor', SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    with patch.object(module, 'configure_logging'), \
         patch.object(module, 'check_store_config'), \
         patch.object(module, 'require_setting', return_value='token'):
        yield module


class TestArgs:

    def test_defaults(self, cli):
        args = cli.parse_args([])
        assert args.once is False
        assert args.auto_save is True
        assert args.auto_resurrect is True
        assert args.sync is None

    def test_flags(self, cli):
        args = cli.parse_args(['--once', '--no-auto-save', '--no-resurrect', '--interval', '5'])
        assert (args.once, args.auto_save, args.auto_resurrect, args.interval) == (True, False, False, 5)


class TestMain:

    def test_once(self, cli):
        with patch.object(cli, 'run_monitor_tick', return_value=MagicMock(error=None)) as mock_tick:
            assert cli.main(['--once', '--no-resurrect']) == 0
        mock_tick.assert_called_once_with(auto_save_on_complete=True, auto_resurrect=False)

    def test_once_with_tick_error(self, cli):
        with patch.object(cli, 'run_monitor_tick', return_value=MagicMock(error='boom')):
            assert cli.main(['--once']) == 1

    def test_sync(self, cli):
        result = MagicMock(success=True, data_saved=3, new_count=3, updated_count=0)
        with patch.object(cli, 'sync_one_run', return_value=result) as mock_sync:
            assert cli.main(['--sync', 'abc123']) == 0
        mock_sync.assert_called_once_with('abc123', auto_resurrect=True)

    def test_sync_failure(self, cli):
        with patch.object(cli, 'sync_one_run', return_value=MagicMock(success=False, error='run not found')):
            assert cli.main(['--sync', 'missing']) == 1

    def test_configuration_error(self, cli):
        with patch.object(cli, 'check_store_config', side_effect=ConfigurationError('DATABASE_URL must be set in production')):
            assert cli.main(['--once']) == 2

    def test_loop_stops_on_interrupt(self, cli):
        with patch.object(cli, 'run_monitor_tick', return_value=MagicMock(error=None)) as mock_tick, \
             patch.object(cli.time, 'sleep', side_effect=[None, KeyboardInterrupt]):
            assert cli.main(['--interval', '1']) == 0
        assert mock_tick.call_count == 2
