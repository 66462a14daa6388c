"""Tests for scrapesync.services.notifications — Slack alerts."""
from unittest.mock import patch, MagicMock

import pytest

from scrapesync.monitor.manager import TickResult, MonitoredRun
from scrapesync.services.notifications import notify_recovery_exhausted, notify_tick_errors

WEBHOOK = 'https://hooks.slack.com/services/T000/B000/XXXX'


@pytest.fixture
def exhausted_run():
    return MagicMock(
        external_job_id='abc123',
        producer_kind='telegram',
        actor_ref='bhansalisoft/telegram-group-member-scraper',
        status='timed_out',
        resurrect_count=3,
        error_message='Actor timed out',
    )


class TestNotifyRecoveryExhausted:

    def test_noop_without_webhook(self, exhausted_run):
        with patch('scrapesync.services.notifications.SLACK_WEBHOOK_URL', None), \
             patch('scrapesync.services.notifications.requests.post') as mock_post:
            notify_recovery_exhausted(exhausted_run)
        mock_post.assert_not_called()

    def test_posts_blocks(self, exhausted_run):
        with patch('scrapesync.services.notifications.SLACK_WEBHOOK_URL', WEBHOOK), \
             patch('scrapesync.services.notifications.requests.post') as mock_post:
            notify_recovery_exhausted(exhausted_run)

        mock_post.assert_called_once()
        url = mock_post.call_args[0][0]
        blocks = mock_post.call_args[1]['json']['blocks']
        assert url == WEBHOOK
        assert 'Telegram' in blocks[0]['text']['text']
        text = str(blocks)
        assert 'abc123' in text
        assert '3/3' in text
        assert 'Actor timed out' in text

    def test_post_failure_swallowed(self, exhausted_run):
        with patch('scrapesync.services.notifications.SLACK_WEBHOOK_URL', WEBHOOK), \
             patch('scrapesync.services.notifications.requests.post', side_effect=ConnectionError('down')):
            notify_recovery_exhausted(exhausted_run)  # must not raise


class TestNotifyTickErrors:

    def _result(self, errors):
        runs = [MonitoredRun(run_id=f'job-{i}', previous_status='running', status='running', error=e)
                for i, e in enumerate(errors)]
        return TickResult(checked=len(runs), runs=runs)

    def test_no_errors_no_post(self):
        with patch('scrapesync.services.notifications.SLACK_WEBHOOK_URL', WEBHOOK), \
             patch('scrapesync.services.notifications.requests.post') as mock_post:
            notify_tick_errors(self._result([None, None]))
        mock_post.assert_not_called()

    def test_lists_failed_runs(self):
        with patch('scrapesync.services.notifications.SLACK_WEBHOOK_URL', WEBHOOK), \
             patch('scrapesync.services.notifications.requests.post') as mock_post:
            notify_tick_errors(self._result([None, 'timeout', 'store write rejected: disk full']))

        blocks = mock_post.call_args[1]['json']['blocks']
        assert '2 run error(s)' in blocks[0]['text']['text']
        assert 'job-1' in blocks[2]['text']['text']
        assert 'disk full' in blocks[2]['text']['text']
        assert 'job-0' not in blocks[2]['text']['text']

    def test_long_lists_truncated(self):
        with patch('scrapesync.services.notifications.SLACK_WEBHOOK_URL', WEBHOOK), \
             patch('scrapesync.services.notifications.requests.post') as mock_post:
            notify_tick_errors(self._result(['boom'] * 14))

        text = mock_post.call_args[1]['json']['blocks'][2]['text']['text']
        assert '4 more' in text
