"""Tests for scrapesync.monitor.recovery — bounded resurrection of failed runs."""
from unittest.mock import patch

import pytest

from scrapesync.config import MAX_RESURRECT_ATTEMPTS
from scrapesync.monitor.recovery import attempt_recovery, NOT_RECOVERABLE, BUDGET_EXHAUSTED


class TestAttemptRecovery:

    def test_timed_out_run_is_resurrected(self, make_run, fake_platform, load_run):
        """A timed-out run with budget left goes back to running and spends one attempt."""
        run = make_run(status='timed_out', resurrect_count=0)
        fake_platform.add_job(run.external_job_id, 'TIMED-OUT')

        result = attempt_recovery(run, fake_platform)

        assert result.resumed is True
        assert result.reason is None
        assert fake_platform.resurrected == [run.external_job_id]
        stored = load_run(run.external_job_id)
        assert stored.status == 'running'
        assert stored.resurrect_count == 1
        assert stored.finished_at is None
        assert stored.error_message is None

    def test_failed_run_clears_error(self, make_run, fake_platform, load_run):
        run = make_run(status='failed', error_message='Actor crashed', resurrect_count=1)
        fake_platform.add_job(run.external_job_id, 'FAILED')

        assert attempt_recovery(run, fake_platform).resumed
        stored = load_run(run.external_job_id)
        assert stored.resurrect_count == 2
        assert stored.error_message is None

    def test_passed_run_mirrors_persisted_state(self, make_run, fake_platform):
        run = make_run(status='failed')
        fake_platform.add_job(run.external_job_id, 'FAILED')
        attempt_recovery(run, fake_platform)
        assert run.status == 'running'
        assert run.resurrect_count == 1

    @pytest.mark.parametrize('status', ['pending', 'running', 'succeeded', 'aborted'])
    def test_non_recoverable_status(self, make_run, fake_platform, status):
        run = make_run(status=status)
        result = attempt_recovery(run, fake_platform)
        assert result.resumed is False
        assert result.reason == NOT_RECOVERABLE
        assert fake_platform.resurrected == []

    def test_exhausted_budget_is_noop(self, make_run, fake_platform, load_run):
        run = make_run(status='timed_out', resurrect_count=MAX_RESURRECT_ATTEMPTS)
        fake_platform.add_job(run.external_job_id, 'TIMED-OUT')

        with patch('scrapesync.monitor.recovery.notify_recovery_exhausted') as mock_notify:
            first = attempt_recovery(run, fake_platform)
            second = attempt_recovery(run, fake_platform)

        assert first.resumed is False and second.resumed is False
        assert first.reason == second.reason == BUDGET_EXHAUSTED
        assert fake_platform.resurrected == []
        assert mock_notify.call_count == 2
        stored = load_run(run.external_job_id)
        assert stored.status == 'timed_out'
        assert stored.resurrect_count == MAX_RESURRECT_ATTEMPTS

    def test_count_never_exceeds_max(self, make_run, fake_platform, load_run):
        run = make_run(status='failed', resurrect_count=0)
        fake_platform.add_job(run.external_job_id, 'FAILED')

        for _ in range(MAX_RESURRECT_ATTEMPTS + 2):
            run.status = 'failed'
            attempt_recovery(run, fake_platform)

        assert load_run(run.external_job_id).resurrect_count == MAX_RESURRECT_ATTEMPTS
        assert len(fake_platform.resurrected) == MAX_RESURRECT_ATTEMPTS

    def test_platform_error_leaves_run_untouched(self, make_run, fake_platform, load_run):
        run = make_run(status='failed', resurrect_count=1)
        fake_platform.add_job(run.external_job_id, 'FAILED')
        fake_platform.resurrect_error = RuntimeError('Run cannot be resurrected')

        result = attempt_recovery(run, fake_platform)

        assert result.resumed is False
        assert result.reason == 'Run cannot be resurrected'
        stored = load_run(run.external_job_id)
        assert stored.status == 'failed'
        assert stored.resurrect_count == 1

    def test_stale_snapshot_cannot_overspend(self, make_run, fake_platform, load_run):
        """The conditional update rejects an increment the stored count no longer allows."""
        run = make_run(status='failed', resurrect_count=MAX_RESURRECT_ATTEMPTS)
        fake_platform.add_job(run.external_job_id, 'FAILED')
        run.resurrect_count = 0  # stale in-memory copy

        result = attempt_recovery(run, fake_platform)

        assert result.resumed is False
        assert result.reason == BUDGET_EXHAUSTED
        assert load_run(run.external_job_id).resurrect_count == MAX_RESURRECT_ATTEMPTS

    def test_new_external_id_persisted(self, make_run, fake_platform, load_run):
        run = make_run(external_job_id='old-id', status='timed_out')
        fake_platform.add_job('old-id', 'TIMED-OUT')
        fake_platform.resurrect_new_id = 'new-id'

        result = attempt_recovery(run, fake_platform)

        assert result.new_external_id == 'new-id'
        assert load_run('old-id') is None
        assert load_run('new-id').resurrect_count == 1
