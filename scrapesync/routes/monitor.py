"""
Scraper monitor routes — tick trigger, single-run sync, abort, summaries.
"""
import logging
from flask import Blueprint, request, jsonify

from scrapesync.config import PRODUCER_KINDS
from scrapesync.monitor.manager import (
    run_monitor_tick, sync_one_run, abort_run, reset_resurrect_budget,
    get_runs_summary, enqueue_tick, enqueue_sync, RUN_NOT_FOUND,
)
from scrapesync.services.db import get_source_stats, find_cross_source_duplicates

logger = logging.getLogger('routes.monitor')

bp = Blueprint('scraper', __name__, url_prefix='/api/scraper')

_FALSE = {'0', 'false', 'no', 'off'}


def _flag(name, default=True):
    """Boolean option from the query string or the JSON body."""
    body = request.get_json(silent=True) or {}
    value = request.args.get(name, body.get(name))
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() not in _FALSE


# ── Monitor ──────────────────────────────────────────────────────────────────

@bp.route('/sync', methods=['GET', 'POST'])
def sync_all():
    """Run one monitor tick, inline or on a worker with ?async=1."""
    auto_save = _flag('autoSave')
    auto_resurrect = _flag('autoResurrect')

    try:
        if _flag('async', default=False):
            job_id = enqueue_tick(auto_save_on_complete=auto_save, auto_resurrect=auto_resurrect)
            return jsonify({'queued': True, 'job_id': job_id}), 202

        result = run_monitor_tick(auto_save_on_complete=auto_save, auto_resurrect=auto_resurrect)
        payload = result.to_dict()
        payload['summary'] = get_runs_summary()
        status = 500 if result.error else 200
        return jsonify(payload), status

    except Exception as e:
        logger.error("Sync request failed", exc_info=True)
        return jsonify({'error': str(e)}), 500


@bp.route('/sync/<job_id>', methods=['POST'])
def sync_run(job_id):
    """Full sync of one run."""
    if _flag('async', default=False):
        return jsonify({'queued': True, 'job_id': enqueue_sync(job_id)}), 202

    result = sync_one_run(job_id, auto_resurrect=_flag('autoResurrect'))
    if result.success:
        return jsonify(result.to_dict())
    status = 404 if result.error == RUN_NOT_FOUND else 500
    return jsonify(result.to_dict()), status


@bp.route('/runs/summary')
def runs_summary():
    return jsonify(get_runs_summary())


@bp.route('/abort', methods=['POST'])
def abort():
    data = request.get_json(silent=True) or {}
    run_id = data.get('runId')
    if not run_id:
        return jsonify({'error': 'runId is required'}), 400

    result = abort_run(run_id)
    if result.error == RUN_NOT_FOUND:
        return jsonify({'error': 'Run not found'}), 404
    if not result.success:
        return jsonify({'error': result.error}), 500
    return jsonify({'success': True, 'status': result.status})


@bp.route('/runs/<job_id>/reset-resurrect', methods=['POST'])
def reset_resurrect(job_id):
    if not reset_resurrect_budget(job_id):
        return jsonify({'error': 'Run not found'}), 404
    return jsonify({'success': True, 'run_id': job_id, 'resurrect_count': 0})


# ── Canonical data ───────────────────────────────────────────────────────────

@bp.route('/stats')
def source_stats():
    """Per-source aggregates for one producer kind."""
    producer_kind = request.args.get('producerKind', 'telegram')
    if producer_kind not in PRODUCER_KINDS:
        return jsonify({'error': f'Unsupported producer kind: {producer_kind}'}), 400
    return jsonify(get_source_stats(producer_kind))


@bp.route('/duplicates')
def duplicates():
    """Entities that show up under more than one source."""
    producer_kind = request.args.get('producerKind') or None
    if producer_kind and producer_kind not in PRODUCER_KINDS:
        return jsonify({'error': f'Unsupported producer kind: {producer_kind}'}), 400
    return jsonify({'duplicates': find_cross_source_duplicates(producer_kind)})
