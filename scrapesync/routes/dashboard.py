"""
Dashboard routes — health check and circuit breaker status.
"""
import logging
from flask import Blueprint, jsonify

from scrapesync.services.circuit_breaker import get_all_breakers

logger = logging.getLogger('routes.dashboard')

bp = Blueprint('dashboard', __name__)


@bp.route('/health')
def health_check():
    """Health check endpoint."""
    return jsonify({"status": "healthy"}), 200


@bp.route('/api/health')
def service_health():
    """State of every external-service circuit breaker."""
    breakers = get_all_breakers()
    services = {name: cb.snapshot() for name, cb in breakers.items()}
    degraded = [name for name, snap in services.items() if snap['state'] != 'closed']
    return jsonify({
        'status': 'degraded' if degraded else 'ok',
        'services': services,
    })


@bp.route('/api/health/<service>/reset', methods=['POST'])
def reset_breaker(service):
    """Force a breaker closed after the upstream has recovered."""
    cb = get_all_breakers().get(service)
    if cb is None:
        return jsonify({'error': f'Unknown service: {service}'}), 404
    cb.reset()
    logger.info("Breaker '%s' reset via API", service)
    return jsonify(cb.snapshot())
