"""
Redis-backed circuit breaker for calls to the Apify platform.

A monitor tick makes one status call per active run. When the platform is
down every one of those calls would time out in turn, so after
`failure_threshold` consecutive failures the breaker opens and further calls
fail immediately with CircuitOpenError until `reset_timeout` has passed. The
next call is then let through as a probe (half-open); success closes the
circuit, failure re-opens it.

State lives in one Redis hash per breaker so every process shares it:

    breaker:<name>  →  state, failures, opened_at, successes, errors, last_error

Redis trouble never blocks a call: reads fall back to CLOSED.
"""
import logging
import time
from functools import wraps

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'


class CircuitOpenError(Exception):
    """The breaker is open; the call was not attempted."""

    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit '{name}' is open, platform calls suspended")


class CircuitBreaker:

    KEY_PREFIX = 'breaker'

    def __init__(self, name, redis_client, failure_threshold=3, reset_timeout=300):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    @property
    def key(self):
        return f'{self.KEY_PREFIX}:{self.name}'

    def _read(self):
        try:
            return self.redis.hgetall(self.key) or {}
        except Exception:
            logger.debug("Breaker '%s' state unreadable, treating as closed", self.name)
            return {}

    def _write(self, **fields):
        try:
            self.redis.hset(self.key, mapping={k: str(v) for k, v in fields.items()})
        except Exception:
            logger.debug("Breaker '%s' state not persisted", self.name)

    def _bump(self, field):
        try:
            return int(self.redis.hincrby(self.key, field, 1))
        except Exception:
            return 0

    @property
    def state(self):
        data = self._read()
        current = data.get('state', CLOSED)
        if current == OPEN and self._cooldown_left(data) <= 0:
            return HALF_OPEN
        return current

    def _cooldown_left(self, data):
        opened_at = float(data.get('opened_at') or 0)
        return self.reset_timeout - (time.time() - opened_at)

    def call(self, func, *args, **kwargs):
        """Run func unless the circuit is open; record the outcome."""
        data = self._read()
        if data.get('state') == OPEN:
            left = self._cooldown_left(data)
            if left > 0:
                raise CircuitOpenError(self.name, retry_after=round(left, 1))
            logger.info("Circuit '%s' half-open, sending probe call", self.name)

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._record_failure(e)
            raise
        self._record_success()
        return result

    def _record_success(self):
        self._write(state=CLOSED, failures=0)
        self._bump('successes')

    def _record_failure(self, error):
        failures = self._bump('failures')
        self._bump('errors')
        self._write(last_error=str(error)[:200])
        if failures >= self.failure_threshold:
            self._write(state=OPEN, opened_at=time.time())
            logger.warning("Circuit '%s' opened after %d consecutive failures: %s",
                           self.name, failures, error)
        else:
            logger.info("Circuit '%s' failure %d/%d: %s",
                        self.name, failures, self.failure_threshold, error)

    def reset(self):
        """Force the circuit closed and clear the failure streak."""
        self._write(state=CLOSED, failures=0, opened_at=0)
        logger.info("Circuit '%s' manually reset", self.name)

    def snapshot(self):
        """JSON-friendly view for the /api/health endpoint."""
        data = self._read()
        return {
            'name': self.name,
            'state': self.state,
            'failures': int(data.get('failures') or 0),
            'failure_threshold': self.failure_threshold,
            'reset_timeout': self.reset_timeout,
            'successes': int(data.get('successes') or 0),
            'errors': int(data.get('errors') or 0),
            'last_error': data.get('last_error', ''),
        }

    def protect(self, func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            return self.call(func, *args, **kwargs)
        return wrapper


# ── Registry ──────────────────────────────────────────────────────────────────

_registry = {}

# name → (failure_threshold, reset_timeout)
BREAKER_SETTINGS = {
    'apify': (3, 300),
}


def get_breaker(name, redis_client=None, **kwargs):
    """Get or create the named breaker."""
    if name not in _registry:
        if redis_client is None:
            from scrapesync.extensions import redis_client
        threshold, timeout = BREAKER_SETTINGS.get(name, (3, 300))
        kwargs.setdefault('failure_threshold', threshold)
        kwargs.setdefault('reset_timeout', timeout)
        _registry[name] = CircuitBreaker(name, redis_client, **kwargs)
    return _registry[name]


def get_all_breakers():
    return dict(_registry)


def init_breakers(redis_client):
    """Register a breaker for every external service in BREAKER_SETTINGS."""
    for name, (threshold, timeout) in BREAKER_SETTINGS.items():
        _registry[name] = CircuitBreaker(name, redis_client,
                                         failure_threshold=threshold,
                                         reset_timeout=timeout)
    return dict(_registry)
