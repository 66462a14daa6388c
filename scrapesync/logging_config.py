"""
Logging setup for the web app, the RQ worker and the monitor CLI.

Every record carries a run_id (the Apify run being processed, or '-') so a
tick's log lines can be followed per run. LOG_FORMAT picks human-readable text
or one JSON object per line; LOG_LEVEL defaults to INFO.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

NO_RUN = '-'

TEXT_FORMAT = '[%(asctime)s] %(levelname)s %(name)s [%(run_id)s]: %(message)s'

# Chatty at INFO: HTTP pools, the Apify SDK's retry notices, RQ's per-job lines
_NOISY_LOGGERS = (
    'urllib3',
    'apify_client',
    'httpcore',
    'httpx',
    'rq.worker',
)


class RunContextFilter(logging.Filter):
    """Fills in run_id for records logged without one."""

    def filter(self, record):
        if not getattr(record, 'run_id', None):
            record.run_id = NO_RUN
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregators."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        run_id = getattr(record, 'run_id', NO_RUN)
        if run_id and run_id != NO_RUN:
            entry['run_id'] = run_id
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _resolve_level(name):
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(app=None):
    """
    (Re)configure the root logger from LOG_LEVEL / LOG_FORMAT.

    Safe to call repeatedly; the previous handler is replaced, never stacked.
    """
    level = _resolve_level(os.getenv('LOG_LEVEL', 'INFO'))

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(RunContextFilter())
    if os.getenv('LOG_FORMAT', 'text').lower() == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.setLevel(level)
