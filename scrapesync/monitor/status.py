"""
Apify run status → internal run status.

Pure functions, no I/O. Unknown or malformed statuses map to 'pending' so a
new platform status word never crashes a tick.
"""

PENDING = 'pending'
RUNNING = 'running'
SUCCEEDED = 'succeeded'
FAILED = 'failed'
TIMED_OUT = 'timed_out'
ABORTED = 'aborted'

INTERNAL_STATUSES = (PENDING, RUNNING, SUCCEEDED, FAILED, TIMED_OUT, ABORTED)
TERMINAL_STATUSES = frozenset({SUCCEEDED, FAILED, TIMED_OUT, ABORTED})
RECOVERABLE_STATUSES = frozenset({FAILED, TIMED_OUT})
ACTIVE_STATUSES = (PENDING, RUNNING)

STATUS_MAP = {
    'READY': RUNNING,
    'RUNNING': RUNNING,
    'SUCCEEDED': SUCCEEDED,
    'FAILED': FAILED,
    'TIMING-OUT': TIMED_OUT,
    'TIMED-OUT': TIMED_OUT,
    'ABORTING': ABORTED,
    'ABORTED': ABORTED,
}

# TIMING-OUT and ABORTING are still winding down on the platform
EXTERNAL_TERMINAL = frozenset({'SUCCEEDED', 'FAILED', 'TIMED-OUT', 'ABORTED'})


def translate(external_status):
    """Map an Apify status to the internal status; anything unrecognised is 'pending'."""
    if not isinstance(external_status, str):
        return PENDING
    return STATUS_MAP.get(external_status, PENDING)


def is_terminal(external_status):
    """True once the platform will not change the run any further."""
    return isinstance(external_status, str) and external_status in EXTERNAL_TERMINAL


def is_terminal_status(internal_status):
    return internal_status in TERMINAL_STATUSES
