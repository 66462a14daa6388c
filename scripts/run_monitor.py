#!/usr/bin/env python3
"""
Fixed-interval monitor loop.

Runs one monitor tick every MONITOR_INTERVAL_SECS seconds until interrupted.

Usage:
    python scripts/run_monitor.py                   # loop forever
    python scripts/run_monitor.py --once            # single tick, then exit
    python scripts/run_monitor.py --interval 120 --no-resurrect
    python scripts/run_monitor.py --sync <job_id>   # full sync of one run

Requires: APIFY_API_TOKEN, Redis running, DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import sys
import os
import time
import logging
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from scrapesync.config import MONITOR_INTERVAL_SECS, ConfigurationError, check_store_config, require_setting
from scrapesync.logging_config import configure_logging
from scrapesync.monitor.manager import run_monitor_tick, sync_one_run

logger = logging.getLogger('scripts.run_monitor')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Supervise Apify runs and reconcile their data.')
    parser.add_argument('--interval', type=int, default=MONITOR_INTERVAL_SECS,
                        help='seconds between ticks (default: %(default)s)')
    parser.add_argument('--once', action='store_true', help='run a single tick and exit')
    parser.add_argument('--no-auto-save', dest='auto_save', action='store_false',
                        help='do not write data for completed runs')
    parser.add_argument('--no-resurrect', dest='auto_resurrect', action='store_false',
                        help='do not resurrect failed/timed-out runs')
    parser.add_argument('--sync', metavar='JOB_ID', help='fully sync one run and exit')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    configure_logging()

    try:
        check_store_config()
        require_setting('APIFY_API_TOKEN')
    except ConfigurationError as e:
        logger.error("%s", e)
        return 2

    if args.sync:
        result = sync_one_run(args.sync, auto_resurrect=args.auto_resurrect)
        if not result.success:
            logger.error("Sync of %s failed: %s", args.sync, result.error)
            return 1
        logger.info("Synced %s: %d saved (%d new, %d updated)",
                    args.sync, result.data_saved, result.new_count, result.updated_count)
        return 0

    logger.info("Monitor started, interval %ds", args.interval)
    try:
        while True:
            started = time.monotonic()
            result = run_monitor_tick(auto_save_on_complete=args.auto_save,
                                      auto_resurrect=args.auto_resurrect)
            if args.once:
                return 1 if result.error else 0
            time.sleep(max(0, args.interval - (time.monotonic() - started)))
    except KeyboardInterrupt:
        logger.info("Monitor stopped")
        return 0


if __name__ == '__main__':
    sys.exit(main())
