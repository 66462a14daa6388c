"""
Slack alerts for the monitor: exhausted recovery budgets and per-run tick errors.

Notification failure never blocks the monitor.
"""
import logging
import requests

from scrapesync.config import SLACK_WEBHOOK_URL, MAX_RESURRECT_ATTEMPTS

logger = logging.getLogger('services.notifications')


def _post(blocks):
    requests.post(SLACK_WEBHOOK_URL, json={"blocks": blocks}, timeout=10)


def notify_recovery_exhausted(run):
    """Post an alert when a run has used up its resurrect attempts."""
    if not SLACK_WEBHOOK_URL:
        return

    try:
        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"Scraper Run Gave Up — {(run.producer_kind or 'generic').capitalize()}",
                }
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Run:* `{run.external_job_id}`"},
                    {"type": "mrkdwn", "text": f"*Status:* {run.status}"},
                    {"type": "mrkdwn", "text": f"*Actor:* {run.actor_ref or 'unknown'}"},
                    {"type": "mrkdwn", "text": f"*Resurrects:* {run.resurrect_count}/{MAX_RESURRECT_ATTEMPTS}"},
                ]
            },
        ]

        if run.error_message:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Error:* ```{run.error_message[:500]}```"}
            })

        _post(blocks)
        logger.info("Recovery-exhausted notification sent for run %s", run.external_job_id)

    except Exception:
        logger.error("Failed to send recovery notification for run %s",
                     run.external_job_id, exc_info=True)


def notify_tick_errors(result):
    """Post a summary when a monitor tick hit per-run errors."""
    if not SLACK_WEBHOOK_URL:
        return

    failed = [r for r in result.runs if r.error]
    if not failed:
        return

    try:
        lines = [f"• `{r.run_id}`: {r.error[:200]}" for r in failed[:10]]
        if len(failed) > 10:
            lines.append(f"_…and {len(failed) - 10} more_")

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"Monitor Tick — {len(failed)} run error(s)"}
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Checked:* {result.checked}"},
                    {"type": "mrkdwn", "text": f"*Completed:* {result.completed}"},
                    {"type": "mrkdwn", "text": f"*Resurrected:* {result.resurrected}"},
                    {"type": "mrkdwn", "text": f"*Saved:* {result.data_saved}"},
                ]
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": "\n".join(lines)}
            },
        ]

        _post(blocks)
        logger.info("Tick error notification sent (%d runs)", len(failed))

    except Exception:
        logger.error("Failed to send tick error notification", exc_info=True)
