"""
Dataset fetcher — pages a run's dataset into memory, bounded by a safety cap.
"""
import logging

from scrapesync.config import DATASET_PAGE_SIZE, DATASET_SAFETY_CAP

logger = logging.getLogger('monitor.fetcher')


def fetch_all(platform, dataset_ref, page_size=DATASET_PAGE_SIZE, safety_cap=DATASET_SAFETY_CAP):
    """
    Read every item of a dataset, page by page.

    Stops at the reported total, on an empty page, or at the safety cap. The
    result never holds more than safety_cap items. Platform errors propagate.
    """
    items = []
    offset = 0
    total = None

    while len(items) < safety_cap:
        limit = min(page_size, safety_cap - len(items))
        page = platform.list_items(dataset_ref, limit=limit, offset=offset)
        total = page.total

        if not page.items:
            break

        items.extend(page.items[:limit])
        offset += len(page.items)
        logger.debug("Fetched %d/%s items from dataset %s", len(items), total, dataset_ref)

        if offset >= total:
            break

    if len(items) >= safety_cap and (total is None or total > len(items)):
        logger.warning("Dataset %s hit the safety cap: returning %d of %s items",
                       dataset_ref, len(items), total)
    return items
