"""
Producer extractors — raw Apify dataset items → CanonicalRecord.

One extractor per producer kind. Each one spells out, in priority order, which
raw fields carry the entity id, the username and the display name for that
actor, and how its flags translate. Flags are derived per producer because the
same word means different things across actors (an Instagram "private" account
is still an active one; a Telegram "deleted" account is not).

Unknown producers go through GenericExtractor.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from scrapesync.config import ACTOR_IDS
from scrapesync.monitor.base import (
    CanonicalRecord, ExtractionResult, ProducerExtractor,
    normalize_entity_id, get_extractor,
)

logger = logging.getLogger('monitor.extractors')


# ── Extractors ────────────────────────────────────────────────────────────────

class TelegramExtractor(ProducerExtractor):
    """bhansalisoft/telegram-group-member-scraper and compatible actors."""
    producer_kind = 'telegram'
    entity_type = 'member'

    entity_id_fields = ('user_id', 'telegram_id', 'id', 'userId', 'entity_id')
    username_fields = ('user_name', 'username', 'usernames[0]')
    first_name_fields = ('first_name', 'firstName', 'name')
    last_name_fields = ('last_name', 'lastName')

    def profile_url_for(self, username):
        return f'https://t.me/{username}' if username else None

    def extract(self, item, source_identifier):
        entity_id = normalize_entity_id(self.first_of(item, self.entity_id_fields))
        if not entity_id:
            return None

        username = self.text(self.first_of(item, self.username_fields))
        first_name = self.text(self.first_of(item, self.first_name_fields))
        last_name = self.text(self.first_of(item, self.last_name_fields))
        full_name = ' '.join(p for p in (first_name, last_name) if p) or None

        return CanonicalRecord(
            producer_kind=self.producer_kind,
            source_identifier=source_identifier,
            entity_id=entity_id,
            entity_type=self.entity_type,
            entity_name=full_name,
            display_name=first_name,
            username=username,
            profile_url=self.profile_url_for(username),
            is_verified=self.any_flag(item, ('is_verified', 'verified')),
            is_premium=self.any_flag(item, ('is_premium', 'premium')),
            is_bot=item.get('type') == 'bot' or self.any_flag(item, ('is_bot',)),
            is_suspicious=self.any_flag(item, ('is_scam', 'is_fake', 'scam', 'fake')),
            is_active=not self.any_flag(item, ('is_deleted', 'deleted')),
            raw_payload=item,
        )


class InstagramExtractor(ProducerExtractor):
    """Instagram followers/following exporters."""
    producer_kind = 'instagram'
    entity_type = 'follower'

    entity_id_fields = ('id', 'pk', 'user_id', 'userId')
    username_fields = ('username', 'user_name')
    display_name_fields = ('full_name', 'fullName', 'name')

    _TYPE_MAP = {'followers': 'follower', 'following': 'following'}

    def profile_url_for(self, username):
        return f'https://www.instagram.com/{username}/' if username else None

    def extract(self, item, source_identifier):
        entity_id = normalize_entity_id(self.first_of(item, self.entity_id_fields))
        if not entity_id:
            return None

        username = self.text(self.first_of(item, self.username_fields))
        display_name = self.text(self.first_of(item, self.display_name_fields))
        relation = str(item.get('type') or '').strip().lower()

        # No premium/bot/scam signal from these actors; private accounts are still active
        return CanonicalRecord(
            producer_kind=self.producer_kind,
            source_identifier=source_identifier,
            entity_id=entity_id,
            entity_type=self._TYPE_MAP.get(relation, self.entity_type),
            entity_name=display_name or username,
            display_name=display_name,
            username=username,
            profile_url=self.profile_url_for(username),
            is_verified=self.any_flag(item, ('is_verified', 'verified')),
            raw_payload=item,
        )


class FacebookExtractor(ProducerExtractor):
    """easyapi/facebook-group-members-scraper: member fields nest under 'member'."""
    producer_kind = 'facebook'
    entity_type = 'member'

    entity_id_fields = ('member.id', 'id', 'userId', 'user_id')
    username_fields = ('member.username', 'username')
    display_name_fields = ('member.name', 'name')
    profile_url_fields = ('member.profileUrl', 'profileUrl')

    def profile_url_for(self, username):
        return f'https://www.facebook.com/{username}' if username else None

    def extract(self, item, source_identifier):
        entity_id = normalize_entity_id(self.first_of(item, self.entity_id_fields))
        if not entity_id:
            return None

        username = self.text(self.first_of(item, self.username_fields))
        display_name = self.text(self.first_of(item, self.display_name_fields))
        profile_url = self.text(self.first_of(item, self.profile_url_fields)) or self.profile_url_for(username)

        return CanonicalRecord(
            producer_kind=self.producer_kind,
            source_identifier=source_identifier,
            entity_id=entity_id,
            entity_type=self.entity_type,
            entity_name=display_name,
            display_name=display_name,
            username=username,
            profile_url=profile_url,
            is_verified=self.any_flag(item, ('member.isVerified', 'isVerified')),
            raw_payload=item,
        )


class GenericExtractor(ProducerExtractor):
    """
    Fallback for actors we have no mapping for.

    Reads the most common field spellings. Profile URLs are only taken from the
    item, never derived, since the platform behind the actor is unknown.
    """
    producer_kind = 'generic'
    entity_type = 'entity'

    entity_id_fields = ('id', 'user_id', 'userId', 'entity_id')
    username_fields = ('username', 'user_name', 'handle')
    display_name_fields = ('name', 'full_name', 'display_name', 'displayName')
    profile_url_fields = ('url', 'profileUrl', 'profile_url')

    def extract(self, item, source_identifier):
        entity_id = normalize_entity_id(self.first_of(item, self.entity_id_fields))
        if not entity_id:
            return None

        username = self.text(self.first_of(item, self.username_fields))
        display_name = self.text(self.first_of(item, self.display_name_fields))

        return CanonicalRecord(
            producer_kind=self.producer_kind,
            source_identifier=source_identifier,
            entity_id=entity_id,
            entity_type=self.text(self.first_of(item, ('entity_type', 'type'))) or self.entity_type,
            entity_name=display_name or username,
            display_name=display_name,
            username=username,
            profile_url=self.text(self.first_of(item, self.profile_url_fields)),
            is_verified=self.any_flag(item, ('is_verified', 'verified')),
            is_premium=self.any_flag(item, ('is_premium', 'premium')),
            is_bot=self.any_flag(item, ('is_bot', 'bot')),
            is_suspicious=self.any_flag(item, ('is_scam', 'is_fake', 'suspicious')),
            is_active=not self.any_flag(item, ('is_deleted', 'deleted')),
            raw_payload=item,
        )


EXTRACTORS = {
    'telegram': TelegramExtractor,
    'instagram': InstagramExtractor,
    'facebook': FacebookExtractor,
}


# ── Source / producer resolution ──────────────────────────────────────────────

# Input-config keys naming the scraped source, per producer, in priority order
SOURCE_FIELDS = {
    'telegram': ('Target_Group', 'targetGroup', 'target_group'),
    'instagram': ('Account', 'username', 'usernames'),
    'facebook': ('groupUrls', 'groupUrl'),
}
COMMON_SOURCE_FIELDS = ('target_url', 'username')
UNKNOWN_SOURCE = 'unknown_source'


def producer_kind_for(actor_ref: Optional[str]) -> str:
    """Producer kind for an actor ref; known actor ids first, then a name match."""
    ref = (actor_ref or '').lower()
    for kind, actor_ids in ACTOR_IDS.items():
        if ref in (a.lower() for a in actor_ids):
            return kind
    for kind in EXTRACTORS:
        if kind in ref:
            return kind
    return 'generic'


def source_identifier_for(input_config: Optional[Dict[str, Any]], producer_kind: str) -> str:
    """The source a run scraped (group, account list, group URL) from its input config."""
    config = input_config if isinstance(input_config, dict) else {}
    for key in SOURCE_FIELDS.get(producer_kind, ()) + COMMON_SOURCE_FIELDS:
        value = config.get(key)
        if isinstance(value, (list, tuple)):
            value = ','.join(str(v).strip() for v in value if str(v).strip())
        if value not in (None, '') and str(value).strip():
            return str(value).strip()
    return UNKNOWN_SOURCE


# ── Public API ────────────────────────────────────────────────────────────────

def extract(item, producer_kind: str, source_identifier: str) -> Optional[CanonicalRecord]:
    """
    Extract one item; None when the item is rejected.

    Never raises: malformed items (non-dicts, odd nesting) are rejected.
    """
    if not isinstance(item, dict):
        return None
    extractor = get_extractor(EXTRACTORS, producer_kind, GenericExtractor)
    try:
        return extractor.extract(item, source_identifier)
    except Exception:
        logger.debug("Extraction failed for %s item", producer_kind, exc_info=True)
        return None


def extract_all(items: Iterable[Any], producer_kind: str, source_identifier: str,
                run=None) -> ExtractionResult:
    """Extract a full dataset; rejected items are counted, never raised."""
    result = ExtractionResult()
    for item in items:
        result.total += 1
        record = extract(item, producer_kind, source_identifier)
        if record is None:
            result.rejected += 1
            continue
        if run is not None:
            record.run_id = run.id
            record.actor_ref = run.actor_ref
        record.source_name = source_identifier
        result.records.append(record)

    if result.rejected:
        logger.info("%d of %d %s items rejected (no valid entity id)",
                    result.rejected, result.total, producer_kind)
    return result
