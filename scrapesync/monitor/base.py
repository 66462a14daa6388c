"""
Producer extraction contracts.

Every producer kind implements ProducerExtractor.extract() and returns a
CanonicalRecord (or None for an item that is not a real entity). The monitor
only sees the uniform interface; field-name differences between actors live
in the concrete extractor classes.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Sequence, Type


@dataclass
class CanonicalRecord:
    """One entity observed by one run, in the shared canonical shape."""
    producer_kind: str
    source_identifier: str
    entity_id: str
    entity_type: str = 'member'
    entity_name: Optional[str] = None
    display_name: Optional[str] = None
    username: Optional[str] = None
    profile_url: Optional[str] = None
    is_verified: bool = False
    is_premium: bool = False
    is_bot: bool = False
    is_suspicious: bool = False
    is_active: bool = True
    raw_payload: Dict[str, Any] = field(default_factory=dict)
    source_name: Optional[str] = None
    run_id: Optional[str] = None
    actor_ref: Optional[str] = None

    @property
    def identity(self):
        return (self.producer_kind, self.source_identifier, self.entity_id)

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ExtractionResult:
    """Records that passed validation plus the count of items dropped."""
    records: List[CanonicalRecord] = field(default_factory=list)
    total: int = 0
    rejected: int = 0

    @property
    def valid(self) -> int:
        return len(self.records)


MISSING = object()


class ProducerExtractor(ABC):
    """
    Base class for per-producer extraction.

    Subclasses declare ordered candidate field lists; the first candidate that
    yields a non-empty value wins. Order matters: actors emit several id-like
    fields and only the first listed one is the stable user id.
    """
    producer_kind: str = ''
    entity_type: str = 'member'

    entity_id_fields: Sequence[str] = ()
    username_fields: Sequence[str] = ()
    display_name_fields: Sequence[str] = ()

    def __init__(self, producer_kind: Optional[str] = None):
        # Fallback extractors file records under the caller's kind, not their own
        if producer_kind:
            self.producer_kind = producer_kind

    @abstractmethod
    def extract(self, item: Dict[str, Any], source_identifier: str) -> Optional[CanonicalRecord]:
        """
        Build a CanonicalRecord from one raw dataset item.

        Returns None when the item carries no usable entity id.
        """
        ...

    def profile_url_for(self, username: Optional[str]) -> Optional[str]:
        """Derived profile link; None when the platform has no URL scheme for handles."""
        return None

    # ── Field helpers ─────────────────────────────────────────────────────

    @staticmethod
    def lookup(item: Dict[str, Any], path: str):
        """Resolve 'a.b' and 'a[0]' style paths; MISSING when any step is absent."""
        current: Any = item
        for part in path.split('.'):
            index = None
            if part.endswith(']') and '[' in part:
                part, _, raw_index = part[:-1].partition('[')
                index = int(raw_index)
            if not isinstance(current, dict) or part not in current:
                return MISSING
            current = current[part]
            if index is not None:
                if not isinstance(current, (list, tuple)) or len(current) <= index:
                    return MISSING
                current = current[index]
        return current

    @classmethod
    def first_of(cls, item: Dict[str, Any], candidates: Sequence[str]):
        """First candidate value that is present and truthy, else None."""
        for path in candidates:
            value = cls.lookup(item, path)
            if value is not MISSING and value not in (None, '', [], {}):
                return value
        return None

    @classmethod
    def any_flag(cls, item: Dict[str, Any], candidates: Sequence[str]) -> bool:
        return any(bool(v) for v in (cls.lookup(item, p) for p in candidates) if v is not MISSING)

    @staticmethod
    def text(value) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        return value or None


def normalize_entity_id(value) -> Optional[str]:
    """
    Canonical string form of a platform user id, or None when it is not one.

    Only positive base-10 integers are ids. Result streams also carry status
    lines ("please go to Log tab...") in the id field; those come back None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return str(value) if value > 0 else None
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() and value > 0 else None
    text = str(value).strip()
    if not text.isdigit() or not text.isascii():
        return None
    text = text.lstrip('0')
    return text or None


def get_extractor(registry: Dict[str, Type[ProducerExtractor]], producer_kind: str,
                  fallback: Type[ProducerExtractor]) -> ProducerExtractor:
    """
    Look up and instantiate the extractor for a producer kind.

    Unregistered kinds get the fallback, still stamped with their own kind so
    records share the run's composite key.
    """
    if producer_kind in registry:
        return registry[producer_kind]()
    return fallback(producer_kind)
