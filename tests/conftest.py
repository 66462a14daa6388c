"""Shared test fixtures."""
import copy
import itertools
from contextlib import ExitStack
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import patch

from sqlalchemy.orm import sessionmaker

from scrapesync.database import Base, build_engine
from scrapesync.services.apify import ExternalJob, ItemPage, RunNotFoundError

# Modules that bind `get_session` at import time
SESSION_CONSUMERS = [
    'scrapesync.services.db',
    'scrapesync.monitor.writer',
]

TELEGRAM_ACTOR = 'bhansalisoft/telegram-group-member-scraper'


# ── Database ──────────────────────────────────────────────────────────────────

@pytest.fixture
def db_engine(tmp_path):
    """File-backed SQLite engine with schema created; each session gets its own connection."""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    import scrapesync.models.db_run
    import scrapesync.models.db_record
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    """Session for test setup and assertions."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(session_factory):
    """Route every module's get_session() to a fresh session on the test engine.

    Production helpers commit and close their own sessions, so each call must
    get a new one rather than a shared session.
    """
    with ExitStack() as stack:
        for module in SESSION_CONSUMERS:
            stack.enter_context(patch(f'{module}.get_session', side_effect=lambda: session_factory()))
        yield


@pytest.fixture
def load_run(session_factory):
    """Re-read a run from the store, bypassing any identity-map caching."""
    from scrapesync.models.db_run import DbRun

    def _load(external_job_id):
        session = session_factory()
        try:
            return session.query(DbRun).filter_by(external_job_id=external_job_id).one_or_none()
        finally:
            session.close()
    return _load


@pytest.fixture
def load_records(session_factory):
    """All canonical records currently stored, ordered by identity."""
    from scrapesync.models.db_record import DbRecord

    def _load(**filters):
        session = session_factory()
        try:
            return (session.query(DbRecord).filter_by(**filters)
                    .order_by(DbRecord.producer_kind, DbRecord.source_identifier, DbRecord.entity_id)
                    .all())
        finally:
            session.close()
    return _load


@pytest.fixture
def make_run(session_factory):
    """Factory fixture — inserts a DbRun row and returns it detached."""
    from scrapesync.models.db_run import DbRun
    counter = itertools.count()
    base_time = datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)

    def _make(**overrides):
        n = next(counter)
        job_id = overrides.get('external_job_id', f'job-{n:03d}')
        defaults = dict(
            external_job_id=job_id,
            actor_ref=TELEGRAM_ACTOR,
            producer_kind=None,
            status='running',
            items_count=0,
            dataset_ref=f'ds-{job_id}',
            input_config={'Target_Group': 'cryptotraders'},
            resurrect_count=0,
            created_at=base_time + timedelta(minutes=n),
        )
        defaults.update(overrides)
        session = session_factory()
        try:
            run = DbRun(**defaults)
            session.add(run)
            session.commit()
            return run
        finally:
            session.close()
    return _make


# ── Redis ─────────────────────────────────────────────────────────────────────

class FakeRedis:
    """Minimal in-memory Redis fake: strings with NX/EX and hashes."""

    def __init__(self):
        self.store = {}
        self.hashes = {}
        self.ttls = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    def delete(self, *keys):
        removed = 0
        for k in keys:
            removed += int(self.store.pop(k, None) is not None)
            removed += int(self.hashes.pop(k, None) is not None)
        return removed

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def hset(self, key, field=None, value=None, mapping=None):
        h = self.hashes.setdefault(key, {})
        if field is not None:
            h[field] = str(value)
        for k, v in (mapping or {}).items():
            h[k] = str(v)
        return 1

    def hincrby(self, key, field, amount=1):
        h = self.hashes.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)
        return int(h[field])


class BrokenRedis:
    """Every command fails as if the server were unreachable."""

    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise ConnectionError("Redis unavailable")
        return _fail


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def broken_redis():
    return BrokenRedis()


@pytest.fixture(autouse=True)
def patch_redis(fake_redis):
    """Keep the tick lock and circuit breakers off the real Redis."""
    with patch('scrapesync.monitor.manager.redis_client', fake_redis), \
         patch('scrapesync.extensions.redis_client', fake_redis):
        yield fake_redis


@pytest.fixture(autouse=True)
def _clear_breaker_registry():
    from scrapesync.services.circuit_breaker import _registry
    _registry.clear()
    yield
    _registry.clear()


# ── Platform ──────────────────────────────────────────────────────────────────

class FakePlatform:
    """In-memory stand-in for ApifyPlatform.

    Jobs and datasets are registered with add_job(); every call is recorded
    so tests can assert on the platform traffic.
    """

    def __init__(self):
        self.jobs = {}
        self.datasets = {}
        self.page_calls = []
        self.resurrected = []
        self.aborted = []
        self.status_errors = {}
        self.resurrect_error = None
        self.resurrect_new_id = None

    def add_job(self, job_id, status, items=None, dataset_ref=None, **fields):
        dataset_ref = dataset_ref or f'ds-{job_id}'
        self.jobs[job_id] = ExternalJob(id=job_id, status=status, dataset_ref=dataset_ref, **fields)
        self.datasets[dataset_ref] = list(items or [])
        return self.jobs[job_id]

    def get_status(self, job_id):
        if job_id in self.status_errors:
            raise self.status_errors[job_id]
        if job_id not in self.jobs:
            raise RunNotFoundError(f"Run {job_id} not found")
        job = copy.copy(self.jobs[job_id])
        job.item_count = len(self.datasets.get(job.dataset_ref, []))
        return job

    def list_items(self, dataset_ref, limit, offset):
        self.page_calls.append((dataset_ref, limit, offset))
        items = self.datasets.get(dataset_ref, [])
        return ItemPage(items=items[offset:offset + limit], total=len(items))

    def resurrect(self, job_id):
        if self.resurrect_error is not None:
            raise self.resurrect_error
        job = self.jobs[job_id]
        job.status = 'RUNNING'
        job.finished_at = None
        self.resurrected.append(job_id)
        if self.resurrect_new_id:
            return ExternalJob(id=self.resurrect_new_id, status='RUNNING', dataset_ref=job.dataset_ref)
        return copy.copy(job)

    def abort(self, job_id):
        job = self.jobs[job_id]
        job.status = 'ABORTED'
        self.aborted.append(job_id)
        return copy.copy(job)


@pytest.fixture
def fake_platform():
    return FakePlatform()


def telegram_member(user_id, username=None, **extra):
    item = {'user_id': user_id, 'user_name': username or f'user{user_id}', 'first_name': 'Test'}
    item.update(extra)
    return item


@pytest.fixture
def telegram_items():
    """Factory for Telegram member items as the group scraper emits them."""
    def _make(*user_ids, **extra):
        return [telegram_member(uid, **extra) for uid in user_ids]
    return _make


# ── Flask ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def app(fake_platform):
    """Flask test app wired to the fake platform."""
    from scrapesync import create_app
    with patch('scrapesync.monitor.manager.make_platform_client', return_value=fake_platform):
        app = create_app()
        app.config['TESTING'] = True
        yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c
