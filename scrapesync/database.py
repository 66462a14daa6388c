"""
Store engine + session factory.

DATABASE_URL picks the store: PostgreSQL in production, a local SQLite file
otherwise. Both dialects support the INSERT ... ON CONFLICT upsert the
reconciliation writer depends on; nothing else is supported.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from scrapesync.config import DATABASE_URL

SUPPORTED_DIALECTS = ('postgresql', 'sqlite')


class Base(DeclarativeBase):
    pass


def normalize_url(raw_url):
    """postgres:// (Heroku/Railway style) → postgresql://, which SQLAlchemy 2.x requires."""
    if raw_url.startswith('postgres://'):
        return 'postgresql://' + raw_url[len('postgres://'):]
    return raw_url


def build_engine(db_url):
    """Engine with per-dialect connection settings."""
    if db_url.startswith('sqlite'):
        # Flask and RQ hand sessions across threads
        return create_engine(db_url, connect_args={'check_same_thread': False})
    return create_engine(db_url, pool_pre_ping=True, pool_size=5, max_overflow=10)


url = normalize_url(DATABASE_URL)
engine = build_engine(url)
SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session. Callers close it."""
    return SessionLocal()


def ini_escaped_url(db_url):
    """URL safe to hand to Alembic's ini config, which treats % as interpolation."""
    return db_url.replace('%', '%%')


def dialect_name(session):
    """Dialect of the session's bind ('postgresql' or 'sqlite')."""
    return session.get_bind().dialect.name
