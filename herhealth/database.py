from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from herhealth.core import config

MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


def _engine_options(database_url: str) -> dict:
    if not database_url.startswith("sqlite"):
        return {"pool_pre_ping": True}

    options: dict = {"connect_args": {"check_same_thread": False}}
    if database_url in MEMORY_URLS:
        # Every session shares this one connection and its transaction. Single-worker use only.
        options["poolclass"] = StaticPool
    return options


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    from herhealth.models import booking, doctor, feedback, invite, slot, user  # noqa: F401

    Base.metadata.create_all(bind=engine)
