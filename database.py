# database.py
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def init_db(database_url: str) -> Engine:
    """Bind SessionLocal to database_url and make sure the tables exist."""
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty db
            kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)
    SessionLocal.configure(bind=engine)

    import models  # noqa: F401  (registers tables on Base.metadata)
    Base.metadata.create_all(bind=engine)
    return engine


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
