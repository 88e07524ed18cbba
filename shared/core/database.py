from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from shared.core.config import KITPACK_DATABASE_URL, settings

Base = declarative_base()

POOL_SIZE = 2
MAX_OVERFLOW = 2


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False,
                                    "timeout": settings.OPERATION_TIMEOUT_SECONDS}}
        # in-memory databases live as long as their single connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options

    return {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": POOL_SIZE,          # max idle connections
        "max_overflow": MAX_OVERFLOW,    # max temporary extra connections
        "pool_timeout": 30,              # wait time before failing
        "connect_args": {
            "options": f"-c statement_timeout={int(settings.OPERATION_TIMEOUT_SECONDS * 1000)}"
        },
    }


kitpack_engine = create_engine(
    KITPACK_DATABASE_URL, **_engine_options(KITPACK_DATABASE_URL))
KitpackSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=kitpack_engine)


# Dependency


def get_kitpack_db():
    db = KitpackSessionLocal()
    try:
        yield db
    finally:
        db.close()
