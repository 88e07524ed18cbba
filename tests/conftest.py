import os

# in-memory database, must be set before shared.core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from tests.fakes import Engine, assembly_tree, k1_tree, resume_tree


@pytest.fixture
def engine():
    return Engine(k1_tree(), assembly_tree(), resume_tree())


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from kitpack_service.app.main import app
    from kitpack_service.app.services.session_coordinator import coordinator
    from shared.core.database import Base, kitpack_engine

    with kitpack_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())
    coordinator.clear_cache()

    with TestClient(app) as test_client:
        yield test_client
