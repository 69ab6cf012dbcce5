import pytest

from backend.app.db.session import create_session_factory, init_db
from backend.app.services.vehicle_store import SqlVehicleStore


@pytest.fixture
def session_factory(tmp_path):
    factory = create_session_factory(f"sqlite:///{tmp_path / 'vehicles.db'}")
    init_db(factory)
    return factory


@pytest.fixture
def store(session_factory):
    return SqlVehicleStore(session_factory)
