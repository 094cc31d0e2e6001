"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from api.ldap import get_config_gate, get_coordinator
from database import Base, _enable_sqlite_wal
from main import app
from schemas.directory_config import DirectoryConfig
from services.config_gate import ConfigGate
from services.sync_coordinator import SyncCoordinator
from services.sync_log_service import SyncLogService
from services.sync_run_service import SyncRunService
from services.user_repository import SqlAlchemyUserRepository
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    completed_sync_run,
    external_user,
    inactive_external_user,
    local_user,
    sync_log_entry,
)
from tests.fixtures.mocks import MockDirectoryClient, SAMPLE_ENTRIES


@pytest.fixture(name="engine")
def engine_fixture(tmp_path):
    """Create a file-backed SQLite database for testing.

    Sync jobs run on worker threads with their own sessions, so the
    database has to be shared across connections.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    _enable_sqlite_wal(engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(name="session_factory")
def session_factory_fixture(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(name="db")
def db_fixture(session_factory):
    """A session for arranging and inspecting test data."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="directory_config")
def directory_config_fixture() -> DirectoryConfig:
    return DirectoryConfig(
        url="ldap://ldap.example.com",
        bind_dn="cn=sync,dc=example,dc=com",
        bind_password="s3cret",
        base_dn="ou=people,dc=example,dc=com",
    )


@pytest.fixture(name="config_gate")
def config_gate_fixture(session_factory, directory_config) -> ConfigGate:
    """A ConfigGate holding ``directory_config``."""
    gate = ConfigGate(session_factory)
    gate.update_config(directory_config)
    return gate


@pytest.fixture(name="unconfigured_gate")
def unconfigured_gate_fixture(session_factory) -> ConfigGate:
    return ConfigGate(session_factory)


@pytest.fixture(name="log_service")
def log_service_fixture(session_factory) -> SyncLogService:
    return SyncLogService(session_factory)


@pytest.fixture(name="run_service")
def run_service_fixture(session_factory) -> SyncRunService:
    return SyncRunService(session_factory)


@pytest.fixture(name="user_repository")
def user_repository_fixture(session_factory) -> SqlAlchemyUserRepository:
    return SqlAlchemyUserRepository(session_factory)


@pytest.fixture(name="mock_directory_client")
def mock_directory_client_fixture() -> MockDirectoryClient:
    """Create a mock directory client with sample entries."""
    return MockDirectoryClient(entries=SAMPLE_ENTRIES)


@pytest.fixture(name="coordinator")
def coordinator_fixture(
    config_gate, mock_directory_client, user_repository, log_service, run_service
):
    coordinator = SyncCoordinator(
        config_gate,
        mock_directory_client,
        user_repository,
        log_service,
        run_service,
    )
    yield coordinator
    coordinator.shutdown(timeout=5)


@pytest.fixture(name="client")
def client_fixture(coordinator, config_gate):
    """Create a test client wired to the test coordinator and config gate."""
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_config_gate] = lambda: config_gate
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="unconfigured_client")
def unconfigured_client_fixture(
    unconfigured_gate, mock_directory_client, user_repository, log_service, run_service
):
    """Create a test client whose directory has never been configured."""
    coordinator = SyncCoordinator(
        unconfigured_gate,
        mock_directory_client,
        user_repository,
        log_service,
        run_service,
    )
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_config_gate] = lambda: unconfigured_gate
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
    coordinator.shutdown(timeout=5)
