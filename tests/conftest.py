import logging
import sys
from unittest.mock import AsyncMock

import pytest
from sqlmodel import Session

from binauthz_demo.core.config import Settings
from binauthz_demo.core.db import get_engine
from binauthz_demo.daos.step_record_dao import StepRecordDao
from binauthz_demo.services.ioc import initiate_services
from tests.factories import (
    FAKE_DIGEST,
    FAKE_FINGERPRINT_LISTING,
    FAKE_PUBLIC_KEY,
    FakeCommandService,
    fail,
    ok,
)


@pytest.fixture(scope="session", autouse=True)
def setup_logging():
    """Show debug logs for failing tests."""
    logging.basicConfig(level=logging.DEBUG, stream=sys.stdout, force=True)


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    for name in ("BINAUTHZ_PROJECT_ID", "BINAUTHZ_ZONE", "BINAUTHZ_SIGNER_EMAIL"):
        monkeypatch.delenv(name, raising=False)
    return Settings(
        _env_file=None,
        WORK_DIR=str(tmp_path / "work"),
        STATE_DB_URI="sqlite://",
        CONTAINER_ANALYSIS_URL="http://127.0.0.1:9/v1beta1",
        HTTP_TIMEOUT=5,
    )


@pytest.fixture
def db_session():
    """In-memory step ledger, fresh for every test."""
    get_engine.cache_clear()
    engine = get_engine("sqlite://")
    with Session(engine, expire_on_commit=False) as session:
        yield session
    engine.dispose()
    get_engine.cache_clear()


@pytest.fixture
def step_record_dao(db_session) -> StepRecordDao:
    return StepRecordDao(db_session)


@pytest.fixture
def fake_commands() -> FakeCommandService:
    fake = FakeCommandService()
    fake.on("gcloud", "auth", "print-access-token", response=ok("test-token\n"))
    return fake


@pytest.fixture
def attest_commands(fake_commands) -> FakeCommandService:
    """Command layer for a happy-path attestation of gcr.io/p/nginx."""
    (
        fake_commands
        .on("gpg", "--list-keys", response=ok("pub   rsa3072\n"))
        .on("gpg", "--armor", "--export", response=ok(FAKE_PUBLIC_KEY))
        .on("gpg", "--with-colons", "--fingerprint", response=ok(FAKE_FINGERPRINT_LISTING))
        .on("gcloud", "beta", "container", "binauthz", "attestors", "describe", response=fail("NOT_FOUND: attestor"))
        .on("gcloud", "container", "images", "list-tags", response=ok(f"{FAKE_DIGEST}\n"))
        .on("gcloud", "beta", "container", "binauthz", "create-signature-payload", response=ok('{"critical": {}}\n'))
        .on("gcloud", "beta", "container", "binauthz", "attestations", "list", response=ok("[]"))
    )
    return fake_commands


@pytest.fixture
def ioc(test_settings, fake_commands, db_session):
    services = initiate_services(settings=test_settings, command_service=fake_commands, session=db_session)
    container_analysis = services["ContainerAnalysisService"]
    container_analysis.get_note = AsyncMock(return_value=None)
    container_analysis.create_note = AsyncMock(return_value={})
    container_analysis.delete_note = AsyncMock(return_value=None)
    return services
