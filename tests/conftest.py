import json
import re

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from codegate.api.dependencies import get_email_service, get_issue_throttle
from codegate.config import settings
from codegate.core.database import Base, get_db
from codegate.main import app
from codegate.services.email_service import EmailService

import codegate.models  # noqa: F401

CODE_PATTERN = re.compile(r'<div class="code-box">(\d{6})</div>')


class MailRelay:
    """Stands in for the mail relay behind an httpx.MockTransport"""

    def __init__(self, status_code: int = 200, error: Exception = None):
        self.status_code = status_code
        self.error = error
        self.sent = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.error is not None:
            raise self.error
        self.sent.append(json.loads(request.content))
        return httpx.Response(self.status_code, json={"message": "queued", "email_id": "mail-1"})

    def email_service(self) -> EmailService:
        return EmailService(transport=httpx.MockTransport(self))

    def codes_for(self, email: str):
        return [
            CODE_PATTERN.search(mail["body"]).group(1)
            for mail in self.sent if mail["recipient_email"] == email
        ]

    def last_code(self, email: str) -> str:
        return self.codes_for(email)[-1]


@pytest.fixture(scope="function")
def engine():
    engine = create_engine(
        settings.test_database_url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def relay():
    return MailRelay()


@pytest.fixture(scope="function")
async def async_client(db_session, relay):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_service] = relay.email_service
    app.dependency_overrides[get_issue_throttle] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_relay():
    return MailRelay
