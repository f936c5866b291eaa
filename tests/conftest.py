"""
Pytest fixtures for the affiliate tracking backend.

Every test gets its own SQLite file database, an application built with
``create_app`` around it, and a recording email channel instead of SMTP.
"""
import pathlib
import sys
import uuid
from types import SimpleNamespace

import httpx
import pytest
from sqlalchemy import select

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import settings  # noqa: E402
from config.database import Base, create_engine_async, create_session_factory  # noqa: E402
import models  # noqa: E402,F401
from models.affiliateLinks import ReferralLinks  # noqa: E402
from services.email_service import EmailChannelError  # noqa: E402
from services.notification_service import NotificationDispatcher  # noqa: E402

API = settings.API_BASE_PATH
TEST_SECRET = "test-secret-key"
ADMIN_EMAIL = "admin@example.com"


class RecordingChannel:
    """Email channel double that keeps what it was asked to send."""

    def __init__(self, name="recording", fail=False, configured=True):
        self.name = name
        self.fail = fail
        self.configured = configured
        self.sent = []
        self.calls = 0

    async def send(self, recipient, subject, html):
        self.calls += 1
        if self.fail:
            raise EmailChannelError(f"{self.name} is down")
        self.sent.append(SimpleNamespace(recipient=recipient, subject=subject, html=html))

    def recipients(self):
        return [message.recipient for message in self.sent]


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_async(f"sqlite+aiosqlite:///{tmp_path / 'tracking.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def mail_channel():
    return RecordingChannel()


@pytest.fixture
def dispatcher(session_factory, mail_channel):
    return NotificationDispatcher(session_factory, [mail_channel], attempts=1, retry_delay=0)


@pytest.fixture
def app(session_factory, engine, dispatcher):
    from main import create_app

    return create_app(
        session_factory=session_factory,
        engine=engine,
        dispatcher=dispatcher,
        token_secret=TEST_SECRET,
        admin_emails=[ADMIN_EMAIL],
        run_scheduler=False,
    )


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture
async def affiliate(client, session_factory):
    """A registered affiliate with its five referral links."""
    payload = {"name": "Jane Guide", "email": "jane@example.com", "password": "s3cret-pass"}
    response = await client.post(f"{API}/register", json=payload)
    assert response.status_code == 200, response.text
    user_id = uuid.UUID(response.json()["userId"])

    async with session_factory() as db:
        result = await db.execute(select(ReferralLinks).where(ReferralLinks.affiliate_id == user_id))
        links = result.scalars().all()

    return SimpleNamespace(
        user_id=user_id,
        email=payload["email"],
        password=payload["password"],
        links={link.link_type.value: link for link in links},
        codes={link.link_type.value: link.ref_code for link in links},
    )


@pytest.fixture
async def auth_headers(client, affiliate):
    response = await client.post(f"{API}/login", json={"email": affiliate.email, "password": affiliate.password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['accessToken']}"}
