import os
from datetime import datetime, timedelta
from pathlib import Path

from dotenv import load_dotenv
from jose import jwt
import pytest

# Must be set before freight_quote is imported
os.environ.setdefault("PYTEST_RUN", "1")
os.environ.setdefault("REDIS_URL", "disabled")

# Load environment variables for tests
load_dotenv(Path(__file__).resolve().parents[1] / '.env.test')

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from freight_quote.api.dependencies import (  # noqa: E402
    get_booking_gateway,
    get_db,
    get_rate_provider,
    get_session_factory,
)
from freight_quote.core.config import settings  # noqa: E402
from freight_quote.main import app  # noqa: E402
from freight_quote.models.base import BaseModel  # noqa: E402
from freight_quote.services.booking_resolver import BookingGateway  # noqa: E402
from freight_quote.services.rate_provider import DEV_FIXTURE_RATES  # noqa: E402


def make_token(client_id="acme", user_id="u1", role="user", email="ops@acme.test") -> str:
    claims = {
        "clientId": client_id,
        "userId": user_id,
        "role": role,
        "email": email,
        "exp": datetime.utcnow() + timedelta(minutes=30),
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


class StubProvider:
    """Stands in for RateProviderClient in endpoint tests."""

    def __init__(self, rates=None, prepare_error=None):
        self.rates = list(DEV_FIXTURE_RATES) if rates is None else rates
        self.prepare_error = prepare_error
        self.calls = []

    async def prepare(self):
        if self.prepare_error:
            raise self.prepare_error

    async def fetch_rates(self, request):
        self.calls.append(request.mode)
        return [dict(r, rateId=f"{r['rateId']}-{request.mode.lower()}") if "rateId" in r else dict(r) for r in self.rates]


@pytest.fixture
def auth():
    def _headers(**claims):
        return {"Authorization": f"Bearer {make_token(**claims)}"}
    return _headers


@pytest.fixture
def Session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    BaseModel.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def client(Session, provider):
    def override_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_session_factory] = lambda: Session
    app.dependency_overrides[get_rate_provider] = lambda: provider
    app.dependency_overrides[get_booking_gateway] = lambda: BookingGateway(url="", api_key="")
    yield TestClient(app)
    app.dependency_overrides.clear()
