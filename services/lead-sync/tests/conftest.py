"""
Shared test fixtures: in-memory database, settings, recorded CRM transport
"""
import json
import uuid
from datetime import datetime, timedelta

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leadsync.core.config import Settings, get_settings
from leadsync.core.database import Base, get_db
from leadsync.main import app
from leadsync.models import Contact, Opportunity, StageHistory, User
from leadsync.services.crm_client import CRMClient, get_crm_client

WEBHOOK_TOKEN = "trad-secret"
DIGITAL_TOKEN = "digital-secret"


class RecordingCRM:
    """Fake LeadConnector API: records every request, answers from a route table"""

    def __init__(self):
        self.requests = []
        self.routes = {
            "upsert": (201, {"contact": {"id": "hl-contact-1"}}),
            "notes": (201, {"note": {"id": "hl-note-1"}}),
            "opportunities": (201, {"opportunity": {"id": "hl-opp-1"}}),
        }
        self.failures = {}

    def reply(self, route: str, status_code: int, body):
        self.routes[route] = (status_code, body)

    def fail(self, route: str, message: str = "connection refused"):
        """Make calls to a route raise a transport error instead of answering"""
        self.failures[route] = message

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/contacts/upsert"):
            route = "upsert"
        elif path.endswith("/notes"):
            route = "notes"
        elif path.rstrip("/").endswith("/opportunities"):
            route = "opportunities"
        else:
            return httpx.Response(404, json={"message": "not found"})
        if route in self.failures:
            raise httpx.ConnectError(self.failures[route], request=request)
        status_code, body = self.routes[route]
        return httpx.Response(status_code, json=body)

    def calls(self, suffix: str):
        return [r for r in self.requests if r.url.path.rstrip("/").endswith(suffix.rstrip("/"))]

    def body(self, suffix: str):
        return json.loads(self.calls(suffix)[0].content)


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        GHL_WEBHOOK_TOKEN=WEBHOOK_TOKEN,
        GHL_DIGITAL_WEBHOOK_TOKEN=DIGITAL_TOKEN,
        GHL_API_KEY="api-key",
        GHL_API_URL="https://crm.test",
        GHL_LOCATION_ID="loc-1",
        GHL_PIPELINE_ID="pipe-1",
        GHL_STAGE_ID_OPORTUNIDAD_RECIBIDA="stage-recibida",
        GHL_CF_ORIGEN_ID="cf-origen",
        GHL_CF_DOC_IDENTIDAD_ID="cf-doc",
        GHL_CF_LATITUD_ID="cf-lat",
        GHL_CF_LONGITUD_ID="cf-lon",
    )


@pytest.fixture
def db_session():
    """Create test database session"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def crm():
    return RecordingCRM()


def _install_overrides(db_session, settings, crm):
    def override_get_db():
        yield db_session

    async def override_get_crm_client():
        client = CRMClient(settings, transport=httpx.MockTransport(crm.handler))
        try:
            yield client
        finally:
            await client.aclose()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_crm_client] = override_get_crm_client


@pytest.fixture
def client(db_session, settings, crm):
    _install_overrides(db_session, settings, crm)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def lenient_client(db_session, settings, crm):
    """Client that returns 500 responses instead of re-raising server errors"""
    _install_overrides(db_session, settings, crm)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def webhook_url(event: str, channel: str = "tradicional", token: str = WEBHOOK_TOKEN) -> str:
    return f"/v1/webhooks/{channel}/{event}?token={token}"


def make_user(db, ghl_id="ghl-user-1", nombre="Asesor Uno"):
    user = User(id=uuid.uuid4(), nombre=nombre, ghl_id=ghl_id)
    db.add(user)
    db.commit()
    return user


def make_contact(db, hl_contact_id="hl-contact-9", celular="912345678", nombre_completo="Luis Paredes", **fields):
    contact = Contact(
        id=uuid.uuid4(),
        hl_contact_id=hl_contact_id,
        celular=celular,
        nombre_completo=nombre_completo,
        **fields,
    )
    db.add(contact)
    db.commit()
    return contact


def make_opportunity(db, hl_opportunity_id="hl-opp-9", **fields):
    opportunity = Opportunity(id=uuid.uuid4(), hl_opportunity_id=hl_opportunity_id, **fields)
    db.add(opportunity)
    db.commit()
    return opportunity


def add_history(db, opportunity, etapa_destino, etapa_origen=None, minutes_ago=60):
    entry = StageHistory(
        id=uuid.uuid4(),
        oportunidad_id=opportunity.id,
        etapa_origen=etapa_origen,
        etapa_destino=etapa_destino,
        created_at=datetime.utcnow() - timedelta(minutes=minutes_ago),
    )
    db.add(entry)
    db.commit()
    return entry
