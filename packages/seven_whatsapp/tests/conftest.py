"""
Pytest fixtures for WhatsApp tests.
"""

import json
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sevencore.clock import utcnow
from sevencore.db import Base
from seven_commerce.events import InMemoryEventPublisher
from seven_commerce.persistence.models import Product, User
from seven_commerce.services.plans import PlanCatalog
from seven_whatsapp.persistence.models import Agent, Tool, ToolStatus
from seven_whatsapp.providers.base import InboundMessage, MessageType, number_to_jid
from seven_whatsapp.providers.stub import StubWhatsAppProvider
from seven_whatsapp.service.responder import AiResponder


@pytest.fixture
def engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine, "connect", lambda conn, _: conn.execute("PRAGMA foreign_keys=ON"))
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clear_plan_cache():
    PlanCatalog.clear_cache()
    yield
    PlanCatalog.clear_cache()


@pytest.fixture
def publisher():
    return InMemoryEventPublisher()


@pytest.fixture
def user(db):
    """Tenant on the free plan."""
    user = User(email="boutique@example.com", name="Boutique Awa", plan="free", credits=100)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def products(db, user):
    phone = Product(
        user_id=user.id,
        name="Samsung S21 Ultra",
        sku="SAM-S21U",
        price=Decimal("450000"),
        stock=10,
    )
    db.add(phone)
    db.commit()
    return {"phone": phone}


@pytest.fixture
def tool(db, user):
    """Stub WhatsApp connection."""
    tool = Tool(
        user_id=user.id,
        provider="stub",
        instance_name="boutique-awa",
        status=ToolStatus.CONNECTED.value,
    )
    db.add(tool)
    db.commit()
    return tool


@pytest.fixture
def agent(db, user, tool):
    """Connected agent with every automation on."""
    agent = Agent(
        user_id=user.id,
        tool_id=tool.id,
        name="Awa Assistant",
        model="openai/gpt-4o-mini",
        whatsapp_connected=True,
    )
    db.add(agent)
    db.commit()
    return agent


@pytest.fixture
def stub_provider():
    return StubWhatsAppProvider(instance_name="boutique-awa")


@pytest.fixture
def completions():
    """
    Records chat completion requests and answers with a fixed reply.

    Set `completions.status` to simulate an API error.
    """

    class Completions:
        def __init__(self):
            self.requests: list[dict] = []
            self.reply = "Le Samsung S21 Ultra est disponible à 450000 FCFA."
            self.status = 200

        def __call__(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(json.loads(request.content))
            if self.status != 200:
                return httpx.Response(self.status, json={"error": {"message": "upstream error"}})
            return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": self.reply}}]})

    return Completions()


@pytest.fixture
def responder(completions):
    return AiResponder(
        api_url="https://ai.test/api/v1",
        api_key="test-key",
        transport=httpx.MockTransport(completions),
    )


@pytest.fixture
def make_message():
    """Factory for inbound messages from a customer."""
    counter = {"n": 0}

    def _make(text, number="2250758519080", push_name="Kouassi", **overrides):
        counter["n"] += 1
        data = {
            "message_id": f"wamid-{counter['n']}",
            "instance_name": "boutique-awa",
            "remote_jid": number_to_jid(number),
            "from_phone": number,
            "message_type": MessageType.TEXT,
            "timestamp": utcnow(),
            "text": text,
            "push_name": push_name,
        }
        data.update(overrides)
        return InboundMessage(**data)

    return _make
