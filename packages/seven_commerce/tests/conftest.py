"""
Pytest fixtures for commerce tests.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sevencore.db import Base
from seven_commerce.contracts.payloads import ChatMessage, ConversationContext
from seven_commerce.events import InMemoryEventPublisher
from seven_commerce.persistence.models import Product, User
from seven_commerce.services.plans import PlanCatalog


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
    """Database session configured like the application sessionmaker."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clear_plan_cache():
    """Plans are cached per process."""
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
    """Small catalog: a phone and a t-shirt."""
    phone = Product(
        user_id=user.id,
        name="Samsung S21 Ultra",
        sku="SAM-S21U",
        price=Decimal("450000"),
        stock=10,
        category="Téléphones",
    )
    tshirt = Product(
        user_id=user.id,
        name="T-shirt",
        price=Decimal("5000"),
        stock=3,
        category="Vêtements",
    )
    db.add_all([phone, tshirt])
    db.commit()
    return {"phone": phone, "tshirt": tshirt}


@pytest.fixture
def make_conversation(user):
    """Factory for conversation snapshots."""

    def _make(history=None, **overrides):
        data = {
            "conversation_id": uuid4(),
            "user_id": user.id,
            "agent_id": uuid4(),
            "contact_jid": "2250758519080@s.whatsapp.net",
            "contact_number": "2250758519080",
            "push_name": "Kouassi",
            "history": [ChatMessage(role=role, content=content) for role, content in (history or [])],
        }
        data.update(overrides)
        return ConversationContext(**data)

    return _make
