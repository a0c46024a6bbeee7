"""
Pytest configuration and shared fixtures
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from frontdesk.database import Base, build_engine, get_db
from frontdesk.models import ontology  # noqa: F401
from frontdesk.models.ontology import (
    CashierPermission, Customer, Operator, Product, ProductCategory, Room, RoomKind,
    RoomStatus, User, UserRole
)
from frontdesk.security.auth import build_actor_context, create_access_token, get_password_hash
from frontdesk.security.step_up import issue_step_up_token
from frontdesk.services.event_bus import event_bus
from frontdesk.main import app

OWNER_PASSWORD = "owner-secret"
CASHIER_PASSWORD = "cashier-secret"


@pytest.fixture(scope="function")
def db_engine():
    """In-memory database engine"""
    engine = build_engine("sqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Database session"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """Test client bound to the test session"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    event_bus.clear_subscribers()
    event_bus.clear_history()


@pytest.fixture
def published():
    """Collects events instead of publishing them on the global bus"""
    return []


# ============== Tenant and principals ==============

def _make_operator(db_session, name, email, whatsapp=None):
    account = Operator(name=name, email=email, whatsapp=whatsapp, is_active=True)
    db_session.add(account)
    db_session.flush()
    owner = User(
        operator_id=account.id,
        username="owner",
        password_hash=get_password_hash(OWNER_PASSWORD),
        full_name=f"{name} owner",
        role=UserRole.OPERATOR,
        is_active=True
    )
    db_session.add(owner)
    db_session.commit()
    db_session.refresh(owner)
    return owner


def _make_cashier(db_session, operator_id, username, **permissions):
    cashier = User(
        operator_id=operator_id,
        username=username,
        password_hash=get_password_hash(CASHIER_PASSWORD),
        full_name=f"Cashier {username}",
        role=UserRole.CASHIER,
        is_active=True
    )
    cashier.permission = CashierPermission(**permissions)
    db_session.add(cashier)
    db_session.commit()
    db_session.refresh(cashier)
    return cashier


@pytest.fixture
def owner(db_session):
    """Operator principal of the main tenant"""
    return _make_operator(db_session, "Hotel Central", "central@example.com", whatsapp="+59170000001")


@pytest.fixture
def other_owner(db_session):
    """Operator principal of a second tenant"""
    return _make_operator(db_session, "Hotel Norte", "norte@example.com")


@pytest.fixture
def cashier(db_session, owner):
    """Cashier allowed to discount up to 10% and to request refunds"""
    return _make_cashier(
        db_session, owner.operator_id, "cashier1",
        can_create_bookings=True,
        can_apply_discounts=True,
        max_discount_percentage=Decimal("10"),
        can_process_refunds=True,
    )


@pytest.fixture
def restricted_cashier(db_session, owner):
    """Cashier with the default capability record"""
    return _make_cashier(db_session, owner.operator_id, "cashier2")


@pytest.fixture
def owner_ctx(owner):
    return build_actor_context(owner)


@pytest.fixture
def cashier_ctx(cashier):
    return build_actor_context(cashier)


@pytest.fixture
def restricted_ctx(restricted_cashier):
    return build_actor_context(restricted_cashier)


@pytest.fixture
def other_ctx(other_owner):
    return build_actor_context(other_owner)


@pytest.fixture
def owner_headers(owner):
    token = create_access_token(owner.id, owner.role, owner.operator_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def cashier_headers(cashier):
    token = create_access_token(cashier.id, cashier.role, cashier.operator_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def restricted_headers(restricted_cashier):
    token = create_access_token(
        restricted_cashier.id, restricted_cashier.role, restricted_cashier.operator_id
    )
    return {"Authorization": f"Bearer {token}"}


# ============== Entities ==============

@pytest.fixture
def room_101(db_session, owner):
    room = Room(
        operator_id=owner.operator_id,
        room_number="R101",
        room_type=RoomKind.SIMPLE,
        base_price=Decimal("100.00"),
        short_stay_3h_price=Decimal("40.00"),
        short_stay_6h_price=Decimal("60.00"),
        floor=1,
        status=RoomStatus.AVAILABLE
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def room_102(db_session, owner):
    room = Room(
        operator_id=owner.operator_id,
        room_number="R102",
        room_type=RoomKind.DOUBLE,
        base_price=Decimal("150.00"),
        floor=1,
        status=RoomStatus.AVAILABLE
    )
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def customer(db_session, owner):
    guest = Customer(
        operator_id=owner.operator_id,
        full_name="Ana Rojas",
        document_type="CI",
        document_number="7654321",
        phone="+59171111111",
        whatsapp="+59171111111",
        age=34,
        nationality="Bolivian",
        origin="Cochabamba"
    )
    db_session.add(guest)
    db_session.commit()
    db_session.refresh(guest)
    return guest


@pytest.fixture
def soda(db_session, owner):
    """Tracked minibar product, 20.00 with 10% tax"""
    product = Product(
        operator_id=owner.operator_id,
        category=ProductCategory.MINIBAR,
        name="Soda",
        price=Decimal("20.00"),
        tax_rate=Decimal("10"),
        stock_quantity=5,
        track_inventory=True,
        is_active=True
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


# ============== Step-up ==============

@pytest.fixture
def owner_password():
    return OWNER_PASSWORD


@pytest.fixture
def step_up_token(db_session, owner):
    """Valid step-up token of the main tenant"""
    return issue_step_up_token(db_session, owner.operator_id, OWNER_PASSWORD).token
