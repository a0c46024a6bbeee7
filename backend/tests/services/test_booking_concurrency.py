"""
Concurrency tests against a file-backed SQLite database, one session per thread.
"""
import threading
import pytest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from sqlalchemy.orm import sessionmaker

from frontdesk.database import Base, build_engine
from frontdesk.errors import (
    FrontDeskError, OverpaymentRejected, RoomNotAvailable, StateConflict
)
from frontdesk.models.ontology import (
    Booking, CashierPermission, Customer, Operator, PaymentMethod, Room, RoomKind,
    RoomStatus, User, UserRole
)
from frontdesk.models.schemas import BookingCreate
from frontdesk.security.auth import build_actor_context, get_password_hash
from frontdesk.services.ledger_service import LedgerService, fold_ledger


WORKERS = 5


@pytest.fixture
def file_db(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'frontdesk.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def seeded(file_db):
    """Tenant, cashier, one available room and one guest"""
    db = file_db()
    account = Operator(name="Hotel Central", email="central@example.com", is_active=True)
    db.add(account)
    db.flush()
    cashier = User(operator_id=account.id, username="cashier1",
                   password_hash=get_password_hash("cashier-secret"),
                   full_name="Cashier One", role=UserRole.CASHIER, is_active=True)
    cashier.permission = CashierPermission(can_create_bookings=True)
    room = Room(operator_id=account.id, room_number="R101", room_type=RoomKind.SIMPLE,
                base_price=Decimal("100.00"), status=RoomStatus.AVAILABLE)
    guest = Customer(operator_id=account.id, full_name="Ana Rojas",
                     document_number="7654321")
    db.add_all([cashier, room, guest])
    db.commit()
    seed = {
        "ctx": build_actor_context(cashier),
        "room_id": room.id,
        "customer_id": guest.id,
    }
    db.close()
    return seed


def _run_concurrently(file_db, fn):
    """Run fn(session) in WORKERS threads released together; collect results or errors"""
    barrier = threading.Barrier(WORKERS)

    def worker(_):
        db = file_db()
        try:
            barrier.wait()
            return fn(db)
        except FrontDeskError as e:
            return e
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        return list(pool.map(worker, range(WORKERS)))


def test_only_one_booking_wins_the_room(file_db, seeded):
    data = BookingCreate(customer_id=seeded["customer_id"], room_id=seeded["room_id"])

    def book(db):
        return LedgerService(db, event_publisher=lambda event: None).create_booking(
            seeded["ctx"], data
        ).id

    results = _run_concurrently(file_db, book)

    winners = [r for r in results if isinstance(r, int)]
    losers = [r for r in results if isinstance(r, FrontDeskError)]
    assert len(winners) == 1
    assert len(losers) == WORKERS - 1
    assert all(isinstance(e, RoomNotAvailable) for e in losers)

    db = file_db()
    assert db.query(Booking).count() == 1
    assert db.get(Room, seeded["room_id"]).status == RoomStatus.OCCUPIED
    db.close()


def test_concurrent_payments_never_overpay(file_db, seeded):
    db = file_db()
    booking_id = LedgerService(db, event_publisher=lambda event: None).create_booking(
        seeded["ctx"],
        BookingCreate(customer_id=seeded["customer_id"], room_id=seeded["room_id"])
    ).id
    db.close()

    def pay(session):
        return LedgerService(session, event_publisher=lambda event: None).apply_payment(
            seeded["ctx"], booking_id, Decimal("40"), PaymentMethod.CASH
        ).id

    results = _run_concurrently(file_db, pay)

    accepted = [r for r in results if isinstance(r, int)]
    rejected = [r for r in results if isinstance(r, FrontDeskError)]
    # a stale read either loses the version check or sees the new balance
    assert 1 <= len(accepted) <= 2
    assert all(isinstance(e, (StateConflict, OverpaymentRejected)) for e in rejected)

    db = file_db()
    booking = db.get(Booking, booking_id)
    assert booking.amount_paid == Decimal("40.00") * len(accepted)
    assert booking.balance >= 0
    assert fold_ledger(booking).amount_paid == booking.amount_paid
    db.close()
