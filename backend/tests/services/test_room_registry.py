"""
Tests for frontdesk/services/room_registry.py
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from frontdesk.errors import (
    DuplicateRoomNumber, InvalidTransition, NotFound, RoomBusy, RoomNotAvailable
)
from frontdesk.models.events import EventType
from frontdesk.models.ontology import Booking, BookingStatus, RoomKind, RoomStatus
from frontdesk.models.schemas import RoomCreate
from frontdesk.services.room_registry import RoomRegistry


@pytest.fixture
def registry(db_session, published):
    return RoomRegistry(db_session, event_publisher=published.append)


def _status(db_session, room):
    db_session.expire_all()
    return db_session.get(type(room), room.id).status


class TestTransitions:

    def test_occupy_available_room(self, registry, db_session, owner, room_101):
        transition = registry.occupy(owner.operator_id, room_101.id)
        db_session.commit()

        assert transition.old_status == RoomStatus.AVAILABLE
        assert transition.new_status == RoomStatus.OCCUPIED
        assert _status(db_session, room_101) == RoomStatus.OCCUPIED

    def test_occupy_occupied_room_fails_without_side_effects(self, registry, db_session,
                                                            owner, room_101):
        registry.occupy(owner.operator_id, room_101.id)
        db_session.commit()

        with pytest.raises(RoomNotAvailable) as exc_info:
            registry.occupy(owner.operator_id, room_101.id)
        db_session.rollback()

        assert exc_info.value.details["status"] == "occupied"
        assert _status(db_session, room_101) == RoomStatus.OCCUPIED

    def test_reserve_then_occupy_reserved(self, registry, db_session, owner, room_101):
        registry.reserve(owner.operator_id, room_101.id)
        registry.occupy_reserved(owner.operator_id, room_101.id)
        db_session.commit()
        assert _status(db_session, room_101) == RoomStatus.OCCUPIED

    def test_occupy_reserved_requires_reservation(self, registry, owner, room_101):
        with pytest.raises(InvalidTransition):
            registry.occupy_reserved(owner.operator_id, room_101.id)

    def test_release_requires_occupied(self, registry, owner, room_101):
        with pytest.raises(InvalidTransition):
            registry.release(owner.operator_id, room_101.id)

    def test_reserved_room_cannot_be_released(self, registry, db_session, owner, room_101):
        registry.reserve(owner.operator_id, room_101.id)
        db_session.commit()
        with pytest.raises(InvalidTransition):
            registry.release(owner.operator_id, room_101.id)

    def test_foreign_room_is_not_found(self, registry, other_owner, room_101):
        with pytest.raises(NotFound):
            registry.occupy(other_owner.operator_id, room_101.id)

    def test_transitions_do_not_publish_by_themselves(self, registry, published, owner, room_101):
        transition = registry.occupy(owner.operator_id, room_101.id)
        assert published == []

        registry.announce(transition, changed_by=owner.id)
        assert published[0].event_type == EventType.ROOM_STATUS_CHANGED
        assert published[0].data["new_status"] == "occupied"


class TestMaintenance:

    def test_toggle_on_and_off(self, registry, db_session, owner, room_101, published):
        room = registry.toggle_maintenance(owner.operator_id, room_101.id, changed_by=owner.id)
        assert room.status == RoomStatus.MAINTENANCE

        room = registry.toggle_maintenance(owner.operator_id, room_101.id)
        assert room.status == RoomStatus.AVAILABLE
        assert [e.data["new_status"] for e in published] == ["maintenance", "available"]

    def test_room_in_maintenance_cannot_be_occupied(self, registry, owner, room_101):
        registry.toggle_maintenance(owner.operator_id, room_101.id)
        with pytest.raises(RoomNotAvailable):
            registry.occupy(owner.operator_id, room_101.id)

    def test_busy_room_cannot_enter_maintenance(self, registry, db_session, owner, room_101):
        registry.occupy(owner.operator_id, room_101.id)
        db_session.commit()

        with pytest.raises(RoomBusy):
            registry.toggle_maintenance(owner.operator_id, room_101.id)
        assert _status(db_session, room_101) == RoomStatus.OCCUPIED


class TestQueries:

    def test_find_available_filters_status_and_type(self, registry, db_session, owner,
                                                    room_101, room_102):
        registry.occupy(owner.operator_id, room_101.id)
        db_session.commit()

        rooms = registry.find_available(owner.operator_id)
        assert [r.room_number for r in rooms] == ["R102"]
        assert registry.find_available(owner.operator_id, room_type=RoomKind.SIMPLE) == []

    def test_find_available_with_window(self, registry, owner, room_101, room_102):
        now = datetime.now()
        rooms = registry.find_available(owner.operator_id, check_in=now,
                                        check_out=now + timedelta(days=1))
        assert [r.room_number for r in rooms] == ["R101", "R102"]

    def _future_booking(self, db_session, owner, cashier, customer, room, check_in, nights=2):
        booking = Booking(
            booking_code=f"BKTEST{room.id}", operator_id=owner.operator_id,
            cashier_id=cashier.id, customer_id=customer.id, room_id=room.id,
            check_in=check_in, expected_checkout=check_in + timedelta(days=nights),
            number_of_nights=nights, base_price=room.base_price,
            total_amount=room.base_price * nights, status=BookingStatus.RESERVED
        )
        db_session.add(booking)
        db_session.commit()
        return booking

    def test_window_excludes_overlapping_booking(self, registry, db_session, owner, cashier,
                                                 customer, room_101, room_102):
        start = datetime(2026, 5, 10, 14, 0)
        self._future_booking(db_session, owner, cashier, customer, room_101, start)

        # room status is still available; only the booking window blocks it
        assert _status(db_session, room_101) == RoomStatus.AVAILABLE
        rooms = registry.find_available(owner.operator_id, check_in=start + timedelta(days=1),
                                        check_out=start + timedelta(days=3))
        assert [r.room_number for r in rooms] == ["R102"]

    def test_window_keeps_room_when_booking_does_not_overlap(self, registry, db_session, owner,
                                                             cashier, customer, room_101,
                                                             room_102):
        start = datetime(2026, 5, 10, 14, 0)
        self._future_booking(db_session, owner, cashier, customer, room_101, start)

        # check-out day of the booking is the check-in day of the query
        rooms = registry.find_available(owner.operator_id, check_in=start + timedelta(days=2),
                                        check_out=start + timedelta(days=4))
        assert [r.room_number for r in rooms] == ["R101", "R102"]

        rooms = registry.find_available(owner.operator_id, check_in=start - timedelta(days=2),
                                        check_out=start)
        assert [r.room_number for r in rooms] == ["R101", "R102"]

    def test_list_rooms_is_tenant_scoped(self, registry, owner, other_owner, room_101):
        assert len(registry.list_rooms(owner.operator_id)) == 1
        assert registry.list_rooms(other_owner.operator_id) == []


class TestCreateRoom:

    def _data(self, number="R301"):
        return RoomCreate(room_number=number, room_type=RoomKind.SUITE,
                          base_price=Decimal("300.00"))

    def test_create_room(self, registry, owner):
        room = registry.create_room(owner.operator_id, self._data())
        assert room.id is not None
        assert room.status == RoomStatus.AVAILABLE

    def test_duplicate_number(self, registry, owner, room_101):
        with pytest.raises(DuplicateRoomNumber):
            registry.create_room(owner.operator_id, self._data("R101"))

    def test_same_number_in_another_tenant(self, registry, other_owner, room_101):
        room = registry.create_room(other_owner.operator_id, self._data("R101"))
        assert room.operator_id == other_owner.operator_id
