"""
Room registry - the only writer of Room.status
Every transition is a compare-and-set UPDATE guarded by the expected source state,
so the check and the write are a single statement and concurrent callers can never
both win the same room.

occupy/reserve/occupy_reserved/release do not commit: they join the caller's
transaction (booking creation, checkout) and return a RoomTransition the caller
announces after its commit. toggle_maintenance and create_room are standalone
operations and commit on their own.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional
from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from frontdesk.engine.state_machine import StateMachine, StateMachineConfig, StateTransition
from frontdesk.errors import (
    DuplicateRoomNumber, InvalidTransition, NotFound, RoomBusy, RoomNotAvailable
)
from frontdesk.models.events import EventType, RoomStatusChangedData
from frontdesk.models.ontology import (
    ACTIVE_BOOKING_STATUSES, Booking, Room, RoomKind, RoomStatus
)
from frontdesk.models.schemas import RoomCreate
from frontdesk.services.event_bus import Event, event_bus
from frontdesk.services.unit_of_work import atomic

logger = logging.getLogger(__name__)


ROOM_STATE_MACHINE = StateMachine(StateMachineConfig(
    name="Room",
    states=[s.value for s in RoomStatus],
    transitions=[
        StateTransition("available", "occupied", "occupy"),
        StateTransition("occupied", "available", "release"),
        StateTransition("available", "reserved", "reserve"),
        StateTransition("reserved", "occupied", "occupy_reserved"),
        StateTransition("available", "maintenance", "start_maintenance"),
        StateTransition("maintenance", "available", "end_maintenance"),
    ],
    initial_state="available",
))


@dataclass
class RoomTransition:
    """A committed (or about to be committed) room status change"""
    room: Room
    old_status: RoomStatus
    new_status: RoomStatus
    trigger: str


class RoomRegistry:
    """Room inventory and occupancy state machine"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish

    # ============== Reads ==============

    def get_room(self, operator_id: int, room_id: int) -> Room:
        room = self.db.query(Room).filter(
            Room.id == room_id,
            Room.operator_id == operator_id
        ).first()
        if not room:
            raise NotFound("Room not found", {"room_id": room_id})
        return room

    def list_rooms(self, operator_id: int, status: Optional[RoomStatus] = None) -> List[Room]:
        query = self.db.query(Room).filter(Room.operator_id == operator_id)
        if status:
            query = query.filter(Room.status == status)
        return query.order_by(Room.room_number).all()

    def find_available(self, operator_id: int, room_type: Optional[RoomKind] = None,
                       check_in: Optional[datetime] = None,
                       check_out: Optional[datetime] = None) -> List[Room]:
        """
        Rooms that can be booked now.

        With a date window, rooms holding an active booking that overlaps
        [check_in, check_out) are excluded as well.
        """
        query = self.db.query(Room).filter(
            Room.operator_id == operator_id,
            Room.status == RoomStatus.AVAILABLE
        )
        if room_type:
            query = query.filter(Room.room_type == room_type)

        if check_in and check_out:
            overlapping = self.db.query(Booking.room_id).filter(
                Booking.operator_id == operator_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                Booking.check_in < check_out,
                or_(
                    Booking.expected_checkout.is_(None),
                    Booking.expected_checkout > check_in
                )
            )
            query = query.filter(~Room.id.in_(overlapping))

        return query.order_by(Room.room_number).all()

    # ============== Transitions (join the caller's transaction) ==============

    def occupy(self, operator_id: int, room_id: int) -> RoomTransition:
        """available -> occupied"""
        return self._transition(operator_id, room_id, "occupy", RoomNotAvailable)

    def reserve(self, operator_id: int, room_id: int) -> RoomTransition:
        """available -> reserved"""
        return self._transition(operator_id, room_id, "reserve", RoomNotAvailable)

    def occupy_reserved(self, operator_id: int, room_id: int) -> RoomTransition:
        """reserved -> occupied"""
        return self._transition(operator_id, room_id, "occupy_reserved", InvalidTransition)

    def release(self, operator_id: int, room_id: int) -> RoomTransition:
        """occupied -> available"""
        return self._transition(operator_id, room_id, "release", InvalidTransition)

    def _transition(self, operator_id: int, room_id: int, trigger: str,
                    failure: type) -> RoomTransition:
        (source,) = ROOM_STATE_MACHINE.sources_for(trigger)
        target = ROOM_STATE_MACHINE.target_for(source, trigger)

        result = self.db.execute(
            update(Room)
            .where(and_(
                Room.id == room_id,
                Room.operator_id == operator_id,
                Room.status == RoomStatus(source)
            ))
            .values(status=RoomStatus(target), updated_at=datetime.now())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            room = self.db.query(Room).populate_existing().filter(
                Room.id == room_id,
                Room.operator_id == operator_id
            ).first()
            if not room:
                raise NotFound("Room not found", {"room_id": room_id})
            logger.warning(
                f"Room {room.room_number}: {trigger} rejected, status is {room.status.value}"
            )
            raise failure(
                f"Room {room.room_number} is {room.status.value}, cannot {trigger.replace('_', ' ')}",
                {
                    "room_id": room_id,
                    "room_number": room.room_number,
                    "status": room.status.value,
                    "expected_status": source,
                }
            )

        room = self.db.query(Room).populate_existing().filter(Room.id == room_id).one()
        return RoomTransition(
            room=room,
            old_status=RoomStatus(source),
            new_status=RoomStatus(target),
            trigger=trigger,
        )

    def announce(self, transition: RoomTransition, changed_by: Optional[int] = None,
                 reason: str = "") -> None:
        """Publish a committed transition"""
        room = transition.room
        logger.info(
            f"Room {room.room_number}: {transition.old_status.value} -> "
            f"{transition.new_status.value} ({transition.trigger})"
        )
        self._publish_event(Event(
            event_type=EventType.ROOM_STATUS_CHANGED,
            timestamp=datetime.now(),
            data=RoomStatusChangedData(
                room_id=room.id,
                room_number=room.room_number,
                old_status=transition.old_status.value,
                new_status=transition.new_status.value,
                changed_by=changed_by,
                reason=reason or transition.trigger
            ).to_dict(),
            source="room_registry",
            operator_id=room.operator_id
        ))

    # ============== Standalone operations ==============

    def toggle_maintenance(self, operator_id: int, room_id: int,
                           changed_by: Optional[int] = None) -> Room:
        """
        available <-> maintenance

        Raises:
            RoomBusy: the room is occupied or reserved
        """
        with atomic(self.db, "toggle_maintenance"):
            room = self.get_room(operator_id, room_id)
            if room.status == RoomStatus.AVAILABLE:
                trigger = "start_maintenance"
            elif room.status == RoomStatus.MAINTENANCE:
                trigger = "end_maintenance"
            else:
                raise RoomBusy(
                    f"Room {room.room_number} is {room.status.value}; "
                    "maintenance can only be toggled on a free room",
                    {"room_id": room_id, "status": room.status.value}
                )
            transition = self._transition(operator_id, room_id, trigger, RoomBusy)

        self.announce(transition, changed_by)
        return transition.room

    def create_room(self, operator_id: int, data: RoomCreate) -> Room:
        """
        Configure a new room.

        Raises:
            DuplicateRoomNumber: the tenant already has a room with this number
        """
        existing = self.db.query(Room).filter(
            Room.operator_id == operator_id,
            Room.room_number == data.room_number
        ).first()
        if existing:
            raise DuplicateRoomNumber(
                f"Room number {data.room_number} already exists",
                {"room_number": data.room_number}
            )

        room = Room(
            operator_id=operator_id,
            room_number=data.room_number,
            room_type=data.room_type,
            base_price=data.base_price,
            short_stay_3h_price=data.short_stay_3h_price,
            short_stay_6h_price=data.short_stay_6h_price,
            floor=data.floor,
            max_occupancy=data.max_occupancy,
            description=data.description,
            status=RoomStatus(ROOM_STATE_MACHINE.config.initial_state),
        )
        try:
            with atomic(self.db, "create_room"):
                self.db.add(room)
        except IntegrityError as e:
            raise DuplicateRoomNumber(
                f"Room number {data.room_number} already exists",
                {"room_number": data.room_number}
            ) from e

        self.db.refresh(room)
        logger.info(f"Room {room.room_number} created for operator {operator_id}")
        return room
