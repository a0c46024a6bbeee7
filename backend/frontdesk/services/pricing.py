"""
Stay pricing
Pure functions: room tariff + stay parameters -> base charge of a booking.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from frontdesk.errors import ValidationError
from frontdesk.models.ontology import Room, StayType

CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def money(value: Number) -> Decimal:
    """Quantize to cents, half up"""
    if value is None:
        value = 0
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class StayQuote:
    """Base charge of a stay"""
    stay_type: StayType
    unit_price: Decimal
    nights: int
    additional_income: Decimal
    total: Decimal


def unit_price_for(room: Room, stay_type: StayType) -> Decimal:
    """Tariff of one unit (night or short-stay block) for a room"""
    stay_type = StayType(stay_type)
    if stay_type == StayType.DAILY:
        return money(room.base_price)

    tier = room.short_stay_3h_price if stay_type == StayType.THREE_HOURS \
        else room.short_stay_6h_price
    if tier is None:
        raise ValidationError(
            f"Room {room.room_number} has no {stay_type.value} tariff",
            {"room_id": room.id, "stay_type": stay_type.value}
        )
    return money(tier)


def calculate_stay_price(room: Room, stay_type: StayType, nights: int = 1,
                         additional_income: Number = 0) -> StayQuote:
    """
    Price a stay.

    Daily stays are charged per night at the base price; short stays use the room's
    3h/6h tier and always count as a single unit.

    Raises:
        ValidationError: nights < 1, negative additional income, or the room has no
            tariff for the requested short stay
    """
    stay_type = StayType(stay_type)
    if nights is None or int(nights) < 1:
        raise ValidationError("Number of nights must be at least 1", {"nights": nights})
    extra = money(additional_income)
    if extra < 0:
        raise ValidationError(
            "Additional income cannot be negative", {"additional_income": extra}
        )

    unit_price = unit_price_for(room, stay_type)
    if stay_type != StayType.DAILY:
        nights = 1

    total = money(unit_price * int(nights) + extra)
    return StayQuote(
        stay_type=stay_type,
        unit_price=unit_price,
        nights=int(nights),
        additional_income=extra,
        total=total,
    )
