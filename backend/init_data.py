"""
Demo data script
Creates one operator with its owner account, two cashiers, rooms and a small POS
catalog. Safe to run twice: existing rows are left alone.

Default accounts (tokens are printed at the end, login is not part of this service):
  owner      operator owner, step-up password owner123
  cashier1   cashier, discounts up to 10% and refunds
  cashier2   cashier, bookings only
"""
import sys
sys.path.insert(0, '.')

from decimal import Decimal
from frontdesk.database import SessionLocal, init_db
from frontdesk.models.ontology import (
    CashierPermission, Operator, Product, ProductCategory, Room, RoomKind, RoomStatus,
    User, UserRole
)
from frontdesk.security.auth import create_access_token, get_password_hash


def init_operator(db):
    """Tenant and its owner account"""
    operator = db.query(Operator).filter(Operator.email == "demo@frontdesk.local").first()
    if not operator:
        operator = Operator(name="Hotel Demo", email="demo@frontdesk.local",
                            whatsapp="+59170000000", is_active=True)
        db.add(operator)
        db.flush()
        db.add(User(
            operator_id=operator.id, username="owner",
            password_hash=get_password_hash("owner123"),
            full_name="Demo owner", role=UserRole.OPERATOR, is_active=True
        ))
        db.commit()
    print(f"Operator: {operator.name} (id {operator.id})")
    return operator


def init_cashiers(db, operator):
    cashiers = [
        ("cashier1", "Front desk 1", dict(can_apply_discounts=True,
                                          max_discount_percentage=Decimal("10"),
                                          can_process_refunds=True)),
        ("cashier2", "Front desk 2", {}),
    ]
    created = 0
    for username, full_name, permissions in cashiers:
        existing = db.query(User).filter(
            User.operator_id == operator.id, User.username == username
        ).first()
        if existing:
            continue
        user = User(
            operator_id=operator.id, username=username,
            password_hash=get_password_hash("123456"),
            full_name=full_name, role=UserRole.CASHIER, is_active=True
        )
        user.permission = CashierPermission(**permissions)
        db.add(user)
        created += 1
    db.commit()
    print(f"Cashiers: {created} created")


def init_rooms(db, operator):
    """Floors 1-2: simples and doubles, one suite per floor"""
    prices = {
        RoomKind.SIMPLE: (Decimal("120"), Decimal("50"), Decimal("80")),
        RoomKind.DOUBLE: (Decimal("180"), Decimal("70"), Decimal("110")),
        RoomKind.SUITE: (Decimal("350"), None, None),
    }
    layout = []
    for floor in (1, 2):
        layout += [(f"{floor}0{i}", floor, RoomKind.SIMPLE) for i in range(1, 5)]
        layout += [(f"{floor}0{i}", floor, RoomKind.DOUBLE) for i in range(5, 9)]
        layout.append((f"{floor}09", floor, RoomKind.SUITE))

    created = 0
    for number, floor, kind in layout:
        existing = db.query(Room).filter(
            Room.operator_id == operator.id, Room.room_number == number
        ).first()
        if existing:
            continue
        base, short_3h, short_6h = prices[kind]
        db.add(Room(
            operator_id=operator.id, room_number=number, room_type=kind, floor=floor,
            base_price=base, short_stay_3h_price=short_3h, short_stay_6h_price=short_6h,
            max_occupancy=4 if kind == RoomKind.SUITE else 2,
            status=RoomStatus.AVAILABLE
        ))
        created += 1
    db.commit()
    print(f"Rooms: {created} created")


def init_products(db, operator):
    products = [
        (ProductCategory.MINIBAR, "Water 500ml", Decimal("8"), Decimal("13"), 48, True),
        (ProductCategory.MINIBAR, "Soda", Decimal("12"), Decimal("13"), 48, True),
        (ProductCategory.MINIBAR, "Beer", Decimal("20"), Decimal("13"), 24, True),
        (ProductCategory.RESTAURANT, "Breakfast", Decimal("35"), Decimal("13"), 0, False),
        (ProductCategory.LAUNDRY, "Laundry (per kg)", Decimal("15"), Decimal("0"), 0, False),
    ]
    created = 0
    for category, name, price, tax_rate, stock, tracked in products:
        existing = db.query(Product).filter(
            Product.operator_id == operator.id, Product.name == name
        ).first()
        if existing:
            continue
        db.add(Product(
            operator_id=operator.id, category=category, name=name, price=price,
            tax_rate=tax_rate, stock_quantity=stock, track_inventory=tracked, is_active=True
        ))
        created += 1
    db.commit()
    print(f"Products: {created} created")


def main():
    print("=" * 50)
    print("FrontDesk demo data")
    print("=" * 50)

    init_db()
    db = SessionLocal()
    try:
        operator = init_operator(db)
        init_cashiers(db, operator)
        init_rooms(db, operator)
        init_products(db, operator)
        print("=" * 50)
        print("Done. Bearer tokens for local testing:")
        for user in db.query(User).filter(User.operator_id == operator.id).order_by(User.id):
            token = create_access_token(user.id, user.role, user.operator_id)
            print(f"  {user.username}: {token}")
        print("=" * 50)
    finally:
        db.close()


if __name__ == '__main__':
    main()
