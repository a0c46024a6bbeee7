"""
Operator routes - property configuration and shift review
"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from frontdesk.database import get_db
from frontdesk.errors import FrontDeskError
from frontdesk.models.ontology import ProductCategory, ShiftStatus
from frontdesk.models.schemas import (
    CashierCreate, CashierPermissions, CashierResponse, ProductCreate, ProductResponse,
    RoomCreate, RoomResponse, ShiftResponse, ShiftReview
)
from frontdesk.routers.errors import http_error
from frontdesk.security.auth import require_operator
from frontdesk.security.authorization import ActorContext
from frontdesk.services.cash_register_service import CashRegisterService
from frontdesk.services.cashier_service import CashierService
from frontdesk.services.catalog_service import CatalogService
from frontdesk.services.room_registry import RoomRegistry

router = APIRouter(prefix="/admin", tags=["Operator"])


# ============== Rooms ==============

@router.get("/rooms", response_model=List[RoomResponse])
def list_rooms(
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_operator)
):
    return RoomRegistry(db).list_rooms(ctx.operator_id)


@router.post("/rooms", response_model=RoomResponse, status_code=201)
def create_room(
    data: RoomCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_operator)
):
    try:
        return RoomRegistry(db).create_room(ctx.operator_id, data)
    except FrontDeskError as e:
        raise http_error(e)


@router.post("/rooms/{room_id}/toggle-maintenance", response_model=RoomResponse)
def toggle_maintenance(
    room_id: int,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_operator)
):
    try:
        return RoomRegistry(db).toggle_maintenance(ctx.operator_id, room_id, changed_by=ctx.actor_id)
    except FrontDeskError as e:
        raise http_error(e)


# ============== Catalog ==============

@router.get("/products", response_model=List[ProductResponse])
def list_products(
    category: Optional[ProductCategory] = None,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_operator)
):
    return CatalogService(db).get_products(ctx.operator_id, category=category, include_inactive=True)


@router.post("/products", response_model=ProductResponse, status_code=201)
def create_product(
    data: ProductCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_operator)
):
    return CatalogService(db).create_product(ctx.operator_id, data)


# ============== Cashiers ==============

@router.get("/cashiers", response_model=List[CashierResponse])
def list_cashiers(
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_operator)
):
    return CashierService(db).get_cashiers(ctx.operator_id)


@router.post("/cashiers", response_model=CashierResponse, status_code=201)
def create_cashier(
    data: CashierCreate,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_operator)
):
    try:
        return CashierService(db).create_cashier(ctx.operator_id, data)
    except FrontDeskError as e:
        raise http_error(e)


@router.put("/cashiers/{cashier_id}/permissions", response_model=CashierResponse)
def update_cashier_permissions(
    cashier_id: int,
    data: CashierPermissions,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_operator)
):
    try:
        return CashierService(db).update_permissions(ctx.operator_id, cashier_id, data)
    except FrontDeskError as e:
        raise http_error(e)


# ============== Cash registers ==============

@router.get("/cash-registers", response_model=List[ShiftResponse])
def list_shifts(
    cashier_id: Optional[int] = None,
    status: Optional[ShiftStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_operator)
):
    try:
        return CashRegisterService(db).list_shifts(
            ctx, cashier_id=cashier_id, status=status,
            start_date=start_date, end_date=end_date
        )
    except FrontDeskError as e:
        raise http_error(e)


@router.post("/cash-registers/{shift_id}/review", response_model=ShiftResponse)
def review_shift(
    shift_id: int,
    data: ShiftReview,
    db: Session = Depends(get_db),
    ctx: ActorContext = Depends(require_operator)
):
    """Approve or reject a closed shift"""
    try:
        return CashRegisterService(db).review(ctx, shift_id, data.action, data.notes)
    except FrontDeskError as e:
        raise http_error(e)
