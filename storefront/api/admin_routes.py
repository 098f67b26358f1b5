from fastapi import APIRouter, Depends
from typing import Optional
from sqlalchemy.orm import Session
from storefront.domain.models import PaymentStatus, FulfillmentStatus
from storefront.infrastructure.db import get_db
from storefront.infrastructure.auth import AdminActor, require_admin
from storefront.application.service import OrderService, InventoryService, CustomerService, ContactService
from storefront.application.schemas import (
    OrderRead, PaymentStatusUpdate, FulfillmentUpdate, NotesUpdate,
    VariantStockRead, StockAdjustment, StockAdjustmentResult, StockMovementRead,
    CustomerRead, CustomerDetail, ContactMessageRead,
)

router = APIRouter(prefix="/admin", tags=["admin"])

@router.get("/orders", response_model=list[OrderRead])
def list_orders(
    payment_status: Optional[PaymentStatus] = None,
    fulfillment_status: Optional[FulfillmentStatus] = None,
    db: Session = Depends(get_db),
    admin: AdminActor = Depends(require_admin),
):
    return OrderService(db).list(payment_status, fulfillment_status)

@router.get("/orders/{order_id}", response_model=OrderRead)
def get_order(order_id: str, db: Session = Depends(get_db), admin: AdminActor = Depends(require_admin)):
    return OrderService(db).get(order_id)

@router.patch("/orders/{order_id}/payment", response_model=OrderRead)
def update_payment_status(order_id: str, payload: PaymentStatusUpdate, db: Session = Depends(get_db), admin: AdminActor = Depends(require_admin)):
    return OrderService(db).update_payment(order_id, payload, admin.id)

@router.patch("/orders/{order_id}/fulfillment", response_model=OrderRead)
def update_fulfillment(order_id: str, payload: FulfillmentUpdate, db: Session = Depends(get_db), admin: AdminActor = Depends(require_admin)):
    return OrderService(db).update_fulfillment(order_id, payload, admin.id)

@router.patch("/orders/{order_id}/notes", response_model=OrderRead)
def update_notes(order_id: str, payload: NotesUpdate, db: Session = Depends(get_db), admin: AdminActor = Depends(require_admin)):
    return OrderService(db).update_notes(order_id, payload, admin.id)

@router.post("/orders/{order_id}/cancel", response_model=OrderRead)
def cancel_order(order_id: str, db: Session = Depends(get_db), admin: AdminActor = Depends(require_admin)):
    return OrderService(db).cancel(order_id, admin.id)

@router.get("/inventory", response_model=list[VariantStockRead])
def list_inventory(db: Session = Depends(get_db), admin: AdminActor = Depends(require_admin)):
    return InventoryService(db).list()

@router.post("/inventory/{variant_id}/adjust", response_model=StockAdjustmentResult)
def adjust_stock(variant_id: str, payload: StockAdjustment, db: Session = Depends(get_db), admin: AdminActor = Depends(require_admin)):
    stock_qty, movement = InventoryService(db).adjust(variant_id, payload, admin.id)
    return StockAdjustmentResult(
        variant_id=variant_id,
        stock_qty=stock_qty,
        movement=StockMovementRead.model_validate(movement),
    )

@router.get("/inventory/{variant_id}/movements", response_model=list[StockMovementRead])
def list_movements(variant_id: str, db: Session = Depends(get_db), admin: AdminActor = Depends(require_admin)):
    return InventoryService(db).movements(variant_id)

@router.get("/customers", response_model=list[CustomerRead])
def list_customers(db: Session = Depends(get_db), admin: AdminActor = Depends(require_admin)):
    return CustomerService(db).list()

@router.get("/customers/{customer_id}", response_model=CustomerDetail)
def get_customer(customer_id: str, db: Session = Depends(get_db), admin: AdminActor = Depends(require_admin)):
    return CustomerService(db).get(customer_id)

@router.get("/messages", response_model=list[ContactMessageRead])
def list_messages(db: Session = Depends(get_db), admin: AdminActor = Depends(require_admin)):
    return ContactService(db).list()
