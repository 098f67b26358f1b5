from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session
from typing import Optional
from storefront.infrastructure.db import get_db, get_optional_database, Database
from storefront.application.checkout import CheckoutService
from storefront.application.cart import CartService
from storefront.application.service import CatalogService, ContactService
from storefront.application.schemas import (
    CheckoutPayload, CheckoutResult, CartLineInput, CartQuantityUpdate, ContactPayload, ContactResult,
)

router = APIRouter(prefix="/api", tags=["storefront"])

def get_cart(cart_id: str, request: Request) -> CartService:
    return CartService(request.app.state.cart_store, cart_id)

@router.post("/checkout", response_model=CheckoutResult)
def checkout(
    payload: CheckoutPayload,
    request: Request,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
):
    """Place an order for the whole cart or reject it without side effects."""
    order = CheckoutService(db, request.app.state.settings).checkout(payload, idempotency_key)
    return CheckoutResult(order_id=order.id, order_number=order.order_number)

@router.get("/storefront/products")
def list_storefront_products(database: Optional[Database] = Depends(get_optional_database)):
    if database is None:
        return {"products": [], "categories": []}
    db = database.session()
    try:
        return CatalogService(db).listing()
    finally:
        db.close()

@router.get("/cart/{cart_id}")
def get_cart_summary(cart: CartService = Depends(get_cart)):
    return cart.summary()

@router.post("/cart/{cart_id}/items")
def add_cart_item(payload: CartLineInput, cart: CartService = Depends(get_cart), db: Session = Depends(get_db)):
    variant = CatalogService(db).find_variant(payload.product_id, payload.size, payload.color)
    cart.add(
        payload.product_id,
        payload.size,
        payload.color,
        payload.quantity,
        unit_price=variant.unit_price,
        name=variant.product.title,
    )
    return cart.summary()

@router.patch("/cart/{cart_id}/items")
def update_cart_item(payload: CartQuantityUpdate, cart: CartService = Depends(get_cart)):
    cart.update_quantity(payload.product_id, payload.size, payload.color, payload.quantity)
    return cart.summary()

@router.delete("/cart/{cart_id}/items")
def remove_cart_item(product_id: str, size: str, color: str, cart: CartService = Depends(get_cart)):
    cart.remove(product_id, size, color)
    return cart.summary()

@router.delete("/cart/{cart_id}", status_code=204)
def clear_cart(cart: CartService = Depends(get_cart)):
    cart.clear()
    return None

@router.get("/wishlist/{cart_id}")
def get_wishlist(cart: CartService = Depends(get_cart)):
    return {"cartId": cart.cart_id, "productIds": cart.wishlist()}

@router.post("/wishlist/{cart_id}/{product_id}")
def toggle_wishlist(product_id: str, cart: CartService = Depends(get_cart)):
    return {"cartId": cart.cart_id, "productIds": cart.toggle_wishlist(product_id)}

@router.post("/contact", response_model=ContactResult)
def submit_contact_message(payload: ContactPayload, db: Session = Depends(get_db)):
    message = ContactService(db).submit(payload)
    return ContactResult(message_id=message.id)
