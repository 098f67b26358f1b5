from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, joinedload
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional
import re
from storefront.domain.models import (
    ContactMessage, Customer, Order, Product, ProductStatus, StockMovement, Variant, FulfillmentStatus, PaymentStatus,
)
from storefront.application.errors import NotFound, StockConflict, TransactionFailure
from storefront.application.ledger import InventoryLedger
from storefront.application.schemas import (
    ContactPayload, FulfillmentUpdate, NotesUpdate, PaymentStatusUpdate, StockAdjustment, VariantStockRead,
)
from shared.core import get_logger

logger = get_logger(__name__)

def log_admin_action(admin_id: str, action: str, entity_type: str, entity_id: str, diff: dict):
    """Structured record of an admin mutation (action, entity, diff)."""
    logger.info(
        f"Admin action {action} on {entity_type} {entity_id}",
        extra={'extra_fields': {
            'actor_admin_id': admin_id,
            'action': action,
            'entity_type': entity_type,
            'entity_id': entity_id,
            'diff': diff,
        }}
    )

class OrderService:
    def __init__(self, db: Session):
        self.db = db

    def list(self, payment_status: Optional[PaymentStatus] = None, fulfillment_status: Optional[FulfillmentStatus] = None):
        stmt = select(Order).options(selectinload(Order.items)).order_by(Order.created_at.desc())
        if payment_status is not None:
            stmt = stmt.where(Order.payment_status == payment_status.value)
        if fulfillment_status is not None:
            stmt = stmt.where(Order.fulfillment_status == fulfillment_status.value)
        return self.db.execute(stmt).scalars().all()

    def get(self, order_id: str) -> Order:
        order = self.db.execute(
            select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
        ).scalar_one_or_none()
        if not order:
            raise NotFound("Order not found.")
        return order

    def _save(self, order: Order, admin_id: str, action: str, diff: dict) -> Order:
        self.db.commit()
        self.db.refresh(order)
        log_admin_action(admin_id, action, "order", order.id, diff)
        return order

    def update_payment(self, order_id: str, data: PaymentStatusUpdate, admin_id: str) -> Order:
        order = self.get(order_id)
        order.payment_status = data.payment_status.value
        return self._save(order, admin_id, "order.payment.update", {"payment_status": order.payment_status})

    def update_fulfillment(self, order_id: str, data: FulfillmentUpdate, admin_id: str) -> Order:
        # Any status may follow any other; operators drive this field
        order = self.get(order_id)
        order.fulfillment_status = data.fulfillment_status.value
        order.tracking_number = (data.tracking_number or "").strip() or None
        order.courier = (data.courier or "").strip() or None
        return self._save(order, admin_id, "order.fulfillment.update", {
            "fulfillment_status": order.fulfillment_status,
            "tracking_number": order.tracking_number,
            "courier": order.courier,
        })

    def update_notes(self, order_id: str, data: NotesUpdate, admin_id: str) -> Order:
        order = self.get(order_id)
        order.notes = data.notes
        return self._save(order, admin_id, "order.notes.update", {"notes": data.notes})

    def cancel(self, order_id: str, admin_id: str) -> Order:
        order = self.get(order_id)
        order.fulfillment_status = FulfillmentStatus.CANCELLED.value
        return self._save(order, admin_id, "order.cancel", {"fulfillment_status": order.fulfillment_status})

class InventoryService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = InventoryLedger(db)

    def list(self):
        stmt = select(Variant).options(joinedload(Variant.product)).order_by(Variant.updated_at.desc())
        return [
            VariantStockRead(
                id=v.id,
                product_id=v.product_id,
                product_title=v.product.title,
                sku=v.sku,
                size=v.size,
                color=v.color,
                stock_qty=v.stock_qty,
                low_stock_threshold=v.low_stock_threshold,
                is_low_stock=v.is_low_stock,
                is_active=v.is_active,
            )
            for v in self.db.execute(stmt).scalars().all()
        ]

    def adjust(self, variant_id: str, data: StockAdjustment, admin_id: str):
        """Manual correction: floored at zero, attributed to the admin."""
        if self.db.get(Variant, variant_id) is None:
            raise NotFound("Variant not found.")
        try:
            movement = self.ledger.apply_stock_change(
                variant_id, data.delta, data.reason, actor=admin_id, floor_at_zero=True
            )
            stock_qty = self.ledger.current_stock(variant_id)
            self.db.commit()
        except (SQLAlchemyError, StockConflict) as e:
            self.db.rollback()
            logger.error(f"Stock adjustment failed for variant {variant_id}", exc_info=True)
            raise TransactionFailure("Unable to adjust stock at this time.") from e

        log_admin_action(admin_id, "inventory.adjust", "variant", variant_id, {
            "delta": data.delta,
            "applied_delta": movement.delta,
            "reason": data.reason,
            "stock_qty": stock_qty,
        })
        return stock_qty, movement

    def movements(self, variant_id: str):
        if self.db.get(Variant, variant_id) is None:
            raise NotFound("Variant not found.")
        stmt = (
            select(StockMovement)
            .where(StockMovement.variant_id == variant_id)
            .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        )
        return self.db.execute(stmt).scalars().all()

class CustomerService:
    def __init__(self, db: Session):
        self.db = db

    def list(self):
        return self.db.execute(select(Customer).order_by(Customer.created_at.desc())).scalars().all()

    def get(self, customer_id: str) -> Customer:
        customer = self.db.execute(
            select(Customer)
            .options(selectinload(Customer.orders).selectinload(Order.items))
            .where(Customer.id == customer_id)
        ).scalar_one_or_none()
        if not customer:
            raise NotFound("Customer not found.")
        return customer

class ContactService:
    """Messages left through the storefront contact form."""

    def __init__(self, db: Session):
        self.db = db

    def submit(self, data: ContactPayload) -> ContactMessage:
        message = ContactMessage(name=data.name, email=data.email, phone=data.phone, message=data.message)
        self.db.add(message)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to store contact message.", exc_info=True)
            raise TransactionFailure("Unable to send message at this time.") from e
        logger.info(
            f"Contact message {message.id} received",
            extra={'extra_fields': {'message_id': message.id, 'has_phone': message.phone is not None}}
        )
        return message

    def list(self):
        stmt = select(ContactMessage).order_by(ContactMessage.created_at.desc())
        return self.db.execute(stmt).scalars().all()

COLOR_HEX = {
    "Black": "#0B0B0C",
    "White": "#FFFFFF",
    "Charcoal": "#121214",
    "Olive": "#4A4A3A",
}
DEFAULT_COLOR_HEX = "#121214"

def slugify(value: str) -> str:
    return re.sub(r"(^-|-$)+", "", re.sub(r"[^a-z0-9]+", "-", value.lower()))

class CatalogService:
    """Read side of the storefront catalog."""

    def __init__(self, db: Session):
        self.db = db

    def _badge(self, product: Product) -> Optional[str]:
        tags = product.tags or []
        if "sale" in tags:
            return "sale"
        if "new" in tags:
            return "new"
        if product.compare_at_price is not None and product.compare_at_price > product.base_price:
            return "sale"
        return None

    def listing(self) -> dict:
        stmt = (
            select(Product)
            .options(selectinload(Product.variants))
            .where(Product.status == ProductStatus.ACTIVE.value, Product.deleted_at.is_(None))
            .order_by(Product.created_at.desc())
        )
        products = self.db.execute(stmt).scalars().all()

        mapped = []
        categories = {}
        for product in products:
            sizes, colors = [], {}
            for variant in product.variants:
                if variant.size not in sizes:
                    sizes.append(variant.size)
                colors.setdefault(variant.color, COLOR_HEX.get(variant.color, DEFAULT_COLOR_HEX))
            mapped.append({
                "id": product.id,
                "name": product.title,
                "slug": product.slug,
                "category": product.category,
                "price": product.base_price,
                "originalPrice": product.compare_at_price,
                "description": product.description,
                "sizes": sizes,
                "colors": [{"name": name, "hex": hex_} for name, hex_ in colors.items()],
                "badge": self._badge(product),
                "inStock": any(v.stock_qty > 0 for v in product.variants),
            })
            if product.category:
                categories[product.category] = slugify(product.category)

        return {
            "products": mapped,
            "categories": [{"name": name, "slug": slug} for name, slug in sorted(categories.items())],
        }

    def find_variant(self, product_id: str, size: str, color: str) -> Variant:
        """Purchasable variant for a cart line, matched case-insensitively on size and color."""
        stmt = (
            select(Variant)
            .join(Variant.product)
            .options(joinedload(Variant.product))
            .where(
                Variant.product_id == product_id.strip(),
                Variant.is_active.is_(True),
                Product.status == ProductStatus.ACTIVE.value,
                Product.deleted_at.is_(None),
            )
        )
        wanted = (size.strip().lower(), color.strip().lower())
        for variant in self.db.execute(stmt).scalars().all():
            if (variant.size.strip().lower(), variant.color.strip().lower()) == wanted:
                return variant
        raise NotFound("Item is not available.")
