"""
Checkout: cart validation, order assembly and the order placement transaction.

Validation and assembly never write. ``CheckoutService.place_order`` runs the
customer upsert, order + items insert and every stock decrement in a single
transaction that commits whole or not at all.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
import re
import time
import uuid
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload
from storefront.core_settings import Settings
from storefront.domain.models import Customer, Order, OrderItem, Product, ProductStatus, Variant
from storefront.application.errors import (
    ItemsUnavailable,
    OrderNumberCollision,
    OutOfStock,
    StockConflict,
    TransactionFailure,
)
from storefront.application.ledger import InventoryLedger
from storefront.application.schemas import CheckoutItem, CheckoutPayload, CheckoutPayment, CheckoutShipping, CheckoutCustomer
from shared.core import get_logger

logger = get_logger(__name__)

ORDER_NUMBER_ATTEMPTS = 2
UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}
BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


@dataclass(frozen=True)
class ResolvedLine:
    product_id: str
    variant_id: str
    name_snapshot: str
    sku_snapshot: str
    price_snapshot: int
    qty: int


@dataclass(frozen=True)
class OrderTotals:
    subtotal: int
    shipping_fee: int
    total: int


@dataclass(frozen=True)
class OrderDraft:
    customer: CheckoutCustomer
    lines: List[ResolvedLine]
    totals: OrderTotals
    shipping_address: dict
    payment_details: Optional[dict]


def variant_key(product_id: str, size: str, color: str) -> Tuple[str, str, str]:
    return (product_id.strip(), size.strip().lower(), color.strip().lower())


class CheckoutValidator:
    def __init__(self, db: Session):
        self.db = db

    def purchasable_variants(self, product_ids) -> Dict[Tuple[str, str, str], Variant]:
        """Active variants of active, non-deleted products, keyed by normalized (product, size, color)."""
        ids = set(product_ids)
        if not ids:
            return {}
        stmt = (
            select(Variant)
            .join(Variant.product)
            .options(joinedload(Variant.product))
            .where(
                Variant.product_id.in_(ids),
                Variant.is_active.is_(True),
                Product.status == ProductStatus.ACTIVE.value,
                Product.deleted_at.is_(None),
            )
        )
        variants = self.db.execute(stmt).scalars().all()
        return {variant_key(v.product_id, v.size, v.color): v for v in variants}

    def validate(self, items: List[CheckoutItem]) -> List[ResolvedLine]:
        """Resolve every cart line or reject the whole cart.

        Raises ``ItemsUnavailable`` when any line has no purchasable variant
        and, only once every line resolves, ``OutOfStock`` when any variant
        cannot cover the quantity asked of it across the cart.
        """
        variants = self.purchasable_variants(item.product_id for item in items)

        missing_items: List[str] = []
        matched: List[Tuple[CheckoutItem, Variant]] = []
        for item in items:
            variant = variants.get(variant_key(item.product_id, item.size, item.color))
            if variant is None:
                missing_items.append(f"{item.product_id}:{item.size}:{item.color}")
                continue
            matched.append((item, variant))

        if missing_items:
            raise ItemsUnavailable(missing_items)

        demand: Dict[str, int] = {}
        for item, variant in matched:
            demand[variant.id] = demand.get(variant.id, 0) + item.quantity

        stock_issues: List[str] = []
        for item, variant in matched:
            if variant.stock_qty < demand[variant.id] and variant.sku not in stock_issues:
                stock_issues.append(variant.sku)

        if stock_issues:
            raise OutOfStock(stock_issues)

        return [
            ResolvedLine(
                product_id=variant.product_id,
                variant_id=variant.id,
                name_snapshot=variant.product.title,
                sku_snapshot=variant.sku,
                price_snapshot=variant.unit_price,
                qty=item.quantity,
            )
            for item, variant in matched
        ]


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(BASE36[rem])
    return "".join(reversed(digits))


class OrderAssembler:
    """Pure computations over validated lines."""

    def __init__(self, settings: Settings, clock: Callable[[], float] = time.time):
        self.free_shipping_threshold = settings.FREE_SHIPPING_THRESHOLD
        self.standard_shipping_fee = settings.STANDARD_SHIPPING_FEE
        self.order_number_prefix = settings.ORDER_NUMBER_PREFIX
        self.clock = clock

    def price(self, lines: List[ResolvedLine]) -> OrderTotals:
        subtotal = sum(line.price_snapshot * line.qty for line in lines)
        shipping_fee = 0 if subtotal >= self.free_shipping_threshold else self.standard_shipping_fee
        return OrderTotals(subtotal=subtotal, shipping_fee=shipping_fee, total=subtotal + shipping_fee)

    def generate_order_number(self) -> str:
        """``<PREFIX>-<base36 millis>-<6 random hex>``; the unique column is the final arbiter."""
        millis = int(self.clock() * 1000)
        return f"{self.order_number_prefix}-{to_base36(millis)}-{uuid.uuid4().hex[:6].upper()}"

    @staticmethod
    def build_shipping_address(customer: CheckoutCustomer, shipping: CheckoutShipping) -> dict:
        address_line = f"{shipping.house_number} {shipping.street_name}"
        if shipping.building:
            address_line += f", {shipping.building}"
        return {
            "name": customer.full_name,
            "address_line": address_line,
            "house_number": shipping.house_number,
            "street_name": shipping.street_name,
            "building": shipping.building,
            "barangay": shipping.barangay,
            "city": shipping.city,
            "province": shipping.province,
            "region": shipping.region,
            "postal_code": shipping.postal_code,
        }

    @staticmethod
    def build_payment_details(payment: Optional[CheckoutPayment]) -> Optional[dict]:
        # Only the last four digits survive; the full number is dropped here
        if payment is None:
            return None
        digits = re.sub(r"\D", "", payment.card_number)
        return {
            "method": payment.method,
            "cardholder_name": payment.card_name,
            "last4": digits[-4:] if digits else None,
        }

    def assemble(self, payload: CheckoutPayload, lines: List[ResolvedLine]) -> OrderDraft:
        return OrderDraft(
            customer=payload.customer,
            lines=lines,
            totals=self.price(lines),
            shipping_address=self.build_shipping_address(payload.customer, payload.shipping),
            payment_details=self.build_payment_details(payload.payment),
        )


def _violates(exc: IntegrityError, column: str) -> bool:
    return column in str(exc.orig)


class CheckoutService:
    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.validator = CheckoutValidator(db)
        self.assembler = OrderAssembler(settings)
        self.ledger = InventoryLedger(db)

    def find_by_idempotency_key(self, key: Optional[str]) -> Optional[Order]:
        if not key:
            return None
        return self.db.execute(select(Order).where(Order.idempotency_key == key)).scalar_one_or_none()

    def checkout(self, payload: CheckoutPayload, idempotency_key: Optional[str] = None) -> Order:
        try:
            existing = self.find_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.info(
                    f"Replaying order {existing.order_number} for idempotency key",
                    extra={'extra_fields': {'order_id': existing.id}},
                )
                return existing
            lines = self.validator.validate(payload.items)
        except (ItemsUnavailable, OutOfStock) as e:
            self.db.rollback()
            logger.info(f"Checkout rejected: {e.message}", extra={'extra_fields': e.to_dict()})
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to read catalog for checkout.", exc_info=True)
            raise TransactionFailure() from e

        draft = self.assembler.assemble(payload, lines)
        return self.place_order(draft, idempotency_key)

    def place_order(self, draft: OrderDraft, idempotency_key: Optional[str] = None) -> Order:
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            order_number = self.assembler.generate_order_number()
            try:
                order = self._write_order(draft, order_number, idempotency_key)
                self.db.commit()
            except StockConflict as e:
                self.db.rollback()
                sku = next((l.sku_snapshot for l in draft.lines if l.variant_id == e.variant_id), e.variant_id)
                logger.warning(
                    f"Lost stock race on {sku}, order rolled back",
                    extra={'extra_fields': {'variant_id': e.variant_id, 'delta': e.delta}},
                )
                raise OutOfStock([sku])
            except IntegrityError as e:
                self.db.rollback()
                if idempotency_key and _violates(e, "idempotency_key"):
                    existing = self.find_by_idempotency_key(idempotency_key)
                    if existing is not None:
                        return existing
                if _violates(e, "order_number"):
                    logger.warning(
                        f"Order number {order_number} already taken (attempt {attempt})",
                        extra={'extra_fields': {'order_number': order_number}},
                    )
                    continue
                logger.error("Failed to create order.", exc_info=True)
                raise TransactionFailure() from e
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error("Failed to create order.", exc_info=True)
                raise TransactionFailure() from e

            logger.info(
                f"Order {order.order_number} placed",
                extra={'extra_fields': {
                    'order_id': order.id,
                    'order_number': order.order_number,
                    'lines': len(draft.lines),
                    'total': draft.totals.total,
                }},
            )
            return order

        logger.error(
            "Order number generation kept colliding, giving up",
            extra={'extra_fields': {'code': OrderNumberCollision.code, 'attempts': ORDER_NUMBER_ATTEMPTS}},
        )
        raise OrderNumberCollision()

    def _upsert_customer(self, customer: CheckoutCustomer) -> Customer:
        # A single statement, so a concurrent first checkout for the same
        # email cannot fail the unique constraint
        insert = UPSERT_INSERTS[self.db.get_bind().dialect.name]
        self.db.execute(
            insert(Customer)
            .values(email=customer.email, name=customer.full_name, phone=customer.phone)
            .on_conflict_do_nothing(index_elements=["email"])
        )
        return self.db.execute(select(Customer).where(Customer.email == customer.email)).scalar_one()

    def _write_order(self, draft: OrderDraft, order_number: str, idempotency_key: Optional[str]) -> Order:
        customer = self._upsert_customer(draft.customer)
        order = Order(
            order_number=order_number,
            idempotency_key=idempotency_key,
            customer_id=customer.id,
            email=draft.customer.email,
            phone=draft.customer.phone,
            shipping_address=draft.shipping_address,
            payment_details=draft.payment_details,
            subtotal=draft.totals.subtotal,
            shipping_fee=draft.totals.shipping_fee,
            total=draft.totals.total,
        )
        self.db.add(order)
        self.db.flush()  # assign id, surface order number clashes early

        for line in draft.lines:
            self.db.add(OrderItem(
                order_id=order.id,
                product_id=line.product_id,
                variant_id=line.variant_id,
                name_snapshot=line.name_snapshot,
                sku_snapshot=line.sku_snapshot,
                price_snapshot=line.price_snapshot,
                qty=line.qty,
            ))

        for line in draft.lines:
            self.ledger.apply_stock_change(line.variant_id, -line.qty, f"Order {order_number}")

        self.db.flush()
        return order
