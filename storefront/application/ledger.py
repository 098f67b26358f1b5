from sqlalchemy import select, update
from sqlalchemy.orm import Session
from typing import Optional
from storefront.domain.models import Variant, StockMovement
from storefront.application.errors import StockConflict, NotFound
from shared.core import get_logger

logger = get_logger(__name__)

# Compare-and-set attempts for a floored adjustment before giving up
MAX_ADJUST_ATTEMPTS = 5

class InventoryLedger:
    """Sole writer of ``Variant.stock_qty``.

    Every stock change is paired with one ``StockMovement`` row added to the
    caller's session, so both land in the caller's transaction. The ledger
    never commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def apply_stock_change(
        self,
        variant_id: str,
        delta: int,
        reason: Optional[str],
        actor: Optional[str] = None,
        floor_at_zero: bool = False,
    ) -> StockMovement:
        """Change a variant's stock by ``delta`` and append the movement.

        Guarded mode (default, used by checkout) refuses any change that would
        take stock below zero and raises ``StockConflict``. With
        ``floor_at_zero`` (admin corrections) the result is clamped at zero
        and the movement records the delta actually applied.
        """
        if floor_at_zero:
            applied = self._apply_floored(variant_id, delta)
        else:
            self._apply_guarded(variant_id, delta)
            applied = delta

        movement = StockMovement(
            variant_id=variant_id,
            delta=applied,
            reason=reason or None,
            actor_admin_id=actor,
        )
        self.db.add(movement)
        self.db.flush()
        return movement

    def current_stock(self, variant_id: str) -> int:
        stock = self.db.execute(select(Variant.stock_qty).where(Variant.id == variant_id)).scalar_one_or_none()
        if stock is None:
            raise NotFound("Variant not found.")
        return stock

    def _apply_guarded(self, variant_id: str, delta: int):
        stmt = update(Variant).where(Variant.id == variant_id)
        if delta < 0:
            # Sufficiency is checked by the write itself, not by an earlier read
            stmt = stmt.where(Variant.stock_qty >= -delta)
        stmt = stmt.values(stock_qty=Variant.stock_qty + delta).execution_options(synchronize_session=False)
        result = self.db.execute(stmt)
        if result.rowcount == 0:
            raise StockConflict(variant_id, delta)
        self._expire_cached(variant_id)

    def _apply_floored(self, variant_id: str, delta: int) -> int:
        for _ in range(MAX_ADJUST_ATTEMPTS):
            observed = self.current_stock(variant_id)
            target = max(0, observed + delta)
            result = self.db.execute(
                update(Variant)
                .where(Variant.id == variant_id, Variant.stock_qty == observed)
                .values(stock_qty=target)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                self._expire_cached(variant_id)
                return target - observed
            logger.warning(
                f"Stock changed under adjustment of variant {variant_id}, retrying",
                extra={'extra_fields': {'variant_id': variant_id, 'observed': observed}},
            )
        raise StockConflict(variant_id, delta)

    def _expire_cached(self, variant_id: str):
        # Loaded Variant objects would otherwise keep the pre-update quantity
        for obj in list(self.db.identity_map.values()):
            if isinstance(obj, Variant) and obj.id == variant_id:
                self.db.expire(obj, ["stock_qty"])
