import pytest
from sqlalchemy import func, select
from storefront.domain.models import StockMovement
from storefront.application.errors import StockConflict, NotFound
from storefront.application.ledger import InventoryLedger
from helpers import stock_of, movements_of


def ledger_balance(db, variant_id):
    db.expire_all()
    return db.execute(
        select(func.coalesce(func.sum(StockMovement.delta), 0)).where(StockMovement.variant_id == variant_id)
    ).scalar_one()


def test_guarded_decrement_writes_stock_and_movement(db, make_variant):
    variant = make_variant(stock_qty=5)

    movement = InventoryLedger(db).apply_stock_change(variant.id, -3, "Order RR-1")
    db.commit()

    assert movement.delta == -3
    assert stock_of(db, variant.id) == 2
    assert [(m.delta, m.reason, m.actor_admin_id) for m in movements_of(db, variant.id)] == [(-3, "Order RR-1", None)]


def test_guarded_decrement_never_goes_negative(db, make_variant):
    variant = make_variant(stock_qty=2)
    ledger = InventoryLedger(db)

    with pytest.raises(StockConflict):
        ledger.apply_stock_change(variant.id, -3, "Order RR-2")
    db.rollback()

    assert stock_of(db, variant.id) == 2
    assert movements_of(db, variant.id) == []


def test_guarded_decrement_can_take_the_last_unit(db, make_variant):
    variant = make_variant(stock_qty=3)

    InventoryLedger(db).apply_stock_change(variant.id, -3, "Order RR-3")
    db.commit()

    assert stock_of(db, variant.id) == 0


def test_loaded_variant_sees_new_stock(db, make_variant):
    variant = make_variant(stock_qty=4)

    InventoryLedger(db).apply_stock_change(variant.id, -1, "Order RR-4")

    assert variant.stock_qty == 3


def test_floored_adjustment_clamps_at_zero_and_records_applied_delta(db, make_variant):
    variant = make_variant(stock_qty=2)

    movement = InventoryLedger(db).apply_stock_change(variant.id, -5, "Damaged", actor="admin-1", floor_at_zero=True)
    db.commit()

    assert stock_of(db, variant.id) == 0
    assert movement.delta == -2
    assert movement.actor_admin_id == "admin-1"
    assert movement.reason == "Damaged"


def test_floored_adjustment_restocks(db, make_variant):
    variant = make_variant(stock_qty=1)

    InventoryLedger(db).apply_stock_change(variant.id, 10, "Restock", actor="admin-1", floor_at_zero=True)
    db.commit()

    assert stock_of(db, variant.id) == 11


def test_blank_reason_is_stored_as_null(db, make_variant):
    variant = make_variant(stock_qty=1)

    movement = InventoryLedger(db).apply_stock_change(variant.id, 1, "", actor="admin-1", floor_at_zero=True)

    assert movement.reason is None


def test_unknown_variant(db):
    with pytest.raises(NotFound):
        InventoryLedger(db).apply_stock_change("missing", 3, "Restock", floor_at_zero=True)


def test_movements_always_sum_to_the_stock_change(db, make_variant):
    initial = 7
    variant = make_variant(stock_qty=initial)
    ledger = InventoryLedger(db)
    steps = [
        (-3, False),
        (5, True),
        (-20, True),
        (4, True),
        (-4, False),
    ]

    for delta, floored in steps:
        ledger.apply_stock_change(variant.id, delta, "step", actor="admin-1" if floored else None, floor_at_zero=floored)
        db.commit()
        assert initial + ledger_balance(db, variant.id) == stock_of(db, variant.id)

    with pytest.raises(StockConflict):
        ledger.apply_stock_change(variant.id, -1, "Order RR-5")
    db.rollback()

    assert stock_of(db, variant.id) == 0
    assert initial + ledger_balance(db, variant.id) == 0
