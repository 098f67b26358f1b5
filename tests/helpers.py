from sqlalchemy import func, select
from storefront.domain.models import StockMovement, Variant


def build_payload(*items, payment=None, email="jane@example.com", building="Unit 4B"):
    payload = {
        "customer": {"firstName": "Jane", "lastName": "Cruz", "email": email, "phone": "09170000000"},
        "shipping": {
            "houseNumber": "12",
            "streetName": "Mabini St",
            "building": building,
            "region": "Central Luzon",
            "province": "Pampanga",
            "city": "San Fernando",
            "barangay": "Dolores",
            "postalCode": "2000",
        },
        "items": list(items),
    }
    if payment is not None:
        payload["payment"] = payment
    return payload


def line(variant, quantity=1, size=None, color=None):
    return {
        "productId": variant.product_id,
        "size": size if size is not None else variant.size,
        "color": color if color is not None else variant.color,
        "quantity": quantity,
    }


def count(db, model):
    db.expire_all()
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def stock_of(db, variant_id):
    db.expire_all()
    return db.execute(select(Variant.stock_qty).where(Variant.id == variant_id)).scalar_one()


def movements_of(db, variant_id):
    db.expire_all()
    return db.execute(
        select(StockMovement).where(StockMovement.variant_id == variant_id).order_by(StockMovement.id)
    ).scalars().all()


