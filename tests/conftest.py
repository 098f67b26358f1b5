import uuid
import pytest
from fastapi.testclient import TestClient
from storefront.core_settings import Settings
from storefront.main import create_app
from storefront.domain.models import Product, ProductStatus, Variant
from storefront.infrastructure.auth import create_access_token


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'storefront.db'}",
        POSTGRES_HOST=None,
        REDIS_URL=None,
        ADMIN_JWT_SECRET="test-secret",
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(app, client):
    # client first: the lifespan creates the tables
    session = app.state.database.session()
    yield session
    session.close()


@pytest.fixture
def admin_headers(settings):
    return {"Authorization": f"Bearer {create_access_token('admin-1', settings)}"}


@pytest.fixture
def make_product(db):
    def _make(title="Revival Tee", base_price=1000, status=ProductStatus.ACTIVE.value, **kwargs):
        product = Product(
            slug=f"{title.lower().replace(' ', '-')}-{uuid.uuid4().hex[:6]}",
            title=title,
            status=status,
            base_price=base_price,
            tags=kwargs.pop("tags", []),
            **kwargs,
        )
        db.add(product)
        db.commit()
        return product
    return _make


@pytest.fixture
def make_variant(db, make_product):
    def _make(product=None, size="M", color="Black", stock_qty=5, low_stock_threshold=2, price_override=None, is_active=True, sku=None, **product_kwargs):
        if product is None:
            product = make_product(**product_kwargs)
        variant = Variant(
            product_id=product.id,
            size=size,
            color=color,
            sku=sku or f"SKU-{uuid.uuid4().hex[:8].upper()}",
            stock_qty=stock_qty,
            low_stock_threshold=low_stock_threshold,
            price_override=price_override,
            is_active=is_active,
        )
        db.add(variant)
        db.commit()
        return variant
    return _make
