import os
import tempfile
from decimal import Decimal

# Settings are read once, so the environment must be in place before craftstore is imported.
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.mkdtemp(prefix="craftstore-"), "unused.db")
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-1234"
os.environ["ENVIRONMENT"] = "test"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="craftstore-uploads-")
os.environ["LOG_LEVEL"] = "WARNING"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from craftstore.core.security import issue_token  # noqa: E402
from craftstore.db.models import Base  # noqa: E402
from craftstore.db.session import build_engine, build_session_factory  # noqa: E402
from craftstore.main import create_app  # noqa: E402
from craftstore.schemas import CategoryCreate, OrderCreate, ProductCreate, RegisterRequest  # noqa: E402


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'craftstore.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def app(session_factory):
    return create_app(session_factory=session_factory)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def repos(app):
    return app.state.repositories


@pytest.fixture
def cache(app):
    return app.state.cache


@pytest.fixture
def category(repos):
    return repos.categories.create(CategoryCreate(name="Baskets", description="Woven by hand"))


@pytest.fixture
def make_product(repos, category):
    def _make(**overrides):
        data = {
            "name": "Seagrass basket",
            "description": "Hand woven seagrass basket",
            "price": Decimal("850.00"),
            "image": "/uploads/basket.jpg",
            "stock": 5,
            "category_id": category.id,
        }
        data.update(overrides)
        return repos.products.create_product(ProductCreate(**data))

    return _make


@pytest.fixture
def order_for():
    def _order(*items, **overrides):
        data = {
            "customer_name": "Asha Rai",
            "customer_phone": "9800000001",
            "district": "Kathmandu",
            "road": "Thamel Marg",
            "items": [{"product_id": product_id, "quantity": quantity} for product_id, quantity in items],
        }
        data.update(overrides)
        return OrderCreate(**data)

    return _order


@pytest.fixture
def order_json():
    def _payload(*items, **overrides):
        payload = {
            "customerName": "Asha Rai",
            "customerPhone": "9800000001",
            "district": "Kathmandu",
            "road": "Thamel Marg",
            "items": [{"productId": product_id, "quantity": quantity} for product_id, quantity in items],
        }
        payload.update(overrides)
        return payload

    return _payload


@pytest.fixture
def admin_user(repos):
    return repos.users.upsert_admin("admin@example.com", "admin-password", "Shop Admin")


@pytest.fixture
def admin_headers(admin_user):
    token = issue_token(admin_user.id, admin_user.email, admin_user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_user(repos):
    return repos.users.create(
        RegisterRequest(email="customer@example.com", password="customer-password", name="Bina Shrestha")
    )


@pytest.fixture
def customer_headers(customer_user):
    token = issue_token(customer_user.id, customer_user.email, customer_user.role.value)
    return {"Authorization": f"Bearer {token}"}
