from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core.db import Base, get_db
from core import config as core_config
from core import redis as core_redis
from services import email as email_service
from models.address import Address
from models.brand import Brand
from models.product import Product
from models.user import User, ROLE_ADMIN, ROLE_CUSTOMER, ROLE_VENDOR
from models.vendor import Vendor, VENDOR_APPROVED
from security.password import hash_password
from security import jwt as jwt_utils


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    # Speed up for tests
    core_config.settings.OTP_TTL_SECONDS = 600
    core_config.settings.OTP_RESEND_INTERVAL_SECONDS = 0
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.REFRESH_SECRET = "test-refresh"
    core_config.settings.CRON_SECRET = ""
    core_config.settings.TESTING = True
    yield


@pytest.fixture(autouse=True)
def clear_redis():
    core_redis.redis_client.flushall()
    yield
    core_redis.redis_client.flushall()


@pytest.fixture()
def db_session_override():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _fk_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()

    def _get_db():
        try:
            yield db
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = _get_db
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db(db_session_override):
    return db_session_override


@pytest.fixture(autouse=True)
def mock_email_send(monkeypatch):
    sent = []

    def _fake_send(to_email: str, subject: str, body: str) -> None:
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(email_service, "send_email", _fake_send)
    return sent


@pytest.fixture()
def client(db_session_override):
    with TestClient(app) as c:
        yield c


def auth_headers_for(user: User) -> dict:
    token = jwt_utils.create_access_token(user.id, user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: str = ROLE_CUSTOMER, email: str | None = None, password: str = "testpass123", **kwargs) -> User:
        counter["n"] += 1
        user = User(
            first_name=kwargs.pop("first_name", "Test"),
            last_name=kwargs.pop("last_name", f"User{counter['n']}"),
            email=email or f"user{counter['n']}@example.com",
            password_hash=hash_password(password),
            role=role,
            is_verified=kwargs.pop("is_verified", True),
            **kwargs,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def customer(make_user):
    return make_user(email="customer@example.com")


@pytest.fixture
def admin(make_user):
    return make_user(role=ROLE_ADMIN, email="admin@example.com")


@pytest.fixture
def make_vendor(db, make_user):
    def _make(name: str = "Fresh Springs", commission_rate: str = "10.00", **kwargs) -> Vendor:
        user = make_user(role=ROLE_VENDOR)
        vendor = Vendor(
            user_id=user.id,
            business_name=name,
            contact_email=user.email,
            contact_phone="01711000000",
            status=VENDOR_APPROVED,
            commission_rate=Decimal(commission_rate),
            balance=Decimal("0.00"),
            **kwargs,
        )
        db.add(vendor)
        db.flush()
        slug = name.lower().replace(" ", "-")
        db.add(Brand(vendor_id=vendor.id, name=name, slug=slug, is_active=True))
        db.commit()
        db.refresh(vendor)
        return vendor

    return _make


@pytest.fixture
def vendor(make_vendor):
    return make_vendor()


@pytest.fixture
def make_product(db):
    def _make(brand: Brand, slug: str, price: str = "50.00", stock: int = 100, **kwargs) -> Product:
        product = Product(
            brand_id=brand.id,
            name=kwargs.pop("name", slug.replace("-", " ").title()),
            slug=slug,
            price=Decimal(price),
            stock=stock,
            is_active=kwargs.pop("is_active", True),
            images=kwargs.pop("images", []),
            **kwargs,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def bottle(vendor, make_product):
    return make_product(vendor.brands[0], "mineral-water-1l", price="50.00", type="BOTTLE", volume_ml=1000)


@pytest.fixture
def jar(vendor, make_product):
    return make_product(
        vendor.brands[0], "water-jar-19l", price="120.00", type="JAR", volume_ml=19000, deposit=Decimal("300.00")
    )


@pytest.fixture
def address(db, customer):
    addr = Address(
        user_id=customer.id,
        name="Rahim Uddin",
        phone="01712345678",
        address="House 12, Road 5, Dhanmondi",
        city="Dhaka",
        district="Dhaka",
        type="HOME",
        is_default=True,
    )
    db.add(addr)
    db.commit()
    db.refresh(addr)
    return addr


@pytest.fixture
def auth_for():
    return auth_headers_for


@pytest.fixture
def customer_headers(customer):
    return auth_headers_for(customer)


@pytest.fixture
def admin_headers(admin):
    return auth_headers_for(admin)


@pytest.fixture
def vendor_headers(vendor):
    return auth_headers_for(vendor.user)


@pytest.fixture
def make_order(db, customer, address):
    """Place an order through the checkout service from (product, quantity, exchange_jars) lines."""
    from models.cart import CartItem
    from services.checkout import get_or_create_cart, place_order

    def _make(lines, payment_method: str = "COD", user: User | None = None, address_id: int | None = None, **kwargs):
        buyer = user or customer
        cart = get_or_create_cart(db, buyer.id)
        for product, quantity, *rest in lines:
            cart.items.append(CartItem(product_id=product.id, quantity=quantity, exchange_jars=rest[0] if rest else 0))
        db.flush()
        order = place_order(db, buyer, address_id or address.id, payment_method=payment_method, **kwargs)
        db.commit()
        db.refresh(order)
        return order

    return _make
