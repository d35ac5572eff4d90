import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core.db import get_db, init_db
from core import config as core_config
from models.address import Address
from models.order import Order, OrderStatus, PaymentStatus
from models.order_item import OrderItem
from models.product import Product
from models.promo_code import PromoCode
from models.user import User
from security import jwt as jwt_utils
from services import reconciliation
from services.gateway import InitResult, get_paystack_gateway, get_stripe_gateway
from services.paystack import PaystackGateway
from services.stripe_gateway import StripeGateway

PAYSTACK_SECRET = "sk_test_secret"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"


class FakePaystack(PaystackGateway):
    """Paystack client with a scripted initialize/verify; webhook signing stays real."""

    def __init__(self):
        super().__init__(secret_key=PAYSTACK_SECRET)
        self.error = None
        self.calls = []
        self.verify_calls = []
        self.status = "success"

    def initialize(self, request):
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        return InitResult(
            authorization_url=f"https://checkout.paystack.com/{request.reference}",
            reference=request.reference,
            access_code="ACCESS123",
        )

    def verify(self, reference):
        self.verify_calls.append(reference)
        if isinstance(self.status, Exception):
            raise self.status
        return self.status


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.BASE_URL = "http://shop.test"
    core_config.settings.TESTING = True
    yield


@pytest.fixture()
def db_session_override():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    init_db(engine)

    db = TestingSessionLocal()

    def _get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()


@pytest.fixture()
def paystack(db_session_override):
    gateway = FakePaystack()
    app.dependency_overrides[get_paystack_gateway] = lambda: gateway
    return gateway


@pytest.fixture()
def stripe_gateway(db_session_override):
    gateway = StripeGateway(api_key="sk_test_stripe", webhook_secret=STRIPE_WEBHOOK_SECRET, cancel_url="http://shop.test/checkout")
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    return gateway


@pytest.fixture(autouse=True)
def notifications(monkeypatch):
    sent = []

    def _fake_dispatch(order_id: int) -> bool:
        sent.append(order_id)
        return True

    monkeypatch.setattr(reconciliation, "dispatch_order_confirmation", _fake_dispatch)
    return sent


@pytest.fixture()
def client(db_session_override, paystack, stripe_gateway):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def products(db_session_override):
    """A small catalog mirroring the storefront's seed data."""
    rows = [
        Product(id="1", name="Band Collar Short Sleeve Shirt", slug="band-collar-short-sleeve-shirt", price=Decimal("185.00"), stock=10,
                sizes=["XS", "S", "M", "L", "XL"], colors=["Gray"]),
        Product(id="2", name="Croc Embossed Slide", slug="croc-embossed-slide", price=Decimal("145.00"), stock=1,
                sizes=["8", "9", "10"], colors=["Black"]),
        Product(id="3", name="Pleated Linen Trouser", slug="pleated-linen-trouser", price=Decimal("150.00"), stock=20,
                sizes=["S", "M", "L"], colors=["Black", "Sand"]),
        Product(id="4", name="Retired Overshirt", slug="retired-overshirt", price=Decimal("99.00"), stock=5, is_active=False),
    ]
    db_session_override.add_all(rows)
    db_session_override.commit()
    return {p.id: p for p in rows}


@pytest.fixture
def promo(db_session_override):
    code = PromoCode(code="SAVE50", discount_type="fixed", discount_value=Decimal("50.00"), is_active=True, used_count=0)
    db_session_override.add(code)
    db_session_override.commit()
    return code


@pytest.fixture
def test_user(db_session_override):
    user = User(first_name="Ama", last_name="Mensah", email="ama@example.com")
    db_session_override.add(user)
    db_session_override.commit()
    db_session_override.refresh(user)
    return user


@pytest.fixture
def other_user(db_session_override):
    user = User(first_name="Kofi", last_name="Boateng", email="kofi@example.com")
    db_session_override.add(user)
    db_session_override.commit()
    db_session_override.refresh(user)
    return user


@pytest.fixture
def auth_headers(test_user):
    return {"Authorization": f"Bearer {jwt_utils.create_access_token(str(test_user.id))}"}


@pytest.fixture
def checkout_payload():
    """Builder for a valid checkout body: 2 x 150.00 trousers, standard delivery."""

    def _build(**overrides):
        payload = {
            "items": [
                {
                    "productId": "3",
                    "name": "Pleated Linen Trouser",
                    "image": "/SOG3.jpg",
                    "price": 150,
                    "quantity": 2,
                    "size": "M",
                    "color": "Black",
                }
            ],
            "shipping": {
                "fullName": "Ama Mensah",
                "email": "ama@example.com",
                "phone": "0244123456",
                "addressLine1": "12 Oxford Street",
                "city": "Accra",
                "region": "Greater Accra",
                "postalCode": "GA-123",
                "country": "Ghana",
            },
            "deliveryMethod": "standard",
            "paymentMethod": "card",
        }
        payload.update(overrides)
        return payload

    return _build


@pytest.fixture
def make_order(db_session_override):
    """Persist an order directly, as if checkout had already run."""
    counter = {"n": 0}

    def _make(user=None, payment_status=PaymentStatus.PENDING, status=OrderStatus.PENDING, total="315.00",
              paystack_reference=None, stripe_payment_intent_id=None):
        counter["n"] += 1
        number = f"SOG-TEST-{counter['n']:04d}"
        address = Address(full_name="Ama Mensah", email="ama@example.com", city="Accra", country="Ghana",
                          user_id=user.id if user else None)
        db_session_override.add(address)
        db_session_override.flush()
        order = Order(
            order_number=number,
            idempotency_key=f"key-{counter['n']}",
            user_id=user.id if user else None,
            email="ama@example.com",
            currency="GHS",
            status=status.value,
            payment_status=payment_status.value,
            payment_method="card",
            delivery_method="standard",
            subtotal=Decimal("300.00"),
            shipping_cost=Decimal("15.00"),
            discount_amount=Decimal("0.00"),
            total_amount=Decimal(total),
            paystack_reference=paystack_reference if paystack_reference is not None else (None if stripe_payment_intent_id else number),
            stripe_payment_intent_id=stripe_payment_intent_id,
            shipping_address_id=address.id,
            items=[OrderItem(product_id="3", product_name="Pleated Linen Trouser", price=Decimal("150.00"), quantity=2, size="M")],
        )
        db_session_override.add(order)
        db_session_override.commit()
        return order

    return _make


def paystack_signature(payload: bytes, secret: str = PAYSTACK_SECRET) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha512).hexdigest()


def stripe_signature(payload: bytes, secret: str = STRIPE_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def sign_paystack():
    def _sign(event: dict):
        body = json.dumps(event).encode()
        return body, {"x-paystack-signature": paystack_signature(body), "Content-Type": "application/json"}

    return _sign


@pytest.fixture
def sign_stripe():
    def _sign(event: dict):
        body = json.dumps(event).encode()
        return body, {"stripe-signature": stripe_signature(body), "Content-Type": "application/json"}

    return _sign
