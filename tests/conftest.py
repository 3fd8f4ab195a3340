from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import order_assistant.db as db
from order_assistant.app_factory import create_app
from order_assistant.models import Base, Business, Item, OpeningHours
from order_assistant.routes import limiter
from order_assistant.services import cart, order
from order_assistant.services.cart import CartKey
from order_assistant.services.catalog_cache import catalog_cache
from order_assistant.services.session import get_or_create_session
from order_assistant.time_utils import DAY_NAMES
from tests.helpers import CUSTOMER, NOW


@pytest.fixture
def engine():
    """In-memory SQLite shared by every connection (StaticPool)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Patch the db module used by the app
    monkeypatch.setattr(db, "engine", engine)
    monkeypatch.setattr(db, "SessionLocal", TestingSessionLocal)

    # The catalog cache is process-wide and keyed by business id
    catalog_cache.clear()
    yield TestingSessionLocal
    catalog_cache.clear()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def business(db_session):
    """
    A business open all day, every day, with a small catalog:

        Trio (4.50), Trio Box (12.00), Catering Tray (45.00, schedulable,
        3h lead time, 2h cancellation window), Lemonade (2.00), and an
        unavailable Soup of the Day.
    """
    biz = Business(name="Trio Kitchen", timezone="UTC", delivery_fee=3.5)
    db_session.add(biz)
    db_session.flush()

    db_session.add_all([
        Item(business_id=biz.id, name="Trio", price=4.5, position=1),
        Item(business_id=biz.id, name="Trio Box", price=12.0, position=2),
        Item(
            business_id=biz.id,
            name="Catering Tray",
            price=45.0,
            position=3,
            is_schedulable=True,
            min_schedule_hours=3,
            cancelable_before_hours=2,
        ),
        Item(business_id=biz.id, name="Lemonade", price=2.0, position=4),
        Item(business_id=biz.id, name="Soup of the Day", price=6.0, position=5, availability="unavailable"),
    ])
    for day in DAY_NAMES:
        db_session.add(OpeningHours(owner_type="business", owner_id=biz.id, day_of_week=day, is_closed=False))
    db_session.commit()
    return biz


@pytest.fixture
def key(business):
    return CartKey(business_id=business.id, customer_id=CUSTOMER)


@pytest.fixture
def chat_session(db_session, business):
    return get_or_create_session(db_session, business.id, CUSTOMER, "whatsapp", mode="delivery")


@pytest.fixture
def place_order(db_session, key):
    """Confirm an order for `names`, scheduled `hours_ahead` after NOW."""

    def _place(names, hours_ahead=4, delivery_type="takeaway"):
        for name in names:
            cart.add_item(db_session, key, name, now=NOW)
        cart.set_delivery_type(db_session, key, delivery_type)
        cart.set_scheduled_time(db_session, key, NOW + timedelta(hours=hours_ahead), now=NOW)
        return order.confirm_order(db_session, key, now=NOW).order

    return _place


@pytest.fixture
def client(session_factory, business, monkeypatch):
    """FastAPI TestClient bound to the in-memory database."""
    monkeypatch.setattr(limiter, "enabled", False)
    app = create_app()

    def override_get_db():
        db_sess = session_factory()
        try:
            yield db_sess
        finally:
            db_sess.close()

    app.dependency_overrides[db.get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
