from datetime import time, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from app import models  # noqa: F401
from app.main import app
from app.db import get_session
from app.auth import hash_password, token_for_user
from app.core import now_local
from app.models import User, Salon, Service, Staff
from app.routers.staff_routes import add_default_schedule

PASSWORD = "secret-pass-123"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture
def engine():
    # one shared in-memory database per test
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(session):
    def override_get_session():
        return session

    app.dependency_overrides[get_session] = override_get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(session, email, role="CUSTOMER", name=None, phone=None):
    user = User(
        email=email,
        phone=phone,
        name=name or email.split("@")[0],
        password_hash=PASSWORD_HASH,
        role=role,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def auth_headers(user):
    token = token_for_user(user)
    return {"Authorization": f"Bearer {token}"}


def next_workday(days_ahead=1):
    """A date at least ``days_ahead`` days out that is not a Sunday."""
    day = now_local().date() + timedelta(days=days_ahead)
    while day.weekday() == 6:
        day += timedelta(days=1)
    return day


@pytest.fixture
def customer(session):
    return make_user(session, "khach@example.com", name="Khách Hàng", phone="0909111111")


@pytest.fixture
def other_customer(session):
    return make_user(session, "khach2@example.com", name="Khách Hai", phone="0909222222")


@pytest.fixture
def owner(session):
    return make_user(session, "owner@example.com", role="SALON_OWNER", name="Chủ Tiệm")


@pytest.fixture
def admin(session):
    return make_user(session, "admin@example.com", role="SUPER_ADMIN", name="Admin")


@pytest.fixture
def stylist_user(session):
    return make_user(session, "minh@example.com", role="STAFF", name="Minh Barber")


@pytest.fixture
def salon(session, owner):
    salon = Salon(
        owner_id=owner.id,
        name="Reetro Quận 1",
        slug="reetro-quan-1",
        address="123 Nguyễn Huệ",
        city="Hồ Chí Minh",
        district="Quận 1",
        phone="0909123456",
        open_time=time(8, 30),
        close_time=time(20, 30),
        working_days=[0, 1, 2, 3, 4, 5, 6],
        bank_code="MB",
        bank_account="0123456789",
        bank_name="REETRO",
    )
    session.add(salon)
    session.commit()
    session.refresh(salon)
    return salon


@pytest.fixture
def services(session, salon):
    items = [
        Service(salon_id=salon.id, name="Cắt tóc nam", price=100000, duration=30, order=1),
        Service(salon_id=salon.id, name="Gội massage", price=50000, duration=15, category="COMBO", order=2),
        Service(salon_id=salon.id, name="Nhuộm tóc", price=250000, duration=90, category="HAIR_COLORING", order=3),
    ]
    for item in items:
        session.add(item)
    session.commit()
    for item in items:
        session.refresh(item)
    return items


@pytest.fixture
def staff(session, salon, stylist_user):
    member = Staff(user_id=stylist_user.id, salon_id=salon.id)
    session.add(member)
    session.flush()
    add_default_schedule(session, member.id)
    session.commit()
    session.refresh(member)
    return member


@pytest.fixture
def book(client, customer):
    """Create a booking through the API and return the response."""
    def _book(salon_id, service_ids, day, time_slot, staff_id=None, headers=None):
        body = {
            "salon_id": salon_id,
            "service_ids": service_ids,
            "date": day.isoformat(),
            "time_slot": time_slot,
        }
        if staff_id is not None:
            body["staff_id"] = staff_id
        return client.post("/bookings", json=body, headers=headers or auth_headers(customer))
    return _book
