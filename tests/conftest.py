import os
from datetime import datetime
from decimal import Decimal
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("EVENT_PUBLISHING_ENABLED", "false")

from booking_core.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from booking_core.admission import BookingAdmissionEngine  # noqa: E402
from booking_core.auth import get_password_hash  # noqa: E402
from booking_core.database import Base, SessionLocal, engine  # noqa: E402
from booking_core.dependencies import get_admission_engine  # noqa: E402
from booking_core.directory import SqlDirectory  # noqa: E402
from booking_core.events import InMemoryEmitter  # noqa: E402
from booking_core.models import Item, RoleEnum, User  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402
from services.items.app import app as items_app  # noqa: E402
from services.users.app import app as users_app  # noqa: E402

# Fixed "now" for engine-level tests that use calendar dates from late 2024.
FIXED_NOW = datetime(2024, 11, 1, 9, 0)


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_user(db_session) -> Callable[..., User]:
    counter = {"n": 0}

    def factory(username: str | None = None, role: RoleEnum = RoleEnum.REGULAR) -> User:
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = User(
            name=username.title(),
            username=username,
            email=f"{username}@example.com",
            role=role,
            hashed_password=get_password_hash("Passw0rd!"),
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return factory


@pytest.fixture()
def make_item(db_session) -> Callable[..., Item]:
    def factory(
        name: str = "Camera",
        price_per_day: str = "50.00",
        is_available: bool = True,
        **extra,
    ) -> Item:
        item = Item(
            name=name,
            price_per_day=Decimal(price_per_day),
            is_available=is_available,
            **extra,
        )
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item

    return factory


@pytest.fixture()
def emitter() -> InMemoryEmitter:
    return InMemoryEmitter()


@pytest.fixture()
def booking_engine(emitter) -> BookingAdmissionEngine:
    """Engine with a fixed clock, for tests that book on fixed calendar dates."""
    return BookingAdmissionEngine(directory=SqlDirectory(cache_ttl=60), emitter=emitter, clock=lambda: FIXED_NOW)


@pytest.fixture()
def live_engine(emitter) -> Generator[BookingAdmissionEngine, None, None]:
    """Engine on the real clock wired into every service app."""
    live = BookingAdmissionEngine(directory=SqlDirectory(cache_ttl=60), emitter=emitter)
    apps = (users_app, items_app, bookings_app)
    for fastapi_app in apps:
        fastapi_app.dependency_overrides[get_admission_engine] = lambda: live
    yield live
    for fastapi_app in apps:
        fastapi_app.dependency_overrides.pop(get_admission_engine, None)


@pytest.fixture()
def users_client(live_engine) -> Generator[TestClient, None, None]:
    with TestClient(users_app) as client:
        yield client


@pytest.fixture()
def items_client(live_engine) -> Generator[TestClient, None, None]:
    with TestClient(items_app) as client:
        yield client


@pytest.fixture()
def bookings_client(live_engine) -> Generator[TestClient, None, None]:
    with TestClient(bookings_app) as client:
        yield client
