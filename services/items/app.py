from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from circuitbreaker import circuit
from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import exists
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_core.admission import BookingAdmissionEngine, to_utc_naive
from booking_core.config import get_settings
from booking_core.conflicts import overlap_filter
from booking_core.database import Base, engine, get_db
from booking_core.dependencies import allow_roles, get_admission_engine
from booking_core.errors import InvalidInterval, register_error_handlers
from booking_core.logging_middleware import add_audit_middleware, configure_core_logging
from booking_core.models import Item, RoleEnum, User
from booking_core.rate_limit import apply_rate_limiter, limiter
from booking_core.schemas import ItemCreate, ItemRead, ItemUpdate, ReservationRecord

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Items Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    register_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "items")
    configure_core_logging()
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "items"}


@app.post("/items", response_model=ItemRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def add_item(
    request: Request,
    item_in: ItemCreate,
    _: User = Depends(allow_roles(RoleEnum.ADMIN)),
    db: Session = Depends(get_db),
) -> Item:
    item = Item(**item_in.model_dump())
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@app.get("/items", response_model=List[ItemRead])
@circuit(failure_threshold=5, recovery_timeout=60, expected_exception=SQLAlchemyError)
def list_items(
    request: Request,
    category: Optional[str] = None,
    location: Optional[str] = None,
    max_price: Optional[float] = Query(default=None, gt=0),
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    db: Session = Depends(get_db),
) -> List[Item]:
    """List bookable items, optionally only those free for the whole of ``[start_time, end_time]``."""
    query = db.query(Item).filter(Item.is_available.is_(True))
    if category:
        query = query.filter(Item.category == category)
    if location:
        query = query.filter(Item.location.ilike(f"%{location}%"))
    if max_price is not None:
        query = query.filter(Item.price_per_day <= max_price)
    if (start_time is None) != (end_time is None):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_time and end_time go together")
    if start_time is not None and end_time is not None:
        start, end = to_utc_naive(start_time), to_utc_naive(end_time)
        if start >= end:
            raise InvalidInterval()
        query = query.filter(~exists().where(overlap_filter(Item.id, start, end)))
    return query.order_by(Item.price_per_day.asc(), Item.id).all()


@app.get("/items/{item_id}", response_model=ItemRead)
@limiter.limit("60/minute")
def get_item(request: Request, item_id: int, db: Session = Depends(get_db)) -> Item:
    item = db.get(Item, item_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    return item


@app.put("/items/{item_id}", response_model=ItemRead)
@limiter.limit("15/minute")
def update_item(
    request: Request,
    item_id: int,
    item_update: ItemUpdate,
    _: User = Depends(allow_roles(RoleEnum.ADMIN)),
    db: Session = Depends(get_db),
) -> Item:
    item = db.get(Item, item_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")

    for key, value in item_update.model_dump(exclude_unset=True).items():
        setattr(item, key, value)
    db.commit()
    db.refresh(item)
    return item


@app.get("/items/{item_id}/reservations", response_model=List[ReservationRecord])
@limiter.limit("30/minute")
def item_reservations(
    request: Request,
    item_id: int,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    _: User = Depends(allow_roles(RoleEnum.ADMIN, RoleEnum.SERVICE)),
    db: Session = Depends(get_db),
    booking_engine: BookingAdmissionEngine = Depends(get_admission_engine),
) -> List[ReservationRecord]:
    """All reservations of an item, or only the blocking ones meeting the given window."""
    if not db.get(Item, item_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    if start_time is not None and end_time is not None:
        return booking_engine.find_conflicts(item_id, start_time, end_time)
    return booking_engine.list_for_resource(item_id)
