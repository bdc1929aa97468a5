from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from booking_core.admission import BookingAdmissionEngine
from booking_core.config import get_settings
from booking_core.database import Base, engine
from booking_core.dependencies import allow_roles, get_admission_engine, get_current_active_user
from booking_core.errors import register_error_handlers
from booking_core.logging_middleware import add_audit_middleware, configure_core_logging
from booking_core.models import ReservationStatus, RoleEnum, User
from booking_core.rate_limit import BOOKING_READ_LIMIT, BOOKING_WRITE_LIMIT, apply_rate_limiter, limiter
from booking_core.schemas import AvailabilityRead, BookingCreate, ReservationRecord

settings = get_settings()

PRIVILEGED_ROLES = {RoleEnum.ADMIN, RoleEnum.SERVICE}


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Bookings Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    register_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "bookings")
    configure_core_logging()
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "bookings"}


@app.post("/bookings", response_model=ReservationRecord, status_code=status.HTTP_201_CREATED)
@limiter.limit(BOOKING_WRITE_LIMIT)
def create_booking(
    request: Request,
    booking_in: BookingCreate,
    current_user: User = Depends(get_current_active_user),
    booking_engine: BookingAdmissionEngine = Depends(get_admission_engine),
) -> ReservationRecord:
    requester_id = current_user.id
    if booking_in.requester_id is not None and booking_in.requester_id != current_user.id:
        if current_user.role not in PRIVILEGED_ROLES:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot book on behalf of another user")
        requester_id = booking_in.requester_id

    return booking_engine.create_booking(
        requester_id=requester_id,
        resource_id=booking_in.item_id,
        start=booking_in.start_time,
        end=booking_in.end_time,
        notes=booking_in.notes,
    )


@app.get("/bookings", response_model=List[ReservationRecord])
@limiter.limit("30/minute")
def list_bookings(
    request: Request,
    status_filter: Optional[ReservationStatus] = Query(default=None, alias="status"),
    item_id: Optional[int] = None,
    requester_id: Optional[int] = None,
    _: User = Depends(allow_roles(*PRIVILEGED_ROLES)),
    booking_engine: BookingAdmissionEngine = Depends(get_admission_engine),
) -> List[ReservationRecord]:
    return booking_engine.search(requester_id=requester_id, resource_id=item_id, status=status_filter)


@app.get("/bookings/me", response_model=List[ReservationRecord])
@limiter.limit(BOOKING_READ_LIMIT)
def list_my_bookings(
    request: Request,
    current_user: User = Depends(get_current_active_user),
    booking_engine: BookingAdmissionEngine = Depends(get_admission_engine),
) -> List[ReservationRecord]:
    return booking_engine.list_for_requester(current_user.id)


@app.get("/bookings/availability", response_model=AvailabilityRead)
@limiter.limit(BOOKING_READ_LIMIT)
def check_availability(
    request: Request,
    item_id: int,
    start_time: datetime = Query(...),
    end_time: datetime = Query(...),
    booking_engine: BookingAdmissionEngine = Depends(get_admission_engine),
) -> AvailabilityRead:
    available = booking_engine.is_available(item_id, start_time, end_time)
    return AvailabilityRead(item_id=item_id, start_time=start_time, end_time=end_time, available=available)


@app.get("/bookings/{booking_id}", response_model=ReservationRecord)
@limiter.limit(BOOKING_READ_LIMIT)
def get_booking(
    request: Request,
    booking_id: str,
    current_user: User = Depends(get_current_active_user),
    booking_engine: BookingAdmissionEngine = Depends(get_admission_engine),
) -> ReservationRecord:
    booking = booking_engine.get_booking(booking_id)
    if current_user.role not in PRIVILEGED_ROLES and booking.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return booking
