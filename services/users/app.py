from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from booking_core import auth
from booking_core.admission import BookingAdmissionEngine
from booking_core.config import get_settings
from booking_core.database import Base, engine, get_db
from booking_core.dependencies import allow_roles, get_admission_engine, get_current_active_user
from booking_core.errors import register_error_handlers
from booking_core.logging_middleware import add_audit_middleware, configure_core_logging
from booking_core.models import RoleEnum, User
from booking_core.rate_limit import apply_rate_limiter, limiter
from booking_core.schemas import ReservationRecord, Token, UserCreate, UserRead, UserUpdate

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Users Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    register_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "users")
    configure_core_logging()
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "users"}


@app.post("/users/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register_user(request: Request, user_in: UserCreate, db: Session = Depends(get_db)) -> User:
    if db.query(User).filter((User.username == user_in.username) | (User.email == user_in.email)).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username or email already exists")

    # The first admin bootstraps the system; afterwards elevated roles are ignored on self-registration.
    admins_exist = db.query(User).filter(User.role == RoleEnum.ADMIN).first() is not None
    role = user_in.role if not admins_exist else RoleEnum.REGULAR

    user = User(
        name=user_in.name,
        username=user_in.username,
        email=user_in.email,
        role=role,
        hashed_password=auth.get_password_hash(user_in.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@app.post("/users/login", response_model=Token)
@limiter.limit("10/minute")
def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)) -> Token:
    user = auth.authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect username or password")
    return Token(access_token=auth.create_token_for_user(user))


@app.get("/users", response_model=list[UserRead])
@limiter.limit("20/minute")
def list_users(
    request: Request,
    _: User = Depends(allow_roles(RoleEnum.ADMIN)),
    db: Session = Depends(get_db),
) -> list[User]:
    return db.query(User).order_by(User.id).all()


def _visible_user(db: Session, username: str, current_user: User) -> User:
    user = db.query(User).filter(User.username == username).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if current_user.role != RoleEnum.ADMIN and current_user.username != username:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return user


@app.get("/users/{username}", response_model=UserRead)
@limiter.limit("30/minute")
def get_user(
    request: Request,
    username: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> User:
    return _visible_user(db, username, current_user)


@app.put("/users/{username}", response_model=UserRead)
@limiter.limit("10/minute")
def update_user(
    request: Request,
    username: str,
    user_update: UserUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    booking_engine: BookingAdmissionEngine = Depends(get_admission_engine),
) -> User:
    user = _visible_user(db, username, current_user)

    if user_update.email and user_update.email != user.email:
        if db.query(User).filter(User.email == user_update.email).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already in use")
        user.email = user_update.email
    if user_update.name:
        user.name = user_update.name
    if user_update.role and current_user.role == RoleEnum.ADMIN:
        user.role = user_update.role
    if user_update.password:
        user.hashed_password = auth.get_password_hash(user_update.password)

    db.commit()
    db.refresh(user)
    booking_engine.directory.forget_requester(user.id)
    return user


@app.delete("/users/{username}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("5/minute")
def deactivate_user(
    request: Request,
    username: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    booking_engine: BookingAdmissionEngine = Depends(get_admission_engine),
) -> None:
    """Deactivate the account. Its reservations are kept and it can no longer log in or book."""
    user = _visible_user(db, username, current_user)
    user.is_active = False
    db.commit()
    booking_engine.directory.forget_requester(user.id)


@app.get("/users/{username}/bookings", response_model=list[ReservationRecord])
@limiter.limit("30/minute")
def user_booking_history(
    request: Request,
    username: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
    booking_engine: BookingAdmissionEngine = Depends(get_admission_engine),
) -> list[ReservationRecord]:
    user = _visible_user(db, username, current_user)
    return booking_engine.list_for_requester(user.id)
