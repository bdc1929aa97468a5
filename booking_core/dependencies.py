"""Reusable FastAPI dependencies for auth, database access and the booking engine."""
from functools import lru_cache
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .admission import BookingAdmissionEngine
from .auth import decode_token, requester_id_from_claims
from .database import get_db
from .directory import SqlDirectory
from .events import get_emitter
from .models import RoleEnum, User

oauth_scheme = OAuth2PasswordBearer(tokenUrl="/users/login")


def get_current_user(token: str = Depends(oauth_scheme), db: Session = Depends(get_db)) -> User:
    user = db.get(User, requester_id_from_claims(decode_token(token)))
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is deactivated")
    return current_user


def allow_roles(*roles: RoleEnum) -> Callable[[User], User]:
    def dependency(current_user: User = Depends(get_current_active_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return dependency


@lru_cache
def get_admission_engine() -> BookingAdmissionEngine:
    """Process-wide engine; its lock registry must be shared by all requests."""

    return BookingAdmissionEngine(directory=SqlDirectory(), emitter=get_emitter())
