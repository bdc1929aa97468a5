"""Read-only lookup of requester and item records."""
from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from .cache import SimpleTTLCache
from .config import get_settings
from .database import SessionLocal
from .errors import RequesterNotFound, ResourceNotFound
from .models import Item, User
from .schemas import RequesterRecord, ResourceRecord

logger = logging.getLogger(__name__)


class Directory(Protocol):
    def resolve_requester(self, requester_id: int) -> RequesterRecord: ...

    def resolve_resource(self, resource_id: int) -> ResourceRecord: ...

    def forget_requester(self, requester_id: int) -> None: ...


class SqlDirectory:
    """Directory backed by the ``users`` and ``items`` tables.

    Requesters are cached for ``directory_cache_ttl`` seconds and deactivated
    users resolve as unknown. Items are read on every call because
    ``is_available`` is a hard gate and must be current.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        cache_ttl: Optional[int] = None,
    ) -> None:
        ttl = cache_ttl if cache_ttl is not None else get_settings().directory_cache_ttl
        self._session_factory = session_factory
        self._requesters: SimpleTTLCache[RequesterRecord] = SimpleTTLCache(ttl=max(ttl, 1))

    def resolve_requester(self, requester_id: int) -> RequesterRecord:
        return self._requesters.get_or_load(
            f"requester:{requester_id}", lambda: self._load_requester(requester_id)
        )

    def resolve_resource(self, resource_id: int) -> ResourceRecord:
        with self._session_factory() as session:
            item = session.get(Item, resource_id)
            if item is None:
                logger.info("Item %s not found in directory", resource_id)
                raise ResourceNotFound(f"Item {resource_id} not found")
            return ResourceRecord.model_validate(item)

    def forget_requester(self, requester_id: int) -> None:
        self._requesters.pop(f"requester:{requester_id}")

    def _load_requester(self, requester_id: int) -> RequesterRecord:
        with self._session_factory() as session:
            user = session.get(User, requester_id)
            if user is None or not user.is_active:
                logger.info("User %s not found in directory or deactivated", requester_id)
                raise RequesterNotFound(f"User {requester_id} not found")
            return RequesterRecord.model_validate(user)
