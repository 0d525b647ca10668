"""
In-memory mirror of the signed-in user's credentials.

The repository is the only writer of its collection. A change reaches the
collection only after the gateway has accepted it, and every operation
reports failure through a Result instead of raising.
"""

import asyncio
import datetime
import logging
from dataclasses import replace
from typing import Any, Awaitable, Dict, List, Optional, Tuple, Type, TypeVar

from . import config
from .errors import (
    FetchError, GatewayError, NotFoundError, PersistError, SecurePassError, ValidationError,
)
from .gateway import RemoteStoreGateway
from .models import (
    EDITABLE_FIELDS, CredentialDraft, CredentialRecord, Result, Session, invalid_fields, utc_now,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CredentialRepository:
    """Owns one user's credentials and keeps them consistent with a gateway."""

    def __init__(self, gateway: RemoteStoreGateway, session: Session,
                 timeout: float = config.GATEWAY_TIMEOUT_SECONDS):
        """
        Args:
            gateway: The authoritative store
            session: The signed-in user; every record held belongs to them
            timeout: Default bound in seconds for each gateway call
        """
        self.gateway = gateway
        self.session = session
        self.timeout = timeout
        # Serializes load and the mutating operations.
        self._lock = asyncio.Lock()
        self._records: List[CredentialRecord] = []

    @property
    def records(self) -> Tuple[CredentialRecord, ...]:
        """Current collection, newest first."""
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def _index(self, record_id: str) -> int:
        for i, record in enumerate(self._records):
            if record.id == record_id:
                return i
        raise NotFoundError(record_id)

    async def _call(self, call: Awaitable[T], error_cls: Type[GatewayError], action: str,
                    timeout: Optional[float]) -> T:
        limit = self.timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(call, timeout=limit)
        except asyncio.TimeoutError:
            logger.warning(f"{action} timed out after {limit:g}s")
            raise error_cls(f"{action} timed out after {limit:g} seconds")
        except GatewayError as e:
            logger.warning(f"{action} failed: {e.message}")
            raise error_cls(f"{action} failed: {e.message}", status_code=e.status_code) from e
        except Exception as e:
            logger.error(f"{action} failed unexpectedly: {e}", exc_info=True)
            raise error_cls(f"{action} failed: {e}") from e

    @staticmethod
    def _reject(error: SecurePassError) -> Result:
        logger.info(f"Rejected: {error.message}")
        return Result.failure(error)

    def get(self, record_id: str) -> Result[CredentialRecord]:
        try:
            return Result.success(self._records[self._index(record_id)])
        except NotFoundError as e:
            return Result.failure(e)

    async def clear(self) -> None:
        """Forget every held record, e.g. when the user signs out. Waits for a pending load."""
        async with self._lock:
            self._records = []

    def _foreign(self, record: CredentialRecord, record_id: Optional[str] = None) -> Optional[PersistError]:
        """An error if the store answered with a record this repository may not hold."""
        if record.owner_id != self.session.user_id:
            logger.warning(f"Store returned credential {record.id} owned by another user")
            return PersistError("The store returned a credential owned by another user")
        if record_id is not None and record.id != record_id:
            logger.warning(f"Store returned credential {record.id} for an update of {record_id}")
            return PersistError(f"The store returned credential {record.id} instead of {record_id}")
        return None

    async def load(self, user_id: Optional[str] = None,
                   timeout: Optional[float] = None) -> Result[Tuple[CredentialRecord, ...]]:
        """
        Replace the collection with the store's records for the user, newest first.

        On failure the previous collection is kept as it was.

        Args:
            user_id: Owner to load; defaults to the session user and may not differ from it
            timeout: Bound for this call, overriding the repository default
        """
        user_id = user_id or self.session.user_id
        if user_id != self.session.user_id:
            return self._reject(ValidationError(["user_id"], "Only the signed-in user's credentials can be loaded"))

        async with self._lock:
            try:
                fetched = await self._call(self.gateway.list(user_id), FetchError, "Loading credentials", timeout)
            except FetchError as e:
                logger.warning(f"Keeping {len(self._records)} previously loaded credentials")
                return Result.failure(e)

            owned: List[CredentialRecord] = []
            seen = set()
            for record in fetched:
                if record.owner_id != user_id:
                    logger.warning(f"Dropping credential {record.id} owned by another user")
                    continue
                if record.id in seen:
                    logger.warning(f"Dropping duplicate credential {record.id}")
                    continue
                seen.add(record.id)
                owned.append(record)
            self._records = sorted(owned, key=lambda r: r.created_at, reverse=True)
            logger.info(f"Loaded {len(self._records)} credentials for user {user_id}")
            return Result.success(self.records)

    async def create(self, draft: CredentialDraft,
                     timeout: Optional[float] = None) -> Result[CredentialRecord]:
        """Store a new credential and put it at the top of the collection."""
        try:
            draft.validate()
        except ValidationError as e:
            return self._reject(e)

        async with self._lock:
            try:
                record = await self._call(
                    self.gateway.insert(self.session.user_id, draft), PersistError, "Saving credential", timeout
                )
            except PersistError as e:
                return Result.failure(e)
            error = self._foreign(record)
            if error is not None:
                return Result.failure(error)
            self._records = [r for r in self._records if r.id != record.id]
            self._records.insert(0, record)
            logger.info(f"Added credential {record.id}")
            return Result.success(record)

    async def update(self, record_id: str, fields: Dict[str, Any],
                     timeout: Optional[float] = None) -> Result[CredentialRecord]:
        """
        Change some fields of a held credential.

        The record keeps its position. Its `updated_at` always moves forward,
        even when the local clock has not.
        """
        async with self._lock:
            try:
                index = self._index(record_id)
            except NotFoundError as e:
                return self._reject(e)

            changes = dict(fields)
            fixed = [name for name in changes if name not in EDITABLE_FIELDS]
            if fixed:
                return self._reject(ValidationError(fixed, f"Field(s) cannot be changed: {', '.join(fixed)}"))
            bad = invalid_fields(changes)
            if bad:
                return self._reject(ValidationError(bad))

            current = self._records[index]
            updated_at = utc_now()
            if updated_at <= current.updated_at:
                updated_at = current.updated_at + datetime.timedelta(microseconds=1)

            try:
                returned = await self._call(
                    self.gateway.update(record_id, {**changes, "updated_at": updated_at}),
                    PersistError, "Updating credential", timeout,
                )
            except PersistError as e:
                return Result.failure(e)

            if returned is not None:
                error = self._foreign(returned, record_id)
                if error is not None:
                    return Result.failure(error)
            merged = returned if returned is not None else current.with_changes(changes, updated_at)
            if merged.updated_at <= current.updated_at:
                merged = replace(merged, updated_at=updated_at)
            self._records[index] = merged
            logger.info(f"Updated credential {record_id} ({', '.join(sorted(changes)) or 'no fields'})")
            return Result.success(merged)

    async def delete(self, record_id: str, timeout: Optional[float] = None) -> Result[None]:
        """Remove a credential from the store, then from the collection."""
        async with self._lock:
            try:
                self._index(record_id)
            except NotFoundError as e:
                return self._reject(e)

            try:
                await self._call(self.gateway.delete(record_id), PersistError, "Deleting credential", timeout)
            except PersistError as e:
                return Result.failure(e)
            self._records = [r for r in self._records if r.id != record_id]
            logger.info(f"Deleted credential {record_id}")
            return Result.success(None)
