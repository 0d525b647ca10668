"""
Shared test fixtures.

Provides an in-memory gateway with failure and latency injection, a signed-in
session and a repository wired to both.
"""

import asyncio
import datetime
from dataclasses import replace
from typing import Any, Dict, List, Optional

import pytest

from securepass.errors import GatewayError
from securepass.gateway import RemoteStoreGateway
from securepass.models import CredentialDraft, CredentialRecord, Session
from securepass.repository import CredentialRepository

EPOCH = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)


class FakeGateway(RemoteStoreGateway):
    """Authoritative table held in memory. Queue a failure with `fail(op)`."""

    def __init__(self, echo_updates: bool = True):
        self.rows: List[CredentialRecord] = []
        self.failures: Dict[str, GatewayError] = {}
        self.delay = 0.0
        self.echo_updates = echo_updates
        self.calls: List[str] = []
        self._clock = EPOCH
        self._next_id = 1

    def fail(self, op: str, message: str = "network unreachable", status_code: Optional[int] = None):
        self.failures[op] = GatewayError(message, status_code=status_code)

    def _tick(self) -> datetime.datetime:
        self._clock += datetime.timedelta(seconds=1)
        return self._clock

    async def _enter(self, op: str) -> None:
        self.calls.append(op)
        if self.delay:
            await asyncio.sleep(self.delay)
        if op in self.failures:
            raise self.failures.pop(op)

    def _find(self, record_id: str) -> int:
        for i, row in enumerate(self.rows):
            if row.id == record_id:
                return i
        raise GatewayError(f"Credential {record_id} does not exist in the store", status_code=404)

    def seed(self, owner_id: str, site_name: str, **overrides: Any) -> CredentialRecord:
        now = self._tick()
        values = dict(
            id=f"rec-{self._next_id}", owner_id=owner_id, site_name=site_name,
            login_name="someone", secret_value="hunter2", created_at=now, updated_at=now,
        )
        values.update(overrides)
        self._next_id += 1
        record = CredentialRecord(**values)
        self.rows.append(record)
        return record

    async def list(self, owner_id: str) -> List[CredentialRecord]:
        await self._enter("list")
        owned = [r for r in self.rows if r.owner_id == owner_id]
        return sorted(owned, key=lambda r: r.created_at, reverse=True)

    async def insert(self, owner_id: str, draft: CredentialDraft) -> CredentialRecord:
        await self._enter("insert")
        return self.seed(owner_id, **draft.to_dict())

    async def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[CredentialRecord]:
        await self._enter("update")
        i = self._find(record_id)
        self.rows[i] = replace(self.rows[i], **fields)
        return self.rows[i] if self.echo_updates else None

    async def delete(self, record_id: str) -> None:
        await self._enter("delete")
        del self.rows[self._find(record_id)]


@pytest.fixture
def session():
    return Session(user_id="user-1", username="alice", email="alice@example.com")


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def repo(gateway, session):
    return CredentialRepository(gateway, session, timeout=1.0)


@pytest.fixture
def make_draft():
    def _make(**overrides):
        values = dict(site_name="GitHub", login_name="alice", secret_value="s3cret",
                      site_url="https://github.com", login_email="alice@gmail.com", note="work")
        values.update(overrides)
        return CredentialDraft(**values)
    return _make
