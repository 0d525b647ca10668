"""
Remote store gateways.

A gateway is the authoritative table of credentials. It assigns ids and
timestamps and enforces that callers only touch their own rows; the
repository trusts it for both.
"""

import datetime
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from . import config
from .errors import GatewayError
from .models import CredentialDraft, CredentialRecord, Session, fields_to_columns

logger = logging.getLogger(__name__)


class RemoteStoreGateway(ABC):
    """Contract the credential repository consumes. Every failure raises GatewayError."""

    @abstractmethod
    async def list(self, owner_id: str) -> List[CredentialRecord]:
        """All records of `owner_id`, newest first."""

    @abstractmethod
    async def insert(self, owner_id: str, draft: CredentialDraft) -> CredentialRecord:
        """Store a new record and return it with its id and timestamps."""

    @abstractmethod
    async def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[CredentialRecord]:
        """Apply `fields` to one record. Returns the stored record when the store echoes it."""

    @abstractmethod
    async def delete(self, record_id: str) -> None:
        """Remove one record."""

    async def aclose(self) -> None:
        """Release any connection held by the gateway."""


def _encode(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v.isoformat() if isinstance(v, datetime.datetime) else v for k, v in values.items()}


class SupabaseGateway(RemoteStoreGateway):
    """Credential table served by Supabase through its PostgREST interface."""

    def __init__(self, base_url: str, api_key: str, session: Session,
                 table: str = config.CREDENTIALS_TABLE,
                 client: Optional[httpx.AsyncClient] = None):
        if not base_url:
            raise GatewayError("No store URL configured (set SECUREPASS_SUPABASE_URL)")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.session = session
        self.table = table
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        # Row-level security on the table scopes every request to the bearer's user.
        token = self.session.access_token or self.api_key
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(self, method: str, params: Dict[str, str],
                       body: Optional[Dict[str, Any]] = None,
                       prefer: Optional[str] = None) -> List[Dict[str, Any]]:
        try:
            resp = await self._client.request(
                method, self.endpoint, params=params, json=body, headers=self._headers(prefer)
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = error_detail(e.response)
            logger.warning(f"{method} {self.table} rejected with HTTP {status}: {detail}")
            raise GatewayError(f"The store rejected the request (HTTP {status}): {detail}", status_code=status) from e
        except httpx.HTTPError as e:
            logger.warning(f"{method} {self.table} failed: {e!r}")
            raise GatewayError(f"Could not reach the store: {e}") from e
        if not resp.content:
            return []
        return resp.json()

    async def list(self, owner_id: str) -> List[CredentialRecord]:
        rows = await self._request("GET", {
            "select": "*",
            "user_id": f"eq.{owner_id}",
            "order": "created_at.desc",
        })
        logger.debug(f"Fetched {len(rows)} rows from {self.table}")
        return [CredentialRecord.from_row(row) for row in rows]

    async def insert(self, owner_id: str, draft: CredentialDraft) -> CredentialRecord:
        body = fields_to_columns({**draft.to_dict(), "owner_id": owner_id})
        rows = await self._request("POST", {"select": "*"}, body=body, prefer="return=representation")
        if not rows:
            raise GatewayError("The store did not return the new credential")
        return CredentialRecord.from_row(rows[0])

    async def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[CredentialRecord]:
        rows = await self._request(
            "PATCH", {"id": f"eq.{record_id}", "select": "*"},
            body=_encode(fields_to_columns(fields)), prefer="return=representation",
        )
        if not rows:
            raise GatewayError(f"Credential {record_id} does not exist in the store", status_code=404)
        return CredentialRecord.from_row(rows[0])

    async def delete(self, record_id: str) -> None:
        rows = await self._request("DELETE", {"id": f"eq.{record_id}"}, prefer="return=representation")
        if not rows:
            raise GatewayError(f"Credential {record_id} does not exist in the store", status_code=404)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        return str(data.get("message") or data.get("msg") or data.get("error_description") or data)
    return str(data)
