"""
Account sign-up, sign-in and profile changes.

Two providers share one interface: a local account list kept on this device,
and the Supabase auth service. Both hand back an explicit Session; nothing
here keeps a "current user" of its own.
"""

import logging
import re
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from . import config
from .crypto import CryptoManager
from .errors import AuthError, ValidationError
from .gateway import error_detail
from .local_store import read_json, write_json_atomic
from .models import Session

logger = logging.getLogger(__name__)


def validate_phone_number(phone_number: Optional[str]) -> bool:
    """An empty phone number is allowed; otherwise it must be a 10-digit mobile number."""
    if not phone_number:
        return True
    return re.match(config.PHONE_NUMBER_PATTERN, phone_number) is not None


def validate_new_password(new_password: str, confirm_password: str) -> None:
    """Raise ValidationError if a new account password is not acceptable."""
    if not new_password or not confirm_password:
        raise ValidationError(["new_password"], "All password fields are required")
    if new_password != confirm_password:
        raise ValidationError(["confirm_password"], "New passwords do not match")
    if len(new_password) < config.ACCOUNT_PASSWORD_MIN_LENGTH:
        raise ValidationError(
            ["new_password"],
            f"New password must be at least {config.ACCOUNT_PASSWORD_MIN_LENGTH} characters",
        )


class AuthProvider(ABC):
    """Authentication service contract. Every refusal raises AuthError."""

    @abstractmethod
    async def sign_up(self, username: str, password: str, email: Optional[str] = None) -> Session:
        """Create an account and sign it in."""

    @abstractmethod
    async def sign_in(self, identifier: str, password: str) -> Session:
        """Sign in by username (local) or email (remote)."""

    @abstractmethod
    async def sign_out(self, session: Session) -> None:
        """End the session."""

    @abstractmethod
    async def update_profile(self, session: Session, email: Optional[str] = None,
                             phone_number: Optional[str] = None) -> Session:
        """Change contact details; returns the session carrying them."""

    @abstractmethod
    async def change_password(self, session: Session, current_password: str, new_password: str) -> None:
        """Replace the account password."""

    async def refresh(self, session: Session) -> Session:
        """Return a session whose access token is still valid. Sessions without tokens are returned as-is."""
        return session

    async def reset_password(self, email: str) -> None:
        raise AuthError("Password reset is not available for this account type")

    async def aclose(self) -> None:
        """Release any connection held by the provider."""


class LocalAuthProvider(AuthProvider):
    """Accounts kept in a JSON file on this device, with hashed passwords."""

    def __init__(self, filepath: str, crypto: Optional[CryptoManager] = None):
        self.filepath = filepath
        self.crypto = crypto or CryptoManager()

    def _load_users(self) -> List[Dict[str, Any]]:
        try:
            return read_json(self.filepath, {'users': []}).get('users', [])
        except (OSError, ValueError) as e:
            logger.error(f"Could not read account list {self.filepath}: {e}")
            raise AuthError("Could not read the local account list") from e

    def _save_users(self, users: List[Dict[str, Any]]) -> None:
        try:
            write_json_atomic(self.filepath, {'users': users})
        except OSError as e:
            raise AuthError("Could not save the local account list") from e

    @staticmethod
    def _session(user: Dict[str, Any]) -> Session:
        return Session(
            user_id=user['id'],
            username=user['username'],
            email=user.get('email') or None,
            phone_number=user.get('phone_number') or None,
        )

    def _find(self, users: List[Dict[str, Any]], user_id: str) -> Dict[str, Any]:
        for user in users:
            if user['id'] == user_id:
                return user
        raise AuthError("Account no longer exists")

    async def sign_up(self, username: str, password: str, email: Optional[str] = None) -> Session:
        if not username or not password:
            raise AuthError("Username and password are required")
        users = self._load_users()
        if any(u['username'] == username for u in users):
            raise AuthError(f"Username {username} is already taken")
        user = {
            'id': uuid.uuid4().hex,
            'username': username,
            'password': self.crypto.hash_password(password),
            'email': email or '',
            'phone_number': '',
        }
        users.append(user)
        self._save_users(users)
        logger.info(f"Created local account {user['id']}")
        return self._session(user)

    async def sign_in(self, identifier: str, password: str) -> Session:
        if not identifier or not password:
            raise AuthError("Please fill in all fields")
        for user in self._load_users():
            if user['username'] == identifier and self.crypto.check_password(password, user['password']):
                logger.info(f"Signed in local account {user['id']}")
                return self._session(user)
        logger.info("Local sign-in refused")
        raise AuthError("Invalid username or password")

    async def sign_out(self, session: Session) -> None:
        logger.info(f"Signed out local account {session.user_id}")

    async def update_profile(self, session: Session, email: Optional[str] = None,
                             phone_number: Optional[str] = None) -> Session:
        if not validate_phone_number(phone_number):
            raise AuthError("Please enter a valid 10-digit phone number")
        users = self._load_users()
        user = self._find(users, session.user_id)
        user['email'] = email or ''
        user['phone_number'] = phone_number or ''
        self._save_users(users)
        return self._session(user)

    async def change_password(self, session: Session, current_password: str, new_password: str) -> None:
        users = self._load_users()
        user = self._find(users, session.user_id)
        if not self.crypto.check_password(current_password, user['password']):
            raise AuthError("Current password is incorrect")
        if len(new_password) < config.ACCOUNT_PASSWORD_MIN_LENGTH:
            raise AuthError(f"New password must be at least {config.ACCOUNT_PASSWORD_MIN_LENGTH} characters")
        user['password'] = self.crypto.hash_password(new_password)
        self._save_users(users)
        logger.info(f"Changed password of local account {session.user_id}")


class SupabaseAuthProvider(AuthProvider):
    """Accounts managed by the Supabase auth service (GoTrue)."""

    def __init__(self, base_url: str, api_key: str, client: Optional[httpx.AsyncClient] = None):
        if not base_url:
            raise AuthError("No auth URL configured (set SECUREPASS_SUPABASE_URL)")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS)

    def _headers(self, session: Optional[Session] = None, prefer: Optional[str] = None) -> Dict[str, str]:
        token = session.access_token if session and session.access_token else self.api_key
        headers = {"apikey": self.api_key, "Authorization": f"Bearer {token}"}
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _send(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
                    params: Optional[Dict[str, str]] = None, session: Optional[Session] = None,
                    prefer: Optional[str] = None) -> Any:
        try:
            resp = await self._client.request(
                method, f"{self.base_url}{path}", json=body, params=params,
                headers=self._headers(session, prefer),
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = error_detail(e.response)
            logger.warning(f"{method} {path} refused with HTTP {e.response.status_code}: {detail}")
            raise AuthError(detail) from e
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e!r}")
            raise AuthError(f"Could not reach the auth service: {e}") from e
        if not resp.content:
            return None
        return resp.json()

    @staticmethod
    def _session(data: Dict[str, Any], phone_number: Optional[str] = None) -> Session:
        user = data.get("user") or data
        metadata = user.get("user_metadata") or {}
        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in"):
            expires_at = int(time.time()) + int(data["expires_in"])
        return Session(
            user_id=user["id"],
            username=metadata.get("username") or user.get("email", ""),
            email=user.get("email"),
            phone_number=phone_number,
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at,
        )

    async def _phone_number(self, session: Session) -> Optional[str]:
        try:
            rows = await self._send(
                "GET", f"/rest/v1/{config.PROFILES_TABLE}",
                params={"id": f"eq.{session.user_id}", "select": "phone_number"}, session=session,
            )
        except AuthError as e:
            logger.warning(f"Profile of {session.user_id} unavailable: {e.message}")
            return None
        return rows[0].get("phone_number") if rows else None

    async def sign_up(self, username: str, password: str, email: Optional[str] = None) -> Session:
        if not email or not username or not password:
            raise AuthError("Email, username and password are required")
        data = await self._send("POST", "/auth/v1/signup", {
            "email": email,
            "password": password,
            "data": {"username": username},
        })
        if not data or not data.get("access_token"):
            raise AuthError("Account created. Confirm your email address, then sign in")
        return self._session(data)

    async def sign_in(self, identifier: str, password: str) -> Session:
        if not identifier or not password:
            raise AuthError("Please fill in all fields")
        data = await self._send(
            "POST", "/auth/v1/token", {"email": identifier, "password": password},
            params={"grant_type": "password"},
        )
        session = self._session(data)
        phone_number = await self._phone_number(session)
        logger.info(f"Signed in {session.user_id}")
        return Session(**{**session.to_dict(), "phone_number": phone_number})

    async def refresh(self, session: Session) -> Session:
        if not session.refresh_token or not session.expired(config.SESSION_REFRESH_LEEWAY_SECONDS):
            return session
        logger.info(f"Refreshing expired session of {session.user_id}")
        data = await self._send(
            "POST", "/auth/v1/token", {"refresh_token": session.refresh_token},
            params={"grant_type": "refresh_token"},
        )
        refreshed = self._session(data, phone_number=session.phone_number)
        if refreshed.user_id != session.user_id:
            raise AuthError("Session refresh returned a different user. Sign in again")
        return refreshed

    async def sign_out(self, session: Session) -> None:
        await self._send("POST", "/auth/v1/logout", session=session)
        logger.info(f"Signed out {session.user_id}")

    async def reset_password(self, email: str) -> None:
        if not email:
            raise AuthError("Please enter your email address")
        await self._send("POST", "/auth/v1/recover", {"email": email})

    async def update_profile(self, session: Session, email: Optional[str] = None,
                             phone_number: Optional[str] = None) -> Session:
        if not validate_phone_number(phone_number):
            raise AuthError("Please enter a valid 10-digit phone number")
        if email and email != session.email:
            await self._send("PUT", "/auth/v1/user", {"email": email}, session=session)
        await self._send(
            "PATCH", f"/rest/v1/{config.PROFILES_TABLE}", {"phone_number": phone_number or None},
            params={"id": f"eq.{session.user_id}"}, session=session, prefer="return=minimal",
        )
        return Session(**{**session.to_dict(), "email": email or session.email, "phone_number": phone_number or None})

    async def change_password(self, session: Session, current_password: str, new_password: str) -> None:
        # The service authorizes by access token; the current password is not re-checked here.
        if len(new_password) < config.ACCOUNT_PASSWORD_MIN_LENGTH:
            raise AuthError(f"New password must be at least {config.ACCOUNT_PASSWORD_MIN_LENGTH} characters")
        await self._send("PUT", "/auth/v1/user", {"password": new_password}, session=session)
        logger.info(f"Changed password of {session.user_id}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
