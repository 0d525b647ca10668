"""
Data types for saved credentials, drafts, sessions and operation results.
"""

import datetime
import re
import time
from dataclasses import dataclass, asdict, fields as dataclass_fields, replace
from typing import Any, Dict, Generic, List, Optional, TypeVar
from urllib.parse import urlparse

from . import config
from .errors import SecurePassError, ValidationError

REQUIRED_FIELDS = ("site_name", "login_name", "secret_value")
EDITABLE_FIELDS = ("site_name", "site_url", "login_name", "login_email", "secret_value", "note")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")
_FRACTION_RE = re.compile(r"\.(\d+)")

T = TypeVar("T")


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def parse_timestamp(value: Any) -> datetime.datetime:
    """Parse an ISO-8601 timestamp as sent by the store. Naive values are taken as UTC."""
    if isinstance(value, datetime.datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # Postgres trims trailing zeros from fractional seconds.
        text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        parsed = datetime.datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def is_absolute_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc)


def invalid_fields(values: Dict[str, Any]) -> List[str]:
    """
    Check editable field values.

    Only the keys present in `values` are checked, so the same rules apply to
    a full draft and to a partial update.

    Returns:
        Names of fields that are empty but required, or malformed.
    """
    bad = []
    for name in EDITABLE_FIELDS:
        if name not in values:
            continue
        value = values[name]
        if name in REQUIRED_FIELDS:
            if not value:
                bad.append(name)
        elif name == "site_url":
            if value and not is_absolute_url(value):
                bad.append(name)
        elif name == "login_email":
            if value and not _EMAIL_RE.match(value):
                bad.append(name)
    return bad


@dataclass
class CredentialDraft:
    """Field values of a credential before the store assigns its id and timestamps."""
    site_name: str
    login_name: str
    secret_value: str
    site_url: Optional[str] = None
    login_email: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def missing_fields(self) -> List[str]:
        return [name for name in REQUIRED_FIELDS if not getattr(self, name)]

    def validate(self) -> None:
        """Raise ValidationError naming every missing or malformed field."""
        bad = invalid_fields(self.to_dict())
        if bad:
            raise ValidationError(bad)


@dataclass(frozen=True)
class CredentialRecord:
    """One saved credential, as echoed back by the store."""
    id: str
    owner_id: str
    site_name: str
    login_name: str
    secret_value: str
    created_at: datetime.datetime
    updated_at: datetime.datetime
    site_url: Optional[str] = None
    login_email: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization. Timestamps become ISO strings."""
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CredentialRecord':
        """Create from dictionary."""
        known = {f.name for f in dataclass_fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["created_at"] = parse_timestamp(values["created_at"])
        values["updated_at"] = parse_timestamp(values.get("updated_at") or values["created_at"])
        return cls(**values)

    def to_row(self) -> Dict[str, Any]:
        """Convert to a backend table row."""
        return fields_to_columns(self.to_dict())

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'CredentialRecord':
        """Create from a backend table row."""
        return cls.from_dict(columns_to_fields(row))

    def to_draft(self) -> CredentialDraft:
        return CredentialDraft(**{name: getattr(self, name) for name in EDITABLE_FIELDS})

    def with_changes(self, changes: Dict[str, Any], updated_at: datetime.datetime) -> 'CredentialRecord':
        return replace(self, updated_at=updated_at, **changes)


def fields_to_columns(values: Dict[str, Any]) -> Dict[str, Any]:
    """Rename canonical field names to backend column names."""
    return {config.CREDENTIAL_COLUMNS[k]: v for k, v in values.items()}


def columns_to_fields(row: Dict[str, Any]) -> Dict[str, Any]:
    """Rename backend column names to canonical field names. Unknown columns are dropped."""
    by_column = {column: name for name, column in config.CREDENTIAL_COLUMNS.items()}
    return {by_column[k]: v for k, v in row.items() if k in by_column}


@dataclass(frozen=True)
class Session:
    """The signed-in user. Handed explicitly to whatever acts on the user's behalf."""
    user_id: str
    username: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    # Unix time at which access_token stops being accepted.
    expires_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def expired(self, leeway: float = 0, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return now >= self.expires_at - leeway

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Session':
        return cls(**data)


@dataclass
class Result(Generic[T]):
    """Outcome of a repository operation: a value, or the error that prevented it."""
    value: Optional[T] = None
    error: Optional[SecurePassError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        return self.error.message if self.error is not None else ""

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value

    @classmethod
    def success(cls, value: Optional[T] = None) -> 'Result[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, error: SecurePassError) -> 'Result[T]':
        return cls(error=error)
