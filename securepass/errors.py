"""
Error types shared by the credential store, its gateways and the
authentication layer.
"""

from typing import Iterable, Optional


class SecurePassError(Exception):
    """Base class for all SecurePass errors. `message` is safe to show to the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SecurePassError):
    """Input rejected before it reaches a gateway."""

    def __init__(self, fields: Iterable[str], message: Optional[str] = None):
        self.fields = list(fields)
        if message is None:
            message = f"Missing or invalid field(s): {', '.join(self.fields)}"
        super().__init__(message)


class NotFoundError(SecurePassError):
    """The targeted record is not in the local collection."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"No credential with id {record_id}")


class GatewayError(SecurePassError):
    """A remote store call failed (network, authorization or server-side rejection)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FetchError(GatewayError):
    """Loading the collection from the store failed."""


class PersistError(GatewayError):
    """Writing a change to the store failed."""


class AuthError(SecurePassError):
    """Sign-in, sign-up or account change was refused."""
