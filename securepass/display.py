"""
Presentation helpers for a single credential.
"""

from typing import Optional
from urllib.parse import urlparse

from . import config
from .models import CredentialRecord


def favicon_url(record: CredentialRecord) -> Optional[str]:
    """Favicon image URL for the record's site, or None without a usable site URL."""
    if not record.site_url:
        return None
    try:
        host = urlparse(record.site_url).hostname
    except ValueError:
        return None
    if not host:
        return None
    return config.FAVICON_ENDPOINT.format(domain=host)


def masked_secret(record: CredentialRecord, revealed: bool = False) -> str:
    return record.secret_value if revealed else config.HIDDEN_SECRET_TEXT


def describe(record: CredentialRecord, revealed: bool = False) -> str:
    """One-line summary: id, site, login and the (masked) secret."""
    parts = [record.id, record.site_name, record.login_name]
    if record.login_email:
        parts.append(record.login_email)
    parts.append(masked_secret(record, revealed))
    if record.site_url:
        parts.append(record.site_url)
    return "  ".join(parts)
