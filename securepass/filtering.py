"""
Search over a list of credentials.
"""

from typing import List, Sequence

from .models import CredentialRecord

SEARCHED_FIELDS = ("site_name", "login_name", "login_email", "note")


def matches(record: CredentialRecord, term: str) -> bool:
    """True if `term` occurs, ignoring case, in one of the searched fields."""
    needle = term.lower()
    for name in SEARCHED_FIELDS:
        value = getattr(record, name)
        if value and needle in value.lower():
            return True
    return False


def filter_records(records: Sequence[CredentialRecord], term: str) -> List[CredentialRecord]:
    """
    Filter records by search text.

    The term is not trimmed, so surrounding spaces take part in the match.
    Input order is kept and the input is never modified.

    Args:
        records: Records in display order
        term: Search text; empty returns every record

    Returns:
        A new list with the matching records
    """
    if not term:
        return list(records)
    return [record for record in records if matches(record, term)]
