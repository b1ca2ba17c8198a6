"""
Firestore query helpers built on the FieldFilter API
(positional where() arguments are deprecated).
"""

from typing import Any, Dict, Optional

from google.cloud.firestore_v1.base_query import FieldFilter


def where_filter(query, field_path: str, op_string: str, value):
    """
    Apply a single field filter to a Firestore query or collection reference.

    Usage:
        query = where_filter(collection, "company_id", "==", "northside-security")
        query = where_filter(query, "status", "==", "active")
    """
    return query.where(filter=FieldFilter(field_path, op_string, value))


def apply_equality_filters(query, filters: Optional[Dict[str, Any]] = None, limit: Optional[int] = None):
    """Chain one equality filter per entry, then an optional limit."""
    for field_path, value in (filters or {}).items():
        query = where_filter(query, field_path, "==", value)
    if limit is not None:
        query = query.limit(limit)
    return query
