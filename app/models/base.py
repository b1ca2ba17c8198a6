"""
Pydantic base models and record conversion helpers.

DESIGN PRINCIPLE:
- Models reflect data structure, not business logic
- Enum members are stored by value so any record store can persist them
"""

from pydantic import BaseModel
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def to_record(model: BaseModel, exclude: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """
    Convert a model into a store record (enum members replaced by their values).

    Args:
        model: Pydantic model instance
        exclude: Field names to leave out (e.g. "id", which is the document key)

    Returns:
        Plain dict ready to be written to a RecordStore
    """
    data = model.model_dump(exclude=set(exclude) if exclude else None)
    return _plain(data)
