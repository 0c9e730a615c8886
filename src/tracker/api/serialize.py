"""JSON conversion for domain objects. Decimals are rendered as strings."""

from dataclasses import fields, is_dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from fastapi import Request

from tracker.exceptions import InvalidInputError
from tracker.models import CapitalAllocation


def to_jsonable(obj: Any) -> Any:
    """Recursively convert dataclasses, Decimals and enums for JSON responses."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, CapitalAllocation):
        return obj.to_json()
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(item) for item in obj]
    return obj


async def read_body(request: Request) -> dict[str, Any]:
    """Parsed JSON object body; InvalidInputError for anything else."""
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidInputError("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return body
