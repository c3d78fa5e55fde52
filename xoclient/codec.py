"""Parameter marshalling and typed result decoding shared by both transports."""
import json
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, TypeAdapter, ValidationError

from .errors import XODecodeError


def _is_empty(value):
    return value is None or value == '' or value == [] or value == {}


def to_body(params) -> Optional[Any]:
    """JSON-ready body for POST, PUT and PATCH; None when there is nothing to send."""
    if params is None:
        return None
    if isinstance(params, BaseModel):
        params = params.model_dump(mode='json', by_alias=True, exclude_none=True)
    if isinstance(params, dict):
        params = {k: _jsonable(v) for k, v in params.items() if v is not None}
        return params or None
    return _jsonable(params)


def to_query(params) -> Optional[Dict[str, Any]]:
    """
    Flatten params into query parameters for GET and DELETE.

    Empty values are dropped, lists repeat their key through requests, booleans
    are rendered lowercase. Returns None when nothing is left.
    """
    if params is None:
        return None
    if isinstance(params, BaseModel):
        params = params.model_dump(mode='json', by_alias=True, exclude_none=True)
    query = {}
    for key, value in params.items():
        if _is_empty(value):
            continue
        if isinstance(value, (list, tuple, set)):
            query[key] = [_scalar(v) for v in value]
        else:
            query[key] = _scalar(value)
    return query or None


def _scalar(value):
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    return value


def _jsonable(value):
    if isinstance(value, BaseModel):
        return value.model_dump(mode='json', by_alias=True, exclude_none=True)
    if isinstance(value, (UUID, Enum)):
        return _scalar(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


@lru_cache(maxsize=256)
def adapter(result_type) -> TypeAdapter:
    return TypeAdapter(result_type)


def type_name(result_type) -> str:
    return getattr(result_type, '__name__', None) or str(result_type)


def decode(data, result_type):
    """Validate already-parsed JSON into ``result_type``."""
    if result_type is None or result_type is Any:
        return data
    try:
        return adapter(result_type).validate_python(data)
    except ValidationError as e:
        raise XODecodeError(type_name(result_type), json.dumps(data, default=str)[:2048], e) from e


def decode_text(body: str, result_type):
    """
    Decode a response body.

    Plain-text bodies such as ``OK`` are returned as-is when the caller asked for
    ``str`` or ``Any``; for any other container they are a decode error.
    """
    if result_type is None:
        return None
    if not body:
        return None
    try:
        data = json.loads(body)
    except ValueError as e:
        if result_type in (str, Any):
            return body
        raise XODecodeError(type_name(result_type), body, e) from e
    return decode(data, result_type)
