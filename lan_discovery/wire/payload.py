"""
Payload Codecs

The discovery engine never looks inside a payload. It only needs something
that turns a value into bytes and back:

    codec.encode(value) -> bytes
    codec.decode(data) -> value

Two codecs are provided:
- JsonCodec: plain JSON values (dicts, lists, strings, numbers)
- ModelCodec: pydantic models, validated on decode
"""

import json
from typing import Any, Generic, Protocol, Type, TypeVar

from pydantic import BaseModel

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class PayloadCodec(Protocol[T]):
    """Serializer for one payload type."""

    def encode(self, value: T) -> bytes:
        ...

    def decode(self, data: bytes) -> T:
        ...


class JsonCodec:
    """JSON payloads, UTF-8 encoded."""

    def encode(self, value: Any) -> bytes:
        return json.dumps(value, separators=(',', ':')).encode('utf-8')

    def decode(self, data: bytes) -> Any:
        return json.loads(data.decode('utf-8'))


class ModelCodec(Generic[M]):
    """
    pydantic model payloads.

    Fields marked exclude=True stay local and are never put on the wire.
    """

    def __init__(self, model: Type[M]):
        self.model = model

    def encode(self, value: M) -> bytes:
        if not isinstance(value, self.model):
            raise TypeError(f"Expected {self.model.__name__}, got {type(value).__name__}")
        return value.model_dump_json().encode('utf-8')

    def decode(self, data: bytes) -> M:
        return self.model.model_validate_json(data)

    def __repr__(self) -> str:
        return f"ModelCodec({self.model.__name__})"
