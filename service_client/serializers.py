from typing import IO, Any, Protocol
from urllib.parse import quote, urlencode

from pydantic import BaseModel, TypeAdapter


class Serializer(Protocol):
    def serialize(self, payload: Any, stream: IO[bytes]) -> None: ...

    def deserialize(self, target_type: Any, stream: IO[bytes]) -> Any: ...

    def encode_query_string(self, payload: Any) -> str: ...


class JsonSerializer:
    """JSON bodies and query strings driven by pydantic type adapters."""

    def __init__(self, by_alias: bool = True):
        self.by_alias = by_alias
        self._adapters: dict[Any, TypeAdapter] = {}

    def _adapter(self, target_type: Any) -> TypeAdapter:
        adapter = self._adapters.get(target_type)
        if adapter is None:
            adapter = self._adapters[target_type] = TypeAdapter(target_type)
        return adapter

    def _to_python(self, payload: Any) -> Any:
        if isinstance(payload, BaseModel):
            return payload.model_dump(mode="json", by_alias=self.by_alias, exclude_none=True)
        return self._adapter(type(payload)).dump_python(payload, mode="json")

    def serialize(self, payload: Any, stream: IO[bytes]) -> None:
        if isinstance(payload, BaseModel):
            stream.write(payload.model_dump_json(by_alias=self.by_alias, exclude_none=True).encode("utf-8"))
            return
        stream.write(self._adapter(type(payload)).dump_json(payload))

    def deserialize(self, target_type: Any, stream: IO[bytes]) -> Any:
        data = stream.read()
        if not data:
            # empty body, e.g. HEAD or 204
            return None
        return self._adapter(target_type).validate_json(data)

    def encode_query_string(self, payload: Any) -> str:
        data = self._to_python(payload)
        if not isinstance(data, dict):
            raise TypeError(f"Cannot encode {type(payload).__name__} as a query string")
        pairs = []
        for key, value in data.items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = str(value).lower()
            elif isinstance(value, (list, tuple)):
                value = ",".join(str(item) for item in value)
            pairs.append((key, value))
        return urlencode(pairs, quote_via=quote)
