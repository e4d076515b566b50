"""
Key-case conversion between the camelCase wire format and snake_case internals.
Built on Pydantic's alias_generators so it agrees with schema aliases.
"""
from typing import Any, Callable, Iterable

from pydantic.alias_generators import to_camel, to_snake


def _camel_key(key: str) -> str:
    # Keys without underscores are already camelCase (or single words)
    return to_camel(key) if "_" in key else key


def _snake_key(key: str) -> str:
    return key if key.islower() else to_snake(key)


def _convert_keys(obj: Any, convert: Callable[[str], str], preserve: frozenset) -> Any:
    if isinstance(obj, dict):
        return {
            (convert(k) if isinstance(k, str) and k not in preserve else k): _convert_keys(v, convert, preserve)
            for k, v in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [_convert_keys(x, convert, preserve) for x in obj]
    return obj


def dict_keys_to_camel(obj: Any, preserve: Iterable[str] = ()) -> Any:
    """Recursively camelCase dict keys for API responses. Keys in `preserve` are left as they are."""
    return _convert_keys(obj, _camel_key, frozenset(preserve))


def dict_keys_to_snake(obj: Any, preserve: Iterable[str] = ()) -> Any:
    """Recursively snake_case dict keys from client or stored input."""
    return _convert_keys(obj, _snake_key, frozenset(preserve))
