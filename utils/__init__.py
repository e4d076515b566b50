"""Key-case helpers shared by routes and services."""
from utils.case import dict_keys_to_camel, dict_keys_to_snake

__all__ = [
    "dict_keys_to_camel",
    "dict_keys_to_snake",
]
