"""Namespaced record identifiers of the form "<collection>:<key>"."""

import re
import secrets
import string
from dataclasses import dataclass

_KEY_ALPHABET = string.ascii_lowercase + string.digits
_KEY_LENGTH = 20
_PART_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def generate_key(length: int = _KEY_LENGTH) -> str:
    """Random lowercase alphanumeric record key."""
    return "".join(secrets.choice(_KEY_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class RecordId:
    """
    Identifier of one record in the record store.

    str(RecordId("task", "abc")) == "task:abc"
    """

    collection: str
    key: str

    def __post_init__(self):
        if not _PART_PATTERN.match(self.collection):
            raise ValueError(f"Invalid collection name: {self.collection!r}")
        if not _PART_PATTERN.match(self.key):
            raise ValueError(f"Invalid record key: {self.key!r}")

    def __str__(self) -> str:
        return f"{self.collection}:{self.key}"

    @classmethod
    def parse(cls, value: str, collection: str) -> "RecordId":
        """
        Parse "collection:key" or a bare key belonging to `collection`.

        Raises:
            ValueError: If the value is malformed or names another collection.
        """
        if not value:
            raise ValueError("Record id is empty")

        if ":" in value:
            prefix, key = value.split(":", 1)
            if prefix != collection:
                raise ValueError(
                    f"Record id {value!r} does not belong to collection '{collection}'"
                )
        else:
            key = value

        return cls(collection, key)
