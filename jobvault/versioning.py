"""
Content hashing and version-tag generation for snapshots.

Responsibilities:
- Compute a deterministic digest over serialized snapshot bytes.
- Produce unique version tags and ids for snapshots and records.

Non-Responsibilities:
- No persistence.
- No serialization; callers hash the exact bytes they store.

Invariant:
checksum(data) is a pure function of data for a given hasher.
"""

import hashlib
import itertools
import secrets
import string
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

_BASE36 = string.digits + string.ascii_lowercase
_counter = itertools.count()


class Hasher(ABC):
    """Digest capability, chosen once when a store is constructed."""

    name = "abstract"

    @abstractmethod
    def digest(self, data: bytes) -> str:
        """Return a hex digest of ``data``."""


class Sha256Hasher(Hasher):
    name = "sha256"

    def digest(self, data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()


class RollingHasher(Hasher):
    """
    32-bit shift-and-add rolling hash (h = h * 31 + byte).

    Detects accidental corruption only. It is unsalted, so the same bytes
    always produce the same digest.
    """

    name = "rolling"

    def digest(self, data: bytes) -> str:
        h = 0
        for byte in data:
            h = ((h << 5) - h + byte) & 0xFFFFFFFF
        return format(h, "x").rjust(16, "0")


DEFAULT_HASHER = Sha256Hasher.name


def default_hasher() -> Hasher:
    return Sha256Hasher()


def hasher_by_name(name: str) -> Hasher:
    if name == "sha256":
        return Sha256Hasher()
    if name == "rolling":
        return RollingHasher()
    raise ValueError(f"Unknown hasher: {name}")


def checksum(data: bytes, hasher: Optional[Hasher] = None) -> str:
    return (hasher or default_hasher()).digest(data)


def _random_base36(length: int = 9) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def _to_base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def new_version_tag() -> str:
    # counter keeps tags distinct even when two land in the same millisecond
    millis = int(time.time() * 1000)
    return f"v{millis}_{_to_base36(next(_counter))}{_random_base36(6)}"


def new_backup_id(timestamp: datetime, version: str) -> str:
    millis = int(timestamp.timestamp() * 1000)
    return f"{millis}_{version}_{_random_base36()}"


def new_record_id() -> str:
    millis = int(time.time() * 1000)
    return f"app_{millis}_{_to_base36(next(_counter))}{_random_base36(6)}"
